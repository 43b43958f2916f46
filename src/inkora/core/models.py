"""Source descriptions shared by the registry, adapters and catalog."""

from __future__ import annotations

import hashlib
from dataclasses import dataclass, field
from enum import Enum


class BackendKind(str, Enum):
    STRUCTURED_API = "structured_api"
    MARKUP_SCRAPE = "markup_scrape"
    STUB = "stub"


def generate_source_id(name: str, lang: str = "all", version_id: int = 1) -> str:
    """Stable id from ``name/lang/version``, hashed with MD5 like Mihon does."""

    digest = hashlib.md5(f"{name.lower()}/{lang}/{version_id}".encode()).digest()
    # First eight bytes, big endian, sign bit cleared.
    return str(int.from_bytes(digest[:8], "big") & 0x7FFF_FFFF_FFFF_FFFF)


@dataclass(slots=True)
class Source:
    """A logical content provider and the mirrors believed to serve it.

    Everything except the order of ``domain_candidates`` is fixed once the
    source is registered; :meth:`promote_domain` moves the last mirror that
    answered to the front for the rest of the process.
    """

    id: str
    display_name: str
    language: str = "all"
    domain_candidates: tuple[str, ...] = ()
    backend_kind: BackendKind = BackendKind.MARKUP_SCRAPE
    nsfw: bool = False
    supports_latest: bool = True
    version_id: int = 1
    is_stub: bool = False
    extension_name: str | None = None
    adapter_key: str | None = None
    _domains: list[str] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        self.domain_candidates = tuple(d.rstrip("/") for d in self.domain_candidates if d)
        self.backend_kind = BackendKind(self.backend_kind)
        self._domains = list(self.domain_candidates)

    @property
    def domains(self) -> tuple[str, ...]:
        """Mirrors in the order the next call should try them."""

        return tuple(self._domains)

    @property
    def base_url(self) -> str | None:
        return self._domains[0] if self._domains else None

    def promote_domain(self, domain: str) -> bool:
        domain = domain.rstrip("/")
        if domain not in self._domains or self._domains[0] == domain:
            return False
        self._domains.remove(domain)
        self._domains.insert(0, domain)
        return True

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.id,
            "display_name": self.display_name,
            "language": self.language,
            "domain_candidates": list(self.domains),
            "backend_kind": self.backend_kind.value,
            "nsfw": self.nsfw,
            "supports_latest": self.supports_latest,
            "version_id": self.version_id,
            "is_stub": self.is_stub,
            "extension_name": self.extension_name,
        }


def stub_source(source_id: str, name: str | None = None) -> Source:
    return Source(
        id=source_id,
        display_name=name or f"Source {source_id}",
        language="unknown",
        backend_kind=BackendKind.STUB,
        supports_latest=False,
        version_id=0,
        is_stub=True,
    )


__all__ = ["BackendKind", "Source", "generate_source_id", "stub_source"]
