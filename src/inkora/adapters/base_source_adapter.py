"""Backend contract every source adapter follows."""

from __future__ import annotations

from abc import ABC
from collections.abc import Mapping
from enum import Enum
from typing import Any, ClassVar
from urllib.parse import urlencode

from inkora.analyze.extractor import Extractor
from inkora.analyze.records import ChapterRecord, DetailRecord, ListingRecord, PageRecord
from inkora.core.models import BackendKind
from inkora.utils.errors import UnsupportedCapabilityError
from inkora.utils.http_client import RequestOptions, Transport, TransportResponse


class Capability(str, Enum):
    SEARCH = "search"
    DETAILS = "details"
    CHAPTERS = "chapters"
    PAGES = "pages"
    POPULAR = "popular"
    LATEST = "latest"


ListingResult = list[ListingRecord] | list[DetailRecord]


def filters_to_params(filters: Mapping[str, Any] | None) -> list[tuple[str, str]]:
    """Flatten a plain filter mapping into query parameters.

    Sequence values repeat the key with a ``[]`` suffix, the convention both
    the JSON APIs and the markup mirrors accept; ``None`` values are skipped.
    """

    params: list[tuple[str, str]] = []
    for key, value in (filters or {}).items():
        if value is None:
            continue
        if isinstance(value, (list, tuple, set, frozenset)):
            name = key if key.endswith("[]") else f"{key}[]"
            params.extend((name, str(item)) for item in value)
        elif isinstance(value, bool):
            params.append((key, "true" if value else "false"))
        else:
            params.append((key, str(value)))
    return params


def build_url(base_url: str, path: str, params: list[tuple[str, str]] | None = None) -> str:
    url = f"{base_url.rstrip('/')}/{path.lstrip('/')}"
    if params:
        url = f"{url}{'&' if '?' in url else '?'}{urlencode(params)}"
    return url


class BaseSourceAdapter(ABC):
    """Base contract for backends.

    Subclasses declare the capabilities they implement; the registry checks
    that set before calling anything, so the defaults below only fire when
    an adapter is used directly.
    """

    #: Identifier used by the factory to find the adapter.
    adapter_key: ClassVar[str]
    backend_kind: ClassVar[BackendKind] = BackendKind.MARKUP_SCRAPE
    capabilities: ClassVar[frozenset[Capability]] = frozenset()
    #: Mirrors (markup) or API bases (structured) the adapter knows how to talk to.
    default_domains: ClassVar[tuple[str, ...]] = ()
    #: Public site hosts, used to recognise catalog entries served by this adapter.
    site_domains: ClassVar[tuple[str, ...]] = ()

    def __init__(self, transport: Transport, extractor: Extractor | None = None) -> None:
        self.transport = transport
        self.extractor = extractor or Extractor()

    @classmethod
    def get_adapter_key(cls) -> str:
        key = getattr(cls, "adapter_key", "")
        if not isinstance(key, str) or not key:
            raise NotImplementedError(
                f"Adapter {cls.__name__} must define a non-empty `adapter_key` class attribute."
            )
        return key

    @classmethod
    def supports(cls, capability: Capability | str) -> bool:
        return Capability(capability) in cls.capabilities

    def _unsupported(self, capability: Capability) -> UnsupportedCapabilityError:
        return UnsupportedCapabilityError(self.get_adapter_key(), capability.value)

    async def search(
        self, base_url: str, query: str, filters: Mapping[str, Any] | None = None
    ) -> ListingResult:
        raise self._unsupported(Capability.SEARCH)

    async def details(self, base_url: str, item_id: str) -> DetailRecord | None:
        raise self._unsupported(Capability.DETAILS)

    async def chapters(self, base_url: str, item_id: str) -> list[ChapterRecord]:
        raise self._unsupported(Capability.CHAPTERS)

    async def pages(self, base_url: str, chapter_id: str) -> list[PageRecord]:
        raise self._unsupported(Capability.PAGES)

    async def popular(self, base_url: str) -> ListingResult:
        raise self._unsupported(Capability.POPULAR)

    async def latest(self, base_url: str) -> ListingResult:
        raise self._unsupported(Capability.LATEST)

    async def fetch(
        self,
        url: str,
        *,
        headers: Mapping[str, str] | None = None,
        options: RequestOptions | None = None,
    ) -> TransportResponse:
        response = await self.transport.get(url, headers=headers, options=options)
        response.raise_for_status()
        return response


__all__ = [
    "BaseSourceAdapter",
    "Capability",
    "ListingResult",
    "build_url",
    "filters_to_params",
]
