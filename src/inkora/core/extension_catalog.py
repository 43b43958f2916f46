"""Extension repository catalog.

Reader apps in the Tachiyomi family publish ``index.min.json`` documents:
a list of extensions, each carrying the sources it implements. The catalog
flattens those into :class:`SourceDescriptor` rows, caches them in the
``extensions`` namespace and can register them with a
:class:`~inkora.core.source_registry.SourceRegistry`. Descriptors whose
domain belongs to a built-in adapter become working sources; the rest are
registered as stubs so lookups by id still resolve.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import asdict, dataclass, field
from typing import Any

from inkora.adapters.factory import adapter_key_for_domain
from inkora.adapters.registry import get_adapter_class
from inkora.config.config import EXTENSION_REPOSITORY_DEFAULTS
from inkora.core.models import BackendKind, Source, generate_source_id
from inkora.core.source_registry import SourceRegistry
from inkora.storage.cache_manager import NamespaceCache
from inkora.utils.errors import SourceError
from inkora.utils.http_client import RequestOptions, Transport
from inkora.utils.logger import logger

CATALOG_CACHE_KEY = "catalog"
_FETCH_OPTIONS = RequestOptions(max_retries=2, check_challenge=False)


@dataclass(slots=True)
class SourceDescriptor:
    name: str
    base_url: str
    lang: str = "all"
    nsfw: bool = False
    id: str = ""
    extension_name: str | None = None
    extension_version: str | None = None
    version_id: int = 1

    def __post_init__(self) -> None:
        self.lang = self.lang or "all"
        self.base_url = (self.base_url or "").rstrip("/")
        if not self.id:
            self.id = generate_source_id(self.name, self.lang, self.version_id)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SourceDescriptor:
        return cls(
            name=str(data.get("name") or ""),
            base_url=str(data.get("base_url") or ""),
            lang=str(data.get("lang") or "all"),
            nsfw=bool(data.get("nsfw")),
            id=str(data.get("id") or ""),
            extension_name=data.get("extension_name"),
            extension_version=data.get("extension_version"),
            version_id=int(data.get("version_id") or 1),
        )


@dataclass(slots=True)
class SourceGroup:
    """Descriptors sharing a display name, one per language variant."""

    name: str
    base_url: str
    id: str
    nsfw: bool
    languages: list[str] = field(default_factory=list)
    sources: list[SourceDescriptor] = field(default_factory=list)

    def variant(self, lang: str) -> SourceDescriptor:
        for descriptor in self.sources:
            if descriptor.lang == lang:
                return descriptor
        return self.sources[0]


def _version_id(raw: Any) -> int:
    try:
        return int(raw)
    except (TypeError, ValueError):
        return 1


def parse_index(document: Any) -> list[SourceDescriptor]:
    """Flatten one repository index into descriptors.

    Malformed extensions and sources without a name are skipped.
    """

    if not isinstance(document, list):
        return []
    descriptors: list[SourceDescriptor] = []
    for extension in document:
        if not isinstance(extension, dict):
            continue
        sources = extension.get("sources")
        if not isinstance(sources, list):
            continue
        nsfw = extension.get("nsfw") == 1
        for entry in sources:
            if not isinstance(entry, dict) or not entry.get("name"):
                continue
            descriptors.append(
                SourceDescriptor(
                    name=str(entry["name"]),
                    base_url=str(entry.get("baseUrl") or ""),
                    lang=str(entry.get("lang") or extension.get("lang") or "all"),
                    nsfw=nsfw,
                    id=str(entry.get("id") or ""),
                    extension_name=extension.get("name"),
                    extension_version=extension.get("version"),
                    version_id=_version_id(entry.get("versionId")),
                )
            )
    return descriptors


def group_sources_by_name(descriptors: Iterable[SourceDescriptor]) -> list[SourceGroup]:
    groups: dict[str, SourceGroup] = {}
    for descriptor in descriptors:
        group = groups.get(descriptor.name)
        if group is None:
            group = SourceGroup(
                name=descriptor.name,
                base_url=descriptor.base_url,
                id=descriptor.id,
                nsfw=descriptor.nsfw,
            )
            groups[descriptor.name] = group
        if descriptor.lang not in group.languages:
            group.languages.append(descriptor.lang)
        group.sources.append(descriptor)
    for group in groups.values():
        group.languages.sort()
    return list(groups.values())


def filter_sources(
    descriptors: Iterable[SourceDescriptor],
    *,
    language: str | None = None,
    hide_nsfw: bool = False,
    query: str | None = None,
) -> list[SourceDescriptor]:
    filtered = list(descriptors)
    if language:
        filtered = [d for d in filtered if d.lang in (language, "all")]
    if hide_nsfw:
        filtered = [d for d in filtered if not d.nsfw]
    if query:
        needle = query.lower()
        filtered = [d for d in filtered if needle in d.name.lower() or needle in d.base_url.lower()]
    return filtered


def descriptor_to_source(descriptor: SourceDescriptor) -> Source:
    adapter_key = adapter_key_for_domain(descriptor.base_url)
    if adapter_key is None:
        return Source(
            id=descriptor.id,
            display_name=descriptor.name,
            language=descriptor.lang,
            domain_candidates=(descriptor.base_url,) if descriptor.base_url else (),
            backend_kind=BackendKind.STUB,
            nsfw=descriptor.nsfw,
            supports_latest=False,
            version_id=descriptor.version_id,
            is_stub=True,
            extension_name=descriptor.extension_name,
        )
    adapter_cls = get_adapter_class(adapter_key)
    domains = (descriptor.base_url,) + tuple(
        domain for domain in adapter_cls.default_domains if domain != descriptor.base_url
    )
    return Source(
        id=descriptor.id,
        display_name=descriptor.name,
        language=descriptor.lang,
        domain_candidates=domains,
        backend_kind=adapter_cls.backend_kind,
        nsfw=descriptor.nsfw,
        version_id=descriptor.version_id,
        extension_name=descriptor.extension_name,
        adapter_key=adapter_key,
    )


class ExtensionCatalog:
    def __init__(
        self,
        transport: Transport,
        cache: NamespaceCache | None = None,
        repositories: Sequence[str] = EXTENSION_REPOSITORY_DEFAULTS,
    ) -> None:
        self._transport = transport
        self._cache = cache
        self.repositories = tuple(repositories)

    async def fetch_sources(self, *, refresh: bool = False) -> list[SourceDescriptor]:
        """Return every source published by the configured repositories.

        A repository that cannot be fetched or decoded is logged and skipped.
        """

        if not refresh and self._cache is not None:
            cached = self._cache.get(CATALOG_CACHE_KEY)
            if isinstance(cached, list):
                logger.debug(f"[CATALOG] {len(cached)} sources from cache")
                return [SourceDescriptor.from_dict(item) for item in cached if isinstance(item, dict)]

        descriptors: list[SourceDescriptor] = []
        for repo_url in self.repositories:
            try:
                response = await self._transport.get(repo_url, options=_FETCH_OPTIONS)
                response.raise_for_status()
                found = parse_index(response.json())
            except SourceError as exc:
                logger.warning(f"[CATALOG] Failed to fetch {repo_url}: {exc}")
                continue
            logger.info(f"[CATALOG] {len(found)} sources from {repo_url}")
            descriptors.extend(found)

        logger.info(f"[CATALOG] Total sources loaded: {len(descriptors)}")
        if descriptors and self._cache is not None:
            self._cache.set(CATALOG_CACHE_KEY, [descriptor.to_dict() for descriptor in descriptors])
        return descriptors

    def register_catalog_sources(
        self,
        registry: SourceRegistry,
        descriptors: Iterable[SourceDescriptor],
    ) -> list[Source]:
        """Register descriptors not yet known to ``registry``; returns the new sources."""

        registered: list[Source] = []
        for descriptor in descriptors:
            if descriptor.id in registry:
                continue
            registered.append(registry.register(descriptor_to_source(descriptor)))
        return registered


__all__ = [
    "CATALOG_CACHE_KEY",
    "ExtensionCatalog",
    "SourceDescriptor",
    "SourceGroup",
    "descriptor_to_source",
    "filter_sources",
    "group_sources_by_name",
    "parse_index",
]
