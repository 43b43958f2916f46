"""The owned acquisition context.

One :class:`AcquisitionContext` holds the transport, rate windows, caches
and source registry for a process (or a test). Nothing in the package keeps
module-level mutable state; build a second context to get a second,
independent set.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

import httpx

from inkora.adapters.base_source_adapter import Capability
from inkora.analyze.extractor import Extractor
from inkora.analyze.records import ChapterRecord, DetailRecord, PageRecord
from inkora.config.config import MANGADEX_API_BASE, XBATO_API_BASE, CoreSettings
from inkora.core.extension_catalog import ExtensionCatalog
from inkora.core.image_loader import ImageLoader
from inkora.core.models import BackendKind, Source
from inkora.core.source_registry import SourceRegistry
from inkora.storage.cache_manager import CacheManager
from inkora.storage.cache_storage import CacheStorage, InMemoryCacheStorage, SqliteCacheStorage
from inkora.utils.clock import Clock, system_clock
from inkora.utils.domain_rate_limiter import HostRateLimiter
from inkora.utils.http_client import Transport
from inkora.utils.logger import logger
from inkora.utils.retry_policy import RetryPolicy


def builtin_sources(settings: CoreSettings) -> list[Source]:
    return [
        Source(
            id="bato_to",
            display_name="Bato",
            language="en",
            domain_candidates=settings.bato_domains,
            backend_kind=BackendKind.MARKUP_SCRAPE,
            adapter_key="bato",
        ),
        Source(
            id="xbato_com",
            display_name="Xbato",
            language="en",
            domain_candidates=(XBATO_API_BASE,),
            backend_kind=BackendKind.STRUCTURED_API,
            supports_latest=False,
            adapter_key="xbato",
        ),
        Source(
            id="mangadex_org",
            display_name="MangaDex",
            language="all",
            domain_candidates=(MANGADEX_API_BASE,),
            backend_kind=BackendKind.STRUCTURED_API,
            adapter_key="mangadex",
        ),
    ]


class AcquisitionContext:
    """Entry point for callers: search, details, chapters, pages, popular, latest.

    ``clock``, ``http_transport`` and ``storage`` exist so tests can run the
    whole stack against fake hosts and synthetic time.
    """

    def __init__(
        self,
        settings: CoreSettings | None = None,
        *,
        clock: Clock = system_clock,
        http_transport: httpx.AsyncBaseTransport | None = None,
        storage: CacheStorage | None = None,
        extractor: Extractor | None = None,
        register_builtins: bool = True,
    ) -> None:
        self.settings = settings or CoreSettings.from_env()
        self.clock = clock
        self.rate_limiter = HostRateLimiter(
            permits=self.settings.rate_limit_permits,
            period=self.settings.rate_limit_period,
            clock=clock,
        )
        self.transport = Transport(
            timeout_ms=self.settings.timeout_ms,
            retry_policy=RetryPolicy(max_attempts=self.settings.retry_attempts),
            rate_limiter=self.rate_limiter,
            clock=clock,
            http_transport=http_transport,
        )
        if storage is None:
            storage = (
                SqliteCacheStorage(self.settings.cache_db_path)
                if self.settings.persist_cache
                else InMemoryCacheStorage()
            )
        self.cache = CacheManager(
            storage,
            image_root=self.settings.cache_dir if self.settings.persist_cache else None,
            namespaces=self.settings.cache_namespaces,
            default_capacity=self.settings.memory_cache_size,
        )
        self.extractor = extractor or Extractor()
        self.registry = SourceRegistry(self.transport, extractor=self.extractor, cache=self.cache)
        self.catalog = ExtensionCatalog(
            self.transport, self.cache.extensions, self.settings.extension_repositories
        )
        self.images = ImageLoader(
            self.transport, self.cache.images, concurrency=self.settings.preload_concurrency
        )
        self._register_builtins = register_builtins
        self._started = False
        self._closed = False

    async def __aenter__(self) -> AcquisitionContext:
        self.start()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    def start(self) -> None:
        if self._started:
            return
        self._started = True
        if self._register_builtins:
            for source in builtin_sources(self.settings):
                if source.id not in self.registry:
                    self.registry.register(source)
        logger.info(f"[CORE] Context ready with {len(self.registry)} sources")

    async def aclose(self) -> None:
        if self._closed:
            return
        self._closed = True
        self.images.clear_all()
        await self.transport.aclose()
        self.cache.close()

    async def _dispatch(self, source_id: str, capability: Capability, **kwargs: Any) -> Any:
        self.start()
        return await self.registry.dispatch(source_id, capability, **kwargs)

    async def search(
        self, source_id: str, query: str, filters: Mapping[str, Any] | None = None
    ) -> list[Any]:
        return await self._dispatch(source_id, Capability.SEARCH, query=query, filters=filters)

    async def details(self, source_id: str, item_id: str) -> DetailRecord | None:
        return await self._dispatch(source_id, Capability.DETAILS, item_id=item_id)

    async def chapters(self, source_id: str, item_id: str) -> list[ChapterRecord]:
        return await self._dispatch(source_id, Capability.CHAPTERS, item_id=item_id)

    async def pages(self, source_id: str, chapter_id: str) -> list[PageRecord]:
        return await self._dispatch(source_id, Capability.PAGES, chapter_id=chapter_id)

    async def popular(self, source_id: str) -> list[Any]:
        return await self._dispatch(source_id, Capability.POPULAR)

    async def latest(self, source_id: str) -> list[Any]:
        return await self._dispatch(source_id, Capability.LATEST)


__all__ = ["AcquisitionContext", "builtin_sources"]
