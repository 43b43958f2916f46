"""Source registry and capability dispatch."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from inkora.adapters.base_source_adapter import BaseSourceAdapter, Capability
from inkora.adapters.factory import get_adapter
from inkora.analyze.extractor import Extractor
from inkora.analyze.records import ChapterRecord, DetailRecord
from inkora.core.models import BackendKind, Source, stub_source
from inkora.storage.cache_manager import CacheManager
from inkora.utils.errors import (
    BlockedError,
    SourceError,
    SourceNotFoundError,
    UnsupportedCapabilityError,
)
from inkora.utils.http_client import Transport
from inkora.utils.logger import logger

Listener = Callable[[list[Source]], None]


@dataclass(slots=True)
class _Registration:
    source: Source
    adapter: BaseSourceAdapter


def _is_empty(result: Any) -> bool:
    if result is None:
        return True
    try:
        return len(result) == 0
    except TypeError:
        return False


class SourceRegistry:
    """Map source ids to their backend and route capability calls.

    The adapter for a source is fixed when the source is registered. Stub
    sources (known by id only, no working backend) live in a separate map
    so they never show up among the online sources.
    """

    def __init__(
        self,
        transport: Transport,
        *,
        extractor: Extractor | None = None,
        cache: CacheManager | None = None,
    ) -> None:
        self._transport = transport
        self._extractor = extractor or Extractor()
        self._cache = cache
        self._sources: dict[str, _Registration] = {}
        self._stubs: dict[str, _Registration] = {}
        self._listeners: list[Listener] = []

    # ------------------------------------------------------------------
    # registration

    def register(self, source: Source, adapter: BaseSourceAdapter | None = None) -> Source:
        if source.id in self._sources or source.id in self._stubs:
            raise ValueError(f"Duplicate source registration: {source.id}")
        adapter = adapter or get_adapter(source, self._transport, self._extractor)
        registration = _Registration(source, adapter)
        if source.is_stub or source.backend_kind is BackendKind.STUB:
            self._stubs[source.id] = registration
        else:
            self._sources[source.id] = registration
        logger.info(
            f"[REGISTRY] Registered {source.display_name} ({source.language}) "
            f"as {source.id} via {adapter.get_adapter_key()}"
        )
        self._notify()
        return source

    def unregister(self, source_id: str) -> bool:
        removed = self._sources.pop(source_id, None) or self._stubs.pop(source_id, None)
        if removed is None:
            return False
        logger.info(f"[REGISTRY] Unregistered {source_id}")
        self._notify()
        return True

    def clear(self) -> None:
        self._sources.clear()
        self._stubs.clear()
        self._notify()

    # ------------------------------------------------------------------
    # lookups

    def __contains__(self, source_id: str) -> bool:
        return source_id in self._sources or source_id in self._stubs

    def __len__(self) -> int:
        return len(self._sources)

    def get(self, source_id: str) -> Source | None:
        registration = self._sources.get(source_id)
        return registration.source if registration else None

    def require(self, source_id: str) -> Source:
        return self._registration(source_id).source

    def get_or_stub(self, source_id: str) -> Source:
        """Registered source for ``source_id``, else a disabled placeholder.

        The placeholder is not stored, so the real source can still be
        registered under the same id later.
        """

        registration = self._sources.get(source_id) or self._stubs.get(source_id)
        if registration is not None:
            return registration.source
        return stub_source(source_id)

    def adapter_for(self, source_id: str) -> BaseSourceAdapter:
        return self._registration(source_id).adapter

    def online_sources(self) -> list[Source]:
        return [registration.source for registration in self._sources.values()]

    def stub_sources(self) -> list[Source]:
        return [registration.source for registration in self._stubs.values()]

    def list_by_language(self, language: str) -> list[Source]:
        return [source for source in self.online_sources() if source.language in (language, "all")]

    def available_languages(self) -> list[str]:
        return sorted({source.language for source in self.online_sources()})

    def _registration(self, source_id: str) -> _Registration:
        registration = self._sources.get(source_id) or self._stubs.get(source_id)
        if registration is None:
            raise SourceNotFoundError(source_id)
        return registration

    # ------------------------------------------------------------------
    # listeners

    def add_listener(self, callback: Listener) -> Callable[[], None]:
        self._listeners.append(callback)

        def _unsubscribe() -> None:
            if callback in self._listeners:
                self._listeners.remove(callback)

        return _unsubscribe

    def _notify(self) -> None:
        sources = self.online_sources()
        for callback in list(self._listeners):
            try:
                callback(sources)
            except Exception as exc:  # listener bugs must not break registration
                logger.error(f"[REGISTRY] Listener {callback!r} failed: {exc}")

    # ------------------------------------------------------------------
    # dispatch

    async def dispatch(self, source_id: str, capability: Capability | str, **kwargs: Any) -> Any:
        """Run ``capability`` on the backend behind ``source_id``.

        Unsupported capabilities fail before any request is made. Details
        and chapter lists are served from and written to the cache.
        """

        registration = self._registration(source_id)
        source, adapter = registration.source, registration.adapter
        try:
            capability = Capability(capability)
        except ValueError:
            raise UnsupportedCapabilityError(source_id, str(capability)) from None
        if not adapter.supports(capability) or (
            capability is Capability.LATEST and not source.supports_latest
        ):
            raise UnsupportedCapabilityError(source_id, capability.value)

        cached = self._cached(source_id, capability, kwargs)
        if cached is not None:
            return cached

        if adapter.backend_kind is BackendKind.MARKUP_SCRAPE:
            result = await self._dispatch_with_failover(source, adapter, capability, kwargs)
        else:
            base_url = source.base_url or (adapter.default_domains[0] if adapter.default_domains else "")
            result = await getattr(adapter, capability.value)(base_url, **kwargs)

        self._store(source_id, capability, kwargs, result)
        return result

    async def _dispatch_with_failover(
        self,
        source: Source,
        adapter: BaseSourceAdapter,
        capability: Capability,
        kwargs: dict[str, Any],
    ) -> Any:
        domains = source.domains or adapter.default_domains
        if not domains:
            raise SourceError(f"Source {source.id!r} has no domain candidates")

        method = getattr(adapter, capability.value)
        last_error: SourceError | None = None
        empty_result: Any = None
        answered_empty = False
        for domain in domains:
            try:
                result = await method(domain, **kwargs)
            except SourceError as exc:
                kind = "blocked" if isinstance(exc, BlockedError) else "failed"
                logger.warning(f"[REGISTRY] {source.id} {capability.value} {kind} on {domain}: {exc}")
                last_error = exc
                continue
            if _is_empty(result):
                logger.info(f"[REGISTRY] {source.id} {capability.value}: no results on {domain}")
                if not answered_empty:
                    empty_result = result
                    answered_empty = True
                continue
            if source.promote_domain(domain):
                logger.info(f"[REGISTRY] Promoted {domain} for {source.id}")
            return result

        if answered_empty:
            return empty_result
        raise last_error or SourceError(f"Source {source.id!r}: no mirror answered")

    # ------------------------------------------------------------------
    # cache

    @staticmethod
    def _cache_key(source_id: str, kwargs: dict[str, Any]) -> str | None:
        item_id = kwargs.get("item_id")
        return f"{source_id}:{item_id}" if item_id else None

    def _cached(self, source_id: str, capability: Capability, kwargs: dict[str, Any]) -> Any:
        if self._cache is None:
            return None
        key = self._cache_key(source_id, kwargs)
        if key is None:
            return None
        if capability is Capability.DETAILS:
            value = self._cache.manga.get(key)
            return DetailRecord.from_dict(value) if isinstance(value, dict) else None
        if capability is Capability.CHAPTERS:
            value = self._cache.chapters.get(key)
            if isinstance(value, list):
                return [ChapterRecord.from_dict(item) for item in value if isinstance(item, dict)]
        return None

    def _store(self, source_id: str, capability: Capability, kwargs: dict[str, Any], result: Any) -> None:
        if self._cache is None or _is_empty(result):
            return
        key = self._cache_key(source_id, kwargs)
        if key is None:
            return
        if capability is Capability.DETAILS and isinstance(result, DetailRecord):
            self._cache.manga.set(key, result.to_dict())
            if result.cover_url:
                self._cache.covers.set(key, result.cover_url)
        elif capability is Capability.CHAPTERS:
            self._cache.chapters.set(key, [record.to_dict() for record in result])


__all__ = ["Listener", "SourceRegistry"]
