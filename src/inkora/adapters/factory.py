"""Choose and build the adapter behind a source at registration time."""

from __future__ import annotations

from inkora.adapters.base_source_adapter import BaseSourceAdapter
from inkora.adapters.registry import adapter_classes, get_adapter_class
from inkora.analyze.extractor import Extractor
from inkora.core.models import BackendKind, Source
from inkora.utils.http_client import Transport
from inkora.utils.url_utils import same_host

_DEFAULT_KEYS: dict[BackendKind, str] = {
    BackendKind.MARKUP_SCRAPE: "bato",
    BackendKind.STUB: "stub",
}


def adapter_key_for_domain(url: str | None) -> str | None:
    """Return the key of the built-in adapter whose known domains include ``url``."""

    if not url:
        return None
    for adapter_cls in adapter_classes():
        known = adapter_cls.default_domains + adapter_cls.site_domains
        if any(same_host(url, domain) for domain in known):
            return adapter_cls.get_adapter_key()
    return None


def resolve_adapter_key(source: Source) -> str:
    if source.adapter_key:
        return source.adapter_key
    default = _DEFAULT_KEYS.get(source.backend_kind)
    if default is None:
        raise ValueError(
            f"Source {source.id!r} uses a structured backend and must name its adapter_key"
        )
    return default


def get_adapter(source: Source, transport: Transport, extractor: Extractor | None = None) -> BaseSourceAdapter:
    """Instantiate the adapter for ``source``."""

    adapter_cls = get_adapter_class(resolve_adapter_key(source))
    return adapter_cls(transport, extractor)


__all__ = [
    "adapter_key_for_domain",
    "get_adapter",
    "resolve_adapter_key",
]
