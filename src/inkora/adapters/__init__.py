"""Backend adapters and the helpers that pick one for a source."""

from inkora.adapters.base_source_adapter import BaseSourceAdapter, Capability
from inkora.adapters.factory import adapter_key_for_domain, get_adapter
from inkora.adapters.registry import adapter_classes, get_adapter_class

__all__ = [
    "BaseSourceAdapter",
    "Capability",
    "adapter_classes",
    "adapter_key_for_domain",
    "get_adapter",
    "get_adapter_class",
]
