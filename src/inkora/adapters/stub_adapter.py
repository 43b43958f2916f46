"""Placeholder backend for sources known only by id."""

from __future__ import annotations

from typing import ClassVar

from inkora.adapters.base_source_adapter import BaseSourceAdapter, Capability
from inkora.core.models import BackendKind


class StubSourceAdapter(BaseSourceAdapter):
    """Implements no capability; every dispatch fails before touching the network."""

    adapter_key: ClassVar[str] = "stub"
    backend_kind: ClassVar[BackendKind] = BackendKind.STUB
    capabilities: ClassVar[frozenset[Capability]] = frozenset()


__all__ = ["StubSourceAdapter"]
