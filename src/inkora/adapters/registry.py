"""Find backend adapter classes by ``adapter_key``."""

from __future__ import annotations

import importlib
import inspect
import pkgutil
from functools import cache

from inkora.adapters.base_source_adapter import BaseSourceAdapter
from inkora.utils.logger import logger

_ADAPTER_PACKAGE = "inkora.adapters"
_ADAPTER_SUFFIX = "_adapter"


@cache
def _discovered() -> dict[str, type[BaseSourceAdapter]]:
    """Import every ``*_adapter`` module once and index its adapter classes."""

    package = importlib.import_module(_ADAPTER_PACKAGE)
    found: dict[str, type[BaseSourceAdapter]] = {}
    for module_info in pkgutil.iter_modules(package.__path__, f"{_ADAPTER_PACKAGE}."):
        if not module_info.name.endswith(_ADAPTER_SUFFIX):
            continue
        try:
            module = importlib.import_module(module_info.name)
        except ImportError as exc:
            logger.warning(f"[ADAPTER] Skipping {module_info.name}: {exc}")
            continue
        for _, obj in inspect.getmembers(module, inspect.isclass):
            if obj is BaseSourceAdapter or obj.__module__ != module.__name__:
                continue
            if not issubclass(obj, BaseSourceAdapter):
                continue
            key = obj.get_adapter_key()
            if key in found:
                raise ValueError(f"Adapter key {key!r} claimed by {found[key].__name__} and {obj.__name__}")
            found[key] = obj
    logger.debug(f"[ADAPTER] Discovered {', '.join(sorted(found))}")
    return found


def get_adapter_class(adapter_key: str) -> type[BaseSourceAdapter]:
    try:
        return _discovered()[adapter_key]
    except KeyError as exc:
        raise ValueError(f"Unknown adapter: {adapter_key}") from exc


def adapter_classes() -> list[type[BaseSourceAdapter]]:
    found = _discovered()
    return [found[key] for key in sorted(found)]


__all__ = ["adapter_classes", "get_adapter_class"]
