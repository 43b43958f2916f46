"""Typed getters over ``INKORA_*`` environment variables, with ``.env`` loading."""
from __future__ import annotations

import os
import sys
import tempfile
from collections.abc import Callable
from pathlib import Path
from typing import TypeVar

from dotenv import find_dotenv, load_dotenv


def _apply_pytest_defaults() -> None:
    """Seed deterministic environment defaults for the test suite."""

    base_dir = Path(tempfile.gettempdir()) / "inkora_pytest_defaults"
    base_dir.mkdir(parents=True, exist_ok=True)

    folder_defaults = {
        "INKORA_CACHE_DIR": base_dir / "cache",
        "INKORA_LOG_DIR": base_dir / "logs",
    }
    for key, path in folder_defaults.items():
        os.environ.setdefault(key, str(path))

    numeric_defaults = {
        "INKORA_TIMEOUT_MS": "5000",
        "INKORA_RETRY_ATTEMPTS": "3",
        "INKORA_RATE_LIMIT_PERMITS": "5",
        "INKORA_RATE_LIMIT_PERIOD": "1.0",
        "INKORA_MEMORY_CACHE_SIZE": "100",
        "INKORA_PRELOAD_CONCURRENCY": "3",
    }
    for key, value in numeric_defaults.items():
        os.environ.setdefault(key, value)

    os.environ.setdefault("ENABLE_FILE_LOGS", "false")


# During pytest runs prefer `.env.example` so a developer's local `.env`
# (custom mirrors, cache dirs) never leaks into the suite.
def _load_dotenv_for_context() -> None:
    is_pytest = (
        "pytest" in sys.modules
        or any(key in os.environ for key in ("PYTEST_CURRENT_TEST", "PYTEST_ADDOPTS", "PYTEST_WORKER"))
    )

    if is_pytest:
        example_env = find_dotenv(".env.example", usecwd=True)
        if example_env:
            load_dotenv(example_env, override=False)
        _apply_pytest_defaults()
        return

    primary_env = find_dotenv(usecwd=True)
    if primary_env:
        load_dotenv(primary_env, override=False)
        return

    example_env = find_dotenv(".env.example", usecwd=True)
    if example_env:
        load_dotenv(example_env, override=False)


_load_dotenv_for_context()


class EnvironmentConfigurationError(RuntimeError):
    """Raised when an ``INKORA_*`` variable cannot be used as configured."""


_T = TypeVar("_T")

_TRUE_VALUES = {"1", "true", "t", "yes", "y", "on"}
_FALSE_VALUES = {"0", "false", "f", "no", "n", "off"}


def _read(name: str, *, required: bool = False) -> str | None:
    """Stripped value of ``name``; blank counts as unset."""

    value = (os.getenv(name) or "").strip()
    if value:
        return value
    if required:
        raise EnvironmentConfigurationError(f"Missing required environment variable: {name}")
    return None


def _cast(name: str, caster: Callable[[str], _T], *, required: bool = False) -> _T | None:
    raw = _read(name, required=required)
    if raw is None:
        return None
    try:
        return caster(raw)
    except (TypeError, ValueError) as exc:
        raise EnvironmentConfigurationError(
            f"Environment variable {name} has invalid value: {raw!r}"
        ) from exc


def _to_bool(raw: str) -> bool:
    normalized = raw.lower()
    if normalized in _TRUE_VALUES:
        return True
    if normalized in _FALSE_VALUES:
        return False
    raise ValueError(f"not a boolean: {raw!r}")


def get_str(name: str, *, required: bool = False) -> str | None:
    return _read(name, required=required)


def get_int(name: str, *, required: bool = False) -> int | None:
    return _cast(name, int, required=required)


def get_float(name: str, *, required: bool = False) -> float | None:
    return _cast(name, float, required=required)


def get_bool(name: str, *, required: bool = False) -> bool | None:
    """``true/false``, ``1/0``, ``yes/no`` and ``on/off`` in any case."""

    return _cast(name, _to_bool, required=required)


def get_path(name: str, *, required: bool = False) -> Path | None:
    return _cast(name, lambda raw: Path(raw).expanduser(), required=required)


def get_list(name: str, *, separator: str = ",") -> list[str] | None:
    """Comma separated values with blanks dropped; ``None`` when unset."""

    raw = _read(name)
    if raw is None:
        return None
    return [item.strip() for item in raw.split(separator) if item.strip()]


__all__ = [
    "EnvironmentConfigurationError",
    "get_bool",
    "get_float",
    "get_int",
    "get_list",
    "get_path",
    "get_str",
]
