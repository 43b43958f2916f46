"""Logging helpers shared by every acquisition layer."""

from __future__ import annotations

import logging
from functools import cache
from logging.handlers import RotatingFileHandler
from pathlib import Path

from inkora.config.env_loader import get_bool, get_path, get_str

LOG_FOLDER = get_path("INKORA_LOG_DIR") or Path("logs")
LOG_MAX_BYTES = 5 * 1024 * 1024
LOG_BACKUP_COUNT = 3
ENABLE_FILE_LOGS = bool(get_bool("ENABLE_FILE_LOGS"))
CONSOLE_LEVEL = logging.getLevelName((get_str("INKORA_LOG_LEVEL") or "INFO").upper())
if not isinstance(CONSOLE_LEVEL, int):
    CONSOLE_LEVEL = logging.INFO

_LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

# category -> rotating file under LOG_FOLDER
_LOG_FILES: dict[str, str] = {
    "core": "inkora.log",
    "transport": "transport.log",
    "extractor": "extractor.log",
    "cache": "cache.log",
}


def _file_handler(category: str) -> RotatingFileHandler:
    LOG_FOLDER.mkdir(parents=True, exist_ok=True)
    handler = RotatingFileHandler(
        LOG_FOLDER / _LOG_FILES.get(category, _LOG_FILES["core"]),
        maxBytes=LOG_MAX_BYTES,
        backupCount=LOG_BACKUP_COUNT,
        encoding="utf-8",
    )
    handler.setLevel(logging.DEBUG)
    handler.setFormatter(logging.Formatter(_LOG_FORMAT))
    return handler


@cache
def get_logger(category: str = "core") -> logging.Logger:
    """Return the ``Inkora.<category>`` logger, configured once.

    Each layer (transport, extractor, cache) logs under its own name so a
    noisy mirror can be traced without wading through cache chatter. Console
    output honours ``INKORA_LOG_LEVEL``; ``ENABLE_FILE_LOGS=1`` adds
    rotating DEBUG files under ``INKORA_LOG_DIR``.
    """

    category = category or "core"
    log = logging.getLogger(f"Inkora.{category}")
    log.setLevel(logging.DEBUG)
    if log.handlers:
        return log

    console = logging.StreamHandler()
    console.setLevel(CONSOLE_LEVEL)
    console.setFormatter(logging.Formatter(_LOG_FORMAT))
    log.addHandler(console)
    if ENABLE_FILE_LOGS:
        log.addHandler(_file_handler(category))
    return log


logger = get_logger("core")
transport_logger = get_logger("transport")
extractor_logger = get_logger("extractor")
cache_logger = get_logger("cache")

__all__ = [
    "cache_logger",
    "extractor_logger",
    "get_logger",
    "logger",
    "transport_logger",
]
