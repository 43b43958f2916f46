from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from urllib.parse import urlparse

from inkora.config.env_loader import (
    EnvironmentConfigurationError,
    get_bool,
    get_float,
    get_int,
    get_list,
    get_path,
)

# Chrome on Android; the Bato mirrors serve lighter, less guarded pages to it.
DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Linux; Android 10; K) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/121.0.0.0 Mobile Safari/537.36"
)

BATO_DOMAIN_DEFAULTS: tuple[str, ...] = (
    "https://bato.to",
    "https://battwo.com",
    "https://mto.to",
)
# Older Bato mirrors that still redirect to the main catalog.
BATO_EXTRA_HOSTS: tuple[str, ...] = (
    "https://batocc.com",
    "https://ruru.to",
    "https://xdxd.to",
)
MANGADEX_API_BASE = "https://api.mangadex.org"
MANGADEX_SITE_BASE = "https://mangadex.org"
MANGADEX_COVER_BASE = "https://uploads.mangadex.org/covers"
XBATO_API_BASE = "https://xbato-api.hanifu.id"
XBATO_SITE_BASE = "https://xbato.com"

EXTENSION_REPOSITORY_DEFAULTS: tuple[str, ...] = (
    "https://raw.githubusercontent.com/keiyoushi/extensions/repo/index.min.json",
    "https://raw.githubusercontent.com/suwayomi/tachiyomi-extension/repo/index.min.json",
)

# Mirrors the OkHttp call timeout used by the reference reader apps.
DEFAULT_TIMEOUT_MS = 120_000
CONNECT_TIMEOUT_SECONDS = 30.0
DEFAULT_RETRY_ATTEMPTS = 3
DEFAULT_RATE_LIMIT_PERMITS = 5
DEFAULT_RATE_LIMIT_PERIOD = 1.0

DEFAULT_MEMORY_CACHE_SIZE = 100
HOUR = 60 * 60
DAY = 24 * HOUR

# namespace -> (ttl seconds, memory capacity)
CACHE_NAMESPACES: dict[str, tuple[float, int]] = {
    "covers": (7 * DAY, 100),
    "chapters": (1 * DAY, 30),
    "manga": (6 * HOUR, 50),
    "extensions": (1 * DAY, 100),
}

LISTING_RESULT_LIMIT = 20
MANGADEX_PAGE_SIZE = 100
MANGADEX_CHAPTER_CAP = 500
XBATO_MIN_QUERY_LENGTH = 3
DEFAULT_PRELOAD_CONCURRENCY = 3


def get_default_headers() -> dict[str, str]:
    """Return the baseline header set sent with every outbound request."""

    return {
        "User-Agent": DEFAULT_USER_AGENT,
        "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,image/avif,image/webp,image/apng,*/*;q=0.8",
        "Accept-Language": "en-US,en;q=0.9",
        "Accept-Encoding": "gzip, deflate",
        "DNT": "1",
        "Connection": "keep-alive",
        "Upgrade-Insecure-Requests": "1",
        "Sec-Fetch-Dest": "document",
        "Sec-Fetch-Mode": "navigate",
        "Sec-Fetch-Site": "none",
        "Sec-Fetch-User": "?1",
        "Cache-Control": "no-cache",
        "Pragma": "no-cache",
    }


def _sanitize_base_url(raw_value: str, env_name: str) -> str:
    """Normalize BASE_URL style inputs to avoid malformed URLs."""

    candidate = raw_value.strip().rstrip("/ \t\n\r")
    if not candidate:
        raise EnvironmentConfigurationError(f"Environment variable {env_name} must not be empty")

    parsed = urlparse(candidate)
    if not parsed.scheme:
        candidate = f"https://{candidate}"
    return candidate


def _load_domains(env_name: str, defaults: tuple[str, ...]) -> tuple[str, ...]:
    configured = get_list(env_name) or []
    if not configured:
        return defaults
    return tuple(_sanitize_base_url(value, env_name) for value in configured)


def _default_cache_dir() -> Path:
    return get_path("INKORA_CACHE_DIR") or Path.home() / ".cache" / "inkora"


def _normalize_positive_int(value: int | None, *, default: int, minimum: int = 1) -> int:
    candidate = value if value is not None else default
    return max(int(candidate), minimum)


def _normalize_positive_float(value: float | None, *, default: float, minimum: float = 0.0) -> float:
    candidate = value if value is not None else default
    return max(float(candidate), minimum)


TIMEOUT_MS = _normalize_positive_int(get_int("INKORA_TIMEOUT_MS"), default=DEFAULT_TIMEOUT_MS)
RETRY_ATTEMPTS = _normalize_positive_int(get_int("INKORA_RETRY_ATTEMPTS"), default=DEFAULT_RETRY_ATTEMPTS)
RATE_LIMIT_PERMITS = _normalize_positive_int(
    get_int("INKORA_RATE_LIMIT_PERMITS"), default=DEFAULT_RATE_LIMIT_PERMITS
)
RATE_LIMIT_PERIOD = _normalize_positive_float(
    get_float("INKORA_RATE_LIMIT_PERIOD"), default=DEFAULT_RATE_LIMIT_PERIOD, minimum=0.001
)
MEMORY_CACHE_SIZE = _normalize_positive_int(
    get_int("INKORA_MEMORY_CACHE_SIZE"), default=DEFAULT_MEMORY_CACHE_SIZE
)
PRELOAD_CONCURRENCY = _normalize_positive_int(
    get_int("INKORA_PRELOAD_CONCURRENCY"), default=DEFAULT_PRELOAD_CONCURRENCY
)
BATO_DOMAINS = _load_domains("INKORA_BATO_DOMAINS", BATO_DOMAIN_DEFAULTS)
EXTENSION_REPOSITORIES = tuple(get_list("INKORA_EXTENSION_REPOSITORIES") or EXTENSION_REPOSITORY_DEFAULTS)
CACHE_DIR = _default_cache_dir()
PERSIST_CACHE = get_bool("INKORA_PERSIST_CACHE")
if PERSIST_CACHE is None:
    PERSIST_CACHE = True


@dataclass(slots=True)
class CoreSettings:
    """Runtime configuration handed to :class:`AcquisitionContext`.

    Module level constants above are the process defaults; tests and
    embedders build their own instance instead of patching globals.
    """

    cache_dir: Path = field(default_factory=lambda: CACHE_DIR)
    persist_cache: bool = True
    timeout_ms: int = DEFAULT_TIMEOUT_MS
    retry_attempts: int = DEFAULT_RETRY_ATTEMPTS
    rate_limit_permits: int = DEFAULT_RATE_LIMIT_PERMITS
    rate_limit_period: float = DEFAULT_RATE_LIMIT_PERIOD
    memory_cache_size: int = DEFAULT_MEMORY_CACHE_SIZE
    preload_concurrency: int = DEFAULT_PRELOAD_CONCURRENCY
    bato_domains: tuple[str, ...] = BATO_DOMAIN_DEFAULTS
    extension_repositories: tuple[str, ...] = EXTENSION_REPOSITORY_DEFAULTS
    cache_namespaces: dict[str, tuple[float, int]] = field(
        default_factory=lambda: dict(CACHE_NAMESPACES)
    )

    @property
    def cache_db_path(self) -> Path:
        return self.cache_dir / "cache.sqlite3"

    @classmethod
    def from_env(cls) -> CoreSettings:
        return cls(
            cache_dir=CACHE_DIR,
            persist_cache=bool(PERSIST_CACHE),
            timeout_ms=TIMEOUT_MS,
            retry_attempts=RETRY_ATTEMPTS,
            rate_limit_permits=RATE_LIMIT_PERMITS,
            rate_limit_period=RATE_LIMIT_PERIOD,
            memory_cache_size=MEMORY_CACHE_SIZE,
            preload_concurrency=PRELOAD_CONCURRENCY,
            bato_domains=BATO_DOMAINS,
            extension_repositories=EXTENSION_REPOSITORIES,
        )


__all__ = [
    "BATO_DOMAINS",
    "CACHE_NAMESPACES",
    "CoreSettings",
    "DEFAULT_USER_AGENT",
    "EXTENSION_REPOSITORIES",
    "LISTING_RESULT_LIMIT",
    "MANGADEX_API_BASE",
    "MANGADEX_COVER_BASE",
    "RETRY_ATTEMPTS",
    "TIMEOUT_MS",
    "XBATO_API_BASE",
    "get_default_headers",
]
