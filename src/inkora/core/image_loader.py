"""Page and cover image loading with de-duplication and batch preloading."""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path, PurePosixPath
from urllib.parse import urlparse

from inkora.config.config import DEFAULT_PRELOAD_CONCURRENCY, MANGADEX_COVER_BASE
from inkora.storage.cache_manager import ImageFileCache
from inkora.utils.errors import SourceError
from inkora.utils.http_client import RequestOptions, Transport
from inkora.utils.logger import logger

PAGE_IMAGE_TYPE = "page"
_IMAGE_REQUEST = RequestOptions(max_retries=3)


@dataclass(frozen=True, slots=True)
class QualityPreset:
    max_width: int | None
    max_height: int | None
    quality: float


class ImageQuality(Enum):
    LOW = QualityPreset(800, 1200, 0.7)
    MEDIUM = QualityPreset(1200, 1800, 0.8)
    HIGH = QualityPreset(1600, 2400, 0.9)
    ORIGINAL = QualityPreset(None, None, 1.0)

    @classmethod
    def resolve(cls, value: ImageQuality | str | None, default: ImageQuality | None = None) -> ImageQuality:
        fallback = default or cls.HIGH
        if value is None:
            return fallback
        if isinstance(value, ImageQuality):
            return value
        return cls.__members__.get(str(value).upper(), fallback)


def cover_image_url(
    base_url: str | None,
    manga_id: str | None,
    file_name: str | None,
    quality: ImageQuality | str | None = None,
) -> str | None:
    if not base_url or not manga_id or not file_name:
        return None
    preset = ImageQuality.resolve(quality)
    if "mangadex" in base_url:
        size = "" if preset is ImageQuality.ORIGINAL else ".512.jpg"
        return f"{MANGADEX_COVER_BASE}/{manga_id}/{file_name}{size}"
    return f"{base_url.rstrip('/')}/covers/{manga_id}/{file_name}"


def page_image_url(
    base_url: str | None,
    chapter_hash: str | None,
    file_name: str | None,
    quality: ImageQuality | str | None = None,
) -> str | None:
    if not base_url or not chapter_hash or not file_name:
        return None
    segment = "data-saver" if ImageQuality.resolve(quality) is ImageQuality.LOW else "data"
    return f"{base_url.rstrip('/')}/{segment}/{chapter_hash}/{file_name}"


def _extension_of(url: str) -> str:
    suffix = PurePosixPath(urlparse(url).path).suffix.lstrip(".").lower()
    return suffix if suffix and len(suffix) <= 5 else "jpg"


@dataclass(slots=True)
class ImageResult:
    url: str
    cache_key: str
    data: bytes
    cached: bool = False
    path: Path | None = None


@dataclass(slots=True)
class PreloadResult:
    url: str
    success: bool
    result: ImageResult | None = None
    error: Exception | None = None


@dataclass(slots=True)
class PreloadProgress:
    url: str
    completed: int
    total: int
    item: PreloadResult


ProgressCallback = Callable[[PreloadProgress], None]


class ImageLoader:
    """Fetch images through the transport, backed by the ``pages`` file cache.

    Concurrent requests for the same cache key share one download.
    """

    def __init__(
        self,
        transport: Transport,
        file_cache: ImageFileCache | None = None,
        *,
        concurrency: int = DEFAULT_PRELOAD_CONCURRENCY,
        request_options: RequestOptions = _IMAGE_REQUEST,
    ) -> None:
        self._transport = transport
        self._file_cache = file_cache
        self._concurrency = max(int(concurrency), 1)
        self._request_options = request_options
        self._in_flight: dict[str, asyncio.Task[ImageResult]] = {}

    @property
    def in_flight(self) -> int:
        return len(self._in_flight)

    async def load_image(
        self,
        url: str,
        cache_key: str | None = None,
        use_cache: bool = True,
        headers: Mapping[str, str] | None = None,
    ) -> ImageResult:
        key = cache_key or url
        task = self._in_flight.get(key)
        if task is None:
            task = asyncio.ensure_future(self._load(url, key, use_cache, headers))
            self._in_flight[key] = task
            task.add_done_callback(lambda done: self._forget(key, done))
        else:
            logger.debug(f"[IMAGE] Joining in-flight load for {key}")
        return await asyncio.shield(task)

    def _forget(self, key: str, task: asyncio.Task[ImageResult]) -> None:
        if self._in_flight.get(key) is task:
            del self._in_flight[key]
        if not task.cancelled():
            # mark the exception as retrieved; callers already received it
            task.exception()

    async def _load(
        self, url: str, key: str, use_cache: bool, headers: Mapping[str, str] | None
    ) -> ImageResult:
        if use_cache and self._file_cache is not None:
            path = self._file_cache.lookup(key, PAGE_IMAGE_TYPE)
            if path is not None:
                data = await self._file_cache.read(key, PAGE_IMAGE_TYPE)
                if data is not None:
                    logger.debug(f"[IMAGE] Using cached image: {key}")
                    return ImageResult(url=url, cache_key=key, data=data, cached=True, path=path)

        logger.debug(f"[IMAGE] Fetching image: {url}")
        response = await self._transport.get(url, headers=headers, options=self._request_options)
        result = ImageResult(url=url, cache_key=key, data=response.content)
        if use_cache and self._file_cache is not None:
            result.path = await self._file_cache.write(
                key, response.content, PAGE_IMAGE_TYPE, _extension_of(url)
            )
        return result

    def cancel_load(self, cache_key: str) -> bool:
        task = self._in_flight.pop(cache_key, None)
        if task is None:
            return False
        task.cancel()
        return True

    def clear_all(self) -> None:
        for key in list(self._in_flight):
            self.cancel_load(key)

    async def preload_images(
        self,
        urls: Sequence[str],
        *,
        concurrency: int | None = None,
        on_progress: ProgressCallback | None = None,
        use_cache: bool = True,
    ) -> list[PreloadResult]:
        """Load ``urls`` with a fixed pool of workers sharing one queue.

        A failed image is recorded in its :class:`PreloadResult` and the
        other workers carry on. Results come back in input order.
        """

        total = len(urls)
        if total == 0:
            return []
        queue: asyncio.Queue[tuple[int, str]] = asyncio.Queue()
        for index, url in enumerate(urls):
            queue.put_nowait((index, url))

        results: list[PreloadResult | None] = [None] * total
        completed = 0

        async def worker() -> None:
            nonlocal completed
            while True:
                try:
                    index, url = queue.get_nowait()
                except asyncio.QueueEmpty:
                    return
                try:
                    loaded = await self.load_image(url, use_cache=use_cache)
                    item = PreloadResult(url=url, success=True, result=loaded)
                except asyncio.CancelledError:
                    # cancel_load() on this one image; a cancelled worker unwinds
                    current = asyncio.current_task()
                    if current is not None and current.cancelling():
                        raise
                    logger.info(f"[IMAGE] Preload of {url} was cancelled")
                    item = PreloadResult(
                        url=url, success=False, error=SourceError(f"Image load cancelled: {url}")
                    )
                except Exception as exc:
                    logger.warning(f"[IMAGE] Preload failed for {url}: {exc}")
                    item = PreloadResult(url=url, success=False, error=exc)
                finally:
                    queue.task_done()
                results[index] = item
                completed += 1
                if on_progress is not None:
                    on_progress(PreloadProgress(url=url, completed=completed, total=total, item=item))

        workers = min(concurrency or self._concurrency, total)
        await asyncio.gather(*(worker() for _ in range(workers)))
        return [item for item in results if item is not None]


@dataclass(slots=True)
class BatchSummary:
    loaded: dict[str, ImageResult]
    errors: dict[str, Exception]
    total: int
    cancelled: bool = False


@dataclass(slots=True)
class BatchImageLoader:
    """Preload a chapter's pages and track per-image outcome."""

    loader: ImageLoader
    urls: list[str]
    concurrency: int = DEFAULT_PRELOAD_CONCURRENCY
    on_progress: ProgressCallback | None = None
    on_image_loaded: Callable[[str, ImageResult], None] | None = None
    on_error: Callable[[str, Exception], None] | None = None
    loaded: dict[str, ImageResult] = field(default_factory=dict)
    errors: dict[str, Exception] = field(default_factory=dict)
    loading: bool = False
    cancelled: bool = False
    _task: asyncio.Task[list[PreloadResult]] | None = field(default=None, repr=False)

    def _record(self, progress: PreloadProgress) -> None:
        item = progress.item
        if item.success and item.result is not None:
            self.loaded[item.url] = item.result
            if self.on_image_loaded is not None:
                self.on_image_loaded(item.url, item.result)
        elif item.error is not None:
            self.errors[item.url] = item.error
            if self.on_error is not None:
                self.on_error(item.url, item.error)
        if self.on_progress is not None:
            self.on_progress(progress)

    def summary(self) -> BatchSummary:
        return BatchSummary(
            loaded=dict(self.loaded),
            errors=dict(self.errors),
            total=len(self.urls),
            cancelled=self.cancelled,
        )

    async def start(self) -> BatchSummary | None:
        if self.loading:
            logger.warning("[IMAGE] Batch already loading")
            return None
        self.loading = True
        self.cancelled = False
        self._task = asyncio.ensure_future(
            self.loader.preload_images(self.urls, concurrency=self.concurrency, on_progress=self._record)
        )
        try:
            await self._task
        except asyncio.CancelledError:
            current = asyncio.current_task()
            if not self.cancelled or (current is not None and current.cancelling()):
                raise
            logger.info(f"[IMAGE] Batch cancelled after {len(self.loaded)}/{len(self.urls)} images")
        finally:
            self.loading = False
            self._task = None
        return self.summary()

    def cancel(self) -> None:
        self.cancelled = True
        if self._task is not None:
            self._task.cancel()
        self.loader.clear_all()

    def progress(self) -> dict[str, float]:
        total = len(self.urls)
        return {
            "loaded": len(self.loaded),
            "errors": len(self.errors),
            "total": total,
            "percentage": (len(self.loaded) / total * 100) if total else 0.0,
        }


__all__ = [
    "BatchImageLoader",
    "BatchSummary",
    "ImageLoader",
    "ImageQuality",
    "ImageResult",
    "PreloadProgress",
    "PreloadResult",
    "QualityPreset",
    "cover_image_url",
    "page_image_url",
]
