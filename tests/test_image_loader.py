from __future__ import annotations

import asyncio

import httpx
import pytest

from inkora.core.image_loader import (
    BatchImageLoader,
    ImageLoader,
    ImageQuality,
    cover_image_url,
    page_image_url,
)
from inkora.storage.cache_manager import ImageFileCache
from inkora.utils.errors import NetworkError, SourceError
from tests.conftest import make_transport

PAGES = [f"https://img.example/chapter/{index}.png" for index in range(1, 7)]


def _image_handler(calls: list[str], missing: tuple[str, ...] = ()):
    async def handler(request: httpx.Request) -> httpx.Response:
        calls.append(str(request.url))
        await asyncio.sleep(0)
        if str(request.url) in missing:
            return httpx.Response(404)
        return httpx.Response(200, content=request.url.path.encode())

    return handler


async def test_concurrent_requests_share_one_download(clock):
    calls: list[str] = []
    loader = ImageLoader(make_transport(_image_handler(calls), clock))

    first, second = await asyncio.gather(
        loader.load_image(PAGES[0]),
        loader.load_image(PAGES[0]),
    )

    assert calls == [PAGES[0]]
    assert first is second
    assert first.data == b"/chapter/1.png"
    assert loader.in_flight == 0


async def test_file_cache_serves_repeat_loads(clock, tmp_path):
    calls: list[str] = []
    files = ImageFileCache(tmp_path / "images")
    transport = make_transport(_image_handler(calls), clock)

    fetched = await ImageLoader(transport, files).load_image(PAGES[1])
    assert not fetched.cached
    assert fetched.path.suffix == ".png"
    assert fetched.path.parent.name == "pages"

    reloaded = await ImageLoader(transport, files).load_image(PAGES[1])
    assert reloaded.cached
    assert reloaded.data == fetched.data
    assert calls == [PAGES[1]]

    await ImageLoader(transport, files).load_image(PAGES[1], use_cache=False)
    assert len(calls) == 2


async def test_load_failure_propagates(clock):
    calls: list[str] = []
    loader = ImageLoader(make_transport(_image_handler(calls, missing=(PAGES[0],)), clock))

    with pytest.raises(NetworkError) as excinfo:
        await loader.load_image(PAGES[0])
    assert excinfo.value.status_code == 404
    assert loader.in_flight == 0


async def test_preload_keeps_order_and_isolates_failures(clock):
    calls: list[str] = []
    active = 0
    peak = 0

    async def handler(request):
        nonlocal active, peak
        active += 1
        peak = max(peak, active)
        calls.append(str(request.url))
        await asyncio.sleep(0.01)
        active -= 1
        if str(request.url) == PAGES[2]:
            return httpx.Response(404)
        return httpx.Response(200, content=b"img")

    loader = ImageLoader(make_transport(handler, clock))
    progress = []

    results = await loader.preload_images(PAGES, concurrency=2, on_progress=progress.append)

    assert [result.url for result in results] == PAGES
    assert [result.success for result in results] == [True, True, False, True, True, True]
    assert isinstance(results[2].error, NetworkError)
    assert len(calls) == len(PAGES)
    assert peak <= 2
    assert [item.completed for item in progress] == [1, 2, 3, 4, 5, 6]
    assert all(item.total == 6 for item in progress)


async def test_preload_survives_unexpected_errors_and_single_cancellation(clock):
    async def handler(request):
        url = str(request.url)
        if url == PAGES[1]:
            raise RuntimeError("malformed response")
        if url == PAGES[2]:
            await asyncio.Event().wait()
        return httpx.Response(200, content=b"img")

    loader = ImageLoader(make_transport(handler, clock))
    preload = asyncio.ensure_future(loader.preload_images(PAGES[:4], concurrency=2))
    while not loader.cancel_load(PAGES[2]):
        await asyncio.sleep(0)

    results = await preload

    assert [result.url for result in results] == PAGES[:4]
    assert [result.success for result in results] == [True, False, False, True]
    assert isinstance(results[1].error, RuntimeError)
    assert isinstance(results[2].error, SourceError)
    assert loader.in_flight == 0


async def test_preload_empty_list(clock):
    loader = ImageLoader(make_transport(_image_handler([]), clock))
    assert await loader.preload_images([]) == []


async def test_batch_loader_tracks_outcomes(clock):
    calls: list[str] = []
    loader = ImageLoader(make_transport(_image_handler(calls, missing=(PAGES[3],)), clock))
    loaded, failed = [], []
    batch = BatchImageLoader(
        loader,
        PAGES[:4],
        concurrency=2,
        on_image_loaded=lambda url, result: loaded.append(url),
        on_error=lambda url, error: failed.append(url),
    )

    summary = await batch.start()

    assert summary.total == 4
    assert not summary.cancelled
    assert set(summary.loaded) == set(PAGES[:3])
    assert list(summary.errors) == [PAGES[3]]
    assert sorted(loaded) == sorted(PAGES[:3])
    assert failed == [PAGES[3]]
    assert batch.progress() == {"loaded": 3, "errors": 1, "total": 4, "percentage": 75.0}
    assert not batch.loading


async def test_batch_loader_cancel(clock):
    release = asyncio.Event()

    async def handler(request):
        await release.wait()
        return httpx.Response(200, content=b"img")

    loader = ImageLoader(make_transport(handler, clock))
    batch = BatchImageLoader(loader, PAGES[:2], concurrency=2)

    runner = asyncio.ensure_future(batch.start())
    while loader.in_flight < 2:
        await asyncio.sleep(0)
    assert await batch.start() is None

    batch.cancel()
    summary = await runner

    assert summary.cancelled
    assert summary.loaded == {}
    assert loader.in_flight == 0
    assert not batch.loading


def test_url_builders():
    assert cover_image_url("https://api.mangadex.org", "m1", "c.jpg") == (
        "https://uploads.mangadex.org/covers/m1/c.jpg.512.jpg"
    )
    assert cover_image_url("https://api.mangadex.org", "m1", "c.jpg", "original") == (
        "https://uploads.mangadex.org/covers/m1/c.jpg"
    )
    assert cover_image_url("https://bato.to/", "101", "a.webp") == "https://bato.to/covers/101/a.webp"
    assert cover_image_url(None, "101", "a.webp") is None

    assert page_image_url("https://node.example", "h", "1.png", ImageQuality.LOW) == (
        "https://node.example/data-saver/h/1.png"
    )
    assert page_image_url("https://node.example", "h", "1.png") == "https://node.example/data/h/1.png"
    assert ImageQuality.resolve("bogus") is ImageQuality.HIGH
    assert ImageQuality.resolve("medium").value.max_width == 1200
