from __future__ import annotations

import json

import httpx
import pytest

from inkora.adapters.mangadex_adapter import MangaDexAdapter
from inkora.analyze import mangadex_parse
from inkora.analyze.records import DetailRecord
from inkora.utils.errors import ParseError
from tests.conftest import make_transport, read_fixture

API = "https://api.mangadex.org"


def _chapter(index: int) -> dict:
    return {
        "id": f"ch-{index}",
        "type": "chapter",
        "attributes": {
            "chapter": str(index),
            "volume": None,
            "title": "Departure" if index == 1 else None,
            "publishAt": "2024-01-02T00:00:00+00:00",
            "pages": 20,
        },
        "relationships": [{"type": "scanlation_group", "attributes": {"name": "Group A"}}],
    }


async def test_popular_maps_relationships(clock):
    body = read_fixture("mangadex_popular.json")
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request.url)
        return httpx.Response(200, text=body, headers={"Content-Type": "application/json"})

    adapter = MangaDexAdapter(make_transport(handler, clock))
    records = await adapter.popular(API)

    assert seen[0].path == "/manga"
    assert seen[0].params.get("order[followedCount]") == "desc"
    assert seen[0].params.get_list("includes[]") == ["cover_art", "author", "artist"]
    assert seen[0].params.get("limit") == "20"

    first, second = records
    assert isinstance(first, DetailRecord)
    assert first.title == "Frieren: Beyond Journey's End"
    assert first.author == "Yamada Kanehito"
    assert first.artist == "Abe Tsukasa"
    assert first.cover_url == (
        "https://uploads.mangadex.org/covers/b0b721ff-c388-4486-aa0f-c2b0bb321512/f2bd6f9f.jpg.512.jpg"
    )
    assert first.genres == ["Fantasy", "Adventure"]
    assert first.url == "https://mangadex.org/title/b0b721ff-c388-4486-aa0f-c2b0bb321512"

    assert second.title == "Sousou no Frieren Doujin"
    assert second.author is None
    assert second.cover_url is None
    assert second.description is None


async def test_search_and_latest_parameters(clock):
    seen = []

    def handler(request):
        seen.append(request.url)
        return httpx.Response(200, json={"result": "ok", "data": []})

    adapter = MangaDexAdapter(make_transport(handler, clock))
    assert await adapter.search(API, "frieren", {"status": ["ongoing", "completed"]}) == []
    assert await adapter.latest(API) == []

    search_url, latest_url = seen
    assert search_url.params.get("title") == "frieren"
    assert search_url.params.get_list("status[]") == ["ongoing", "completed"]
    assert latest_url.params.get("order[latestUploadedChapter]") == "desc"


async def test_details(clock):
    document = json.loads(read_fixture("mangadex_popular.json"))
    single = {"result": "ok", "data": document["data"][0]}

    adapter = MangaDexAdapter(make_transport(lambda request: httpx.Response(200, json=single), clock))
    detail = await adapter.details(API, "b0b721ff-c388-4486-aa0f-c2b0bb321512")

    assert detail.status == "ongoing"
    assert detail.content_rating == "safe"


async def test_chapter_feed_is_paged(clock):
    offsets = []

    def handler(request):
        offset = int(request.url.params["offset"])
        offsets.append(offset)
        count = 100 if offset == 0 else 30
        data = [_chapter(offset + index + 1) for index in range(count)]
        return httpx.Response(200, json={"result": "ok", "data": data})

    adapter = MangaDexAdapter(make_transport(handler, clock))
    chapters = await adapter.chapters(API, "manga-1")

    assert offsets == [0, 100]
    assert len(chapters) == 130
    first = chapters[0]
    assert first.name == "Chapter 1: Departure"
    assert first.group == "Group A"
    assert first.date == "2024-01-02"
    assert first.page_count == 20
    assert chapters[1].name == "Chapter 2"


async def test_chapter_feed_stops_at_cap(clock):
    offsets = []

    def handler(request):
        offset = int(request.url.params["offset"])
        offsets.append(offset)
        return httpx.Response(200, json={"data": [_chapter(offset + i) for i in range(100)]})

    adapter = MangaDexAdapter(make_transport(handler, clock))
    chapters = await adapter.chapters(API, "long-runner")

    assert offsets == [0, 100, 200, 300, 400]
    assert len(chapters) == 500


async def test_pages_from_at_home_server(clock):
    payload = {
        "result": "ok",
        "baseUrl": "https://node.mangadex.network",
        "chapter": {"hash": "abc123", "data": ["1.png", "2.png"], "dataSaver": ["1.jpg", "2.jpg"]},
    }
    adapter = MangaDexAdapter(make_transport(lambda request: httpx.Response(200, json=payload), clock))

    pages = await adapter.pages(API, "ch-1")
    assert [page.url for page in pages] == [
        "https://node.mangadex.network/data/abc123/1.png",
        "https://node.mangadex.network/data/abc123/2.png",
    ]

    adapter.data_saver = True
    saver = await adapter.pages(API, "ch-1")
    assert saver[0].url == "https://node.mangadex.network/data-saver/abc123/1.jpg"


def test_malformed_documents_raise_parse_error():
    with pytest.raises(ParseError):
        mangadex_parse.parse_manga_list({"result": "error"})
    with pytest.raises(ParseError):
        mangadex_parse.parse_at_home({"chapter": {}})


def test_localized_falls_back_to_any_language():
    assert mangadex_parse.localized({"ko": "나 혼자만 레벨업"}) == "나 혼자만 레벨업"
    assert mangadex_parse.localized({}) is None
