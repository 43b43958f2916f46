from __future__ import annotations

import httpx

from inkora.adapters.xbato_adapter import XbatoAdapter, item_to_detail
from inkora.utils.url_utils import decode_url_id, encode_url_id
from tests.conftest import make_transport

API = "https://xbato-api.hanifu.id"
COMIC_URL = "https://xbato.com/title/81514-solo-leveling"


def _decoded(request: httpx.Request, prefix: str) -> str | None:
    return decode_url_id(request.url.path[len(prefix):])


async def test_short_query_returns_empty_without_request(clock):
    calls = []
    adapter = XbatoAdapter(make_transport(lambda request: calls.append(request), clock))

    assert await adapter.search(API, "ab") == []
    assert await adapter.search(API, "  a  ") == []
    assert calls == []


async def test_search_maps_results(clock):
    seen = []
    payload = [
        {"title": "Solo Leveling", "url": COMIC_URL, "image": "https://xbato.com/c/1.jpg"},
        {"title": "No link"},
    ]

    def handler(request):
        seen.append(request.url)
        return httpx.Response(200, json=payload)

    adapter = XbatoAdapter(make_transport(handler, clock))
    results = await adapter.search(API, "solo", {"genres": ["action"]})

    assert seen[0].params.get("query") == "solo"
    assert seen[0].params.get_list("genres[]") == ["action"]
    assert len(results) == 1
    assert results[0].id == COMIC_URL
    assert results[0].cover_url == "https://xbato.com/c/1.jpg"


async def test_popular_uses_a_broad_search_term(clock):
    seen = []

    def handler(request):
        seen.append(request.url.params.get("query"))
        return httpx.Response(200, json=[])

    adapter = XbatoAdapter(make_transport(handler, clock), popular_terms=("manga",))
    assert await adapter.popular(API) == []
    assert seen == ["manga"]


async def test_details_and_chapters_use_encoded_url_ids(clock):
    comic = {
        "title": "Solo Leveling",
        "author": "Chugong",
        "genres": ["Action", ""],
        "status": "Completed",
        "chapters": [
            {"title": "Chapter 1", "url": "https://xbato.com/chapter/1", "date": "2024-01-05"},
            {"url": "https://xbato.com/chapter/2", "number": 2},
            {"title": "missing url"},
        ],
    }
    paths = []

    def handler(request):
        paths.append(_decoded(request, "/comic/"))
        return httpx.Response(200, json=comic)

    adapter = XbatoAdapter(make_transport(handler, clock))
    detail = await adapter.details(API, COMIC_URL)
    chapters = await adapter.chapters(API, COMIC_URL)

    assert paths == [COMIC_URL, COMIC_URL]
    assert detail.id == COMIC_URL
    assert detail.author == "Chugong"
    assert detail.genres == ["Action"]
    assert [chapter.name for chapter in chapters] == ["Chapter 1", "Chapter 2"]
    assert chapters[0].date == "2024-01-05"
    assert chapters[1].number == "2"


async def test_pages_accept_list_or_object(clock):
    chapter_url = "https://xbato.com/chapter/1"
    responses = [
        ["https://img.example/1.jpg", "", "https://img.example/2.jpg"],
        {"images": ["https://img.example/3.jpg"]},
    ]
    decoded = []

    def handler(request):
        decoded.append(_decoded(request, "/images/"))
        return httpx.Response(200, json=responses.pop(0))

    adapter = XbatoAdapter(make_transport(handler, clock))
    first = await adapter.pages(API, chapter_url)
    second = await adapter.pages(API, chapter_url)

    assert [(page.index, page.url) for page in first] == [
        (1, "https://img.example/1.jpg"),
        (2, "https://img.example/2.jpg"),
    ]
    assert [page.url for page in second] == ["https://img.example/3.jpg"]
    assert decoded == [chapter_url, chapter_url]


def test_url_id_round_trip_and_item_mapping():
    assert decode_url_id(encode_url_id(COMIC_URL)) == COMIC_URL
    assert item_to_detail({"title": "x"}) is None
    assert item_to_detail({"name": "Alt", "link": "https://xbato.com/t/2"}).title == "Alt"
