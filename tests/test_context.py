from __future__ import annotations

import json

import httpx
import pytest

from inkora.apps.main import _parse_filters, parse_cli_args, run
from inkora.config.config import CoreSettings
from inkora.core.context import AcquisitionContext
from inkora.utils.errors import UnsupportedCapabilityError
from tests.conftest import read_fixture

MANGA_ID = "b0b721ff-c388-4486-aa0f-c2b0bb321512"


def _mangadex_handler(calls: list[str]):
    popular = read_fixture("mangadex_popular.json")
    single = {"result": "ok", "data": json.loads(popular)["data"][0]}

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request.url.path)
        if request.url.path == f"/manga/{MANGA_ID}":
            return httpx.Response(200, json=single)
        if request.url.path == "/manga":
            return httpx.Response(200, text=popular)
        return httpx.Response(404)

    return handler


def _context(tmp_path, clock, handler, *, persist: bool = False) -> AcquisitionContext:
    settings = CoreSettings(cache_dir=tmp_path, persist_cache=persist, rate_limit_permits=100)
    return AcquisitionContext(settings, clock=clock, http_transport=httpx.MockTransport(handler))


async def test_builtin_sources_and_dispatch(tmp_path, clock):
    calls: list[str] = []
    async with _context(tmp_path, clock, _mangadex_handler(calls)) as context:
        assert {source.id for source in context.registry.online_sources()} == {
            "bato_to",
            "xbato_com",
            "mangadex_org",
        }

        popular = await context.popular("mangadex_org")
        assert popular[0].author == "Yamada Kanehito"

        with pytest.raises(UnsupportedCapabilityError):
            await context.latest("xbato_com")
        assert calls == ["/manga"]


async def test_details_persist_across_contexts(tmp_path, clock):
    calls: list[str] = []

    async with _context(tmp_path, clock, _mangadex_handler(calls), persist=True) as first:
        detail = await first.details("mangadex_org", MANGA_ID)
    assert calls == [f"/manga/{MANGA_ID}"]
    assert (tmp_path / "cache.sqlite3").exists()

    async with _context(tmp_path, clock, _mangadex_handler(calls), persist=True) as second:
        again = await second.details("mangadex_org", MANGA_ID)
        assert second.cache.covers.get(f"mangadex_org:{MANGA_ID}") == detail.cover_url

    assert again == detail
    assert len(calls) == 1


async def test_contexts_are_independent(tmp_path, clock):
    first = _context(tmp_path, clock, _mangadex_handler([]))
    second = _context(tmp_path, clock, _mangadex_handler([]), persist=False)
    first.start()
    second.start()

    first.registry.require("bato_to").promote_domain("https://mto.to")

    assert first.registry.require("bato_to").base_url == "https://mto.to"
    assert second.registry.require("bato_to").base_url == "https://bato.to"
    await first.aclose()
    await second.aclose()


async def test_cli_run_against_context(tmp_path, clock):
    async with _context(tmp_path, clock, _mangadex_handler([])) as context:
        sources = await run(parse_cli_args(["sources", "--lang", "vi"]), context)
        assert [source.id for source in sources] == ["mangadex_org"]

        cleared = await run(parse_cli_args(["--no-cache", "clear-cache"]), context)
        assert cleared["cleared"] is True


def test_cli_filters():
    args = parse_cli_args(["search", "mangadex_org", "frieren", "--filter", "status=ongoing", "--filter", "status=hiatus"])
    assert args.command == "search"
    assert _parse_filters(args.filter) == {"status": ["ongoing", "hiatus"]}
    with pytest.raises(SystemExit):
        _parse_filters(["novalue"])
