"""Structured backend for the MangaDex JSON API."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any, ClassVar

from inkora.adapters.base_source_adapter import (
    BaseSourceAdapter,
    Capability,
    build_url,
    filters_to_params,
)
from inkora.analyze import mangadex_parse
from inkora.analyze.records import ChapterRecord, DetailRecord, PageRecord
from inkora.config.config import (
    LISTING_RESULT_LIMIT,
    MANGADEX_API_BASE,
    MANGADEX_CHAPTER_CAP,
    MANGADEX_PAGE_SIZE,
    MANGADEX_SITE_BASE,
)
from inkora.core.models import BackendKind
from inkora.utils.http_client import RequestOptions
from inkora.utils.logger import logger

_INCLUDES = [("includes[]", "cover_art"), ("includes[]", "author"), ("includes[]", "artist")]
_CONTENT_RATINGS = [
    ("contentRating[]", "safe"),
    ("contentRating[]", "suggestive"),
    ("contentRating[]", "erotica"),
]
_JSON_HEADERS = {"Accept": "application/json"}


class MangaDexAdapter(BaseSourceAdapter):
    """MangaDex manga, chapter feed and at-home image server.

    Listings come back as :class:`DetailRecord` because the API already
    embeds author and cover relationships in every list item.
    """

    adapter_key: ClassVar[str] = "mangadex"
    backend_kind: ClassVar[BackendKind] = BackendKind.STRUCTURED_API
    capabilities: ClassVar[frozenset[Capability]] = frozenset(Capability)
    default_domains: ClassVar[tuple[str, ...]] = (MANGADEX_API_BASE,)
    site_domains: ClassVar[tuple[str, ...]] = (MANGADEX_SITE_BASE,)

    #: Request compressed ``data-saver`` pages instead of originals.
    data_saver: bool = False
    translated_language: str = "en"
    request_options = RequestOptions(max_retries=2, check_challenge=False)

    async def _get_json(self, url: str) -> Any:
        response = await self.fetch(url, headers=_JSON_HEADERS, options=self.request_options)
        return response.json()

    async def _manga_list(self, base_url: str, params: list[tuple[str, str]]) -> list[DetailRecord]:
        query = [("limit", str(LISTING_RESULT_LIMIT)), *_INCLUDES, *_CONTENT_RATINGS, *params]
        document = await self._get_json(build_url(base_url, "/manga", query))
        return mangadex_parse.parse_manga_list(document)

    async def search(
        self, base_url: str, query: str, filters: Mapping[str, Any] | None = None
    ) -> list[DetailRecord]:
        params = [("title", query), ("order[relevance]", "desc"), *filters_to_params(filters)]
        return await self._manga_list(base_url, params)

    async def popular(self, base_url: str) -> list[DetailRecord]:
        return await self._manga_list(base_url, [("order[followedCount]", "desc")])

    async def latest(self, base_url: str) -> list[DetailRecord]:
        return await self._manga_list(base_url, [("order[latestUploadedChapter]", "desc")])

    async def details(self, base_url: str, item_id: str) -> DetailRecord | None:
        document = await self._get_json(build_url(base_url, f"/manga/{item_id}", list(_INCLUDES)))
        return mangadex_parse.parse_manga(document)

    async def chapters(self, base_url: str, item_id: str) -> list[ChapterRecord]:
        collected: list[ChapterRecord] = []
        offset = 0
        while offset < MANGADEX_CHAPTER_CAP:
            params = [
                ("limit", str(MANGADEX_PAGE_SIZE)),
                ("offset", str(offset)),
                ("includes[]", "scanlation_group"),
                ("order[chapter]", "desc"),
                ("translatedLanguage[]", self.translated_language),
            ]
            document = await self._get_json(build_url(base_url, f"/manga/{item_id}/feed", params))
            batch = mangadex_parse.parse_chapter_feed(document)
            collected.extend(batch)
            raw_count = len(document.get("data") or [])
            if raw_count < MANGADEX_PAGE_SIZE:
                break
            offset += MANGADEX_PAGE_SIZE
        logger.debug(f"[MANGADEX] {item_id}: {len(collected)} chapters")
        return collected

    async def pages(self, base_url: str, chapter_id: str) -> list[PageRecord]:
        document = await self._get_json(build_url(base_url, f"/at-home/server/{chapter_id}"))
        return mangadex_parse.parse_at_home(document, data_saver=self.data_saver)


__all__ = ["MangaDexAdapter"]
