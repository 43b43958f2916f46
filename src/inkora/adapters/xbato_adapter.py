"""Structured backend for the unofficial Xbato API."""

from __future__ import annotations

import random
from collections.abc import Mapping, Sequence
from typing import Any, ClassVar

from inkora.adapters.base_source_adapter import (
    BaseSourceAdapter,
    Capability,
    build_url,
    filters_to_params,
)
from inkora.analyze.bato_parse import normalize_date
from inkora.analyze.records import ChapterRecord, DetailRecord, PageRecord
from inkora.config.config import XBATO_API_BASE, XBATO_MIN_QUERY_LENGTH, XBATO_SITE_BASE
from inkora.core.models import BackendKind
from inkora.utils.errors import ParseError
from inkora.utils.http_client import RequestOptions
from inkora.utils.logger import logger
from inkora.utils.url_utils import encode_url_id

POPULAR_TERMS = ("the", "manga", "one")


def _first(data: Mapping[str, Any], *keys: str) -> Any:
    for key in keys:
        value = data.get(key)
        if value:
            return value
    return None


def item_to_detail(item: Mapping[str, Any], item_id: str | None = None) -> DetailRecord | None:
    """Map an Xbato comic object; ids are the comic's full source URL."""

    identifier = item_id or _first(item, "url", "link")
    if not identifier:
        return None
    genres = _first(item, "genres", "tags") or []
    return DetailRecord(
        id=identifier,
        title=_first(item, "title", "name"),
        description=_first(item, "description", "synopsis"),
        author=_first(item, "author"),
        artist=_first(item, "artist"),
        status=_first(item, "status"),
        genres=[str(genre) for genre in genres if genre],
        cover_url=_first(item, "image", "thumbnail", "cover"),
        url=identifier,
    )


def item_to_chapter(item: Mapping[str, Any], position: int) -> ChapterRecord | None:
    identifier = _first(item, "url", "link")
    if not identifier:
        return None
    number = _first(item, "number", "chapter")
    return ChapterRecord(
        id=identifier,
        name=_first(item, "title", "name") or f"Chapter {number or position}",
        number=str(number) if number is not None else None,
        volume=str(item["volume"]) if item.get("volume") else None,
        date=normalize_date(_first(item, "date", "uploadDate")),
        group=_first(item, "group", "scanlator"),
        url=identifier,
    )


class XbatoAdapter(BaseSourceAdapter):
    adapter_key: ClassVar[str] = "xbato"
    backend_kind: ClassVar[BackendKind] = BackendKind.STRUCTURED_API
    capabilities: ClassVar[frozenset[Capability]] = frozenset(
        {Capability.SEARCH, Capability.POPULAR, Capability.DETAILS, Capability.CHAPTERS, Capability.PAGES}
    )
    default_domains: ClassVar[tuple[str, ...]] = (XBATO_API_BASE,)
    site_domains: ClassVar[tuple[str, ...]] = (XBATO_SITE_BASE,)

    request_options = RequestOptions(max_retries=2, check_challenge=False)

    def __init__(self, *args: Any, popular_terms: Sequence[str] = POPULAR_TERMS, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self._popular_terms = tuple(popular_terms) or POPULAR_TERMS

    async def _get_json(self, url: str) -> Any:
        response = await self.fetch(url, headers={"Accept": "application/json"}, options=self.request_options)
        return response.json()

    async def _search_term(self, base_url: str, query: str, filters: Mapping[str, Any] | None) -> list[DetailRecord]:
        if len(query.strip()) < XBATO_MIN_QUERY_LENGTH:
            logger.info(f"[XBATO] Query {query!r} shorter than {XBATO_MIN_QUERY_LENGTH} characters")
            return []
        params = [("query", query.strip()), *filters_to_params(filters)]
        data = await self._get_json(build_url(base_url, "/search", params))
        if not isinstance(data, list):
            return []
        return [record for item in data if isinstance(item, dict) and (record := item_to_detail(item))]

    async def search(
        self, base_url: str, query: str, filters: Mapping[str, Any] | None = None
    ) -> list[DetailRecord]:
        return await self._search_term(base_url, query, filters)

    async def popular(self, base_url: str) -> list[DetailRecord]:
        # The API has no popular endpoint; a broad search stands in for it.
        return await self._search_term(base_url, random.choice(self._popular_terms), None)

    async def _comic(self, base_url: str, item_id: str) -> dict[str, Any] | None:
        data = await self._get_json(build_url(base_url, f"/comic/{encode_url_id(item_id)}"))
        if data is None:
            return None
        if not isinstance(data, dict):
            raise ParseError(f"Unexpected Xbato comic payload for {item_id}")
        return data

    async def details(self, base_url: str, item_id: str) -> DetailRecord | None:
        data = await self._comic(base_url, item_id)
        return item_to_detail(data, item_id) if data else None

    async def chapters(self, base_url: str, item_id: str) -> list[ChapterRecord]:
        data = await self._comic(base_url, item_id)
        if not data:
            return []
        chapters = []
        for position, item in enumerate(data.get("chapters") or [], start=1):
            if isinstance(item, dict) and (record := item_to_chapter(item, position)):
                chapters.append(record)
        return chapters

    async def pages(self, base_url: str, chapter_id: str) -> list[PageRecord]:
        data = await self._get_json(build_url(base_url, f"/images/{encode_url_id(chapter_id)}"))
        if isinstance(data, dict):
            data = data.get("images")
        if not isinstance(data, list):
            return []
        urls = [item for item in data if isinstance(item, str) and item]
        return [PageRecord(url=url, index=index) for index, url in enumerate(urls, start=1)]


__all__ = ["XbatoAdapter", "item_to_chapter", "item_to_detail"]
