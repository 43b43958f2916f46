"""Markup backend for the Bato family of mirrors."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any, ClassVar

from inkora.adapters.base_source_adapter import (
    BaseSourceAdapter,
    Capability,
    build_url,
    filters_to_params,
)
from inkora.analyze.records import (
    ChapterRecord,
    DetailRecord,
    ExtractionContext,
    ListingRecord,
    PageRecord,
    RecordKind,
)
from inkora.config.config import BATO_DOMAIN_DEFAULTS, BATO_EXTRA_HOSTS, LISTING_RESULT_LIMIT
from inkora.core.models import BackendKind
from inkora.utils.errors import BlockedError, SourceError
from inkora.utils.logger import logger

# Mirrors answer a dead route with a tiny placeholder page; anything larger
# is treated as real content.
MIN_VALID_MARKUP = 1000

POPULAR_PATHS = ("/browse", "/browse?sort=views", "/browse?sort=popular", "/popular", "/")
LATEST_PATHS = ("/browse?sort=update", "/latest", "/recent")
SERIES_PATHS = ("/series/{id}", "/title/{id}", "/manga/{id}")
CHAPTER_PATHS = ("/chapter/{id}", "/read/{id}")


class BatoAdapter(BaseSourceAdapter):
    adapter_key: ClassVar[str] = "bato"
    backend_kind: ClassVar[BackendKind] = BackendKind.MARKUP_SCRAPE
    capabilities: ClassVar[frozenset[Capability]] = frozenset(Capability)
    default_domains: ClassVar[tuple[str, ...]] = BATO_DOMAIN_DEFAULTS
    site_domains: ClassVar[tuple[str, ...]] = BATO_DOMAIN_DEFAULTS + BATO_EXTRA_HOSTS

    async def _fetch_first(self, base_url: str, paths: Sequence[str]) -> str:
        """Return the first path's markup that looks like a real page.

        Falls back to the last markup received when every page is short. If
        no path answered at all the last error is raised so the registry can
        move on to the next mirror. A challenge aborts the mirror at once.
        """

        markup: str | None = None
        last_error: SourceError | None = None
        for path in paths:
            url = build_url(base_url, path)
            try:
                response = await self.fetch(url)
            except BlockedError:
                raise
            except SourceError as exc:
                logger.info(f"[BATO] {url} failed: {exc}")
                last_error = exc
                continue
            markup = response.text()
            if len(markup) > MIN_VALID_MARKUP:
                return markup
        if markup is not None:
            return markup
        raise last_error or SourceError(f"No paths to fetch on {base_url}")

    def _listing(self, markup: str, base_url: str) -> list[ListingRecord]:
        result = self.extractor.extract(
            markup,
            RecordKind.LISTING,
            ExtractionContext(base_url=base_url, limit=LISTING_RESULT_LIMIT),
        )
        return [record for record in result if isinstance(record, ListingRecord)]

    async def search(
        self, base_url: str, query: str, filters: Mapping[str, Any] | None = None
    ) -> list[ListingRecord]:
        params = [("word", query), *filters_to_params(filters)]
        markup = await self._fetch_first(base_url, [build_url("", "/search", params)])
        return self._listing(markup, base_url)

    async def popular(self, base_url: str) -> list[ListingRecord]:
        return self._listing(await self._fetch_first(base_url, POPULAR_PATHS), base_url)

    async def latest(self, base_url: str) -> list[ListingRecord]:
        return self._listing(await self._fetch_first(base_url, LATEST_PATHS), base_url)

    async def details(self, base_url: str, item_id: str) -> DetailRecord | None:
        markup = await self._fetch_first(base_url, [path.format(id=item_id) for path in SERIES_PATHS])
        result = self.extractor.extract(
            markup, RecordKind.DETAIL, ExtractionContext(base_url=base_url, item_id=item_id)
        )
        for record in result:
            if isinstance(record, DetailRecord):
                return record
        return None

    async def chapters(self, base_url: str, item_id: str) -> list[ChapterRecord]:
        markup = await self._fetch_first(base_url, [path.format(id=item_id) for path in SERIES_PATHS])
        result = self.extractor.extract(
            markup, RecordKind.CHAPTERS, ExtractionContext(base_url=base_url, item_id=item_id)
        )
        return [record for record in result if isinstance(record, ChapterRecord)]

    async def pages(self, base_url: str, chapter_id: str) -> list[PageRecord]:
        markup = await self._fetch_first(base_url, [path.format(id=chapter_id) for path in CHAPTER_PATHS])
        result = self.extractor.extract(
            markup, RecordKind.PAGES, ExtractionContext(base_url=base_url, item_id=chapter_id)
        )
        return [record for record in result if isinstance(record, PageRecord)]


__all__ = ["BatoAdapter"]
