"""Ordered-fallback extraction engine."""

from __future__ import annotations

from collections.abc import Callable, Iterator, Mapping, Sequence
from dataclasses import dataclass, field

from bs4 import BeautifulSoup

from inkora.analyze import bato_parse
from inkora.analyze.records import ChapterRecord, ExtractionContext, Record, RecordKind
from inkora.utils.logger import extractor_logger as logger

Strategy = Callable[[BeautifulSoup, str, ExtractionContext], Sequence[Record]]

DEFAULT_STRATEGIES: dict[RecordKind, tuple[Strategy, ...]] = {
    RecordKind.LISTING: (
        bato_parse.listing_container_blocks,
        bato_parse.listing_card_anchors,
        bato_parse.listing_article_tags,
    ),
    RecordKind.DETAIL: (
        bato_parse.detail_page_fields,
        bato_parse.detail_document_head,
    ),
    RecordKind.CHAPTERS: (
        bato_parse.chapter_container_blocks,
        bato_parse.chapter_anchors,
        bato_parse.chapter_list_items,
    ),
    RecordKind.PAGES: (
        bato_parse.pages_from_script_array,
        bato_parse.pages_from_page_images,
        bato_parse.pages_from_any_image,
    ),
}


@dataclass(slots=True)
class ExtractionResult:
    """Records from the winning strategy plus the names of every tier tried."""

    records: list[Record] = field(default_factory=list)
    strategy: str | None = None
    tried: list[str] = field(default_factory=list)

    def __iter__(self) -> Iterator[Record]:
        return iter(self.records)

    def __len__(self) -> int:
        return len(self.records)

    def __bool__(self) -> bool:
        return bool(self.records)

    def __getitem__(self, index: int) -> Record:
        return self.records[index]


def _strategy_name(strategy: Strategy) -> str:
    return getattr(strategy, "__name__", repr(strategy))


class Extractor:
    """Run the strategies for a record kind in order; the first non-empty one wins.

    Strategy failures are logged and count as "no result", so ``extract``
    never raises. Records without an identifier are dropped before a tier
    is judged, which lets a lower tier win when a higher one only found
    malformed fragments.
    """

    def __init__(self, strategies: Mapping[RecordKind, Sequence[Strategy]] | None = None) -> None:
        source = strategies if strategies is not None else DEFAULT_STRATEGIES
        self._strategies = {RecordKind(kind): tuple(items) for kind, items in source.items()}

    def strategies_for(self, kind: RecordKind | str) -> tuple[Strategy, ...]:
        return self._strategies.get(RecordKind(kind), ())

    def extract(
        self,
        markup: str,
        kind: RecordKind | str,
        context: ExtractionContext | None = None,
    ) -> ExtractionResult:
        context = context or ExtractionContext()
        result = ExtractionResult()
        try:
            kind = RecordKind(kind)
            soup = bato_parse.parse_markup(markup)
        except Exception as exc:
            logger.warning(f"[EXTRACT] Cannot prepare {kind!r} extraction: {exc}")
            return result

        for strategy in self.strategies_for(kind):
            name = _strategy_name(strategy)
            result.tried.append(name)
            try:
                found = strategy(soup, markup or "", context)
            except Exception as exc:
                logger.warning(f"[EXTRACT] Strategy {name} failed: {exc}")
                continue
            records = [record for record in found if record is not None and record.identity]
            if not records:
                logger.debug(f"[EXTRACT] {name} found nothing for {kind.value}")
                continue
            result.records = self._finalize(kind, records, context)
            result.strategy = name
            logger.debug(f"[EXTRACT] {kind.value}: {len(result.records)} records via {name}")
            return result

        logger.info(f"[EXTRACT] No {kind.value} records after {len(result.tried)} strategies")
        return result

    @staticmethod
    def _finalize(kind: RecordKind, records: list[Record], context: ExtractionContext) -> list[Record]:
        if kind is RecordKind.CHAPTERS:
            records = sorted(
                records,
                key=lambda record: record.numeric_order() if isinstance(record, ChapterRecord) else 0.0,
                reverse=True,
            )
        if kind is RecordKind.LISTING and context.limit:
            records = records[: context.limit]
        return records


__all__ = [
    "DEFAULT_STRATEGIES",
    "ExtractionResult",
    "Extractor",
    "Strategy",
]
