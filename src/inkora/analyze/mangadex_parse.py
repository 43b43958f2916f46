"""Map MangaDex JSON:API documents onto records."""

from __future__ import annotations

from typing import Any

from inkora.analyze.bato_parse import normalize_date
from inkora.analyze.records import ChapterRecord, DetailRecord, PageRecord
from inkora.config.config import MANGADEX_COVER_BASE, MANGADEX_SITE_BASE
from inkora.utils.errors import ParseError

_TITLE_LANGUAGES = ("en", "ja-ro")


def localized(value: Any, languages: tuple[str, ...] = _TITLE_LANGUAGES) -> str | None:
    """Pick a string out of a ``{"en": ..., "ja-ro": ...}`` map.

    Preferred languages first, then whatever key comes first.
    """

    if isinstance(value, str):
        return value or None
    if not isinstance(value, dict) or not value:
        return None
    for language in languages:
        text = value.get(language)
        if text:
            return text
    for text in value.values():
        if text:
            return text
    return None


def relationship(entity: dict[str, Any], rel_type: str) -> dict[str, Any] | None:
    for rel in entity.get("relationships") or []:
        if isinstance(rel, dict) and rel.get("type") == rel_type:
            return rel
    return None


def relationship_name(entity: dict[str, Any], rel_type: str) -> str | None:
    rel = relationship(entity, rel_type)
    if rel is None:
        return None
    attributes = rel.get("attributes") or {}
    return attributes.get("name") or None


def cover_url(entity: dict[str, Any]) -> str | None:
    rel = relationship(entity, "cover_art")
    manga_id = entity.get("id")
    if rel is None or not manga_id:
        return None
    file_name = (rel.get("attributes") or {}).get("fileName")
    if not file_name:
        return None
    return f"{MANGADEX_COVER_BASE}/{manga_id}/{file_name}.512.jpg"


def manga_to_detail(entity: dict[str, Any]) -> DetailRecord | None:
    manga_id = entity.get("id")
    if not manga_id:
        return None
    attributes = entity.get("attributes") or {}
    genres = []
    for tag in attributes.get("tags") or []:
        name = localized((tag.get("attributes") or {}).get("name"), ("en",))
        if name:
            genres.append(name)
    return DetailRecord(
        id=manga_id,
        title=localized(attributes.get("title")),
        description=localized(attributes.get("description"), ("en",)),
        author=relationship_name(entity, "author"),
        artist=relationship_name(entity, "artist"),
        status=attributes.get("status"),
        genres=genres,
        cover_url=cover_url(entity),
        content_rating=attributes.get("contentRating"),
        url=f"{MANGADEX_SITE_BASE}/title/{manga_id}",
    )


def _data(document: Any) -> Any:
    if not isinstance(document, dict) or "data" not in document:
        raise ParseError("MangaDex response has no 'data' member")
    return document["data"]


def parse_manga_list(document: Any) -> list[DetailRecord]:
    items = _data(document)
    if not isinstance(items, list):
        raise ParseError("MangaDex manga list is not an array")
    return [record for item in items if isinstance(item, dict) and (record := manga_to_detail(item))]


def parse_manga(document: Any) -> DetailRecord | None:
    item = _data(document)
    if not isinstance(item, dict):
        raise ParseError("MangaDex manga document is not an object")
    return manga_to_detail(item)


def chapter_to_record(entity: dict[str, Any]) -> ChapterRecord | None:
    chapter_id = entity.get("id")
    if not chapter_id:
        return None
    attributes = entity.get("attributes") or {}
    number = attributes.get("chapter")
    title = attributes.get("title")
    name = f"Chapter {number or '?'}"
    if title:
        name = f"{name}: {title}"
    pages = attributes.get("pages")
    return ChapterRecord(
        id=chapter_id,
        name=name,
        number=str(number) if number is not None else None,
        volume=str(attributes["volume"]) if attributes.get("volume") is not None else None,
        date=normalize_date(attributes.get("publishAt")),
        group=relationship_name(entity, "scanlation_group"),
        page_count=int(pages) if isinstance(pages, int) else None,
        url=f"{MANGADEX_SITE_BASE}/chapter/{chapter_id}",
    )


def parse_chapter_feed(document: Any) -> list[ChapterRecord]:
    items = _data(document)
    if not isinstance(items, list):
        raise ParseError("MangaDex chapter feed is not an array")
    return [record for item in items if isinstance(item, dict) and (record := chapter_to_record(item))]


def parse_at_home(document: Any, *, data_saver: bool = False) -> list[PageRecord]:
    """Build page URLs from an ``/at-home/server/<chapterId>`` response."""

    if not isinstance(document, dict):
        raise ParseError("MangaDex at-home response is not an object")
    base_url = document.get("baseUrl")
    chapter = document.get("chapter") or {}
    chapter_hash = chapter.get("hash")
    files = chapter.get("dataSaver" if data_saver else "data") or []
    if not base_url or not chapter_hash:
        raise ParseError("MangaDex at-home response lacks baseUrl or chapter hash")
    segment = "data-saver" if data_saver else "data"
    return [
        PageRecord(url=f"{base_url}/{segment}/{chapter_hash}/{file_name}", index=index)
        for index, file_name in enumerate(files, start=1)
    ]


__all__ = [
    "chapter_to_record",
    "cover_url",
    "localized",
    "manga_to_detail",
    "parse_at_home",
    "parse_chapter_feed",
    "parse_manga",
    "parse_manga_list",
    "relationship",
    "relationship_name",
]
