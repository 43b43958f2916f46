"""Markup strategies for Bato style mirrors.

Each function is one fallback tier: it takes the parsed document and the
extraction context and returns whatever records it can recover. The
extractor decides which tier wins.
"""

from __future__ import annotations

import json
import re
from collections.abc import Iterable
from datetime import datetime

from bs4 import BeautifulSoup, Tag
from dateutil import parser as date_parser
from dateutil.relativedelta import relativedelta

from inkora.analyze.records import (
    ChapterRecord,
    DetailRecord,
    ExtractionContext,
    ListingRecord,
    PageRecord,
)
from inkora.utils.url_utils import absolutize, segment_after

_DEFAULT_PARSER = "html.parser"

_LISTING_BLOCK_CLASS = re.compile(r"^(?:item-|manga-|series-)")
_CARD_ANCHOR_CLASS = re.compile(r"item|card")
_TITLE_CLASS = re.compile(r"title|name")
_COVER_SRC = re.compile(r"cover|thumb|image", re.IGNORECASE)
_CHAPTER_COUNT = re.compile(r"(\d+)\s*(?:ch|chapters?)\b", re.IGNORECASE)

_CHAPTER_BLOCK_CLASS = re.compile(r"episode|chapter")
_CHAPTER_CLASS = re.compile(r"chapter")
_CHAPTER_NUMBER = re.compile(r"(?:Chapter|Ch\.?)\s*([\d.]+)", re.IGNORECASE)
_ANY_NUMBER = re.compile(r"(\d+(?:\.\d+)?)")
_VOLUME = re.compile(r"\bVol(?:ume)?\.?\s*(\d+)", re.IGNORECASE)
_ISO_DATE = re.compile(r"(\d{4}-\d{2}-\d{2})")
_DATE_CLASS = re.compile(r"date")
_GROUP_CLASS = re.compile(r"group|team")

_DETAIL_COVER_CLASS = re.compile(r"cover|poster")
_DESCRIPTION_CLASS = re.compile(r"summary|description|synopsis")
_GENRE_CLASS = re.compile(r"(?:^|[-_])(?:genres?|tags?)(?:$|[-_])")
_AUTHOR_LABEL = re.compile(r"^\s*(?:Authors?|Writers?)\b\s*:?", re.IGNORECASE)
_ARTIST_LABEL = re.compile(r"^\s*(?:Artists?|Illustrators?)\b\s*:?", re.IGNORECASE)
_STATUS_LABEL = re.compile(r"^\s*(?:Status|Publication)\b\s*:?", re.IGNORECASE)
_SITE_SUFFIX = re.compile(r"\s*[-|]\s*Bato.*$", re.IGNORECASE)

_SCRIPT_ARRAYS = (
    re.compile(r"const\s+images\s*=\s*(\[[\s\S]*?\]);", re.IGNORECASE),
    re.compile(r"var\s+images\s*=\s*(\[[\s\S]*?\]);", re.IGNORECASE),
    re.compile(r"images:\s*(\[[\s\S]*?\])", re.IGNORECASE),
    re.compile(r"pageList\s*=\s*(\[[\s\S]*?\])", re.IGNORECASE),
    re.compile(r"\"images\":\s*(\[[\s\S]*?\])", re.IGNORECASE),
)
_TRAILING_COMMA_ARRAY = re.compile(r",\s*\]")
_TRAILING_COMMA_OBJECT = re.compile(r",\s*}")
_PAGE_CLASS = re.compile(r"page")
_IMAGE_ID = re.compile(r"image")
_PAGE_FILE = re.compile(r"\d+\.(?:jpg|jpeg|png|webp)", re.IGNORECASE)

_SERIES_MARKERS = ("series", "title")
_CHAPTER_MARKERS = ("chapter", "read")


def parse_markup(markup: str) -> BeautifulSoup:
    return BeautifulSoup(markup or "", _DEFAULT_PARSER)


# ---------------------------------------------------------------------------
# shared helpers


def _text(node: Tag | None) -> str | None:
    if node is None:
        return None
    value = node.get_text(" ", strip=True)
    return value or None


def _attr(node: Tag | None, name: str) -> str | None:
    if node is None:
        return None
    value = node.get(name)
    if isinstance(value, list):
        value = " ".join(value)
    value = (value or "").strip()
    return value or None


def _ids_in(block: Tag, markers: tuple[str, ...]) -> set[str]:
    ids: set[str] = set()
    anchors = [block] if block.name == "a" else []
    anchors.extend(block.find_all("a", href=True))
    for anchor in anchors:
        found = segment_after(_attr(anchor, "href"), *markers)
        if found:
            ids.add(found)
    return ids


def _item_blocks(candidates: Iterable[Tag], markers: tuple[str, ...]) -> list[Tag]:
    """Pick the outermost candidates that describe at most one item.

    A wrapper such as ``<div class="series-list">`` matches the class rule
    too but links to many items; it is skipped in favour of its children.
    """

    single = [tag for tag in candidates if len(_ids_in(tag, markers)) <= 1]
    single_ids = {id(tag) for tag in single}
    return [tag for tag in single if not any(id(parent) in single_ids for parent in tag.parents)]


def _has_class(tag: Tag, pattern: re.Pattern[str]) -> bool:
    return any(pattern.search(token) for token in tag.get("class") or [])


def _first_href(block: Tag, markers: tuple[str, ...]) -> str | None:
    anchors = [block] if block.name == "a" else []
    anchors.extend(block.find_all("a", href=True))
    for anchor in anchors:
        href = _attr(anchor, "href")
        if segment_after(href, *markers):
            return href
    return None


_RELATIVE_DATE = re.compile(
    r"^(\d+|an?|one)\s+(sec|second|min|minute|hour|day|week|month|year)s?\s+ago$"
)
_RELATIVE_UNITS = {
    "sec": "seconds",
    "second": "seconds",
    "min": "minutes",
    "minute": "minutes",
    "hour": "hours",
    "day": "days",
    "week": "weeks",
    "month": "months",
    "year": "years",
}
_RELATIVE_DAYS = {"just now": 0, "today": 0, "yesterday": 1}


def _relative_date(raw: str, now: datetime) -> str | None:
    text = " ".join(raw.lower().split())
    if text in _RELATIVE_DAYS:
        return (now - relativedelta(days=_RELATIVE_DAYS[text])).date().isoformat()
    match = _RELATIVE_DATE.match(text)
    if match is None:
        return None
    amount, unit = match.groups()
    count = int(amount) if amount.isdigit() else 1
    return (now - relativedelta(**{_RELATIVE_UNITS[unit]: count})).date().isoformat()


def normalize_date(raw: str | None, now: datetime | None = None) -> str | None:
    """Return an ISO ``YYYY-MM-DD`` date when ``raw`` is parseable.

    Relative stamps such as ``3 days ago`` are counted back from ``now``.
    Anything else unparseable is returned stripped.
    """

    if not raw:
        return None
    relative = _relative_date(raw, now or datetime.now())
    if relative is not None:
        return relative
    try:
        return date_parser.parse(raw).date().isoformat()
    except (ValueError, OverflowError):
        return raw.strip() or None


# ---------------------------------------------------------------------------
# listing


def _listing_from_block(
    block: Tag, context: ExtractionContext, *, any_image_cover: bool = False
) -> ListingRecord | None:
    href = _first_href(block, _SERIES_MARKERS)
    item_id = segment_after(href, *_SERIES_MARKERS)
    if not item_id:
        return None

    title = _text(block.find(class_=_TITLE_CLASS))
    if not title:
        image = block.find("img", alt=True)
        title = _attr(image, "alt")
    if not title:
        titled = block if block.has_attr("title") else block.find(attrs={"title": True})
        title = _attr(titled, "title")
    if not title:
        anchor = block if block.name == "a" else block.find("a", href=True)
        title = _text(anchor)

    cover = None
    for image in block.find_all("img"):
        src = _attr(image, "src")
        if src and _COVER_SRC.search(src):
            cover = src
            break
    if not cover:
        cover = _attr(block.find("img", attrs={"data-src": True}), "data-src")
    if not cover and any_image_cover:
        cover = _attr(block.find("img", src=True), "src")

    count_match = _CHAPTER_COUNT.search(block.get_text(" ", strip=True))
    return ListingRecord(
        id=item_id,
        title=title,
        cover_url=absolutize(cover, context.base_url),
        chapter_count_hint=int(count_match.group(1)) if count_match else None,
        url=absolutize(href, context.base_url),
    )


def listing_container_blocks(soup: BeautifulSoup, markup: str, context: ExtractionContext) -> list[ListingRecord]:
    """``<div>`` blocks whose class starts with ``item-``, ``manga-`` or ``series-``."""

    candidates = [
        tag for tag in soup.find_all("div", class_=True) if _has_class(tag, _LISTING_BLOCK_CLASS)
    ]
    records = []
    for block in _item_blocks(candidates, _SERIES_MARKERS):
        record = _listing_from_block(block, context)
        if record is not None:
            records.append(record)
    return records


def listing_card_anchors(soup: BeautifulSoup, markup: str, context: ExtractionContext) -> list[ListingRecord]:
    """Anchors styled as cards (``class`` containing ``item`` or ``card``)."""

    records = []
    for anchor in soup.find_all("a", class_=_CARD_ANCHOR_CLASS):
        record = _listing_from_block(anchor, context)
        if record is not None:
            records.append(record)
    return records


def listing_article_tags(soup: BeautifulSoup, markup: str, context: ExtractionContext) -> list[ListingRecord]:
    """``<article>`` elements; the only tier allowed to take any image as cover."""

    records = []
    for article in soup.find_all("article"):
        record = _listing_from_block(article, context, any_image_cover=True)
        if record is not None:
            records.append(record)
    return records


# ---------------------------------------------------------------------------
# detail


def _meta_content(soup: BeautifulSoup, *names: str) -> str | None:
    for name in names:
        node = soup.find("meta", attrs={"property": name}) or soup.find("meta", attrs={"name": name})
        value = _attr(node, "content")
        if value:
            return value
    return None


def _labelled_value(soup: BeautifulSoup, label: re.Pattern[str]) -> str | None:
    for node in soup.find_all(string=label):
        remainder = label.sub("", str(node), count=1).strip(" :\t\r\n")
        if remainder:
            return remainder
        following = node.find_next(string=lambda value: bool(value and value.strip(" :\t\r\n")))
        if following is not None:
            return following.strip(" :\t\r\n")
    return None


def _leaf_texts(soup: BeautifulSoup, pattern: re.Pattern[str]) -> list[str]:
    matches = soup.find_all(class_=pattern)
    values: list[str] = []
    for node in matches:
        if node.find(class_=pattern):
            continue
        text = _text(node)
        if text and text not in values:
            values.append(text)
    return values


def _detail_id(soup: BeautifulSoup, context: ExtractionContext) -> str | None:
    if context.item_id:
        return context.item_id
    return segment_after(_meta_content(soup, "og:url"), *_SERIES_MARKERS)


def detail_page_fields(soup: BeautifulSoup, markup: str, context: ExtractionContext) -> list[DetailRecord]:
    """Headings, labelled rows and classed elements of a series page."""

    heading = soup.find("h1") or soup.find("h3", class_=_TITLE_CLASS)
    title = _text(heading)
    item_id = _detail_id(soup, context)
    if not title or not item_id:
        return []

    cover = None
    cover_node = soup.find("img", class_=_DETAIL_COVER_CLASS)
    if cover_node is not None:
        cover = _attr(cover_node, "src") or _attr(cover_node, "data-src")
    cover = cover or _meta_content(soup, "og:image")

    description_node = soup.find("div", class_=_DESCRIPTION_CLASS) or soup.find(
        "p", class_=re.compile(r"summary|description")
    )
    description = _text(description_node) or _meta_content(soup, "description", "og:description")

    author = _labelled_value(soup, _AUTHOR_LABEL) or _text(soup.find(class_=re.compile(r"author")))
    artist = _labelled_value(soup, _ARTIST_LABEL)
    status = _labelled_value(soup, _STATUS_LABEL) or _text(soup.find(class_=re.compile(r"status")))

    return [
        DetailRecord(
            id=item_id,
            title=_SITE_SUFFIX.sub("", title).strip() or title,
            description=description,
            author=author or artist,
            artist=artist,
            status=status.lower() if status else None,
            genres=_leaf_texts(soup, _GENRE_CLASS),
            cover_url=absolutize(cover, context.base_url),
            url=absolutize(_meta_content(soup, "og:url"), context.base_url),
        )
    ]


def detail_document_head(soup: BeautifulSoup, markup: str, context: ExtractionContext) -> list[DetailRecord]:
    """``<title>`` plus OpenGraph and description meta tags."""

    title = _text(soup.find("title")) or _meta_content(soup, "og:title")
    item_id = _detail_id(soup, context)
    if not title or not item_id:
        return []
    return [
        DetailRecord(
            id=item_id,
            title=_SITE_SUFFIX.sub("", title).strip() or title,
            description=_meta_content(soup, "description", "og:description"),
            cover_url=absolutize(_meta_content(soup, "og:image"), context.base_url),
            url=absolutize(_meta_content(soup, "og:url"), context.base_url),
        )
    ]


# ---------------------------------------------------------------------------
# chapters


def _chapter_from_block(block: Tag, context: ExtractionContext) -> ChapterRecord | None:
    href = _first_href(block, _CHAPTER_MARKERS)
    chapter_id = segment_after(href, *_CHAPTER_MARKERS)
    if not chapter_id:
        return None

    block_text = block.get_text(" ", strip=True)
    name = _text(block.find(class_=_TITLE_CLASS))
    number = None
    if name:
        if re.fullmatch(r"[\d.]+", name):
            number, name = name, f"Chapter {name}"
        else:
            found = _CHAPTER_NUMBER.search(name) or _ANY_NUMBER.search(name)
            number = found.group(1) if found else None
    else:
        found = _CHAPTER_NUMBER.search(block_text)
        if found:
            number = found.group(1)
            name = f"Chapter {number}"

    raw_date = _attr(block.find("time", attrs={"datetime": True}), "datetime")
    if not raw_date:
        raw_date = _text(block.find(class_=_DATE_CLASS))
    if not raw_date:
        iso = _ISO_DATE.search(block_text)
        raw_date = iso.group(1) if iso else None

    volume = _VOLUME.search(block_text)
    return ChapterRecord(
        id=chapter_id,
        name=name,
        number=number.rstrip(".") if number else None,
        volume=volume.group(1) if volume else None,
        date=normalize_date(raw_date),
        group=_text(block.find(class_=_GROUP_CLASS)),
        url=absolutize(href, context.base_url),
    )


def _chapters_from(blocks: Iterable[Tag], context: ExtractionContext) -> list[ChapterRecord]:
    records = []
    for block in blocks:
        record = _chapter_from_block(block, context)
        if record is not None:
            records.append(record)
    return records


def chapter_container_blocks(soup: BeautifulSoup, markup: str, context: ExtractionContext) -> list[ChapterRecord]:
    """``<div>`` rows whose class mentions ``episode`` or ``chapter``."""

    candidates = [tag for tag in soup.find_all("div", class_=True) if _has_class(tag, _CHAPTER_BLOCK_CLASS)]
    return _chapters_from(_item_blocks(candidates, _CHAPTER_MARKERS), context)


def chapter_anchors(soup: BeautifulSoup, markup: str, context: ExtractionContext) -> list[ChapterRecord]:
    return _chapters_from(soup.find_all("a", class_=_CHAPTER_CLASS), context)


def chapter_list_items(soup: BeautifulSoup, markup: str, context: ExtractionContext) -> list[ChapterRecord]:
    return _chapters_from(soup.find_all("li", class_=_CHAPTER_CLASS), context)


# ---------------------------------------------------------------------------
# pages


def _pages(urls: Iterable[str | None], context: ExtractionContext) -> list[PageRecord]:
    records: list[PageRecord] = []
    for raw in urls:
        url = absolutize(raw, context.base_url)
        if url:
            records.append(PageRecord(url=url, index=len(records) + 1))
    return records


def pages_from_script_array(soup: BeautifulSoup, markup: str, context: ExtractionContext) -> list[PageRecord]:
    """Inline JavaScript arrays (``images``, ``pageList``, ``"images"``)."""

    for pattern in _SCRIPT_ARRAYS:
        match = pattern.search(markup or "")
        if not match:
            continue
        payload = _TRAILING_COMMA_ARRAY.sub("]", match.group(1))
        payload = _TRAILING_COMMA_OBJECT.sub("}", payload)
        try:
            items = json.loads(payload)
        except json.JSONDecodeError:
            continue
        if not isinstance(items, list) or not items:
            continue
        urls = []
        for item in items:
            if isinstance(item, str):
                urls.append(item)
            elif isinstance(item, dict):
                urls.append(item.get("url") or item.get("src"))
        pages = _pages(urls, context)
        if pages:
            return pages
    return []


def pages_from_page_images(soup: BeautifulSoup, markup: str, context: ExtractionContext) -> list[PageRecord]:
    """``<img>`` tags classed as pages or carrying an ``image`` id."""

    urls = []
    for image in soup.find_all("img"):
        if not (_has_class(image, _PAGE_CLASS) or _IMAGE_ID.search(_attr(image, "id") or "")):
            continue
        urls.append(_attr(image, "src") or _attr(image, "data-src"))
    return _pages(urls, context)


def looks_like_page_scan(url: str) -> bool:
    return "/pages/" in url or "/images/" in url or bool(_PAGE_FILE.search(url))


def pages_from_any_image(soup: BeautifulSoup, markup: str, context: ExtractionContext) -> list[PageRecord]:
    """Every ``<img src>`` whose URL looks like a scanned page."""

    urls = [
        src
        for image in soup.find_all("img", src=True)
        if (src := _attr(image, "src")) and looks_like_page_scan(src)
    ]
    return _pages(urls, context)


__all__ = [
    "chapter_anchors",
    "chapter_container_blocks",
    "chapter_list_items",
    "detail_document_head",
    "detail_page_fields",
    "listing_article_tags",
    "listing_card_anchors",
    "listing_container_blocks",
    "looks_like_page_scan",
    "normalize_date",
    "pages_from_any_image",
    "pages_from_page_images",
    "pages_from_script_array",
    "parse_markup",
]
