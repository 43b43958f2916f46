"""Structured records recovered from remote markup or JSON."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field, fields
from enum import Enum
from typing import Any, TypeVar

_R = TypeVar("_R", bound="_Record")


class RecordKind(str, Enum):
    LISTING = "listing"
    DETAIL = "detail"
    CHAPTERS = "chapters"
    PAGES = "pages"


@dataclass(slots=True, frozen=True)
class ExtractionContext:
    """Where the markup came from and how much of it the caller wants."""

    base_url: str | None = None
    item_id: str | None = None
    limit: int | None = None


class _Record:
    __slots__ = ()

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)  # type: ignore[call-overload]

    @classmethod
    def from_dict(cls: type[_R], data: dict[str, Any]) -> _R:
        known = {f.name for f in fields(cls)}  # type: ignore[arg-type]
        return cls(**{key: value for key, value in data.items() if key in known})

    @property
    def identity(self) -> str | None:
        return getattr(self, "id", None)


@dataclass(slots=True)
class ListingRecord(_Record):
    """One entry of a search, popular or latest listing."""

    id: str
    title: str | None = None
    cover_url: str | None = None
    chapter_count_hint: int | None = None
    url: str | None = None


@dataclass(slots=True)
class DetailRecord(_Record):
    """Metadata for a single series."""

    id: str
    title: str | None = None
    description: str | None = None
    author: str | None = None
    artist: str | None = None
    status: str | None = None
    genres: list[str] = field(default_factory=list)
    cover_url: str | None = None
    content_rating: str | None = None
    url: str | None = None


@dataclass(slots=True)
class ChapterRecord(_Record):
    id: str
    name: str | None = None
    # Kept as text: "10.5" and "Extra" both occur upstream.
    number: str | None = None
    volume: str | None = None
    date: str | None = None
    group: str | None = None
    page_count: int | None = None
    url: str | None = None

    def numeric_order(self) -> float:
        try:
            return float(self.number) if self.number is not None else 0.0
        except ValueError:
            return 0.0


@dataclass(slots=True)
class PageRecord(_Record):
    url: str
    index: int

    @property
    def identity(self) -> str | None:
        return self.url or None


Record = ListingRecord | DetailRecord | ChapterRecord | PageRecord


__all__ = [
    "ChapterRecord",
    "DetailRecord",
    "ExtractionContext",
    "ListingRecord",
    "PageRecord",
    "Record",
    "RecordKind",
]
