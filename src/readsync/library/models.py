"""Data models for reading progress, bookmarks and reader preferences."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def parse_timestamp(value: Any) -> datetime:
    """Parse an ISO-8601 string (``Z`` suffix allowed) into an aware datetime."""
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, str):
        raw = value.strip()
        if raw.endswith("Z"):
            raw = raw[:-1] + "+00:00"
        dt = datetime.fromisoformat(raw)
    else:
        raise ValueError(f"Unsupported timestamp: {value!r}")
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def format_timestamp(dt: datetime) -> str:
    dt = dt.astimezone(timezone.utc)
    return dt.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def compute_percentage(current_page: int, total_pages: int) -> int:
    """Whole-number percentage, halves rounded up. Zero when page count is unknown."""
    if total_pages <= 0:
        return 0
    return int(math.floor(current_page / total_pages * 100 + 0.5))


@dataclass
class Bookmark:
    id: str
    page: int
    note: Optional[str] = None
    created_at: datetime = field(default_factory=utcnow)

    @staticmethod
    def make_id(created_at: Optional[datetime] = None) -> str:
        ts = created_at or utcnow()
        return f"bookmark_{int(ts.timestamp() * 1000)}"

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "id": self.id,
            "page": self.page,
            "createdAt": format_timestamp(self.created_at),
        }
        if self.note is not None:
            data["note"] = self.note
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Bookmark:
        try:
            return cls(
                id=str(data["id"]),
                page=int(data["page"]),
                note=data.get("note"),
                created_at=parse_timestamp(data["createdAt"]),
            )
        except (KeyError, TypeError) as e:
            raise ValueError(f"Invalid bookmark: {data!r}") from e


@dataclass
class ProgressRecord:
    """Position in one book. ``percentage`` is always derived, never stored."""

    book_id: str
    current_page: int = 1
    total_pages: int = 0
    last_read: datetime = field(default_factory=utcnow)
    bookmarks: list[Bookmark] = field(default_factory=list)

    def __post_init__(self) -> None:
        if not self.book_id:
            raise ValueError("book_id is required")
        if self.current_page < 1:
            raise ValueError(f"current_page must be >= 1, got {self.current_page}")
        if self.total_pages < 0:
            raise ValueError(f"total_pages must be >= 0, got {self.total_pages}")
        self.last_read = parse_timestamp(self.last_read)

    @property
    def percentage(self) -> int:
        return compute_percentage(self.current_page, self.total_pages)

    def is_newer_than(self, other: Optional[ProgressRecord]) -> bool:
        return other is None or self.last_read > other.last_read

    def to_dict(self) -> dict[str, Any]:
        return {
            "bookId": self.book_id,
            "currentPage": self.current_page,
            "totalPages": self.total_pages,
            "percentage": self.percentage,
            "lastRead": format_timestamp(self.last_read),
            "bookmarks": [b.to_dict() for b in self.bookmarks],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ProgressRecord:
        # Any incoming "percentage" is ignored; it is recomputed on demand.
        try:
            return cls(
                book_id=str(data["bookId"]),
                current_page=int(data["currentPage"]),
                total_pages=int(data.get("totalPages", 0)),
                last_read=parse_timestamp(data["lastRead"]),
                bookmarks=[Bookmark.from_dict(b) for b in data.get("bookmarks") or []],
            )
        except (KeyError, TypeError) as e:
            raise ValueError(f"Invalid progress record: {data!r}") from e


@dataclass
class RecentBook:
    book_id: str
    title: str = ""
    last_read: datetime = field(default_factory=utcnow)
    progress: int = 0  # percentage

    def to_dict(self) -> dict[str, Any]:
        return {
            "bookId": self.book_id,
            "title": self.title,
            "lastRead": format_timestamp(self.last_read),
            "progress": self.progress,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> RecentBook:
        return cls(
            book_id=str(data["bookId"]),
            title=data.get("title", ""),
            last_read=parse_timestamp(data["lastRead"]),
            progress=int(data.get("progress", 0)),
        )


@dataclass
class ReaderSettings:
    mode: str = "day"  # day, night, sepia
    font_size: int = 14
    font_family: str = "serif"  # serif, sans, georgia, literata
    line_height: float = 1.6
    margin_size: str = "medium"  # small, medium, large
    reader_mode: str = "flip"  # flip, scroll

    def to_dict(self) -> dict[str, Any]:
        return {
            "mode": self.mode,
            "fontSize": self.font_size,
            "fontFamily": self.font_family,
            "lineHeight": self.line_height,
            "marginSize": self.margin_size,
            "readerMode": self.reader_mode,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ReaderSettings:
        """Build settings from stored data, filling keys older versions lacked."""
        defaults = cls()
        return cls(
            mode=data.get("mode", defaults.mode),
            font_size=int(data.get("fontSize", defaults.font_size)),
            font_family=data.get("fontFamily", defaults.font_family),
            line_height=float(data.get("lineHeight", defaults.line_height)),
            margin_size=data.get("marginSize", defaults.margin_size),
            reader_mode=data.get("readerMode") or defaults.reader_mode,
        )
