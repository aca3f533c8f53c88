"""SQLite-backed device store for reading progress, bookmarks, settings and recent books."""

from __future__ import annotations

import json
import logging
import secrets
import sqlite3
import time
from pathlib import Path
from typing import Any, Optional

from readsync.errors import LocalStorageFailure

from .models import (
    Bookmark,
    ProgressRecord,
    ReaderSettings,
    RecentBook,
    utcnow,
)

log = logging.getLogger(__name__)

KEY_PREFIX = "readsync_"
PROGRESS_KEY = f"{KEY_PREFIX}progress_"
SETTINGS_KEY = f"{KEY_PREFIX}settings"
SESSION_KEY = f"{KEY_PREFIX}session"
AUTH_TOKEN_KEY = f"{KEY_PREFIX}auth_token"
RECENT_BOOKS_KEY = f"{KEY_PREFIX}recent_books"

RECENT_BOOKS_LIMIT = 20

_SCHEMA = """
CREATE TABLE IF NOT EXISTS kv (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL,
    updated_at REAL NOT NULL
);
"""


def _escape_like(prefix: str) -> str:
    return prefix.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class LocalStore:
    """Per-device key/value store. Every key lives under ``KEY_PREFIX``.

    All methods are synchronous. ``sqlite3.Error`` and corrupt stored payloads
    surface as ``LocalStorageFailure``.
    """

    def __init__(self, db_path: Path) -> None:
        self._db_path = db_path
        try:
            self._conn = sqlite3.connect(str(db_path), check_same_thread=False)
            self._conn.row_factory = sqlite3.Row
            self._conn.execute("PRAGMA journal_mode=WAL")
            self._init_schema()
        except sqlite3.Error as e:
            raise LocalStorageFailure(f"Cannot open local store {db_path}: {e}") from e

    def _init_schema(self) -> None:
        self._conn.executescript(_SCHEMA)
        self._conn.commit()

    def close(self) -> None:
        self._conn.close()

    # ── Raw key/value ──────────────────────────────────────

    def _read(self, key: str) -> Optional[Any]:
        try:
            row = self._conn.execute(
                "SELECT value FROM kv WHERE key = ?", (key,)
            ).fetchone()
        except sqlite3.Error as e:
            raise LocalStorageFailure(f"Read failed for {key}: {e}") from e
        if not row:
            return None
        try:
            return json.loads(row["value"])
        except ValueError as e:
            raise LocalStorageFailure(f"Corrupt value stored under {key}") from e

    def _write(self, key: str, value: Any) -> None:
        self._write_many([(key, value)])

    def _write_many(self, items: list[tuple[str, Any]]) -> None:
        """Write every item in one transaction: all of them land or none do."""
        now = time.time()
        rows = [(key, json.dumps(value), now) for key, value in items]
        try:
            with self._conn:
                self._conn.executemany(
                    "INSERT OR REPLACE INTO kv (key, value, updated_at) VALUES (?, ?, ?)",
                    rows,
                )
        except sqlite3.Error as e:
            keys = ", ".join(key for key, _ in items)
            raise LocalStorageFailure(f"Write failed for {keys}: {e}") from e

    def _remove(self, key: str) -> None:
        try:
            self._conn.execute("DELETE FROM kv WHERE key = ?", (key,))
            self._conn.commit()
        except sqlite3.Error as e:
            raise LocalStorageFailure(f"Delete failed for {key}: {e}") from e

    def _scan(self, prefix: str) -> list[tuple[str, Any]]:
        try:
            rows = self._conn.execute(
                "SELECT key, value FROM kv WHERE key LIKE ? ESCAPE '\\'",
                (_escape_like(prefix) + "%",),
            ).fetchall()
        except sqlite3.Error as e:
            raise LocalStorageFailure(f"Scan failed for {prefix}: {e}") from e
        result = []
        for r in rows:
            try:
                result.append((r["key"], json.loads(r["value"])))
            except ValueError as e:
                raise LocalStorageFailure(f"Corrupt value stored under {r['key']}") from e
        return result

    # ── Reading Progress ───────────────────────────────────

    def get_progress(self, book_id: str) -> Optional[ProgressRecord]:
        data = self._read(f"{PROGRESS_KEY}{book_id}")
        if data is None:
            return None
        return self._to_record(f"{PROGRESS_KEY}{book_id}", data)

    def save_progress(self, book_id: str, record: ProgressRecord) -> None:
        """Persist ``record`` and count the book as just read in recent books."""
        if record.book_id != book_id:
            raise ValueError(
                f"Record for {record.book_id!r} saved under {book_id!r}"
            )
        recent = self._recent_for_update()
        existing = next((r for r in recent if r.book_id == book_id), None)
        if existing is not None:
            recent.remove(existing)
        else:
            existing = RecentBook(book_id=book_id)
        existing.last_read = record.last_read
        existing.progress = record.percentage
        recent.insert(0, existing)
        self._write_many(
            [
                (f"{PROGRESS_KEY}{book_id}", record.to_dict()),
                (RECENT_BOOKS_KEY, self._recent_payload(recent)),
            ]
        )

    def get_all_progress(self) -> dict[str, ProgressRecord]:
        progress: dict[str, ProgressRecord] = {}
        for key, data in self._scan(PROGRESS_KEY):
            book_id = key[len(PROGRESS_KEY):]
            progress[book_id] = self._to_record(key, data)
        return progress

    def clear_progress(self, book_id: str) -> None:
        self._remove(f"{PROGRESS_KEY}{book_id}")

    @staticmethod
    def _to_record(key: str, data: Any) -> ProgressRecord:
        try:
            return ProgressRecord.from_dict(data)
        except (ValueError, AttributeError) as e:
            raise LocalStorageFailure(f"Corrupt progress record under {key}") from e

    # ── Bookmarks ──────────────────────────────────────────

    def get_bookmarks(self, book_id: str) -> list[Bookmark]:
        record = self.get_progress(book_id)
        return list(record.bookmarks) if record else []

    def save_bookmark(self, book_id: str, bookmark: Bookmark) -> ProgressRecord:
        """Add or replace a bookmark (matched by id) on the book's record.

        The record's ``last_read`` is bumped so the change wins the next merge.
        """
        record = self.get_progress(book_id)
        if record is None:
            record = ProgressRecord(book_id=book_id, current_page=max(bookmark.page, 1))
        bookmarks = [b for b in record.bookmarks if b.id != bookmark.id]
        bookmarks.append(bookmark)
        record.bookmarks = bookmarks
        record.last_read = utcnow()
        self._write(f"{PROGRESS_KEY}{book_id}", record.to_dict())
        return record

    def remove_bookmark(self, book_id: str, bookmark_id: str) -> None:
        record = self.get_progress(book_id)
        if record is None:
            return
        remaining = [b for b in record.bookmarks if b.id != bookmark_id]
        if len(remaining) == len(record.bookmarks):
            return
        record.bookmarks = remaining
        record.last_read = utcnow()
        self._write(f"{PROGRESS_KEY}{book_id}", record.to_dict())

    # ── Reader Settings ────────────────────────────────────

    def get_settings(self) -> ReaderSettings:
        data = self._read(SETTINGS_KEY)
        if not isinstance(data, dict):
            return ReaderSettings()
        try:
            return ReaderSettings.from_dict(data)
        except (ValueError, TypeError) as e:
            raise LocalStorageFailure("Corrupt reader settings") from e

    def save_settings(self, settings: ReaderSettings) -> None:
        self._write(SETTINGS_KEY, settings.to_dict())

    # ── Recent Books ───────────────────────────────────────

    def get_recent_books(self) -> list[RecentBook]:
        data = self._read(RECENT_BOOKS_KEY) or []
        try:
            return [RecentBook.from_dict(d) for d in data]
        except (KeyError, ValueError, TypeError) as e:
            raise LocalStorageFailure("Corrupt recent books list") from e

    def add_to_recent_books(self, book_id: str, title: str = "") -> None:
        recent = self.get_recent_books()
        existing = next((r for r in recent if r.book_id == book_id), None)
        if existing is not None:
            recent.remove(existing)
            existing.last_read = utcnow()
            if title:
                existing.title = title
        else:
            existing = RecentBook(book_id=book_id, title=title)
        recent.insert(0, existing)
        self._save_recent(recent)

    def _recent_for_update(self) -> list[RecentBook]:
        """Recent books to rewrite; an unreadable list is replaced, not fatal."""
        try:
            return self.get_recent_books()
        except LocalStorageFailure as e:
            log.warning("Discarding unreadable recent books list: %s", e)
            return []

    def _save_recent(self, recent: list[RecentBook]) -> None:
        self._write(RECENT_BOOKS_KEY, self._recent_payload(recent))

    @staticmethod
    def _recent_payload(recent: list[RecentBook]) -> list[dict]:
        return [r.to_dict() for r in recent[:RECENT_BOOKS_LIMIT]]

    # ── Session & Credentials ──────────────────────────────

    def save_session(self, session_id: str) -> None:
        self._write(SESSION_KEY, session_id)

    def get_session(self) -> Optional[str]:
        return self._read(SESSION_KEY)

    def clear_session(self) -> None:
        self._remove(SESSION_KEY)

    @staticmethod
    def generate_session_id() -> str:
        return f"session_{int(time.time() * 1000)}_{secrets.token_hex(6)}"

    def save_auth_token(self, token: str) -> None:
        self._write(AUTH_TOKEN_KEY, token)

    def get_auth_token(self) -> Optional[str]:
        return self._read(AUTH_TOKEN_KEY)

    def clear_auth_token(self) -> None:
        self._remove(AUTH_TOKEN_KEY)

    # ── Maintenance ────────────────────────────────────────

    def clear_all(self) -> int:
        """Delete every key under ``KEY_PREFIX``. Returns the number removed."""
        try:
            cur = self._conn.execute(
                "DELETE FROM kv WHERE key LIKE ? ESCAPE '\\'",
                (_escape_like(KEY_PREFIX) + "%",),
            )
            self._conn.commit()
        except sqlite3.Error as e:
            raise LocalStorageFailure(f"Clear failed: {e}") from e
        log.info("Cleared %d local entries", cur.rowcount)
        return cur.rowcount
