"""Server-side progress storage on top of the tiered cache."""

from __future__ import annotations

import logging
from typing import Iterable, Optional

from readsync.cache import keys
from readsync.cache.tiered import TieredCache
from readsync.library.models import ProgressRecord

log = logging.getLogger(__name__)


class ProgressRepository:
    def __init__(self, cache: TieredCache) -> None:
        self._cache = cache

    # ── Authenticated, per user ────────────────────────────

    async def list_user_progress(self, user_id: str) -> list[ProgressRecord]:
        entries = await self._cache.get_by_pattern(keys.user_progress_pattern(user_id))
        records = []
        for key, data in entries.items():
            try:
                records.append(ProgressRecord.from_dict(data))
            except ValueError:
                log.warning("Skipping malformed progress entry %s", key)
        records.sort(key=lambda r: r.last_read, reverse=True)
        return records

    async def sync_user_progress(
        self, user_id: str, records: Iterable[ProgressRecord]
    ) -> int:
        """Upsert each record by book id unless the stored copy is as new or newer.

        Returns how many records were stored.
        """
        count = 0
        for record in records:
            key = keys.user_progress_key(user_id, record.book_id)
            existing = await self._load(key)
            if not record.is_newer_than(existing):
                log.debug(
                    "Kept stored progress for %s, incoming record is older", record.book_id
                )
                continue
            await self._cache.set(
                key,
                record.to_dict(),
                keys.USER_PROGRESS_TTL,
            )
            count += 1
        log.info("Synced %d progress records for user %s", count, user_id)
        return count

    async def _load(self, key: str) -> Optional[ProgressRecord]:
        data = await self._cache.get(key)
        if data is None:
            return None
        try:
            return ProgressRecord.from_dict(data)
        except ValueError:
            log.warning("Replacing malformed progress entry %s", key)
            return None

    # ── Single device, no account ──────────────────────────

    async def save_device_progress(self, record: ProgressRecord) -> None:
        await self._cache.set(
            keys.device_progress_key(record.book_id),
            record.to_dict(),
            keys.DEVICE_PROGRESS_TTL,
        )

    async def get_device_progress(self, book_id: str) -> Optional[ProgressRecord]:
        data = await self._cache.get(keys.device_progress_key(book_id))
        if data is None:
            return None
        try:
            return ProgressRecord.from_dict(data)
        except ValueError:
            log.warning("Malformed device progress for %s", book_id)
            return None
