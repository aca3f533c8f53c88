"""Reconciles the device store with the remote progress set.

Local saves always happen first; every remote call here is best-effort and
its failure is logged, never raised.
"""

from __future__ import annotations

import logging
import time
from typing import Callable, Optional

from readsync.errors import SyncTransportFailure
from readsync.library.models import ProgressRecord
from readsync.library.store import LocalStore

from .client import ProgressApi

log = logging.getLogger(__name__)

PUSH_THROTTLE_SECONDS = 30.0


class SyncReconciler:
    """One instance per authenticated session; owns its own push throttle."""

    def __init__(
        self,
        store: LocalStore,
        api: ProgressApi,
        throttle_interval: float = PUSH_THROTTLE_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._store = store
        self._api = api
        self._throttle_interval = throttle_interval
        self._clock = clock
        self._last_push: Optional[float] = None

    @property
    def last_push(self) -> Optional[float]:
        return self._last_push

    def is_throttled(self) -> bool:
        if self._last_push is None:
            return False
        return self._clock() - self._last_push < self._throttle_interval

    async def pull_and_merge(self) -> int:
        """Adopt every remote record newer than its local copy.

        Whole records are replaced, bookmarks included. Returns the number of
        records adopted.
        """
        try:
            remote = await self._api.fetch_progress()
        except SyncTransportFailure as e:
            log.warning("Pull failed, keeping local progress: %s", e)
            return 0

        local = self._store.get_all_progress()
        adopted = 0
        for record in remote:
            if record.is_newer_than(local.get(record.book_id)):
                self._store.save_progress(record.book_id, record)
                local[record.book_id] = record
                adopted += 1
        log.info("Merged %d of %d remote progress records", adopted, len(remote))
        return adopted

    async def push_all(self) -> bool:
        records = list(self._store.get_all_progress().values())
        if records:
            try:
                synced = await self._api.push_progress(records)
            except SyncTransportFailure as e:
                log.warning("Full push of %d records failed: %s", len(records), e)
                return False
            log.info("Pushed %d progress records (%d accepted)", len(records), synced)
        self._last_push = self._clock()
        return True

    async def push_one(self, record: ProgressRecord) -> bool:
        """Push a single record unless a push succeeded within the throttle window.

        Returns False when nothing was sent, either throttled or failed.
        """
        if self.is_throttled():
            log.debug("Push for %s throttled", record.book_id)
            return False
        try:
            await self._api.push_progress([record])
        except SyncTransportFailure as e:
            log.warning("Push for %s failed: %s", record.book_id, e)
            return False
        self._last_push = self._clock()
        return True

    async def close(self) -> None:
        await self._api.close()
