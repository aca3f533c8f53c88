"""ReadSync - reading progress persistence and cross-device sync."""

from __future__ import annotations

import asyncio
import logging
import sys
from typing import Optional

from readsync.config import AppConfig, load_config
from readsync.library.models import Bookmark, ProgressRecord, utcnow
from readsync.library.store import LocalStore
from readsync.sync.client import ProgressApi
from readsync.sync.reconciler import SyncReconciler
from readsync.sync.worker import SyncWorker


class ReadingSession:
    """Progress tracking for one signed-in reader on this device.

    Page turns are saved locally right away; syncing runs on a background
    worker and never blocks the caller.
    """

    def __init__(self, store: LocalStore, reconciler: SyncReconciler) -> None:
        self.store = store
        self.reconciler = reconciler
        self.worker = SyncWorker(reconciler)

    @classmethod
    def from_config(cls, config: AppConfig, store: LocalStore) -> ReadingSession:
        api = ProgressApi.from_config(config)
        reconciler = SyncReconciler(
            store, api, throttle_interval=config.push_throttle_seconds
        )
        return cls(store, reconciler)

    def start(self) -> None:
        """Begin background syncing. Needs a running event loop."""
        self.worker.start()

    def login(self) -> None:
        """Two-way resync after signing in: merge remote, then push everything."""
        self.start()
        self.worker.pull()
        self.worker.push_all()

    def register(self) -> None:
        """A new account has nothing remote yet; upload what the device has."""
        self.start()
        self.worker.push_all()

    def restore(self) -> None:
        """Resume a saved sign-in: pull remote changes only."""
        self.start()
        self.worker.pull()

    def record_page(
        self, book_id: str, current_page: int, total_pages: int
    ) -> Optional[ProgressRecord]:
        if total_pages <= 0:
            return None
        existing = self.store.get_progress(book_id)
        record = ProgressRecord(
            book_id=book_id,
            current_page=current_page,
            total_pages=total_pages,
            last_read=utcnow(),
            bookmarks=list(existing.bookmarks) if existing else [],
        )
        self.store.save_progress(book_id, record)
        self._queue_push(record)
        return record

    def add_bookmark(self, book_id: str, page: int, note: Optional[str] = None) -> Bookmark:
        created = utcnow()
        bookmark = Bookmark(
            id=Bookmark.make_id(created), page=page, note=note, created_at=created
        )
        record = self.store.save_bookmark(book_id, bookmark)
        self._queue_push(record)
        return bookmark

    def remove_bookmark(self, book_id: str, bookmark_id: str) -> None:
        self.store.remove_bookmark(book_id, bookmark_id)
        record = self.store.get_progress(book_id)
        if record is not None:
            self._queue_push(record)

    def _queue_push(self, record: ProgressRecord) -> None:
        # Saved locally either way; the full push on close carries it up.
        if self.worker.running:
            self.worker.push_one(record)

    async def close(self) -> None:
        """Merge remote changes, push the result, then stop syncing.

        Pulling first means a stale local record is replaced by a newer remote
        copy before the full push carries it up.
        """
        self.start()
        self.worker.pull()
        self.worker.push_all()
        await self.worker.join()
        await self.worker.stop()
        await self.reconciler.close()


def setup_logging(config: AppConfig) -> None:
    handler = logging.FileHandler(config.log_path, encoding="utf-8")
    handler.setFormatter(
        logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s")
    )
    root = logging.getLogger("readsync")
    root.setLevel(logging.DEBUG)
    root.addHandler(handler)


async def _resync(config: AppConfig) -> int:
    store = LocalStore(config.db_path)
    try:
        session = ReadingSession.from_config(config, store)
        await session.close()
        print(f"Synced {len(store.get_all_progress())} books")
        return 0
    finally:
        store.close()


def main() -> None:
    config = load_config()
    setup_logging(config)

    if not config.is_authenticated:
        print("READSYNC_API_TOKEN is not set", file=sys.stderr)
        sys.exit(1)

    sys.exit(asyncio.run(_resync(config)))


if __name__ == "__main__":
    main()
