"""Tests for the reading session facade."""

from __future__ import annotations

import logging

import pytest

from readsync.app import ReadingSession, setup_logging
from readsync.cache.tiered import TieredCache
from readsync.library.models import ProgressRecord
from readsync.library.store import LocalStore
from readsync.server.progress import ProgressRepository
from readsync.sync.reconciler import SyncReconciler


class RepositoryApi:
    """Serves one user's progress straight from a server-side repository."""

    def __init__(self, repo: ProgressRepository, user_id: str) -> None:
        self.repo = repo
        self.user_id = user_id

    async def fetch_progress(self) -> list[ProgressRecord]:
        return await self.repo.list_user_progress(self.user_id)

    async def push_progress(self, records: list[ProgressRecord]) -> int:
        return await self.repo.sync_user_progress(self.user_id, records)

    async def close(self) -> None:
        pass


@pytest.fixture
def session(store, api, clock) -> ReadingSession:
    return ReadingSession(store, SyncReconciler(store, api, throttle_interval=30, clock=clock))


class TestReadingSession:
    @pytest.mark.asyncio
    async def test_record_page_saves_before_sync(self, session, store, api):
        record = session.record_page("b1", 25, 100)
        assert record is not None
        # Durable immediately; the worker has not run yet.
        assert store.get_progress("b1").current_page == 25
        assert api.pushed == []

        await session.close()
        assert api.pushed[0][0].book_id == "b1"
        assert api.closed is True

    @pytest.mark.asyncio
    async def test_record_page_without_worker_queues_nothing(self, session, store):
        session.record_page("b1", 5, 100)
        session.add_bookmark("b1", 5)
        assert session.worker.running is False
        assert session.worker.pending == 0
        assert store.get_progress("b1") is not None
        await session.close()

    @pytest.mark.asyncio
    async def test_record_page_ignores_unknown_length(self, session, store):
        assert session.record_page("b1", 1, 0) is None
        assert store.get_progress("b1") is None
        await session.close()

    @pytest.mark.asyncio
    async def test_record_page_keeps_bookmarks(self, session, store):
        session.add_bookmark("b1", 3, note="start")
        record = session.record_page("b1", 10, 100)
        assert [b.note for b in record.bookmarks] == ["start"]
        await session.close()

    @pytest.mark.asyncio
    async def test_page_turns_throttled(self, session, api):
        session.start()
        for page in range(1, 10):
            session.record_page("b1", page, 100)
        await session.worker.join()
        assert len(api.pushed) == 1
        await session.close()
        # Final full push carries the latest page.
        assert api.pushed[-1][0].current_page == 9

    @pytest.mark.asyncio
    async def test_login_merges_then_pushes(self, session, store, api):
        store.save_progress(
            "local", ProgressRecord(book_id="local", last_read="2025-01-01T00:00:00Z")
        )
        api.remote = [ProgressRecord(book_id="remote", current_page=5, total_pages=10)]
        session.login()
        await session.worker.join()
        assert store.get_progress("remote").current_page == 5
        assert {r.book_id for r in api.pushed[0]} == {"local", "remote"}
        await session.close()

    @pytest.mark.asyncio
    async def test_register_pushes_only(self, session, store, api):
        store.save_progress("local", ProgressRecord(book_id="local"))
        api.remote = [ProgressRecord(book_id="remote")]
        session.register()
        await session.worker.join()
        assert store.get_progress("remote") is None
        assert len(api.pushed) == 1
        await session.close()

    @pytest.mark.asyncio
    async def test_restore_pulls_only(self, session, store, api):
        api.remote = [ProgressRecord(book_id="remote")]
        session.restore()
        await session.worker.join()
        assert store.get_progress("remote") is not None
        assert api.pushed == []
        await session.close()

    @pytest.mark.asyncio
    async def test_offline_sync_does_not_affect_local(self, session, store, api):
        api.fail = True
        session.login()
        session.record_page("b1", 7, 70)
        await session.close()
        assert store.get_progress("b1").percentage == 10

    @pytest.mark.asyncio
    async def test_remove_bookmark(self, session, store):
        bm = session.add_bookmark("b1", 3)
        session.remove_bookmark("b1", bm.id)
        assert store.get_bookmarks("b1") == []
        await session.close()


class TestTwoDevices:
    @pytest.mark.asyncio
    async def test_stale_device_does_not_overwrite_newer_progress(
        self, tmp_path, store, clock
    ):
        repo = ProgressRepository(TieredCache(clock=clock))

        device_a = LocalStore(tmp_path / "device-a.db")
        try:
            session_a = ReadingSession(
                device_a, SyncReconciler(device_a, RepositoryApi(repo, "u1"), clock=clock)
            )
            session_a.record_page("x", 90, 100)
            await session_a.close()
        finally:
            device_a.close()

        # Device B last read x long ago and has not synced since.
        store.save_progress(
            "x",
            ProgressRecord(book_id="x", current_page=10, total_pages=100,
                           last_read="2025-01-01T00:00:00Z"),
        )
        session_b = ReadingSession(
            store, SyncReconciler(store, RepositoryApi(repo, "u1"), clock=clock)
        )
        session_b.record_page("y", 3, 100)
        await session_b.close()

        remote = {r.book_id: r for r in await repo.list_user_progress("u1")}
        assert remote["x"].current_page == 90
        assert remote["y"].current_page == 3
        assert store.get_progress("x").current_page == 90


def test_setup_logging(config):
    setup_logging(config)
    logger = logging.getLogger("readsync")
    try:
        logging.getLogger("readsync.sync").warning("hello")
        for h in logger.handlers:
            h.flush()
        assert "hello" in config.log_path.read_text(encoding="utf-8")
    finally:
        for h in list(logger.handlers):
            logger.removeHandler(h)
            h.close()
