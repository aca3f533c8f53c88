"""Shared fixtures for tests."""

from __future__ import annotations

import fnmatch
from pathlib import Path
from typing import Optional

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from readsync.config import AppConfig
from readsync.errors import SyncTransportFailure
from readsync.library.models import ProgressRecord
from readsync.library.store import LocalStore


class FakeClock:
    """Manually advanced clock, callable like ``time.time``."""

    def __init__(self, start: float = 1_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeRedis:
    """In-memory stand-in for ``redis.asyncio.Redis``. Set ``down`` to fail every call."""

    def __init__(self, clock: FakeClock) -> None:
        self._clock = clock
        self._data: dict[str, tuple[str, float]] = {}
        self.down = False
        self.calls: list[str] = []

    def _check(self, op: str) -> None:
        self.calls.append(op)
        if self.down:
            raise RedisConnectionError("Connection refused")

    async def ping(self) -> bool:
        self._check("ping")
        return True

    async def get(self, key: str) -> Optional[str]:
        self._check("get")
        item = self._data.get(key)
        if item is None or item[1] <= self._clock():
            self._data.pop(key, None)
            return None
        return item[0]

    async def setex(self, key: str, ttl: int, value: str) -> bool:
        self._check("setex")
        self._data[key] = (value, self._clock() + ttl)
        return True

    async def delete(self, key: str) -> int:
        self._check("delete")
        return 1 if self._data.pop(key, None) else 0

    async def scan_iter(self, match: Optional[str] = None):
        self._check("scan")
        for key in list(self._data):
            if match is None or fnmatch.fnmatchcase(key, match):
                yield key

    async def aclose(self) -> None:
        pass

    def raw(self, key: str) -> Optional[str]:
        item = self._data.get(key)
        return item[0] if item else None


class FakeProgressApi:
    """Records pushes and serves a canned remote set. Set ``fail`` to raise."""

    def __init__(self, remote: Optional[list[ProgressRecord]] = None) -> None:
        self.remote = remote or []
        self.pushed: list[list[ProgressRecord]] = []
        self.fail = False
        self.closed = False

    async def fetch_progress(self) -> list[ProgressRecord]:
        if self.fail:
            raise SyncTransportFailure("Sync failed: ConnectError")
        return list(self.remote)

    async def push_progress(self, records: list[ProgressRecord]) -> int:
        if self.fail:
            raise SyncTransportFailure("Sync failed: HTTP 500")
        self.pushed.append(list(records))
        return len(records)

    async def close(self) -> None:
        self.closed = True


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def fake_redis(clock: FakeClock) -> FakeRedis:
    return FakeRedis(clock)


@pytest.fixture
def api() -> FakeProgressApi:
    return FakeProgressApi()


@pytest.fixture
def store(tmp_path: Path) -> LocalStore:
    local = LocalStore(tmp_path / "test.db")
    yield local
    local.close()


@pytest.fixture
def config(tmp_path: Path) -> AppConfig:
    return AppConfig(
        data_dir=tmp_path / "data",
        config_dir=tmp_path / "config",
    )
