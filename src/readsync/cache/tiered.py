"""Redis-backed key/value cache with an in-process fallback.

Every operation tries Redis first. When Redis fails, or has been marked
unreachable, the same operation runs against a local map and its result is
returned. Callers never see a backend error: reads return ``None`` and deletes
quietly do nothing.
"""

from __future__ import annotations

import asyncio
import fnmatch
import json
import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Optional

import redis.asyncio as aioredis
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import RedisError
from redis.exceptions import TimeoutError as RedisTimeoutError

from readsync.config import AppConfig
from readsync.errors import BackingStoreUnavailable

from . import keys

log = logging.getLogger(__name__)

DEFAULT_SWEEP_INTERVAL = 60.0

_CONNECTION_ERRORS = (RedisConnectionError, RedisTimeoutError, OSError)


@dataclass
class CacheEntry:
    key: str
    value: str  # JSON payload
    expires_at: float

    def is_expired(self, now: float) -> bool:
        return self.expires_at <= now


class TieredCache:
    def __init__(
        self,
        url: Optional[str] = None,
        *,
        client: Optional[aioredis.Redis] = None,
        sweep_interval: float = DEFAULT_SWEEP_INTERVAL,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._url = url
        self._client = client
        self._connected = False
        self._clock = clock
        self._sweep_interval = sweep_interval
        self._sweep_task: Optional[asyncio.Task] = None
        self._fallback: dict[str, CacheEntry] = {}
        self._lock = threading.Lock()

    @classmethod
    def from_config(cls, config: AppConfig) -> TieredCache:
        return cls(config.redis_url, sweep_interval=config.sweep_interval_seconds)

    @property
    def connected(self) -> bool:
        return self._connected

    @property
    def fallback_size(self) -> int:
        with self._lock:
            return len(self._fallback)

    # ── Lifecycle ──────────────────────────────────────────

    async def connect(self) -> bool:
        """Create the Redis client if needed and verify it answers."""
        if self._client is None:
            if not self._url:
                log.info("No Redis URL configured, using in-memory cache")
                return False
            self._client = aioredis.Redis.from_url(self._url, decode_responses=True)
        try:
            await self._client.ping()
        except (RedisError, OSError) as e:
            log.warning("Could not connect to Redis, using in-memory cache: %s", e)
            self._connected = False
            return False
        if not self._connected:
            log.info("Connected to Redis")
        self._connected = True
        return True

    async def reconnect(self) -> bool:
        return await self.connect()

    def start(self) -> None:
        """Begin the periodic fallback sweep on the running event loop."""
        if self._sweep_task is None or self._sweep_task.done():
            self._sweep_task = asyncio.create_task(self._sweep_loop())

    async def close(self) -> None:
        if self._sweep_task:
            self._sweep_task.cancel()
            try:
                await self._sweep_task
            except asyncio.CancelledError:
                pass
            self._sweep_task = None
        if self._client is not None:
            try:
                await self._client.aclose()
            except (RedisError, OSError) as e:
                log.debug("Error closing Redis client: %s", e)
            self._client = None
        self._connected = False

    # ── Core operations ────────────────────────────────────

    async def get(self, key: str) -> Optional[Any]:
        if self._primary_ready():
            try:
                data = await self._primary_get(key)
                return json.loads(data) if data is not None else None
            except BackingStoreUnavailable:
                pass

        with self._lock:
            entry = self._fallback.get(key)
            if entry is None:
                return None
            if entry.is_expired(self._clock()):
                del self._fallback[key]
                return None
            data = entry.value
        return json.loads(data)

    async def set(self, key: str, value: Any, ttl: int = keys.BOOK_TTL) -> None:
        try:
            data = json.dumps(value)
        except (TypeError, ValueError) as e:
            log.error("Cannot cache unserializable value for %s: %s", key, e)
            return
        ttl = max(int(ttl), 1)

        if self._primary_ready():
            try:
                await self._primary_call("set", self._client.setex(key, ttl, data))
            except BackingStoreUnavailable:
                pass

        # The local copy only answers once Redis is unreachable.
        with self._lock:
            self._fallback[key] = CacheEntry(key, data, self._clock() + ttl)

    async def delete(self, key: str) -> None:
        if self._primary_ready():
            try:
                await self._primary_call("delete", self._client.delete(key))
            except BackingStoreUnavailable:
                pass
        with self._lock:
            self._fallback.pop(key, None)

    async def get_by_pattern(self, pattern: str) -> dict[str, Any]:
        """Return every live ``key -> value`` whose key matches a glob pattern."""
        if self._primary_ready():
            try:
                return await self._primary_scan(pattern)
            except BackingStoreUnavailable:
                pass

        now = self._clock()
        found: dict[str, str] = {}
        with self._lock:
            for key, entry in self._fallback.items():
                if not entry.is_expired(now) and fnmatch.fnmatchcase(key, pattern):
                    found[key] = entry.value
        return {k: json.loads(v) for k, v in found.items()}

    def sweep(self) -> int:
        """Evict expired fallback entries. Returns how many were removed."""
        now = self._clock()
        with self._lock:
            expired = [k for k, e in self._fallback.items() if e.is_expired(now)]
            for k in expired:
                del self._fallback[k]
        if expired:
            log.debug("Swept %d expired cache entries", len(expired))
        return len(expired)

    # ── Domain helpers ─────────────────────────────────────

    async def set_book_cache(self, book_id: str, data: Any) -> None:
        await self.set(keys.book_key(book_id), data, keys.BOOK_TTL)

    async def get_book_cache(self, book_id: str) -> Optional[Any]:
        return await self.get(keys.book_key(book_id))

    async def set_search_cache(self, query: str, data: Any) -> None:
        await self.set(keys.search_key(query), data, keys.SEARCH_TTL)

    async def get_search_cache(self, query: str) -> Optional[Any]:
        return await self.get(keys.search_key(query))

    # ── Internals ──────────────────────────────────────────

    def _primary_ready(self) -> bool:
        return self._connected and self._client is not None

    async def _primary_get(self, key: str) -> Optional[str]:
        data = await self._primary_call("get", self._client.get(key))
        if data is not None:
            try:
                json.loads(data)
            except ValueError as e:
                log.warning("Undecodable Redis value for %s", key)
                raise BackingStoreUnavailable(f"Bad payload for {key}") from e
        return data

    async def _primary_scan(self, pattern: str) -> dict[str, Any]:
        try:
            found: dict[str, Any] = {}
            async for key in self._client.scan_iter(match=pattern):
                data = await self._client.get(key)
                if data is not None:
                    found[key] = json.loads(data)
            return found
        except _CONNECTION_ERRORS as e:
            self._mark_unreachable("scan", e)
            raise BackingStoreUnavailable(str(e)) from e
        except (RedisError, ValueError) as e:
            log.warning("Redis scan failed, using in-memory cache: %s", e)
            raise BackingStoreUnavailable(str(e)) from e

    async def _primary_call(self, op: str, awaitable: Any) -> Any:
        try:
            return await awaitable
        except _CONNECTION_ERRORS as e:
            self._mark_unreachable(op, e)
            raise BackingStoreUnavailable(str(e)) from e
        except RedisError as e:
            log.warning("Redis %s failed, using in-memory cache: %s", op, e)
            raise BackingStoreUnavailable(str(e)) from e

    def _mark_unreachable(self, op: str, error: Exception) -> None:
        if self._connected:
            log.warning("Redis unreachable during %s, switching to in-memory cache: %s", op, error)
        self._connected = False

    async def _sweep_loop(self) -> None:
        while True:
            await asyncio.sleep(self._sweep_interval)
            self.sweep()
