"""Lifetime of ``session:{id}`` records: active, idle, then gone."""

from __future__ import annotations

import logging
from typing import Any, Optional

from readsync.config import AppConfig

from . import keys
from .tiered import TieredCache

log = logging.getLogger(__name__)


class SessionManager:
    """Active and idle TTL regimes for upload and reading sessions.

    A session starts active. ``mark_idle`` rewrites it under the shorter idle
    TTL and only ``touch`` brings it back to the active TTL. An expired session
    reads exactly like one that never existed.
    """

    def __init__(
        self,
        cache: TieredCache,
        active_ttl: int = keys.SESSION_TTL,
        inactive_ttl: int = keys.INACTIVE_TTL,
    ) -> None:
        if inactive_ttl > active_ttl:
            raise ValueError("inactive_ttl must not exceed active_ttl")
        self._cache = cache
        self.active_ttl = active_ttl
        self.inactive_ttl = inactive_ttl

    @classmethod
    def from_config(cls, cache: TieredCache, config: AppConfig) -> SessionManager:
        return cls(cache, config.session_active_ttl, config.session_inactive_ttl)

    async def create(self, session_id: str, data: Any) -> None:
        await self._cache.set(keys.session_key(session_id), data, self.active_ttl)

    async def get(self, session_id: str) -> Optional[Any]:
        return await self._cache.get(keys.session_key(session_id))

    async def touch(self, session_id: str) -> bool:
        """Refresh an existing session under the active TTL. False if absent."""
        return await self._rewrite(session_id, self.active_ttl)

    async def mark_idle(self, session_id: str) -> bool:
        """Shrink an existing session's lifetime to the idle TTL. False if absent."""
        return await self._rewrite(session_id, self.inactive_ttl)

    async def end(self, session_id: str) -> None:
        await self._cache.delete(keys.session_key(session_id))

    async def _rewrite(self, session_id: str, ttl: int) -> bool:
        key = keys.session_key(session_id)
        data = await self._cache.get(key)
        if data is None:
            log.debug("Session %s not found", session_id)
            return False
        await self._cache.set(key, data, ttl)
        return True
