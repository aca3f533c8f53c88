"""Account records stored in the tiered cache under ``user:`` keys."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Optional

from readsync.cache import keys
from readsync.cache.tiered import TieredCache
from readsync.library.models import format_timestamp, utcnow


@dataclass
class UserAccount:
    id: str
    email: str
    password_hash: str  # produced by the auth layer, stored opaquely
    name: Optional[str] = None
    created_at: str = field(default_factory=lambda: format_timestamp(utcnow()))


class AccountRepository:
    def __init__(self, cache: TieredCache) -> None:
        self._cache = cache

    async def save_user(self, user: UserAccount) -> None:
        data = asdict(user)
        await self._cache.set(keys.user_email_key(user.email), data, keys.USER_TTL)
        await self._cache.set(keys.user_id_key(user.id), data, keys.USER_TTL)

    async def get_user_by_email(self, email: str) -> Optional[UserAccount]:
        return self._load(await self._cache.get(keys.user_email_key(email)))

    async def get_user_by_id(self, user_id: str) -> Optional[UserAccount]:
        return self._load(await self._cache.get(keys.user_id_key(user_id)))

    @staticmethod
    def _load(data: Optional[dict]) -> Optional[UserAccount]:
        return UserAccount(**data) if data else None
