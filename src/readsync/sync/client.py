from __future__ import annotations

import logging
from typing import Any, Optional

import httpx

from readsync.config import AppConfig
from readsync.errors import SyncTransportFailure
from readsync.library.models import ProgressRecord

log = logging.getLogger(__name__)


class ProgressApi:
    """Client for the authenticated progress endpoints.

    The bearer token is forwarded as-is; it is never inspected here.
    """

    def __init__(self, base_url: str, token: str, timeout: float = 30.0) -> None:
        self._base_url = base_url.rstrip("/")
        self._token = token
        self._timeout = timeout
        self._client: Optional[httpx.AsyncClient] = None

    @classmethod
    def from_config(cls, config: AppConfig) -> ProgressApi:
        return cls(config.api_base_url, config.api_token, config.http_timeout)

    async def fetch_progress(self) -> list[ProgressRecord]:
        data = await self._request("GET", "/auth/progress")
        try:
            return [ProgressRecord.from_dict(p) for p in data["progress"]]
        except (KeyError, TypeError, ValueError) as e:
            log.error("Unexpected progress payload: %s", e)
            raise SyncTransportFailure("Pull failed: unexpected response format") from e

    async def push_progress(self, records: list[ProgressRecord]) -> int:
        payload = {"progress": [r.to_dict() for r in records]}
        data = await self._request("POST", "/auth/sync", json=payload)
        try:
            return int(data.get("synced", len(records)))
        except (AttributeError, TypeError, ValueError) as e:
            raise SyncTransportFailure("Push failed: unexpected response format") from e

    async def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._timeout)

        headers = {"Content-Type": "application/json"}
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"

        url = f"{self._base_url}{path}"
        try:
            resp = await self._client.request(method, url, headers=headers, **kwargs)
            resp.raise_for_status()
            return resp.json()
        except httpx.HTTPStatusError as e:
            log.error(
                "Progress API error: %s %s",
                e.response.status_code,
                e.response.text[:200],
            )
            raise SyncTransportFailure(
                f"Sync failed: HTTP {e.response.status_code}"
            ) from e
        except httpx.RequestError as e:
            log.error(
                "Progress request error: %s %s -> %s",
                type(e).__name__,
                url,
                e,
            )
            raise SyncTransportFailure(f"Sync failed: {type(e).__name__} ({url})") from e
        except ValueError as e:
            log.error("Progress API returned invalid JSON: %s", e)
            raise SyncTransportFailure("Sync failed: invalid JSON") from e

    async def close(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None
