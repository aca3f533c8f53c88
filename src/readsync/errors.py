"""Error types shared across the progress store, cache and sync layers."""

from __future__ import annotations


class ReadSyncError(Exception):
    pass


class BackingStoreUnavailable(ReadSyncError):
    """The primary cache could not serve a request. Never leaves the cache."""


class SyncTransportFailure(ReadSyncError):
    """A pull or push against the remote progress endpoints failed."""


class LocalStorageFailure(ReadSyncError):
    """The device-local store could not read or write a record."""
