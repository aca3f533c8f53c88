"""Cache key namespace and TTL classes.

Namespacing is a convention kept by callers; the cache itself never validates keys.
"""

from __future__ import annotations

BOOK_TTL = 60 * 60 * 24  # 24 hours
SEARCH_TTL = 60 * 60  # 1 hour
SESSION_TTL = 60 * 60 * 24  # 24 hours
INACTIVE_TTL = 60 * 10  # 10 minutes
DEVICE_PROGRESS_TTL = 60 * 60 * 24 * 30  # 30 days
USER_TTL = 60 * 60 * 24 * 365  # 1 year
USER_PROGRESS_TTL = 60 * 60 * 24 * 365  # 1 year


def normalize_query(query: str) -> str:
    return query.lower().strip()


def book_key(book_id: str) -> str:
    return f"book:{book_id}"


def search_key(query: str) -> str:
    return f"search:{normalize_query(query)}"


def session_key(session_id: str) -> str:
    return f"session:{session_id}"


def user_email_key(email: str) -> str:
    return f"user:{email.lower()}"


def user_id_key(user_id: str) -> str:
    return f"user:id:{user_id}"


def device_progress_key(book_id: str) -> str:
    return f"progress:{book_id}"


def user_progress_key(user_id: str, book_id: str) -> str:
    return f"user:{user_id}:progress:{book_id}"


def user_progress_pattern(user_id: str) -> str:
    return f"user:{user_id}:progress:*"
