"""In-memory TTL cache for idempotent reads.

Entries are keyed by a request fingerprint and expire lazily: an expired
entry is treated as absent and removed the next time it is looked up.
"""

import json
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

import structlog

from zfetch.constants import CACHE_KEY_SEPARATOR
from zfetch.models import Response


logger = structlog.get_logger()


def serialize_body(body: Any) -> str:
    """Serialize a request body for fingerprinting.

    Strings are used verbatim and bytes are decoded; other values are
    JSON-encoded with sorted keys, falling back to ``str()`` when they are
    not JSON-serializable.

    Args:
        body: Request body, possibly None.

    Returns:
        Deterministic string form of the body.
    """
    if body is None:
        return ""
    if isinstance(body, str):
        return body
    if isinstance(body, bytes | bytearray):
        return bytes(body).decode("utf-8", errors="replace")
    try:
        return json.dumps(body, sort_keys=True, separators=(",", ":"))
    except (TypeError, ValueError):
        return str(body)


def make_cache_key(method: str, url: str, body: Any = None) -> str:
    """Compute the fingerprint of a request.

    Args:
        method: HTTP method (case-insensitive).
        url: Fully resolved URL.
        body: Request body.

    Returns:
        Key of the form ``METHOD::url::body``.

    Examples:
        >>> make_cache_key("get", "https://api.example.com/posts")
        'GET::https://api.example.com/posts::'
    """
    return CACHE_KEY_SEPARATOR.join((method.upper(), url, serialize_body(body)))


@dataclass(frozen=True)
class CacheEntry:
    """Cached response plus its expiry instant.

    Attributes:
        value: The cached response, before response hooks ran.
        expires_at: Monotonic expiry instant, or None for no expiry.
    """

    value: Response
    expires_at: float | None = None

    def is_expired(self, now: float) -> bool:
        """Check whether the entry has expired at ``now``."""
        return self.expires_at is not None and now > self.expires_at


class CacheStore:
    """Process-local mapping from fingerprint to cached response.

    Writes are last-write-wins; there is no merging.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        """Initialize an empty cache.

        Args:
            clock: Monotonic clock in seconds, injectable for tests.
        """
        self._entries: dict[str, CacheEntry] = {}
        self._clock = clock
        self._log = logger.bind(component="cache")

    def get(self, key: str) -> Response | None:
        """Look up a live entry.

        Args:
            key: Request fingerprint.

        Returns:
            Cached response, or None if absent or expired.
        """
        entry = self._entries.get(key)
        if entry is None:
            return None

        if entry.is_expired(self._clock()):
            del self._entries[key]
            self._log.debug("cache_expired", key=key)
            return None

        return entry.value

    def set(self, key: str, value: Response, ttl_seconds: float) -> None:
        """Insert or overwrite an entry.

        Args:
            key: Request fingerprint.
            value: Response to cache.
            ttl_seconds: Lifetime in seconds; 0 or less stores without expiry.
        """
        expires_at = self._clock() + ttl_seconds if ttl_seconds > 0 else None
        self._entries[key] = CacheEntry(value=value, expires_at=expires_at)
        self._log.debug("cache_store", key=key, ttl_seconds=ttl_seconds)

    def delete(self, key: str) -> bool:
        """Remove an entry.

        Args:
            key: Request fingerprint.

        Returns:
            True if an entry was removed.
        """
        return self._entries.pop(key, None) is not None

    def clear(self) -> None:
        """Remove every entry."""
        self._entries.clear()

    def purge_expired(self) -> int:
        """Remove every expired entry.

        Never called implicitly; lookups evict lazily.

        Returns:
            Number of entries removed.
        """
        now = self._clock()
        expired = [key for key, entry in self._entries.items() if entry.is_expired(now)]
        for key in expired:
            del self._entries[key]
        return len(expired)

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return isinstance(key, str) and self.get(key) is not None
