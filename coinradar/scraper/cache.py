"""
Coin Radar - Content Cache

Key/value store with a per-entry TTL. Knows nothing about HTTP: the fetch
client keys it by source and normalized URL, and anything else can use it
through get_or_fetch().
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Generic, TypeVar
from urllib.parse import urldefrag

import structlog

logger = structlog.get_logger(__name__)

V = TypeVar("V")


def normalize_url(url: str) -> str:
    """Strip the fragment and any trailing '?' so equivalent URLs share an entry."""
    url, _fragment = urldefrag(url.strip())
    return url.rstrip("?")


def cache_key(source: str, url: str) -> str:
    return f"scraper:{source}:{normalize_url(url)}"


@dataclass(frozen=True)
class CachedEntry(Generic[V]):
    key: str
    value: V
    ttl_seconds: float
    stored_at: float

    def is_valid(self, now: float) -> bool:
        return now - self.stored_at < self.ttl_seconds


class ContentCache:
    """
    In-memory TTL cache.

    Expired entries are treated as absent and evicted when touched.
    """

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self._clock = clock
        self._entries: dict[str, CachedEntry[Any]] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, key: str) -> Any | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if not entry.is_valid(self._clock()):
            del self._entries[key]
            logger.debug("content_cache_expired", key=key)
            return None
        return entry.value

    def set(self, key: str, value: Any, ttl_seconds: float) -> None:
        self._entries[key] = CachedEntry(
            key=key,
            value=value,
            ttl_seconds=ttl_seconds,
            stored_at=self._clock(),
        )

    def invalidate(self, key: str) -> bool:
        return self._entries.pop(key, None) is not None

    def clear(self) -> None:
        self._entries.clear()

    def purge_expired(self) -> int:
        """Drop every expired entry. Returns how many were removed."""
        now = self._clock()
        expired = [k for k, entry in self._entries.items() if not entry.is_valid(now)]
        for key in expired:
            del self._entries[key]
        return len(expired)

    async def get_or_fetch(
        self,
        key: str,
        ttl_seconds: float,
        producer: Callable[[], Awaitable[V]],
    ) -> tuple[V, bool]:
        """
        Return (value, from_cache).

        On a valid hit the producer is never called. On a miss or an expired
        entry the producer is awaited and its result stored. Producer errors
        propagate and nothing is stored.
        """
        cached = self.get(key)
        if cached is not None:
            logger.debug("content_cache_hit", key=key)
            return cached, True

        value = await producer()
        self.set(key, value, ttl_seconds)
        return value, False
