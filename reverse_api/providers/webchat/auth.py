"""
WebChat Authentication - Token and session-id caching.

- CachedCredential: a value with an optional expiry instant
- CredentialCache: key -> credential map owned by one client instance

Writes are serialised through an asyncio.Lock; reads are lock-free
snapshots. Expired entries are dropped lazily when read, never swept.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Awaitable, Callable

logger = logging.getLogger("reverse_api.providers.webchat")

Clock = Callable[[], float]


@dataclass(frozen=True)
class CachedCredential:
    """A cached token or identifier. ``expires_at`` of None never expires."""

    value: str
    expires_at: float | None = None

    def is_expired(self, now: float) -> bool:
        return self.expires_at is not None and now >= self.expires_at

    def remaining_sec(self, now: float) -> int | None:
        if self.expires_at is None:
            return None
        return max(0, int(self.expires_at - now))


class CredentialCache:
    """Expiry-aware memo for bearer tokens and chat/session identifiers."""

    def __init__(self, clock: Clock = time.time):
        self._clock = clock
        self._entries: dict[str, CachedCredential] = {}
        self._lock = asyncio.Lock()

    def peek(self, key: str) -> str | None:
        """Return the live value for ``key`` without touching the network."""
        entry = self._entries.get(key)
        if entry is None:
            return None
        if entry.is_expired(self._clock()):
            # Identity check keeps a concurrent fresh write intact.
            if self._entries.get(key) is entry:
                self._entries.pop(key, None)
            return None
        return entry.value

    async def put(self, key: str, value: str, ttl: float | None = None) -> None:
        expires_at = None if ttl is None else self._clock() + ttl
        async with self._lock:
            self._entries[key] = CachedCredential(value=value, expires_at=expires_at)

    async def invalidate(self, key: str) -> bool:
        async with self._lock:
            return self._entries.pop(key, None) is not None

    async def get_or_fetch(
        self,
        key: str,
        fetch: Callable[[], Awaitable[str]],
        ttl: float | None = None,
    ) -> str:
        """
        Return the cached value, or run ``fetch`` once and cache its result.

        Concurrent misses on the same key wait on the write lock and then see
        the value the first caller stored.
        """
        cached = self.peek(key)
        if cached is not None:
            return cached

        async with self._lock:
            entry = self._entries.get(key)
            now = self._clock()
            if entry is not None and not entry.is_expired(now):
                return entry.value

            logger.debug(f"Credential cache miss for {key[:8]}...")
            value = await fetch()
            expires_at = None if ttl is None else self._clock() + ttl
            self._entries[key] = CachedCredential(value=value, expires_at=expires_at)
            return value

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: str) -> bool:
        return self.peek(key) is not None
