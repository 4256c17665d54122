# boards/cache.py
# -----------------------------------------------------------------------------
#  In-memory TTL cache shared by every board state.
#  • Entries are checked lazily on read: fresh iff now < fetched_at + ttl.
#  • The lock only covers lookup/insert, the fetch itself runs outside of it.
#  • Concurrent misses on the same key share a single fetch (single flight).
# -----------------------------------------------------------------------------

from __future__ import annotations

import asyncio
import datetime as dt
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Dict, Generic, Hashable, Optional, Tuple, TypeVar

log = logging.getLogger(__name__)

K = TypeVar("K", bound=Hashable)
V = TypeVar("V")

Clock = Callable[[], dt.datetime]

# Resolves an in-flight future whose leader was cancelled
_RETRY = object()


def utcnow() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)


@dataclass
class CachedEntry(Generic[V]):
    value: V
    fetched_at: dt.datetime

    def is_fresh(self, ttl: dt.timedelta, now: dt.datetime) -> bool:
        return now < self.fetched_at + ttl


class TTLCache(Generic[K, V]):
    """Keyed cache whose entries expire ``ttl`` after they were fetched."""

    def __init__(self, ttl: dt.timedelta, name: str = "cache", clock: Clock = utcnow):
        self.ttl = ttl
        self.name = name
        self._clock = clock
        self._entries: Dict[K, CachedEntry[V]] = {}
        self._inflight: Dict[K, asyncio.Future] = {}
        self._lock = asyncio.Lock()

        self.hits = 0
        self.misses = 0

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: K) -> bool:
        return self.peek(key) is not None

    def peek(self, key: K) -> Optional[V]:
        """Return the fresh value for ``key`` without fetching, or None."""
        entry = self._entries.get(key)
        if entry is not None and entry.is_fresh(self.ttl, self._clock()):
            return entry.value
        return None

    def entry(self, key: K) -> Optional[CachedEntry[V]]:
        """Raw entry, fresh or not."""
        return self._entries.get(key)

    async def put(self, key: K, value: V, fetched_at: Optional[dt.datetime] = None) -> None:
        """Store ``value`` for ``key``, replacing whatever was there."""
        async with self._lock:
            self._store(key, value, fetched_at)

    def _store(self, key: K, value: V, fetched_at: Optional[dt.datetime] = None) -> None:
        self._entries[key] = CachedEntry(value, fetched_at or self._clock())

    async def get_or_fetch(self, key: K, fetch_fn: Callable[[K], Awaitable[V]]) -> V:
        """
        Return the cached value for ``key`` or fetch, store and return a new one.

        Args:
            key: Cache key
            fetch_fn: Coroutine function called with ``key`` on a miss

        Returns:
            The fresh cached value, or the value just fetched

        Raises:
            Whatever ``fetch_fn`` raises. Nothing is stored on failure.
        """
        while True:
            async with self._lock:
                entry = self._entries.get(key)
                if entry is not None and entry.is_fresh(self.ttl, self._clock()):
                    self.hits += 1
                    return entry.value

                pending, leader = self._claim(key)
                if leader:
                    self.misses += 1

            if leader:
                return await self._fetch(key, fetch_fn, pending)

            log.debug("%s: waiting on in-flight fetch for %r", self.name, key)
            value = await asyncio.shield(pending)
            if value is not _RETRY:
                return value

    async def refresh(self, key: K, fetch_fn: Callable[[K], Awaitable[V]]) -> V:
        """Fetch ``key`` regardless of freshness and store the result."""
        while True:
            async with self._lock:
                pending, leader = self._claim(key)

            if leader:
                return await self._fetch(key, fetch_fn, pending)

            value = await asyncio.shield(pending)
            if value is not _RETRY:
                return value

    def _claim(self, key: K) -> Tuple[asyncio.Future, bool]:
        # Caller holds the lock
        pending = self._inflight.get(key)
        if pending is not None:
            return pending, False
        pending = asyncio.get_running_loop().create_future()
        self._inflight[key] = pending
        return pending, True

    async def _fetch(self, key: K, fetch_fn: Callable[[K], Awaitable[V]], pending: asyncio.Future) -> V:
        log.debug("%s: fetching %r", self.name, key)
        try:
            value = await fetch_fn(key)
        except asyncio.CancelledError:
            # Only the leader was cancelled; waiters go back and one of them fetches
            self._inflight.pop(key, None)
            if not pending.done():
                pending.set_result(_RETRY)
            raise
        except Exception as e:
            self._inflight.pop(key, None)
            if not pending.done():
                pending.set_exception(e)
                # Mark retrieved; the leader re-raises and followers get it from await
                pending.exception()
            raise

        async with self._lock:
            self._store(key, value)
            self._inflight.pop(key, None)
        if not pending.done():
            pending.set_result(value)
        return value

    def stats(self) -> dict:
        now = self._clock()
        return {
            "entries": len(self._entries),
            "fresh": sum(1 for e in self._entries.values() if e.is_fresh(self.ttl, now)),
            "hits": self.hits,
            "misses": self.misses,
        }
