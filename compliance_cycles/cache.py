"""
In-process result cache with TTL, LRU capacity and tag-based invalidation.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import threading
import time
from collections import OrderedDict
from concurrent.futures import Future
from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Callable, Dict, FrozenSet, Iterable, Optional, Set, Union

from .models import CacheEntry, CacheStats


logger = logging.getLogger(__name__)

Duration = Union[int, float, timedelta]

DEFAULT_MAX_ENTRIES = 1000


@dataclass
class _Flight:
    """A computation in progress for one key."""

    tags: FrozenSet[str]
    waiter: Future
    invalidated: bool = False


def _ttl_seconds(ttl: Duration) -> float:
    seconds = ttl.total_seconds() if isinstance(ttl, timedelta) else float(ttl)
    if seconds < 0:
        raise ValueError(f"TTL must not be negative: {ttl!r}")
    return seconds


def _consume_exception(task: "asyncio.Future") -> None:
    # Mark the failure as retrieved when every caller has gone away.
    if not task.cancelled():
        task.exception()


class TaggedCache:
    """Get-or-compute cache keyed by string with tag invalidation.

    Entries live in an LRU-ordered map alongside an index of tag -> keys.
    Both structures are only changed while holding ``_lock``, so an entry is
    visible in the map exactly when it is visible under each of its tags.

    Concurrent misses on the same key share one computation: the first caller
    runs ``compute`` and the others wait for its result or its exception.
    """

    def __init__(
        self,
        max_entries: int = DEFAULT_MAX_ENTRIES,
        clock: Callable[[], float] = time.monotonic,
    ):
        """Initialize the cache.

        Args:
            max_entries: Maximum number of live entries before LRU eviction
            clock: Monotonic time source in seconds
        """
        if max_entries < 1:
            raise ValueError("max_entries must be at least 1")
        self.max_entries = max_entries
        self._clock = clock
        self._lock = threading.Lock()
        self._entries: "OrderedDict[str, CacheEntry]" = OrderedDict()
        self._tag_index: Dict[str, Set[str]] = {}
        self._flights: Dict[str, _Flight] = {}

        self._hits = 0
        self._misses = 0
        self._evictions = 0
        self._expirations = 0
        self._invalidations = 0

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, key: str) -> bool:
        with self._lock:
            entry = self._entries.get(key)
            return entry is not None and self._clock() < entry.expires_at

    def get(self, key: str, default: Any = None) -> Any:
        """Return the live value for ``key`` or ``default``."""
        with self._lock:
            entry = self._lookup(key)
        return default if entry is None else entry.value

    def set(self, key: str, value: Any, *, ttl: Duration, tags: Iterable[str] = ()) -> None:
        """Store ``value`` under ``key``, replacing any existing entry."""
        seconds = _ttl_seconds(ttl)
        with self._lock:
            self._store(key, value, seconds, frozenset(tags))

    def get_or_set(
        self,
        key: str,
        compute: Callable[[], Any],
        *,
        ttl: Duration,
        tags: Iterable[str] = (),
        wait_timeout: Optional[float] = None,
    ) -> Any:
        """Return the cached value for ``key``, computing it on a miss.

        Args:
            key: Cache key
            compute: Zero-argument callable producing the value
            ttl: Lifetime of the stored entry
            tags: Tags to index the entry under
            wait_timeout: Seconds a caller waiting on another caller's
                computation will wait before giving up

        Returns:
            The cached or freshly computed value

        Raises:
            TimeoutError: ``wait_timeout`` elapsed while waiting; the
                computation itself keeps running
        """
        seconds = _ttl_seconds(ttl)
        tag_set = frozenset(tags)
        with self._lock:
            entry = self._lookup(key)
            if entry is not None:
                return entry.value
            flight = self._flights.get(key)
            leader = flight is None
            if leader:
                flight = _Flight(tags=tag_set, waiter=Future())
                self._flights[key] = flight

        if not leader:
            logger.debug("Waiting for in-flight computation of %s", key)
            return flight.waiter.result(timeout=wait_timeout)

        logger.debug("Cache miss: %s", key)
        try:
            value = compute()
        except BaseException as exc:
            with self._lock:
                self._end_flight(key, flight)
            flight.waiter.set_exception(exc)
            raise

        with self._lock:
            self._end_flight(key, flight)
            if not flight.invalidated:
                self._store(key, value, seconds, tag_set)
        flight.waiter.set_result(value)
        return value

    async def aget_or_set(
        self,
        key: str,
        compute: Callable[[], Any],
        *,
        ttl: Duration,
        tags: Iterable[str] = (),
    ) -> Any:
        """Asyncio variant of :meth:`get_or_set`.

        ``compute`` may return a value or an awaitable. The leader runs the
        computation in a task on its own event loop and publishes the outcome
        through the same future threaded callers wait on, so callers on other
        loops or threads share it. Cancelling one caller leaves the
        computation and the other waiters unaffected.
        """
        seconds = _ttl_seconds(ttl)
        tag_set = frozenset(tags)
        with self._lock:
            entry = self._lookup(key)
            if entry is not None:
                return entry.value
            flight = self._flights.get(key)
            leader = flight is None
            if leader:
                flight = _Flight(tags=tag_set, waiter=Future())
                self._flights[key] = flight

        if leader:
            task = asyncio.ensure_future(self._run_async_flight(key, flight, compute, seconds))
            task.add_done_callback(_consume_exception)
        else:
            logger.debug("Waiting for in-flight computation of %s", key)
        return await asyncio.shield(asyncio.wrap_future(flight.waiter))

    async def _run_async_flight(
        self,
        key: str,
        flight: _Flight,
        compute: Callable[[], Any],
        seconds: float,
    ) -> None:
        logger.debug("Cache miss: %s", key)
        try:
            value = compute()
            if inspect.isawaitable(value):
                value = await value
        except BaseException as exc:
            with self._lock:
                self._end_flight(key, flight)
            flight.waiter.set_exception(exc)
            if not isinstance(exc, Exception):
                raise
            return
        with self._lock:
            self._end_flight(key, flight)
            if not flight.invalidated:
                self._store(key, value, seconds, flight.tags)
        flight.waiter.set_result(value)

    def delete(self, key: str) -> bool:
        """Remove ``key``; returns False if it was not cached."""
        with self._lock:
            flight = self._flights.pop(key, None)
            if flight is not None:
                flight.invalidated = True
            return self._remove(key)

    def invalidate_by_tags(self, tags: Iterable[str]) -> int:
        """Remove every entry carrying any of ``tags``.

        Computations still running for matching entries return their value
        to their waiters but do not store it.

        Returns:
            Number of entries removed
        """
        tag_set = set(tags)
        with self._lock:
            keys: Set[str] = set()
            for tag in tag_set:
                keys.update(self._tag_index.get(tag, ()))
            for key in keys:
                self._remove(key)
            self._invalidations += len(keys)
            for key, flight in list(self._flights.items()):
                if flight.tags & tag_set:
                    flight.invalidated = True
                    del self._flights[key]
        if keys:
            logger.info("Invalidated %d cache entries for tags %s", len(keys), sorted(tag_set))
        return len(keys)

    def clear(self) -> None:
        with self._lock:
            for flight in self._flights.values():
                flight.invalidated = True
            self._flights.clear()
            self._entries.clear()
            self._tag_index.clear()

    def sweep_expired(self, limit: Optional[int] = None) -> int:
        """Drop up to ``limit`` expired entries that were never read again."""
        removed = 0
        with self._lock:
            now = self._clock()
            for key, entry in list(self._entries.items()):
                if limit is not None and removed >= limit:
                    break
                if now >= entry.expires_at:
                    self._remove(key)
                    removed += 1
            self._expirations += removed
        return removed

    def keys_for_tag(self, tag: str) -> Set[str]:
        with self._lock:
            return set(self._tag_index.get(tag, ()))

    def stats(self) -> CacheStats:
        with self._lock:
            return CacheStats(
                hits=self._hits,
                misses=self._misses,
                evictions=self._evictions,
                expirations=self._expirations,
                invalidations=self._invalidations,
                size=len(self._entries),
            )

    def _lookup(self, key: str) -> Optional[CacheEntry]:
        entry = self._entries.get(key)
        if entry is None:
            self._misses += 1
            return None
        if self._clock() >= entry.expires_at:
            self._remove(key)
            self._expirations += 1
            self._misses += 1
            return None
        self._entries.move_to_end(key)
        self._hits += 1
        return entry

    def _store(self, key: str, value: Any, seconds: float, tags: FrozenSet[str]) -> None:
        self._remove(key)
        while len(self._entries) >= self.max_entries:
            oldest = next(iter(self._entries))
            self._remove(oldest)
            self._evictions += 1
            logger.debug("Evicted least recently used entry %s", oldest)
        self._entries[key] = CacheEntry(
            key=key,
            value=value,
            expires_at=self._clock() + seconds,
            tags=tags,
        )
        for tag in tags:
            self._tag_index.setdefault(tag, set()).add(key)

    def _remove(self, key: str) -> bool:
        entry = self._entries.pop(key, None)
        if entry is None:
            return False
        for tag in entry.tags:
            keys = self._tag_index.get(tag)
            if keys is None:
                continue
            keys.discard(key)
            if not keys:
                del self._tag_index[tag]
        return True

    def _end_flight(self, key: str, flight: _Flight) -> None:
        if self._flights.get(key) is flight:
            del self._flights[key]
