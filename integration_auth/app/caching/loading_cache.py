"""
Asynchronous loading cache with per-key load coalescing.

Every key maps to one entry holding the last loaded value, when it was loaded
and the task currently loading it (if any). A caller that finds a load in
flight awaits that task instead of starting another one, so concurrent lookups
for the same key produce exactly one call to the loader.
"""

import asyncio
import time
from collections import OrderedDict
from typing import Any, Awaitable, Callable, Generic, Hashable, Optional, TypeVar

from integration_shared.logging import get_logger
from integration_shared.metrics import MetricsCollector

K = TypeVar("K", bound=Hashable)
V = TypeVar("V")

_MISSING = object()


class _Entry:
    __slots__ = ("value", "loaded_at", "task", "waiters")

    def __init__(self) -> None:
        self.value: Any = _MISSING
        self.loaded_at: float = 0.0
        self.task: Optional[asyncio.Task] = None
        self.waiters = 0

    @property
    def has_value(self) -> bool:
        return self.value is not _MISSING


def _consume_exception(task: asyncio.Task) -> None:
    # Waiters that were cancelled never retrieve the result themselves.
    if not task.cancelled():
        task.exception()


class AsyncLoadingCache(Generic[K, V]):
    """Coalescing TTL cache over an async ``loader(key)``.

    ``expire_after_write``: seconds after which an entry is treated as absent.
    ``refresh_after_write``: seconds after which a read still returns the
    cached value but triggers one background reload (refresh-ahead).
    ``maximum_size``: least recently used entries beyond this count are evicted.

    A failed load is never cached; every waiter receives the exception and the
    next ``get`` starts a new load. A failed background refresh keeps the old
    value. A loader result of None is handed to the waiters but not stored.
    When every waiter of a load has been cancelled the load is cancelled too.
    """

    def __init__(
        self,
        loader: Callable[[K], Awaitable[V]],
        *,
        name: str,
        maximum_size: Optional[int] = None,
        expire_after_write: Optional[float] = None,
        refresh_after_write: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
        metrics: Optional[MetricsCollector] = None,
    ) -> None:
        if maximum_size is not None and maximum_size < 1:
            raise ValueError("maximum_size must be positive")
        self.name = name
        self.maximum_size = maximum_size
        self.expire_after_write = expire_after_write
        self.refresh_after_write = refresh_after_write
        self._loader = loader
        self._clock = clock
        self._metrics = metrics or MetricsCollector()
        self._entries: "OrderedDict[K, _Entry]" = OrderedDict()
        self.logger = get_logger(f"integration.cache.{name}")

    def __len__(self) -> int:
        return sum(1 for entry in self._entries.values() if entry.has_value)

    async def get(self, key: K) -> V:
        """Return the cached value for ``key``, loading it if necessary."""
        now = self._clock()
        entry = self._entries.get(key)

        if entry is not None and entry.has_value:
            if self._is_expired(entry, now):
                del self._entries[key]
                entry = None
            else:
                self._entries.move_to_end(key)
                self._record_request("hit")
                if self._needs_refresh(entry, now) and entry.task is None:
                    self._start_refresh(key, entry)
                return entry.value

        self._record_request("miss")
        if entry is None:
            entry = _Entry()
            self._entries[key] = entry
            entry.task = self._spawn(self._load(key, entry))
            self._evict()

        return await self._wait(key, entry)

    def get_if_present(self, key: K) -> Optional[V]:
        """Return the cached value without loading, or None."""
        entry = self._entries.get(key)
        if entry is None or not entry.has_value or self._is_expired(entry, self._clock()):
            return None
        return entry.value

    def put(self, key: K, value: V) -> None:
        """Store ``value`` as freshly loaded, replacing any entry for ``key``."""
        entry = _Entry()
        entry.value = value
        entry.loaded_at = self._clock()
        self._entries.pop(key, None)
        self._entries[key] = entry
        self._evict()

    def invalidate(self, key: K) -> None:
        """Drop ``key``. A load already in flight still completes for its waiters
        but its result is not stored."""
        self._entries.pop(key, None)

    def invalidate_all(self) -> None:
        self._entries.clear()

    def _is_expired(self, entry: _Entry, now: float) -> bool:
        return (
            self.expire_after_write is not None
            and now - entry.loaded_at >= self.expire_after_write
        )

    def _needs_refresh(self, entry: _Entry, now: float) -> bool:
        return (
            self.refresh_after_write is not None
            and now - entry.loaded_at >= self.refresh_after_write
        )

    def _evict(self) -> None:
        if self.maximum_size is None:
            return
        while len(self._entries) > self.maximum_size:
            evicted_key, _ = self._entries.popitem(last=False)
            self.logger.debug("Cache entry evicted", key=evicted_key)

    async def _wait(self, key: K, entry: _Entry) -> V:
        task = entry.task
        entry.waiters += 1
        try:
            # Shielded so that one cancelled waiter does not abort the shared load.
            return await asyncio.shield(task)
        finally:
            entry.waiters -= 1
            if entry.waiters == 0 and not task.done():
                # Every waiter is gone; stop the load and let the next get start over.
                if self._entries.get(key) is entry:
                    del self._entries[key]
                task.cancel()

    def _spawn(self, coro: Awaitable[Any]) -> asyncio.Task:
        task = asyncio.ensure_future(coro)
        task.add_done_callback(_consume_exception)
        return task

    async def _load(self, key: K, entry: _Entry) -> V:
        try:
            value = await self._loader(key)
        except BaseException as exc:
            if self._entries.get(key) is entry:
                del self._entries[key]
            entry.task = None
            outcome = "cancelled" if isinstance(exc, asyncio.CancelledError) else "failure"
            self._record_load(outcome)
            raise

        entry.task = None
        self._record_load("success")
        if self._entries.get(key) is entry:
            if value is None:
                del self._entries[key]
            else:
                entry.value = value
                entry.loaded_at = self._clock()
        return value

    def _start_refresh(self, key: K, entry: _Entry) -> None:
        entry.task = self._spawn(self._refresh(key, entry))

    async def _refresh(self, key: K, entry: _Entry) -> None:
        try:
            value = await self._loader(key)
        except asyncio.CancelledError:
            entry.task = None
            raise
        except Exception as exc:
            entry.task = None
            self._record_load("refresh_failure")
            self.logger.warning("Cache refresh failed, keeping previous value", key=key, error=str(exc))
            return

        entry.task = None
        self._record_load("refresh")
        if self._entries.get(key) is not entry:
            return
        if value is None:
            del self._entries[key]
        else:
            entry.value = value
            entry.loaded_at = self._clock()

    def _record_request(self, result: str) -> None:
        self._metrics.increment_counter("cache_requests_total", cache=self.name, result=result)

    def _record_load(self, outcome: str) -> None:
        self._metrics.increment_counter("cache_loads_total", cache=self.name, outcome=outcome)
