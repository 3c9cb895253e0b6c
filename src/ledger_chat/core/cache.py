"""Process-local keyed cache with single-flight builds.

Both the per-user vector indexes and the conversation histories live in an
instance of :class:`KeyedCache`. Entries are evicted least-recently-used once
``max_entries`` is reached, and expire after ``ttl_seconds`` without access.

``get_or_build`` guarantees at most one build in flight per key: the first
caller runs the builder, later callers for the same key wait for its result.
"""

from __future__ import annotations

import asyncio
import time
from collections import OrderedDict
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Generic, TypeVar

from ledger_chat.core.logging import get_logger

logger = get_logger(__name__)

V = TypeVar("V")


@dataclass
class _Entry(Generic[V]):
    value: V
    touched_at: float


def _current_task_cancelling() -> bool:
    task = asyncio.current_task()
    return task is not None and task.cancelling() > 0


class KeyedCache(Generic[V]):
    """Bounded key -> value map with LRU eviction, idle TTL and build-or-wait."""

    def __init__(
        self,
        name: str,
        max_entries: int = 1000,
        ttl_seconds: float | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.name = name
        self.max_entries = max(1, int(max_entries))
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: OrderedDict[str, _Entry[V]] = OrderedDict()
        self._in_flight: dict[str, asyncio.Future[V]] = {}

    def _is_expired(self, entry: _Entry[V], now: float) -> bool:
        return self.ttl_seconds is not None and now - entry.touched_at >= self.ttl_seconds

    def _prune(self, now: float) -> None:
        # Entries are kept in access order, so expired ones are at the front
        while self._entries:
            key, entry = next(iter(self._entries.items()))
            if not self._is_expired(entry, now):
                break
            del self._entries[key]
            logger.debug(f"Cache '{self.name}' expired entry", key=key)

    def _enforce_capacity(self) -> None:
        while len(self._entries) > self.max_entries:
            key, _ = self._entries.popitem(last=False)
            logger.info(f"Cache '{self.name}' evicted least recently used entry", key=key)

    def get(self, key: str) -> V | None:
        """Return the cached value and mark it as recently used, or None."""
        now = self._clock()
        entry = self._entries.get(key)
        if entry is None:
            return None
        if self._is_expired(entry, now):
            del self._entries[key]
            logger.debug(f"Cache '{self.name}' expired entry", key=key)
            return None
        entry.touched_at = now
        self._entries.move_to_end(key)
        return entry.value

    def put(self, key: str, value: V) -> None:
        """Insert or replace the value stored under ``key``."""
        now = self._clock()
        self._prune(now)
        self._entries[key] = _Entry(value=value, touched_at=now)
        self._entries.move_to_end(key)
        self._enforce_capacity()

    def delete(self, key: str) -> bool:
        """Remove ``key``. Returns whether an entry was present."""
        return self._entries.pop(key, None) is not None

    def clear(self) -> None:
        self._entries.clear()

    def is_building(self, key: str) -> bool:
        return key in self._in_flight

    def __contains__(self, key: object) -> bool:
        entry = self._entries.get(key)  # type: ignore[call-overload]
        return entry is not None and not self._is_expired(entry, self._clock())

    def __len__(self) -> int:
        self._prune(self._clock())
        return len(self._entries)

    async def get_or_build(self, key: str, builder: Callable[[], Awaitable[V]]) -> V:
        """Return the cached value, joining or starting the build for ``key``.

        A failed build caches nothing and its exception reaches every caller
        that was waiting on it.
        """
        while True:
            value = self.get(key)
            if value is not None:
                return value

            pending = self._in_flight.get(key)
            if pending is None:
                return await self._lead(key, builder)

            logger.debug(f"Cache '{self.name}' waiting for in-flight build", key=key)
            try:
                return await asyncio.shield(pending)
            except asyncio.CancelledError:
                # The leader was cancelled, not us: try again
                if pending.cancelled() and not _current_task_cancelling():
                    continue
                raise

    async def rebuild(self, key: str, builder: Callable[[], Awaitable[V]]) -> V:
        """Build a fresh value for ``key`` and replace the cached one on success.

        Waits for any build already in flight so the new build starts from the
        latest source data. The previous value stays cached if the build fails.
        """
        while (pending := self._in_flight.get(key)) is not None:
            try:
                await asyncio.shield(pending)
            except asyncio.CancelledError:
                if pending.cancelled() and not _current_task_cancelling():
                    continue
                raise
            except Exception as e:
                logger.debug(
                    f"Cache '{self.name}' in-flight build failed before rebuild",
                    key=key,
                    error=str(e),
                )

        return await self._lead(key, builder)

    async def _lead(self, key: str, builder: Callable[[], Awaitable[V]]) -> V:
        future: asyncio.Future[V] = asyncio.get_running_loop().create_future()
        self._in_flight[key] = future
        try:
            value = await builder()
        except asyncio.CancelledError:
            future.cancel()
            raise
        except Exception as e:
            future.set_exception(e)
            # Mark as retrieved so an unawaited failure is not reported twice
            future.exception()
            raise
        else:
            self.put(key, value)
            future.set_result(value)
            return value
        finally:
            if not future.done():
                future.cancel()
            if self._in_flight.get(key) is future:
                del self._in_flight[key]
