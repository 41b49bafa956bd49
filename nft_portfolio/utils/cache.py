"""In-memory response caching and request deduplication.

Provides:
- TTL cache keyed by string with most-recent pruning
- In-flight request coalescing (one upstream call per key)
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable, Iterator
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

import structlog

log = structlog.get_logger()

T = TypeVar("T")


@dataclass
class CacheEntry(Generic[T]):
    """Cached value with the time it was stored."""

    value: T
    timestamp: float


class TTLCache(Generic[T]):
    """String-keyed cache whose entries expire ``ttl`` seconds after storage.

    Example:
        >>> cache = TTLCache[dict](ttl=300.0, name="bulk_pricing")
        >>> cache.set("0xabc:1", {"price": 1.2})
        >>> cache.get("0xabc:1")
        {'price': 1.2}
    """

    def __init__(
        self,
        ttl: float,
        name: str = "default",
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.ttl = ttl
        self.name = name
        self._clock = clock
        self._entries: dict[str, CacheEntry[T]] = {}
        self.hits = 0
        self.misses = 0

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: str) -> bool:
        return self.get(key) is not None

    def is_fresh(self, entry: CacheEntry[T]) -> bool:
        return self._clock() - entry.timestamp < self.ttl

    def get(self, key: str) -> T | None:
        """Return the live value for ``key``, dropping it if expired."""
        entry = self._entries.get(key)
        if entry is None:
            self.misses += 1
            return None

        if not self.is_fresh(entry):
            del self._entries[key]
            self.misses += 1
            return None

        self.hits += 1
        return entry.value

    def set(self, key: str, value: T) -> None:
        self._entries[key] = CacheEntry(value=value, timestamp=self._clock())

    def delete(self, key: str) -> bool:
        return self._entries.pop(key, None) is not None

    def delete_prefix(self, prefix: str) -> int:
        """Remove every entry whose key starts with ``prefix``."""
        doomed = [key for key in self._entries if key.startswith(prefix)]
        for key in doomed:
            del self._entries[key]
        return len(doomed)

    def clear(self) -> None:
        self._entries.clear()

    def items(self) -> Iterator[tuple[str, CacheEntry[T]]]:
        return iter(list(self._entries.items()))

    def prune(self, max_entries: int, keep: int) -> int:
        """Keep only the ``keep`` most recent entries once size exceeds ``max_entries``.

        Returns:
            Number of entries evicted
        """
        if len(self._entries) <= max_entries:
            return 0

        ordered = sorted(
            self._entries.items(),
            key=lambda item: item[1].timestamp,
            reverse=True,
        )
        evicted = 0
        for key, _ in ordered[keep:]:
            del self._entries[key]
            evicted += 1

        log.debug("cache.pruned", cache=self.name, evicted=evicted, remaining=len(self._entries))
        return evicted

    def snapshot(self) -> dict[str, dict[str, Any]]:
        """Export live entries as ``{key: {"data": value, "timestamp": ts}}``."""
        return {
            key: {"data": entry.value, "timestamp": entry.timestamp}
            for key, entry in self._entries.items()
            if self.is_fresh(entry)
        }

    def restore(self, data: dict[str, dict[str, Any]]) -> int:
        """Load entries produced by ``snapshot()``, skipping expired ones."""
        restored = 0
        for key, raw in data.items():
            entry = CacheEntry(value=raw["data"], timestamp=float(raw["timestamp"]))
            if self.is_fresh(entry):
                self._entries[key] = entry
                restored += 1
        return restored

    def get_stats(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "size": len(self._entries),
            "ttl": self.ttl,
            "hits": self.hits,
            "misses": self.misses,
        }


class InFlightRequests:
    """Coalesce concurrent requests for the same key into one upstream call.

    The result stays shared for ``linger`` seconds after it settles, so
    callers arriving right behind a finished request reuse it too.

    Example:
        >>> inflight = InFlightRequests(linger=0.5)
        >>> result = await inflight.run(batch_key, lambda: fetch_batch(batch))
    """

    def __init__(self, linger: float = 0.5, name: str = "default") -> None:
        self.linger = linger
        self.name = name
        self._pending: dict[str, asyncio.Future[Any]] = {}

    def __contains__(self, key: str) -> bool:
        return key in self._pending

    def __len__(self) -> int:
        return len(self._pending)

    async def run(self, key: str, factory: Callable[[], Awaitable[T]]) -> T:
        existing = self._pending.get(key)
        if existing is not None:
            log.debug("inflight.joined", requests=self.name, key=key[:80])
            return await asyncio.shield(existing)

        loop = asyncio.get_running_loop()
        future: asyncio.Future[Any] = loop.create_future()
        self._pending[key] = future

        try:
            result = await factory()
        except asyncio.CancelledError:
            future.cancel()
            self._forget_later(key, future)
            raise
        except Exception as e:
            future.set_exception(e)
            # Mark retrieved so an unjoined failure doesn't warn at GC
            future.exception()
            self._forget_later(key, future)
            raise

        future.set_result(result)
        self._forget_later(key, future)
        return result

    def _forget_later(self, key: str, future: asyncio.Future[Any]) -> None:
        def forget() -> None:
            if self._pending.get(key) is future:
                del self._pending[key]

        if self.linger <= 0:
            forget()
        else:
            asyncio.get_running_loop().call_later(self.linger, forget)
