"""
AgentChain SDK Cache Module

A time-bounded, size-bounded key/value store shared by the SDK services.

Classes:
    CacheEntry: Stored value with its own TTL
    TTLCache: The cache

Example:
    >>> from agentchain.cache import TTLCache
    >>> cache = TTLCache()
    >>> cache.set("agent:1", {"name": "Scout"}, ttl=60)
    >>> cache.get("agent:1")
    {'name': 'Scout'}

Note:
    - Expiry is checked lazily on read; a background sweep also removes
      expired entries every cleanup_interval seconds once start() is called
      from a running event loop
    - When full, the entry inserted first is evicted (FIFO, not LRU)
    - One instance is created by the facade and handed to every service;
      there is no module-level cache
"""

import asyncio
import inspect
import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Iterator, Optional, Tuple, Union

from .config import CacheConfig

logger = logging.getLogger("agentchain.cache")

_MISSING = object()


@dataclass
class CacheEntry:
    """
    A cached value.

    Attributes:
        value: Stored value
        stored_at: Clock reading when the value was stored (seconds)
        ttl: Lifetime of the entry (seconds)
    """

    value: Any
    stored_at: float
    ttl: float

    def is_expired(self, now: float) -> bool:
        return now - self.stored_at > self.ttl


class TTLCache:
    """
    Time-bounded cache with a maximum entry count.

    Args:
        config: Cache settings, defaults to CacheConfig()
        clock: Monotonic clock returning seconds, injectable for tests

    Example:
        >>> cache = TTLCache(CacheConfig(max_size=2))
        >>> cache.set("a", 1); cache.set("b", 2); cache.set("c", 3)
        >>> list(cache.keys())
        ['b', 'c']
    """

    def __init__(
        self,
        config: Optional[CacheConfig] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.config = config or CacheConfig()
        self._clock = clock
        self._store: Dict[str, CacheEntry] = {}
        self._inflight: Dict[str, asyncio.Future] = {}
        self._sweeper: Optional[asyncio.Task] = None
        self.hits = 0
        self.misses = 0
        self.evictions = 0

    # ============ Basic Operations ============

    def set(self, key: str, value: Any, ttl: Optional[float] = None) -> None:
        """
        Insert or overwrite an entry.

        Inserting a new key into a full store evicts exactly one entry, the
        oldest by insertion order. Overwriting keeps the key's position.
        """
        if key not in self._store and len(self._store) >= self.config.max_size:
            oldest = next(iter(self._store))
            del self._store[oldest]
            self.evictions += 1
            logger.debug("Cache full, evicted %s", oldest)

        self._store[key] = CacheEntry(
            value=value,
            stored_at=self._clock(),
            ttl=ttl if ttl is not None else self.config.default_ttl,
        )

    def get(self, key: str, default: Any = None) -> Any:
        """Return the stored value, or default when absent or expired."""
        found, value = self._lookup(key)
        if found:
            self.hits += 1
            return value
        self.misses += 1
        return default

    def has(self, key: str) -> bool:
        return self._lookup(key)[0]

    __contains__ = has

    def delete(self, key: str) -> bool:
        """Remove an entry; return whether it existed."""
        return self._store.pop(key, None) is not None

    def clear(self) -> None:
        self._store.clear()

    def size(self) -> int:
        return len(self._store)

    __len__ = size

    def keys(self) -> Iterator[str]:
        return iter(list(self._store))

    def stats(self) -> Dict[str, int]:
        return {
            "size": len(self._store),
            "max_size": self.config.max_size,
            "hits": self.hits,
            "misses": self.misses,
            "evictions": self.evictions,
        }

    def _lookup(self, key: str) -> Tuple[bool, Any]:
        entry = self._store.get(key)
        if entry is None:
            return False, None
        if entry.is_expired(self._clock()):
            del self._store[key]
            return False, None
        return True, entry.value

    # ============ Expiry Sweep ============

    def cleanup(self) -> int:
        """
        Remove every expired entry.

        Returns:
            Number of entries removed
        """
        now = self._clock()
        expired = [key for key, entry in self._store.items() if entry.is_expired(now)]
        for key in expired:
            del self._store[key]
        if expired:
            logger.debug("Cache sweep removed %d expired entries", len(expired))
        return len(expired)

    def start(self) -> bool:
        """
        Start the background sweep on the running event loop.

        Idempotent. Returns False when called outside a running loop; expiry
        is still enforced lazily in that case.
        """
        if self._sweeper is not None and not self._sweeper.done():
            return True
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("No running event loop, cache sweep not started")
            return False
        self._sweeper = loop.create_task(self._sweep_loop())
        return True

    @property
    def running(self) -> bool:
        return self._sweeper is not None and not self._sweeper.done()

    async def _sweep_loop(self) -> None:
        while True:
            await asyncio.sleep(self.config.cleanup_interval)
            self.cleanup()

    def destroy(self) -> None:
        """Stop the sweep and drop all entries. Safe to call more than once."""
        if self._sweeper is not None:
            self._sweeper.cancel()
            self._sweeper = None
        self._inflight.clear()
        self.clear()

    # ============ Read-Through ============

    async def get_or_set(
        self,
        key: str,
        supplier: Callable[[], Union[Any, Awaitable[Any]]],
        ttl: Optional[float] = None,
    ) -> Any:
        """
        Return the cached value, or compute, store and return it.

        Concurrent callers that miss on the same key share a single supplier
        call. If the supplier raises, every waiter receives the error and
        nothing is stored.

        Args:
            key: Cache key
            supplier: Plain callable or coroutine function producing the value
            ttl: Entry TTL (seconds), defaults to config.default_ttl
        """
        found, value = self._lookup(key)
        if found:
            self.hits += 1
            return value
        self.misses += 1

        pending = self._inflight.get(key)
        if pending is not None:
            return await asyncio.shield(pending)

        future = asyncio.get_running_loop().create_future()
        self._inflight[key] = future
        try:
            result = supplier()
            if inspect.isawaitable(result):
                result = await result
        except asyncio.CancelledError:
            future.cancel()
            raise
        except Exception as exc:
            future.set_exception(exc)
            # Mark retrieved so an unshared failure does not warn at GC.
            future.exception()
            raise
        else:
            self.set(key, result, ttl)
            future.set_result(result)
            return result
        finally:
            if self._inflight.get(key) is future:
                del self._inflight[key]
