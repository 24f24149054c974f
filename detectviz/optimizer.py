"""Cache, object pool and garbage-collection helpers."""

from __future__ import annotations

import dataclasses
import gc
import threading
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Callable, Iterator


@dataclass
class CacheStats:
    hits: int = 0
    misses: int = 0
    evictions: int = 0
    total_size: int = 0
    last_cleanup: datetime = field(default_factory=datetime.now)


class CacheManager:
    """Key/value cache whose entries expire after a time-to-live."""

    def __init__(self, logger: Any) -> None:
        self.logger = logger
        self._entries: dict[str, tuple[Any, float]] = {}
        self._stats = CacheStats()
        self._lock = threading.Lock()

    def set(self, key: str, value: Any, ttl: float | timedelta) -> None:
        seconds = ttl.total_seconds() if isinstance(ttl, timedelta) else float(ttl)
        with self._lock:
            self._entries[key] = (value, time.monotonic() + seconds)
            self._stats.total_size += 1

    def get(self, key: str, default: Any = None) -> Any:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self._stats.misses += 1
                return default
            value, expires_at = entry
            if time.monotonic() > expires_at:
                del self._entries[key]
                self._stats.misses += 1
                self._stats.evictions += 1
                self._stats.total_size -= 1
                return default
            self._stats.hits += 1
            return value

    def cleanup_expired_entries(self) -> int:
        """Remove expired entries and return how many were removed."""
        now = time.monotonic()
        with self._lock:
            expired = [k for k, (_, exp) in self._entries.items() if now > exp]
            for key in expired:
                del self._entries[key]
            self._stats.evictions += len(expired)
            self._stats.total_size -= len(expired)
            self._stats.last_cleanup = datetime.now()
        self.logger.info("cache cleanup finished, removed %d expired entries", len(expired))
        return len(expired)

    def stats(self) -> CacheStats:
        with self._lock:
            return dataclasses.replace(self._stats)


class ObjectPool:
    """Pool of reusable objects, created by ``factory`` when empty."""

    def __init__(self, factory: Callable[[], Any] | None = None,
                 on_get: Callable[[], None] | None = None,
                 on_put: Callable[[], None] | None = None) -> None:
        self.factory = factory
        self._items: list[Any] = []
        self._lock = threading.Lock()
        self._on_get = on_get
        self._on_put = on_put

    def _take(self) -> Any:
        with self._lock:
            if self._items:
                return self._items.pop()
        return self.factory() if self.factory else None

    def _give(self, obj: Any) -> None:
        with self._lock:
            self._items.append(obj)

    def get(self) -> Any:
        if self._on_get:
            self._on_get()
        return self._take()

    def put(self, obj: Any) -> None:
        if self._on_put:
            self._on_put()
        self._give(obj)

    def __len__(self) -> int:
        return len(self._items)


@dataclass
class PoolStats:
    pool_count: int = 0
    total_gets: int = 0
    total_puts: int = 0
    last_optimize: datetime = field(default_factory=datetime.now)


class PoolManager:
    """Named object pools."""

    def __init__(self, logger: Any) -> None:
        self.logger = logger
        self._pools: dict[str, ObjectPool] = {}
        self._stats = PoolStats()
        self._lock = threading.RLock()

    def _count_get(self) -> None:
        with self._lock:
            self._stats.total_gets += 1

    def _count_put(self) -> None:
        with self._lock:
            self._stats.total_puts += 1

    def get_pool(self, name: str, factory: Callable[[], Any] | None = None) -> ObjectPool:
        """Return the pool called ``name``, creating it on first request."""
        with self._lock:
            pool = self._pools.get(name)
            if pool is None:
                pool = ObjectPool(factory, self._count_get, self._count_put)
                self._pools[name] = pool
                self._stats.pool_count += 1
            return pool

    def optimize_pools(self) -> None:
        with self._lock:
            for name, pool in self._pools.items():
                obj = pool._take()
                if obj is None:
                    self.logger.debug("object pool %s is empty, candidate for cleanup", name)
                else:
                    pool._give(obj)
            self._stats.last_optimize = datetime.now()
        self.logger.info("object pool optimisation finished")

    def stats(self) -> PoolStats:
        with self._lock:
            return dataclasses.replace(self._stats)


class GCOptimizer:
    """Triggers a garbage collection."""

    def __init__(self, logger: Any) -> None:
        self.logger = logger

    def optimize_gc(self) -> int:
        collected = gc.collect()
        self.logger.info("manual garbage collection finished")
        return collected


class PerformanceOptimizer:
    """Runs the cache, pool and GC optimisations and limits concurrency."""

    name = "performance_optimizer"

    def __init__(self, logger: Any, concurrency_limit: int) -> None:
        if concurrency_limit < 1:
            raise ValueError("concurrency_limit must be at least 1")
        self.logger = logger
        self.cache = CacheManager(logger)
        self.pool_manager = PoolManager(logger)
        self.gc_optimizer = GCOptimizer(logger)
        self.concurrency_limit = concurrency_limit
        self._semaphore = threading.BoundedSemaphore(concurrency_limit)

    def optimize_system(self) -> None:
        self.logger.info("starting system performance optimisation...")
        try:
            self.gc_optimizer.optimize_gc()
        except Exception as exc:
            self.logger.error("GC optimisation failed: %s", exc)
            raise
        self.pool_manager.optimize_pools()
        self.cache.cleanup_expired_entries()
        self.logger.info("system performance optimisation finished")

    @contextmanager
    def limit(self) -> Iterator[None]:
        """Hold one of the ``concurrency_limit`` slots for the block."""
        self._semaphore.acquire()
        try:
            yield
        finally:
            self._semaphore.release()