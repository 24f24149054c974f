import io
import threading
import time

import pytest

from detectviz.optimizer import CacheManager, PerformanceOptimizer, PoolManager
from detectviz.telemetry_logger import ConsoleLogger


@pytest.fixture
def logger():
    return ConsoleLogger(level="debug", stream=io.StringIO())


def test_new_optimizer_name(logger):
    optimizer = PerformanceOptimizer(logger, 10)
    assert optimizer.name == "performance_optimizer"
    assert optimizer.concurrency_limit == 10


def test_optimize_system_runs_cleanup(logger):
    optimizer = PerformanceOptimizer(logger, 10)
    optimizer.cache.set("old", 1, -1)
    optimizer.optimize_system()
    assert optimizer.cache.stats().evictions == 1
    assert optimizer.cache.stats().total_size == 0


def test_cache_hit_miss_and_expiry(logger):
    cache = CacheManager(logger)
    cache.set("a", "value", 60)
    cache.set("b", "gone", 0.01)
    assert cache.get("a") == "value"
    assert cache.get("missing", "dflt") == "dflt"
    time.sleep(0.03)
    assert cache.get("b") is None
    stats = cache.stats()
    assert (stats.hits, stats.misses, stats.evictions, stats.total_size) == (1, 2, 1, 1)


def test_cleanup_counts(logger):
    cache = CacheManager(logger)
    cache.set("x", 1, -1)
    cache.set("y", 2, -1)
    cache.set("z", 3, 60)
    assert cache.cleanup_expired_entries() == 2
    assert cache.get("z") == 3


def test_pool_manager_reuses_pool(logger):
    pm = PoolManager(logger)
    pool = pm.get_pool("buf", list)
    assert pm.get_pool("buf") is pool
    obj = pool.get()
    assert obj == []
    pool.put(obj)
    assert pool.get() is obj
    stats = pm.stats()
    assert (stats.pool_count, stats.total_gets, stats.total_puts) == (1, 2, 1)


def test_optimize_pools_keeps_objects(logger):
    pm = PoolManager(logger)
    pool = pm.get_pool("p")
    pool.put("item")
    pm.get_pool("empty")
    pm.optimize_pools()
    assert len(pool) == 1


def test_limit_caps_concurrency(logger):
    optimizer = PerformanceOptimizer(logger, 2)
    active = []
    peak = []
    lock = threading.Lock()

    def work(i):
        with optimizer.limit():
            with lock:
                active.append(1)
                peak.append(len(active))
            optimizer.cache.set(f"k{i}", i, 60)
            time.sleep(0.02)
            with lock:
                active.pop()

    threads = [threading.Thread(target=work, args=(i,)) for i in range(6)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    assert max(peak) <= 2
    assert [optimizer.cache.get(f"k{i}") for i in range(6)] == list(range(6))
    assert optimizer.cache.stats().total_size == 6


def test_invalid_concurrency(logger):
    with pytest.raises(ValueError):
        PerformanceOptimizer(logger, 0)