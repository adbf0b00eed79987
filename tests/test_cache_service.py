"""
Tests for the plan cache service.

Covers:
  - MemoryBackend TTL expiry with an injected clock
  - get_cached calls the loader only on a miss
  - delete / clear_all
  - undecodable entries are discarded
  - build_backend falls back to memory
"""

from orgplan.services.cache_service import CacheService, MemoryBackend, build_backend


class FakeClock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now


def test_memory_backend_expires_entries():
    clock = FakeClock()
    backend = MemoryBackend(clock=clock)
    backend.setex("k", 10, "v")
    assert backend.get("k") == "v"
    clock.now += 11
    assert backend.get("k") is None


def test_get_cached_loads_once():
    cache = CacheService(MemoryBackend())
    calls = []

    def loader():
        calls.append(1)
        return {"current": {"id": "current", "nodes": []}}

    first = cache.get_cached("all_plans", loader=loader)
    second = cache.get_cached("all_plans", loader=loader)

    assert first == second == {"current": {"id": "current", "nodes": []}}
    assert len(calls) == 1


def test_get_cached_without_loader_returns_none():
    assert CacheService(MemoryBackend()).get_cached("missing") is None


def test_delete_and_clear():
    cache = CacheService(MemoryBackend())
    cache.set_cached("a", 1)
    cache.set_cached("b", 2)
    cache.delete_cached("a")
    assert cache.get_cached("a") is None
    assert cache.get_cached("b") == 2
    cache.clear_all()
    assert cache.get_cached("b") is None


def test_undecodable_entry_is_reloaded():
    backend = MemoryBackend()
    backend.setex("k", 60, "{not json")
    cache = CacheService(backend)
    assert cache.get_cached("k", loader=lambda: [1, 2]) == [1, 2]
    assert cache.get_cached("k") == [1, 2]


def test_build_backend_memory_for_memory_url():
    assert isinstance(build_backend("memory://"), MemoryBackend)
    assert isinstance(build_backend(None), MemoryBackend)


def test_build_backend_falls_back_when_redis_unreachable():
    backend = build_backend("redis://127.0.0.1:1/0")
    assert isinstance(backend, MemoryBackend)


def test_health_check_reports_memory():
    assert CacheService(MemoryBackend()).health_check() == {"status": "ok", "backend": "memory"}
