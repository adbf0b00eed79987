"""
Plan Cache Service

Provides a thin cache wrapper with:
  - Generic JSON get/set/delete with TTL
  - Cache-aside helper (``get_cached`` with a loader)
  - Health check for the liveness probe

Uses Redis when REDIS_URL points at a server, falls back to an in-process
dict for development/testing. One ``CacheService`` is created in
``create_app`` and injected into the repositories; nothing here is a
module-level singleton.

There is no locking and no stampede protection: concurrent misses may all
call the loader.
"""

import json
import logging
import time

logger = logging.getLogger(__name__)

DEFAULT_TTL = 300  # 5 minutes


class MemoryBackend:
    """Simple dict cache for dev/testing."""

    def __init__(self, clock=time.time):
        self._store: dict = {}  # key → (value_json, expire_ts)
        self._clock = clock

    def get(self, key):
        entry = self._store.get(key)
        if entry is None:
            return None
        val, expires = entry
        if expires and self._clock() > expires:
            self._store.pop(key, None)
            return None
        return val

    def setex(self, key, ttl_seconds, value):
        self._store[key] = (value, self._clock() + ttl_seconds)

    def delete(self, *keys):
        for k in keys:
            self._store.pop(k, None)

    def flushdb(self):
        self._store.clear()

    def ping(self):
        return True


def build_backend(redis_url: str | None):
    """Return a Redis client for *redis_url*, or a ``MemoryBackend``."""
    if redis_url and not redis_url.startswith("memory://"):
        try:
            import redis as _redis
            backend = _redis.from_url(redis_url, decode_responses=True)
            backend.ping()
            logger.info("Cache: using Redis at %s", redis_url.split("@")[-1])
            return backend
        except Exception as exc:
            logger.warning("Redis unavailable (%s) — falling back to memory cache", exc)
    return MemoryBackend()


class CacheService:
    """JSON cache facade over a Redis-compatible backend."""

    def __init__(self, backend=None, default_ttl: int = DEFAULT_TTL):
        self.backend = backend if backend is not None else MemoryBackend()
        self.default_ttl = default_ttl

    def get_cached(self, key, ttl=None, loader=None):
        """Generic cache-aside. If *loader* is provided, it's called on miss
        and the result is cached."""
        raw = self.backend.get(key)
        if raw is not None:
            try:
                return json.loads(raw)
            except (json.JSONDecodeError, TypeError):
                logger.warning("Discarding undecodable cache entry %s", key)
                self.backend.delete(key)
        if loader is None:
            return None
        value = loader()
        if value is not None:
            self.set_cached(key, value, ttl)
        return value

    def set_cached(self, key, value, ttl=None):
        self.backend.setex(key, ttl or self.default_ttl, json.dumps(value))

    def delete_cached(self, key):
        self.backend.delete(key)

    def clear_all(self):
        """Flush entire cache (use sparingly — mainly for testing)."""
        self.backend.flushdb()

    def health_check(self):
        """Return cache backend status."""
        try:
            self.backend.ping()
            backend_type = "memory" if isinstance(self.backend, MemoryBackend) else "redis"
            return {"status": "ok", "backend": backend_type}
        except Exception as exc:
            return {"status": "error", "detail": str(exc)}
