"""
Cache Store — the only stateful dependency of the strategy engine.

Every store module (artifacts, weekly moves, adoption, ledger) receives a
``CacheStore`` explicitly instead of reaching for a module-level client:

    store = get_cache_store()                 # Redis if REDIS_URL is reachable
    store = MemoryCacheStore()                # tests / local development

Values are JSON documents. Both backends serialise on ``set`` and decode
on ``get``, so callers never share mutable objects with the store and a
corrupt entry simply reads as a miss.
"""

import json
import logging
import os
import time

logger = logging.getLogger(__name__)


# ── Default TTLs (seconds) ───────────────────────────────────────────────

DAY = 24 * 60 * 60
STRATEGY_TTL = 7 * DAY
MOVES_TTL = 8 * DAY
ADOPTION_TTL = 45 * DAY
LEDGER_TTL = 45 * DAY


def _decode(raw):
    if raw is None:
        return None
    try:
        return json.loads(raw)
    except (json.JSONDecodeError, TypeError):
        logger.warning("Cache: dropping undecodable entry")
        return None


class CacheStore:
    """Key/value contract: get, set with TTL, delete."""

    backend = "abstract"

    def get(self, key):
        raise NotImplementedError

    def set(self, key, value, ttl_seconds):
        raise NotImplementedError

    def delete(self, key):
        raise NotImplementedError

    def ping(self):
        return True


# ── In-memory backend ────────────────────────────────────────────────────


class MemoryCacheStore(CacheStore):
    """Dict cache for dev/testing. *clock* returns epoch seconds."""

    backend = "memory"

    def __init__(self, clock=time.time):
        self._clock = clock
        self._entries = {}  # key → (value_json, expire_ts)

    def get(self, key):
        entry = self._entries.get(key)
        if entry is None:
            return None
        raw, expires = entry
        if self._clock() > expires:
            self._entries.pop(key, None)
            return None
        return _decode(raw)

    def set(self, key, value, ttl_seconds):
        self._entries[key] = (json.dumps(value), self._clock() + max(0, ttl_seconds))

    def delete(self, key):
        self._entries.pop(key, None)

    def keys(self, prefix=""):
        return sorted(k for k in self._entries if k.startswith(prefix))

    def clear(self):
        self._entries.clear()


# ── Redis backend ────────────────────────────────────────────────────────


class RedisCacheStore(CacheStore):
    """redis-py client wrapper; expiry is delegated to SETEX."""

    backend = "redis"

    def __init__(self, client):
        self._client = client

    @classmethod
    def from_url(cls, url):
        import redis as _redis

        return cls(_redis.from_url(url, decode_responses=True))

    def get(self, key):
        return _decode(self._client.get(key))

    def set(self, key, value, ttl_seconds):
        self._client.setex(key, max(1, int(ttl_seconds)), json.dumps(value))

    def delete(self, key):
        self._client.delete(key)

    def ping(self):
        return bool(self._client.ping())


# ── Factory ──────────────────────────────────────────────────────────────


def get_cache_store(redis_url=None):
    """Build a store from *redis_url* (or REDIS_URL), falling back to memory."""
    redis_url = redis_url if redis_url is not None else os.getenv("REDIS_URL")
    if redis_url and not redis_url.startswith("memory://"):
        try:
            store = RedisCacheStore.from_url(redis_url)
            store.ping()
            logger.info("Cache: using Redis at %s", redis_url.split("@")[-1])
            return store
        except Exception as exc:
            logger.warning("Redis unavailable (%s) — falling back to memory cache", exc)
    return MemoryCacheStore()


def health_check(store):
    """Return cache backend status."""
    try:
        store.ping()
        return {"status": "ok", "backend": store.backend}
    except Exception as exc:
        return {"status": "error", "backend": store.backend, "detail": str(exc)}
