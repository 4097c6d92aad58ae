"""Persisted mirror for the result cache, with Redis / SQLite swap.

Provides a simple get/set/delete/clear API for JSON-serialisable values.
When REDIS_URL is configured and reachable, uses Redis (which expires keys
natively); otherwise entries go to the ``artifact_cache`` table in the app
database with an explicit ``expires_at`` column.

Usage:
    from cache_backend import init_cache, get_cache
    init_cache(app)          # called once in create_app()
    mirror = get_cache()     # module-level accessor
    mirror.set("v1:details:cat", {...}, ttl=300)
    entry = mirror.get("v1:details:cat")

The mirror is never a source of truth: every failure is logged and treated
as a miss.
"""

from __future__ import annotations

import json
import logging
import sqlite3
import time
from typing import Any, Protocol

logger = logging.getLogger(__name__)

# ── Protocol ───────────────────────────────────────────────

class CacheBackend(Protocol):
    def get(self, key: str) -> Any | None: ...
    def set(self, key: str, value: Any, ttl: int = 300) -> None: ...
    def delete(self, key: str) -> None: ...
    def clear(self) -> None: ...
    def cleanup(self) -> int: ...


# ── SQLite Implementation ─────────────────────────────────

class DatabaseCache:
    """Stores entries in the ``artifact_cache`` table.

    Needs an application context, since it shares the request's connection
    via database.get_db().
    """

    def __init__(self, clock=time.time) -> None:
        self._clock = clock

    @staticmethod
    def _db():
        from database import get_db
        return get_db()

    def get(self, key: str) -> Any | None:
        try:
            row = self._db().execute(
                "SELECT entry, expires_at FROM artifact_cache WHERE cache_key = ?", (key,)
            ).fetchone()
        except (sqlite3.Error, RuntimeError) as e:
            logger.warning("Cache mirror GET error (key=%s): %s", key, e)
            return None
        if row is None:
            return None
        if row["expires_at"] <= self._clock():
            self.delete(key)
            return None
        try:
            return json.loads(row["entry"])
        except (json.JSONDecodeError, TypeError):
            return None

    def set(self, key: str, value: Any, ttl: int = 300) -> None:
        try:
            db = self._db()
            db.execute(
                "INSERT OR REPLACE INTO artifact_cache (cache_key, entry, expires_at) VALUES (?, ?, ?)",
                (key, json.dumps(value), self._clock() + ttl),
            )
            db.commit()
        except (sqlite3.Error, RuntimeError) as e:
            logger.warning("Cache mirror SET error (key=%s): %s", key, e)

    def delete(self, key: str) -> None:
        try:
            db = self._db()
            db.execute("DELETE FROM artifact_cache WHERE cache_key = ?", (key,))
            db.commit()
        except (sqlite3.Error, RuntimeError) as e:
            logger.warning("Cache mirror DELETE error (key=%s): %s", key, e)

    def clear(self) -> None:
        try:
            db = self._db()
            db.execute("DELETE FROM artifact_cache")
            db.commit()
        except (sqlite3.Error, RuntimeError) as e:
            logger.warning("Cache mirror CLEAR error: %s", e)

    def cleanup(self) -> int:
        try:
            db = self._db()
            cur = db.execute("DELETE FROM artifact_cache WHERE expires_at <= ?", (self._clock(),))
            db.commit()
            return cur.rowcount
        except (sqlite3.Error, RuntimeError) as e:
            logger.warning("Cache mirror CLEANUP error: %s", e)
            return 0


# ── Redis Implementation ──────────────────────────────────

class RedisCache:
    """Wraps redis.Redis with graceful error handling."""

    def __init__(self, redis_client) -> None:
        self._redis = redis_client

    def get(self, key: str) -> Any | None:
        try:
            raw = self._redis.get(key)
            if raw is None:
                return None
            return json.loads(raw)
        except (json.JSONDecodeError, TypeError) as e:
            logger.warning("Redis entry unreadable (key=%s): %s", key, e)
            return None
        except Exception as e:
            logger.warning("Redis GET error (key=%s): %s", key, e)
            return None

    def set(self, key: str, value: Any, ttl: int = 300) -> None:
        try:
            self._redis.setex(key, max(1, int(ttl)), json.dumps(value))
        except Exception as e:
            logger.warning("Redis SET error (key=%s): %s", key, e)

    def delete(self, key: str) -> None:
        try:
            self._redis.delete(key)
        except Exception as e:
            logger.warning("Redis DELETE error (key=%s): %s", key, e)

    def clear(self) -> None:
        try:
            self._redis.flushdb()
        except Exception as e:
            logger.warning("Redis CLEAR error: %s", e)

    def cleanup(self) -> int:
        # Redis handles expiry natively
        return 0


# ── Module-level singleton ────────────────────────────────

_cache: CacheBackend | None = None


def init_cache(app) -> None:
    """Initialize the mirror backend. Call once from create_app()."""
    global _cache

    redis_url = app.config.get("REDIS_URL", "")
    if redis_url:
        try:
            import redis
            client = redis.Redis.from_url(redis_url, decode_responses=False)
            client.ping()
            _cache = RedisCache(client)
            app.logger.info("Cache mirror: Redis (%s)", redis_url)
            return
        except Exception as e:
            app.logger.warning("Redis connection failed (%s) — falling back to database cache.", e)

    _cache = DatabaseCache()
    app.logger.info("Cache mirror: database (artifact_cache)")


def get_cache() -> CacheBackend:
    """Return the active mirror backend. Lazily initializes if needed."""
    global _cache
    if _cache is None:
        _cache = DatabaseCache()
    return _cache
