"""Two-tier cache for AI-derived artifacts.

Tier one is process memory: an insertion-ordered dict bounded by entry
count, evicting the oldest insertion first (FIFO, not LRU). Tier two is an
optional persisted mirror (see cache_backend.py) that survives restarts and
is shared between workers.

Every entry carries its creation time and whether it is a degraded
placeholder. Genuine results live for LONG_TTL, placeholders for SHORT_TTL,
so a provider outage heals itself within minutes while real answers stay
cached for a day.
"""

from __future__ import annotations

import logging
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Callable

from cache_backend import CacheBackend

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CacheEntry:
    key: str
    payload: Any
    created_at: float
    is_degraded: bool = False

    def to_dict(self) -> dict:
        return {
            "payload": self.payload,
            "createdAt": self.created_at,
            "isDegraded": self.is_degraded,
        }


class ResultCache:
    """Memory tier plus optional mirror for one artifact kind."""

    LONG_TTL = 24 * 60 * 60  # seconds
    SHORT_TTL = 5 * 60  # seconds

    def __init__(
        self,
        kind: str,
        capacity: int = 100,
        long_ttl: float = LONG_TTL,
        short_ttl: float = SHORT_TTL,
        version: str = "v1",
        mirror: CacheBackend | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        self.kind = kind
        self.capacity = capacity
        self.long_ttl = long_ttl
        self.short_ttl = short_ttl
        self.version = version
        self.mirror = mirror
        self._clock = clock
        self._entries: OrderedDict[str, CacheEntry] = OrderedDict()
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def make_key(self, key: str) -> str:
        return f"{self.version}:{self.kind}:{key}"

    def ttl_for(self, is_degraded: bool) -> float:
        return self.short_ttl if is_degraded else self.long_ttl

    def is_valid(self, entry: CacheEntry, now: float | None = None) -> bool:
        now = self._clock() if now is None else now
        return now - entry.created_at < self.ttl_for(entry.is_degraded)

    def _insert(self, entry: CacheEntry) -> None:
        # Caller holds the lock; insert and eviction happen as one step.
        self._entries.pop(entry.key, None)
        self._entries[entry.key] = entry
        while len(self._entries) > self.capacity:
            evicted, _ = self._entries.popitem(last=False)
            logger.debug("Evicted %s (capacity %d)", evicted, self.capacity)

    def get(self, key: str) -> CacheEntry | None:
        full_key = self.make_key(key)
        now = self._clock()
        with self._lock:
            entry = self._entries.get(full_key)
            if entry is not None:
                if self.is_valid(entry, now):
                    return entry
                del self._entries[full_key]

        if self.mirror is None:
            return None
        raw = self.mirror.get(full_key)
        if not isinstance(raw, dict) or "payload" not in raw:
            return None
        entry = CacheEntry(
            key=full_key,
            payload=raw["payload"],
            created_at=float(raw.get("createdAt", 0)),
            is_degraded=bool(raw.get("isDegraded", False)),
        )
        if not self.is_valid(entry, now):
            return None
        with self._lock:
            self._insert(entry)
        logger.debug("Mirror hit for %s", full_key)
        return entry

    def put(self, key: str, payload: Any, is_degraded: bool = False) -> CacheEntry:
        entry = CacheEntry(
            key=self.make_key(key),
            payload=payload,
            created_at=self._clock(),
            is_degraded=is_degraded,
        )
        with self._lock:
            self._insert(entry)
        if self.mirror is not None:
            self.mirror.set(entry.key, entry.to_dict(), ttl=int(self.ttl_for(is_degraded)))
        return entry

    def cleanup(self) -> int:
        """Remove expired entries from both tiers. Returns count removed."""
        now = self._clock()
        with self._lock:
            expired = [k for k, e in self._entries.items() if not self.is_valid(e, now)]
            for k in expired:
                del self._entries[k]
        removed = len(expired)
        if self.mirror is not None:
            removed += self.mirror.cleanup()
        return removed
