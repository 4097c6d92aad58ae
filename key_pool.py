"""Credential pool for the Gemini API.

Several free-tier keys give a higher aggregate quota than one. The pool is
built once from config and never mutated, so reads need no locking beyond the
cursor used for round-robin selection.
"""

from __future__ import annotations

import itertools
import logging
import random
import threading
from collections.abc import Iterable, Iterator

from errors import NoCredentialsConfigured

logger = logging.getLogger(__name__)

MIN_KEY_LENGTH = 10


def collect_keys(values: Iterable[str | None]) -> list[str]:
    """Drop blanks, placeholders and duplicates while keeping order."""
    keys: list[str] = []
    for value in values:
        if not value:
            continue
        for part in value.split(","):
            part = part.strip()
            if len(part) > MIN_KEY_LENGTH and part not in keys:
                keys.append(part)
    return keys


class KeyPool:
    """Hands out one credential per call.

    ``round_robin`` starts at a shuffled offset and walks the keys in order,
    which spreads load evenly. ``random`` picks uniformly each time, which
    matches the old behaviour of indexing the key list at random.
    """

    POLICIES = ("round_robin", "random")

    def __init__(self, keys: Iterable[str], policy: str = "round_robin",
                 rng: random.Random | None = None) -> None:
        if policy not in self.POLICIES:
            raise ValueError(f"Unknown key selection policy: {policy}")
        self._keys: tuple[str, ...] = tuple(keys)
        self._policy = policy
        self._rng = rng or random.Random()
        self._lock = threading.Lock()
        self._cursor = self._rng.randrange(len(self._keys)) if self._keys else 0

    def __len__(self) -> int:
        return len(self._keys)

    @classmethod
    def from_config(cls, config) -> KeyPool:
        return cls(config.get("GEMINI_API_KEYS", []),
                   policy=config.get("KEY_SELECTION", "round_robin"))

    def _next_index(self) -> int:
        if not self._keys:
            raise NoCredentialsConfigured()
        if self._policy == "random":
            return self._rng.randrange(len(self._keys))
        with self._lock:
            idx = self._cursor
            self._cursor = (self._cursor + 1) % len(self._keys)
        return idx

    def acquire(self) -> str:
        return self._keys[self._next_index()]

    def rotation(self) -> Iterator[str]:
        """Yield every key exactly once, starting from the next selection.

        Used when a key hits its quota: the caller moves on to the next one
        and only gives up once the whole pool has been tried.
        """
        start = self._next_index()
        n = len(self._keys)
        for offset in itertools.islice(itertools.count(), n):
            yield self._keys[(start + offset) % n]

    def describe(self, key: str) -> str:
        """Log-safe label for a key."""
        try:
            return f"key#{self._keys.index(key) + 1}"
        except ValueError:
            return "key#?"
