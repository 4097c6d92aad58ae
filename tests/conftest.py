"""
Test fixtures for the etymology backend.

Provides app, client and db fixtures with file-based SQLite, a fake Gemini
provider, a frozen clock, and a fakeredis client. No test talks to Gemini.
"""

from __future__ import annotations

import json
from datetime import datetime, timedelta

import pytest

import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent))

TEST_KEYS = ["test-key-aaaaaaaaaaaa", "test-key-bbbbbbbbbbbb"]


class FakeProvider:
    """Stands in for GeminiProvider.

    Each method pops the next queued outcome for that method (an exception
    instance is raised, a callable is called with the call's arguments,
    anything else is returned) and falls back to a valid default response.
    """

    METHODS = ("word_details", "summary", "image", "speech")

    def __init__(self):
        self.calls: list[tuple] = []
        self._queued: dict[str, list] = {m: [] for m in self.METHODS}

    @staticmethod
    def word_payload(word: str) -> dict:
        return {
            "word": word,
            "phonetic": "/ˌsɛr.ənˈdɪp.ɪ.ti/",
            "partOfSpeech": "noun",
            "definition": "The occurrence of events by chance in a happy way.",
            "etymology": "Coined by Horace Walpole in 1754 from The Three Princes of Serendip.",
            "roots": [
                {"term": "Serendip", "language": "Persian", "meaning": "Sri Lanka"},
                {"term": "-ity", "language": "Latin", "meaning": "state or quality"},
            ],
            "examples": ["Finding the book was pure serendipity."],
            "synonyms": ["chance", "fluke"],
            "funFact": "Walpole coined it in a letter.",
        }

    def queue(self, method: str, *outcomes) -> None:
        self._queued[method].extend(outcomes)

    def count(self, method: str) -> int:
        return sum(1 for c in self.calls if c[0] == method)

    def keys_used(self, method: str) -> list[str]:
        return [c[1] for c in self.calls if c[0] == method]

    def _next(self, method: str, api_key: str, *args, default=None):
        self.calls.append((method, api_key, *args))
        if self._queued[method]:
            outcome = self._queued[method].pop(0)
        else:
            outcome = default
        if isinstance(outcome, BaseException):
            raise outcome
        if callable(outcome):
            return outcome(*args)
        return outcome

    def word_details(self, api_key, word):
        return self._next("word_details", api_key, word,
                          default=json.dumps(self.word_payload(word)))

    def summary(self, api_key, word):
        return self._next("summary", api_key, word,
                          default=f"The word {word} has a long and winding story. It began long ago.")

    def image(self, api_key, word, etymology=""):
        return self._next("image", api_key, word, etymology, default="aW1hZ2UtYnl0ZXM=")

    def speech(self, api_key, text):
        return self._next("speech", api_key, text, default="YXVkaW8tYnl0ZXM=")


class FrozenClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: datetime | None = None):
        self.now = (start or datetime(2026, 3, 10, 12, 0)).timestamp()

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float = 0, days: int = 0) -> None:
        self.now += seconds + timedelta(days=days).total_seconds()


@pytest.fixture
def fake_provider():
    return FakeProvider()


@pytest.fixture
def frozen_clock():
    return FrozenClock()


@pytest.fixture
def fake_redis():
    import fakeredis
    return fakeredis.FakeRedis()


@pytest.fixture
def make_lookup(frozen_clock, fake_provider):
    """Factory for a LookupService wired to the fake provider, no retry delay."""
    from ai_resilience import RetryingProviderClient
    from key_pool import KeyPool
    from lookup import LookupService
    from result_cache import ResultCache

    def _make(keys=None, mirror=None, capacity=100, max_attempts=3, sleep=None):
        def cache(kind, size=capacity):
            return ResultCache(kind, capacity=size, mirror=mirror, clock=frozen_clock)

        return LookupService(
            key_pool=KeyPool(TEST_KEYS if keys is None else keys),
            client=RetryingProviderClient(
                max_attempts=max_attempts, base_delay=0, timeout=0,
                sleep=sleep or (lambda s: None),
            ),
            provider=fake_provider,
            details_cache=cache("details"),
            summary_cache=cache("summary"),
            image_cache=cache("image", min(capacity, 50)),
            audio_cache=cache("audio", min(capacity, 20)),
        )

    return _make


@pytest.fixture
def app(tmp_path):
    """Create app with file-based SQLite for testing."""
    from app import create_app

    db_file = str(tmp_path / "test.db")
    app = create_app({
        "TESTING": True,
        "DATABASE": db_file,
        "SECRET_KEY": "test-secret-key",
        "GEMINI_API_KEYS": list(TEST_KEYS),
        "REDIS_URL": "",
    })

    with app.app_context():
        from database import init_db, run_migrations

        init_db()
        run_migrations()
        yield app


@pytest.fixture
def lookup_service(app, make_lookup):
    """LookupService on the fake provider, installed into the app."""
    from cache_backend import get_cache
    from extensions import ServiceManager

    service = make_lookup(mirror=get_cache())
    ServiceManager.install(lookup=service)
    return service


@pytest.fixture
def client(app):
    """Test client."""
    return app.test_client()


@pytest.fixture
def db(app):
    """Direct database access for store tests."""
    with app.app_context():
        from database import get_db
        yield get_db()
