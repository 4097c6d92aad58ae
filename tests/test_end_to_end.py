"""End-to-end flows: lookup, reward and degraded caching working together."""

from __future__ import annotations

from ai_resilience import RateLimited
from models import Degraded, DegradedReason, Fresh


def test_discover_a_new_word(app, make_lookup, frozen_clock):
    from db_stores import UserStatsStoreDB
    from gamification import GamificationEngine

    service = make_lookup()
    engine = GamificationEngine(UserStatsStoreDB(), clock=frozen_clock)

    result = service.details("serendipity")
    assert isinstance(result, Fresh)
    entry = service.details_cache.get("serendipity")
    assert entry.is_degraded is False
    assert entry.created_at == frozen_clock()
    assert service.details_cache.ttl_for(entry.is_degraded) == service.details_cache.long_ttl

    outcome = engine.record_action("u1", "SEARCH")
    assert outcome.stats.words_discovered == 1
    assert outcome.stats.xp == 15
    assert outcome.stats.level == 1
    assert outcome.new_badges == ["first_search"]


def test_degraded_lookup_is_not_retried_within_short_ttl(make_lookup, fake_provider, frozen_clock):
    service = make_lookup()
    fake_provider.queue("word_details", RateLimited("429"), RateLimited("429"))

    first = service.details("cat")
    assert isinstance(first, Degraded)
    assert first.reason is DegradedReason.QUOTA
    calls = fake_provider.count("word_details")

    entry = service.details_cache.get("cat")
    assert entry.is_degraded is True
    assert service.details_cache.ttl_for(entry.is_degraded) == service.details_cache.short_ttl

    frozen_clock.advance(30)
    second = service.details("cat")
    assert isinstance(second, Degraded)
    assert second.reason is DegradedReason.QUOTA
    assert fake_provider.count("word_details") == calls


def test_http_search_flow(client, lookup_service):
    """Look a word up, report the search, and see it on the leaderboard."""
    details = client.get("/api/details?word=Serendipity&userId=7").get_json()
    assert details["isDegraded"] is False

    reward = client.post("/api/gamification", json={
        "userId": "7", "action": "SEARCH", "payload": {"wordData": details},
    }).get_json()
    assert reward["stats"]["xp"] == 15
    assert reward["newBadges"][0]["id"] == "first_search"

    again = client.get("/api/details?word=serendipity&userId=7").get_json()
    assert again["source"] == "history"

    board = client.get("/api/leaderboard").get_json()
    assert board == [{
        "userId": "7", "name": "Explorer", "photoUrl": "", "xp": 15,
        "level": 1, "rank": 1, "badges": 1,
    }]
