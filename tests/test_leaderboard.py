"""Tests for leaderboard.py and LeaderboardStoreDB."""

from __future__ import annotations

from leaderboard import build_leaderboard


def _row(user_id, xp, name="", badges=()):
    return {"user_id": user_id, "name": name, "photo_url": "", "xp": xp, "badges": list(badges)}


class TestBuildLeaderboard:
    def test_sorted_by_xp_desc_with_ranks(self):
        entries = build_leaderboard([_row("c", 100), _row("a", 300), _row("b", 300)])
        assert [e.xp for e in entries] == [300, 300, 100]
        assert [e.rank for e in entries] == [1, 2, 3]

    def test_ties_broken_deterministically(self):
        rows = [_row("b", 300), _row("a", 300), _row("c", 100)]
        first = build_leaderboard(rows)
        second = build_leaderboard(list(reversed(rows)))
        assert [e.user_id for e in first] == [e.user_id for e in second] == ["a", "b", "c"]

    def test_truncated_to_limit(self):
        rows = [_row(str(i), i) for i in range(60)]
        entries = build_leaderboard(rows, limit=50)
        assert len(entries) == 50
        assert entries[0].xp == 59
        assert entries[-1].rank == 50

    def test_projection(self):
        (entry,) = build_leaderboard([_row("a", 200, name="Ada", badges=["first_search", "deep_diver"])])
        assert entry.to_dict() == {
            "userId": "a", "name": "Ada", "photoUrl": "", "xp": 200,
            "level": 3, "rank": 1, "badges": 2,
        }

    def test_default_name(self):
        (entry,) = build_leaderboard([_row("a", 0)])
        assert entry.name == "Explorer"

    def test_empty(self):
        assert build_leaderboard([]) == []


class TestLeaderboardStore:
    def test_rows_join_profile_and_stats(self, app, frozen_clock):
        from db_stores import LeaderboardStoreDB, UserProfileDB, UserStatsStoreDB
        from gamification import GamificationEngine

        UserProfileDB("1").upsert(name="Ada", photo_url="https://t.me/a.jpg")
        engine = GamificationEngine(UserStatsStoreDB(), clock=frozen_clock)
        engine.record_action("1", "SHARE")
        engine.record_action("2", "SEARCH")

        rows = {r["user_id"]: r for r in LeaderboardStoreDB.rows()}
        assert rows["1"]["name"] == "Ada"
        assert rows["1"]["photo_url"] == "https://t.me/a.jpg"
        assert rows["1"]["xp"] == 50
        assert rows["2"]["name"] == "Explorer"
        assert rows["2"]["badges"] == ["first_search"]

    def test_profile_without_stats_not_listed(self, app):
        from db_stores import LeaderboardStoreDB, UserProfileDB
        UserProfileDB("lurker").upsert(name="Lurker")
        assert LeaderboardStoreDB.rows() == []
