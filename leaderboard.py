"""Leaderboard projection over persisted user stats.

Recomputed on every request and never stored. Ranks are 1-based positions
after sorting by XP descending; equal XP is broken by user id so the order
is deterministic.
"""

from __future__ import annotations

from dataclasses import dataclass

from gamification import level_for_xp

DEFAULT_LIMIT = 50


@dataclass(frozen=True)
class LeaderboardEntry:
    user_id: str
    name: str
    photo_url: str
    xp: int
    level: int
    rank: int
    badge_count: int

    def to_dict(self) -> dict:
        return {
            "userId": self.user_id,
            "name": self.name,
            "photoUrl": self.photo_url,
            "xp": self.xp,
            "level": self.level,
            "rank": self.rank,
            "badges": self.badge_count,
        }


def build_leaderboard(rows: list[dict], limit: int = DEFAULT_LIMIT) -> list[LeaderboardEntry]:
    """Sort ``rows`` (user_id, name, photo_url, xp, badges) and rank the top ``limit``."""
    ordered = sorted(rows, key=lambda r: (-int(r.get("xp") or 0), str(r["user_id"])))
    entries = []
    for rank, r in enumerate(ordered[:limit], 1):
        xp = int(r.get("xp") or 0)
        entries.append(LeaderboardEntry(
            user_id=str(r["user_id"]),
            name=r.get("name") or "Explorer",
            photo_url=r.get("photo_url") or "",
            xp=xp,
            level=level_for_xp(xp),
            rank=rank,
            badge_count=len(r.get("badges") or []),
        ))
    return entries
