"""
SQLite-backed stores for profiles, gamification stats, history and the leaderboard.

Each class keeps SQL in one place and hands back domain objects
(UserStats, HistoryItem). sqlite3 errors surface as PersistenceUnavailable
so callers can fall back to last-known state instead of resetting progress.
"""

from __future__ import annotations

import json
import sqlite3
from datetime import datetime
from typing import Callable

from database import get_db, transaction
from errors import InvalidInput, PersistenceUnavailable
from gamification import UserStats
from models import HistoryItem

DEFAULT_HISTORY_LIMIT = 50


def _query(sql: str, params: tuple = ()) -> list[sqlite3.Row]:
    try:
        return get_db().execute(sql, params).fetchall()
    except sqlite3.Error as e:
        raise PersistenceUnavailable(str(e)) from e


def _ensure_user(db: sqlite3.Connection, user_id: str) -> None:
    db.execute(
        "INSERT OR IGNORE INTO users (user_id, created_at) VALUES (?, ?)",
        (user_id, datetime.now().isoformat()),
    )


# ── Profile ──────────────────────────────────────────────────────────


class UserProfileDB:
    """Name and photo shown on the leaderboard."""

    def __init__(self, user_id: str):
        self.user_id = user_id

    def upsert(self, name: str | None = None, photo_url: str | None = None) -> None:
        """Create the user, then refresh whichever fields were supplied."""
        with transaction() as db:
            _ensure_user(db, self.user_id)
            if name:
                db.execute("UPDATE users SET name = ? WHERE user_id = ?", (name, self.user_id))
            if photo_url is not None:
                db.execute("UPDATE users SET photo_url = ? WHERE user_id = ?",
                           (photo_url, self.user_id))


# ── Gamification stats ───────────────────────────────────────────────


class UserStatsStoreDB:
    """Point lookup and transactional read-modify-write of user_stats."""

    @staticmethod
    def _row_to_stats(r: sqlite3.Row) -> UserStats:
        return UserStats(
            user_id=r["user_id"],
            xp=r["xp"],
            words_discovered=r["words_discovered"],
            summaries_generated=r["summaries_generated"],
            images_generated=r["images_generated"],
            shares=r["shares"],
            last_visit_at=r["last_visit_at"],
            current_streak=r["current_streak"],
            badges=tuple(json.loads(r["badges"] or "[]")),
        )

    def get(self, user_id: str) -> UserStats | None:
        rows = _query("SELECT * FROM user_stats WHERE user_id = ?", (user_id,))
        return self._row_to_stats(rows[0]) if rows else None

    def transform(self, user_id: str, fn: Callable[[UserStats | None], UserStats]) -> UserStats:
        """Load, apply ``fn`` and save inside one BEGIN IMMEDIATE transaction."""
        with transaction() as db:
            row = db.execute("SELECT * FROM user_stats WHERE user_id = ?", (user_id,)).fetchone()
            stats = fn(self._row_to_stats(row) if row else None)
            _ensure_user(db, user_id)
            db.execute(
                "INSERT INTO user_stats (user_id, xp, words_discovered, summaries_generated, "
                "images_generated, shares, last_visit_at, current_streak, badges) "
                "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?) "
                "ON CONFLICT(user_id) DO UPDATE SET xp=excluded.xp, "
                "words_discovered=excluded.words_discovered, "
                "summaries_generated=excluded.summaries_generated, "
                "images_generated=excluded.images_generated, shares=excluded.shares, "
                "last_visit_at=excluded.last_visit_at, current_streak=excluded.current_streak, "
                "badges=excluded.badges",
                (user_id, stats.xp, stats.words_discovered, stats.summaries_generated,
                 stats.images_generated, stats.shares, stats.last_visit_at,
                 stats.current_streak, json.dumps(list(stats.badges))),
            )
        return stats


# ── History ──────────────────────────────────────────────────────────


class HistoryStoreDB:
    """Per-user lookup history: newest first, one entry per word, capped."""

    def __init__(self, user_id: str, limit: int = DEFAULT_HISTORY_LIMIT):
        self.user_id = user_id
        self.limit = limit

    @staticmethod
    def _row_to_item(r: sqlite3.Row) -> HistoryItem:
        return HistoryItem(
            word=r["word"],
            timestamp=r["timestamp"],
            data=json.loads(r["data"]) if r["data"] else None,
            summary=r["summary"] or "",
            image=r["image"] or "",
        )

    def list(self) -> list[HistoryItem]:
        rows = _query(
            "SELECT * FROM history_items WHERE user_id = ? ORDER BY timestamp DESC, id DESC",
            (self.user_id,),
        )
        return [self._row_to_item(r) for r in rows]

    def get(self, word: str) -> HistoryItem | None:
        rows = _query(
            "SELECT * FROM history_items WHERE user_id = ? AND word_key = ?",
            (self.user_id, word.strip().lower()),
        )
        return self._row_to_item(rows[0]) if rows else None

    def append(self, item: HistoryItem) -> HistoryItem:
        """Insert at the front, replacing any entry for the same word.

        Fields the new item leaves empty keep the previous entry's values.
        Entries beyond the cap are dropped, oldest first.
        """
        if not item.word_key:
            raise InvalidInput("History item needs a word")
        with transaction() as db:
            _ensure_user(db, self.user_id)
            old = db.execute(
                "SELECT * FROM history_items WHERE user_id = ? AND word_key = ?",
                (self.user_id, item.word_key),
            ).fetchone()
            if old is not None:
                previous = self._row_to_item(old)
                item = HistoryItem(
                    word=item.word,
                    timestamp=item.timestamp,
                    data=item.data if item.data is not None else previous.data,
                    summary=item.summary or previous.summary,
                    image=item.image or previous.image,
                )
                db.execute("DELETE FROM history_items WHERE id = ?", (old["id"],))
            db.execute(
                "INSERT INTO history_items (user_id, word_key, word, timestamp, data, summary, image) "
                "VALUES (?, ?, ?, ?, ?, ?, ?)",
                (self.user_id, item.word_key, item.word, item.timestamp,
                 json.dumps(item.data) if item.data is not None else None,
                 item.summary, item.image),
            )
            db.execute(
                "DELETE FROM history_items WHERE user_id = ? AND id NOT IN ("
                "SELECT id FROM history_items WHERE user_id = ? "
                "ORDER BY timestamp DESC, id DESC LIMIT ?)",
                (self.user_id, self.user_id, self.limit),
            )
        return item

    def attach(self, word: str, summary: str | None = None, image: str | None = None) -> bool:
        """Store a summary and/or image on an existing entry. Returns False if absent."""
        sets, params = [], []
        if summary:
            sets.append("summary = ?")
            params.append(summary)
        if image:
            sets.append("image = ?")
            params.append(image)
        if not sets:
            return False
        with transaction() as db:
            cur = db.execute(
                f"UPDATE history_items SET {', '.join(sets)} WHERE user_id = ? AND word_key = ?",
                (*params, self.user_id, word.strip().lower()),
            )
        return cur.rowcount > 0

    def delete(self, timestamp: int) -> bool:
        with transaction() as db:
            cur = db.execute(
                "DELETE FROM history_items WHERE user_id = ? AND timestamp = ?",
                (self.user_id, timestamp),
            )
        return cur.rowcount > 0

    def clear(self) -> int:
        with transaction() as db:
            cur = db.execute("DELETE FROM history_items WHERE user_id = ?", (self.user_id,))
        return cur.rowcount

    def count_since(self, timestamp: int) -> int:
        rows = _query(
            "SELECT COUNT(*) AS n FROM history_items WHERE user_id = ? AND timestamp >= ?",
            (self.user_id, timestamp),
        )
        return rows[0]["n"]


# ── Leaderboard ──────────────────────────────────────────────────────


class LeaderboardStoreDB:
    """Full scan of stats joined with profiles, for leaderboard.build_leaderboard()."""

    @staticmethod
    def rows() -> list[dict]:
        rows = _query(
            "SELECT s.user_id, COALESCE(u.name, 'Explorer') AS name, "
            "COALESCE(u.photo_url, '') AS photo_url, s.xp, s.badges "
            "FROM user_stats s LEFT JOIN users u ON u.user_id = s.user_id"
        )
        result = []
        for r in rows:
            entry = dict(r)
            entry["badges"] = json.loads(entry["badges"] or "[]")
            result.append(entry)
        return result
