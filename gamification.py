"""
Gamification engine — XP, levels, streaks and badges.

Progress is a small state machine driven by discrete actions (SEARCH,
SUMMARY, IMAGE, SHARE). Every transition runs the same steps:

    daily-visit bonus -> action XP + counter -> badge unlocks -> persist

Level is never stored; it is recomputed from XP with
``1 + floor(sqrt(xp / 50))`` so early levels come quickly and later ones
need quadratically more XP. Badges only ever accumulate.

The transition for one user is serialised twice: a per-user lock inside
the process, and a ``BEGIN IMMEDIATE`` transaction in the store for
concurrent workers.
"""

from __future__ import annotations

import logging
import math
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass, field, replace
from datetime import date, datetime
from typing import Callable

from errors import InvalidInput, PersistenceUnavailable

logger = logging.getLogger(__name__)

# ── Constants ─────────────────────────────────────────────────

LEVEL_K = 50

XP_ACTIONS = {
    "SEARCH": 15,
    "SUMMARY": 30,
    "IMAGE": 20,
    "SHARE": 50,
}
DAILY_VISIT_XP = 100

# Streak survives a gap of up to this many calendar days.
STREAK_GRACE_DAYS = 2

ACTION_COUNTERS = {
    "SEARCH": "words_discovered",
    "SUMMARY": "summaries_generated",
    "IMAGE": "images_generated",
    "SHARE": "shares",
}

LEVEL_TITLES = [
    "Novice Seeker", "Word Watcher", "Curious Mind", "Bookworm",
    "Vocab Voyager", "Scroll Keeper", "Lexicon Legend", "Word Wizard",
    "Etymology Elder", "Grand Sage",
]


@dataclass(frozen=True)
class BadgeDefinition:
    id: str
    name: str
    description: str
    icon: str
    counter: str
    threshold: int

    def earned_by(self, stats: UserStats) -> bool:
        return getattr(stats, self.counter) >= self.threshold

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "icon": self.icon,
        }


BADGES = [
    BadgeDefinition("first_search", "First Discovery", "Searched for your first word.",
                    "Search", "words_discovered", 1),
    BadgeDefinition("explorer_10", "Explorer", "Discovered 10 unique words.",
                    "Map", "words_discovered", 10),
    BadgeDefinition("linguist_50", "Linguist", "A true lover of words. 50 discoveries.",
                    "BookOpen", "words_discovered", 50),
    BadgeDefinition("deep_diver", "Deep Diver", "Generated 5 AI deep dive summaries.",
                    "Anchor", "summaries_generated", 5),
    BadgeDefinition("social_butterfly", "Town Crier", "Shared knowledge with others 3 times.",
                    "Share2", "shares", 3),
    BadgeDefinition("illustrator_5", "Illustrator", "Generated 5 etymology illustrations.",
                    "Image", "images_generated", 5),
    BadgeDefinition("daily_streak_3", "Consistent", "Used the app for 3 days in a row.",
                    "Flame", "current_streak", 3),
]
BADGES_BY_ID = {b.id: b for b in BADGES}


# ── Levels ────────────────────────────────────────────────────

def level_for_xp(xp: int) -> int:
    return 1 + int(math.sqrt(max(0, xp) / LEVEL_K))


@dataclass(frozen=True)
class LevelInfo:
    level: int
    title: str
    min_xp: int
    next_level_xp: int
    progress_pct: int

    def to_dict(self) -> dict:
        return {
            "level": self.level,
            "title": self.title,
            "minXP": self.min_xp,
            "nextLevelXP": self.next_level_xp,
            "progressPct": self.progress_pct,
        }


def get_level_info(xp: int) -> LevelInfo:
    level = level_for_xp(xp)
    level_start = LEVEL_K * (level - 1) ** 2
    level_end = LEVEL_K * level ** 2
    level_range = level_end - level_start
    pct = min(100, int((xp - level_start) / level_range * 100)) if level_range > 0 else 100
    return LevelInfo(
        level=level,
        title=LEVEL_TITLES[min(level - 1, len(LEVEL_TITLES) - 1)],
        min_xp=level_start,
        next_level_xp=level_end,
        progress_pct=pct,
    )


# ── State ─────────────────────────────────────────────────────

@dataclass(frozen=True)
class UserStats:
    user_id: str
    xp: int = 0
    words_discovered: int = 0
    summaries_generated: int = 0
    images_generated: int = 0
    shares: int = 0
    last_visit_at: float = 0.0
    current_streak: int = 1
    badges: tuple[str, ...] = field(default_factory=tuple)

    @classmethod
    def initial(cls, user_id: str, now: float) -> UserStats:
        return cls(user_id=user_id, last_visit_at=now)

    @property
    def level(self) -> int:
        return level_for_xp(self.xp)

    def to_dict(self) -> dict:
        return {
            "userId": self.user_id,
            "xp": self.xp,
            "level": self.level,
            "wordsDiscovered": self.words_discovered,
            "summariesGenerated": self.summaries_generated,
            "imagesGenerated": self.images_generated,
            "shares": self.shares,
            # Milliseconds, as the Mini App's Date.now()
            "lastVisit": int(self.last_visit_at * 1000),
            "currentStreak": self.current_streak,
            "badges": list(self.badges),
        }

    @classmethod
    def from_dict(cls, user_id: str, data: dict) -> UserStats:
        """Build from a client snapshot. Unknown or malformed fields fall back to defaults."""
        def count(name: str, default: int = 0) -> int:
            try:
                return max(0, int(data.get(name, default)))
            except (TypeError, ValueError):
                return default

        badges = data.get("badges") or []
        if not isinstance(badges, list):
            badges = []
        return cls(
            user_id=user_id,
            xp=count("xp"),
            words_discovered=count("wordsDiscovered"),
            summaries_generated=count("summariesGenerated"),
            images_generated=count("imagesGenerated"),
            shares=count("shares"),
            last_visit_at=count("lastVisit") / 1000,
            current_streak=max(1, count("currentStreak", 1)),
            badges=tuple(b for b in badges if b in BADGES_BY_ID),
        )


@dataclass
class ActionOutcome:
    stats: UserStats
    new_badges: list[str] = field(default_factory=list)
    leveled_up: bool = False
    persisted: bool = True

    def to_dict(self) -> dict:
        return {
            "stats": self.stats.to_dict(),
            "newBadges": [BADGES_BY_ID[b].to_dict() for b in self.new_badges],
            "leveledUp": self.leveled_up,
        }


# ── Pure transitions ──────────────────────────────────────────

def _calendar_day(ts: float) -> date:
    return datetime.fromtimestamp(ts).date()


def apply_daily_visit(stats: UserStats, now: float) -> UserStats:
    """Advance or reset the streak when ``now`` falls on a later calendar day."""
    gap = (_calendar_day(now) - _calendar_day(stats.last_visit_at)).days
    if gap <= 0:
        return stats
    if gap <= STREAK_GRACE_DAYS:
        return replace(
            stats,
            xp=stats.xp + DAILY_VISIT_XP,
            current_streak=stats.current_streak + 1,
            last_visit_at=now,
        )
    return replace(stats, current_streak=1, last_visit_at=now)


def apply_action(stats: UserStats, action: str) -> UserStats:
    counter = ACTION_COUNTERS[action]
    return replace(
        stats,
        xp=stats.xp + XP_ACTIONS[action],
        **{counter: getattr(stats, counter) + 1},
    )


def unlock_badges(stats: UserStats) -> tuple[UserStats, list[str]]:
    new_badges = [b.id for b in BADGES if b.id not in stats.badges and b.earned_by(stats)]
    if not new_badges:
        return stats, []
    return replace(stats, badges=stats.badges + tuple(new_badges)), new_badges


def merge_snapshot(stored: UserStats, snapshot: UserStats) -> UserStats:
    """Monotonic merge: never lowers a counter and never drops a badge."""
    badges = stored.badges + tuple(b for b in snapshot.badges if b not in stored.badges)
    return replace(
        stored,
        xp=max(stored.xp, snapshot.xp),
        words_discovered=max(stored.words_discovered, snapshot.words_discovered),
        summaries_generated=max(stored.summaries_generated, snapshot.summaries_generated),
        images_generated=max(stored.images_generated, snapshot.images_generated),
        shares=max(stored.shares, snapshot.shares),
        current_streak=max(stored.current_streak, snapshot.current_streak),
        badges=badges,
    )


def normalize_action(action: str | None) -> str:
    name = (action or "").strip().upper()
    if name not in XP_ACTIONS:
        raise InvalidInput(f"Unknown action: {action!r}")
    return name


# ── Engine ────────────────────────────────────────────────────

class GamificationEngine:
    """Runs transitions against a store.

    ``store`` must provide ``get(user_id)`` and
    ``transform(user_id, fn)``, where ``fn`` maps the stored stats
    (or None for a new user) to the new stats inside one transaction.
    See UserStatsStoreDB.
    """

    LOCK_STRIPES = 64
    LAST_KNOWN_SIZE = 1024

    def __init__(self, store, clock: Callable[[], float] = time.time,
                 lock_stripes: int = LOCK_STRIPES, last_known_size: int = LAST_KNOWN_SIZE) -> None:
        self.store = store
        self._clock = clock
        # Users hash onto a fixed set of locks; two users may share one.
        self._locks = tuple(threading.Lock() for _ in range(lock_stripes))
        self._last_known: OrderedDict[str, UserStats] = OrderedDict()
        self._last_known_size = last_known_size
        self._last_known_guard = threading.Lock()

    def _lock_for(self, user_id: str) -> threading.Lock:
        return self._locks[hash(user_id) % len(self._locks)]

    def _remember(self, stats: UserStats) -> None:
        with self._last_known_guard:
            self._last_known[stats.user_id] = stats
            self._last_known.move_to_end(stats.user_id)
            while len(self._last_known) > self._last_known_size:
                self._last_known.popitem(last=False)

    def _best_known(self, user_id: str, now: float) -> UserStats:
        try:
            stored = self.store.get(user_id)
        except PersistenceUnavailable:
            stored = None
        if stored is not None:
            return stored
        with self._last_known_guard:
            known = self._last_known.get(user_id)
        return known or UserStats.initial(user_id, now)

    def _run(self, user_id: str, step: Callable[[UserStats], UserStats]) -> ActionOutcome:
        if not user_id:
            raise InvalidInput("userId is required")
        now = self._clock()
        captured: dict[str, UserStats] = {}

        def transition(current: UserStats | None) -> UserStats:
            before = current or UserStats.initial(user_id, now)
            after, new_badges = unlock_badges(step(apply_daily_visit(before, now)))
            captured["before"] = before
            captured["new_badges"] = new_badges
            return after

        with self._lock_for(user_id):
            try:
                stats = self.store.transform(user_id, transition)
            except PersistenceUnavailable as e:
                logger.error("Gamification update for user %s not persisted: %s", user_id, e)
                return ActionOutcome(self._best_known(user_id, now), persisted=False)

        self._remember(stats)
        return ActionOutcome(
            stats=stats,
            new_badges=captured["new_badges"],
            leveled_up=stats.level > captured["before"].level,
        )

    def visit(self, user_id: str) -> ActionOutcome:
        """Apply daily-visit logic only, as on opening the app."""
        return self._run(user_id, lambda stats: stats)

    def record_action(self, user_id: str, action: str) -> ActionOutcome:
        action = normalize_action(action)
        outcome = self._run(user_id, lambda stats: apply_action(stats, action))
        if outcome.new_badges:
            logger.info("User %s unlocked %s", user_id, ", ".join(outcome.new_badges))
        return outcome

    def sync_snapshot(self, user_id: str, snapshot: dict) -> ActionOutcome:
        """Adopt a client-held snapshot via monotonic merge."""
        incoming = UserStats.from_dict(user_id, snapshot or {})
        return self._run(user_id, lambda stats: merge_snapshot(stats, incoming))
