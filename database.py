"""
SQLite database layer for the etymology companion.

Uses raw sqlite3 with WAL mode and parameterized queries.
A schema_version table handles migrations.
"""

from __future__ import annotations

import fcntl
import sqlite3
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path

from flask import current_app, g

from errors import PersistenceUnavailable

DEFAULT_DB_PATH = Path(__file__).parent / "etymology.db"


SCHEMA = """
-- Migration tracking
CREATE TABLE IF NOT EXISTS schema_version (
    version INTEGER NOT NULL,
    applied_at TEXT NOT NULL
);

-- Telegram users (profile shown on the leaderboard)
CREATE TABLE IF NOT EXISTS users (
    user_id TEXT PRIMARY KEY,
    name TEXT NOT NULL DEFAULT 'Explorer',
    photo_url TEXT NOT NULL DEFAULT '',
    created_at TEXT NOT NULL DEFAULT ''
);

-- Gamification progress. Level is derived from xp and never stored.
CREATE TABLE IF NOT EXISTS user_stats (
    user_id TEXT PRIMARY KEY REFERENCES users(user_id) ON DELETE CASCADE,
    xp INTEGER NOT NULL DEFAULT 0,
    words_discovered INTEGER NOT NULL DEFAULT 0,
    summaries_generated INTEGER NOT NULL DEFAULT 0,
    images_generated INTEGER NOT NULL DEFAULT 0,
    shares INTEGER NOT NULL DEFAULT 0,
    last_visit_at REAL NOT NULL DEFAULT 0,
    current_streak INTEGER NOT NULL DEFAULT 1,
    badges TEXT NOT NULL DEFAULT '[]'
);
CREATE INDEX IF NOT EXISTS idx_user_stats_xp ON user_stats(xp DESC);

-- Lookup history, newest first, one row per normalized word
CREATE TABLE IF NOT EXISTS history_items (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id TEXT NOT NULL REFERENCES users(user_id) ON DELETE CASCADE,
    word_key TEXT NOT NULL,
    word TEXT NOT NULL,
    timestamp INTEGER NOT NULL,
    data TEXT,
    summary TEXT NOT NULL DEFAULT '',
    image TEXT NOT NULL DEFAULT '',
    UNIQUE(user_id, word_key)
);
CREATE INDEX IF NOT EXISTS idx_history_user_ts ON history_items(user_id, timestamp DESC);

-- Persisted mirror of the artifact cache (used when Redis is not configured)
CREATE TABLE IF NOT EXISTS artifact_cache (
    cache_key TEXT PRIMARY KEY,
    entry TEXT NOT NULL,
    expires_at REAL NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_artifact_cache_expiry ON artifact_cache(expires_at);
"""

# Versioned migrations applied after SCHEMA. Append only.
MIGRATIONS: list[tuple[int, str]] = []


def _db_path() -> str:
    return current_app.config.get("DATABASE", str(DEFAULT_DB_PATH))


def get_db() -> sqlite3.Connection:
    """Return a DB connection from Flask g, creating if needed."""
    if "db" not in g:
        # isolation_level=None: transactions are opened explicitly (see transaction()).
        g.db = sqlite3.connect(_db_path(), timeout=10, isolation_level=None)
        g.db.row_factory = sqlite3.Row
        g.db.execute("PRAGMA journal_mode=WAL")
        g.db.execute("PRAGMA foreign_keys=ON")
    return g.db


def close_db(e=None) -> None:
    """Teardown handler — close DB connection."""
    db = g.pop("db", None)
    if db is not None:
        db.close()


@contextmanager
def transaction(immediate: bool = True):
    """Run a block inside one SQLite transaction.

    ``BEGIN IMMEDIATE`` takes the write lock up front, so two workers doing a
    read-modify-write of the same row serialise instead of interleaving.
    sqlite3 errors are re-raised as PersistenceUnavailable.
    """
    try:
        db = get_db()
        db.execute("BEGIN IMMEDIATE" if immediate else "BEGIN")
    except sqlite3.Error as e:
        raise PersistenceUnavailable(str(e)) from e
    try:
        yield db
    except sqlite3.Error as e:
        db.execute("ROLLBACK")
        raise PersistenceUnavailable(str(e)) from e
    except BaseException:
        db.execute("ROLLBACK")
        raise
    else:
        try:
            db.execute("COMMIT")
        except sqlite3.Error as e:
            raise PersistenceUnavailable(str(e)) from e


def init_db() -> None:
    """Execute schema DDL to create all tables."""
    db = get_db()
    db.executescript(SCHEMA)


def run_migrations() -> None:
    """Apply any unapplied versioned migrations.

    Uses file-based locking to prevent race conditions when multiple
    Gunicorn workers start simultaneously.
    """
    lock_file = None
    lock_path = Path(_db_path()).with_suffix(".migration.lock")
    try:
        lock_file = open(lock_path, "w")
        fcntl.flock(lock_file, fcntl.LOCK_EX)
    except OSError:
        lock_file = None

    try:
        db = get_db()
        applied = {
            row["version"]
            for row in db.execute("SELECT version FROM schema_version").fetchall()
        }
        for version, sql in MIGRATIONS:
            if version not in applied:
                try:
                    db.executescript(sql)
                except sqlite3.OperationalError as e:
                    err_msg = str(e).lower()
                    if "duplicate column" not in err_msg and "already exists" not in err_msg:
                        raise
                db.execute(
                    "INSERT INTO schema_version (version, applied_at) VALUES (?, ?)",
                    (version, datetime.now().isoformat()),
                )
    finally:
        if lock_file:
            fcntl.flock(lock_file, fcntl.LOCK_UN)
            lock_file.close()


def init_app(app) -> None:
    """Register teardown and auto-init on first request."""
    app.teardown_appcontext(close_db)

    @app.before_request
    def _ensure_db():
        if not getattr(app, "_db_initialized", False):
            init_db()
            run_migrations()
            app._db_initialized = True
