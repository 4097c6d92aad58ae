"""
Rate limiter and lazy singletons for the lookup service and gamification engine.

Services are built from the current app's config on first use, so tests can
create apps with different settings and call ServiceManager.reset() between
them.
"""

from __future__ import annotations

from flask import current_app
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address

limiter = Limiter(key_func=get_remote_address, default_limits=["200 per hour"])


class ServiceManager:
    """Lazy-loaded singletons for LookupService and GamificationEngine."""

    _lookup = None
    _engine = None

    @classmethod
    def get_lookup(cls):
        if cls._lookup is None:
            from cache_backend import get_cache
            from lookup import LookupService
            cls._lookup = LookupService.from_config(current_app.config, mirror=get_cache())
        return cls._lookup

    @classmethod
    def get_engine(cls):
        if cls._engine is None:
            from db_stores import UserStatsStoreDB
            from gamification import GamificationEngine
            cls._engine = GamificationEngine(UserStatsStoreDB())
        return cls._engine

    @classmethod
    def install(cls, lookup=None, engine=None):
        """Replace either singleton, e.g. with one wired to a fake provider."""
        if lookup is not None:
            cls._lookup = lookup
        if engine is not None:
            cls._engine = engine

    @classmethod
    def reset(cls):
        """Drop both singletons — called from create_app()."""
        if cls._lookup is not None:
            cls._lookup.client.shutdown()
        cls._lookup = None
        cls._engine = None
