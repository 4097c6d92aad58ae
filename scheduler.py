"""
Background scheduler — periodic maintenance jobs.

Jobs:
  - Result cache cleanup (every 1 hour): expired entries in both the
    in-memory tier and the persisted mirror.
"""

from __future__ import annotations

from apscheduler.schedulers.background import BackgroundScheduler

from extensions import ServiceManager


def cleanup_caches(app) -> int:
    """Purge expired cache entries. Returns the number removed."""
    with app.app_context():
        removed = ServiceManager.get_lookup().cleanup()
    if removed:
        app.logger.info("Cache cleanup removed %d expired entries", removed)
    return removed


def init_scheduler(app):
    """Start the background scheduler. Returns the scheduler instance."""
    scheduler = BackgroundScheduler(daemon=True)

    def _cleanup_job():
        try:
            cleanup_caches(app)
        except Exception as e:
            app.logger.error("Cache cleanup failed: %s", e)

    scheduler.add_job(
        func=_cleanup_job,
        trigger="interval",
        hours=1,
        id="cache_cleanup",
        replace_existing=True,
    )

    scheduler.start()
    app.logger.info("Scheduler started (cache cleanup)")
    return scheduler
