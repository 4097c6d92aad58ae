"""
Blueprint registration for the etymology API.

All routes live under /api, matching the paths the Mini App calls.
"""

from __future__ import annotations


def register_blueprints(app):
    from blueprints.lookup import bp as lookup_bp
    from blueprints.gamification import bp as gamification_bp
    from blueprints.history import bp as history_bp

    app.register_blueprint(lookup_bp)
    app.register_blueprint(gamification_bp)
    app.register_blueprint(history_bp)
