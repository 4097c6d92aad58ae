"""
Etymology Companion — Flask backend for the Telegram Mini App.

Serves word etymology lookups backed by Gemini (with key rotation, retry and
a two-tier cache), plus XP, streaks, badges, history and a leaderboard.
"""

from __future__ import annotations

import hashlib
import os
from typing import Any

from flask import Flask, Response, request as flask_request

import database
from blueprints import register_blueprints
from extensions import ServiceManager, limiter
from helpers import register_error_handlers


def create_app(test_config: dict[str, Any] | None = None) -> Flask:
    app = Flask(__name__)

    # Load config
    from config import config_by_name
    if test_config is not None:
        app.config.from_object(config_by_name["testing"])
        app.config.update(test_config)
    else:
        env = os.environ.get("FLASK_ENV", "development")
        cfg = config_by_name.get(env, config_by_name["development"])
        app.config.from_object(cfg)
        if hasattr(cfg, "validate"):
            cfg.validate()

    app.secret_key = app.config.get("SECRET_KEY", "dev-key-change-in-production")

    # Cache mirror backend (Redis or the artifact_cache table)
    from cache_backend import init_cache
    init_cache(app)

    # Structured logging
    from logging_config import init_logging
    init_logging(app)

    # Register database teardown
    database.init_app(app)

    # Services are rebuilt from this app's config on first use
    ServiceManager.reset()

    # Rate limiter (disabled in testing)
    limiter.init_app(app)
    if app.config.get("TESTING"):
        limiter.enabled = False

    register_blueprints(app)
    register_error_handlers(app)

    # CORS for the Mini App origin
    @app.after_request
    def set_cors_headers(response: Response) -> Response:
        response.headers["Access-Control-Allow-Origin"] = app.config.get("CORS_ORIGIN", "*")
        response.headers["Access-Control-Allow-Methods"] = "GET, POST, DELETE, OPTIONS"
        response.headers["Access-Control-Allow-Headers"] = "Content-Type, X-Request-ID"
        return response

    # Security headers
    @app.after_request
    def set_security_headers(response: Response) -> Response:
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        if not app.debug:
            response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"
        return response

    # ETag support for JSON API responses
    @app.after_request
    def set_etag(response: Response) -> Response:
        if (
            response.status_code == 200
            and response.content_type
            and "application/json" in response.content_type
            and response.content_length
            and response.content_length < 1_048_576  # < 1 MB
        ):
            data = response.get_data()
            etag = '"' + hashlib.md5(data).hexdigest() + '"'
            response.headers["ETag"] = etag
            if_none_match = flask_request.headers.get("If-None-Match")
            if if_none_match and if_none_match == etag:
                response.status_code = 304
                response.set_data(b"")
        return response

    # Hourly cache cleanup. On Vercel, instances are too short-lived for a scheduler.
    if not app.config.get("TESTING") and not os.environ.get("VERCEL"):
        from scheduler import init_scheduler
        init_scheduler(app)

    return app


if __name__ == "__main__":
    create_app().run(debug=True, port=5001)
