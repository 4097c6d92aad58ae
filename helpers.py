"""
Shared helpers used across blueprints.

Request-argument parsing and the JSON error envelopes the Mini App
understands (``{error, reason}``).
"""

from __future__ import annotations

import logging
from typing import Any

from flask import jsonify, request

from ai_resilience import Overloaded, SafetyBlocked
from errors import ConfigurationError, InvalidInput, QuotaExceeded

logger = logging.getLogger(__name__)


def json_body() -> dict[str, Any]:
    """Request JSON as a dict; empty for missing or non-object bodies."""
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def request_arg(name: str, default: str = "") -> str:
    """Look up ``name`` in the query string, then the JSON body."""
    value = request.args.get(name)
    if value is None:
        value = json_body().get(name, default)
    return "" if value is None else str(value)


def require_user_id() -> str:
    user_id = request_arg("userId").strip()
    if not user_id:
        raise InvalidInput("userId is required")
    return user_id


def error_response(message: str, status: int, **extra: Any):
    return jsonify({"error": message, **extra}), status


def media_error_response(exc: Exception, label: str):
    """Map a failed image/audio generation to an HTTP error with a reason."""
    if isinstance(exc, QuotaExceeded):
        return error_response("Daily AI usage limit reached. Try again later.", 429, reason="quota")
    if isinstance(exc, SafetyBlocked):
        return error_response(f"The {label} request was blocked by safety filters.", 400,
                              reason="safety")
    if isinstance(exc, Overloaded):
        return error_response("The AI model is busy. Please try again in a moment.", 503,
                              reason="generic", retryable=True)
    logger.error("%s generation failed: %s", label, exc)
    return error_response(f"Failed to generate {label}.", 502, reason="generic")


def register_error_handlers(app) -> None:
    @app.errorhandler(InvalidInput)
    def _invalid_input(e):
        return error_response(str(e), 400)

    @app.errorhandler(ConfigurationError)
    def _configuration_error(e):
        logger.error("Configuration error: %s", e)
        return error_response(str(e), 500, reason="configuration")
