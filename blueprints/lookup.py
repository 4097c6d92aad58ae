"""Word details, summary, illustration and narration routes."""

from __future__ import annotations

import logging
from datetime import datetime

from flask import Blueprint, current_app, jsonify

from ai_resilience import ProviderError
from db_stores import HistoryStoreDB
from errors import PersistenceUnavailable, QuotaExceeded
from extensions import ServiceManager, limiter
from helpers import media_error_response, request_arg
from lookup import normalize
from models import is_degraded_payload, summary_result_to_dict, word_result_to_dict

logger = logging.getLogger(__name__)

bp = Blueprint("lookup", __name__)


def _start_of_today_ms() -> int:
    midnight = datetime.now().replace(hour=0, minute=0, second=0, microsecond=0)
    return int(midnight.timestamp() * 1000)


# ── Details ───────────────────────────────────────────

@bp.route("/api/details")
@limiter.limit("60 per minute")
def api_details():
    word = normalize(request_arg("word"))
    user_id = request_arg("userId").strip()
    service = ServiceManager.get_lookup()

    if user_id:
        history = HistoryStoreDB(user_id, limit=current_app.config.get("HISTORY_LIMIT", 50))
        try:
            item = history.get(word)
            if item is not None and item.data and not is_degraded_payload(item.data):
                return jsonify({**item.data, "source": "history"})
            # Cached words cost no provider call, so the daily limit does not apply.
            daily_limit = current_app.config.get("DAILY_LOOKUP_LIMIT", 50)
            if (
                daily_limit
                and service.details_cache.get(word) is None
                and history.count_since(_start_of_today_ms()) >= daily_limit
            ):
                logger.info("User %s reached the daily lookup limit", user_id)
                return jsonify(word_result_to_dict(service.quota_placeholder(word)))
        except PersistenceUnavailable as e:
            logger.warning("History check skipped for user %s: %s", user_id, e)

    return jsonify(word_result_to_dict(service.details(word)))


# ── Summary ───────────────────────────────────────────

@bp.route("/api/summary")
@limiter.limit("60 per minute")
def api_summary():
    word = normalize(request_arg("word"))
    return jsonify(summary_result_to_dict(ServiceManager.get_lookup().summary(word)))


# ── Media ─────────────────────────────────────────────

@bp.route("/api/image", methods=["GET", "POST"])
@limiter.limit("20 per minute")
def api_image():
    word = normalize(request_arg("word"))
    etymology = request_arg("etymology")
    try:
        image = ServiceManager.get_lookup().image(word, etymology)
    except (QuotaExceeded, ProviderError) as e:
        return media_error_response(e, "image")
    return jsonify({"image": image})


@bp.route("/api/tts", methods=["GET", "POST"])
@limiter.limit("20 per minute")
def api_tts():
    text = request_arg("text") or request_arg("word")
    try:
        audio = ServiceManager.get_lookup().speech(text)
    except (QuotaExceeded, ProviderError) as e:
        return media_error_response(e, "audio")
    return jsonify({"audio": audio})
