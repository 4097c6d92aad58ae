"""Gamification, profile and leaderboard routes."""

from __future__ import annotations

import logging
import time

from flask import Blueprint, current_app, jsonify

from db_stores import HistoryStoreDB, LeaderboardStoreDB, UserProfileDB
from errors import InvalidInput, PersistenceUnavailable
from extensions import ServiceManager
from gamification import ActionOutcome, get_level_info
from helpers import error_response, json_body, request_arg, require_user_id
from leaderboard import build_leaderboard
from models import HistoryItem, is_degraded_payload

logger = logging.getLogger(__name__)

bp = Blueprint("gamification", __name__)


def _history(user_id: str) -> HistoryStoreDB:
    return HistoryStoreDB(user_id, limit=current_app.config.get("HISTORY_LIMIT", 50))


def _refresh_profile(user_id: str, name: str, photo: str | None) -> None:
    try:
        UserProfileDB(user_id).upsert(name=name or None, photo_url=photo)
    except PersistenceUnavailable as e:
        logger.warning("Profile update for user %s failed: %s", user_id, e)


def _outcome_response(outcome: ActionOutcome, **extra):
    body = {**outcome.to_dict(), **extra}
    if not outcome.persisted:
        body["error"] = "Progress could not be saved. Showing last known stats."
        return jsonify(body), 503
    return jsonify(body)


def _leaderboard():
    try:
        rows = LeaderboardStoreDB.rows()
    except PersistenceUnavailable as e:
        logger.error("Leaderboard unavailable: %s", e)
        return error_response("Leaderboard is temporarily unavailable.", 503)
    limit = current_app.config.get("LEADERBOARD_LIMIT", 50)
    return jsonify([entry.to_dict() for entry in build_leaderboard(rows, limit)])


def _sync(user_id: str, data: dict):
    """Profile upsert plus optional snapshot merge, then the leaderboard."""
    _refresh_profile(user_id, str(data.get("name") or ""), data.get("photo"))
    snapshot = data.get("stats")
    if isinstance(snapshot, dict) and current_app.config.get("TRUST_CLIENT_XP", False):
        outcome = ServiceManager.get_engine().sync_snapshot(user_id, snapshot)
        if not outcome.persisted:
            logger.warning("Snapshot merge for user %s not persisted", user_id)
    return _leaderboard()


def _record_history(user_id: str, action: str, payload: dict) -> None:
    """Keep history in step with the action. Failures never affect the XP result."""
    history = _history(user_id)
    try:
        if action == "SEARCH":
            word_data = payload.get("wordData")
            if isinstance(word_data, dict) and word_data.get("word"):
                # Placeholders are not kept, so a later lookup asks the provider again.
                history.append(HistoryItem.from_dict(
                    {
                        "word": word_data["word"],
                        "data": None if is_degraded_payload(word_data) else word_data,
                    },
                    timestamp=int(time.time() * 1000),
                ))
        elif action == "SUMMARY" and payload.get("word") and payload.get("summary"):
            history.attach(str(payload["word"]), summary=str(payload["summary"]))
        elif action == "IMAGE" and payload.get("word") and payload.get("image"):
            history.attach(str(payload["word"]), image=str(payload["image"]))
    except (PersistenceUnavailable, InvalidInput) as e:
        logger.warning("History update for user %s (%s) failed: %s", user_id, action, e)


# ── Stats ─────────────────────────────────────────────

@bp.route("/api/gamification", methods=["GET"])
def api_gamification():
    user_id = require_user_id()
    _refresh_profile(user_id, request_arg("name"), request_arg("photo") or None)

    outcome = ServiceManager.get_engine().visit(user_id)
    try:
        history = [item.to_dict() for item in _history(user_id).list()]
    except PersistenceUnavailable as e:
        logger.warning("History for user %s unavailable: %s", user_id, e)
        history = []

    return _outcome_response(
        outcome,
        history=history,
        level=get_level_info(outcome.stats.xp).to_dict(),
    )


@bp.route("/api/gamification", methods=["POST"])
def api_gamification_action():
    data = json_body()
    action = str(data.get("action") or "").strip().upper()
    if not action:
        raise InvalidInput("Missing action")

    if action == "LEADERBOARD":
        user_id = request_arg("userId").strip()
        return _sync(user_id, data) if user_id else _leaderboard()

    user_id = require_user_id()
    payload = data.get("payload") if isinstance(data.get("payload"), dict) else {}
    outcome = ServiceManager.get_engine().record_action(user_id, action)
    _record_history(user_id, action, payload)
    return _outcome_response(outcome)


# ── Leaderboard ───────────────────────────────────────

@bp.route("/api/leaderboard", methods=["GET"])
def api_leaderboard():
    return _leaderboard()


@bp.route("/api/leaderboard", methods=["POST"])
def api_leaderboard_sync():
    return _sync(require_user_id(), json_body())
