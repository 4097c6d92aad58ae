"""Lookup history routes."""

from __future__ import annotations

import logging

from flask import Blueprint, current_app, jsonify

from db_stores import HistoryStoreDB
from errors import PersistenceUnavailable
from helpers import error_response, require_user_id

logger = logging.getLogger(__name__)

bp = Blueprint("history", __name__)


def _store() -> HistoryStoreDB:
    return HistoryStoreDB(require_user_id(), limit=current_app.config.get("HISTORY_LIMIT", 50))


def _unavailable(e: PersistenceUnavailable):
    logger.error("History store unavailable: %s", e)
    return error_response("History is temporarily unavailable.", 503)


@bp.route("/api/history", methods=["GET"])
def api_history():
    store = _store()
    try:
        items = store.list()
    except PersistenceUnavailable as e:
        return _unavailable(e)
    return jsonify({"history": [item.to_dict() for item in items]})


@bp.route("/api/history/<int:timestamp>", methods=["DELETE"])
def api_history_delete(timestamp):
    store = _store()
    try:
        deleted = store.delete(timestamp)
    except PersistenceUnavailable as e:
        return _unavailable(e)
    if not deleted:
        return error_response("History item not found", 404)
    return jsonify({"success": True})


@bp.route("/api/history", methods=["DELETE"])
def api_history_clear():
    store = _store()
    try:
        removed = store.clear()
    except PersistenceUnavailable as e:
        return _unavailable(e)
    return jsonify({"success": True, "removed": removed})
