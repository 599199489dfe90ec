"""Settings routes: /api/settings"""
from __future__ import annotations

import logging

from flask import Blueprint, jsonify, request

from hypersignal.hub import settings_update
from hypersignal.routes import get_ctx

log = logging.getLogger(__name__)
settings_bp = Blueprint("settings", __name__)


@settings_bp.route("/api/settings", methods=["GET"])
def api_get_settings():
    try:
        return jsonify(get_ctx().settings.get())
    except Exception as e:
        log.error("Error getting settings: %s", str(e)[:200])
        return jsonify({"error": "Failed to fetch settings"}), 500


@settings_bp.route("/api/settings", methods=["POST"])
def api_save_settings():
    """Save partial or full settings, then notify clients and the scheduler."""
    payload = request.get_json(silent=True)
    if not isinstance(payload, dict):
        return jsonify({"error": "Settings must be a JSON object"}), 400

    ctx = get_ctx()
    try:
        merged = ctx.settings.save(payload)
    except Exception as e:
        log.error("Error saving settings: %s", str(e)[:200])
        return jsonify({"error": "Failed to save settings"}), 500

    ctx.hub.publish_threadsafe(settings_update(merged))
    if ctx.scheduler is not None:
        ctx.scheduler.apply_settings(merged)
    return jsonify({"success": True})
