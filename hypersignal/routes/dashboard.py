"""Dashboard routes: /api/dashboard, /api/signals, /api/health"""
from __future__ import annotations

import logging
from datetime import datetime, timezone

from flask import Blueprint, jsonify

from hypersignal.routes import get_ctx

log = logging.getLogger(__name__)
dashboard_bp = Blueprint("dashboard", __name__)


@dashboard_bp.route("/api/dashboard")
def api_dashboard():
    """Current DashboardSnapshot (same payload as dashboard_update)."""
    try:
        return jsonify(get_ctx().build_snapshot())
    except Exception as e:
        log.error("Error getting dashboard data: %s", str(e)[:200])
        return jsonify({"error": "Failed to fetch dashboard data"}), 500


@dashboard_bp.route("/api/signals")
def api_signals():
    """Full signal history, newest first."""
    try:
        return jsonify(get_ctx().signals.list())
    except Exception as e:
        log.error("Error getting signals: %s", str(e)[:200])
        return jsonify({"error": "Failed to fetch signals"}), 500


@dashboard_bp.route("/api/health")
def api_health():
    return jsonify({
        "status": "healthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "clients": get_ctx().hub.client_count,
    })
