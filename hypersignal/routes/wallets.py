"""Wallet routes: /api/wallets, /api/explorer/<address>, /api/positions/<coin>"""
from __future__ import annotations

import logging

from flask import Blueprint, jsonify, request

from hypersignal.exchange import HyperliquidAPIError
from hypersignal.explorer import find_wallets_by_coin, wallet_summary
from hypersignal.routes import get_ctx

log = logging.getLogger(__name__)
wallets_bp = Blueprint("wallets", __name__)


@wallets_bp.route("/api/wallets", methods=["GET"])
def api_wallets():
    try:
        return jsonify(get_ctx().wallets.list())
    except Exception as e:
        log.error("Error getting wallets: %s", str(e)[:200])
        return jsonify({"error": "Failed to fetch wallets"}), 500


@wallets_bp.route("/api/wallets", methods=["POST"])
def api_upsert_wallet():
    """Add a wallet or toggle an existing one: {address, isActive?, label?}."""
    payload = request.get_json(silent=True)
    if not isinstance(payload, dict) or not str(payload.get("address", "")).strip():
        return jsonify({"error": "address is required"}), 400
    try:
        entry = get_ctx().wallets.upsert(
            str(payload["address"]),
            is_active=bool(payload.get("isActive", True)),
            label=payload.get("label"),
        )
    except Exception as e:
        log.error("Error saving wallet: %s", str(e)[:200])
        return jsonify({"error": "Failed to save wallet"}), 500
    return jsonify({"success": True, "wallet": entry})


@wallets_bp.route("/api/explorer/<address>")
def api_explorer(address: str):
    """Live PnL / ROI / positions for any wallet."""
    try:
        return jsonify(wallet_summary(get_ctx().client, address))
    except HyperliquidAPIError as e:
        log.error("Explorer API call failed for %s: %s", address, e)
        return jsonify({"error": "Failed to fetch wallet data"}), 502
    except Exception as e:
        log.error("Error in explorer for %s: %s", address, str(e)[:200])
        return jsonify({"error": "Failed to fetch wallet data"}), 500


@wallets_bp.route("/api/positions/<coin>")
def api_positions_by_coin(coin: str):
    """Tracked wallets holding `coin`, with approximate open times."""
    ctx = get_ctx()
    try:
        positions = find_wallets_by_coin(ctx.client, ctx.wallets.list(), coin)
    except Exception as e:
        log.error("Error finding wallets for %s: %s", coin, str(e)[:200])
        return jsonify({"error": "Failed to find wallets by coin"}), 500
    return jsonify({"positions": positions})
