"""Wallet explorer: per-wallet PnL/ROI and who-holds-this-coin lookups."""
from __future__ import annotations

import logging
from typing import Iterable

from hypersignal.exchange import HyperliquidAPIError, HyperliquidClient
from hypersignal.models import to_float
from hypersignal.reconstruct import fetch_open_time

log = logging.getLogger(__name__)


def wallet_summary(client: HyperliquidClient, address: str) -> dict:
    """Unrealized PnL, ROI on margin, and raw positions for one wallet.

    Margin per position is |szi| * entryPx / leverage; positions with
    non-numeric fields are skipped for margin but still listed.
    """
    state = client.clearinghouse_state(address)
    positions = state.get("assetPositions") or []

    total_pnl = 0.0
    total_margin = 0.0
    for pos in positions:
        if not isinstance(pos, dict):
            continue
        total_pnl += to_float(pos.get("unrealizedPnl", (pos.get("position") or {}).get("unrealizedPnl")))
        details = pos.get("position") or {}
        size = abs(to_float(details.get("szi")))
        entry = to_float(details.get("entryPx"))
        lev = details.get("leverage")
        leverage = to_float(lev.get("value") if isinstance(lev, dict) else lev)
        if size > 0 and entry > 0 and leverage > 0:
            total_margin += size * entry / leverage

    roi = total_pnl / total_margin * 100 if total_margin > 0 else 0.0
    return {
        "pnl": f"{total_pnl:.2f}",
        "roi": f"{roi:.2f}",
        "positions": positions,
    }


def find_wallets_by_coin(
    client: HyperliquidClient,
    wallets: Iterable[dict],
    coin: str,
) -> list[dict]:
    """Active wallets holding `coin`, with an approximate position open time."""
    coin = coin.strip().upper()
    results = []
    for wallet in wallets:
        address = wallet.get("address", "")
        if not address or not wallet.get("isActive"):
            continue
        try:
            positions = client.get_positions(address)
        except HyperliquidAPIError as e:
            log.warning("[EXPLORER] Skipping %s: %s", address[:10], e)
            continue

        pos = next((p for p in positions if p.coin == coin), None)
        if pos is None:
            continue

        est = fetch_open_time(client, address, coin, current_size=pos.size)
        results.append({
            "address": address,
            "coin": pos.coin,
            "direction": pos.direction.value,
            "positionSize": f"{pos.size:.4f}",
            "entryPrice": f"{pos.entry_price:.4f}",
            "positionValue": f"{abs(pos.size) * pos.entry_price:.2f}",
            "timestamp": est.iso,
            **est.to_dict(),
        })
    return results
