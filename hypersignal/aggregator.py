"""Dashboard aggregation: signal history + wallet roster -> DashboardSnapshot.

Pure: no I/O, no clock reads unless `now` is omitted. Same inputs (including
`now`) always give the same dict, key order included.
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Iterable, Optional

from hypersignal.models import to_float

MONTH_NAMES = ["Jan", "Feb", "Mar", "Apr", "May", "Jun",
               "Jul", "Aug", "Sep", "Oct", "Nov", "Dec"]
CHART_MONTHS = 6
RECENT_SIGNALS = 5


def _parse_timestamp(value: Any) -> Optional[datetime]:
    """ISO string or epoch (s or ms) -> aware UTC datetime, None if junk."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        ts = float(value)
        if ts > 1e11:  # epoch ms
            ts /= 1000
        try:
            return datetime.fromtimestamp(ts, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    text = str(value).strip()
    if not text:
        return None
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        dt = datetime.fromisoformat(text)
    except ValueError:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def _months_back(now: datetime, i: int) -> tuple[int, int]:
    """(year, month) that is `i` months before now's month."""
    idx = now.year * 12 + (now.month - 1) - i
    return idx // 12, idx % 12 + 1


def compute_snapshot(
    signals: Iterable[dict],
    active_wallets: Iterable[Any],
    now: Optional[datetime] = None,
) -> dict:
    """Build the dashboard payload.

    `signals` must already be newest-first (the store keeps them that way).
    """
    if now is None:
        now = datetime.now(timezone.utc)
    elif now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)

    signals = list(signals)
    total_open_pnl = 0.0
    total_open_margin = 0.0
    active_count = 0
    tp_count = 0
    sl_count = 0
    monthly: dict[tuple[int, int], dict[str, int]] = {}

    for sig in signals:
        status = sig.get("status")
        if status == "Open":
            active_count += 1
            total_open_pnl += to_float(sig.get("pnl"))
            total_open_margin += to_float(sig.get("margin"))
            continue
        if status not in ("TP", "SL"):
            continue

        key = None
        dt = _parse_timestamp(sig.get("timestamp"))
        if dt is not None:
            key = (dt.year, dt.month)
            monthly.setdefault(key, {"tp": 0, "sl": 0})
        if status == "TP":
            tp_count += 1
            if key:
                monthly[key]["tp"] += 1
        else:
            sl_count += 1
            if key:
                monthly[key]["sl"] += 1

    total_closed = tp_count + sl_count
    win_rate = tp_count / total_closed * 100 if total_closed > 0 else 0.0
    total_roi = total_open_pnl / total_open_margin * 100 if total_open_margin > 0 else 0.0

    chart = []
    for i in range(CHART_MONTHS - 1, -1, -1):
        year, month = _months_back(now, i)
        stats = monthly.get((year, month), {"tp": 0, "sl": 0})
        trades = stats["tp"] + stats["sl"]
        rate = stats["tp"] / trades * 100 if trades > 0 else 0.0
        chart.append({"month": MONTH_NAMES[month - 1], "winrate": round(rate, 1)})

    recent = [
        {
            "pair": sig.get("pair"),
            "type": sig.get("type", sig.get("direction")),
            "pnl": to_float(sig.get("pnl")),
            "status": sig.get("status"),
            "contributingWallets": sig.get("contributingWallets"),
        }
        for sig in signals[:RECENT_SIGNALS]
    ]

    return {
        "totalPnl": total_open_pnl,
        "totalRoi": total_roi,
        "winRate": win_rate,
        "totalClosedSignals": total_closed,
        "activeSignals": active_count,
        "trackedWallets": len(list(active_wallets)),
        "recentSignals": recent,
        "performanceChartData": chart,
        "signalOutcomes": {
            "TakeProfit": tp_count,
            "StopLoss": sl_count,
            "Open": active_count,
        },
    }
