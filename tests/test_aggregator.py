import json
from datetime import datetime, timezone

from hypersignal.aggregator import compute_snapshot

NOW = datetime(2026, 3, 15, 12, 0, tzinfo=timezone.utc)
WALLETS = [{"address": "0x1", "isActive": True}, {"address": "0x2", "isActive": True}]


def _sig(status, ts="2026-03-02T10:00:00+00:00", **extra):
    base = {"pair": "ETH/USDT", "type": "LONG", "status": status, "timestamp": ts,
            "pnl": 0, "margin": 0, "contributingWallets": 3}
    base.update(extra)
    return base


def test_empty_history():
    snap = compute_snapshot([], [], now=NOW)

    assert snap["totalPnl"] == 0
    assert snap["totalRoi"] == 0
    assert snap["winRate"] == 0
    assert snap["totalClosedSignals"] == 0
    assert snap["recentSignals"] == []
    assert snap["signalOutcomes"] == {"TakeProfit": 0, "StopLoss": 0, "Open": 0}
    assert [m["winrate"] for m in snap["performanceChartData"]] == [0.0] * 6


def test_chart_is_six_months_ending_now():
    snap = compute_snapshot([], [], now=NOW)
    months = [m["month"] for m in snap["performanceChartData"]]
    assert months == ["Oct", "Nov", "Dec", "Jan", "Feb", "Mar"]


def test_mixed_history():
    signals = [
        _sig("Open", pnl=50, margin=200),
        _sig("Open", pnl=-10, margin=200),
        _sig("TP"),
        _sig("TP", ts="2026-03-10T08:00:00Z"),
        _sig("SL", ts="2026-02-20T08:00:00+00:00"),
    ]

    snap = compute_snapshot(signals, WALLETS, now=NOW)

    assert snap["totalPnl"] == 40
    assert snap["totalRoi"] == 10.0
    assert snap["totalClosedSignals"] == 3
    assert abs(snap["winRate"] - 200 / 3) < 1e-9
    assert snap["activeSignals"] == 2
    assert snap["trackedWallets"] == 2
    assert snap["signalOutcomes"] == {"TakeProfit": 2, "StopLoss": 1, "Open": 2}
    chart = {m["month"]: m["winrate"] for m in snap["performanceChartData"]}
    assert chart["Mar"] == 100.0
    assert chart["Feb"] == 0.0


def test_closed_signal_pnl_does_not_count_towards_total():
    signals = [_sig("TP", pnl=999, margin=100), _sig("Open", pnl=5, margin=0)]

    snap = compute_snapshot(signals, [], now=NOW)

    assert snap["totalPnl"] == 5
    assert snap["totalRoi"] == 0


def test_win_rate_stays_in_bounds():
    snap = compute_snapshot([_sig("TP")] * 7, [], now=NOW)
    assert 0 <= snap["winRate"] <= 100
    assert snap["winRate"] == 100


def test_junk_values_do_not_raise():
    signals = [
        _sig("Open", pnl="abc", margin=None),
        _sig("TP", ts="not a date"),
        _sig("SL", ts=None),
        _sig("weird"),
        _sig("SL", ts=1767225600000),  # 2026-01-01 in epoch ms
    ]

    snap = compute_snapshot(signals, [], now=NOW)

    assert snap["totalPnl"] == 0
    assert snap["totalClosedSignals"] == 3
    chart = {m["month"]: m["winrate"] for m in snap["performanceChartData"]}
    assert chart["Jan"] == 0.0


def test_old_months_fall_outside_chart():
    snap = compute_snapshot([_sig("TP", ts="2025-01-05T00:00:00+00:00")], [], now=NOW)
    assert all(m["winrate"] == 0.0 for m in snap["performanceChartData"])
    assert snap["winRate"] == 100


def test_recent_signals_are_first_five_projected():
    signals = [_sig("Open", pair=f"C{i}/USDT", pnl=i) for i in range(8)]

    recent = compute_snapshot(signals, [], now=NOW)["recentSignals"]

    assert [r["pair"] for r in recent] == [f"C{i}/USDT" for i in range(5)]
    assert set(recent[0]) == {"pair", "type", "pnl", "status", "contributingWallets"}


def test_same_inputs_same_output():
    signals = [_sig("Open", pnl=1, margin=2), _sig("TP"), _sig("SL")]

    first = compute_snapshot(signals, WALLETS, now=NOW)
    second = compute_snapshot(signals, WALLETS, now=NOW)

    assert json.dumps(first) == json.dumps(second)
