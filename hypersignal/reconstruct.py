"""Position open-time reconstruction from a wallet's fill history.

Hyperliquid's clearinghouseState reports a position's size and entry price but
not when the position was opened. We estimate it from userFills: walking the
fills backwards from the current size, the opening fill is the one before
which the wallet was flat, or held the opposite side.

This is a HEURISTIC and every estimate is flagged `approximate`:

  - userFills only returns a bounded recent window, and we do not page
    further back. When the true opening trade is older than the window the
    walk runs out of fills first; we then report the oldest fill we have
    (too recent an open time) and set `complete=False`. Long-lived positions
    are the usual victims.
  - Fills missing from the window (partial history) shift the result
    silently. Nothing here can detect that.

When there are no fills at all, or the fetch fails, the current wall-clock
time is returned with `fallback=True` meaning "unknown".
"""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Iterable, Optional

from hypersignal.models import Fill, ms_to_iso

log = logging.getLogger(__name__)

# Sizes below this are treated as flat (float dust from partial closes)
_EPS = 1e-9


@dataclass(frozen=True)
class OpenTimeEstimate:
    time_ms: int
    approximate: bool = True
    complete: bool = False     # opening fill found inside the window
    fallback: bool = False     # no usable history; time_ms is "now"

    @property
    def iso(self) -> str:
        return ms_to_iso(self.time_ms)

    def to_dict(self) -> dict:
        return {
            "openedAt": self.iso,
            "approximate": self.approximate,
            "complete": self.complete,
            "fallback": self.fallback,
        }


def _now_ms() -> int:
    return int(time.time() * 1000)


def _sign(x: float) -> int:
    if x > _EPS:
        return 1
    if x < -_EPS:
        return -1
    return 0


def estimate_open_time(
    fills: Iterable[Fill],
    current_size: Optional[float] = None,
    now_ms: Optional[int] = None,
) -> OpenTimeEstimate:
    """Estimate when the currently held position in one coin was opened.

    Args:
        fills: fills for a single coin, any order.
        current_size: signed size currently held (clearinghouseState szi).
            Defaults to the net size of the fill window, which equals the
            real position whenever the window reaches back to it.
        now_ms: fallback timestamp; defaults to wall clock.

    Example: buy 5 @t1, sell 5 @t2, buy 3 @t3, buy 2 @t4, holding +5.
    Un-applying t4 leaves +3, un-applying t3 leaves 0, so t3 opened the
    current position (t1 belongs to an earlier, already closed one).
    """
    ordered = sorted(fills, key=lambda f: f.time)
    if not ordered:
        return OpenTimeEstimate(time_ms=now_ms if now_ms is not None else _now_ms(), fallback=True)

    if current_size is None:
        current_size = sum(f.signed_size for f in ordered)

    held = _sign(current_size)
    if held == 0:
        # Flat now: nothing to reconstruct, the last fill is the best we have
        return OpenTimeEstimate(time_ms=ordered[-1].time)

    running = float(current_size)
    for fill in reversed(ordered):
        before = running - fill.signed_size
        if _sign(before) != held:
            # Flat (or on the other side) before this fill: it opened the exposure
            return OpenTimeEstimate(time_ms=fill.time, complete=True)
        running = before

    # Window exhausted while still holding: the opening trade is older than
    # anything we fetched. Report the oldest fill and say so.
    log.debug("[RECON] Fill window does not reach the opening trade (%d fills)", len(ordered))
    return OpenTimeEstimate(time_ms=ordered[0].time)


def fetch_open_time(
    client,
    address: str,
    coin: str,
    current_size: Optional[float] = None,
    now_ms: Optional[int] = None,
) -> OpenTimeEstimate:
    """Fetch userFills for `address` and estimate the open time for `coin`.

    Never raises: any upstream failure becomes the wall-clock fallback.
    """
    try:
        fills = client.get_fills(address, coin)
    except Exception as e:
        log.warning("[RECON] Fill fetch failed for %s %s: %s", address[:10], coin, str(e)[:150])
        return OpenTimeEstimate(time_ms=now_ms if now_ms is not None else _now_ms(), fallback=True)
    return estimate_open_time(fills, current_size=current_size, now_ms=now_ms)
