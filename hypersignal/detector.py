"""Signal detection and repricing: the two recurring scheduler tasks.

Detection (every walletPollInterval):
  1. Poll clearinghouseState for every active tracked wallet
  2. Group non-zero positions by (coin, direction), honoring monitored/ignored pairs
  3. For groups with >= minWalletCount wallets, reconstruct each wallet's
     open time from userFills; wallets that opened within timeWindow count
  4. Enough fresh wallets + enough combined position value -> new Open signal

Reprice (every pricePollInterval):
  Mark every Open signal to the current mid, count take-profit targets hit,
  and close it as TP or SL.

Both are synchronous (blocking HTTP); the scheduler runs them off the event loop.
"""
from __future__ import annotations

import logging
import time
from collections import defaultdict
from typing import Callable, Optional

from hypersignal.exchange import HyperliquidAPIError, HyperliquidClient
from hypersignal.models import Direction, Signal, SignalStatus, WalletPosition, utc_now_iso
from hypersignal.notifier import TelegramNotifier
from hypersignal.reconstruct import fetch_open_time
from hypersignal.settings import Settings
from hypersignal.storage import SignalStore, WalletStore

log = logging.getLogger(__name__)


def apply_price(signal: Signal, price: float, closed_at: Optional[str] = None) -> bool:
    """Mark `signal` to `price` in place. Returns True if it just closed.

    Targets and stop are percent moves from entry in the signal's direction.
    Reaching the last target closes as TP. Hitting the stop closes as SL,
    unless a target was already reached, in which case the trade is booked
    as TP (partials were taken on the way).
    """
    if not signal.is_open or price <= 0:
        return False

    sign = 1.0 if signal.direction is Direction.LONG else -1.0
    entry = signal.entry_price
    move_pct = (price - entry) / entry * 100 * sign if entry > 0 else 0.0

    signal.current_price = price
    signal.pnl = round((price - entry) * signal.size * sign, 6)
    signal.pnl_percent = round(move_pct, 4)

    targets = sorted(signal.take_profit_targets)
    hit = sum(1 for t in targets if move_pct >= t)
    signal.targets_hit = max(signal.targets_hit, hit)

    if targets and signal.targets_hit >= len(targets):
        signal.status = SignalStatus.TAKE_PROFIT
    elif signal.stop_loss_pct < 0 and move_pct <= signal.stop_loss_pct:
        signal.status = (SignalStatus.TAKE_PROFIT if signal.targets_hit > 0
                         else SignalStatus.STOP_LOSS)
    else:
        return False

    signal.closed_at = closed_at or utc_now_iso()
    return True


class SignalDetector:
    """Coordinated-position detector and signal repricer."""

    def __init__(
        self,
        client: HyperliquidClient,
        signals: SignalStore,
        wallets: WalletStore,
        load_settings: Callable[[], Settings],
        notifier: Optional[TelegramNotifier] = None,
        clock: Callable[[], float] = time.time,
    ):
        self._client = client
        self._signals = signals
        self._wallets = wallets
        self._load_settings = load_settings
        self._notifier = notifier
        self._clock = clock

    # ── Detection ────────────────────────────────────────────────

    def detect_and_save(self) -> list[Signal]:
        """Run one detection pass. Returns the signals it created."""
        settings = self._load_settings()
        wallets = self._wallets.active()
        if not wallets:
            log.info("[DETECT] No active wallets — nothing to poll")
            return []

        groups = self._collect_positions(wallets, settings)
        open_keys = {(s.coin, s.direction) for s in self._signals.open_signals()}
        now_ms = int(self._clock() * 1000)
        window_ms = settings.time_window_minutes * 60_000
        mids: Optional[dict[str, float]] = None
        created: list[Signal] = []

        for (coin, direction), positions in sorted(groups.items(), key=lambda kv: (kv[0][0], kv[0][1].value)):
            if len(positions) < settings.min_wallet_count:
                continue
            if (coin, direction) in open_keys:
                log.debug("[DETECT] %s %s already has an open signal", coin, direction.value)
                continue

            fresh = []
            for pos in positions:
                est = fetch_open_time(self._client, pos.address, coin,
                                      current_size=pos.size, now_ms=now_ms)
                if est.fallback:
                    continue
                if now_ms - est.time_ms <= window_ms:
                    fresh.append(pos)

            if len(fresh) < settings.min_wallet_count:
                log.debug("[DETECT] %s %s: %d/%d wallets opened inside %.0fm window",
                          coin, direction.value, len(fresh), len(positions),
                          settings.time_window_minutes)
                continue

            volume = sum(p.position_value for p in fresh)
            if volume < settings.min_volume:
                log.debug("[DETECT] %s %s: volume $%.0f below $%.0f",
                          coin, direction.value, volume, settings.min_volume)
                continue

            if mids is None:
                try:
                    mids = self._client.all_mids()
                except HyperliquidAPIError as e:
                    log.warning("[DETECT] Mid prices unavailable, using wallet entries: %s", e)
                    mids = {}

            signal = self._build_signal(coin, direction, fresh, mids.get(coin, 0.0), settings)
            self._signals.append(signal)
            created.append(signal)
            log.info("[DETECT] NEW %s %s | wallets=%d | volume=$%.0f | entry=%g",
                     signal.pair, direction.value, len(fresh), volume, signal.entry_price)
            if self._notifier:
                self._notifier.signal_opened(signal)

        log.info("[DETECT] Pass complete | wallets=%d | groups=%d | new signals=%d",
                 len(wallets), len(groups), len(created))
        return created

    def _collect_positions(
        self, wallets: list[dict], settings: Settings,
    ) -> dict[tuple[str, Direction], list[WalletPosition]]:
        groups: dict[tuple[str, Direction], list[WalletPosition]] = defaultdict(list)
        failures = 0
        for wallet in wallets:
            address = wallet["address"]
            try:
                positions = self._client.get_positions(address)
            except HyperliquidAPIError as e:
                failures += 1
                log.warning("[DETECT] Positions failed for %s: %s", address[:10], e)
                continue
            for pos in positions:
                if settings.is_pair_allowed(pos.coin):
                    groups[(pos.coin, pos.direction)].append(pos)

        if failures and failures == len(wallets):
            raise HyperliquidAPIError(f"All {failures} wallet polls failed", "clearinghouseState")
        return groups

    @staticmethod
    def _build_signal(
        coin: str,
        direction: Direction,
        positions: list[WalletPosition],
        mid: float,
        settings: Settings,
    ) -> Signal:
        total_size = sum(abs(p.size) for p in positions)
        weighted_entry = (
            sum(abs(p.size) * p.entry_price for p in positions) / total_size
            if total_size > 0 else 0.0
        )
        margin = sum(p.margin if p.margin > 0 else p.position_value / p.leverage
                     for p in positions)
        entry = mid if mid > 0 else weighted_entry
        return Signal(
            pair=settings.pair_name(coin),
            direction=direction,
            coin=coin,
            entry_price=entry,
            current_price=entry,
            size=total_size,
            margin=round(margin, 6),
            stop_loss_pct=settings.default_stop_loss,
            take_profit_targets=list(settings.take_profit_targets),
            contributing_addresses=[p.address for p in positions],
        )

    # ── Repricing ────────────────────────────────────────────────

    def update_prices(self) -> int:
        """Mark all open signals to market. Returns how many were updated."""
        open_signals = self._signals.open_signals()
        if not open_signals:
            return 0

        mids = self._client.all_mids()
        updated: list[Signal] = []
        closed: list[Signal] = []
        for sig in open_signals:
            price = mids.get(sig.coin, 0.0)
            if price <= 0:
                log.debug("[PRICE] No mid for %s", sig.coin)
                continue
            if apply_price(sig, price):
                closed.append(sig)
            updated.append(sig)

        count = self._signals.update_many(updated)
        for sig in closed:
            log.info("[PRICE] CLOSED %s %s as %s | pnl=%+.2f (%+.2f%%)",
                     sig.pair, sig.direction.value, sig.status.value, sig.pnl, sig.pnl_percent)
            if self._notifier:
                self._notifier.signal_closed(sig)
        log.info("[PRICE] Repriced %d open signals (%d closed)", count, len(closed))
        return count
