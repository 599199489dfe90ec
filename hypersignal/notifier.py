"""Telegram alerts for new and closed signals.

Credentials come from settings (telegramBotToken, telegramChannelIds), so an
operator can turn alerts on from the dashboard without a restart. Delivery is
best effort: failures are logged and never fail the calling task.
"""
from __future__ import annotations

import logging
from typing import Callable

import requests

from hypersignal.http_session import DEFAULT_TIMEOUT, get_session
from hypersignal.models import Signal, SignalStatus
from hypersignal.settings import Settings

log = logging.getLogger(__name__)

_TG_URL = "https://api.telegram.org/bot{token}/sendMessage"


class TelegramNotifier:
    """Sends signal alerts to every configured channel."""

    def __init__(self, load_settings: Callable[[], Settings]):
        self._load_settings = load_settings

    def send(self, text: str) -> int:
        """Send to all channels. Returns the number of channels that accepted it."""
        settings = self._load_settings()
        token = settings.telegram_bot_token
        channels = settings.telegram_channel_ids
        if not token or not channels:
            return 0

        sent = 0
        for chat_id in channels:
            try:
                resp = get_session().post(
                    _TG_URL.format(token=token),
                    json={"chat_id": chat_id, "text": text, "parse_mode": "HTML"},
                    timeout=DEFAULT_TIMEOUT,
                )
                if resp.status_code == 200:
                    sent += 1
                else:
                    log.warning("[TG] HTTP %d for %s: %s",
                                resp.status_code, chat_id, resp.text[:200])
            except requests.RequestException as e:
                log.warning("[TG] Send failed for %s: %s", chat_id, str(e)[:150])
        return sent

    def signal_opened(self, signal: Signal) -> int:
        targets = ", ".join(f"{t:g}%" for t in signal.take_profit_targets) or "-"
        return self.send(
            f"<b>NEW SIGNAL</b> {signal.pair} {signal.direction.value}\n"
            f"Entry: {signal.entry_price:g}\n"
            f"Wallets: {signal.wallet_count}\n"
            f"SL: {signal.stop_loss_pct:g}% | TP: {targets}"
        )

    def signal_closed(self, signal: Signal) -> int:
        outcome = "TAKE PROFIT" if signal.status is SignalStatus.TAKE_PROFIT else "STOP LOSS"
        return self.send(
            f"<b>{outcome}</b> {signal.pair} {signal.direction.value}\n"
            f"Exit: {signal.current_price:g} | PnL: {signal.pnl:+.2f} ({signal.pnl_percent:+.2f}%)"
        )
