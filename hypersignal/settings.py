"""Operator settings: settings.json with defaults and a typed read view.

The raw dict (camelCase keys, as the dashboard sends them) is what gets stored
and served. `Settings` is the parsed, read-only view the scheduler and
detector consume.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from hypersignal.models import to_float
from hypersignal.storage import JsonFile

log = logging.getLogger(__name__)

DEFAULT_SETTINGS: dict[str, Any] = {
    "minWalletCount": 5,
    "timeWindow": 10,
    "minVolume": 1000,
    "walletPollInterval": 60,
    "pricePollInterval": 30,
    "defaultStopLoss": -2.5,
    "takeProfitTargets": "2.0, 3.5, 5.0",
    "includeFunding": True,
    "telegramBotToken": "",
    "telegramChannelIds": "",
    "monitoredPairs": "ETH, BTC, SOL",
    "quoteCurrencies": "USDT, USDC",
    "ignoredPairs": "",
}


def split_list(value: Any) -> list[str]:
    """'ETH, BTC,,sol' -> ['ETH', 'BTC', 'SOL']. Lists pass through."""
    if isinstance(value, (list, tuple)):
        items = [str(v) for v in value]
    else:
        items = str(value or "").split(",")
    return [i.strip().upper() for i in items if i.strip()]


def to_bool(value: Any, default: bool = False) -> bool:
    """JSON bools pass through; strings like "false" / "0" / "no" are False."""
    if value is None:
        return default
    if isinstance(value, str):
        return value.strip().lower() in ("true", "1", "yes", "on")
    return bool(value)


def parse_targets(value: Any) -> list[float]:
    """'2.0, 3.5, x, 5' -> [2.0, 3.5, 5.0] (sorted, positive only)."""
    if isinstance(value, (list, tuple)):
        raw = list(value)
    else:
        raw = str(value or "").split(",")
    targets = [to_float(t, -1.0) for t in raw if str(t).strip()]
    return sorted(t for t in targets if t > 0)


@dataclass(frozen=True)
class Settings:
    min_wallet_count: int = 5
    time_window_minutes: float = 10.0
    min_volume: float = 1000.0
    wallet_poll_interval: float = 60.0
    price_poll_interval: float = 30.0
    default_stop_loss: float = -2.5
    take_profit_targets: tuple[float, ...] = (2.0, 3.5, 5.0)
    include_funding: bool = True
    telegram_bot_token: str = ""
    telegram_channel_ids: tuple[str, ...] = ()
    monitored_pairs: tuple[str, ...] = ("ETH", "BTC", "SOL")
    quote_currencies: tuple[str, ...] = ("USDT", "USDC")
    ignored_pairs: tuple[str, ...] = ()

    @classmethod
    def from_dict(cls, raw: dict) -> "Settings":
        d = {**DEFAULT_SETTINGS, **(raw or {})}
        stop = to_float(d.get("defaultStopLoss"), -2.5)
        return cls(
            min_wallet_count=max(1, int(to_float(d.get("minWalletCount"), 5))),
            time_window_minutes=max(0.0, to_float(d.get("timeWindow"), 10.0)),
            min_volume=max(0.0, to_float(d.get("minVolume"), 1000.0)),
            wallet_poll_interval=to_float(d.get("walletPollInterval"), 60.0),
            price_poll_interval=to_float(d.get("pricePollInterval"), 30.0),
            # Stop loss is a loss threshold: always stored negative
            default_stop_loss=-abs(stop) if stop else -2.5,
            take_profit_targets=tuple(parse_targets(d.get("takeProfitTargets"))),
            include_funding=to_bool(d.get("includeFunding"), True),
            telegram_bot_token=str(d.get("telegramBotToken") or "").strip(),
            # Channel ids are case-sensitive (@name), so no upper()
            telegram_channel_ids=tuple(
                c.strip() for c in str(d.get("telegramChannelIds") or "").split(",") if c.strip()
            ),
            monitored_pairs=tuple(split_list(d.get("monitoredPairs"))),
            quote_currencies=tuple(split_list(d.get("quoteCurrencies"))) or ("USDT",),
            ignored_pairs=tuple(split_list(d.get("ignoredPairs"))),
        )

    def pair_name(self, coin: str) -> str:
        return f"{coin.upper()}/{self.quote_currencies[0]}"

    def is_pair_allowed(self, coin: str) -> bool:
        """Monitored list empty = every coin; ignored list always wins."""
        coin = coin.upper()
        names = {coin}
        for quote in self.quote_currencies:
            names.update((f"{coin}/{quote}", f"{coin}{quote}", f"{coin}-{quote}"))
        if names & set(self.ignored_pairs):
            return False
        if not self.monitored_pairs:
            return True
        return bool(names & set(self.monitored_pairs))


class SettingsStore:
    """settings.json, always returned merged over DEFAULT_SETTINGS."""

    def __init__(self, path: Path):
        self._file = JsonFile(path, lambda: dict(DEFAULT_SETTINGS))

    def get(self) -> dict:
        data = self._file.read()
        if not isinstance(data, dict):
            log.warning("[SETTINGS] settings file is not an object — using defaults")
            data = {}
        return {**DEFAULT_SETTINGS, **data}

    def get_settings(self) -> Settings:
        return Settings.from_dict(self.get())

    def save(self, new_settings: dict) -> dict:
        """Merge a partial or full settings payload and persist. Returns the merged dict."""
        if not isinstance(new_settings, dict):
            raise TypeError("settings payload must be an object")
        with self._file.lock:
            merged = {**self.get(), **new_settings}
            self._file.write(merged)
        log.info("[SETTINGS] Saved %d keys (%s)", len(new_settings),
                 ", ".join(sorted(new_settings))[:120])
        return merged
