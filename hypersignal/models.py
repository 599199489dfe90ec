"""Data models for signals, fills and wallet positions."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional


class Direction(Enum):
    LONG = "LONG"
    SHORT = "SHORT"


class Side(Enum):
    BUY = "BUY"
    SELL = "SELL"

    @classmethod
    def from_hl(cls, raw: str) -> "Side":
        """Hyperliquid fills use "B" for buys and "A" (ask) for sells."""
        return cls.BUY if str(raw).upper() in ("B", "BUY") else cls.SELL


class SignalStatus(Enum):
    OPEN = "Open"
    TAKE_PROFIT = "TP"
    STOP_LOSS = "SL"


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def ms_to_iso(time_ms: int | float) -> str:
    return datetime.fromtimestamp(time_ms / 1000, tz=timezone.utc).isoformat()


def to_float(value: Any, default: float = 0.0) -> float:
    """Parse a number that may arrive string-encoded; junk becomes `default`."""
    if value is None or isinstance(value, bool):
        return default
    try:
        result = float(value)
    except (TypeError, ValueError):
        return default
    if result != result or result in (float("inf"), float("-inf")):
        return default
    return result


@dataclass
class Fill:
    """A single executed trade from userFills."""

    coin: str
    side: Side
    size: float
    time: int  # epoch ms
    price: float = 0.0

    @property
    def signed_size(self) -> float:
        return self.size if self.side is Side.BUY else -self.size

    @classmethod
    def from_hl(cls, raw: dict) -> "Fill":
        return cls(
            coin=str(raw.get("coin", "")).upper(),
            side=Side.from_hl(raw.get("side", "")),
            size=abs(to_float(raw.get("sz"))),
            time=int(to_float(raw.get("time"))),
            price=to_float(raw.get("px")),
        )


@dataclass
class WalletPosition:
    """One open perp position from clearinghouseState.assetPositions."""

    address: str
    coin: str
    size: float  # signed: >0 long, <0 short
    entry_price: float
    position_value: float = 0.0
    margin: float = 0.0
    unrealized_pnl: float = 0.0
    leverage: float = 1.0

    @property
    def direction(self) -> Direction:
        return Direction.LONG if self.size > 0 else Direction.SHORT

    @classmethod
    def from_hl(cls, address: str, raw: dict) -> "WalletPosition":
        p = raw.get("position", raw)
        lev = p.get("leverage", 1)
        leverage = to_float(lev.get("value", 1) if isinstance(lev, dict) else lev, 1.0)
        size = to_float(p.get("szi"))
        entry = to_float(p.get("entryPx"))
        value = to_float(p.get("positionValue")) or abs(size) * entry
        return cls(
            address=address,
            coin=str(p.get("coin", "")).upper(),
            size=size,
            entry_price=entry,
            position_value=value,
            margin=to_float(p.get("marginUsed")),
            unrealized_pnl=to_float(p.get("unrealizedPnl")),
            leverage=leverage if leverage > 0 else 1.0,
        )


@dataclass
class Signal:
    """A coordinated-position signal as persisted in signals.json."""

    pair: str
    direction: Direction
    coin: str
    entry_price: float
    size: float
    margin: float
    stop_loss_pct: float
    take_profit_targets: list[float] = field(default_factory=list)
    contributing_addresses: list[str] = field(default_factory=list)
    # Count from records stored without the address list
    stored_wallet_count: int = 0
    status: SignalStatus = SignalStatus.OPEN
    current_price: float = 0.0
    pnl: float = 0.0
    pnl_percent: float = 0.0
    targets_hit: int = 0
    timestamp: str = field(default_factory=utc_now_iso)
    closed_at: Optional[str] = None
    id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])

    @property
    def is_open(self) -> bool:
        return self.status is SignalStatus.OPEN

    @property
    def wallet_count(self) -> int:
        return len(self.contributing_addresses) or self.stored_wallet_count

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "pair": self.pair,
            "type": self.direction.value,
            "coin": self.coin,
            "status": self.status.value,
            "entryPrice": self.entry_price,
            "currentPrice": self.current_price,
            "size": self.size,
            "margin": self.margin,
            "pnl": self.pnl,
            "pnlPercent": self.pnl_percent,
            "stopLossPercent": self.stop_loss_pct,
            "takeProfitTargets": list(self.take_profit_targets),
            "targetsHit": self.targets_hit,
            "contributingWallets": self.wallet_count,
            "contributingWalletAddresses": list(self.contributing_addresses),
            "timestamp": self.timestamp,
            "closedAt": self.closed_at,
        }

    @classmethod
    def from_dict(cls, d: dict) -> "Signal":
        """Parse a stored record. Unknown statuses raise ValueError."""
        status = SignalStatus(d.get("status", "Open"))
        direction = Direction.SHORT if str(d.get("type", "")).upper() == "SHORT" else Direction.LONG
        return cls(
            id=str(d.get("id") or uuid.uuid4().hex[:12]),
            pair=str(d.get("pair", "")),
            direction=direction,
            coin=str(d.get("coin") or str(d.get("pair", "")).split("/")[0]).upper(),
            status=status,
            entry_price=to_float(d.get("entryPrice")),
            current_price=to_float(d.get("currentPrice")),
            size=to_float(d.get("size")),
            margin=to_float(d.get("margin")),
            pnl=to_float(d.get("pnl")),
            pnl_percent=to_float(d.get("pnlPercent")),
            stop_loss_pct=to_float(d.get("stopLossPercent")),
            take_profit_targets=[to_float(t) for t in d.get("takeProfitTargets") or []],
            targets_hit=int(to_float(d.get("targetsHit"))),
            contributing_addresses=list(d.get("contributingWalletAddresses") or []),
            stored_wallet_count=max(0, int(to_float(d.get("contributingWallets")))),
            timestamp=str(d.get("timestamp") or utc_now_iso()),
            closed_at=d.get("closedAt"),
        )
