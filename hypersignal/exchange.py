"""Hyperliquid read-only client: wallet positions, fills and mid prices.

Wraps the official hyperliquid-python-sdk `Info` endpoint:
  - clearinghouseState: a wallet's open perp positions
  - userFills:          a wallet's recent trade history
  - allMids:            current mid price for every coin

Only public data is read; no credentials are needed. Every SDK or transport
failure is re-raised as HyperliquidAPIError carrying the status and body so
callers can log it with context and skip the cycle.
"""
from __future__ import annotations

import logging
from typing import Any, Optional

import requests
from hyperliquid.info import Info
from hyperliquid.utils import constants
from hyperliquid.utils.error import ClientError, ServerError

from hypersignal.config import HyperSignalConfig
from hypersignal.models import Fill, WalletPosition, to_float

log = logging.getLogger(__name__)


class HyperliquidAPIError(Exception):
    """Raised when the Hyperliquid API call fails or returns junk."""

    def __init__(self, msg: str, endpoint: str = "", status: Optional[int] = None, body: Any = None):
        self.msg = msg
        self.endpoint = endpoint
        self.status = status
        self.body = body
        super().__init__(f"{msg} ({endpoint})")


class HyperliquidClient:
    """Thin read-only client for the Hyperliquid info API."""

    def __init__(self, cfg: Optional[HyperSignalConfig] = None, info: Optional[Info] = None):
        self._cfg = cfg or HyperSignalConfig()
        self._base_url = (
            constants.TESTNET_API_URL if self._cfg.hl_testnet
            else constants.MAINNET_API_URL
        )
        # Info hits the meta endpoint on construction
        self._info = info

    @property
    def info(self) -> Info:
        if self._info is None:
            try:
                self._info = Info(self._base_url, skip_ws=True, timeout=self._cfg.hl_timeout)
            except (ClientError, ServerError, requests.RequestException) as e:
                raise _wrap(e, "meta") from e
            log.info("[HL] Info client initialized | %s | timeout=%.0fs", self._base_url, self._cfg.hl_timeout)
        return self._info

    # ── Raw endpoints ────────────────────────────────────────────

    def clearinghouse_state(self, address: str) -> dict:
        """Raw clearinghouseState for a wallet."""
        data = self._call("clearinghouseState", lambda: self.info.user_state(address))
        if not isinstance(data, dict):
            raise HyperliquidAPIError("Malformed response", "clearinghouseState", body=data)
        return data

    def user_fills(self, address: str) -> list[dict]:
        """Raw userFills for a wallet (most recent window the API returns)."""
        data = self._call("userFills", lambda: self.info.user_fills(address))
        if not isinstance(data, list):
            raise HyperliquidAPIError("Malformed response", "userFills", body=data)
        return data

    def all_mids(self) -> dict[str, float]:
        """All mid prices. Returns {BTC: 97500.0, ETH: 3200.0, ...}."""
        data = self._call("allMids", lambda: self.info.all_mids())
        if not isinstance(data, dict):
            raise HyperliquidAPIError("Malformed response", "allMids", body=data)
        return {k.upper(): to_float(v) for k, v in data.items() if to_float(v) > 0}

    # ── Parsed views ─────────────────────────────────────────────

    def get_positions(self, address: str) -> list[WalletPosition]:
        """Non-zero open positions for a wallet."""
        state = self.clearinghouse_state(address)
        positions = []
        for raw in state.get("assetPositions") or []:
            if not isinstance(raw, dict):
                continue
            pos = WalletPosition.from_hl(address, raw)
            if pos.coin and pos.size != 0:
                positions.append(pos)
        return positions

    def get_fills(self, address: str, coin: str = "") -> list[Fill]:
        """Fills for a wallet, optionally for one coin, oldest first."""
        coin = coin.upper()
        fills = []
        for raw in self.user_fills(address):
            if not isinstance(raw, dict):
                continue
            fill = Fill.from_hl(raw)
            if coin and fill.coin != coin:
                continue
            fills.append(fill)
        fills.sort(key=lambda f: f.time)
        return fills

    # ── Internal ─────────────────────────────────────────────────

    def _call(self, endpoint: str, fn):
        try:
            return fn()
        except HyperliquidAPIError:
            raise
        except (ClientError, ServerError, requests.RequestException, ValueError) as e:
            err = _wrap(e, endpoint)
            log.warning("[HL] %s failed | status=%s | body=%s",
                        endpoint, err.status, str(err.body)[:200])
            raise err from e


def _wrap(e: Exception, endpoint: str) -> HyperliquidAPIError:
    if isinstance(e, ClientError):
        return HyperliquidAPIError(
            str(e.error_message)[:200], endpoint,
            status=e.status_code, body=e.error_data,
        )
    if isinstance(e, ServerError):
        return HyperliquidAPIError("Server error", endpoint, status=e.status_code, body=e.message)
    status = None
    response = getattr(e, "response", None)
    if response is not None:
        status = response.status_code
    return HyperliquidAPIError(str(e)[:200], endpoint, status=status)
