from __future__ import annotations

import json
import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from hypersignal.exchange import HyperliquidAPIError  # noqa: E402


class FakeClient:
    """In-memory stand-in for HyperliquidClient."""

    def __init__(self, positions=None, fills=None, mids=None, states=None):
        self.positions = positions or {}
        self.fills = fills or {}
        self.mids = mids or {}
        self.states = states or {}
        self.failing = set()
        self.fills_fail = False
        self.mids_fail = False
        self.fill_calls = []

    def get_positions(self, address):
        if address in self.failing:
            raise HyperliquidAPIError("boom", "clearinghouseState", status=500)
        return list(self.positions.get(address, []))

    def get_fills(self, address, coin=""):
        self.fill_calls.append((address, coin))
        if self.fills_fail:
            raise HyperliquidAPIError("boom", "userFills", status=429)
        return list(self.fills.get((address, coin.upper()), []))

    def all_mids(self):
        if self.mids_fail:
            raise HyperliquidAPIError("boom", "allMids", status=503)
        return dict(self.mids)

    def clearinghouse_state(self, address):
        if address in self.failing:
            raise HyperliquidAPIError("boom", "clearinghouseState", status=500)
        return self.states.get(address, {"assetPositions": []})


class FakeConn:
    """Minimal websocket connection: records sends, can be closed or broken."""

    def __init__(self):
        self.sent = []
        self.closed = False
        self.fail = False

    async def send(self, payload):
        if self.closed or self.fail:
            raise ConnectionError("connection is gone")
        self.sent.append(payload)

    async def close(self):
        self.closed = True

    def messages(self):
        return [json.loads(p) for p in self.sent]


@pytest.fixture
def fake_client():
    return FakeClient()
