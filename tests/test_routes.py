import pytest

from hypersignal.exchange import HyperliquidAPIError
from hypersignal.hub import SETTINGS_UPDATE
from hypersignal.server import AppContext, create_app
from hypersignal.settings import SettingsStore
from hypersignal.storage import SignalStore, WalletStore

from conftest import FakeClient


class StubHub:
    client_count = 2

    def __init__(self):
        self.published = []

    def publish_threadsafe(self, message):
        self.published.append(message)


class StubScheduler:
    def __init__(self):
        self.applied = []

    def apply_settings(self, settings):
        self.applied.append(settings)


class ExplodingClient(FakeClient):
    def clearinghouse_state(self, address):
        raise HyperliquidAPIError("rate limited", "clearinghouseState", status=429)


@pytest.fixture
def ctx(tmp_path):
    signals = SignalStore(tmp_path / "signals.json")
    wallets = WalletStore(tmp_path / "wallets.json")
    return AppContext(
        settings=SettingsStore(tmp_path / "settings.json"),
        signals=signals,
        wallets=wallets,
        client=FakeClient(),
        hub=StubHub(),
        build_snapshot=lambda: {"activeSignals": len(signals.list())},
        scheduler=StubScheduler(),
    )


@pytest.fixture
def http(ctx):
    return create_app(ctx, {"TESTING": True}).test_client()


def test_health(http):
    resp = http.get("/api/health")

    assert resp.status_code == 200
    body = resp.get_json()
    assert body["status"] == "healthy"
    assert body["clients"] == 2
    assert resp.headers["Access-Control-Allow-Origin"] == "*"


def test_dashboard_and_signals(http):
    assert http.get("/api/dashboard").get_json() == {"activeSignals": 0}
    assert http.get("/api/signals").get_json() == []


def test_dashboard_failure_is_500(ctx, http):
    def broken():
        raise RuntimeError("disk")

    ctx.build_snapshot = broken
    resp = http.get("/api/dashboard")

    assert resp.status_code == 500
    assert "error" in resp.get_json()


def test_settings_roundtrip(ctx, http):
    resp = http.post("/api/settings", json={"minWalletCount": 3, "walletPollInterval": 15})

    assert resp.status_code == 200
    assert resp.get_json() == {"success": True}
    stored = http.get("/api/settings").get_json()
    assert stored["minWalletCount"] == 3
    assert stored["timeWindow"] == 10

    [message] = ctx.hub.published
    assert message["type"] == SETTINGS_UPDATE
    assert message["data"] == stored
    assert ctx.scheduler.applied == [stored]


@pytest.mark.parametrize("payload", [[1, 2], "text", 5])
def test_settings_must_be_object(ctx, http, payload):
    resp = http.post("/api/settings", json=payload)

    assert resp.status_code == 400
    assert ctx.hub.published == []


def test_wallets(http):
    assert http.post("/api/wallets", json={"address": "0xabc", "label": "w1"}).status_code == 200
    assert http.post("/api/wallets", json={"address": ""}).status_code == 400

    assert http.get("/api/wallets").get_json() == [
        {"address": "0xabc", "isActive": True, "label": "w1"},
    ]


def test_explorer_upstream_error_is_502(ctx, http):
    ctx.client = ExplodingClient()

    resp = http.get("/api/explorer/0xabc")

    assert resp.status_code == 502


def test_explorer(http):
    assert http.get("/api/explorer/0xabc").get_json() == {
        "pnl": "0.00", "roi": "0.00", "positions": [],
    }


def test_positions_by_coin_empty(http):
    assert http.get("/api/positions/ETH").get_json() == {"positions": []}
