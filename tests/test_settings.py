import pytest

from hypersignal.settings import (
    DEFAULT_SETTINGS,
    Settings,
    SettingsStore,
    parse_targets,
    split_list,
)


def test_defaults():
    s = Settings.from_dict({})
    assert s.min_wallet_count == 5
    assert s.time_window_minutes == 10
    assert s.take_profit_targets == (2.0, 3.5, 5.0)
    assert s.monitored_pairs == ("ETH", "BTC", "SOL")
    assert s.pair_name("eth") == "ETH/USDT"


def test_stop_loss_is_always_negative():
    assert Settings.from_dict({"defaultStopLoss": 3}).default_stop_loss == -3
    assert Settings.from_dict({"defaultStopLoss": "-1.5"}).default_stop_loss == -1.5


def test_list_parsing():
    assert split_list("eth, BTC,, sol ") == ["ETH", "BTC", "SOL"]
    assert split_list(["a", " b "]) == ["A", "B"]
    assert parse_targets("5, 2.0, x, -1, 3.5") == [2.0, 3.5, 5.0]


def test_pair_filter():
    s = Settings.from_dict({"monitoredPairs": "ETH/USDT, BTC", "ignoredPairs": "ETHUSDC"})

    assert s.is_pair_allowed("BTC") is True
    assert s.is_pair_allowed("ETH") is False  # ignored via ETH + USDC
    assert s.is_pair_allowed("SOL") is False


def test_empty_monitored_list_allows_everything_but_ignored():
    s = Settings.from_dict({"monitoredPairs": "", "ignoredPairs": "DOGE-USDT"})

    assert s.is_pair_allowed("PEPE") is True
    assert s.is_pair_allowed("DOGE") is False


def test_channel_ids_keep_case():
    s = Settings.from_dict({"telegramChannelIds": "@MyChannel, -100123"})
    assert s.telegram_channel_ids == ("@MyChannel", "-100123")


def test_store_creates_file_with_defaults(tmp_path):
    store = SettingsStore(tmp_path / "settings.json")

    assert store.get() == DEFAULT_SETTINGS
    assert (tmp_path / "settings.json").exists()


def test_store_merges_partial_saves(tmp_path):
    store = SettingsStore(tmp_path / "settings.json")

    store.save({"minWalletCount": 3})
    merged = store.save({"timeWindow": 30})

    assert merged["minWalletCount"] == 3
    assert merged["timeWindow"] == 30
    assert store.get_settings().time_window_minutes == 30


def test_store_rejects_non_object(tmp_path):
    store = SettingsStore(tmp_path / "settings.json")
    with pytest.raises(TypeError):
        store.save(["nope"])


def test_corrupt_file_falls_back_to_defaults(tmp_path):
    path = tmp_path / "settings.json"
    path.write_text("{not json")

    assert SettingsStore(path).get() == DEFAULT_SETTINGS


@pytest.mark.parametrize("raw, expected", [
    ("false", False), ("0", False), ("no", False), ("", False),
    ("true", True), ("Yes", True), (False, False), (True, True), (None, True),
])
def test_include_funding_parsing(raw, expected):
    assert Settings.from_dict({"includeFunding": raw}).include_funding is expected
