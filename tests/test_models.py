import pytest

from hypersignal.models import Signal, SignalStatus, to_float


def test_legacy_record_keeps_wallet_count():
    record = {"id": "abc", "pair": "ETH/USDT", "type": "LONG", "status": "TP",
              "entryPrice": 100, "contributingWallets": 7}

    sig = Signal.from_dict(record)

    assert sig.status is SignalStatus.TAKE_PROFIT
    assert sig.to_dict()["contributingWallets"] == 7


def test_address_list_wins_over_stored_count():
    record = {"status": "Open", "contributingWallets": 9,
              "contributingWalletAddresses": ["0x1", "0x2"]}
    assert Signal.from_dict(record).to_dict()["contributingWallets"] == 2


def test_unknown_status_is_rejected():
    with pytest.raises(ValueError):
        Signal.from_dict({"pair": "ETH/USDT", "status": "Expired"})


def test_to_float_rejects_junk():
    assert to_float("1.5") == 1.5
    assert to_float("nan", 3.0) == 3.0
    assert to_float(True, 2.0) == 2.0
    assert to_float(None) == 0.0
