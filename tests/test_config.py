"""
Tests for Backtest Configuration
"""

import json
from datetime import datetime, timedelta

import pytest

from backtesting.core.config import (
    Config, CurrencySettings, LiveData, StrategySettings, load_config, parse_interval,
    validate_date_range
)
from backtesting.core.errors import (
    BadInitialFundsError, ConfigurationError, InvalidCustomSettingError,
    NoCurrencySettingsError, StartEndUnsetError, UnsetAssetError
)
from backtesting.core.interfaces import Asset, CurrencyPair


def test_no_currency_settings():
    with pytest.raises(NoCurrencySettingsError):
        Config().validate_currency_settings()


def test_bad_initial_funds_reported_before_unset_asset():
    """Every pair's funds are checked before any pair's asset."""
    config = Config(currency_settings=[
        CurrencySettings(exchange_name="binance", base="BTC", quote="USDT", initial_funds=1),
        CurrencySettings(exchange_name="binance", asset="spot", base="ETH", quote="USDT"),
    ])
    with pytest.raises(BadInitialFundsError):
        config.validate_currency_settings()


def test_unset_asset():
    config = Config(currency_settings=[
        CurrencySettings(exchange_name="binance", base="BTC", quote="USDT", initial_funds=1337),
    ])
    with pytest.raises(UnsetAssetError):
        config.validate_currency_settings()


def test_currency_settings_helpers():
    cs = CurrencySettings(exchange_name="binance", asset="spot", base="btc", quote="usdt",
                          initial_funds=1337)
    assert cs.pair() == CurrencyPair("BTC", "USDT")
    assert cs.asset_item() is Asset.SPOT

    cs.asset = "bonds"
    with pytest.raises(ConfigurationError):
        cs.asset_item()


def test_custom_settings_accept_closed_value_set():
    settings = StrategySettings(name="rsi", custom_settings={
        'rsi-period': 14, 'rsi-high': 70.5, 'label': 'x', 'enabled': True,
    })
    assert settings.custom_settings['rsi-period'] == 14


def test_custom_settings_reject_nested_values():
    with pytest.raises(InvalidCustomSettingError):
        StrategySettings(name="rsi", custom_settings={'thresholds': [70, 30]})


def test_validate_date_range():
    start = datetime(2022, 1, 1)
    validate_date_range(start, start + timedelta(days=1))
    with pytest.raises(StartEndUnsetError):
        validate_date_range(None, None)
    with pytest.raises(StartEndUnsetError):
        validate_date_range(start, start)


@pytest.mark.parametrize("value,expected", [
    (None, None),
    ("", None),
    (900, timedelta(minutes=15)),
    ("15min", timedelta(minutes=15)),
    ("1h", timedelta(hours=1)),
    (timedelta(days=1), timedelta(days=1)),
])
def test_parse_interval(value, expected):
    assert parse_interval(value) == expected


def test_live_credential_overrides():
    assert not LiveData().has_credential_overrides()
    assert LiveData(api_2fa_override="123456").has_credential_overrides()


def test_load_config(tmp_path):
    raw = {
        'nickname': 'dca',
        'goal': 'buy every candle',
        'currency_settings': [{
            'exchange_name': 'binance',
            'asset': 'spot',
            'base': 'BTC',
            'quote': 'USDT',
            'initial_funds': 1337,
            'taker_fee': 0.001,
            'buy_side': {'maximum_size': 0.5},
            'risk': {'max_holdings_ratio': 0.8},
        }],
        'data_settings': {
            'interval': '15min',
            'data_type': 'candle',
            'api_data': {
                'start_date': '2022-01-01T00:00:00',
                'end_date': '2022-01-02T00:00:00',
                'inclusive_end_date': True,
                'unknown_key': 1,
            },
        },
        'strategy_settings': {
            'name': 'dollarcostaverage',
            'custom_settings': {'note': 'opaque'},
        },
    }
    path = tmp_path / "config.json"
    path.write_text(json.dumps(raw))

    config = load_config(path)

    assert config.nickname == 'dca'
    cs = config.currency_settings[0]
    assert cs.taker_fee == 0.001
    assert cs.buy_side.maximum_size == 0.5
    assert cs.sell_side.maximum_size == 0.0
    assert cs.risk.max_holdings_ratio == 0.8
    ds = config.data_settings
    assert ds.interval == timedelta(minutes=15)
    assert ds.api_data.start_date == datetime(2022, 1, 1)
    assert ds.api_data.end_date == datetime(2022, 1, 2)
    assert ds.api_data.inclusive_end_date is True
    assert ds.database_data is None
    assert ds.has_source()
    assert config.strategy_settings.custom_settings == {'note': 'opaque'}
    config.validate_currency_settings()
