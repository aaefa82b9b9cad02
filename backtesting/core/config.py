"""
Backtest Configuration

Dataclasses describing one backtest run: per-pair currency settings, the data
source block, and strategy selection. Semantic validation lives here; reading
the JSON file is a thin layer on top.
"""

from dataclasses import dataclass, field, fields
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Dict, List, Optional, Union
import json
import logging

import pandas as pd

from .errors import (
    BadInitialFundsError, ConfigurationError, InvalidCustomSettingError,
    NoCurrencySettingsError, StartEndUnsetError, UnsetAssetError
)
from .interfaces import Asset, CurrencyPair

logger = logging.getLogger(__name__)

CustomSettingValue = Union[str, int, float, bool]


@dataclass
class MinMax:
    """Sizing bounds for one side of the book. Zero means unbounded."""
    minimum_size: float = 0.0
    maximum_size: float = 0.0
    maximum_total: float = 0.0


@dataclass
class RiskSettings:
    """Per-pair risk limits. Zero disables a limit."""
    max_holdings_ratio: float = 0.0


@dataclass
class CurrencySettings:
    """Settings for one exchange/asset/pair combination."""
    exchange_name: str = ""
    asset: str = ""
    base: str = ""
    quote: str = ""
    initial_funds: float = 0.0
    maker_fee: float = 0.0
    taker_fee: float = 0.0
    slippage_rate: float = 0.0
    buy_side: MinMax = field(default_factory=MinMax)
    sell_side: MinMax = field(default_factory=MinMax)
    risk: RiskSettings = field(default_factory=RiskSettings)

    def pair(self) -> CurrencyPair:
        return CurrencyPair(base=self.base, quote=self.quote)

    def asset_item(self) -> Asset:
        try:
            return Asset.parse(self.asset)
        except ValueError as e:
            raise ConfigurationError(str(e), {'exchange': self.exchange_name}) from e


@dataclass
class APIData:
    """Historical window fetched eagerly from the exchange API."""
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    inclusive_end_date: bool = False


@dataclass
class DatabaseData:
    """Historical window read from the candle database."""
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    inclusive_end_date: bool = False
    database_url_override: Optional[str] = None


@dataclass
class CSVData:
    full_path: str = ""


@dataclass
class LiveData:
    """Live polling of the exchange; orders are still simulated."""
    api_key_override: str = ""
    api_secret_override: str = ""
    api_client_id_override: str = ""
    api_2fa_override: str = ""
    real_orders: bool = False
    authenticated_data: bool = False
    max_ticks: int = 0

    def has_credential_overrides(self) -> bool:
        return any([
            self.api_key_override,
            self.api_secret_override,
            self.api_client_id_override,
            self.api_2fa_override,
        ])


@dataclass
class DataSettings:
    interval: Optional[timedelta] = None
    data_type: str = ""
    api_data: Optional[APIData] = None
    database_data: Optional[DatabaseData] = None
    csv_data: Optional[CSVData] = None
    live_data: Optional[LiveData] = None

    def has_source(self) -> bool:
        return any(source is not None for source in (
            self.api_data, self.database_data, self.csv_data, self.live_data
        ))


@dataclass
class StrategySettings:
    """Strategy selection plus opaque custom settings passed through unchanged."""
    name: str = ""
    simultaneous_signal_processing: bool = False
    custom_settings: Dict[str, CustomSettingValue] = field(default_factory=dict)

    def __post_init__(self):
        if self.custom_settings is None:
            self.custom_settings = {}
        for key, value in self.custom_settings.items():
            if not isinstance(key, str):
                raise InvalidCustomSettingError(f"custom setting key {key!r} is not a string")
            if not isinstance(value, (str, int, float, bool)):
                raise InvalidCustomSettingError(
                    f"custom setting '{key}' has unsupported type {type(value).__name__}"
                )


@dataclass
class Config:
    """Complete configuration for a backtest run."""
    nickname: str = ""
    goal: str = ""
    host_config_path: str = ""
    currency_settings: List[CurrencySettings] = field(default_factory=list)
    data_settings: DataSettings = field(default_factory=DataSettings)
    strategy_settings: StrategySettings = field(default_factory=StrategySettings)

    def validate_currency_settings(self) -> None:
        """
        Validate per-pair settings in a fixed order.

        Raises:
            NoCurrencySettingsError: no pairs configured
            BadInitialFundsError: a pair has non-positive initial funds
            UnsetAssetError: a pair has no asset type
        """
        if not self.currency_settings:
            raise NoCurrencySettingsError("no currency settings set in the config")
        for cs in self.currency_settings:
            if cs.initial_funds <= 0:
                raise BadInitialFundsError(
                    "initial funds unset",
                    {'exchange': cs.exchange_name, 'base': cs.base, 'quote': cs.quote}
                )
        for cs in self.currency_settings:
            if not cs.asset:
                raise UnsetAssetError(
                    "asset unset",
                    {'exchange': cs.exchange_name, 'base': cs.base, 'quote': cs.quote}
                )

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "Config":
        """Build a config from decoded JSON."""
        data_raw = raw.get('data_settings', {}) or {}
        data_settings = DataSettings(
            interval=parse_interval(data_raw.get('interval')),
            data_type=data_raw.get('data_type', ''),
            api_data=_build(APIData, data_raw.get('api_data')),
            database_data=_build(DatabaseData, data_raw.get('database_data')),
            csv_data=_build(CSVData, data_raw.get('csv_data')),
            live_data=_build(LiveData, data_raw.get('live_data')),
        )

        currency_settings = []
        for item in raw.get('currency_settings', []) or []:
            item = dict(item)
            buy_side = MinMax(**item.pop('buy_side', {}) or {})
            sell_side = MinMax(**item.pop('sell_side', {}) or {})
            risk = RiskSettings(**item.pop('risk', {}) or {})
            currency_settings.append(CurrencySettings(
                buy_side=buy_side, sell_side=sell_side, risk=risk, **item
            ))

        return cls(
            nickname=raw.get('nickname', ''),
            goal=raw.get('goal', ''),
            host_config_path=raw.get('host_config_path', ''),
            currency_settings=currency_settings,
            data_settings=data_settings,
            strategy_settings=StrategySettings(**(raw.get('strategy_settings') or {})),
        )


def validate_date_range(start: Optional[datetime], end: Optional[datetime]) -> None:
    """Require both dates set and start strictly before end."""
    if start is None or end is None or start >= end:
        raise StartEndUnsetError(
            "start date and end date must be set and start must be before end",
            {'start': start, 'end': end}
        )


def parse_interval(value: Any) -> Optional[timedelta]:
    """Parse seconds, a pandas offset string such as '15min', or a timedelta."""
    if value is None or value == "":
        return None
    if isinstance(value, timedelta):
        return value
    if isinstance(value, (int, float)):
        return timedelta(seconds=value)
    return pd.Timedelta(value).to_pytimedelta()


def _parse_datetime(value: Any) -> Optional[datetime]:
    if value is None or value == "" or isinstance(value, datetime):
        return value
    return pd.Timestamp(value).to_pydatetime()


def _build(klass, raw: Optional[Dict[str, Any]]):
    if raw is None:
        return None
    known = {f.name for f in fields(klass)}
    kwargs = {}
    for key, value in raw.items():
        if key not in known:
            logger.warning(f"Ignoring unknown {klass.__name__} key '{key}'")
            continue
        kwargs[key] = _parse_datetime(value) if key in ('start_date', 'end_date') else value
    return klass(**kwargs)


def load_config(path: Union[str, Path]) -> Config:
    """
    Load a backtest configuration from a JSON file.

    Args:
        path: Path to the JSON config file

    Returns:
        Parsed Config
    """
    config_path = Path(path)
    with open(config_path, 'r') as f:
        raw = json.load(f)
    logger.info(f"Loaded backtest config from {config_path}")
    return Config.from_dict(raw)
