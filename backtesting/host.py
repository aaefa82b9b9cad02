"""
Host Engine

The host engine is the process-level collaborator the backtester depends on:
it resolves exchange names to exchange profiles (credentials, data sources)
and carries the database settings. It is injected into the backtest engine
explicitly, never looked up globally.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional
import logging

import pandas as pd

from config.settings import Settings, settings as default_settings
from .core.errors import DataRetrievalError, ExchangeNotFoundError
from .core.interfaces import Asset, CurrencyPair, IHostEngine

logger = logging.getLogger(__name__)

CandleSource = Callable[[CurrencyPair, Asset, datetime, datetime, timedelta], pd.DataFrame]
TradeSource = Callable[[CurrencyPair, Asset, datetime, datetime], pd.DataFrame]
LatestCandleSource = Callable[[CurrencyPair, Asset, timedelta], Optional[Dict[str, Any]]]


@dataclass
class APICredentials:
    key: str = ""
    secret: str = ""
    client_id: str = ""
    otp: str = ""
    pem_key: str = ""


@dataclass
class CredentialsValidator:
    """Which credential parts an exchange needs for authenticated requests."""
    requires_pem: bool = False
    requires_key: bool = False
    requires_secret: bool = False
    requires_client_id: bool = False
    requires_base64_decode_secret: bool = False

    def missing(self, credentials: APICredentials) -> List[str]:
        """Names of required credential parts that are empty."""
        required = {
            'pem_key': self.requires_pem,
            'key': self.requires_key,
            'secret': self.requires_secret,
            'client_id': self.requires_client_id,
        }
        return [name for name, needed in required.items()
                if needed and not getattr(credentials, name)]


@dataclass
class ExchangeProfile:
    """An exchange as seen by the backtester: credentials plus data access."""
    name: str
    credentials: APICredentials = field(default_factory=APICredentials)
    validator: CredentialsValidator = field(default_factory=CredentialsValidator)
    authenticated_support: bool = False
    request_limit: int = 500
    candle_source: Optional[CandleSource] = None
    trade_source: Optional[TradeSource] = None
    latest_candle_source: Optional[LatestCandleSource] = None

    def set_credentials(self, key: str = "", secret: str = "",
                        client_id: str = "", otp: str = "") -> None:
        self.credentials = APICredentials(
            key=key, secret=secret, client_id=client_id, otp=otp,
            pem_key=self.credentials.pem_key,
        )

    def has_usable_credentials(self) -> bool:
        return self.authenticated_support and not self.validator.missing(self.credentials)

    def get_historic_candles(self, pair: CurrencyPair, asset: Asset, start: datetime,
                             end: datetime, interval: timedelta) -> pd.DataFrame:
        if self.candle_source is None:
            raise DataRetrievalError(f"exchange {self.name} has no candle source")
        return self.candle_source(pair, asset, start, end, interval)

    def get_historic_trades(self, pair: CurrencyPair, asset: Asset, start: datetime,
                            end: datetime) -> pd.DataFrame:
        if self.trade_source is None:
            raise DataRetrievalError(f"exchange {self.name} has no trade source")
        return self.trade_source(pair, asset, start, end)

    def get_latest_candle(self, pair: CurrencyPair, asset: Asset,
                          interval: timedelta) -> Optional[Dict[str, Any]]:
        if self.latest_candle_source is None:
            raise DataRetrievalError(f"exchange {self.name} has no live candle source")
        return self.latest_candle_source(pair, asset, interval)


class HostEngine(IHostEngine):
    """Registry of exchange profiles plus database settings."""

    def __init__(self, exchanges: Optional[List[ExchangeProfile]] = None,
                 app_settings: Optional[Settings] = None):
        self.settings = app_settings or default_settings
        self._exchanges: Dict[str, ExchangeProfile] = {}
        for exchange in exchanges or []:
            self.load_exchange(exchange)

    @property
    def database_enabled(self) -> bool:
        return self.settings.database_enabled

    @property
    def database_url(self) -> str:
        return self.settings.database_url

    def load_exchange(self, exchange: ExchangeProfile) -> None:
        self._exchanges[exchange.name.lower()] = exchange
        logger.info(f"Loaded exchange {exchange.name}")

    def get_exchange_by_name(self, name: str) -> ExchangeProfile:
        exchange = self._exchanges.get(name.lower())
        if exchange is None:
            raise ExchangeNotFoundError(f"exchange {name} not found", {'exchange': name})
        return exchange

    def exchange_names(self) -> List[str]:
        return list(self._exchanges)
