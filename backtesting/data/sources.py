"""
Data Source Loaders

Builds a data handler for one exchange/asset/pair from whichever data source
block the configuration sets: exchange API, candle database, CSV file, or live
polling. Selection happens once at setup and is never revisited mid-run.
"""

from datetime import timedelta
from pathlib import Path
from threading import Event
from typing import Optional
import logging

import pandas as pd
from sqlalchemy import and_

from ..core.config import Config, DataSettings, validate_date_range
from ..core.errors import (
    BacktestError, ConfigurationError, CredentialsError, DatabaseDisabledError,
    DataRetrievalError, IntervalUnsetError, NilArgumentsError, NilConfigError,
    NoDataSourceError, UnrecognisedDataTypeError
)
from ..core.interfaces import Asset, CurrencyPair, DataType
from .kline import CANDLE_COLUMNS, KlineData, trades_to_candles
from .live import LiveKlineData
from .ranges import IntervalRangeHolder, to_naive_utc

logger = logging.getLogger(__name__)


def parse_data_type(value: str) -> DataType:
    try:
        return DataType(value.strip().lower())
    except (ValueError, AttributeError):
        raise UnrecognisedDataTypeError(f"unrecognised dataType '{value}'") from None


def require_interval(interval: Optional[timedelta]) -> timedelta:
    if interval is None or interval <= timedelta(0):
        raise IntervalUnsetError("data interval unset", {'interval': interval})
    return interval


def load_data(cfg: Config, exchange, pair: CurrencyPair, asset: Asset,
              host_engine=None, stop_event: Optional[Event] = None) -> KlineData:
    """
    Build the data handler for one pair.

    Args:
        cfg: Backtest configuration
        exchange: ExchangeProfile resolved by the host engine
        pair: Currency pair
        asset: Asset type
        host_engine: Host engine carrying database settings
        stop_event: Cancellation token for live polling

    Returns:
        Loaded data handler
    """
    ds = cfg.data_settings
    sources = [s for s in (ds.api_data, ds.database_data, ds.csv_data, ds.live_data) if s is not None]
    if not sources:
        raise NoDataSourceError("no data source set in config")
    if len(sources) > 1:
        raise ConfigurationError("only one data source may be set in config")

    data_type = parse_data_type(ds.data_type)

    if ds.api_data is not None:
        validate_date_range(ds.api_data.start_date, ds.api_data.end_date)
    elif ds.database_data is not None:
        validate_date_range(ds.database_data.start_date, ds.database_data.end_date)
    interval = require_interval(ds.interval)

    if ds.api_data is not None:
        return load_api_data(ds, exchange, pair, asset, data_type)

    if ds.database_data is not None:
        try:
            return load_database_data(cfg, exchange.name, pair, asset, data_type, host_engine)
        except BacktestError as e:
            raise DataRetrievalError(
                f"unable to retrieve data from database: {e}",
                {'exchange': exchange.name, 'pair': str(pair)}
            ) from e

    if ds.csv_data is not None:
        return load_csv_data(ds, exchange.name, pair, asset, data_type)

    load_live_data(cfg, exchange)
    if exchange.latest_candle_source is None:
        raise DataRetrievalError(
            f"exchange {exchange.name} has no live candle source",
            {'exchange': exchange.name, 'pair': str(pair)}
        )
    poll_timeout = host_engine.settings.live_poll_timeout if host_engine is not None else None
    return LiveKlineData(
        exchange, asset, pair, interval,
        max_ticks=ds.live_data.max_ticks,
        poll_timeout=poll_timeout,
        stop_event=stop_event,
    )


def load_api_data(ds: DataSettings, exchange, pair: CurrencyPair, asset: Asset,
                  data_type: DataType) -> KlineData:
    """Fetch the whole historical window from the exchange, one request per range."""
    api = ds.api_data
    holder = IntervalRangeHolder.calculate(
        api.start_date, api.end_date, ds.interval,
        limit=exchange.request_limit, inclusive_end=api.inclusive_end_date,
    )

    frames = []
    for r in holder.ranges:
        if data_type is DataType.CANDLE:
            frames.append(exchange.get_historic_candles(pair, asset, r.start, r.end, ds.interval))
        else:
            trades = exchange.get_historic_trades(pair, asset, r.start, r.end)
            frames.append(trades_to_candles(trades, ds.interval))

    frames = [f for f in frames if f is not None and not f.empty]
    if not frames:
        raise DataRetrievalError(
            f"no data returned from {exchange.name} for {pair}",
            {'start': api.start_date, 'end': api.end_date}
        )

    data = KlineData(exchange.name, asset, pair, ds.interval,
                     pd.concat(frames, ignore_index=True), range_holder=holder).load()
    holder.log_missing(f"{exchange.name} {asset.value} {pair}")
    return data


def load_database_data(cfg: Optional[Config], exchange_name: str, pair: CurrencyPair,
                       asset: Optional[Asset], data_type: Optional[DataType],
                       host_engine=None) -> KlineData:
    """
    Read candles for one pair from the candle database.

    Raises:
        NilConfigError: no config or no database block
        StartEndUnsetError: dates unset or inverted
        IntervalUnsetError: interval unset
        DataRetrievalError: bad request or no candles stored
        DatabaseDisabledError: database support is off
    """
    if cfg is None or cfg.data_settings.database_data is None:
        raise NilConfigError("nil config data received")
    db = cfg.data_settings.database_data
    validate_date_range(db.start_date, db.end_date)
    interval = require_interval(cfg.data_settings.interval)
    if data_type is None:
        raise DataRetrievalError("could not retrieve database data: data type unset")
    if not exchange_name or asset is None or not pair.base or not pair.quote:
        raise DataRetrievalError("exchange, base, quote, asset, interval, start & end cannot be empty")
    if data_type is not DataType.CANDLE:
        raise DataRetrievalError("could not retrieve database data: only candles are stored")

    database_url = db.database_url_override
    if database_url is None:
        if host_engine is None or not host_engine.database_enabled:
            raise DatabaseDisabledError("database support is disabled")
        database_url = host_engine.database_url

    # Imported here so the ORM is only configured when a database source is used
    from config.database import get_session_factory, init_db
    from .models import Candle

    init_db(database_url)
    session = get_session_factory(database_url)()
    try:
        start = to_naive_utc(db.start_date).to_pydatetime()
        end = to_naive_utc(db.end_date).to_pydatetime()
        end_clause = Candle.timestamp <= end if db.inclusive_end_date else Candle.timestamp < end
        rows = session.query(Candle).filter(
            and_(
                Candle.exchange == exchange_name.lower(),
                Candle.base == pair.base,
                Candle.quote == pair.quote,
                Candle.asset == asset.value,
                Candle.interval == int(interval.total_seconds()),
                Candle.timestamp >= start,
                end_clause,
            )
        ).order_by(Candle.timestamp).all()
        candles = pd.DataFrame([row.to_ohlcv_dict() for row in rows], columns=CANDLE_COLUMNS)
    finally:
        session.close()

    if candles.empty:
        raise DataRetrievalError(
            f"no candles stored for {exchange_name} {asset.value} {pair}",
            {'start': db.start_date, 'end': db.end_date}
        )

    holder = IntervalRangeHolder.calculate(
        db.start_date, db.end_date, interval, inclusive_end=db.inclusive_end_date
    )
    data = KlineData(exchange_name, asset, pair, interval, candles, range_holder=holder).load()
    holder.log_missing(f"{exchange_name} {asset.value} {pair}")
    return data


def load_csv_data(ds: DataSettings, exchange_name: str, pair: CurrencyPair, asset: Asset,
                  data_type: DataType) -> KlineData:
    """Read candles, or trades to resample, from a CSV file."""
    path = Path(ds.csv_data.full_path)
    if not path.is_file():
        raise DataRetrievalError(f"could not open {path}: file not found")

    frame = pd.read_csv(path)
    if 'timestamp' not in frame.columns:
        raise DataRetrievalError(f"{path} has no timestamp column")
    if data_type is DataType.TRADE:
        frame = trades_to_candles(frame, ds.interval)
    if frame.empty:
        raise DataRetrievalError(f"no data in {path}")

    timestamps = pd.to_datetime(frame['timestamp'])
    holder = IntervalRangeHolder.calculate(
        timestamps.min().to_pydatetime(), timestamps.max().to_pydatetime(),
        ds.interval, inclusive_end=True,
    )
    return KlineData(exchange_name, asset, pair, ds.interval, frame, range_holder=holder).load()


def load_live_data(cfg: Optional[Config], exchange) -> None:
    """
    Prepare an exchange for live polling.

    Credential overrides replace the exchange's configured credentials and
    switch on authenticated support.

    Raises:
        NilArgumentsError: config, exchange or live block missing, or
            authenticated data requested from an exchange without credentials
            and no overrides given
        CredentialsError: credentials do not satisfy the exchange's validator
    """
    if cfg is None or exchange is None:
        raise NilArgumentsError("received nil argument(s)")
    live = cfg.data_settings.live_data
    if live is None:
        raise NilArgumentsError("no live data settings")

    if live.has_credential_overrides():
        exchange.set_credentials(
            key=live.api_key_override,
            secret=live.api_secret_override,
            client_id=live.api_client_id_override,
            otp=live.api_2fa_override,
        )
        exchange.authenticated_support = True
    elif live.authenticated_data and not exchange.has_usable_credentials():
        raise NilArgumentsError(
            f"exchange {exchange.name} has no credentials for authenticated live data"
        )

    if live.authenticated_data:
        missing = exchange.validator.missing(exchange.credentials)
        if missing:
            raise CredentialsError(
                f"exchange {exchange.name} credentials missing required parts",
                {'missing': missing}
            )

    if live.real_orders:
        logger.warning("Real orders requested; orders are simulated against live data only")
    logger.info(f"Live data prepared for {exchange.name}")
