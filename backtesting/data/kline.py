"""
Candle Data Handler

Holds the candles of one exchange/asset/pair and yields them one at a time as
DataEvents. The handler only moves forward; strategies see the history up to
the current candle, never beyond it.
"""

from datetime import datetime, timedelta
from typing import List, Optional, Tuple
import logging

import numpy as np
import pandas as pd

from ..core.errors import DataRetrievalError
from ..core.interfaces import Asset, CurrencyPair, DataEvent, IDataHandler
from .ranges import IntervalRangeHolder

logger = logging.getLogger(__name__)

CANDLE_COLUMNS = ['timestamp', 'open', 'high', 'low', 'close', 'volume']
TRADE_COLUMNS = ['timestamp', 'price', 'amount']


def normalize_candles(frame: pd.DataFrame) -> pd.DataFrame:
    """
    Validate and order a candle frame.

    Args:
        frame: DataFrame with timestamp, open, high, low, close, volume columns

    Returns:
        Copy with naive UTC timestamps, sorted, duplicate timestamps removed
    """
    missing = [c for c in CANDLE_COLUMNS if c not in frame.columns]
    if missing:
        raise DataRetrievalError(f"candle data missing columns: {missing}")

    candles = frame[CANDLE_COLUMNS].copy()
    # Naive UTC, matching configured dates
    candles['timestamp'] = pd.to_datetime(candles['timestamp'], utc=True).dt.tz_localize(None)
    candles = candles.sort_values('timestamp', kind='mergesort')
    duplicated = candles['timestamp'].duplicated(keep='first')
    if duplicated.any():
        logger.warning(f"Dropping {int(duplicated.sum())} duplicate candles")
        candles = candles[~duplicated]
    return candles.reset_index(drop=True)


def trades_to_candles(trades: pd.DataFrame, interval: timedelta) -> pd.DataFrame:
    """
    Resample raw trades into OHLCV candles.

    Args:
        trades: DataFrame with timestamp, price, amount columns
        interval: Candle duration

    Returns:
        Candle frame; intervals without trades are omitted
    """
    missing = [c for c in TRADE_COLUMNS if c not in trades.columns]
    if missing:
        raise DataRetrievalError(f"trade data missing columns: {missing}")
    if trades.empty:
        return pd.DataFrame(columns=CANDLE_COLUMNS)

    timestamps = pd.to_datetime(trades['timestamp'], utc=True).dt.tz_localize(None)
    indexed = trades.assign(timestamp=timestamps).set_index('timestamp')
    resampler = indexed.resample(pd.Timedelta(interval))
    candles = resampler['price'].ohlc()
    candles['volume'] = resampler['amount'].sum()
    candles = candles.dropna(subset=['open']).reset_index()
    return candles[CANDLE_COLUMNS]


class KlineData(IDataHandler):
    """Historical candles for one exchange/asset/pair."""

    def __init__(self, exchange: str, asset: Asset, pair: CurrencyPair,
                 interval: Optional[timedelta], candles: pd.DataFrame,
                 range_holder: Optional[IntervalRangeHolder] = None):
        self.exchange = exchange.lower()
        self.asset = asset
        self.pair = pair
        self.interval = interval
        self.range = range_holder
        self._candles = candles
        self._events: List[DataEvent] = []
        self._offset = 0
        self._loaded = False

    def load(self) -> "KlineData":
        """Convert the candle frame into DataEvents and mark range coverage."""
        candles = normalize_candles(self._candles)
        self._events = [
            DataEvent(
                timestamp=row.timestamp.to_pydatetime(),
                exchange=self.exchange,
                asset=self.asset,
                pair=self.pair,
                open=float(row.open),
                high=float(row.high),
                low=float(row.low),
                close=float(row.close),
                volume=float(row.volume),
                interval=self.interval,
            )
            for row in candles.itertuples(index=False)
        ]
        if self.range is not None:
            self.range.set_has_data_from_timestamps(e.timestamp for e in self._events)
        self._offset = 0
        self._loaded = True
        logger.info(f"Loaded {len(self._events)} candles for {self.exchange} {self.asset.value} {self.pair}")
        return self

    def next(self) -> Tuple[Optional[DataEvent], bool]:
        if not self._loaded:
            self.load()
        if self._offset >= len(self._events):
            return None, True
        event = self._events[self._offset]
        self._offset += 1
        return event, False

    def has_data_at_time(self, timestamp: datetime) -> bool:
        if self.range is not None:
            return self.range.has_data_at_time(timestamp)
        return any(e.timestamp == timestamp for e in self._events)

    def latest(self) -> Optional[DataEvent]:
        return self._events[self._offset - 1] if self._offset > 0 else None

    def closes(self, window: Optional[int] = None) -> np.ndarray:
        """Close prices emitted so far, limited to the trailing window when given."""
        start = max(self._offset - window, 0) if window else 0
        return np.array([e.close for e in self._events[start:self._offset]], dtype=float)

    def offset(self) -> int:
        return self._offset

    def reset(self) -> None:
        self._offset = 0

    def __len__(self) -> int:
        return len(self._events)
