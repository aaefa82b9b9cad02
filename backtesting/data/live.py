"""
Live Candle Data Handler

Polls an exchange for its latest candle at the configured interval. Between
polls it waits on the engine's cancellation token, so a stop request ends the
wait immediately and the engine never busy-spins.
"""

from datetime import timedelta
from threading import Event
from typing import Optional, Tuple
import logging

import pandas as pd

from ..core.errors import DataRetrievalError
from ..core.interfaces import Asset, CurrencyPair, DataEvent
from .kline import CANDLE_COLUMNS, KlineData
from .ranges import to_naive_utc

logger = logging.getLogger(__name__)


class LiveKlineData(KlineData):
    """Candles appended as they are polled from the exchange."""

    def __init__(self, exchange, asset: Asset, pair: CurrencyPair, interval: timedelta,
                 max_ticks: int = 0, poll_timeout: Optional[float] = None,
                 stop_event: Optional[Event] = None):
        """
        Args:
            exchange: ExchangeProfile providing get_latest_candle
            asset: Asset type
            pair: Currency pair
            interval: Poll cadence and candle duration
            max_ticks: Stop after this many new candles (0 = until stopped)
            poll_timeout: Upper bound in seconds for a single wait
            stop_event: Cancellation token shared with the engine
        """
        super().__init__(exchange.name, asset, pair, interval,
                         pd.DataFrame(columns=CANDLE_COLUMNS))
        self._exchange = exchange
        self.max_ticks = max_ticks
        self.poll_timeout = poll_timeout
        self.stop_event = stop_event or Event()
        self._ticks = 0
        self._loaded = True

    def _wait_seconds(self) -> float:
        seconds = self.interval.total_seconds()
        if self.poll_timeout is not None:
            seconds = min(seconds, self.poll_timeout)
        return seconds

    def _poll(self) -> Optional[DataEvent]:
        try:
            candle = self._exchange.get_latest_candle(self.pair, self.asset, self.interval)
        except DataRetrievalError:
            raise
        except Exception as e:
            logger.warning(f"Live poll failed for {self.exchange} {self.pair}: {e}")
            return None
        if not candle:
            return None

        timestamp = to_naive_utc(candle['timestamp']).to_pydatetime()
        last = self._events[-1] if self._events else None
        if last is not None and timestamp <= last.timestamp:
            return None

        event = DataEvent(
            timestamp=timestamp,
            exchange=self.exchange,
            asset=self.asset,
            pair=self.pair,
            open=float(candle['open']),
            high=float(candle['high']),
            low=float(candle['low']),
            close=float(candle['close']),
            volume=float(candle['volume']),
            interval=self.interval,
        )
        self._events.append(event)
        self._ticks += 1
        return event

    def next(self) -> Tuple[Optional[DataEvent], bool]:
        if self._offset < len(self._events):
            event = self._events[self._offset]
            self._offset += 1
            return event, False

        while True:
            if self.stop_event.is_set():
                return None, True
            if self.max_ticks and self._ticks >= self.max_ticks:
                return None, True

            event = self._poll()
            if event is not None:
                self._offset += 1
                return event, False

            if self.stop_event.wait(self._wait_seconds()):
                return None, True
