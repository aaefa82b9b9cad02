"""
Relative Strength Index Strategy

Sells when RSI reaches the upper threshold and buys when it falls to the lower
threshold. Until enough candles exist for the period it holds. Only the last
ten periods of closes are smoothed, so each candle costs the same regardless
of run length.

Custom settings:
    rsi-period: lookback in candles (default 14)
    rsi-high: overbought threshold (default 70)
    rsi-low: oversold threshold (default 30)
"""

from typing import Any, Dict
import logging

import numpy as np
import pandas as pd

from ..core.errors import BacktestError, InvalidCustomSettingError
from ..core.interfaces import Direction, IDataHandler, SignalEvent
from .base import Strategy

logger = logging.getLogger(__name__)

RSI_PERIOD_KEY = "rsi-period"
RSI_HIGH_KEY = "rsi-high"
RSI_LOW_KEY = "rsi-low"

# Trailing candles fed to the indicator, in multiples of the period
RSI_LOOKBACK_PERIODS = 10


def calculate_rsi(closes: pd.Series, period: int) -> pd.Series:
    """RSI with Wilder's smoothing; NaN until period changes are available."""
    delta = closes.diff()
    gains = delta.where(delta > 0, 0.0)
    losses = -delta.where(delta < 0, 0.0)
    avg_gain = gains.ewm(alpha=1 / period, min_periods=period, adjust=False).mean()
    avg_loss = losses.ewm(alpha=1 / period, min_periods=period, adjust=False).mean()
    rs = avg_gain / avg_loss
    rsi = 100 - (100 / (1 + rs))
    # No losses over the window means maximal strength
    return rsi.where(avg_loss != 0, np.where(avg_gain > 0, 100.0, 50.0))


class RSIStrategy(Strategy):
    strategy_name = "rsi"
    description = "Trades RSI extremes: buy when oversold, sell when overbought"
    simultaneous_support = True

    def set_defaults(self) -> None:
        self.period = 14
        self.high = 70.0
        self.low = 30.0

    def set_custom_settings(self, settings: Dict[str, Any]) -> None:
        for key, value in settings.items():
            if key == RSI_PERIOD_KEY:
                self.period = _as_number(key, value, integer=True)
            elif key == RSI_HIGH_KEY:
                self.high = _as_number(key, value)
            elif key == RSI_LOW_KEY:
                self.low = _as_number(key, value)
            else:
                logger.warning(f"Unknown RSI custom setting '{key}' ignored")
        if self.period < 1:
            raise InvalidCustomSettingError(f"{RSI_PERIOD_KEY} must be at least 1")
        if not 0 <= self.low < self.high <= 100:
            raise InvalidCustomSettingError(
                f"{RSI_LOW_KEY} must be below {RSI_HIGH_KEY}, both within 0-100",
                {'low': self.low, 'high': self.high}
            )

    def on_signal(self, data: IDataHandler, holdings) -> SignalEvent:
        event = data.latest()
        if event is None:
            raise BacktestError(f"no data for {data.pair} on {data.exchange}")
        if not data.has_data_at_time(event.timestamp):
            return self._signal(event, Direction.HOLD, "missing data")

        closes = pd.Series(data.closes(self.period * RSI_LOOKBACK_PERIODS), dtype=float)
        if len(closes) <= self.period:
            return self._signal(event, Direction.HOLD, "insufficient data for RSI")

        latest_rsi = float(calculate_rsi(closes, self.period).iloc[-1])
        reason = f"RSI at {latest_rsi:.2f}"
        if latest_rsi >= self.high:
            return self._signal(event, Direction.SELL, reason)
        if latest_rsi <= self.low:
            return self._signal(event, Direction.BUY, reason)
        return self._signal(event, Direction.HOLD, reason)


def _as_number(key: str, value: Any, integer: bool = False):
    if isinstance(value, bool):
        raise InvalidCustomSettingError(f"custom setting '{key}' must be numeric")
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise InvalidCustomSettingError(f"custom setting '{key}' must be numeric") from None
    if integer:
        if not number.is_integer():
            raise InvalidCustomSettingError(f"custom setting '{key}' must be a whole number")
        return int(number)
    return number
