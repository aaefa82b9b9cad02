"""
Market data handlers and the sources that build them.
"""

from .handler import HandlerPerCurrency
from .kline import KlineData, normalize_candles, trades_to_candles
from .live import LiveKlineData
from .ranges import IntervalData, IntervalRange, IntervalRangeHolder

__all__ = [
    "HandlerPerCurrency",
    "KlineData",
    "LiveKlineData",
    "IntervalData",
    "IntervalRange",
    "IntervalRangeHolder",
    "normalize_candles",
    "trades_to_candles",
]
