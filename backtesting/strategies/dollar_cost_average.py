"""
Dollar Cost Average Strategy

Buys on every candle that has data. Sizing is left entirely to the portfolio.
"""

from typing import Dict, List
import logging

from ..core.errors import BacktestError
from ..core.interfaces import Direction, IDataHandler, SignalEvent
from .base import Strategy

logger = logging.getLogger(__name__)


class DollarCostAverage(Strategy):
    strategy_name = "dollarcostaverage"
    description = "Buys on every candle, sized by the portfolio's buy-side limits"
    simultaneous_support = True

    def on_signal(self, data: IDataHandler, holdings) -> SignalEvent:
        event = data.latest()
        if event is None:
            raise BacktestError(f"no data for {data.pair} on {data.exchange}")
        if not data.has_data_at_time(event.timestamp):
            return self._signal(event, Direction.HOLD, "missing data")
        return self._signal(event, Direction.BUY, "dollar cost average")

    def on_simultaneous_signals(self, data: List[IDataHandler], holdings: Dict) -> List[SignalEvent]:
        signals = super().on_simultaneous_signals(data, holdings)
        logger.debug(f"DCA signalled {len(signals)} pairs simultaneously")
        return signals
