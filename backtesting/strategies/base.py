"""
Strategy Base Class

Shared plumbing for built-in strategies: the simultaneous processing flag,
signal construction and the per-pair fallback for batched signals.
"""

from typing import Any, Dict, List, Optional
import logging

from ..core.errors import ConfigurationError
from ..core.interfaces import DataEvent, Direction, IDataHandler, IStrategy, OrderType, SignalEvent

logger = logging.getLogger(__name__)


class Strategy(IStrategy):
    """Base for strategies that emit one signal per pair per candle."""

    strategy_name = ""
    description = ""
    simultaneous_support = False

    def __init__(self):
        self._use_simultaneous = False
        self.set_defaults()

    def name(self) -> str:
        return self.strategy_name

    def supports_simultaneous_processing(self) -> bool:
        return self.simultaneous_support

    def using_simultaneous_processing(self) -> bool:
        return self._use_simultaneous

    def set_simultaneous_processing(self, enabled: bool) -> None:
        if enabled and not self.simultaneous_support:
            raise ConfigurationError(
                f"strategy {self.strategy_name} does not support simultaneous processing"
            )
        self._use_simultaneous = enabled

    def set_custom_settings(self, settings: Dict[str, Any]) -> None:
        for key in settings:
            logger.debug(f"Strategy {self.strategy_name} ignores custom setting '{key}'")

    def set_defaults(self) -> None:
        pass

    def on_simultaneous_signals(self, data: List[IDataHandler], holdings: Dict) -> List[SignalEvent]:
        return [self.on_signal(d, holdings.get((d.exchange, d.asset, d.pair))) for d in data]

    @staticmethod
    def _signal(event: DataEvent, direction: Direction, reason: str = "",
                amount: Optional[float] = None, order_type: OrderType = OrderType.MARKET,
                limit_price: Optional[float] = None) -> SignalEvent:
        return SignalEvent(
            timestamp=event.timestamp,
            exchange=event.exchange,
            asset=event.asset,
            pair=event.pair,
            direction=direction,
            close=event.close,
            amount=amount,
            order_type=order_type,
            limit_price=limit_price,
            reason=reason,
        )
