"""
Exchange Simulator

Executes risk-checked orders against the current candle. Every order is
filled in full at the candle close (adjusted by the optional slippage model)
or rejected; there are no partial fills and no resting orders.
"""

from typing import Dict, Tuple
import logging

from ..core.config import CurrencySettings
from ..core.interfaces import (
    Asset, CurrencyPair, DataEvent, Direction, FillEvent, IExecutionHandler,
    OrderEvent, OrderStatus, OrderType
)
from ..core.transaction_costs import FeeSchedule, TransactionCostCalculator

logger = logging.getLogger(__name__)


class ExchangeSimulator(IExecutionHandler):
    """
    Simulated execution venue.

    Market orders pay the taker fee, limit orders the maker fee. A limit order
    whose price is not reached by the close is rejected.
    """

    def __init__(self):
        self.cost_calculators: Dict[Tuple[str, Asset, CurrencyPair], TransactionCostCalculator] = {}

    def set_currency_settings(self, exchange: str, asset: Asset, pair: CurrencyPair,
                              settings: CurrencySettings) -> None:
        self.cost_calculators[(exchange.lower(), asset, pair)] = TransactionCostCalculator(
            FeeSchedule(
                maker_fee=settings.maker_fee,
                taker_fee=settings.taker_fee,
                slippage_rate=settings.slippage_rate,
            )
        )

    def execute_order(self, order: OrderEvent, data: DataEvent) -> FillEvent:
        """
        Execute an order against the candle it was generated from.

        Args:
            order: Sized order from the portfolio
            data: Current candle for the order's pair

        Returns:
            Filled or rejected FillEvent
        """
        calculator = self.cost_calculators.get(order.key())
        if calculator is None:
            return self._reject(order, data, "no fee schedule for pair")
        if order.amount <= 0:
            return self._reject(order, data, "order amount must be positive")
        if order.direction is Direction.HOLD:
            return self._reject(order, data, "hold orders are not executable")

        if order.order_type is OrderType.LIMIT:
            if order.limit_price is None:
                return self._reject(order, data, "limit order without limit price")
            if order.direction is Direction.BUY and data.close > order.limit_price:
                return self._reject(order, data, f"close {data.close} above buy limit {order.limit_price}")
            if order.direction is Direction.SELL and data.close < order.limit_price:
                return self._reject(order, data, f"close {data.close} below sell limit {order.limit_price}")

        estimate = calculator.estimate(order.amount, data.close, order.direction, order.order_type)
        fill = FillEvent(
            timestamp=data.timestamp,
            exchange=order.exchange,
            asset=order.asset,
            pair=order.pair,
            direction=order.direction,
            amount=order.amount,
            close=data.close,
            fill_price=estimate['fill_price'],
            fee=estimate['fee'],
            status=OrderStatus.FILLED,
            order_type=order.order_type,
            slippage=abs(estimate['fill_price'] - data.close),
            reason=order.reason,
        )
        logger.info(f"Order filled: {fill.direction.value} {fill.amount:.8f} {fill.pair} "
                    f"@ {fill.fill_price:.8f} fee {fill.fee:.8f}")
        return fill

    def _reject(self, order: OrderEvent, data: DataEvent, reason: str) -> FillEvent:
        logger.warning(f"Order rejected for {order.pair} on {order.exchange}: {reason}")
        return FillEvent(
            timestamp=data.timestamp,
            exchange=order.exchange,
            asset=order.asset,
            pair=order.pair,
            direction=order.direction,
            amount=order.amount,
            close=data.close,
            fill_price=0.0,
            fee=0.0,
            status=OrderStatus.REJECTED,
            order_type=order.order_type,
            reason=reason,
        )
