"""
Transaction Cost Models

Maker/taker fee schedule and the optional linear slippage extension used by
the exchange simulator and by the portfolio's pre-trade fee estimate. With the
default zero slippage every fill is exactly the candle close.
"""

from dataclasses import dataclass
from typing import Dict
import logging

from .interfaces import Direction, OrderType

logger = logging.getLogger(__name__)


@dataclass
class FeeSchedule:
    """Fee and slippage rates for one exchange/asset/pair."""
    maker_fee: float = 0.0
    taker_fee: float = 0.0
    slippage_rate: float = 0.0


class TransactionCostCalculator:
    """
    Calculates fees and slippage for an order.

    Market orders pay the taker fee, limit orders pay the maker fee.
    Fees are a rate applied to notional value (amount * price).
    """

    def __init__(self, schedule: FeeSchedule):
        self.schedule = schedule

    def fee_rate(self, order_type: OrderType) -> float:
        if order_type is OrderType.LIMIT:
            return self.schedule.maker_fee
        return self.schedule.taker_fee

    def calculate_fee(self, amount: float, price: float, order_type: OrderType) -> float:
        """Fee charged on the notional value of a fill."""
        return abs(amount) * price * self.fee_rate(order_type)

    def calculate_slippage(self, price: float, direction: Direction) -> float:
        """
        Price adjustment against the order side (linear model).

        Returns:
            Signed adjustment: positive for buys, negative for sells
        """
        if self.schedule.slippage_rate <= 0:
            return 0.0
        adjustment = price * self.schedule.slippage_rate
        return adjustment if direction is Direction.BUY else -adjustment

    def estimate(self, amount: float, price: float, direction: Direction,
                 order_type: OrderType = OrderType.MARKET) -> Dict[str, float]:
        """
        Estimate the full cost of executing an order at price.

        Returns:
            Dictionary with fill_price, notional, fee and total (notional + fee)
        """
        fill_price = price + self.calculate_slippage(price, direction)
        notional = abs(amount) * fill_price
        fee = self.calculate_fee(amount, fill_price, order_type)
        return {
            'fill_price': fill_price,
            'notional': notional,
            'fee': fee,
            'total': notional + fee,
        }
