"""
Sizing and Risk Policies

Sub-policies the portfolio applies to every non-hold signal: Size turns a
signal into an amount within the configured bounds, Risk decides whether that
amount may be ordered at all. A Risk rejection is an expected outcome and is
returned as a reason, never raised.
"""

from typing import Optional
import logging

from .config import MinMax, RiskSettings
from .errors import AmountBelowMinimumError
from .interfaces import Direction

logger = logging.getLogger(__name__)

# Float noise tolerated when comparing notional against funds
EPSILON = 1e-9


class Size:
    """Clamps order amounts to the buy or sell side MinMax bounds."""

    def size_order(self, direction: Direction, requested: Optional[float], price: float,
                   funds: float, held: float, bounds: MinMax, fee_rate: float = 0.0,
                   fill_price: Optional[float] = None) -> float:
        """
        Calculate the amount to order.

        Without a requested amount a buy spends all available funds net of the
        fee and a sell closes the whole position. Sells never exceed the held
        quantity.

        Args:
            direction: BUY or SELL
            requested: Amount asked for by the strategy, if any
            price: Reference price (candle close)
            funds: Available funds in the quote currency
            held: Held quantity in the base currency
            bounds: MinMax for the order side
            fee_rate: Fee rate the order will pay
            fill_price: Expected fill price after slippage, defaults to price

        Returns:
            Clamped amount; 0.0 when nothing can be ordered

        Raises:
            AmountBelowMinimumError: requested amount is below the minimum size
        """
        if fill_price is None:
            fill_price = price
        if requested is not None:
            if requested <= 0 or (bounds.minimum_size > 0 and requested < bounds.minimum_size):
                raise AmountBelowMinimumError(
                    "amount below minimum",
                    {'requested': requested, 'minimum_size': bounds.minimum_size}
                )
            amount = requested
        elif direction is Direction.BUY:
            amount = funds * (1 - fee_rate) / fill_price if fill_price > 0 else 0.0
        else:
            amount = held

        if bounds.maximum_size > 0:
            amount = min(amount, bounds.maximum_size)
        if bounds.maximum_total > 0 and price > 0:
            amount = min(amount, bounds.maximum_total / price)
        if direction is Direction.SELL:
            amount = min(amount, held)

        if amount <= 0 or (bounds.minimum_size > 0 and amount < bounds.minimum_size):
            return 0.0
        return amount


class Risk:
    """Pre-trade checks on funds, holdings and exposure."""

    def evaluate(self, direction: Direction, amount: float, total_cost: float,
                 price: float, funds: float, held: float,
                 settings: RiskSettings) -> Optional[str]:
        """
        Check an order candidate.

        Args:
            direction: BUY or SELL
            amount: Sized amount
            total_cost: Estimated notional plus fee for the order
            price: Reference price
            funds: Available funds
            held: Held quantity
            settings: Risk limits for the pair

        Returns:
            Rejection reason, or None when the order may proceed
        """
        if direction is Direction.SELL and held <= 0:
            return "no holdings to sell"
        if amount <= 0:
            return "order size is zero after sizing"
        if direction is Direction.BUY:
            if total_cost > funds + EPSILON * max(1.0, funds):
                return f"insufficient funds: cost {total_cost:.8f} exceeds funds {funds:.8f}"
            if settings.max_holdings_ratio > 0:
                equity = funds + held * price
                ratio = (held + amount) * price / equity if equity > 0 else float('inf')
                if ratio > settings.max_holdings_ratio + EPSILON:
                    return (f"holdings ratio {ratio:.4f} exceeds "
                            f"limit {settings.max_holdings_ratio:.4f}")
        return None
