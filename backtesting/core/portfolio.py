"""
Portfolio Management and Holdings Tracking

The portfolio owns per-pair currency settings and holdings. It turns strategy
signals into sized, risk-checked orders and is the only component that mutates
holdings, which it does exclusively in response to filled orders.
"""

from typing import Dict, List, Optional, Tuple
from dataclasses import dataclass
from datetime import datetime
import logging

from .config import CurrencySettings
from .errors import (
    CurrencySettingsExistError, CurrencySettingsNotFoundError, NegativeHoldingsError,
    PortfolioError
)
from .interfaces import (
    Asset, CurrencyPair, DataEvent, Direction, FillEvent, IPortfolio, OrderEvent, SignalEvent
)
from .risk import EPSILON, Risk, Size
from .transaction_costs import FeeSchedule, TransactionCostCalculator

logger = logging.getLogger(__name__)

PairKey = Tuple[str, Asset, CurrencyPair]


@dataclass
class Holdings:
    """Position and funds for one exchange/asset/pair."""
    exchange: str
    asset: Asset
    pair: CurrencyPair
    initial_funds: float = 0.0
    funds: float = 0.0
    quantity: float = 0.0
    cost_basis: float = 0.0
    realised_pnl: float = 0.0
    total_fees: float = 0.0
    last_price: float = 0.0
    timestamp: Optional[datetime] = None

    def update_price(self, price: float, timestamp: datetime) -> None:
        """Mark the position to the latest close."""
        self.last_price = price
        self.timestamp = timestamp

    @property
    def average_price(self) -> float:
        return self.cost_basis / self.quantity if self.quantity > 0 else 0.0

    @property
    def position_value(self) -> float:
        return self.quantity * self.last_price

    @property
    def unrealised_pnl(self) -> float:
        return self.position_value - self.cost_basis

    @property
    def equity(self) -> float:
        return self.funds + self.position_value


class Portfolio(IPortfolio):
    """
    Per-pair holdings plus the Size and Risk sub-policies.

    Setup order: setup(), setup_currency_settings_map() for every pair, then
    set_initial_funds() once per pair before the run starts.
    """

    def __init__(self, size: Optional[Size] = None, risk: Optional[Risk] = None):
        self.size = size or Size()
        self.risk = risk or Risk()
        self.currency_settings: Dict[PairKey, CurrencySettings] = {}
        self.holdings: Dict[PairKey, Holdings] = {}
        self.cost_calculators: Dict[PairKey, TransactionCostCalculator] = {}
        self.rejections: Dict[PairKey, List[str]] = {}
        self._last_rejection: Dict[PairKey, str] = {}

    @staticmethod
    def _key(exchange: str, asset: Asset, pair: CurrencyPair) -> PairKey:
        return exchange.lower(), asset, pair

    def setup(self, size: Optional[Size] = None, risk: Optional[Risk] = None) -> None:
        """Replace sub-policies and clear all per-pair state."""
        if size is not None:
            self.size = size
        if risk is not None:
            self.risk = risk
        self.currency_settings = {}
        self.holdings = {}
        self.cost_calculators = {}
        self.rejections = {}
        self._last_rejection = {}

    def setup_currency_settings_map(self, exchange: str, asset: Asset, pair: CurrencyPair,
                                    settings: CurrencySettings) -> None:
        """
        Register settings for a pair.

        Raises:
            CurrencySettingsExistError: pair already registered
        """
        key = self._key(exchange, asset, pair)
        if key in self.currency_settings:
            raise CurrencySettingsExistError(
                "currency settings already set",
                {'exchange': exchange, 'asset': asset.value, 'pair': str(pair)}
            )
        self.currency_settings[key] = settings
        self.cost_calculators[key] = TransactionCostCalculator(FeeSchedule(
            maker_fee=settings.maker_fee,
            taker_fee=settings.taker_fee,
            slippage_rate=settings.slippage_rate,
        ))
        self.holdings[key] = Holdings(exchange=key[0], asset=asset, pair=pair)
        self.rejections[key] = []

    def set_initial_funds(self, exchange: str, asset: Asset, pair: CurrencyPair,
                          amount: float) -> None:
        """
        Set starting funds for a configured pair.

        Raises:
            CurrencySettingsNotFoundError: pair was never registered
            PortfolioError: amount is not positive
        """
        key = self._key(exchange, asset, pair)
        if key not in self.currency_settings:
            raise CurrencySettingsNotFoundError(
                "currency settings not found",
                {'exchange': exchange, 'asset': asset.value, 'pair': str(pair)}
            )
        if amount <= 0:
            raise PortfolioError("initial funds must be positive", {'amount': amount})
        holdings = self.holdings[key]
        holdings.initial_funds = amount
        holdings.funds = amount
        logger.info(f"Initial funds for {exchange} {asset.value} {pair}: {amount:,.8f}")

    def get_currency_settings(self, exchange: str, asset: Asset,
                              pair: CurrencyPair) -> CurrencySettings:
        key = self._key(exchange, asset, pair)
        if key not in self.currency_settings:
            raise CurrencySettingsNotFoundError(
                "currency settings not found",
                {'exchange': exchange, 'asset': asset.value, 'pair': str(pair)}
            )
        return self.currency_settings[key]

    def get_holdings(self, exchange: str, asset: Asset, pair: CurrencyPair) -> Holdings:
        key = self._key(exchange, asset, pair)
        if key not in self.holdings:
            raise CurrencySettingsNotFoundError(
                "currency settings not found",
                {'exchange': exchange, 'asset': asset.value, 'pair': str(pair)}
            )
        return self.holdings[key]

    def holdings_map(self) -> Dict[PairKey, Holdings]:
        return dict(self.holdings)

    def last_rejection(self, exchange: str, asset: Asset, pair: CurrencyPair) -> Optional[str]:
        """Reason the most recent signal for a pair was rejected, if it was."""
        return self._last_rejection.get(self._key(exchange, asset, pair))

    def update_market_data(self, event: DataEvent) -> None:
        """Mark holdings for the event's pair to its close."""
        self.get_holdings(event.exchange, event.asset, event.pair).update_price(
            event.close, event.timestamp
        )

    def on_signal(self, signal: SignalEvent, data: DataEvent) -> Optional[OrderEvent]:
        """
        Convert a signal into an order.

        Returns:
            OrderEvent, or None for a hold signal or a risk rejection

        Raises:
            CurrencySettingsNotFoundError: pair not set up
            AmountBelowMinimumError: signal explicitly requests too little
        """
        key = self._key(signal.exchange, signal.asset, signal.pair)
        settings = self.get_currency_settings(*key)
        holdings = self.holdings[key]
        self._last_rejection.pop(key, None)
        holdings.update_price(data.close, data.timestamp)

        if signal.direction is Direction.HOLD:
            return None

        bounds = settings.buy_side if signal.direction is Direction.BUY else settings.sell_side
        calculator = self.cost_calculators[key]
        amount = self.size.size_order(
            signal.direction, signal.amount, data.close,
            holdings.funds, holdings.quantity, bounds,
            fee_rate=calculator.fee_rate(signal.order_type),
            fill_price=data.close + calculator.calculate_slippage(data.close, signal.direction),
        )
        estimate = calculator.estimate(amount, data.close, signal.direction, signal.order_type)
        reason = self.risk.evaluate(
            signal.direction, amount, estimate['total'], data.close,
            holdings.funds, holdings.quantity, settings.risk,
        )
        if reason is not None:
            self._reject(key, signal, reason)
            return None

        order = OrderEvent(
            timestamp=signal.timestamp,
            exchange=signal.exchange,
            asset=signal.asset,
            pair=signal.pair,
            direction=signal.direction,
            amount=amount,
            close=data.close,
            order_type=signal.order_type,
            limit_price=signal.limit_price,
            reason=signal.reason,
        )
        logger.info(f"Generated {order.order_type.value} order: {order.direction.value} "
                    f"{order.amount:.8f} {order.pair} on {order.exchange}")
        return order

    def _reject(self, key: PairKey, signal: SignalEvent, reason: str) -> None:
        self._last_rejection[key] = reason
        self.rejections[key].append(reason)
        logger.warning(f"Rejected {signal.direction.value} signal for {signal.exchange} "
                       f"{signal.asset.value} {signal.pair} at {signal.timestamp}: {reason}")

    def on_fill(self, fill: FillEvent) -> Holdings:
        """
        Apply a fill to holdings.

        Rejected fills leave holdings untouched.

        Raises:
            NegativeHoldingsError: funds or quantity would drop below zero
        """
        key = self._key(fill.exchange, fill.asset, fill.pair)
        holdings = self.get_holdings(*key)
        holdings.update_price(fill.close, fill.timestamp)
        if not fill.is_filled:
            self._last_rejection[key] = fill.reason or "order rejected by exchange"
            self.rejections[key].append(self._last_rejection[key])
            logger.warning(f"Order for {fill.pair} on {fill.exchange} was not filled: {fill.reason}")
            return holdings

        notional = fill.amount * fill.fill_price
        if fill.direction is Direction.BUY:
            funds = holdings.funds - notional - fill.fee
            quantity = holdings.quantity + fill.amount
        else:
            funds = holdings.funds + notional - fill.fee
            quantity = holdings.quantity - fill.amount
        funds = _snap_to_zero(funds, holdings.funds)
        quantity = _snap_to_zero(quantity, holdings.quantity)
        if funds < 0 or quantity < 0:
            raise NegativeHoldingsError(
                "fill would leave negative holdings",
                {'exchange': fill.exchange, 'pair': str(fill.pair),
                 'funds': funds, 'quantity': quantity}
            )

        if fill.direction is Direction.BUY:
            holdings.cost_basis += notional + fill.fee
        else:
            released = holdings.average_price * fill.amount
            holdings.realised_pnl += notional - fill.fee - released
            holdings.cost_basis = 0.0 if quantity == 0 else holdings.cost_basis - released
        holdings.funds = funds
        holdings.quantity = quantity
        holdings.total_fees += fill.fee

        logger.info(f"Fill processed: {fill.direction.value} {fill.amount:.8f} {fill.pair} "
                    f"@ {fill.fill_price:.8f}, funds {holdings.funds:,.8f}")
        return holdings


def _snap_to_zero(value: float, scale: float) -> float:
    if -EPSILON * max(1.0, abs(scale)) < value < 0:
        return 0.0
    return value
