"""
Core Interfaces and Event Types for the Backtesting Engine

This module defines the event types that flow through the simulation loop and
the abstract interfaces that establish the contract between the engine and its
collaborators: data handlers, strategies, the portfolio, the exchange
simulator, statistics, report sinks and the host engine.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, ClassVar, Dict, List, Optional, Tuple


# =============================================================================
# Enumerations
# =============================================================================

class EventType(Enum):
    """Event types for the backtesting system."""
    DATA = "DATA"
    SIGNAL = "SIGNAL"
    ORDER = "ORDER"
    FILL = "FILL"


class Direction(Enum):
    """Trade direction carried by signals, orders and fills."""
    BUY = "BUY"
    SELL = "SELL"
    HOLD = "HOLD"


class OrderType(Enum):
    """Order types understood by the exchange simulator."""
    MARKET = "market"
    LIMIT = "limit"


class OrderStatus(Enum):
    """Execution outcome of an order."""
    FILLED = "filled"
    REJECTED = "rejected"


class Asset(Enum):
    """Asset classes a currency pair can be traded as."""
    SPOT = "spot"
    MARGIN = "margin"
    FUTURES = "futures"
    PERPETUAL_SWAP = "perpetualswap"

    @classmethod
    def parse(cls, value: str) -> "Asset":
        """Parse an asset name case-insensitively."""
        normalized = value.strip().lower().replace("_", "")
        for item in cls:
            if item.value == normalized:
                return item
        raise ValueError(f"unsupported asset type '{value}'")


class DataType(Enum):
    """Kinds of historical data a source can provide."""
    CANDLE = "candle"
    TRADE = "trade"


@dataclass(frozen=True)
class CurrencyPair:
    """A base/quote currency combination such as BTC/USDT."""
    base: str
    quote: str
    delimiter: str = field(default="/", compare=False)

    def __post_init__(self):
        object.__setattr__(self, "base", self.base.upper())
        object.__setattr__(self, "quote", self.quote.upper())

    @classmethod
    def from_string(cls, value: str, delimiter: str = "/") -> "CurrencyPair":
        base, _, quote = value.partition(delimiter)
        if not base or not quote:
            raise ValueError(f"cannot parse currency pair '{value}'")
        return cls(base=base, quote=quote, delimiter=delimiter)

    def __str__(self) -> str:
        return f"{self.base}{self.delimiter}{self.quote}"


# =============================================================================
# Event System Types
# =============================================================================

@dataclass(frozen=True)
class Event:
    """Base event: identity needed to route an event without global lookup."""
    timestamp: datetime
    exchange: str
    asset: Asset
    pair: CurrencyPair

    event_type: ClassVar[EventType]

    def key(self) -> Tuple[str, Asset, CurrencyPair]:
        """Return the (exchange, asset, pair) routing key."""
        return self.exchange.lower(), self.asset, self.pair


@dataclass(frozen=True)
class DataEvent(Event):
    """A new candle became available."""
    open: float
    high: float
    low: float
    close: float
    volume: float
    interval: Optional[timedelta] = None

    event_type: ClassVar[EventType] = EventType.DATA


@dataclass(frozen=True)
class SignalEvent(Event):
    """Strategy decision for one candle."""
    direction: Direction
    close: float
    amount: Optional[float] = None
    order_type: OrderType = OrderType.MARKET
    limit_price: Optional[float] = None
    reason: str = ""

    event_type: ClassVar[EventType] = EventType.SIGNAL


@dataclass(frozen=True)
class OrderEvent(Event):
    """Sized, risk-checked instruction pending execution."""
    direction: Direction
    amount: float
    close: float
    order_type: OrderType = OrderType.MARKET
    limit_price: Optional[float] = None
    reason: str = ""

    event_type: ClassVar[EventType] = EventType.ORDER


@dataclass(frozen=True)
class FillEvent(Event):
    """Execution outcome of an order."""
    direction: Direction
    amount: float
    close: float
    fill_price: float
    fee: float
    status: OrderStatus
    order_type: OrderType = OrderType.MARKET
    slippage: float = 0.0
    reason: str = ""

    event_type: ClassVar[EventType] = EventType.FILL

    @property
    def is_filled(self) -> bool:
        return self.status is OrderStatus.FILLED


# =============================================================================
# Core Interfaces
# =============================================================================

class IDataHandler(ABC):
    """Interface for time-ordered market data of one exchange/asset/pair."""

    exchange: str
    asset: Asset
    pair: CurrencyPair

    @abstractmethod
    def next(self) -> Tuple[Optional[DataEvent], bool]:
        """Advance one candle; returns (event, exhausted)."""
        pass

    @abstractmethod
    def has_data_at_time(self, timestamp: datetime) -> bool:
        """Check whether data was retrieved for the interval containing timestamp."""
        pass

    @abstractmethod
    def latest(self) -> Optional[DataEvent]:
        """Most recently emitted candle."""
        pass

    @abstractmethod
    def closes(self, window: Optional[int] = None) -> Any:
        """Close prices emitted so far, oldest first; the last window only when given."""
        pass

    @abstractmethod
    def reset(self) -> None:
        """Rewind to the first candle."""
        pass


class IStrategy(ABC):
    """Interface for trading strategies."""

    @abstractmethod
    def name(self) -> str:
        pass

    @abstractmethod
    def on_signal(self, data: IDataHandler, holdings: Any) -> SignalEvent:
        """Generate a signal for the latest candle of a single pair."""
        pass

    @abstractmethod
    def on_simultaneous_signals(self, data: List[IDataHandler],
                                holdings: Dict[Tuple[str, Asset, CurrencyPair], Any]) -> List[SignalEvent]:
        """Generate one signal per pair for candles sharing a timestamp."""
        pass

    @abstractmethod
    def supports_simultaneous_processing(self) -> bool:
        pass

    @abstractmethod
    def using_simultaneous_processing(self) -> bool:
        pass

    @abstractmethod
    def set_simultaneous_processing(self, enabled: bool) -> None:
        pass

    @abstractmethod
    def set_custom_settings(self, settings: Dict[str, Any]) -> None:
        """Apply the opaque key/value settings from configuration."""
        pass

    @abstractmethod
    def set_defaults(self) -> None:
        pass


class IPortfolio(ABC):
    """Interface for portfolio management."""

    @abstractmethod
    def on_signal(self, signal: SignalEvent, data: DataEvent) -> Optional[OrderEvent]:
        """Convert a signal into a sized, risk-checked order or None."""
        pass

    @abstractmethod
    def on_fill(self, fill: FillEvent) -> Any:
        """Apply a fill to holdings and return the updated holdings."""
        pass

    @abstractmethod
    def get_holdings(self, exchange: str, asset: Asset, pair: CurrencyPair) -> Any:
        pass


class IExecutionHandler(ABC):
    """Interface for order execution simulation."""

    @abstractmethod
    def execute_order(self, order: OrderEvent, data: DataEvent) -> FillEvent:
        """Execute an order against the current candle; never raises."""
        pass


class IStatistics(ABC):
    """Interface for performance statistics."""

    @abstractmethod
    def update(self, snapshot: Any) -> None:
        """Append one equity snapshot for a pair."""
        pass

    @abstractmethod
    def calculate_all(self) -> Any:
        """Reduce the accumulated series into aggregate metrics."""
        pass


class IReportSink(ABC):
    """Terminal consumer of finalized statistics."""

    @abstractmethod
    def add_statistics(self, statistics: Any) -> None:
        pass

    @abstractmethod
    def generate_report(self) -> Dict[str, Any]:
        pass


class IHostEngine(ABC):
    """Host engine providing exchange lookup and exchange data access."""

    @abstractmethod
    def get_exchange_by_name(self, name: str) -> Any:
        """Return the exchange profile or raise ExchangeNotFoundError."""
        pass
