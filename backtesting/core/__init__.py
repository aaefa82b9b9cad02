"""
Core Backtesting Framework

This package provides the foundational components of the event-driven
backtester: the event queue, the component interfaces, configuration, the
portfolio with its sizing and risk policies, statistics, and the engine that
runs the simulation loop.

Usage:
    from backtesting.core import BacktestEngine, load_config
    from backtesting.host import HostEngine, ExchangeProfile

    config = load_config("backtest.json")
    host = HostEngine([ExchangeProfile(name="binance", candle_source=fetch_candles)])

    engine = BacktestEngine.new_from_config(config, "", "reports", host)
    state = engine.run()
"""

from .config import (
    APIData,
    Config,
    CSVData,
    CurrencySettings,
    DatabaseData,
    DataSettings,
    LiveData,
    MinMax,
    RiskSettings,
    StrategySettings,
    load_config,
)
from .engine import BacktestEngine, BacktestState
from .errors import BacktestError
from .events import EventLogger, EventQueue
from .interfaces import (
    # Enumerations and value types
    Asset,
    CurrencyPair,
    DataType,
    Direction,
    EventType,
    OrderStatus,
    OrderType,

    # Events
    Event,
    DataEvent,
    SignalEvent,
    OrderEvent,
    FillEvent,

    # Interfaces
    IDataHandler,
    IStrategy,
    IPortfolio,
    IExecutionHandler,
    IStatistics,
    IReportSink,
    IHostEngine,
)
from .portfolio import Holdings, Portfolio
from .risk import Risk, Size
from .statistics import EquitySnapshot, Statistic

__version__ = "1.0.0"

__all__ = [
    # Engine
    "BacktestEngine",
    "BacktestState",
    "BacktestError",

    # Configuration
    "APIData",
    "Config",
    "CSVData",
    "CurrencySettings",
    "DatabaseData",
    "DataSettings",
    "LiveData",
    "MinMax",
    "RiskSettings",
    "StrategySettings",
    "load_config",

    # Event system
    "Event",
    "EventType",
    "DataEvent",
    "SignalEvent",
    "OrderEvent",
    "FillEvent",
    "EventQueue",
    "EventLogger",

    # Value types
    "Asset",
    "CurrencyPair",
    "DataType",
    "Direction",
    "OrderStatus",
    "OrderType",

    # Interfaces
    "IDataHandler",
    "IStrategy",
    "IPortfolio",
    "IExecutionHandler",
    "IStatistics",
    "IReportSink",
    "IHostEngine",

    # Components
    "Holdings",
    "Portfolio",
    "Risk",
    "Size",
    "EquitySnapshot",
    "Statistic",
]
