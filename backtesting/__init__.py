"""
Event-Driven Backtesting Framework

Replays historical or live market data through a simulated trading loop and
produces performance statistics.

Quick Start:
    from backtesting import BacktestEngine, HostEngine, ExchangeProfile, load_config

    host = HostEngine([ExchangeProfile(name="binance", candle_source=fetch_candles)])
    engine = BacktestEngine.new_from_config(load_config("backtest.json"), "", "reports", host)
    engine.run()

    summary = engine.statistic.results.overall
    print(f"Total Return: {summary.total_return:.2%}")
    print(f"Max Drawdown: {summary.max_drawdown:.2%}")

Architecture Overview:
    1. Data handlers yield candles as DataEvents
    2. The strategy turns each candle into a SignalEvent
    3. The portfolio sizes and risk-checks signals into OrderEvents
    4. The exchange simulator executes orders as FillEvents
    5. The portfolio applies fills and statistics record one equity point per tick

    Events are processed strictly in arrival order through the EventQueue.
"""

from .core import (
    BacktestEngine,
    BacktestState,
    BacktestError,
    Config,
    CurrencySettings,
    load_config,
    Statistic,
)
from .host import APICredentials, CredentialsValidator, ExchangeProfile, HostEngine
from .strategies import load_strategy_by_name, register_strategy

__version__ = "1.0.0"
__description__ = "Event-driven backtesting engine for algorithmic trading strategies"

__all__ = [
    "BacktestEngine",
    "BacktestState",
    "BacktestError",
    "Config",
    "CurrencySettings",
    "load_config",
    "Statistic",
    "APICredentials",
    "CredentialsValidator",
    "ExchangeProfile",
    "HostEngine",
    "load_strategy_by_name",
    "register_strategy",
]
