"""
Core Backtesting Engine

This module implements the BacktestEngine that orchestrates a backtest run
using an event-driven loop. Data events are pulled from the per-pair data
handlers, dispatched to the strategy, portfolio, exchange simulator and
statistics in strict FIFO order, and the follow-up events are queued again
until every handler is exhausted or a stop is requested.
"""

from typing import Dict, List, Optional
from enum import Enum
from threading import Event
import logging

from .config import Config
from .errors import BacktestStateError, NilBotError, NilConfigError
from .events import EventQueue, EventLogger
from .interfaces import (
    DataEvent, Direction, EventType, FillEvent, IDataHandler, IHostEngine, OrderEvent,
    SignalEvent
)
from .portfolio import Portfolio
from .statistics import EquitySnapshot, Statistic
from ..data.handler import HandlerPerCurrency
from ..data.sources import load_data
from ..execution.exchange import ExchangeSimulator
from ..results.report import ReportData
from ..strategies import load_strategy_by_name

logger = logging.getLogger(__name__)


class BacktestState(Enum):
    """Lifecycle of a backtest run."""
    CREATED = "created"
    RUNNING = "running"
    COMPLETED = "completed"
    STOPPED = "stopped"
    FAILED = "failed"


class BacktestEngine:
    """
    Main backtesting engine that coordinates all system components.

    The loop is single threaded: one event and all of its state mutations are
    fully processed before the next event is popped. stop() may be called from
    another thread; it is observed at the top of each loop iteration.
    """

    def __init__(self,
                 data_holder: Optional[HandlerPerCurrency] = None,
                 strategy=None,
                 portfolio: Optional[Portfolio] = None,
                 exchange: Optional[ExchangeSimulator] = None,
                 statistic: Optional[Statistic] = None,
                 report: Optional[ReportData] = None,
                 config: Optional[Config] = None):
        """
        Initialize backtesting engine.

        Args:
            data_holder: Data handlers per exchange/asset/pair
            strategy: Trading strategy
            portfolio: Portfolio with currency settings and initial funds applied
            exchange: Order execution simulator
            statistic: Statistics collector
            report: Optional sink for finalized statistics
            config: Configuration the engine was built from
        """
        self.config = config
        self.host_config_path = ""
        self.data_holder = data_holder
        self.strategy = strategy
        self.portfolio = portfolio
        self.exchange = exchange
        self.statistic = statistic
        self.report = report

        self.event_queue = EventQueue()
        self.event_logger = EventLogger(log_level="INFO")
        self.state = BacktestState.CREATED
        self._stop_event = Event()
        self._exhausted: set = set()
        self._current_data: Dict = {}
        self._pending_batch: List[DataEvent] = []

        self._handlers = {
            EventType.DATA: self._handle_data_event,
            EventType.SIGNAL: self._handle_signal_event,
            EventType.ORDER: self._handle_order_event,
            EventType.FILL: self._handle_fill_event,
        }

    @classmethod
    def new_from_config(cls, config: Optional[Config], host_config_path: str = "",
                        report_output_path: str = "",
                        host_engine: Optional[IHostEngine] = None) -> "BacktestEngine":
        """
        Build a fully wired engine from configuration.

        Validation happens in a fixed order so that a configuration with a
        single defect always surfaces the error for that defect.

        Args:
            config: Backtest configuration
            host_config_path: Path of the host application's configuration
            report_output_path: Directory for report files; empty keeps reports in memory
            host_engine: Exchange registry and database settings

        Returns:
            Engine in the CREATED state

        Raises:
            ConfigurationError: invalid or incomplete configuration
            SetupDependencyError: exchange or data source unavailable
        """
        if config is None:
            raise NilConfigError("nil config received")
        if host_engine is None:
            raise NilBotError("nil bot received")
        config.validate_currency_settings()

        engine = cls(config=config)
        engine.host_config_path = host_config_path or config.host_config_path

        resolved = []
        for cs in config.currency_settings:
            asset = cs.asset_item()
            pair = cs.pair()
            exchange = host_engine.get_exchange_by_name(cs.exchange_name)
            resolved.append((cs, exchange, asset, pair))

        data_holder = HandlerPerCurrency()
        data_holder.setup()
        for cs, exchange, asset, pair in resolved:
            handler = load_data(config, exchange, pair, asset,
                                host_engine=host_engine, stop_event=engine._stop_event)
            data_holder.set_data_for_currency(exchange.name, asset, pair, handler)

        strategy_settings = config.strategy_settings
        strategy = load_strategy_by_name(
            strategy_settings.name, strategy_settings.simultaneous_signal_processing
        )
        strategy.set_custom_settings(strategy_settings.custom_settings)

        portfolio = Portfolio()
        portfolio.setup()
        exchange_sim = ExchangeSimulator()
        statistic = Statistic(strategy_name=strategy.name(),
                              strategy_description=getattr(strategy, 'description', ''))
        for cs, exchange, asset, pair in resolved:
            portfolio.setup_currency_settings_map(exchange.name, asset, pair, cs)
            portfolio.set_initial_funds(exchange.name, asset, pair, cs.initial_funds)
            exchange_sim.set_currency_settings(exchange.name, asset, pair, cs)
            statistic.setup_pair(exchange.name, asset, pair, cs.initial_funds)

        engine.data_holder = data_holder
        engine.strategy = strategy
        engine.portfolio = portfolio
        engine.exchange = exchange_sim
        engine.statistic = statistic
        engine.report = ReportData(
            output_path=report_output_path or None,
            nickname=config.nickname,
            goal=config.goal,
        )
        logger.info(f"BacktestEngine created for {len(resolved)} pair(s) "
                    f"with strategy {strategy.name()}")
        return engine

    def is_configured(self) -> bool:
        return all(c is not None for c in (
            self.data_holder, self.strategy, self.portfolio, self.exchange, self.statistic
        ))

    def run(self) -> BacktestState:
        """
        Execute the backtest.

        Returns:
            Final state: COMPLETED or STOPPED

        Raises:
            BacktestStateError: engine unconfigured or already run
            BacktestError: any fatal error during the run, after moving to FAILED
        """
        if self.state is not BacktestState.CREATED:
            raise BacktestStateError(f"cannot run backtest in state {self.state.value}")
        if not self.is_configured():
            raise BacktestStateError("backtest engine is not configured")

        self.state = BacktestState.RUNNING
        logger.info("Starting backtest execution")
        try:
            while True:
                if self._stop_event.is_set():
                    return self._finish_stopped()
                if self.event_queue.is_empty():
                    if not self._load_next_data_events():
                        break
                    continue

                event = self.event_queue.pop()
                self.event_logger.log_event(event)
                self._handlers[event.event_type](event)

            if self._stop_event.is_set():
                return self._finish_stopped()

            self.statistic.calculate_all()
            if self.report is not None:
                self.report.add_statistics(self.statistic)
                self.report.generate_report()
        except Exception as e:
            self.state = BacktestState.FAILED
            # Results calculated before a failing report write must not survive
            self.statistic.clear_results()
            if self.report is not None:
                self.report.statistics = None
            logger.error(f"Backtest failed: {e}")
            raise

        self.state = BacktestState.COMPLETED
        logger.info(f"Backtest completed: {self.event_logger.get_event_counts()}, "
                    f"queue {self.event_queue.get_statistics()}")
        return self.state

    def _finish_stopped(self) -> BacktestState:
        self.state = BacktestState.STOPPED
        logger.info(f"Backtest stopped: {self.event_logger.get_event_counts()}")
        return self.state

    def stop(self) -> None:
        """Request the run loop to stop at its next iteration."""
        if not self._stop_event.is_set():
            logger.info("Stop requested")
        self._stop_event.set()

    def reset(self) -> None:
        """Drop every component reference, leaving an unconfigured engine."""
        self.config = None
        self.host_config_path = ""
        self.data_holder = None
        self.strategy = None
        self.portfolio = None
        self.exchange = None
        self.statistic = None
        self.report = None
        self.event_queue = EventQueue()
        self.event_logger.reset_counts()
        self.state = BacktestState.CREATED
        self._stop_event = Event()
        self._exhausted = set()
        self._current_data = {}
        self._pending_batch = []

    def _load_next_data_events(self) -> bool:
        """
        Pull one candle from every handler that is not exhausted.

        Returns:
            False once every handler is exhausted
        """
        remaining = False
        for handler in self.data_holder.get_all_data():
            key = (handler.exchange, handler.asset, handler.pair)
            if key in self._exhausted:
                continue
            event, exhausted = handler.next()
            if exhausted:
                self._exhausted.add(key)
                logger.info(f"Data exhausted for {handler.exchange} {handler.asset.value} {handler.pair}")
                continue
            remaining = True
            if event is not None:
                self.event_queue.push(event)
        return remaining

    def _handler_for(self, event) -> IDataHandler:
        handler = self.data_holder.get_data_for_currency(event.exchange, event.asset, event.pair)
        if handler is None:
            raise BacktestStateError(
                f"no data handler for {event.exchange} {event.asset.value} {event.pair}"
            )
        return handler

    def _handle_data_event(self, event: DataEvent) -> None:
        """Mark holdings to market and ask the strategy for a signal."""
        self._current_data[event.key()] = event
        self.portfolio.update_market_data(event)

        if not self.strategy.using_simultaneous_processing():
            holdings = self.portfolio.get_holdings(event.exchange, event.asset, event.pair)
            self.event_queue.push(self.strategy.on_signal(self._handler_for(event), holdings))
            return

        # A round's candles sit together at the head of the queue
        self._pending_batch.append(event)
        following = self.event_queue.peek()
        if following is not None and following.event_type is EventType.DATA:
            return
        batch, self._pending_batch = self._pending_batch, []
        handlers = [self._handler_for(e) for e in batch]
        signals = self.strategy.on_simultaneous_signals(handlers, self.portfolio.holdings_map())
        for signal in signals:
            self.event_queue.push(signal)

    def _handle_signal_event(self, signal: SignalEvent) -> None:
        """Size and risk-check the signal; a tick without an order ends here."""
        data = self._current_data[signal.key()]
        order = self.portfolio.on_signal(signal, data)
        if order is not None:
            self.event_queue.push(order)
            return

        rejected = signal.direction is not Direction.HOLD
        reason = signal.reason
        if rejected:
            reason = self.portfolio.last_rejection(signal.exchange, signal.asset, signal.pair) or reason
        holdings = self.portfolio.get_holdings(signal.exchange, signal.asset, signal.pair)
        self.statistic.update(EquitySnapshot.from_holdings(
            holdings, data.timestamp, data.close,
            direction=signal.direction, rejected=rejected, reason=reason,
        ))

    def _handle_order_event(self, order: OrderEvent) -> None:
        data = self._current_data[order.key()]
        self.event_queue.push(self.exchange.execute_order(order, data))

    def _handle_fill_event(self, fill: FillEvent) -> None:
        """Apply the fill and record the tick's equity point."""
        data = self._current_data[fill.key()]
        holdings = self.portfolio.on_fill(fill)
        self.statistic.update(EquitySnapshot.from_holdings(
            holdings, data.timestamp, data.close,
            direction=fill.direction, fill=fill,
            rejected=not fill.is_filled, reason=fill.reason,
        ))
