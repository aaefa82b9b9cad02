"""
Tests for the Backtest Engine

Covers construction from configuration, the event loop lifecycle, stop and
reset behaviour and multi-currency runs.
"""

import unittest
from datetime import timedelta
import json
import os
import shutil
import sys
import tempfile

import pandas as pd

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from backtesting.core.config import (
    APIData, Config, CurrencySettings, DataSettings, LiveData, MinMax, StrategySettings
)
from backtesting.core.engine import BacktestEngine, BacktestState
from backtesting.core.errors import (
    BacktestError, BacktestStateError, BadInitialFundsError, DataRetrievalError,
    ExchangeNotFoundError, IntervalUnsetError, NilBotError, NilConfigError,
    NoCurrencySettingsError, NoDataSourceError, StartEndUnsetError, StrategyNotFoundError,
    UnrecognisedDataTypeError, UnsetAssetError
)
from backtesting.core.interfaces import Asset, CurrencyPair, Direction, OrderType
from backtesting.host import ExchangeProfile
from backtesting.strategies import DollarCostAverage
from tests.test_utils import (
    INTERVAL, START, create_candles, create_config, create_currency_settings,
    create_exchange, create_host
)

BTC = CurrencyPair("BTC", "USDT")
ETH = CurrencyPair("ETH", "USDT")


class ExplodingStrategy(DollarCostAverage):
    def on_signal(self, data, holdings):
        raise BacktestError("strategy failure")


class StoppingStrategy(DollarCostAverage):
    """Requests a stop from inside the first signal."""

    def __init__(self, engine):
        super().__init__()
        self.engine = engine

    def on_signal(self, data, holdings):
        self.engine.stop()
        return super().on_signal(data, holdings)


class LimitBuyStrategy(DollarCostAverage):
    """Buys with a limit order at the close."""

    def on_signal(self, data, holdings):
        event = data.latest()
        return self._signal(event, Direction.BUY, "limit at close",
                            order_type=OrderType.LIMIT, limit_price=event.close)


class RecordingStrategy(DollarCostAverage):
    def __init__(self):
        super().__init__()
        self.batches = []

    def on_simultaneous_signals(self, data, holdings):
        self.batches.append(sorted(str(d.pair) for d in data))
        return super().on_simultaneous_signals(data, holdings)


class TestNewFromConfig(unittest.TestCase):
    """Each configuration defect surfaces its own error, in a fixed order."""

    def test_validation_order(self):
        with self.assertRaises(NilConfigError):
            BacktestEngine.new_from_config(None)

        config = Config()
        with self.assertRaises(NilBotError):
            BacktestEngine.new_from_config(config)

        host = create_host()
        with self.assertRaises(NoCurrencySettingsError):
            BacktestEngine.new_from_config(config, host_engine=host)

        config.currency_settings = [CurrencySettings()]
        with self.assertRaises(BadInitialFundsError):
            BacktestEngine.new_from_config(config, host_engine=host)

        config.currency_settings[0].initial_funds = 1337
        with self.assertRaises(UnsetAssetError):
            BacktestEngine.new_from_config(config, host_engine=host)

        config.currency_settings[0].asset = "spot"
        with self.assertRaises(ExchangeNotFoundError):
            BacktestEngine.new_from_config(config, host_engine=host)

        config.currency_settings[0].exchange_name = "binance"
        config.currency_settings[0].base = "BTC"
        config.currency_settings[0].quote = "USDT"
        with self.assertRaises(NoDataSourceError):
            BacktestEngine.new_from_config(config, host_engine=host)

        config.data_settings.api_data = APIData()
        with self.assertRaises(UnrecognisedDataTypeError):
            BacktestEngine.new_from_config(config, host_engine=host)

        config.data_settings.data_type = "candle"
        with self.assertRaises(StartEndUnsetError):
            BacktestEngine.new_from_config(config, host_engine=host)

        config.data_settings.api_data.start_date = START
        config.data_settings.api_data.end_date = START + timedelta(hours=1)
        config.data_settings.api_data.inclusive_end_date = True
        with self.assertRaises(IntervalUnsetError):
            BacktestEngine.new_from_config(config, host_engine=host)

        config.data_settings.interval = INTERVAL
        with self.assertRaises(StrategyNotFoundError):
            BacktestEngine.new_from_config(config, host_engine=host)

        config.strategy_settings = StrategySettings(name="dollarcostaverage")
        config.currency_settings[0].maker_fee = 1337
        config.currency_settings[0].taker_fee = 1337
        engine = BacktestEngine.new_from_config(config, host_engine=host)

        self.assertEqual(engine.state, BacktestState.CREATED)
        self.assertTrue(engine.is_configured())
        self.assertEqual(len(engine.data_holder), 1)
        holdings = engine.portfolio.get_holdings("binance", Asset.SPOT, BTC)
        self.assertEqual(holdings.funds, 1337)

    def test_host_config_path(self):
        engine = BacktestEngine.new_from_config(create_config(), host_config_path="host.json",
                                                host_engine=create_host())
        self.assertEqual(engine.host_config_path, "host.json")

    def test_live_exchange_without_candle_feed(self):
        config = create_config()
        config.data_settings = DataSettings(interval=INTERVAL, data_type="candle",
                                            live_data=LiveData(max_ticks=1))
        host = create_host(ExchangeProfile(name="binance"))

        with self.assertRaises(DataRetrievalError):
            BacktestEngine.new_from_config(config, host_engine=host)


class TestBacktestRun(unittest.TestCase):
    """Test complete runs through the event loop."""

    def setUp(self):
        self.host = create_host()

    def test_full_cycle(self):
        engine = BacktestEngine.new_from_config(create_config(), host_engine=self.host)

        state = engine.run()

        self.assertEqual(state, BacktestState.COMPLETED)
        self.assertEqual(engine.event_logger.get_event_counts(),
                         {'DATA': 1, 'SIGNAL': 1, 'ORDER': 1, 'FILL': 1})
        self.assertEqual(engine.statistic.equity_points("binance", Asset.SPOT, BTC), 1)
        holdings = engine.portfolio.get_holdings("binance", Asset.SPOT, BTC)
        self.assertGreater(holdings.quantity, 0)
        self.assertEqual(holdings.quantity, 1.0)
        self.assertEqual(holdings.funds, 0.0)
        self.assertTrue(engine.statistic.finalized)
        self.assertIs(engine.report.statistics, engine.statistic)
        self.assertEqual(engine.event_queue.get_statistics()['processed_events'], 4)

    def test_all_in_buy_pays_fee_from_funds(self):
        config = create_config(currency_settings=[
            create_currency_settings(maker_fee=0.001, taker_fee=0.001)
        ])
        engine = BacktestEngine.new_from_config(config, host_engine=self.host)

        self.assertEqual(engine.run(), BacktestState.COMPLETED)

        holdings = engine.portfolio.get_holdings("binance", Asset.SPOT, BTC)
        self.assertGreater(holdings.quantity, 0)
        self.assertAlmostEqual(holdings.quantity, 0.999)
        self.assertGreaterEqual(holdings.funds, 0.0)
        self.assertAlmostEqual(holdings.total_fees, 0.999 * 1.337)
        self.assertEqual(engine.statistic.results.overall.rejected_orders, 0)

    def test_limit_signal_pays_maker_fee(self):
        config = create_config(currency_settings=[
            create_currency_settings(initial_funds=2000.0, maker_fee=0.001, taker_fee=0.002,
                                     buy_side=MinMax(maximum_size=1.0))
        ])
        engine = BacktestEngine.new_from_config(config, host_engine=self.host)
        engine.strategy = LimitBuyStrategy()

        self.assertEqual(engine.run(), BacktestState.COMPLETED)

        holdings = engine.portfolio.get_holdings("binance", Asset.SPOT, BTC)
        self.assertEqual(holdings.quantity, 1.0)
        self.assertAlmostEqual(holdings.total_fees, 1.337)
        fill = engine.statistic.currency_statistics[("binance", Asset.SPOT, BTC)].snapshots[0].fill
        self.assertIs(fill.order_type, OrderType.LIMIT)

    def test_timezone_aware_candles(self):
        candles = create_candles(count=2)
        candles['timestamp'] = pd.to_datetime(candles['timestamp']).dt.tz_localize('UTC')
        exchange = ExchangeProfile(
            name="binance", candle_source=lambda pair, asset, start, end, interval: candles
        )
        config = create_config(currency_settings=[
            create_currency_settings(buy_side=MinMax(maximum_size=0.5))
        ], end=START + 2 * INTERVAL)
        engine = BacktestEngine.new_from_config(config, host_engine=create_host(exchange))

        self.assertEqual(engine.run(), BacktestState.COMPLETED)

        handler = engine.data_holder.get_data_for_currency("binance", Asset.SPOT, BTC)
        self.assertEqual(handler.range.missing_ranges(), [])
        self.assertEqual(handler.latest().timestamp, START + INTERVAL)
        self.assertEqual(engine.statistic.results.overall.buy_orders, 2)

    def test_fee_rate_above_one_rejects_every_order(self):
        config = create_config(currency_settings=[
            create_currency_settings(maker_fee=1337, taker_fee=1337)
        ])
        engine = BacktestEngine.new_from_config(config, host_engine=self.host)

        self.assertEqual(engine.run(), BacktestState.COMPLETED)

        stat = engine.statistic.currency_statistics[("binance", Asset.SPOT, BTC)]
        self.assertEqual(len(stat.snapshots), 1)
        self.assertTrue(stat.snapshots[0].rejected)
        self.assertIn("order size is zero", stat.snapshots[0].reason)
        self.assertEqual(stat.snapshots[0].equity, 1337.0)
        self.assertNotIn('ORDER', engine.event_logger.get_event_counts())
        overall = engine.statistic.results.overall
        self.assertEqual(overall.rejected_orders, 1)
        self.assertEqual(overall.final_equity, 1337.0)

    def test_multiple_currencies_simultaneous(self):
        exchange = create_exchange(candles=create_candles(count=4))
        host = create_host(exchange)
        config = create_config(
            currency_settings=[
                create_currency_settings(base=base, buy_side=MinMax(maximum_size=0.25))
                for base in ("BTC", "ETH")
            ],
            end=START + 4 * INTERVAL,
            simultaneous=True,
        )
        engine = BacktestEngine.new_from_config(config, host_engine=host)
        strategy = RecordingStrategy()
        strategy.set_simultaneous_processing(True)
        engine.strategy = strategy

        self.assertEqual(engine.run(), BacktestState.COMPLETED)

        self.assertEqual(strategy.batches, [["BTC/USDT", "ETH/USDT"]] * 4)
        for pair in (BTC, ETH):
            self.assertEqual(engine.statistic.equity_points("binance", Asset.SPOT, pair), 4)
            holdings = engine.portfolio.get_holdings("binance", Asset.SPOT, pair)
            self.assertAlmostEqual(holdings.quantity, 1.0)
            self.assertAlmostEqual(holdings.funds, 0.0)
        self.assertEqual(engine.statistic.results.overall.buy_orders, 8)
        self.assertEqual(engine.event_logger.get_event_counts()['DATA'], 8)

    def test_multiple_currencies_sequential(self):
        exchange = create_exchange(candles=create_candles(count=2))
        config = create_config(
            currency_settings=[create_currency_settings(base="BTC"),
                               create_currency_settings(base="ETH")],
            end=START + 2 * INTERVAL,
        )
        engine = BacktestEngine.new_from_config(config, host_engine=create_host(exchange))

        self.assertEqual(engine.run(), BacktestState.COMPLETED)

        # Second candle cannot be bought: all funds went into the first
        for pair in (BTC, ETH):
            self.assertEqual(engine.statistic.equity_points("binance", Asset.SPOT, pair), 2)
        self.assertEqual(engine.statistic.results.overall.rejected_orders, 2)

    def test_deterministic_results(self):
        closes = [100.0, 90.0, 80.0, 95.0, 120.0, 110.0, 70.0, 130.0]
        exchange = create_exchange(candles=create_candles(closes=closes))
        config = create_config(
            currency_settings=[create_currency_settings(
                taker_fee=0.001, buy_side=MinMax(maximum_size=1.0)
            )],
            end=START + len(closes) * INTERVAL,
            strategy="rsi",
            custom_settings={'rsi-period': 2, 'rsi-high': 60, 'rsi-low': 40},
        )

        results = []
        for _ in range(2):
            engine = BacktestEngine.new_from_config(config, host_engine=create_host(exchange))
            engine.run()
            results.append(engine.statistic.results.to_dict())

        self.assertEqual(results[0], results[1])

    def test_run_twice(self):
        engine = BacktestEngine.new_from_config(create_config(), host_engine=self.host)
        engine.run()
        with self.assertRaises(BacktestStateError):
            engine.run()

    def test_failed_run(self):
        engine = BacktestEngine.new_from_config(create_config(), host_engine=self.host)
        engine.strategy = ExplodingStrategy()

        with self.assertRaises(BacktestError):
            engine.run()

        self.assertEqual(engine.state, BacktestState.FAILED)
        self.assertFalse(engine.statistic.finalized)
        self.assertIsNone(engine.report.statistics)

    def test_live_run_until_max_ticks(self):
        candles = iter(create_candles(count=3).to_dict('records'))
        exchange = create_exchange(latest_candle_source=lambda pair, asset, interval: next(candles))
        config = create_config()
        config.data_settings = DataSettings(interval=INTERVAL, data_type="candle",
                                            live_data=LiveData(max_ticks=2))
        engine = BacktestEngine.new_from_config(
            config, host_engine=create_host(exchange, live_poll_timeout=0.01)
        )

        self.assertEqual(engine.run(), BacktestState.COMPLETED)
        self.assertEqual(engine.statistic.equity_points("binance", Asset.SPOT, BTC), 2)


class TestStopAndReset(unittest.TestCase):
    """Test cancellation and teardown."""

    def setUp(self):
        exchange = create_exchange(candles=create_candles(count=4))
        self.host = create_host(exchange)
        self.config = create_config(end=START + 4 * INTERVAL)

    def test_stop_before_run(self):
        engine = BacktestEngine.new_from_config(self.config, host_engine=self.host)
        engine.stop()

        self.assertEqual(engine.run(), BacktestState.STOPPED)
        self.assertEqual(engine.event_logger.get_event_counts(), {})
        self.assertFalse(engine.statistic.finalized)

    def test_stop_during_run(self):
        engine = BacktestEngine.new_from_config(self.config, host_engine=self.host)
        engine.strategy = StoppingStrategy(engine)

        self.assertEqual(engine.run(), BacktestState.STOPPED)

        self.assertEqual(engine.event_logger.get_event_counts(), {'DATA': 1})
        handler = engine.data_holder.get_data_for_currency("binance", Asset.SPOT, BTC)
        self.assertEqual(handler.offset(), 1)
        self.assertIsNone(engine.report.statistics)

    def test_stop_is_idempotent(self):
        engine = BacktestEngine.new_from_config(self.config, host_engine=self.host)
        engine.stop()
        engine.stop()
        self.assertEqual(engine.run(), BacktestState.STOPPED)

    def test_reset(self):
        engine = BacktestEngine.new_from_config(self.config, host_engine=self.host)
        engine.run()

        engine.reset()

        for name in ('config', 'data_holder', 'strategy', 'portfolio', 'exchange',
                     'statistic', 'report'):
            self.assertIsNone(getattr(engine, name), name)
        self.assertEqual(engine.state, BacktestState.CREATED)
        self.assertFalse(engine.is_configured())
        self.assertTrue(engine.event_queue.is_empty())
        with self.assertRaises(BacktestStateError):
            engine.run()

    def test_unconfigured_engine(self):
        with self.assertRaises(BacktestStateError):
            BacktestEngine().run()


class TestReportOutput(unittest.TestCase):
    """Test report files written at the end of a completed run."""

    def setUp(self):
        self.temp_dir = tempfile.mkdtemp()

    def tearDown(self):
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def test_report_written(self):
        engine = BacktestEngine.new_from_config(create_config(), report_output_path=self.temp_dir,
                                                host_engine=create_host())
        engine.run()

        files = engine.report.output_files
        self.assertEqual(len(files), 2)
        json_file = [f for f in files if f.endswith('.json')][0]
        with open(json_file, encoding='utf-8') as f:
            report = json.load(f)
        self.assertEqual(report['nickname'], 'test')
        self.assertTrue(report['statistics']['finalized'])
        self.assertTrue(all(os.path.exists(f) for f in files))

    def test_report_write_failure_leaves_statistics_unfinalized(self):
        blocked = os.path.join(self.temp_dir, "not_a_directory")
        with open(blocked, 'w') as f:
            f.write("occupied")
        engine = BacktestEngine.new_from_config(create_config(), report_output_path=blocked,
                                                host_engine=create_host())

        with self.assertRaises(OSError):
            engine.run()

        self.assertEqual(engine.state, BacktestState.FAILED)
        self.assertFalse(engine.statistic.finalized)
        self.assertIsNone(engine.statistic.results)
        self.assertIsNone(engine.report.statistics)
        self.assertEqual(engine.report.output_files, [])


if __name__ == '__main__':
    unittest.main()
