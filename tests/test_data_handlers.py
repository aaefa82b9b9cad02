"""
Tests for interval ranges, candle handling and the per-currency handler registry
"""

import unittest
from datetime import datetime, timedelta
import sys
import os

import pandas as pd

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from backtesting.core.errors import DataRetrievalError
from backtesting.core.interfaces import Asset, CurrencyPair
from backtesting.data import (
    HandlerPerCurrency, IntervalRangeHolder, KlineData, normalize_candles, trades_to_candles
)
from tests.test_utils import create_candles

START = datetime(2022, 1, 1)
HOUR = timedelta(hours=1)
PAIR = CurrencyPair("BTC", "USDT")


class TestIntervalRangeHolder(unittest.TestCase):
    """Test slot grid and has-data bookkeeping."""

    def test_exclusive_end(self):
        holder = IntervalRangeHolder.calculate(START, START + 3 * HOUR, HOUR)
        slots = list(holder.slots())
        self.assertEqual(len(slots), 3)
        self.assertEqual(slots[0].start, START)
        self.assertEqual(slots[-1].end, START + 3 * HOUR)

    def test_inclusive_end(self):
        holder = IntervalRangeHolder.calculate(START, START + 3 * HOUR, HOUR, inclusive_end=True)
        self.assertEqual(len(list(holder.slots())), 4)

    def test_start_is_floored_to_interval(self):
        holder = IntervalRangeHolder.calculate(START + timedelta(minutes=20), START + 2 * HOUR, HOUR)
        self.assertEqual(holder.start, START)

    def test_request_limit_splits_ranges(self):
        holder = IntervalRangeHolder.calculate(START, START + 5 * HOUR, HOUR, limit=2)
        self.assertEqual([len(r.intervals) for r in holder.ranges], [2, 2, 1])
        self.assertEqual(holder.ranges[1].start, START + 2 * HOUR)
        self.assertEqual(holder.ranges[1].end, START + 4 * HOUR)

    def test_has_data_and_missing_ranges(self):
        holder = IntervalRangeHolder.calculate(START, START + 4 * HOUR, HOUR)
        holder.set_has_data_from_timestamps([START, START + 3 * HOUR])

        self.assertTrue(holder.has_data_at_time(START + timedelta(minutes=30)))
        self.assertFalse(holder.has_data_at_time(START + HOUR))
        self.assertFalse(holder.has_data_at_time(START + 10 * HOUR))
        self.assertEqual(holder.missing_ranges(), [(START + HOUR, START + 3 * HOUR)])

    def test_invalid_interval(self):
        with self.assertRaises(ValueError):
            IntervalRangeHolder.calculate(START, START + HOUR, timedelta(0))

    def test_timezone_aware_times_compared_in_utc(self):
        holder = IntervalRangeHolder.calculate(pd.Timestamp(START, tz='UTC'), START + 2 * HOUR, HOUR)
        self.assertEqual(holder.start, START)
        self.assertIsNone(holder.start.tzinfo)

        berlin = pd.Timestamp("2022-01-01 02:00", tz="Europe/Berlin")
        holder.set_has_data_from_timestamps([berlin])

        self.assertTrue(holder.has_data_at_time(START + HOUR))
        self.assertTrue(holder.has_data_at_time(berlin.to_pydatetime()))
        self.assertFalse(holder.has_data_at_time(pd.Timestamp(START, tz='UTC')))


class TestCandleFrames(unittest.TestCase):
    """Test candle normalization and trade resampling."""

    def test_normalize_sorts_and_deduplicates(self):
        frame = create_candles(START, HOUR, closes=[1.0, 2.0, 3.0])
        shuffled = pd.concat([frame.iloc[[2, 0, 1]], frame.iloc[[0]]], ignore_index=True)

        candles = normalize_candles(shuffled)

        self.assertEqual(candles['close'].tolist(), [1.0, 2.0, 3.0])

    def test_normalize_converts_aware_timestamps(self):
        frame = create_candles(START, HOUR, closes=[1.0, 2.0])
        frame['timestamp'] = pd.to_datetime(frame['timestamp']).dt.tz_localize('Asia/Tokyo')

        candles = normalize_candles(frame)

        self.assertIsNone(candles['timestamp'].dt.tz)
        self.assertEqual(candles['timestamp'].iloc[0], pd.Timestamp(START - 9 * HOUR))

    def test_normalize_missing_columns(self):
        with self.assertRaises(DataRetrievalError):
            normalize_candles(pd.DataFrame({'timestamp': [START], 'close': [1.0]}))

    def test_trades_to_candles(self):
        trades = pd.DataFrame({
            'timestamp': [START, START + timedelta(minutes=10), START + timedelta(minutes=50),
                          START + timedelta(minutes=200)],
            'price': [10.0, 12.0, 9.0, 11.0],
            'amount': [1.0, 2.0, 3.0, 4.0],
        })

        candles = trades_to_candles(trades, HOUR)

        self.assertEqual(len(candles), 2)
        first = candles.iloc[0]
        self.assertEqual(first['timestamp'], pd.Timestamp(START))
        self.assertEqual((first['open'], first['high'], first['low'], first['close']),
                         (10.0, 12.0, 9.0, 9.0))
        self.assertEqual(first['volume'], 6.0)
        self.assertEqual(candles.iloc[1]['timestamp'], pd.Timestamp(START + 3 * HOUR))


class TestKlineData(unittest.TestCase):
    """Test forward-only candle handler."""

    def setUp(self):
        holder = IntervalRangeHolder.calculate(START, START + 3 * HOUR, HOUR)
        self.data = KlineData("Binance", Asset.SPOT, PAIR, HOUR,
                              create_candles(START, HOUR, closes=[1.0, 2.0]),
                              range_holder=holder)

    def test_next_until_exhausted(self):
        first, exhausted = self.data.next()
        self.assertFalse(exhausted)
        self.assertEqual(first.close, 1.0)
        self.assertEqual(first.exchange, "binance")
        second, _ = self.data.next()
        self.assertEqual(second.close, 2.0)

        event, exhausted = self.data.next()
        self.assertIsNone(event)
        self.assertTrue(exhausted)

    def test_closes_only_up_to_current(self):
        self.assertIsNone(self.data.latest())
        self.assertEqual(self.data.closes().tolist(), [])
        self.data.next()
        self.assertEqual(self.data.closes().tolist(), [1.0])
        self.assertEqual(self.data.latest().close, 1.0)

    def test_closes_trailing_window(self):
        self.data.next()
        self.data.next()
        self.assertEqual(self.data.closes(1).tolist(), [2.0])
        self.assertEqual(self.data.closes(5).tolist(), [1.0, 2.0])

    def test_has_data_at_time_uses_range(self):
        self.data.load()
        self.assertTrue(self.data.has_data_at_time(START + HOUR))
        self.assertFalse(self.data.has_data_at_time(START + 2 * HOUR))

    def test_reset(self):
        self.data.next()
        self.data.next()
        self.data.reset()
        self.assertEqual(self.data.offset(), 0)
        event, _ = self.data.next()
        self.assertEqual(event.close, 1.0)


class TestHandlerPerCurrency(unittest.TestCase):
    """Test handler registry."""

    def test_lookup_and_order(self):
        registry = HandlerPerCurrency()
        eth = CurrencyPair("ETH", "USDT")
        first = KlineData("binance", Asset.SPOT, PAIR, HOUR, create_candles())
        second = KlineData("binance", Asset.SPOT, eth, HOUR, create_candles())
        registry.set_data_for_currency("Binance", Asset.SPOT, PAIR, first)
        registry.set_data_for_currency("binance", Asset.SPOT, eth, second)

        self.assertIs(registry.get_data_for_currency("BINANCE", Asset.SPOT, PAIR), first)
        self.assertIsNone(registry.get_data_for_currency("binance", Asset.FUTURES, PAIR))
        self.assertEqual(registry.get_all_data(), [first, second])
        self.assertEqual(len(registry), 2)


if __name__ == '__main__':
    unittest.main()
