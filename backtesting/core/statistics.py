"""
Backtest Statistics

Accumulates one equity snapshot per pair per data tick and reduces the series
into performance metrics when the run completes. Snapshot history is
append-only and strictly time-ordered per pair; metrics are only marked
final by calculate_all() on a completed run.
"""

from typing import Any, Dict, List, Optional, Tuple
from dataclasses import dataclass, field
from datetime import datetime, timedelta
import logging

import numpy as np
import pandas as pd
from scipy import stats

from .errors import BacktestStateError, OutOfOrderError
from .interfaces import Asset, CurrencyPair, Direction, FillEvent, IStatistics

logger = logging.getLogger(__name__)

PairKey = Tuple[str, Asset, CurrencyPair]

# Used when the series has fewer than two distinct timestamps
DEFAULT_PERIODS_PER_YEAR = 252


@dataclass(frozen=True)
class EquitySnapshot:
    """Holdings valuation for one pair at the end of one tick."""
    timestamp: datetime
    exchange: str
    asset: Asset
    pair: CurrencyPair
    close: float
    funds: float
    quantity: float
    direction: Optional[Direction] = None
    fill: Optional[FillEvent] = None
    rejected: bool = False
    reason: str = ""

    @property
    def equity(self) -> float:
        return self.funds + self.quantity * self.close

    def key(self) -> PairKey:
        return self.exchange.lower(), self.asset, self.pair

    @classmethod
    def from_holdings(cls, holdings, timestamp: datetime, close: float,
                      **kwargs) -> "EquitySnapshot":
        return cls(
            timestamp=timestamp,
            exchange=holdings.exchange,
            asset=holdings.asset,
            pair=holdings.pair,
            close=close,
            funds=holdings.funds,
            quantity=holdings.quantity,
            **kwargs,
        )


@dataclass
class PerformanceMetrics:
    """Aggregate metrics for one equity series."""
    initial_equity: float = 0.0
    final_equity: float = 0.0
    total_return: float = 0.0
    max_drawdown: float = 0.0
    max_drawdown_duration: int = 0
    volatility: float = 0.0
    sharpe_ratio: float = 0.0
    sortino_ratio: float = 0.0
    var_95: float = 0.0
    return_skew: float = 0.0
    return_kurtosis: float = 0.0
    buy_orders: int = 0
    sell_orders: int = 0
    rejected_orders: int = 0
    total_fees: float = 0.0
    realised_pnl: float = 0.0
    win_rate: float = 0.0
    periods: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            'performance': {
                'initial_equity': self.initial_equity,
                'final_equity': self.final_equity,
                'total_return': self.total_return,
                'volatility': self.volatility,
                'sharpe_ratio': self.sharpe_ratio,
                'sortino_ratio': self.sortino_ratio,
            },
            'risk': {
                'max_drawdown': self.max_drawdown,
                'max_drawdown_duration': self.max_drawdown_duration,
                'var_95': self.var_95,
                'return_skew': self.return_skew,
                'return_kurtosis': self.return_kurtosis,
            },
            'trades': {
                'buy_orders': self.buy_orders,
                'sell_orders': self.sell_orders,
                'rejected_orders': self.rejected_orders,
                'total_fees': self.total_fees,
                'realised_pnl': self.realised_pnl,
                'win_rate': self.win_rate,
            },
            'periods': self.periods,
        }


@dataclass
class CurrencyStatistic:
    """Equity history and trade bookkeeping for one exchange/asset/pair."""
    exchange: str
    asset: Asset
    pair: CurrencyPair
    initial_funds: float
    snapshots: List[EquitySnapshot] = field(default_factory=list)
    buy_orders: int = 0
    sell_orders: int = 0
    rejected_orders: int = 0
    total_fees: float = 0.0
    trade_pnls: List[float] = field(default_factory=list)
    metrics: Optional[PerformanceMetrics] = None

    # Average entry cost per unit, tracked to attribute PnL to sells
    _held: float = 0.0
    _cost: float = 0.0

    def record(self, snapshot: EquitySnapshot) -> None:
        self.snapshots.append(snapshot)
        if snapshot.rejected:
            self.rejected_orders += 1
        fill = snapshot.fill
        if fill is None or not fill.is_filled:
            return
        self.total_fees += fill.fee
        notional = fill.amount * fill.fill_price
        if fill.direction is Direction.BUY:
            self.buy_orders += 1
            self._held += fill.amount
            self._cost += notional + fill.fee
        elif fill.direction is Direction.SELL:
            self.sell_orders += 1
            average = self._cost / self._held if self._held > 0 else 0.0
            released = average * fill.amount
            self.trade_pnls.append(notional - fill.fee - released)
            self._held = max(self._held - fill.amount, 0.0)
            self._cost = 0.0 if self._held == 0 else self._cost - released

    def equity_series(self) -> pd.Series:
        """Equity by timestamp, last snapshot winning on equal timestamps."""
        if not self.snapshots:
            return pd.Series(dtype=float)
        series = pd.Series(
            [s.equity for s in self.snapshots],
            index=pd.DatetimeIndex([s.timestamp for s in self.snapshots]),
            dtype=float,
        )
        return series[~series.index.duplicated(keep='last')]

    def to_dict(self) -> Dict[str, Any]:
        return {
            'exchange': self.exchange,
            'asset': self.asset.value,
            'pair': str(self.pair),
            'initial_funds': self.initial_funds,
            'equity_points': len(self.snapshots),
            'metrics': self.metrics.to_dict() if self.metrics else None,
        }


@dataclass
class ResultSummary:
    """Metrics per pair plus the run as a whole."""
    per_pair: Dict[PairKey, PerformanceMetrics]
    overall: PerformanceMetrics

    def to_dict(self) -> Dict[str, Any]:
        return {
            'per_pair': {
                f"{exchange} {asset.value} {pair}": metrics.to_dict()
                for (exchange, asset, pair), metrics in self.per_pair.items()
            },
            'overall': self.overall.to_dict(),
        }


class Statistic(IStatistics):
    """Per-pair equity series for a run and their reduction into metrics."""

    def __init__(self, strategy_name: str = "", strategy_description: str = ""):
        self.strategy_name = strategy_name
        self.strategy_description = strategy_description
        self.currency_statistics: Dict[PairKey, CurrencyStatistic] = {}
        self.results: Optional[ResultSummary] = None
        self.finalized = False

    def setup_pair(self, exchange: str, asset: Asset, pair: CurrencyPair,
                   initial_funds: float) -> CurrencyStatistic:
        key = (exchange.lower(), asset, pair)
        stat = CurrencyStatistic(exchange=key[0], asset=asset, pair=pair,
                                 initial_funds=initial_funds)
        self.currency_statistics[key] = stat
        return stat

    def update(self, snapshot: EquitySnapshot) -> None:
        """
        Append an equity snapshot.

        Raises:
            OutOfOrderError: snapshot is older than the pair's last snapshot
            BacktestStateError: statistics were already finalized
        """
        if self.finalized:
            raise BacktestStateError("statistics already finalized")
        key = snapshot.key()
        stat = self.currency_statistics.get(key)
        if stat is None:
            stat = self.setup_pair(snapshot.exchange, snapshot.asset, snapshot.pair,
                                   snapshot.equity)
        if stat.snapshots and snapshot.timestamp < stat.snapshots[-1].timestamp:
            raise OutOfOrderError(
                "equity snapshot out of order",
                {'pair': str(snapshot.pair), 'last': stat.snapshots[-1].timestamp,
                 'received': snapshot.timestamp}
            )
        stat.record(snapshot)

    def equity_points(self, exchange: str, asset: Asset, pair: CurrencyPair) -> int:
        stat = self.currency_statistics.get((exchange.lower(), asset, pair))
        return len(stat.snapshots) if stat else 0

    def calculate_all(self) -> ResultSummary:
        """
        Reduce every pair's series and the combined series into metrics.

        A pure function of the accumulated snapshots: repeated calls return
        equal results.
        """
        per_pair = {}
        for key, stat in self.currency_statistics.items():
            metrics = _calculate_metrics(stat.initial_funds, stat.equity_series())
            metrics.buy_orders = stat.buy_orders
            metrics.sell_orders = stat.sell_orders
            metrics.rejected_orders = stat.rejected_orders
            metrics.total_fees = stat.total_fees
            metrics.realised_pnl = float(sum(stat.trade_pnls))
            if stat.trade_pnls:
                wins = sum(1 for pnl in stat.trade_pnls if pnl > 0)
                metrics.win_rate = wins / len(stat.trade_pnls)
            stat.metrics = metrics
            per_pair[key] = metrics

        overall = self._calculate_overall(per_pair)
        self.results = ResultSummary(per_pair=per_pair, overall=overall)
        self.finalized = True
        logger.info(f"Statistics calculated for {len(per_pair)} pair(s): "
                    f"total return {overall.total_return:.4%}")
        return self.results

    def clear_results(self) -> None:
        """Drop calculated results so the statistics read as unfinalized."""
        self.results = None
        self.finalized = False
        for stat in self.currency_statistics.values():
            stat.metrics = None

    def _calculate_overall(self, per_pair: Dict[PairKey, PerformanceMetrics]) -> PerformanceMetrics:
        initial = sum(stat.initial_funds for stat in self.currency_statistics.values())
        series_list = []
        initials = []
        for stat in self.currency_statistics.values():
            series = stat.equity_series()
            if not series.empty:
                series_list.append(series)
                initials.append(stat.initial_funds)
        if series_list:
            # Pairs without a snapshot yet at a timestamp count at their initial funds
            frame = pd.concat(series_list, axis=1, keys=range(len(series_list))).sort_index().ffill()
            frame = frame.fillna(pd.Series(initials, index=frame.columns))
            combined = frame.sum(axis=1) + (initial - sum(initials))
        else:
            combined = pd.Series(dtype=float)

        overall = _calculate_metrics(initial, combined)
        overall.buy_orders = sum(m.buy_orders for m in per_pair.values())
        overall.sell_orders = sum(m.sell_orders for m in per_pair.values())
        overall.rejected_orders = sum(m.rejected_orders for m in per_pair.values())
        overall.total_fees = sum(m.total_fees for m in per_pair.values())
        overall.realised_pnl = sum(m.realised_pnl for m in per_pair.values())
        pnls = [pnl for stat in self.currency_statistics.values() for pnl in stat.trade_pnls]
        if pnls:
            overall.win_rate = sum(1 for pnl in pnls if pnl > 0) / len(pnls)
        return overall

    def to_dict(self) -> Dict[str, Any]:
        return {
            'strategy_name': self.strategy_name,
            'strategy_description': self.strategy_description,
            'finalized': self.finalized,
            'pairs': [stat.to_dict() for stat in self.currency_statistics.values()],
            'results': self.results.to_dict() if self.results else None,
        }


def _periods_per_year(index: pd.DatetimeIndex) -> float:
    if len(index) < 2:
        return DEFAULT_PERIODS_PER_YEAR
    step = pd.Series(index).diff().dropna().median()
    if pd.isna(step) or step <= pd.Timedelta(0):
        return DEFAULT_PERIODS_PER_YEAR
    return timedelta(days=365.25) / step.to_pytimedelta()


def _max_drawdown_duration(drawdowns: np.ndarray) -> int:
    """Longest run of consecutive points below the running peak."""
    longest = 0
    current = 0
    for dd in drawdowns:
        if dd < -1e-10:
            current += 1
            longest = max(longest, current)
        else:
            current = 0
    return longest


def _calculate_metrics(initial: float, equity: pd.Series) -> PerformanceMetrics:
    metrics = PerformanceMetrics(initial_equity=initial, final_equity=initial)
    if equity.empty or initial <= 0:
        return metrics

    values = np.concatenate([[initial], equity.to_numpy(dtype=float)])
    metrics.periods = len(equity)
    metrics.final_equity = float(values[-1])
    metrics.total_return = float((values[-1] - values[0]) / values[0])

    peaks = np.maximum.accumulate(values)
    with np.errstate(divide='ignore', invalid='ignore'):
        drawdowns = np.where(peaks > 0, (values - peaks) / peaks, 0.0)
    metrics.max_drawdown = float(-np.min(drawdowns))
    metrics.max_drawdown_duration = _max_drawdown_duration(drawdowns)

    previous = values[:-1]
    valid = previous > 0
    returns = np.diff(values)[valid] / previous[valid]
    if len(returns) == 0:
        return metrics

    metrics.var_95 = float(-np.percentile(returns, 5))
    if len(returns) > 1:
        annualization = np.sqrt(_periods_per_year(equity.index))
        std = np.std(returns, ddof=1)
        metrics.volatility = float(std * annualization)
        if std > 0:
            metrics.sharpe_ratio = float(np.mean(returns) / std * annualization)
            if len(returns) > 2:
                metrics.return_skew = float(stats.skew(returns))
                metrics.return_kurtosis = float(stats.kurtosis(returns))
        downside = returns[returns < 0]
        if len(downside) > 1:
            downside_std = np.std(downside, ddof=1)
            if downside_std > 0:
                metrics.sortino_ratio = float(np.mean(returns) / downside_std * annualization)
    return metrics
