"""
Strategy Registry

Built-in strategies are registered by name and resolved once when a backtest
is set up.
"""

from typing import Callable, Dict, List
import logging

from ..core.errors import StrategyNotFoundError
from ..core.interfaces import IStrategy
from .base import Strategy
from .dollar_cost_average import DollarCostAverage
from .rsi import RSIStrategy

logger = logging.getLogger(__name__)

STRATEGY_REGISTRY: Dict[str, Callable[[], IStrategy]] = {
    DollarCostAverage.strategy_name: DollarCostAverage,
    RSIStrategy.strategy_name: RSIStrategy,
}


def register_strategy(name: str, factory: Callable[[], IStrategy]) -> None:
    """Register a strategy factory under a case-insensitive name."""
    STRATEGY_REGISTRY[name.lower()] = factory
    logger.debug(f"Registered strategy '{name}'")


def load_strategy_by_name(name: str, use_simultaneous: bool = False) -> IStrategy:
    """
    Build a fresh strategy instance.

    Args:
        name: Registered strategy name
        use_simultaneous: Enable batched multi-currency signals

    Returns:
        Strategy instance

    Raises:
        StrategyNotFoundError: name not registered
        ConfigurationError: simultaneous processing requested but unsupported
    """
    factory = STRATEGY_REGISTRY.get((name or "").lower())
    if factory is None:
        raise StrategyNotFoundError(
            f"strategy '{name}' not found",
            {'available': get_available_strategies()}
        )
    strategy = factory()
    strategy.set_simultaneous_processing(use_simultaneous)
    return strategy


def get_available_strategies() -> List[str]:
    return list(STRATEGY_REGISTRY.keys())


__all__ = [
    'Strategy',
    'DollarCostAverage',
    'RSIStrategy',
    'STRATEGY_REGISTRY',
    'register_strategy',
    'load_strategy_by_name',
    'get_available_strategies',
]
