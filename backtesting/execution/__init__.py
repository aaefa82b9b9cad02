"""
Trade Execution Simulation Package

Simulated order execution against historical or live candles.
"""

from .exchange import ExchangeSimulator

__all__ = [
    'ExchangeSimulator',
]
