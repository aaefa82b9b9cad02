"""
Backtest result reporting.
"""

from .report import ReportData

__all__ = ['ReportData']
