"""
Backtesting Exceptions

Centralized exception definitions for the backtesting engine. Configuration and
setup errors are raised before a run starts; runtime fatal errors abort a run
in progress. Expected runtime rejections (insufficient funds, risk limits) are
not exceptions, they are recorded outcomes.
"""

from typing import Any, Dict, Optional


class BacktestError(Exception):
    """Base exception for all backtesting errors."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


class BacktestStateError(BacktestError):
    """Raised when an engine is used in a state that does not allow it."""
    pass


# =============================================================================
# Configuration Errors
# =============================================================================

class ConfigurationError(BacktestError, ValueError):
    """Raised when backtest configuration is missing or invalid."""
    pass


class NilConfigError(ConfigurationError):
    """Raised when no configuration is supplied."""
    pass


class NilBotError(ConfigurationError):
    """Raised when no host engine is supplied."""
    pass


class NilArgumentsError(ConfigurationError):
    """Raised when required arguments are missing."""
    pass


class NoCurrencySettingsError(ConfigurationError):
    """Raised when the configuration has no currency settings."""
    pass


class BadInitialFundsError(ConfigurationError):
    """Raised when a currency setting has non-positive initial funds."""
    pass


class UnsetAssetError(ConfigurationError):
    """Raised when a currency setting has no asset type."""
    pass


class NoDataSourceError(ConfigurationError):
    """Raised when none of the API, database, CSV or live sources is set."""
    pass


class UnrecognisedDataTypeError(ConfigurationError):
    """Raised when the data type is neither candle nor trade."""
    pass


class StartEndUnsetError(ConfigurationError):
    """Raised when a historical range has unset or inverted dates."""
    pass


class IntervalUnsetError(ConfigurationError):
    """Raised when the data interval is unset or non-positive."""
    pass


class StrategyNotFoundError(ConfigurationError):
    """Raised when a strategy name has no registered implementation."""
    pass


class InvalidCustomSettingError(ConfigurationError):
    """Raised when a strategy custom setting is not a string, number or boolean."""
    pass


class CredentialsError(ConfigurationError):
    """Raised when authenticated data is requested without valid credentials."""
    pass


# =============================================================================
# Setup Dependency Errors
# =============================================================================

class SetupDependencyError(BacktestError):
    """Raised when a collaborator needed during setup is unavailable."""
    pass


class ExchangeNotFoundError(SetupDependencyError):
    """Raised when the host engine cannot resolve an exchange name."""
    pass


class DataRetrievalError(SetupDependencyError):
    """Raised when market data cannot be loaded from its source."""
    pass


class DatabaseDisabledError(DataRetrievalError):
    """Raised when the database source is used while database support is off."""
    pass


# =============================================================================
# Portfolio Errors
# =============================================================================

class PortfolioError(BacktestError):
    """Base class for portfolio setup and sizing errors."""
    pass


class CurrencySettingsNotFoundError(PortfolioError):
    """Raised when a pair has no currency settings in the portfolio."""
    pass


class CurrencySettingsExistError(PortfolioError):
    """Raised when a pair is set up twice."""
    pass


class AmountBelowMinimumError(PortfolioError):
    """Raised when a signal explicitly requests less than the configured minimum."""
    pass


# =============================================================================
# Runtime Fatal Errors
# =============================================================================

class RuntimeFatalError(BacktestError):
    """Raised when a run can no longer continue consistently."""
    pass


class OutOfOrderError(RuntimeFatalError):
    """Raised when a statistic update arrives with an older timestamp."""
    pass


class NegativeHoldingsError(RuntimeFatalError):
    """Raised when a fill would leave funds or quantity below zero."""
    pass
