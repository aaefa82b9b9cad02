"""
Backtester - Command Line Entry Point

Runs a backtest described by a JSON configuration file and writes the report.
Exchange profiles are registered by name only, so the CLI serves the CSV and
database data sources; API and live sources need exchange data callables
supplied programmatically through backtesting.host.
"""

import argparse
import logging
import signal
import sys

from config.settings import settings
from backtesting.core import BacktestEngine, BacktestError, load_config
from backtesting.host import ExchangeProfile, HostEngine

logger = logging.getLogger(__name__)


def build_host_engine(config) -> HostEngine:
    """Register one exchange profile per exchange named in the config."""
    host = HostEngine(app_settings=settings)
    for cs in config.currency_settings:
        if cs.exchange_name and cs.exchange_name.lower() not in host.exchange_names():
            host.load_exchange(ExchangeProfile(name=cs.exchange_name))
    return host


def main(argv=None) -> int:
    """Main entry point."""
    parser = argparse.ArgumentParser(description='Event-driven strategy backtester')
    parser.add_argument('--config', required=True,
                        help='Path to the backtest JSON configuration')
    parser.add_argument('--report-dir', default=settings.report_output_dir,
                        help='Directory for JSON and HTML reports')
    parser.add_argument('--log-level', default=settings.log_level,
                        help='Logging level')
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, args.log_level.upper(), logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    try:
        config = load_config(args.config)
        engine = BacktestEngine.new_from_config(
            config, config.host_config_path, args.report_dir or "", build_host_engine(config)
        )
    except (OSError, ValueError, BacktestError) as e:
        logger.error(f"Backtest setup failed: {e}")
        return 2

    signal.signal(signal.SIGINT, lambda signum, frame: engine.stop())

    try:
        state = engine.run()
    except (OSError, BacktestError) as e:
        logger.error(f"Backtest failed: {e}")
        return 1

    print(f"Backtest {state.value}")
    if engine.statistic.results is not None:
        overall = engine.statistic.results.overall
        print(f"Total Return: {overall.total_return:.2%}")
        print(f"Max Drawdown: {overall.max_drawdown:.2%}")
        print(f"Final Equity: {overall.final_equity:,.8f}")
    for path in engine.report.output_files:
        print(f"Report: {path}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
