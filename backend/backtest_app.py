import argparse
import json
import os
import sys

import log_config  # noqa: F401
import yaml
from loguru import logger

from core.arbitrage.backtest import DEFAULT_MAX_WORKERS, DEFAULT_TIMEOUT_SECONDS, run_backtest
from core.arbitrage.reporter import print_backtest_report
from core.arbitrage.settings import BatterySettings, OptimizerSettings, PriceSettings
from core.arbitrage.strategies import OptimizationStrategy

# Options file used when neither the command line nor the environment names one
DEFAULT_OPTIONS_PATH = "/data/options.yaml"


class BacktestController:
    def __init__(self, options_path=None):
        """Initialize the backtest controller from a YAML options file."""
        self.options_path = options_path or os.environ.get(
            "ARBITRAGE_OPTIONS", DEFAULT_OPTIONS_PATH
        )

        options = self._load_options()
        if not options:
            logger.warning("No configuration options found, using defaults")
            options = {}

        self._apply_settings(options)
        logger.info("Backtest controller initialized")

    def _load_options(self):
        """Load options from the YAML file, preferring its `options` section."""
        if not os.path.exists(self.options_path):
            logger.warning(f"Options file {self.options_path} not found")
            return None

        try:
            with open(self.options_path) as f:
                config = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            logger.error(f"Error loading options from {self.options_path}: {e!s}")
            return None

        if "options" in config:
            logger.info(f"Loaded options from {self.options_path} (options section)")
            return config["options"]
        logger.info(f"Loaded options from {self.options_path}")
        return config

    def _apply_settings(self, options):
        """Build battery, price and optimizer settings from the options dict.

        Raises:
            RuntimeError: If any section holds invalid values
        """
        try:
            self.battery_settings = BatterySettings.from_config(options)
            self.price_settings = PriceSettings.from_config(options)
            self.optimizer_settings = OptimizerSettings.from_config(options)

            backtest_config = options.get("backtest", {})
            self.strategy = OptimizationStrategy(backtest_config.get("strategy", "dp"))
            self.max_workers = backtest_config.get("max_workers", DEFAULT_MAX_WORKERS)
            self.timeout_seconds = backtest_config.get(
                "timeout_seconds", DEFAULT_TIMEOUT_SECONDS
            )
            self.benchmark = backtest_config.get("benchmark", True)
        except Exception as e:
            logger.error(f"CRITICAL: Failed to apply settings from {self.options_path}: {e}")
            raise RuntimeError(
                f"Settings application failed. Check {self.options_path} for "
                f"invalid settings. Error: {e}"
            ) from e

        logger.debug(
            f"Battery: {self.battery_settings.capacity_mwh} MWh / "
            f"{self.battery_settings.power_mw} MW, "
            f"round trip {self.battery_settings.round_trip_efficiency:.3f}, "
            f"max {self.battery_settings.max_cycles} cycles/day"
        )

    @staticmethod
    def load_price_days(prices_path):
        """Load a JSON object mapping date labels to price lists."""
        with open(prices_path) as f:
            price_days = json.load(f)
        if not isinstance(price_days, dict):
            raise ValueError(
                f"{prices_path} must hold an object mapping dates to price lists"
            )
        logger.info(f"Loaded {len(price_days)} days of prices from {prices_path}")
        return price_days

    def run(self, prices_path):
        """Backtest every day in the prices file and log the report."""
        summary = run_backtest(
            self.load_price_days(prices_path),
            self.battery_settings,
            self.strategy,
            price_settings=self.price_settings,
            optimizer_settings=self.optimizer_settings,
            max_workers=self.max_workers,
            timeout_seconds=self.timeout_seconds,
            benchmark=self.benchmark,
        )
        print_backtest_report(summary)
        return summary


def main(argv=None):
    parser = argparse.ArgumentParser(description="Backtest battery arbitrage on day prices")
    parser.add_argument("prices", help="JSON file mapping dates to price lists")
    parser.add_argument("--options", help="YAML options file (default: $ARBITRAGE_OPTIONS)")
    parser.add_argument(
        "--strategy",
        choices=[strategy.value for strategy in OptimizationStrategy],
        help="Override the configured strategy",
    )
    args = parser.parse_args(argv)

    controller = BacktestController(args.options)
    if args.strategy:
        controller.strategy = OptimizationStrategy(args.strategy)

    summary = controller.run(args.prices)
    return 1 if summary.failed_days else 0


if __name__ == "__main__":
    sys.exit(main())
