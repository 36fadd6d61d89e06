"""Text reports for optimization runs and backtests, emitted through logging."""

import logging
from collections import Counter

from .backtest import BacktestSummary
from .models import Action, OptimizationResult
from .settings import BatterySettings
from .time_utils import group_periods_by_hour

logger = logging.getLogger(__name__)

__all__ = [
    "format_backtest_report",
    "format_schedule_table",
    "print_backtest_report",
    "print_optimization_results",
]

_ACTION_LABELS = {Action.CHARGE: "CHG", Action.DISCHARGE: "DIS", Action.IDLE: "---"}


def format_schedule_table(
    result: OptimizationResult, battery_settings: BatterySettings
) -> str:
    """Hourly aggregated schedule table with a totals row and a summary.

    Prices are averaged per hour, energies and revenue summed, SoC is the
    end-of-hour value and the action column shows the most frequent action.
    """
    operations = result.operations
    hours = group_periods_by_hour(len(operations), battery_settings.interval_minutes)

    output = []
    output.append(f"\nBattery Schedule ({result.strategy}):")
    output.append("╔════╦═════════╦════════╦════════╦════════╦═════╦═══════════╗")
    output.append("║ Hr ║  Price  ║ Bought ║  Sold  ║  SoC   ║ Act ║  Revenue  ║")
    output.append("║    ║ ($/MWh) ║ (MWh)  ║ (MWh)  ║ (MWh)  ║     ║    ($)    ║")
    output.append("╠════╬═════════╬════════╬════════╬════════╬═════╬═══════════╣")

    for hour, periods in hours.items():
        ops = [operations[i] for i in periods]
        avg_price = sum(op.price for op in ops) / len(ops)
        bought = sum(op.energy_bought_mwh for op in ops)
        sold = sum(op.energy_sold_mwh for op in ops)
        revenue = sum(op.revenue for op in ops)
        soc_end = ops[-1].soc_end_mwh
        action = Counter(op.action for op in ops).most_common(1)[0][0]

        output.append(
            f"║{hour:3d} ║{avg_price:8.2f} ║{bought:7.2f} ║{sold:7.2f} ║{soc_end:7.2f} ║ {_ACTION_LABELS[action]} ║{revenue:10.2f} ║"
        )

    metrics = result.metrics
    output.append("╠════╬═════════╬════════╬════════╬════════╬═════╬═══════════╣")
    output.append(
        f"║Tot ║         ║{metrics.energy_charged_mwh:7.2f} ║{metrics.energy_discharged_mwh:7.2f} ║        ║     ║{metrics.revenue:10.2f} ║"
    )
    output.append("╚════╩═════════╩════════╩════════╩════════╩═════╩═══════════╝")

    output.append("\n      Summary:")
    output.append(f"      Revenue:                  ${metrics.revenue:,.2f}")
    output.append(f"      Cycles:                   {metrics.cycles:.2f}")
    output.append(f"      Avg charge price:         {metrics.avg_charge_price:.2f} $/MWh")
    output.append(
        f"      Avg discharge price:      {metrics.avg_discharge_price:.2f} $/MWh"
    )
    output.append(f"      Realized spread:          {metrics.realized_spread:.2f} $/MWh")
    output.append(f"      Utilization:              {metrics.utilization:.1f}%")
    if result.calibration is not None:
        calibration = result.calibration
        status = "converged" if calibration.converged else "NOT converged"
        output.append(
            f"      Throughput cost:          {result.throughput_cost:.4f} $/MWh "
            f"({status}, {calibration.iterations} iterations)"
        )
    elif result.throughput_cost:
        output.append(
            f"      Throughput cost:          {result.throughput_cost:.4f} $/MWh"
        )

    return "\n".join(output)


def print_optimization_results(
    result: OptimizationResult, battery_settings: BatterySettings
) -> None:
    """Log the hourly schedule table for one run."""
    logger.info(format_schedule_table(result, battery_settings))


def _optional(value: float | None, fmt: str, suffix: str = "") -> str:
    return "n/a" if value is None else f"{value:{fmt}}{suffix}"


def format_backtest_report(summary: BacktestSummary) -> str:
    """Multi-section performance report for a backtest summary."""
    lines = [
        f"=== Performance Report ({summary.strategy}) ===",
        f"Days: {len(summary.successful_days)} ok, {len(summary.failed_days)} failed",
        "",
        "Financial Performance:",
        f"  Total Revenue: ${summary.total_revenue:,.2f}",
        f"  Daily Average: ${summary.daily_avg_revenue:,.2f}",
        f"  Annualized: ${summary.annualized_revenue:,.2f}",
        "",
        "Operational Metrics:",
        f"  Total Cycles: {summary.total_cycles:.2f}",
        f"  Daily Average: {summary.daily_avg_cycles:.2f}",
        f"  Capacity Utilization: {summary.capacity_utilization:.1f}%",
        "",
        "Risk Metrics:",
        f"  Max Drawdown: ${summary.max_drawdown:,.2f}",
        f"  Sharpe Ratio: {summary.sharpe_ratio:.2f}",
        f"  Win Rate: {summary.win_rate:.1f}%",
        f"  Daily Volatility: ${summary.daily_volatility:,.2f}",
        "",
        "Trading Performance:",
        f"  Avg Charge Price: ${summary.avg_charge_price:.2f}/MWh",
        f"  Avg Discharge Price: ${summary.avg_discharge_price:.2f}/MWh",
        f"  Realized Spread: ${summary.realized_spread:.2f}/MWh",
    ]

    if summary.best_day is not None and summary.worst_day is not None:
        lines.append("")
        lines.append(f"Best Day: {summary.best_day[0]} (${summary.best_day[1]:,.2f})")
        lines.append(f"Worst Day: {summary.worst_day[0]} (${summary.worst_day[1]:,.2f})")

    lines.append("")
    lines.append(
        f"Perfect Hindsight Capture: {_optional(summary.perfect_hindsight_capture, '.1f', '%')}"
    )
    lines.append(
        f"Implementation Shortfall: {_optional(summary.implementation_shortfall, ',.2f')}"
    )

    if summary.failed_days:
        lines.append("")
        lines.append("Failed Days:")
        for day in summary.failed_days:
            lines.append(f"  {day.date}: {day.error}")

    return "\n".join(lines)


def print_backtest_report(summary: BacktestSummary) -> None:
    """Log the backtest report."""
    logger.info("\n" + format_backtest_report(summary))
