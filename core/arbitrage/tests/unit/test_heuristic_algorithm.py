"""Tests for the greedy peak/trough heuristic."""

import math

import pytest

from core.arbitrage.heuristic_algorithm import (
    find_arbitrage_opportunities,
    intervals_for_full_charge,
    optimize_heuristic,
)
from core.arbitrage.models import Action
from core.arbitrage.settings import BatterySettings


def test_intervals_for_full_charge(battery_settings):
    # 100 MWh at 50 MW is 2 hours of 5-minute intervals
    assert intervals_for_full_charge(battery_settings) == 24
    assert intervals_for_full_charge(BatterySettings(power_mw=30.0)) == 40


def test_pairs_cheapest_trough_with_most_expensive_later_peak(trough_peak_prices):
    settings = BatterySettings(max_cycles=1.0)
    opportunities = find_arbitrage_opportunities(trough_peak_prices, settings)

    assert len(opportunities) == 1
    opp = opportunities[0]
    assert (opp.charge_start, opp.charge_end) == (72, 96)
    assert (opp.discharge_start, opp.discharge_end) == (216, 240)
    assert opp.gross_spread == pytest.approx(80.0)
    assert opp.net_spread == pytest.approx(100.0 * math.sqrt(0.9) - 20.0)


def test_opportunities_do_not_overlap_and_respect_cycle_limit(
    battery_settings, two_peak_prices
):
    opportunities = find_arbitrage_opportunities(two_peak_prices, battery_settings)

    assert 0 < len(opportunities) <= battery_settings.max_cycles
    used = set()
    for opp in opportunities:
        windows = set(range(opp.charge_start, opp.charge_end)) | set(
            range(opp.discharge_start, opp.discharge_end)
        )
        assert not windows & used
        used |= windows
        assert opp.discharge_start > opp.charge_start + 24
        assert opp.net_spread > 0

    starts = [opp.charge_start for opp in opportunities]
    assert starts == sorted(starts)


def test_no_opportunity_when_spread_does_not_cover_losses():
    prices = [50.0, 49.0, 50.0] * 40
    prices[100] = 52.0
    settings = BatterySettings.from_round_trip(0.5)
    assert find_arbitrage_opportunities(prices, settings) == []


def test_flat_prices_produce_idle_schedule(battery_settings, flat_prices):
    decisions = optimize_heuristic(flat_prices, battery_settings)
    assert all(d.action is Action.IDLE for d in decisions)


def test_zero_cycle_limit_produces_idle_schedule(trough_peak_prices):
    settings = BatterySettings(max_cycles=0.0)
    decisions = optimize_heuristic(trough_peak_prices, settings)
    assert all(d.action is Action.IDLE for d in decisions)


def test_decisions_use_full_power(battery_settings, trough_peak_prices):
    decisions = optimize_heuristic(trough_peak_prices, battery_settings)

    assert len(decisions) == len(trough_peak_prices)
    assert decisions[72].action is Action.CHARGE
    assert decisions[216].action is Action.DISCHARGE
    assert all(
        d.power_mw == battery_settings.power_mw for d in decisions if d.action is not Action.IDLE
    )
