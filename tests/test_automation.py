import copy

import pytest

from simlab.services.simulation.automation import (
    AutomationAction,
    evaluate_automation,
    simple_rsi,
)

P0 = 50_000.0


def test_margin_guard_needs_drop_and_position():
    # 4% drop: below trigger
    assert evaluate_automation("margin_guard", P0 * 0.96, P0, 100.0, 0.001, -2.0) is None
    # 10% drop but flat book
    assert evaluate_automation("margin_guard", P0 * 0.90, P0, 100.0, 0.0, 0.0) is None


def test_margin_guard_closes_below_threshold():
    price = P0 * 0.90
    # margin level = (0.2 - 0.1) / (1 * 45000 * 0.1) -> far below 0.15
    action = evaluate_automation("margin_guard", price, P0, 0.2, 1.0, -0.1)

    assert action.action == "close_position"
    assert action.details["reason"] == "margin_below_threshold"
    assert action.details["priceDrop"] == pytest.approx(10.0)
    assert action.details["marginLevel"] == pytest.approx(0.1 / 4500.0)


def test_margin_guard_holds_with_healthy_margin():
    assert evaluate_automation("margin_guard", P0 * 0.90, P0, 100_000.0, 0.001, -5.0) is None


def test_take_profit_fires_on_rise_with_profit():
    action = evaluate_automation("take_profit", P0 * 1.10, P0, 100_000.0, 0.001, 5.0)

    assert action.action == "take_profit"
    assert action.details["priceIncrease"] == pytest.approx(10.0)
    assert action.details["pnl"] == 5.0


def test_take_profit_requires_positive_pnl():
    assert evaluate_automation("take_profit", P0 * 1.20, P0, 100_000.0, 0.0, 0.0) is None
    assert evaluate_automation("take_profit", P0 * 1.05, P0, 100_000.0, 0.001, 2.5) is None


@pytest.mark.parametrize("move", [1.025, 0.975, 1.10])
def test_trailing_stop_adjusts_on_two_percent_move(move):
    price = P0 * move
    action = evaluate_automation("trailing_stop", price, P0, 100_000.0, 0.001, 0.0)

    assert action.action == "adjust_stop"
    assert action.details["newStopLevel"] == pytest.approx(price * 0.98)
    assert action.details["priceChange"] == pytest.approx((move - 1) * 100)


def test_trailing_stop_ignores_small_moves():
    assert evaluate_automation("trailing_stop", P0 * 1.019, P0, 100_000.0, 0.001, 0.0) is None


def test_simple_rsi():
    assert simple_rsi(P0 * 1.1, P0) == 100.0
    assert simple_rsi(P0, P0) == 100.0
    # Pure loss: gain/loss == 0 -> RSI 0
    assert simple_rsi(P0 * 0.9, P0) == 0.0


def test_auto_entry_on_oversold_dip():
    price = P0 * 0.96
    action = evaluate_automation("auto_entry", price, P0, 100_000.0, 0.0, 0.0)

    assert action.action == "enter_position"
    assert action.details["entryPrice"] == price
    assert action.details["rsi"] == 0.0
    assert action.details["priceDeviation"] == pytest.approx(-4.0)


def test_auto_entry_skips_when_in_position_or_shallow_dip():
    assert evaluate_automation("auto_entry", P0 * 0.96, P0, 100_000.0, 0.001, -2.0) is None
    assert evaluate_automation("auto_entry", P0 * 0.98, P0, 100_000.0, 0.0, 0.0) is None


def test_unknown_automation_returns_none():
    assert evaluate_automation("grid_bot", P0 * 2, P0, 100_000.0, 0.001, 50.0) is None


def test_evaluation_is_pure():
    args = ["trailing_stop", P0 * 1.05, P0, 100_000.0, 0.001, 2.5]
    snapshot = copy.deepcopy(args)

    first = evaluate_automation(*args)
    second = evaluate_automation(*args)

    assert first == second
    assert isinstance(first, AutomationAction)
    assert args == snapshot
