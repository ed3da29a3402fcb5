from types import SimpleNamespace

import pytest

from simlab.services.simulation.metrics import AVERAGE_RESPONSE_TIME_MS, calculate_simulation_metrics


def _row(pnl, balance, action_type=None, success_rate=0.0):
    return SimpleNamespace(pnl=pnl, account_balance=balance, action_type=action_type, success_rate=success_rate)


def test_empty_series_is_all_zero():
    m = calculate_simulation_metrics([])

    assert m.successRate == 0
    assert m.totalActions == 0
    assert m.totalPnL == 0
    assert m.maxDrawdown == 0
    assert m.finalBalance == 0
    assert m.averageResponseTime == 0


def test_aggregate_over_series():
    rows = [
        _row(0.0, 100_000.0),
        _row(-3.0, 100_000.0),
        _row(1.5, 100_000.0, "adjust_stop", 100.0),
        _row(-7.5, 100_000.0),
        _row(0.0, 100_002.0, "take_profit", 100.0),
        _row(0.0, 100_002.0),
    ]
    m = calculate_simulation_metrics(rows)

    assert m.totalActions == 2
    assert m.successRate == 100.0
    assert m.totalPnL == 0.0
    assert m.maxDrawdown == -7.5
    assert m.finalBalance == 100_002.0
    assert m.averageResponseTime == AVERAGE_RESPONSE_TIME_MS


def test_success_rate_counts_only_action_snapshots():
    rows = [
        _row(0.0, 100_000.0, "adjust_stop", 0.0),
        _row(1.0, 100_000.0, "adjust_stop", 50.0),
        _row(2.0, 100_000.0, None, 50.0),
    ]
    m = calculate_simulation_metrics(rows)

    assert m.totalActions == 2
    assert m.successRate == pytest.approx(50.0)
    assert m.totalPnL == 2.0


def test_to_dict_keys():
    assert set(calculate_simulation_metrics([]).to_dict()) == {
        "successRate", "totalActions", "averageResponseTime",
        "totalPnL", "maxDrawdown", "finalBalance",
    }
