"""
Summary statistics over a simulation's persisted snapshot series.
"""
from dataclasses import dataclass, asdict

# Not measured; kept as a fixed placeholder (ms)
AVERAGE_RESPONSE_TIME_MS = 100.0


@dataclass
class SimulationMetrics:
    successRate: float = 0.0
    totalActions: int = 0
    averageResponseTime: float = 0.0
    totalPnL: float = 0.0
    maxDrawdown: float = 0.0
    finalBalance: float = 0.0

    def to_dict(self) -> dict:
        return asdict(self)


def calculate_simulation_metrics(results) -> SimulationMetrics:
    """Aggregate an ordered list of SimulationResult rows (or look-alikes).

    Action counts come from the snapshots that carry an action kind.
    """
    if not results:
        return SimulationMetrics()

    action_rows = [r for r in results if r.action_type]
    total_actions = len(action_rows)
    successful = len([r for r in action_rows if r.success_rate and r.success_rate > 0])
    success_rate = successful / total_actions * 100 if total_actions > 0 else 0.0

    pnl_values = [r.pnl or 0.0 for r in results]

    return SimulationMetrics(
        successRate=success_rate,
        totalActions=total_actions,
        averageResponseTime=AVERAGE_RESPONSE_TIME_MS,
        totalPnL=pnl_values[-1],
        maxDrawdown=min(pnl_values),
        finalBalance=results[-1].account_balance or 0.0,
    )
