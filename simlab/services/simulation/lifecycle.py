"""
Simulation status transitions and the errors raised around them.

Status only moves forward: created -> running -> completed | failed.
Transitions are compare-and-set UPDATEs so two callers can never both win
the same edge.
"""
from datetime import datetime, timezone

from sqlalchemy.orm import Session

from simlab.models.simulation import (
    Simulation,
    STATUS_CREATED,
    STATUS_RUNNING,
    STATUS_COMPLETED,
    STATUS_FAILED,
)

ALLOWED_TRANSITIONS = {
    STATUS_CREATED: (STATUS_RUNNING,),
    STATUS_RUNNING: (STATUS_COMPLETED, STATUS_FAILED),
    STATUS_COMPLETED: (),
    STATUS_FAILED: (),
}


class SimulationError(Exception):
    """Base class for simulation service errors."""


class SimulationNotFoundError(SimulationError):
    pass


class SimulationConflictError(SimulationError):
    """Operation not allowed in the simulation's current status."""


class SimulationNoResultsError(SimulationError):
    pass


def transition_status(db: Session, simulation_id: int, from_status: str, to_status: str, **fields) -> bool:
    """Move a simulation from from_status to to_status if it is still there.

    Sets started_at on entry to running and completed_at on entry to
    completed. Commits and returns True when the row changed.
    """
    if to_status not in ALLOWED_TRANSITIONS.get(from_status, ()):
        raise ValueError(f"Illegal transition {from_status} -> {to_status}")

    now = datetime.now(timezone.utc)
    values = {"status": to_status, **fields}
    if to_status == STATUS_RUNNING:
        values["started_at"] = now
    elif to_status == STATUS_COMPLETED:
        values["completed_at"] = now

    updated = (
        db.query(Simulation)
        .filter(Simulation.id == simulation_id, Simulation.status == from_status)
        .update(values, synchronize_session=False)
    )
    db.commit()
    return updated == 1
