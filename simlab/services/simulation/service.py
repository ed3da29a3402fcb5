"""
Simulation service: create, start, read and delete simulations.

Owns the created -> running edge (so a start request is accepted at most
once) and hands accepted runs to the scheduler. Reads on failed runs return
whatever partial series was persisted.
"""
import logging
from typing import Optional

from sqlalchemy.orm import Session

from simlab.core.progress import ProgressStore
from simlab.models.simulation import (
    Simulation,
    SimulationResult,
    STATUS_CREATED,
    STATUS_RUNNING,
    STATUS_FAILED,
    TERMINAL_STATUSES,
)
from simlab.schemas.simulation import SimulationCreate
from simlab.services.simulation.lifecycle import (
    SimulationConflictError,
    SimulationNoResultsError,
    SimulationNotFoundError,
    transition_status,
)
from simlab.services.simulation.metrics import calculate_simulation_metrics

logger = logging.getLogger(__name__)


class SimulationService:
    def __init__(self, db: Session, scheduler=None, progress_store: Optional[ProgressStore] = None):
        self.db = db
        self.scheduler = scheduler
        self.progress = progress_store

    # ── Create / read ──────────────────────────────────

    def create_simulation(self, user_id: int, payload: SimulationCreate) -> Simulation:
        sim = Simulation(
            user_id=user_id,
            name=payload.name,
            automation_type=payload.automation_type,
            price_scenario=payload.price_scenario,
            initial_price=payload.initial_price,
            duration=payload.duration,
            account_id=payload.account_id,
            environment=payload.environment or "testnet",
            status=STATUS_CREATED,
        )
        self.db.add(sim)
        self.db.commit()
        self.db.refresh(sim)
        logger.info("Simulation created: %d for user %d", sim.id, user_id)
        return sim

    def get_simulation(self, simulation_id: int, user_id: int) -> Simulation:
        sim = (
            self.db.query(Simulation)
            .filter(Simulation.id == simulation_id, Simulation.user_id == user_id)
            .first()
        )
        if not sim:
            raise SimulationNotFoundError("Simulation not found")
        return sim

    def list_simulations(self, user_id: int, limit: int = 50) -> list[Simulation]:
        return (
            self.db.query(Simulation)
            .filter(Simulation.user_id == user_id)
            .order_by(Simulation.created_at.desc(), Simulation.id.desc())
            .limit(limit)
            .all()
        )

    def get_results(self, simulation_id: int, user_id: int) -> list[SimulationResult]:
        self.get_simulation(simulation_id, user_id)
        return (
            self.db.query(SimulationResult)
            .filter(SimulationResult.simulation_id == simulation_id)
            .order_by(SimulationResult.timestamp.asc(), SimulationResult.id.asc())
            .all()
        )

    # ── Start ──────────────────────────────────────────

    def start_simulation(self, simulation_id: int, user_id: int) -> Simulation:
        """Accept a run request and queue it.

        Raises SimulationConflictError unless the simulation is still created.
        """
        sim = self.get_simulation(simulation_id, user_id)
        if sim.status == STATUS_RUNNING:
            raise SimulationConflictError("Simulation is already running")
        if sim.status != STATUS_CREATED:
            raise SimulationConflictError("Simulation is not in created status")
        if self.scheduler is None:
            raise RuntimeError("Simulation scheduler is not available")

        if not transition_status(self.db, simulation_id, STATUS_CREATED, STATUS_RUNNING):
            # Lost the race to a concurrent start request
            raise SimulationConflictError("Simulation is already running")

        try:
            self.scheduler.submit(simulation_id)
        except Exception as e:
            logger.error("Failed to queue simulation %d: %s", simulation_id, e)
            transition_status(self.db, simulation_id, STATUS_RUNNING, STATUS_FAILED,
                              error=f"Could not be queued: {e}"[:300])
            raise

        logger.info("Simulation %d started", simulation_id)
        self.db.refresh(sim)
        return sim

    # ── Live progress ──────────────────────────────────

    def get_progress(self, simulation_id: int, user_id: int) -> dict:
        sim = self.get_simulation(simulation_id, user_id)

        if sim.status in TERMINAL_STATUSES:
            last = self._last_result(simulation_id)
            progress = 100.0
            current_price = last.price if last else sim.initial_price
        elif sim.status == STATUS_RUNNING:
            live = self.progress.read(simulation_id) if self.progress else {}
            progress = live.get("progress") or 0.0
            current_price = live.get("current_price") or sim.initial_price
        else:
            progress = 0.0
            current_price = sim.initial_price

        return {
            "simulationId": sim.id,
            "status": sim.status,
            "progress": round(progress, 2),
            "currentPrice": current_price,
            "started_at": sim.started_at,
            "completed_at": sim.completed_at,
        }

    # ── Charts / metrics ───────────────────────────────

    def get_chart_data(self, simulation_id: int, user_id: int) -> dict:
        results = self.get_results(simulation_id, user_id)
        return {
            "priceData": [{"timestamp": r.timestamp, "price": r.price} for r in results],
            "pnlData": [
                {"timestamp": r.timestamp, "pnl": r.pnl or 0.0, "accountBalance": r.account_balance or 0.0}
                for r in results
            ],
            "actions": [
                {"timestamp": r.timestamp, "action": r.action_type, "price": r.price, "details": r.action_details}
                for r in results
                if r.action_type
            ],
        }

    def get_metrics(self, simulation_id: int, user_id: int) -> dict:
        sim = self.get_simulation(simulation_id, user_id)
        results = self.get_results(simulation_id, user_id)
        if not results:
            raise SimulationNoResultsError("Simulation has no results yet")

        metrics = calculate_simulation_metrics(results)
        return {
            "simulationId": sim.id,
            "metrics": metrics.to_dict(),
            "summary": {
                "automationType": sim.automation_type,
                "priceScenario": sim.price_scenario,
                "duration": sim.duration,
                "initialPrice": sim.initial_price,
                "status": sim.status,
            },
        }

    # ── Delete ─────────────────────────────────────────

    def delete_simulation(self, simulation_id: int, user_id: int):
        sim = self.get_simulation(simulation_id, user_id)
        if sim.status == STATUS_RUNNING:
            raise SimulationConflictError("Cannot delete a running simulation")

        # Guard on status again in the DELETE itself
        self.db.query(SimulationResult).filter(
            SimulationResult.simulation_id == simulation_id
        ).delete(synchronize_session=False)
        deleted = (
            self.db.query(Simulation)
            .filter(Simulation.id == simulation_id, Simulation.status != STATUS_RUNNING)
            .delete(synchronize_session=False)
        )
        if deleted != 1:
            self.db.rollback()
            raise SimulationConflictError("Cannot delete a running simulation")
        self.db.commit()
        logger.info("Simulation %d deleted", simulation_id)

    def _last_result(self, simulation_id: int) -> Optional[SimulationResult]:
        return (
            self.db.query(SimulationResult)
            .filter(SimulationResult.simulation_id == simulation_id)
            .order_by(SimulationResult.timestamp.desc(), SimulationResult.id.desc())
            .first()
        )


def fail_interrupted_runs(db: Session) -> int:
    """Mark runs left 'running' by a previous process as failed.

    The run queue lives in process memory, so such runs can never finish.
    """
    stale = db.query(Simulation.id).filter(Simulation.status == STATUS_RUNNING).all()
    count = 0
    for (sim_id,) in stale:
        if transition_status(db, sim_id, STATUS_RUNNING, STATUS_FAILED, error="Interrupted by restart"):
            count += 1
    if count:
        logger.warning("Marked %d interrupted simulation(s) as failed", count)
    return count
