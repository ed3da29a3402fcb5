"""
Drives one simulation run from running to a terminal status.

Per sample: price the ledger, evaluate the automation, apply any action,
persist a snapshot every Nth sample (and the last one), then publish live
progress. Snapshots and progress are written in loop order on the worker
that owns the run, so the last snapshot always matches the last progress.
"""
import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError

from simlab.core.progress import ProgressStore
from simlab.models.simulation import (
    Simulation,
    SimulationResult,
    STATUS_CREATED,
    STATUS_RUNNING,
    STATUS_COMPLETED,
    STATUS_FAILED,
)
from simlab.services.simulation.automation import AutomationAction, evaluate_automation
from simlab.services.simulation.ledger import AccountLedger
from simlab.services.simulation.lifecycle import transition_status
from simlab.services.simulation.price_path import PricePoint, generate_price_path, make_rng

logger = logging.getLogger(__name__)


class SimulationCancelled(Exception):
    pass


class RunHandle:
    """Cancellation flag for one run. Never cancelled unless someone asks."""

    def __init__(self, simulation_id: int):
        self.simulation_id = simulation_id
        self._cancel = threading.Event()

    def cancel(self):
        self._cancel.set()

    @property
    def cancelled(self) -> bool:
        return self._cancel.is_set()


@dataclass
class RunOutcome:
    simulation_id: int
    status: str
    samples: int = 0
    snapshots_written: int = 0
    snapshot_failures: int = 0
    final_balance: float = 0.0
    actions: list[dict] = field(default_factory=list)
    error: Optional[str] = None


class SimulationRunner:
    def __init__(
        self,
        session_factory,
        progress_store: ProgressStore,
        seed: Optional[int] = None,
        rng_factory=None,
        snapshot_interval: int = 10,
        yield_every: int = 100,
        yield_seconds: float = 0.001,
        sleep=time.sleep,
    ):
        self.session_factory = session_factory
        self.progress = progress_store
        self.seed = seed
        self._rng_factory = rng_factory or (lambda: make_rng(self.seed))
        self.snapshot_interval = max(1, snapshot_interval)
        self.yield_every = yield_every
        self.yield_seconds = yield_seconds
        self._sleep = sleep

    def run(self, simulation_id: int, handle: Optional[RunHandle] = None) -> RunOutcome:
        """Execute a simulation to completion. Never raises for run failures."""
        handle = handle or RunHandle(simulation_id)
        outcome = RunOutcome(simulation_id=simulation_id, status=STATUS_RUNNING)

        db = self.session_factory()
        try:
            sim = db.query(Simulation).filter(Simulation.id == simulation_id).first()
            if not sim:
                logger.error("[Simulation %d] Not found in DB", simulation_id)
                outcome.status = STATUS_FAILED
                outcome.error = "Simulation not found"
                return outcome

            if sim.status == STATUS_CREATED:
                if not transition_status(db, simulation_id, STATUS_CREATED, STATUS_RUNNING):
                    # Another caller took the created -> running edge and owns the run
                    logger.warning("[Simulation %d] Start lost to a concurrent runner", simulation_id)
                    outcome.error = "Simulation is already running"
                    return outcome
                db.refresh(sim)
            if sim.status != STATUS_RUNNING:
                logger.warning("[Simulation %d] Not runnable in status '%s'", simulation_id, sim.status)
                outcome.status = sim.status
                outcome.error = f"Simulation is {sim.status}"
                return outcome

            config = {
                "automation_type": sim.automation_type,
                "price_scenario": sim.price_scenario,
                "initial_price": sim.initial_price,
                "duration": sim.duration,
            }
            logger.info(
                "[Simulation %d] Running %s on %s scenario (P0=%.2f, %ds)",
                simulation_id, config["automation_type"], config["price_scenario"],
                config["initial_price"], config["duration"],
            )

            try:
                self._execute(db, simulation_id, config, handle, outcome)
                transition_status(db, simulation_id, STATUS_RUNNING, STATUS_COMPLETED)
                outcome.status = STATUS_COMPLETED
                logger.info(
                    "[Simulation %d] Completed: %d samples, %d snapshots, %d actions, balance=%.2f",
                    simulation_id, outcome.samples, outcome.snapshots_written,
                    len(outcome.actions), outcome.final_balance,
                )
            except SimulationCancelled:
                logger.info("[Simulation %d] Cancelled after %d samples", simulation_id, outcome.samples)
                self._fail(db, simulation_id, outcome, "Cancelled")
            except Exception as e:
                logger.exception("[Simulation %d] Run failed", simulation_id)
                self._fail(db, simulation_id, outcome, str(e)[:300] or e.__class__.__name__)
            finally:
                self._clear_progress(simulation_id)
        finally:
            db.close()

        return outcome

    def _execute(self, db, simulation_id: int, config: dict, handle: RunHandle, outcome: RunOutcome):
        initial_price = config["initial_price"]
        automation_type = config["automation_type"]

        path = generate_price_path(
            config["price_scenario"], initial_price, config["duration"], rng=self._rng_factory()
        )
        ledger = AccountLedger.opening(automation_type, initial_price)
        total = len(path)

        for i, point in enumerate(path):
            if handle.cancelled:
                raise SimulationCancelled()

            price = point.price
            action = evaluate_automation(
                automation_type,
                price,
                initial_price,
                ledger.balance,
                ledger.position_size,
                ledger.unrealized_pnl(price),
            )
            if action is not None:
                ledger.apply(action, price)
                outcome.actions.append({
                    "sample": i,
                    "price": price,
                    "action": action.action,
                    "details": action.details,
                    "balance": ledger.balance,
                })

            if i % self.snapshot_interval == 0 or i == total - 1:
                self._write_snapshot(db, simulation_id, point, action, ledger, outcome)

            self._publish_progress(simulation_id, (i + 1) / total * 100, price)
            outcome.samples = i + 1

            if self.yield_every and (i + 1) % self.yield_every == 0:
                self._sleep(self.yield_seconds)

        outcome.final_balance = ledger.balance
        if outcome.snapshots_written == 0 and outcome.snapshot_failures > 0:
            raise RuntimeError("No snapshot could be persisted")

    def _write_snapshot(
        self,
        db,
        simulation_id: int,
        point: PricePoint,
        action: Optional[AutomationAction],
        ledger: AccountLedger,
        outcome: RunOutcome,
    ):
        row = SimulationResult(
            simulation_id=simulation_id,
            timestamp=point.timestamp,
            price=point.price,
            action_type=action.action if action else None,
            action_details=action.details if action else None,
            account_balance=ledger.balance,
            position_size=ledger.position_size,
            pnl=ledger.unrealized_pnl(point.price),
            margin_level=ledger.margin_level(point.price),
            success_rate=ledger.success_rate,
            total_actions=ledger.total_actions,
        )
        try:
            db.add(row)
            db.commit()
            outcome.snapshots_written += 1
        except SQLAlchemyError as e:
            db.rollback()
            outcome.snapshot_failures += 1
            logger.warning("[Simulation %d] Snapshot write failed: %s", simulation_id, e)

    def _clear_progress(self, simulation_id: int):
        try:
            self.progress.clear(simulation_id)
        except Exception as e:
            logger.warning("[Simulation %d] Progress cleanup failed: %s", simulation_id, e)

    def _publish_progress(self, simulation_id: int, progress: float, price: float):
        try:
            self.progress.publish(simulation_id, progress, price)
        except Exception as e:
            logger.warning("[Simulation %d] Progress publish failed: %s", simulation_id, e)

    def _fail(self, db, simulation_id: int, outcome: RunOutcome, error: str):
        outcome.status = STATUS_FAILED
        outcome.error = error
        try:
            db.rollback()
            transition_status(db, simulation_id, STATUS_RUNNING, STATUS_FAILED, error=error)
            return
        except SQLAlchemyError as e:
            logger.warning("[Simulation %d] Could not mark failed on run session: %s", simulation_id, e)

        # The run's own session is unusable; retry on a fresh one
        retry_db = self.session_factory()
        try:
            transition_status(retry_db, simulation_id, STATUS_RUNNING, STATUS_FAILED, error=error)
        except SQLAlchemyError:
            logger.exception("[Simulation %d] Could not mark failed", simulation_id)
        finally:
            retry_db.close()
