"""
Bounded worker pool for simulation runs.

Workers consume run requests from an in-process FIFO. Each worker executes
one run to completion before taking the next. A shared limiter caps how
many runs may start per second across the whole pool.
"""
import logging
import queue
import threading
import time
from collections import deque
from typing import Optional

from simlab.services.simulation.executor import RunHandle, SimulationRunner
from simlab.services.simulation.lifecycle import SimulationConflictError

logger = logging.getLogger(__name__)

_STOP = object()


class RateLimiter:
    """Sliding-window limiter: at most max_per_period acquisitions per period."""

    def __init__(self, max_per_period: int, period: float = 1.0, clock=time.monotonic, sleep=time.sleep):
        self.max_per_period = max_per_period
        self.period = period
        self._clock = clock
        self._sleep = sleep
        self._starts: deque[float] = deque()
        self._lock = threading.Lock()

    def try_acquire(self) -> float:
        """Take a slot if one is free. Returns 0 on success, else seconds to wait."""
        if self.max_per_period <= 0:
            return 0.0
        with self._lock:
            now = self._clock()
            while self._starts and now - self._starts[0] >= self.period:
                self._starts.popleft()
            if len(self._starts) < self.max_per_period:
                self._starts.append(now)
                return 0.0
            return self.period - (now - self._starts[0])

    def acquire(self):
        while True:
            wait = self.try_acquire()
            if wait <= 0:
                return
            self._sleep(wait)


class SimulationScheduler:
    def __init__(
        self,
        runner: SimulationRunner,
        concurrency: int = 2,
        max_starts_per_second: int = 5,
        limiter: Optional[RateLimiter] = None,
    ):
        self.runner = runner
        self.concurrency = max(1, concurrency)
        self.limiter = limiter or RateLimiter(max_starts_per_second)
        self._queue: queue.Queue = queue.Queue()
        self._handles: dict[int, RunHandle] = {}  # queued or active runs
        self._active: set[int] = set()
        self._lock = threading.Lock()
        self._workers: list[threading.Thread] = []
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    def start(self):
        """Spawn the worker threads."""
        if self._running:
            return
        self._running = True
        for n in range(self.concurrency):
            worker = threading.Thread(
                target=self._worker_loop, name=f"simulation-worker-{n}", daemon=True
            )
            worker.start()
            self._workers.append(worker)
        logger.info("[Scheduler] Started %d workers (max %d starts/s)",
                    self.concurrency, self.limiter.max_per_period)

    def stop(self, timeout: Optional[float] = None):
        """Let workers drain the queue, then join them."""
        if not self._running:
            return
        self._running = False
        for _ in self._workers:
            self._queue.put(_STOP)
        for worker in self._workers:
            worker.join(timeout)
        self._workers.clear()
        logger.info("[Scheduler] Stopped")

    def submit(self, simulation_id: int) -> RunHandle:
        """Queue a run. Raises SimulationConflictError if already queued or running."""
        with self._lock:
            if simulation_id in self._handles:
                raise SimulationConflictError("Simulation is already running")
            handle = RunHandle(simulation_id)
            self._handles[simulation_id] = handle
        self._queue.put(handle)
        logger.info("[Scheduler] Queued simulation %d", simulation_id)
        return handle

    def cancel(self, simulation_id: int) -> bool:
        """Request cancellation of a queued or active run."""
        with self._lock:
            handle = self._handles.get(simulation_id)
        if handle is None:
            return False
        handle.cancel()
        return True

    def is_scheduled(self, simulation_id: int) -> bool:
        with self._lock:
            return simulation_id in self._handles

    def active_count(self) -> int:
        with self._lock:
            return len(self._active)

    def join(self):
        """Block until every queued run has been processed."""
        self._queue.join()

    def _worker_loop(self):
        while True:
            item = self._queue.get()
            if item is _STOP:
                self._queue.task_done()
                break

            handle: RunHandle = item
            sim_id = handle.simulation_id
            try:
                self.limiter.acquire()
                with self._lock:
                    self._active.add(sim_id)
                self.runner.run(sim_id, handle)
            except Exception:
                logger.exception("[Scheduler] Worker error on simulation %d", sim_id)
            finally:
                with self._lock:
                    self._active.discard(sim_id)
                    self._handles.pop(sim_id, None)
                self._queue.task_done()
