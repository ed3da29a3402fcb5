"""
Ephemeral progress key space for running simulations.

Keys follow the pattern "simulation:{id}:progress" and "simulation:{id}:current_price".
Each key carries its own TTL and is overwritten on every write (last write wins).
Pollers only ever read the latest value.
"""

import logging
import threading
import time
from typing import Optional

logger = logging.getLogger(__name__)

PROGRESS_FIELDS = ("progress", "current_price")


def progress_key(simulation_id: int, field: str) -> str:
    return f"simulation:{simulation_id}:{field}"


class ProgressStore:
    """Thread-safe key/value store with per-key expiry."""

    def __init__(self, ttl_seconds: float = 300, clock=time.monotonic):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._values: dict[str, tuple[float, float]] = {}  # key -> (value, expires_at)
        self._lock = threading.Lock()

    def set(self, key: str, value: float, ttl: Optional[float] = None):
        expires_at = self._clock() + (self.ttl_seconds if ttl is None else ttl)
        with self._lock:
            self._values[key] = (float(value), expires_at)

    def get(self, key: str) -> Optional[float]:
        with self._lock:
            entry = self._values.get(key)
            if entry is None:
                return None
            value, expires_at = entry
            if expires_at <= self._clock():
                del self._values[key]
                return None
            return value

    def delete(self, *keys: str):
        with self._lock:
            for key in keys:
                self._values.pop(key, None)

    def purge_expired(self) -> int:
        """Drop expired keys. Returns how many were removed."""
        now = self._clock()
        with self._lock:
            expired = [k for k, (_, exp) in self._values.items() if exp <= now]
            for k in expired:
                del self._values[k]
        return len(expired)

    # ── Simulation helpers ─────────────────────────────

    def publish(self, simulation_id: int, progress: float, current_price: float):
        """Write both progress fields for a simulation under one lock acquisition."""
        expires_at = self._clock() + self.ttl_seconds
        with self._lock:
            self._values[progress_key(simulation_id, "progress")] = (float(progress), expires_at)
            self._values[progress_key(simulation_id, "current_price")] = (float(current_price), expires_at)

    def read(self, simulation_id: int) -> dict[str, Optional[float]]:
        return {f: self.get(progress_key(simulation_id, f)) for f in PROGRESS_FIELDS}

    def clear(self, simulation_id: int):
        self.delete(*(progress_key(simulation_id, f) for f in PROGRESS_FIELDS))
