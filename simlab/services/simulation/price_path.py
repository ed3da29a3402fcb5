"""
Synthetic price path generation for scenario simulations.

Produces 10 samples per simulated second (100 ms apart). Each step moves the
running price multiplicatively by a regime-dependent drift plus a uniform draw
r in [-1, 1]. The randomness source is injectable so paths are reproducible.
"""
import random
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

SAMPLES_PER_SECOND = 10
SAMPLE_INTERVAL_MS = 1000 // SAMPLES_PER_SECOND
PRICE_FLOOR = 100.0

# Regime parameters: (drift, volatility)
BULL = (0.001, 0.002)
BEAR = (-0.002, 0.003)
SIDEWAYS = (0.0, 0.005)
VOLATILE = (0.0, 0.01)
SHOCK_PROBABILITY = 0.05
SHOCK_VOLATILITY = 0.05


@dataclass
class PricePoint:
    timestamp: datetime
    price: float


def make_rng(seed: Optional[int] = None) -> random.Random:
    """Build a randomness source. seed=None draws from OS entropy."""
    return random.Random(seed)


def _draw(rng) -> float:
    return rng.uniform(-1.0, 1.0)


def bull_movement(price: float, rng) -> float:
    drift, vol = BULL
    return price * (drift + _draw(rng) * vol)


def bear_movement(price: float, rng) -> float:
    drift, vol = BEAR
    return price * (drift + _draw(rng) * vol)


def sideways_movement(price: float, rng) -> float:
    return price * _draw(rng) * SIDEWAYS[1]


def volatile_movement(price: float, rng) -> float:
    r = _draw(rng)
    if rng.random() < SHOCK_PROBABILITY:
        return price * r * SHOCK_VOLATILITY
    return price * r * VOLATILE[1]


MOVEMENTS = {
    "bull": bull_movement,
    "bear": bear_movement,
    "sideways": sideways_movement,
    "volatile": volatile_movement,
}


def generate_price_path(
    scenario: str,
    initial_price: float,
    duration: int,
    rng=None,
    start_time: Optional[datetime] = None,
) -> list[PricePoint]:
    """Generate duration * 10 price samples for the given regime.

    rng only needs uniform(a, b) and random(); pass a seeded random.Random
    (or a fixture) for deterministic output. Prices never drop below 100.
    """
    if rng is None:
        rng = make_rng()
    if start_time is None:
        start_time = datetime.now(timezone.utc)

    move = MOVEMENTS.get(scenario)
    points = duration * SAMPLES_PER_SECOND
    step = timedelta(milliseconds=SAMPLE_INTERVAL_MS)

    path: list[PricePoint] = []
    price = float(initial_price)
    for i in range(points):
        if move is not None:
            price += move(price, rng)
        price = max(price, PRICE_FLOOR)
        path.append(PricePoint(timestamp=start_time + step * i, price=price))
    return path
