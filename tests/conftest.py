import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from simlab.core.database import Base
from simlab.core.progress import ProgressStore
from simlab.models.simulation import Simulation
from simlab.models.user import User


class FixedRng:
    """Randomness source that always returns the same draw and roll."""

    def __init__(self, draw: float = 0.0, roll: float = 1.0):
        self.draw = draw
        self.roll = roll

    def uniform(self, a, b):
        return self.draw

    def random(self):
        return self.roll


@pytest.fixture
def fixed_rng():
    return FixedRng


@pytest.fixture
def session_factory():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    yield factory
    engine.dispose()


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def progress_store():
    return ProgressStore(ttl_seconds=60)


@pytest.fixture
def user(db):
    u = User(username="alice", password_hash="not-a-real-hash")
    db.add(u)
    db.commit()
    db.refresh(u)
    return u


@pytest.fixture
def other_user(db):
    u = User(username="bob", password_hash="not-a-real-hash")
    db.add(u)
    db.commit()
    db.refresh(u)
    return u


@pytest.fixture
def make_simulation(db, user):
    def _make(**overrides):
        fields = {
            "user_id": user.id,
            "name": "test run",
            "automation_type": "trailing_stop",
            "price_scenario": "sideways",
            "initial_price": 50_000.0,
            "duration": 10,
            "environment": "testnet",
            "status": "created",
        }
        fields.update(overrides)
        sim = Simulation(**fields)
        db.add(sim)
        db.commit()
        db.refresh(sim)
        return sim

    return _make
