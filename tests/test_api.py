import pytest
from fastapi.testclient import TestClient
from jose import jwt

from simlab.core.auth import create_access_token, decode_access_token
from simlab.core.config import settings
from simlab.core.database import get_db
from simlab.core.progress import ProgressStore
from simlab.main import app
from simlab.services.simulation.executor import RunHandle, SimulationRunner
from simlab.services.simulation.lifecycle import SimulationConflictError


class DeferredScheduler:
    """Queues runs in memory and executes them when drained."""

    running = True

    def __init__(self, runner: SimulationRunner):
        self.runner = runner
        self.pending: dict[int, RunHandle] = {}

    def submit(self, simulation_id):
        if simulation_id in self.pending:
            raise SimulationConflictError("Simulation is already running")
        handle = RunHandle(simulation_id)
        self.pending[simulation_id] = handle
        return handle

    def active_count(self):
        return 0

    def drain(self):
        while self.pending:
            sim_id, handle = self.pending.popitem()
            self.runner.run(sim_id, handle)


@pytest.fixture
def client(session_factory):
    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    store = ProgressStore(ttl_seconds=60)
    runner = SimulationRunner(session_factory, store, seed=42, yield_every=0)
    scheduler = DeferredScheduler(runner)

    app.dependency_overrides[get_db] = override_get_db
    app.state.progress_store = store
    app.state.scheduler = scheduler
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()
        del app.state.scheduler
        del app.state.progress_store


def _auth_headers(client, username="trader", password="password123"):
    r = client.post("/api/auth/register", json={"username": username, "password": password})
    assert r.status_code == 200
    r = client.post("/api/auth/login", json={"username": username, "password": password})
    assert r.status_code == 200
    return {"Authorization": f"Bearer {r.json()['access_token']}"}


def _create(client, headers, **overrides):
    body = {
        "name": "stop tracker",
        "automation_type": "trailing_stop",
        "price_scenario": "volatile",
        "initial_price": 50_000,
        "duration": 10,
    }
    body.update(overrides)
    return client.post("/api/simulations", json=body, headers=headers)


def test_health(client):
    r = client.get("/api/health")
    assert r.status_code == 200
    assert r.json()["status"] == "ok"


def test_requires_auth(client):
    assert client.get("/api/simulations").status_code == 401


def test_access_token_subject():
    assert decode_access_token(create_access_token(17)) == 17
    assert decode_access_token("not-a-token") is None
    forged = jwt.encode({"sub": "17"}, "some-other-secret", algorithm="HS256")
    assert decode_access_token(forged) is None
    no_subject = jwt.encode({"scope": "x"}, settings.SECRET_KEY, algorithm=settings.ALGORITHM)
    assert decode_access_token(no_subject) is None


def test_token_for_unknown_user_is_rejected(client):
    headers = {"Authorization": f"Bearer {create_access_token(4242)}"}
    assert client.get("/api/auth/me", headers=headers).status_code == 401


def test_register_and_me(client):
    headers = _auth_headers(client)
    me = client.get("/api/auth/me", headers=headers).json()
    assert me["username"] == "trader"
    assert set(me) == {"id", "username", "email"}

    r = client.post("/api/auth/register", json={"username": "trader", "password": "password123"})
    assert r.status_code == 400
    r = client.post("/api/auth/register", json={"username": "short", "password": "abc"})
    assert r.status_code == 400


@pytest.mark.parametrize("overrides", [
    {"duration": 5},
    {"duration": 3601},
    {"initial_price": 0},
    {"automation_type": "grid"},
    {"price_scenario": "crash"},
    {"name": ""},
])
def test_create_validation(client, overrides):
    headers = _auth_headers(client)
    assert _create(client, headers, **overrides).status_code == 422


def test_full_lifecycle(client):
    headers = _auth_headers(client)

    r = _create(client, headers)
    assert r.status_code == 201
    sim = r.json()
    assert sim["status"] == "created"
    sim_id = sim["id"]

    r = client.get(f"/api/simulations/{sim_id}/progress", headers=headers)
    assert r.json()["progress"] == 0

    r = client.post(f"/api/simulations/{sim_id}/start", headers=headers)
    assert r.status_code == 200
    assert r.json() == {"id": sim_id, "status": "running", "message": "Simulation started successfully"}

    r = client.post(f"/api/simulations/{sim_id}/start", headers=headers)
    assert r.status_code == 409

    r = client.delete(f"/api/simulations/{sim_id}", headers=headers)
    assert r.status_code == 409

    client.app.state.scheduler.drain()

    r = client.get(f"/api/simulations/{sim_id}/progress", headers=headers)
    progress = r.json()
    assert progress["status"] == "completed"
    assert progress["progress"] == 100
    assert progress["completed_at"] is not None

    detail = client.get(f"/api/simulations/{sim_id}", headers=headers).json()
    assert len(detail["results"]) == 11

    chart = client.get(f"/api/simulations/{sim_id}/chart", headers=headers).json()
    assert len(chart["priceData"]) == 11
    assert len(chart["pnlData"]) == 11
    assert chart["priceData"][-1]["price"] == progress["currentPrice"]
    for action in chart["actions"]:
        assert action["action"] == "adjust_stop"

    r = client.get(f"/api/simulations/{sim_id}/metrics", headers=headers)
    assert r.status_code == 200
    metrics = r.json()
    assert metrics["summary"]["priceScenario"] == "volatile"
    assert metrics["metrics"]["finalBalance"] == 100_000
    assert metrics["metrics"]["totalActions"] == len(chart["actions"])

    r = client.post(f"/api/simulations/{sim_id}/start", headers=headers)
    assert r.status_code == 409

    r = client.delete(f"/api/simulations/{sim_id}", headers=headers)
    assert r.status_code == 200
    assert client.get(f"/api/simulations/{sim_id}", headers=headers).status_code == 404


def test_metrics_without_results(client):
    headers = _auth_headers(client)
    sim_id = _create(client, headers).json()["id"]

    r = client.get(f"/api/simulations/{sim_id}/metrics", headers=headers)
    assert r.status_code == 400


def test_other_user_gets_404(client):
    owner = _auth_headers(client, "owner")
    intruder = _auth_headers(client, "intruder")
    sim_id = _create(client, owner).json()["id"]

    assert client.get(f"/api/simulations/{sim_id}", headers=intruder).status_code == 404
    assert client.post(f"/api/simulations/{sim_id}/start", headers=intruder).status_code == 404
    assert client.get(f"/api/simulations/{sim_id}/progress", headers=intruder).status_code == 404
    assert client.delete(f"/api/simulations/{sim_id}", headers=intruder).status_code == 404
    assert client.get("/api/simulations", headers=intruder).json() == []
    assert len(client.get("/api/simulations", headers=owner).json()) == 1
