import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

# Configure root logger to show INFO for our application modules
logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
# Suppress noisy third-party loggers
logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
logging.getLogger("httpx").setLevel(logging.WARNING)

from simlab.core.config import settings
from simlab.core.database import engine, Base, SessionLocal
from simlab.core.progress import ProgressStore
from simlab.api import auth, health
from simlab.api import simulation as simulation_api
from simlab.services.simulation.executor import SimulationRunner
from simlab.services.simulation.scheduler import SimulationScheduler
from simlab.services.simulation.service import fail_interrupted_runs

# Import all models so Base.metadata knows about them
from simlab.models import user, simulation  # noqa: F401

logger = logging.getLogger(__name__)

app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
)

# CORS: production uses FRONTEND_URL env var; dev adds localhost origins
_cors_origins = [settings.FRONTEND_URL]
if settings.DEBUG:
    _cors_origins += ["http://localhost:3000", "http://127.0.0.1:3000"]

app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Routes
app.include_router(health.router)
app.include_router(auth.router)
app.include_router(simulation_api.router)


def build_scheduler(session_factory, progress_store: ProgressStore) -> SimulationScheduler:
    runner = SimulationRunner(
        session_factory,
        progress_store,
        seed=settings.SIMULATION_SEED,
        snapshot_interval=settings.SIMULATION_SNAPSHOT_INTERVAL,
        yield_every=settings.SIMULATION_YIELD_EVERY,
        yield_seconds=settings.SIMULATION_YIELD_SECONDS,
    )
    return SimulationScheduler(
        runner,
        concurrency=settings.SIMULATION_CONCURRENCY,
        max_starts_per_second=settings.SIMULATION_MAX_STARTS_PER_SECOND,
    )


def _recover_interrupted_runs():
    db = SessionLocal()
    try:
        fail_interrupted_runs(db)
    except Exception as e:
        db.rollback()
        logger.error("Failed to recover interrupted simulations: %s", e)
    finally:
        db.close()


@app.on_event("startup")
async def startup_event():
    # Create all tables
    Base.metadata.create_all(bind=engine)
    _recover_interrupted_runs()

    progress_store = ProgressStore(ttl_seconds=settings.PROGRESS_TTL_SECONDS)
    scheduler = build_scheduler(SessionLocal, progress_store)
    scheduler.start()
    app.state.progress_store = progress_store
    app.state.scheduler = scheduler


@app.on_event("shutdown")
async def shutdown_event():
    scheduler = getattr(app.state, "scheduler", None)
    if scheduler:
        scheduler.stop(timeout=30)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
