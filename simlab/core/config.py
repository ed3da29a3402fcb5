from typing import Optional
from pathlib import Path

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    APP_NAME: str = "SimLab"
    APP_VERSION: str = "0.1.0"
    DEBUG: bool = False

    # Database: any SQLAlchemy URL; SQLite file by default
    DATABASE_URL: str = f"sqlite:///{Path(__file__).resolve().parent.parent.parent / 'data' / 'simlab.db'}"

    # Auth
    SECRET_KEY: str = "simlab-dev-secret-change-in-production"
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 1440  # 24 hours

    # CORS
    FRONTEND_URL: str = "http://localhost:3000"

    # Simulation worker pool
    SIMULATION_CONCURRENCY: int = 2
    SIMULATION_MAX_STARTS_PER_SECOND: int = 5
    SIMULATION_SNAPSHOT_INTERVAL: int = 10  # persist every Nth sample
    SIMULATION_YIELD_EVERY: int = 100  # cooperative pause cadence (samples)
    SIMULATION_YIELD_SECONDS: float = 0.001
    SIMULATION_SEED: Optional[int] = None  # fixed seed for reproducible paths

    # Live progress keys
    PROGRESS_TTL_SECONDS: int = 300

    class Config:
        env_file = ".env"


settings = Settings()
