from datetime import datetime, timezone

from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, JSON, Float, Text
from sqlalchemy.orm import relationship

from simlab.core.database import Base

AUTOMATION_TYPES = ("margin_guard", "take_profit", "trailing_stop", "auto_entry")
PRICE_SCENARIOS = ("bull", "bear", "sideways", "volatile")
ACTION_TYPES = ("close_position", "take_profit", "adjust_stop", "enter_position")

STATUS_CREATED = "created"
STATUS_RUNNING = "running"
STATUS_COMPLETED = "completed"
STATUS_FAILED = "failed"
TERMINAL_STATUSES = (STATUS_COMPLETED, STATUS_FAILED)


class Simulation(Base):
    __tablename__ = "simulations"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    name = Column(String(100), nullable=False)
    automation_type = Column(String(20), nullable=False)  # margin_guard, take_profit, trailing_stop, auto_entry
    price_scenario = Column(String(20), nullable=False)  # bull, bear, sideways, volatile
    initial_price = Column(Float, nullable=False)
    duration = Column(Integer, nullable=False)  # simulated seconds
    account_id = Column(String(64), nullable=True)  # linked test account (optional)
    environment = Column(String(20), default="testnet")
    status = Column(String(20), default=STATUS_CREATED)  # created, running, completed, failed
    error = Column(Text, nullable=True)
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))
    started_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)

    user = relationship("User", back_populates="simulations")
    results = relationship(
        "SimulationResult",
        back_populates="simulation",
        order_by="SimulationResult.timestamp",
        cascade="all, delete-orphan",
    )


class SimulationResult(Base):
    __tablename__ = "simulation_results"

    id = Column(Integer, primary_key=True, index=True)
    simulation_id = Column(
        Integer, ForeignKey("simulations.id", ondelete="CASCADE"), nullable=False, index=True
    )
    timestamp = Column(DateTime, nullable=False)
    price = Column(Float, nullable=False)
    action_type = Column(String(20), nullable=True)  # close_position, take_profit, adjust_stop, enter_position
    action_details = Column(JSON, nullable=True)
    account_balance = Column(Float, default=0.0)
    position_size = Column(Float, default=0.0)
    pnl = Column(Float, default=0.0)  # unrealized
    margin_level = Column(Float, default=0.0)
    success_rate = Column(Float, default=0.0)  # running %, successful / total actions
    total_actions = Column(Integer, default=0)  # cumulative

    simulation = relationship("Simulation", back_populates="results")
