from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, Field

AutomationType = Literal["margin_guard", "take_profit", "trailing_stop", "auto_entry"]
PriceScenario = Literal["bull", "bear", "sideways", "volatile"]


class SimulationCreate(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    automation_type: AutomationType
    price_scenario: PriceScenario
    initial_price: float = Field(gt=0)      # starting BTC price in USD
    duration: int = Field(ge=10, le=3600)   # simulated seconds
    account_id: Optional[str] = None        # test account (optional)
    environment: str = "testnet"


class SimulationResultResponse(BaseModel):
    timestamp: datetime
    price: float
    action_type: Optional[str] = None
    action_details: Optional[dict] = None
    account_balance: float = 0.0
    position_size: float = 0.0
    pnl: float = 0.0
    margin_level: float = 0.0
    success_rate: float = 0.0
    total_actions: int = 0

    class Config:
        from_attributes = True


class SimulationResponse(BaseModel):
    id: int
    user_id: int
    name: str
    automation_type: str
    price_scenario: str
    initial_price: float
    duration: int
    account_id: Optional[str] = None
    environment: str = "testnet"
    status: str  # created, running, completed, failed
    error: Optional[str] = None
    created_at: Optional[datetime] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class SimulationDetailResponse(SimulationResponse):
    results: list[SimulationResultResponse] = []


class SimulationProgress(BaseModel):
    simulationId: int
    status: str
    progress: float  # 0-100
    currentPrice: float
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None


class PricePointOut(BaseModel):
    timestamp: datetime
    price: float


class PnLPointOut(BaseModel):
    timestamp: datetime
    pnl: float
    accountBalance: float


class ActionPointOut(BaseModel):
    timestamp: datetime
    action: str
    price: float
    details: Optional[dict] = None


class SimulationChartData(BaseModel):
    priceData: list[PricePointOut] = []
    pnlData: list[PnLPointOut] = []
    actions: list[ActionPointOut] = []


class SimulationMetricsOut(BaseModel):
    successRate: float = 0.0
    totalActions: int = 0
    averageResponseTime: float = 0.0
    totalPnL: float = 0.0
    maxDrawdown: float = 0.0
    finalBalance: float = 0.0


class SimulationSummary(BaseModel):
    automationType: str
    priceScenario: str
    duration: int
    initialPrice: float
    status: str


class SimulationMetricsResponse(BaseModel):
    simulationId: int
    metrics: SimulationMetricsOut
    summary: SimulationSummary
