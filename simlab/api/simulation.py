"""
Simulation API endpoints.
Runs are executed by the background scheduler; clients poll /progress.
"""
from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.orm import Session

from simlab.core.auth import get_current_user
from simlab.core.database import get_db
from simlab.models.user import User
from simlab.schemas.simulation import (
    SimulationCreate,
    SimulationResponse,
    SimulationDetailResponse,
    SimulationProgress,
    SimulationChartData,
    SimulationMetricsResponse,
)
from simlab.services.simulation.lifecycle import (
    SimulationConflictError,
    SimulationNoResultsError,
    SimulationNotFoundError,
)
from simlab.services.simulation.service import SimulationService

router = APIRouter(prefix="/api/simulations", tags=["simulations"])


def get_simulation_service(request: Request, db: Session = Depends(get_db)) -> SimulationService:
    return SimulationService(
        db,
        scheduler=getattr(request.app.state, "scheduler", None),
        progress_store=getattr(request.app.state, "progress_store", None),
    )


def _not_found():
    return HTTPException(status_code=404, detail="Simulation not found")


@router.post("", response_model=SimulationResponse, status_code=201)
def create_simulation(
    payload: SimulationCreate,
    service: SimulationService = Depends(get_simulation_service),
    current_user: User = Depends(get_current_user),
):
    return service.create_simulation(current_user.id, payload)


@router.get("", response_model=list[SimulationResponse])
def list_simulations(
    service: SimulationService = Depends(get_simulation_service),
    current_user: User = Depends(get_current_user),
):
    return service.list_simulations(current_user.id)


@router.get("/{simulation_id}", response_model=SimulationDetailResponse)
def get_simulation(
    simulation_id: int,
    service: SimulationService = Depends(get_simulation_service),
    current_user: User = Depends(get_current_user),
):
    try:
        return service.get_simulation(simulation_id, current_user.id)
    except SimulationNotFoundError:
        raise _not_found()


@router.post("/{simulation_id}/start", response_model=dict)
def start_simulation(
    simulation_id: int,
    service: SimulationService = Depends(get_simulation_service),
    current_user: User = Depends(get_current_user),
):
    """Queue a created simulation for execution."""
    try:
        sim = service.start_simulation(simulation_id, current_user.id)
    except SimulationNotFoundError:
        raise _not_found()
    except SimulationConflictError as e:
        raise HTTPException(status_code=409, detail=str(e))
    return {"id": sim.id, "status": sim.status, "message": "Simulation started successfully"}


@router.get("/{simulation_id}/progress", response_model=SimulationProgress)
def get_simulation_progress(
    simulation_id: int,
    service: SimulationService = Depends(get_simulation_service),
    current_user: User = Depends(get_current_user),
):
    """Real-time progress of a running simulation."""
    try:
        return service.get_progress(simulation_id, current_user.id)
    except SimulationNotFoundError:
        raise _not_found()


@router.get("/{simulation_id}/chart", response_model=SimulationChartData)
def get_simulation_chart(
    simulation_id: int,
    service: SimulationService = Depends(get_simulation_service),
    current_user: User = Depends(get_current_user),
):
    try:
        return service.get_chart_data(simulation_id, current_user.id)
    except SimulationNotFoundError:
        raise _not_found()


@router.get("/{simulation_id}/metrics", response_model=SimulationMetricsResponse)
def get_simulation_metrics(
    simulation_id: int,
    service: SimulationService = Depends(get_simulation_service),
    current_user: User = Depends(get_current_user),
):
    try:
        return service.get_metrics(simulation_id, current_user.id)
    except SimulationNotFoundError:
        raise _not_found()
    except SimulationNoResultsError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.delete("/{simulation_id}")
def delete_simulation(
    simulation_id: int,
    service: SimulationService = Depends(get_simulation_service),
    current_user: User = Depends(get_current_user),
):
    try:
        service.delete_simulation(simulation_id, current_user.id)
    except SimulationNotFoundError:
        raise _not_found()
    except SimulationConflictError as e:
        raise HTTPException(status_code=409, detail=str(e))
    return {"message": "Simulation deleted successfully"}
