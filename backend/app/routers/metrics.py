"""Router exposing worker, workstation and factory productivity metrics."""

from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from .. import schemas
from ..database import get_db
from ..services import (
    MetricsService,
    TimeWindow,
    WorkerNotFoundError,
    WorkstationNotFoundError,
)
from ..services.scheduler_monitor import SchedulerMonitor
from .params import time_window

router = APIRouter()


@router.get("/workers", response_model=List[schemas.WorkerMetricsRead])
def get_worker_metrics(
    worker_id: Optional[str] = Query(None, description="Restrict to a single worker"),
    window: TimeWindow = Depends(time_window),
    db: Session = Depends(get_db),
) -> List[schemas.WorkerMetricsRead]:
    """Return per-worker durations, utilization and output."""

    try:
        metrics = MetricsService.worker_metrics(db, worker_id=worker_id, window=window)
    except WorkerNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    return [schemas.WorkerMetricsRead(**item.to_dict()) for item in metrics]


@router.get("/workstations", response_model=List[schemas.WorkstationMetricsRead])
def get_workstation_metrics(
    station_id: Optional[str] = Query(None, description="Restrict to a single workstation"),
    window: TimeWindow = Depends(time_window),
    db: Session = Depends(get_db),
) -> List[schemas.WorkstationMetricsRead]:
    try:
        metrics = MetricsService.workstation_metrics(db, station_id=station_id, window=window)
    except WorkstationNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    return [schemas.WorkstationMetricsRead(**item.to_dict()) for item in metrics]


@router.get("/factory", response_model=schemas.FactoryMetricsRead)
def get_factory_metrics(
    window: TimeWindow = Depends(time_window),
    db: Session = Depends(get_db),
) -> schemas.FactoryMetricsRead:
    """Return the factory-wide rollup of worker metrics."""

    return schemas.FactoryMetricsRead(**MetricsService.factory_metrics(db, window=window).to_dict())


@router.get("/scheduler", response_model=schemas.SchedulerHealthResponse)
def get_scheduler_health() -> schemas.SchedulerHealthResponse:
    return schemas.SchedulerHealthResponse(jobs=SchedulerMonitor.snapshot())
