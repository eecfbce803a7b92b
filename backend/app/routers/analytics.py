"""Router for time series, quality alerts and comparative analytics."""

from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from .. import schemas
from ..database import get_db
from ..services import AnalyticsError, AnalyticsService, TimeWindow, WorkerNotFoundError
from ..services.analytics import DEFAULT_ALERT_THRESHOLD
from .params import time_window

router = APIRouter()


@router.get("/timeseries", response_model=List[schemas.TimeSeriesPoint])
def get_time_series(
    entity_id: Optional[str] = Query(None, description="Worker id, station id or 'factory'"),
    entity_type: Optional[str] = Query(None, description="worker, station or factory"),
    window: TimeWindow = Depends(time_window),
    db: Session = Depends(get_db),
) -> List[schemas.TimeSeriesPoint]:
    """Return one point per calendar day, served from the cache when possible."""

    try:
        return AnalyticsService.time_series(db, entity_type, entity_id, window=window)
    except AnalyticsError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc


@router.get("/alerts", response_model=schemas.AlertsResponse)
def get_low_confidence_alerts(
    threshold: float = Query(DEFAULT_ALERT_THRESHOLD, ge=0, le=1),
    window: TimeWindow = Depends(time_window),
    db: Session = Depends(get_db),
) -> schemas.AlertsResponse:
    batch = AnalyticsService.low_confidence_alerts(db, threshold=threshold, window=window)
    return schemas.AlertsResponse(count=batch.total, threshold=batch.threshold, alerts=batch.events)


@router.get("/shift-comparison/{worker_id}", response_model=schemas.ShiftComparison)
def get_shift_comparison(worker_id: str, db: Session = Depends(get_db)) -> schemas.ShiftComparison:
    """Compare a worker's current day with the average of the previous seven."""

    try:
        return AnalyticsService.shift_comparison(db, worker_id)
    except WorkerNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc


@router.get("/model-versions", response_model=List[schemas.ModelVersionSummary])
def get_model_versions(db: Session = Depends(get_db)) -> List[schemas.ModelVersionSummary]:
    return AnalyticsService.model_versions(db)
