from __future__ import annotations

from datetime import datetime
from typing import List

from pydantic import BaseModel, Field

from .event import EventRead
from .metrics import WorkerMetricsRead


class TimeSeriesPoint(BaseModel):
    date: str = Field(..., description="Calendar day in YYYY-MM-DD format")
    units: int = Field(..., ge=0)
    active_hours: float = Field(..., ge=0)
    utilization_pct: float = Field(..., ge=0)


class AlertsResponse(BaseModel):
    """Low-confidence events plus the total number of matches."""

    count: int = Field(..., ge=0, description="Total matching events, not capped")
    threshold: float
    alerts: List[EventRead]


class ShiftAverage(BaseModel):
    active_time_seconds: int = Field(..., ge=0)
    idle_time_seconds: int = Field(..., ge=0)
    absent_time_seconds: int = Field(..., ge=0)
    utilization_pct: float = Field(..., ge=0)
    total_units_produced: int = Field(..., ge=0)
    units_per_hour: float = Field(..., ge=0)
    shift_duration_seconds: int = Field(..., ge=0)


class ShiftComparison(BaseModel):
    worker_id: str
    today: WorkerMetricsRead | None = None
    seven_day_avg: ShiftAverage | None = None
    days_sampled: int = Field(..., ge=0)


class ModelVersionSummary(BaseModel):
    version: str
    event_count: int = Field(..., ge=0)
    avg_confidence: float = Field(..., ge=0, le=1)
    first_seen: datetime
    last_seen: datetime
