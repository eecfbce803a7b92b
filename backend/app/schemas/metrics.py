from __future__ import annotations

from datetime import datetime
from typing import Dict, List

from pydantic import BaseModel, Field


class WorkerMetricsRead(BaseModel):
    worker_id: str
    active_time_seconds: int = Field(..., ge=0)
    idle_time_seconds: int = Field(..., ge=0)
    absent_time_seconds: int = Field(..., ge=0)
    utilization_pct: float = Field(..., ge=0)
    total_units_produced: int = Field(..., ge=0)
    units_per_hour: float = Field(..., ge=0)
    shift_duration_seconds: int = Field(..., ge=0)


class WorkstationMetricsRead(BaseModel):
    station_id: str
    occupancy_seconds: int = Field(..., ge=0)
    utilization_pct: float = Field(..., ge=0)
    total_units_produced: int = Field(..., ge=0)
    throughput_rate: float = Field(..., ge=0)


class FactoryMetricsRead(BaseModel):
    total_productive_seconds: int = Field(..., ge=0)
    total_units_produced: int = Field(..., ge=0)
    avg_production_rate: float = Field(..., ge=0)
    avg_worker_utilization: float = Field(..., ge=0)
    total_workers_active: int = Field(..., ge=0)
    total_events: int = Field(..., ge=0)


class SchedulerJobStatus(BaseModel):
    enabled: bool
    last_tick: datetime | None = None
    last_success: datetime | None = None
    consecutive_failures: int = 0
    last_result: Dict[str, int] = Field(default_factory=dict)
    recent_errors: List[str] = Field(default_factory=list)


class SchedulerHealthResponse(BaseModel):
    """Health of the background jobs keeping the metrics cache warm."""

    jobs: Dict[str, SchedulerJobStatus]
