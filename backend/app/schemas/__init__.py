"""Expose Pydantic schemas for convenient imports."""

from .analytics import (
    AlertsResponse,
    ModelVersionSummary,
    ShiftAverage,
    ShiftComparison,
    TimeSeriesPoint,
)
from .event import EventCreate, EventListResponse, EventRead, IngestionSummary
from .metrics import (
    FactoryMetricsRead,
    SchedulerHealthResponse,
    SchedulerJobStatus,
    WorkerMetricsRead,
    WorkstationMetricsRead,
)
from .registry import WorkerRead, WorkstationRead

__all__ = [
    "AlertsResponse",
    "ModelVersionSummary",
    "ShiftAverage",
    "ShiftComparison",
    "TimeSeriesPoint",
    "EventCreate",
    "EventListResponse",
    "EventRead",
    "IngestionSummary",
    "FactoryMetricsRead",
    "SchedulerHealthResponse",
    "SchedulerJobStatus",
    "WorkerMetricsRead",
    "WorkstationMetricsRead",
    "WorkerRead",
    "WorkstationRead",
]
