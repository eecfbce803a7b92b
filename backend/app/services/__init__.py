"""Service layer encapsulating business logic for API routers."""

from .analytics import AnalyticsError, AnalyticsService
from .dedup import build_dedup_key
from .events import EventFilter, EventStore, EventStoreError, TimeWindow
from .ingestion import (
    EmptyPayloadError,
    IngestionError,
    IngestionResult,
    IngestionService,
    IngestionStorageError,
)
from .metrics import (
    MetricsService,
    MetricsServiceError,
    WorkerNotFoundError,
    WorkstationNotFoundError,
)
from .metrics_cache import (
    MetricsCacheService,
    TimeSeriesQuery,
    start_metrics_cache_scheduler,
    stop_metrics_cache_scheduler,
)
from .notifier import ChangeNotifier
from .registry import RegistryService

__all__ = [
    "AnalyticsError",
    "AnalyticsService",
    "build_dedup_key",
    "EventFilter",
    "EventStore",
    "EventStoreError",
    "TimeWindow",
    "EmptyPayloadError",
    "IngestionError",
    "IngestionResult",
    "IngestionService",
    "IngestionStorageError",
    "MetricsService",
    "MetricsServiceError",
    "WorkerNotFoundError",
    "WorkstationNotFoundError",
    "MetricsCacheService",
    "TimeSeriesQuery",
    "start_metrics_cache_scheduler",
    "stop_metrics_cache_scheduler",
    "ChangeNotifier",
    "RegistryService",
]
