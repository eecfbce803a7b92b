"""Read-only analytics built on top of the event log and metrics cache."""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date, timedelta
from decimal import ROUND_HALF_UP, Decimal
from typing import Dict, Optional

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from .. import models, schemas
from .day_windows import day_window, local_day, reference_timezone
from .day_windows import today as local_today
from .events import EventFilter, EventStore, TimeWindow
from .metrics import (
    MetricsService,
    WorkerMetrics,
    round_rate,
    round_seconds,
    summarize_worker,
)
from .metrics_cache import MetricsCacheService, TimeSeriesQuery

LOGGER = logging.getLogger(__name__)

DEFAULT_ALERT_THRESHOLD = 0.75
MAX_ALERTS = 100
SHIFT_COMPARISON_DAYS = 7


class AnalyticsError(ValueError):
    """Raised when an analytics request is malformed."""


@dataclass(frozen=True)
class AlertBatch:
    total: int
    threshold: float
    events: list[models.Event] = field(default_factory=list)


def _mean(values: list[float]) -> float:
    return sum(values) / len(values) if values else 0.0


def _average_days(days: list[WorkerMetrics]) -> dict:
    """Field-wise mean of per-day metrics, rounded only at the end."""

    return {
        "active_time_seconds": round_seconds(_mean([day.active_seconds for day in days])),
        "idle_time_seconds": round_seconds(_mean([day.idle_seconds for day in days])),
        "absent_time_seconds": round_seconds(_mean([day.absent_seconds for day in days])),
        "utilization_pct": round_rate(_mean([day.utilization_pct for day in days])),
        "total_units_produced": round_seconds(_mean([day.total_units for day in days])),
        "units_per_hour": round_rate(_mean([day.units_per_hour for day in days])),
        "shift_duration_seconds": round_seconds(
            _mean([day.shift_duration_seconds for day in days])
        ),
    }


def parse_entity_type(raw: Optional[str]) -> models.CacheEntityType:
    if not raw:
        raise AnalyticsError("entity_id and entity_type are required")
    try:
        return models.CacheEntityType(raw.strip().lower())
    except ValueError as exc:
        allowed = ", ".join(item.value for item in models.CacheEntityType)
        raise AnalyticsError(f"entity_type must be one of: {allowed}") from exc


class AnalyticsService:
    """Time series, quality alerts, shift comparisons and model breakdowns."""

    @staticmethod
    def time_series(
        db: Session,
        entity_type: Optional[str],
        entity_id: Optional[str],
        window: TimeWindow = TimeWindow(),
    ) -> list[schemas.TimeSeriesPoint]:
        kind = parse_entity_type(entity_type)
        identifier = (entity_id or "").strip()
        if not identifier:
            raise AnalyticsError("entity_id and entity_type are required")
        query = TimeSeriesQuery(entity_type=kind, entity_id=identifier, window=window)
        return MetricsCacheService.time_series(db, query)

    @staticmethod
    def low_confidence_alerts(
        db: Session,
        threshold: float = DEFAULT_ALERT_THRESHOLD,
        window: TimeWindow = TimeWindow(),
    ) -> AlertBatch:
        """Events whose confidence is strictly below ``threshold``, newest first."""

        if not 0 <= threshold <= 1:
            raise AnalyticsError("threshold must be between 0 and 1")
        event_filter = EventFilter(window=window, max_confidence=threshold)
        events = EventStore.find(db, event_filter, newest_first=True, limit=MAX_ALERTS)
        total = EventStore.count(db, event_filter)
        return AlertBatch(total=total, threshold=threshold, events=events)

    @staticmethod
    def shift_comparison(
        db: Session, worker_id: str, today: Optional[date] = None
    ) -> schemas.ShiftComparison:
        """Compare today's metrics against the mean of the previous week.

        Days without any events for the worker are left out of the mean.
        """

        zone = reference_timezone()
        reference_day = today or local_today(zone)

        current = MetricsService.worker_metrics(
            db, worker_id=worker_id, window=day_window(reference_day, zone)
        )[0]

        first_day = reference_day - timedelta(days=SHIFT_COMPARISON_DAYS)
        history_window = TimeWindow(
            start=day_window(first_day, zone).start,
            end=day_window(reference_day - timedelta(days=1), zone).end,
        )
        by_day: Dict[date, list[models.Event]] = defaultdict(list)
        for event in EventStore.find(
            db, EventFilter(worker_id=worker_id, window=history_window)
        ):
            by_day[local_day(event.timestamp, zone)].append(event)

        sampled = [summarize_worker(worker_id, by_day[day]) for day in sorted(by_day)]
        average = schemas.ShiftAverage(**_average_days(sampled)) if sampled else None

        return schemas.ShiftComparison(
            worker_id=worker_id,
            today=schemas.WorkerMetricsRead(**current.to_dict()),
            seven_day_avg=average,
            days_sampled=len(sampled),
        )

    @staticmethod
    def model_versions(db: Session) -> list[schemas.ModelVersionSummary]:
        last_seen = func.max(models.Event.timestamp)
        statement = (
            select(
                models.Event.model_version,
                func.count(models.Event.id),
                func.avg(models.Event.confidence),
                func.min(models.Event.timestamp),
                last_seen,
            )
            .group_by(models.Event.model_version)
            .order_by(last_seen.desc())
        )
        summaries = []
        for version, event_count, avg_confidence, first, last in db.execute(statement):
            summaries.append(
                schemas.ModelVersionSummary(
                    version=version,
                    event_count=int(event_count),
                    avg_confidence=float(
                        Decimal(str(avg_confidence or 0)).quantize(
                            Decimal("0.0001"), rounding=ROUND_HALF_UP
                        )
                    ),
                    first_seen=first,
                    last_seen=last,
                )
            )
        return summaries
