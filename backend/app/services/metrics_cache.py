"""Daily metric buckets with a read-through, recompute-on-miss policy."""

from __future__ import annotations

import logging
import os
import threading
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
from typing import Dict, Iterable, Optional

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from .. import models, schemas
from ..database import session_scope
from .day_windows import day_key, day_window, local_day, reference_timezone, today
from .events import EventFilter, EventStore, TimeWindow
from .metrics import (
    SECONDS_PER_HOUR,
    round_rate,
    round_seconds,
    summarize_factory,
    summarize_worker,
    summarize_workstation,
)
from .scheduler_monitor import JOB_METRICS_CACHE_REFRESH, SchedulerMonitor

LOGGER = logging.getLogger(__name__)

RETENTION_DAYS_ENV = "METRICS_CACHE_RETENTION_DAYS"
DEFAULT_RETENTION_DAYS = 90


def get_retention_days() -> int:
    raw = os.getenv(RETENTION_DAYS_ENV)
    if raw is None:
        return DEFAULT_RETENTION_DAYS
    try:
        value = int(raw)
    except ValueError:
        LOGGER.warning("Invalid %s=%s; using %s", RETENTION_DAYS_ENV, raw, DEFAULT_RETENTION_DAYS)
        return DEFAULT_RETENTION_DAYS
    if value <= 0:
        LOGGER.warning("%s must be positive; using %s", RETENTION_DAYS_ENV, DEFAULT_RETENTION_DAYS)
        return DEFAULT_RETENTION_DAYS
    return value


def _freshness_cutoff(now: Optional[datetime] = None) -> datetime:
    current = now or datetime.now(timezone.utc)
    return current - timedelta(days=get_retention_days())


@dataclass(frozen=True)
class TimeSeriesQuery:
    entity_type: models.CacheEntityType
    entity_id: str
    window: TimeWindow = field(default_factory=TimeWindow)

    def event_filter(self, **overrides) -> EventFilter:
        worker_id = None
        workstation_id = None
        if self.entity_type is models.CacheEntityType.WORKER:
            worker_id = self.entity_id
        elif self.entity_type is models.CacheEntityType.STATION:
            workstation_id = self.entity_id
        options = {"window": self.window, **overrides}
        return EventFilter(worker_id=worker_id, workstation_id=workstation_id, **options)


def _point(day: str, units: int, active_seconds: float, utilization: float) -> schemas.TimeSeriesPoint:
    return schemas.TimeSeriesPoint(
        date=day,
        units=units,
        active_hours=round_rate(active_seconds / SECONDS_PER_HOUR),
        utilization_pct=round_rate(utilization),
    )


class MetricsCacheService:
    """Reads and maintains :class:`models.MetricsCacheBucket` rows."""

    @staticmethod
    def try_cache(
        db: Session, query: TimeSeriesQuery, *, now: Optional[datetime] = None
    ) -> Optional[list[schemas.TimeSeriesPoint]]:
        """Return the cached series, or ``None`` when no fresh bucket matches."""

        statement = select(models.MetricsCacheBucket).where(
            models.MetricsCacheBucket.entity_type == query.entity_type,
            models.MetricsCacheBucket.entity_id == query.entity_id,
            models.MetricsCacheBucket.computed_at >= _freshness_cutoff(now),
        )
        if query.window.start is not None:
            statement = statement.where(
                models.MetricsCacheBucket.date >= day_key(local_day(query.window.start))
            )
        if query.window.end is not None:
            statement = statement.where(
                models.MetricsCacheBucket.date <= day_key(local_day(query.window.end))
            )
        buckets = list(
            db.execute(statement.order_by(models.MetricsCacheBucket.date)).scalars()
        )
        if not buckets:
            return None
        return [
            _point(bucket.date, bucket.units, bucket.active_seconds, bucket.utilization_pct)
            for bucket in buckets
        ]

    @staticmethod
    def _units_by_day(db: Session, query: TimeSeriesQuery) -> Dict[date, int]:
        counters = EventStore.find(
            db, query.event_filter(event_type=models.EventType.PRODUCT_COUNT)
        )
        zone = reference_timezone()
        units: Dict[date, int] = defaultdict(int)
        for event in counters:
            units[local_day(event.timestamp, zone)] += event.count or 0
        return units

    @staticmethod
    def compute_live(db: Session, query: TimeSeriesQuery) -> list[schemas.TimeSeriesPoint]:
        """Recompute one point per calendar day that holds matching events.

        The window only selects the days; durations are always reconstructed
        over the whole day so partial windows agree with the cached buckets.
        Units stay restricted to the window.
        """

        zone = reference_timezone()
        days = sorted(
            {local_day(event.timestamp, zone) for event in EventStore.find(db, query.event_filter())}
        )
        units_by_day = MetricsCacheService._units_by_day(db, query)

        points = []
        for day in days:
            events = EventStore.find(db, query.event_filter(window=day_window(day, zone)))
            units = units_by_day.get(day, 0)
            if query.entity_type is models.CacheEntityType.WORKER:
                worker = summarize_worker(query.entity_id, events)
                points.append(
                    _point(day_key(day), units, worker.active_seconds, worker.utilization_pct)
                )
            elif query.entity_type is models.CacheEntityType.STATION:
                station = summarize_workstation(query.entity_id, events)
                points.append(
                    _point(day_key(day), units, station.working_seconds, station.utilization_pct)
                )
            else:
                factory = summarize_factory(_summarize_workers(events), total_events=len(events))
                points.append(
                    _point(
                        day_key(day),
                        units,
                        factory.total_productive_seconds,
                        factory.avg_worker_utilization,
                    )
                )
        return points

    @staticmethod
    def time_series(db: Session, query: TimeSeriesQuery) -> list[schemas.TimeSeriesPoint]:
        cached = MetricsCacheService.try_cache(db, query)
        if cached is not None:
            LOGGER.debug("Serving %s/%s time series from cache", query.entity_type.value, query.entity_id)
            return cached
        return MetricsCacheService.compute_live(db, query)

    @staticmethod
    def refresh_day(db: Session, day: date, *, now: Optional[datetime] = None) -> int:
        """Upsert worker, station and factory buckets for ``day``.

        Returns the number of buckets written. Days without events produce no
        buckets so cached and live series cover the same days.
        """

        computed_at = now or datetime.now(timezone.utc)
        events = EventStore.find(db, EventFilter(window=day_window(day)))
        if not events:
            return 0

        workers = _summarize_workers(events)
        stations: Dict[str, list[models.Event]] = defaultdict(list)
        for event in events:
            stations[event.workstation_id].append(event)
        factory = summarize_factory(workers, total_events=len(events))

        payloads: Dict[tuple[models.CacheEntityType, str], dict] = {}
        for worker in workers:
            payloads[(models.CacheEntityType.WORKER, worker.worker_id)] = {
                "active_seconds": round_seconds(worker.active_seconds),
                "idle_seconds": round_seconds(worker.idle_seconds),
                "absent_seconds": round_seconds(worker.absent_seconds),
                "units": worker.total_units,
                "occupancy_seconds": round_seconds(worker.active_seconds + worker.idle_seconds),
                "utilization_pct": round_rate(worker.utilization_pct),
            }
        for station_id, station_events in stations.items():
            station = summarize_workstation(station_id, station_events)
            payloads[(models.CacheEntityType.STATION, station_id)] = {
                "active_seconds": round_seconds(station.working_seconds),
                "idle_seconds": round_seconds(station.idle_seconds),
                "absent_seconds": round_seconds(station.absent_seconds),
                "units": station.total_units,
                "occupancy_seconds": round_seconds(station.occupancy_seconds),
                "utilization_pct": round_rate(station.utilization_pct),
            }
        payloads[(models.CacheEntityType.FACTORY, models.FACTORY_ENTITY_ID)] = {
            "active_seconds": round_seconds(factory.total_productive_seconds),
            "idle_seconds": round_seconds(factory.total_idle_seconds),
            "absent_seconds": round_seconds(factory.total_absent_seconds),
            "units": factory.total_units_produced,
            "occupancy_seconds": round_seconds(
                factory.total_productive_seconds + factory.total_idle_seconds
            ),
            "utilization_pct": round_rate(factory.avg_worker_utilization),
        }

        key = day_key(day)
        existing = {
            (bucket.entity_type, bucket.entity_id): bucket
            for bucket in db.execute(
                select(models.MetricsCacheBucket).where(models.MetricsCacheBucket.date == key)
            ).scalars()
        }
        for (entity_type, entity_id), values in payloads.items():
            bucket = existing.get((entity_type, entity_id))
            if bucket is None:
                bucket = models.MetricsCacheBucket(
                    date=key, entity_type=entity_type, entity_id=entity_id
                )
                db.add(bucket)
            for name, value in values.items():
                setattr(bucket, name, value)
            bucket.computed_at = computed_at
        db.commit()
        return len(payloads)

    @staticmethod
    def refresh_range(db: Session, days: Iterable[date], *, now: Optional[datetime] = None) -> int:
        return sum(MetricsCacheService.refresh_day(db, day, now=now) for day in days)

    @staticmethod
    def purge_expired(db: Session, *, now: Optional[datetime] = None) -> int:
        """Delete buckets that aged out of the retention window."""

        result = db.execute(
            delete(models.MetricsCacheBucket).where(
                models.MetricsCacheBucket.computed_at < _freshness_cutoff(now)
            )
        )
        db.commit()
        return int(result.rowcount or 0)


def _summarize_workers(events: Iterable[models.Event]):
    grouped: Dict[str, list[models.Event]] = defaultdict(list)
    for event in events:
        grouped[event.worker_id].append(event)
    return [summarize_worker(worker_id, items) for worker_id, items in sorted(grouped.items())]


LOOKBACK_DAYS_ENV = "METRICS_CACHE_LOOKBACK_DAYS"
REFRESH_INTERVAL_ENV = "METRICS_CACHE_REFRESH_INTERVAL_MINUTES"
RETENTION_ENABLED_ENV = "ENABLE_METRICS_CACHE_RETENTION"

DEFAULT_LOOKBACK_DAYS = 1
DEFAULT_REFRESH_INTERVAL = timedelta(minutes=60)

_refresh_thread: Optional[threading.Thread] = None
_refresh_stop = threading.Event()


def _read_int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        LOGGER.warning("Invalid %s=%s; using %s", name, raw, default)
        return default


def _read_bool_env(name: str, default: bool = True) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def _resolve_interval() -> timedelta:
    minutes = _read_int_env(
        REFRESH_INTERVAL_ENV, int(DEFAULT_REFRESH_INTERVAL.total_seconds() / 60)
    )
    if minutes <= 0:
        LOGGER.warning("%s must be positive; using the default interval", REFRESH_INTERVAL_ENV)
        return DEFAULT_REFRESH_INTERVAL
    return timedelta(minutes=minutes)


def completed_days(reference: date, lookback: int) -> list[date]:
    """Return the ``lookback`` days before ``reference``, oldest first."""

    return [reference - timedelta(days=offset) for offset in range(max(lookback, 0), 0, -1)]


def run_cache_cycle(now: Optional[datetime] = None) -> tuple[int, int]:
    """Refresh recently completed days and purge expired buckets.

    Returns ``(buckets_written, buckets_purged)``.
    """

    lookback = _read_int_env(LOOKBACK_DAYS_ENV, DEFAULT_LOOKBACK_DAYS)
    days = completed_days(today(), lookback)
    purged = 0
    with session_scope() as session:
        written = MetricsCacheService.refresh_range(session, days, now=now)
        if _read_bool_env(RETENTION_ENABLED_ENV, True):
            purged = MetricsCacheService.purge_expired(session, now=now)
    if written or purged:
        LOGGER.info("Metrics cache refreshed: %s buckets written, %s purged", written, purged)
    return written, purged


def _refresh_worker(interval: timedelta) -> None:
    while not _refresh_stop.is_set():
        try:
            written, purged = run_cache_cycle()
        except Exception as exc:  # pragma: no cover - logged and retried next cycle
            LOGGER.exception("Metrics cache refresh failed: %s", exc)
            SchedulerMonitor.record_error(JOB_METRICS_CACHE_REFRESH, str(exc))
        else:
            SchedulerMonitor.record_success(
                JOB_METRICS_CACHE_REFRESH, buckets_written=written, buckets_purged=purged
            )
        SchedulerMonitor.record_tick(JOB_METRICS_CACHE_REFRESH)
        _refresh_stop.wait(max(interval.total_seconds(), 60.0))


def start_metrics_cache_scheduler() -> None:
    """Start the background worker that keeps daily buckets populated."""

    global _refresh_thread
    if _refresh_thread and _refresh_thread.is_alive():
        return

    interval = _resolve_interval()
    _refresh_stop.clear()
    _refresh_thread = threading.Thread(target=_refresh_worker, args=(interval,), daemon=True)
    _refresh_thread.start()
    LOGGER.info("Metrics cache scheduler started every %s", interval)


def stop_metrics_cache_scheduler() -> None:
    """Stop the metrics cache background worker."""

    _refresh_stop.set()
    if _refresh_thread and _refresh_thread.is_alive():
        _refresh_thread.join(timeout=5)
        LOGGER.info("Metrics cache scheduler stopped")
