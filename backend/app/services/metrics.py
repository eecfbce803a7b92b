"""Aggregated productivity metrics for workers, workstations and the factory."""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Callable, Dict, Iterable, Optional

from sqlalchemy.orm import Session

from .. import models
from .durations import DurationTotals, reconstruct_durations, sort_chronologically
from .events import EventFilter, EventStore, TimeWindow
from .registry import RegistryService

SECONDS_PER_HOUR = 3600


class MetricsServiceError(Exception):
    """Base error for metrics lookups."""


class WorkerNotFoundError(MetricsServiceError):
    """Raised when a worker id is unknown to both the registry and the event log."""


class WorkstationNotFoundError(MetricsServiceError):
    """Raised when a workstation id is unknown to both the registry and the event log."""


def round_seconds(value: float) -> int:
    return int(Decimal(str(value)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def round_rate(value: float) -> float:
    return float(Decimal(str(value)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))


def worker_utilization(working_seconds: float, idle_seconds: float) -> float:
    """Share of a worker's present time spent working, in percent."""

    present = working_seconds + idle_seconds
    if present <= 0:
        return 0.0
    return working_seconds / present * 100


def station_utilization(working_seconds: float, occupancy_seconds: float) -> float:
    """Share of a station's occupied time spent working, in percent."""

    if occupancy_seconds <= 0:
        return 0.0
    return working_seconds / occupancy_seconds * 100


def units_per_active_hour(units: int, working_seconds: float) -> float:
    hours = working_seconds / SECONDS_PER_HOUR
    if hours <= 0:
        return 0.0
    return units / hours


def station_throughput(units: int, occupancy_seconds: float) -> float:
    hours = occupancy_seconds / SECONDS_PER_HOUR
    if hours <= 0:
        return 0.0
    return units / hours


@dataclass(frozen=True)
class WorkerMetrics:
    """Raw, unrounded metrics for one worker."""

    worker_id: str
    active_seconds: float = 0.0
    idle_seconds: float = 0.0
    absent_seconds: float = 0.0
    total_units: int = 0
    shift_duration_seconds: float = 0.0

    @property
    def utilization_pct(self) -> float:
        return worker_utilization(self.active_seconds, self.idle_seconds)

    @property
    def units_per_hour(self) -> float:
        return units_per_active_hour(self.total_units, self.active_seconds)

    def to_dict(self) -> dict:
        return {
            "worker_id": self.worker_id,
            "active_time_seconds": round_seconds(self.active_seconds),
            "idle_time_seconds": round_seconds(self.idle_seconds),
            "absent_time_seconds": round_seconds(self.absent_seconds),
            "utilization_pct": round_rate(self.utilization_pct),
            "total_units_produced": self.total_units,
            "units_per_hour": round_rate(self.units_per_hour),
            "shift_duration_seconds": round_seconds(self.shift_duration_seconds),
        }


@dataclass(frozen=True)
class WorkstationMetrics:
    """Raw, unrounded metrics for one workstation."""

    station_id: str
    working_seconds: float = 0.0
    idle_seconds: float = 0.0
    absent_seconds: float = 0.0
    total_units: int = 0

    @property
    def occupancy_seconds(self) -> float:
        return self.working_seconds + self.idle_seconds

    @property
    def utilization_pct(self) -> float:
        return station_utilization(self.working_seconds, self.occupancy_seconds)

    @property
    def throughput_rate(self) -> float:
        return station_throughput(self.total_units, self.occupancy_seconds)

    def to_dict(self) -> dict:
        return {
            "station_id": self.station_id,
            "occupancy_seconds": round_seconds(self.occupancy_seconds),
            "utilization_pct": round_rate(self.utilization_pct),
            "total_units_produced": self.total_units,
            "throughput_rate": round_rate(self.throughput_rate),
        }


@dataclass(frozen=True)
class FactoryMetrics:
    total_productive_seconds: float
    total_idle_seconds: float
    total_absent_seconds: float
    total_units_produced: int
    avg_production_rate: float
    avg_worker_utilization: float
    total_workers_active: int
    total_events: int

    def to_dict(self) -> dict:
        return {
            "total_productive_seconds": round_seconds(self.total_productive_seconds),
            "total_units_produced": self.total_units_produced,
            "avg_production_rate": round_rate(self.avg_production_rate),
            "avg_worker_utilization": round_rate(self.avg_worker_utilization),
            "total_workers_active": self.total_workers_active,
            "total_events": self.total_events,
        }


def _mean(values: list[float]) -> float:
    if not values:
        return 0.0
    return sum(values) / len(values)


def _group_events(
    events: Iterable[models.Event], key: Callable[[models.Event], str]
) -> Dict[str, list[models.Event]]:
    grouped: Dict[str, list[models.Event]] = defaultdict(list)
    for event in events:
        grouped[key(event)].append(event)
    return grouped


def summarize_worker(worker_id: str, events: list[models.Event]) -> WorkerMetrics:
    ordered = sort_chronologically(events)
    totals: DurationTotals = reconstruct_durations(ordered)
    shift = 0.0
    if len(ordered) > 1:
        shift = max((ordered[-1].timestamp - ordered[0].timestamp).total_seconds(), 0.0)
    return WorkerMetrics(
        worker_id=worker_id,
        active_seconds=totals.working_seconds,
        idle_seconds=totals.idle_seconds,
        absent_seconds=totals.absent_seconds,
        total_units=totals.total_units,
        shift_duration_seconds=shift,
    )


def summarize_workstation(station_id: str, events: list[models.Event]) -> WorkstationMetrics:
    totals = reconstruct_durations(events)
    return WorkstationMetrics(
        station_id=station_id,
        working_seconds=totals.working_seconds,
        idle_seconds=totals.idle_seconds,
        absent_seconds=totals.absent_seconds,
        total_units=totals.total_units,
    )


def summarize_factory(workers: list[WorkerMetrics], total_events: int) -> FactoryMetrics:
    """Roll worker metrics up; averages only consider workers with a shift."""

    active = [worker for worker in workers if worker.shift_duration_seconds > 0]
    return FactoryMetrics(
        total_productive_seconds=sum(worker.active_seconds for worker in workers),
        total_idle_seconds=sum(worker.idle_seconds for worker in workers),
        total_absent_seconds=sum(worker.absent_seconds for worker in workers),
        total_units_produced=sum(worker.total_units for worker in workers),
        avg_production_rate=_mean([worker.units_per_hour for worker in active]),
        avg_worker_utilization=_mean([worker.utilization_pct for worker in active]),
        total_workers_active=len(active),
        total_events=total_events,
    )


class MetricsService:
    """Computes metrics on demand from the raw event log."""

    @staticmethod
    def worker_metrics(
        db: Session,
        worker_id: Optional[str] = None,
        window: TimeWindow = TimeWindow(),
    ) -> list[WorkerMetrics]:
        events = EventStore.find(db, EventFilter(worker_id=worker_id, window=window))
        grouped = _group_events(events, lambda event: event.worker_id)

        if worker_id and worker_id not in grouped:
            MetricsService.ensure_worker_known(db, worker_id)
            return [WorkerMetrics(worker_id=worker_id)]

        return [
            summarize_worker(wid, worker_events)
            for wid, worker_events in sorted(grouped.items())
        ]

    @staticmethod
    def workstation_metrics(
        db: Session,
        station_id: Optional[str] = None,
        window: TimeWindow = TimeWindow(),
    ) -> list[WorkstationMetrics]:
        events = EventStore.find(db, EventFilter(workstation_id=station_id, window=window))
        grouped = _group_events(events, lambda event: event.workstation_id)

        if station_id and station_id not in grouped:
            MetricsService.ensure_workstation_known(db, station_id)
            return [WorkstationMetrics(station_id=station_id)]

        return [
            summarize_workstation(sid, station_events)
            for sid, station_events in sorted(grouped.items())
        ]

    @staticmethod
    def factory_metrics(db: Session, window: TimeWindow = TimeWindow()) -> FactoryMetrics:
        workers = MetricsService.worker_metrics(db, window=window)
        return summarize_factory(workers, EventStore.count(db))

    @staticmethod
    def ensure_worker_known(db: Session, worker_id: str) -> None:
        if RegistryService.get_worker(db, worker_id) is not None:
            return
        if EventStore.has_events_for(db, worker_id=worker_id):
            return
        raise WorkerNotFoundError(f"Worker {worker_id} not found")

    @staticmethod
    def ensure_workstation_known(db: Session, station_id: str) -> None:
        if RegistryService.get_workstation(db, station_id) is not None:
            return
        if EventStore.has_events_for(db, workstation_id=station_id):
            return
        raise WorkstationNotFoundError(f"Workstation {station_id} not found")
