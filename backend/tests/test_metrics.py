from __future__ import annotations

import pytest

from backend.app.services.events import TimeWindow
from backend.app.services.metrics import (
    MetricsService,
    WorkerMetrics,
    WorkerNotFoundError,
    WorkstationMetrics,
    round_rate,
    round_seconds,
    station_utilization,
    summarize_factory,
    worker_utilization,
)
from backend.tests.helpers import event_payload, utc

DAY = {"from": "2026-01-05T00:00:00Z", "to": "2026-01-05T23:59:59.999Z"}


@pytest.fixture
def scenario_events(store_events):
    store_events(
        [
            event_payload(utc(2026, 1, 5, 8, 0), "working"),
            event_payload(utc(2026, 1, 5, 9, 30), "idle"),
            event_payload(utc(2026, 1, 5, 9, 45), "working"),
            event_payload(utc(2026, 1, 5, 10, 0), "product_count", count=9),
            event_payload(utc(2026, 1, 5, 10, 0), "working"),
            event_payload(utc(2026, 1, 5, 11, 45), "absent"),
            event_payload(
                utc(2026, 1, 5, 12, 0), "product_count", worker_id="W5", workstation_id="S5", count=5
            ),
        ]
    )


def test_worker_metrics_reconstruct_durations(client, scenario_events):
    response = client.get("/api/metrics/workers", params={"worker_id": "W1", **DAY})

    assert response.status_code == 200
    assert response.json() == [
        {
            "worker_id": "W1",
            "active_time_seconds": 12600,
            "idle_time_seconds": 900,
            "absent_time_seconds": 0,
            "utilization_pct": 93.33,
            "total_units_produced": 9,
            "units_per_hour": 2.57,
            "shift_duration_seconds": 13500,
        }
    ]


def test_lone_counter_event_produces_units_only(client, scenario_events):
    response = client.get("/api/metrics/workers", params={"worker_id": "W5"})

    body = response.json()[0]
    assert body["total_units_produced"] == 5
    assert body["active_time_seconds"] == body["idle_time_seconds"] == 0
    assert body["units_per_hour"] == 0
    assert body["shift_duration_seconds"] == 0


def test_all_workers_are_listed_in_id_order(client, scenario_events):
    response = client.get("/api/metrics/workers")

    assert [item["worker_id"] for item in response.json()] == ["W1", "W5"]


def test_workstation_metrics_use_occupancy(client, scenario_events):
    response = client.get("/api/metrics/workstations", params={"station_id": "S1"})

    assert response.json() == [
        {
            "station_id": "S1",
            "occupancy_seconds": 13500,
            "utilization_pct": 93.33,
            "total_units_produced": 9,
            "throughput_rate": 2.4,
        }
    ]


def test_unknown_worker_returns_404(client, scenario_events):
    response = client.get("/api/metrics/workers", params={"worker_id": "ghost"})

    assert response.status_code == 404


def test_unknown_workstation_returns_404(client, scenario_events):
    response = client.get("/api/metrics/workstations", params={"station_id": "ghost"})

    assert response.status_code == 404


def test_registered_worker_without_events_gets_zero_record(client, seed_registry):
    response = client.get("/api/metrics/workers", params={"worker_id": "W9"})

    assert response.status_code == 200
    body = response.json()[0]
    assert body["worker_id"] == "W9"
    assert body["active_time_seconds"] == 0
    assert body["utilization_pct"] == 0


def test_known_worker_outside_window_gets_zero_record(client, scenario_events):
    response = client.get(
        "/api/metrics/workers",
        params={"worker_id": "W1", "from": "2026-02-01T00:00:00Z", "to": "2026-02-02T00:00:00Z"},
    )

    assert response.status_code == 200
    assert response.json()[0]["active_time_seconds"] == 0


def test_inverted_window_is_rejected(client):
    response = client.get(
        "/api/metrics/factory",
        params={"from": "2026-01-06T00:00:00Z", "to": "2026-01-05T00:00:00Z"},
    )

    assert response.status_code == 400


def test_factory_average_excludes_inactive_workers(client, store_events):
    store_events(
        [
            event_payload(utc(2026, 1, 5, 8, 0), "working", worker_id="W1"),
            event_payload(utc(2026, 1, 5, 8, 48), "idle", worker_id="W1"),
            event_payload(utc(2026, 1, 5, 9, 0), "absent", worker_id="W1"),
            event_payload(utc(2026, 1, 5, 9, 0), "product_count", worker_id="W1", count=4),
            event_payload(utc(2026, 1, 5, 10, 0), "working", worker_id="W3"),
            event_payload(utc(2026, 1, 6, 8, 0), "working", worker_id="W2"),
            event_payload(utc(2026, 1, 6, 9, 0), "idle", worker_id="W2"),
        ]
    )

    response = client.get("/api/metrics/factory", params=DAY)

    assert response.json() == {
        "total_productive_seconds": 2880,
        "total_units_produced": 4,
        "avg_production_rate": 5.0,
        "avg_worker_utilization": 80.0,
        "total_workers_active": 1,
        "total_events": 7,
    }


def test_factory_metrics_on_empty_store(db_session):
    metrics = MetricsService.factory_metrics(db_session)

    assert metrics.to_dict() == {
        "total_productive_seconds": 0,
        "total_units_produced": 0,
        "avg_production_rate": 0,
        "avg_worker_utilization": 0,
        "total_workers_active": 0,
        "total_events": 0,
    }


def test_unknown_worker_raises_in_service(db_session):
    with pytest.raises(WorkerNotFoundError):
        MetricsService.worker_metrics(db_session, worker_id="ghost", window=TimeWindow())


def test_factory_averages_use_unrounded_values():
    workers = [
        WorkerMetrics("A", active_seconds=1, idle_seconds=2, shift_duration_seconds=3),
        WorkerMetrics("B", active_seconds=2, idle_seconds=1, shift_duration_seconds=3),
    ]

    factory = summarize_factory(workers, total_events=6)

    assert factory.avg_worker_utilization == pytest.approx(50.0)
    assert factory.to_dict()["avg_worker_utilization"] == 50.0


def test_utilization_formulas_guard_zero_denominators():
    assert worker_utilization(0, 0) == 0
    assert station_utilization(10, 0) == 0
    assert WorkstationMetrics("S").throughput_rate == 0


def test_rounding_is_half_up():
    assert round_rate(2.345) == 2.35
    assert round_rate(93.3333) == 93.33
    assert round_seconds(0.5) == 1
    assert round_seconds(1.49) == 1
