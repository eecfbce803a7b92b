from __future__ import annotations

from datetime import date, timedelta

import pytest

from backend.app.services.analytics import AnalyticsError, AnalyticsService
from backend.app.services.metrics import WorkerNotFoundError
from backend.tests.helpers import event_payload, utc


@pytest.fixture
def confidence_mix(store_events):
    start = utc(2026, 1, 5, 6, 0)
    payloads = [
        event_payload(start + timedelta(minutes=index), "working", confidence=0.3)
        for index in range(105)
    ]
    payloads += [
        event_payload(start + timedelta(hours=3), "idle", confidence=0.5),
        event_payload(start + timedelta(hours=4), "idle", confidence=0.9),
    ]
    store_events(payloads)


def test_alerts_are_capped_sorted_and_counted(client, confidence_mix):
    response = client.get("/api/analytics/alerts", params={"threshold": 0.5})

    body = response.json()
    assert response.status_code == 200
    assert body["count"] == 105
    assert body["threshold"] == 0.5
    assert len(body["alerts"]) == 100
    assert all(alert["confidence"] < 0.5 for alert in body["alerts"])
    timestamps = [alert["timestamp"] for alert in body["alerts"]]
    assert timestamps == sorted(timestamps, reverse=True)


def test_alerts_default_threshold(client, confidence_mix):
    body = client.get("/api/analytics/alerts").json()

    assert body["threshold"] == 0.75
    assert body["count"] == 106


def test_alerts_respect_the_window(client, confidence_mix):
    response = client.get(
        "/api/analytics/alerts",
        params={"threshold": 0.5, "from": "2026-01-05T06:00:00Z", "to": "2026-01-05T06:09:00Z"},
    )

    assert response.json()["count"] == 10


def test_alerts_reject_out_of_range_threshold(client):
    assert client.get("/api/analytics/alerts", params={"threshold": 1.5}).status_code == 422


def test_threshold_validation_in_service(db_session):
    with pytest.raises(AnalyticsError):
        AnalyticsService.low_confidence_alerts(db_session, threshold=-0.1)


def test_shift_comparison_averages_sampled_days_only(db_session, store_events):
    store_events(
        [
            event_payload(utc(2026, 1, 10, 8, 0), "working"),
            event_payload(utc(2026, 1, 10, 9, 0), "idle"),
            event_payload(utc(2026, 1, 8, 8, 0), "working"),
            event_payload(utc(2026, 1, 8, 10, 0), "idle"),
            event_payload(utc(2026, 1, 8, 10, 30), "absent"),
            event_payload(utc(2026, 1, 5, 8, 0), "working"),
            event_payload(utc(2026, 1, 5, 8, 30), "idle"),
            event_payload(utc(2026, 1, 2, 8, 0), "working"),
            event_payload(utc(2026, 1, 2, 12, 0), "idle"),
        ]
    )

    comparison = AnalyticsService.shift_comparison(db_session, "W1", today=date(2026, 1, 10))

    assert comparison.today.active_time_seconds == 3600
    assert comparison.days_sampled == 2
    assert comparison.seven_day_avg.active_time_seconds == 4500
    assert comparison.seven_day_avg.idle_time_seconds == 900
    assert comparison.seven_day_avg.utilization_pct == 90.0


def test_shift_comparison_without_history(db_session, store_events):
    store_events([event_payload(utc(2026, 1, 10, 8, 0), "working")])

    comparison = AnalyticsService.shift_comparison(db_session, "W1", today=date(2026, 1, 10))

    assert comparison.days_sampled == 0
    assert comparison.seven_day_avg is None


def test_shift_comparison_unknown_worker(db_session):
    with pytest.raises(WorkerNotFoundError):
        AnalyticsService.shift_comparison(db_session, "ghost", today=date(2026, 1, 10))


def test_shift_comparison_endpoint(client, store_events):
    store_events([event_payload(utc(2026, 1, 5, 8, 0), "working")])

    assert client.get("/api/analytics/shift-comparison/ghost").status_code == 404
    body = client.get("/api/analytics/shift-comparison/W1").json()
    assert body["worker_id"] == "W1"
    assert set(body) == {"worker_id", "today", "seven_day_avg", "days_sampled"}


def test_model_versions_are_ordered_by_last_seen(client, db_session, store_events):
    store_events(
        [
            event_payload(utc(2026, 1, 5, 8, 0), "working", confidence=0.9),
            event_payload(utc(2026, 1, 5, 9, 0), "idle", confidence=0.8),
            event_payload(utc(2026, 1, 5, 10, 0), "working", confidence=0.7),
            event_payload(utc(2026, 1, 6, 8, 0), "working", confidence=0.1, model_version="cv-activity-v2.0.0"),
            event_payload(utc(2026, 1, 6, 9, 0), "idle", confidence=0.2, model_version="cv-activity-v2.0.0"),
            event_payload(utc(2026, 1, 6, 10, 0), "working", confidence=0.25, model_version="cv-activity-v2.0.0"),
        ]
    )

    summaries = AnalyticsService.model_versions(db_session)

    assert [summary.version for summary in summaries] == [
        "cv-activity-v2.0.0",
        "cv-activity-v1.0.0",
    ]
    assert summaries[0].event_count == 3
    assert summaries[0].avg_confidence == 0.1833
    assert summaries[1].avg_confidence == pytest.approx(0.8)
    assert summaries[1].first_seen == utc(2026, 1, 5, 8, 0)
    assert summaries[1].last_seen == utc(2026, 1, 5, 10, 0)
    assert len(client.get("/api/analytics/model-versions").json()) == 2


def test_time_series_endpoint(client, store_events):
    store_events(
        [
            event_payload(utc(2026, 1, 5, 8, 0), "working"),
            event_payload(utc(2026, 1, 5, 10, 0), "idle"),
        ]
    )

    response = client.get(
        "/api/analytics/timeseries", params={"entity_id": "W1", "entity_type": "worker"}
    )

    assert response.json() == [
        {"date": "2026-01-05", "units": 0, "active_hours": 2.0, "utilization_pct": 100.0}
    ]


@pytest.mark.parametrize(
    "params",
    [
        {"entity_type": "worker"},
        {"entity_id": "W1"},
        {"entity_id": "W1", "entity_type": "robot"},
    ],
)
def test_time_series_requires_valid_entity(client, params):
    assert client.get("/api/analytics/timeseries", params=params).status_code == 400
