from __future__ import annotations

import uuid

import pytest
from sqlalchemy import func, select

from backend.app import models, schemas
from backend.app.services.dedup import build_dedup_key
from backend.app.services.events import EventStore, EventStoreError
from backend.app.services.ingestion import (
    EmptyPayloadError,
    IngestionService,
    IngestionStorageError,
)
from backend.app.services.notifier import EVENTS_INGESTED
from backend.tests.helpers import event_payload, utc


def _batch() -> list[dict]:
    return [
        event_payload(utc(2026, 1, 5, 8, 0), "working"),
        event_payload(utc(2026, 1, 5, 9, 0), "idle"),
        event_payload(utc(2026, 1, 5, 9, 5), "product_count", count=4),
    ]


def _stored_count(db_session) -> int:
    return db_session.execute(select(func.count()).select_from(models.Event)).scalar_one()


def test_resubmitting_a_batch_is_idempotent(client, db_session):
    first = client.post("/api/events", json=_batch())
    second = client.post("/api/events", json=_batch())

    assert first.status_code == 201
    assert first.json() == {"inserted": 3, "skipped": 0, "total": 3}
    assert second.status_code == 201
    assert second.json() == {"inserted": 0, "skipped": 3, "total": 3}
    assert _stored_count(db_session) == 3


def test_single_object_payload_is_accepted(client):
    response = client.post("/api/events", json=event_payload(utc(2026, 1, 5, 8, 0), "working"))

    assert response.status_code == 201
    assert response.json() == {"inserted": 1, "skipped": 0, "total": 1}


def test_empty_batch_is_rejected_without_writes(client, db_session, notifier):
    received = []
    notifier.subscribe(received.append)

    response = client.post("/api/events", json=[])

    assert response.status_code == 400
    assert _stored_count(db_session) == 0
    assert received == []


@pytest.mark.parametrize(
    "overrides",
    [
        {"event_type": "sleeping"},
        {"confidence": 1.5},
        {"count": -1},
        {"worker_id": "   "},
        {"timestamp": "2026-01-05T08:00:00"},
        {"timestamp": "not-a-date"},
    ],
)
def test_invalid_events_fail_validation(client, db_session, overrides):
    payload = {**event_payload(utc(2026, 1, 5, 8, 0), "working"), **overrides}

    response = client.post("/api/events", json=[payload])

    assert response.status_code == 422
    assert _stored_count(db_session) == 0


def test_duplicates_inside_one_batch_are_skipped(client):
    payload = event_payload(utc(2026, 1, 5, 8, 0), "working")
    shifted = event_payload(utc(2026, 1, 5, 8, 0, 0, 300), "working")

    response = client.post("/api/events", json=[payload, payload, shifted])

    assert response.json() == {"inserted": 1, "skipped": 2, "total": 3}


def test_counter_readings_at_the_same_instant_collide(client):
    first = event_payload(utc(2026, 1, 5, 8, 0), "product_count", count=2)
    second = event_payload(utc(2026, 1, 5, 8, 0), "product_count", count=7)

    response = client.post("/api/events", json=[first, second])

    assert response.json() == {"inserted": 1, "skipped": 1, "total": 2}


def test_defaults_are_applied(client, db_session):
    client.post("/api/events", json=event_payload(utc(2026, 1, 5, 8, 0), "idle"))

    stored = db_session.execute(select(models.Event)).scalar_one()
    assert stored.confidence == 1.0
    assert stored.count == 0
    assert stored.model_version == models.DEFAULT_MODEL_VERSION
    assert stored.timestamp == utc(2026, 1, 5, 8, 0)
    assert stored.dedup_key == build_dedup_key(utc(2026, 1, 5, 8, 0), "W1", "S1", "idle")


def test_successful_ingestion_notifies_once(client, notifier):
    received = []
    notifier.subscribe(received.append)

    client.post("/api/events", json=_batch())
    client.post("/api/events", json=_batch())

    assert received == [
        {"type": EVENTS_INGESTED, "payload": {"inserted": 3, "skipped": 0, "total": 3}}
    ]


def test_storage_fault_reports_partial_counts(client, db_session, notifier, monkeypatch):
    monkeypatch.setenv("INGEST_CHUNK_SIZE", "2")
    original = EventStore._insert_chunk
    calls = {"count": 0}

    def flaky_insert(db, chunk):
        calls["count"] += 1
        if calls["count"] == 2:
            raise EventStoreError("disk full")
        return original(db, chunk)

    monkeypatch.setattr(EventStore, "_insert_chunk", staticmethod(flaky_insert))
    received = []
    notifier.subscribe(received.append)
    payloads = [
        event_payload(utc(2026, 1, 5, 8, minute), "working") for minute in range(5)
    ]

    response = client.post("/api/events", json=payloads)

    assert response.status_code == 500
    assert response.json()["detail"] == {
        "message": "disk full",
        "inserted": 2,
        "skipped": 0,
        "total": 5,
    }
    assert _stored_count(db_session) == 2
    assert received[0]["payload"]["inserted"] == 2


def test_concurrent_duplicate_is_counted_as_skipped(db_session, monkeypatch):
    existing = schemas.EventCreate.model_validate(
        event_payload(utc(2026, 1, 5, 8, 0), "working")
    )
    IngestionService.ingest(db_session, [existing])

    original = EventStore.existing_keys
    calls = {"count": 0}

    def stale_lookup(db, keys):
        calls["count"] += 1
        if calls["count"] == 1:
            list(keys)
            return set()
        return original(db, keys)

    monkeypatch.setattr(EventStore, "existing_keys", staticmethod(stale_lookup))
    batch = [
        existing,
        schemas.EventCreate.model_validate(event_payload(utc(2026, 1, 5, 9, 0), "idle")),
    ]

    result = IngestionService.ingest(db_session, batch)

    assert result.to_dict() == {"inserted": 1, "skipped": 1, "total": 2}
    assert _stored_count(db_session) == 2


def test_non_duplicate_integrity_errors_are_storage_faults(db_session):
    row = {
        "timestamp": utc(2026, 1, 5, 8, 0),
        "worker_id": "W1",
        "workstation_id": "S1",
        "event_type": models.EventType.WORKING,
        "confidence": 2.0,
        "count": 0,
        "model_version": models.DEFAULT_MODEL_VERSION,
        "dedup_key": build_dedup_key(utc(2026, 1, 5, 8, 0), "W1", "S1", "working"),
    }

    with pytest.raises(EventStoreError) as excinfo:
        EventStore.insert_unordered(db_session, [row])

    assert excinfo.value.inserted == 0
    assert _stored_count(db_session) == 0


def test_service_rejects_empty_batches(db_session):
    with pytest.raises(EmptyPayloadError):
        IngestionService.ingest(db_session, [])


def test_storage_error_carries_totals(db_session, monkeypatch):
    def broken_insert(db, records, chunk_size=None):
        raise EventStoreError("boom", inserted=0, duplicates=1)

    monkeypatch.setattr(EventStore, "insert_unordered", staticmethod(broken_insert))
    events = [
        schemas.EventCreate.model_validate(event_payload(utc(2026, 1, 5, 8, 0), "working"))
    ]

    with pytest.raises(IngestionStorageError) as excinfo:
        IngestionService.ingest(db_session, events)

    assert (excinfo.value.inserted, excinfo.value.skipped, excinfo.value.total) == (0, 1, 1)


def test_service_stores_a_multi_event_batch_in_one_call(db_session):
    events = [schemas.EventCreate.model_validate(payload) for payload in _batch()]

    result = IngestionService.ingest(db_session, events)

    assert result.inserted == 3
    assert result.skipped == 0
    stored = db_session.execute(select(models.Event)).scalars().all()
    assert len(stored) == 3
    db_session.expire_all()
    for event in stored:
        assert isinstance(event.id, uuid.UUID)
        assert db_session.get(models.Event, event.id).dedup_key == event.dedup_key
