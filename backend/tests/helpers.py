"""Builders shared by the test modules."""

from __future__ import annotations

from datetime import datetime, timezone


def utc(*args: int) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


def event_payload(
    timestamp: datetime,
    event_type: str,
    *,
    worker_id: str = "W1",
    workstation_id: str = "S1",
    **extra,
) -> dict:
    return {
        "timestamp": timestamp.isoformat(),
        "worker_id": worker_id,
        "workstation_id": workstation_id,
        "event_type": event_type,
        **extra,
    }
