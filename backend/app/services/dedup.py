"""Deterministic fingerprints used to make event ingestion idempotent."""

from __future__ import annotations

import hashlib
from datetime import datetime, timezone

from ..models.event import EventType


def canonical_timestamp(timestamp: datetime) -> str:
    """Render ``timestamp`` as ISO-8601 UTC with millisecond precision.

    Naive datetimes are treated as UTC. Anything below a millisecond is
    truncated, so instants that differ only in microseconds share a key.
    """

    if timestamp.tzinfo is None:
        timestamp = timestamp.replace(tzinfo=timezone.utc)
    utc_value = timestamp.astimezone(timezone.utc)
    millis = utc_value.microsecond // 1000
    return f"{utc_value.strftime('%Y-%m-%dT%H:%M:%S')}.{millis:03d}Z"


def build_dedup_key(
    timestamp: datetime,
    worker_id: str,
    workstation_id: str,
    event_type: EventType | str,
) -> str:
    """Return the SHA-256 fingerprint of an event's identity fields.

    ``count`` and ``confidence`` are intentionally not part of the identity:
    two counter readings at the same instant for the same worker and station
    collide, and only the first one is stored.
    """

    type_value = event_type.value if isinstance(event_type, EventType) else str(event_type)
    material = "|".join(
        (canonical_timestamp(timestamp), worker_id, workstation_id, type_value)
    )
    return hashlib.sha256(material.encode("utf-8")).hexdigest()
