"""SQLAlchemy model for perception events observed at workstations."""

from __future__ import annotations

import enum
import uuid

from sqlalchemy import (
    CheckConstraint,
    Column,
    DateTime,
    Enum,
    Float,
    Index,
    Integer,
    String,
    func,
)

from ..database import Base
from ..db_types import GUID, UTCDateTime

DEFAULT_MODEL_VERSION = "cv-activity-v1.0.0"


class EventType(str, enum.Enum):
    """State and counter observations emitted by the perception pipeline."""

    WORKING = "working"
    IDLE = "idle"
    ABSENT = "absent"
    PRODUCT_COUNT = "product_count"


STATE_EVENT_TYPES = frozenset({EventType.WORKING, EventType.IDLE, EventType.ABSENT})


class Event(Base):
    """Immutable observation; ``dedup_key`` makes ingestion idempotent."""

    __tablename__ = "events"
    __table_args__ = (
        CheckConstraint(
            "confidence >= 0 AND confidence <= 1", name="ck_events_confidence_range"
        ),
        CheckConstraint("count >= 0", name="ck_events_count_non_negative"),
        Index("events_worker_timestamp_idx", "worker_id", "timestamp"),
        Index("events_workstation_timestamp_idx", "workstation_id", "timestamp"),
        Index("events_timestamp_idx", "timestamp"),
        Index("events_event_type_idx", "event_type"),
    )

    id = Column("event_id", GUID(), primary_key=True, default=uuid.uuid4)
    timestamp = Column(UTCDateTime(), nullable=False)
    worker_id = Column(String(64), nullable=False)
    workstation_id = Column(String(64), nullable=False)
    event_type = Column(
        Enum(
            EventType,
            name="event_type_enum",
            native_enum=False,
            values_callable=lambda enum_cls: [member.value for member in enum_cls],
        ),
        nullable=False,
    )
    confidence = Column(Float, nullable=False, default=1.0)
    count = Column(Integer, nullable=False, default=0)
    model_version = Column(String(64), nullable=False, default=DEFAULT_MODEL_VERSION)
    dedup_key = Column(String(64), nullable=False, unique=True)
    created_at = Column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
