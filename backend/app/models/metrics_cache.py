"""Pre-aggregated daily metric buckets."""

from __future__ import annotations

import enum
import uuid
from datetime import datetime, timezone

from sqlalchemy import Column, Enum, Float, Index, Integer, String, UniqueConstraint

from ..database import Base
from ..db_types import GUID, UTCDateTime

FACTORY_ENTITY_ID = "factory"


class CacheEntityType(str, enum.Enum):
    """Granularity of a cached bucket."""

    WORKER = "worker"
    STATION = "station"
    FACTORY = "factory"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class MetricsCacheBucket(Base):
    """Daily snapshot for one worker, station or the whole factory.

    Written by the cache refresh job and read by the time-series view; the raw
    event log stays the source of truth.
    """

    __tablename__ = "metrics_cache"
    __table_args__ = (
        UniqueConstraint(
            "date", "entity_type", "entity_id", name="metrics_cache_bucket_unique"
        ),
        Index("metrics_cache_computed_at_idx", "computed_at"),
    )

    id = Column("bucket_id", GUID(), primary_key=True, default=uuid.uuid4)
    date = Column(String(10), nullable=False)
    entity_type = Column(
        Enum(
            CacheEntityType,
            name="cache_entity_type_enum",
            native_enum=False,
            values_callable=lambda enum_cls: [member.value for member in enum_cls],
        ),
        nullable=False,
    )
    entity_id = Column(String(64), nullable=False)
    active_seconds = Column(Integer, nullable=False, default=0)
    idle_seconds = Column(Integer, nullable=False, default=0)
    absent_seconds = Column(Integer, nullable=False, default=0)
    units = Column(Integer, nullable=False, default=0)
    occupancy_seconds = Column(Integer, nullable=False, default=0)
    utilization_pct = Column(Float, nullable=False, default=0.0)
    computed_at = Column(UTCDateTime(), nullable=False, default=_utcnow)
