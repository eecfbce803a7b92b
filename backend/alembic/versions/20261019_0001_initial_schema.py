"""Initial schema for events, the metrics cache and the reference registry.

Revision ID: 20261019_0001
Revises:
Create Date: 2026-10-19
"""

from __future__ import annotations

from typing import Sequence

import sqlalchemy as sa
from alembic import op

from backend.app.db_types import GUID, UTCDateTime

revision = "20261019_0001"
down_revision = None
branch_labels: Sequence[str] | None = None
depends_on: Sequence[str] | None = None

EVENT_TYPE_ENUM = sa.Enum(
    "working",
    "idle",
    "absent",
    "product_count",
    name="event_type_enum",
    native_enum=False,
)
CACHE_ENTITY_TYPE_ENUM = sa.Enum(
    "worker",
    "station",
    "factory",
    name="cache_entity_type_enum",
    native_enum=False,
)


def upgrade() -> None:
    op.create_table(
        "events",
        sa.Column("event_id", GUID(), primary_key=True),
        sa.Column("timestamp", UTCDateTime(), nullable=False),
        sa.Column("worker_id", sa.String(length=64), nullable=False),
        sa.Column("workstation_id", sa.String(length=64), nullable=False),
        sa.Column("event_type", EVENT_TYPE_ENUM, nullable=False),
        sa.Column("confidence", sa.Float(), nullable=False, server_default=sa.text("1.0")),
        sa.Column("count", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column(
            "model_version",
            sa.String(length=64),
            nullable=False,
            server_default="cv-activity-v1.0.0",
        ),
        sa.Column("dedup_key", sa.String(length=64), nullable=False, unique=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.CheckConstraint(
            "confidence >= 0 AND confidence <= 1", name="ck_events_confidence_range"
        ),
        sa.CheckConstraint("count >= 0", name="ck_events_count_non_negative"),
    )
    op.create_index("events_worker_timestamp_idx", "events", ["worker_id", "timestamp"])
    op.create_index(
        "events_workstation_timestamp_idx", "events", ["workstation_id", "timestamp"]
    )
    op.create_index("events_timestamp_idx", "events", ["timestamp"])
    op.create_index("events_event_type_idx", "events", ["event_type"])

    op.create_table(
        "metrics_cache",
        sa.Column("bucket_id", GUID(), primary_key=True),
        sa.Column("date", sa.String(length=10), nullable=False),
        sa.Column("entity_type", CACHE_ENTITY_TYPE_ENUM, nullable=False),
        sa.Column("entity_id", sa.String(length=64), nullable=False),
        sa.Column("active_seconds", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("idle_seconds", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("absent_seconds", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("units", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column(
            "occupancy_seconds", sa.Integer(), nullable=False, server_default=sa.text("0")
        ),
        sa.Column(
            "utilization_pct", sa.Float(), nullable=False, server_default=sa.text("0")
        ),
        sa.Column("computed_at", UTCDateTime(), nullable=False),
        sa.UniqueConstraint(
            "date", "entity_type", "entity_id", name="metrics_cache_bucket_unique"
        ),
    )

    op.create_table(
        "workers",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("worker_id", sa.String(length=64), nullable=False, unique=True),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("department", sa.String(), nullable=False, server_default="Production"),
        sa.Column("shift", sa.String(), nullable=False, server_default="Morning"),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
    )

    op.create_table(
        "workstations",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("station_id", sa.String(length=64), nullable=False, unique=True),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("type", sa.String(), nullable=False),
        sa.Column("location", sa.String(), nullable=False, server_default="Floor A"),
        sa.Column("capacity", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.CheckConstraint("capacity >= 1", name="ck_workstations_capacity_positive"),
    )


def downgrade() -> None:
    op.drop_table("workstations")
    op.drop_table("workers")
    op.drop_table("metrics_cache")
    op.drop_index("events_event_type_idx", table_name="events")
    op.drop_index("events_timestamp_idx", table_name="events")
    op.drop_index("events_workstation_timestamp_idx", table_name="events")
    op.drop_index("events_worker_timestamp_idx", table_name="events")
    op.drop_table("events")
