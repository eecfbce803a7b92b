"""Index metric buckets by computation time for the retention purge.

Revision ID: 20261019_0002
Revises: 20261019_0001
Create Date: 2026-10-19
"""

from __future__ import annotations

from typing import Sequence

import sqlalchemy as sa
from alembic import op

revision = "20261019_0002"
down_revision = "20261019_0001"
branch_labels: Sequence[str] | None = None
depends_on: Sequence[str] | None = None


def _has_index(inspector: sa.Inspector, table: str, index: str) -> bool:
    return index in {item["name"] for item in inspector.get_indexes(table)}


def upgrade() -> None:
    inspector = sa.inspect(op.get_bind())
    if not _has_index(inspector, "metrics_cache", "metrics_cache_computed_at_idx"):
        op.create_index("metrics_cache_computed_at_idx", "metrics_cache", ["computed_at"])


def downgrade() -> None:
    op.drop_index("metrics_cache_computed_at_idx", table_name="metrics_cache")
