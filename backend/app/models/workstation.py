"""Reference records describing workstations on the factory floor."""

from __future__ import annotations

from sqlalchemy import CheckConstraint, Column, DateTime, Integer, String, func

from ..database import Base


class Workstation(Base):
    """Display metadata for a workstation."""

    __tablename__ = "workstations"
    __table_args__ = (
        CheckConstraint("capacity >= 1", name="ck_workstations_capacity_positive"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    station_id = Column(String(64), nullable=False, unique=True)
    name = Column(String, nullable=False)
    type = Column(String, nullable=False)
    location = Column(String, nullable=False, default="Floor A")
    capacity = Column(Integer, nullable=False, default=1)
    created_at = Column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
