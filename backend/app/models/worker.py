"""Reference records describing factory workers."""

from __future__ import annotations

from sqlalchemy import Column, DateTime, Integer, String, func

from ..database import Base


class Worker(Base):
    """Display metadata for a worker; metrics never require a row here."""

    __tablename__ = "workers"

    id = Column(Integer, primary_key=True, autoincrement=True)
    worker_id = Column(String(64), nullable=False, unique=True)
    name = Column(String, nullable=False)
    department = Column(String, nullable=False, default="Production")
    shift = Column(String, nullable=False, default="Morning")
    created_at = Column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
