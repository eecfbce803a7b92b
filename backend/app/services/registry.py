"""Read-only lookups of the worker and workstation reference registry."""

from __future__ import annotations

from typing import Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from .. import models


class RegistryService:
    """Display metadata for workers and workstations."""

    @staticmethod
    def list_workers(db: Session) -> list[models.Worker]:
        return list(db.execute(select(models.Worker).order_by(models.Worker.worker_id)).scalars())

    @staticmethod
    def get_worker(db: Session, worker_id: str) -> Optional[models.Worker]:
        return db.execute(
            select(models.Worker).where(models.Worker.worker_id == worker_id)
        ).scalar_one_or_none()

    @staticmethod
    def list_workstations(db: Session) -> list[models.Workstation]:
        return list(
            db.execute(
                select(models.Workstation).order_by(models.Workstation.station_id)
            ).scalars()
        )

    @staticmethod
    def get_workstation(db: Session, station_id: str) -> Optional[models.Workstation]:
        return db.execute(
            select(models.Workstation).where(models.Workstation.station_id == station_id)
        ).scalar_one_or_none()
