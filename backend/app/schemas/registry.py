from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict


class WorkerRead(BaseModel):
    worker_id: str
    name: str
    department: str
    shift: str
    created_at: datetime | None = None

    model_config = ConfigDict(from_attributes=True)


class WorkstationRead(BaseModel):
    station_id: str
    name: str
    type: str
    location: str
    capacity: int
    created_at: datetime | None = None

    model_config = ConfigDict(from_attributes=True)
