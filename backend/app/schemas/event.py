from __future__ import annotations

from datetime import datetime
from typing import List
from uuid import UUID

from pydantic import AwareDatetime, BaseModel, ConfigDict, Field, field_validator

from ..models.event import DEFAULT_MODEL_VERSION, EventType


class EventCreate(BaseModel):
    """Observation submitted by the perception pipeline."""

    timestamp: AwareDatetime = Field(
        ..., description="ISO-8601 instant with an explicit UTC offset"
    )
    worker_id: str = Field(..., min_length=1, max_length=64)
    workstation_id: str = Field(..., min_length=1, max_length=64)
    event_type: EventType
    confidence: float = Field(default=1.0, ge=0, le=1, description="Model certainty")
    count: int = Field(
        default=0, ge=0, description="Units observed; only used by product_count events"
    )
    model_version: str = Field(default=DEFAULT_MODEL_VERSION, min_length=1, max_length=64)

    @field_validator("worker_id", "workstation_id", "model_version")
    @classmethod
    def _strip_identifier(cls, value: str) -> str:
        stripped = value.strip()
        if not stripped:
            raise ValueError("must not be blank")
        return stripped


class EventRead(BaseModel):
    id: UUID
    timestamp: datetime
    worker_id: str
    workstation_id: str
    event_type: EventType
    confidence: float
    count: int
    model_version: str
    dedup_key: str

    model_config = ConfigDict(from_attributes=True)


class EventListResponse(BaseModel):
    count: int = Field(..., ge=0)
    events: List[EventRead]


class IngestionSummary(BaseModel):
    """Outcome of one ingestion request."""

    inserted: int = Field(..., ge=0)
    skipped: int = Field(..., ge=0)
    total: int = Field(..., ge=0)
