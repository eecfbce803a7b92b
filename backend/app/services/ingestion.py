"""Validated, idempotent bulk ingestion of perception events."""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from typing import Optional, Sequence

from sqlalchemy.orm import Session

from .. import schemas
from .dedup import build_dedup_key
from .events import EventStore, EventStoreError
from .notifier import ChangeNotifier

LOGGER = logging.getLogger(__name__)


class IngestionError(Exception):
    """Base error for ingestion failures."""


class EmptyPayloadError(IngestionError):
    """Raised when a batch contains no events."""


class IngestionStorageError(IngestionError):
    """Raised when storage rejects a batch for reasons other than duplicates."""

    def __init__(self, message: str, *, inserted: int, skipped: int, total: int) -> None:
        super().__init__(message)
        self.inserted = inserted
        self.skipped = skipped
        self.total = total


@dataclass(frozen=True)
class IngestionResult:
    inserted: int
    skipped: int
    total: int

    def to_dict(self) -> dict:
        return asdict(self)


class IngestionService:
    """Fingerprints incoming events, stores them and announces new data."""

    @staticmethod
    def _to_row(event: schemas.EventCreate) -> dict:
        return {
            "timestamp": event.timestamp,
            "worker_id": event.worker_id,
            "workstation_id": event.workstation_id,
            "event_type": event.event_type,
            "confidence": event.confidence,
            "count": event.count,
            "model_version": event.model_version,
            "dedup_key": build_dedup_key(
                event.timestamp, event.worker_id, event.workstation_id, event.event_type
            ),
        }

    @staticmethod
    def ingest(
        db: Session,
        events: Sequence[schemas.EventCreate],
        notifier: Optional[ChangeNotifier] = None,
    ) -> IngestionResult:
        if not events:
            raise EmptyPayloadError("Empty payload")

        rows = [IngestionService._to_row(event) for event in events]
        total = len(rows)

        try:
            outcome = EventStore.insert_unordered(db, rows)
        except EventStoreError as exc:
            LOGGER.exception(
                "Event ingestion failed after %s inserted and %s skipped of %s",
                exc.inserted,
                exc.duplicates,
                total,
            )
            if exc.inserted and notifier is not None:
                notifier.notify_ingested(
                    inserted=exc.inserted, skipped=exc.duplicates, total=total
                )
            raise IngestionStorageError(
                str(exc), inserted=exc.inserted, skipped=exc.duplicates, total=total
            ) from exc

        result = IngestionResult(
            inserted=outcome.inserted, skipped=outcome.duplicates, total=total
        )
        LOGGER.info(
            "Ingested %s events (%s duplicates skipped)", result.inserted, result.skipped
        )
        if result.inserted and notifier is not None:
            notifier.notify_ingested(**result.to_dict())
        return result
