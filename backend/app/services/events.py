"""Append-only, dedup-enforcing persistence for perception events."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Iterable, Mapping, Optional, Sequence

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from .. import models

LOGGER = logging.getLogger(__name__)

INGEST_CHUNK_SIZE_ENV = "INGEST_CHUNK_SIZE"
DEFAULT_INGEST_CHUNK_SIZE = 500


class EventStoreError(RuntimeError):
    """Raised when events cannot be written for reasons other than duplication.

    ``inserted`` and ``duplicates`` describe the rows that were already
    committed, or skipped as duplicates, before the failure.
    """

    def __init__(self, message: str, *, inserted: int = 0, duplicates: int = 0) -> None:
        super().__init__(message)
        self.inserted = inserted
        self.duplicates = duplicates


@dataclass(frozen=True)
class TimeWindow:
    """Inclusive ``[start, end]`` bounds; either side may be open."""

    start: Optional[datetime] = None
    end: Optional[datetime] = None

    @property
    def is_bounded(self) -> bool:
        return self.start is not None or self.end is not None


@dataclass(frozen=True)
class EventFilter:
    worker_id: Optional[str] = None
    workstation_id: Optional[str] = None
    window: TimeWindow = field(default_factory=TimeWindow)
    event_type: Optional[models.EventType] = None
    max_confidence: Optional[float] = None


@dataclass(frozen=True)
class BulkInsertResult:
    inserted: int
    duplicates: int


def build_event_query(event_filter: EventFilter):
    """Translate a typed filter into a ``SELECT`` over :class:`models.Event`."""

    statement = select(models.Event)
    return _apply_filter(statement, event_filter)


def _apply_filter(statement, event_filter: EventFilter):
    if event_filter.worker_id:
        statement = statement.where(models.Event.worker_id == event_filter.worker_id)
    if event_filter.workstation_id:
        statement = statement.where(
            models.Event.workstation_id == event_filter.workstation_id
        )
    if event_filter.window.start is not None:
        statement = statement.where(models.Event.timestamp >= event_filter.window.start)
    if event_filter.window.end is not None:
        statement = statement.where(models.Event.timestamp <= event_filter.window.end)
    if event_filter.event_type is not None:
        statement = statement.where(models.Event.event_type == event_filter.event_type)
    if event_filter.max_confidence is not None:
        statement = statement.where(models.Event.confidence < event_filter.max_confidence)
    return statement


def _read_chunk_size() -> int:
    raw = os.getenv(INGEST_CHUNK_SIZE_ENV)
    if raw is None:
        return DEFAULT_INGEST_CHUNK_SIZE
    try:
        value = int(raw)
    except ValueError:
        LOGGER.warning(
            "Invalid %s=%s; using %s", INGEST_CHUNK_SIZE_ENV, raw, DEFAULT_INGEST_CHUNK_SIZE
        )
        return DEFAULT_INGEST_CHUNK_SIZE
    if value <= 0:
        LOGGER.warning(
            "%s must be positive; using %s", INGEST_CHUNK_SIZE_ENV, DEFAULT_INGEST_CHUNK_SIZE
        )
        return DEFAULT_INGEST_CHUNK_SIZE
    return value


class EventStore:
    """Storage contract used by ingestion, metrics and analytics."""

    @staticmethod
    def existing_keys(db: Session, keys: Iterable[str]) -> set[str]:
        unique_keys = list(set(keys))
        if not unique_keys:
            return set()
        found: set[str] = set()
        # Keep IN lists well below driver parameter limits.
        for offset in range(0, len(unique_keys), 500):
            batch = unique_keys[offset : offset + 500]
            found.update(
                db.execute(
                    select(models.Event.dedup_key).where(models.Event.dedup_key.in_(batch))
                ).scalars()
            )
        return found

    @staticmethod
    def insert_unordered(
        db: Session,
        records: Sequence[Mapping[str, Any]],
        *,
        chunk_size: Optional[int] = None,
    ) -> BulkInsertResult:
        """Insert event rows (column mappings) whose ``dedup_key`` is not stored yet.

        Rows are written in committed chunks. A unique violation is treated as
        a duplicate only when the conflicting key can be read back afterwards
        (a concurrent writer won the race); every other failure raises
        :class:`EventStoreError` carrying the counts committed so far.
        """

        size = chunk_size or _read_chunk_size()
        inserted = 0
        duplicates = 0
        seen: set[str] = set()
        pending: list[Mapping[str, Any]] = []
        for record in records:
            key = record["dedup_key"]
            if key in seen:
                duplicates += 1
                continue
            seen.add(key)
            pending.append(record)

        for offset in range(0, len(pending), size):
            chunk = pending[offset : offset + size]
            try:
                written, skipped = EventStore._insert_chunk(db, chunk)
            except EventStoreError as exc:
                raise EventStoreError(
                    str(exc), inserted=inserted, duplicates=duplicates
                ) from exc
            inserted += written
            duplicates += skipped

        return BulkInsertResult(inserted=inserted, duplicates=duplicates)

    @staticmethod
    def _insert_chunk(db: Session, chunk: list[Mapping[str, Any]]) -> tuple[int, int]:
        skipped = 0
        try:
            stored = EventStore.existing_keys(db, (record["dedup_key"] for record in chunk))
        except SQLAlchemyError as exc:
            db.rollback()
            raise EventStoreError("Unable to read existing event keys") from exc

        fresh = [record for record in chunk if record["dedup_key"] not in stored]
        skipped += len(chunk) - len(fresh)

        while fresh:
            try:
                db.add_all([models.Event(**record) for record in fresh])
                db.commit()
                return len(fresh), skipped
            except IntegrityError as exc:
                db.rollback()
                try:
                    raced = EventStore.existing_keys(db, (record["dedup_key"] for record in fresh))
                except SQLAlchemyError as lookup_exc:
                    db.rollback()
                    raise EventStoreError("Unable to read existing event keys") from lookup_exc
                if not raced:
                    raise EventStoreError(f"Event batch rejected by storage: {exc.orig}") from exc
                LOGGER.debug("Concurrent ingestion stored %s keys first; retrying", len(raced))
                fresh = [record for record in fresh if record["dedup_key"] not in raced]
                skipped += len(raced)
            except SQLAlchemyError as exc:
                db.rollback()
                raise EventStoreError(f"Event batch could not be stored: {exc}") from exc

        return 0, skipped

    @staticmethod
    def find(
        db: Session,
        event_filter: EventFilter,
        *,
        newest_first: bool = False,
        limit: Optional[int] = None,
    ) -> list[models.Event]:
        statement = build_event_query(event_filter)
        if newest_first:
            statement = statement.order_by(models.Event.timestamp.desc())
        else:
            statement = statement.order_by(models.Event.timestamp.asc())
        if limit is not None:
            statement = statement.limit(limit)
        return list(db.execute(statement).scalars())

    @staticmethod
    def count(db: Session, event_filter: Optional[EventFilter] = None) -> int:
        statement = select(func.count()).select_from(models.Event)
        if event_filter is not None:
            statement = _apply_filter(statement, event_filter)
        return int(db.execute(statement).scalar_one())

    @staticmethod
    def has_events_for(
        db: Session, *, worker_id: Optional[str] = None, workstation_id: Optional[str] = None
    ) -> bool:
        statement = build_event_query(
            EventFilter(worker_id=worker_id, workstation_id=workstation_id)
        ).limit(1)
        return db.execute(statement).first() is not None

