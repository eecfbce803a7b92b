"""Router for event ingestion, event listing and the live update stream."""

from __future__ import annotations

import asyncio
import json
import logging
import os
from typing import Any, List, Mapping, Optional, Union

from fastapi import APIRouter, Body, Depends, HTTPException, Query, Request, status
from fastapi.responses import StreamingResponse
from sqlalchemy.orm import Session

from .. import schemas
from ..database import get_db
from ..services import (
    ChangeNotifier,
    EmptyPayloadError,
    EventFilter,
    EventStore,
    IngestionService,
    IngestionStorageError,
    TimeWindow,
)
from .params import time_window

LOGGER = logging.getLogger(__name__)

HEARTBEAT_ENV = "EVENT_STREAM_HEARTBEAT_SECONDS"
DEFAULT_HEARTBEAT_SECONDS = 15.0
STREAM_BACKLOG_LIMIT = 100

router = APIRouter()


class SubscriberBacklogError(RuntimeError):
    """Raised when a stream client stops draining its queue."""


def get_change_notifier(request: Request) -> ChangeNotifier:
    return request.app.state.change_notifier


def _read_heartbeat_seconds() -> float:
    raw = os.getenv(HEARTBEAT_ENV)
    if raw is None:
        return DEFAULT_HEARTBEAT_SECONDS
    try:
        value = float(raw)
    except ValueError:
        LOGGER.warning("Invalid %s=%s; using %s", HEARTBEAT_ENV, raw, DEFAULT_HEARTBEAT_SECONDS)
        return DEFAULT_HEARTBEAT_SECONDS
    if value <= 0:
        LOGGER.warning("%s must be positive; using %s", HEARTBEAT_ENV, DEFAULT_HEARTBEAT_SECONDS)
        return DEFAULT_HEARTBEAT_SECONDS
    return value


def format_sse(message: Mapping[str, Any]) -> str:
    return f"data: {json.dumps(message, default=str)}\n\n"


def queue_deliverer(loop: asyncio.AbstractEventLoop, queue: asyncio.Queue):
    """Return a thread-safe callable that hands messages to ``queue`` on ``loop``."""

    def deliver(message: Mapping[str, Any]) -> None:
        if queue.qsize() >= STREAM_BACKLOG_LIMIT:
            raise SubscriberBacklogError("Stream subscriber is not keeping up")
        loop.call_soon_threadsafe(queue.put_nowait, dict(message))

    return deliver


@router.post("", response_model=schemas.IngestionSummary, status_code=status.HTTP_201_CREATED)
def ingest_events(
    payload: Union[List[schemas.EventCreate], schemas.EventCreate] = Body(...),
    db: Session = Depends(get_db),
    notifier: ChangeNotifier = Depends(get_change_notifier),
) -> schemas.IngestionSummary:
    """Store one event or a batch; duplicates are counted as skipped."""

    events = payload if isinstance(payload, list) else [payload]
    try:
        result = IngestionService.ingest(db, events, notifier=notifier)
    except EmptyPayloadError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except IngestionStorageError as exc:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={
                "message": str(exc),
                "inserted": exc.inserted,
                "skipped": exc.skipped,
                "total": exc.total,
            },
        ) from exc
    return schemas.IngestionSummary(**result.to_dict())


@router.get("", response_model=schemas.EventListResponse)
def list_events(
    worker_id: Optional[str] = Query(None, description="Filter by worker"),
    workstation_id: Optional[str] = Query(None, description="Filter by workstation"),
    limit: int = Query(500, ge=1, le=5000, description="Maximum number of events to return"),
    window: TimeWindow = Depends(time_window),
    db: Session = Depends(get_db),
) -> schemas.EventListResponse:
    """Return the most recent events matching the filters."""

    event_filter = EventFilter(worker_id=worker_id, workstation_id=workstation_id, window=window)
    events = EventStore.find(db, event_filter, newest_first=True, limit=limit)
    return schemas.EventListResponse(count=len(events), events=events)


@router.get("/stream")
async def stream_events(
    request: Request,
    notifier: ChangeNotifier = Depends(get_change_notifier),
) -> StreamingResponse:
    """Server-Sent Events channel announcing newly ingested events."""

    loop = asyncio.get_running_loop()
    queue: asyncio.Queue = asyncio.Queue()
    heartbeat = _read_heartbeat_seconds()
    handle = notifier.subscribe(queue_deliverer(loop, queue), label="sse")

    async def event_source():
        try:
            yield ": connected\n\n"
            while not await request.is_disconnected():
                try:
                    message = await asyncio.wait_for(queue.get(), timeout=heartbeat)
                except asyncio.TimeoutError:
                    yield ": keep-alive\n\n"
                    continue
                yield format_sse(message)
        finally:
            notifier.unsubscribe(handle)

    return StreamingResponse(
        event_source(),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )
