"""Query parameters shared by the read-only routers."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from fastapi import HTTPException, Query, status

from ..services import TimeWindow


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


def time_window(
    start: Optional[datetime] = Query(
        None, alias="from", description="Inclusive lower bound; naive values are read as UTC"
    ),
    end: Optional[datetime] = Query(
        None, alias="to", description="Inclusive upper bound; naive values are read as UTC"
    ),
) -> TimeWindow:
    window = TimeWindow(start=_as_utc(start), end=_as_utc(end))
    if window.start is not None and window.end is not None and window.start > window.end:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="'from' must not be later than 'to'",
        )
    return window
