"""Reconstruct per-state durations from sparse point observations."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, Protocol

from ..models.event import EventType


class StateObservation(Protocol):
    timestamp: datetime
    event_type: EventType | str
    count: int


@dataclass(frozen=True)
class DurationTotals:
    """Accumulated seconds per state plus the unit total for one entity."""

    working_seconds: float = 0.0
    idle_seconds: float = 0.0
    absent_seconds: float = 0.0
    total_units: int = 0

    @property
    def occupied_seconds(self) -> float:
        return self.working_seconds + self.idle_seconds


def _normalize_type(value: EventType | str) -> EventType:
    return value if isinstance(value, EventType) else EventType(value)


# Tie order for simultaneous observations: counters first so a state event
# recorded at the same instant owns the interval that follows.
_TIE_ORDER = {
    EventType.PRODUCT_COUNT: 0,
    EventType.WORKING: 1,
    EventType.IDLE: 2,
    EventType.ABSENT: 3,
}


def sort_chronologically(events: Iterable[StateObservation]) -> list[StateObservation]:
    """Return events ordered by timestamp with a deterministic tie-break."""

    return sorted(
        events,
        key=lambda event: (
            event.timestamp,
            _TIE_ORDER[_normalize_type(event.event_type)],
            int(event.count or 0),
        ),
    )


def reconstruct_durations(events: Iterable[StateObservation]) -> DurationTotals:
    """Convert one entity's observations into state durations and units.

    Each state event opens an interval that lasts until the next event of any
    type. The last event stays open and contributes nothing. Zero or negative
    gaps are ignored. ``product_count`` events are point samples: they close
    the previous interval and add their ``count`` to the unit total, but the
    span that follows them is not attributed to any state.
    """

    ordered = sort_chronologically(events)
    working = idle = absent = 0.0
    units = 0

    for index, event in enumerate(ordered):
        event_type = _normalize_type(event.event_type)
        if event_type is EventType.PRODUCT_COUNT:
            units += max(int(event.count or 0), 0)

        if index == len(ordered) - 1:
            continue
        gap = (ordered[index + 1].timestamp - event.timestamp).total_seconds()
        if gap <= 0:
            continue

        if event_type is EventType.WORKING:
            working += gap
        elif event_type is EventType.IDLE:
            idle += gap
        elif event_type is EventType.ABSENT:
            absent += gap

    return DurationTotals(
        working_seconds=working,
        idle_seconds=idle,
        absent_seconds=absent,
        total_units=units,
    )
