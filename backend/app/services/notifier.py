"""Fan-out broadcaster informing live subscribers about ingested events."""

from __future__ import annotations

import itertools
import logging
from dataclasses import dataclass, field
from threading import Lock
from typing import Any, Callable, Dict, Mapping

LOGGER = logging.getLogger(__name__)

EVENTS_INGESTED = "events:ingested"

Deliver = Callable[[Mapping[str, Any]], None]


@dataclass(frozen=True)
class SubscriberHandle:
    """Opaque token returned by :meth:`ChangeNotifier.subscribe`."""

    id: int
    label: str = field(default="", compare=False)


class ChangeNotifier:
    """Thread-safe registry of subscribers with best-effort broadcast.

    ``deliver`` callables must not block; a callable that raises is treated as
    a dead subscriber and removed without retry.
    """

    def __init__(self) -> None:
        self._lock = Lock()
        self._subscribers: Dict[SubscriberHandle, Deliver] = {}
        self._ids = itertools.count(1)

    def subscribe(self, deliver: Deliver, *, label: str = "") -> SubscriberHandle:
        with self._lock:
            handle = SubscriberHandle(id=next(self._ids), label=label)
            self._subscribers[handle] = deliver
        LOGGER.debug("Subscriber %s registered (%s)", handle.id, label or "anonymous")
        return handle

    def unsubscribe(self, handle: SubscriberHandle) -> bool:
        with self._lock:
            removed = self._subscribers.pop(handle, None) is not None
        if removed:
            LOGGER.debug("Subscriber %s removed", handle.id)
        return removed

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscribers)

    def broadcast(self, message: Mapping[str, Any]) -> int:
        """Deliver ``message`` to every subscriber and return how many accepted it."""

        with self._lock:
            snapshot = list(self._subscribers.items())

        delivered = 0
        for handle, deliver in snapshot:
            try:
                deliver(message)
            except Exception as exc:
                LOGGER.debug("Dropping subscriber %s after failed delivery: %s", handle.id, exc)
                self.unsubscribe(handle)
                continue
            delivered += 1
        return delivered

    def notify_ingested(self, *, inserted: int, skipped: int, total: int) -> int:
        return self.broadcast(
            {
                "type": EVENTS_INGESTED,
                "payload": {"inserted": inserted, "skipped": skipped, "total": total},
            }
        )
