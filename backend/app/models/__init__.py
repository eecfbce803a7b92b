"""Expose SQLAlchemy models for convenient imports."""

from .event import DEFAULT_MODEL_VERSION, STATE_EVENT_TYPES, Event, EventType
from .metrics_cache import FACTORY_ENTITY_ID, CacheEntityType, MetricsCacheBucket
from .worker import Worker
from .workstation import Workstation

__all__ = [
    "DEFAULT_MODEL_VERSION",
    "STATE_EVENT_TYPES",
    "Event",
    "EventType",
    "FACTORY_ENTITY_ID",
    "CacheEntityType",
    "MetricsCacheBucket",
    "Worker",
    "Workstation",
]
