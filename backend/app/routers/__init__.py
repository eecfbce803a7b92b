"""Routers package."""

from .analytics import router as analytics_router
from .events import router as events_router
from .metrics import router as metrics_router
from .workers import router as workers_router
from .workstations import router as workstations_router

__all__ = [
    "analytics_router",
    "events_router",
    "metrics_router",
    "workers_router",
    "workstations_router",
]
