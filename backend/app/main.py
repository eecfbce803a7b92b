"""Expose the productivity backend FastAPI app and enforce local development CORS defaults."""

import logging
import os
import re
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Callable

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .migrations import run_database_migrations
from .routers import (
    analytics_router,
    events_router,
    metrics_router,
    workers_router,
    workstations_router,
)
from .services.metrics_cache import (
    start_metrics_cache_scheduler,
    stop_metrics_cache_scheduler,
)
from .services.notifier import ChangeNotifier
from .services.scheduler_monitor import JOB_METRICS_CACHE_REFRESH, SchedulerMonitor

LOGGER = logging.getLogger(__name__)

API_PREFIX = "/api"
ALLOWED_ORIGINS_ENV = "BACKEND_ALLOWED_ORIGINS"

# Dashboard dev servers; always allowed in addition to configured origins.
DASHBOARD_DEV_ORIGINS = frozenset({"http://localhost:5173", "http://localhost:3000"})
DEFAULT_ALLOWED_ORIGINS = frozenset(
    f"http://{host}:{port}" for host in ("localhost", "127.0.0.1") for port in (3000, 4173, 5173)
)
LOCALHOST_ORIGIN_REGEX = r"https?://(localhost|127\.0\.0\.1|0\.0\.0\.0)(:\d+)?$"


def parse_origins(raw_value: str) -> list[str]:
    """Split comma or whitespace separated origins, dropping trailing slashes."""

    cleaned = {item.strip().rstrip("/") for item in re.split(r"[\s,]+", raw_value)}
    return sorted(origin for origin in cleaned if origin)


def resolve_allowed_origins() -> list[str]:
    configured = set(parse_origins(os.getenv(ALLOWED_ORIGINS_ENV, "")))
    return sorted((configured or DEFAULT_ALLOWED_ORIGINS) | DASHBOARD_DEV_ORIGINS)


def _read_bool_env(name: str, default: bool = True) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def _maybe_start_job(env_flag: str, job_name: str, starter: Callable[[], None]) -> None:
    enabled = _read_bool_env(env_flag, True)
    SchedulerMonitor.set_job_enabled(job_name, enabled)
    if not enabled:
        LOGGER.info("%s disabled via %s", job_name, env_flag)
        return
    starter()


@asynccontextmanager
async def lifespan(_: FastAPI):
    ensure_database_is_ready()
    start_background_jobs()
    try:
        yield
    finally:
        stop_background_jobs()


app = FastAPI(title="Worker Productivity API", lifespan=lifespan)
app.state.change_notifier = ChangeNotifier()

app.add_middleware(
    CORSMiddleware,
    allow_origins=resolve_allowed_origins(),
    allow_origin_regex=LOCALHOST_ORIGIN_REGEX,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(events_router, prefix=f"{API_PREFIX}/events", tags=["events"])
app.include_router(metrics_router, prefix=f"{API_PREFIX}/metrics", tags=["metrics"])
app.include_router(analytics_router, prefix=f"{API_PREFIX}/analytics", tags=["analytics"])
app.include_router(workers_router, prefix=f"{API_PREFIX}/workers", tags=["workers"])
app.include_router(
    workstations_router, prefix=f"{API_PREFIX}/workstations", tags=["workstations"]
)


def ensure_database_is_ready() -> None:
    """Apply pending database migrations when the service starts."""

    if not _read_bool_env("RUN_MIGRATIONS_ON_STARTUP", True):
        LOGGER.info("Skipping database migrations (RUN_MIGRATIONS_ON_STARTUP disabled)")
        return
    LOGGER.info("Ensuring database schema is up to date before serving requests")
    run_database_migrations()


def start_background_jobs() -> None:
    """Start background tasks required by the service."""

    _maybe_start_job(
        env_flag="ENABLE_METRICS_CACHE_REFRESH",
        job_name=JOB_METRICS_CACHE_REFRESH,
        starter=start_metrics_cache_scheduler,
    )


def stop_background_jobs() -> None:
    """Ensure background tasks are stopped when the application shuts down."""

    stop_metrics_cache_scheduler()


@app.get(f"{API_PREFIX}/health", tags=["health"])
def read_health() -> dict[str, str]:
    """Return a simple health check response."""
    return {"status": "ok", "timestamp": datetime.now(timezone.utc).isoformat()}
