"""Health tracking for the background jobs that maintain the metrics cache."""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from threading import Lock
from typing import Dict, MutableMapping

JOB_METRICS_CACHE_REFRESH = "metrics_cache_refresh"

RECENT_ERROR_LIMIT = 10


@dataclass
class JobStatus:
    """Runtime status of a single background job."""

    enabled: bool = True
    last_tick: datetime | None = None
    last_success: datetime | None = None
    consecutive_failures: int = 0
    last_result: Dict[str, int] = field(default_factory=dict)
    recent_errors: deque[str] = field(
        default_factory=lambda: deque(maxlen=RECENT_ERROR_LIMIT)
    )


class SchedulerMonitor:
    """Process-wide registry of job status shared by workers and the API."""

    _lock = Lock()
    _jobs: Dict[str, JobStatus] = {}

    @classmethod
    def _status(cls, job_name: str) -> JobStatus:
        return cls._jobs.setdefault(job_name, JobStatus())

    @classmethod
    def set_job_enabled(cls, job_name: str, enabled: bool) -> None:
        with cls._lock:
            cls._status(job_name).enabled = enabled

    @classmethod
    def record_tick(cls, job_name: str) -> None:
        with cls._lock:
            cls._status(job_name).last_tick = datetime.now(timezone.utc)

    @classmethod
    def record_success(cls, job_name: str, **counts: int) -> None:
        """Store the counters produced by a completed cycle."""

        with cls._lock:
            status = cls._status(job_name)
            status.last_success = datetime.now(timezone.utc)
            status.consecutive_failures = 0
            status.last_result = {name: int(value) for name, value in counts.items()}

    @classmethod
    def record_error(cls, job_name: str, message: str) -> None:
        timestamped = f"{datetime.now(timezone.utc).isoformat()} - {message}"
        with cls._lock:
            status = cls._status(job_name)
            status.consecutive_failures += 1
            status.recent_errors.append(timestamped)

    @classmethod
    def snapshot(cls) -> MutableMapping[str, dict[str, object]]:
        with cls._lock:
            return {
                name: {
                    "enabled": status.enabled,
                    "last_tick": status.last_tick,
                    "last_success": status.last_success,
                    "consecutive_failures": status.consecutive_failures,
                    "last_result": dict(status.last_result),
                    "recent_errors": list(status.recent_errors),
                }
                for name, status in cls._jobs.items()
            }

    @classmethod
    def reset(cls) -> None:
        with cls._lock:
            cls._jobs.clear()
