"""Apply Alembic migrations on startup, serialised across processes."""

from __future__ import annotations

import errno
import logging
import os
import sys
import time
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Iterable, Iterator, Optional, Sequence

from alembic import command
from alembic.config import Config
from alembic.script import ScriptDirectory
from sqlalchemy import create_engine, inspect
from sqlalchemy.engine.reflection import Inspector

from .database import SQLALCHEMY_DATABASE_URL, engine_options

LOGGER = logging.getLogger(__name__)

BACKEND_DIR = Path(__file__).resolve().parent.parent
LOCK_FILENAME = ".alembic-migration.lock"
LOCK_RETRY_DELAY = 0.25
LOCK_TIMEOUT_ENV = "ALEMBIC_MIGRATION_LOCK_TIMEOUT"
DEFAULT_LOCK_TIMEOUT = 30.0

if os.name == "posix":  # pragma: no cover - platform specific
    import fcntl
else:  # pragma: no cover - platform specific
    import msvcrt

RevisionSentinel = tuple[str, Callable[[Inspector], bool]]


def _index_exists(inspector: Inspector, table_name: str, index_name: str) -> bool:
    if not inspector.has_table(table_name):
        return False
    return index_name in {index["name"] for index in inspector.get_indexes(table_name)}


def _column_exists(inspector: Inspector, table_name: str, column_name: str) -> bool:
    if not inspector.has_table(table_name):
        return False
    return column_name in {column["name"] for column in inspector.get_columns(table_name)}


# Newest first: the first matching sentinel identifies the schema revision of
# a database created outside Alembic (for example by ``create_all``).
REVISION_SENTINELS: Sequence[RevisionSentinel] = (
    (
        "20261019_0002",
        lambda inspector: _index_exists(inspector, "metrics_cache", "metrics_cache_computed_at_idx"),
    ),
    (
        "20261019_0001",
        lambda inspector: (
            _column_exists(inspector, "events", "dedup_key")
            and inspector.has_table("metrics_cache")
        ),
    ),
)


def _determine_latest_revision(
    inspector: Inspector, sentinels: Iterable[RevisionSentinel]
) -> str | None:
    for revision, check in sentinels:
        if check(inspector):
            return revision
    return None


@dataclass(frozen=True)
class MigrationPlan:
    """What to do with a database before serving requests."""

    stamp: Optional[str]
    upgrade: bool
    reason: str


def plan_migrations(
    inspector: Inspector,
    head_revision: Optional[str],
    sentinels: Iterable[RevisionSentinel] = REVISION_SENTINELS,
) -> MigrationPlan:
    if inspector.has_table("alembic_version"):
        return MigrationPlan(stamp=None, upgrade=True, reason="versioned database")

    tables = [name for name in inspector.get_table_names() if name != "alembic_version"]
    if not tables:
        return MigrationPlan(stamp=None, upgrade=True, reason="empty database")

    detected = _determine_latest_revision(inspector, sentinels)
    if detected is None:
        return MigrationPlan(stamp=None, upgrade=True, reason="unrecognised tables")
    return MigrationPlan(
        stamp=detected,
        upgrade=detected != head_revision,
        reason=f"schema matches revision {detected}",
    )


def _read_lock_timeout() -> float:
    raw = os.getenv(LOCK_TIMEOUT_ENV)
    if not raw:
        return DEFAULT_LOCK_TIMEOUT
    try:
        value = float(raw)
    except ValueError:
        LOGGER.warning("Invalid %s=%s; using %.1f seconds", LOCK_TIMEOUT_ENV, raw, DEFAULT_LOCK_TIMEOUT)
        return DEFAULT_LOCK_TIMEOUT
    if value <= 0:
        LOGGER.warning("%s must be positive; using %.1f seconds", LOCK_TIMEOUT_ENV, DEFAULT_LOCK_TIMEOUT)
        return DEFAULT_LOCK_TIMEOUT
    return value


def _try_lock(handle) -> bool:
    try:
        if os.name == "posix":  # pragma: no cover - platform specific
            fcntl.flock(handle.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
        else:  # pragma: no cover - platform specific
            msvcrt.locking(handle.fileno(), msvcrt.LK_NBLCK, 1)
    except BlockingIOError:
        return False
    except OSError as error:
        # Windows reports sharing (32) and lock (33) violations via winerror.
        if error.errno in {errno.EACCES, errno.EAGAIN, errno.EBUSY} or getattr(
            error, "winerror", None
        ) in {32, 33}:
            return False
        raise
    return True


def _unlock(handle) -> None:
    try:
        if os.name == "posix":  # pragma: no cover - platform specific
            fcntl.flock(handle.fileno(), fcntl.LOCK_UN)
        else:  # pragma: no cover - platform specific
            msvcrt.locking(handle.fileno(), msvcrt.LK_UNLCK, 1)
    except OSError:  # pragma: no cover - released when the file closes anyway
        LOGGER.debug("Failed to release migration lock explicitly", exc_info=True)


@contextmanager
def migration_lock(path: Path, *, timeout: float) -> Iterator[None]:
    """Hold an exclusive file lock so only one worker migrates at a time."""

    path.parent.mkdir(parents=True, exist_ok=True)
    deadline = time.monotonic() + timeout
    with path.open("a+") as handle:
        while not _try_lock(handle):
            if time.monotonic() >= deadline:
                raise TimeoutError(f"Timed out waiting for migration lock {path}")
            time.sleep(LOCK_RETRY_DELAY)
        try:
            yield
        finally:
            _unlock(handle)


def alembic_config(database_url: str) -> Config:
    config = Config(str(BACKEND_DIR / "alembic.ini"))
    config.set_main_option("script_location", str(BACKEND_DIR / "alembic"))
    config.set_main_option("sqlalchemy.url", database_url)
    return config


def run_database_migrations(database_url: Optional[str] = None) -> MigrationPlan:
    """Bring the schema to the latest revision and return the plan applied."""

    project_root = BACKEND_DIR.parent
    if str(project_root) not in sys.path:
        sys.path.insert(0, str(project_root))

    url = database_url or os.getenv("DATABASE_URL") or SQLALCHEMY_DATABASE_URL
    config = alembic_config(url)
    head_revision = ScriptDirectory.from_config(config).get_current_head()

    with migration_lock(BACKEND_DIR / LOCK_FILENAME, timeout=_read_lock_timeout()):
        engine = create_engine(url, **engine_options(url))
        try:
            plan = plan_migrations(inspect(engine), head_revision)
        finally:
            engine.dispose()

        LOGGER.info("Database migration plan: %s", plan.reason)
        if plan.stamp:
            command.stamp(config, plan.stamp)
        if plan.upgrade:
            command.upgrade(config, "head")
        else:
            LOGGER.info("Schema already at revision %s", head_revision)
    return plan
