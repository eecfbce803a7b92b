"""Engine and session management for the event store."""

from __future__ import annotations

import logging
import os
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Generator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import URL, make_url
from sqlalchemy.orm import Session, declarative_base, sessionmaker

LOGGER = logging.getLogger(__name__)

DATABASE_URL_ENV = "DATABASE_URL"
REQUIRE_POSTGRES_ENV = "REQUIRE_POSTGRES"
SQLITE_BUSY_TIMEOUT_ENV = "SQLITE_BUSY_TIMEOUT_MS"

_DEFAULT_DB_PATH = Path(__file__).resolve().parent.parent / "productivity.db"
DEFAULT_SQLITE_BUSY_TIMEOUT_MS = 5000


@dataclass(frozen=True)
class PoolSettings:
    """Connection pool limits applied to server databases."""

    size: int = 5
    max_overflow: int = 10
    timeout: int = 30
    recycle: int = 1800
    connect_timeout: int = 10

    @classmethod
    def from_env(cls) -> "PoolSettings":
        return cls(
            size=_read_int_env("DATABASE_POOL_SIZE", cls.size),
            max_overflow=_read_int_env("DATABASE_MAX_OVERFLOW", cls.max_overflow),
            timeout=_read_int_env("DATABASE_POOL_TIMEOUT", cls.timeout),
            recycle=_read_int_env("DATABASE_POOL_RECYCLE", cls.recycle),
            connect_timeout=_read_int_env("DATABASE_CONNECT_TIMEOUT", cls.connect_timeout),
        )


def _read_int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        value = int(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be an integer") from exc
    if value < 0:
        raise ValueError(f"{name} must be non-negative")
    return value


def _read_bool_env(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def is_sqlite(url: str | URL) -> bool:
    return make_url(url).drivername.startswith("sqlite")


def resolve_database_url(raw_url: str | None) -> str:
    """Return the configured URL, defaulting to a local SQLite file.

    SQLite is refused when ``REQUIRE_POSTGRES`` is enabled so production
    deployments cannot silently fall back to a file database.
    """

    require_postgres = _read_bool_env(REQUIRE_POSTGRES_ENV, False)
    if not raw_url:
        if require_postgres:
            raise RuntimeError(
                f"{DATABASE_URL_ENV} must point at PostgreSQL when {REQUIRE_POSTGRES_ENV}=1"
            )
        _DEFAULT_DB_PATH.parent.mkdir(parents=True, exist_ok=True)
        return f"sqlite:///{_DEFAULT_DB_PATH.as_posix()}"

    url = make_url(raw_url)
    if is_sqlite(url):
        if require_postgres:
            raise RuntimeError(f"SQLite is not permitted when {REQUIRE_POSTGRES_ENV}=1")
        if url.database not in (None, "", ":memory:"):
            Path(url.database).parent.mkdir(parents=True, exist_ok=True)
    return url.render_as_string(hide_password=False)


def engine_options(url: str) -> Dict[str, Any]:
    if is_sqlite(url):
        return {"connect_args": {"check_same_thread": False}}
    pool = PoolSettings.from_env()
    return {
        "pool_pre_ping": True,
        "pool_size": pool.size,
        "max_overflow": pool.max_overflow,
        "pool_timeout": pool.timeout,
        "pool_recycle": pool.recycle,
        "connect_args": {"connect_timeout": pool.connect_timeout},
    }


def _install_sqlite_pragmas(target_engine) -> None:
    busy_timeout = _read_int_env(SQLITE_BUSY_TIMEOUT_ENV, DEFAULT_SQLITE_BUSY_TIMEOUT_MS)

    @event.listens_for(target_engine, "connect")
    def _set_pragmas(dbapi_connection, _record) -> None:
        cursor = dbapi_connection.cursor()
        try:
            # Concurrent ingest requests wait for the writer lock instead of failing.
            cursor.execute(f"PRAGMA busy_timeout = {busy_timeout}")
        finally:
            cursor.close()


SQLALCHEMY_DATABASE_URL = resolve_database_url(os.getenv(DATABASE_URL_ENV))

engine = create_engine(SQLALCHEMY_DATABASE_URL, **engine_options(SQLALCHEMY_DATABASE_URL))
if is_sqlite(SQLALCHEMY_DATABASE_URL):
    _install_sqlite_pragmas(engine)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def get_db() -> Generator[Session, None, None]:
    """FastAPI dependency yielding a request-scoped session."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def session_scope() -> Generator[Session, None, None]:
    """Commit on success and roll back on error; used by jobs and scripts."""
    session = SessionLocal()
    try:
        yield session
        session.commit()
    except Exception:
        LOGGER.debug("Rolling back session after error")
        session.rollback()
        raise
    finally:
        session.close()
