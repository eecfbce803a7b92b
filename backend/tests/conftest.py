from __future__ import annotations

import os
import sys
from contextlib import contextmanager
from pathlib import Path
from typing import Callable, Generator, Iterable

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

# Ensure the project root (which exposes the ``backend`` package) is on ``sys.path``
PROJECT_ROOT = Path(__file__).resolve().parents[2]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

os.environ.setdefault("RUN_MIGRATIONS_ON_STARTUP", "0")
os.environ.setdefault("ENABLE_METRICS_CACHE_REFRESH", "0")

from backend.app import models, schemas  # noqa: E402
from backend.app.database import Base, get_db  # noqa: E402
from backend.app.main import app  # noqa: E402
from backend.app.services.ingestion import IngestionService  # noqa: E402
from backend.app.services.notifier import ChangeNotifier  # noqa: E402


@pytest.fixture(autouse=True)
def _isolate_environment(monkeypatch) -> None:
    monkeypatch.delenv("REFERENCE_TIMEZONE", raising=False)
    monkeypatch.delenv("METRICS_CACHE_RETENTION_DAYS", raising=False)
    monkeypatch.delenv("INGEST_CHUNK_SIZE", raising=False)


@pytest.fixture
def engine() -> Generator[Engine, None, None]:
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    try:
        yield engine
    finally:
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture
def db_session(engine: Engine) -> Generator[Session, None, None]:
    session = sessionmaker(bind=engine, autocommit=False, autoflush=False)()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def session_factory(db_session: Session):
    """Stand-in for ``session_scope`` bound to the test session."""

    @contextmanager
    def _scope() -> Generator[Session, None, None]:
        yield db_session
        db_session.commit()

    return _scope


@pytest.fixture
def notifier() -> ChangeNotifier:
    return ChangeNotifier()


@pytest.fixture
def client(db_session: Session, notifier: ChangeNotifier) -> Generator[TestClient, None, None]:
    def override_get_db() -> Generator[Session, None, None]:
        try:
            yield db_session
        finally:
            db_session.expire_all()

    previous_notifier = app.state.change_notifier
    app.dependency_overrides[get_db] = override_get_db
    app.state.change_notifier = notifier
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.pop(get_db, None)
    app.state.change_notifier = previous_notifier


@pytest.fixture
def store_events(db_session: Session) -> Callable[[Iterable[dict]], None]:
    """Ingest raw payload dictionaries through the real pipeline."""

    def _store(payloads: Iterable[dict]) -> None:
        events = [schemas.EventCreate.model_validate(payload) for payload in payloads]
        IngestionService.ingest(db_session, events)

    return _store


@pytest.fixture
def seed_registry(db_session: Session) -> dict:
    worker = models.Worker(worker_id="W9", name="Registered Only")
    station = models.Workstation(station_id="S9", name="Spare Press", type="press")
    db_session.add_all([worker, station])
    db_session.commit()
    return {"worker": worker, "station": station}
