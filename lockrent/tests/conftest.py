from __future__ import annotations

import os
import tempfile
from pathlib import Path

# Settings are read once at import time, so point them at throwaway paths first.
_TMP = Path(tempfile.mkdtemp(prefix="lockrent-tests-"))
os.environ.setdefault("LOCKRENT_DATABASE_URL", "sqlite+pysqlite:///:memory:")
os.environ.setdefault("LOCKRENT_EVENT_LOG_PATH", str(_TMP / "event_log.jsonl"))
os.environ.setdefault("LOCKRENT_SEED_ON_STARTUP", "false")
os.environ.setdefault("LOCKRENT_RETRY_INITIAL_DELAY", "0")
os.environ.setdefault("LOCKRENT_RETRY_MAX_DELAY", "0")

import pytest
from sqlalchemy.orm import Session, sessionmaker

import lockrent.infrastructure.models.models  # noqa: F401  registers the tables
from lockrent.infrastructure import database
from lockrent.infrastructure.database import Base, build_engine
from lockrent.tests.support import FakeClock, System, build_system


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def engine():
    """Fresh in-memory database per test."""
    eng = build_engine("sqlite+pysqlite:///:memory:", timeout=1.0)
    Base.metadata.create_all(bind=eng)
    yield eng
    eng.dispose()


@pytest.fixture()
def db(engine) -> Session:
    session = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def event_log_path(tmp_path: Path) -> Path:
    return tmp_path / "event_log.jsonl"


@pytest.fixture()
def system(db: Session, clock: FakeClock, event_log_path: Path) -> System:
    return build_system(db, clock=clock, event_log_path=event_log_path)


@pytest.fixture()
def app_database() -> None:
    """
    Reset the application's shared database and event log so TestClient tests
    don't leak rows into each other.
    """
    from lockrent.infrastructure.config import settings

    Base.metadata.drop_all(bind=database.engine)
    Base.metadata.create_all(bind=database.engine)
    settings.event_log_path.parent.mkdir(parents=True, exist_ok=True)
    settings.event_log_path.write_text("", encoding="utf-8")
