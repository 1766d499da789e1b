from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from lockrent.core.exceptions import PersistenceTimeout
from .config import settings

logger = logging.getLogger(__name__)


def build_engine(url: str, *, timeout: float) -> Engine:
    """
    SQLite waits at most `timeout` seconds on a locked database; other backends
    wait at most `timeout` for a pooled connection.
    """
    if url.startswith("sqlite"):
        connect_args = {"check_same_thread": False, "timeout": timeout}
        if ":memory:" in url:
            return create_engine(url, connect_args=connect_args, poolclass=StaticPool)
        return create_engine(url, connect_args=connect_args)
    return create_engine(url, pool_pre_ping=True, pool_timeout=timeout)


DATABASE_URL = settings.database_url

engine = build_engine(DATABASE_URL, timeout=settings.persistence_timeout_seconds)

SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
Base = declarative_base()


@contextmanager
def persistence_guard(db: Session) -> Iterator[None]:
    """
    Translate storage stalls (locked database, exhausted pool, dropped
    connection) into PersistenceTimeout. Any database error leaves the
    session rolled back and usable.
    """
    try:
        yield
    except (OperationalError, PoolTimeoutError) as e:
        db.rollback()
        logger.warning(f"Storage call failed: {e}")
        raise PersistenceTimeout("Storage did not answer in time") from e
    except SQLAlchemyError:
        db.rollback()
        raise
