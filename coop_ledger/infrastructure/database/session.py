"""Database session management with connection pooling and units of work"""

import logging
from contextlib import contextmanager
from typing import Iterator
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.orm.exc import StaleDataError

from coop_ledger.config import settings
from coop_ledger.domain.exceptions import ConcurrencyConflict
from coop_ledger.infrastructure.database.models import Base
from coop_ledger.infrastructure.observability.metrics import concurrency_conflict_counter

logger = logging.getLogger(__name__)

_ATOMIC_KEY = "coop_ledger.atomic_depth"


def build_engine(database_url: str) -> Engine:
    """Create an engine; pool sizing applies to server databases only"""
    if database_url.startswith("sqlite"):
        return create_engine(database_url, connect_args={"check_same_thread": False})

    # Connection pool: max 20 connections, recycle after 1 hour to avoid stale connections
    return create_engine(
        database_url,
        pool_pre_ping=True,  # Verify connections before using
        pool_size=10,
        max_overflow=10,
        pool_recycle=3600,
    )


engine = build_engine(settings.database_url)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def init_db(bind: Engine = engine) -> None:
    """Create missing tables"""
    Base.metadata.create_all(bind=bind)


@contextmanager
def atomic(db: Session) -> Iterator[Session]:
    """
    Run a block as one all-or-nothing unit of work.

    The outermost block commits on success and rolls back on any error;
    nested blocks join the enclosing unit. A lost optimistic version check
    is rolled back and re-raised as ConcurrencyConflict so callers can retry
    the whole transition.
    """
    depth = db.info.get(_ATOMIC_KEY, 0)
    db.info[_ATOMIC_KEY] = depth + 1
    try:
        yield db
        if depth == 0:
            db.commit()
    except StaleDataError as e:
        if depth == 0:
            db.rollback()
            concurrency_conflict_counter.inc()
            logger.warning("Concurrent update detected, transaction rolled back", extra={"step": "atomic"})
            raise ConcurrencyConflict(str(e)) from e
        raise
    except Exception:
        if depth == 0:
            db.rollback()
        raise
    finally:
        db.info[_ATOMIC_KEY] = depth
