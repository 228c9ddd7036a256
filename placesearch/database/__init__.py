"""
Database engine and session factory for the search read path.

The engine is created lazily so importing the search package never needs a
database driver or a reachable server.
"""

from __future__ import annotations

from contextlib import contextmanager
from datetime import datetime
import logging
from threading import Lock
from typing import Any, Generator, Optional

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import QueuePool

from placesearch.core.config import settings

logger = logging.getLogger(__name__)

_DEFAULT_CONNECT_ARGS: dict[str, Any] = {
    "keepalives": 1,
    "keepalives_idle": 15,
    "keepalives_interval": 5,
    "keepalives_count": 3,
    "connect_timeout": 5,
    "application_name": "placesearch",
}

_engine: Optional[Engine] = None
_engine_lock = Lock()

SessionLocal = sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False)


def _build_engine_kwargs() -> dict[str, Any]:
    connect_args = dict(_DEFAULT_CONNECT_ARGS)
    # Hard ceiling per statement; searches tighten it per call from their deadline.
    connect_args["options"] = f"-c statement_timeout={settings.db_statement_timeout_ms}"
    return {
        "poolclass": QueuePool,
        "pool_size": settings.db_pool_size,
        "max_overflow": settings.db_max_overflow,
        "pool_timeout": settings.db_pool_timeout_s,
        "pool_recycle": settings.db_pool_recycle_s,
        "pool_pre_ping": True,
        "connect_args": connect_args,
    }


def _add_pool_events(engine: Engine) -> None:
    @event.listens_for(engine, "connect")
    def receive_connect(dbapi_connection: Any, connection_record: Any) -> None:
        connection_record.info["connect_time"] = datetime.now()
        logger.debug("Database connection established")

    @event.listens_for(engine, "checkout")
    def receive_checkout(
        dbapi_connection: Any, connection_record: Any, connection_proxy: Any
    ) -> None:
        logger.debug("Connection checked out from pool")

    @event.listens_for(engine, "checkin")
    def receive_checkin(dbapi_connection: Any, connection_record: Any) -> None:
        logger.debug("Connection returned to pool")


def get_engine() -> Engine:
    """Return the process-wide engine, creating it on first use."""
    global _engine
    if _engine is None:
        with _engine_lock:
            if _engine is None:
                engine = create_engine(settings.database_url, **_build_engine_kwargs())
                _add_pool_events(engine)
                SessionLocal.configure(bind=engine)
                _engine = engine
    return _engine


def get_db() -> Generator[Session, None, None]:
    """Get database session with proper cleanup."""
    get_engine()
    db = SessionLocal()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


@contextmanager
def get_session() -> Generator[Session, None, None]:
    """Context-manager form of get_db for non-request callers."""
    yield from get_db()


def get_db_pool_status() -> dict[str, int]:
    """Get current database pool statistics."""
    pool = get_engine().pool
    return {
        "size": pool.size(),
        "checked_in": pool.checkedin(),
        "checked_out": pool.checkedout(),
        "total": pool.size() + pool.overflow(),
        "overflow": pool.overflow(),
    }


__all__ = [
    "SessionLocal",
    "get_db",
    "get_db_pool_status",
    "get_engine",
    "get_session",
]
