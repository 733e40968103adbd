"""
Database engine, session factory, and metadata shared across the application.
"""

from __future__ import annotations

from datetime import datetime
import logging
from typing import Any, Generator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeMeta, Session, declarative_base, sessionmaker

from casaora.core.config import settings

logger = logging.getLogger(__name__)

_DEFAULT_POOL_KWARGS: dict[str, Any] = {
    "pool_pre_ping": True,
    # Recycle well ahead of pooler idle timeouts
    "pool_recycle": 300,
    # Fail fast when the pool is exhausted instead of queueing requests
    "pool_timeout": 5,
    "pool_use_lifo": True,
}

_POSTGRES_CONNECT_ARGS: dict[str, Any] = {
    "connect_timeout": 5,
    "options": "-c statement_timeout=15000",
    "application_name": "casaora_checkout",
}


def _is_sqlite(db_url: str) -> bool:
    return db_url.startswith("sqlite")


def build_engine_kwargs(db_url: str) -> dict[str, Any]:
    """Return create_engine keyword arguments suited to the URL's dialect."""
    if _is_sqlite(db_url):
        # Busy timeout lets concurrent writers wait for the lock instead of failing.
        return {"connect_args": {"check_same_thread": False, "timeout": 30}}

    kwargs = dict(_DEFAULT_POOL_KWARGS)
    kwargs["pool_size"] = settings.database_pool_size
    kwargs["max_overflow"] = settings.database_max_overflow
    kwargs["connect_args"] = dict(_POSTGRES_CONNECT_ARGS)
    return kwargs


engine: Engine = create_engine(settings.database_url, **build_engine_kwargs(settings.database_url))


# Log pool events for monitoring
@event.listens_for(engine, "connect")
def receive_connect(dbapi_connection: Any, connection_record: Any) -> None:
    connection_record.info["connect_time"] = datetime.now()
    logger.debug("Database connection established")


SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine, expire_on_commit=False)

Base: DeclarativeMeta = declarative_base()


def get_db() -> Generator[Session, None, None]:
    """Get database session with proper cleanup."""
    db = SessionLocal()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


__all__ = [
    "Base",
    "SessionLocal",
    "build_engine_kwargs",
    "engine",
    "get_db",
]
