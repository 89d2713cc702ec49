"""
Database engine, session factory, and metadata shared across the application.
"""

from __future__ import annotations

from datetime import datetime
import logging
from typing import Any, Generator
from urllib.parse import urlparse

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.pool import QueuePool, StaticPool

from ..core.config import settings

logger = logging.getLogger(__name__)

# Engine tuning for a pooled Postgres endpoint:
# - pool_pre_ping + pool_recycle keep stale pooled connections from hanging around.
# - keepalives ensure idle sockets stay registered with the load balancer.
# - statement_timeout caps runaway queries so the API layer recovers quickly.
_DEFAULT_CONNECT_ARGS: dict[str, Any] = {
    "sslmode": "require",
    "keepalives": 1,
    "keepalives_idle": 15,
    "keepalives_interval": 5,
    "keepalives_count": 3,
    "options": "-c statement_timeout=15000",
    "connect_timeout": 5,
    "application_name": "talbiyah_lessons",
}

_DEFAULT_POOL_KWARGS: dict[str, Any] = {
    "pool_size": 3,
    "max_overflow": 5,
    # Fail fast when the pool is exhausted
    "pool_timeout": 2,
    "pool_recycle": 30,
    "pool_pre_ping": True,
    "pool_use_lifo": True,
}


def _should_require_ssl(url: str) -> bool:
    try:
        hostname = urlparse(url).hostname or ""
    except Exception:
        hostname = ""
    normalized = hostname.lower()
    return normalized not in {"", "localhost", "127.0.0.1", "db", "postgres"}


def _build_engine(db_url: str) -> Engine:
    """Create the SQLAlchemy engine for the configured URL."""
    if db_url.startswith("sqlite"):
        # In-memory SQLite must share one connection across threads (TestClient, to_thread).
        return create_engine(
            db_url,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
            future=True,
        )

    connect_args = dict(_DEFAULT_CONNECT_ARGS)
    if not _should_require_ssl(db_url):
        connect_args.pop("sslmode", None)
    return create_engine(
        db_url,
        poolclass=QueuePool,
        connect_args=connect_args,
        future=True,
        **_DEFAULT_POOL_KWARGS,
    )


db_url = settings.get_database_url()
engine: Engine = _build_engine(db_url)


@event.listens_for(engine, "connect")
def receive_connect(dbapi_connection: Any, connection_record: Any) -> None:
    connection_record.info["connect_time"] = datetime.now()
    logger.debug("Database connection established")


@event.listens_for(engine, "checkout")
def receive_checkout(dbapi_connection: Any, connection_record: Any, connection_proxy: Any) -> None:
    logger.debug("Connection checked out from pool")


SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine, expire_on_commit=False)

Base = declarative_base()


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


__all__ = ["Base", "SessionLocal", "engine", "get_db"]
