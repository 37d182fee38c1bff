from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker

from agrilink.config import Settings
from agrilink.models import Base

logger = logging.getLogger(__name__)


engine: Engine | None = None
_session_factory: sessionmaker | None = None


class _SessionWrapper:
    """Callable proxy returning sessions from the current factory."""

    def __call__(self, *args: Any, **kwargs: Any):
        if _session_factory is None:
            raise RuntimeError("Database not initialized")
        return _session_factory(*args, **kwargs)


SessionLocal = _SessionWrapper()


def as_utc(value: datetime | None) -> datetime | None:
    """Attach UTC to naive datetimes; SQLite drops the offset on storage."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _engine_options(database_url: str) -> dict[str, Any]:
    if database_url.startswith("sqlite"):
        # Worker threads share pooled connections; writers wait on the lock.
        return {"connect_args": {"check_same_thread": False, "timeout": 30}}
    return {
        "pool_size": 50,
        "max_overflow": 0,
        "pool_recycle": 30,
        "pool_pre_ping": True,
    }


def init_db(cfg: Settings) -> None:
    """Create engine and session factory using SQLAlchemy's ``create_engine``."""
    global engine, _session_factory

    engine = create_engine(
        cfg.database_url,
        future=True,
        **_engine_options(cfg.database_url),
    )
    _session_factory = sessionmaker(
        bind=engine,
        autoflush=False,
        autocommit=False,
        expire_on_commit=False,
        future=True,
    )

    if cfg.db_create_all:
        Base.metadata.create_all(engine)
    logger.info("Database initialised (%s)", engine.dialect.name)
