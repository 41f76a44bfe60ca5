"""
Database Session Management
===========================

One engine per DATABASE_URL. SQLite for development and tests, PostgreSQL in
production. The URL is re-read from the environment on every ``get_engine``
call so tests can point the service at a fresh file and ``reset_engine()``.

Sessions keep loaded attributes after commit (``expire_on_commit=False``):
the ledger and recorder read fresh values with explicit queries or
``refresh`` wherever a concurrent writer may have changed a row.
"""

import os
from typing import Generator, Optional

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, Session

from ..config import get_settings
from .models import Base

_engine: Optional[Engine] = None
_engine_url: Optional[str] = None

SessionLocal = sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False)


def database_url() -> str:
    return os.environ.get("DATABASE_URL") or get_settings().database_url


def _build_engine(url: str) -> Engine:
    settings = get_settings()
    if url.startswith("sqlite"):
        # request handlers and tests share the engine across threads
        return create_engine(url, connect_args={"check_same_thread": False}, echo=settings.sql_echo)

    return create_engine(
        url,
        pool_size=settings.db_pool_size,
        max_overflow=settings.db_max_overflow,
        pool_pre_ping=True,
        connect_args={"connect_timeout": settings.db_connect_timeout},
        echo=settings.sql_echo,
    )


def get_engine() -> Engine:
    """Engine for the current DATABASE_URL, rebuilt when the URL changes."""
    global _engine, _engine_url
    url = database_url()
    if _engine is None or _engine_url != url:
        if _engine is not None:
            _engine.dispose()
        _engine = _build_engine(url)
        _engine_url = url
        SessionLocal.configure(bind=_engine)
    return _engine


def reset_engine() -> None:
    """Dispose the engine and unbind sessions (tests switch databases with this)."""
    global _engine, _engine_url
    if _engine is not None:
        _engine.dispose()
    _engine = None
    _engine_url = None
    SessionLocal.configure(bind=None)


def init_db() -> None:
    Base.metadata.create_all(bind=get_engine())


def get_db() -> Generator[Session, None, None]:
    """FastAPI dependency: one session per request, always closed."""
    get_engine()
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
