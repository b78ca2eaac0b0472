"""Database configuration and session management for SQLAlchemy."""

from typing import Any, Optional

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from settings import settings

DATABASE_URL = (settings.database_url or "").strip() or "sqlite:///./calendar_sync.db"

Base = declarative_base()


def get_engine(database_url: Optional[str] = None) -> Engine:
    """Create a SQLAlchemy engine; SQLite gets a thread-agnostic connection."""
    database_url = database_url or DATABASE_URL
    engine_kwargs: dict[str, Any] = {"echo": settings.database_echo}

    if database_url.startswith("sqlite"):
        engine_kwargs["connect_args"] = {"check_same_thread": False}
    else:
        engine_kwargs["pool_pre_ping"] = True

    return create_engine(database_url, **engine_kwargs)


def get_session_local(bind_engine: Optional[Engine] = None) -> sessionmaker:
    """Return a configured sessionmaker bound to the provided engine."""
    engine_to_use = bind_engine or engine
    return sessionmaker(
        autocommit=False,
        autoflush=False,
        expire_on_commit=False,
        bind=engine_to_use,
        class_=Session,
    )


def init_db(bind_engine: Optional[Engine] = None) -> None:
    """Create all tables on the given engine (defaults to the application engine)."""
    from data import models  # noqa: F401  # Ensure models are registered on the metadata

    Base.metadata.create_all(bind=bind_engine or engine)


def ping(session_factory: Optional[sessionmaker] = None) -> None:
    """Run a trivial query; raises on connection failure."""
    session = (session_factory or SessionLocal)()
    try:
        session.execute(text("SELECT 1"))
    finally:
        session.close()


engine = get_engine()
SessionLocal = get_session_local()

__all__ = [
    "Base",
    "DATABASE_URL",
    "engine",
    "get_engine",
    "SessionLocal",
    "get_session_local",
    "init_db",
    "ping",
]
