"""Engine and session factory shared by the stores."""
from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, Iterator, Optional

from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import sessionmaker
from sqlmodel import Session, SQLModel, create_engine

from .config import settings


def _build_engine(database_url: str) -> Engine:
    url = make_url(database_url)
    connect_args: Dict[str, Any] = {}
    if url.get_backend_name() == "sqlite":
        connect_args["check_same_thread"] = False
        if url.database and url.database != ":memory:":
            Path(url.database).expanduser().parent.mkdir(parents=True, exist_ok=True)
    return create_engine(url, connect_args=connect_args)


def _session_factory(bind: Engine) -> sessionmaker:
    return sessionmaker(bind=bind, class_=Session, autoflush=False)


engine = _build_engine(settings.DATABASE_URL)
SessionLocal = _session_factory(engine)


def reset_session_factory(database_url: Optional[str] = None) -> None:
    """Point ``engine`` and ``SessionLocal`` at ``database_url`` (tests, CLI)."""

    global engine, SessionLocal

    if database_url is not None:
        settings.DATABASE_URL = database_url
    engine = _build_engine(settings.DATABASE_URL)
    SessionLocal = _session_factory(engine)


def create_tables() -> None:
    # table modules must be imported before create_all sees them
    from . import configuration, user_settings  # noqa: F401
    from .auth import models  # noqa: F401

    SQLModel.metadata.create_all(engine)


def get_session() -> Iterator[Session]:
    with SessionLocal() as session:
        yield session


__all__ = ["SessionLocal", "create_tables", "engine", "get_session", "reset_session_factory"]
