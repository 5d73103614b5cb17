from __future__ import annotations

from sqlalchemy import Engine, create_engine
from sqlalchemy.orm import Session, sessionmaker

from .db_models import Base

_ENGINE: Engine | None = None
_ENGINE_URL: str | None = None
_SESSIONMAKER: sessionmaker | None = None


def get_engine(url: str) -> Engine:
    """Return a cached SQLAlchemy engine.

    The cache is keyed on the URL so tests can point DATABASE_URL at a fresh file.
    """

    global _ENGINE, _ENGINE_URL, _SESSIONMAKER

    if _ENGINE is not None and _ENGINE_URL == url:
        return _ENGINE

    connect_args = {"check_same_thread": False} if url.startswith("sqlite") else {}
    _ENGINE = create_engine(url, future=True, connect_args=connect_args)
    _ENGINE_URL = url
    _SESSIONMAKER = sessionmaker(bind=_ENGINE, class_=Session, autocommit=False, autoflush=False)
    return _ENGINE


def session_factory(url: str) -> sessionmaker:
    get_engine(url)  # ensure _SESSIONMAKER is created
    assert _SESSIONMAKER is not None
    return _SESSIONMAKER


def init_db(url: str, auto_create: bool = True) -> None:
    if not auto_create:
        return

    Base.metadata.create_all(bind=get_engine(url))
