"""SQLAlchemy engine/session helpers for the ledger database.

Usage
-----
from ledger_db.client import session_scope

with session_scope() as s:
    s.execute(...)

Engines are cached per database URL, so one process can talk to several
databases (tests use one SQLite file each).
"""

from __future__ import annotations

import os
from collections.abc import Iterator
from contextlib import contextmanager

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

_ENGINES: dict[str, tuple[Engine, sessionmaker[Session]]] = {}


def _database_url(override: str | None = None) -> str:
    url = override or os.getenv("DATABASE_URL")
    if not url:
        raise RuntimeError("DATABASE_URL is not set; cannot initialize database client")
    return url


def get_engine(*, database_url: str | None = None) -> Engine:
    """Return the shared engine for ``database_url``, creating it on first use."""

    url = _database_url(database_url)
    cached = _ENGINES.get(url)
    if cached is None:
        engine = create_engine(url, pool_pre_ping=True)
        cached = (engine, sessionmaker(bind=engine, expire_on_commit=False, class_=Session))
        _ENGINES[url] = cached
    return cached[0]


def get_session(*, database_url: str | None = None) -> Session:
    """Return a new session bound to the engine for ``database_url``."""

    url = _database_url(database_url)
    get_engine(database_url=url)
    return _ENGINES[url][1]()


@contextmanager
def session_scope(*, database_url: str | None = None) -> Iterator[Session]:
    """Provide a transactional scope around a series of operations."""

    session = get_session(database_url=database_url)
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def dispose_engines() -> None:
    """Dispose and forget every cached engine."""

    for engine, _maker in _ENGINES.values():
        engine.dispose()
    _ENGINES.clear()


__all__ = [
    "get_engine",
    "get_session",
    "session_scope",
    "dispose_engines",
]
