"""Database session bootstrap.

Reads DB URL from environment variable FINDBACK_DB_URL, then DATABASE_URL, and
falls back to a local SQLite file. The engine is built on first use so the URL
can be overridden (tests, CLI) before any connection is made.
"""
from __future__ import annotations
import os
from contextlib import contextmanager
from typing import Iterator, Optional

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import sessionmaker, Session

DEFAULT_DB_URL = 'sqlite:///findback.db'

_engine: Optional[Engine] = None
_session_factory: Optional[sessionmaker] = None


def resolve_db_url() -> str:
    return (
        os.getenv('FINDBACK_DB_URL')
        or os.getenv('DATABASE_URL')
        or DEFAULT_DB_URL
    )


def configure(url: Optional[str] = None) -> Engine:
    """(Re)build the engine and session factory for ``url``."""
    global _engine, _session_factory
    if _engine is not None:
        _engine.dispose()
    url = url or resolve_db_url()
    connect_args = {}
    if make_url(url).get_backend_name() == 'sqlite':
        # batch matching reads from worker threads
        connect_args['check_same_thread'] = False
    _engine = create_engine(url, pool_pre_ping=True, future=True, connect_args=connect_args)
    _session_factory = sessionmaker(bind=_engine, autoflush=False, expire_on_commit=False, class_=Session)
    return _engine


def get_engine() -> Engine:
    if _engine is None:
        configure()
    return _engine


def get_session_factory() -> sessionmaker:
    if _session_factory is None:
        configure()
    return _session_factory


def init_db() -> None:
    """Create all item tables on the configured engine."""
    from libs.db.models import Base
    Base.metadata.create_all(get_engine())


@contextmanager
def get_session() -> Iterator[Session]:
    session = get_session_factory()()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
