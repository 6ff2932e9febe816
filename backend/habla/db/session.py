"""Engine and session helpers for the SQL-backed persistence layer.

One engine is shared per process and rebuilt after :func:`dispose_engine`,
which tests use to switch ``HABLA_DATABASE_URL`` between cases.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Generator, Optional

from sqlalchemy import Engine, create_engine
from sqlalchemy.engine import make_url
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from ..config import Settings, get_settings

logger = logging.getLogger(__name__)

_engine: Optional[Engine] = None
_session_factory: Optional[sessionmaker[Session]] = None
_schema_ready = False


def _engine_options(database_url: str, settings: Settings) -> dict[str, object]:
    url = make_url(database_url)
    options: dict[str, object] = {"echo": settings.database_echo, "future": True}
    if url.get_backend_name() != "sqlite":
        options.update(
            pool_pre_ping=True,
            pool_size=settings.database_pool_size,
            max_overflow=settings.database_max_overflow,
        )
        return options

    # The controller scores attempts on the event loop thread but routes may run in a threadpool.
    options["connect_args"] = {"check_same_thread": False}
    if url.database in (None, "", ":memory:"):
        # Every new connection to an in-memory database would start empty.
        options["poolclass"] = StaticPool
    return options


def get_engine() -> Engine:
    global _engine, _session_factory
    if _engine is None:
        settings = get_settings()
        if not settings.database_url:
            raise RuntimeError("HABLA_DATABASE_URL must be configured before using the database.")
        _engine = create_engine(settings.database_url, **_engine_options(settings.database_url, settings))
        _session_factory = sessionmaker(bind=_engine, autoflush=False, expire_on_commit=False)
        logger.debug("Created engine for %s", _engine.url.render_as_string(hide_password=True))
    return _engine


def ensure_schema() -> None:
    """Create missing tables once per engine; Alembic remains the source of truth for upgrades."""
    global _schema_ready
    if _schema_ready:
        return
    from . import models  # noqa: F401
    from .base import Base

    Base.metadata.create_all(get_engine())
    _schema_ready = True


@contextmanager
def session_scope(*, commit: bool = True) -> Generator[Session, None, None]:
    get_engine()
    assert _session_factory is not None
    session = _session_factory()
    try:
        yield session
        if commit:
            session.commit()
    except Exception:  # noqa: BLE001
        session.rollback()
        raise
    finally:
        session.close()


def dispose_engine() -> None:
    global _engine, _session_factory, _schema_ready
    if _engine is not None:
        _engine.dispose()
    _engine = None
    _session_factory = None
    _schema_ready = False


__all__ = [
    "dispose_engine",
    "ensure_schema",
    "get_engine",
    "session_scope",
]
