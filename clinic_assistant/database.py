"""Database engine set-up."""

from __future__ import annotations

import logging

from sqlalchemy.engine import Engine
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel, create_engine

from clinic_assistant import models  # noqa: F401  (registers the tables)
from clinic_assistant.config import DATABASE_URL

logger = logging.getLogger(__name__)

_IN_MEMORY_URLS = {"sqlite://", "sqlite:///:memory:"}


def create_db_engine(url: str | None = None) -> Engine:
    """Create an engine for *url* (default ``DATABASE_URL``) and its tables.

    In-memory SQLite uses a single shared connection so every session sees
    the same database.
    """
    url = url or DATABASE_URL
    kwargs: dict = {}
    if url.startswith("sqlite"):
        kwargs["connect_args"] = {"check_same_thread": False}
    if url in _IN_MEMORY_URLS:
        kwargs["poolclass"] = StaticPool

    engine = create_engine(url, **kwargs)
    SQLModel.metadata.create_all(engine)
    logger.info("Database ready (%s)", engine.url.render_as_string(hide_password=True))
    return engine
