"""
Database setup helpers.

Builds the SQLAlchemy engine and session factory from configuration and
creates the schema for every record model.
"""

import logging
from typing import Any, Optional

from sqlalchemy import Engine, create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from .config import RecordsConfig, get_config
from .entities import Base
from .soft_delete.mixins import register_soft_delete_listeners

logger = logging.getLogger(__name__)


def _enable_sqlite_foreign_keys(dbapi_connection: Any, connection_record: Any) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def create_db_engine(
    database_url: Optional[str] = None,
    enforce_foreign_keys: bool = False,
    **kwargs: object,
) -> Engine:
    """
    Create an engine for ``database_url`` (configured URL when omitted).

    In-memory SQLite uses a single shared connection so every session sees
    the same database. SQLite ignores foreign keys unless
    ``enforce_foreign_keys`` is set; other databases always enforce them.
    """
    url = database_url or get_config().database_url
    if url.startswith("sqlite"):
        options: dict = {"connect_args": {"check_same_thread": False}}
        if ":memory:" in url or url in ("sqlite://", "sqlite:///"):
            options["poolclass"] = StaticPool
        options.update(kwargs)
        engine = create_engine(url, **options)
        if enforce_foreign_keys:
            event.listen(engine, "connect", _enable_sqlite_foreign_keys)
        return engine

    # PostgreSQL, MySQL, etc.
    options = {"pool_pre_ping": True, "pool_size": 10, "max_overflow": 20}
    options.update(kwargs)
    return create_engine(url, **options)


def create_session_factory(engine: Engine) -> sessionmaker:  # type: ignore[type-arg]
    """Create the session factory used by the services."""
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


def init_db(engine: Engine) -> None:
    """Create all tables and install the hard-delete guard."""
    register_soft_delete_listeners(Base)
    Base.metadata.create_all(bind=engine)
    logger.info(f"Initialized schema with {len(Base.metadata.tables)} tables")


def setup_database(
    config: Optional[RecordsConfig] = None, create_schema: bool = False
) -> sessionmaker:  # type: ignore[type-arg]
    """Engine plus session factory for the configured database."""
    config = config or get_config()
    engine = create_db_engine(config.database_url)
    register_soft_delete_listeners(Base)
    if create_schema:
        init_db(engine)
    return create_session_factory(engine)
