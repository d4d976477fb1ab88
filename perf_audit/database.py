"""Database engine and session factory creation."""

from pathlib import Path

from sqlalchemy import event
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from perf_audit.logging_config import get_logger

logger = get_logger(__name__)


class Base(DeclarativeBase):
    """Declarative base for all ORM models."""


def is_sqlite_url(database_url: str) -> bool:
    return make_url(database_url).get_backend_name().startswith("sqlite")


def create_engine(database_url: str, *, echo: bool = False) -> AsyncEngine:
    """
    Create an async engine for ``database_url``.

    For SQLite the parent directory of the database file is created on demand
    and every connection enables foreign keys, WAL journaling and a busy timeout.

    Args:
        database_url: SQLAlchemy URL, e.g. ``sqlite+aiosqlite:///.perf-audit/performance.db``
        echo: Enable SQL statement logging

    Returns:
        Configured AsyncEngine
    """
    url = make_url(database_url)
    is_sqlite = url.get_backend_name().startswith("sqlite")

    if is_sqlite and url.database and url.database != ":memory:":
        Path(url.database).parent.mkdir(parents=True, exist_ok=True)

    engine = create_async_engine(
        database_url,
        echo=echo,
        connect_args={"timeout": 20} if is_sqlite else {},
    )

    if is_sqlite:

        @event.listens_for(engine.sync_engine, "connect")
        def set_sqlite_pragma(dbapi_connection, connection_record):
            """Enable FK enforcement so child rows cascade with their build."""
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            if url.database and url.database != ":memory:":
                cursor.execute("PRAGMA journal_mode=WAL")
            cursor.execute("PRAGMA synchronous=NORMAL")
            cursor.execute("PRAGMA busy_timeout=30000")
            cursor.close()

    logger.debug("Database engine created: %s", url.render_as_string(hide_password=True))
    return engine


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker:
    """Session factory bound to ``engine``; objects stay usable after commit."""
    return async_sessionmaker(engine, expire_on_commit=False, autoflush=False)


async def init_schema(engine: AsyncEngine) -> None:
    """Create all tables that do not exist yet."""
    # Register every model on Base.metadata before create_all.
    from perf_audit import models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.debug("Database schema ensured")
