"""
Database engine, session management, and base model class.

This module sets up SQLAlchemy 2.0 with async support. Key components:

  - engine: The async database engine
  - AsyncSessionLocal: Factory for creating async database sessions
  - Base: Declarative base class that all ORM models inherit from
  - get_db(): FastAPI dependency that provides a session per request
  - enable_sqlite_savepoints(): makes SAVEPOINT work on the SQLite driver

Session lifecycle:
  Each API request (and each chat message) gets its own session via get_db().
  The session commits on success and rolls back on any exception. Ledger
  operations run inside a nested transaction (SAVEPOINT) of that session, so
  a failure half-way through one operation undoes exactly that operation.

SQLite note:
  The sqlite3/aiosqlite drivers manage BEGIN themselves and do it lazily,
  which breaks SAVEPOINT semantics. enable_sqlite_savepoints() switches the
  driver to autocommit mode and lets SQLAlchemy emit BEGIN explicitly, the
  recipe from the SQLAlchemy SQLite dialect documentation.
"""

from pathlib import Path

from sqlalchemy import event
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from kantong.config import settings


def enable_sqlite_savepoints(async_engine: AsyncEngine) -> None:
    """Let SQLAlchemy, not the driver, control transaction boundaries."""
    if async_engine.dialect.name != "sqlite":
        return

    @event.listens_for(async_engine.sync_engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(async_engine.sync_engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN")


def sqlite_database_path(url: str = settings.DATABASE_URL) -> Path | None:
    """Return the on-disk path of a file-based SQLite URL, or None."""
    parsed = make_url(url)
    if parsed.get_backend_name() != "sqlite":
        return None
    if not parsed.database or parsed.database == ":memory:":
        return None
    return Path(parsed.database)


def _ensure_sqlite_directory(url: str) -> None:
    path = sqlite_database_path(url)
    if path is not None:
        path.parent.mkdir(parents=True, exist_ok=True)


_ensure_sqlite_directory(settings.DATABASE_URL)

# echo=True in debug mode logs all SQL statements
engine = create_async_engine(
    settings.DATABASE_URL,
    echo=settings.DEBUG,
    # Busy timeout (seconds) when another connection holds the write lock
    connect_args={"timeout": 30} if settings.DATABASE_URL.startswith("sqlite") else {},
)
enable_sqlite_savepoints(engine)

# expire_on_commit=False prevents lazy-load errors after commit in async context
AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy ORM models."""
    pass


async def get_db():
    """
    FastAPI dependency that provides a database session.

    Usage in a route:
        @router.get("/wallets")
        async def list_wallets(db: AsyncSession = Depends(get_db)):
            ...

    The session is committed on success and rolled back on any exception,
    domain errors included: a rejected ledger operation leaves no trace.
    """
    async with AsyncSessionLocal() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
