"""
PlaceShare Backend: Database Engine Management
===============================================

What:  Async SQLAlchemy engine, session factory and declarative base.
How:   Creates an async engine with connection pooling (PostgreSQL) or without
       one (SQLite). Sessions are opened per operation by the document store
       (see placeshare.store), which owns transaction boundaries.
When:  Engine is created at module import; sessions are created per operation.

Connection Pooling Strategy (PostgreSQL):
    pool_size=20:      Persistent connections for normal load
    max_overflow=10:   Temporary connections for traffic spikes (total max = 30)
    pool_pre_ping:     Validates connections before use
    pool_recycle=3600: Recycles connections every hour
"""

from typing import Any, Dict

from sqlalchemy import event
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.pool import NullPool

from placeshare.config import settings


def _engine_options(url: str) -> Dict[str, Any]:
    """Pool options for the configured backend. SQLite gets a fresh connection per session."""
    options: Dict[str, Any] = {"echo": settings.log_level == "DEBUG"}
    if url.startswith("sqlite"):
        options["poolclass"] = NullPool
    else:
        options.update(
            pool_size=settings.db_pool_size,
            max_overflow=settings.db_max_overflow,
            pool_pre_ping=settings.db_pool_pre_ping,
            pool_recycle=3600,
        )
    return options


def _serialize_sqlite_writers(engine: AsyncEngine) -> None:
    """
    Start every SQLite transaction with BEGIN IMMEDIATE.

    SQLite has no row locks and ignores FOR UPDATE; the driver also defers
    BEGIN until the first write, so reads would run outside the
    transaction. Taking the write lock up front makes transactions queue
    (up to the driver's busy timeout) and read current data.
    """

    @event.listens_for(engine.sync_engine, "connect")
    def _disable_driver_begin(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _begin_immediate(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def build_engine(url: str) -> AsyncEngine:
    new_engine = create_async_engine(url, **_engine_options(url))
    if url.startswith("sqlite"):
        _serialize_sqlite_writers(new_engine)
    return new_engine


# ── Engine Configuration ──────────────────────────────────────────────────
engine = build_engine(settings.database_url)

# ── Session Factory ───────────────────────────────────────────────────────
# expire_on_commit=False: documents stay readable after the transaction
# commits, so services can serialize them without another round trip.
async_session_factory = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


# ── Base Model ────────────────────────────────────────────────────────────
class Base(DeclarativeBase):
    """
    Base class for all SQLAlchemy ORM models.

    Registers every model with a shared metadata object (used by Alembic
    for migrations and by the test suite to create tables).
    """
    pass


# ── Lifecycle Helpers ─────────────────────────────────────────────────────
async def dispose_engine() -> None:
    """
    What:  Gracefully closes all connections in the pool.
    When:  Called during application shutdown (lifespan handler).
    """
    await engine.dispose()
