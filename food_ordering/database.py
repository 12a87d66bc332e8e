"""
Database Connection Module
Handles the relational store using the SQLAlchemy async engine.

PostgreSQL (psycopg async) in deployment; SQLite (aiosqlite) for local runs
and tests. SQLite transactions take the write lock up front so concurrent
sessions queue on the busy timeout instead of failing on lock upgrade.
"""

from typing import AsyncIterator

from sqlalchemy import event
from sqlalchemy.engine import make_url
from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from food_ordering.core.config import get_settings

settings = get_settings()


# Base class for all our models
class Base(DeclarativeBase):
    pass


def _use_immediate_transactions(engine: AsyncEngine) -> None:
    """Emit BEGIN IMMEDIATE for every SQLite transaction."""

    @event.listens_for(engine.sync_engine, "connect")
    def _disable_driver_transactions(dbapi_connection, connection_record):
        # Stop the driver from emitting its own deferred BEGIN
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _begin_immediate(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def build_engine(database_url: str, **kwargs) -> AsyncEngine:
    """
    Create an async engine for the given URL.

    Pool sizing only applies to server databases; SQLite gets the
    immediate-transaction hooks instead.
    """
    url = make_url(database_url)
    options = {"echo": settings.database_echo}

    if url.get_backend_name() == "sqlite":
        options["connect_args"] = {"timeout": 30}
    elif "poolclass" not in kwargs:
        options["pool_size"] = 5  # Connection pool size
        options["max_overflow"] = 10  # Extra connections when pool is full

    options.update(kwargs)
    engine = create_async_engine(database_url, **options)

    if url.get_backend_name() == "sqlite":
        _use_immediate_transactions(engine)
    return engine


def build_session_maker(bind: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        bind=bind,
        class_=AsyncSession,
        expire_on_commit=False,  # Objects remain accessible after commit
    )


engine = build_engine(settings.database_url)

# Session factory - creates new database sessions
async_session_maker = build_session_maker(engine)


# deadlock_detected, serialization_failure, lock_not_available
RETRYABLE_SQLSTATES = {"40P01", "40001", "55P03"}


def is_transient_conflict(exc: DBAPIError) -> bool:
    """True when the statement lost a lock race and the request can simply be retried."""
    orig = exc.orig
    sqlstate = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
    if sqlstate in RETRYABLE_SQLSTATES:
        return True
    return "database is locked" in str(orig)


async def get_db() -> AsyncIterator[AsyncSession]:
    """
    Dependency injection for FastAPI routes.
    Yields a database session and ensures cleanup.
    """
    async with async_session_maker() as session:
        try:
            yield session
        finally:
            await session.close()


async def init_db(bind: AsyncEngine = engine) -> None:
    """
    Create all tables in database.
    Called once at application startup.
    """
    # Models must be registered on Base.metadata before create_all
    import food_ordering.models  # noqa: F401

    async with bind.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
