from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Optional

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.orm import DeclarativeBase

from core.config import settings
from core.logging_config import get_logger

logger = get_logger("db")


class Base(DeclarativeBase):
    pass


def _install_sqlite_immediate_transactions(engine: AsyncEngine) -> None:
    # pysqlite defers BEGIN until the first DML statement and starts it DEFERRED,
    # so two writers can both read a row and then race on the write lock.
    # Take the write lock up front instead: SQLite writers then queue on busy_timeout.
    @event.listens_for(engine.sync_engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def build_engine(database_url: Optional[str] = None, echo: Optional[bool] = None) -> AsyncEngine:
    url = database_url or settings.database_url
    kwargs = {"echo": settings.database_echo if echo is None else echo}
    if url.startswith("sqlite"):
        kwargs["connect_args"] = {"timeout": 30}
    else:
        kwargs["pool_pre_ping"] = True

    engine = create_async_engine(url, **kwargs)
    if engine.dialect.name == "sqlite":
        _install_sqlite_immediate_transactions(engine)
    logger.info("engine_initialized", extra={"dialect": engine.dialect.name})
    return engine


def build_session_maker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, expire_on_commit=False)


engine = build_engine()
async_session_maker = build_session_maker(engine)


async def create_db_and_tables(target: Optional[AsyncEngine] = None):
    # Register every mapped table on Base.metadata
    import db.pharmacy  # noqa: F401
    import db.supplier  # noqa: F401

    async with (target or engine).begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


@asynccontextmanager
async def snapshot_session(session_maker: async_sessionmaker[AsyncSession]) -> AsyncGenerator[AsyncSession, None]:
    """
    Read-only session whose queries all see one consistent snapshot.

    PostgreSQL runs the transaction at REPEATABLE READ; SQLite transactions
    are already serialized by BEGIN IMMEDIATE.
    """
    async with session_maker() as session:
        if session.bind is not None and session.bind.dialect.name == "postgresql":
            await session.connection(execution_options={"isolation_level": "REPEATABLE READ"})
        try:
            yield session
        finally:
            await session.rollback()
