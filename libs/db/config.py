from functools import lru_cache

from sqlalchemy import event
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from libs.common.config import get_settings


def _use_immediate_transactions(engine: AsyncEngine) -> None:
    """Let SQLAlchemy own SQLite transactions.

    pysqlite defers BEGIN until the first write, which breaks SAVEPOINT and
    lets concurrent writers deadlock on lock upgrade. ``BEGIN IMMEDIATE``
    takes the write lock up front so competing transactions queue instead.
    """

    @event.listens_for(engine.sync_engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def build_engine(url: str, **kwargs) -> AsyncEngine:
    """Create an async engine for ``url`` with dialect-appropriate options."""
    settings = get_settings()
    if url.startswith("sqlite"):
        engine = create_async_engine(
            url,
            echo=kwargs.pop("echo", settings.DB_ECHO),
            connect_args={"timeout": settings.DB_POOL_TIMEOUT},
            **kwargs,
        )
        _use_immediate_transactions(engine)
        return engine

    return create_async_engine(
        url,
        echo=kwargs.pop("echo", settings.DB_ECHO),
        pool_pre_ping=True,  # Test connections before using
        pool_size=settings.DB_POOL_SIZE,
        max_overflow=settings.DB_MAX_OVERFLOW,
        pool_timeout=settings.DB_POOL_TIMEOUT,
        pool_recycle=settings.DB_POOL_RECYCLE,
        **kwargs,
    )


def build_sessionmaker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        bind=engine, class_=AsyncSession, expire_on_commit=False, autoflush=False
    )


@lru_cache
def get_engine() -> AsyncEngine:
    """Process-wide engine, created on first use."""
    return build_engine(get_settings().DATABASE_URL)


@lru_cache
def get_sessionmaker() -> async_sessionmaker[AsyncSession]:
    return build_sessionmaker(get_engine())
