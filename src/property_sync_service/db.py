from typing import AsyncGenerator

from sqlalchemy import event
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool

from property_sync_service.config import settings
from property_sync_service.models.base import Base
from property_sync_service.utils.logging_config import logger


def create_engine_for_url(database_url: str, echo: bool = False) -> AsyncEngine:
    """
    Build an async engine for SQLite or MySQL.

    SQLite gets one connection per session (NullPool) and a busy timeout so that
    concurrent listing sessions wait for the write lock instead of failing.
    Transactions are started with BEGIN IMMEDIATE by SQLAlchemy itself rather
    than by the driver, which keeps SAVEPOINT working and avoids the
    read-then-write lock upgrade that SQLite reports as busy without waiting.
    """
    if database_url.startswith("sqlite"):
        engine = create_async_engine(
            database_url,
            echo=echo,
            poolclass=NullPool,
            connect_args={"timeout": 30},
        )

        @event.listens_for(engine.sync_engine, "connect")
        def _configure_sqlite_connection(dbapi_connection, connection_record):
            dbapi_connection.isolation_level = None
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

        @event.listens_for(engine.sync_engine, "begin")
        def _begin_immediate(conn):
            conn.exec_driver_sql("BEGIN IMMEDIATE")

        return engine

    return create_async_engine(
        database_url,
        echo=echo,
        # Runs a cheap 'SELECT 1' on checkout and discards dead connections
        pool_pre_ping=True,
        pool_size=10,
        max_overflow=20,
        pool_recycle=1800,
        pool_timeout=30,
    )


def create_session_factory(bind: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        bind=bind,
        class_=AsyncSession,
        autoflush=False,
        expire_on_commit=False,
    )


logger.info(
    f"Initializing database connection: {settings.DATABASE_URL.split('@')[-1]}"
)

engine: AsyncEngine = create_engine_for_url(
    settings.DATABASE_URL,
    # Log SQL statements in DEBUG mode only
    echo=settings.LOGGING_LEVEL.upper() == "DEBUG",
)

AsyncSessionLocal = create_session_factory(engine)


async def init_models(bind: AsyncEngine = engine) -> None:
    """Create any missing tables and seed the reference catalogs."""
    # Models register themselves on Base.metadata when imported
    import property_sync_service.models  # noqa: F401
    from property_sync_service.crud.catalog_crud import seed_catalogs

    async with bind.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    async with create_session_factory(bind)() as session:
        await seed_catalogs(session)
        await session.commit()
    logger.info("Database tables verified")


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    FastAPI dependency that provides a transactional, auto-closing database session.

    Commits when the route handler finishes, rolls back on database errors and
    always closes the session.
    """
    session = AsyncSessionLocal()
    try:
        yield session
        await session.commit()
    except SQLAlchemyError as e:
        logger.error(f"Database transaction failed: {e}", exc_info=True)
        await session.rollback()
        raise
    finally:
        await session.close()
