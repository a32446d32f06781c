"""
Database engine configuration for the Bot Vault ledger service

Async SQLAlchemy 2.0 setup with connection pooling
"""

from loguru import logger
from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    create_async_engine,
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
)

from config.config import DATABASE_URL, ENVIRONMENT
from src.database.models import Base


# Global engine and session maker
engine: AsyncEngine | None = None
AsyncSessionLocal: async_sessionmaker[AsyncSession] | None = None


def create_engine_for_url(url: str) -> AsyncEngine:
    """
    Create an async engine with settings suited to the backend

    PostgreSQL gets a sized pool; SQLite (development/tests) uses the
    dialect defaults.
    """
    if url.startswith("sqlite"):
        # Wait for the write lock instead of failing with "database is locked"
        return create_async_engine(url, echo=False, connect_args={"timeout": 30})

    is_production = ENVIRONMENT == "production"

    return create_async_engine(
        url,
        pool_size=10 if is_production else 5,
        max_overflow=20 if is_production else 10,
        pool_pre_ping=True,  # Verify connections before using
        pool_recycle=3600,  # Recycle connections every hour
        echo=False,  # Logging goes through loguru
        echo_pool=False,
        connect_args={
            "server_settings": {
                "application_name": "botvault",
            },
        },
    )


def get_engine() -> AsyncEngine:
    """
    Create and configure async database engine

    Returns:
        Configured AsyncEngine instance
    """
    global engine

    if engine is None:
        engine = create_engine_for_url(DATABASE_URL)
        logger.info(f"Database engine created - Environment: {ENVIRONMENT}")

    return engine


def create_session_maker(eng: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Session factory used by every service"""
    return async_sessionmaker(
        eng,
        class_=AsyncSession,
        expire_on_commit=False,  # Important for async!
        autoflush=False,
    )


def get_session_maker() -> async_sessionmaker[AsyncSession]:
    """
    Create async session maker

    Returns:
        Configured async_sessionmaker instance
    """
    global AsyncSessionLocal

    if AsyncSessionLocal is None:
        AsyncSessionLocal = create_session_maker(get_engine())
        logger.info("Session maker created")

    return AsyncSessionLocal


async def init_db(eng: AsyncEngine | None = None) -> None:
    """
    Initialize database - create all tables

    WARNING: This creates tables if they don't exist.
    For production, use Alembic migrations instead.
    """
    eng = eng or get_engine()

    logger.info("Creating database tables...")

    async with eng.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    logger.info("Database tables created successfully")


async def drop_db(eng: AsyncEngine | None = None) -> None:
    """
    Drop all database tables

    WARNING: This deletes all data! Only for development/testing.
    """
    if ENVIRONMENT == "production":
        raise RuntimeError("Cannot drop database in production environment!")

    eng = eng or get_engine()

    logger.warning("Dropping all database tables...")

    async with eng.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    logger.warning("Database tables dropped")


async def dispose_engine() -> None:
    """
    Dispose database engine and close all connections

    Call this on application shutdown
    """
    global engine, AsyncSessionLocal

    if engine is not None:
        await engine.dispose()
        logger.info("Database engine disposed")
        engine = None
        AsyncSessionLocal = None


async def check_connection() -> bool:
    """
    Check database connection

    Returns:
        True if connection successful, False otherwise
    """
    try:
        eng = get_engine()
        async with eng.connect() as conn:
            await conn.execute(text("SELECT 1"))
        logger.info("Database connection check: OK")
        return True
    except Exception as e:
        logger.error(f"Database connection check failed: {e}")
        return False
