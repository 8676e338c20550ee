"""
Database connection and session management for SQLAlchemy 2.0.
Configured for async operations with PostgreSQL (asyncpg) or SQLite (aiosqlite).
"""
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    create_async_engine,
    async_sessionmaker,
)
from sqlalchemy.orm import declarative_base
from sqlalchemy import event, text
from urllib.parse import urlparse
import logging

from transfer_cms.config import settings

logger = logging.getLogger(__name__)

# Create declarative base for models
Base = declarative_base()

SQLITE_MEMORY_URL = "sqlite+aiosqlite:///:memory:"


def _engine_args(url: str) -> dict:
    """Build engine keyword arguments for the given database URL."""
    args = {
        "echo": False,  # Set to True for SQL query logging in development
    }

    # Pool settings only apply to PostgreSQL (not SQLite)
    if url.startswith("postgresql"):
        args.update({
            "pool_size": 10,
            "max_overflow": 20,
            "pool_pre_ping": True,  # Verify connections before using
            "pool_recycle": 3600,
            "connect_args": {
                "server_settings": {
                    "application_name": "transfer-cms"
                }
            }
        })

    return args


def create_engine_for_url(url: str, **overrides) -> AsyncEngine:
    """
    Create an async engine for the given URL.

    SQLite connections get ``PRAGMA foreign_keys=ON`` so that the
    ``ON DELETE CASCADE`` on gallery images is honoured there as well.
    """
    args = _engine_args(url)
    args.update(overrides)
    new_engine = create_async_engine(url, **args)

    if new_engine.dialect.name == "sqlite":
        @event.listens_for(new_engine.sync_engine, "connect")
        def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

    return new_engine


engine = create_engine_for_url(settings.DATABASE_URL or SQLITE_MEMORY_URL)

# Create async session factory
AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autocommit=False,
    autoflush=False,
)


async def get_db() -> AsyncSession:
    """
    FastAPI dependency for database sessions.
    Provides async database session with automatic commit/rollback.

    Usage:
        @router.get("/endpoint")
        async def my_endpoint(db: AsyncSession = Depends(get_db)):
            ...
    """
    async with AsyncSessionLocal() as session:
        try:
            yield session
            await session.commit()
        except Exception as e:
            await session.rollback()
            logger.error(f"Database session error: {str(e)}")
            raise
        finally:
            await session.close()


def _validate_database_url(url: str) -> tuple[bool, str]:
    """
    Validate database URL and provide diagnostic information.
    Returns (is_valid, diagnostic_message)
    """
    if not url:
        return False, "DATABASE_URL is empty"

    try:
        parsed = urlparse(url)

        if url.startswith("sqlite+aiosqlite://"):
            return True, f"SQLite database: {parsed.path or ':memory:'}"

        if not url.startswith(("postgresql://", "postgresql+asyncpg://")):
            return False, (
                "Invalid database URL scheme. Expected postgresql+asyncpg:// "
                f"or sqlite+aiosqlite://, got: {parsed.scheme}"
            )

        hostname = parsed.hostname
        if not hostname:
            return False, "No hostname found in DATABASE_URL"

        return True, (
            f"URL format valid. Hostname: {hostname}, Port: {parsed.port or 5432}, "
            f"Database: {parsed.path or '/postgres'}"
        )

    except ValueError as e:
        return False, f"Error parsing DATABASE_URL: {str(e)}"


async def create_tables():
    """Create all tables known to the metadata (development helper)."""
    # Imported for its side effect of registering the models on Base
    from transfer_cms import models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables created")


async def init_db():
    """
    Initialize database connection.
    Used by the startup event to verify connection.
    """
    if not settings.DATABASE_URL:
        logger.warning("DATABASE_URL not set, using in-memory SQLite database")
    else:
        is_valid, diagnostic = _validate_database_url(settings.DATABASE_URL)
        if not is_valid:
            logger.error(f"Invalid DATABASE_URL: {diagnostic}")
            raise ValueError(f"Invalid DATABASE_URL: {diagnostic}")
        logger.info(f"Database URL validation: {diagnostic}")

    try:
        async with engine.begin() as conn:
            await conn.execute(text("SELECT 1"))
            logger.info("Database connection initialized successfully")
    except Exception as e:
        logger.error(f"Database connection failed ({type(e).__name__}): {str(e)}")
        raise

    if settings.AUTO_CREATE_TABLES or not settings.DATABASE_URL:
        await create_tables()


async def close_db():
    """
    Close database connections.
    Used by the shutdown event.
    """
    await engine.dispose()
    logger.info("Database connections closed")
