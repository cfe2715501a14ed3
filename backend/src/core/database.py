"""
Database configuration and session management.

PostgreSQL in deployment (asyncpg for the application, psycopg2 for
migrations); SQLite through aiosqlite is accepted for local runs and tests.
"""

from typing import Any, AsyncGenerator, Dict
from urllib.parse import parse_qs, urlparse, urlunparse

from sqlalchemy import create_engine, event, pool
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from backend.src.core.config import settings

# Base class for ORM models
Base = declarative_base()

_is_sqlite = settings.DATABASE_URL.startswith("sqlite")


def _pool_options(async_engine: bool) -> Dict[str, Any]:
    """Connection pool options; SQLite keeps the dialect defaults."""
    if _is_sqlite:
        return {}
    return {
        "poolclass": pool.AsyncAdaptedQueuePool if async_engine else pool.QueuePool,
        "pool_size": 10,
        "max_overflow": 20,
        "pool_pre_ping": True,
        "pool_recycle": 3600,
    }


if _is_sqlite:
    _, _, _sqlite_path = settings.DATABASE_URL.partition("://")
    sync_url = f"sqlite://{_sqlite_path}"
    async_url = f"sqlite+aiosqlite://{_sqlite_path}"
    connect_args: Dict[str, Any] = {}
else:
    sync_url = settings.DATABASE_URL.replace("postgresql://", "postgresql+psycopg2://")

    # Parse the URL to extract SSL parameters for async engine
    parsed = urlparse(settings.DATABASE_URL)
    query_params = parse_qs(parsed.query)

    connect_args = {}
    if "sslmode" in query_params:
        sslmode = query_params["sslmode"][0]
        if sslmode in ("require", "prefer", "allow"):
            connect_args["ssl"] = True
        elif sslmode == "disable":
            connect_args["ssl"] = False

    # asyncpg does not understand libpq query parameters
    async_url = urlunparse(parsed._replace(query="")).replace(
        "postgresql://", "postgresql+asyncpg://"
    )

# Synchronous engine for migrations
sync_engine = create_engine(
    sync_url,
    echo=settings.DEBUG,
    **_pool_options(async_engine=False),
)

# Asynchronous engine for API operations and scheduled jobs
async_engine = create_async_engine(
    async_url,
    echo=settings.DEBUG,
    connect_args=connect_args,
    **_pool_options(async_engine=True),
)

# Session makers
SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=sync_engine,
    class_=Session,
)

AsyncSessionLocal = async_sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=async_engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


# Database session dependency for FastAPI
async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    Dependency that provides a database session.

    Yields:
        AsyncSession: SQLAlchemy async session
    """
    async with AsyncSessionLocal() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


@event.listens_for(sync_engine, "connect")
def set_postgresql_pragmas(dbapi_conn, connection_record):
    """Set PostgreSQL connection pragmas for migrations."""
    if _is_sqlite:
        return

    cursor = dbapi_conn.cursor()

    # Set statement timeout (30 seconds)
    cursor.execute("SET statement_timeout = 30000")

    # Set work memory for complex queries
    cursor.execute("SET work_mem = '16MB'")

    cursor.close()


async def init_db() -> None:
    """
    Initialize database tables.

    Note: In production, use Alembic migrations instead.
    """
    async with async_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def close_db() -> None:
    """Close database connections."""
    await async_engine.dispose()
