"""
Database Management and Configuration.

This module sets up the asynchronous relational store used by JukeBoxd. It
uses SQLAlchemy's asyncio extension with SQLModel table definitions.

Key Components:
- `engine`: The async engine, configured from the `DATABASE_URL` environment
  variable. SQLite (aiosqlite) is the development default; PostgreSQL
  (asyncpg) is used in production.
- `async_session`: The session factory every service uses. Services accept a
  factory in their constructor so tests can substitute an isolated database.
- `create_db_and_tables` / `drop_db_and_tables`: Schema bootstrap.
- `get_session`: FastAPI dependency yielding a request-scoped session.
- `get_database_info` / `health_check`: Diagnostics for monitoring endpoints.

SQLite connections enable `PRAGMA foreign_keys` so that cascade deletes and
CHECK constraints behave the same as on PostgreSQL.
"""

import os
from contextlib import asynccontextmanager
from typing import Optional

from sqlalchemy import event, text
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import AsyncAdaptedQueuePool, NullPool
from sqlmodel import SQLModel

# Register the table metadata before create_all runs
import core.models  # noqa: F401
from core.exceptions import ConflictError, DependencyFailureError, NotFoundError
from core.logging_config import get_logger

logger = get_logger(__name__)

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite+aiosqlite:///./jukeboxd.db")


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def build_engine(database_url: str) -> AsyncEngine:
    """Create an async engine for the given URL"""
    if database_url.startswith("sqlite"):
        # A fresh connection per checkout keeps aiosqlite connections off
        # event loops other than the one that opened them.
        engine = create_async_engine(
            database_url,
            connect_args={"check_same_thread": False},
            echo=False,
            poolclass=NullPool,
        )
        event.listen(engine.sync_engine, "connect", _enable_sqlite_foreign_keys)
        return engine

    return create_async_engine(
        database_url,
        poolclass=AsyncAdaptedQueuePool,
        pool_size=5,
        max_overflow=10,
        pool_pre_ping=True,  # Validate connections before use
        echo=False,
    )


def build_session_factory(bind: AsyncEngine) -> async_sessionmaker:
    return async_sessionmaker(bind, class_=AsyncSession, expire_on_commit=False)


engine = build_engine(DATABASE_URL)
async_session = build_session_factory(engine)


def database_type(database_url: str = DATABASE_URL) -> str:
    return "postgresql" if "postgresql" in database_url else "sqlite"


async def create_db_and_tables(bind: AsyncEngine = None):
    """
    Initialize the database and create all tables.
    Called during application startup.
    """
    bind = bind or engine
    try:
        async with bind.begin() as conn:
            await conn.run_sync(SQLModel.metadata.create_all)
        logger.info("JukeBoxd database tables created successfully")
    except Exception as e:
        logger.error(f"Failed to create JukeBoxd database tables: {e}")
        raise


async def drop_db_and_tables(bind: AsyncEngine = None):
    """Drop every table. Used by tests and the setup script's reset option."""
    bind = bind or engine
    async with bind.begin() as conn:
        await conn.run_sync(SQLModel.metadata.drop_all)
    logger.warning("JukeBoxd database tables dropped")


async def get_session():
    """
    Get an async database session for dependency injection.
    """
    async with async_session() as session:
        yield session


async def get_database_info():
    """
    Get basic database information for health checks.
    """
    try:
        async with async_session() as session:
            result = await session.execute(text("SELECT 1"))
            result.scalar()
            connection_healthy = True
    except Exception as e:
        logger.error(f"Database health check failed: {e}")
        connection_healthy = False

    return {
        # Hide credentials
        "database_url": DATABASE_URL.split("@")[1] if "@" in DATABASE_URL else "masked",
        "connection_healthy": connection_healthy,
        "database_type": database_type(),
        "pool_class": type(engine.pool).__name__,
    }


async def health_check():
    """
    Perform a comprehensive health check on the database.
    """
    try:
        async with async_session() as session:
            await session.execute(text("SELECT 1"))
            for table in ("users", "albums", "activities"):
                await session.execute(text(f"SELECT COUNT(*) FROM {table}"))

        return {
            "status": "healthy",
            "database_type": database_type(),
            "tables_accessible": True,
        }
    except Exception as e:
        logger.error(f"Database health check failed: {e}")
        return {
            "status": "unhealthy",
            "error": str(e),
            "database_type": database_type(),
        }


@asynccontextmanager
async def translate_store_errors(operation: str, conflict_resource: Optional[str] = None):
    """
    Convert SQLAlchemy failures raised inside the block into domain errors.

    Unique-constraint violations become `ConflictError` when the caller names
    the contested resource; everything else is a `DependencyFailureError`.
    """
    try:
        yield
    except IntegrityError as e:
        if conflict_resource:
            logger.info(f"Uniqueness conflict during {operation}")
            raise ConflictError(conflict_resource, "already exists") from e
        logger.error(f"Integrity error during {operation}: {e.orig}")
        raise DependencyFailureError("database", f"{operation} violated a constraint") from e
    except (SQLAlchemyError, OSError) as e:
        logger.error(f"Database error during {operation}: {e}")
        raise DependencyFailureError("database", f"{operation} failed") from e


async def require_row(session: AsyncSession, model, row_id: str, resource: str):
    """Load a row by primary key or raise NotFoundError"""
    row = await session.get(model, row_id) if row_id else None
    if row is None:
        raise NotFoundError(resource, row_id)
    return row
