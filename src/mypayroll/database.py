"""Database connection and session management."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, AsyncGenerator

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from mypayroll.config import get_settings
from mypayroll.errors import InternalError, PayrollError

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncEngine

logger = logging.getLogger(__name__)


def get_engine(database_url: str | None = None) -> AsyncEngine:
    """Create async database engine."""
    settings = get_settings()
    url = database_url or settings.database_url
    kwargs: dict = {"echo": settings.echo_sql}
    if url.startswith("postgresql"):
        kwargs.update(
            pool_pre_ping=True,
            pool_size=settings.pool_size,
            max_overflow=settings.max_overflow,
        )
    return create_async_engine(url, **kwargs)


# Global engine and session factory
_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None


def init_db(database_url: str | None = None) -> tuple[AsyncEngine, async_sessionmaker[AsyncSession]]:
    """Initialize database engine and session factory."""
    global _engine, _session_factory
    if _engine is None:
        _engine = get_engine(database_url)
        _session_factory = async_sessionmaker(
            _engine,
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False,
        )
    return _engine, _session_factory


async def create_schema(engine: AsyncEngine) -> None:
    """Create all tables known to the ORM metadata."""
    from mypayroll.models import Base

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


@asynccontextmanager
async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """Get a database session."""
    _, factory = init_db()
    async with factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


@asynccontextmanager
async def unit_of_work(session: AsyncSession) -> AsyncGenerator[AsyncSession, None]:
    """Run one orchestrator operation as a single transaction.

    Commits when the block exits normally. Any exception rolls the whole
    transaction back; driver errors surface as InternalError.
    """
    try:
        yield session
        await session.commit()
    except PayrollError:
        await session.rollback()
        raise
    except SQLAlchemyError as exc:
        await session.rollback()
        logger.exception("Database error, transaction rolled back")
        raise InternalError(f"Database error: {exc}") from exc
    except BaseException:
        await session.rollback()
        raise


def dialect_name(session: AsyncSession) -> str:
    """Name of the SQL dialect the session is bound to."""
    return session.get_bind().dialect.name


async def try_period_lock(session: AsyncSession, key: str) -> bool:
    """Try to take the transaction-scoped creation lock for a payroll period.

    Never waits. Returns True if the lock was acquired (or the backend has no
    advisory locks), False if another transaction holds it. The lock is
    released automatically at commit or rollback.
    """
    if dialect_name(session) != "postgresql":
        return True
    result = await session.execute(
        text("SELECT pg_try_advisory_xact_lock(hashtext(:lock_key))"),
        {"lock_key": key},
    )
    return bool(result.scalar())
