"""
Async engine and session handling for the problem store.

Every unit of work (one HTTP request, one background cycle) runs in a
single transaction that commits on success and rolls back on error.
"""
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from problem_api.config.settings import get_settings


class Base(DeclarativeBase):
    """Declarative base for the problem store tables."""
    pass


# Created on first use so importing models never needs a database
_engine: AsyncEngine | None = None
_async_session_maker: async_sessionmaker[AsyncSession] | None = None


def get_database_url() -> str:
    """Build the asyncpg URL from the POSTGRES_* settings."""
    settings = get_settings()
    return (
        f"postgresql+asyncpg://{settings.postgres_user}:{settings.postgres_password}"
        f"@{settings.postgres_host}:{settings.postgres_port}/{settings.postgres_database}"
    )


def get_engine() -> AsyncEngine:
    global _engine
    if _engine is None:
        _engine = create_async_engine(
            get_database_url(),
            pool_size=get_settings().postgres_pool_max_size,
            max_overflow=10,
            pool_pre_ping=True,
        )
    return _engine


def get_session_maker() -> async_sessionmaker[AsyncSession]:
    global _async_session_maker
    if _async_session_maker is None:
        _async_session_maker = async_sessionmaker(get_engine(), expire_on_commit=False)
    return _async_session_maker


@asynccontextmanager
async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """
    Open a session whose transaction spans the block.

    Used by the background workers, one session per cycle:

        async with get_session() as session:
            await OutboxRepository(session).claim_due(...)
    """
    async with get_session_maker()() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency: the whole request runs in one transaction."""
    async with get_session() as session:
        yield session


async def close_db() -> None:
    """Dispose of the engine on application shutdown."""
    global _engine, _async_session_maker
    if _engine is not None:
        await _engine.dispose()
        _engine = None
        _async_session_maker = None
