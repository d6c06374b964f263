"""Async database engine, per-request sessions and the unit-of-work helper."""

from collections.abc import AsyncGenerator, AsyncIterator
from contextlib import asynccontextmanager

from fastapi import Request
from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from finance_app.core.config import Settings


def create_engine_from_settings(settings: Settings) -> AsyncEngine:
    """Build the async engine for DATABASE_URL."""
    return create_async_engine(
        settings.DATABASE_URL,
        pool_pre_ping=True,
        echo=settings.DEBUG,
    )


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    # expire_on_commit=False: ORM rows are read after commit to build responses.
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


async def get_db(request: Request) -> AsyncGenerator[AsyncSession, None]:
    """Dependency that yields a DB session bound to the app's engine and closes it when done."""
    factory: async_sessionmaker[AsyncSession] = request.app.state.session_factory
    async with factory() as session:
        yield session


@asynccontextmanager
async def unit_of_work(session: AsyncSession) -> AsyncIterator[AsyncSession]:
    """
    Commit everything done inside the block, or roll all of it back on error.

    Services wrap each operation in one unit of work so a failure half-way
    (e.g. persisting a refresh token) leaves no partial writes behind.
    """
    try:
        yield session
        await session.commit()
    except BaseException:
        await session.rollback()
        raise


async def check_db_connected(session: AsyncSession) -> bool:
    """Run a trivial query to verify the database is reachable."""
    try:
        await session.execute(text("SELECT 1"))
        return True
    except Exception:
        return False
