"""Shared fixtures: in-memory SQLite database, auth config and a fast password hasher."""

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from finance_app.core.database import create_session_factory, unit_of_work
from finance_app.core.security import AuthConfig, PasswordHasher
from finance_app.models import Base
from finance_app.services.permissions import ensure_system_roles

TEST_SECRET = "unit-test-signing-secret-0123456789abcdef"

# Minimum bcrypt cost keeps the suite fast.
FAST_HASHER = PasswordHasher(rounds=4)


def make_config(**overrides) -> AuthConfig:
    values = {
        "secret": TEST_SECRET,
        "issuer": "FinanceApp.Api",
        "audience": "FinanceApp.Client",
    }
    values.update(overrides)
    return AuthConfig(**values)


async def make_database(seed_roles: bool = True) -> tuple[AsyncEngine, async_sessionmaker[AsyncSession]]:
    """
    Fresh in-memory database with all tables (and the system roles).

    StaticPool keeps the single in-memory connection alive; use one session at
    a time and close it before opening the next.
    """
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    factory = create_session_factory(engine)
    if seed_roles:
        async with factory() as session:
            async with unit_of_work(session):
                await ensure_system_roles(session)
    return engine, factory
