"""User lookups and writes on an AsyncSession."""

import uuid

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from finance_app.models import User


class UserRepository:
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get_by_id(self, user_id: uuid.UUID) -> User | None:
        return await self.session.get(User, user_id)

    async def get_by_email(self, email: str) -> User | None:
        result = await self.session.execute(select(User).where(User.email == email))
        return result.scalar_one_or_none()

    async def email_exists(self, email: str) -> bool:
        result = await self.session.execute(
            select(func.count()).select_from(User).where(User.email == email)
        )
        return result.scalar_one() > 0

    async def add(self, user: User) -> User:
        """Insert user and flush so the id and defaults are populated."""
        self.session.add(user)
        await self.session.flush()
        return user

    async def list_page(self, page: int = 1, page_size: int = 50) -> list[User]:
        result = await self.session.execute(
            select(User)
            .order_by(User.created_at, User.id)
            .offset((page - 1) * page_size)
            .limit(page_size)
        )
        return list(result.scalars().all())
