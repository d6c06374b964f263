"""Profile and account management for existing users."""

import asyncio
import logging
import uuid
from datetime import UTC, datetime

from sqlalchemy.ext.asyncio import AsyncSession

from finance_app.core.database import unit_of_work
from finance_app.core.errors import InvalidOperationError, NotFoundError
from finance_app.core.security import PasswordHasher
from finance_app.models import User
from finance_app.repositories import RefreshTokenStore, UserRepository
from finance_app.schemas.auth import RoleView, UserSettings, UserView
from finance_app.services.permissions import RoleResolver

logger = logging.getLogger(__name__)


class UserService:
    def __init__(self, session: AsyncSession, hasher: PasswordHasher | None = None) -> None:
        self.session = session
        self.hasher = hasher or PasswordHasher()
        self.users = UserRepository(session)
        self.roles = RoleResolver(session)
        self.tokens = RefreshTokenStore(session)

    async def get_user(self, user_id: uuid.UUID) -> UserView:
        user = await self._require(user_id)
        return await self._view(user)

    async def list_users(self, page: int = 1, page_size: int = 50) -> list[UserView]:
        return [await self._view(user) for user in await self.users.list_page(page, page_size)]

    async def user_roles(self, user_id: uuid.UUID) -> list[RoleView]:
        await self._require(user_id)
        return [RoleView.from_role(role) for role in await self.roles.roles_of(user_id)]

    async def update_profile(
        self,
        user_id: uuid.UUID,
        full_name: str | None = None,
        phone: str | None = None,
        avatar_url: str | None = None,
        settings: UserSettings | None = None,
    ) -> UserView:
        """Apply the given fields; None leaves a field unchanged."""
        async with unit_of_work(self.session):
            user = await self._require(user_id)
            if full_name is not None:
                user.full_name = full_name
            if phone is not None:
                user.phone = phone
            if avatar_url is not None:
                user.avatar_url = avatar_url
            if settings is not None:
                user.settings = settings.model_dump()
            user.updated_at = datetime.now(UTC)
            await self.session.flush()
            return await self._view(user)

    async def change_password(self, user_id: uuid.UUID, current_password: str, new_password: str) -> bool:
        """Replace the password hash and end all live sessions. False if the user does not exist."""
        async with unit_of_work(self.session):
            user = await self.users.get_by_id(user_id)
            if user is None:
                return False
            if not await asyncio.to_thread(self.hasher.verify, current_password, user.password_hash):
                raise InvalidOperationError("Current password is incorrect")
            user.password_hash = await asyncio.to_thread(self.hasher.hash, new_password)
            user.updated_at = datetime.now(UTC)
            await self.tokens.revoke_all_for_user(user_id)
        logger.info("Password changed for user %s", user_id)
        return True

    async def deactivate(self, user_id: uuid.UUID) -> bool:
        """Soft-delete: clear is_active and revoke the user's refresh tokens."""
        return await self._set_flag(user_id, "is_active", False, end_sessions=True)

    async def verify_email(self, user_id: uuid.UUID) -> bool:
        return await self._set_flag(user_id, "is_verified", True)

    async def _set_flag(self, user_id: uuid.UUID, flag: str, value: bool, end_sessions: bool = False) -> bool:
        async with unit_of_work(self.session):
            user = await self.users.get_by_id(user_id)
            if user is None:
                return False
            setattr(user, flag, value)
            user.updated_at = datetime.now(UTC)
            if end_sessions:
                await self.tokens.revoke_all_for_user(user_id)
        logger.info("User %s: %s=%s", user_id, flag, value)
        return True

    async def _require(self, user_id: uuid.UUID) -> User:
        user = await self.users.get_by_id(user_id)
        if user is None:
            raise NotFoundError("User not found")
        return user

    async def _view(self, user: User) -> UserView:
        return UserView.from_user(user, await self.roles.roles_of(user.id))
