"""
Authentication flows: register, login, refresh-token rotation, logout, current user.

Credential lifecycle: anonymous -> authenticated (access + refresh issued)
-> refreshed (old refresh token revoked, new one issued) -> revoked (logout).
Each public operation runs in a single unit of work on the injected session.
"""

import asyncio
import logging
from datetime import UTC, datetime

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from finance_app.core.database import unit_of_work
from finance_app.core.errors import (
    AuthFailure,
    ConfigurationError,
    ConflictError,
    NotFoundError,
    UnauthorizedError,
)
from finance_app.core.security import AuthConfig, PasswordHasher, TokenIssuer
from finance_app.models import RefreshToken, User
from finance_app.repositories import RefreshTokenStore, UserRepository
from finance_app.schemas.auth import AuthResponse, UserView
from finance_app.services.permissions import DEFAULT_ROLE_CODE, RoleResolver
from finance_app.services.principal import Principal

logger = logging.getLogger(__name__)

INVALID_CREDENTIALS_MESSAGE = "Invalid email or password."
INVALID_REFRESH_TOKEN_MESSAGE = "Invalid or expired refresh token."


def normalize_email(email: str) -> str:
    return email.strip().lower()


class AuthService:
    def __init__(
        self,
        session: AsyncSession,
        config: AuthConfig,
        hasher: PasswordHasher | None = None,
    ) -> None:
        self.session = session
        self.hasher = hasher or PasswordHasher()
        self.issuer = TokenIssuer(config)
        self.users = UserRepository(session)
        self.roles = RoleResolver(session)
        self.tokens = RefreshTokenStore(session, self.issuer)

    async def register(
        self,
        email: str,
        password: str,
        full_name: str,
        phone: str = "",
    ) -> AuthResponse:
        """
        Create an account with the default USER role and log it in.
        Raises ConflictError if the email is taken and ConfigurationError if the
        default role is missing; nothing is written in either case.
        """
        email = normalize_email(email)
        async with unit_of_work(self.session):
            if await self.users.email_exists(email):
                raise ConflictError("User with this email already exists", field="email")
            password_hash = await asyncio.to_thread(self.hasher.hash, password)
            user = User(
                login=email,
                email=email,
                password_hash=password_hash,
                full_name=full_name,
                phone=phone or "",
                is_active=True,
                is_verified=False,
            )
            try:
                await self.users.add(user)
            except IntegrityError as e:
                # Lost a race with a concurrent registration of the same email.
                raise ConflictError("User with this email already exists", field="email") from e
            if not await self.roles.assign_role(user.id, DEFAULT_ROLE_CODE, assigned_by=user.id):
                # Raised inside the unit of work so the new user is rolled back.
                raise ConfigurationError(f"Default role {DEFAULT_ROLE_CODE} is not seeded")
            logger.info("Registered user %s", user.id)
            return await self._login(email, password)

    async def login(self, email: str, password: str) -> AuthResponse:
        """Verify credentials and open a session. Raises UnauthorizedError on any mismatch."""
        async with unit_of_work(self.session):
            return await self._login(normalize_email(email), password)

    async def refresh(self, refresh_token: str) -> AuthResponse:
        """
        Exchange a live refresh token for a new access token and a new refresh token.

        The presented token is revoked with a conditional update in the same
        transaction that persists its replacement, so a replayed or concurrently
        used token fails with UnauthorizedError and never yields two sessions.
        """
        async with unit_of_work(self.session):
            record = await self.tokens.find(refresh_token)
            user = await self.users.get_by_id(record.user_id) if record is not None else None
            failure = self._refresh_failure(record, user)
            if failure is not None:
                logger.info("Refresh rejected: %s", failure.value)
                raise UnauthorizedError(failure, INVALID_REFRESH_TOKEN_MESSAGE)

            roles = await self.roles.roles_of(user.id)
            access_token, expires_at = self._mint_access_token(user, roles)
            if not await self.tokens.revoke_if_valid(refresh_token):
                logger.warning("Refresh rejected: token for user %s already rotated", user.id)
                raise UnauthorizedError(AuthFailure.TOKEN_REVOKED, INVALID_REFRESH_TOKEN_MESSAGE)
            new_record = await self.tokens.issue(user.id)
            logger.info("Rotated refresh token for user %s", user.id)
            return AuthResponse(
                access_token=access_token,
                refresh_token=new_record.token,
                expires_at=expires_at,
                user=UserView.from_user(user, roles),
            )

    async def revoke_token(self, refresh_token: str) -> bool:
        """Logout primitive. True if a live token was revoked; False if there was nothing to revoke."""
        async with unit_of_work(self.session):
            revoked = await self.tokens.revoke_if_valid(refresh_token)
        if revoked:
            logger.info("Refresh token revoked")
        return revoked

    async def get_current_user(self, principal: Principal) -> UserView:
        """Re-read the caller from the store; token claims may be stale."""
        user = await self.users.get_by_id(principal.user_id)
        if user is None:
            raise NotFoundError("User not found")
        if not user.is_active:
            raise UnauthorizedError(AuthFailure.USER_INACTIVE, "Not authenticated")
        return UserView.from_user(user, await self.roles.roles_of(user.id))

    async def _login(self, email: str, password: str) -> AuthResponse:
        user = await self.users.get_by_email(email)
        if user is None or not user.is_active:
            # Same work and same error whether the account is missing or disabled.
            await asyncio.to_thread(self.hasher.dummy_verify, password)
            logger.info("Login rejected: %s", "unknown email" if user is None else "inactive user")
            raise UnauthorizedError(AuthFailure.INVALID_CREDENTIALS, INVALID_CREDENTIALS_MESSAGE)
        if not await asyncio.to_thread(self.hasher.verify, password, user.password_hash):
            logger.info("Login rejected: wrong password for user %s", user.id)
            raise UnauthorizedError(AuthFailure.INVALID_CREDENTIALS, INVALID_CREDENTIALS_MESSAGE)

        roles = await self.roles.roles_of(user.id)
        access_token, expires_at = self._mint_access_token(user, roles)
        refresh = await self.tokens.issue(user.id)
        user.last_login_at = datetime.now(UTC)
        await self.session.flush()
        return AuthResponse(
            access_token=access_token,
            refresh_token=refresh.token,
            expires_at=expires_at,
            user=UserView.from_user(user, roles),
        )

    def _mint_access_token(self, user: User, roles: list) -> tuple[str, datetime]:
        permissions = {perm for role in roles for perm in (role.permissions or [])}
        return self.issuer.issue_access_token(user, [role.code for role in roles], permissions)

    def _refresh_failure(self, record: RefreshToken | None, user: User | None) -> AuthFailure | None:
        """Classify why a presented refresh token cannot be used; None if it can."""
        if record is None:
            return AuthFailure.TOKEN_NOT_FOUND
        if record.revoked_at is not None:
            return AuthFailure.TOKEN_REVOKED
        if not self.tokens.is_valid(record):
            return AuthFailure.TOKEN_EXPIRED
        if user is None or not user.is_active:
            return AuthFailure.USER_INACTIVE
        return None
