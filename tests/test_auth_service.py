"""Tests for AuthService: register, login, refresh rotation, logout, current user."""

import unittest
import uuid
from datetime import UTC, datetime, timedelta
from unittest.mock import AsyncMock, patch

from sqlalchemy import func, select

from finance_app.core.database import unit_of_work
from finance_app.core.errors import (
    AuthFailure,
    ConfigurationError,
    ConflictError,
    NotFoundError,
    UnauthorizedError,
)
from finance_app.core.security import TokenIssuer
from finance_app.models import RefreshToken, User
from finance_app.repositories import RefreshTokenStore
from finance_app.services.auth import INVALID_CREDENTIALS_MESSAGE, AuthService
from finance_app.services.principal import Principal
from tests.support import FAST_HASHER, make_config, make_database


class AuthServiceTestCase(unittest.IsolatedAsyncioTestCase):
    """One in-memory database per test; each step opens its own session."""

    async def asyncSetUp(self) -> None:
        self.engine, self.factory = await make_database()
        self.config = make_config()

    async def asyncTearDown(self) -> None:
        await self.engine.dispose()

    async def register(self, email: str = "alice@example.com", password: str = "Secret123", name: str = "Alice"):
        async with self.factory() as session:
            return await AuthService(session, self.config, FAST_HASHER).register(email, password, name)

    async def login(self, email: str = "alice@example.com", password: str = "Secret123"):
        async with self.factory() as session:
            return await AuthService(session, self.config, FAST_HASHER).login(email, password)

    async def refresh(self, token: str):
        async with self.factory() as session:
            return await AuthService(session, self.config, FAST_HASHER).refresh(token)

    async def count(self, model) -> int:
        async with self.factory() as session:
            result = await session.execute(select(func.count()).select_from(model))
            return result.scalar_one()

    async def find_token(self, token: str) -> RefreshToken | None:
        async with self.factory() as session:
            return await RefreshTokenStore(session, TokenIssuer(self.config)).find(token)


class TestRegister(AuthServiceTestCase):
    async def test_register_creates_user_with_default_role(self) -> None:
        auth = await self.register()

        self.assertTrue(auth.access_token)
        self.assertTrue(auth.refresh_token)
        self.assertEqual(auth.user.email, "alice@example.com")
        self.assertEqual(auth.user.full_name, "Alice")
        self.assertTrue(auth.user.is_active)
        self.assertFalse(auth.user.is_verified)
        self.assertEqual([r.code for r in auth.user.roles], ["USER"])
        self.assertIsNotNone(auth.user.last_login_at)

        claims = TokenIssuer(self.config).validate_access_token(auth.access_token)
        self.assertEqual(claims.subject, str(auth.user.id))
        self.assertEqual(claims.roles, ("USER",))
        self.assertEqual(claims.permissions, ("operations.own.manage", "tags.own.manage"))

    async def test_password_is_stored_hashed(self) -> None:
        auth = await self.register()
        async with self.factory() as session:
            user = await session.get(User, auth.user.id)
        self.assertNotEqual(user.password_hash, "Secret123")
        self.assertTrue(FAST_HASHER.verify("Secret123", user.password_hash))

    async def test_email_is_normalized(self) -> None:
        auth = await self.register(email="  Alice@Example.COM ")
        self.assertEqual(auth.user.email, "alice@example.com")
        self.assertEqual(auth.user.login, "alice@example.com")

    async def test_duplicate_email_conflicts_and_leaves_first_user_intact(self) -> None:
        first = await self.register()
        with self.assertRaises(ConflictError) as ctx:
            await self.register(password="Different123", name="Impostor")
        self.assertEqual(ctx.exception.field, "email")

        self.assertEqual(await self.count(User), 1)
        self.assertEqual(await self.count(RefreshToken), 1)
        again = await self.login()
        self.assertEqual(again.user.id, first.user.id)
        self.assertEqual(again.user.full_name, "Alice")

    async def test_missing_default_role_leaves_no_user_behind(self) -> None:
        await self.engine.dispose()
        self.engine, self.factory = await make_database(seed_roles=False)

        with self.assertRaises(ConfigurationError):
            await self.register()

        self.assertEqual(await self.count(User), 0)
        self.assertEqual(await self.count(RefreshToken), 0)


class TestLogin(AuthServiceTestCase):
    async def test_login_issues_fresh_tokens(self) -> None:
        registered = await self.register()
        auth = await self.login()
        self.assertEqual(auth.user.id, registered.user.id)
        self.assertNotEqual(auth.refresh_token, registered.refresh_token)
        self.assertEqual(await self.count(RefreshToken), 2)

    async def test_login_is_case_insensitive_on_email(self) -> None:
        await self.register()
        auth = await self.login(email="ALICE@example.com")
        self.assertEqual(auth.user.email, "alice@example.com")

    async def test_unknown_email_and_wrong_password_look_the_same(self) -> None:
        await self.register()
        with self.assertRaises(UnauthorizedError) as wrong_password:
            await self.login(password="wrong-password")
        with self.assertRaises(UnauthorizedError) as unknown_user:
            await self.login(email="nobody@example.com")

        self.assertEqual(wrong_password.exception.message, INVALID_CREDENTIALS_MESSAGE)
        self.assertEqual(unknown_user.exception.message, INVALID_CREDENTIALS_MESSAGE)
        self.assertEqual(wrong_password.exception.reason, AuthFailure.INVALID_CREDENTIALS)
        self.assertEqual(unknown_user.exception.reason, AuthFailure.INVALID_CREDENTIALS)
        self.assertEqual(await self.count(RefreshToken), 1)

    async def test_unknown_email_still_runs_a_hash_check(self) -> None:
        with patch.object(FAST_HASHER, "dummy_verify", wraps=FAST_HASHER.dummy_verify) as dummy:
            with self.assertRaises(UnauthorizedError):
                await self.login(email="nobody@example.com")
        dummy.assert_called_once_with("Secret123")

    async def test_inactive_user_cannot_login(self) -> None:
        auth = await self.register()
        async with self.factory() as session:
            async with unit_of_work(session):
                user = await session.get(User, auth.user.id)
                user.is_active = False
        with self.assertRaises(UnauthorizedError) as ctx:
            await self.login()
        self.assertEqual(ctx.exception.message, INVALID_CREDENTIALS_MESSAGE)


class TestRefresh(AuthServiceTestCase):
    async def test_refresh_rotates_token(self) -> None:
        registered = await self.register()
        rotated = await self.refresh(registered.refresh_token)

        self.assertNotEqual(rotated.refresh_token, registered.refresh_token)
        self.assertEqual(rotated.user.id, registered.user.id)
        old = await self.find_token(registered.refresh_token)
        self.assertIsNotNone(old.revoked_at)
        new = await self.find_token(rotated.refresh_token)
        self.assertIsNone(new.revoked_at)

        with self.assertRaises(UnauthorizedError) as ctx:
            await self.refresh(registered.refresh_token)
        self.assertEqual(ctx.exception.reason, AuthFailure.TOKEN_REVOKED)

        again = await self.refresh(rotated.refresh_token)
        self.assertTrue(again.access_token)

    async def test_unknown_token(self) -> None:
        with self.assertRaises(UnauthorizedError) as ctx:
            await self.refresh("no-such-token")
        self.assertEqual(ctx.exception.reason, AuthFailure.TOKEN_NOT_FOUND)

    async def test_expired_token(self) -> None:
        auth = await self.register()
        async with self.factory() as session:
            store = RefreshTokenStore(session, TokenIssuer(self.config))
            async with unit_of_work(session):
                stale = await store.issue(auth.user.id, now=datetime.now(UTC) - timedelta(days=8))
            token = stale.token
        with self.assertRaises(UnauthorizedError) as ctx:
            await self.refresh(token)
        self.assertEqual(ctx.exception.reason, AuthFailure.TOKEN_EXPIRED)

    async def test_inactive_user_token(self) -> None:
        auth = await self.register()
        async with self.factory() as session:
            async with unit_of_work(session):
                user = await session.get(User, auth.user.id)
                user.is_active = False
        with self.assertRaises(UnauthorizedError) as ctx:
            await self.refresh(auth.refresh_token)
        self.assertEqual(ctx.exception.reason, AuthFailure.USER_INACTIVE)

    async def test_all_refresh_failures_share_one_message(self) -> None:
        auth = await self.register()
        await self.refresh(auth.refresh_token)
        messages = set()
        for token in ("no-such-token", auth.refresh_token):
            with self.assertRaises(UnauthorizedError) as ctx:
                await self.refresh(token)
            messages.add(ctx.exception.message)
        self.assertEqual(len(messages), 1)

    async def test_concurrent_use_of_one_token_yields_one_session(self) -> None:
        auth = await self.register()
        # Snapshot taken before the first rotation, as a concurrent request would have read it.
        stale = await self.find_token(auth.refresh_token)

        await self.refresh(auth.refresh_token)

        async with self.factory() as session:
            service = AuthService(session, self.config, FAST_HASHER)
            service.tokens.find = AsyncMock(return_value=stale)
            with self.assertRaises(UnauthorizedError) as ctx:
                await service.refresh(auth.refresh_token)
        self.assertEqual(ctx.exception.reason, AuthFailure.TOKEN_REVOKED)
        # One from register, one from the single successful rotation.
        self.assertEqual(await self.count(RefreshToken), 2)

    async def test_failure_while_issuing_keeps_old_token_live(self) -> None:
        auth = await self.register()
        async with self.factory() as session:
            service = AuthService(session, self.config, FAST_HASHER)
            service.tokens.issue = AsyncMock(side_effect=RuntimeError("disk full"))
            with self.assertRaises(RuntimeError):
                await service.refresh(auth.refresh_token)

        old = await self.find_token(auth.refresh_token)
        self.assertIsNone(old.revoked_at)
        self.assertEqual(await self.count(RefreshToken), 1)
        rotated = await self.refresh(auth.refresh_token)
        self.assertNotEqual(rotated.refresh_token, auth.refresh_token)


class TestRevokeAndCurrentUser(AuthServiceTestCase):
    async def test_revoke_token_once(self) -> None:
        auth = await self.register()
        async with self.factory() as session:
            service = AuthService(session, self.config, FAST_HASHER)
            self.assertTrue(await service.revoke_token(auth.refresh_token))
            self.assertFalse(await service.revoke_token(auth.refresh_token))
            self.assertFalse(await service.revoke_token("no-such-token"))
        with self.assertRaises(UnauthorizedError) as ctx:
            await self.refresh(auth.refresh_token)
        self.assertEqual(ctx.exception.reason, AuthFailure.TOKEN_REVOKED)

    async def test_get_current_user(self) -> None:
        auth = await self.register()
        principal = Principal(
            user_id=auth.user.id,
            email=auth.user.email,
            full_name=auth.user.full_name,
            roles=frozenset({"USER"}),
            permissions=frozenset(),
        )
        async with self.factory() as session:
            view = await AuthService(session, self.config, FAST_HASHER).get_current_user(principal)
        self.assertEqual(view.id, auth.user.id)
        self.assertEqual([r.code for r in view.roles], ["USER"])

    async def test_get_current_user_missing(self) -> None:
        principal = Principal(
            user_id=uuid.uuid4(),
            email="ghost@example.com",
            full_name="Ghost",
            roles=frozenset(),
            permissions=frozenset(),
        )
        async with self.factory() as session:
            with self.assertRaises(NotFoundError):
                await AuthService(session, self.config, FAST_HASHER).get_current_user(principal)


if __name__ == "__main__":
    unittest.main()
