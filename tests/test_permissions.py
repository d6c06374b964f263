"""Tests for finance_app.services.permissions: seeding, assignments, permission resolution and role management."""

import unittest
import uuid

from sqlalchemy import func, select

from finance_app.core.database import unit_of_work
from finance_app.core.errors import ConflictError, InvalidOperationError, NotFoundError
from finance_app.models import Role, User
from finance_app.services.permissions import (
    SYSTEM_ROLES,
    RoleResolver,
    ensure_system_roles,
    grants,
)
from tests.support import make_database


class TestGrants(unittest.TestCase):
    def test_wildcard_grants_anything(self) -> None:
        self.assertTrue(grants(["*"], "users.manage"))
        self.assertTrue(grants(["*"], "something.never.defined"))

    def test_exact_match_required_without_wildcard(self) -> None:
        self.assertTrue(grants(["reports.view"], "reports.view"))
        self.assertFalse(grants(["reports.view"], "users.manage"))
        self.assertFalse(grants([], "reports.view"))


class RoleResolverTestCase(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self) -> None:
        self.engine, self.factory = await make_database()
        self.session = self.factory()
        self.resolver = RoleResolver(self.session)

    async def asyncTearDown(self) -> None:
        await self.session.close()
        await self.engine.dispose()

    async def _add_user(self, email: str = "alice@example.com") -> User:
        user = User(login=email, email=email, password_hash="x", full_name="Alice")
        async with unit_of_work(self.session):
            self.session.add(user)
        return user

    async def _role_count(self) -> int:
        result = await self.session.execute(select(func.count()).select_from(Role))
        return result.scalar_one()


class TestSystemRoles(RoleResolverTestCase):
    async def test_seed_creates_four_system_roles(self) -> None:
        roles = await self.resolver.list_roles()
        self.assertEqual(
            {r.code for r in roles}, {"SUPER_ADMIN", "ADMIN", "MANAGER", "USER"}
        )
        self.assertTrue(all(r.is_system for r in roles))
        super_admin = await self.resolver.get_role_by_code("SUPER_ADMIN")
        self.assertEqual(super_admin.id, SYSTEM_ROLES[0]["id"])
        self.assertEqual(super_admin.permissions, ["*"])

    async def test_seed_is_idempotent(self) -> None:
        async with unit_of_work(self.session):
            inserted = await ensure_system_roles(self.session)
        self.assertEqual(inserted, 0)
        self.assertEqual(await self._role_count(), 4)

    async def test_lookup_by_code_is_case_insensitive(self) -> None:
        role = await self.resolver.get_role_by_code("manager")
        self.assertIsNotNone(role)
        self.assertEqual(role.code, "MANAGER")


class TestAssignments(RoleResolverTestCase):
    async def test_assign_and_resolve_permissions(self) -> None:
        user = await self._add_user()
        async with unit_of_work(self.session):
            self.assertTrue(await self.resolver.assign_role(user.id, "USER", assigned_by=None))
            self.assertTrue(await self.resolver.assign_role(user.id, "MANAGER", assigned_by=None))

        roles = await self.resolver.roles_of(user.id)
        self.assertEqual({r.code for r in roles}, {"USER", "MANAGER"})
        self.assertEqual(
            await self.resolver.permissions_of(user.id),
            {
                "operations.own.manage",
                "tags.own.manage",
                "reports.view",
                "analytics.view",
                "operations.view",
            },
        )
        self.assertTrue(await self.resolver.has_permission(user.id, "reports.view"))
        self.assertFalse(await self.resolver.has_permission(user.id, "users.manage"))

    async def test_super_admin_has_every_permission(self) -> None:
        user = await self._add_user()
        async with unit_of_work(self.session):
            await self.resolver.assign_role(user.id, "SUPER_ADMIN", assigned_by=None)
        self.assertTrue(await self.resolver.has_permission(user.id, "users.manage"))
        self.assertTrue(await self.resolver.has_permission(user.id, "anything.at.all"))

    async def test_custom_role_grants_only_its_permissions(self) -> None:
        user = await self._add_user()
        async with unit_of_work(self.session):
            await self.resolver.create_role("REPORTER", "Reporter", permissions=["reports.view"])
            await self.resolver.assign_role(user.id, "REPORTER", assigned_by=None)
        self.assertTrue(await self.resolver.has_permission(user.id, "reports.view"))
        self.assertFalse(await self.resolver.has_permission(user.id, "users.manage"))

    async def test_duplicate_assignment_returns_false(self) -> None:
        user = await self._add_user()
        async with unit_of_work(self.session):
            self.assertTrue(await self.resolver.assign_role(user.id, "USER", assigned_by=None))
            self.assertFalse(await self.resolver.assign_role(user.id, "USER", assigned_by=None))
        self.assertEqual(len(await self.resolver.roles_of(user.id)), 1)

    async def test_unknown_role_or_user_returns_false(self) -> None:
        user = await self._add_user()
        async with unit_of_work(self.session):
            self.assertFalse(await self.resolver.assign_role(user.id, "NO_SUCH_ROLE", assigned_by=None))
            self.assertFalse(await self.resolver.assign_role(uuid.uuid4(), "USER", assigned_by=None))
        self.assertEqual(await self.resolver.roles_of(user.id), [])

    async def test_remove_role(self) -> None:
        user = await self._add_user()
        async with unit_of_work(self.session):
            await self.resolver.assign_role(user.id, "USER", assigned_by=None)
        async with unit_of_work(self.session):
            self.assertTrue(await self.resolver.remove_role(user.id, "user"))
            self.assertFalse(await self.resolver.remove_role(user.id, "USER"))
        self.assertEqual(await self.resolver.permissions_of(user.id), set())

    async def test_user_without_roles_has_no_permissions(self) -> None:
        user = await self._add_user()
        self.assertEqual(await self.resolver.permissions_of(user.id), set())
        self.assertFalse(await self.resolver.has_permission(user.id, "reports.view"))


class TestRoleManagement(RoleResolverTestCase):
    async def test_create_role_upper_cases_code(self) -> None:
        async with unit_of_work(self.session):
            role = await self.resolver.create_role("auditor", "Auditor", "Read only", ["reports.view"])
        self.assertEqual(role.code, "AUDITOR")
        self.assertFalse(role.is_system)
        self.assertEqual(await self._role_count(), 5)

    async def test_create_role_conflicts(self) -> None:
        with self.assertRaises(ConflictError) as ctx:
            await self.resolver.create_role("ADMIN", "Another admin")
        self.assertEqual(ctx.exception.field, "code")
        with self.assertRaises(ConflictError) as ctx:
            await self.resolver.create_role("OTHER", "Manager")
        self.assertEqual(ctx.exception.field, "name")

    async def test_update_custom_role(self) -> None:
        async with unit_of_work(self.session):
            role = await self.resolver.create_role("AUDITOR", "Auditor")
        async with unit_of_work(self.session):
            updated = await self.resolver.update_role(
                role.id, description="Reads reports", permissions=["reports.view"]
            )
        self.assertEqual(updated.name, "Auditor")
        self.assertEqual(updated.description, "Reads reports")
        self.assertEqual(updated.permissions, ["reports.view"])

    async def test_system_role_cannot_be_modified(self) -> None:
        admin = await self.resolver.get_role_by_code("ADMIN")
        with self.assertRaises(InvalidOperationError):
            await self.resolver.update_role(admin.id, name="Renamed")
        with self.assertRaises(InvalidOperationError):
            await self.resolver.delete_role(admin.id)

    async def test_update_missing_role_raises_not_found(self) -> None:
        with self.assertRaises(NotFoundError):
            await self.resolver.update_role(uuid.uuid4(), name="Nobody")

    async def test_delete_custom_role(self) -> None:
        async with unit_of_work(self.session):
            role = await self.resolver.create_role("AUDITOR", "Auditor")
        async with unit_of_work(self.session):
            self.assertTrue(await self.resolver.delete_role(role.id))
        self.assertIsNone(await self.resolver.get_role_by_code("AUDITOR"))
        self.assertFalse(await self.resolver.delete_role(uuid.uuid4()))

    async def test_assigned_role_cannot_be_deleted(self) -> None:
        user = await self._add_user()
        async with unit_of_work(self.session):
            role = await self.resolver.create_role("AUDITOR", "Auditor")
            await self.resolver.assign_role(user.id, "AUDITOR", assigned_by=None)
        with self.assertRaises(InvalidOperationError):
            await self.resolver.delete_role(role.id)
        self.assertIsNotNone(await self.resolver.get_role_by_code("AUDITOR"))


if __name__ == "__main__":
    unittest.main()
