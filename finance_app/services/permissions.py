"""Roles, user-role assignments and permission resolution."""

import logging
import uuid
from collections.abc import Iterable
from datetime import UTC, datetime

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from finance_app.core.errors import ConflictError, InvalidOperationError, NotFoundError
from finance_app.models import Role, User, UserRole

logger = logging.getLogger(__name__)

# Grants every permission when present in any of a user's roles.
WILDCARD_PERMISSION = "*"

DEFAULT_ROLE_CODE = "USER"

# Built-in roles seeded at bootstrap. Ids are fixed so every environment agrees on them.
SYSTEM_ROLES: tuple[dict, ...] = (
    {
        "id": uuid.UUID("11111111-1111-1111-1111-111111111111"),
        "code": "SUPER_ADMIN",
        "name": "Super administrator",
        "description": "Full access to the whole system",
        "permissions": [WILDCARD_PERMISSION],
    },
    {
        "id": uuid.UUID("22222222-2222-2222-2222-222222222222"),
        "code": "ADMIN",
        "name": "Administrator",
        "description": "Manages users and settings",
        "permissions": ["users.manage", "settings.manage", "roles.manage"],
    },
    {
        "id": uuid.UUID("33333333-3333-3333-3333-333333333333"),
        "code": "MANAGER",
        "name": "Manager",
        "description": "Views reports and analytics",
        "permissions": ["reports.view", "analytics.view", "operations.view"],
    },
    {
        "id": uuid.UUID("44444444-4444-4444-4444-444444444444"),
        "code": DEFAULT_ROLE_CODE,
        "name": "User",
        "description": "Works with their own data",
        "permissions": ["operations.own.manage", "tags.own.manage"],
    },
)


def grants(permissions: Iterable[str], permission: str) -> bool:
    """True if the permission set contains the wildcard or the exact permission."""
    perms = set(permissions)
    return WILDCARD_PERMISSION in perms or permission in perms


async def ensure_system_roles(session: AsyncSession) -> int:
    """
    Insert any missing system role (matched by code). Idempotent: existing rows,
    including their permissions, are left untouched. Returns the number inserted.
    """
    result = await session.execute(select(Role.code))
    existing = set(result.scalars().all())
    inserted = 0
    for spec in SYSTEM_ROLES:
        if spec["code"] in existing:
            continue
        session.add(Role(is_system=True, **{**spec, "permissions": list(spec["permissions"])}))
        inserted += 1
    if inserted:
        await session.flush()
        logger.info("Seeded %s system role(s)", inserted)
    return inserted


class RoleResolver:
    """Maps users to roles and the union of permissions those roles grant."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    # --- lookups -----------------------------------------------------------

    async def list_roles(self) -> list[Role]:
        result = await self.session.execute(select(Role).order_by(Role.is_system.desc(), Role.code))
        return list(result.scalars().all())

    async def get_role(self, role_id: uuid.UUID) -> Role | None:
        return await self.session.get(Role, role_id)

    async def get_role_by_code(self, code: str) -> Role | None:
        result = await self.session.execute(select(Role).where(Role.code == code.upper()))
        return result.scalar_one_or_none()

    async def roles_of(self, user_id: uuid.UUID) -> list[Role]:
        """Roles assigned to user_id, in assignment order."""
        result = await self.session.execute(
            select(Role)
            .join(UserRole, UserRole.role_id == Role.id)
            .where(UserRole.user_id == user_id)
            .order_by(UserRole.assigned_at, Role.code)
        )
        return list(result.scalars().all())

    async def permissions_of(self, user_id: uuid.UUID) -> set[str]:
        permissions: set[str] = set()
        for role in await self.roles_of(user_id):
            permissions.update(role.permissions or [])
        return permissions

    async def has_permission(self, user_id: uuid.UUID, permission: str) -> bool:
        return grants(await self.permissions_of(user_id), permission)

    # --- assignments -------------------------------------------------------

    async def assign_role(
        self,
        user_id: uuid.UUID,
        role_code: str,
        assigned_by: uuid.UUID | None,
    ) -> bool:
        """
        Assign role_code to user_id. Returns False (no exception) when the role
        or user is unknown or the assignment already exists.
        """
        role = await self.get_role_by_code(role_code)
        if role is None:
            logger.info("Role assignment skipped: unknown role code %s", role_code)
            return False
        if await self.session.get(User, user_id) is None:
            logger.info("Role assignment skipped: unknown user %s", user_id)
            return False
        if await self._assignment(user_id, role.id) is not None:
            return False
        self.session.add(
            UserRole(
                user_id=user_id,
                role_id=role.id,
                assigned_by=assigned_by,
                assigned_at=datetime.now(UTC),
            )
        )
        await self.session.flush()
        logger.info("Assigned role %s to user %s", role.code, user_id)
        return True

    async def remove_role(self, user_id: uuid.UUID, role_code: str) -> bool:
        role = await self.get_role_by_code(role_code)
        if role is None:
            return False
        assignment = await self._assignment(user_id, role.id)
        if assignment is None:
            return False
        await self.session.delete(assignment)
        await self.session.flush()
        logger.info("Removed role %s from user %s", role.code, user_id)
        return True

    async def _assignment(self, user_id: uuid.UUID, role_id: uuid.UUID) -> UserRole | None:
        result = await self.session.execute(
            select(UserRole).where(UserRole.user_id == user_id, UserRole.role_id == role_id)
        )
        return result.scalar_one_or_none()

    # --- role management ---------------------------------------------------

    async def create_role(
        self,
        code: str,
        name: str,
        description: str = "",
        permissions: list[str] | None = None,
    ) -> Role:
        code = code.upper()
        if await self.get_role_by_code(code) is not None:
            raise ConflictError("Role with this code already exists", field="code")
        existing_name = await self.session.execute(select(Role.id).where(Role.name == name))
        if existing_name.first() is not None:
            raise ConflictError("Role with this name already exists", field="name")
        role = Role(
            code=code,
            name=name,
            description=description,
            permissions=list(permissions or []),
            is_system=False,
        )
        self.session.add(role)
        await self.session.flush()
        logger.info("Created role %s", code)
        return role

    async def update_role(
        self,
        role_id: uuid.UUID,
        name: str | None = None,
        description: str | None = None,
        permissions: list[str] | None = None,
    ) -> Role:
        role = await self.get_role(role_id)
        if role is None:
            raise NotFoundError("Role not found")
        if role.is_system:
            raise InvalidOperationError("Cannot modify system role")
        if name is not None:
            role.name = name
        if description is not None:
            role.description = description
        if permissions is not None:
            role.permissions = list(permissions)
        role.updated_at = datetime.now(UTC)
        await self.session.flush()
        return role

    async def delete_role(self, role_id: uuid.UUID) -> bool:
        """
        Delete a custom role. False if it does not exist; InvalidOperationError
        for system roles and for roles still assigned to users.
        """
        role = await self.get_role(role_id)
        if role is None:
            return False
        if role.is_system:
            raise InvalidOperationError("Cannot delete system role")
        in_use = await self.session.execute(
            select(func.count()).select_from(UserRole).where(UserRole.role_id == role_id)
        )
        if in_use.scalar_one() > 0:
            raise InvalidOperationError("Cannot delete a role that is assigned to users")
        await self.session.delete(role)
        await self.session.flush()
        logger.info("Deleted role %s", role.code)
        return True
