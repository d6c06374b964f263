"""Role management and permission lookups. Mutations require roles.manage."""

import uuid
from typing import Annotated

from fastapi import APIRouter, Depends, Response, status

from finance_app.api.v1.deps import (
    CurrentPrincipal,
    DbSession,
    get_role_resolver,
    requires_permission,
)
from finance_app.core.database import unit_of_work
from finance_app.core.errors import NotFoundError
from finance_app.schemas.auth import RoleView
from finance_app.schemas.roles import (
    CreateRoleRequest,
    PermissionCheckResponse,
    UpdateRoleRequest,
    UserPermissionsResponse,
)
from finance_app.services.permissions import RoleResolver
from finance_app.services.principal import Principal

router = APIRouter()

Resolver = Annotated[RoleResolver, Depends(get_role_resolver)]
RoleManager = Annotated[Principal, Depends(requires_permission("roles.manage"))]
UserManager = Annotated[Principal, Depends(requires_permission("users.manage"))]


@router.get("", response_model=list[RoleView])
async def list_roles(_principal: CurrentPrincipal, resolver: Resolver) -> list[RoleView]:
    return [RoleView.from_role(role) for role in await resolver.list_roles()]


@router.get("/by-code/{code}", response_model=RoleView)
async def get_role_by_code(code: str, _principal: CurrentPrincipal, resolver: Resolver) -> RoleView:
    role = await resolver.get_role_by_code(code)
    if role is None:
        raise NotFoundError(f"Role with code '{code}' not found")
    return RoleView.from_role(role)


@router.get("/{role_id}", response_model=RoleView)
async def get_role(role_id: uuid.UUID, _principal: CurrentPrincipal, resolver: Resolver) -> RoleView:
    role = await resolver.get_role(role_id)
    if role is None:
        raise NotFoundError("Role not found")
    return RoleView.from_role(role)


@router.post("", response_model=RoleView, status_code=status.HTTP_201_CREATED)
async def create_role(
    body: CreateRoleRequest,
    _admin: RoleManager,
    db: DbSession,
    resolver: Resolver,
) -> RoleView:
    async with unit_of_work(db):
        role = await resolver.create_role(body.code, body.name, body.description, body.permissions)
    return RoleView.from_role(role)


@router.put("/{role_id}", response_model=RoleView)
async def update_role(
    role_id: uuid.UUID,
    body: UpdateRoleRequest,
    _admin: RoleManager,
    db: DbSession,
    resolver: Resolver,
) -> RoleView:
    """Update a custom role. System roles are rejected with 400."""
    async with unit_of_work(db):
        role = await resolver.update_role(role_id, body.name, body.description, body.permissions)
    return RoleView.from_role(role)


@router.delete("/{role_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_role(
    role_id: uuid.UUID,
    _admin: RoleManager,
    db: DbSession,
    resolver: Resolver,
) -> Response:
    async with unit_of_work(db):
        deleted = await resolver.delete_role(role_id)
    if not deleted:
        raise NotFoundError("Role not found")
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/users/{user_id}/permissions", response_model=UserPermissionsResponse)
async def get_user_permissions(
    user_id: uuid.UUID,
    _admin: UserManager,
    resolver: Resolver,
) -> UserPermissionsResponse:
    permissions = await resolver.permissions_of(user_id)
    return UserPermissionsResponse(user_id=user_id, permissions=sorted(permissions))


@router.get("/users/{user_id}/permissions/{permission}", response_model=PermissionCheckResponse)
async def check_user_permission(
    user_id: uuid.UUID,
    permission: str,
    _admin: UserManager,
    resolver: Resolver,
) -> PermissionCheckResponse:
    """Authoritative check against current role assignments (not token claims)."""
    return PermissionCheckResponse(
        user_id=user_id,
        permission=permission,
        has_permission=await resolver.has_permission(user_id, permission),
    )
