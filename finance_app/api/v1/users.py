"""User management endpoints (profile, password, activation, role assignment)."""

import uuid
from typing import Annotated

from fastapi import APIRouter, Depends, Query

from finance_app.api.v1.deps import (
    CurrentPrincipal,
    DbSession,
    get_role_resolver,
    get_user_service,
    require_roles,
)
from finance_app.core.database import unit_of_work
from finance_app.core.errors import NotFoundError
from finance_app.schemas.auth import MessageResponse, RoleView, UserView
from finance_app.schemas.users import (
    ChangePasswordRequest,
    RoleAssignmentRequest,
    RoleAssignmentResponse,
    UpdateProfileRequest,
    UsersListResponse,
)
from finance_app.services.permissions import RoleResolver
from finance_app.services.principal import Principal
from finance_app.services.users import UserService

router = APIRouter()

Users = Annotated[UserService, Depends(get_user_service)]
Resolver = Annotated[RoleResolver, Depends(get_role_resolver)]
Admin = Annotated[Principal, Depends(require_roles("SUPER_ADMIN", "ADMIN"))]
Staff = Annotated[Principal, Depends(require_roles("SUPER_ADMIN", "ADMIN", "MANAGER"))]


@router.get("", response_model=UsersListResponse)
async def list_users(
    _staff: Staff,
    users: Users,
    page: Annotated[int, Query(ge=1)] = 1,
    page_size: Annotated[int, Query(ge=1, le=200)] = 50,
) -> UsersListResponse:
    return UsersListResponse(
        users=await users.list_users(page, page_size),
        page=page,
        page_size=page_size,
    )


@router.put("/me", response_model=UserView)
async def update_my_profile(body: UpdateProfileRequest, principal: CurrentPrincipal, users: Users) -> UserView:
    return await users.update_profile(
        principal.user_id,
        full_name=body.full_name,
        phone=body.phone,
        avatar_url=body.avatar_url,
        settings=body.settings,
    )


@router.post("/me/change-password", response_model=MessageResponse)
async def change_my_password(
    body: ChangePasswordRequest,
    principal: CurrentPrincipal,
    users: Users,
) -> MessageResponse:
    if not await users.change_password(principal.user_id, body.current_password, body.new_password):
        raise NotFoundError("User not found")
    return MessageResponse(message="Password changed")


@router.post("/assign-role", response_model=RoleAssignmentResponse)
async def assign_role(
    body: RoleAssignmentRequest,
    admin: Admin,
    db: DbSession,
    resolver: Resolver,
) -> RoleAssignmentResponse:
    """changed=False means the role is unknown or already assigned."""
    async with unit_of_work(db):
        changed = await resolver.assign_role(body.user_id, body.role_code, assigned_by=admin.user_id)
    return RoleAssignmentResponse(user_id=body.user_id, role_code=body.role_code.upper(), changed=changed)


@router.post("/remove-role", response_model=RoleAssignmentResponse)
async def remove_role(
    body: RoleAssignmentRequest,
    _admin: Admin,
    db: DbSession,
    resolver: Resolver,
) -> RoleAssignmentResponse:
    async with unit_of_work(db):
        changed = await resolver.remove_role(body.user_id, body.role_code)
    return RoleAssignmentResponse(user_id=body.user_id, role_code=body.role_code.upper(), changed=changed)


@router.get("/{user_id}", response_model=UserView)
async def get_user(user_id: uuid.UUID, _staff: Staff, users: Users) -> UserView:
    return await users.get_user(user_id)


@router.get("/{user_id}/roles", response_model=list[RoleView])
async def get_user_roles(user_id: uuid.UUID, _principal: CurrentPrincipal, users: Users) -> list[RoleView]:
    return await users.user_roles(user_id)


@router.delete("/{user_id}", response_model=MessageResponse)
async def deactivate_user(user_id: uuid.UUID, _admin: Admin, users: Users) -> MessageResponse:
    """Soft delete: the account is deactivated, not removed."""
    if not await users.deactivate(user_id):
        raise NotFoundError("User not found")
    return MessageResponse(message="User deactivated")


@router.post("/{user_id}/verify-email", response_model=MessageResponse)
async def verify_email(user_id: uuid.UUID, _admin: Admin, users: Users) -> MessageResponse:
    if not await users.verify_email(user_id):
        raise NotFoundError("User not found")
    return MessageResponse(message="Email verified")
