"""Request/response schemas for user management."""

import uuid

from pydantic import Field

from finance_app.core.security import PASSWORD_MAX_LEN, PASSWORD_MIN_LEN
from finance_app.schemas.auth import ApiModel, UserSettings, UserView


class UpdateProfileRequest(ApiModel):
    """Partial profile update; omitted fields are left unchanged."""

    full_name: str | None = Field(default=None, min_length=1, max_length=255)
    phone: str | None = Field(default=None, max_length=50)
    avatar_url: str | None = Field(default=None, max_length=1024)
    settings: UserSettings | None = None


class ChangePasswordRequest(ApiModel):
    current_password: str = Field(..., min_length=1, max_length=PASSWORD_MAX_LEN)
    new_password: str = Field(..., min_length=PASSWORD_MIN_LEN, max_length=PASSWORD_MAX_LEN)


class RoleAssignmentRequest(ApiModel):
    user_id: uuid.UUID
    role_code: str = Field(..., min_length=1, max_length=50)


class RoleAssignmentResponse(ApiModel):
    user_id: uuid.UUID
    role_code: str
    changed: bool


class UsersListResponse(ApiModel):
    users: list[UserView]
    page: int
    page_size: int
