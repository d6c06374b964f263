"""Request/response schemas for role management."""

import uuid

from pydantic import Field, field_validator

from finance_app.schemas.auth import ApiModel


def _clean_permissions(values: list[str]) -> list[str]:
    cleaned = [v.strip() for v in values]
    if any(not v for v in cleaned):
        raise ValueError("permissions must not contain blank entries")
    return list(dict.fromkeys(cleaned))


class CreateRoleRequest(ApiModel):
    code: str = Field(..., min_length=1, max_length=50, pattern=r"^[A-Za-z][A-Za-z0-9_]*$")
    name: str = Field(..., min_length=1, max_length=100)
    description: str = Field(default="", max_length=2000)
    permissions: list[str] = Field(default_factory=list)

    @field_validator("code")
    @classmethod
    def upper_code(cls, v: str) -> str:
        return v.upper()

    @field_validator("permissions")
    @classmethod
    def clean_permissions(cls, v: list[str]) -> list[str]:
        return _clean_permissions(v)


class UpdateRoleRequest(ApiModel):
    """Partial update; omitted fields keep their current value."""

    name: str | None = Field(default=None, min_length=1, max_length=100)
    description: str | None = Field(default=None, max_length=2000)
    permissions: list[str] | None = None

    @field_validator("permissions")
    @classmethod
    def clean_permissions(cls, v: list[str] | None) -> list[str] | None:
        return None if v is None else _clean_permissions(v)


class PermissionCheckResponse(ApiModel):
    user_id: uuid.UUID
    permission: str
    has_permission: bool


class UserPermissionsResponse(ApiModel):
    user_id: uuid.UUID
    permissions: list[str]
