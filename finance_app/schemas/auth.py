"""Request/response schemas for auth endpoints."""

import uuid
from collections.abc import Iterable
from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator
from pydantic.alias_generators import to_camel

from finance_app.core.security import PASSWORD_MAX_LEN, PASSWORD_MIN_LEN


class ApiModel(BaseModel):
    """Base for wire schemas: camelCase JSON, snake_case attributes."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class UserSettings(ApiModel):
    """Per-user display preferences stored as a JSON blob on the user row."""

    currency: str = "RUB"
    language: str = "ru"
    timezone: str = "UTC"


class RoleView(ApiModel):
    id: uuid.UUID
    code: str
    name: str
    description: str = ""
    permissions: list[str] = Field(default_factory=list)
    is_system: bool = False

    @classmethod
    def from_role(cls, role: Any) -> "RoleView":
        return cls(
            id=role.id,
            code=role.code,
            name=role.name,
            description=role.description or "",
            permissions=list(role.permissions or []),
            is_system=role.is_system,
        )


class UserView(ApiModel):
    """User as returned to clients (never includes the password hash)."""

    id: uuid.UUID
    login: str
    email: str
    full_name: str
    phone: str = ""
    avatar_url: str = ""
    is_active: bool
    is_verified: bool
    created_at: datetime
    last_login_at: datetime | None = None
    settings: UserSettings = Field(default_factory=UserSettings)
    roles: list[RoleView] = Field(default_factory=list)

    @classmethod
    def from_user(cls, user: Any, roles: Iterable[Any]) -> "UserView":
        """Build the view from ORM rows; roles are looked up separately (no ORM relationship)."""
        return cls(
            id=user.id,
            login=user.login,
            email=user.email,
            full_name=user.full_name,
            phone=user.phone or "",
            avatar_url=user.avatar_url or "",
            is_active=user.is_active,
            is_verified=user.is_verified,
            created_at=user.created_at,
            last_login_at=user.last_login_at,
            settings=UserSettings.model_validate(user.settings or {}),
            roles=[RoleView.from_role(role) for role in roles],
        )


class RegisterRequest(ApiModel):
    email: EmailStr = Field(..., max_length=255, description="Email, also used as login")
    password: str = Field(..., min_length=PASSWORD_MIN_LEN, max_length=PASSWORD_MAX_LEN)
    full_name: str = Field(..., min_length=1, max_length=255)
    phone: str = Field(default="", max_length=50)

    @field_validator("full_name")
    @classmethod
    def strip_full_name(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("full_name must not be blank")
        return v.strip()


class LoginRequest(ApiModel):
    """Credentials for login. No length rules on password so every failure looks the same."""

    email: str = Field(..., min_length=1, max_length=255)
    password: str = Field(..., min_length=1, max_length=PASSWORD_MAX_LEN)


class AuthResponse(ApiModel):
    """Tokens issued by register/login/refresh plus the authenticated user."""

    access_token: str = Field(..., description="JWT access token")
    refresh_token: str = Field(..., description="Opaque refresh token")
    expires_at: datetime = Field(..., description="Access token expiry (UTC)")
    user: UserView


class MessageResponse(ApiModel):
    message: str
