"""FastAPI dependencies: services bound to the request session, current principal, RBAC gates."""

from collections.abc import Callable
from typing import Annotated

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from finance_app.core.config import Settings
from finance_app.core.database import get_db
from finance_app.core.security import AuthConfig, PasswordHasher, TokenIssuer
from finance_app.services.auth import AuthService
from finance_app.services.permissions import RoleResolver
from finance_app.services.principal import (
    Principal,
    PrincipalExtractor,
    require_any_role,
    require_permission,
)
from finance_app.services.users import UserService

ACCESS_TOKEN_COOKIE = "access_token"
REFRESH_TOKEN_COOKIE = "refresh_token"

DbSession = Annotated[AsyncSession, Depends(get_db)]


def get_settings_state(request: Request) -> Settings:
    return request.app.state.settings


def get_auth_config(request: Request) -> AuthConfig:
    return request.app.state.auth_config


def get_password_hasher(request: Request) -> PasswordHasher:
    return request.app.state.password_hasher


def get_auth_service(
    db: DbSession,
    config: Annotated[AuthConfig, Depends(get_auth_config)],
    hasher: Annotated[PasswordHasher, Depends(get_password_hasher)],
) -> AuthService:
    return AuthService(db, config, hasher)


def get_user_service(
    db: DbSession,
    hasher: Annotated[PasswordHasher, Depends(get_password_hasher)],
) -> UserService:
    return UserService(db, hasher)


def get_role_resolver(db: DbSession) -> RoleResolver:
    return RoleResolver(db)


def get_current_principal(
    request: Request,
    config: Annotated[AuthConfig, Depends(get_auth_config)],
) -> Principal:
    """Dependency: decode the access-token cookie. Raises UnauthorizedError if missing or invalid."""
    return PrincipalExtractor(TokenIssuer(config)).extract(request.cookies.get(ACCESS_TOKEN_COOKIE))


CurrentPrincipal = Annotated[Principal, Depends(get_current_principal)]


def require_roles(*role_codes: str) -> Callable[[Principal], Principal]:
    """Dependency factory: require any of role_codes. Raises ForbiddenError otherwise."""

    def dependency(principal: CurrentPrincipal) -> Principal:
        return require_any_role(principal, *role_codes)

    return dependency


def requires_permission(permission: str) -> Callable[[Principal], Principal]:
    """Dependency factory: require permission (or the wildcard) in the token's claims."""

    def dependency(principal: CurrentPrincipal) -> Principal:
        return require_permission(principal, permission)

    return dependency
