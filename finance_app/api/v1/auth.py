"""Auth endpoints: register, login, refresh, logout, me. Tokens travel in httpOnly cookies."""

from datetime import UTC, datetime
from typing import Annotated

from fastapi import APIRouter, Depends, Request, Response, status

from finance_app.api.v1.deps import (
    ACCESS_TOKEN_COOKIE,
    REFRESH_TOKEN_COOKIE,
    CurrentPrincipal,
    get_auth_config,
    get_auth_service,
    get_settings_state,
)
from finance_app.core.config import Settings
from finance_app.core.errors import AuthFailure, BadRequestError, UnauthorizedError
from finance_app.core.security import AuthConfig
from finance_app.schemas.auth import (
    AuthResponse,
    LoginRequest,
    MessageResponse,
    RegisterRequest,
    UserView,
)
from finance_app.services.auth import AuthService

router = APIRouter()

AuthServiceDep = Annotated[AuthService, Depends(get_auth_service)]
SettingsDep = Annotated[Settings, Depends(get_settings_state)]
AuthConfigDep = Annotated[AuthConfig, Depends(get_auth_config)]


def _set_auth_cookies(
    response: Response,
    auth: AuthResponse,
    settings: Settings,
    config: AuthConfig,
) -> None:
    access_max_age = max(int((auth.expires_at - datetime.now(UTC)).total_seconds()), 0)
    response.set_cookie(
        key=ACCESS_TOKEN_COOKIE,
        value=auth.access_token,
        httponly=True,
        secure=settings.COOKIE_SECURE,
        samesite="strict",
        max_age=access_max_age,
        path="/",
    )
    response.set_cookie(
        key=REFRESH_TOKEN_COOKIE,
        value=auth.refresh_token,
        httponly=True,
        secure=settings.COOKIE_SECURE,
        samesite="strict",
        max_age=int(config.refresh_token_lifetime.total_seconds()),
        path="/",
    )


def _clear_auth_cookies(response: Response, settings: Settings) -> None:
    for key in (ACCESS_TOKEN_COOKIE, REFRESH_TOKEN_COOKIE):
        response.delete_cookie(
            key=key,
            path="/",
            httponly=True,
            secure=settings.COOKIE_SECURE,
            samesite="strict",
        )


@router.post("/register", response_model=AuthResponse, status_code=status.HTTP_201_CREATED)
async def register(
    body: RegisterRequest,
    response: Response,
    service: AuthServiceDep,
    settings: SettingsDep,
    config: AuthConfigDep,
) -> AuthResponse:
    """Create an account with the USER role and start a session (cookies are set)."""
    auth = await service.register(body.email, body.password, body.full_name, body.phone)
    _set_auth_cookies(response, auth, settings, config)
    return auth


@router.post("/login", response_model=AuthResponse)
async def login(
    body: LoginRequest,
    response: Response,
    service: AuthServiceDep,
    settings: SettingsDep,
    config: AuthConfigDep,
) -> AuthResponse:
    """Authenticate with email and password."""
    auth = await service.login(body.email, body.password)
    _set_auth_cookies(response, auth, settings, config)
    return auth


@router.post("/refresh", response_model=AuthResponse)
async def refresh(
    request: Request,
    response: Response,
    service: AuthServiceDep,
    settings: SettingsDep,
    config: AuthConfigDep,
) -> AuthResponse:
    """Rotate the refresh-token cookie and issue a new access token."""
    token = request.cookies.get(REFRESH_TOKEN_COOKIE)
    if not token:
        raise UnauthorizedError(AuthFailure.MISSING_TOKEN, "Refresh token not found")
    auth = await service.refresh(token)
    _set_auth_cookies(response, auth, settings, config)
    return auth


@router.post("/logout", response_model=MessageResponse)
async def logout(
    request: Request,
    response: Response,
    service: AuthServiceDep,
    settings: SettingsDep,
) -> MessageResponse:
    """Revoke the refresh-token cookie and clear both auth cookies."""
    token = request.cookies.get(REFRESH_TOKEN_COOKIE)
    if not token:
        raise BadRequestError("Refresh token not found")
    if not await service.revoke_token(token):
        raise BadRequestError("Refresh token is invalid or already revoked")
    _clear_auth_cookies(response, settings)
    return MessageResponse(message="Logged out")


@router.get("/me", response_model=UserView)
async def me(principal: CurrentPrincipal, service: AuthServiceDep) -> UserView:
    """Current user, re-read from the database (roles included)."""
    return await service.get_current_user(principal)
