"""Request-scoped identity decoded from an access token, and role/permission gates."""

import logging
import uuid
from dataclasses import dataclass

from finance_app.core.errors import AuthFailure, ForbiddenError, UnauthorizedError
from finance_app.core.security import TokenIssuer
from finance_app.services.permissions import grants

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Principal:
    """
    Who is calling and what the token says they may do.

    roles/permissions are a point-in-time copy taken when the token was
    issued; sensitive operations re-check through RoleResolver.
    """

    user_id: uuid.UUID
    email: str
    full_name: str
    roles: frozenset[str]
    permissions: frozenset[str]

    def has_role(self, role_code: str) -> bool:
        return role_code in self.roles

    def has_any_role(self, *role_codes: str) -> bool:
        return any(code in self.roles for code in role_codes)

    def has_permission(self, permission: str) -> bool:
        return grants(self.permissions, permission)


class PrincipalExtractor:
    def __init__(self, issuer: TokenIssuer) -> None:
        self.issuer = issuer

    def extract(self, raw_token: str | None) -> Principal:
        """Validate raw_token and build a Principal. Raises UnauthorizedError."""
        if not raw_token:
            raise UnauthorizedError(AuthFailure.MISSING_TOKEN, "Not authenticated")
        claims = self.issuer.validate_access_token(raw_token)
        try:
            user_id = uuid.UUID(claims.subject)
        except (TypeError, ValueError):
            logger.warning("Rejected access token with malformed subject claim")
            raise UnauthorizedError(AuthFailure.INVALID_TOKEN, "Invalid token payload")
        return Principal(
            user_id=user_id,
            email=claims.email,
            full_name=claims.name,
            roles=frozenset(claims.roles),
            permissions=frozenset(claims.permissions),
        )


def require_any_role(principal: Principal, *role_codes: str) -> Principal:
    """Raise ForbiddenError unless principal holds at least one of role_codes."""
    if not principal.has_any_role(*role_codes):
        raise ForbiddenError(f"Requires one of roles: {', '.join(role_codes)}")
    return principal


def require_permission(principal: Principal, permission: str) -> Principal:
    if not principal.has_permission(permission):
        raise ForbiddenError(f"Missing permission: {permission}")
    return principal
