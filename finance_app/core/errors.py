"""Error taxonomy for the auth core.

Every error carries an ErrorKind; the HTTP layer maps kinds to status codes in
one place (see finance_app.main) instead of catching each type per route.
"""

from enum import Enum


class ErrorKind(str, Enum):
    CONFLICT = "conflict"
    UNAUTHORIZED = "unauthorized"
    FORBIDDEN = "forbidden"
    NOT_FOUND = "not_found"
    INVALID_OPERATION = "invalid_operation"
    BAD_REQUEST = "bad_request"
    CONFIGURATION = "configuration"


class AuthFailure(str, Enum):
    """Internal reason behind an UnauthorizedError. Logged, never sent to clients."""

    INVALID_CREDENTIALS = "invalid_credentials"
    TOKEN_NOT_FOUND = "token_not_found"
    TOKEN_REVOKED = "token_revoked"
    TOKEN_EXPIRED = "token_expired"
    USER_INACTIVE = "user_inactive"
    INVALID_TOKEN = "invalid_token"
    MISSING_TOKEN = "missing_token"


class FinanceAppError(Exception):
    """Base class for errors the request boundary translates into responses."""

    kind: ErrorKind = ErrorKind.BAD_REQUEST

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class ConflictError(FinanceAppError):
    """Raised when a resource with the same unique key already exists."""

    kind = ErrorKind.CONFLICT

    def __init__(self, message: str, field: str | None = None) -> None:
        self.field = field
        super().__init__(message)


class UnauthorizedError(FinanceAppError):
    """Bad credentials, invalid/expired/revoked token or inactive account.

    The message is deliberately generic; `reason` tells the sub-condition apart
    for logging and tests.
    """

    kind = ErrorKind.UNAUTHORIZED

    def __init__(
        self,
        reason: AuthFailure,
        message: str = "Authentication failed.",
    ) -> None:
        self.reason = reason
        super().__init__(message)


class InvalidTokenError(UnauthorizedError):
    """Raised when an access token fails signature, issuer, audience or expiry checks."""

    def __init__(self, reason: AuthFailure = AuthFailure.INVALID_TOKEN) -> None:
        super().__init__(reason, "Invalid or expired token.")


class ForbiddenError(FinanceAppError):
    """Authenticated principal lacks the required role or permission."""

    kind = ErrorKind.FORBIDDEN


class NotFoundError(FinanceAppError):
    kind = ErrorKind.NOT_FOUND


class InvalidOperationError(FinanceAppError):
    """Attempted mutation that the entity's state forbids (e.g. a system role)."""

    kind = ErrorKind.INVALID_OPERATION


class BadRequestError(FinanceAppError):
    kind = ErrorKind.BAD_REQUEST


class ConfigurationError(FinanceAppError):
    """Missing or invalid settings. Raised at startup, never per request."""

    kind = ErrorKind.CONFIGURATION
