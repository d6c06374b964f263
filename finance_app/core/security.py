"""Password hashing, auth configuration and JWT access/refresh token issuance."""

import secrets
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import Any

import bcrypt
import jwt

from finance_app.core.config import Settings
from finance_app.core.errors import AuthFailure, ConfigurationError, InvalidTokenError

# Bcrypt cost (rounds); 12 is a good default for security vs speed.
BCRYPT_ROUNDS = 12

# Password length bounds enforced on registration and password change.
PASSWORD_MIN_LEN = 8
PASSWORD_MAX_LEN = 128

# HS256 keys shorter than the digest size weaken the MAC.
JWT_SECRET_MIN_LEN = 32

# Refresh tokens carry 64 random bytes (URL-safe base64: 86 chars).
REFRESH_TOKEN_BYTES = 64

REQUIRED_CLAIMS = ["exp", "iat", "sub", "iss", "aud"]


class PasswordHasher:
    """Salted bcrypt hashing. Do not store plain passwords."""

    def __init__(self, rounds: int = BCRYPT_ROUNDS) -> None:
        self.rounds = rounds
        self._dummy_hash: str | None = None

    def hash(self, plain_password: str) -> str:
        """Hash a plain-text password for storage."""
        # bcrypt has a 72-byte limit; truncate to avoid errors (validation already limits length).
        pw_bytes = plain_password.encode("utf-8")[:72]
        return bcrypt.hashpw(pw_bytes, bcrypt.gensalt(rounds=self.rounds)).decode("utf-8")

    def verify(self, plain_password: str, hashed: str) -> bool:
        """Verify a plain password against a stored hash (constant-time compare inside bcrypt)."""
        pw_bytes = plain_password.encode("utf-8")[:72]
        try:
            return bcrypt.checkpw(pw_bytes, hashed.encode("utf-8"))
        except (ValueError, TypeError):
            return False

    def dummy_verify(self, plain_password: str) -> bool:
        """Burn the same CPU time as verify() when there is no stored hash to check."""
        if self._dummy_hash is None:
            self._dummy_hash = self.hash(secrets.token_urlsafe(16))
        self.verify(plain_password, self._dummy_hash)
        return False


@dataclass(frozen=True)
class AuthConfig:
    """Process-wide token settings; built once at startup and never mutated."""

    secret: str = field(repr=False)
    issuer: str
    audience: str
    algorithm: str = "HS256"
    access_token_lifetime: timedelta = timedelta(minutes=15)
    refresh_token_lifetime: timedelta = timedelta(days=7)

    def __post_init__(self) -> None:
        if not self.secret or not self.secret.strip():
            raise ConfigurationError("JWT_SECRET must be configured")
        if len(self.secret) < JWT_SECRET_MIN_LEN:
            raise ConfigurationError(
                f"JWT_SECRET must be at least {JWT_SECRET_MIN_LEN} characters long"
            )

    @classmethod
    def from_settings(cls, settings: Settings) -> "AuthConfig":
        """Build config from settings; raises ConfigurationError when the signing key is missing."""
        if settings.JWT_SECRET is None:
            raise ConfigurationError("JWT_SECRET must be configured")
        return cls(
            secret=settings.JWT_SECRET.get_secret_value(),
            issuer=settings.JWT_ISSUER,
            audience=settings.JWT_AUDIENCE,
            algorithm=settings.JWT_ALGORITHM,
            access_token_lifetime=timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES),
            refresh_token_lifetime=timedelta(days=settings.REFRESH_TOKEN_EXPIRE_DAYS),
        )


@dataclass(frozen=True)
class TokenClaims:
    """Decoded, validated access-token claims."""

    subject: str
    email: str
    name: str
    roles: tuple[str, ...]
    permissions: tuple[str, ...]
    issuer: str
    audience: str
    issued_at: datetime
    expires_at: datetime


def _unique(values: Iterable[str]) -> list[str]:
    return list(dict.fromkeys(values))


class TokenIssuer:
    """Mints and validates signed access tokens; generates opaque refresh token values."""

    def __init__(self, config: AuthConfig) -> None:
        self.config = config

    def issue_access_token(
        self,
        user: Any,
        roles: Iterable[str],
        permissions: Iterable[str],
        now: datetime | None = None,
    ) -> tuple[str, datetime]:
        """
        Create a JWT for user carrying role codes and the flattened permission set.

        Returns (token, expires_at). Times are truncated to whole seconds, the
        resolution of the exp claim.
        """
        issued_at = (now or datetime.now(UTC)).replace(microsecond=0)
        expires_at = issued_at + self.config.access_token_lifetime
        payload: dict[str, Any] = {
            "sub": str(user.id),
            "email": user.email,
            "name": user.full_name or user.email,
            "roles": _unique(roles),
            "permissions": sorted(set(permissions)),
            "iss": self.config.issuer,
            "aud": self.config.audience,
            "iat": issued_at,
            "exp": expires_at,
        }
        token = jwt.encode(payload, self.config.secret, algorithm=self.config.algorithm)
        return token, expires_at

    def validate_access_token(self, token: str) -> TokenClaims:
        """
        Verify signature, issuer, audience and expiry (no leeway) and return the claims.
        Raises InvalidTokenError on any failure.
        """
        try:
            payload = jwt.decode(
                token,
                self.config.secret,
                algorithms=[self.config.algorithm],
                audience=self.config.audience,
                issuer=self.config.issuer,
                leeway=0,
                options={"require": REQUIRED_CLAIMS},
            )
        except jwt.ExpiredSignatureError as e:
            raise InvalidTokenError(AuthFailure.TOKEN_EXPIRED) from e
        except jwt.PyJWTError as e:
            raise InvalidTokenError() from e

        roles = payload.get("roles", [])
        permissions = payload.get("permissions", [])
        if not isinstance(roles, list) or not isinstance(permissions, list):
            raise InvalidTokenError()
        return TokenClaims(
            subject=str(payload["sub"]),
            email=str(payload.get("email", "")),
            name=str(payload.get("name", "")),
            roles=tuple(str(r) for r in roles),
            permissions=tuple(str(p) for p in permissions),
            issuer=payload["iss"],
            audience=payload["aud"],
            issued_at=datetime.fromtimestamp(payload["iat"], UTC),
            expires_at=datetime.fromtimestamp(payload["exp"], UTC),
        )

    @staticmethod
    def new_refresh_token_value() -> str:
        """Random opaque refresh token: 64 bytes from the OS CSPRNG, URL-safe base64 (cookie-safe, no padding)."""
        return secrets.token_urlsafe(REFRESH_TOKEN_BYTES)

    def refresh_token_expiry(self, now: datetime | None = None) -> datetime:
        return (now or datetime.now(UTC)) + self.config.refresh_token_lifetime
