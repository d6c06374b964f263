"""Data access for users and refresh tokens."""

from finance_app.repositories.refresh_tokens import RefreshTokenStore
from finance_app.repositories.users import UserRepository

__all__ = ["RefreshTokenStore", "UserRepository"]
