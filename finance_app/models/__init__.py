"""SQLAlchemy ORM models."""

from finance_app.models.base import Base
from finance_app.models.refresh_token import RefreshToken
from finance_app.models.role import Role, UserRole
from finance_app.models.user import User

__all__ = ["Base", "RefreshToken", "Role", "User", "UserRole"]
