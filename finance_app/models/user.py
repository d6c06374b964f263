"""ORM model for application users."""

import uuid

from sqlalchemy import JSON, Boolean, Column, String, Uuid
from sqlalchemy.dialects.postgresql import JSONB

from finance_app.models.base import Base, UTCDateTime, utcnow

DEFAULT_USER_SETTINGS = {"currency": "RUB", "language": "ru", "timezone": "UTC"}


class User(Base):
    """
    Account that owns financial data and authenticates with email + password.

    Users are never deleted: removal clears is_active. Roles live in user_roles
    and are looked up by id (no ORM relationship).
    """

    __tablename__ = "users"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    login = Column(String(255), nullable=False)
    email = Column(String(255), nullable=False, unique=True, index=True)
    password_hash = Column(String(255), nullable=False)
    full_name = Column(String(255), nullable=False, default="")
    phone = Column(String(50), nullable=False, default="")
    avatar_url = Column(String(1024), nullable=False, default="")
    is_active = Column(Boolean, nullable=False, default=True)
    is_verified = Column(Boolean, nullable=False, default=False)
    settings = Column(
        JSON().with_variant(JSONB(), "postgresql"),
        nullable=False,
        default=lambda: dict(DEFAULT_USER_SETTINGS),
    )
    created_at = Column(UTCDateTime, nullable=False, default=utcnow)
    updated_at = Column(UTCDateTime, nullable=False, default=utcnow, onupdate=utcnow)
    last_login_at = Column(UTCDateTime, nullable=True)
