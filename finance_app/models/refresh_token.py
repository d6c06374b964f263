"""ORM model for persisted refresh tokens."""

import uuid

from sqlalchemy import Column, ForeignKey, String, Uuid

from finance_app.models.base import Base, UTCDateTime, utcnow


class RefreshToken(Base):
    """
    Opaque long-lived credential exchanged for new access tokens.

    Valid while revoked_at is NULL and expires_at is in the future. Rows are
    revoked on logout or rotation and never deleted.
    """

    __tablename__ = "refresh_tokens"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    token = Column(String(128), nullable=False, unique=True, index=True)
    expires_at = Column(UTCDateTime, nullable=False)
    created_at = Column(UTCDateTime, nullable=False, default=utcnow)
    revoked_at = Column(UTCDateTime, nullable=True)
