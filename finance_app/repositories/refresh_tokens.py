"""Refresh token persistence: lookup, issuance and atomic revocation."""

import logging
import uuid
from datetime import UTC, datetime

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from finance_app.core.security import TokenIssuer
from finance_app.models import RefreshToken

logger = logging.getLogger(__name__)


class RefreshTokenStore:
    """
    Refresh tokens for one unit of work.

    Revocation is a conditional UPDATE (revoked_at IS NULL ...) whose row count
    tells the caller whether *it* revoked the token, so two concurrent callers
    presenting the same token can never both succeed. The issuer is only needed
    to mint new tokens; lookups and revocation work without one.
    """

    def __init__(self, session: AsyncSession, issuer: TokenIssuer | None = None) -> None:
        self.session = session
        self.issuer = issuer

    async def find(self, token: str) -> RefreshToken | None:
        result = await self.session.execute(
            select(RefreshToken)
            .where(RefreshToken.token == token)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def issue(self, user_id: uuid.UUID, now: datetime | None = None) -> RefreshToken:
        """
        Generate and persist a new refresh token for user_id.

        The unique constraint on token rejects a colliding value; the
        IntegrityError propagates and the surrounding unit of work rolls back.
        """
        if self.issuer is None:
            raise RuntimeError("RefreshTokenStore needs a TokenIssuer to issue tokens")
        now = now or datetime.now(UTC)
        record = RefreshToken(
            user_id=user_id,
            token=self.issuer.new_refresh_token_value(),
            created_at=now,
            expires_at=self.issuer.refresh_token_expiry(now),
        )
        self.session.add(record)
        await self.session.flush()
        return record

    async def revoke(self, token: str, now: datetime | None = None) -> bool:
        """Set revoked_at if the token exists and is not revoked yet. False otherwise."""
        result = await self.session.execute(
            update(RefreshToken)
            .where(RefreshToken.token == token, RefreshToken.revoked_at.is_(None))
            .values(revoked_at=now or datetime.now(UTC))
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def revoke_if_valid(self, token: str, now: datetime | None = None) -> bool:
        """Revoke token only if it is still live (not revoked, not expired)."""
        now = now or datetime.now(UTC)
        result = await self.session.execute(
            update(RefreshToken)
            .where(
                RefreshToken.token == token,
                RefreshToken.revoked_at.is_(None),
                RefreshToken.expires_at > now,
            )
            .values(revoked_at=now)
            .execution_options(synchronize_session=False)
        )
        revoked = result.rowcount == 1
        if not revoked:
            logger.debug("Refresh token was not live at revocation time")
        return revoked

    async def active_for_user(self, user_id: uuid.UUID, now: datetime | None = None) -> list[RefreshToken]:
        """Live (unrevoked, unexpired) tokens of user_id, oldest first."""
        now = now or datetime.now(UTC)
        result = await self.session.execute(
            select(RefreshToken)
            .where(
                RefreshToken.user_id == user_id,
                RefreshToken.revoked_at.is_(None),
                RefreshToken.expires_at > now,
            )
            .order_by(RefreshToken.created_at)
        )
        return list(result.scalars().all())

    async def revoke_all_for_user(self, user_id: uuid.UUID, now: datetime | None = None) -> int:
        """End every live session of user_id. Returns the number of tokens revoked."""
        now = now or datetime.now(UTC)
        revoked = 0
        for record in await self.active_for_user(user_id, now):
            if await self.revoke(record.token, now):
                revoked += 1
        if revoked:
            logger.info("Revoked %s refresh token(s) for user %s", revoked, user_id)
        return revoked

    @staticmethod
    def is_valid(record: RefreshToken, now: datetime | None = None) -> bool:
        return record.revoked_at is None and record.expires_at > (now or datetime.now(UTC))
