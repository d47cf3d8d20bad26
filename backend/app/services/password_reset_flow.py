"""Password reset flow.

requested --(redeem within TTL)--> password changed

Requests for unknown or deleted accounts succeed silently so the endpoint
cannot be used to discover which emails are registered. Redemption consumes
the token, stores the new hash and invalidates existing sessions in one
transaction; a failure anywhere before the commit leaves the token
redeemable.
"""

import logging

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.email import Mailer
from app.core.errors import (
    AccountNotActivatedError,
    RateLimitedError,
    TokenInvalidError,
)
from app.core.passwords import PasswordHasher, validate_password_policy
from app.repositories.ephemeral_token_repository import (
    EphemeralTokenRecord,
    password_reset_tokens,
)
from app.repositories.user_repository import UserRepository
from app.services.account_protocols import TokenStore, UserDirectory

logger = logging.getLogger(__name__)


class PasswordResetFlow:
    """Sends password reset links and redeems reset tokens.

    Args:
        mailer: Outbound email collaborator.
        users: User directory. Defaults to UserRepository.
        tokens: Reset token store. Defaults to the password reset table.
        hasher: Password hasher. Defaults to the configured bcrypt hasher.
    """

    def __init__(
        self,
        *,
        mailer: Mailer,
        users: UserDirectory = UserRepository,  # type: ignore[assignment]
        tokens: TokenStore = password_reset_tokens,
        hasher: PasswordHasher | None = None,
    ) -> None:
        self._mailer = mailer
        self._users = users
        self._tokens = tokens
        self._hasher = hasher or PasswordHasher.from_settings()

    async def request(self, db: AsyncSession, email: str) -> None:
        """Email a reset link to an active account.

        Returns normally for unknown emails, exactly as for known ones.

        Args:
            db: Async database session.
            email: Account email (any case).

        Raises:
            AccountNotActivatedError: The account was never activated.
            RateLimitedError: An unexpired, unused reset token exists.
            EmailDeliveryError: The email could not be sent (token kept).
        """
        user = await self._users.get_by_email(db, email)
        if user is None or user.deleted_at is not None:
            logger.info("Password reset requested for unknown email")
            return
        if not user.is_active:
            raise AccountNotActivatedError()
        if await self._tokens.has_active_token(db, user.id):
            logger.info("Password reset rejected for user %s: token pending", user.id)
            raise RateLimitedError(
                "A password reset email was already sent. "
                "Please check your inbox or try again later."
            )

        user_id, address = user.id, user.email
        plain = await self._tokens.issue(db, user_id=user_id, email=address)
        await db.commit()
        logger.info("Password reset token issued for user %s", user_id)
        await self._mailer.send_password_reset_email(address, plain)

    async def verify(self, db: AsyncSession, token: str) -> EphemeralTokenRecord:
        """Check a reset link without consuming it.

        Raises:
            TokenInvalidError: Token missing, expired, or already used.
        """
        record = await self._tokens.validate(db, token)
        if record is None:
            raise TokenInvalidError()
        return record

    async def redeem(self, db: AsyncSession, token: str, new_password: str) -> None:
        """Set a new password for the account that owns ``token``.

        Every session issued before the change is invalidated.

        Args:
            db: Async database session.
            token: Plain reset token from the email link.
            new_password: Replacement plaintext password.

        Raises:
            WeakPasswordError: The new password fails the policy.
            TokenInvalidError: Token missing, expired, or already used.
        """
        validate_password_policy(new_password)

        # Cheap reject before spending a bcrypt round
        if await self._tokens.validate(db, token) is None:
            raise TokenInvalidError()

        password_hash = self._hasher.hash(new_password)

        try:
            record = await self._tokens.consume(db, token)
            if record is None:
                raise TokenInvalidError()

            user = await self._users.update_password_hash(
                db, record.user_id, password_hash
            )
            if user is None:
                raise TokenInvalidError()

            await db.commit()
        except Exception:
            await db.rollback()
            raise

        logger.info("Password reset completed for user %s", record.user_id)
