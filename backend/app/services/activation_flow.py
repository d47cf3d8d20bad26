"""Account activation flow.

inactive --(send)--> token issued --(redeem within TTL)--> active

Issuance is committed before the email goes out, so no connection is held
across the email call. If delivery fails, the token stays valid and a
resend replaces it.

Redemption consumes the token and flips the status in one transaction. If
anything fails before the commit, the whole unit rolls back and the token
can be redeemed again.
"""

import logging

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.email import Mailer
from app.core.errors import (
    AccountAlreadyActiveError,
    NotFoundError,
    RateLimitedError,
    TokenInvalidError,
)
from app.models.user import UserStatus
from app.repositories.ephemeral_token_repository import activation_tokens
from app.repositories.user_repository import UserRepository
from app.schemas.identity import IdentitySafe
from app.services.account_protocols import TokenStore, UserDirectory, UserLike

logger = logging.getLogger(__name__)


class ActivationFlow:
    """Sends activation links and redeems activation tokens.

    Args:
        mailer: Outbound email collaborator.
        users: User directory. Defaults to UserRepository.
        tokens: Activation token store. Defaults to the activation table.
    """

    def __init__(
        self,
        *,
        mailer: Mailer,
        users: UserDirectory = UserRepository,  # type: ignore[assignment]
        tokens: TokenStore = activation_tokens,
    ) -> None:
        self._mailer = mailer
        self._users = users
        self._tokens = tokens

    async def send(self, db: AsyncSession, email: str) -> None:
        """Send an activation email unless one is already pending.

        Args:
            db: Async database session.
            email: Account email (any case).

        Raises:
            NotFoundError: No live account has this email.
            AccountAlreadyActiveError: The account is already active.
            RateLimitedError: An unexpired, unused activation token exists.
            EmailDeliveryError: The email could not be sent (token kept).
        """
        user = await self._find_pending(db, email)
        if await self._tokens.has_active_token(db, user.id):
            logger.info("Activation send rejected for user %s: token pending", user.id)
            raise RateLimitedError(
                "An activation email was already sent. "
                "Please check your inbox or request a new link later."
            )
        await self._issue_and_dispatch(db, user)

    async def resend(self, db: AsyncSession, email: str) -> None:
        """Replace any pending activation token and email the new one.

        Raises:
            NotFoundError: No live account has this email.
            AccountAlreadyActiveError: The account is already active.
            EmailDeliveryError: The email could not be sent (token kept).
        """
        user = await self._find_pending(db, email)
        await self._issue_and_dispatch(db, user)

    async def send_to_identity(self, db: AsyncSession, user: UserLike) -> None:
        """Issue and email an activation token for a just-created account.

        Commits the session, so the pending account row is persisted along
        with its token.

        Raises:
            EmailDeliveryError: The email could not be sent (token kept).
        """
        await self._issue_and_dispatch(db, user)

    async def redeem(self, db: AsyncSession, token: str) -> IdentitySafe:
        """Activate the account that owns ``token``.

        Args:
            db: Async database session.
            token: Plain activation token from the email link.

        Returns:
            The activated identity.

        Raises:
            TokenInvalidError: Token missing, expired, or already used.
        """
        try:
            record = await self._tokens.consume(db, token)
            if record is None:
                raise TokenInvalidError()

            user = await self._users.update_status(db, record.user_id, UserStatus.ACTIVE)
            if user is None:
                raise TokenInvalidError()

            identity = IdentitySafe.model_validate(user)
            await db.commit()
        except Exception:
            await db.rollback()
            raise

        logger.info("Activated user %s", identity.id)
        return identity

    async def _find_pending(self, db: AsyncSession, email: str) -> UserLike:
        user = await self._users.get_by_email(db, email)
        if user is None or user.deleted_at is not None:
            raise NotFoundError("User")
        if user.is_active:
            raise AccountAlreadyActiveError()
        return user

    async def _issue_and_dispatch(self, db: AsyncSession, user: UserLike) -> None:
        user_id, email = user.id, user.email
        plain = await self._tokens.issue(db, user_id=user_id, email=email)
        await db.commit()
        logger.info("Activation token issued for user %s", user_id)
        await self._mailer.send_activation_email(email, plain)
