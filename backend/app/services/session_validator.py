"""Session validation, run on every protected request.

The token only proves who the request claims to be; the identity is
re-fetched on every call so deletions and password resets take effect
immediately.
"""

import logging
import uuid
from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.auth import SessionTokenCodec, SessionTokenError, UnrecognizedClaim
from app.repositories.user_repository import UserRepository
from app.schemas.identity import IdentitySafe
from app.services.account_protocols import UserDirectory

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SessionValidation:
    """Outcome of a session check.

    Attributes:
        is_valid: Whether the request may proceed as ``identity``.
        identity: Fresh snapshot of the identity (valid results only).
    """

    is_valid: bool
    identity: IdentitySafe | None = None


_REJECTED = SessionValidation(is_valid=False)


class SessionValidator:
    """Verifies session tokens against live identity state.

    Args:
        users: User directory. Defaults to UserRepository.
        codec: Session token codec. Defaults to the configured codec.
    """

    def __init__(
        self,
        *,
        users: UserDirectory = UserRepository,  # type: ignore[assignment]
        codec: SessionTokenCodec | None = None,
    ) -> None:
        self._users = users
        self._codec = codec or SessionTokenCodec.from_settings()

    async def validate(
        self, db: AsyncSession, raw_token: str | None
    ) -> SessionValidation:
        """Validate a raw session token.

        Invalid when the token fails to decode, carries no parseable identity
        id, names a missing or soft-deleted identity, or was issued before the
        identity's sessions were invalidated.

        Args:
            db: Async database session.
            raw_token: Encoded session token, or None if the request had none.

        Returns:
            SessionValidation with the current identity snapshot when valid.
        """
        if not raw_token:
            return _REJECTED

        try:
            claim = self._codec.decode(raw_token)
        except SessionTokenError as exc:
            logger.debug("Session token rejected: %s", type(exc).__name__)
            return _REJECTED

        if isinstance(claim.shape, UnrecognizedClaim) or claim.identity_id is None:
            logger.debug("Session token rejected: no identity claim")
            return _REJECTED

        try:
            user_id = uuid.UUID(claim.identity_id)
        except ValueError:
            logger.debug("Session token rejected: identity id is not a UUID")
            return _REJECTED

        user = await self._users.get_by_id(db, user_id)
        if user is None or user.deleted_at is not None:
            logger.info("Session rejected: user %s missing or deleted", user_id)
            return _REJECTED

        cutoff = user.token_invalidated_before
        if cutoff is not None and (claim.issued_at is None or claim.issued_at < cutoff):
            logger.info("Session rejected: token for user %s predates cutoff", user_id)
            return _REJECTED

        return SessionValidation(is_valid=True, identity=IdentitySafe.model_validate(user))
