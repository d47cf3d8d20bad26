"""Credential verification (email + password login).

Looks up the identity case-insensitively, checks the password against the
stored bcrypt hash, and on success issues a session token. Nothing is
persisted. Activation status is not checked here: the login route decides
what an inactive identity gets.
"""

import logging
from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.auth import SessionTokenCodec
from app.core.passwords import PasswordHasher
from app.repositories.user_repository import UserRepository
from app.schemas.identity import IdentitySafe
from app.services.account_protocols import UserDirectory

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AuthenticationResult:
    """Outcome of a login attempt.

    Attributes:
        is_valid: True only when the password matched.
        identity: Safe projection of the identity (valid results only).
        token: Session token (valid results only).
    """

    is_valid: bool
    identity: IdentitySafe | None = None
    token: str | None = None


_REJECTED = AuthenticationResult(is_valid=False)


class CredentialVerifier:
    """Checks email/password pairs and issues session tokens.

    Args:
        users: User directory. Defaults to UserRepository.
        hasher: Password hasher. Defaults to the configured bcrypt hasher.
        codec: Session token codec. Defaults to the configured codec.
    """

    def __init__(
        self,
        *,
        users: UserDirectory = UserRepository,  # type: ignore[assignment]
        hasher: PasswordHasher | None = None,
        codec: SessionTokenCodec | None = None,
    ) -> None:
        self._users = users
        self._hasher = hasher or PasswordHasher.from_settings()
        self._codec = codec or SessionTokenCodec.from_settings()

    async def authenticate(
        self, db: AsyncSession, email: str, password: str
    ) -> AuthenticationResult:
        """Verify credentials.

        Security: unknown, deleted, and password-less accounts run a dummy
        bcrypt comparison so every rejection costs the same time.

        Args:
            db: Async database session.
            email: Email address (any case).
            password: Plaintext password.

        Returns:
            AuthenticationResult. On success it carries the identity and a
            session token with {id, email, name} claims.

        Raises:
            PasswordHashError: If the stored hash is malformed.
        """
        user = await self._users.get_by_email(db, email)
        if user is None or user.deleted_at is not None or not user.password_hash:
            self._hasher.verify_dummy(password)
            logger.info("Login rejected: no usable account for the given email")
            return _REJECTED

        if not self._hasher.verify(password, user.password_hash):
            logger.info("Login rejected for user %s: password mismatch", user.id)
            return _REJECTED

        identity = IdentitySafe.model_validate(user)
        token = self._codec.issue(
            identity_id=str(identity.id),
            email=identity.email,
            name=identity.name,
        )
        logger.info("Login succeeded for user %s", identity.id)
        return AuthenticationResult(is_valid=True, identity=identity, token=token)
