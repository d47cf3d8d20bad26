"""Repository for purpose-scoped, single-use, expiring tokens.

One EphemeralTokenStore instance per purpose (activation, password reset),
each bound to its own table and TTL. Plain tokens are returned to the
caller exactly once, at issuance; only their SHA-256 hash is stored.

Concurrency:
- issue(): delete-then-insert inside a SAVEPOINT. The partial unique index
  on unused tokens rejects a concurrent second insert; the loser retries and
  supersedes the winner (last writer wins). Two live tokens never coexist.
- consume(): conditional UPDATE guarded by ``used_at IS NULL`` and
  ``expires_at > now``. Of N concurrent callers exactly one gets the row.
"""

import hashlib
import logging
import secrets
import uuid
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from enum import Enum

from sqlalchemy import delete, insert, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.models.ephemeral_token import (
    ActivationToken,
    EphemeralTokenMixin,
    PasswordResetToken,
)

logger = logging.getLogger(__name__)

# Bytes of entropy in a plain token (URL-safe base64 encoded)
_TOKEN_BYTES = 32

# Issuance attempts before a concurrent-issuance conflict is re-raised
_MAX_ISSUE_ATTEMPTS = 3


class TokenPurpose(str, Enum):
    """Namespace of an ephemeral token: decides table, TTL and redemption."""

    ACTIVATION = "activation"
    PASSWORD_RESET = "password_reset"


@dataclass(frozen=True)
class EphemeralTokenRecord:
    """Snapshot of a stored token row.

    Attributes:
        purpose: Which store the token belongs to.
        token_hash: SHA-256 hex digest of the plain token.
        user_id: Owning identity.
        email: Email the token was sent to.
        expires_at: Absolute expiry.
        used_at: Redemption time, None if unused.
        created_at: Issuance time.
    """

    purpose: TokenPurpose
    token_hash: str
    user_id: uuid.UUID
    email: str
    expires_at: datetime
    used_at: datetime | None
    created_at: datetime

    def is_redeemable(self, now: datetime) -> bool:
        """Unused and not yet expired at ``now``."""
        return self.used_at is None and self.expires_at > now


def hash_token(plain: str) -> str:
    """SHA-256 hex digest used as the stored token key."""
    return hashlib.sha256(plain.encode()).hexdigest()


def generate_token() -> tuple[str, str]:
    """Generate an unguessable token and its SHA-256 hash.

    Returns:
        (plain_token, token_hash): plain for email, hash for DB storage.
    """
    plain = secrets.token_urlsafe(_TOKEN_BYTES)
    return plain, hash_token(plain)


def _utcnow() -> datetime:
    return datetime.now(UTC)


class EphemeralTokenStore:
    """Single-use, expiring tokens for one purpose.

    Args:
        purpose: Token namespace.
        model: ORM model of the purpose's table.
        ttl: Lifetime of newly issued tokens.
    """

    def __init__(
        self,
        purpose: TokenPurpose,
        model: type[EphemeralTokenMixin],
        ttl: timedelta,
    ) -> None:
        self._purpose = purpose
        self._model = model
        self._ttl = ttl

    @property
    def purpose(self) -> TokenPurpose:
        """Token namespace of this store."""
        return self._purpose

    @property
    def ttl(self) -> timedelta:
        """Lifetime of newly issued tokens."""
        return self._ttl

    def _record(self, row: object) -> EphemeralTokenRecord:
        return EphemeralTokenRecord(
            purpose=self._purpose,
            token_hash=row.token_hash,  # type: ignore[attr-defined]
            user_id=row.user_id,  # type: ignore[attr-defined]
            email=row.email,  # type: ignore[attr-defined]
            expires_at=row.expires_at,  # type: ignore[attr-defined]
            used_at=row.used_at,  # type: ignore[attr-defined]
            created_at=row.created_at,  # type: ignore[attr-defined]
        )

    async def issue(
        self,
        db: AsyncSession,
        *,
        user_id: uuid.UUID,
        email: str,
    ) -> str:
        """Issue a new token, superseding any unused token for the user.

        Does not commit; the caller owns the transaction.

        Args:
            db: Async database session.
            user_id: Owning identity.
            email: Email the token will be sent to.

        Returns:
            The plain token (only ever returned here).

        Raises:
            sqlalchemy.exc.IntegrityError: If concurrent issuers kept winning
                for every attempt.
        """
        for attempt in range(1, _MAX_ISSUE_ATTEMPTS + 1):
            try:
                return await self._replace_unused(db, user_id=user_id, email=email)
            except IntegrityError:
                if attempt == _MAX_ISSUE_ATTEMPTS:
                    raise
                logger.info(
                    "Concurrent %s token issuance for user %s, retrying (attempt %d)",
                    self._purpose.value,
                    user_id,
                    attempt,
                )
        raise AssertionError("unreachable")  # pragma: no cover

    async def _replace_unused(
        self,
        db: AsyncSession,
        *,
        user_id: uuid.UUID,
        email: str,
    ) -> str:
        model = self._model
        plain, token_hash = generate_token()
        async with db.begin_nested():
            await db.execute(
                delete(model).where(
                    model.user_id == user_id,
                    model.used_at.is_(None),
                )
            )
            await db.execute(
                insert(model).values(
                    token_hash=token_hash,
                    user_id=user_id,
                    email=email,
                    expires_at=_utcnow() + self._ttl,
                )
            )
        logger.info("Issued %s token for user %s", self._purpose.value, user_id)
        return plain

    async def validate(
        self, db: AsyncSession, token: str
    ) -> EphemeralTokenRecord | None:
        """Look up a token without consuming it.

        Args:
            db: Async database session.
            token: Plain token.

        Returns:
            The record if it exists, is unused, and has not expired as of
            now; None otherwise.
        """
        model = self._model
        result = await db.execute(
            select(
                model.token_hash,
                model.user_id,
                model.email,
                model.expires_at,
                model.used_at,
                model.created_at,
            ).where(model.token_hash == hash_token(token))
        )
        row = result.one_or_none()
        if row is None:
            return None
        record = self._record(row)
        if not record.is_redeemable(_utcnow()):
            return None
        return record

    async def consume(
        self, db: AsyncSession, token: str
    ) -> EphemeralTokenRecord | None:
        """Atomically validate a token and mark it used.

        Does not commit. Rolling back the surrounding transaction makes the
        token redeemable again.

        Args:
            db: Async database session.
            token: Plain token.

        Returns:
            The record (with used_at set) if this call redeemed the token;
            None if it was missing, expired, or already used.
        """
        model = self._model
        now = _utcnow()
        stmt = (
            update(model)
            .where(
                model.token_hash == hash_token(token),
                model.used_at.is_(None),
                model.expires_at > now,
            )
            .values(used_at=now)
            .returning(
                model.token_hash,
                model.user_id,
                model.email,
                model.expires_at,
                model.used_at,
                model.created_at,
            )
            .execution_options(synchronize_session=False)
        )
        result = await db.execute(stmt)
        row = result.one_or_none()
        if row is None:
            return None
        return self._record(row)

    async def mark_used(self, db: AsyncSession, token: str) -> None:
        """Set used_at = now for a token, whatever its current state.

        Args:
            db: Async database session.
            token: Plain token.
        """
        model = self._model
        await db.execute(
            update(model)
            .where(model.token_hash == hash_token(token))
            .values(used_at=_utcnow())
            .execution_options(synchronize_session=False)
        )

    async def has_active_token(self, db: AsyncSession, user_id: uuid.UUID) -> bool:
        """Whether an unused, unexpired token exists for the user.

        Args:
            db: Async database session.
            user_id: Owning identity.
        """
        model = self._model
        result = await db.execute(
            select(model.token_hash)
            .where(
                model.user_id == user_id,
                model.used_at.is_(None),
                model.expires_at > _utcnow(),
            )
            .limit(1)
        )
        return result.scalar_one_or_none() is not None

    async def purge_expired(self, db: AsyncSession) -> int:
        """Delete expired tokens that were never used (periodic cleanup).

        Used tokens are kept for audit.

        Args:
            db: Async database session.

        Returns:
            Number of deleted rows.
        """
        model = self._model
        result = await db.execute(
            delete(model).where(
                model.expires_at < _utcnow(),
                model.used_at.is_(None),
            )
        )
        row_count: int = result.rowcount  # type: ignore[attr-defined]
        return row_count


activation_tokens = EphemeralTokenStore(
    TokenPurpose.ACTIVATION,
    ActivationToken,
    ttl=timedelta(hours=settings.activation_token_ttl_hours),
)

password_reset_tokens = EphemeralTokenStore(
    TokenPurpose.PASSWORD_RESET,
    PasswordResetToken,
    ttl=timedelta(minutes=settings.password_reset_token_ttl_minutes),
)
