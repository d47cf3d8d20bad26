"""Collaborator protocols for the credential and token services.

The services depend on these shapes, not on the concrete repositories, so
tests can substitute in-memory fakes through constructor arguments.
UserRepository (passed as the class itself, its methods are static) and
EphemeralTokenStore satisfy them in production.
"""

import uuid
from datetime import datetime, timedelta
from typing import Protocol

from sqlalchemy.ext.asyncio import AsyncSession

from app.models.user import UserStatus
from app.repositories.ephemeral_token_repository import (
    EphemeralTokenRecord,
    TokenPurpose,
)
from app.repositories.user_repository import UserUpdate

# =============================================================================
# User directory
# =============================================================================


class UserLike(Protocol):
    """Attributes the services read from a user record."""

    id: uuid.UUID
    email: str
    name: str
    status: str
    password_hash: str | None
    token_invalidated_before: datetime | None
    deleted_at: datetime | None
    created_at: datetime
    updated_at: datetime

    @property
    def is_active(self) -> bool: ...


class UserDirectory(Protocol):
    """Lookup and mutation of user records."""

    async def get_by_id(
        self, db: AsyncSession, user_id: uuid.UUID
    ) -> UserLike | None: ...

    async def get_by_email(self, db: AsyncSession, email: str) -> UserLike | None: ...

    async def create(
        self,
        db: AsyncSession,
        *,
        email: str,
        name: str = "",
        password_hash: str | None = None,
        status: UserStatus = UserStatus.INACTIVE,
    ) -> UserLike: ...

    async def update(
        self, db: AsyncSession, user_id: uuid.UUID, changes: UserUpdate
    ) -> UserLike | None: ...

    async def update_status(
        self, db: AsyncSession, user_id: uuid.UUID, status: UserStatus
    ) -> UserLike | None: ...

    async def update_password_hash(
        self,
        db: AsyncSession,
        user_id: uuid.UUID,
        password_hash: str,
        *,
        invalidate_sessions: bool = True,
    ) -> UserLike | None: ...


# =============================================================================
# Ephemeral tokens
# =============================================================================


class TokenStore(Protocol):
    """Single-use, expiring tokens for one purpose."""

    @property
    def purpose(self) -> TokenPurpose: ...

    @property
    def ttl(self) -> timedelta: ...

    async def issue(
        self, db: AsyncSession, *, user_id: uuid.UUID, email: str
    ) -> str: ...

    async def validate(
        self, db: AsyncSession, token: str
    ) -> EphemeralTokenRecord | None: ...

    async def consume(
        self, db: AsyncSession, token: str
    ) -> EphemeralTokenRecord | None: ...

    async def mark_used(self, db: AsyncSession, token: str) -> None: ...

    async def has_active_token(self, db: AsyncSession, user_id: uuid.UUID) -> bool: ...

    async def purge_expired(self, db: AsyncSession) -> int: ...
