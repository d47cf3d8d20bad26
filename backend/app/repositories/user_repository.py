"""Repository for User CRUD operations (the user directory).

Provides database access for the users table. Partial updates go through
UserUpdate, a closed options record: only fields explicitly set on it are
written, and there is no way to name a column outside that set.
"""

import uuid
from dataclasses import dataclass, fields
from datetime import UTC, datetime
from typing import Final

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.user import User, UserStatus


class _Unset:
    """Marker type for UserUpdate fields that were not provided."""

    def __repr__(self) -> str:
        return "UNSET"

    def __bool__(self) -> bool:
        return False


UNSET: Final = _Unset()


@dataclass(frozen=True)
class UserUpdate:
    """Partial update for a user row.

    Each field defaults to UNSET. Only fields given a value (None included,
    where the column is nullable) produce an assignment.

    Security: 'id', 'email', 'created_at' and 'updated_at' are deliberately
    absent. Email changes require a dedicated re-verification flow.
    """

    name: str | _Unset = UNSET
    status: UserStatus | _Unset = UNSET
    password_hash: str | _Unset = UNSET
    token_invalidated_before: datetime | None | _Unset = UNSET
    deleted_at: datetime | None | _Unset = UNSET

    def assignments(self) -> dict[str, object]:
        """Column assignments for the fields that were provided."""
        values: dict[str, object] = {}
        for f in fields(self):
            value = getattr(self, f.name)
            if value is UNSET:
                continue
            values[f.name] = value.value if isinstance(value, UserStatus) else value
        return values

    @property
    def is_empty(self) -> bool:
        """True when no field was provided."""
        return not self.assignments()


class UserRepository:
    """Stateless repository for User table operations.

    All methods are static: no instance state. Pass an AsyncSession
    for every call so the caller controls transaction boundaries.
    """

    @staticmethod
    async def get_by_id(db: AsyncSession, user_id: uuid.UUID) -> User | None:
        """Fetch a user by primary key.

        Args:
            db: Async database session.
            user_id: UUID primary key.

        Returns:
            User if found (including soft-deleted users), None otherwise.
        """
        return await db.get(User, user_id, populate_existing=True)

    @staticmethod
    async def get_by_email(db: AsyncSession, email: str) -> User | None:
        """Fetch a user by email address (case-insensitive).

        Args:
            db: Async database session.
            email: Email address to look up.

        Returns:
            User if found, None otherwise.
        """
        stmt = select(User).where(func.lower(User.email) == email.strip().lower())
        result = await db.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def create(
        db: AsyncSession,
        *,
        email: str,
        name: str = "",
        password_hash: str | None = None,
        status: UserStatus = UserStatus.INACTIVE,
    ) -> User:
        """Create a new user.

        Email is normalized to lowercase before storage.

        Args:
            db: Async database session.
            email: User email address.
            name: Display name.
            password_hash: bcrypt hash.
            status: Initial lifecycle status (inactive until activation).

        Returns:
            Created User with database-generated fields populated.

        Raises:
            sqlalchemy.exc.IntegrityError: If email already exists.
        """
        user = User(
            email=email.strip().lower(),
            name=name,
            password_hash=password_hash,
            status=status.value,
        )
        db.add(user)
        await db.flush()
        await db.refresh(user)
        return user

    @staticmethod
    async def update(
        db: AsyncSession,
        user_id: uuid.UUID,
        changes: UserUpdate,
    ) -> User | None:
        """Apply a partial update.

        Args:
            db: Async database session.
            user_id: UUID of the user to update.
            changes: Fields to update. Unset fields are left untouched.

        Returns:
            Updated User if found, None if user does not exist.

        Raises:
            ValueError: If no field was provided.
        """
        values = changes.assignments()
        if not values:
            msg = "No fields to update"
            raise ValueError(msg)

        user = await db.get(User, user_id)
        if user is None:
            return None

        for field, value in values.items():
            setattr(user, field, value)

        await db.flush()
        await db.refresh(user)
        return user

    @staticmethod
    async def update_status(
        db: AsyncSession, user_id: uuid.UUID, status: UserStatus
    ) -> User | None:
        """Set the lifecycle status of a user.

        Returns:
            Updated User if found, None if user does not exist.
        """
        return await UserRepository.update(db, user_id, UserUpdate(status=status))

    @staticmethod
    async def update_password_hash(
        db: AsyncSession,
        user_id: uuid.UUID,
        password_hash: str,
        *,
        invalidate_sessions: bool = True,
    ) -> User | None:
        """Replace a user's password hash.

        Args:
            db: Async database session.
            user_id: UUID of the user.
            password_hash: New bcrypt hash.
            invalidate_sessions: Also reject every session token issued
                before now.

        Returns:
            Updated User if found, None if user does not exist.
        """
        changes = UserUpdate(password_hash=password_hash)
        if invalidate_sessions:
            # Microsecond precision, compared against the iat_us claim
            changes = UserUpdate(
                password_hash=password_hash,
                token_invalidated_before=datetime.now(UTC),
            )
        return await UserRepository.update(db, user_id, changes)

    @staticmethod
    async def soft_delete(db: AsyncSession, user_id: uuid.UUID) -> User | None:
        """Mark a user as deleted while keeping the row for audit.

        Returns:
            Updated User if found, None if user does not exist.
        """
        return await UserRepository.update(
            db, user_id, UserUpdate(deleted_at=datetime.now(UTC))
        )
