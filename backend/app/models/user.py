"""User model - identity records.

Owned by the user directory (UserRepository). The credential and token
flows only touch ``status``, ``password_hash`` and
``token_invalidated_before``.
"""

import uuid
from datetime import datetime
from enum import Enum

from sqlalchemy import CheckConstraint, Index, String, text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from app.models.base import Base, SoftDeleteMixin, TimestampMixin

_DEFAULT_UUID = text("gen_random_uuid()")


class UserStatus(str, Enum):
    """Account lifecycle status.

    inactive -> active happens once, through the activation flow.
    """

    INACTIVE = "inactive"
    ACTIVE = "active"


class User(Base, TimestampMixin, SoftDeleteMixin):
    """Registered account.

    Attributes:
        id: UUID primary key.
        email: Unique email address (stored lowercase).
        name: Display name.
        status: "inactive" until the activation link is redeemed.
        password_hash: bcrypt hash. Never returned from the API.
        token_invalidated_before: Session tokens issued before this are rejected.
        deleted_at: Soft delete marker (from SoftDeleteMixin).
        created_at: Account creation timestamp (from TimestampMixin).
        updated_at: Last modification timestamp (from TimestampMixin).
    """

    __tablename__ = "users"
    __table_args__ = (
        CheckConstraint(
            "status IN ('inactive', 'active')",
            name="ck_users_status",
        ),
        Index("idx_users_email_lower", text("lower(email)"), unique=True),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        server_default=_DEFAULT_UUID,
    )
    email: Mapped[str] = mapped_column(
        String(255),
        unique=True,
        nullable=False,
    )
    name: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        server_default="",
    )
    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        server_default=UserStatus.INACTIVE.value,
        default=UserStatus.INACTIVE.value,
    )
    password_hash: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
    )
    token_invalidated_before: Mapped[datetime | None] = mapped_column(
        nullable=True,
    )

    @property
    def is_active(self) -> bool:
        """Whether the account has been activated."""
        return self.status == UserStatus.ACTIVE.value
