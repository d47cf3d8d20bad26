"""Ephemeral token models - activation and password reset tokens.

Single-use, time-limited tokens, one table per purpose. The plain token is
only ever sent by email; the table stores its SHA-256 hash as primary key.

A partial unique index on ``user_id WHERE used_at IS NULL`` guarantees at
most one unused token per (identity, purpose) at the storage layer.
"""

import uuid
from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Index, String, func, text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from app.models.base import Base

_UNUSED = text("used_at IS NULL")


class EphemeralTokenMixin:
    """Columns shared by every purpose-scoped token table.

    Attributes:
        token_hash: SHA-256 hex digest of the plain token (primary key).
        user_id: Owning identity.
        email: Email address the token was sent to (snapshot at issuance).
        expires_at: Absolute expiry.
        used_at: When the token was redeemed. NULL = unused.
        created_at: Issuance timestamp.
    """

    token_hash: Mapped[str] = mapped_column(
        String(64),
        primary_key=True,
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )
    email: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )
    expires_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
    )
    used_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )


class ActivationToken(Base, EphemeralTokenMixin):
    """Account activation token (24h default TTL)."""

    __tablename__ = "activation_tokens"
    __table_args__ = (
        Index(
            "uq_activation_tokens_user_unused",
            "user_id",
            unique=True,
            postgresql_where=_UNUSED,
        ),
        Index("ix_activation_tokens_expires_at", "expires_at"),
    )


class PasswordResetToken(Base, EphemeralTokenMixin):
    """Password reset token (1h default TTL)."""

    __tablename__ = "password_reset_tokens"
    __table_args__ = (
        Index(
            "uq_password_reset_tokens_user_unused",
            "user_id",
            unique=True,
            postgresql_where=_UNUSED,
        ),
        Index("ix_password_reset_tokens_expires_at", "expires_at"),
    )
