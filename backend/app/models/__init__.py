"""SQLAlchemy ORM models for the account service.

All models are exported from this module for convenient imports:
    from app.models import User, ActivationToken, ...

Models are organized by domain:
- user.py: User, UserStatus
- ephemeral_token.py: ActivationToken, PasswordResetToken (purpose-scoped tables)
"""

from app.models.base import Base, SoftDeleteMixin, TimestampMixin
from app.models.ephemeral_token import (
    ActivationToken,
    EphemeralTokenMixin,
    PasswordResetToken,
)
from app.models.user import User, UserStatus

__all__ = [
    # Base classes
    "Base",
    "SoftDeleteMixin",
    "TimestampMixin",
    # Identity
    "User",
    "UserStatus",
    # Ephemeral tokens
    "ActivationToken",
    "EphemeralTokenMixin",
    "PasswordResetToken",
]
