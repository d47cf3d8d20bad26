"""Password hashing, verification, and password policy.

bcrypt with a configurable cost factor. Plaintext passwords are never
logged or included in error messages.
"""

import logging

import bcrypt

from app.core.config import settings
from app.core.errors import WeakPasswordError

logger = logging.getLogger(__name__)

# bcrypt silently ignores input beyond 72 bytes (newer releases reject it)
MAX_PASSWORD_BYTES = 72

# Pre-computed bcrypt hash for timing-safe comparison on user-not-found.
# Security: prevents user enumeration via response time differences.
# Pre-generated to avoid ~300ms bcrypt computation on every app startup.
DUMMY_HASH = b"$2b$12$ZP2PVB8yI35X.mkRqcUPUuSzJA1CNRt4dZ7X3cyrfJu.2S3w.Qen2"


class PasswordHashError(Exception):
    """Hashing or verification failed (malformed hash, bad salt, etc.)."""

    def __init__(self) -> None:
        super().__init__("Password hash failure")


class PasswordHasher:
    """One-way salted hashing and verification of plaintext passwords.

    Args:
        rounds: bcrypt cost factor (log2 of the iteration count).
    """

    def __init__(self, rounds: int = 12) -> None:
        self._rounds = rounds

    @classmethod
    def from_settings(cls) -> "PasswordHasher":
        """Build a hasher with the configured cost factor."""
        return cls(rounds=settings.bcrypt_rounds)

    def hash(self, plaintext: str) -> str:
        """Hash a plaintext password.

        Args:
            plaintext: Password to hash.

        Returns:
            bcrypt hash string (includes salt and cost).

        Raises:
            PasswordHashError: If bcrypt rejects the input.
        """
        try:
            hashed = bcrypt.hashpw(plaintext.encode(), bcrypt.gensalt(rounds=self._rounds))
        except ValueError as exc:
            logger.warning("Password hashing failed")
            raise PasswordHashError() from exc
        return hashed.decode()

    def verify(self, plaintext: str, hashed: str) -> bool:
        """Check a plaintext password against a stored hash.

        Comparison is constant-time (bcrypt.checkpw). A plaintext longer than
        MAX_PASSWORD_BYTES never matches: the policy rejects such passwords
        when they are set. It still costs one full comparison.

        Raises:
            PasswordHashError: If the stored hash is malformed.
        """
        encoded = plaintext.encode()
        too_long = len(encoded) > MAX_PASSWORD_BYTES
        try:
            matched = bcrypt.checkpw(encoded[:MAX_PASSWORD_BYTES], hashed.encode())
        except ValueError as exc:
            logger.warning("Password verification failed: stored hash is malformed")
            raise PasswordHashError() from exc
        return matched and not too_long

    def verify_dummy(self, plaintext: str) -> None:
        """Spend the same time as a real verification, then discard the result.

        Security: called when no stored hash exists so that unknown emails
        and wrong passwords cost the same.
        """
        try:
            bcrypt.checkpw(plaintext.encode()[:MAX_PASSWORD_BYTES], DUMMY_HASH)
        except ValueError:
            logger.debug("Dummy password verification rejected input")


def validate_password_policy(password: str, *, min_length: int | None = None) -> None:
    """Validate a new password against the length policy.

    Args:
        password: Plain-text password to validate.
        min_length: Minimum characters. Defaults to settings.password_min_length.

    Raises:
        WeakPasswordError: If the password is too short or too long.
    """
    minimum = settings.password_min_length if min_length is None else min_length
    if len(password) < minimum:
        raise WeakPasswordError(f"Password must be at least {minimum} characters long")
    if len(password.encode()) > MAX_PASSWORD_BYTES:
        raise WeakPasswordError(
            f"Password must be at most {MAX_PASSWORD_BYTES} bytes long"
        )
