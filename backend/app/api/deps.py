"""Shared dependencies for API endpoints.

Services are built per request from their collaborators. Tests replace any
of the providers below through ``app.dependency_overrides``.

WHY DEPENDENCY INJECTION:
- Consistent auth across all endpoints
- Collaborators (directory, token stores, mailer) swap out in tests
- Testable without touching module state
"""

from typing import Annotated

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.auth import SessionTokenCodec, session_token_from_request
from app.core.database import get_db
from app.core.email import Mailer, ResendMailer
from app.core.errors import UnauthorizedError
from app.core.passwords import PasswordHasher
from app.repositories.user_repository import UserRepository
from app.schemas.identity import IdentitySafe
from app.services.account_protocols import UserDirectory
from app.services.activation_flow import ActivationFlow
from app.services.credential_verifier import CredentialVerifier
from app.services.password_reset_flow import PasswordResetFlow
from app.services.session_validator import SessionValidator

DbSession = Annotated[AsyncSession, Depends(get_db)]


# =============================================================================
# Collaborators
# =============================================================================


def get_user_directory() -> UserDirectory:
    """User directory used by routes that read or write users directly."""
    return UserRepository  # type: ignore[return-value]


def get_password_hasher() -> PasswordHasher:
    """bcrypt hasher with the configured cost factor."""
    return PasswordHasher.from_settings()


def get_session_codec() -> SessionTokenCodec:
    """Session token codec bound to the configured secret."""
    return SessionTokenCodec.from_settings()


def get_mailer() -> Mailer:
    """Transactional email sender."""
    return ResendMailer.from_settings()


Users = Annotated[UserDirectory, Depends(get_user_directory)]
Hasher = Annotated[PasswordHasher, Depends(get_password_hasher)]
Codec = Annotated[SessionTokenCodec, Depends(get_session_codec)]
MailerDep = Annotated[Mailer, Depends(get_mailer)]


# =============================================================================
# Services
# =============================================================================


def get_credential_verifier(
    users: Users, hasher: Hasher, codec: Codec
) -> CredentialVerifier:
    """Credential verifier for the login route."""
    return CredentialVerifier(users=users, hasher=hasher, codec=codec)


def get_session_validator(users: Users, codec: Codec) -> SessionValidator:
    """Session validator for protected routes."""
    return SessionValidator(users=users, codec=codec)


def get_activation_flow(users: Users, mailer: MailerDep) -> ActivationFlow:
    """Activation flow bound to the activation token table."""
    return ActivationFlow(mailer=mailer, users=users)


def get_password_reset_flow(
    users: Users, mailer: MailerDep, hasher: Hasher
) -> PasswordResetFlow:
    """Password reset flow bound to the reset token table."""
    return PasswordResetFlow(mailer=mailer, users=users, hasher=hasher)


Verifier = Annotated[CredentialVerifier, Depends(get_credential_verifier)]
Validator = Annotated[SessionValidator, Depends(get_session_validator)]
Activation = Annotated[ActivationFlow, Depends(get_activation_flow)]
PasswordReset = Annotated[PasswordResetFlow, Depends(get_password_reset_flow)]


# =============================================================================
# Authentication
# =============================================================================


async def get_current_identity(
    request: Request,
    db: DbSession,
    validator: Validator,
) -> IdentitySafe:
    """Resolve the identity behind the request's session token.

    Accepts a Bearer header or the httpOnly session cookie.

    Args:
        request: HTTP request (injected by FastAPI).
        db: Database session (injected).
        validator: Session validator (injected).

    Returns:
        Fresh snapshot of the authenticated identity.

    Raises:
        UnauthorizedError: For any auth failure.
    """
    validation = await validator.validate(db, session_token_from_request(request))
    if not validation.is_valid or validation.identity is None:
        # Security: never say WHY auth failed (expired, bad sig, deleted, etc.)
        raise UnauthorizedError()
    return validation.identity


CurrentIdentity = Annotated[IdentitySafe, Depends(get_current_identity)]
