"""Authentication endpoints for password-based auth.

register, login, logout and session endpoints.

Security considerations:
- login: constant-time comparison via the dummy hash prevents user
  enumeration; unknown email and wrong password share one 401 response
- login: inactive accounts get 403 USER_INACTIVE only after the password
  matched
- register: password policy, bcrypt, email uniqueness, activation email
"""

import logging

from fastapi import APIRouter, Request, Response
from pydantic import BaseModel, ConfigDict, EmailStr, Field
from sqlalchemy.exc import IntegrityError

from app.api.deps import (
    Activation,
    Codec,
    CurrentIdentity,
    DbSession,
    Hasher,
    Users,
    Verifier,
)
from app.core.auth import clear_auth_cookie, set_auth_cookie
from app.core.config import settings
from app.core.errors import (
    AccountInactiveError,
    ConflictError,
    EmailDeliveryError,
    UnauthorizedError,
)
from app.core.passwords import validate_password_policy
from app.core.rate_limiting import limiter
from app.core.responses import DataResponse
from app.schemas.identity import IdentitySafe

logger = logging.getLogger(__name__)

router = APIRouter()


# ===================================================================
# Request models
# ===================================================================


class LoginRequest(BaseModel):
    """Request body for POST /auth/login."""

    model_config = ConfigDict(extra="forbid")

    email: EmailStr
    password: str = Field(min_length=1, max_length=128)


class RegisterRequest(BaseModel):
    """Request body for POST /auth/register."""

    model_config = ConfigDict(extra="forbid")

    email: EmailStr
    password: str = Field(min_length=1, max_length=128)
    name: str = Field(default="", max_length=255)


def _email_conflict() -> ConflictError:
    return ConflictError(
        code="EMAIL_ALREADY_EXISTS",
        message="An account with this email already exists",
    )


# ===================================================================
# POST /auth/register
# ===================================================================


@router.post("/register", status_code=201)
@limiter.limit(lambda: settings.rate_limit_token_email)
async def register(
    request: Request,  # noqa: ARG001 - required by @limiter.limit()
    body: RegisterRequest,
    db: DbSession,
    users: Users,
    hasher: Hasher,
    activation: Activation,
) -> DataResponse[dict]:
    """Create an inactive account and email its activation link.

    The account is created even if the activation email cannot be sent;
    ``activation_email_sent`` tells the client to offer a resend.

    Rate limit: rate_limit_token_email per IP.
    """
    validate_password_policy(body.password)

    if await users.get_by_email(db, body.email) is not None:
        raise _email_conflict()

    password_hash = hasher.hash(body.password)

    try:
        user = await users.create(
            db,
            email=body.email,
            name=body.name.strip(),
            password_hash=password_hash,
        )
    except IntegrityError as exc:
        await db.rollback()
        raise _email_conflict() from exc

    identity = IdentitySafe.model_validate(user)

    email_sent = True
    try:
        await activation.send_to_identity(db, user)
    except EmailDeliveryError:
        email_sent = False
        logger.warning("Activation email for new user %s was not delivered", identity.id)

    logger.info("Registered user %s", identity.id)
    return DataResponse(
        data={"user": identity.to_response(), "activation_email_sent": email_sent}
    )


# ===================================================================
# POST /auth/login
# ===================================================================


@router.post("/login")
@limiter.limit(lambda: settings.rate_limit_login)
async def login(
    request: Request,  # noqa: ARG001 - required by @limiter.limit()
    body: LoginRequest,
    response: Response,
    db: DbSession,
    verifier: Verifier,
    codec: Codec,
) -> DataResponse[dict]:
    """Verify email + password and issue a session token.

    The token is returned in the body (for Bearer use) and set as an
    httpOnly cookie.

    Rate limit: rate_limit_login per IP.
    """
    result = await verifier.authenticate(db, body.email, body.password)
    if not result.is_valid or result.identity is None or result.token is None:
        raise UnauthorizedError("Invalid email or password")

    if not result.identity.is_active:
        raise AccountInactiveError()

    set_auth_cookie(response, result.token, max_age=codec.default_ttl)
    return DataResponse(
        data={"token": result.token, "user": result.identity.to_response()}
    )


# ===================================================================
# POST /auth/logout
# ===================================================================


@router.post("/logout")
async def logout(response: Response) -> DataResponse[dict]:
    """Clear the session cookie.

    No auth required; clears the cookie regardless.
    """
    clear_auth_cookie(response)
    return DataResponse(data={"message": "Signed out"})


# ===================================================================
# GET /auth/session
# ===================================================================


@router.get("/session")
async def get_session(identity: CurrentIdentity) -> DataResponse[dict]:
    """Return the identity behind the current session.

    Returns 401 if the session token is missing or no longer valid.
    """
    return DataResponse(data=identity.to_response())
