"""Email-token endpoints: account activation and password reset.

Security considerations:
- request-password-reset answers identically for known and unknown emails
- invalid, expired and used tokens share one TOKEN_INVALID response
- email-sending routes are rate limited per IP on top of the one-live-token
  rule enforced by the flows
"""

from fastapi import APIRouter, Request, Response
from pydantic import BaseModel, ConfigDict, EmailStr, Field

from app.api.deps import Activation, DbSession, PasswordReset
from app.core.auth import clear_auth_cookie
from app.core.config import settings
from app.core.rate_limiting import limiter
from app.core.responses import DataResponse

router = APIRouter()

# Upper bound on accepted token length (issued tokens are 43 chars)
_MAX_TOKEN_LENGTH = 256

_RESET_REQUESTED_MSG = (
    "If an account exists for this email, a password reset link has been sent."
)


# ===================================================================
# Request models
# ===================================================================


class EmailRequest(BaseModel):
    """Request body for endpoints that email a token."""

    model_config = ConfigDict(extra="forbid")

    email: EmailStr


class ActivateRequest(BaseModel):
    """Request body for POST /auth/activate."""

    model_config = ConfigDict(extra="forbid")

    token: str = Field(min_length=1, max_length=_MAX_TOKEN_LENGTH)


class ResetPasswordRequest(BaseModel):
    """Request body for POST /auth/reset-password."""

    model_config = ConfigDict(extra="forbid")

    token: str = Field(min_length=1, max_length=_MAX_TOKEN_LENGTH)
    new_password: str = Field(min_length=1, max_length=128)


# ===================================================================
# Activation
# ===================================================================


@router.post("/send-activation")
@limiter.limit(lambda: settings.rate_limit_token_email)
async def send_activation(
    request: Request,  # noqa: ARG001 - required by @limiter.limit()
    body: EmailRequest,
    db: DbSession,
    activation: Activation,
) -> DataResponse[dict]:
    """Email an activation link.

    404 for unknown accounts, 400 if already active, 429 while an earlier
    link is still valid.
    """
    await activation.send(db, body.email)
    return DataResponse(data={"message": "Activation email sent"})


@router.post("/resend-activation")
@limiter.limit(lambda: settings.rate_limit_token_email)
async def resend_activation(
    request: Request,  # noqa: ARG001 - required by @limiter.limit()
    body: EmailRequest,
    db: DbSession,
    activation: Activation,
) -> DataResponse[dict]:
    """Email a fresh activation link, replacing any pending one."""
    await activation.resend(db, body.email)
    return DataResponse(data={"message": "Activation email sent"})


@router.post("/activate")
@limiter.limit(lambda: settings.rate_limit_token_redeem)
async def activate(
    request: Request,  # noqa: ARG001 - required by @limiter.limit()
    body: ActivateRequest,
    db: DbSession,
    activation: Activation,
) -> DataResponse[dict]:
    """Redeem an activation token and activate the account."""
    identity = await activation.redeem(db, body.token)
    return DataResponse(
        data={"message": "Account activated", "user": identity.to_response()}
    )


# ===================================================================
# Password reset
# ===================================================================


@router.post("/request-password-reset")
@limiter.limit(lambda: settings.rate_limit_token_email)
async def request_password_reset(
    request: Request,  # noqa: ARG001 - required by @limiter.limit()
    body: EmailRequest,
    db: DbSession,
    password_reset: PasswordReset,
) -> DataResponse[dict]:
    """Email a password reset link.

    Same 200 response whether or not the email is registered. 400 for
    accounts that were never activated, 429 while an earlier link is
    still valid.
    """
    await password_reset.request(db, body.email)
    return DataResponse(data={"message": _RESET_REQUESTED_MSG})


@router.get("/verify-reset-token/{token}")
@limiter.limit(lambda: settings.rate_limit_token_redeem)
async def verify_reset_token(
    request: Request,  # noqa: ARG001 - required by @limiter.limit()
    token: str,
    db: DbSession,
    password_reset: PasswordReset,
) -> DataResponse[dict]:
    """Check a reset link before showing the new-password form.

    Does not consume the token.
    """
    record = await password_reset.verify(db, token)
    return DataResponse(data={"valid": True, "email": record.email})


@router.post("/reset-password")
@limiter.limit(lambda: settings.rate_limit_token_redeem)
async def reset_password(
    request: Request,  # noqa: ARG001 - required by @limiter.limit()
    body: ResetPasswordRequest,
    response: Response,
    db: DbSession,
    password_reset: PasswordReset,
) -> DataResponse[dict]:
    """Redeem a reset token and set a new password.

    Every existing session of the account is invalidated, so the caller's
    cookie is cleared as well.
    """
    await password_reset.redeem(db, body.token, body.new_password)
    clear_auth_cookie(response)
    return DataResponse(data={"message": "Password has been reset"})
