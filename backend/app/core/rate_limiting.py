"""Rate limiting configuration using slowapi.

Security: Limits brute-force login attempts and email-sending endpoints
(activation and reset emails cost money and can be used to spam inboxes).

Requests carrying a verifiable session token are keyed on its subject
(per-user). Everything else, which is most of the auth surface, falls back
to IP-based keying.

Usage in routers:
    from app.core.rate_limiting import limiter

    @router.post("/login")
    @limiter.limit(lambda: settings.rate_limit_login)
    async def login(request: Request, ...):
        ...
"""

from fastapi import Request, Response
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address
from starlette.responses import JSONResponse

from app.core.auth import SessionTokenCodec, SessionTokenError, session_token_from_request
from app.core.config import settings


def _rate_limit_key_func(request: Request) -> str:
    """Get rate limit key from request.

    Key format:
    - Valid session token: "user:{id}"
    - No/invalid token: "unauth:{ip}"

    Args:
        request: The incoming request.

    Returns:
        Rate limit key string.
    """
    # Note: No revocation check here. Rate limiting only needs the identity
    # claim for keying; full validation happens in the CurrentIdentity
    # dependency.
    token = session_token_from_request(request)
    if token:
        try:
            claim = SessionTokenCodec.from_settings().decode(token)
        except SessionTokenError:
            claim = None
        # Defense-in-depth: only accept ids that look like a UUID (36 chars)
        if claim is not None and claim.identity_id and len(claim.identity_id) <= 36:
            return f"user:{claim.identity_id}"

    return f"unauth:{get_remote_address(request)}"


# Global limiter instance
# Configured with in-memory storage (suitable for single-instance deployment)
# For multi-instance, configure Redis storage via RATELIMIT_STORAGE_URL
limiter = Limiter(
    key_func=_rate_limit_key_func,
    enabled=settings.rate_limit_enabled,
)


def rate_limit_exceeded_handler(
    _request: Request,
    exc: RateLimitExceeded,
) -> Response:
    """Handle rate limit exceeded errors.

    Security: Returns 429 Too Many Requests with standard error envelope.

    Args:
        request: The incoming request.
        exc: The rate limit exception.

    Returns:
        JSONResponse with 429 status and retry-after header.
    """
    # Parse retry-after from exception detail (e.g., "10 per 1 minute")
    # Fallback to 60 seconds if parsing fails
    try:
        retry_after = str(exc.detail.split()[-1])
        int(retry_after.rstrip("s"))
    except (ValueError, AttributeError, IndexError):
        retry_after = "60"

    return JSONResponse(
        status_code=429,
        content={
            "error": {
                "code": "RATE_LIMITED",
                "message": f"Rate limit exceeded: {exc.detail}",
            }
        },
        headers={"Retry-After": retry_after},
    )
