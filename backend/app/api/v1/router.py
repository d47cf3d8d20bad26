"""API v1 router aggregator.

All v1 endpoint routers are included here (mounted under /api/v1).
"""

from fastapi import APIRouter

from app.api.v1 import auth, auth_tokens, users

router = APIRouter()

# =============================================================================
# Authentication
# =============================================================================

_AUTH_PREFIX = "/auth"

router.include_router(auth.router, prefix=_AUTH_PREFIX, tags=["auth"])
router.include_router(auth_tokens.router, prefix=_AUTH_PREFIX, tags=["auth"])

# =============================================================================
# Users
# =============================================================================

router.include_router(users.router, prefix="/users", tags=["users"])
