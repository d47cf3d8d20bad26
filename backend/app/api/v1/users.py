"""Current-user endpoints.

GET and PATCH /users/me. Both resolve the caller through the session
validator; PATCH only edits the display name.
"""

from fastapi import APIRouter
from pydantic import BaseModel, ConfigDict, Field

from app.api.deps import CurrentIdentity, DbSession, Users
from app.core.errors import UnauthorizedError, ValidationError
from app.core.responses import DataResponse
from app.repositories.user_repository import UserUpdate
from app.schemas.identity import IdentitySafe

router = APIRouter()


class UpdateProfileRequest(BaseModel):
    """Request body for PATCH /users/me."""

    model_config = ConfigDict(extra="forbid")

    name: str = Field(max_length=255)


@router.get("/me")
async def get_me(identity: CurrentIdentity) -> DataResponse[dict]:
    """Return the current user."""
    return DataResponse(data=identity.to_response())


@router.patch("/me")
async def update_me(
    body: UpdateProfileRequest,
    identity: CurrentIdentity,
    db: DbSession,
    users: Users,
) -> DataResponse[dict]:
    """Update the current user's display name."""
    trimmed_name = body.name.strip()
    if not trimmed_name:
        raise ValidationError("Name must not be empty")

    user = await users.update(db, identity.id, UserUpdate(name=trimmed_name))
    if user is None:
        raise UnauthorizedError()
    updated = IdentitySafe.model_validate(user)
    await db.commit()

    return DataResponse(data=updated.to_response())
