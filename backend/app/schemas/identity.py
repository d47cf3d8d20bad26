"""Identity response schemas.

IdentitySafe is the only shape in which a user record leaves the
credential/token core. It deliberately has no password_hash field.
"""

import uuid
from datetime import datetime

from pydantic import BaseModel, ConfigDict


class IdentitySafe(BaseModel):
    """Safe projection of a User (never carries the password hash)."""

    model_config = ConfigDict(from_attributes=True, frozen=True)

    id: uuid.UUID
    email: str
    name: str
    status: str
    deleted_at: datetime | None = None
    created_at: datetime
    updated_at: datetime

    @property
    def is_active(self) -> bool:
        """Whether the account has been activated."""
        return self.status == "active"

    def to_response(self) -> dict:
        """JSON-ready payload for API responses."""
        return self.model_dump(mode="json")
