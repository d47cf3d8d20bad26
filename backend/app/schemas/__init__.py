"""Pydantic request/response schemas for API endpoints."""

from app.schemas.identity import IdentitySafe

__all__ = [
    "IdentitySafe",
]
