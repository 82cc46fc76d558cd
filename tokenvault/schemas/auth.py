"""Pydantic schemas for authentication API."""

from datetime import datetime
from uuid import UUID

from pydantic import AliasChoices, BaseModel, Field

from tokenvault.schemas.tokens import CamelModel


class LoginRequest(BaseModel):
    """Request for login."""

    identifier: str = Field(
        ...,
        min_length=1,
        max_length=255,
        validation_alias=AliasChoices("identifier", "email"),
        description="Login identifier (email), matched case-insensitively",
    )
    secret: str = Field(
        ...,
        min_length=1,
        max_length=128,
        validation_alias=AliasChoices("secret", "password"),
    )


class ChangePasswordRequest(CamelModel):
    """Request to change the caller's password."""

    current_secret: str = Field(..., min_length=1, max_length=128)
    new_secret: str = Field(
        ...,
        min_length=12,
        max_length=128,
        description="New password (minimum 12 characters)",
    )


class IdentityResponse(CamelModel):
    """The identity carried by the presented access token."""

    owner_id: UUID
    role: str
    token_id: str
    issued_at: datetime
    expires_at: datetime
