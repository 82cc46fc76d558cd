"""Pydantic schemas for token and session API.

Responses are serialized with camelCase keys (``accessToken``,
``revokedCount``); models are still built with snake_case field names.
"""

from datetime import datetime

from pydantic import AliasChoices, BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base for API models whose JSON keys are camelCase."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class TokenPairResponse(CamelModel):
    """Response with a freshly issued access/refresh pair."""

    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    access_expiry: datetime
    refresh_expiry: datetime
    expires_in: int = Field(description="Access token expiry in seconds")


class RefreshRequest(BaseModel):
    """Request to rotate a refresh token."""

    refresh_token: str = Field(
        ...,
        min_length=1,
        validation_alias=AliasChoices("refresh_token", "refreshToken"),
    )


class SessionInfo(CamelModel):
    """An active session. The stored token hash is never exposed."""

    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, from_attributes=True
    )

    id: str
    created_at: datetime
    expires_at: datetime


class SessionListResponse(CamelModel):
    sessions: list[SessionInfo]


class RevokedCountResponse(CamelModel):
    revoked_count: int


class DeletedCountResponse(CamelModel):
    deleted_count: int


class MessageResponse(BaseModel):
    """Simple message response."""

    message: str
