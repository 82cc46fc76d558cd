"""Token rotation and session management endpoints."""

import logging
from uuid import UUID

from fastapi import APIRouter, Depends

from tokenvault.api.auth import token_pair_response
from tokenvault.api.deps import (
    ensure_self_or_elevated,
    get_current_identity,
    get_registry,
    get_revocation,
    get_rotator,
    get_settings_dep,
    require_elevated,
)
from tokenvault.core.config import Settings
from tokenvault.middleware.auth_gate import AuthIdentity
from tokenvault.schemas.tokens import (
    DeletedCountResponse,
    MessageResponse,
    RefreshRequest,
    RevokedCountResponse,
    SessionInfo,
    SessionListResponse,
    TokenPairResponse,
)
from tokenvault.services.session_janitor import SessionJanitor
from tokenvault.services.session_registry import SessionRegistry
from tokenvault.services.tokens import RevocationManager, TokenRotator

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/tokens", tags=["tokens"])


@router.post("/refresh", response_model=TokenPairResponse)
async def refresh(
    request: RefreshRequest,
    rotator: TokenRotator = Depends(get_rotator),
) -> TokenPairResponse:
    """Exchange a refresh token for a new pair. The presented token is consumed."""
    tokens = await rotator.rotate(request.refresh_token)
    return token_pair_response(tokens)


@router.post("/logout", response_model=MessageResponse)
async def logout(
    identity: AuthIdentity = Depends(get_current_identity),
    revocation: RevocationManager = Depends(get_revocation),
) -> MessageResponse:
    """Revoke the session the presented access token belongs to.

    The access token itself stays valid until it expires.
    """
    await revocation.revoke_one(identity.token_id)
    return MessageResponse(message="Logged out")


@router.post("/invalidate/{owner_id}", response_model=RevokedCountResponse)
async def invalidate_owner(
    owner_id: UUID,
    identity: AuthIdentity = Depends(get_current_identity),
    settings: Settings = Depends(get_settings_dep),
    revocation: RevocationManager = Depends(get_revocation),
) -> RevokedCountResponse:
    """Revoke every session of an owner (the owner or an administrator)."""
    ensure_self_or_elevated(identity, owner_id, settings)
    revoked = await revocation.revoke_all(owner_id)
    return RevokedCountResponse(revoked_count=revoked)


@router.get("/sessions", response_model=SessionListResponse)
async def list_own_sessions(
    identity: AuthIdentity = Depends(get_current_identity),
    revocation: RevocationManager = Depends(get_revocation),
) -> SessionListResponse:
    """List the caller's active sessions."""
    records = await revocation.active_sessions(identity.owner_id)
    return SessionListResponse(sessions=[SessionInfo.model_validate(r) for r in records])


@router.get("/sessions/{owner_id}", response_model=SessionListResponse)
async def list_sessions(
    owner_id: UUID,
    identity: AuthIdentity = Depends(get_current_identity),
    settings: Settings = Depends(get_settings_dep),
    revocation: RevocationManager = Depends(get_revocation),
) -> SessionListResponse:
    """List active sessions of an owner (the owner or an administrator)."""
    ensure_self_or_elevated(identity, owner_id, settings)
    records = await revocation.active_sessions(owner_id)
    return SessionListResponse(sessions=[SessionInfo.model_validate(r) for r in records])


@router.post("/cleanup", response_model=DeletedCountResponse)
async def cleanup_expired(
    _: AuthIdentity = Depends(require_elevated),
    registry: SessionRegistry = Depends(get_registry),
) -> DeletedCountResponse:
    """Delete expired sessions now instead of waiting for the janitor."""
    deleted = await SessionJanitor.sweep(registry)
    return DeletedCountResponse(deleted_count=deleted)
