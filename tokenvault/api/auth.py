"""Authentication API endpoints."""

import logging
from datetime import UTC, datetime

from fastapi import APIRouter, Depends

from tokenvault.api.deps import get_auth_service, get_current_identity
from tokenvault.middleware.auth_gate import AuthIdentity
from tokenvault.schemas.auth import ChangePasswordRequest, IdentityResponse, LoginRequest
from tokenvault.schemas.tokens import RevokedCountResponse, TokenPairResponse
from tokenvault.services.auth import AuthService
from tokenvault.services.tokens import IssuedTokens

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])


def token_pair_response(tokens: IssuedTokens) -> TokenPairResponse:
    expires_in = int((tokens.access_expires_at - datetime.now(UTC)).total_seconds())
    return TokenPairResponse(
        access_token=tokens.access_token,
        refresh_token=tokens.refresh_token,
        access_expiry=tokens.access_expires_at,
        refresh_expiry=tokens.refresh_expires_at,
        expires_in=max(0, expires_in),
    )


@router.post("/login", response_model=TokenPairResponse)
async def login(
    request: LoginRequest,
    auth_service: AuthService = Depends(get_auth_service),
) -> TokenPairResponse:
    """Authenticate and get a token pair.

    Throttled per client by LoginRateLimitMiddleware.
    """
    _, tokens = await auth_service.login(request.identifier, request.secret)
    return token_pair_response(tokens)


@router.get("/me", response_model=IdentityResponse)
async def get_me(identity: AuthIdentity = Depends(get_current_identity)) -> IdentityResponse:
    """Return the identity carried by the presented access token."""
    return IdentityResponse(
        owner_id=identity.owner_id,
        role=identity.role,
        token_id=identity.token_id,
        issued_at=identity.issued_at,
        expires_at=identity.expires_at,
    )


@router.post("/change-password", response_model=RevokedCountResponse)
async def change_password(
    request: ChangePasswordRequest,
    identity: AuthIdentity = Depends(get_current_identity),
    auth_service: AuthService = Depends(get_auth_service),
) -> RevokedCountResponse:
    """Change the caller's password and revoke all of their sessions."""
    revoked = await auth_service.change_password(
        identity.owner_id,
        current_secret=request.current_secret,
        new_secret=request.new_secret,
    )
    return RevokedCountResponse(revoked_count=revoked)
