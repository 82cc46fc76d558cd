"""Access token authentication middleware.

Every request to a protected path must carry ``Authorization: Bearer <token>``
holding a valid access token. Validation is purely cryptographic: the token's
signature, expiry and kind are checked by the codec and the session registry
is never consulted, so access tokens stay valid until they expire even if the
session behind them is revoked.
"""

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import JSONResponse
from starlette.types import ASGIApp

from tokenvault.services.errors import (
    AuthenticationError,
    InvalidTokenFormatError,
    MissingTokenError,
    TokenError,
)
from tokenvault.services.token_codec import TokenCodec

logger = logging.getLogger(__name__)

# Paths that never require an access token (exact or segment-boundary match)
PUBLIC_PATHS = [
    "/health",
    "/auth/login",
    "/tokens/refresh",
    "/docs",
    "/redoc",
    "/openapi.json",
    "/metrics",
]


@dataclass(frozen=True)
class AuthIdentity:
    """Identity attached to ``request.state.identity`` for authenticated requests."""

    owner_id: uuid.UUID
    role: str
    token_id: str
    issued_at: datetime
    expires_at: datetime


def is_public_path(path: str, public_paths: list[str] = PUBLIC_PATHS) -> bool:
    if path == "/":
        return True
    return any(path == public or path.startswith(public + "/") for public in public_paths)


def extract_bearer_token(authorization: str | None) -> str:
    """Return the token from an Authorization header value.

    Raises:
        MissingTokenError: header absent
        InvalidTokenFormatError: not ``Bearer <token>`` or the token is empty
    """
    if authorization is None:
        raise MissingTokenError()
    if not authorization.startswith("Bearer "):
        raise InvalidTokenFormatError()
    token = authorization[7:].strip()
    if not token:
        raise InvalidTokenFormatError("Empty access token")
    return token


class AuthGateMiddleware(BaseHTTPMiddleware):
    """Rejects unauthenticated requests to protected paths with 401.

    Response body is ``{"detail": ..., "error": <code>}`` where the code is
    one of MISSING_TOKEN, INVALID_TOKEN_FORMAT, INVALID_TOKEN or EXPIRED_TOKEN.
    """

    def __init__(
        self,
        app: ASGIApp,
        codec: TokenCodec,
        public_paths: list[str] | None = None,
    ) -> None:
        super().__init__(app)
        self.codec = codec
        self.public_paths = public_paths if public_paths is not None else PUBLIC_PATHS

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        path = request.url.path

        # CORS preflight is answered by CORSMiddleware
        if request.method == "OPTIONS":
            return await call_next(request)

        if is_public_path(path, self.public_paths):
            return await call_next(request)

        try:
            token = extract_bearer_token(request.headers.get("Authorization"))
            claims = self.codec.decode_access(token)
        except TokenError as e:
            logger.info(f"Rejected token for {request.method} {path}: {e.error_code}")
            return self._reject(e)
        except AuthenticationError as e:
            logger.info(f"Rejected request for {request.method} {path}: {e.error_code}")
            return self._reject(e)

        request.state.identity = AuthIdentity(
            owner_id=claims.owner_id,
            role=claims.role,
            token_id=claims.token_id,
            issued_at=claims.issued_at,
            expires_at=claims.expires_at,
        )
        return await call_next(request)

    @staticmethod
    def _reject(error: AuthenticationError) -> JSONResponse:
        return JSONResponse(
            status_code=error.status_code,
            content={"detail": error.message, "error": error.error_code},
            headers={"WWW-Authenticate": "Bearer"},
        )
