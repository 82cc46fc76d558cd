"""Signed token encoding and stateless validation (PyJWT)."""

import enum
import logging
import uuid
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Any

import jwt
from jwt.exceptions import PyJWTError

from tokenvault.core.config import Settings
from tokenvault.services.errors import InvalidSignatureError, TokenExpiredError, WrongKindError

logger = logging.getLogger(__name__)


class TokenKind(str, enum.Enum):
    ACCESS = "access"
    REFRESH = "refresh"


@dataclass(frozen=True)
class AccessClaims:
    """Claims of a validated access token. Never persisted."""

    owner_id: uuid.UUID
    role: str
    token_id: str
    issued_at: datetime
    expires_at: datetime
    kind: TokenKind = TokenKind.ACCESS


@dataclass(frozen=True)
class RefreshClaims:
    owner_id: uuid.UUID
    token_id: str
    issued_at: datetime
    expires_at: datetime
    kind: TokenKind = TokenKind.REFRESH


@dataclass(frozen=True)
class EncodedToken:
    token: str
    token_id: str
    issued_at: datetime
    expires_at: datetime


class TokenCodec:
    """Encodes and decodes HS256 JWTs.

    Access and refresh tokens are signed with separate keys, and carry a
    ``type`` claim so one kind can never be accepted in place of the other.
    Decoding depends only on the token and the keys; it never reads any
    persisted state.
    """

    def __init__(self, access_secret: str, refresh_secret: str, algorithm: str = "HS256"):
        self._secrets = {
            TokenKind.ACCESS: access_secret,
            TokenKind.REFRESH: refresh_secret,
        }
        self.algorithm = algorithm

    @classmethod
    def from_settings(cls, settings: Settings) -> "TokenCodec":
        return cls(
            access_secret=settings.effective_jwt_secret_key,
            refresh_secret=settings.effective_jwt_refresh_secret_key,
            algorithm=settings.jwt_algorithm,
        )

    def encode(
        self,
        claims: dict[str, Any],
        kind: TokenKind,
        ttl: timedelta,
        now: datetime | None = None,
    ) -> EncodedToken:
        """Sign ``claims`` as a token of ``kind`` valid for ``ttl``.

        ``claims`` must contain ``sub`` and ``jti``; ``iat``, ``exp`` and
        ``type`` are set here.
        """
        issued_at = (now or datetime.now(UTC)).replace(microsecond=0)
        expires_at = issued_at + ttl
        payload = {
            **claims,
            "sub": str(claims["sub"]),
            "iat": issued_at,
            "exp": expires_at,
            "type": kind.value,
        }
        token = jwt.encode(payload, self._secrets[kind], algorithm=self.algorithm)
        # PyJWT 2.x returns str; older type stubs may declare bytes
        return EncodedToken(
            token=str(token),
            token_id=str(claims["jti"]),
            issued_at=issued_at,
            expires_at=expires_at,
        )

    def decode(self, token: str, expected_kind: TokenKind) -> AccessClaims | RefreshClaims:
        """Validate a token and return its claims.

        Raises:
            InvalidSignatureError: bad signature, malformed token or missing claims
            TokenExpiredError: expiry is in the past
            WrongKindError: token is of the other kind
        """
        payload = self._verify(token, expected_kind)

        kind = payload.get("type")
        if kind != expected_kind.value:
            raise WrongKindError(f"Expected a {expected_kind.value} token")

        try:
            owner_id = uuid.UUID(str(payload["sub"]))
            token_id = str(payload["jti"])
            issued_at = datetime.fromtimestamp(int(payload["iat"]), UTC)
            expires_at = datetime.fromtimestamp(int(payload["exp"]), UTC)
        except (KeyError, TypeError, ValueError) as e:
            raise InvalidSignatureError("Token is missing required claims") from e

        if expected_kind is TokenKind.ACCESS:
            role = payload.get("role")
            if not isinstance(role, str) or not role:
                raise InvalidSignatureError("Token is missing required claims")
            return AccessClaims(
                owner_id=owner_id,
                role=role,
                token_id=token_id,
                issued_at=issued_at,
                expires_at=expires_at,
            )
        return RefreshClaims(
            owner_id=owner_id,
            token_id=token_id,
            issued_at=issued_at,
            expires_at=expires_at,
        )

    def decode_access(self, token: str) -> AccessClaims:
        return self.decode(token, TokenKind.ACCESS)  # type: ignore[return-value]

    def decode_refresh(self, token: str) -> RefreshClaims:
        return self.decode(token, TokenKind.REFRESH)  # type: ignore[return-value]

    def _verify(self, token: str, expected_kind: TokenKind) -> dict[str, Any]:
        try:
            return jwt.decode(
                token,
                self._secrets[expected_kind],
                algorithms=[self.algorithm],
                options={"require": ["exp", "iat", "sub", "jti"]},
            )
        except jwt.ExpiredSignatureError as e:
            raise TokenExpiredError() from e
        except jwt.InvalidSignatureError as e:
            # With distinct keys a token of the other kind fails here first
            if self._peek_kind(token) not in (None, expected_kind.value):
                raise WrongKindError(f"Expected a {expected_kind.value} token") from e
            raise InvalidSignatureError() from e
        except PyJWTError as e:
            raise InvalidSignatureError(f"Invalid token: {e}") from e

    def _peek_kind(self, token: str) -> str | None:
        """Read the type claim of a token that failed verification with the expected key."""
        for kind in (TokenKind.ACCESS, TokenKind.REFRESH):
            try:
                payload = jwt.decode(
                    token,
                    self._secrets[kind],
                    algorithms=[self.algorithm],
                    options={"verify_exp": False},
                )
            except PyJWTError:
                continue
            return payload.get("type")
        return None
