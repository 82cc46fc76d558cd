"""Token issuance, refresh rotation and revocation."""

import hashlib
import hmac
import logging
import secrets
import uuid
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

from tokenvault.core.config import Settings
from tokenvault.models.session_record import SessionRecord
from tokenvault.models.user import Role
from tokenvault.services.errors import (
    InvalidTokenError,
    IssuanceError,
    PersistenceError,
    RotationError,
    TokenError,
)
from tokenvault.services.identity import IdentityStore
from tokenvault.services.session_registry import SessionRegistry
from tokenvault.services.token_codec import TokenCodec, TokenKind

logger = logging.getLogger(__name__)


def hash_refresh_token(token: str) -> str:
    """SHA-256 hex digest stored in place of the refresh token."""
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


@dataclass(frozen=True)
class IssuedTokens:
    """An access/refresh pair sharing one token id."""

    access_token: str
    refresh_token: str
    access_expires_at: datetime
    refresh_expires_at: datetime
    token_id: str
    owner_id: uuid.UUID
    role: str


class TokenIssuer:
    """Mints a token pair and persists the session backing the refresh token.

    Tokens are only returned once the session record is stored, so a
    refresh token without a session can never reach a client.
    """

    def __init__(
        self,
        codec: TokenCodec,
        registry: SessionRegistry,
        access_ttl: timedelta = timedelta(minutes=15),
        refresh_ttl: timedelta = timedelta(days=7),
    ):
        self.codec = codec
        self.registry = registry
        self.access_ttl = access_ttl
        self.refresh_ttl = refresh_ttl

    @classmethod
    def from_settings(
        cls, codec: TokenCodec, registry: SessionRegistry, settings: Settings
    ) -> "TokenIssuer":
        return cls(
            codec,
            registry,
            access_ttl=timedelta(minutes=settings.jwt_access_token_expire_minutes),
            refresh_ttl=timedelta(days=settings.jwt_refresh_token_expire_days),
        )

    async def issue(self, owner_id: uuid.UUID, role: Role | str) -> IssuedTokens:
        """Issue a new access/refresh pair for ``owner_id``.

        Raises:
            IssuanceError: the session record could not be persisted
        """
        role_name = role.value if isinstance(role, Role) else str(role)
        token_id = secrets.token_hex(16)
        now = datetime.now(UTC)

        access = self.codec.encode(
            {"sub": owner_id, "jti": token_id, "role": role_name},
            TokenKind.ACCESS,
            self.access_ttl,
            now=now,
        )
        refresh = self.codec.encode(
            {"sub": owner_id, "jti": token_id},
            TokenKind.REFRESH,
            self.refresh_ttl,
            now=now,
        )

        record = SessionRecord(
            id=token_id,
            secret_hash=hash_refresh_token(refresh.token),
            owner_id=owner_id,
            expires_at=refresh.expires_at,
            revoked=False,
            created_at=now,
        )
        try:
            await self.registry.create(record)
        except PersistenceError as e:
            logger.error(f"Could not persist session {token_id} for owner {owner_id}: {e}")
            raise IssuanceError() from e

        logger.info(
            f"Issued session {token_id} for owner {owner_id}",
            extra={"owner_id": str(owner_id), "token_id": token_id},
        )
        return IssuedTokens(
            access_token=access.token,
            refresh_token=refresh.token,
            access_expires_at=access.expires_at,
            refresh_expires_at=refresh.expires_at,
            token_id=token_id,
            owner_id=owner_id,
            role=role_name,
        )


class TokenRotator:
    """Exchanges a refresh token for a new pair, consuming the old one.

    Every rejection surfaces as the same ``InvalidTokenError`` so a caller
    cannot distinguish an unknown session from a revoked, expired or
    replayed one. The atomic ``mark_revoked`` guarantees that of several
    concurrent rotations of one token exactly one succeeds.
    """

    def __init__(
        self,
        codec: TokenCodec,
        registry: SessionRegistry,
        identities: IdentityStore,
        issuer: TokenIssuer,
    ):
        self.codec = codec
        self.registry = registry
        self.identities = identities
        self.issuer = issuer

    async def rotate(self, refresh_token: str) -> IssuedTokens:
        """Validate, consume and replace a refresh token.

        Raises:
            InvalidTokenError: token is unusable for any reason
            RotationError: the old session was consumed but no successor issued
            PersistenceError: the registry is unavailable
        """
        try:
            claims = self.codec.decode_refresh(refresh_token)
        except TokenError as e:
            logger.info(f"Refresh rejected: {e.error_code}")
            raise InvalidTokenError() from e

        record = await self.registry.find_by_id(claims.token_id)
        now = datetime.now(UTC)
        if record is None or not record.is_eligible(now):
            logger.info(f"Refresh rejected: session {claims.token_id} missing, revoked or expired")
            raise InvalidTokenError()

        if record.owner_id != claims.owner_id or not hmac.compare_digest(
            record.secret_hash, hash_refresh_token(refresh_token)
        ):
            logger.warning(f"Refresh rejected: session {record.id} does not match presented token")
            raise InvalidTokenError()

        user = await self.identities.get_by_id(claims.owner_id)
        if user is None or not user.is_active:
            revoked = await self.registry.revoke_all_by_owner(claims.owner_id)
            logger.warning(
                f"Refresh rejected: owner {claims.owner_id} missing or inactive, "
                f"revoked {revoked} sessions"
            )
            raise InvalidTokenError()

        if not await self.registry.mark_revoked(record.id):
            logger.warning(
                f"Refresh token reuse detected for session {record.id}",
                extra={"owner_id": str(record.owner_id), "token_id": record.id},
            )
            raise InvalidTokenError()

        try:
            issued = await self.issuer.issue(user.id, user.role)
        except IssuanceError as e:
            logger.error(f"Session {record.id} consumed but successor could not be issued")
            raise RotationError() from e

        logger.info(f"Rotated session {record.id} -> {issued.token_id}")
        return issued


class RevocationManager:
    """Revokes sessions individually or per owner and lists active ones."""

    def __init__(self, registry: SessionRegistry):
        self.registry = registry

    async def revoke_one(self, token_id: str) -> bool:
        """Revoke one session. Idempotent: unknown or already revoked ids return False."""
        revoked = await self.registry.mark_revoked(token_id)
        if revoked:
            logger.info(f"Revoked session {token_id}")
        return revoked

    async def revoke_all(self, owner_id: uuid.UUID) -> int:
        """Revoke every unrevoked session of ``owner_id``. Returns the count."""
        count = await self.registry.revoke_all_by_owner(owner_id)
        logger.info(f"Revoked {count} sessions for owner {owner_id}")
        return count

    async def active_sessions(self, owner_id: uuid.UUID) -> list[SessionRecord]:
        return await self.registry.list_active(owner_id, datetime.now(UTC))
