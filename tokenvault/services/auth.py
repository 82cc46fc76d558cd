"""Login and password change orchestration."""

import logging
import uuid
from datetime import UTC, datetime

from tokenvault.models.user import User
from tokenvault.services.credentials import CredentialVerifier
from tokenvault.services.errors import (
    AccountDisabledError,
    InvalidCredentialsError,
    ValidationError,
    VerificationError,
)
from tokenvault.services.identity import IdentityStore, normalize_identifier
from tokenvault.services.tokens import IssuedTokens, RevocationManager, TokenIssuer

logger = logging.getLogger(__name__)

MIN_SECRET_LENGTH = 12


def password_policy_violations(secret: str) -> list[str]:
    """Return the reasons a new password is too weak (empty when acceptable).

    At least MIN_SECRET_LENGTH characters drawn from at least three of:
    lower-case, upper-case, digits, symbols.
    """
    problems = []
    if len(secret) < MIN_SECRET_LENGTH:
        problems.append(f"must be at least {MIN_SECRET_LENGTH} characters")
    classes = [
        any(c.islower() for c in secret),
        any(c.isupper() for c in secret),
        any(c.isdigit() for c in secret),
        any(not c.isalnum() for c in secret),
    ]
    if sum(classes) < 3:
        problems.append("must mix at least three of lower-case, upper-case, digits and symbols")
    return problems


class AuthService:
    """Service for authenticating users and managing their secrets."""

    def __init__(
        self,
        identities: IdentityStore,
        verifier: CredentialVerifier,
        issuer: TokenIssuer,
        revocation: RevocationManager,
    ):
        self.identities = identities
        self.verifier = verifier
        self.issuer = issuer
        self.revocation = revocation

    async def login(self, identifier: str, secret: str) -> tuple[User, IssuedTokens]:
        """Authenticate a user and issue a token pair.

        Unknown identifiers still pay for a full verification so timing does
        not reveal which identifiers exist. The active flag is checked only
        after the secret matched.

        Raises:
            InvalidCredentialsError: unknown identifier or wrong secret
            AccountDisabledError: secret matched but the user is inactive
            IssuanceError: the session could not be persisted
        """
        email = normalize_identifier(identifier)
        user = await self.identities.get_by_identifier(email)

        if user is None:
            await self.verifier.verify_dummy(secret)
            logger.info("Login failed: unknown identifier")
            raise InvalidCredentialsError()

        try:
            result = await self.verifier.verify(secret, user.password_hash)
        except VerificationError:
            logger.error(f"Stored password hash for user {user.id} is malformed")
            raise InvalidCredentialsError() from None

        if not result.is_valid:
            logger.info(f"Login failed: wrong secret for user {user.id}")
            raise InvalidCredentialsError()

        if not user.is_active:
            logger.info(f"Login refused: user {user.id} is disabled")
            raise AccountDisabledError()

        await self.identities.record_login(user.id, datetime.now(UTC))
        await self._rehash_if_needed(user, secret)

        tokens = await self.issuer.issue(user.id, user.role)
        logger.info(f"User {user.id} logged in (session {tokens.token_id})")
        return user, tokens

    async def change_password(
        self,
        owner_id: uuid.UUID,
        current_secret: str,
        new_secret: str,
    ) -> int:
        """Change a user's secret and revoke all their sessions.

        Returns:
            Number of sessions revoked
        """
        user = await self.identities.get_by_id(owner_id)
        if user is None or not user.is_active:
            raise InvalidCredentialsError()

        try:
            result = await self.verifier.verify(current_secret, user.password_hash)
        except VerificationError:
            raise InvalidCredentialsError() from None
        if not result.is_valid:
            raise InvalidCredentialsError("Current password is incorrect")

        problems = password_policy_violations(new_secret)
        if problems:
            raise ValidationError("Password " + "; ".join(problems))
        if new_secret == current_secret:
            raise ValidationError("New password must differ from the current one")

        hashed = await self.verifier.hash(new_secret)
        await self.identities.update_password_hash(user.id, hashed.hash)
        revoked = await self.revocation.revoke_all(user.id)
        logger.info(f"Password changed for user {user.id}, revoked {revoked} sessions")
        return revoked

    async def _rehash_if_needed(self, user: User, secret: str) -> None:
        try:
            stale = self.verifier.needs_rehash(user.password_hash)
        except VerificationError:
            return
        if stale:
            hashed = await self.verifier.hash(secret)
            await self.identities.update_password_hash(user.id, hashed.hash)
            logger.info(
                f"Rehashed password for user {user.id} with work factor {hashed.work_factor}"
            )
