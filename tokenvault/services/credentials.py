"""Password hashing and timing-floored verification (Argon2id)."""

import asyncio
import logging
import secrets
import time
from dataclasses import dataclass

from argon2 import PasswordHasher
from argon2 import exceptions as argon2_exceptions

from tokenvault.core.config import Settings
from tokenvault.services.errors import HashingError, VerificationError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class HashResult:
    """A freshly computed hash and the work factor (time cost) used."""

    hash: str
    work_factor: int


@dataclass(frozen=True)
class VerifyResult:
    is_valid: bool
    elapsed_ms: float


class CredentialVerifier:
    """Hashes secrets and verifies them against stored hashes.

    ``verify`` never returns before ``floor_ms`` milliseconds have passed,
    whether the secret matched, did not match, or the stored hash was
    malformed. Callers therefore cannot learn anything from response time.
    Argon2 work runs in a worker thread so the event loop is not blocked.
    """

    def __init__(
        self,
        time_cost: int = 3,
        memory_cost: int = 65536,
        parallelism: int = 4,
        floor_ms: int = 100,
    ):
        self._hasher = PasswordHasher(
            time_cost=time_cost,
            memory_cost=memory_cost,
            parallelism=parallelism,
            hash_len=32,
            salt_len=16,
        )
        self.floor_ms = floor_ms
        self._dummy_hash: str | None = None

    @classmethod
    def from_settings(cls, settings: Settings) -> "CredentialVerifier":
        return cls(
            time_cost=settings.password_hash_time_cost,
            memory_cost=settings.password_hash_memory_cost,
            parallelism=settings.password_hash_parallelism,
            floor_ms=settings.credential_verify_floor_ms,
        )

    @property
    def work_factor(self) -> int:
        return self._hasher.time_cost

    async def hash(self, secret: str) -> HashResult:
        """Hash a secret with the configured parameters."""
        if not secret:
            raise HashingError("Secret must not be empty")
        try:
            hashed = await asyncio.to_thread(self._hasher.hash, secret)
        except argon2_exceptions.HashingError as e:
            logger.error(f"Argon2 hashing failed: {e}")
            raise HashingError() from e
        return HashResult(hash=hashed, work_factor=self.work_factor)

    async def verify(self, secret: str, stored_hash: str) -> VerifyResult:
        """Verify a secret against a stored hash with a minimum duration.

        Raises:
            VerificationError: stored hash is malformed (raised after padding)
        """
        started = time.perf_counter()
        failure: VerificationError | None = None
        is_valid = False
        try:
            is_valid = await asyncio.to_thread(self._check, secret, stored_hash)
        except VerificationError as e:
            failure = e

        elapsed_ms = await self._pad_to_floor(started)
        if failure is not None:
            raise failure
        return VerifyResult(is_valid=is_valid, elapsed_ms=elapsed_ms)

    async def verify_dummy(self, secret: str) -> VerifyResult:
        """Spend the same effort as a real verification for an unknown identifier."""
        if self._dummy_hash is None:
            await self.warm_up()
        result = await self.verify(secret, self._dummy_hash)
        return VerifyResult(is_valid=False, elapsed_ms=result.elapsed_ms)

    async def warm_up(self) -> None:
        """Precompute the decoy hash used by ``verify_dummy``."""
        if self._dummy_hash is None:
            decoy = secrets.token_urlsafe(32)
            self._dummy_hash = await asyncio.to_thread(self._hasher.hash, decoy)

    def needs_rehash(self, stored_hash: str) -> bool:
        """True when the stored hash was made with different parameters."""
        try:
            return self._hasher.check_needs_rehash(stored_hash)
        except argon2_exceptions.InvalidHashError as e:
            raise VerificationError("Stored hash is malformed") from e

    def _check(self, secret: str, stored_hash: str) -> bool:
        try:
            return self._hasher.verify(stored_hash, secret)
        except argon2_exceptions.VerifyMismatchError:
            return False
        except argon2_exceptions.InvalidHashError as e:
            raise VerificationError("Stored hash is malformed") from e
        except argon2_exceptions.VerificationError as e:
            raise VerificationError() from e

    async def _pad_to_floor(self, started: float) -> float:
        elapsed_ms = (time.perf_counter() - started) * 1000
        while elapsed_ms < self.floor_ms:
            await asyncio.sleep((self.floor_ms - elapsed_ms) / 1000)
            elapsed_ms = (time.perf_counter() - started) * 1000
        return elapsed_ms
