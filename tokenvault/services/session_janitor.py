"""Session janitor - removes expired session records in the background."""

import asyncio
from collections.abc import Callable
from contextlib import AbstractAsyncContextManager
from datetime import UTC, datetime

from tokenvault.core.logging import get_logger
from tokenvault.services.session_registry import SessionRegistry

logger = get_logger("session_janitor")

# Delay before the first sweep so startup is not competing for connections
INITIAL_DELAY_SECONDS = 60

RegistryFactory = Callable[[], AbstractAsyncContextManager[SessionRegistry]]


class SessionJanitor:
    """Deletes session records whose expiry has passed.

    Only expiry is considered: revoked but unexpired records are kept, and
    nothing with ``expires_at >= now`` is ever removed. The background loop
    opens a fresh registry for every run through ``registry_factory``.
    """

    def __init__(
        self,
        registry_factory: RegistryFactory,
        interval_seconds: int = 3600,
        initial_delay_seconds: float = INITIAL_DELAY_SECONDS,
    ):
        self.registry_factory = registry_factory
        self.interval_seconds = interval_seconds
        self.initial_delay_seconds = initial_delay_seconds
        self._running = False
        self._task: asyncio.Task | None = None

    @staticmethod
    async def sweep(registry: SessionRegistry, now: datetime | None = None) -> int:
        """Delete records with ``expires_at < now``. Returns the number deleted."""
        now = now or datetime.now(UTC)
        deleted = await registry.delete_expired(now)
        if deleted > 0:
            logger.info(f"Session cleanup: deleted {deleted} expired sessions")
        return deleted

    @property
    def running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Start the background sweep task."""
        if self._running:
            logger.warning("Session janitor is already running")
            return

        self._running = True
        self._task = asyncio.create_task(self._cleanup_loop(), name="session-janitor")
        logger.info(f"Session janitor started (interval: {self.interval_seconds}s)")

    async def stop(self) -> None:
        """Stop the background sweep task."""
        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("Session janitor stopped")

    async def run_cleanup_now(self, now: datetime | None = None) -> int:
        """Manually trigger a sweep.

        Returns:
            Number of sessions deleted
        """
        async with self.registry_factory() as registry:
            return await self.sweep(registry, now)

    async def _cleanup_loop(self) -> None:
        await asyncio.sleep(self.initial_delay_seconds)

        while self._running:
            try:
                await self.run_cleanup_now()
            except Exception as e:
                logger.error(f"Error in session cleanup: {e}")

            await asyncio.sleep(self.interval_seconds)
