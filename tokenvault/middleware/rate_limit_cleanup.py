"""Background cleanup of ended login rate-limit windows."""

import asyncio
import logging

from tokenvault.middleware.rate_limit import LoginRateLimiter

logger = logging.getLogger(__name__)

MAX_CLEANUP_INTERVAL_SECONDS = 300


async def rate_limit_cleanup_loop(
    limiter: LoginRateLimiter, interval_seconds: float | None = None
) -> None:
    """Drop ended windows so clients that stopped trying do not accumulate.

    Runs every ``interval_seconds``, by default the limiter window capped at
    ``MAX_CLEANUP_INTERVAL_SECONDS``. Ends when cancelled.
    """
    interval = interval_seconds or min(limiter.window_seconds, MAX_CLEANUP_INTERVAL_SECONDS)
    while True:
        await asyncio.sleep(interval)
        try:
            removed = await limiter.cleanup_expired_windows()
        except Exception as e:
            logger.warning(f"Login window cleanup failed: {e}")
            continue
        if removed > 0:
            logger.debug(f"Dropped {removed} ended login windows")
