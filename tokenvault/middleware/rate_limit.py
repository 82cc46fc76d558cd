"""Login attempt throttling.

Fixed window per client key: the first attempt opens a window of
``window_seconds``; every attempt inside it counts, successful or not, and
once more than ``max_attempts`` have been made the client is rejected with
429 until the window ends. A successful login does not reset the counter.
"""

import asyncio
import logging
import math
import time
from collections.abc import Callable
from dataclasses import dataclass

from fastapi import Request, Response, status
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.types import ASGIApp

from tokenvault.core.config import Settings
from tokenvault.core.request_utils import get_client_ip
from tokenvault.services.errors import RateLimitError

logger = logging.getLogger(__name__)

# (method, path) pairs that count as login attempts
LOGIN_ROUTES = {("POST", "/auth/login")}


@dataclass
class LoginWindow:
    """Attempt counter for one client within one window."""

    started_at: float
    attempts: int = 0


@dataclass(frozen=True)
class RateLimitDecision:
    allowed: bool
    limit: int
    remaining: int
    retry_after: int

    def headers(self) -> dict[str, str]:
        headers = {
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(self.remaining),
        }
        if not self.allowed:
            headers["Retry-After"] = str(self.retry_after)
        return headers


class LoginRateLimiter:
    """In-memory fixed-window limiter keyed by client IP.

    Counters live in this process only; each node of a multi-node
    deployment throttles independently.
    """

    def __init__(
        self,
        max_attempts: int = 5,
        window_seconds: int = 900,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.max_attempts = max_attempts
        self.window_seconds = window_seconds
        self._clock = clock
        self._windows: dict[str, LoginWindow] = {}
        self._lock = asyncio.Lock()

    @classmethod
    def from_settings(cls, settings: Settings) -> "LoginRateLimiter":
        return cls(
            max_attempts=settings.login_rate_limit_max_attempts,
            window_seconds=settings.login_rate_limit_window_seconds,
        )

    async def hit(self, key: str) -> RateLimitDecision:
        """Record an attempt for ``key`` and decide whether it may proceed."""
        async with self._lock:
            now = self._clock()
            window = self._windows.get(key)
            if window is None or now - window.started_at >= self.window_seconds:
                window = LoginWindow(started_at=now)
                self._windows[key] = window

            window.attempts += 1
            remaining_seconds = window.started_at + self.window_seconds - now
            allowed = window.attempts <= self.max_attempts
            return RateLimitDecision(
                allowed=allowed,
                limit=self.max_attempts,
                remaining=max(0, self.max_attempts - window.attempts),
                retry_after=max(1, math.ceil(remaining_seconds)),
            )

    async def cleanup_expired_windows(self) -> int:
        """Drop counters whose window has ended. Returns the number removed."""
        async with self._lock:
            now = self._clock()
            expired = [
                key
                for key, window in self._windows.items()
                if now - window.started_at >= self.window_seconds
            ]
            for key in expired:
                del self._windows[key]
            return len(expired)

    async def get_stats(self) -> dict[str, int]:
        async with self._lock:
            return {key: window.attempts for key, window in self._windows.items()}

    def reset(self) -> None:
        self._windows.clear()


class LoginRateLimitMiddleware(BaseHTTPMiddleware):
    """Applies ``LoginRateLimiter`` to login requests."""

    def __init__(
        self,
        app: ASGIApp,
        limiter: LoginRateLimiter,
        trusted_proxies: list[str] | None = None,
    ) -> None:
        super().__init__(app)
        self.limiter = limiter
        self.trusted_proxies = set(trusted_proxies or [])

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        if (request.method, request.url.path) not in LOGIN_ROUTES:
            return await call_next(request)

        client_ip = get_client_ip(request, self.trusted_proxies)
        decision = await self.limiter.hit(client_ip)

        if not decision.allowed:
            logger.warning(
                f"Login rate limit exceeded for {client_ip}", extra={"client_ip": client_ip}
            )
            error = RateLimitError(retry_after=decision.retry_after)
            return JSONResponse(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                content={
                    "detail": error.message,
                    "error": error.error_code,
                    "retry_after": decision.retry_after,
                },
                headers=decision.headers(),
            )

        response = await call_next(request)
        for header, value in decision.headers().items():
            response.headers[header] = value
        return response
