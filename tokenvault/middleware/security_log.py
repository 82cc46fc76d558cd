"""Security event logging for authentication endpoints."""

import logging
import time

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.types import ASGIApp

from tokenvault.core.logging import get_logger
from tokenvault.core.request_utils import get_client_ip

logger = get_logger("security")

# Path prefixes whose requests are always logged
AUDITED_PREFIXES = ("/auth", "/tokens")


class SecurityLogMiddleware(BaseHTTPMiddleware):
    """Logs client IP, method, path, status and duration of auth traffic.

    Failed requests (status >= 400) anywhere are logged as warnings.
    Headers and bodies are never logged, so tokens and secrets stay out of logs.
    """

    def __init__(self, app: ASGIApp, trusted_proxies: list[str] | None = None) -> None:
        super().__init__(app)
        self.trusted_proxies = set(trusted_proxies or [])

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        started = time.perf_counter()
        response = await call_next(request)
        elapsed_ms = (time.perf_counter() - started) * 1000

        path = request.url.path
        audited = path.startswith(AUDITED_PREFIXES)
        if not audited and response.status_code < 400:
            return response

        client_ip = get_client_ip(request, self.trusted_proxies)
        message = (
            f"{client_ip} {request.method} {path} -> {response.status_code} ({elapsed_ms:.1f}ms)"
        )
        level = logging.WARNING if response.status_code >= 400 else logging.INFO
        logger.log(level, message, extra={"client_ip": client_ip})
        return response
