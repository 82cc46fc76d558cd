"""Turns unexpected exceptions into the generic 500 JSON body.

Added innermost so the 500 still passes back through the security
headers, CORS and security log middleware.
"""

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from tokenvault.api.errors import internal_error_response
from tokenvault.core.logging import get_logger

logger = get_logger("errors")


class UnhandledErrorMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        try:
            return await call_next(request)
        except Exception:
            logger.exception(f"Unhandled error processing {request.method} {request.url.path}")
            return internal_error_response()
