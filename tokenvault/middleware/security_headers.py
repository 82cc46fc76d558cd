"""Security headers added to every response."""

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.types import ASGIApp

# Responses are JSON only; nothing may be framed, scripted or cached
API_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "X-XSS-Protection": "1; mode=block",
    "Cache-Control": "no-store",
    "Pragma": "no-cache",
    "Referrer-Policy": "no-referrer",
    "Content-Security-Policy": "default-src 'none'; frame-ancestors 'none'",
}

HSTS_VALUE = "max-age=31536000; includeSubDomains"


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Adds ``API_HEADERS`` to all responses, and HSTS on https.

    ``X-Forwarded-Proto`` is only trusted from ``trusted_proxies``, the same
    rule used for client IP resolution.
    """

    def __init__(self, app: ASGIApp, trusted_proxies: list[str] | None = None) -> None:
        super().__init__(app)
        self.trusted_proxies = set(trusted_proxies or [])

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        response = await call_next(request)
        response.headers.update(API_HEADERS)
        if self._is_https(request):
            response.headers["Strict-Transport-Security"] = HSTS_VALUE
        return response

    def _is_https(self, request: Request) -> bool:
        if request.url.scheme == "https":
            return True
        peer = request.client.host if request.client else None
        return (
            peer in self.trusted_proxies
            and request.headers.get("x-forwarded-proto", "").lower() == "https"
        )
