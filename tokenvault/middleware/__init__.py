"""Middleware module for TokenVault."""

from tokenvault.middleware.auth_gate import AuthGateMiddleware, AuthIdentity
from tokenvault.middleware.rate_limit import LoginRateLimiter, LoginRateLimitMiddleware
from tokenvault.middleware.rate_limit_cleanup import rate_limit_cleanup_loop
from tokenvault.middleware.security_headers import SecurityHeadersMiddleware
from tokenvault.middleware.security_log import SecurityLogMiddleware
from tokenvault.middleware.unhandled_errors import UnhandledErrorMiddleware

__all__ = [
    "AuthGateMiddleware",
    "AuthIdentity",
    "LoginRateLimiter",
    "LoginRateLimitMiddleware",
    "SecurityHeadersMiddleware",
    "SecurityLogMiddleware",
    "UnhandledErrorMiddleware",
    "rate_limit_cleanup_loop",
]
