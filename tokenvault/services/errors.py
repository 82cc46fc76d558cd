"""Service-layer exceptions mapped to HTTP responses.

Each class carries the HTTP ``status_code`` and the stable ``error_code``
returned to clients. Library exceptions (PyJWT, argon2, SQLAlchemy) are
translated into these at the service boundary.
"""


class TokenVaultError(Exception):
    """Base class for all service errors."""

    status_code: int = 500
    error_code: str = "INTERNAL_ERROR"
    default_message: str = "Internal server error"

    def __init__(
        self,
        message: str | None = None,
        *,
        status_code: int | None = None,
        error_code: str | None = None,
    ) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)
        if status_code is not None:
            self.status_code = status_code
        if error_code is not None:
            self.error_code = error_code


class ValidationError(TokenVaultError):
    """Request input is malformed (400)."""

    status_code = 400
    error_code = "VALIDATION_ERROR"
    default_message = "Invalid request"


# --- 401 ---


class AuthenticationError(TokenVaultError):
    """Authentication failed or missing (401)."""

    status_code = 401
    error_code = "UNAUTHORIZED"
    default_message = "Authentication required"


class InvalidCredentialsError(AuthenticationError):
    """Identifier or secret did not match."""

    error_code = "INVALID_CREDENTIALS"
    default_message = "Invalid credentials"


class AccountDisabledError(AuthenticationError):
    """The user exists but is deactivated."""

    error_code = "ACCOUNT_DISABLED"
    default_message = "Account is disabled"


class MissingTokenError(AuthenticationError):
    """No Authorization header on a protected request."""

    error_code = "MISSING_TOKEN"
    default_message = "Access token required"


class InvalidTokenFormatError(AuthenticationError):
    """Authorization header is not ``Bearer <token>``."""

    error_code = "INVALID_TOKEN_FORMAT"
    default_message = "Invalid token format. Use: Bearer <token>"


class InvalidTokenError(AuthenticationError):
    """Token is unusable.

    Also the single outward answer for every refresh failure, so callers
    cannot tell an unknown session from a revoked or replayed one.
    """

    error_code = "INVALID_TOKEN"
    default_message = "Invalid or expired token"


class TokenError(AuthenticationError):
    """Base for codec decode failures."""

    error_code = "INVALID_TOKEN"
    default_message = "Invalid token"


class InvalidSignatureError(TokenError):
    """Signature check failed or the token is malformed."""

    pass


class TokenExpiredError(TokenError):
    """Token's expiry is in the past."""

    error_code = "EXPIRED_TOKEN"
    default_message = "Token has expired"


class WrongKindError(TokenError):
    """Token kind (access/refresh) differs from the one expected."""

    default_message = "Wrong token type"


# --- 403 / 429 ---


class AuthorizationError(TokenVaultError):
    """Authenticated but not allowed (403)."""

    status_code = 403
    error_code = "INSUFFICIENT_PERMISSIONS"
    default_message = "Insufficient permissions"


class RateLimitError(TokenVaultError):
    """Too many login attempts from one client (429)."""

    status_code = 429
    error_code = "TOO_MANY_LOGIN_ATTEMPTS"
    default_message = "Too many login attempts. Try again later."

    def __init__(self, retry_after: int, message: str | None = None) -> None:
        super().__init__(message)
        self.retry_after = retry_after


# --- 5xx ---


class PersistenceError(TokenVaultError):
    """Session or identity store unavailable or timed out (503)."""

    status_code = 503
    error_code = "SERVICE_UNAVAILABLE"
    default_message = "Session store unavailable"


class IssuanceError(PersistenceError):
    """Tokens could not be issued because the session was not persisted."""

    error_code = "ISSUANCE_FAILED"
    default_message = "Could not issue tokens"


class RotationError(TokenVaultError):
    """Predecessor was consumed but the successor could not be issued."""

    status_code = 500
    error_code = "ROTATION_FAILED"
    default_message = "Could not rotate session"


class HashingError(TokenVaultError):
    """Secret could not be hashed."""

    error_code = "HASHING_ERROR"
    default_message = "Could not hash secret"


class VerificationError(TokenVaultError):
    """Stored hash is malformed or the verifier failed internally."""

    error_code = "VERIFICATION_ERROR"
    default_message = "Could not verify secret"
