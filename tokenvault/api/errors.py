"""Exception handlers mapping service errors to JSON responses."""

import logging

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from tokenvault.services.errors import (
    AuthenticationError,
    RateLimitError,
    TokenVaultError,
)

logger = logging.getLogger(__name__)


def error_response(error: TokenVaultError) -> JSONResponse:
    """Build the ``{"detail", "error"}`` body for a service error."""
    content: dict = {"detail": error.message, "error": error.error_code}
    headers: dict[str, str] = {}

    if isinstance(error, AuthenticationError):
        headers["WWW-Authenticate"] = "Bearer"
    if isinstance(error, RateLimitError):
        content["retry_after"] = error.retry_after
        headers["Retry-After"] = str(error.retry_after)

    return JSONResponse(status_code=error.status_code, content=content, headers=headers)


async def tokenvault_error_handler(request: Request, exc: TokenVaultError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(
            f"{request.method} {request.url.path} failed: {exc.error_code}",
            exc_info=exc.__cause__ is not None,
        )
    return error_response(exc)


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Malformed request bodies are client errors (400), never 422."""
    errors = [
        {"loc": list(err.get("loc", ())), "msg": err.get("msg", ""), "type": err.get("type", "")}
        for err in exc.errors()
    ]
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={
            "detail": "Request validation failed",
            "error": "VALIDATION_ERROR",
            "errors": errors,
        },
    )


def internal_error_response() -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": "An unexpected error occurred", "error": "INTERNAL_ERROR"},
    )


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    """Last-resort catch-all for errors raised outside ``UnhandledErrorMiddleware``."""
    logger.exception(f"Unhandled error processing {request.method} {request.url.path}")
    return internal_error_response()


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(TokenVaultError, tokenvault_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(RequestValidationError, validation_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(Exception, unhandled_error_handler)
