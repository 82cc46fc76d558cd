"""TokenVault - FastAPI Application Factory."""

import asyncio
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from tokenvault.api.deps import make_registry_factory
from tokenvault.api.errors import register_exception_handlers
from tokenvault.api.router import api_router
from tokenvault.core import Settings, async_session_maker, get_settings, setup_logging
from tokenvault.core.logging import get_logger
from tokenvault.middleware import (
    AuthGateMiddleware,
    LoginRateLimiter,
    LoginRateLimitMiddleware,
    SecurityHeadersMiddleware,
    SecurityLogMiddleware,
    UnhandledErrorMiddleware,
    rate_limit_cleanup_loop,
)

# Import all models to ensure they're registered with Base for Alembic
from tokenvault.models import SessionRecord, User  # noqa: F401
from tokenvault.services.credentials import CredentialVerifier
from tokenvault.services.identity import InMemoryIdentityStore
from tokenvault.services.session_janitor import SessionJanitor
from tokenvault.services.session_registry import InMemorySessionRegistry
from tokenvault.services.token_codec import TokenCodec

logger = get_logger("main")


def task_done_callback(task: asyncio.Task[None]) -> None:
    """Log unhandled exceptions from background tasks."""
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.error(f"Background task {task.get_name()} failed: {exc}")


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler for startup/shutdown."""
    settings: Settings = app.state.settings

    setup_logging(
        level=settings.log_level,
        format_type="structured" if not settings.debug else "dev",
    )
    logger.info(f"Starting {settings.app_name} v{settings.app_version}")

    for warning in settings.check_security_configuration():
        logger.warning(f"SECURITY: {warning}")

    await app.state.verifier.warm_up()

    janitor: SessionJanitor = app.state.janitor
    if settings.session_cleanup_enabled:
        await janitor.start()

    tasks: list[asyncio.Task] = []
    rate_limit_task = asyncio.create_task(
        rate_limit_cleanup_loop(app.state.login_limiter), name="rate-limit-cleanup"
    )
    rate_limit_task.add_done_callback(task_done_callback)
    tasks.append(rate_limit_task)

    yield

    logger.info("Shutting down...")
    for task in tasks:
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
    await janitor.stop()


def create_app(settings: Settings | None = None) -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = settings or get_settings()

    app = FastAPI(
        title=settings.app_name,
        description="Session and token lifecycle service",
        version=settings.app_version,
        lifespan=lifespan,
        # Schema endpoints only while debugging
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        openapi_url="/openapi.json" if settings.debug else None,
    )

    codec = TokenCodec.from_settings(settings)
    login_limiter = LoginRateLimiter.from_settings(settings)

    app.state.settings = settings
    app.state.codec = codec
    app.state.verifier = CredentialVerifier.from_settings(settings)
    app.state.login_limiter = login_limiter

    if settings.storage_backend == "memory":
        app.state.session_registry = InMemorySessionRegistry()
        app.state.identity_store = InMemoryIdentityStore()
    else:
        app.state.session_factory = async_session_maker

    app.state.janitor = SessionJanitor(
        make_registry_factory(app.state),
        interval_seconds=settings.session_cleanup_interval_seconds,
    )

    # Starlette runs middleware in reverse order of addition: the last one
    # added is outermost.

    # Unexpected exceptions become a 500 JSON body inside the chain
    app.add_middleware(UnhandledErrorMiddleware)

    # Access token check for every non-public path
    app.add_middleware(AuthGateMiddleware, codec=codec)

    # Login throttling, before credentials are ever looked at
    app.add_middleware(
        LoginRateLimitMiddleware,
        limiter=login_limiter,
        trusted_proxies=settings.trusted_proxy_ips_list,
    )

    app.add_middleware(
        SecurityHeadersMiddleware, trusted_proxies=settings.trusted_proxy_ips_list
    )

    app.add_middleware(SecurityLogMiddleware, trusted_proxies=settings.trusted_proxy_ips_list)

    # CORS must be outermost so CORS headers are present on 401 and 429 responses too
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Authorization", "Content-Type", "Accept", "X-Request-ID"],
    )

    register_exception_handlers(app)

    if settings.enable_metrics:
        from prometheus_fastapi_instrumentator import Instrumentator

        Instrumentator(
            excluded_handlers=["/health", "/metrics"],
        ).instrument(app).expose(app, endpoint="/metrics", include_in_schema=False)

    app.include_router(api_router)

    @app.get("/")
    async def root() -> dict[str, str]:
        """Root endpoint with service information."""
        return {
            "name": settings.app_name,
            "version": settings.app_version,
        }

    return app


# Application instance
app = create_app()
