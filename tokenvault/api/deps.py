"""FastAPI dependencies wiring stores and services per request.

Long-lived components (codec, verifier, login limiter, in-memory stores) are
built once by ``create_app`` and kept on ``app.state``. Database-backed
stores get a fresh ``AsyncSession`` per request.
"""

import uuid
from collections.abc import AsyncGenerator, AsyncIterator, Callable
from contextlib import AbstractAsyncContextManager, asynccontextmanager

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.datastructures import State

from tokenvault.core.config import Settings
from tokenvault.middleware.auth_gate import AuthIdentity
from tokenvault.services.auth import AuthService
from tokenvault.services.credentials import CredentialVerifier
from tokenvault.services.errors import AuthorizationError, MissingTokenError
from tokenvault.services.identity import IdentityStore, SqlIdentityStore
from tokenvault.services.session_registry import SessionRegistry, SqlSessionRegistry
from tokenvault.services.token_codec import TokenCodec
from tokenvault.services.tokens import RevocationManager, TokenIssuer, TokenRotator


def get_settings_dep(request: Request) -> Settings:
    return request.app.state.settings


def get_codec(request: Request) -> TokenCodec:
    return request.app.state.codec


def get_verifier(request: Request) -> CredentialVerifier:
    return request.app.state.verifier


async def get_db_session(request: Request) -> AsyncGenerator[AsyncSession | None, None]:
    """Yield a database session, or None when the in-memory backend is active."""
    state = request.app.state
    if state.settings.storage_backend == "memory":
        yield None
        return

    async with state.session_factory() as session:
        try:
            yield session
        except BaseException:
            await session.rollback()
            raise


def get_registry(
    request: Request,
    db: AsyncSession | None = Depends(get_db_session),
) -> SessionRegistry:
    if db is None:
        return request.app.state.session_registry
    return SqlSessionRegistry(db, timeout=request.app.state.settings.registry_timeout_seconds)


def get_identity_store(
    request: Request,
    db: AsyncSession | None = Depends(get_db_session),
) -> IdentityStore:
    if db is None:
        return request.app.state.identity_store
    return SqlIdentityStore(db, timeout=request.app.state.settings.registry_timeout_seconds)


def get_issuer(
    codec: TokenCodec = Depends(get_codec),
    registry: SessionRegistry = Depends(get_registry),
    settings: Settings = Depends(get_settings_dep),
) -> TokenIssuer:
    return TokenIssuer.from_settings(codec, registry, settings)


def get_rotator(
    codec: TokenCodec = Depends(get_codec),
    registry: SessionRegistry = Depends(get_registry),
    identities: IdentityStore = Depends(get_identity_store),
    issuer: TokenIssuer = Depends(get_issuer),
) -> TokenRotator:
    return TokenRotator(codec, registry, identities, issuer)


def get_revocation(registry: SessionRegistry = Depends(get_registry)) -> RevocationManager:
    return RevocationManager(registry)


def get_auth_service(
    identities: IdentityStore = Depends(get_identity_store),
    verifier: CredentialVerifier = Depends(get_verifier),
    issuer: TokenIssuer = Depends(get_issuer),
    revocation: RevocationManager = Depends(get_revocation),
) -> AuthService:
    return AuthService(identities, verifier, issuer, revocation)


def get_current_identity(request: Request) -> AuthIdentity:
    """Identity attached by AuthGateMiddleware."""
    identity = getattr(request.state, "identity", None)
    if identity is None:
        raise MissingTokenError()
    return identity


def require_elevated(
    identity: AuthIdentity = Depends(get_current_identity),
    settings: Settings = Depends(get_settings_dep),
) -> AuthIdentity:
    """Require one of the configured admin roles."""
    if identity.role.upper() not in settings.admin_roles_list:
        raise AuthorizationError("Administrator role required")
    return identity


def ensure_self_or_elevated(
    identity: AuthIdentity, owner_id: uuid.UUID, settings: Settings
) -> None:
    """Owners may act on their own sessions; admin roles on anyone's."""
    if identity.owner_id != owner_id and identity.role.upper() not in settings.admin_roles_list:
        raise AuthorizationError()


RegistryFactory = Callable[[], AbstractAsyncContextManager[SessionRegistry]]


def make_registry_factory(state: State) -> RegistryFactory:
    """Registry scopes for work outside a request, such as the session janitor."""

    @asynccontextmanager
    async def _scope() -> AsyncIterator[SessionRegistry]:
        if state.settings.storage_backend == "memory":
            yield state.session_registry
            return
        async with state.session_factory() as session:
            yield SqlSessionRegistry(session, timeout=state.settings.registry_timeout_seconds)

    return _scope
