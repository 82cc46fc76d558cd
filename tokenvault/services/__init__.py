# TokenVault Services
from tokenvault.services.auth import AuthService
from tokenvault.services.credentials import CredentialVerifier, HashResult, VerifyResult
from tokenvault.services.identity import InMemoryIdentityStore, SqlIdentityStore
from tokenvault.services.session_janitor import SessionJanitor
from tokenvault.services.session_registry import InMemorySessionRegistry, SqlSessionRegistry
from tokenvault.services.token_codec import AccessClaims, RefreshClaims, TokenCodec, TokenKind
from tokenvault.services.tokens import IssuedTokens, RevocationManager, TokenIssuer, TokenRotator

__all__ = [
    "AccessClaims",
    "AuthService",
    "CredentialVerifier",
    "HashResult",
    "InMemoryIdentityStore",
    "InMemorySessionRegistry",
    "IssuedTokens",
    "RefreshClaims",
    "RevocationManager",
    "SessionJanitor",
    "SqlIdentityStore",
    "SqlSessionRegistry",
    "TokenCodec",
    "TokenIssuer",
    "TokenKind",
    "TokenRotator",
    "VerifyResult",
]
