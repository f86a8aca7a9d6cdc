"""Service layer for challenge issuance, verification and registry access."""

from .auth_service import AuthService, Challenge, KeyRegistry
from .nonce_store import ChallengeState, InMemoryNonceStore, NonceStore, RedisNonceStore
from .rate_limit import FixedWindowRateLimiter
from .registry import RegistryClient, RegistryError, RegistryEvent
from .session_tokens import SessionClaims, SessionIssuer

__all__ = [
    "AuthService",
    "Challenge",
    "ChallengeState",
    "FixedWindowRateLimiter",
    "InMemoryNonceStore",
    "KeyRegistry",
    "NonceStore",
    "RedisNonceStore",
    "RegistryClient",
    "RegistryError",
    "RegistryEvent",
    "SessionClaims",
    "SessionIssuer",
]
