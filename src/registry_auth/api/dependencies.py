"""Shared API dependencies for authentication and request limits."""

from typing import Annotated

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from registry_auth.services.auth_service import AuthService
from registry_auth.services.rate_limit import FixedWindowRateLimiter
from registry_auth.services.session_tokens import SessionClaims

# Missing credentials are reported by the auth service, not by the scheme.
bearer_scheme = HTTPBearer(auto_error=False)


def get_auth_service(request: Request) -> AuthService:
    """Return the auth service built at application startup."""
    service: AuthService = request.app.state.auth_service
    return service


def get_challenge_limiter(request: Request) -> FixedWindowRateLimiter | None:
    limiter: FixedWindowRateLimiter | None = request.app.state.challenge_limiter
    return limiter


def get_verify_limiter(request: Request) -> FixedWindowRateLimiter | None:
    limiter: FixedWindowRateLimiter | None = request.app.state.verify_limiter
    return limiter


def _client_key(request: Request) -> str:
    return request.client.host if request.client else "unknown"


def limit_challenges(
    request: Request,
    limiter: Annotated[FixedWindowRateLimiter | None, Depends(get_challenge_limiter)],
) -> None:
    """Apply the per-client limit for challenge requests."""
    if limiter is not None:
        limiter.check(_client_key(request))


def limit_verifications(
    request: Request,
    limiter: Annotated[FixedWindowRateLimiter | None, Depends(get_verify_limiter)],
) -> None:
    """Apply the per-client limit for verification requests."""
    if limiter is not None:
        limiter.check(_client_key(request))


AuthServiceDep = Annotated[AuthService, Depends(get_auth_service)]


def get_current_session(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(bearer_scheme)],
    service: AuthServiceDep,
) -> SessionClaims:
    """Resolve the bearer token on the request to its session claims.

    Raises:
        TokenMissingError: No ``Authorization: Bearer`` header.
        TokenInvalidError: The token does not verify.
        TokenExpiredError: The token has expired.
    """
    token = credentials.credentials if credentials else None
    return service.authenticate(token)


# Type alias for current session dependency
CurrentSessionDep = Annotated[SessionClaims, Depends(get_current_session)]
