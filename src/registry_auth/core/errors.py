"""Error taxonomy shared by the services and the HTTP layer.

Every error carries the HTTP status it maps to and a message that is safe to
return to clients. Lower layers raise their own exceptions; the auth service
translates them into these.
"""

from __future__ import annotations

from fastapi import status


class AuthError(RuntimeError):
    """Base class for failures surfaced to API clients."""

    status_code: int = status.HTTP_400_BAD_REQUEST
    default_message: str = "bad request"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class ClientInputError(AuthError):
    """A required field is missing, blank or malformed."""

    default_message = "invalid request"


class ChallengeAbsentError(AuthError):
    """No pending challenge exists for the userId, or it has expired."""

    default_message = "no challenge"


class SignatureInvalidError(AuthError):
    """The signature is malformed or the signer could not be recovered."""

    default_message = "invalid signature"


class NotAuthorizedError(AuthError):
    """The recovered address is not a registered key for the userId."""

    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "not an authorized key"


class TokenMissingError(AuthError):
    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "missing token"


class TokenInvalidError(AuthError):
    """Bad signature, malformed token or missing claims."""

    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "invalid token"


class TokenExpiredError(TokenInvalidError):
    """Well-formed token past its expiry instant."""

    default_message = "token expired"


class RateLimitedError(AuthError):
    status_code = status.HTTP_429_TOO_MANY_REQUESTS
    default_message = "too many requests"


class OracleUnavailableError(AuthError):
    """The registry could not answer the authorization query. Safe to retry."""

    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    default_message = "authorization oracle unavailable"


class EventsFetchError(AuthError):
    """The registry event log could not be fetched."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message = "failed to fetch events"
