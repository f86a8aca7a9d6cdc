"""Pydantic request and response schemas."""

from .auth import (
    ChallengeRequest,
    ChallengeResponse,
    ErrorResponse,
    IdentityResponse,
    RegistryEventResponse,
    VerifyRequest,
    VerifyResponse,
)

__all__ = [
    "ChallengeRequest",
    "ChallengeResponse",
    "ErrorResponse",
    "IdentityResponse",
    "RegistryEventResponse",
    "VerifyRequest",
    "VerifyResponse",
]
