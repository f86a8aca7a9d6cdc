"""Challenge and verification endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from registry_auth.api.dependencies import (
    AuthServiceDep,
    limit_challenges,
    limit_verifications,
)
from registry_auth.schemas.auth import (
    ChallengeRequest,
    ChallengeResponse,
    ErrorResponse,
    VerifyRequest,
    VerifyResponse,
)

router = APIRouter(prefix="/auth", tags=["authentication"])


@router.post(
    "/challenge",
    summary="Issue a single-use signing challenge",
    response_model=ChallengeResponse,
    dependencies=[Depends(limit_challenges)],
    responses={400: {"model": ErrorResponse}, 429: {"model": ErrorResponse}},
)
async def issue_challenge(payload: ChallengeRequest, service: AuthServiceDep) -> ChallengeResponse:
    """Derive the userId for ``username`` and hand out a fresh nonce to sign."""
    challenge = await service.issue_challenge(payload.username)
    return ChallengeResponse(user_id=challenge.user_id, nonce=challenge.nonce)


@router.post(
    "/verify",
    summary="Exchange a signed challenge for a session token",
    response_model=VerifyResponse,
    dependencies=[Depends(limit_verifications)],
    responses={
        400: {"model": ErrorResponse},
        401: {"model": ErrorResponse},
        429: {"model": ErrorResponse},
        503: {"model": ErrorResponse},
    },
)
async def verify_challenge(payload: VerifyRequest, service: AuthServiceDep) -> VerifyResponse:
    """Check the signature over the pending nonce and the signer's registry membership."""
    token = await service.verify(payload.user_id, payload.signature)
    return VerifyResponse(token=token)
