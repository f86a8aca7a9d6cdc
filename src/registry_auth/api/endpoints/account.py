"""Session-protected identity and registry event endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from registry_auth.api.dependencies import AuthServiceDep, CurrentSessionDep, get_current_session
from registry_auth.schemas.auth import ErrorResponse, IdentityResponse, RegistryEventResponse

router = APIRouter(tags=["account"], responses={401: {"model": ErrorResponse}})


@router.get("/me", response_model=IdentityResponse)
async def read_identity(session: CurrentSessionDep) -> IdentityResponse:
    """Return the identity carried by the session token. No registry lookup."""
    return IdentityResponse(user_id=session.user_id, address=session.address)


@router.get(
    "/events",
    response_model=list[RegistryEventResponse],
    dependencies=[Depends(get_current_session)],
    responses={500: {"model": ErrorResponse}},
)
async def list_events(service: AuthServiceDep) -> list[RegistryEventResponse]:
    """Return registry events from the recent block window."""
    events = await service.recent_events()
    return [
        RegistryEventResponse(
            name=event.name,
            args=event.args,
            block_number=event.block_number,
            tx_hash=event.tx_hash,
        )
        for event in events
    ]
