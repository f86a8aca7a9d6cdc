"""Challenge/response authentication against the key registry.

Flow for one userId::

    issue_challenge(username)  ->  nonce pending in the store
    verify(userId, signature)  ->  recover signer, ask the registry,
                                   consume the nonce, mint a session token

A nonce is consumed only when verification succeeds. Failed signatures and
unauthorized keys leave it pending until its TTL so that the legitimate
holder can retry within the window.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Protocol

from eth_utils import decode_hex

from registry_auth.core.errors import (
    ChallengeAbsentError,
    ClientInputError,
    EventsFetchError,
    NotAuthorizedError,
    OracleUnavailableError,
    TokenMissingError,
)
from registry_auth.core.security import recover_address
from registry_auth.services.nonce_store import NonceStore
from registry_auth.services.registry import RegistryError, RegistryEvent
from registry_auth.services.session_tokens import SessionClaims, SessionIssuer
from registry_auth.utils.hash import derive_user_id, normalize_user_id

logger = logging.getLogger(__name__)


class KeyRegistry(Protocol):
    """Read-only view of the external registry."""

    async def is_key(self, user_id: str, address: str) -> bool: ...

    async def recent_events(self, window: int) -> list[RegistryEvent]: ...


@dataclass(frozen=True)
class Challenge:
    """Challenge handed to a client: sign ``nonce`` with a registered key."""

    user_id: str
    nonce: str


class AuthService:
    """Orchestrates nonce issuance, signature checks and session minting."""

    def __init__(
        self,
        nonces: NonceStore,
        registry: KeyRegistry,
        sessions: SessionIssuer,
        *,
        events_block_window: int = 5000,
    ) -> None:
        self._nonces = nonces
        self._registry = registry
        self._sessions = sessions
        self.events_block_window = events_block_window

    async def issue_challenge(self, username: str | None) -> Challenge:
        """Issue a fresh nonce for ``username``, replacing any pending one."""
        if not username or not username.strip():
            raise ClientInputError("username required")
        user_id = derive_user_id(username)
        nonce = await self._nonces.issue(user_id)
        logger.debug("Issued challenge for %s", user_id)
        return Challenge(user_id=user_id, nonce=nonce)

    async def verify(self, user_id: str | None, signature: str | None) -> str:
        """Exchange a signed challenge for a session token.

        Raises:
            ClientInputError: Missing or malformed ``user_id``/``signature``.
            ChallengeAbsentError: No pending nonce, or it was used concurrently.
            SignatureInvalidError: The signer could not be recovered.
            NotAuthorizedError: The signer is not a registered key.
            OracleUnavailableError: The registry could not be queried.
        """
        if not user_id or not signature:
            raise ClientInputError("userId and signature required")
        user_id = normalize_user_id(user_id)

        nonce = await self._nonces.peek(user_id)
        if nonce is None:
            raise ChallengeAbsentError()

        address = recover_address(decode_hex(nonce), signature)

        try:
            authorized = await self._registry.is_key(user_id, address)
        except RegistryError as err:
            logger.warning("Registry lookup failed for %s: %s", user_id, err)
            raise OracleUnavailableError() from err
        if not authorized:
            logger.warning("Rejected unregistered key %s for %s", address, user_id)
            raise NotAuthorizedError()

        # Only one verification may win the nonce, even if several passed the checks above.
        if not await self._nonces.consume_if(user_id, nonce):
            raise ChallengeAbsentError()

        token = self._sessions.issue(user_id, address)
        logger.info("Issued session for %s (key %s)", user_id, address)
        return token

    def authenticate(self, token: str | None) -> SessionClaims:
        """Resolve a bearer token to the identity it carries."""
        if not token:
            raise TokenMissingError()
        return self._sessions.verify(token)

    async def recent_events(self) -> list[RegistryEvent]:
        """Return registry events from the configured recent block window."""
        try:
            return await self._registry.recent_events(self.events_block_window)
        except RegistryError as err:
            logger.warning("Registry event fetch failed: %s", err)
            raise EventsFetchError() from err

    async def close(self) -> None:
        await self._nonces.close()
