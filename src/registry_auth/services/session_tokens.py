"""Stateless session tokens binding a userId to a verified address.

Tokens are JWTs signed with the process-wide secret. There is no server-side
session table: a token is valid exactly when its signature checks out and
its ``exp`` claim is in the future. Claims are whole seconds, and expiry is
checked here against the issuer clock rather than by jose, which compares a
truncated ``now`` and would accept a token for most of the second after
``exp``.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass

from jose import JWTError, jwt

from registry_auth.core.errors import TokenExpiredError, TokenInvalidError
from registry_auth.core.settings import Settings, settings


@dataclass(frozen=True)
class SessionClaims:
    """Identity carried by a verified session token."""

    user_id: str
    address: str
    issued_at: int
    expires_at: int


class SessionIssuer:
    """Mint and verify signed, expiring session tokens."""

    def __init__(
        self,
        secret: str,
        *,
        algorithm: str = "HS256",
        ttl_seconds: int = 3600,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if not secret:
            raise ValueError("Session signing secret must not be empty")
        self._secret = secret
        self.algorithm = algorithm
        self.ttl_seconds = ttl_seconds
        self._clock = clock

    @classmethod
    def from_settings(cls, config: Settings | None = None) -> SessionIssuer:
        config = config or settings
        return cls(
            config.jwt_secret,
            algorithm=config.jwt_algorithm,
            ttl_seconds=config.session_ttl_seconds,
        )

    def issue(self, user_id: str, address: str, *, now: float | None = None) -> str:
        """Create a token for ``user_id`` valid for ``ttl_seconds`` from ``now``."""
        issued_at = int(self._clock() if now is None else now)
        claims = {
            "sub": user_id,
            "addr": address,
            "iat": issued_at,
            "exp": issued_at + self.ttl_seconds,
        }
        encoded: str = jwt.encode(claims, self._secret, algorithm=self.algorithm)
        return encoded

    def verify(self, token: str) -> SessionClaims:
        """Validate ``token`` and return its claims.

        Raises:
            TokenExpiredError: The token is well-formed but past its expiry.
            TokenInvalidError: Bad signature, wrong algorithm, malformed token
                or missing claims.
        """
        try:
            payload = jwt.decode(
                token,
                self._secret,
                algorithms=[self.algorithm],
                options={"require_exp": True, "require_sub": True, "verify_exp": False},
            )
        except JWTError as err:
            raise TokenInvalidError() from err

        expires_at = payload["exp"]
        if not isinstance(expires_at, int):
            raise TokenInvalidError()
        if self._clock() > expires_at:
            raise TokenExpiredError()

        user_id = payload.get("sub")
        address = payload.get("addr")
        if not isinstance(user_id, str) or not isinstance(address, str):
            raise TokenInvalidError()
        return SessionClaims(
            user_id=user_id,
            address=address,
            issued_at=int(payload.get("iat", 0)),
            expires_at=expires_at,
        )
