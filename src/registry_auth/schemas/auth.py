"""Authentication and dashboard schemas.

Field names on the wire are camelCase; Python attributes stay snake_case.
"""

from pydantic import BaseModel, ConfigDict, Field


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class ChallengeRequest(_CamelModel):
    """Request a challenge for a username."""

    username: str | None = Field(None, description="Human-readable account name")


class ChallengeResponse(_CamelModel):
    """Nonce the client must sign with a registered key."""

    user_id: str = Field(..., alias="userId", description="Keccak-256 of the trimmed username")
    nonce: str = Field(..., description="32 random bytes, hex encoded; sign the raw bytes")


class VerifyRequest(_CamelModel):
    """Signed challenge submitted for verification."""

    user_id: str | None = Field(None, alias="userId", description="userId from the challenge")
    signature: str | None = Field(None, description="65-byte personal_sign signature, hex")


class VerifyResponse(_CamelModel):
    token: str = Field(..., description="Bearer session token")


class IdentityResponse(_CamelModel):
    """Identity carried by the caller's session token."""

    user_id: str = Field(..., alias="userId")
    address: str = Field(..., description="Registered key that signed the challenge")


class RegistryEventResponse(_CamelModel):
    """A decoded registry event."""

    name: str
    args: dict[str, str]
    block_number: int = Field(..., alias="blockNumber")
    tx_hash: str = Field(..., alias="txHash")


class ErrorResponse(BaseModel):
    error: str
