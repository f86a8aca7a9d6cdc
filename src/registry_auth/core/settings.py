"""Application settings and configuration.

Settings are loaded from environment variables (or a ``.env`` file) once at
import time. Construction fails when the registry address is not a
well-formed address or the signing secret is blank, which keeps the process
from starting with a broken configuration.
"""

from typing import Literal

from eth_utils import is_address, to_checksum_address
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Application metadata
    app_name: str = Field(default="Registry Auth", alias="APP_NAME")
    app_version: str = Field(default="0.1.0", alias="APP_VERSION")
    debug: bool = Field(default=False, alias="DEBUG")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    # Listener
    host: str = Field(default="0.0.0.0", alias="HOST")
    port: int = Field(default=3001, alias="PORT")

    # Registry contract and JSON-RPC endpoint
    rpc_url: str = Field(default="http://127.0.0.1:7545", alias="RPC_URL")
    registry_addr: str = Field(alias="REGISTRY_ADDR")
    rpc_timeout_seconds: float = Field(default=10.0, gt=0, alias="RPC_TIMEOUT_SECONDS")
    events_block_window: int = Field(default=5000, ge=0, alias="EVENTS_BLOCK_WINDOW")

    # Session tokens
    jwt_secret: str = Field(alias="JWT_SECRET")
    jwt_algorithm: str = Field(default="HS256", alias="JWT_ALGORITHM")
    session_ttl_seconds: int = Field(default=60 * 60, gt=0, alias="SESSION_TTL_SECONDS")

    # Challenge nonces
    nonce_ttl_seconds: int = Field(default=2 * 60, gt=0, alias="NONCE_TTL_SECONDS")
    nonce_sweep_interval_seconds: float = Field(
        default=60.0,
        ge=0,
        alias="NONCE_SWEEP_INTERVAL_SECONDS",
    )
    nonce_store_backend: Literal["memory", "redis"] = Field(
        default="memory",
        alias="NONCE_STORE_BACKEND",
    )
    redis_url: str = Field(default="redis://localhost:6379", alias="REDIS_URL")

    # Per-client request limits on the auth endpoints
    rate_limit_enabled: bool = Field(default=True, alias="RATE_LIMIT_ENABLED")
    rate_limit_window_seconds: int = Field(default=60, gt=0, alias="RATE_LIMIT_WINDOW_SECONDS")
    challenge_rate_limit: int = Field(default=60, gt=0, alias="CHALLENGE_RATE_LIMIT")
    verify_rate_limit: int = Field(default=120, gt=0, alias="VERIFY_RATE_LIMIT")
    max_body_bytes: int = Field(default=256 * 1024, gt=0, alias="MAX_BODY_BYTES")

    # CORS configuration for the browser frontend
    cors_origin_regex: str = Field(
        default=r"^http://localhost:\d+$",
        alias="CORS_ORIGIN_REGEX",
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        validate_assignment=True,
        extra="ignore",
    )

    @field_validator("registry_addr", mode="before")
    @classmethod
    def _validate_registry_addr(cls, value: object) -> str:
        cleaned = str(value or "").strip()
        if not is_address(cleaned):
            raise ValueError(f'REGISTRY_ADDR missing/invalid. Got: "{cleaned}"')
        return to_checksum_address(cleaned)

    @field_validator("jwt_secret", mode="before")
    @classmethod
    def _validate_jwt_secret(cls, value: object) -> str:
        cleaned = str(value or "").strip()
        if not cleaned:
            raise ValueError("JWT_SECRET missing.")
        return cleaned


settings = Settings()  # type: ignore[call-arg]
