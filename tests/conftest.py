# tests/conftest.py
from __future__ import annotations

import asyncio
import os
from collections.abc import Iterator

import pytest
from eth_account import Account
from eth_account.messages import encode_defunct
from eth_account.signers.local import LocalAccount
from eth_utils import decode_hex
from fastapi import FastAPI
from fastapi.testclient import TestClient

os.environ.setdefault("REGISTRY_ADDR", "0x5fbdb2315678afecb367f032d93f642f64180aa3")
os.environ.setdefault("JWT_SECRET", "test-signing-secret")
os.environ.setdefault("RPC_URL", "http://rpc.test")

from registry_auth.api.dependencies import (
    get_auth_service,
    get_challenge_limiter,
    get_verify_limiter,
)
from registry_auth.main import app as fastapi_app
from registry_auth.services.auth_service import AuthService
from registry_auth.services.nonce_store import InMemoryNonceStore
from registry_auth.services.registry import RegistryError, RegistryEvent
from registry_auth.services.session_tokens import SessionIssuer

TEST_SECRET = "test-signing-secret"
NONCE_TTL_SECONDS = 120


class FakeClock:
    """Manually advanced replacement for ``time.time``."""

    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeRegistry:
    """In-process stand-in for the on-chain registry."""

    def __init__(self) -> None:
        self.keys: set[tuple[str, str]] = set()
        self.events: list[RegistryEvent] = []
        self.fail = False
        self.is_key_calls: list[tuple[str, str]] = []
        self.windows: list[int] = []

    def authorize(self, user_id: str, address: str) -> None:
        self.keys.add((user_id.lower(), address.lower()))

    async def is_key(self, user_id: str, address: str) -> bool:
        self.is_key_calls.append((user_id, address))
        # Yield so concurrent verifications interleave like real network calls.
        await asyncio.sleep(0)
        if self.fail:
            raise RegistryError("eth_call request failed: connection refused")
        return (user_id.lower(), address.lower()) in self.keys

    async def recent_events(self, window: int) -> list[RegistryEvent]:
        self.windows.append(window)
        await asyncio.sleep(0)
        if self.fail:
            raise RegistryError("eth_getLogs request failed: connection refused")
        return list(self.events)


def sign_nonce(account: LocalAccount, nonce: str) -> str:
    """Sign the raw nonce bytes the way a browser wallet's personal_sign does."""
    signed = account.sign_message(encode_defunct(primitive=decode_hex(nonce)))
    return "0x" + bytes(signed.signature).hex()


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def nonce_store(clock: FakeClock) -> InMemoryNonceStore:
    return InMemoryNonceStore(NONCE_TTL_SECONDS, clock=clock)


@pytest.fixture()
def registry() -> FakeRegistry:
    return FakeRegistry()


@pytest.fixture()
def session_issuer() -> SessionIssuer:
    return SessionIssuer(TEST_SECRET, ttl_seconds=3600)


@pytest.fixture()
def auth_service(
    nonce_store: InMemoryNonceStore,
    registry: FakeRegistry,
    session_issuer: SessionIssuer,
) -> AuthService:
    return AuthService(nonce_store, registry, session_issuer, events_block_window=5000)


@pytest.fixture()
def wallet() -> LocalAccount:
    return Account.create()


@pytest.fixture()
def other_wallet() -> LocalAccount:
    return Account.create()


@pytest.fixture(scope="session")
def app() -> FastAPI:
    return fastapi_app


@pytest.fixture(autouse=True)
def override_dependencies(app: FastAPI, auth_service: AuthService) -> Iterator[None]:
    app.dependency_overrides[get_auth_service] = lambda: auth_service
    app.dependency_overrides[get_challenge_limiter] = lambda: None
    app.dependency_overrides[get_verify_limiter] = lambda: None
    try:
        yield
    finally:
        app.dependency_overrides.clear()


@pytest.fixture()
def client(app: FastAPI) -> Iterator[TestClient]:
    with TestClient(app, base_url="http://test") as test_client:
        yield test_client
