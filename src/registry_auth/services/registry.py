"""Read-only client for the on-chain key registry.

The registry is reached over Ethereum JSON-RPC. Two things are consumed:

- ``isKey(bytes32 userId, address key) -> bool`` via ``eth_call``
- membership-change events via ``eth_getLogs`` over a recent block window

Every call is bounded by the configured timeout; transport failures, RPC
errors and undecodable replies all surface as ``RegistryError`` so that
callers can tell "the registry said no" apart from "the registry could not
be asked".
"""

from __future__ import annotations

import asyncio
import itertools
import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any

import httpx
from eth_abi import decode, encode
from eth_abi.exceptions import DecodingError
from eth_utils import (
    decode_hex,
    encode_hex,
    event_signature_to_log_topic,
    function_signature_to_4byte_selector,
    to_checksum_address,
)

from registry_auth.core.settings import Settings, settings
from registry_auth.utils.hash import user_id_to_bytes

logger = logging.getLogger(__name__)

IS_KEY_SIGNATURE = "isKey(bytes32,address)"
IS_KEY_SELECTOR = function_signature_to_4byte_selector(IS_KEY_SIGNATURE)


class RegistryError(RuntimeError):
    """Raised when the registry cannot be queried or replies with garbage."""


class RegistryTimeoutError(RegistryError):
    """Raised when a registry call exceeds the configured timeout."""


@dataclass(frozen=True)
class EventDefinition:
    """An event emitted by the registry whose parameters are all indexed."""

    name: str
    inputs: tuple[tuple[str, str], ...]

    @property
    def signature(self) -> str:
        return f"{self.name}({','.join(kind for _, kind in self.inputs)})"

    @property
    def topic(self) -> bytes:
        return event_signature_to_log_topic(self.signature)


REGISTRY_EVENTS: tuple[EventDefinition, ...] = (
    EventDefinition("UserRegistered", (("userId", "bytes32"), ("key", "address"))),
    EventDefinition("KeyAdded", (("userId", "bytes32"), ("key", "address"))),
    EventDefinition("KeyRemoved", (("userId", "bytes32"), ("key", "address"))),
    EventDefinition(
        "RecoveryProposed",
        (("userId", "bytes32"), ("newKey", "address"), ("guardian", "address")),
    ),
    EventDefinition("RecoveryExecuted", (("userId", "bytes32"), ("newKey", "address"))),
)

_EVENTS_BY_TOPIC: dict[bytes, EventDefinition] = {event.topic: event for event in REGISTRY_EVENTS}


@dataclass(frozen=True)
class RegistryEvent:
    """A decoded registry log entry."""

    name: str
    args: dict[str, str]
    block_number: int
    tx_hash: str


@dataclass(frozen=True)
class RegistryConfig:
    """Immutable configuration for registry access."""

    rpc_url: str
    registry_address: str
    timeout_seconds: float


def load_registry_config(config: Settings | None = None) -> RegistryConfig:
    """Build configuration object from global settings."""
    config = config or settings
    return RegistryConfig(
        rpc_url=config.rpc_url,
        registry_address=config.registry_addr,
        timeout_seconds=float(config.rpc_timeout_seconds),
    )


def _topic_value(topic: bytes, kind: str) -> str:
    (value,) = decode([kind], topic)
    if kind == "address":
        return to_checksum_address(value)
    return encode_hex(value)


def decode_log(log: Mapping[str, Any]) -> RegistryEvent | None:
    """Decode one ``eth_getLogs`` entry, or return None if it is not ours."""
    try:
        topics = [decode_hex(topic) for topic in log.get("topics") or []]
        if not topics:
            return None
        event = _EVENTS_BY_TOPIC.get(topics[0])
        if event is None or len(topics) != len(event.inputs) + 1:
            return None
        args = {
            name: _topic_value(topic, kind)
            for (name, kind), topic in zip(event.inputs, topics[1:])
        }
        return RegistryEvent(
            name=event.name,
            args=args,
            block_number=int(log["blockNumber"], 16),
            tx_hash=str(log["transactionHash"]),
        )
    except (DecodingError, KeyError, TypeError, ValueError) as err:
        logger.debug("Skipping undecodable registry log: %s", err)
        return None


class RegistryClient:
    """JSON-RPC wrapper for the registry contract."""

    def __init__(
        self,
        config: RegistryConfig | None = None,
        *,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.config = config or load_registry_config()
        self._client = client
        self._client_lock = asyncio.Lock()
        self._ids = itertools.count(1)

    async def _ensure_client(self) -> httpx.AsyncClient:
        async with self._client_lock:
            if self._client is None:
                self._client = httpx.AsyncClient(
                    timeout=httpx.Timeout(self.config.timeout_seconds),
                )
        return self._client

    async def _rpc(self, method: str, params: Sequence[Any]) -> Any:
        client = await self._ensure_client()
        payload = {
            "jsonrpc": "2.0",
            "id": next(self._ids),
            "method": method,
            "params": list(params),
        }
        try:
            response = await asyncio.wait_for(
                client.post(self.config.rpc_url, json=payload),
                timeout=self.config.timeout_seconds,
            )
        except (asyncio.TimeoutError, httpx.TimeoutException) as exc:
            raise RegistryTimeoutError(f"{method} timed out") from exc
        except httpx.HTTPError as exc:
            raise RegistryError(f"{method} request failed: {exc}") from exc

        if response.status_code >= 400:
            raise RegistryError(f"{method} responded with HTTP {response.status_code}")
        try:
            body = response.json()
        except ValueError as exc:
            raise RegistryError(f"{method} returned invalid JSON") from exc
        if not isinstance(body, dict):
            raise RegistryError(f"{method} returned an unexpected payload")
        if body.get("error"):
            error = body["error"]
            message = error.get("message") if isinstance(error, dict) else error
            raise RegistryError(f"{method} failed: {message}")
        if "result" not in body:
            raise RegistryError(f"{method} returned no result")
        return body["result"]

    async def is_key(self, user_id: str, address: str) -> bool:
        """Return whether ``address`` is currently a registered key for ``user_id``."""
        call_data = IS_KEY_SELECTOR + encode(
            ["bytes32", "address"],
            [user_id_to_bytes(user_id), to_checksum_address(address)],
        )
        result = await self._rpc(
            "eth_call",
            [{"to": self.config.registry_address, "data": encode_hex(call_data)}, "latest"],
        )
        try:
            (authorized,) = decode(["bool"], decode_hex(result))
        except (DecodingError, TypeError, ValueError) as exc:
            raise RegistryError("isKey returned an undecodable result") from exc
        return bool(authorized)

    async def block_number(self) -> int:
        result = await self._rpc("eth_blockNumber", [])
        try:
            return int(result, 16)
        except (TypeError, ValueError) as exc:
            raise RegistryError("eth_blockNumber returned an invalid value") from exc

    async def get_logs(self, from_block: int, to_block: int) -> list[dict[str, Any]]:
        result = await self._rpc(
            "eth_getLogs",
            [
                {
                    "address": self.config.registry_address,
                    "fromBlock": hex(from_block),
                    "toBlock": hex(to_block),
                }
            ],
        )
        if not isinstance(result, list):
            raise RegistryError("eth_getLogs returned an unexpected payload")
        return result

    async def recent_events(self, window: int) -> list[RegistryEvent]:
        """Return decoded registry events from the last ``window`` blocks."""
        head = await self.block_number()
        if head <= 0:
            return []
        logs = await self.get_logs(max(0, head - window), head)
        events = [decode_log(log) for log in logs]
        return [event for event in events if event is not None]

    async def close(self) -> None:
        async with self._client_lock:
            if self._client is not None:
                await self._client.aclose()
                self._client = None
