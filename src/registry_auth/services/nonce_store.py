"""Single-use, time-limited challenge nonces keyed by userId.

Each userId is in one of three states: no challenge, a pending challenge
(nonce plus expiry), or a consumed challenge. Issuing overwrites whatever is
there; consuming is a compare-and-delete so that one nonce can back at most
one successful verification.
"""

from __future__ import annotations

import logging
import secrets
import time
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from threading import Lock
from typing import Protocol

from redis import asyncio as aioredis

from registry_auth.core.settings import Settings

logger = logging.getLogger(__name__)

NONCE_LENGTH_BYTES = 32


class ChallengeState(Enum):
    """Lifecycle of the challenge held for one userId."""

    ABSENT = "absent"
    PENDING = "pending"
    CONSUMED = "consumed"


class NonceStore(Protocol):
    """Operations the auth service needs from a challenge backend."""

    ttl_seconds: int

    async def issue(self, user_id: str) -> str: ...

    async def peek(self, user_id: str) -> str | None: ...

    async def consume(self, user_id: str) -> None: ...

    async def consume_if(self, user_id: str, nonce: str) -> bool: ...

    async def state(self, user_id: str) -> ChallengeState: ...

    async def clear(self) -> None: ...

    async def close(self) -> None: ...


def generate_nonce() -> str:
    """Return 32 random bytes as ``0x``-prefixed hex."""
    return "0x" + secrets.token_hex(NONCE_LENGTH_BYTES)


@dataclass(frozen=True)
class _Entry:
    state: ChallengeState
    nonce: str
    expires_at: float


class InMemoryNonceStore:
    """Process-local challenge store guarded by a single lock.

    Expired entries are evicted lazily when read, and swept in bulk on issue
    at most once per ``sweep_interval_seconds``. Methods are coroutines to
    satisfy ``NonceStore`` but never suspend, so each call is atomic with
    respect to other tasks on the loop.
    """

    def __init__(
        self,
        ttl_seconds: int,
        *,
        sweep_interval_seconds: float = 60.0,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.ttl_seconds = ttl_seconds
        self._sweep_interval = sweep_interval_seconds
        self._clock = clock
        self._entries: dict[str, _Entry] = {}
        self._lock = Lock()
        self._last_sweep = clock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    async def issue(self, user_id: str) -> str:
        """Store a fresh nonce for ``user_id``, replacing any prior challenge."""
        nonce = generate_nonce()
        with self._lock:
            now = self._clock()
            if now - self._last_sweep >= self._sweep_interval:
                self._sweep_locked(now)
            self._entries[user_id] = _Entry(
                state=ChallengeState.PENDING,
                nonce=nonce,
                expires_at=now + self.ttl_seconds,
            )
        return nonce

    async def peek(self, user_id: str) -> str | None:
        """Return the pending nonce, or None if absent, consumed or expired."""
        with self._lock:
            entry = self._live_entry_locked(user_id, self._clock())
            if entry is None or entry.state is not ChallengeState.PENDING:
                return None
            return entry.nonce

    async def consume(self, user_id: str) -> None:
        """Invalidate whatever challenge is pending. Idempotent."""
        with self._lock:
            entry = self._live_entry_locked(user_id, self._clock())
            if entry is not None and entry.state is ChallengeState.PENDING:
                self._entries[user_id] = _Entry(
                    ChallengeState.CONSUMED, entry.nonce, entry.expires_at
                )

    async def consume_if(self, user_id: str, nonce: str) -> bool:
        """Consume the challenge only if ``nonce`` is still the pending one.

        Returns:
            True for exactly one caller per issued nonce; False if the nonce
            was already consumed, replaced or has expired.
        """
        with self._lock:
            entry = self._live_entry_locked(user_id, self._clock())
            if (
                entry is None
                or entry.state is not ChallengeState.PENDING
                or not secrets.compare_digest(entry.nonce, nonce)
            ):
                return False
            self._entries[user_id] = _Entry(
                ChallengeState.CONSUMED, entry.nonce, entry.expires_at
            )
            return True

    async def state(self, user_id: str) -> ChallengeState:
        with self._lock:
            entry = self._live_entry_locked(user_id, self._clock())
            return ChallengeState.ABSENT if entry is None else entry.state

    def sweep(self) -> int:
        """Drop every expired entry and return how many were removed."""
        with self._lock:
            return self._sweep_locked(self._clock())

    async def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    async def close(self) -> None:
        return None

    def _live_entry_locked(self, user_id: str, now: float) -> _Entry | None:
        entry = self._entries.get(user_id)
        if entry is None:
            return None
        if now > entry.expires_at:
            del self._entries[user_id]
            return None
        return entry

    def _sweep_locked(self, now: float) -> int:
        expired = [key for key, entry in self._entries.items() if now > entry.expires_at]
        for key in expired:
            del self._entries[key]
        self._last_sweep = now
        if expired:
            logger.debug("Swept %d expired challenges", len(expired))
        return len(expired)


# KEYS[1] = pending key, KEYS[2] = tombstone key, ARGV[1] = expected nonce ("" = any)
_CONSUME_SCRIPT = """
local current = redis.call('GET', KEYS[1])
if not current then
    return 0
end
if ARGV[1] ~= '' and current ~= ARGV[1] then
    return 0
end
local ttl = redis.call('PTTL', KEYS[1])
redis.call('DEL', KEYS[1])
if ttl > 0 then
    redis.call('SET', KEYS[2], '1', 'PX', ttl)
end
return 1
"""



class RedisNonceStore:
    """Challenge store shared between processes through Redis.

    Expiry is delegated to Redis key TTLs; compare-and-delete runs as a
    server-side script so it is atomic across workers. All calls go through
    the asyncio client and never block the event loop.
    """

    def __init__(
        self, client: aioredis.Redis, ttl_seconds: int, *, prefix: str = "challenge"
    ) -> None:
        self.ttl_seconds = ttl_seconds
        self._redis = client
        self._prefix = prefix
        self._consume_script = client.register_script(_CONSUME_SCRIPT)

    def _pending_key(self, user_id: str) -> str:
        return f"{self._prefix}:pending:{user_id}"

    def _consumed_key(self, user_id: str) -> str:
        return f"{self._prefix}:consumed:{user_id}"

    async def issue(self, user_id: str) -> str:
        nonce = generate_nonce()
        async with self._redis.pipeline(transaction=True) as pipe:
            pipe.set(self._pending_key(user_id), nonce, ex=self.ttl_seconds)
            pipe.delete(self._consumed_key(user_id))
            await pipe.execute()
        return nonce

    async def peek(self, user_id: str) -> str | None:
        value = await self._redis.get(self._pending_key(user_id))
        if value is None:
            return None
        return value.decode() if isinstance(value, bytes) else str(value)

    async def consume(self, user_id: str) -> None:
        await self._consume_script(
            keys=[self._pending_key(user_id), self._consumed_key(user_id)],
            args=[""],
        )

    async def consume_if(self, user_id: str, nonce: str) -> bool:
        result = await self._consume_script(
            keys=[self._pending_key(user_id), self._consumed_key(user_id)],
            args=[nonce],
        )
        return bool(result)

    async def state(self, user_id: str) -> ChallengeState:
        if await self._redis.exists(self._pending_key(user_id)):
            return ChallengeState.PENDING
        if await self._redis.exists(self._consumed_key(user_id)):
            return ChallengeState.CONSUMED
        return ChallengeState.ABSENT

    async def clear(self) -> None:
        keys = [key async for key in self._redis.scan_iter(match=f"{self._prefix}:*")]
        if keys:
            await self._redis.delete(*keys)

    async def close(self) -> None:
        await self._redis.aclose()


def build_nonce_store(config: Settings) -> NonceStore:
    """Construct the backend selected by ``NONCE_STORE_BACKEND``."""
    if config.nonce_store_backend == "redis":
        logger.info("Using redis nonce store at %s", config.redis_url)
        return RedisNonceStore(aioredis.from_url(config.redis_url), config.nonce_ttl_seconds)
    return InMemoryNonceStore(
        config.nonce_ttl_seconds,
        sweep_interval_seconds=config.nonce_sweep_interval_seconds,
    )
