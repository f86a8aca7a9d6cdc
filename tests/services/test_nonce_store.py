"""Tests for the challenge nonce stores."""

import asyncio

import pytest
from fakeredis import FakeAsyncRedis, FakeServer

from registry_auth.core.settings import Settings
from registry_auth.services.nonce_store import (
    ChallengeState,
    InMemoryNonceStore,
    RedisNonceStore,
    build_nonce_store,
)

USER = "0x" + "aa" * 32
OTHER_USER = "0x" + "bb" * 32


class TestInMemoryNonceStore:
    @pytest.mark.asyncio
    async def test_issue_returns_32_random_bytes_as_hex(self, nonce_store) -> None:
        nonce = await nonce_store.issue(USER)
        assert nonce.startswith("0x")
        assert len(bytes.fromhex(nonce[2:])) == 32
        assert await nonce_store.issue(USER) != nonce

    @pytest.mark.asyncio
    async def test_peek_returns_pending_nonce(self, nonce_store) -> None:
        nonce = await nonce_store.issue(USER)
        assert await nonce_store.peek(USER) == nonce
        assert await nonce_store.state(USER) is ChallengeState.PENDING

    @pytest.mark.asyncio
    async def test_peek_unknown_user_is_absent(self, nonce_store) -> None:
        assert await nonce_store.peek(USER) is None
        assert await nonce_store.state(USER) is ChallengeState.ABSENT

    @pytest.mark.asyncio
    async def test_new_challenge_replaces_previous(self, nonce_store) -> None:
        first = await nonce_store.issue(USER)
        second = await nonce_store.issue(USER)
        assert await nonce_store.peek(USER) == second
        assert await nonce_store.consume_if(USER, first) is False
        assert await nonce_store.consume_if(USER, second) is True

    @pytest.mark.asyncio
    async def test_challenges_are_keyed_per_user(self, nonce_store) -> None:
        mine = await nonce_store.issue(USER)
        theirs = await nonce_store.issue(OTHER_USER)
        await nonce_store.consume(USER)
        assert await nonce_store.peek(USER) is None
        assert await nonce_store.peek(OTHER_USER) == theirs
        assert await nonce_store.consume_if(OTHER_USER, mine) is False

    @pytest.mark.asyncio
    async def test_nonce_usable_until_ttl_elapses(self, nonce_store, clock) -> None:
        nonce = await nonce_store.issue(USER)
        clock.advance(120)
        assert await nonce_store.peek(USER) == nonce
        clock.advance(0.001)
        assert await nonce_store.peek(USER) is None
        assert await nonce_store.state(USER) is ChallengeState.ABSENT

    @pytest.mark.asyncio
    async def test_expired_nonce_cannot_be_consumed(self, nonce_store, clock) -> None:
        nonce = await nonce_store.issue(USER)
        clock.advance(121)
        assert await nonce_store.consume_if(USER, nonce) is False

    @pytest.mark.asyncio
    async def test_expired_entry_is_evicted_on_read(self, nonce_store, clock) -> None:
        await nonce_store.issue(USER)
        clock.advance(121)
        assert len(nonce_store) == 1
        await nonce_store.peek(USER)
        assert len(nonce_store) == 0

    @pytest.mark.asyncio
    async def test_consume_is_idempotent(self, nonce_store) -> None:
        await nonce_store.issue(USER)
        await nonce_store.consume(USER)
        await nonce_store.consume(USER)
        assert await nonce_store.peek(USER) is None
        assert await nonce_store.state(USER) is ChallengeState.CONSUMED

    @pytest.mark.asyncio
    async def test_consume_without_challenge_is_noop(self, nonce_store) -> None:
        await nonce_store.consume(USER)
        assert await nonce_store.state(USER) is ChallengeState.ABSENT

    @pytest.mark.asyncio
    async def test_consume_if_succeeds_once(self, nonce_store) -> None:
        nonce = await nonce_store.issue(USER)
        assert await nonce_store.consume_if(USER, nonce) is True
        assert await nonce_store.consume_if(USER, nonce) is False
        assert await nonce_store.peek(USER) is None
        assert await nonce_store.state(USER) is ChallengeState.CONSUMED

    @pytest.mark.asyncio
    async def test_consumed_tombstone_expires_with_challenge(self, nonce_store, clock) -> None:
        nonce = await nonce_store.issue(USER)
        await nonce_store.consume_if(USER, nonce)
        clock.advance(121)
        assert await nonce_store.state(USER) is ChallengeState.ABSENT

    @pytest.mark.asyncio
    async def test_reissue_after_consumption_is_pending_again(self, nonce_store) -> None:
        await nonce_store.consume_if(USER, await nonce_store.issue(USER))
        nonce = await nonce_store.issue(USER)
        assert await nonce_store.state(USER) is ChallengeState.PENDING
        assert await nonce_store.peek(USER) == nonce

    @pytest.mark.asyncio
    async def test_sweep_removes_only_expired_entries(self, nonce_store, clock) -> None:
        await nonce_store.issue(USER)
        clock.advance(100)
        await nonce_store.issue(OTHER_USER)
        clock.advance(30)
        assert nonce_store.sweep() == 1
        assert len(nonce_store) == 1
        assert await nonce_store.peek(OTHER_USER) is not None

    @pytest.mark.asyncio
    async def test_issue_sweeps_expired_entries_periodically(self, clock) -> None:
        store = InMemoryNonceStore(120, sweep_interval_seconds=60, clock=clock)
        for index in range(50):
            await store.issue(f"0x{index:064x}")
        clock.advance(200)
        await store.issue(USER)
        assert len(store) == 1

    @pytest.mark.asyncio
    async def test_clear_drops_everything(self, nonce_store) -> None:
        await nonce_store.issue(USER)
        await nonce_store.issue(OTHER_USER)
        await nonce_store.clear()
        assert len(nonce_store) == 0

    @pytest.mark.asyncio
    async def test_concurrent_consume_if_has_single_winner(self) -> None:
        store = InMemoryNonceStore(120)
        nonce = await store.issue(USER)
        results = await asyncio.gather(*(store.consume_if(USER, nonce) for _ in range(64)))
        assert results.count(True) == 1


class TestRedisNonceStore:
    """Runs the store, including its Lua compare-and-delete, against fakeredis."""

    @pytest.fixture()
    def redis_client(self) -> FakeAsyncRedis:
        return FakeAsyncRedis(server=FakeServer())

    @pytest.fixture()
    def store(self, redis_client) -> RedisNonceStore:
        return RedisNonceStore(redis_client, 120)

    @pytest.mark.asyncio
    async def test_issue_sets_pending_key_with_ttl(self, store, redis_client) -> None:
        nonce = await store.issue(USER)
        assert await redis_client.get(f"challenge:pending:{USER}") == nonce.encode()
        assert 0 < await redis_client.ttl(f"challenge:pending:{USER}") <= 120
        assert await store.peek(USER) == nonce
        assert await store.state(USER) is ChallengeState.PENDING

    @pytest.mark.asyncio
    async def test_unknown_user_is_absent(self, store) -> None:
        assert await store.peek(USER) is None
        assert await store.state(USER) is ChallengeState.ABSENT
        assert await store.consume_if(USER, "0x" + "00" * 32) is False

    @pytest.mark.asyncio
    async def test_consume_if_requires_the_pending_nonce(self, store) -> None:
        first = await store.issue(USER)
        second = await store.issue(USER)
        assert await store.consume_if(USER, first) is False
        assert await store.peek(USER) == second
        assert await store.consume_if(USER, second) is True

    @pytest.mark.asyncio
    async def test_consume_if_leaves_tombstone_with_remaining_ttl(self, store, redis_client) -> None:
        nonce = await store.issue(USER)
        assert await store.consume_if(USER, nonce) is True

        assert await store.peek(USER) is None
        assert await store.state(USER) is ChallengeState.CONSUMED
        assert await redis_client.exists(f"challenge:pending:{USER}") == 0
        assert 0 < await redis_client.pttl(f"challenge:consumed:{USER}") <= 120_000
        assert await store.consume_if(USER, nonce) is False

    @pytest.mark.asyncio
    async def test_concurrent_consume_if_has_single_winner(self, store) -> None:
        nonce = await store.issue(USER)
        results = await asyncio.gather(*(store.consume_if(USER, nonce) for _ in range(32)))
        assert results.count(True) == 1

    @pytest.mark.asyncio
    async def test_consume_invalidates_any_pending_nonce(self, store) -> None:
        await store.issue(USER)
        await store.consume(USER)
        await store.consume(USER)
        assert await store.peek(USER) is None
        assert await store.state(USER) is ChallengeState.CONSUMED

    @pytest.mark.asyncio
    async def test_reissue_clears_tombstone(self, store) -> None:
        await store.consume_if(USER, await store.issue(USER))
        nonce = await store.issue(USER)
        assert await store.state(USER) is ChallengeState.PENDING
        assert await store.peek(USER) == nonce

    @pytest.mark.asyncio
    async def test_clear_only_touches_own_prefix(self, store, redis_client) -> None:
        await redis_client.set("unrelated", "1")
        await store.issue(USER)
        await store.consume_if(OTHER_USER, await store.issue(OTHER_USER))
        await store.clear()
        assert await store.state(USER) is ChallengeState.ABSENT
        assert await store.state(OTHER_USER) is ChallengeState.ABSENT
        assert await redis_client.get("unrelated") == b"1"


def test_build_nonce_store_defaults_to_memory() -> None:
    config = Settings(
        REGISTRY_ADDR="0x5fbdb2315678afecb367f032d93f642f64180aa3",
        JWT_SECRET="secret",
        NONCE_STORE_BACKEND="memory",
    )
    store = build_nonce_store(config)
    assert isinstance(store, InMemoryNonceStore)
    assert store.ttl_seconds == 120


def test_build_nonce_store_uses_redis_when_configured(mocker) -> None:
    from_url = mocker.patch(
        "registry_auth.services.nonce_store.aioredis.from_url",
        return_value=FakeAsyncRedis(),
    )
    config = Settings(
        REGISTRY_ADDR="0x5fbdb2315678afecb367f032d93f642f64180aa3",
        JWT_SECRET="secret",
        NONCE_STORE_BACKEND="redis",
        REDIS_URL="redis://cache:6379/1",
    )
    store = build_nonce_store(config)
    assert isinstance(store, RedisNonceStore)
    from_url.assert_called_once_with("redis://cache:6379/1")
