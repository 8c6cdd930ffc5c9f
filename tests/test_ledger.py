"""Revocation ledger tests — in-memory and Redis implementations."""

import asyncio
from datetime import timedelta

import fakeredis
import pytest
import pytest_asyncio

from myauth.auth.ledger import (
    InMemoryRevocationLedger,
    RedisRevocationLedger,
    build_ledger,
    ledger_key,
)
from myauth.services.ledger_janitor import LedgerJanitor


# ═══════════════════════════════════════════════════════════
# In-memory
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_activate_then_deactivate(ledger, clock):
    await ledger.activate("tok-1", clock() + timedelta(days=7))
    assert await ledger.is_active("tok-1")

    await ledger.deactivate("tok-1")
    assert not await ledger.is_active("tok-1")


@pytest.mark.asyncio
async def test_unknown_token_is_not_active(ledger):
    assert not await ledger.is_active("never-issued")


@pytest.mark.asyncio
async def test_deactivate_is_idempotent(ledger):
    await ledger.deactivate("never-issued")
    await ledger.deactivate("never-issued")
    assert len(ledger) == 0


@pytest.mark.asyncio
async def test_raw_tokens_are_not_stored(ledger, clock):
    await ledger.activate("secret-token", clock() + timedelta(days=1))
    assert "secret-token" not in ledger._entries
    assert ledger_key("secret-token") in ledger._entries


@pytest.mark.asyncio
async def test_expired_entries_are_inactive_and_purged_lazily(ledger, clock):
    await ledger.activate("tok", clock() + timedelta(minutes=1))
    clock.advance(minutes=2)

    assert not await ledger.is_active("tok")
    assert len(ledger) == 0


@pytest.mark.asyncio
async def test_purge_expired(ledger, clock):
    await ledger.activate("old", clock() + timedelta(minutes=1))
    await ledger.activate("new", clock() + timedelta(days=1))
    clock.advance(minutes=5)

    assert await ledger.purge_expired() == 1
    assert await ledger.is_active("new")
    assert len(ledger) == 1


@pytest.mark.asyncio
async def test_concurrent_activations_and_deactivations(ledger, clock):
    """Many simultaneous logins/logouts must not lose updates."""
    expires = clock() + timedelta(days=1)
    tokens = [f"tok-{i}" for i in range(200)]

    await asyncio.gather(*(ledger.activate(t, expires) for t in tokens))
    assert len(ledger) == 200

    await asyncio.gather(*(ledger.deactivate(t) for t in tokens[::2]))
    active = await asyncio.gather(*(ledger.is_active(t) for t in tokens))
    assert active == [i % 2 == 1 for i in range(200)]


@pytest.mark.asyncio
async def test_concurrent_access_from_threads(ledger, clock):
    expires = clock() + timedelta(days=1)

    def worker(n):
        loop = asyncio.new_event_loop()
        try:
            for i in range(50):
                loop.run_until_complete(ledger.activate(f"t{n}-{i}", expires))
        finally:
            loop.close()

    await asyncio.gather(*(asyncio.to_thread(worker, n) for n in range(8)))
    assert len(ledger) == 400


# ═══════════════════════════════════════════════════════════
# Redis
# ═══════════════════════════════════════════════════════════


@pytest_asyncio.fixture()
async def redis_ledger(clock):
    redis = fakeredis.FakeAsyncRedis(decode_responses=True)
    yield RedisRevocationLedger(redis, clock=clock)
    await redis.aclose()


@pytest.mark.asyncio
async def test_redis_activate_then_deactivate(redis_ledger, clock):
    await redis_ledger.activate("tok-1", clock() + timedelta(days=7))
    assert await redis_ledger.is_active("tok-1")

    await redis_ledger.deactivate("tok-1")
    assert not await redis_ledger.is_active("tok-1")
    # Second logout is a no-op
    await redis_ledger.deactivate("tok-1")


@pytest.mark.asyncio
async def test_redis_entries_carry_remaining_lifetime(redis_ledger, clock):
    await redis_ledger.activate("tok", clock() + timedelta(hours=1))

    key = f"myauth:refresh:{ledger_key('tok')}"
    ttl = await redis_ledger.redis.ttl(key)
    assert 3590 <= ttl <= 3600


@pytest.mark.asyncio
async def test_redis_skips_already_expired_tokens(redis_ledger, clock):
    await redis_ledger.activate("tok", clock() - timedelta(seconds=1))
    assert not await redis_ledger.is_active("tok")


@pytest.mark.asyncio
async def test_redis_purge_is_noop(redis_ledger):
    assert await redis_ledger.purge_expired() == 0


# ═══════════════════════════════════════════════════════════
# Factory + janitor
# ═══════════════════════════════════════════════════════════


def test_build_ledger_falls_back_to_memory_without_redis():
    assert isinstance(build_ledger("redis", None), InMemoryRevocationLedger)
    assert isinstance(build_ledger("memory"), InMemoryRevocationLedger)


def test_build_ledger_uses_redis_when_available():
    redis = fakeredis.FakeAsyncRedis()
    assert isinstance(build_ledger("redis", redis), RedisRevocationLedger)


def test_build_ledger_rejects_unknown_backend():
    with pytest.raises(ValueError):
        build_ledger("etcd")


@pytest.mark.asyncio
async def test_janitor_purges_expired_entries(ledger, clock):
    await ledger.activate("old", clock() + timedelta(minutes=1))
    clock.advance(minutes=2)

    janitor = LedgerJanitor(ledger, poll_interval=0.01)
    assert await janitor.purge_once() == 1


@pytest.mark.asyncio
async def test_janitor_loop_stops(ledger):
    janitor = LedgerJanitor(ledger, poll_interval=0.01)
    task = asyncio.create_task(janitor.run_loop())
    await asyncio.sleep(0.05)
    janitor.stop()
    await asyncio.wait_for(task, timeout=1)
    assert task.done()
