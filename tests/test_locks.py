"""
Unit tests for keyed locks with bounded wait
"""

import asyncio
import pytest

from src.core.exceptions import Busy
from src.services.locks import LockRegistry, address_key, bot_key, wallet_key


def test_lock_keys():
    assert wallet_key(12) == "wallet:12"
    assert bot_key(7) == "bot:7"
    assert address_key(12, "tron") == "address:12:tron"


@pytest.mark.asyncio
async def test_hold_serializes_same_key():
    """Test two holders of one key never overlap"""
    locks = LockRegistry(default_timeout=1.0)
    trace = []

    async def worker(name: str):
        async with locks.hold("wallet:1"):
            trace.append(f"{name}-in")
            await asyncio.sleep(0.01)
            trace.append(f"{name}-out")

    await asyncio.gather(worker("a"), worker("b"))

    assert trace in (
        ["a-in", "a-out", "b-in", "b-out"],
        ["b-in", "b-out", "a-in", "a-out"],
    )


@pytest.mark.asyncio
async def test_hold_raises_busy_after_timeout():
    """Test bounded wait gives up with Busy"""
    locks = LockRegistry(default_timeout=1.0)

    async with locks.hold("bot:3"):
        assert locks.is_locked("bot:3")
        with pytest.raises(Busy) as exc_info:
            async with locks.hold("bot:3", timeout=0.05):
                pass

    assert exc_info.value.details["key"] == "bot:3"
    assert exc_info.value.http_status == 503


@pytest.mark.asyncio
async def test_different_keys_do_not_block():
    locks = LockRegistry(default_timeout=0.05)

    async with locks.hold("wallet:1"):
        async with locks.hold("wallet:2"):
            assert locks.is_locked("wallet:1")
            assert locks.is_locked("wallet:2")


@pytest.mark.asyncio
async def test_released_lock_is_dropped():
    """Test idle keys do not accumulate in the registry"""
    locks = LockRegistry()

    async with locks.hold("address:1:eth"):
        pass

    assert not locks.is_locked("address:1:eth")
    assert locks._locks == {}
    assert locks._waiters == {}


@pytest.mark.asyncio
async def test_lock_released_on_error():
    locks = LockRegistry(default_timeout=0.05)

    with pytest.raises(RuntimeError):
        async with locks.hold("wallet:9"):
            raise RuntimeError("boom")

    async with locks.hold("wallet:9"):
        assert locks.is_locked("wallet:9")


@pytest.mark.asyncio
async def test_cancelled_waiter_leaves_lock_free():
    """Test a waiter cancelled mid-acquire never keeps the lock"""
    locks = LockRegistry(default_timeout=1.0)
    release = asyncio.Event()

    async def holder():
        async with locks.hold("wallet:5"):
            await release.wait()

    async def waiter():
        async with locks.hold("wallet:5"):
            pass

    holding = asyncio.create_task(holder())
    await asyncio.sleep(0)
    waiting = asyncio.create_task(waiter())
    await asyncio.sleep(0.01)

    release.set()
    waiting.cancel()
    await holding
    with pytest.raises(asyncio.CancelledError):
        await waiting

    async with locks.hold("wallet:5", timeout=0.05):
        assert locks.is_locked("wallet:5")
    assert locks._locks == {}
    assert locks._waiters == {}
