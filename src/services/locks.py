"""
Keyed asyncio locks with bounded wait

One lock per key ("wallet:12", "bot:7", "address:12:tron"). Acquisition
gives up after `timeout` seconds and raises Busy instead of waiting forever.
Locks are process-local; wallet rows are additionally loaded FOR UPDATE so a
multi-process PostgreSQL deployment serializes in the database as well.
"""

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict, Optional

from loguru import logger

from src.core.exceptions import Busy


class LockRegistry:
    """Registry of per-key asyncio locks"""

    def __init__(self, default_timeout: float = 5.0):
        self.default_timeout = default_timeout
        self._locks: Dict[str, asyncio.Lock] = {}
        self._waiters: Dict[str, int] = {}

    def _get(self, key: str) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        return lock

    def is_locked(self, key: str) -> bool:
        lock = self._locks.get(key)
        return lock is not None and lock.locked()

    @asynccontextmanager
    async def hold(self, key: str, timeout: Optional[float] = None) -> AsyncIterator[None]:
        """
        Hold the lock for `key` for the duration of the block

        Args:
            key: Lock key
            timeout: Max seconds to wait (defaults to registry timeout)

        Raises:
            Busy: lock not acquired in time
        """
        wait = self.default_timeout if timeout is None else timeout
        lock = self._get(key)
        self._waiters[key] = self._waiters.get(key, 0) + 1

        try:
            try:
                async with asyncio.timeout(wait):
                    await lock.acquire()
            except asyncio.TimeoutError:
                logger.warning(f"Lock {key} busy after {wait:.2f}s")
                raise Busy(f"Resource {key} is busy, retry later", key=key)

            try:
                yield
            finally:
                lock.release()
        finally:
            self._waiters[key] -= 1
            # Drop idle locks so the registry does not grow without bound
            if self._waiters[key] == 0:
                del self._waiters[key]
                if not lock.locked():
                    self._locks.pop(key, None)


def wallet_key(wallet_id: int) -> str:
    return f"wallet:{wallet_id}"


def bot_key(instance_id: int) -> str:
    return f"bot:{instance_id}"


def address_key(wallet_id: int, network: str) -> str:
    return f"address:{wallet_id}:{network}"
