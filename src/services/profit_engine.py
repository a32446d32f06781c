# coding: utf-8
"""
Profit Engine

Simulated profit accrual for running bot instances.

Each tick draws a bounded delta from the template's per-tick range using a
generator seeded with (seed, instance_id, tick_index), so a trajectory is
fully determined by the instance's stored seed and replayable:

    value[k+1] = value[k] * (1 + d[k] / 100)

Ticks run under the per-instance lock shared with stop; a stopped instance
is never ticked.
"""

import random
import secrets
from decimal import Decimal, ROUND_HALF_EVEN
from typing import List, Optional, Set

from sqlalchemy import select
from sqlalchemy.ext.asyncio import async_sessionmaker
from loguru import logger

from config.config import LOCK_TIMEOUT_SEC, PROFIT_SEED
from src.core.exceptions import Busy
from src.database import crud
from src.database.models import BotInstance, BotTemplate, utcnow
from src.services.locks import LockRegistry, bot_key
from src.services.wallet_ledger import MONEY_QUANT, to_money


DELTA_QUANT = Decimal("0.0001")
PERCENT_QUANT = Decimal("0.01")


def draw_delta(seed: str, instance_id: int, tick_index: int, min_pct, max_pct) -> Decimal:
    """
    Per-tick change in percent

    Uniform in [min_pct, max_pct], quantized to 4 decimals and clamped
    back into the range after rounding.
    """
    low, high = Decimal(min_pct), Decimal(max_pct)
    rng = random.Random(f"{seed}:{instance_id}:{tick_index}")
    raw = rng.uniform(float(low), float(high))
    delta = Decimal(repr(raw)).quantize(DELTA_QUANT, rounding=ROUND_HALF_EVEN)
    return min(max(delta, low), high)


def next_value(value, delta) -> Decimal:
    """Apply a percent change; the result never goes below zero"""
    value = to_money(value)
    updated = (value * (Decimal(1) + Decimal(delta) / Decimal(100))).quantize(
        MONEY_QUANT, rounding=ROUND_HALF_EVEN
    )
    return max(updated, to_money(0))


def profit_percentage(investment, value) -> Decimal:
    """(value - investment) / investment * 100, 2 decimals"""
    investment = to_money(investment)
    if investment <= 0:
        return Decimal("0.00")
    pct = (to_money(value) - investment) / investment * Decimal(100)
    return pct.quantize(PERCENT_QUANT, rounding=ROUND_HALF_EVEN)


def replay(
    seed: str,
    instance_id: int,
    investment,
    min_pct,
    max_pct,
    ticks: int,
    start_tick: int = 0,
) -> List[Decimal]:
    """
    Value trajectory for `ticks` steps

    Returns:
        [value after tick 1, value after tick 2, ...]
    """
    value = to_money(investment)
    trajectory = []
    for tick_index in range(start_tick, start_tick + ticks):
        value = next_value(value, draw_delta(seed, instance_id, tick_index, min_pct, max_pct))
        trajectory.append(value)
    return trajectory


class ProfitEngine:
    """Tick registry and accrual of running instances"""

    def __init__(
        self,
        session_maker: async_sessionmaker,
        locks: LockRegistry,
        seed: Optional[str] = PROFIT_SEED,
        lock_timeout: float = LOCK_TIMEOUT_SEC,
    ):
        self._session_maker = session_maker
        self._locks = locks
        self.seed = seed
        self.lock_timeout = lock_timeout
        self._registered: Set[int] = set()

    def new_seed(self) -> str:
        """Seed stored on a new instance"""
        return self.seed if self.seed is not None else secrets.token_hex(16)

    # ===========================
    # REGISTRY
    # ===========================

    def register(self, instance_id: int) -> None:
        self._registered.add(instance_id)
        logger.debug(f"Bot {instance_id} registered for profit ticks")

    def unregister(self, instance_id: int) -> None:
        self._registered.discard(instance_id)
        logger.debug(f"Bot {instance_id} unregistered from profit ticks")

    def is_registered(self, instance_id: int) -> bool:
        return instance_id in self._registered

    @property
    def registered_ids(self) -> List[int]:
        return sorted(self._registered)

    async def restore(self) -> int:
        """
        Re-register every running instance (after a restart)

        Returns:
            Number of registered instances
        """
        async with self._session_maker() as session:
            ids = await crud.list_running_instance_ids(session)
        self._registered = set(ids)
        logger.info(f"Profit engine restored {len(ids)} running bots")
        return len(ids)

    # ===========================
    # TICKS
    # ===========================

    async def tick(self, instance_id: int) -> Optional[BotInstance]:
        """
        Advance one instance by one tick

        Returns:
            The instance (unchanged if stopped), None if it does not exist

        Raises:
            Busy: instance lock held by a concurrent stop or tick
        """
        async with self._locks.hold(bot_key(instance_id), self.lock_timeout):
            async with self._session_maker() as session:
                stmt = select(BotInstance).where(BotInstance.id == instance_id).with_for_update()
                result = await session.execute(stmt)
                instance = result.scalar_one_or_none()
                if instance is None:
                    self.unregister(instance_id)
                    return None

                if not instance.is_running:
                    self.unregister(instance_id)
                    return instance

                template = await session.get(BotTemplate, instance.template_id)
                delta = draw_delta(
                    instance.profit_seed,
                    instance.id,
                    instance.tick_count,
                    template.min_profit_pct,
                    template.max_profit_pct,
                )

                instance.current_value = next_value(instance.current_value, delta)
                instance.profit_percentage = profit_percentage(
                    instance.investment, instance.current_value
                )
                instance.tick_count += 1
                instance.last_tick_at = utcnow()
                await session.commit()

                logger.debug(
                    f"Bot {instance_id} tick {instance.tick_count}: {delta:+}% -> "
                    f"{instance.current_value} ({instance.profit_percentage}%)"
                )
                return instance

    async def tick_all(self) -> int:
        """
        Tick every registered instance once

        Busy instances are skipped for this round.

        Returns:
            Number of instances ticked
        """
        ticked = 0
        for instance_id in self.registered_ids:
            try:
                instance = await self.tick(instance_id)
            except Busy:
                logger.warning(f"Bot {instance_id} busy, skipping tick")
                continue
            except Exception as e:
                logger.error(f"Profit tick failed for bot {instance_id}: {e}")
                continue

            if instance is not None and instance.is_running:
                ticked += 1

        if ticked:
            logger.info(f"Profit tick applied to {ticked} bots")
        return ticked
