"""
Tests for the profit tick scheduler
"""

import pytest
from decimal import Decimal

from src.tasks.profit_scheduler import ProfitScheduler


class FailingEngine:
    async def tick_all(self):
        raise RuntimeError("database unavailable")


@pytest.mark.asyncio
async def test_scheduler_start_stop(services):
    scheduler = ProfitScheduler(services.engine, interval_sec=3600)

    scheduler.start()
    assert scheduler.running
    job = scheduler.scheduler.get_job("profit_tick")
    assert job is not None
    assert job.max_instances == 1

    # Second start is a no-op
    scheduler.start()

    scheduler.stop()
    assert not scheduler.running


@pytest.mark.asyncio
async def test_trigger_tick_now(services, make_user, fund):
    user = await make_user(kyc_level=1)
    await fund(user.id, "1000")
    instance = await services.bots.launch(user.id, 3, Decimal("500"))

    scheduler = ProfitScheduler(services.engine)

    assert await scheduler.trigger_tick_now() == 1
    refreshed = await services.bots.get_instance(instance.id, user.id)
    assert refreshed.tick_count == 1


@pytest.mark.asyncio
async def test_failed_round_does_not_raise():
    scheduler = ProfitScheduler(FailingEngine())

    assert await scheduler.trigger_tick_now() == 0
