"""
Profit Tick Scheduler

APScheduler job driving the profit engine:
- profit_tick: every PROFIT_TICK_INTERVAL_SEC seconds, one tick for every
  registered running bot
"""
from datetime import datetime
from typing import Optional

from loguru import logger
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from config.config import PROFIT_TICK_INTERVAL_SEC
from src.services.profit_engine import ProfitEngine


class ProfitScheduler:
    """
    APScheduler wrapper for profit accrual.

    Jobs:
    - profit_tick: ProfitEngine.tick_all()
    """

    def __init__(self, engine: ProfitEngine, interval_sec: int = PROFIT_TICK_INTERVAL_SEC):
        self.engine = engine
        self.interval_sec = interval_sec
        self.scheduler: Optional[AsyncIOScheduler] = None
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    def start(self):
        """Start the scheduler."""
        if self._running:
            logger.warning("Profit scheduler already running")
            return

        self.scheduler = AsyncIOScheduler()
        self.scheduler.add_job(
            self._job_tick,
            IntervalTrigger(seconds=self.interval_sec),
            id="profit_tick",
            name="Bot Profit Tick",
            replace_existing=True,
            max_instances=1,  # Prevent overlapping rounds
            coalesce=True,
        )

        self.scheduler.start()
        self._running = True

        logger.info(f"Profit scheduler started: tick every {self.interval_sec}s")

    def stop(self):
        """Stop the scheduler."""
        if self.scheduler:
            self.scheduler.shutdown(wait=False)
            self._running = False
            logger.info("Profit scheduler stopped")

    async def trigger_tick_now(self) -> int:
        """Run one tick round immediately (tests, admin)."""
        logger.info("Manual profit tick triggered")
        return await self._job_tick()

    async def _job_tick(self) -> int:
        start_time = datetime.now()
        try:
            ticked = await self.engine.tick_all()
        except Exception as e:
            logger.exception(f"Error in profit tick job: {e}")
            return 0

        duration = (datetime.now() - start_time).total_seconds()
        logger.debug(f"Profit tick round finished in {duration:.2f}s: {ticked} bots")
        return ticked
