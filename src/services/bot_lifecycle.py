# coding: utf-8
"""
Bot Lifecycle Manager

Launch and stop of bot instances against the wallet ledger and the profit
engine. This is the entry point the API layer calls.

Launch: template checks -> wallet scope { KYC investment check -> instance
created -> bot_investment debit } -> registered for profit ticks.

Stop: wallet scope { unregister -> instance lock { status stopped ->
bot_profit credit -> commit } } -> referral commission -> bot_stopped event.
"""

from decimal import Decimal
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from loguru import logger

from config.config import BOTS_ENABLED, DEFAULT_CURRENCY, LOCK_TIMEOUT_SEC
from src.core.enums import BotStatus, LedgerEvent, LimitedOperation, TransactionType
from src.core.exceptions import (
    AlreadyStopped,
    InvalidAmount,
    LedgerError,
    NotFound,
    TradingDisabled,
)
from src.database import crud
from src.database.models import BotInstance, BotTemplate, User, utcnow
from src.services.kyc_gate import ensure_within_limit
from src.services.locks import LockRegistry, bot_key
from src.services.notifications import NotificationService
from src.services.profit_engine import ProfitEngine, profit_percentage
from src.services.referral_service import ReferralService
from src.services.wallet_ledger import WalletLedger, to_money


class BotLifecycleManager:
    """Orchestrates bot launch/stop"""

    def __init__(
        self,
        session_maker: async_sessionmaker,
        locks: LockRegistry,
        ledger: WalletLedger,
        engine: ProfitEngine,
        referrals: Optional[ReferralService] = None,
        notifications: Optional[NotificationService] = None,
        bots_enabled: bool = BOTS_ENABLED,
        lock_timeout: float = LOCK_TIMEOUT_SEC,
    ):
        self._session_maker = session_maker
        self._locks = locks
        self._ledger = ledger
        self._engine = engine
        self._referrals = referrals
        self._notifications = notifications or NotificationService()
        self.bots_enabled = bots_enabled
        self.lock_timeout = lock_timeout

    # ===========================
    # LAUNCH
    # ===========================

    async def launch(
        self,
        user_id: int,
        template_id: int,
        amount,
        currency: str = DEFAULT_CURRENCY,
    ) -> BotInstance:
        """
        Invest `amount` into a new instance of a bot template

        The debit and the instance row are written in one transaction: if
        the debit fails no instance exists.

        Args:
            user_id: Investing user
            template_id: Bot template ID
            amount: Investment amount
            currency: Wallet currency to debit

        Returns:
            The new Running instance

        Raises:
            NotFound: unknown template or user
            TradingDisabled: launches switched off
            InvalidAmount: amount outside template bounds
            KycLimitExceeded: above the investment ceiling of the current tier
            InsufficientBalance: wallet balance below amount
            Busy: wallet lock not acquired in time
        """
        amount = to_money(amount)

        async with self._session_maker() as session:
            template = await crud.get_bot_template(session, template_id)
        if template is None:
            raise NotFound(f"Bot template {template_id} not found", template_id=template_id)

        if not self.bots_enabled or not template.enabled:
            raise TradingDisabled(
                f"Launching {template.name} is currently disabled", template_id=template_id
            )

        if amount < template.min_investment or amount > template.max_investment:
            raise InvalidAmount(
                f"Investment must be between {to_money(template.min_investment)} "
                f"and {to_money(template.max_investment)}",
                amount=amount,
                min_investment=to_money(template.min_investment),
                max_investment=to_money(template.max_investment),
            )

        wallet = await self._ledger.get_or_create_wallet(user_id, currency)

        async with self._ledger.wallet_scope(wallet.id) as scope:
            # Tier is read inside the scope so an upgrade applies immediately
            user = await scope.session.get(User, user_id)
            ensure_within_limit(user.kyc_level, LimitedOperation.INVESTMENT, amount)

            instance = BotInstance(
                user_id=user_id,
                template_id=template.id,
                wallet_id=wallet.id,
                currency=wallet.currency,
                investment=amount,
                current_value=amount,
                profit_percentage=Decimal("0"),
                status=BotStatus.RUNNING.value,
                profit_seed=self._engine.new_seed(),
                tick_count=0,
                started_at=utcnow(),
            )
            scope.session.add(instance)
            await scope.session.flush()

            await self._ledger.append(
                scope,
                TransactionType.BOT_INVESTMENT,
                -amount,
                bot_instance_id=instance.id,
                description=f"Investment in {template.name}",
            )

        self._engine.register(instance.id)

        logger.info(
            f"Bot {instance.id} ({template.name}) launched by user {user_id}: "
            f"{amount} {wallet.currency}"
        )
        await self._notifications.publish(
            LedgerEvent.BOT_LAUNCHED,
            user_id,
            instance_id=instance.id,
            template=template.name,
            investment=amount,
            currency=wallet.currency,
        )
        return instance

    # ===========================
    # STOP
    # ===========================

    async def _load_owned(self, session: AsyncSession, instance_id: int, user_id: int) -> BotInstance:
        instance = await crud.get_bot_instance(session, instance_id)
        if instance is None or instance.user_id != user_id:
            raise NotFound(f"Bot {instance_id} not found", instance_id=instance_id)
        return instance

    async def _lock_instance_row(self, session: AsyncSession, instance_id: int) -> BotInstance:
        stmt = (
            select(BotInstance)
            .where(BotInstance.id == instance_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        result = await session.execute(stmt)
        return result.scalar_one()

    async def stop(self, instance_id: int, requesting_user_id: int) -> BotInstance:
        """
        Stop an instance and return its current value to the wallet

        Idempotent: stopping a stopped instance returns its terminal state
        and credits nothing.

        Returns:
            The Stopped instance with final current_value/profit_percentage

        Raises:
            NotFound: unknown instance or not owned by the caller
            Busy: wallet or instance lock not acquired in time
        """
        try:
            return await self._stop(instance_id, requesting_user_id)
        except AlreadyStopped as e:
            logger.info(f"Bot {instance_id} already stopped, returning current state")
            return e.instance

    async def _stop(self, instance_id: int, requesting_user_id: int) -> BotInstance:
        async with self._session_maker() as session:
            instance = await self._load_owned(session, instance_id, requesting_user_id)
        if not instance.is_running:
            raise AlreadyStopped(f"Bot {instance_id} is already stopped", instance=instance)

        stopped_now = False
        try:
            async with self._ledger.wallet_scope(instance.wallet_id) as scope:
                self._engine.unregister(instance_id)

                async with self._locks.hold(bot_key(instance_id), self.lock_timeout):
                    instance = await self._lock_instance_row(scope.session, instance_id)

                    if instance.is_running:
                        instance.status = BotStatus.STOPPED.value
                        instance.stopped_at = utcnow()
                        instance.profit_percentage = profit_percentage(
                            instance.investment, instance.current_value
                        )
                        final_value = to_money(instance.current_value)

                        if final_value > 0:
                            await self._ledger.append(
                                scope,
                                TransactionType.BOT_PROFIT,
                                final_value,
                                bot_instance_id=instance.id,
                                description=f"Bot {instance.id} stopped",
                            )
                        stopped_now = True

                    # Commit before the instance lock is released so a queued
                    # tick reads the stopped state
                    await scope.session.commit()
        except LedgerError:
            # Still running: keep it ticking
            self._engine.register(instance_id)
            raise

        if not stopped_now:
            raise AlreadyStopped(f"Bot {instance_id} is already stopped", instance=instance)

        logger.info(
            f"Bot {instance.id} stopped by user {requesting_user_id}: "
            f"{to_money(instance.investment)} -> {to_money(instance.current_value)} "
            f"({instance.profit_percentage}%)"
        )

        await self._credit_referrer(instance)
        await self._notifications.publish(
            LedgerEvent.BOT_STOPPED,
            requesting_user_id,
            instance_id=instance.id,
            investment=to_money(instance.investment),
            final_value=to_money(instance.current_value),
            profit_percentage=instance.profit_percentage,
            currency=instance.currency,
        )
        return instance

    async def _credit_referrer(self, instance: BotInstance) -> None:
        if self._referrals is None:
            return

        try:
            await self._referrals.credit_commission(
                referee_id=instance.user_id,
                currency=instance.currency,
                profit=to_money(instance.current_value) - to_money(instance.investment),
                bot_instance_id=instance.id,
            )
        except LedgerError as e:
            # The stop is already committed; credit_commission is idempotent
            # per bot and can be re-run
            logger.error(f"Referral commission for bot {instance.id} failed: {e.message}")

    # ===========================
    # READS
    # ===========================

    async def list_active(self, user_id: int) -> List[BotInstance]:
        async with self._session_maker() as session:
            return await crud.list_bot_instances(session, user_id, status=BotStatus.RUNNING)

    async def list_instances(self, user_id: int) -> List[BotInstance]:
        async with self._session_maker() as session:
            return await crud.list_bot_instances(session, user_id)

    async def list_available(self) -> List[BotTemplate]:
        async with self._session_maker() as session:
            return await crud.list_bot_templates(session, enabled_only=True)

    async def get_instance(self, instance_id: int, user_id: int) -> BotInstance:
        async with self._session_maker() as session:
            return await self._load_owned(session, instance_id, user_id)
