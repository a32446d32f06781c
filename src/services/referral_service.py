# coding: utf-8
"""
Referral Service

Commission for referrers on the realized profit of their referees' bots.

Level (bronze/silver/gold) is derived from the number of referred users with
at least one running bot. The commission is credited to the referrer's wallet
in the bot's currency, once per stopped bot.
"""

from collections import defaultdict
from decimal import Decimal
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import async_sessionmaker
from loguru import logger

from config.referral_config import get_commission_rate, get_level_by_active_referrals
from src.core.enums import ReferralLevel, TransactionType
from src.core.exceptions import NotFound
from src.database import crud
from src.database.models import User, Wallet, WalletTransaction
from src.services.wallet_ledger import WalletLedger, to_money


def commission_ref(bot_instance_id: int) -> str:
    """Idempotency key of the commission for one stopped bot"""
    return f"referral:bot:{bot_instance_id}"


class ReferralService:
    """Referral levels and commissions"""

    def __init__(self, session_maker: async_sessionmaker, ledger: WalletLedger):
        self._session_maker = session_maker
        self._ledger = ledger

    async def get_level(self, user_id: int) -> ReferralLevel:
        async with self._session_maker() as session:
            active = await crud.count_active_referrals(session, user_id)
        return get_level_by_active_referrals(active)

    async def credit_commission(
        self,
        referee_id: int,
        currency: str,
        profit,
        bot_instance_id: int,
    ) -> Optional[WalletTransaction]:
        """
        Credit the referrer of `referee_id` with a share of realized profit

        Runs in the referrer's own wallet scope, never nested in the
        referee's.

        Returns:
            The referral transaction, or None when nothing is due
        """
        profit = to_money(profit)
        if profit <= 0:
            return None

        existing = await self._ledger.find_by_external_ref(commission_ref(bot_instance_id))
        if existing:
            return existing

        async with self._session_maker() as session:
            referee = await session.get(User, referee_id)
            if referee is None or referee.referrer_id is None:
                return None
            referrer_id = referee.referrer_id
            active = await crud.count_active_referrals(session, referrer_id)

        level = get_level_by_active_referrals(active)
        commission = to_money(profit * get_commission_rate(level))
        if commission <= 0:
            return None

        wallet = await self._ledger.get_or_create_wallet(referrer_id, currency)
        transaction = await self._ledger.post(
            wallet.id,
            TransactionType.REFERRAL,
            commission,
            bot_instance_id=bot_instance_id,
            external_ref=commission_ref(bot_instance_id),
            description=f"Referral commission ({level.value}) from user {referee_id}",
        )

        logger.info(
            f"Referral commission {commission} {currency} to user {referrer_id} "
            f"({level.value}) for bot {bot_instance_id}"
        )
        return transaction

    async def get_referral_info(self, user_id: int) -> dict:
        """
        Referral overview

        Returns:
            Dict with referral_code, level, commission_rate,
            total_referrals, active_referrals and earnings per currency
        """
        async with self._session_maker() as session:
            user = await session.get(User, user_id)
            if user is None:
                raise NotFound(f"User {user_id} not found", user_id=user_id)

            referrals = await crud.get_referrals(session, user_id)
            active = await crud.count_active_referrals(session, user_id)

            stmt = (
                select(Wallet.currency, WalletTransaction.amount)
                .join(Wallet, Wallet.id == WalletTransaction.wallet_id)
                .where(Wallet.user_id == user_id)
                .where(WalletTransaction.type == TransactionType.REFERRAL.value)
            )
            result = await session.execute(stmt)
            rows = result.all()

        earnings = defaultdict(lambda: Decimal("0"))
        for currency, amount in rows:
            earnings[currency] += to_money(amount)

        level = get_level_by_active_referrals(active)
        return {
            "referral_code": user.referral_code,
            "level": level,
            "commission_rate": get_commission_rate(level),
            "total_referrals": len(referrals),
            "active_referrals": active,
            "earnings": dict(earnings),
        }
