# coding: utf-8
"""
Service wiring

One instance of each service per process, sharing the lock registry and
the notification fan-out. The API server keeps the container on app.state.
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from sqlalchemy.ext.asyncio import async_sessionmaker

from config.config import (
    ADDRESS_SECRET,
    BOTS_ENABLED,
    LOCK_TIMEOUT_SEC,
    PROFIT_SEED,
    WITHDRAWAL_FEE_RATE,
)
from src.services.address_allocator import (
    AddressGenerator,
    DepositAddressAllocator,
    HmacAddressGenerator,
)
from src.services.bot_lifecycle import BotLifecycleManager
from src.services.kyc_service import KycService
from src.services.locks import LockRegistry
from src.services.notifications import NotificationService
from src.services.profit_engine import ProfitEngine
from src.services.referral_service import ReferralService
from src.services.wallet_ledger import WalletLedger


@dataclass
class ServiceContainer:
    session_maker: async_sessionmaker
    locks: LockRegistry
    notifications: NotificationService
    ledger: WalletLedger
    addresses: DepositAddressAllocator
    engine: ProfitEngine
    referrals: ReferralService
    kyc: KycService
    bots: BotLifecycleManager


def build_services(
    session_maker: async_sessionmaker,
    *,
    profit_seed: Optional[str] = PROFIT_SEED,
    lock_timeout: float = LOCK_TIMEOUT_SEC,
    withdrawal_fee_rate: Decimal = WITHDRAWAL_FEE_RATE,
    bots_enabled: bool = BOTS_ENABLED,
    address_generator: Optional[AddressGenerator] = None,
) -> ServiceContainer:
    """
    Build the service graph

    Args:
        session_maker: Async session factory
        profit_seed: Seed of the profit random walk (None = random per instance)
        lock_timeout: Bounded wait for every lock, seconds
        withdrawal_fee_rate: Fee charged on top of withdrawals
        bots_enabled: Global launch switch
        address_generator: Address material source (HMAC by default)

    Returns:
        ServiceContainer
    """
    locks = LockRegistry(default_timeout=lock_timeout)
    notifications = NotificationService()

    ledger = WalletLedger(
        session_maker,
        locks,
        notifications,
        lock_timeout=lock_timeout,
        withdrawal_fee_rate=withdrawal_fee_rate,
    )
    addresses = DepositAddressAllocator(
        session_maker,
        locks,
        ledger,
        generator=address_generator or HmacAddressGenerator(ADDRESS_SECRET),
        notifications=notifications,
        lock_timeout=lock_timeout,
    )
    engine = ProfitEngine(session_maker, locks, seed=profit_seed, lock_timeout=lock_timeout)
    referrals = ReferralService(session_maker, ledger)
    kyc = KycService(session_maker, notifications)
    bots = BotLifecycleManager(
        session_maker,
        locks,
        ledger,
        engine,
        referrals=referrals,
        notifications=notifications,
        bots_enabled=bots_enabled,
        lock_timeout=lock_timeout,
    )

    return ServiceContainer(
        session_maker=session_maker,
        locks=locks,
        notifications=notifications,
        ledger=ledger,
        addresses=addresses,
        engine=engine,
        referrals=referrals,
        kyc=kyc,
        bots=bots,
    )
