"""Ledger core services"""
from .wallet_ledger import WalletLedger
from .address_allocator import DepositAddressAllocator, HmacAddressGenerator
from .profit_engine import ProfitEngine
from .bot_lifecycle import BotLifecycleManager
from .kyc_service import KycService
from .referral_service import ReferralService
from .container import ServiceContainer, build_services

__all__ = [
    'WalletLedger',
    'DepositAddressAllocator',
    'HmacAddressGenerator',
    'ProfitEngine',
    'BotLifecycleManager',
    'KycService',
    'ReferralService',
    'ServiceContainer',
    'build_services',
]
