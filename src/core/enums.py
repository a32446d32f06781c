"""
Core Enums - shared value types of the ledger and bot lifecycle.

Defines:
- TransactionType: kinds of ledger entries and their sign
- LimitedOperation: operation classes gated by KYC tier
- BotStatus: bot instance state machine
- KycDocumentStatus / KycDocumentType / KycLevelStatus: verification records
- RiskLevel: bot template risk label
- ReferralLevel: referrer rank for commissions
- LedgerEvent: outbound notifications
"""

from enum import Enum


class TransactionType(str, Enum):
    """Ledger entry types. Amounts are signed: debits negative, credits positive."""

    DEPOSIT = "deposit"
    WITHDRAWAL = "withdrawal"
    BOT_INVESTMENT = "bot_investment"
    BOT_PROFIT = "bot_profit"
    REFERRAL = "referral"

    @property
    def is_debit(self) -> bool:
        return self in (TransactionType.WITHDRAWAL, TransactionType.BOT_INVESTMENT)


class LimitedOperation(str, Enum):
    """Operation classes with a per-tier ceiling"""

    DEPOSIT = "deposit"
    WITHDRAWAL = "withdrawal"
    INVESTMENT = "investment"


class BotStatus(str, Enum):
    """Bot instance state. STOPPED is terminal."""

    RUNNING = "running"
    STOPPED = "stopped"


class RiskLevel(str, Enum):
    """Bot template risk label"""

    VERY_LOW = "very-low"
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    VERY_HIGH = "very-high"


class KycDocumentStatus(str, Enum):
    """Review state of a single submitted document"""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class KycLevelStatus(str, Enum):
    """Aggregated state of one KYC level for a user"""

    NOT_STARTED = "not_started"
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class KycDocumentType(str, Enum):
    """Evidence types accepted for KYC levels"""

    ID_DOCUMENT = "id_document"
    SELFIE = "selfie"
    ADDRESS_PROOF = "address_proof"
    VIDEO_VERIFICATION = "video_verification"


class ReferralLevel(str, Enum):
    """Referrer rank, derived from active referrals"""

    BRONZE = "bronze"
    SILVER = "silver"
    GOLD = "gold"


class LedgerEvent(str, Enum):
    """Events published to the notification collaborator"""

    BOT_LAUNCHED = "bot_launched"
    BOT_STOPPED = "bot_stopped"
    ADDRESS_READY = "address_ready"
    KYC_TIER_UPGRADED = "kyc_tier_upgraded"
    WALLET_FROZEN = "wallet_frozen"
