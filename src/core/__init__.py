"""
Core module - shared enums and error taxonomy.
"""

from src.core.enums import (
    TransactionType,
    LimitedOperation,
    BotStatus,
    RiskLevel,
    KycDocumentStatus,
    KycLevelStatus,
    KycDocumentType,
    ReferralLevel,
    LedgerEvent,
)
from src.core.exceptions import (
    LedgerError,
    InvalidAmount,
    KycLimitExceeded,
    InsufficientBalance,
    NotFound,
    UnsupportedAsset,
    AlreadyStopped,
    AllocationConflict,
    Busy,
    TradingDisabled,
    KycSubmissionError,
    LedgerIntegrityError,
)

__all__ = [
    "TransactionType",
    "LimitedOperation",
    "BotStatus",
    "RiskLevel",
    "KycDocumentStatus",
    "KycLevelStatus",
    "KycDocumentType",
    "ReferralLevel",
    "LedgerEvent",
    "LedgerError",
    "InvalidAmount",
    "KycLimitExceeded",
    "InsufficientBalance",
    "NotFound",
    "UnsupportedAsset",
    "AlreadyStopped",
    "AllocationConflict",
    "Busy",
    "TradingDisabled",
    "KycSubmissionError",
    "LedgerIntegrityError",
]
