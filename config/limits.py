"""
KYC tier limits configuration

Defines the per-operation ceiling for each verification tier:
- Deposit (single settlement)
- Withdrawal (amount the user receives, before fee)
- Investment (single bot launch)

A ceiling of None means unlimited. Amounts are in units of the wallet currency.
"""

from decimal import Decimal
from typing import Dict, Optional, Set

from src.core.enums import LimitedOperation, KycDocumentType


MIN_KYC_TIER = 0
MAX_KYC_TIER = 3


# ============================================================================
# LIMITS BY TIER
# ============================================================================

KYC_TIER_LIMITS: Dict[int, Dict[LimitedOperation, Optional[Decimal]]] = {
    # TIER 0 - unverified: small deposits only, no withdrawals, no bots
    0: {
        LimitedOperation.DEPOSIT: Decimal("1000"),
        LimitedOperation.WITHDRAWAL: Decimal("0"),
        LimitedOperation.INVESTMENT: Decimal("0"),
    },

    # TIER 1 - ID document + selfie
    1: {
        LimitedOperation.DEPOSIT: Decimal("10000"),
        LimitedOperation.WITHDRAWAL: Decimal("5000"),
        LimitedOperation.INVESTMENT: Decimal("500"),
    },

    # TIER 2 - proof of address
    2: {
        LimitedOperation.DEPOSIT: Decimal("100000"),
        LimitedOperation.WITHDRAWAL: Decimal("50000"),
        LimitedOperation.INVESTMENT: Decimal("25000"),
    },

    # TIER 3 - video verification: unlimited
    3: {
        LimitedOperation.DEPOSIT: None,
        LimitedOperation.WITHDRAWAL: None,
        LimitedOperation.INVESTMENT: None,
    },
}


# ============================================================================
# DOCUMENTS REQUIRED PER LEVEL
# ============================================================================

KYC_REQUIRED_DOCUMENTS: Dict[int, Set[KycDocumentType]] = {
    1: {KycDocumentType.ID_DOCUMENT, KycDocumentType.SELFIE},
    2: {KycDocumentType.ADDRESS_PROOF},
    3: {KycDocumentType.VIDEO_VERIFICATION},
}


# ============================================================================
# HELPER FUNCTIONS
# ============================================================================

def get_operation_limit(tier: int, operation: LimitedOperation) -> Optional[Decimal]:
    """
    Get the ceiling for an operation at a tier

    Args:
        tier: KYC tier (0-3)
        operation: Operation class

    Returns:
        Ceiling, or None when unlimited

    Raises:
        KeyError: Unknown tier
    """
    return KYC_TIER_LIMITS[tier][operation]


def get_required_documents(level: int) -> Set[KycDocumentType]:
    """Document types that must all be approved to reach `level`"""
    return KYC_REQUIRED_DOCUMENTS.get(level, set())
