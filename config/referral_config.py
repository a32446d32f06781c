# coding: utf-8
"""
Referral System Configuration

Referral levels and commission rates on realized bot profit.
Allows easy adjustments without database migrations.
"""

from decimal import Decimal

from src.core.enums import ReferralLevel


# =======================
# REFERRAL LEVEL SETTINGS
# =======================

# Level is derived from the number of referred users with a running bot
REFERRAL_LEVELS = {
    ReferralLevel.BRONZE: {
        "min_active_referrals": 0,
        "max_active_referrals": 4,
        "commission_rate": Decimal("0.01"),  # 1% of referee's realized profit
    },
    ReferralLevel.SILVER: {
        "min_active_referrals": 5,
        "max_active_referrals": 14,
        "commission_rate": Decimal("0.02"),
    },
    ReferralLevel.GOLD: {
        "min_active_referrals": 15,
        "max_active_referrals": None,  # No upper bound
        "commission_rate": Decimal("0.05"),
    },
}

# Referral code alphabet/length (upper-case alnum)
REFERRAL_CODE_LENGTH = 8


# =======================
# HELPER FUNCTIONS
# =======================

def get_level_by_active_referrals(active_referrals: int) -> ReferralLevel:
    """
    Determine referral level from the number of active referrals

    Args:
        active_referrals: Referred users with at least one running bot

    Returns:
        ReferralLevel
    """
    for level, config in REFERRAL_LEVELS.items():
        min_refs = config["min_active_referrals"]
        max_refs = config["max_active_referrals"]

        if max_refs is None:
            if active_referrals >= min_refs:
                return level
        elif min_refs <= active_referrals <= max_refs:
            return level

    return ReferralLevel.BRONZE


def get_commission_rate(level: ReferralLevel) -> Decimal:
    """Commission rate on realized profit for a referral level"""
    return REFERRAL_LEVELS.get(level, REFERRAL_LEVELS[ReferralLevel.BRONZE])["commission_rate"]
