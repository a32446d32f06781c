"""
KYC Gate - per-tier transaction ceilings

Pure function of (tier, operation, amount). Callers pass the tier they just
read from the user row; nothing here is cached, so a tier upgrade takes
effect on the very next call.
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from config.limits import KYC_TIER_LIMITS
from src.core.enums import LimitedOperation
from src.core.exceptions import KycLimitExceeded


@dataclass(frozen=True)
class KycDecision:
    """Outcome of a limit check"""

    allowed: bool
    reason: Optional[str] = None
    limit: Optional[Decimal] = None

    def __bool__(self) -> bool:
        return self.allowed


def check_limit(tier: int, operation: LimitedOperation, amount: Decimal) -> KycDecision:
    """
    Check an amount against the ceiling of the user's current tier

    Args:
        tier: Current KYC tier (0-3)
        operation: Operation class
        amount: Positive amount of the operation

    Returns:
        KycDecision (allowed, or denied with reason and ceiling)
    """
    limits = KYC_TIER_LIMITS.get(tier)
    if limits is None:
        return KycDecision(False, f"Unknown KYC tier {tier}")

    if amount <= 0:
        return KycDecision(False, "Amount must be positive")

    ceiling = limits[LimitedOperation(operation)]
    if ceiling is None:
        return KycDecision(True)

    if ceiling == 0:
        return KycDecision(
            False,
            f"KYC level {tier} does not allow {operation.value}; complete verification first",
            ceiling,
        )

    if amount > ceiling:
        return KycDecision(
            False,
            f"{operation.value.capitalize()} of {amount} exceeds KYC level {tier} limit of {ceiling}",
            ceiling,
        )

    return KycDecision(True, limit=ceiling)


def ensure_within_limit(tier: int, operation: LimitedOperation, amount: Decimal) -> None:
    """
    Same as check_limit but raises on deny

    Raises:
        KycLimitExceeded: amount not allowed at this tier
    """
    decision = check_limit(tier, operation, amount)
    if not decision.allowed:
        raise KycLimitExceeded(
            decision.reason or "KYC limit exceeded",
            tier=tier,
            operation=operation.value,
            amount=amount,
            limit=decision.limit,
        )
