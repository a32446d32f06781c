"""
Referral API Endpoints
Referral code, level and commission earnings
"""

from decimal import Decimal
from typing import Dict

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from config.config import WEBAPP_URL
from src.api.auth import get_current_user
from src.api.dependencies import get_services
from src.database.models import User
from src.services.container import ServiceContainer

# Create router
router = APIRouter(prefix="/referrals", tags=["referral"])


class ReferralInfoResponse(BaseModel):
    referral_code: str
    referral_link: str
    level: str
    commission_rate: Decimal
    total_referrals: int
    active_referrals: int
    earnings: Dict[str, Decimal]


@router.get("/info", response_model=ReferralInfoResponse)
async def get_referral_info(
    user: User = Depends(get_current_user),
    services: ServiceContainer = Depends(get_services),
):
    """
    Referral overview for current user

    Returns:
        {
            "referral_code": "AB12CD34",
            "level": "silver",
            "commission_rate": "0.02",
            "total_referrals": 9,
            "active_referrals": 6,
            "earnings": {"USDT": "12.40000000"}
        }
    """
    info = await services.referrals.get_referral_info(user.id)
    return ReferralInfoResponse(
        referral_code=info["referral_code"],
        referral_link=f"{WEBAPP_URL}/?ref={info['referral_code']}",
        level=info["level"].value,
        commission_rate=info["commission_rate"],
        total_referrals=info["total_referrals"],
        active_referrals=info["active_referrals"],
        earnings=info["earnings"],
    )
