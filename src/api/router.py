"""
FastAPI Router for the Bot Vault API
"""

from fastapi import APIRouter

# Import sub-routers
from src.api.bots import router as bots_router
from src.api.wallet import router as wallet_router
from src.api.kyc import router as kyc_router
from src.api.referral import router as referral_router


# Main router
router = APIRouter()

# Include sub-routers (they carry their own prefixes)
router.include_router(bots_router)  # Catalog, launch/stop, active bots
router.include_router(wallet_router)  # Balances, history, addresses, withdrawals
router.include_router(kyc_router)  # Verification status and documents
router.include_router(referral_router)  # Referral info
