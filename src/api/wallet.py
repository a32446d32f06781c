# coding: utf-8
"""
Wallet API Endpoints
Balances, transaction history, deposit addresses, withdrawals and the
custody deposit-settlement webhook
"""

from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field
from loguru import logger

from config.config import DEFAULT_CURRENCY
from src.api.api_key_auth import verify_api_key
from src.api.auth import get_current_user
from src.api.dependencies import get_services
from src.database.models import DepositAddress, User, WalletTransaction
from src.services.container import ServiceContainer

# Create router
router = APIRouter(tags=["wallet"])


# ===========================
# REQUEST / RESPONSE MODELS
# ===========================


class DepositAddressResponse(BaseModel):
    network: str
    address: str
    created_at: datetime


class WalletResponse(BaseModel):
    """Wallet with its provisioned deposit addresses"""

    id: int
    currency: str
    balance: Decimal
    is_frozen: bool
    deposit_addresses: List[DepositAddressResponse]


class TransactionResponse(BaseModel):
    """Ledger entry"""

    id: int
    wallet_id: int
    type: str
    amount: Decimal
    balance_after: Decimal
    fee: Decimal
    bot_instance_id: Optional[int]
    destination_address: Optional[str]
    description: Optional[str]
    created_at: datetime


class DepositAddressRequest(BaseModel):
    currency: str = Field(default=DEFAULT_CURRENCY)
    network: str


class WithdrawRequest(BaseModel):
    currency: str = Field(default=DEFAULT_CURRENCY)
    amount: Decimal = Field(..., gt=0, description="Amount the destination receives")
    destination_address: str = Field(..., min_length=1)


class DepositSettlementRequest(BaseModel):
    """Settled on-chain deposit reported by the custody service"""

    user_id: int
    currency: str = Field(default=DEFAULT_CURRENCY)
    amount: Decimal = Field(..., gt=0)
    external_ref: str = Field(..., min_length=1, description="Deposit tx hash")


def address_response(address: DepositAddress) -> DepositAddressResponse:
    return DepositAddressResponse(
        network=address.network,
        address=address.address,
        created_at=address.created_at,
    )


def transaction_response(tx: WalletTransaction) -> TransactionResponse:
    return TransactionResponse(
        id=tx.id,
        wallet_id=tx.wallet_id,
        type=tx.type,
        amount=tx.amount,
        balance_after=tx.balance_after,
        fee=tx.fee,
        bot_instance_id=tx.bot_instance_id,
        destination_address=tx.destination_address,
        description=tx.description,
        created_at=tx.created_at,
    )


# ===========================
# ENDPOINTS
# ===========================


@router.get("/wallets", response_model=List[WalletResponse])
async def get_wallets(
    user: User = Depends(get_current_user),
    services: ServiceContainer = Depends(get_services),
):
    """Caller's wallets"""
    wallets = await services.ledger.get_wallets(user.id)

    response = []
    for wallet in wallets:
        addresses = await services.addresses.list_addresses(wallet.id)
        response.append(
            WalletResponse(
                id=wallet.id,
                currency=wallet.currency,
                balance=wallet.balance,
                is_frozen=wallet.is_frozen,
                deposit_addresses=[address_response(a) for a in addresses],
            )
        )
    return response


@router.get("/transactions", response_model=List[TransactionResponse])
async def get_transactions(
    user: User = Depends(get_current_user),
    services: ServiceContainer = Depends(get_services),
    limit: int = Query(50, ge=1, le=200, description="Number of transactions to return"),
    offset: int = Query(0, ge=0, description="Offset for pagination"),
):
    """Caller's ledger entries, newest first"""
    transactions = await services.ledger.get_transactions(user.id, limit=limit, offset=offset)
    return [transaction_response(tx) for tx in transactions]


@router.post("/wallets/deposit-address", response_model=DepositAddressResponse)
async def generate_deposit_address(
    request: DepositAddressRequest,
    user: User = Depends(get_current_user),
    services: ServiceContainer = Depends(get_services),
):
    """
    Deposit address for a currency/network pair

    Repeated requests return the same address.
    """
    address = await services.addresses.generate_deposit_address(
        user.id, request.currency, request.network
    )
    return address_response(address)


@router.post("/wallets/withdraw", response_model=TransactionResponse)
async def withdraw(
    request: WithdrawRequest,
    user: User = Depends(get_current_user),
    services: ServiceContainer = Depends(get_services),
):
    """
    Withdraw to an external address

    The platform fee is charged on top of the amount.
    """
    tx = await services.ledger.withdraw(
        user.id, request.currency, request.amount, request.destination_address
    )
    return transaction_response(tx)


@router.post("/wallets/deposit", response_model=TransactionResponse)
async def settle_deposit(
    request: DepositSettlementRequest,
    api_key: str = Depends(verify_api_key),
    services: ServiceContainer = Depends(get_services),
):
    """
    Deposit settlement webhook (custody service)

    Idempotent on external_ref.
    """
    logger.info(f"Deposit webhook: {request.external_ref} for user {request.user_id}")
    tx = await services.ledger.deposit(
        request.user_id, request.currency, request.amount, request.external_ref
    )
    return transaction_response(tx)
