"""
CRUD operations for the Bot Vault ledger service

Read helpers and user/referral writes. Ledger-affecting writes live in
src/services (wallet_ledger, bot_lifecycle) and never go through here.
"""

import random
import string
from typing import Optional, List

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession
from loguru import logger

from config.referral_config import REFERRAL_CODE_LENGTH
from src.core.enums import BotStatus
from src.core.exceptions import NotFound
from src.database.models import (
    User,
    KycDocument,
    BotTemplate,
    BotInstance,
    Wallet,
    WalletTransaction,
    DepositAddress,
)


# ===========================
# USER OPERATIONS
# ===========================


async def generate_referral_code(session: AsyncSession) -> str:
    """
    Generate unique referral code

    Args:
        session: Database session

    Returns:
        Unique referral code (8 characters, upper-case alnum)
    """
    while True:
        code = ''.join(
            random.choices(string.ascii_uppercase + string.digits, k=REFERRAL_CODE_LENGTH)
        )

        stmt = select(User).where(User.referral_code == code)
        result = await session.execute(stmt)
        if not result.scalar_one_or_none():
            return code


async def create_user(
    session: AsyncSession,
    email: str,
    full_name: Optional[str] = None,
    referrer_code: Optional[str] = None,
) -> User:
    """
    Create new user with its own referral code

    Args:
        session: Database session
        email: Login email
        full_name: Full name
        referrer_code: Referral code of the inviting user (optional)

    Returns:
        Created User model

    Raises:
        NotFound: referrer_code does not belong to any user
    """
    referrer_id = None
    if referrer_code:
        referrer = await get_user_by_referral_code(session, referrer_code)
        if referrer is None:
            raise NotFound("Invalid referral code", referral_code=referrer_code)
        referrer_id = referrer.id

    user = User(
        email=email,
        full_name=full_name,
        referral_code=await generate_referral_code(session),
        referrer_id=referrer_id,
    )
    session.add(user)
    await session.commit()
    await session.refresh(user)

    logger.info(f"User created: {user.id} ({email}), referrer={referrer_id}")
    return user


async def get_user(session: AsyncSession, user_id: int) -> Optional[User]:
    """Get user by ID"""
    return await session.get(User, user_id)


async def get_user_by_referral_code(session: AsyncSession, code: str) -> Optional[User]:
    """Get user by their own referral code"""
    stmt = select(User).where(User.referral_code == code.upper())
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


async def get_referrals(session: AsyncSession, referrer_id: int) -> List[User]:
    """Users invited by referrer_id"""
    stmt = select(User).where(User.referrer_id == referrer_id).order_by(User.id)
    result = await session.execute(stmt)
    return list(result.scalars().all())


async def count_active_referrals(session: AsyncSession, referrer_id: int) -> int:
    """Number of referred users that have at least one running bot"""
    stmt = (
        select(func.count(func.distinct(BotInstance.user_id)))
        .join(User, User.id == BotInstance.user_id)
        .where(User.referrer_id == referrer_id)
        .where(BotInstance.status == BotStatus.RUNNING.value)
    )
    result = await session.execute(stmt)
    return result.scalar() or 0


# ===========================
# KYC OPERATIONS
# ===========================


async def get_kyc_document(session: AsyncSession, document_id: int) -> Optional[KycDocument]:
    """Get KYC document by ID"""
    return await session.get(KycDocument, document_id)


async def get_kyc_documents(session: AsyncSession, user_id: int) -> List[KycDocument]:
    """All KYC documents of a user, oldest first"""
    stmt = (
        select(KycDocument)
        .where(KycDocument.user_id == user_id)
        .order_by(KycDocument.id)
    )
    result = await session.execute(stmt)
    return list(result.scalars().all())


# ===========================
# BOT OPERATIONS
# ===========================


async def get_bot_template(session: AsyncSession, template_id: int) -> Optional[BotTemplate]:
    """Get bot template by ID"""
    return await session.get(BotTemplate, template_id)


async def list_bot_templates(
    session: AsyncSession, enabled_only: bool = True
) -> List[BotTemplate]:
    """Bot catalog"""
    stmt = select(BotTemplate).order_by(BotTemplate.id)
    if enabled_only:
        stmt = stmt.where(BotTemplate.enabled.is_(True))
    result = await session.execute(stmt)
    return list(result.scalars().all())


async def get_bot_instance(session: AsyncSession, instance_id: int) -> Optional[BotInstance]:
    """Get bot instance by ID"""
    return await session.get(BotInstance, instance_id)


async def list_bot_instances(
    session: AsyncSession,
    user_id: int,
    status: Optional[BotStatus] = None,
) -> List[BotInstance]:
    """User's bot instances, newest first"""
    stmt = (
        select(BotInstance)
        .where(BotInstance.user_id == user_id)
        .order_by(BotInstance.id.desc())
    )
    if status is not None:
        stmt = stmt.where(BotInstance.status == status.value)
    result = await session.execute(stmt)
    return list(result.scalars().all())


async def list_running_instance_ids(session: AsyncSession) -> List[int]:
    """IDs of every running instance (tick registry restore)"""
    stmt = (
        select(BotInstance.id)
        .where(BotInstance.status == BotStatus.RUNNING.value)
        .order_by(BotInstance.id)
    )
    result = await session.execute(stmt)
    return list(result.scalars().all())


# ===========================
# WALLET READS
# ===========================


async def get_wallet(session: AsyncSession, wallet_id: int) -> Optional[Wallet]:
    """Get wallet by ID"""
    return await session.get(Wallet, wallet_id)


async def get_wallet_by_user_and_currency(
    session: AsyncSession, user_id: int, currency: str
) -> Optional[Wallet]:
    """Get wallet by its (user, currency) key"""
    stmt = (
        select(Wallet)
        .where(Wallet.user_id == user_id)
        .where(Wallet.currency == currency.upper())
    )
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


async def list_wallets(session: AsyncSession, user_id: int) -> List[Wallet]:
    """All wallets of a user"""
    stmt = select(Wallet).where(Wallet.user_id == user_id).order_by(Wallet.id)
    result = await session.execute(stmt)
    return list(result.scalars().all())


async def list_transactions(
    session: AsyncSession,
    user_id: int,
    limit: int = 50,
    offset: int = 0,
) -> List[WalletTransaction]:
    """User's ledger entries across all wallets, newest first"""
    stmt = (
        select(WalletTransaction)
        .join(Wallet, Wallet.id == WalletTransaction.wallet_id)
        .where(Wallet.user_id == user_id)
        .order_by(WalletTransaction.id.desc())
        .limit(limit)
        .offset(offset)
    )
    result = await session.execute(stmt)
    return list(result.scalars().all())


async def list_deposit_addresses(session: AsyncSession, wallet_id: int) -> List[DepositAddress]:
    """Addresses provisioned for a wallet"""
    stmt = (
        select(DepositAddress)
        .where(DepositAddress.wallet_id == wallet_id)
        .order_by(DepositAddress.id)
    )
    result = await session.execute(stmt)
    return list(result.scalars().all())
