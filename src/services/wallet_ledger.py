# coding: utf-8
"""
Wallet Ledger

Owns per-user, per-currency balances and the append-only transaction log.

Features:
- Single mutation primitive (append) with sign/overdraft/integrity checks
- Per-wallet scope: lock with bounded wait + one DB transaction
- Deposits idempotent on external_ref
- Withdrawals with platform fee
- Integrity halt: a wallet whose cached balance disagrees with its log is frozen
"""

from contextlib import asynccontextmanager
from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_EVEN
from typing import AsyncIterator, List, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from loguru import logger

from config.config import DEFAULT_CURRENCY, LOCK_TIMEOUT_SEC, WITHDRAWAL_FEE_RATE
from src.core.enums import LedgerEvent, LimitedOperation, TransactionType
from src.core.exceptions import (
    DepositConflict,
    InsufficientBalance,
    InvalidAmount,
    LedgerIntegrityError,
    NotFound,
)
from src.database import crud
from src.database.models import User, Wallet, WalletTransaction
from src.services.kyc_gate import ensure_within_limit
from src.services.locks import LockRegistry, wallet_key
from src.services.notifications import NotificationService


MONEY_QUANT = Decimal("0.00000001")


def to_money(value) -> Decimal:
    """Normalize any numeric input to an 8-decimal Decimal"""
    if isinstance(value, float):
        value = str(value)
    return Decimal(value).quantize(MONEY_QUANT, rounding=ROUND_HALF_EVEN)


@dataclass
class LedgerScope:
    """Session and locked wallet row of an open wallet scope"""

    session: AsyncSession
    wallet: Wallet


class WalletLedger:
    """Append-only wallet ledger"""

    def __init__(
        self,
        session_maker: async_sessionmaker,
        locks: LockRegistry,
        notifications: Optional[NotificationService] = None,
        lock_timeout: float = LOCK_TIMEOUT_SEC,
        withdrawal_fee_rate: Decimal = WITHDRAWAL_FEE_RATE,
    ):
        self._session_maker = session_maker
        self._locks = locks
        self._notifications = notifications or NotificationService()
        self.lock_timeout = lock_timeout
        self.withdrawal_fee_rate = Decimal(withdrawal_fee_rate)

    # ===========================
    # WALLETS
    # ===========================

    async def get_or_create_wallet(self, user_id: int, currency: str = DEFAULT_CURRENCY) -> Wallet:
        """
        Get or create the (user, currency) wallet

        Creating a wallet never writes a transaction. Concurrent creators
        collapse on the unique constraint; the loser re-reads the winner.

        Raises:
            NotFound: unknown user
        """
        currency = currency.upper()

        async with self._session_maker() as session:
            wallet = await crud.get_wallet_by_user_and_currency(session, user_id, currency)
            if wallet:
                return wallet

            if await session.get(User, user_id) is None:
                raise NotFound(f"User {user_id} not found", user_id=user_id)

            wallet = Wallet(user_id=user_id, currency=currency, balance=Decimal("0"))
            session.add(wallet)
            try:
                await session.commit()
            except IntegrityError:
                await session.rollback()
                wallet = await crud.get_wallet_by_user_and_currency(session, user_id, currency)
                if wallet is None:
                    raise
                return wallet

            logger.info(f"Created {currency} wallet {wallet.id} for user {user_id}")
            return wallet

    async def get_wallet(self, user_id: int, currency: str) -> Wallet:
        """
        Existing (user, currency) wallet

        Raises:
            NotFound: no such wallet
        """
        async with self._session_maker() as session:
            wallet = await crud.get_wallet_by_user_and_currency(session, user_id, currency)
        if wallet is None:
            raise NotFound(
                f"No {currency.upper()} wallet for user {user_id}",
                user_id=user_id,
                currency=currency.upper(),
            )
        return wallet

    async def get_wallets(self, user_id: int) -> List[Wallet]:
        async with self._session_maker() as session:
            return await crud.list_wallets(session, user_id)

    async def get_transactions(
        self, user_id: int, limit: int = 50, offset: int = 0
    ) -> List[WalletTransaction]:
        async with self._session_maker() as session:
            return await crud.list_transactions(session, user_id, limit=limit, offset=offset)

    # ===========================
    # SCOPE & APPEND
    # ===========================

    @asynccontextmanager
    async def wallet_scope(self, wallet_id: int) -> AsyncIterator[LedgerScope]:
        """
        Serialize one ledger-affecting operation on a wallet

        Holds the wallet lock (bounded wait), opens a session, loads the
        wallet row FOR UPDATE and commits when the block exits cleanly.
        Any error rolls back. LedgerIntegrityError additionally freezes the
        wallet in a separate transaction before propagating.

        Raises:
            Busy: wallet lock not acquired in time
            NotFound: unknown wallet
        """
        async with self._locks.hold(wallet_key(wallet_id), self.lock_timeout):
            async with self._session_maker() as session:
                try:
                    wallet = await self._load_wallet_for_update(session, wallet_id)
                    yield LedgerScope(session=session, wallet=wallet)
                    await session.commit()
                except LedgerIntegrityError as e:
                    await session.rollback()
                    await self._freeze_wallet(wallet_id, e.message)
                    raise
                except Exception:
                    await session.rollback()
                    raise

    async def _load_wallet_for_update(self, session: AsyncSession, wallet_id: int) -> Wallet:
        stmt = select(Wallet).where(Wallet.id == wallet_id).with_for_update()
        result = await session.execute(stmt)
        wallet = result.scalar_one_or_none()
        if wallet is None:
            raise NotFound(f"Wallet {wallet_id} not found", wallet_id=wallet_id)
        return wallet

    async def _last_balance_after(self, session: AsyncSession, wallet_id: int) -> Decimal:
        stmt = (
            select(WalletTransaction.balance_after)
            .where(WalletTransaction.wallet_id == wallet_id)
            .order_by(WalletTransaction.id.desc())
            .limit(1)
        )
        result = await session.execute(stmt)
        last = result.scalar_one_or_none()
        return to_money(last) if last is not None else to_money(0)

    async def append(
        self,
        scope: LedgerScope,
        tx_type: TransactionType,
        amount,
        *,
        bot_instance_id: Optional[int] = None,
        external_ref: Optional[str] = None,
        fee=Decimal("0"),
        destination_address: Optional[str] = None,
        description: Optional[str] = None,
    ) -> WalletTransaction:
        """
        Append one signed entry to the scope's wallet

        Args:
            scope: Open wallet scope
            tx_type: Transaction type; withdrawal and bot_investment are debits
            amount: Signed amount (negative for debits)
            bot_instance_id: Related bot instance
            external_ref: Idempotency key
            fee: Fee included in a withdrawal amount
            destination_address: Withdrawal destination
            description: Human-readable note

        Returns:
            The new WalletTransaction (balance_after is the new balance)

        Raises:
            InvalidAmount: zero amount or sign not matching the type
            InsufficientBalance: debit would make the balance negative
            LedgerIntegrityError: wallet frozen or cache disagrees with the log
        """
        tx_type = TransactionType(tx_type)
        amount = to_money(amount)
        session, wallet = scope.session, scope.wallet

        if amount == 0:
            raise InvalidAmount("Amount must not be zero", type=tx_type.value)
        if tx_type.is_debit != (amount < 0):
            raise InvalidAmount(
                f"Amount sign does not match transaction type {tx_type.value}",
                type=tx_type.value,
                amount=amount,
            )

        if wallet.is_frozen:
            raise LedgerIntegrityError(
                f"Wallet {wallet.id} is frozen: {wallet.frozen_reason}",
                wallet_id=wallet.id,
            )

        cached = to_money(wallet.balance)
        logged = await self._last_balance_after(session, wallet.id)
        if cached != logged:
            raise LedgerIntegrityError(
                f"Wallet {wallet.id} cached balance {cached} != ledger balance {logged}",
                wallet_id=wallet.id,
                cached=cached,
                ledger=logged,
            )

        new_balance = cached + amount
        if new_balance < 0:
            logger.warning(
                f"Insufficient balance on wallet {wallet.id}: {cached} {wallet.currency}, "
                f"requested {-amount}"
            )
            raise InsufficientBalance(
                f"Insufficient balance: {cached} {wallet.currency} available, {-amount} required",
                wallet_id=wallet.id,
                balance=cached,
                required=-amount,
            )

        transaction = WalletTransaction(
            wallet_id=wallet.id,
            type=tx_type.value,
            amount=amount,
            balance_after=new_balance,
            fee=to_money(fee),
            bot_instance_id=bot_instance_id,
            external_ref=external_ref,
            destination_address=destination_address,
            description=description,
        )
        session.add(transaction)
        wallet.balance = new_balance
        await session.flush()

        logger.bind(audit=True, wallet_id=wallet.id, transaction_id=transaction.id).info(
            f"Ledger: wallet {wallet.id} {tx_type.value} {amount:+} {wallet.currency} "
            f"-> {new_balance}"
        )
        return transaction

    async def post(
        self,
        wallet_id: int,
        tx_type: TransactionType,
        amount,
        **kwargs,
    ) -> WalletTransaction:
        """Append a single entry in its own wallet scope"""
        async with self.wallet_scope(wallet_id) as scope:
            return await self.append(scope, tx_type, amount, **kwargs)

    # ===========================
    # BALANCE & INTEGRITY
    # ===========================

    async def balance(self, wallet_id: int) -> Decimal:
        """Cached balance, O(1)"""
        async with self._session_maker() as session:
            wallet = await crud.get_wallet(session, wallet_id)
            if wallet is None:
                raise NotFound(f"Wallet {wallet_id} not found", wallet_id=wallet_id)
            return to_money(wallet.balance)

    async def recompute_balance(self, wallet_id: int) -> Decimal:
        """Sum of the transaction log, O(n)"""
        async with self._session_maker() as session:
            stmt = select(WalletTransaction.amount).where(WalletTransaction.wallet_id == wallet_id)
            result = await session.execute(stmt)
            return sum((to_money(a) for a in result.scalars().all()), to_money(0))

    async def verify_wallet(self, wallet_id: int) -> Decimal:
        """
        Compare cached balance with the log

        Returns:
            The verified balance

        Raises:
            LedgerIntegrityError: mismatch (the wallet is frozen)
        """
        cached = await self.balance(wallet_id)
        logged = await self.recompute_balance(wallet_id)
        if cached != logged:
            reason = f"Cached balance {cached} != ledger sum {logged}"
            await self._freeze_wallet(wallet_id, reason)
            raise LedgerIntegrityError(
                f"Wallet {wallet_id}: {reason}",
                wallet_id=wallet_id,
                cached=cached,
                ledger=logged,
            )
        return cached

    async def _freeze_wallet(self, wallet_id: int, reason: str) -> None:
        async with self._session_maker() as session:
            wallet = await crud.get_wallet(session, wallet_id)
            if wallet is None or wallet.is_frozen:
                return
            wallet.is_frozen = True
            wallet.frozen_reason = reason
            await session.commit()
            user_id = wallet.user_id

        logger.bind(wallet_id=wallet_id).critical(f"Ledger integrity violation, wallet {wallet_id} frozen: {reason}")
        await self._notifications.publish(
            LedgerEvent.WALLET_FROZEN, user_id, wallet_id=wallet_id, reason=reason
        )

    # ===========================
    # DEPOSITS & WITHDRAWALS
    # ===========================

    async def _find_by_external_ref(
        self, session: AsyncSession, external_ref: str
    ) -> Optional[WalletTransaction]:
        stmt = select(WalletTransaction).where(WalletTransaction.external_ref == external_ref)
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    async def find_by_external_ref(self, external_ref: str) -> Optional[WalletTransaction]:
        """Transaction recorded under an idempotency key, if any"""
        async with self._session_maker() as session:
            return await self._find_by_external_ref(session, external_ref)

    async def _settled_deposit(
        self,
        session: AsyncSession,
        external_ref: str,
        user_id: int,
        currency: str,
        amount: Decimal,
    ) -> Optional[WalletTransaction]:
        """
        Deposit already settled under external_ref, if any

        Raises:
            DepositConflict: the ref belongs to another wallet, amount or type
        """
        existing = await self._find_by_external_ref(session, external_ref)
        if existing is None:
            return None

        wallet = await crud.get_wallet(session, existing.wallet_id)
        if (
            existing.type != TransactionType.DEPOSIT.value
            or wallet.user_id != user_id
            or wallet.currency != currency
            or to_money(existing.amount) != amount
        ):
            logger.warning(
                f"Deposit {external_ref} for user {user_id} ({amount} {currency}) "
                f"conflicts with transaction {existing.id} on wallet {wallet.id}"
            )
            raise DepositConflict(
                f"External reference {external_ref} already settled as a different transaction",
                external_ref=external_ref,
                transaction_id=existing.id,
            )
        return existing

    async def deposit(
        self,
        user_id: int,
        currency: str,
        amount,
        external_ref: str,
        description: Optional[str] = None,
    ) -> WalletTransaction:
        """
        Settle an incoming deposit

        Idempotent on external_ref: a repeated settlement for the same user,
        currency and amount returns the original transaction without
        touching the balance.

        Raises:
            InvalidAmount: non-positive amount
            KycLimitExceeded: above the deposit ceiling of the current tier
            DepositConflict: external_ref already used by a different settlement
            NotFound: unknown user
        """
        amount = to_money(amount)
        currency = currency.upper()
        if amount <= 0:
            raise InvalidAmount("Deposit amount must be positive", amount=amount)

        async with self._session_maker() as session:
            existing = await self._settled_deposit(session, external_ref, user_id, currency, amount)
        if existing:
            logger.info(f"Deposit {external_ref} already settled as transaction {existing.id}")
            return existing

        wallet = await self.get_or_create_wallet(user_id, currency)

        try:
            async with self.wallet_scope(wallet.id) as scope:
                existing = await self._settled_deposit(
                    scope.session, external_ref, user_id, currency, amount
                )
                if existing:
                    return existing

                user = await scope.session.get(User, user_id)
                ensure_within_limit(user.kyc_level, LimitedOperation.DEPOSIT, amount)

                return await self.append(
                    scope,
                    TransactionType.DEPOSIT,
                    amount,
                    external_ref=external_ref,
                    description=description or f"Deposit {external_ref}",
                )
        except IntegrityError:
            # Same external_ref settled concurrently on another wallet
            async with self._session_maker() as session:
                existing = await self._settled_deposit(
                    session, external_ref, user_id, currency, amount
                )
            if existing is None:
                raise
            return existing

    def withdrawal_fee(self, amount) -> Decimal:
        return to_money(to_money(amount) * self.withdrawal_fee_rate)

    async def withdraw(
        self,
        user_id: int,
        currency: str,
        amount,
        destination_address: str,
    ) -> WalletTransaction:
        """
        Withdraw funds to an external address

        The fee is charged on top of the amount; one withdrawal transaction
        debits amount + fee.

        Raises:
            InvalidAmount: non-positive amount or empty destination
            KycLimitExceeded: above the withdrawal ceiling of the current tier
            InsufficientBalance: amount + fee exceeds the balance
            NotFound: no wallet for this currency
        """
        amount = to_money(amount)
        if amount <= 0:
            raise InvalidAmount("Withdrawal amount must be positive", amount=amount)
        if not destination_address or not destination_address.strip():
            raise InvalidAmount("Destination address is required")

        wallet = await self.get_wallet(user_id, currency)
        fee = self.withdrawal_fee(amount)

        async with self.wallet_scope(wallet.id) as scope:
            user = await scope.session.get(User, user_id)
            ensure_within_limit(user.kyc_level, LimitedOperation.WITHDRAWAL, amount)

            return await self.append(
                scope,
                TransactionType.WITHDRAWAL,
                -(amount + fee),
                fee=fee,
                destination_address=destination_address.strip(),
                description=f"Withdrawal of {amount} {wallet.currency} (fee {fee})",
            )
