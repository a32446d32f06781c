"""
Tests for the wallet ledger
Balances, append rules, deposits, withdrawals and the integrity halt
"""

import asyncio
import pytest
from decimal import Decimal

from sqlalchemy import select, update

from src.core.enums import LedgerEvent, TransactionType
from src.core.exceptions import (
    DepositConflict,
    InsufficientBalance,
    InvalidAmount,
    KycLimitExceeded,
    LedgerIntegrityError,
    NotFound,
)
from src.database.models import Wallet, WalletTransaction
from src.services.wallet_ledger import to_money


async def wallet_transactions(session_maker, wallet_id: int):
    async with session_maker() as session:
        result = await session.execute(
            select(WalletTransaction)
            .where(WalletTransaction.wallet_id == wallet_id)
            .order_by(WalletTransaction.id)
        )
        return list(result.scalars().all())


# ============================================================================
# WALLETS
# ============================================================================


@pytest.mark.asyncio
async def test_get_or_create_wallet(services, make_user, session_maker):
    """Test wallet creation is idempotent and writes no transaction"""
    user = await make_user()

    wallet1 = await services.ledger.get_or_create_wallet(user.id, "usdt")
    wallet2 = await services.ledger.get_or_create_wallet(user.id, "USDT")

    assert wallet1.id == wallet2.id
    assert wallet1.currency == "USDT"
    assert to_money(wallet1.balance) == Decimal("0")
    assert await wallet_transactions(session_maker, wallet1.id) == []


@pytest.mark.asyncio
async def test_get_or_create_wallet_unknown_user(services):
    with pytest.raises(NotFound):
        await services.ledger.get_or_create_wallet(999999, "USDT")


@pytest.mark.asyncio
async def test_wallets_are_per_currency(services, make_user, fund):
    user = await make_user(kyc_level=1)
    await fund(user.id, "100", "USDT")
    await fund(user.id, "0.5", "BTC")

    wallets = await services.ledger.get_wallets(user.id)

    assert [w.currency for w in wallets] == ["USDT", "BTC"]
    assert to_money(wallets[0].balance) == Decimal("100")
    assert to_money(wallets[1].balance) == Decimal("0.5")


# ============================================================================
# APPEND RULES
# ============================================================================


@pytest.mark.asyncio
async def test_append_rejects_zero_and_wrong_sign(services, make_user):
    """Test credits must be positive and debits negative"""
    user = await make_user()
    wallet = await services.ledger.get_or_create_wallet(user.id)

    with pytest.raises(InvalidAmount):
        await services.ledger.post(wallet.id, TransactionType.DEPOSIT, Decimal("0"))

    with pytest.raises(InvalidAmount):
        await services.ledger.post(wallet.id, TransactionType.DEPOSIT, Decimal("-5"))

    with pytest.raises(InvalidAmount):
        await services.ledger.post(wallet.id, TransactionType.WITHDRAWAL, Decimal("5"))

    assert await services.ledger.balance(wallet.id) == Decimal("0")


@pytest.mark.asyncio
async def test_debit_never_overdraws(services, make_user, fund, session_maker):
    """Test a debit larger than the balance is rejected and leaves no trace"""
    user = await make_user(kyc_level=1)
    deposit = await fund(user.id, "50")

    with pytest.raises(InsufficientBalance) as exc_info:
        await services.ledger.post(deposit.wallet_id, TransactionType.BOT_INVESTMENT, Decimal("-50.01"))

    assert exc_info.value.details["balance"] == Decimal("50")
    assert await services.ledger.balance(deposit.wallet_id) == Decimal("50")
    assert len(await wallet_transactions(session_maker, deposit.wallet_id)) == 1


@pytest.mark.asyncio
async def test_debit_to_exactly_zero(services, make_user, fund):
    user = await make_user(kyc_level=1)
    deposit = await fund(user.id, "50")

    tx = await services.ledger.post(deposit.wallet_id, TransactionType.BOT_INVESTMENT, Decimal("-50"))

    assert to_money(tx.balance_after) == Decimal("0")
    assert await services.ledger.balance(deposit.wallet_id) == Decimal("0")


@pytest.mark.asyncio
async def test_balance_equals_sum_of_log(services, make_user, fund, session_maker):
    """Test cached balance, log sum and balance_after chain agree"""
    user = await make_user(kyc_level=2)
    deposit = await fund(user.id, "1000")
    wallet_id = deposit.wallet_id

    await services.ledger.post(wallet_id, TransactionType.BOT_INVESTMENT, Decimal("-300"))
    await services.ledger.post(wallet_id, TransactionType.BOT_PROFIT, Decimal("312.5"))
    await services.ledger.post(wallet_id, TransactionType.REFERRAL, Decimal("0.00000001"))
    await services.ledger.withdraw(user.id, "USDT", Decimal("100"), "TXdestination")

    transactions = await wallet_transactions(session_maker, wallet_id)
    running = Decimal("0")
    for tx in transactions:
        running += to_money(tx.amount)
        assert to_money(tx.balance_after) == running

    assert running == Decimal("892.50000001")
    assert await services.ledger.balance(wallet_id) == running
    assert await services.ledger.recompute_balance(wallet_id) == running
    assert await services.ledger.verify_wallet(wallet_id) == running


@pytest.mark.asyncio
async def test_concurrent_debits_serialize(services, make_user, fund):
    """Test parallel debits never overdraw the wallet"""
    user = await make_user(kyc_level=1)
    deposit = await fund(user.id, "100")

    results = await asyncio.gather(
        *[
            services.ledger.post(deposit.wallet_id, TransactionType.BOT_INVESTMENT, Decimal("-30"))
            for _ in range(5)
        ],
        return_exceptions=True,
    )

    succeeded = [r for r in results if isinstance(r, WalletTransaction)]
    rejected = [r for r in results if isinstance(r, InsufficientBalance)]

    assert len(succeeded) == 3
    assert len(rejected) == 2
    assert await services.ledger.balance(deposit.wallet_id) == Decimal("10")


# ============================================================================
# DEPOSITS
# ============================================================================


@pytest.mark.asyncio
async def test_deposit_credits_wallet(services, make_user):
    user = await make_user()

    tx = await services.ledger.deposit(user.id, "USDT", Decimal("250"), external_ref="0xabc")

    assert tx.type == TransactionType.DEPOSIT.value
    assert to_money(tx.amount) == Decimal("250")
    assert tx.external_ref == "0xabc"
    assert await services.ledger.balance(tx.wallet_id) == Decimal("250")


@pytest.mark.asyncio
async def test_deposit_idempotent_on_external_ref(services, make_user, session_maker):
    """Test a re-delivered deposit settles once"""
    user = await make_user()

    first = await services.ledger.deposit(user.id, "USDT", Decimal("100"), external_ref="0xdup")
    second = await services.ledger.deposit(user.id, "USDT", Decimal("100"), external_ref="0xdup")

    assert first.id == second.id
    assert await services.ledger.balance(first.wallet_id) == Decimal("100")
    assert len(await wallet_transactions(session_maker, first.wallet_id)) == 1


@pytest.mark.asyncio
async def test_deposit_ref_reused_for_other_user(services, make_user):
    """Test a ref settled for one user is never returned for another"""
    alice = await make_user()
    bob = await make_user()

    first = await services.ledger.deposit(alice.id, "USDT", Decimal("100"), external_ref="tx-1")

    with pytest.raises(DepositConflict) as exc_info:
        await services.ledger.deposit(bob.id, "USDT", Decimal("250"), external_ref="tx-1")

    assert exc_info.value.http_status == 409
    assert exc_info.value.details["transaction_id"] == first.id
    assert await services.ledger.get_wallets(bob.id) == []
    assert await services.ledger.balance(first.wallet_id) == Decimal("100")


@pytest.mark.asyncio
async def test_deposit_ref_reused_with_other_amount_or_currency(services, make_user):
    user = await make_user()
    first = await services.ledger.deposit(user.id, "USDT", Decimal("100"), external_ref="tx-2")

    with pytest.raises(DepositConflict):
        await services.ledger.deposit(user.id, "USDT", Decimal("101"), external_ref="tx-2")
    with pytest.raises(DepositConflict):
        await services.ledger.deposit(user.id, "USDC", Decimal("100"), external_ref="tx-2")

    # Same settlement with a lowercase currency is still a re-delivery
    again = await services.ledger.deposit(user.id, "usdt", Decimal("100.00"), external_ref="tx-2")
    assert again.id == first.id
    assert await services.ledger.balance(first.wallet_id) == Decimal("100")


@pytest.mark.asyncio
async def test_concurrent_duplicate_deposits_settle_once(services, make_user):
    user = await make_user()
    wallet = await services.ledger.get_or_create_wallet(user.id, "USDT")

    results = await asyncio.gather(
        *[
            services.ledger.deposit(user.id, "USDT", Decimal("10"), external_ref="0xrace")
            for _ in range(5)
        ]
    )

    assert len({tx.id for tx in results}) == 1
    assert await services.ledger.balance(wallet.id) == Decimal("10")


@pytest.mark.asyncio
async def test_deposit_rejects_non_positive(services, make_user):
    user = await make_user()

    with pytest.raises(InvalidAmount):
        await services.ledger.deposit(user.id, "USDT", Decimal("0"), external_ref="0xzero")


@pytest.mark.asyncio
async def test_deposit_above_tier_limit(services, make_user):
    """Test tier 0 deposit ceiling"""
    user = await make_user(kyc_level=0)

    with pytest.raises(KycLimitExceeded):
        await services.ledger.deposit(user.id, "USDT", Decimal("1500"), external_ref="0xbig")

    assert await services.ledger.find_by_external_ref("0xbig") is None


# ============================================================================
# WITHDRAWALS
# ============================================================================


@pytest.mark.asyncio
async def test_withdraw_charges_fee_on_top(services, make_user, fund):
    """Test one withdrawal entry debits amount plus fee"""
    user = await make_user(kyc_level=1)
    await fund(user.id, "1000")

    tx = await services.ledger.withdraw(user.id, "USDT", Decimal("100"), " TXabc123 ")

    assert tx.type == TransactionType.WITHDRAWAL.value
    assert to_money(tx.amount) == Decimal("-120")
    assert to_money(tx.fee) == Decimal("20")
    assert tx.destination_address == "TXabc123"
    assert to_money(tx.balance_after) == Decimal("880")


@pytest.mark.asyncio
async def test_withdraw_fee_counts_against_balance(services, make_user, fund):
    user = await make_user(kyc_level=1)
    deposit = await fund(user.id, "100")

    with pytest.raises(InsufficientBalance):
        await services.ledger.withdraw(user.id, "USDT", Decimal("90"), "TXabc")

    assert await services.ledger.balance(deposit.wallet_id) == Decimal("100")


@pytest.mark.asyncio
async def test_withdraw_blocked_at_tier_0(services, make_user, fund):
    user = await make_user(kyc_level=0)
    await fund(user.id, "500")

    with pytest.raises(KycLimitExceeded):
        await services.ledger.withdraw(user.id, "USDT", Decimal("10"), "TXabc")


@pytest.mark.asyncio
async def test_withdraw_validation(services, make_user, fund):
    user = await make_user(kyc_level=1)

    with pytest.raises(NotFound):
        await services.ledger.withdraw(user.id, "USDT", Decimal("10"), "TXabc")

    await fund(user.id, "500")

    with pytest.raises(InvalidAmount):
        await services.ledger.withdraw(user.id, "USDT", Decimal("10"), "   ")

    with pytest.raises(InvalidAmount):
        await services.ledger.withdraw(user.id, "USDT", Decimal("-10"), "TXabc")


@pytest.mark.asyncio
async def test_withdrawal_fee_rounding(services):
    assert services.ledger.withdrawal_fee(Decimal("0.00000003")) == Decimal("0.00000001")
    assert services.ledger.withdrawal_fee(Decimal("12.5")) == Decimal("2.5")


# ============================================================================
# INTEGRITY
# ============================================================================


@pytest.mark.asyncio
async def test_tampered_balance_freezes_wallet(services, make_user, fund, session_maker, events):
    """Test a cache/log mismatch halts the wallet instead of writing"""
    user = await make_user(kyc_level=1)
    deposit = await fund(user.id, "100")
    wallet_id = deposit.wallet_id

    async with session_maker() as session:
        await session.execute(
            update(Wallet).where(Wallet.id == wallet_id).values(balance=Decimal("1000"))
        )
        await session.commit()

    with pytest.raises(LedgerIntegrityError) as exc_info:
        await services.ledger.post(wallet_id, TransactionType.BOT_INVESTMENT, Decimal("-500"))

    assert exc_info.value.recoverable is False
    assert len(await wallet_transactions(session_maker, wallet_id)) == 1

    async with session_maker() as session:
        wallet = await session.get(Wallet, wallet_id)
        assert wallet.is_frozen is True
        assert "1000" in wallet.frozen_reason

    assert [n.event for n in events] == [LedgerEvent.WALLET_FROZEN]
    assert events[0].user_id == user.id


@pytest.mark.asyncio
async def test_frozen_wallet_rejects_writes(services, make_user, fund, session_maker):
    user = await make_user(kyc_level=1)
    deposit = await fund(user.id, "100")

    async with session_maker() as session:
        await session.execute(
            update(Wallet)
            .where(Wallet.id == deposit.wallet_id)
            .values(is_frozen=True, frozen_reason="manual hold")
        )
        await session.commit()

    with pytest.raises(LedgerIntegrityError):
        await services.ledger.post(deposit.wallet_id, TransactionType.BOT_PROFIT, Decimal("5"))

    with pytest.raises(LedgerIntegrityError):
        await fund(user.id, "10")

    assert await services.ledger.balance(deposit.wallet_id) == Decimal("100")


@pytest.mark.asyncio
async def test_verify_wallet_detects_mismatch(services, make_user, fund, session_maker):
    user = await make_user(kyc_level=1)
    deposit = await fund(user.id, "100")

    async with session_maker() as session:
        await session.execute(
            update(Wallet).where(Wallet.id == deposit.wallet_id).values(balance=Decimal("99"))
        )
        await session.commit()

    with pytest.raises(LedgerIntegrityError):
        await services.ledger.verify_wallet(deposit.wallet_id)

    async with session_maker() as session:
        wallet = await session.get(Wallet, deposit.wallet_id)
        assert wallet.is_frozen is True


@pytest.mark.asyncio
async def test_transaction_history_newest_first(services, make_user, fund):
    user = await make_user(kyc_level=1)
    await fund(user.id, "100")
    await fund(user.id, "200")
    await services.ledger.withdraw(user.id, "USDT", Decimal("50"), "TXabc")

    history = await services.ledger.get_transactions(user.id, limit=2)

    assert [tx.type for tx in history] == ["withdrawal", "deposit"]
    assert to_money(history[1].amount) == Decimal("200")
