"""
Tests for bot launch and stop
Money conservation across the lifecycle, idempotent stop and concurrency
"""

import asyncio
import pytest
from decimal import Decimal

from sqlalchemy import select

from src.core.enums import BotStatus, LedgerEvent, TransactionType
from src.core.exceptions import (
    InsufficientBalance,
    InvalidAmount,
    KycLimitExceeded,
    NotFound,
    TradingDisabled,
)
from src.database.models import BotInstance, WalletTransaction
from src.services.profit_engine import profit_percentage, replay
from src.services.wallet_ledger import to_money


TEST_PROFIT_SEED = "test-seed"
FLASH_TRADER_ID = 3  # range [-1.0, 2.0] %, investment 100..100000


async def bot_transactions(session_maker, instance_id: int, tx_type: TransactionType):
    async with session_maker() as session:
        result = await session.execute(
            select(WalletTransaction)
            .where(WalletTransaction.bot_instance_id == instance_id)
            .where(WalletTransaction.type == tx_type.value)
        )
        return list(result.scalars().all())


async def count_instances(session_maker, user_id: int) -> int:
    async with session_maker() as session:
        result = await session.execute(select(BotInstance).where(BotInstance.user_id == user_id))
        return len(result.scalars().all())


# ============================================================================
# FULL LIFECYCLE
# ============================================================================


@pytest.mark.asyncio
async def test_launch_tick_stop_scenario(services, make_user, fund):
    """
    Tier 1 user deposits 1000, invests 500 into Flash Trader, lets it run
    for 10 ticks and stops it
    """
    user = await make_user(kyc_level=1)
    deposit = await fund(user.id, "1000")
    wallet_id = deposit.wallet_id

    instance = await services.bots.launch(user.id, FLASH_TRADER_ID, Decimal("500"))

    assert instance.status == BotStatus.RUNNING.value
    assert to_money(instance.current_value) == Decimal("500")
    assert await services.ledger.balance(wallet_id) == Decimal("500")
    assert services.engine.is_registered(instance.id)

    expected = replay(
        TEST_PROFIT_SEED, instance.id, Decimal("500"), Decimal("-1.0"), Decimal("2.0"), 10
    )
    for _ in range(10):
        await services.engine.tick(instance.id)

    current = await services.bots.get_instance(instance.id, user.id)
    assert to_money(current.current_value) == expected[-1]
    assert current.tick_count == 10

    stopped = await services.bots.stop(instance.id, user.id)

    final_value = expected[-1]
    assert stopped.status == BotStatus.STOPPED.value
    assert stopped.stopped_at is not None
    assert to_money(stopped.current_value) == final_value
    assert stopped.profit_percentage == profit_percentage(Decimal("500"), final_value)
    assert await services.ledger.balance(wallet_id) == Decimal("500") + final_value
    assert await services.ledger.verify_wallet(wallet_id) == Decimal("500") + final_value
    assert not services.engine.is_registered(instance.id)

    # Tier 1 investment ceiling is 500
    with pytest.raises(KycLimitExceeded):
        await services.bots.launch(user.id, FLASH_TRADER_ID, Decimal("600"))


@pytest.mark.asyncio
async def test_launch_writes_instance_and_debit_together(services, make_user, fund, session_maker, events):
    user = await make_user(kyc_level=1)
    await fund(user.id, "1000")

    instance = await services.bots.launch(user.id, FLASH_TRADER_ID, Decimal("250"))

    debits = await bot_transactions(session_maker, instance.id, TransactionType.BOT_INVESTMENT)
    assert len(debits) == 1
    assert to_money(debits[0].amount) == Decimal("-250")
    assert to_money(debits[0].balance_after) == Decimal("750")

    assert instance.profit_seed == TEST_PROFIT_SEED
    assert instance.tick_count == 0
    assert [n.event for n in events] == [LedgerEvent.BOT_LAUNCHED]
    assert events[0].payload["instance_id"] == instance.id


# ============================================================================
# LAUNCH VALIDATION
# ============================================================================


@pytest.mark.asyncio
async def test_launch_insufficient_balance_creates_nothing(services, make_user, fund, session_maker):
    """Test a failed debit leaves no instance behind"""
    user = await make_user(kyc_level=2)
    deposit = await fund(user.id, "150")

    with pytest.raises(InsufficientBalance):
        await services.bots.launch(user.id, FLASH_TRADER_ID, Decimal("200"))

    assert await count_instances(session_maker, user.id) == 0
    assert await services.ledger.balance(deposit.wallet_id) == Decimal("150")
    assert services.engine.registered_ids == []


@pytest.mark.asyncio
async def test_launch_unverified_user(services, make_user, fund, session_maker):
    user = await make_user(kyc_level=0)
    await fund(user.id, "1000")

    with pytest.raises(KycLimitExceeded):
        await services.bots.launch(user.id, FLASH_TRADER_ID, Decimal("100"))

    assert await count_instances(session_maker, user.id) == 0


@pytest.mark.asyncio
async def test_launch_outside_template_bounds(services, make_user, fund):
    user = await make_user(kyc_level=3)
    await fund(user.id, "1000")

    with pytest.raises(InvalidAmount):
        await services.bots.launch(user.id, FLASH_TRADER_ID, Decimal("99.99"))

    with pytest.raises(InvalidAmount):
        await services.bots.launch(user.id, FLASH_TRADER_ID, Decimal("100000.01"))


@pytest.mark.asyncio
async def test_launch_unknown_template(services, make_user):
    user = await make_user(kyc_level=1)

    with pytest.raises(NotFound):
        await services.bots.launch(user.id, 999, Decimal("100"))


@pytest.mark.asyncio
async def test_launch_when_trading_disabled(services, make_user, fund):
    user = await make_user(kyc_level=1)
    await fund(user.id, "1000")
    services.bots.bots_enabled = False

    with pytest.raises(TradingDisabled):
        await services.bots.launch(user.id, FLASH_TRADER_ID, Decimal("100"))


@pytest.mark.asyncio
async def test_concurrent_launches_never_overdraw(services, make_user, fund, session_maker):
    """Test ten parallel full-balance launches: exactly one wins"""
    user = await make_user(kyc_level=2)
    deposit = await fund(user.id, "1000")

    results = await asyncio.gather(
        *[services.bots.launch(user.id, FLASH_TRADER_ID, Decimal("1000")) for _ in range(10)],
        return_exceptions=True,
    )

    launched = [r for r in results if isinstance(r, BotInstance)]
    rejected = [r for r in results if isinstance(r, InsufficientBalance)]

    assert len(launched) == 1
    assert len(rejected) == 9
    assert await services.ledger.balance(deposit.wallet_id) == Decimal("0")
    assert await count_instances(session_maker, user.id) == 1


# ============================================================================
# STOP
# ============================================================================


@pytest.mark.asyncio
async def test_stop_is_idempotent(services, make_user, fund, session_maker, events):
    """Test a second stop returns the terminal state and credits nothing"""
    user = await make_user(kyc_level=1)
    deposit = await fund(user.id, "1000")
    instance = await services.bots.launch(user.id, FLASH_TRADER_ID, Decimal("500"))
    await services.engine.tick(instance.id)

    first = await services.bots.stop(instance.id, user.id)
    balance_after_stop = await services.ledger.balance(deposit.wallet_id)
    second = await services.bots.stop(instance.id, user.id)

    assert first.id == second.id
    assert second.status == BotStatus.STOPPED.value
    assert to_money(second.current_value) == to_money(first.current_value)
    assert await services.ledger.balance(deposit.wallet_id) == balance_after_stop
    assert len(await bot_transactions(session_maker, instance.id, TransactionType.BOT_PROFIT)) == 1
    assert [n.event for n in events].count(LedgerEvent.BOT_STOPPED) == 1


@pytest.mark.asyncio
async def test_concurrent_stops_credit_once(services, make_user, fund, session_maker):
    user = await make_user(kyc_level=1)
    deposit = await fund(user.id, "1000")
    instance = await services.bots.launch(user.id, FLASH_TRADER_ID, Decimal("500"))

    results = await asyncio.gather(*[services.bots.stop(instance.id, user.id) for _ in range(5)])

    assert all(r.status == BotStatus.STOPPED.value for r in results)
    assert len(await bot_transactions(session_maker, instance.id, TransactionType.BOT_PROFIT)) == 1
    assert await services.ledger.balance(deposit.wallet_id) == Decimal("1000")


@pytest.mark.asyncio
async def test_tick_racing_stop_credits_frozen_value(services, make_user, fund, session_maker):
    """Test ticks around a stop never move the value after it is credited"""
    user = await make_user(kyc_level=1)
    deposit = await fund(user.id, "1000")
    instance = await services.bots.launch(user.id, FLASH_TRADER_ID, Decimal("500"))
    await services.engine.tick(instance.id)

    await asyncio.gather(
        services.engine.tick(instance.id),
        services.bots.stop(instance.id, user.id),
        services.engine.tick(instance.id),
    )

    final = await services.bots.get_instance(instance.id, user.id)
    credits = await bot_transactions(session_maker, instance.id, TransactionType.BOT_PROFIT)

    assert final.status == BotStatus.STOPPED.value
    assert len(credits) == 1
    assert to_money(credits[0].amount) == to_money(final.current_value)
    assert await services.ledger.balance(deposit.wallet_id) == Decimal("500") + to_money(final.current_value)
    assert not services.engine.is_registered(instance.id)

    # Late ticks leave the stopped instance untouched
    await services.engine.tick(instance.id)
    after = await services.bots.get_instance(instance.id, user.id)
    assert to_money(after.current_value) == to_money(final.current_value)
    assert after.tick_count == final.tick_count


@pytest.mark.asyncio
async def test_stop_foreign_instance(services, make_user, fund):
    """Test another user's bot looks like a missing one"""
    owner = await make_user(kyc_level=1)
    stranger = await make_user(kyc_level=1)
    await fund(owner.id, "1000")
    instance = await services.bots.launch(owner.id, FLASH_TRADER_ID, Decimal("500"))

    with pytest.raises(NotFound):
        await services.bots.stop(instance.id, stranger.id)

    with pytest.raises(NotFound):
        await services.bots.stop(424242, owner.id)

    assert (await services.bots.get_instance(instance.id, owner.id)).is_running
    assert services.engine.is_registered(instance.id)


@pytest.mark.asyncio
async def test_stop_with_zero_value_credits_nothing(services, make_user, fund, session_maker, set_instance_value):
    user = await make_user(kyc_level=1)
    deposit = await fund(user.id, "1000")
    instance = await services.bots.launch(user.id, FLASH_TRADER_ID, Decimal("500"))
    await set_instance_value(instance.id, "0")

    stopped = await services.bots.stop(instance.id, user.id)

    assert stopped.status == BotStatus.STOPPED.value
    assert stopped.profit_percentage == Decimal("-100.00")
    assert await bot_transactions(session_maker, instance.id, TransactionType.BOT_PROFIT) == []
    assert await services.ledger.balance(deposit.wallet_id) == Decimal("500")


# ============================================================================
# READS
# ============================================================================


@pytest.mark.asyncio
async def test_list_active_and_history(services, make_user, fund):
    user = await make_user(kyc_level=1)
    await fund(user.id, "1000")
    first = await services.bots.launch(user.id, FLASH_TRADER_ID, Decimal("200"))
    second = await services.bots.launch(user.id, FLASH_TRADER_ID, Decimal("300"))
    await services.bots.stop(first.id, user.id)

    active = await services.bots.list_active(user.id)
    history = await services.bots.list_instances(user.id)

    assert [i.id for i in active] == [second.id]
    assert [i.id for i in history] == [second.id, first.id]


@pytest.mark.asyncio
async def test_list_available_templates(services):
    templates = await services.bots.list_available()

    names = [t.name for t in templates]
    assert names[FLASH_TRADER_ID - 1] == "Flash Trader"
    assert all(t.enabled for t in templates)
