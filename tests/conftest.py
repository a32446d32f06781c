"""
Pytest configuration and fixtures for the Bot Vault ledger tests
"""

import pytest
from decimal import Decimal
from typing import AsyncGenerator, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from src.database.crud import create_user
from src.database.engine import create_engine_for_url, create_session_maker, drop_db, init_db
from src.database.models import BotInstance, User
from src.database.seed import seed_bot_templates
from src.services.container import build_services


TEST_PROFIT_SEED = "test-seed"


@pytest.fixture(scope="function")
async def test_db_engine(tmp_path):
    """
    Create test database engine

    File-backed SQLite so concurrent sessions get their own connections.
    """
    engine = create_engine_for_url(f"sqlite+aiosqlite:///{tmp_path / 'ledger.db'}")
    await init_db(engine)

    yield engine

    await drop_db(engine)
    await engine.dispose()


@pytest.fixture(scope="function")
def session_maker(test_db_engine):
    return create_session_maker(test_db_engine)


@pytest.fixture(scope="function")
async def db_session(session_maker) -> AsyncGenerator[AsyncSession, None]:
    """
    Create test database session
    """
    async with session_maker() as session:
        yield session
        await session.rollback()


@pytest.fixture(scope="function")
async def services(session_maker):
    """
    Service graph on the test database with a fixed profit seed and the
    bot catalog seeded
    """
    container = build_services(
        session_maker,
        profit_seed=TEST_PROFIT_SEED,
        lock_timeout=5.0,
        withdrawal_fee_rate=Decimal("0.2"),
        bots_enabled=True,
    )

    async with session_maker() as session:
        await seed_bot_templates(session)

    return container


@pytest.fixture
def make_user(session_maker):
    """
    Factory: create a user, optionally at a KYC tier

    Usage:
        user = await make_user("alice@example.com", kyc_level=1)
    """
    counter = {"n": 0}

    async def _make_user(
        email: Optional[str] = None,
        kyc_level: int = 0,
        referrer_code: Optional[str] = None,
    ) -> User:
        counter["n"] += 1
        email = email or f"user{counter['n']}@example.com"

        async with session_maker() as session:
            user = await create_user(session, email, referrer_code=referrer_code)
            if kyc_level:
                user.kyc_level = kyc_level
                await session.commit()
        return user

    return _make_user


@pytest.fixture
def fund(services):
    """
    Factory: settle a deposit into a user's wallet

    Usage:
        await fund(user.id, "1000")
    """
    counter = {"n": 0}

    async def _fund(user_id: int, amount, currency: str = "USDT"):
        counter["n"] += 1
        return await services.ledger.deposit(
            user_id, currency, Decimal(str(amount)), external_ref=f"test-deposit-{user_id}-{counter['n']}"
        )

    return _fund


@pytest.fixture
def events(services):
    """
    Collect published notifications

    Usage:
        assert [n.event for n in events] == [LedgerEvent.BOT_LAUNCHED]
    """
    received = []

    async def _collect(notification):
        received.append(notification)

    services.notifications.subscribe(_collect)
    yield received
    services.notifications.unsubscribe(_collect)


@pytest.fixture
def set_instance_value(session_maker):
    """Factory: overwrite a bot instance's current value"""

    async def _set(instance_id: int, value):
        async with session_maker() as session:
            instance = await session.get(BotInstance, instance_id)
            instance.current_value = Decimal(str(value))
            await session.commit()

    return _set
