"""
Tests for deposit address allocation
"""

import asyncio
import pytest

from src.core.enums import LedgerEvent
from src.core.exceptions import NotFound, UnsupportedAsset
from src.database.models import DepositAddress
from src.services.address_allocator import DepositAddressAllocator, HmacAddressGenerator


class CompetingWriterGenerator:
    """Inserts the row itself before answering, like another process winning the race"""

    def __init__(self, session_maker):
        self._session_maker = session_maker

    async def generate(self, wallet_id: int, network: str) -> str:
        async with self._session_maker() as session:
            session.add(DepositAddress(wallet_id=wallet_id, network=network, address="winner-address"))
            await session.commit()
        return "loser-address"


@pytest.mark.asyncio
async def test_address_formats_by_network():
    generator = HmacAddressGenerator("secret")

    tron = await generator.generate(1, "tron")
    evm = await generator.generate(1, "eth")
    bitcoin = await generator.generate(1, "bitcoin")
    other = await generator.generate(1, "ton")

    assert tron.startswith("T") and len(tron) == 34
    assert evm.startswith("0x") and len(evm) == 42
    assert bitcoin.startswith("bc1") and len(bitcoin) == 41
    assert len(other) == 44


@pytest.mark.asyncio
async def test_hmac_generator_deterministic():
    """Test addresses depend on secret, wallet and network only"""
    a = HmacAddressGenerator("secret")
    b = HmacAddressGenerator("secret")
    c = HmacAddressGenerator("other-secret")

    assert await a.generate(5, "eth") == await b.generate(5, "eth")
    assert await a.generate(5, "eth") != await c.generate(5, "eth")
    assert await a.generate(5, "eth") != await a.generate(6, "eth")
    assert await a.generate(5, "eth") != await a.generate(5, "bsc")


@pytest.mark.asyncio
async def test_generate_deposit_address_is_idempotent(services, make_user, events):
    """Test the same (wallet, network) always yields the same address"""
    user = await make_user()

    first = await services.addresses.generate_deposit_address(user.id, "usdt", "TRON")
    second = await services.addresses.generate_deposit_address(user.id, "USDT", "tron")

    assert first.id == second.id
    assert first.address == second.address
    assert first.network == "tron"

    ready = [n for n in events if n.event == LedgerEvent.ADDRESS_READY]
    assert len(ready) == 1
    assert ready[0].user_id == user.id
    assert ready[0].payload["address"] == first.address


@pytest.mark.asyncio
async def test_concurrent_allocation_single_row(services, make_user, events):
    user = await make_user()
    wallet = await services.ledger.get_or_create_wallet(user.id, "USDT")

    results = await asyncio.gather(
        *[services.addresses.allocate(wallet.id, "eth") for _ in range(10)]
    )

    assert len({row.id for row in results}) == 1
    assert len({row.address for row in results}) == 1
    assert len(await services.addresses.list_addresses(wallet.id)) == 1
    assert len([n for n in events if n.event == LedgerEvent.ADDRESS_READY]) == 1


@pytest.mark.asyncio
async def test_one_address_per_network(services, make_user):
    user = await make_user()
    wallet = await services.ledger.get_or_create_wallet(user.id, "USDT")

    eth = await services.addresses.allocate(wallet.id, "eth")
    tron = await services.addresses.allocate(wallet.id, "tron")

    assert eth.address != tron.address
    addresses = await services.addresses.list_addresses(wallet.id)
    assert [a.network for a in addresses] == ["eth", "tron"]


@pytest.mark.asyncio
async def test_lost_insert_race_returns_winner(services, make_user, session_maker):
    """Test a unique-constraint conflict resolves to the existing row"""
    user = await make_user()
    wallet = await services.ledger.get_or_create_wallet(user.id, "USDT")

    allocator = DepositAddressAllocator(
        session_maker,
        services.locks,
        services.ledger,
        generator=CompetingWriterGenerator(session_maker),
    )

    row = await allocator.allocate(wallet.id, "bsc")

    assert row.address == "winner-address"
    assert len(await allocator.list_addresses(wallet.id)) == 1


@pytest.mark.asyncio
async def test_unsupported_asset(services, make_user):
    user = await make_user()

    with pytest.raises(UnsupportedAsset) as exc_info:
        await services.addresses.generate_deposit_address(user.id, "TRX", "eth")

    assert exc_info.value.details["supported_networks"] == ["tron"]

    with pytest.raises(UnsupportedAsset):
        await services.addresses.generate_deposit_address(user.id, "DOGE", "eth")


@pytest.mark.asyncio
async def test_allocate_unknown_wallet(services):
    with pytest.raises(NotFound):
        await services.addresses.allocate(424242, "eth")
