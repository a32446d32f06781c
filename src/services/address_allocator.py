# coding: utf-8
"""
Deposit Address Allocator

Idempotent mapping (wallet, network) -> deposit address.

Concurrent requests for the same key are serialized by a per-key lock and,
across processes, by the unique constraint on (wallet_id, network): the loser
of an insert race reads back the winner's row. Address material comes from
an injectable generator.
"""

import hashlib
import hmac
from typing import List, Optional, Protocol

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from loguru import logger

from config.config import ADDRESS_SECRET, LOCK_TIMEOUT_SEC
from config.tokens import get_network_family, get_supported_networks, is_supported
from src.core.enums import LedgerEvent
from src.core.exceptions import AllocationConflict, NotFound, UnsupportedAsset
from src.database import crud
from src.database.models import DepositAddress
from src.services.locks import LockRegistry, address_key
from src.services.notifications import NotificationService
from src.services.wallet_ledger import WalletLedger


class AddressGenerator(Protocol):
    """Source of address material (custody service in production)"""

    async def generate(self, wallet_id: int, network: str) -> str:
        ...


class HmacAddressGenerator:
    """
    Deterministic address material: HMAC-SHA256(secret, "wallet_id:network")

    Formatted by network family so addresses look like the chain's own.
    """

    def __init__(self, secret: str = ADDRESS_SECRET):
        self._secret = secret.encode()

    def digest(self, wallet_id: int, network: str) -> str:
        message = f"{wallet_id}:{network}".encode()
        return hmac.new(self._secret, message, hashlib.sha256).hexdigest()

    async def generate(self, wallet_id: int, network: str) -> str:
        digest = self.digest(wallet_id, network)
        family = get_network_family(network)

        if family == "bitcoin":
            return f"bc1{digest[:38]}"
        if family == "evm":
            return f"0x{digest[:40]}"
        if family == "tron":
            return f"T{digest[:33]}"
        return digest[:44]


class DepositAddressAllocator:
    """Allocates at most one deposit address per (wallet, network)"""

    def __init__(
        self,
        session_maker: async_sessionmaker,
        locks: LockRegistry,
        ledger: WalletLedger,
        generator: Optional[AddressGenerator] = None,
        notifications: Optional[NotificationService] = None,
        lock_timeout: float = LOCK_TIMEOUT_SEC,
    ):
        self._session_maker = session_maker
        self._locks = locks
        self._ledger = ledger
        self._generator = generator or HmacAddressGenerator()
        self._notifications = notifications or NotificationService()
        self.lock_timeout = lock_timeout

    async def _find(self, session: AsyncSession, wallet_id: int, network: str) -> Optional[DepositAddress]:
        stmt = (
            select(DepositAddress)
            .where(DepositAddress.wallet_id == wallet_id)
            .where(DepositAddress.network == network)
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    async def _insert(self, session: AsyncSession, wallet_id: int, network: str, address: str) -> DepositAddress:
        row = DepositAddress(wallet_id=wallet_id, network=network, address=address)
        session.add(row)
        try:
            await session.commit()
        except IntegrityError:
            await session.rollback()
            raise AllocationConflict(
                f"Address for wallet {wallet_id} on {network} allocated concurrently",
                wallet_id=wallet_id,
                network=network,
            )
        return row

    async def allocate(self, wallet_id: int, network: str) -> DepositAddress:
        """
        Get or provision the deposit address for (wallet, network)

        Args:
            wallet_id: Wallet ID
            network: Network id (e.g. "tron", "eth")

        Returns:
            The single DepositAddress row for the key

        Raises:
            NotFound: unknown wallet
            Busy: allocation lock not acquired in time
        """
        network = network.lower()

        async with self._locks.hold(address_key(wallet_id, network), self.lock_timeout):
            async with self._session_maker() as session:
                existing = await self._find(session, wallet_id, network)
                if existing:
                    return existing

                wallet = await crud.get_wallet(session, wallet_id)
                if wallet is None:
                    raise NotFound(f"Wallet {wallet_id} not found", wallet_id=wallet_id)
                user_id = wallet.user_id

                address = await self._generator.generate(wallet_id, network)
                try:
                    row = await self._insert(session, wallet_id, network, address)
                except AllocationConflict as e:
                    logger.info(f"{e.message}, returning existing row")
                    winner = await self._find(session, wallet_id, network)
                    if winner is None:
                        raise
                    return winner

        logger.info(f"Allocated {network} deposit address for wallet {wallet_id}: {address}")
        await self._notifications.publish(
            LedgerEvent.ADDRESS_READY,
            user_id,
            wallet_id=wallet_id,
            network=network,
            address=address,
        )
        return row

    async def generate_deposit_address(self, user_id: int, currency: str, network: str) -> DepositAddress:
        """
        Deposit address for a user's currency on a network

        Creates the wallet if needed.

        Raises:
            UnsupportedAsset: currency/network pair not in the token catalog
            NotFound: unknown user
        """
        currency = currency.upper()
        network = network.lower()

        if not is_supported(currency, network):
            raise UnsupportedAsset(
                f"{currency} is not supported on {network}",
                currency=currency,
                network=network,
                supported_networks=get_supported_networks(currency),
            )

        wallet = await self._ledger.get_or_create_wallet(user_id, currency)
        return await self.allocate(wallet.id, network)

    async def list_addresses(self, wallet_id: int) -> List[DepositAddress]:
        async with self._session_maker() as session:
            return await crud.list_deposit_addresses(session, wallet_id)
