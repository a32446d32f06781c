"""
Database models for the Bot Vault ledger service

SQLAlchemy 2.0 models with full type hints
"""

from datetime import datetime, UTC
from typing import Optional
from decimal import Decimal

from sqlalchemy import (
    String,
    Text,
    Integer,
    Boolean,
    DateTime,
    ForeignKey,
    UniqueConstraint,
    Numeric,
    Index,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

from src.core.enums import (
    BotStatus,
    KycDocumentStatus,
)


# Money columns: 20 digits, 8 after the point
MONEY = Numeric(20, 8)


def utcnow() -> datetime:
    return datetime.now(UTC)


class Base(DeclarativeBase):
    """Base class for all models"""

    pass


# ===========================
# USERS & KYC
# ===========================


class User(Base):
    """
    User model

    Tracks:
    - Identity and referral code
    - KYC tier (only ever increases)
    - Who referred the user
    """

    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    email: Mapped[str] = mapped_column(
        String(255), unique=True, index=True, nullable=False, comment="Login email"
    )
    full_name: Mapped[Optional[str]] = mapped_column(
        String(255), nullable=True, comment="Full name"
    )

    kyc_level: Mapped[int] = mapped_column(
        Integer, default=0, nullable=False, comment="Verified KYC tier 0-3, non-decreasing"
    )

    # Referral system
    referral_code: Mapped[Optional[str]] = mapped_column(
        String(16), unique=True, index=True, nullable=True, comment="User's own referral code"
    )
    referrer_id: Mapped[Optional[int]] = mapped_column(
        Integer,
        ForeignKey("users.id", ondelete="SET NULL"),
        index=True,
        nullable=True,
        comment="User who referred this user",
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        nullable=False,
        comment="Registration timestamp",
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        onupdate=utcnow,
        nullable=False,
    )

    # Relationships
    wallets = relationship("Wallet", back_populates="user", cascade="all, delete-orphan")
    bot_instances = relationship("BotInstance", back_populates="user", cascade="all, delete-orphan")
    kyc_documents = relationship("KycDocument", back_populates="user", cascade="all, delete-orphan")

    def __repr__(self) -> str:
        return f"<User(id={self.id}, email={self.email}, kyc_level={self.kyc_level})>"


class KycDocument(Base):
    """
    KYC document submission

    One row per uploaded document. File storage is external; only the path
    returned by the storage collaborator is kept here.
    """

    __tablename__ = "kyc_documents"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    user_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("users.id", ondelete="CASCADE"),
        index=True,
        nullable=False,
    )
    level: Mapped[int] = mapped_column(Integer, nullable=False, comment="KYC level 1-3")
    document_type: Mapped[str] = mapped_column(String(50), nullable=False)
    document_path: Mapped[str] = mapped_column(String(500), nullable=False)
    status: Mapped[str] = mapped_column(
        String(20),
        default=KycDocumentStatus.PENDING.value,
        nullable=False,
        index=True,
    )
    rejection_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )
    reviewed_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    user = relationship("User", back_populates="kyc_documents")

    __table_args__ = (
        Index("ix_kyc_documents_user_level", "user_id", "level"),
    )

    def __repr__(self) -> str:
        return (
            f"<KycDocument(id={self.id}, user_id={self.user_id}, level={self.level}, "
            f"type={self.document_type}, status={self.status})>"
        )


# ===========================
# BOTS
# ===========================


class BotTemplate(Base):
    """
    Bot catalog entry - immutable after deployment

    Profit range is per accrual tick, in percent.
    """

    __tablename__ = "bot_templates"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    name: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    strategy: Mapped[str] = mapped_column(String(50), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    risk_level: Mapped[str] = mapped_column(String(20), nullable=False)

    min_profit_pct: Mapped[Decimal] = mapped_column(
        Numeric(10, 4), nullable=False, comment="Lower bound of per-tick change, %"
    )
    max_profit_pct: Mapped[Decimal] = mapped_column(
        Numeric(10, 4), nullable=False, comment="Upper bound of per-tick change, %"
    )
    min_investment: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    max_investment: Mapped[Decimal] = mapped_column(MONEY, nullable=False)

    enabled: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )

    instances = relationship("BotInstance", back_populates="template")

    def __repr__(self) -> str:
        return f"<BotTemplate(id={self.id}, name={self.name}, risk={self.risk_level})>"


class BotInstance(Base):
    """
    One user's investment in a bot template

    State machine: running -> stopped (terminal).
    current_value is mutated by profit ticks only while running.
    """

    __tablename__ = "bot_instances"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    user_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("users.id", ondelete="CASCADE"),
        index=True,
        nullable=False,
    )
    template_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("bot_templates.id"),
        index=True,
        nullable=False,
    )
    wallet_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("wallets.id"),
        index=True,
        nullable=False,
        comment="Wallet debited at launch and credited at stop",
    )
    currency: Mapped[str] = mapped_column(String(20), nullable=False)

    investment: Mapped[Decimal] = mapped_column(MONEY, nullable=False, comment="Fixed at launch")
    current_value: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    profit_percentage: Mapped[Decimal] = mapped_column(
        Numeric(12, 2), default=Decimal("0"), nullable=False
    )

    status: Mapped[str] = mapped_column(
        String(20), default=BotStatus.RUNNING.value, nullable=False, index=True
    )

    # Profit random walk state
    profit_seed: Mapped[str] = mapped_column(
        String(64), nullable=False, comment="Seed of the profit random walk"
    )
    tick_count: Mapped[int] = mapped_column(
        Integer, default=0, nullable=False, comment="Ticks applied so far"
    )

    started_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )
    last_tick_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    stopped_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    user = relationship("User", back_populates="bot_instances")
    template = relationship("BotTemplate", back_populates="instances")
    wallet = relationship("Wallet")

    @property
    def is_running(self) -> bool:
        return self.status == BotStatus.RUNNING.value

    @property
    def profit(self) -> Decimal:
        return self.current_value - self.investment

    def __repr__(self) -> str:
        return (
            f"<BotInstance(id={self.id}, user_id={self.user_id}, status={self.status}, "
            f"value={self.current_value})>"
        )


# ===========================
# WALLETS & LEDGER
# ===========================


class Wallet(Base):
    """
    Per-user, per-currency wallet

    balance is an incremental cache of the transaction log and is only
    written together with a new WalletTransaction.
    """

    __tablename__ = "wallets"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    user_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("users.id", ondelete="CASCADE"),
        index=True,
        nullable=False,
    )
    currency: Mapped[str] = mapped_column(String(20), nullable=False)

    balance: Mapped[Decimal] = mapped_column(
        MONEY,
        default=Decimal("0"),
        nullable=False,
        comment="Cached sum of transaction amounts",
    )

    # Integrity halt
    is_frozen: Mapped[bool] = mapped_column(
        Boolean, default=False, nullable=False, comment="Writes halted pending reconciliation"
    )
    frozen_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False
    )

    user = relationship("User", back_populates="wallets")
    transactions = relationship(
        "WalletTransaction",
        back_populates="wallet",
        order_by="WalletTransaction.id",
    )
    deposit_addresses = relationship("DepositAddress", back_populates="wallet")

    __table_args__ = (
        UniqueConstraint("user_id", "currency", name="uq_wallet_user_currency"),
    )

    def __repr__(self) -> str:
        return f"<Wallet(id={self.id}, user_id={self.user_id}, {self.currency}={self.balance})>"


class WalletTransaction(Base):
    """
    Append-only ledger entry

    Types:
    - deposit: settled incoming funds (+)
    - withdrawal: outgoing funds incl. fee (-)
    - bot_investment: funds moved into a bot (-)
    - bot_profit: bot value returned on stop (+)
    - referral: commission on a referee's realized profit (+)
    """

    __tablename__ = "wallet_transactions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    wallet_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("wallets.id", ondelete="RESTRICT"),
        index=True,
        nullable=False,
    )
    type: Mapped[str] = mapped_column(String(30), nullable=False, index=True)

    amount: Mapped[Decimal] = mapped_column(MONEY, nullable=False, comment="Signed amount")
    balance_after: Mapped[Decimal] = mapped_column(
        MONEY, nullable=False, comment="Wallet balance right after this entry"
    )
    fee: Mapped[Decimal] = mapped_column(
        MONEY, default=Decimal("0"), nullable=False, comment="Fee included in amount"
    )

    bot_instance_id: Mapped[Optional[int]] = mapped_column(
        Integer,
        ForeignKey("bot_instances.id"),
        index=True,
        nullable=True,
    )
    external_ref: Mapped[Optional[str]] = mapped_column(
        String(128),
        unique=True,
        nullable=True,
        comment="Idempotency key (deposit tx hash, etc.)",
    )
    destination_address: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )

    wallet = relationship("Wallet", back_populates="transactions")

    __table_args__ = (
        Index("ix_wallet_transactions_wallet_created", "wallet_id", "created_at"),
    )

    def __repr__(self) -> str:
        return (
            f"<WalletTransaction(id={self.id}, wallet_id={self.wallet_id}, "
            f"type={self.type}, amount={self.amount})>"
        )


class DepositAddress(Base):
    """Provisioned deposit address - at most one per (wallet, network)"""

    __tablename__ = "deposit_addresses"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    wallet_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("wallets.id", ondelete="CASCADE"),
        index=True,
        nullable=False,
    )
    network: Mapped[str] = mapped_column(String(30), nullable=False)
    address: Mapped[str] = mapped_column(String(128), nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )

    wallet = relationship("Wallet", back_populates="deposit_addresses")

    __table_args__ = (
        UniqueConstraint("wallet_id", "network", name="uq_deposit_address_wallet_network"),
    )

    def __repr__(self) -> str:
        return f"<DepositAddress(wallet_id={self.wallet_id}, network={self.network}, address={self.address})>"
