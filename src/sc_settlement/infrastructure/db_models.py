"""SQLAlchemy ORM models for orders / allocations / settlement_transfers (DDL reference only — queries use raw SQL)."""

from datetime import datetime
from decimal import Decimal

from sqlalchemy import BigInteger, DateTime, ForeignKey, Numeric, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from src.sc_common.database import Base


class OrderORM(Base):
    __tablename__ = "orders"

    id: Mapped[str] = mapped_column(String(32), primary_key=True)
    group_id: Mapped[str] = mapped_column(String(64), nullable=False)
    proposal_id: Mapped[str] = mapped_column(String(32), nullable=False, unique=True)
    asset: Mapped[str] = mapped_column(String(64), nullable=False)
    token_amount: Mapped[Decimal] = mapped_column(Numeric(39, 0), nullable=False)
    total_amount_spent: Mapped[int] = mapped_column(BigInteger, nullable=False)
    fees: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    bought_at_price: Mapped[Decimal] = mapped_column(Numeric(38, 18), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="COMPLETED")
    buy_signature: Mapped[str | None] = mapped_column(String(128), nullable=True)
    sold_at_price: Mapped[Decimal | None] = mapped_column(Numeric(38, 18), nullable=True)
    sol_received: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    sell_fees: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    sell_signature: Mapped[str | None] = mapped_column(String(128), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    closed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )


class AllocationORM(Base):
    __tablename__ = "allocations"

    id: Mapped[str] = mapped_column(String(32), primary_key=True)
    order_id: Mapped[str] = mapped_column(ForeignKey("orders.id"), nullable=False)
    participant_id: Mapped[str] = mapped_column(String(64), nullable=False)
    amount_contributed: Mapped[int] = mapped_column(BigInteger, nullable=False)
    tokens_allocated: Mapped[Decimal] = mapped_column(Numeric(39, 0), nullable=False)
    fees_charged: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="ACTIVE")
    proceeds_received: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    profit_loss: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    payout_signature: Mapped[str | None] = mapped_column(String(128), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )


class SettlementTransferORM(Base):
    __tablename__ = "settlement_transfers"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    proposal_id: Mapped[str] = mapped_column(String(32), nullable=False)
    direction: Mapped[str] = mapped_column(String(10), nullable=False)
    participant_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    amount: Mapped[int] = mapped_column(BigInteger, nullable=False)
    from_address: Mapped[str | None] = mapped_column(String(64), nullable=True)
    to_address: Mapped[str | None] = mapped_column(String(64), nullable=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False)
    signature: Mapped[str | None] = mapped_column(String(128), nullable=True)
    error: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
