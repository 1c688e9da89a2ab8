"""SQLAlchemy models for the order book."""

from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all models."""

    pass


class OrderStatus(str, Enum):
    """Status of an order."""

    PENDING = "pending"        # Stored, not yet fillable
    ACTIVE = "active"          # Fillable by resolvers
    COMPLETED = "completed"    # Both escrows withdrawn
    CANCELLED = "cancelled"    # Withdrawn from the book


# Allowed status transitions; anything else is rejected
ORDER_TRANSITIONS: dict[OrderStatus, frozenset[OrderStatus]] = {
    OrderStatus.PENDING: frozenset({OrderStatus.ACTIVE, OrderStatus.CANCELLED}),
    OrderStatus.ACTIVE: frozenset({OrderStatus.COMPLETED, OrderStatus.CANCELLED}),
    OrderStatus.COMPLETED: frozenset(),
    OrderStatus.CANCELLED: frozenset(),
}

TERMINAL_STATUSES = frozenset({OrderStatus.COMPLETED, OrderStatus.CANCELLED})


def can_transition(current: OrderStatus, new: OrderStatus) -> bool:
    """Check the transition table."""
    return new in ORDER_TRANSITIONS[OrderStatus(current)]


class ValidationType(str, Enum):
    """Which escrow of an order was checked."""

    SOURCE = "source"
    DESTINATION = "destination"


class Order(Base):
    """One cross-chain swap intent."""

    __tablename__ = "orders"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    order_hash: Mapped[str] = mapped_column(String(66), unique=True, nullable=False, index=True)
    maker: Mapped[str] = mapped_column(String(66), nullable=False, index=True)
    taker: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    maker_token: Mapped[str] = mapped_column(String(100), nullable=False)
    taker_token: Mapped[str] = mapped_column(String(100), nullable=False)
    # Decimal strings; uint256 does not fit a SQL integer
    maker_amount: Mapped[str] = mapped_column(String(78), nullable=False)
    taker_amount: Mapped[str] = mapped_column(String(78), nullable=False)
    source_chain: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    destination_chain: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    source_escrow: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    destination_escrow: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    hashlock: Mapped[str] = mapped_column(String(66), nullable=False)
    secret: Mapped[Optional[str]] = mapped_column(Text, nullable=True)  # encrypted
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=OrderStatus.PENDING.value, index=True
    )
    order_data: Mapped[dict] = mapped_column(JSON, nullable=False)
    signed_data: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    receiver: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    extension: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    secret_hash: Mapped[Optional[str]] = mapped_column(String(66), nullable=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    __table_args__ = (
        Index("ix_orders_status_created", "status", "created_at"),
        Index("ix_orders_chains", "source_chain", "destination_chain"),
    )

    @property
    def signature(self) -> Optional[str]:
        if self.signed_data:
            return self.signed_data.get("signature")
        return None

    def __repr__(self) -> str:
        return f"<Order {self.order_hash[:10]}... {self.status}>"


class EscrowValidation(Base):
    """Audit record of one escrow check. Never updated after insert."""

    __tablename__ = "escrow_validations"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    order_hash: Mapped[str] = mapped_column(
        ForeignKey("orders.order_hash", ondelete="CASCADE"), nullable=False
    )
    chain: Mapped[str] = mapped_column(String(20), nullable=False)
    escrow_address: Mapped[str] = mapped_column(String(100), nullable=False)
    validation_type: Mapped[str] = mapped_column(String(20), nullable=False)
    is_valid: Mapped[bool] = mapped_column(Boolean, nullable=False)
    validation_details: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    validated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    __table_args__ = (
        Index("ix_escrow_validations_order_type", "order_hash", "validation_type"),
        Index("ix_escrow_validations_validated_at", "validated_at"),
    )


class SecretCommitment(Base):
    """Encrypted secret generated for a hashlock before the order is signed."""

    __tablename__ = "secret_commitments"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    hashlock: Mapped[str] = mapped_column(String(66), unique=True, nullable=False, index=True)
    encrypted_secret: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
