"""Repository for order book operations."""

import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from moleswap.errors import InvalidTransitionError, OrderAlreadyExistsError, OrderNotFoundError
from moleswap.orders.models import (
    EscrowValidation,
    Order,
    OrderStatus,
    SecretCommitment,
    ValidationType,
    can_transition,
)
from moleswap.orders.schemas import Order as OrderSchema
from moleswap.orders.schemas import OrderQueryFilters

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class OrderRepository:
    """Repository for orders, their secrets and secret commitments."""

    def __init__(self, session: AsyncSession):
        self.session = session

    # Order operations
    async def insert_order(
        self,
        order: OrderSchema,
        order_hash: str,
        signature: str,
        status: OrderStatus = OrderStatus.PENDING,
        src_chain_id: Optional[int] = None,
        dst_chain_id: Optional[int] = None,
        extension: Optional[str] = None,
        encrypted_secret: Optional[str] = None,
        secret_hash: Optional[str] = None,
    ) -> Order:
        """Store a new order.

        Raises:
            OrderAlreadyExistsError: if the hash is already stored
        """
        if await self.get_by_hash(order_hash) is not None:
            raise OrderAlreadyExistsError(order_hash)

        now = utcnow()
        record = Order(
            order_hash=order_hash.lower(),
            maker=order.maker,
            maker_token=order.maker_asset,
            taker_token=order.taker_asset,
            maker_amount=order.making_amount,
            taker_amount=order.taking_amount,
            source_chain=src_chain_id,
            destination_chain=dst_chain_id,
            hashlock=(secret_hash or order.hashlock).lower(),
            secret=encrypted_secret,
            status=OrderStatus(status).value,
            order_data=order.to_api(),
            signed_data={"order": order.to_api(), "signature": signature},
            receiver=order.receiver,
            extension=extension,
            secret_hash=secret_hash,
            version=1,
            created_at=now,
            updated_at=now,
        )
        self.session.add(record)
        try:
            await self.session.flush()
        except IntegrityError:
            await self.session.rollback()
            raise OrderAlreadyExistsError(order_hash)

        logger.info(f"Stored order {order_hash[:10]}... as {record.status}")
        return record

    async def get_by_hash(self, order_hash: str) -> Optional[Order]:
        """Get order by hash."""
        stmt = select(Order).where(Order.order_hash == order_hash.lower())
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def require(self, order_hash: str) -> Order:
        """Get order by hash or raise OrderNotFoundError."""
        order = await self.get_by_hash(order_hash)
        if order is None:
            raise OrderNotFoundError(order_hash)
        return order

    async def query(self, filters: OrderQueryFilters) -> tuple[list[Order], int]:
        """Query orders, newest first.

        Returns:
            Tuple of (page of orders, total matching)
        """
        conditions = []
        if filters.status is not None:
            conditions.append(Order.status == filters.status.value)
        if filters.maker:
            conditions.append(func.lower(Order.maker) == filters.maker.lower())
        if filters.maker_asset:
            conditions.append(func.lower(Order.maker_token) == filters.maker_asset.lower())
        if filters.taker_asset:
            conditions.append(func.lower(Order.taker_token) == filters.taker_asset.lower())
        if filters.src_chain_id is not None:
            conditions.append(Order.source_chain == filters.src_chain_id)
        if filters.dst_chain_id is not None:
            conditions.append(Order.destination_chain == filters.dst_chain_id)

        count_stmt = select(func.count()).select_from(Order).where(*conditions)
        total = (await self.session.execute(count_stmt)).scalar_one()

        stmt = (
            select(Order)
            .where(*conditions)
            .order_by(Order.created_at.desc(), Order.id.desc())
            .limit(filters.limit)
            .offset(filters.offset)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all()), total

    async def update_status(
        self,
        order_hash: str,
        new_status: OrderStatus,
        reason: Optional[str] = None,
    ) -> Order:
        """Apply a status transition.

        The update is conditional on the status and version that were read,
        so a concurrent writer makes this call fail instead of both winning.

        Raises:
            OrderNotFoundError: unknown hash
            InvalidTransitionError: transition not allowed or lost a race
        """
        order = await self.require(order_hash)
        current = OrderStatus(order.status)
        new_status = OrderStatus(new_status)

        if not can_transition(current, new_status):
            raise InvalidTransitionError(order_hash, current.value, new_status.value)

        stmt = (
            update(Order)
            .where(
                Order.id == order.id,
                Order.status == current.value,
                Order.version == order.version,
            )
            .values(status=new_status.value, version=order.version + 1, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        await self.session.refresh(order)

        if result.rowcount != 1:
            raise InvalidTransitionError(order_hash, order.status, new_status.value)

        logger.info(
            f"Order {order_hash[:10]}... {current.value} -> {new_status.value}"
            + (f" ({reason})" if reason else "")
        )
        return order

    async def set_escrow_addresses(
        self,
        order_hash: str,
        src_escrow: Optional[str] = None,
        dst_escrow: Optional[str] = None,
    ) -> Order:
        """Record escrow addresses once they are known."""
        order = await self.require(order_hash)
        if src_escrow:
            order.source_escrow = src_escrow
        if dst_escrow:
            order.destination_escrow = dst_escrow
        order.updated_at = utcnow()
        await self.session.flush()
        return order

    # Secret operations
    async def store_secret(self, order_hash: str, encrypted_secret: str) -> bool:
        """Store an encrypted secret on an order."""
        order = await self.get_by_hash(order_hash)
        if order is None:
            return False
        order.secret = encrypted_secret
        order.updated_at = utcnow()
        await self.session.flush()
        return True

    async def get_secret(self, order_hash: str) -> Optional[str]:
        """Get the encrypted secret of an order."""
        order = await self.get_by_hash(order_hash)
        return order.secret if order else None

    async def save_commitment(self, hashlock: str, encrypted_secret: str) -> SecretCommitment:
        """Persist a generated secret until its order is submitted."""
        commitment = SecretCommitment(
            hashlock=hashlock.lower(),
            encrypted_secret=encrypted_secret,
            created_at=utcnow(),
        )
        self.session.add(commitment)
        await self.session.flush()
        return commitment

    async def get_commitment(self, hashlock: str) -> Optional[SecretCommitment]:
        """Get the secret commitment for a hashlock."""
        stmt = select(SecretCommitment).where(SecretCommitment.hashlock == hashlock.lower())
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def delete_all(self) -> int:
        """Delete every order, validation and commitment. Returns orders deleted."""
        await self.session.execute(delete(EscrowValidation))
        await self.session.execute(delete(SecretCommitment))
        result = await self.session.execute(delete(Order))
        return result.rowcount or 0


class EscrowValidationRepository:
    """Append-only store of escrow validation records."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def record(
        self,
        order_hash: str,
        chain: str,
        escrow_address: str,
        validation_type: ValidationType,
        is_valid: bool,
        details: Optional[dict] = None,
        validated_at: Optional[datetime] = None,
    ) -> EscrowValidation:
        """Write one validation record."""
        now = utcnow()
        record = EscrowValidation(
            order_hash=order_hash.lower(),
            chain=str(chain),
            escrow_address=escrow_address,
            validation_type=ValidationType(validation_type).value,
            is_valid=is_valid,
            validation_details=details or {},
            validated_at=validated_at or now,
            created_at=now,
        )
        self.session.add(record)
        await self.session.flush()
        return record

    async def get_latest(
        self,
        order_hash: str,
        validation_type: ValidationType,
        escrow_address: Optional[str] = None,
        max_age: Optional[timedelta] = None,
    ) -> Optional[EscrowValidation]:
        """Most recent record of one side, optionally bounded by age."""
        conditions = [
            EscrowValidation.order_hash == order_hash.lower(),
            EscrowValidation.validation_type == ValidationType(validation_type).value,
        ]
        if escrow_address:
            conditions.append(EscrowValidation.escrow_address == escrow_address)
        if max_age is not None:
            conditions.append(EscrowValidation.validated_at >= utcnow() - max_age)

        stmt = (
            select(EscrowValidation)
            .where(*conditions)
            .order_by(EscrowValidation.validated_at.desc(), EscrowValidation.id.desc())
            .limit(1)
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_history(self, order_hash: str) -> list[EscrowValidation]:
        """All records for an order, newest first."""
        stmt = (
            select(EscrowValidation)
            .where(EscrowValidation.order_hash == order_hash.lower())
            .order_by(EscrowValidation.validated_at.desc(), EscrowValidation.id.desc())
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())
