"""Tests for the order repository."""

from datetime import timedelta

import pytest

from moleswap.errors import InvalidTransitionError, OrderAlreadyExistsError, OrderNotFoundError
from moleswap.orders.hashing import order_hash
from moleswap.orders.models import OrderStatus, ValidationType, can_transition
from moleswap.orders.repository import OrderRepository, utcnow
from moleswap.orders.schemas import OrderQueryFilters


async def _store(repo: OrderRepository, make_order, sign, **kwargs):
    order = make_order()
    digest = order_hash(order)
    record = await repo.insert_order(order, digest, sign(order), **kwargs)
    return order, digest, record


class TestTransitions:
    """Status transition table."""

    @pytest.mark.parametrize(
        "current,new,allowed",
        [
            (OrderStatus.PENDING, OrderStatus.ACTIVE, True),
            (OrderStatus.PENDING, OrderStatus.CANCELLED, True),
            (OrderStatus.PENDING, OrderStatus.COMPLETED, False),
            (OrderStatus.ACTIVE, OrderStatus.COMPLETED, True),
            (OrderStatus.ACTIVE, OrderStatus.CANCELLED, True),
            (OrderStatus.ACTIVE, OrderStatus.PENDING, False),
            (OrderStatus.COMPLETED, OrderStatus.ACTIVE, False),
            (OrderStatus.CANCELLED, OrderStatus.ACTIVE, False),
        ],
    )
    def test_can_transition(self, current, new, allowed):
        assert can_transition(current, new) is allowed


class TestOrderRepository:
    """Order storage."""

    @pytest.mark.asyncio
    async def test_insert_and_get(self, order_repo, make_order, sign):
        order, digest, record = await _store(
            order_repo, make_order, sign, src_chain_id=11155111, dst_chain_id=608
        )

        fetched = await order_repo.get_by_hash(digest.upper().replace("0X", "0x"))

        assert fetched is not None
        assert fetched.id == record.id
        assert fetched.status == OrderStatus.PENDING.value
        assert fetched.maker == order.maker
        assert fetched.hashlock == order.hashlock
        assert fetched.source_chain == 11155111
        assert fetched.destination_chain == 608
        assert fetched.signature.startswith("0x")
        assert fetched.version == 1

    @pytest.mark.asyncio
    async def test_duplicate_hash_rejected(self, order_repo, make_order, sign):
        order = make_order()
        digest = order_hash(order)
        await order_repo.insert_order(order, digest, sign(order))

        with pytest.raises(OrderAlreadyExistsError):
            await order_repo.insert_order(order, digest, sign(order))

    @pytest.mark.asyncio
    async def test_require_unknown(self, order_repo):
        with pytest.raises(OrderNotFoundError):
            await order_repo.require("0x" + "00" * 32)

    @pytest.mark.asyncio
    async def test_valid_transitions_bump_version(self, order_repo, make_order, sign):
        _, digest, _ = await _store(order_repo, make_order, sign)

        order = await order_repo.update_status(digest, OrderStatus.ACTIVE)
        assert order.status == OrderStatus.ACTIVE.value
        assert order.version == 2

        order = await order_repo.update_status(digest, OrderStatus.COMPLETED, "filled")
        assert order.status == OrderStatus.COMPLETED.value
        assert order.version == 3

    @pytest.mark.asyncio
    async def test_terminal_status_is_final(self, order_repo, make_order, sign):
        _, digest, _ = await _store(order_repo, make_order, sign, status=OrderStatus.ACTIVE)
        await order_repo.update_status(digest, OrderStatus.CANCELLED)

        with pytest.raises(InvalidTransitionError) as exc_info:
            await order_repo.update_status(digest, OrderStatus.ACTIVE)

        assert exc_info.value.details["currentStatus"] == "cancelled"

    @pytest.mark.asyncio
    async def test_pending_cannot_complete(self, order_repo, make_order, sign):
        _, digest, _ = await _store(order_repo, make_order, sign)

        with pytest.raises(InvalidTransitionError):
            await order_repo.update_status(digest, OrderStatus.COMPLETED)

    @pytest.mark.asyncio
    async def test_stale_version_loses(self, order_repo, make_order, sign):
        """A writer holding an outdated version cannot apply its transition."""
        _, digest, record = await _store(order_repo, make_order, sign, status=OrderStatus.ACTIVE)
        await order_repo.update_status(digest, OrderStatus.COMPLETED)

        # Pretend another reader still sees the old row
        record.status = OrderStatus.ACTIVE.value
        record.version = 1

        async def stale_require(_hash):
            return record

        order_repo.require = stale_require
        with order_repo.session.no_autoflush:
            with pytest.raises(InvalidTransitionError):
                await order_repo.update_status(digest, OrderStatus.CANCELLED)

    @pytest.mark.asyncio
    async def test_query_filters_and_pagination(self, order_repo, make_order, sign, other_account):
        for _ in range(3):
            await _store(order_repo, make_order, sign, status=OrderStatus.ACTIVE, dst_chain_id=608)
        _, pending_hash, _ = await _store(order_repo, make_order, sign, dst_chain_id=1)

        orders, total = await order_repo.query(OrderQueryFilters(status=OrderStatus.ACTIVE))
        assert total == 3
        assert all(o.status == "active" for o in orders)

        orders, total = await order_repo.query(OrderQueryFilters(dstChainId=1))
        assert total == 1
        assert orders[0].order_hash == pending_hash

        orders, total = await order_repo.query(OrderQueryFilters(limit=2, offset=0))
        assert total == 4
        assert len(orders) == 2

        orders, total = await order_repo.query(OrderQueryFilters(maker=other_account.address))
        assert total == 0

    @pytest.mark.asyncio
    async def test_query_newest_first(self, order_repo, make_order, sign):
        _, first, _ = await _store(order_repo, make_order, sign)
        _, second, _ = await _store(order_repo, make_order, sign)

        orders, _ = await order_repo.query(OrderQueryFilters())

        assert [o.order_hash for o in orders] == [second, first]

    @pytest.mark.asyncio
    async def test_secret_storage(self, order_repo, make_order, sign):
        _, digest, _ = await _store(order_repo, make_order, sign)

        assert await order_repo.get_secret(digest) is None
        assert await order_repo.store_secret(digest, "ciphertext") is True
        assert await order_repo.get_secret(digest) == "ciphertext"
        assert await order_repo.store_secret("0x" + "00" * 32, "x") is False

    @pytest.mark.asyncio
    async def test_commitments(self, order_repo):
        hashlock = "0x" + "AB" * 32
        await order_repo.save_commitment(hashlock, "sealed")

        commitment = await order_repo.get_commitment(hashlock.lower())

        assert commitment is not None
        assert commitment.encrypted_secret == "sealed"
        assert await order_repo.get_commitment("0x" + "00" * 32) is None

    @pytest.mark.asyncio
    async def test_set_escrow_addresses(self, order_repo, make_order, sign):
        _, digest, _ = await _store(order_repo, make_order, sign)

        order = await order_repo.set_escrow_addresses(digest, "0x" + "ab" * 20, "0:" + "cd" * 32)

        assert order.source_escrow == "0x" + "ab" * 20
        assert order.destination_escrow == "0:" + "cd" * 32

    @pytest.mark.asyncio
    async def test_delete_all(self, order_repo, validation_repo, make_order, sign):
        _, digest, _ = await _store(order_repo, make_order, sign)
        await validation_repo.record(digest, "1", "0x" + "ab" * 20, ValidationType.SOURCE, True)

        assert await order_repo.delete_all() == 1
        assert await order_repo.get_by_hash(digest) is None
        assert await validation_repo.get_history(digest) == []


class TestEscrowValidationRepository:
    """Validation audit trail."""

    @pytest.mark.asyncio
    async def test_history_newest_first(self, validation_repo):
        digest = "0x" + "12" * 32
        first = await validation_repo.record(digest, "1", "0xa", ValidationType.SOURCE, False)
        second = await validation_repo.record(digest, "1", "0xa", ValidationType.SOURCE, True)

        history = await validation_repo.get_history(digest)

        assert [r.id for r in history] == [second.id, first.id]

    @pytest.mark.asyncio
    async def test_get_latest_respects_age(self, validation_repo):
        digest = "0x" + "34" * 32
        await validation_repo.record(
            digest,
            "608",
            "0:" + "cd" * 32,
            ValidationType.DESTINATION,
            True,
            validated_at=utcnow() - timedelta(hours=1),
        )

        assert await validation_repo.get_latest(digest, ValidationType.DESTINATION) is not None
        assert (
            await validation_repo.get_latest(
                digest, ValidationType.DESTINATION, max_age=timedelta(minutes=5)
            )
            is None
        )
        assert await validation_repo.get_latest(digest, ValidationType.SOURCE) is None
