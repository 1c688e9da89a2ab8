"""Order book endpoints."""

import logging
from typing import Optional

import pydantic
from fastapi import APIRouter, Query

from moleswap.crypto import get_encryptor, hashlock, validate_hashlock_format
from moleswap.errors import (
    InvalidOrderError,
    InvalidSignatureError,
    ValidationError,
)
from moleswap.extension import extract_chain_info
from moleswap.orders.database import get_db
from moleswap.orders.hashing import order_hash, random_salt, verify_order_signature
from moleswap.orders.models import OrderStatus
from moleswap.orders.repository import OrderRepository
from moleswap.orders.schemas import (
    ZERO_ADDRESS,
    CompleteOrderCreationRequest,
    Order,
    OrderCreationRequest,
    OrderCreationResponse,
    OrderDataRequest,
    OrderQueryFilters,
    OrderStatusUpdate,
    order_to_api,
)

logger = logging.getLogger(__name__)

router = APIRouter()


def _check_signature(order: Order, signature: str) -> None:
    valid, signer, error = verify_order_signature(order, signature)
    if not valid:
        raise InvalidSignatureError(
            error or "Signature verification failed",
            {"signer": signer, "expectedSigner": order.maker},
        )


def _check_order_hash(value: str) -> str:
    try:
        validate_hashlock_format(value)
    except ValidationError:
        raise ValidationError("Invalid order hash format", {"orderHash": value})
    return value.lower()


@router.post("/data")
async def create_order_data(request: OrderDataRequest):
    """Build an order to sign, committing a fresh secret to its hashlock."""
    fields = request.order
    bundle = get_encryptor().generate()

    order = Order(
        maker=fields.maker,
        makerAsset=fields.maker_asset,
        takerAsset=fields.taker_asset,
        makingAmount=fields.making_amount,
        takingAmount=fields.taking_amount,
        receiver=fields.receiver or ZERO_ADDRESS,
        makerTraits=bundle.hashlock,
        salt=random_salt(),
    )
    digest = order_hash(order)

    async with get_db() as session:
        repo = OrderRepository(session)
        await repo.save_commitment(bundle.hashlock, bundle.encrypted_secret)

    logger.info(
        f"Order data generated: {digest[:10]}... maker={order.maker} "
        f"hashlock={bundle.hashlock[:10]}..."
    )
    return {"success": True, "data": {"orderToSign": order.to_api(), "orderHash": digest}}


@router.post("", status_code=201)
async def create_order(request: OrderCreationRequest):
    """Store a signed order as active."""
    signed = request.signed_order
    _check_signature(signed.order, signed.signature)
    digest = order_hash(signed.order)

    async with get_db() as session:
        repo = OrderRepository(session)
        commitment = await repo.get_commitment(signed.order.hashlock)
        if commitment is None:
            logger.warning(f"No secret commitment for order {digest[:10]}...")

        record = await repo.insert_order(
            signed.order,
            digest,
            signed.signature,
            status=OrderStatus.ACTIVE,
            src_chain_id=request.src_chain_id,
            dst_chain_id=request.dst_chain_id,
            encrypted_secret=commitment.encrypted_secret if commitment else None,
        )
        response = OrderCreationResponse(
            orderHash=record.order_hash,
            status=OrderStatus(record.status),
            createdAt=record.created_at,
        )

    logger.info(f"Order created: {digest[:10]}... maker={signed.order.maker}")
    return {"success": True, "data": response.model_dump(mode="json", by_alias=True)}


@router.post("/complete", status_code=201)
async def create_complete_order(request: CompleteOrderCreationRequest):
    """Store an order whose maker supplies the extension and the secret."""
    complete = request.complete_order
    _check_signature(complete.order, complete.signature)

    if hashlock(complete.secret) != complete.secret_hash.lower():
        raise ValidationError("Secret does not match secretHash")

    digest = order_hash(complete.order)
    src_chain_id = request.src_chain_id
    dst_chain_id = request.dst_chain_id
    chain_info = extract_chain_info(complete.extension, src_chain_id)
    if chain_info and dst_chain_id is None:
        dst_chain_id = chain_info["dstChainId"]

    encrypted = get_encryptor().encrypt(complete.secret)

    async with get_db() as session:
        repo = OrderRepository(session)
        record = await repo.insert_order(
            complete.order,
            digest,
            complete.signature,
            status=OrderStatus.ACTIVE,
            src_chain_id=src_chain_id,
            dst_chain_id=dst_chain_id,
            extension=complete.extension,
            encrypted_secret=encrypted,
            secret_hash=complete.secret_hash.lower(),
        )
        response = OrderCreationResponse(
            orderHash=record.order_hash,
            status=OrderStatus(record.status),
            createdAt=record.created_at,
        )

    logger.info(f"Complete order created: {digest[:10]}... dstChain={dst_chain_id}")
    return {"success": True, "data": response.model_dump(mode="json", by_alias=True)}


@router.get("")
async def list_orders(
    status: Optional[OrderStatus] = Query(None),
    maker: Optional[str] = Query(None),
    maker_asset: Optional[str] = Query(None, alias="makerAsset"),
    taker_asset: Optional[str] = Query(None, alias="takerAsset"),
    src_chain_id: Optional[int] = Query(None, alias="srcChainId", ge=1),
    dst_chain_id: Optional[int] = Query(None, alias="dstChainId", ge=1),
    limit: int = Query(50, ge=1, le=100),
    offset: int = Query(0, ge=0),
):
    """Query orders, newest first."""
    try:
        filters = OrderQueryFilters(
            status=status,
            maker=maker,
            makerAsset=maker_asset,
            takerAsset=taker_asset,
            srcChainId=src_chain_id,
            dstChainId=dst_chain_id,
            limit=limit,
            offset=offset,
        )
    except pydantic.ValidationError as e:
        raise InvalidOrderError(
            "Invalid query parameters",
            {"errors": [err["msg"] for err in e.errors()]},
        )

    async with get_db() as session:
        repo = OrderRepository(session)
        orders, total = await repo.query(filters)
        items = [order_to_api(o) for o in orders]

    return {
        "success": True,
        "data": {
            "orders": items,
            "total": total,
            "limit": filters.limit,
            "offset": filters.offset,
            "hasMore": filters.offset + len(items) < total,
        },
    }


@router.get("/{order_hash}")
async def get_order(order_hash: str):
    """Get one order by hash."""
    digest = _check_order_hash(order_hash)
    async with get_db() as session:
        repo = OrderRepository(session)
        order = await repo.require(digest)
        return {"success": True, "data": order_to_api(order)}


@router.patch("/{order_hash}/status")
async def update_order_status(order_hash: str, update: OrderStatusUpdate):
    """Apply a status transition."""
    digest = _check_order_hash(order_hash)
    async with get_db() as session:
        repo = OrderRepository(session)
        order = await repo.update_status(digest, update.status, update.reason)
        data = order_to_api(order)
    return {"success": True, "data": data}
