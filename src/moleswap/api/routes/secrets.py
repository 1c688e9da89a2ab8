"""Secret disclosure endpoints.

A secret is released only for an active order whose source and
destination escrows both pass on-chain validation.
"""

import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Request

from moleswap.api.app import get_registry
from moleswap.config import get_settings
from moleswap.crypto import get_encryptor, verify_secret
from moleswap.errors import (
    EscrowValidationFailedError,
    InvalidAddressError,
    InvalidSecretRequestError,
    MoleSwapError,
    SecretNotFoundError,
)
from moleswap.escrow.validation import EscrowValidationRequest, EscrowValidationService
from moleswap.orders.database import get_db
from moleswap.orders.models import OrderStatus
from moleswap.orders.repository import OrderRepository
from moleswap.orders.schemas import BYTES32_RE, EVM_ADDRESS_RE, SecretRequest
from moleswap.ton import is_valid_ton_address

logger = logging.getLogger(__name__)

router = APIRouter()


def _check_order_hash(order_hash: str) -> str:
    if not BYTES32_RE.match(order_hash):
        raise InvalidSecretRequestError("Invalid order hash format", {"orderHash": order_hash})
    return order_hash.lower()


def is_valid_escrow_address(address: str, chain_id: str) -> bool:
    """Check an address against the format of its chain."""
    if str(chain_id) == str(get_settings().ton_chain_id):
        return is_valid_ton_address(address)
    return bool(EVM_ADDRESS_RE.match(address))


def _check_addresses(request: SecretRequest) -> None:
    for label, address, chain_id in (
        ("srcEscrowAddress", request.src_escrow_address, request.src_chain_id),
        ("dstEscrowAddress", request.dst_escrow_address, request.dst_chain_id),
    ):
        if not is_valid_escrow_address(address, chain_id):
            raise InvalidAddressError(
                f"Invalid {label} for chain {chain_id}", {label: address, "chainId": chain_id}
            )
    if request.src_escrow_address.lower() == request.dst_escrow_address.lower():
        raise InvalidAddressError(
            "Source and destination escrow addresses must differ",
            {"srcEscrowAddress": request.src_escrow_address},
        )


@router.post("/{order_hash}")
async def request_secret(order_hash: str, body: SecretRequest, request: Request):
    """Disclose the secret of an active order once both escrows check out."""
    digest = _check_order_hash(order_hash)
    _check_addresses(body)
    registry = await get_registry(request.app)
    settings = get_settings()

    logger.info(
        f"Secret requested for {digest[:10]}... "
        f"src={body.src_chain_id}:{body.src_escrow_address} "
        f"dst={body.dst_chain_id}:{body.dst_escrow_address}"
    )

    # Validation records are committed even when the check fails
    async with get_db() as session:
        repo = OrderRepository(session)
        order = await repo.get_by_hash(digest)
        if order is None:
            raise InvalidSecretRequestError("Order not found", {"orderHash": digest})
        if order.status != OrderStatus.ACTIVE.value:
            raise InvalidSecretRequestError(
                f"Order is {order.status}, secrets are only shared for active orders",
                {"orderHash": digest, "status": order.status},
            )

        service = EscrowValidationService(
            registry, session, reuse_seconds=settings.validation_reuse_seconds
        )
        validation = await service.validate_escrows(
            order,
            EscrowValidationRequest(
                order_hash=digest,
                src_escrow_address=body.src_escrow_address,
                dst_escrow_address=body.dst_escrow_address,
                src_chain_id=body.src_chain_id,
                dst_chain_id=body.dst_chain_id,
            ),
        )
        encrypted = order.secret
        if validation["allValid"]:
            await repo.set_escrow_addresses(
                digest, body.src_escrow_address, body.dst_escrow_address
            )
        expected_hashlock = order.hashlock

    validation_result = {"srcEscrow": validation["srcEscrow"], "dstEscrow": validation["dstEscrow"]}
    if not validation["allValid"]:
        raise EscrowValidationFailedError(
            "Escrow validation failed", {"orderHash": digest, "validationResult": validation_result}
        )

    if not encrypted:
        raise SecretNotFoundError("No secret stored for this order", {"orderHash": digest})

    secret = get_encryptor().decrypt(encrypted)
    if not verify_secret(secret, expected_hashlock):
        logger.error(f"Stored secret does not open hashlock of {digest[:10]}...")
        raise MoleSwapError("Stored secret does not match order hashlock", {"orderHash": digest})

    logger.info(f"Secret shared for {digest[:10]}...")
    return {
        "success": True,
        "data": {
            "secret": secret,
            "orderHash": digest,
            "validationResult": validation_result,
            "sharedAt": datetime.now(timezone.utc).isoformat(),
        },
    }


@router.get("/{order_hash}/validations")
async def get_validations(order_hash: str, request: Request):
    """Escrow validation history of an order, newest first."""
    digest = _check_order_hash(order_hash)
    registry = await get_registry(request.app)
    async with get_db() as session:
        service = EscrowValidationService(registry, session)
        history = await service.get_validation_history(digest)
    return {
        "success": True,
        "data": {"orderHash": digest, "validations": history, "total": len(history)},
    }
