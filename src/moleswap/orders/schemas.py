"""Pydantic schemas for orders crossing the API boundary.

Unknown fields are rejected. JSON uses camelCase; Python attributes use
snake_case.
"""

import re
from datetime import datetime
from typing import Any, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from moleswap.orders.models import OrderStatus

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"
MAX_UINT256 = 2**256 - 1

EVM_ADDRESS_RE = re.compile(r"^0x[a-fA-F0-9]{40}$")
BYTES32_RE = re.compile(r"^0x[a-fA-F0-9]{64}$")
SIGNATURE_RE = re.compile(r"^0x[a-fA-F0-9]{130}$")
UINT_RE = re.compile(r"^[0-9]+$")
HEX_RE = re.compile(r"^0x([a-fA-F0-9]{2})*$")


def _check_address(value: str, label: str) -> str:
    if not EVM_ADDRESS_RE.match(value):
        raise ValueError(f"{label} must be a valid Ethereum address")
    return value


def _check_amount(value: str, label: str, minimum: int = 1) -> str:
    if not UINT_RE.match(value):
        raise ValueError(f"{label} must be a valid number string")
    amount = int(value)
    if amount < minimum:
        raise ValueError(f"{label} must be at least {minimum}")
    if amount > MAX_UINT256:
        raise ValueError(f"{label} exceeds uint256")
    return str(amount)


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="forbid")


class OrderFields(_CamelModel):
    """Order fields supplied by a maker before signing."""

    maker: str
    maker_asset: str = Field(..., alias="makerAsset")
    taker_asset: str = Field(..., alias="takerAsset")
    making_amount: str = Field(..., alias="makingAmount")
    taking_amount: str = Field(..., alias="takingAmount")
    receiver: Optional[str] = None

    @field_validator("maker")
    @classmethod
    def validate_maker(cls, v: str) -> str:
        return _check_address(v, "Maker")

    @field_validator("maker_asset")
    @classmethod
    def validate_maker_asset(cls, v: str) -> str:
        return _check_address(v, "Maker asset")

    @field_validator("taker_asset")
    @classmethod
    def validate_taker_asset(cls, v: str) -> str:
        return _check_address(v, "Taker asset")

    @field_validator("making_amount")
    @classmethod
    def validate_making_amount(cls, v: str) -> str:
        return _check_amount(v, "Making amount")

    @field_validator("taking_amount")
    @classmethod
    def validate_taking_amount(cls, v: str) -> str:
        return _check_amount(v, "Taking amount")

    @field_validator("receiver")
    @classmethod
    def validate_receiver(cls, v: Optional[str]) -> Optional[str]:
        """Receiver is optional but, when given, must be a non-zero address."""
        if v is None:
            return v
        if not v or v == ZERO_ADDRESS:
            raise ValueError("Receiver must be a valid non-zero address")
        return _check_address(v, "Receiver")

    @model_validator(mode="after")
    def validate_pair(self):
        if self.making_amount == self.taking_amount:
            raise ValueError("Making amount and taking amount must differ")
        if self.maker_asset.lower() == self.taker_asset.lower():
            raise ValueError("Maker asset and taker asset must differ")
        return self


class Order(OrderFields):
    """A complete order as signed with EIP-712.

    ``maker_traits`` carries the hashlock.
    """

    maker_traits: str = Field(..., alias="makerTraits")
    salt: str
    receiver: str = ZERO_ADDRESS

    @field_validator("maker_traits")
    @classmethod
    def validate_maker_traits(cls, v: str) -> str:
        if not BYTES32_RE.match(v):
            raise ValueError("Maker traits must be a valid 32-byte hex string")
        return v

    @field_validator("salt")
    @classmethod
    def validate_salt(cls, v: str) -> str:
        return _check_amount(v, "Salt")

    @field_validator("receiver")
    @classmethod
    def validate_receiver(cls, v: Optional[str]) -> str:
        # Signed orders carry the default zero receiver explicitly
        if v is None:
            return ZERO_ADDRESS
        return _check_address(v, "Receiver")

    @property
    def hashlock(self) -> str:
        return self.maker_traits.lower()

    def to_api(self) -> dict[str, str]:
        """Render with camelCase keys."""
        return self.model_dump(by_alias=True)


class OrderDataRequest(_CamelModel):
    """Body of POST /api/orders/data."""

    order: OrderFields


class SignedOrder(_CamelModel):
    """An order with its EIP-712 signature."""

    order: Order
    signature: str

    @field_validator("signature")
    @classmethod
    def validate_signature(cls, v: str) -> str:
        if not SIGNATURE_RE.match(v):
            raise ValueError("Signature must be a valid 65-byte hex string")
        return v


class OrderCreationRequest(_CamelModel):
    """Body of POST /api/orders."""

    signed_order: SignedOrder = Field(..., alias="signedOrder")
    src_chain_id: Optional[int] = Field(None, alias="srcChainId")
    dst_chain_id: Optional[int] = Field(None, alias="dstChainId")


class CompleteOrder(_CamelModel):
    """An order submitted together with its extension and secret."""

    order: Order
    extension: str
    signature: str
    secret: str
    secret_hash: str = Field(..., alias="secretHash")

    @field_validator("extension")
    @classmethod
    def validate_extension(cls, v: str) -> str:
        if not v or not HEX_RE.match(v):
            raise ValueError("Extension must be a 0x-prefixed hex string")
        return v

    @field_validator("signature")
    @classmethod
    def validate_signature(cls, v: str) -> str:
        if not SIGNATURE_RE.match(v):
            raise ValueError("Signature must be a valid 65-byte hex string")
        return v

    @field_validator("secret", "secret_hash")
    @classmethod
    def validate_bytes32(cls, v: str) -> str:
        if not BYTES32_RE.match(v):
            raise ValueError("Must be a valid 32-byte hex string")
        return v


class CompleteOrderCreationRequest(_CamelModel):
    """Body of POST /api/orders/complete."""

    complete_order: CompleteOrder = Field(..., alias="completeOrder")
    src_chain_id: Optional[int] = Field(None, alias="srcChainId")
    dst_chain_id: Optional[int] = Field(None, alias="dstChainId")


class OrderStatusUpdate(_CamelModel):
    """Body of PATCH /api/orders/{orderHash}/status."""

    status: OrderStatus
    reason: Optional[str] = Field(None, max_length=500)


class OrderQueryFilters(_CamelModel):
    """Filters and pagination for GET /api/orders."""

    status: Optional[OrderStatus] = None
    maker: Optional[str] = None
    maker_asset: Optional[str] = Field(None, alias="makerAsset")
    taker_asset: Optional[str] = Field(None, alias="takerAsset")
    src_chain_id: Optional[int] = Field(None, alias="srcChainId", ge=1)
    dst_chain_id: Optional[int] = Field(None, alias="dstChainId", ge=1)
    limit: int = Field(50, ge=1, le=100)
    offset: int = Field(0, ge=0)

    @field_validator("maker", "maker_asset", "taker_asset")
    @classmethod
    def validate_addresses(cls, v: Optional[str]) -> Optional[str]:
        if v is not None:
            _check_address(v, "Address filter")
        return v


class SecretRequest(_CamelModel):
    """Body of POST /api/secrets/{orderHash}."""

    src_escrow_address: str = Field(..., alias="srcEscrowAddress")
    dst_escrow_address: str = Field(..., alias="dstEscrowAddress")
    src_chain_id: Union[str, int] = Field(..., alias="srcChainId")
    dst_chain_id: Union[str, int] = Field(..., alias="dstChainId")

    @field_validator("src_chain_id", "dst_chain_id")
    @classmethod
    def validate_chain_id(cls, v: Union[str, int]) -> str:
        v = str(v).strip()
        if not v:
            raise ValueError("Chain id is required")
        return v


class EscrowValidationBody(_CamelModel):
    """Body of POST /api/plugins/validate-escrow/{chainId}."""

    escrow_address: str = Field(..., alias="escrowAddress")
    order_data: dict[str, Any] = Field(..., alias="orderData")


class OrderCreationResponse(BaseModel):
    """Data returned after an order is stored."""

    model_config = ConfigDict(populate_by_name=True)

    order_hash: str = Field(..., alias="orderHash")
    status: OrderStatus
    created_at: datetime = Field(..., alias="createdAt")


def order_to_api(order: Any) -> dict[str, Any]:
    """Render a stored order as the API's order-with-metadata object."""
    data = order.order_data or {}
    return {
        "order": {
            "maker": order.maker,
            "makerAsset": order.maker_token,
            "takerAsset": order.taker_token,
            "makerTraits": data.get("makerTraits", order.hashlock),
            "salt": data.get("salt", ""),
            "makingAmount": order.maker_amount,
            "takingAmount": order.taker_amount,
            "receiver": order.receiver or ZERO_ADDRESS,
        },
        "orderHash": order.order_hash,
        "status": order.status,
        "hashlock": order.hashlock,
        "srcChainId": order.source_chain,
        "dstChainId": order.destination_chain,
        "srcEscrowAddress": order.source_escrow,
        "dstEscrowAddress": order.destination_escrow,
        "extension": order.extension,
        "signature": order.signature,
        "secretHash": order.secret_hash,
        "createdAt": order.created_at.isoformat() if order.created_at else None,
        "updatedAt": order.updated_at.isoformat() if order.updated_at else None,
    }
