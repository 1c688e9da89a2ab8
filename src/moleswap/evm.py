"""EVM ABI helpers for the escrow factory, escrows and the resolver proxy.

Only the handful of calls and events MoleSwap needs are encoded here, with
eth-abi, so no full contract ABI has to be shipped.
"""

from dataclasses import dataclass
from typing import Any

from eth_abi import decode, encode
from eth_account.messages import encode_typed_data
from eth_utils import function_signature_to_4byte_selector, keccak, to_checksum_address

IMMUTABLES_TYPE = "(bytes32,bytes32,uint256,uint256,uint256,uint256,uint256,uint256)"
ORDER_TYPE = "(uint256,uint256,uint256,uint256,uint256,uint256,uint256,uint256)"
DST_COMPLEMENT_TYPE = "(uint256,uint256,uint256,uint256,uint256)"

DEPLOY_SRC_SIG = (
    f"deploySrc({IMMUTABLES_TYPE},{ORDER_TYPE},bytes32,bytes32,uint256,uint256,bytes)"
)
ARBITRARY_CALLS_SIG = "arbitraryCalls(address[],bytes[])"
WITHDRAW_TO_SIG = f"withdrawTo(bytes32,address,{IMMUTABLES_TYPE})"
CANCEL_SIG = f"cancel({IMMUTABLES_TYPE})"
ADDRESS_OF_ESCROW_SRC_SIG = f"addressOfEscrowSrc({IMMUTABLES_TYPE})"
BALANCE_OF_SIG = "balanceOf(address)"

SRC_ESCROW_CREATED_TOPIC = "0x" + keccak(
    text=f"SrcEscrowCreated({IMMUTABLES_TYPE},{DST_COMPLEMENT_TYPE})"
).hex()

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"

# Taker traits bits
MAKER_AMOUNT_FLAG = 1 << 255
ARGS_EXTENSION_LENGTH_OFFSET = 224
AMOUNT_THRESHOLD_MASK = (1 << 185) - 1


def address_to_int(address: str) -> int:
    return int(address, 16)


def int_to_address(value: int) -> str:
    return to_checksum_address("0x" + (value & ((1 << 160) - 1)).to_bytes(20, "big").hex())


def to_bytes32(value: str) -> bytes:
    body = value[2:] if value.startswith("0x") else value
    return bytes.fromhex(body.rjust(64, "0"))


def encode_call(signature: str, arg_types: list[str], args: list[Any]) -> str:
    """ABI-encode a function call as 0x-prefixed calldata."""
    return "0x" + (function_signature_to_4byte_selector(signature) + encode(arg_types, args)).hex()


@dataclass(frozen=True)
class Immutables:
    """Escrow immutables as emitted by the factory."""

    order_hash: str
    hashlock: str
    maker: int
    taker: int
    token: int
    amount: int
    safety_deposit: int
    timelocks: int

    def to_tuple(self) -> tuple:
        return (
            to_bytes32(self.order_hash),
            to_bytes32(self.hashlock),
            self.maker,
            self.taker,
            self.token,
            self.amount,
            self.safety_deposit,
            self.timelocks,
        )

    @classmethod
    def from_tuple(cls, values: tuple) -> "Immutables":
        order_hash, hashlock, maker, taker, token, amount, safety_deposit, timelocks = values
        return cls(
            order_hash="0x" + bytes(order_hash).hex(),
            hashlock="0x" + bytes(hashlock).hex(),
            maker=maker,
            taker=taker,
            token=token,
            amount=amount,
            safety_deposit=safety_deposit,
            timelocks=timelocks,
        )

    def to_dict(self) -> dict[str, Any]:
        """JSON-safe form (uint256 as strings)."""
        return {
            "orderHash": self.order_hash,
            "hashlock": self.hashlock,
            "maker": int_to_address(self.maker),
            "taker": int_to_address(self.taker),
            "token": int_to_address(self.token),
            "amount": str(self.amount),
            "safetyDeposit": str(self.safety_deposit),
            "timelocks": str(self.timelocks),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Immutables":
        return cls(
            order_hash=data["orderHash"],
            hashlock=data["hashlock"],
            maker=address_to_int(data["maker"]),
            taker=address_to_int(data["taker"]),
            token=address_to_int(data["token"]),
            amount=int(data["amount"]),
            safety_deposit=int(data["safetyDeposit"]),
            timelocks=int(data["timelocks"]),
        )


@dataclass(frozen=True)
class DstImmutablesComplement:
    """Destination-side values emitted alongside the source immutables."""

    maker: int
    amount: int
    token: int
    safety_deposit: int
    chain_id: int


def decode_src_escrow_created(data: bytes) -> tuple[Immutables, DstImmutablesComplement]:
    """Decode the data of a SrcEscrowCreated log."""
    src, dst = decode([IMMUTABLES_TYPE, DST_COMPLEMENT_TYPE], bytes(data))
    return Immutables.from_tuple(src), DstImmutablesComplement(*dst)


def compact_signature(signature: str) -> tuple[bytes, bytes]:
    """Split a 65-byte signature into EIP-2098 (r, vs)."""
    raw = bytes.fromhex(signature[2:] if signature.startswith("0x") else signature)
    if len(raw) != 65:
        raise ValueError("Signature must be 65 bytes")
    r, s, v = raw[:32], int.from_bytes(raw[32:64], "big"), raw[64]
    if v < 27:
        v += 27
    vs = s | ((v - 27) << 255)
    return r, vs.to_bytes(32, "big")


def build_taker_traits(extension: str, threshold: int) -> int:
    """Taker traits for a maker-amount fill carrying the order extension."""
    ext_len = len(bytes.fromhex(extension[2:] if extension.startswith("0x") else extension))
    return (
        MAKER_AMOUNT_FLAG
        | (ext_len << ARGS_EXTENSION_LENGTH_OFFSET)
        | (threshold & AMOUNT_THRESHOLD_MASK)
    )


LOP_DOMAIN_NAME = "1inch Limit Order Protocol"
LOP_DOMAIN_VERSION = "4"

LOP_ORDER_TYPES = {
    "EIP712Domain": [
        {"name": "name", "type": "string"},
        {"name": "version", "type": "string"},
        {"name": "chainId", "type": "uint256"},
        {"name": "verifyingContract", "type": "address"},
    ],
    "Order": [
        {"name": "salt", "type": "uint256"},
        {"name": "maker", "type": "address"},
        {"name": "receiver", "type": "address"},
        {"name": "makerAsset", "type": "address"},
        {"name": "takerAsset", "type": "address"},
        {"name": "makingAmount", "type": "uint256"},
        {"name": "takingAmount", "type": "uint256"},
        {"name": "makerTraits", "type": "uint256"},
    ],
}


def _uint(value: Any) -> int:
    if isinstance(value, int):
        return value
    text = str(value)
    return int(text, 16) if text.startswith("0x") else int(text)


def lop_order_tuple(order: dict[str, Any]) -> tuple:
    """Order struct as the limit order protocol takes it (all uint256)."""
    return (
        _uint(order["salt"]),
        address_to_int(order["maker"]),
        address_to_int(order.get("receiver") or ZERO_ADDRESS),
        address_to_int(order["makerAsset"]),
        address_to_int(order["takerAsset"]),
        _uint(order["makingAmount"]),
        _uint(order["takingAmount"]),
        _uint(order["makerTraits"]),
    )


def lop_order_hash(order: dict[str, Any], chain_id: int, lop_address: str) -> str:
    """EIP-712 hash of an order under the limit order protocol domain.

    This is the order hash the escrow factory records in the immutables.
    """
    salt, maker, receiver, maker_asset, taker_asset, making, taking, traits = lop_order_tuple(order)
    message = encode_typed_data(
        full_message={
            "types": LOP_ORDER_TYPES,
            "primaryType": "Order",
            "domain": {
                "name": LOP_DOMAIN_NAME,
                "version": LOP_DOMAIN_VERSION,
                "chainId": chain_id,
                "verifyingContract": to_checksum_address(lop_address),
            },
            "message": {
                "salt": salt,
                "maker": int_to_address(maker),
                "receiver": int_to_address(receiver),
                "makerAsset": int_to_address(maker_asset),
                "takerAsset": int_to_address(taker_asset),
                "makingAmount": making,
                "takingAmount": taking,
                "makerTraits": traits,
            },
        }
    )
    return "0x" + keccak(b"\x19" + message.version + message.header + message.body).hex()
