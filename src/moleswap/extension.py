"""Cross-chain order extension decoding.

An order extension starts with a 32-byte offsets word: field ``i`` ends at
``uint32(offsets >> 32*i)`` bytes into the data that follows, and starts
where field ``i-1`` ends. The escrow factory reads its arguments from the
tail of the post-interaction field (index 7):

    hashlockInfo (32) | dstChainId (32) | dstToken (32) | deposits (32) | timelocks (32)

``deposits`` packs the source safety deposit in the high 128 bits and the
destination safety deposit in the low 128 bits. ``timelocks`` packs seven
uint32 stage offsets (low to high) and the deployment timestamp in the top
32 bits.
"""

from dataclasses import dataclass
from enum import IntEnum
from typing import Optional

from moleswap.errors import ValidationError

UINT32_MASK = (1 << 32) - 1
UINT128_MASK = (1 << 128) - 1

POST_INTERACTION_FIELD = 7
FIELD_COUNT = 8
ESCROW_ARGS_LENGTH = 160
DEPLOYED_AT_OFFSET = 224


class Stage(IntEnum):
    """Timelock stages, in their bit order."""

    SRC_WITHDRAWAL = 0
    SRC_PUBLIC_WITHDRAWAL = 1
    SRC_CANCELLATION = 2
    SRC_PUBLIC_CANCELLATION = 3
    DST_WITHDRAWAL = 4
    DST_PUBLIC_WITHDRAWAL = 5
    DST_CANCELLATION = 6


@dataclass(frozen=True)
class Timelocks:
    """Packed timelock word."""

    value: int

    @property
    def deployed_at(self) -> int:
        return self.value >> DEPLOYED_AT_OFFSET

    def offset(self, stage: Stage) -> int:
        return (self.value >> (int(stage) * 32)) & UINT32_MASK

    def get(self, stage: Stage) -> int:
        """Absolute timestamp at which a stage begins."""
        return self.deployed_at + self.offset(stage)

    def with_deployed_at(self, timestamp: int) -> "Timelocks":
        base = self.value & ((1 << DEPLOYED_AT_OFFSET) - 1)
        return Timelocks(base | (timestamp << DEPLOYED_AT_OFFSET))

    @classmethod
    def from_offsets(cls, offsets: dict[Stage, int], deployed_at: int = 0) -> "Timelocks":
        value = 0
        for stage, seconds in offsets.items():
            value |= (seconds & UINT32_MASK) << (int(stage) * 32)
        return cls(value | (deployed_at << DEPLOYED_AT_OFFSET))


@dataclass(frozen=True)
class EscrowExtension:
    """Escrow arguments carried by an order extension."""

    factory: str
    hashlock_info: str
    dst_chain_id: int
    dst_token: int
    src_safety_deposit: int
    dst_safety_deposit: int
    timelocks: Timelocks

    def encode(self, settlement_data: bytes = b"") -> str:
        """Encode as an extension holding only the post-interaction field."""
        deposits = (self.src_safety_deposit << 128) | (self.dst_safety_deposit & UINT128_MASK)
        post_interaction = (
            bytes.fromhex(self.factory[2:])
            + settlement_data
            + bytes.fromhex(self.hashlock_info[2:])
            + self.dst_chain_id.to_bytes(32, "big")
            + self.dst_token.to_bytes(32, "big")
            + deposits.to_bytes(32, "big")
            + self.timelocks.value.to_bytes(32, "big")
        )
        # Fields 0-6 are empty, so every end offset up to field 7 is 0
        offsets = len(post_interaction) << (POST_INTERACTION_FIELD * 32)
        return "0x" + (offsets.to_bytes(32, "big") + post_interaction).hex()


def _to_bytes(extension: str) -> bytes:
    hex_body = extension[2:] if extension.startswith("0x") else extension
    try:
        return bytes.fromhex(hex_body)
    except ValueError:
        raise ValidationError("Extension must be a hex string")


def get_field(extension: str, index: int) -> bytes:
    """Return one field of an extension."""
    raw = _to_bytes(extension)
    if len(raw) < 32:
        raise ValidationError("Extension is shorter than its offsets header")
    if not 0 <= index < FIELD_COUNT:
        raise ValidationError(f"Extension field {index} out of range")

    offsets = int.from_bytes(raw[:32], "big")
    data = raw[32:]
    begin = 0 if index == 0 else (offsets >> ((index - 1) * 32)) & UINT32_MASK
    end = (offsets >> (index * 32)) & UINT32_MASK
    if begin > end or end > len(data):
        raise ValidationError(f"Extension field {index} has invalid offsets")
    return data[begin:end]


def decode_extension(extension: str) -> EscrowExtension:
    """Decode the escrow arguments of an order extension.

    Raises:
        ValidationError: if the extension is malformed
    """
    post = get_field(extension, POST_INTERACTION_FIELD)
    if len(post) < 20 + ESCROW_ARGS_LENGTH:
        raise ValidationError("Extension post-interaction data is too short for escrow arguments")

    args = post[-ESCROW_ARGS_LENGTH:]
    words = [int.from_bytes(args[i : i + 32], "big") for i in range(0, ESCROW_ARGS_LENGTH, 32)]
    hashlock_info, dst_chain_id, dst_token, deposits, timelocks = words

    return EscrowExtension(
        factory="0x" + post[:20].hex(),
        hashlock_info="0x" + hashlock_info.to_bytes(32, "big").hex(),
        dst_chain_id=dst_chain_id,
        dst_token=dst_token,
        src_safety_deposit=deposits >> 128,
        dst_safety_deposit=deposits & UINT128_MASK,
        timelocks=Timelocks(timelocks),
    )


def extract_chain_info(extension: str, src_chain_id: Optional[int] = None) -> Optional[dict]:
    """Best-effort chain routing info from an extension; None if undecodable."""
    try:
        decoded = decode_extension(extension)
    except ValidationError:
        return None
    return {
        "srcChainId": src_chain_id,
        "dstChainId": decoded.dst_chain_id,
        "factory": decoded.factory,
    }
