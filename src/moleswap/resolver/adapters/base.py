"""Results shared by the chain adapters."""

from dataclasses import dataclass, field
from typing import Any, Optional

from moleswap.evm import DstImmutablesComplement, Immutables


@dataclass
class TxResult:
    """A confirmed transaction."""

    transaction_hash: str
    block_hash: Optional[str] = None
    block_number: Optional[int] = None
    block_timestamp: Optional[int] = None
    gas_used: int = 0


@dataclass
class DepositResult:
    """Source escrow created and funded by deploySrc."""

    escrow_address: str
    transaction_hash: str
    block_hash: str
    block_timestamp: int
    immutables: Immutables
    dst_complement: Optional[DstImmutablesComplement] = None
    gas_used: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "escrowAddress": self.escrow_address,
            "transactionHash": self.transaction_hash,
            "blockHash": self.block_hash,
            "blockTimestamp": self.block_timestamp,
            "immutables": self.immutables.to_dict(),
        }


@dataclass
class DestinationResult:
    """Destination escrow created on TON."""

    escrow_address: str
    transaction_hash: str
    seqno: int
    details: dict[str, Any] = field(default_factory=dict)
