"""Chain adapters used by the resolver."""

from moleswap.resolver.adapters.base import DepositResult, DestinationResult, TxResult
from moleswap.resolver.adapters.evm import EvmAdapter
from moleswap.resolver.adapters.ton import TonAdapter

__all__ = ["DepositResult", "DestinationResult", "TxResult", "EvmAdapter", "TonAdapter"]
