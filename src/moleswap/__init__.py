"""MoleSwap: EVM <-> TON cross-chain atomic swaps (relayer and resolver)."""

__version__ = "0.1.0"
