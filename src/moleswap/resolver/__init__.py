"""Resolver: polls the relayer and executes profitable swaps."""

from moleswap.resolver.config import ResolverConfig
from moleswap.resolver.execution import ExecutionResult, ExecutionService
from moleswap.resolver.oracle import OracleService
from moleswap.resolver.relayer_client import RelayerClient
from moleswap.resolver.service import ResolverService

__all__ = [
    "ResolverConfig",
    "ExecutionResult",
    "ExecutionService",
    "OracleService",
    "RelayerClient",
    "ResolverService",
]
