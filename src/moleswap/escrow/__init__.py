"""Escrow validation plugins.

Plugins:
- DummyPlugin: always valid, for local development
- EvmPlugin: contract code, balance and factory event checks over JSON-RPC
- TonPlugin: account state, balance and escrow get-method checks via toncenter
"""

from moleswap.escrow.base import (
    ChainConfig,
    ChainPlugin,
    EscrowOrderData,
    PluginConfig,
    PluginState,
    PluginStatus,
    ValidationResult,
)
from moleswap.escrow.dummy import DummyPlugin
from moleswap.escrow.factory import create_plugin, load_plugin_configs
from moleswap.escrow.registry import PluginRegistry
from moleswap.escrow.validation import EscrowValidationRequest, EscrowValidationService

__all__ = [
    "ChainConfig",
    "ChainPlugin",
    "EscrowOrderData",
    "PluginConfig",
    "PluginState",
    "PluginStatus",
    "ValidationResult",
    "DummyPlugin",
    "PluginRegistry",
    "create_plugin",
    "load_plugin_configs",
    "EscrowValidationRequest",
    "EscrowValidationService",
]
