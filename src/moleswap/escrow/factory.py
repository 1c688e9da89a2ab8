"""Plugin factory and plugin configuration from settings."""

import logging

from moleswap.config import Settings
from moleswap.errors import ConfigurationError
from moleswap.escrow.base import ChainConfig, ChainPlugin, PluginConfig
from moleswap.escrow.dummy import CHAIN_NAMES, DummyPlugin

logger = logging.getLogger(__name__)


def create_plugin(plugin_config: PluginConfig) -> ChainPlugin:
    """Create a plugin instance for a config.

    Raises:
        ConfigurationError: unknown plugin type
    """
    plugin_type = plugin_config.type.lower()
    if plugin_type == "dummy":
        return DummyPlugin(plugin_config.config)
    if plugin_type == "evm":
        from moleswap.escrow.evm import EvmPlugin

        return EvmPlugin(plugin_config.config)
    if plugin_type == "ton":
        from moleswap.escrow.ton import TonPlugin

        return TonPlugin(plugin_config.config)
    raise ConfigurationError([f"Unknown plugin type: {plugin_config.type}"])


def load_plugin_configs(settings: Settings) -> list[PluginConfig]:
    """Build the plugin list for this process from settings.

    Real chains take precedence over dummy chains with the same id.
    """
    configs: dict[str, PluginConfig] = {}

    if settings.use_dummy_plugin:
        for chain_id in settings.dummy_chain_ids:
            configs[chain_id] = PluginConfig(
                type="dummy",
                config=ChainConfig(
                    chain_id=chain_id,
                    chain_name=CHAIN_NAMES.get(chain_id, f"Chain {chain_id}"),
                ),
            )

    if settings.ethereum_rpc_url:
        chain_id = str(settings.ethereum_chain_id)
        configs[chain_id] = PluginConfig(
            type="evm",
            config=ChainConfig(
                chain_id=chain_id,
                chain_name=CHAIN_NAMES.get(chain_id, f"EVM {chain_id}"),
                rpc_url=settings.ethereum_rpc_url,
                escrow_factory_address=settings.ethereum_escrow_factory,
                log_lookback_blocks=settings.ethereum_log_lookback_blocks,
            ),
        )

    if settings.ton_plugin_enabled:
        chain_id = str(settings.ton_chain_id)
        configs[chain_id] = PluginConfig(
            type="ton",
            config=ChainConfig(
                chain_id=chain_id,
                chain_name="TON",
                rpc_url=settings.ton_api_url,
                api_key=settings.ton_api_key,
                block_time=5,
            ),
        )

    logger.info(
        "Plugin configs: "
        + ", ".join(f"{c.config.chain_id}={c.type}" for c in configs.values())
    )
    return list(configs.values())
