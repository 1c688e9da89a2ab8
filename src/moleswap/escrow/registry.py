"""Registry of chain plugins, keyed by chain id."""

import logging
from typing import Optional

from moleswap.errors import ChainNotSupportedError
from moleswap.escrow.base import ChainPlugin, PluginConfig, PluginState, PluginStatus

logger = logging.getLogger(__name__)


class PluginRegistry:
    """Holds one plugin per chain id."""

    def __init__(self):
        self._plugins: dict[str, ChainPlugin] = {}

    def register(self, plugin: ChainPlugin) -> None:
        """Register a plugin, replacing any plugin for the same chain."""
        if plugin.chain_id in self._plugins:
            logger.warning(f"Replacing plugin for chain {plugin.chain_id}")
        self._plugins[plugin.chain_id] = plugin
        logger.info(f"Registered {type(plugin).__name__} for {plugin.name} ({plugin.chain_id})")

    async def unregister(self, chain_id: str) -> bool:
        plugin = self._plugins.pop(str(chain_id), None)
        if plugin is None:
            return False
        await plugin.close()
        logger.info(f"Unregistered plugin for chain {chain_id}")
        return True

    def get_plugin(self, chain_id) -> Optional[ChainPlugin]:
        return self._plugins.get(str(chain_id))

    def get_plugin_or_raise(self, chain_id) -> ChainPlugin:
        """Get the plugin for a chain.

        Raises:
            ChainNotSupportedError: if no plugin is registered
        """
        plugin = self.get_plugin(chain_id)
        if plugin is None:
            raise ChainNotSupportedError(str(chain_id))
        return plugin

    def get_all_plugins(self) -> list[ChainPlugin]:
        return list(self._plugins.values())

    def get_all_plugin_statuses(self) -> list[PluginStatus]:
        return [plugin.get_status() for plugin in self._plugins.values()]

    def is_chain_supported(self, chain_id) -> bool:
        return str(chain_id) in self._plugins

    def get_supported_chain_ids(self) -> list[str]:
        return list(self._plugins.keys())

    async def load_plugins(self, configs: list[PluginConfig]) -> None:
        """Create, initialize and register plugins from configs.

        A plugin that fails to initialize is still registered in the
        unhealthy state so its chain reports a useful status.
        """
        from moleswap.escrow.factory import create_plugin

        for plugin_config in configs:
            if not plugin_config.enabled:
                logger.info(f"Skipping disabled plugin for chain {plugin_config.config.chain_id}")
                continue
            plugin = create_plugin(plugin_config)
            await plugin.initialize()
            self.register(plugin)

    async def health_check(self) -> dict[str, PluginStatus]:
        """Probe every plugin and return the fresh statuses."""
        results = {}
        for chain_id, plugin in self._plugins.items():
            results[chain_id] = await plugin.refresh_status()
        return results

    def get_healthy_plugins(self) -> list[ChainPlugin]:
        return [
            plugin
            for plugin in self._plugins.values()
            if plugin.get_status().status == PluginState.HEALTHY
        ]

    def validate_required_plugins(self, chain_ids: list) -> list[str]:
        """Return the chain ids in ``chain_ids`` that have no plugin."""
        return [str(c) for c in chain_ids if not self.is_chain_supported(c)]

    def summary(self) -> dict:
        """Counts used by the status endpoints."""
        statuses = self.get_all_plugin_statuses()
        healthy = sum(1 for s in statuses if s.status == PluginState.HEALTHY)
        return {
            "plugins": [s.to_dict() for s in statuses],
            "total": len(statuses),
            "healthy": healthy,
            "unhealthy": len(statuses) - healthy,
        }

    async def close(self) -> None:
        for plugin in self._plugins.values():
            try:
                await plugin.close()
            except Exception as e:
                logger.warning(f"Error closing plugin {plugin.chain_id}: {e}")
        self._plugins.clear()
