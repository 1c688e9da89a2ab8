"""Resolver entry point.

Usage:
    moleswap-resolver              # poll until interrupted
    moleswap-resolver --once       # run a single poll cycle
    moleswap-resolver --order 0x.. # execute one order by hash
"""

import argparse
import asyncio
import json
import logging
import signal
import sys
from typing import Optional

from moleswap.config import get_settings
from moleswap.errors import ConfigurationError, MoleSwapError
from moleswap.resolver.adapters.evm import EvmAdapter
from moleswap.resolver.adapters.ton import TonAdapter
from moleswap.resolver.config import ResolverConfig
from moleswap.resolver.execution import ExecutionService
from moleswap.resolver.oracle import OracleService
from moleswap.resolver.relayer_client import RelayerClient
from moleswap.resolver.service import ResolverService

logger = logging.getLogger(__name__)


def build_service(config: ResolverConfig) -> ResolverService:
    """Wire the resolver's collaborators from configuration."""
    relayer = RelayerClient(config.relayer_url)
    execution = ExecutionService(config, EvmAdapter(config), TonAdapter(config), relayer)
    oracle = OracleService(cache_ttl=config.oracle_cache_ttl)
    return ResolverService(config, relayer, oracle, execution)


class Application:
    """Resolver process: the poll loop plus signal-driven shutdown."""

    def __init__(self, config: ResolverConfig):
        self.config = config
        self.service: Optional[ResolverService] = None

    async def start(self, once: bool = False, order_hash: Optional[str] = None) -> int:
        """Run the resolver.

        Returns:
            Process exit code
        """
        self.service = build_service(self.config)
        logger.info(f"Starting MoleSwap resolver: {self.config!r}")
        try:
            if order_hash:
                result = await self.service.execute_single_order(order_hash)
                if result is None:
                    return 1
                print(json.dumps(result.to_dict(), indent=2))
                return 0 if result.success else 1

            if once:
                processed = await self.service.poll_once()
                logger.info(f"Processed {processed} orders")
                logger.info(f"Stats: {self.service.stats.to_dict()}")
                return 0

            await self.service.start()
            return 0
        except MoleSwapError as e:
            logger.error(f"Resolver failed: {e.message}")
            return 1
        finally:
            await self.close()

    async def close(self) -> None:
        if self.service is None:
            return
        await self.service.relayer.close()
        await self.service.execution.ton.close()

    def shutdown(self) -> None:
        """Signal shutdown."""
        logger.info("Shutdown requested")
        if self.service is not None:
            self.service.stop()


def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(description="Run the MoleSwap resolver")
    parser.add_argument(
        "--once",
        action="store_true",
        help="Run a single poll cycle and exit",
    )
    parser.add_argument(
        "--order",
        default=None,
        help="Execute a single order by hash and exit",
    )
    args = parser.parse_args()

    settings = get_settings()
    logging.basicConfig(
        level=logging.DEBUG if settings.debug else getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    try:
        settings.ensure_valid("resolver")
    except ConfigurationError as e:
        logger.error(e.message)
        sys.exit(1)

    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    app = Application(ResolverConfig.from_settings(settings))

    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, app.shutdown)

    exit_code = 1
    try:
        exit_code = loop.run_until_complete(app.start(once=args.once, order_hash=args.order))
    except KeyboardInterrupt:
        logger.info("Keyboard interrupt received")
        exit_code = 0
    finally:
        loop.close()
    sys.exit(exit_code)


if __name__ == "__main__":
    main()
