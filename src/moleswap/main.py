"""Relayer entry point - serves the order book and secret API."""

import asyncio
import logging
import signal
import sys

import uvicorn

from moleswap.api.app import create_app
from moleswap.config import get_settings
from moleswap.errors import ConfigurationError

logger = logging.getLogger(__name__)


class Application:
    """Relayer process: the API server plus signal-driven shutdown."""

    def __init__(self):
        self.settings = get_settings()
        self.server = None
        self._shutdown_event = asyncio.Event()

    async def start(self):
        """Start the API server and wait for a shutdown signal."""
        safe = self.settings.get_safe_dict()
        plugins = safe["plugins"]
        logger.info(f"Starting MoleSwap relayer ({safe['environment']})")
        logger.info(f"Order store: {safe['database_url']}")
        logger.info(
            f"Escrow plugins: dummy={plugins['dummy_chains'] if plugins['use_dummy_plugin'] else 'off'} "
            f"evm={plugins['ethereum']['chain_id']} rpc={plugins['ethereum']['rpc']} "
            f"ton={'on' if plugins['ton']['enabled'] else 'off'}"
        )

        task = asyncio.create_task(self._run_api())
        await self._shutdown_event.wait()

        if self.server is not None:
            self.server.should_exit = True
        await asyncio.gather(task, return_exceptions=True)
        logger.info("Relayer stopped")

    async def _run_api(self):
        """Run the FastAPI server."""
        try:
            config = uvicorn.Config(
                create_app(),
                host=self.settings.api_host,
                port=self.settings.api_port,
                log_level="debug" if self.settings.debug else "info",
            )
            self.server = uvicorn.Server(config)
            # Signals are handled here, not by uvicorn
            self.server.install_signal_handlers = lambda: None
            logger.info(f"Starting API server on {self.settings.api_host}:{self.settings.api_port}")
            await self.server.serve()
        except asyncio.CancelledError:
            logger.info("Relayer API cancelled")
        except Exception as e:
            logger.error(f"Relayer API failed: {e}")
            raise
        finally:
            # a server exit without a signal still ends the process
            self._shutdown_event.set()

    def shutdown(self):
        logger.info("Relayer shutdown requested")
        self._shutdown_event.set()


def main():
    """Main entry point."""
    settings = get_settings()
    logging.basicConfig(
        level=logging.DEBUG if settings.debug else getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    try:
        settings.ensure_valid("relayer")
    except ConfigurationError as e:
        logger.error(e.message)
        sys.exit(1)

    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    app = Application()

    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, app.shutdown)

    try:
        loop.run_until_complete(app.start())
    except KeyboardInterrupt:
        logger.info("Keyboard interrupt received")
    finally:
        loop.close()


if __name__ == "__main__":
    main()
