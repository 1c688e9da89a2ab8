"""Resolver poll loop.

Every polling interval the resolver pulls processable orders from the
relayer, gates each one on oracle profitability and executes the profitable
ones one after another. A cycle that is still running when the next tick
comes due causes that tick to be skipped, never run concurrently.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Callable, Optional

from moleswap.errors import ChainAdapterError, RelayerError
from moleswap.orders.models import OrderStatus
from moleswap.resolver.config import ResolverConfig
from moleswap.resolver.execution import ExecutionResult, ExecutionService
from moleswap.resolver.oracle import OracleService
from moleswap.resolver.relayer_client import RelayerClient
from moleswap.utils.locks import LockTimeoutError, OrderLock

logger = logging.getLogger(__name__)

PROCESSABLE_STATUSES = (OrderStatus.ACTIVE.value, OrderStatus.PENDING.value)


@dataclass
class ResolverStats:
    """Counters accumulated over the life of the resolver."""

    is_running: bool = False
    last_poll_time: Optional[float] = None
    poll_cycles: int = 0
    skipped_cycles: int = 0
    total_orders_processed: int = 0
    successful_executions: int = 0
    failed_executions: int = 0
    total_profit: Decimal = Decimal("0")

    @property
    def success_rate(self) -> float:
        attempts = self.successful_executions + self.failed_executions
        return self.successful_executions / attempts * 100 if attempts else 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "isRunning": self.is_running,
            "lastPollTime": self.last_poll_time,
            "pollCycles": self.poll_cycles,
            "skippedCycles": self.skipped_cycles,
            "totalOrdersProcessed": self.total_orders_processed,
            "successfulExecutions": self.successful_executions,
            "failedExecutions": self.failed_executions,
            "totalProfit": str(self.total_profit),
            "successRate": round(self.success_rate, 2),
        }


@dataclass
class FailedOrder:
    attempts: int
    last_attempt: float


class ResolverService:
    """Polls the relayer and executes profitable orders."""

    def __init__(
        self,
        config: ResolverConfig,
        relayer: RelayerClient,
        oracle: OracleService,
        execution: ExecutionService,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.config = config
        self.relayer = relayer
        self.oracle = oracle
        self.execution = execution
        self.clock = clock
        self.stats = ResolverStats()
        self.failed_orders: dict[str, FailedOrder] = {}
        self._cycle_lock = asyncio.Lock()
        self._stop_event = asyncio.Event()

    @property
    def is_running(self) -> bool:
        return self.stats.is_running

    async def start(self) -> None:
        """Run pre-flight checks, then poll until stopped.

        Raises:
            RelayerError: relayer is not healthy
            ChainAdapterError: wallet cannot cover gas
        """
        if self.is_running:
            logger.info("Resolver service is already running")
            return

        logger.info("Starting MoleSwap resolver service...")
        if not await self.relayer.health_check():
            raise RelayerError("Relayer is not healthy")
        if not await self.execution.check_balance():
            raise ChainAdapterError("Insufficient wallet balance for execution")

        self.stats.is_running = True
        self._stop_event.clear()
        logger.info(f"Resolver started. Wallet: {self.execution.evm.address}")
        await self.run()

    def stop(self) -> None:
        """Stop scheduling new cycles; an in-flight execution finishes."""
        logger.info("Stopping MoleSwap resolver service...")
        self.stats.is_running = False
        self._stop_event.set()

    async def run(self) -> None:
        """Poll loop."""
        interval = self.config.polling_interval
        logger.info(f"Polling for orders every {interval}s")
        while self.is_running:
            delay = interval
            try:
                await self.poll_once()
            except Exception as e:
                logger.error(f"Error during order polling: {e}")
                delay = interval * 2

            if not self.is_running:
                break
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=delay)
            except asyncio.TimeoutError:
                pass

        logger.info(f"Resolver stopped: {self.stats.to_dict()}")

    async def poll_once(self) -> int:
        """Run one poll cycle unless one is already in progress.

        Returns:
            Number of orders processed in this cycle
        """
        if self._cycle_lock.locked():
            self.stats.skipped_cycles += 1
            logger.warning("Previous poll cycle still running, skipping this one")
            return 0

        async with self._cycle_lock:
            self.stats.poll_cycles += 1
            orders = await self.relayer.get_processable_orders(self.config.max_orders_per_poll, 0)
            self.stats.last_poll_time = time.time()
            if not orders:
                logger.debug("No processable orders")
                return 0
            logger.info(f"Found {len(orders)} processable orders")
            return await self.process_orders(orders)

    def should_process(self, order: dict[str, Any]) -> bool:
        """Skip terminal orders and orders that cannot be deposited."""
        order_hash = order.get("orderHash", "")
        status = order.get("status")
        if status not in PROCESSABLE_STATUSES:
            logger.info(f"Skipping order {order_hash[:10]}... - status: {status}")
            return False
        if not order.get("extension") or not order.get("signature"):
            logger.info(f"Skipping order {order_hash[:10]}... - missing extension or signature")
            return False
        return True

    def should_retry(self, order_hash: str) -> bool:
        failed = self.failed_orders.get(order_hash)
        if failed is None:
            return True
        if failed.attempts >= self.config.max_retry_attempts:
            logger.debug(f"Order {order_hash[:10]}... exceeded {failed.attempts} attempts")
            return False
        if self.clock() - failed.last_attempt < self.config.retry_delay:
            logger.debug(f"Order {order_hash[:10]}... attempted recently, waiting")
            return False
        return True

    def record_failure(self, order_hash: str) -> None:
        failed = self.failed_orders.get(order_hash)
        if failed is None:
            self.failed_orders[order_hash] = FailedOrder(attempts=1, last_attempt=self.clock())
        else:
            failed.attempts += 1
            failed.last_attempt = self.clock()
        logger.info(
            f"Recorded failed attempt {self.failed_orders[order_hash].attempts} "
            f"for {order_hash[:10]}..."
        )

    async def is_order_profitable(self, order: dict[str, Any]) -> bool:
        """Oracle profitability gate; any pricing error means skip."""
        fields = order["order"]
        try:
            comparison = await self.oracle.check_profitability(
                fields["makerAsset"],
                fields["takerAsset"],
                fields["makingAmount"],
                fields["takingAmount"],
                self.config.min_profit_percent,
            )
        except Exception as e:
            logger.error(f"Profitability check failed for {order.get('orderHash', '')[:10]}...: {e}")
            return False
        return comparison.is_profitable

    async def process_order(self, order: dict[str, Any]) -> Optional[ExecutionResult]:
        """Gate and execute one order. Returns None when it was not executed."""
        order_hash = order["orderHash"]
        try:
            async with OrderLock(order_hash, timeout=0, operation="execute"):
                self.stats.total_orders_processed += 1
                if not await self.is_order_profitable(order):
                    logger.info(f"Order {order_hash[:10]}... is not profitable, skipping")
                    return None

                logger.info(f"Order {order_hash[:10]}... is profitable, executing...")
                result = await self.execution.execute_order(order)
        except LockTimeoutError:
            logger.info(f"Order {order_hash[:10]}... is already being executed")
            return None

        if result.success:
            self.stats.successful_executions += 1
            self.stats.total_profit += result.profit
            self.failed_orders.pop(order_hash, None)
            logger.info(f"Executed order {order_hash[:10]}... profit {result.profit}")
            if order.get("status") == OrderStatus.ACTIVE.value:
                await self.relayer.update_order_status(
                    order_hash, OrderStatus.COMPLETED.value, "executed by resolver"
                )
        else:
            self.stats.failed_executions += 1
            self.record_failure(order_hash)
            logger.error(f"Failed to execute order {order_hash[:10]}...: {result.error}")
        return result

    async def process_orders(self, orders: list[dict[str, Any]]) -> int:
        """Process orders in the order given."""
        if self.config.process_one_order_and_stop:
            order = orders[0]
            logger.info("PROCESS_ONE_ORDER_AND_STOP enabled - processing only the first order")
            if self.should_process(order):
                await self.process_order(order)
            self.stop()
            return 1

        processed = 0
        for order in orders:
            if self._stop_event.is_set():
                break
            if not self.should_process(order) or not self.should_retry(order["orderHash"]):
                continue
            await self.process_order(order)
            processed += 1
        return processed

    async def execute_single_order(self, order_hash: str) -> Optional[ExecutionResult]:
        """Fetch, gate and execute one order by hash (manual runs)."""
        order = await self.relayer.get_order(order_hash)
        if order is None:
            logger.error(f"Order {order_hash} not found")
            return None
        if not await self.is_order_profitable(order):
            logger.info(f"Order {order_hash} is not profitable")
            return None
        return await self.execution.execute_order(order)
