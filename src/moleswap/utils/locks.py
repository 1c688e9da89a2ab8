"""Concurrency control for order processing.

Provides per-order locking so an order is never executed twice at once
within a resolver process, and a non-blocking guard for poll cycles.
Locks are reference counted and dropped once no task holds or waits on
them, so the registry only tracks orders in flight.
"""

import asyncio
import logging
from typing import Optional

logger = logging.getLogger(__name__)

# Global lock registry: order_hash -> asyncio.Lock, plus holders and waiters per hash
_order_locks: dict[str, asyncio.Lock] = {}
_lock_users: dict[str, int] = {}
_registry_lock = asyncio.Lock()


async def get_order_lock(order_hash: str) -> asyncio.Lock:
    """Get or create a lock for a specific order.

    Every call registers one user; pair it with ``release_order_lock``.

    Args:
        order_hash: Order hash (case-insensitive)

    Returns:
        asyncio.Lock for the order
    """
    key = order_hash.lower()
    async with _registry_lock:
        if key not in _order_locks:
            _order_locks[key] = asyncio.Lock()
            _lock_users[key] = 0
        _lock_users[key] += 1
        return _order_locks[key]


def release_order_lock(order_hash: str) -> None:
    """Drop one user of an order lock; the last one removes it from the registry."""
    key = order_hash.lower()
    users = _lock_users.get(key, 0) - 1
    if users > 0:
        _lock_users[key] = users
        return
    _lock_users.pop(key, None)
    _order_locks.pop(key, None)


class LockTimeoutError(Exception):
    """Raised when a lock cannot be acquired within the timeout period."""

    pass


class OrderLock:
    """Context manager for exclusive processing of one order.

    Example:
        async with OrderLock(order_hash, operation="execute"):
            result = await execution.execute_order(order)
    """

    def __init__(
        self,
        order_hash: str,
        timeout: Optional[float] = 30.0,
        operation: str = "order_operation",
    ):
        """Initialize the lock.

        Args:
            order_hash: Order to lock
            timeout: Maximum time to wait for lock (None = wait forever,
                0 = fail immediately if held)
            operation: Description of the operation for logging
        """
        self.order_hash = order_hash
        self.timeout = timeout
        self.operation = operation
        self._lock: Optional[asyncio.Lock] = None
        self._acquired = False

    async def __aenter__(self) -> "OrderLock":
        self._lock = await get_order_lock(self.order_hash)
        try:
            await self._acquire()
        except BaseException:
            # timeouts and cancellation leave no registry entry behind
            release_order_lock(self.order_hash)
            raise

        logger.debug(f"Lock acquired for order {self.order_hash[:10]}...: {self.operation}")
        return self

    async def _acquire(self) -> None:
        if self.timeout == 0:
            if self._lock.locked():
                raise LockTimeoutError(f"Order {self.order_hash[:10]}... is already being processed")
            await self._lock.acquire()
        elif self.timeout:
            try:
                await asyncio.wait_for(self._lock.acquire(), timeout=self.timeout)
            except asyncio.TimeoutError:
                logger.warning(
                    f"Lock timeout for order {self.order_hash[:10]}... "
                    f"after {self.timeout}s: {self.operation}"
                )
                raise LockTimeoutError(
                    f"Could not acquire lock for order {self.order_hash} within {self.timeout}s"
                )
        else:
            await self._lock.acquire()
        self._acquired = True

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        if self._acquired and self._lock:
            self._lock.release()
            self._acquired = False
            release_order_lock(self.order_hash)
            logger.debug(f"Lock released for order {self.order_hash[:10]}...: {self.operation}")
        return False


def is_order_locked(order_hash: str) -> bool:
    lock = _order_locks.get(order_hash.lower())
    return lock is not None and lock.locked()


def tracked_order_locks() -> int:
    """Number of orders currently holding or waiting on a lock."""
    return len(_order_locks)


def clear_order_locks() -> None:
    """Clear all order locks (useful for testing)."""
    _order_locks.clear()
    _lock_users.clear()
