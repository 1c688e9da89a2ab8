"""Utility modules for MoleSwap."""

from moleswap.utils.locks import OrderLock, get_order_lock
from moleswap.utils.retry import backoff_delays

__all__ = ["OrderLock", "get_order_lock", "backoff_delays"]
