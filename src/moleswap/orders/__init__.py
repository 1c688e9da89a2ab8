"""Order book: models, storage and EIP-712 hashing."""

from moleswap.orders.database import get_db, init_db
from moleswap.orders.models import (
    EscrowValidation,
    Order,
    OrderStatus,
    SecretCommitment,
    ValidationType,
)
from moleswap.orders.repository import EscrowValidationRepository, OrderRepository

__all__ = [
    # Models
    "Order",
    "EscrowValidation",
    "SecretCommitment",
    # Enums
    "OrderStatus",
    "ValidationType",
    # Database
    "get_db",
    "init_db",
    "OrderRepository",
    "EscrowValidationRepository",
]
