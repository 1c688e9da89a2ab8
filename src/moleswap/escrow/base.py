"""Chain plugin interface for escrow validation."""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

logger = logging.getLogger(__name__)


class PluginState(str, Enum):
    """Health state of a chain plugin."""

    INITIALIZING = "initializing"
    HEALTHY = "healthy"
    UNHEALTHY = "unhealthy"


@dataclass
class ChainConfig:
    """Configuration for one chain plugin."""

    chain_id: str
    chain_name: str
    rpc_url: str = ""
    escrow_factory_address: str = ""
    api_key: str = ""
    block_time: int = 12
    confirmations: int = 1
    timeout: float = 30.0
    log_lookback_blocks: int = 5000


@dataclass
class PluginConfig:
    """Which plugin type to create for a chain."""

    type: str
    config: ChainConfig
    enabled: bool = True


@dataclass
class EscrowOrderData:
    """What an escrow is expected to hold for an order."""

    maker: str = ""
    maker_asset: str = ""
    taker_asset: str = ""
    making_amount: str = "0"
    taking_amount: str = "0"
    hashlock: str = ""
    order_hash: str = ""
    expected_amount: Optional[str] = None
    expected_asset: Optional[str] = None
    timelock: Optional[int] = None

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> "EscrowOrderData":
        """Build from a camelCase API payload, ignoring unknown keys."""
        return cls(
            maker=str(data.get("maker", "")),
            maker_asset=str(data.get("makerAsset", "")),
            taker_asset=str(data.get("takerAsset", "")),
            making_amount=str(data.get("makingAmount", "0")),
            taking_amount=str(data.get("takingAmount", "0")),
            hashlock=str(data.get("hashlock", "")),
            order_hash=str(data.get("orderHash", "")),
            expected_amount=(
                str(data["expectedAmount"]) if data.get("expectedAmount") is not None else None
            ),
            expected_asset=data.get("expectedAsset"),
            timelock=int(data["timelock"]) if data.get("timelock") is not None else None,
        )

    def to_api(self) -> dict[str, Any]:
        return {
            "maker": self.maker,
            "makerAsset": self.maker_asset,
            "takerAsset": self.taker_asset,
            "makingAmount": self.making_amount,
            "takingAmount": self.taking_amount,
            "hashlock": self.hashlock,
        }


@dataclass
class ValidationResult:
    """Outcome of one escrow check."""

    valid: bool
    chain_id: str
    escrow_address: str
    balance: Optional[int] = None
    error: Optional[str] = None
    details: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        data = {
            "valid": self.valid,
            "chainId": self.chain_id,
            "escrowAddress": self.escrow_address,
            # uint256 balances are rendered as strings for JSON
            "balance": str(self.balance) if self.balance is not None else None,
            "details": self.details,
        }
        if self.error:
            data["error"] = self.error
        return data


@dataclass
class PluginStatus:
    """Health snapshot of a plugin."""

    chain_id: str
    chain_name: str
    status: PluginState
    last_check: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    error: Optional[str] = None
    details: Optional[dict[str, Any]] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "chainId": self.chain_id,
            "chainName": self.chain_name,
            "status": self.status.value,
            "lastCheck": self.last_check.isoformat(),
            "error": self.error,
            "details": self.details,
        }


class ChainPlugin(ABC):
    """Abstract escrow validator for one chain."""

    chain_type = "evm"

    def __init__(self, config: ChainConfig):
        self.config = config
        self._status = PluginStatus(
            chain_id=config.chain_id,
            chain_name=config.chain_name,
            status=PluginState.INITIALIZING,
        )

    @property
    def chain_id(self) -> str:
        return self.config.chain_id

    @property
    def name(self) -> str:
        return self.config.chain_name

    async def initialize(self) -> None:
        """Prepare the plugin. Default: mark healthy after a health check."""
        await self.refresh_status()

    @abstractmethod
    async def validate_escrow(
        self, escrow_address: str, order_data: EscrowOrderData
    ) -> ValidationResult:
        """Validate an escrow against an order.

        Implementations check, where the chain allows: contract deployed at
        the address, balance >= expected amount, not expired, hashlock matches.
        """
        pass

    @abstractmethod
    async def get_escrow_balance(self, escrow_address: str, asset: Optional[str] = None) -> int:
        """Get the balance held by an escrow in base units."""
        pass

    async def verify_escrow_parameters(
        self, escrow_address: str, expected: EscrowOrderData
    ) -> bool:
        """Check that escrow parameters match. Defaults to a full validation."""
        result = await self.validate_escrow(escrow_address, expected)
        return result.valid

    @abstractmethod
    async def is_healthy(self) -> bool:
        """Probe the chain endpoint."""
        pass

    def get_status(self) -> PluginStatus:
        """Last known status."""
        return self._status

    async def refresh_status(self) -> PluginStatus:
        """Run a health check and record the result."""
        try:
            healthy = await self.is_healthy()
            self._status = PluginStatus(
                chain_id=self.chain_id,
                chain_name=self.name,
                status=PluginState.HEALTHY if healthy else PluginState.UNHEALTHY,
                error=None if healthy else "Health check failed",
            )
        except Exception as e:
            logger.warning(f"Health check failed for {self.name} ({self.chain_id}): {e}")
            self._status = PluginStatus(
                chain_id=self.chain_id,
                chain_name=self.name,
                status=PluginState.UNHEALTHY,
                error=str(e),
            )
        return self._status

    async def close(self) -> None:
        """Release network resources."""
        pass
