"""Cross-chain order execution.

One ``execute_order`` call walks the swap forward:

    deposit source escrow (EVM) -> create destination escrow (TON)
    -> wait for finality -> obtain secret from relayer
    -> withdraw destination (reveals secret) -> withdraw source

Any failure ends the attempt with ``success=False``. If the destination
escrow could not be created after the source deposit, the source escrow is
cancelled so the maker's funds are not left stranded.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from decimal import Decimal, localcontext
from enum import Enum
from typing import Any, Optional

from moleswap.errors import IncompleteOrderError, RelayerError
from moleswap.resolver.adapters.base import DepositResult
from moleswap.resolver.adapters.evm import EvmAdapter
from moleswap.resolver.adapters.ton import TonAdapter
from moleswap.resolver.config import ResolverConfig
from moleswap.resolver.relayer_client import RelayerClient

logger = logging.getLogger(__name__)

PROFIT_SHARE = Decimal("0.01")


class ExecutionStage(str, Enum):
    """Where an execution attempt got to."""

    CREATED = "created"
    SRC_DEPOSITED = "src_deposited"
    DST_CREATED = "dst_created"
    SECRET_DISCLOSED = "secret_disclosed"
    DST_WITHDRAWN = "dst_withdrawn"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class ExecutionResult:
    """Outcome of one execution attempt."""

    order_hash: str
    success: bool
    execution_time: float
    transaction_hash: Optional[str] = None
    profit: Decimal = Decimal("0")
    gas_used: int = 0
    additional_transactions: dict[str, str] = field(default_factory=dict)
    error: Optional[str] = None
    stage: ExecutionStage = ExecutionStage.CREATED

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "success": self.success,
            "orderHash": self.order_hash,
            "executionTime": self.execution_time,
        }
        if self.success:
            data.update(
                {
                    "transactionHash": self.transaction_hash,
                    "profit": str(self.profit),
                    "gasUsed": self.gas_used,
                    "additionalTransactions": self.additional_transactions,
                }
            )
        else:
            data["error"] = self.error
        return data


def calculate_profit(order: dict[str, Any]) -> Decimal:
    """Estimated profit: 1% of the difference between the amounts."""
    difference = int(order["takingAmount"]) - int(order["makingAmount"])
    # uint256 has 78 digits
    with localcontext() as ctx:
        ctx.prec = 80
        return Decimal(difference) * PROFIT_SHARE


class ExecutionService:
    """Executes orders across the source EVM chain and TON."""

    def __init__(
        self,
        config: ResolverConfig,
        evm: EvmAdapter,
        ton: TonAdapter,
        relayer: RelayerClient,
    ):
        self.config = config
        self.evm = evm
        self.ton = ton
        self.relayer = relayer

    def _require_complete(self, order_with_metadata: dict[str, Any]) -> tuple[str, str]:
        extension = order_with_metadata.get("extension")
        signature = order_with_metadata.get("signature")
        if not extension or not signature:
            raise IncompleteOrderError(
                "Order missing required extension or signature data",
                {
                    "orderHash": order_with_metadata.get("orderHash"),
                    "hasExtension": bool(extension),
                    "hasSignature": bool(signature),
                },
            )
        return extension, signature

    async def deposit_to_src_escrow(self, order_with_metadata: dict[str, Any]) -> DepositResult:
        """Step 1: fill the order on EVM, creating the funded source escrow.

        Raises:
            IncompleteOrderError: extension or signature missing
        """
        extension, signature = self._require_complete(order_with_metadata)
        order = order_with_metadata["order"]
        return await self.evm.deploy_src(order, extension, signature, int(order["makingAmount"]))

    async def request_secret(self, order_hash: str, src_escrow: str, dst_escrow: str) -> str:
        """Step 4: ask the relayer for the secret once escrows are in place.

        Raises:
            RelayerError: the relayer refused or could not be reached
        """
        response = await self.relayer.request_secret(
            order_hash,
            src_escrow,
            dst_escrow,
            self.config.source_network_id,
            self.config.destination_network_id,
        )
        if not response.get("success"):
            error = response.get("error") or {}
            raise RelayerError(
                f"Failed to get secret: {error.get('message', 'Unknown error')}", error
            )
        return response["data"]["secret"]

    async def cancel_source_escrow(self, deposit: DepositResult) -> Optional[str]:
        """Refund path after a failed destination step.

        The escrow only accepts cancel once its cancellation timelock has
        started; a rejected cancel is logged and left for a later retry.
        Never raises, so the caller keeps reporting the original failure.

        Returns:
            Cancel transaction hash, or None if cancellation failed
        """
        try:
            tx = await self.evm.cancel_src(deposit)
            logger.warning(f"Source escrow {deposit.escrow_address} cancelled: {tx.transaction_hash}")
            return tx.transaction_hash
        except Exception as e:
            message = getattr(e, "message", None) or str(e) or type(e).__name__
            logger.error(
                f"Source escrow {deposit.escrow_address} is stranded, cancel failed: {message}"
            )
            return None

    async def execute_order(self, order_with_metadata: dict[str, Any]) -> ExecutionResult:
        """Run the full swap for one order. Never raises."""
        start = time.monotonic()
        order_hash = order_with_metadata.get("orderHash", "")
        stage = ExecutionStage.CREATED
        deposit: Optional[DepositResult] = None
        extra: dict[str, str] = {}

        try:
            logger.info(f"Executing order {order_hash[:10]}...")

            self._require_complete(order_with_metadata)
            # destination message must encode before any funds move
            fill_message = self.ton.build_fill_order(order_with_metadata)

            deposit = await self.deposit_to_src_escrow(order_with_metadata)
            stage = ExecutionStage.SRC_DEPOSITED
            logger.info(f"Source escrow {deposit.escrow_address} funded: {deposit.transaction_hash}")

            try:
                destination = await self.ton.create_destination_escrow(
                    order_with_metadata, fill_message
                )
            except Exception:
                cancel_tx = await self.cancel_source_escrow(deposit)
                if cancel_tx:
                    extra["evmCancel"] = cancel_tx
                raise
            stage = ExecutionStage.DST_CREATED
            logger.info(f"Destination escrow {destination.escrow_address} created")

            await asyncio.sleep(self.config.execution_finality_delay)

            secret = await self.request_secret(
                order_hash, deposit.escrow_address, destination.escrow_address
            )
            stage = ExecutionStage.SECRET_DISCLOSED

            ton_withdraw = await self.ton.withdraw_from_dst(order_hash, secret)
            stage = ExecutionStage.DST_WITHDRAWN

            evm_withdraw = await self.evm.withdraw_from_src(deposit, secret, self.evm.address)
            stage = ExecutionStage.COMPLETED

            logger.info(f"Order {order_hash[:10]}... executed")
            return ExecutionResult(
                order_hash=order_hash,
                success=True,
                execution_time=time.monotonic() - start,
                transaction_hash=deposit.transaction_hash,
                profit=calculate_profit(order_with_metadata["order"]),
                gas_used=deposit.gas_used + evm_withdraw.gas_used,
                additional_transactions={
                    "tonWithdraw": ton_withdraw.transaction_hash,
                    "evmWithdraw": evm_withdraw.transaction_hash,
                },
                stage=stage,
            )

        except Exception as e:
            message = getattr(e, "message", None) or str(e) or type(e).__name__
            logger.error(f"Execution failed for {order_hash[:10]}... at {stage.value}: {message}")
            return ExecutionResult(
                order_hash=order_hash,
                success=False,
                execution_time=time.monotonic() - start,
                transaction_hash=deposit.transaction_hash if deposit else None,
                additional_transactions=extra,
                error=message,
                stage=stage,
            )

    async def get_gas_price(self) -> int:
        try:
            return await self.evm.get_gas_price()
        except Exception as e:
            logger.error(f"Failed to get gas price: {e}")
            return 0

    async def check_balance(self) -> bool:
        """Pre-flight: wallet balance must exceed gasLimit * gasPrice."""
        try:
            balance = await self.evm.get_balance()
            gas_price = await self.evm.get_gas_price()
        except Exception as e:
            logger.error(f"Failed to check balance: {e}")
            return False
        required = self.config.gas_limit * gas_price
        if balance <= required:
            logger.warning(f"Resolver balance {balance} does not cover gas {required}")
            return False
        return True
