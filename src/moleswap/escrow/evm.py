"""EVM escrow validation plugin.

Checks are made against a JSON-RPC node with web3's async client:
  1. contract code exists at the escrow address
  2. escrow holds at least the expected amount (native or ERC20)
  3. when an escrow factory is configured, the SrcEscrowCreated event with the
     order's hashlock and maker is found, the factory maps its immutables to
     this address, token and amount match and cancellation has not started
"""

import logging
import time
from typing import Optional

from eth_abi import decode, encode
from eth_utils import function_signature_to_4byte_selector, to_checksum_address
from web3 import AsyncHTTPProvider, AsyncWeb3

from moleswap.escrow.base import ChainConfig, ChainPlugin, EscrowOrderData, ValidationResult
from moleswap.evm import (
    ADDRESS_OF_ESCROW_SRC_SIG,
    BALANCE_OF_SIG,
    IMMUTABLES_TYPE,
    SRC_ESCROW_CREATED_TOPIC,
    ZERO_ADDRESS,
    Immutables,
    address_to_int,
    decode_src_escrow_created,
)
from moleswap.extension import Stage, Timelocks

logger = logging.getLogger(__name__)


class EvmPlugin(ChainPlugin):
    """Escrow validator for EVM chains."""

    chain_type = "evm"

    def __init__(self, config: ChainConfig, w3: Optional[AsyncWeb3] = None):
        super().__init__(config)
        self.w3 = w3 or AsyncWeb3(AsyncHTTPProvider(config.rpc_url))

    async def is_healthy(self) -> bool:
        block = await self.w3.eth.block_number
        return block > 0

    async def get_escrow_balance(self, escrow_address: str, asset: Optional[str] = None) -> int:
        address = to_checksum_address(escrow_address)
        if not asset or asset.lower() == ZERO_ADDRESS:
            return await self.w3.eth.get_balance(address)

        data = function_signature_to_4byte_selector(BALANCE_OF_SIG) + encode(["address"], [address])
        raw = await self.w3.eth.call({"to": to_checksum_address(asset), "data": data})
        return decode(["uint256"], bytes(raw))[0]

    async def find_src_escrow(self, hashlock: str, maker: str = "") -> Optional[Immutables]:
        """Find the SrcEscrowCreated immutables for an order in recent blocks.

        Events are matched on hashlock and maker. The factory records the
        limit order protocol hash of the order, not the relayer's hash, and
        the hashlock is unique to the order's secret.
        """
        factory = self.config.escrow_factory_address
        if not factory:
            return None

        latest = await self.w3.eth.block_number
        logs = await self.w3.eth.get_logs(
            {
                "fromBlock": max(0, latest - self.config.log_lookback_blocks),
                "toBlock": latest,
                "address": to_checksum_address(factory),
                "topics": [SRC_ESCROW_CREATED_TOPIC],
            }
        )
        for log in reversed(logs):
            immutables, _ = decode_src_escrow_created(log["data"])
            if immutables.hashlock.lower() != hashlock.lower():
                continue
            if maker and immutables.maker != address_to_int(maker):
                continue
            return immutables
        return None

    async def address_of_src_escrow(self, immutables: Immutables) -> str:
        """Ask the factory which address these immutables deploy to."""
        data = function_signature_to_4byte_selector(ADDRESS_OF_ESCROW_SRC_SIG) + encode(
            [IMMUTABLES_TYPE], [immutables.to_tuple()]
        )
        raw = await self.w3.eth.call(
            {"to": to_checksum_address(self.config.escrow_factory_address), "data": data}
        )
        return to_checksum_address(decode(["address"], bytes(raw))[0])

    async def validate_escrow(
        self, escrow_address: str, order_data: EscrowOrderData
    ) -> ValidationResult:
        details: dict = {"validationType": "evm"}

        def fail(error: str, balance: Optional[int] = None) -> ValidationResult:
            logger.warning(f"EVM escrow {escrow_address} invalid on {self.chain_id}: {error}")
            return ValidationResult(
                valid=False,
                chain_id=self.chain_id,
                escrow_address=escrow_address,
                balance=balance,
                error=error,
                details=details,
            )

        try:
            address = to_checksum_address(escrow_address)
            code = await self.w3.eth.get_code(address)
            if not code or len(code) == 0:
                return fail("No contract deployed at escrow address")

            asset = order_data.expected_asset or order_data.maker_asset
            expected = int(order_data.expected_amount or order_data.making_amount or 0)
            balance = await self.get_escrow_balance(address, asset)
            details.update({"asset": asset, "expectedAmount": str(expected), "balance": str(balance)})
            if balance < expected:
                return fail(f"Escrow balance {balance} below expected {expected}", balance)

            if self.config.escrow_factory_address and order_data.hashlock:
                immutables = await self.find_src_escrow(order_data.hashlock, order_data.maker)
                if immutables is None:
                    return fail("Escrow creation event not found for order hashlock", balance)
                details["protocolOrderHash"] = immutables.order_hash

                computed = await self.address_of_src_escrow(immutables)
                if computed.lower() != address.lower():
                    details["computedAddress"] = computed
                    return fail("Escrow address does not match order immutables", balance)

                if asset and immutables.token != address_to_int(asset):
                    return fail("Escrow token does not match order maker asset", balance)
                if immutables.amount < expected:
                    return fail(
                        f"Escrow amount {immutables.amount} below expected {expected}", balance
                    )

                cancellation = Timelocks(immutables.timelocks).get(Stage.SRC_CANCELLATION)
                details["cancellationAt"] = cancellation
                if time.time() >= cancellation:
                    return fail("Escrow has reached its cancellation period", balance)
                details["hashlockVerified"] = True
            else:
                details["hashlockVerified"] = False

        except Exception as e:
            logger.error(f"EVM escrow validation error for {escrow_address}: {e}")
            return fail(f"Validation error: {e}")

        return ValidationResult(
            valid=True,
            chain_id=self.chain_id,
            escrow_address=escrow_address,
            balance=balance,
            details=details,
        )
