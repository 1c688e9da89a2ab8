"""TON escrow validation plugin.

Reads the escrow through toncenter: account must be active, hold at least
the expected amount, and its ``get_escrow_data`` must carry the order's
hashlock with an expiration time in the future.
"""

import logging
import time
from typing import Optional

from moleswap.escrow.base import ChainConfig, ChainPlugin, EscrowOrderData, ValidationResult
from moleswap.ton import ToncenterClient, stack_int

logger = logging.getLogger(__name__)

# get_escrow_data stack layout
ESCROW_DATA_HASHLOCK = 2
ESCROW_DATA_EXPIRATION = 4
ESCROW_DATA_TAKER_AMOUNT = 11


class TonPlugin(ChainPlugin):
    """Escrow validator for TON."""

    chain_type = "non-evm"

    def __init__(self, config: ChainConfig, client: Optional[ToncenterClient] = None):
        super().__init__(config)
        self.client = client or ToncenterClient(
            config.rpc_url, api_key=config.api_key, timeout=config.timeout
        )

    async def is_healthy(self) -> bool:
        return await self.client.is_healthy()

    async def get_escrow_balance(self, escrow_address: str, asset: Optional[str] = None) -> int:
        return await self.client.get_balance(escrow_address)

    async def validate_escrow(
        self, escrow_address: str, order_data: EscrowOrderData
    ) -> ValidationResult:
        details: dict = {"validationType": "ton"}

        def fail(error: str, balance: Optional[int] = None) -> ValidationResult:
            logger.warning(f"TON escrow {escrow_address} invalid: {error}")
            return ValidationResult(
                valid=False,
                chain_id=self.chain_id,
                escrow_address=escrow_address,
                balance=balance,
                error=error,
                details=details,
            )

        try:
            info = await self.client.get_address_information(escrow_address)
            state = info.get("state", "uninitialized")
            details["state"] = state
            if state != "active":
                return fail(f"Escrow account is {state}")

            balance = int(info.get("balance", 0))
            details["balance"] = str(balance)

            stack = await self.client.run_get_method(escrow_address, "get_escrow_data")
            hashlock = stack_int(stack[ESCROW_DATA_HASHLOCK])
            expiration = stack_int(stack[ESCROW_DATA_EXPIRATION])
            locked_amount = stack_int(stack[ESCROW_DATA_TAKER_AMOUNT])
            details.update(
                {
                    "hashlock": "0x" + hashlock.to_bytes(32, "big").hex(),
                    "expirationTime": expiration,
                    "lockedAmount": str(locked_amount),
                }
            )

            expected = int(order_data.expected_amount or order_data.taking_amount or 0)
            details["expectedAmount"] = str(expected)
            if locked_amount < expected or balance < expected:
                return fail(f"Escrow holds {min(locked_amount, balance)} below expected {expected}", balance)

            if order_data.hashlock and hashlock != int(order_data.hashlock, 16):
                return fail("Escrow hashlock does not match order hashlock", balance)

            if expiration <= time.time():
                return fail("Escrow has expired", balance)

        except Exception as e:
            logger.error(f"TON escrow validation error for {escrow_address}: {e}")
            return fail(f"Validation error: {e}")

        return ValidationResult(
            valid=True,
            chain_id=self.chain_id,
            escrow_address=escrow_address,
            balance=balance,
            details=details,
        )

    async def close(self) -> None:
        await self.client.close()
