"""Always-valid escrow plugin for local development and demos."""

import logging
from typing import Optional

from moleswap.escrow.base import ChainPlugin, EscrowOrderData, ValidationResult

logger = logging.getLogger(__name__)

DUMMY_BALANCE = 10**18

CHAIN_NAMES = {
    "1": "Ethereum Mainnet",
    "56": "BNB Smart Chain",
    "137": "Polygon",
    "608": "TON",
    "11155111": "Sepolia",
}


class DummyPlugin(ChainPlugin):
    """Accepts every escrow with a fixed 1e18 balance.

    Never performs network calls; enable only where on-chain checks are not
    wanted (USE_DUMMY_PLUGIN).
    """

    async def validate_escrow(
        self, escrow_address: str, order_data: EscrowOrderData
    ) -> ValidationResult:
        logger.info(f"Dummy escrow validation for {escrow_address} on chain {self.chain_id}")
        return ValidationResult(
            valid=True,
            chain_id=self.chain_id,
            escrow_address=escrow_address,
            balance=DUMMY_BALANCE,
            details={
                **order_data.to_api(),
                "validationType": "dummy",
            },
        )

    async def get_escrow_balance(self, escrow_address: str, asset: Optional[str] = None) -> int:
        return DUMMY_BALANCE

    async def verify_escrow_parameters(
        self, escrow_address: str, expected: EscrowOrderData
    ) -> bool:
        return True

    async def is_healthy(self) -> bool:
        return True
