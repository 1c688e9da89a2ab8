"""TON chain adapter: destination escrow creation and withdrawal.

Messages are built and signed locally with tonsdk (wallet v4r2 derived from
the resolver mnemonic) and broadcast through toncenter. A message counts as
confirmed once the wallet seqno moves past the seqno it was signed with.
"""

import asyncio
import logging
import time
from typing import Any, Optional

from tonsdk.boc import Cell, begin_cell
from tonsdk.contract.wallet import Wallets, WalletVersionEnum
from tonsdk.utils import Address, bytes_to_b64str, to_nano

from moleswap.errors import ConfigurationError, TimeoutError, ValidationError
from moleswap.resolver.adapters.base import DestinationResult, TxResult
from moleswap.resolver.config import ResolverConfig
from moleswap.ton import (
    TON_NATIVE_ADDRESS,
    ToncenterClient,
    int_stack_arg,
    is_valid_ton_address,
    op_code,
    stack_address,
)
from moleswap.utils.retry import backoff_delays

logger = logging.getLogger(__name__)

OP_FILL_ORDER = op_code("fill_order")
OP_WITHDRAW = op_code("withdraw")

MESSAGE_FEE = to_nano(0.05, "ton")
DEFAULT_ORDER_LIFETIME = 3600

# fill_order stores makingAmount as uint128; coins are VarUInteger 16
MAX_MAKING_AMOUNT = (1 << 128) - 1
MAX_COINS = (1 << 120) - 1


def _uint(value: Any) -> int:
    text = str(value)
    return int(text, 16) if text.startswith("0x") else int(text)


class TonAdapter:
    """Sends resolver messages on TON."""

    def __init__(
        self,
        config: ResolverConfig,
        client: Optional[ToncenterClient] = None,
        wallet=None,
    ):
        """Initialize adapter.

        Args:
            config: Resolver configuration
            client: toncenter client (built from config when omitted)
            wallet: tonsdk wallet contract (derived from the mnemonic when omitted)
        """
        self.config = config
        self.client = client or ToncenterClient(config.ton_api_url, api_key=config.ton_api_key)
        if wallet is None:
            words = config.ton_taker_mnemonic.split()
            if not words:
                raise ConfigurationError(["TON_TAKER_MNEMONIC is required"])
            _, _, _, wallet = Wallets.from_mnemonics(words, WalletVersionEnum.v4r2, 0)
        self.wallet = wallet

    @property
    def wallet_address(self) -> str:
        return self.wallet.address.to_string(True, True, True)

    async def close(self) -> None:
        await self.client.close()

    async def wait_for_confirmation(self, seqno: int) -> int:
        """Poll the wallet seqno until it advances past ``seqno``.

        Attempts are bounded; delays grow exponentially up to a ceiling.

        Returns:
            The new seqno

        Raises:
            TimeoutError: seqno did not advance within the allowed attempts
        """
        delays = backoff_delays(
            self.config.ton_confirmation_attempts,
            self.config.ton_confirmation_delay,
            self.config.ton_confirmation_max_delay,
        )
        for attempt, delay in enumerate(delays, start=1):
            await asyncio.sleep(delay)
            current = await self.client.get_seqno(self.wallet_address)
            if current > seqno:
                logger.info(f"TON seqno {seqno} confirmed after {attempt} checks")
                return current

        raise TimeoutError(
            "Transaction confirmation timeout",
            {"seqno": seqno, "attempts": self.config.ton_confirmation_attempts},
        )

    async def send_message(self, to: str, amount: int, payload: Cell) -> TxResult:
        """Sign a wallet transfer carrying ``payload``, broadcast it and wait for it."""
        seqno = await self.client.get_seqno(self.wallet_address)
        query = self.wallet.create_transfer_message(to, amount, seqno, payload=payload)
        message = query["message"]
        await self.client.send_boc(bytes_to_b64str(message.to_boc(False)))
        logger.info(f"TON message sent to {to} (seqno {seqno}, {amount} nanoton)")

        await self.wait_for_confirmation(seqno)
        return TxResult(transaction_hash=message.bytes_hash().hex(), block_number=seqno)

    def build_fill_order(
        self,
        order_with_metadata: dict[str, Any],
        now: Optional[int] = None,
    ) -> tuple[Cell, int]:
        """Body and attached value of the LOP ``fill_order`` message.

        Returns:
            Tuple of (message body, value in nanoton)

        Raises:
            ValidationError: amounts do not fit the message fields
        """
        order = order_with_metadata["order"]
        now = now or int(time.time())
        receiver = order.get("receiver") or ""
        if not is_valid_ton_address(receiver):
            receiver = self.config.ton_taker_address
        hashlock = (
            order_with_metadata.get("secretHash")
            or order_with_metadata.get("hashlock")
            or order["makerTraits"]
        )
        expiration = order_with_metadata.get("expirationTime") or now + DEFAULT_ORDER_LIFETIME
        making_amount = int(order["makingAmount"])
        taking_amount = int(order["takingAmount"])
        if making_amount > MAX_MAKING_AMOUNT:
            raise ValidationError(
                "makingAmount does not fit a TON fill_order message (uint128)",
                {"makingAmount": str(making_amount)},
            )
        if MESSAGE_FEE + taking_amount > MAX_COINS:
            raise ValidationError(
                "takingAmount does not fit a TON coins value (120 bits)",
                {"takingAmount": str(taking_amount)},
            )

        taker_ref = (
            begin_cell()
            .store_address(Address(self.config.ton_taker_address))
            .store_address(Address(TON_NATIVE_ADDRESS))
            .store_coins(taking_amount)
            .end_cell()
        )
        timing_ref = (
            begin_cell()
            .store_uint(_uint(order_with_metadata["orderHash"]), 256)
            .store_uint(_uint(hashlock), 256)
            .store_uint(now, 32)
            .store_uint(int(expiration), 32)
            .end_cell()
        )
        body = (
            begin_cell()
            .store_uint(OP_FILL_ORDER, 32)
            .store_uint(0, 64)
            .store_uint(_uint(order["maker"]), 256)
            .store_uint(_uint(order["makerAsset"]), 256)
            .store_uint(making_amount, 128)
            .store_address(Address(receiver))
            .store_ref(taker_ref)
            .store_ref(timing_ref)
            .end_cell()
        )
        return body, MESSAGE_FEE + taking_amount

    async def get_dst_escrow_address(self, order_hash: str) -> str:
        """Ask the LOP which destination escrow belongs to an order."""
        stack = await self.client.run_get_method(
            self.config.ton_lop_address,
            "get_dst_escrow_address",
            [int_stack_arg(_uint(order_hash))],
        )
        return stack_address(stack[0])

    async def create_destination_escrow(
        self,
        order_with_metadata: dict[str, Any],
        message: Optional[tuple[Cell, int]] = None,
    ) -> DestinationResult:
        """Fill the order on TON, creating and funding the destination escrow.

        Args:
            order_with_metadata: Order as returned by the relayer
            message: Body and value from ``build_fill_order``, built here when omitted
        """
        body, value = message or self.build_fill_order(order_with_metadata)
        tx = await self.send_message(self.config.ton_lop_address, value, body)
        escrow = await self.get_dst_escrow_address(order_with_metadata["orderHash"])
        logger.info(f"TON destination escrow {escrow} for {order_with_metadata['orderHash'][:10]}...")
        return DestinationResult(
            escrow_address=escrow,
            transaction_hash=tx.transaction_hash,
            seqno=tx.block_number or 0,
            details={"value": str(value)},
        )

    def build_withdraw(self, secret: str, query_id: int = 0) -> Cell:
        return (
            begin_cell()
            .store_uint(OP_WITHDRAW, 32)
            .store_uint(query_id, 64)
            .store_uint(_uint(secret), 256)
            .end_cell()
        )

    async def withdraw_from_dst(self, order_hash: str, secret: str) -> TxResult:
        """Withdraw the destination escrow, revealing the secret on TON."""
        escrow = await self.get_dst_escrow_address(order_hash)
        logger.info(f"Withdrawing TON destination escrow {escrow}")
        return await self.send_message(escrow, MESSAGE_FEE, self.build_withdraw(secret))
