"""EVM chain adapter: source escrow deposit, withdrawal and cancellation.

All escrow interaction goes through the resolver proxy contract:
``deploySrc`` fills the order and creates the source escrow in one
transaction; ``arbitraryCalls`` forwards ``withdrawTo``/``cancel`` to the
escrow so the proxy stays the escrow's taker.
"""

import logging
from typing import Any, Optional

from eth_abi import decode, encode
from eth_account import Account
from eth_utils import function_signature_to_4byte_selector, to_checksum_address
from web3 import AsyncHTTPProvider, AsyncWeb3, Web3

from moleswap.errors import ChainAdapterError
from moleswap.evm import (
    ADDRESS_OF_ESCROW_SRC_SIG,
    ARBITRARY_CALLS_SIG,
    CANCEL_SIG,
    DEPLOY_SRC_SIG,
    IMMUTABLES_TYPE,
    ORDER_TYPE,
    SRC_ESCROW_CREATED_TOPIC,
    WITHDRAW_TO_SIG,
    Immutables,
    address_to_int,
    build_taker_traits,
    compact_signature,
    decode_src_escrow_created,
    encode_call,
    lop_order_hash,
    lop_order_tuple,
    to_bytes32,
)
from moleswap.extension import decode_extension
from moleswap.resolver.adapters.base import DepositResult, TxResult
from moleswap.resolver.config import ResolverConfig

logger = logging.getLogger(__name__)

GAS_BUFFER_PERCENT = 120
RECEIPT_TIMEOUT = 180


class EvmAdapter:
    """Sends resolver transactions on the source EVM chain."""

    def __init__(self, config: ResolverConfig, w3: Optional[AsyncWeb3] = None):
        self.config = config
        self.w3 = w3 or AsyncWeb3(AsyncHTTPProvider(config.rpc_url))
        self.account = Account.from_key(config.taker_private_key)

    @property
    def address(self) -> str:
        return self.account.address

    async def get_balance(self, address: Optional[str] = None) -> int:
        return await self.w3.eth.get_balance(to_checksum_address(address or self.address))

    async def get_gas_price(self) -> int:
        return await self.w3.eth.gas_price

    async def send_transaction(self, to: str, data: str, value: int = 0) -> TxResult:
        """Estimate, sign, send and wait for one transaction.

        Raises:
            ChainAdapterError: the transaction reverted or could not be sent
        """
        tx: dict[str, Any] = {
            "from": self.address,
            "to": to_checksum_address(to),
            "data": data,
            "value": value,
            "chainId": self.config.source_network_id,
        }
        try:
            gas = await self.w3.eth.estimate_gas(tx)
            tx["gas"] = gas * GAS_BUFFER_PERCENT // 100
            tx["gasPrice"] = await self.w3.eth.gas_price
            tx["nonce"] = await self.w3.eth.get_transaction_count(self.address, "pending")

            signed = self.account.sign_transaction(tx)
            tx_hash = await self.w3.eth.send_raw_transaction(signed.raw_transaction)
            receipt = await self.w3.eth.wait_for_transaction_receipt(
                tx_hash, timeout=RECEIPT_TIMEOUT
            )
        except ChainAdapterError:
            raise
        except Exception as e:
            raise ChainAdapterError(f"EVM transaction to {to} failed: {e}")

        if receipt["status"] != 1:
            raise ChainAdapterError(
                f"EVM transaction reverted: {Web3.to_hex(receipt['transactionHash'])}"
            )

        block = await self.w3.eth.get_block(receipt["blockNumber"])
        result = TxResult(
            transaction_hash=Web3.to_hex(receipt["transactionHash"]),
            block_hash=Web3.to_hex(receipt["blockHash"]),
            block_number=receipt["blockNumber"],
            block_timestamp=block["timestamp"],
            gas_used=receipt.get("gasUsed", 0),
        )
        logger.info(f"EVM tx confirmed: {result.transaction_hash} (block {result.block_number})")
        return result

    def build_deploy_src(
        self, order: dict[str, Any], extension: str, signature: str, fill_amount: int
    ) -> tuple[str, int, Immutables]:
        """Calldata and value for deploySrc.

        Returns:
            Tuple of (calldata, msg.value, immutables sent)
        """
        escrow_args = decode_extension(extension)
        order_hash = lop_order_hash(order, self.config.source_network_id, self.config.lop)

        immutables = Immutables(
            order_hash=order_hash,
            hashlock=escrow_args.hashlock_info,
            maker=address_to_int(order["maker"]),
            taker=address_to_int(self.config.resolver_proxy),
            token=address_to_int(order["makerAsset"]),
            amount=fill_amount,
            safety_deposit=escrow_args.src_safety_deposit,
            timelocks=escrow_args.timelocks.value,
        )
        r, vs = compact_signature(signature)
        taker_traits = build_taker_traits(extension, int(order["takingAmount"]))
        args = bytes.fromhex(extension[2:] if extension.startswith("0x") else extension)

        data = encode_call(
            DEPLOY_SRC_SIG,
            [IMMUTABLES_TYPE, ORDER_TYPE, "bytes32", "bytes32", "uint256", "uint256", "bytes"],
            [
                immutables.to_tuple(),
                lop_order_tuple(order),
                r,
                vs,
                fill_amount,
                taker_traits,
                args,
            ],
        )
        return data, escrow_args.src_safety_deposit, immutables

    async def deploy_src(
        self, order: dict[str, Any], extension: str, signature: str, fill_amount: int
    ) -> DepositResult:
        """Fill the order through the resolver proxy and fund the source escrow."""
        data, value, sent = self.build_deploy_src(order, extension, signature, fill_amount)
        logger.info(
            f"Depositing {fill_amount} to source escrow for {sent.order_hash[:10]}... "
            f"(safety deposit {value})"
        )
        tx = await self.send_transaction(self.config.resolver_proxy, data, value)

        immutables, complement = await self.get_src_escrow_event(tx.block_hash)
        escrow_address = await self.address_of_src_escrow(immutables)
        return DepositResult(
            escrow_address=escrow_address,
            transaction_hash=tx.transaction_hash,
            block_hash=tx.block_hash,
            block_timestamp=tx.block_timestamp,
            immutables=immutables,
            dst_complement=complement,
            gas_used=tx.gas_used,
        )

    async def get_src_escrow_event(self, block_hash: str):
        """Decode the SrcEscrowCreated event emitted in a block.

        Raises:
            ChainAdapterError: no event found
        """
        logs = await self.w3.eth.get_logs(
            {
                "blockHash": block_hash,
                "address": to_checksum_address(self.config.escrow_factory),
                "topics": [SRC_ESCROW_CREATED_TOPIC],
            }
        )
        if not logs:
            raise ChainAdapterError("SrcEscrowCreated event not found", {"blockHash": block_hash})
        return decode_src_escrow_created(logs[0]["data"])

    async def address_of_src_escrow(self, immutables: Immutables) -> str:
        data = function_signature_to_4byte_selector(ADDRESS_OF_ESCROW_SRC_SIG) + encode(
            [IMMUTABLES_TYPE], [immutables.to_tuple()]
        )
        raw = await self.w3.eth.call(
            {"to": to_checksum_address(self.config.escrow_factory), "data": data}
        )
        return to_checksum_address(decode(["address"], bytes(raw))[0])

    async def _call_escrow(self, escrow_address: str, calldata: str) -> TxResult:
        data = encode_call(
            ARBITRARY_CALLS_SIG,
            ["address[]", "bytes[]"],
            [[to_checksum_address(escrow_address)], [bytes.fromhex(calldata[2:])]],
        )
        return await self.send_transaction(self.config.resolver_proxy, data)

    async def withdraw_from_src(
        self, deposit: DepositResult, secret: str, recipient: Optional[str] = None
    ) -> TxResult:
        """Withdraw the source escrow to ``recipient`` with the revealed secret."""
        calldata = encode_call(
            WITHDRAW_TO_SIG,
            ["bytes32", "address", IMMUTABLES_TYPE],
            [
                to_bytes32(secret),
                to_checksum_address(recipient or self.address),
                deposit.immutables.to_tuple(),
            ],
        )
        logger.info(f"Withdrawing source escrow {deposit.escrow_address}")
        return await self._call_escrow(deposit.escrow_address, calldata)

    async def cancel_src(self, deposit: DepositResult) -> TxResult:
        """Cancel the source escrow, returning funds to the maker."""
        calldata = encode_call(CANCEL_SIG, [IMMUTABLES_TYPE], [deposit.immutables.to_tuple()])
        logger.info(f"Cancelling source escrow {deposit.escrow_address}")
        return await self._call_escrow(deposit.escrow_address, calldata)
