"""Tests for the EVM escrow plugin and the EVM resolver adapter."""

import dataclasses
import time
from unittest.mock import AsyncMock

import pytest
from eth_abi import decode, encode
from eth_utils import function_signature_to_4byte_selector, to_checksum_address

from moleswap.errors import ChainAdapterError
from moleswap.escrow.base import ChainConfig, EscrowOrderData
from moleswap.escrow.evm import EvmPlugin
from moleswap.escrow.validation import order_data_for
from moleswap.evm import (
    DEPLOY_SRC_SIG,
    DST_COMPLEMENT_TYPE,
    IMMUTABLES_TYPE,
    ORDER_TYPE,
    Immutables,
    address_to_int,
)
from moleswap.extension import EscrowExtension, Stage, Timelocks
from moleswap.orders.models import Order, ValidationType
from moleswap.resolver.adapters.base import DepositResult
from moleswap.resolver.adapters.evm import EvmAdapter

from conftest import TOKEN_A, make_resolver_config, relayer_order

ESCROW = to_checksum_address("0x" + "ab" * 20)
FACTORY = to_checksum_address("0x" + "fa" * 20)
ORDER_HASH = "0x" + "5a" * 32
HASHLOCK = "0x" + "3c" * 32


class FakeEth:
    """Async ``w3.eth`` stand-in; block_number is awaitable like web3's."""

    def __init__(self, block: int = 100):
        self.block = block
        self.get_code = AsyncMock(return_value=b"\x60\x80")
        self.get_balance = AsyncMock(return_value=10**18)
        self.call = AsyncMock()
        self.get_logs = AsyncMock(return_value=[])
        self.estimate_gas = AsyncMock(return_value=100_000)
        self.get_transaction_count = AsyncMock(return_value=0)
        self.send_raw_transaction = AsyncMock(return_value=b"\x01" * 32)
        self.wait_for_transaction_receipt = AsyncMock()
        self.get_block = AsyncMock(return_value={"timestamp": 1_700_000_000})

    async def _value(self, value):
        return value

    @property
    def block_number(self):
        return self._value(self.block)

    @property
    def gas_price(self):
        return self._value(10**9)


class FakeWeb3:
    def __init__(self):
        self.eth = FakeEth()


def immutables(deployed_at: int, cancel_offset: int = 3600, hashlock: str = HASHLOCK) -> Immutables:
    timelocks = Timelocks.from_offsets(
        {Stage.SRC_CANCELLATION: cancel_offset}, deployed_at=deployed_at
    )
    return Immutables(
        order_hash=ORDER_HASH,
        hashlock=hashlock,
        maker=1,
        taker=2,
        token=0,
        amount=10**18,
        safety_deposit=10**15,
        timelocks=timelocks.value,
    )


def created_log(value: Immutables) -> dict:
    return {"data": encode([IMMUTABLES_TYPE, DST_COMPLEMENT_TYPE], [value.to_tuple(), (1, 2, 3, 4, 608)])}


def plugin(factory: str = "") -> EvmPlugin:
    config = ChainConfig(
        chain_id="11155111", chain_name="Sepolia", escrow_factory_address=factory
    )
    return EvmPlugin(config, w3=FakeWeb3())


def order_data(**overrides) -> EscrowOrderData:
    fields = dict(order_hash=ORDER_HASH, hashlock=HASHLOCK, expected_amount=str(10**18))
    fields.update(overrides)
    return EscrowOrderData(**fields)


class TestEvmPlugin:
    """Source escrow checks over JSON-RPC."""

    @pytest.mark.asyncio
    async def test_balance_only_without_factory(self):
        evm = plugin()

        result = await evm.validate_escrow(ESCROW, order_data())

        assert result.valid is True
        assert result.balance == 10**18
        assert result.details["hashlockVerified"] is False

    @pytest.mark.asyncio
    async def test_no_contract(self):
        evm = plugin()
        evm.w3.eth.get_code.return_value = b""

        result = await evm.validate_escrow(ESCROW, order_data())

        assert result.valid is False
        assert "No contract" in result.error

    @pytest.mark.asyncio
    async def test_insufficient_balance(self):
        evm = plugin()
        evm.w3.eth.get_balance.return_value = 10

        result = await evm.validate_escrow(ESCROW, order_data())

        assert result.valid is False
        assert "below expected" in result.error

    @pytest.mark.asyncio
    async def test_erc20_balance(self):
        evm = plugin()
        evm.w3.eth.call.return_value = encode(["uint256"], [10**18])

        result = await evm.validate_escrow(ESCROW, order_data(expected_asset="0x" + "01" * 20))

        assert result.valid is True
        evm.w3.eth.get_balance.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_factory_checks_pass(self):
        evm = plugin(FACTORY)
        evm.w3.eth.get_logs.return_value = [created_log(immutables(int(time.time())))]
        evm.w3.eth.call.return_value = encode(["address"], [ESCROW])

        result = await evm.validate_escrow(ESCROW, order_data())

        assert result.valid is True
        assert result.details["hashlockVerified"] is True

    @pytest.mark.asyncio
    async def test_factory_address_mismatch(self):
        evm = plugin(FACTORY)
        evm.w3.eth.get_logs.return_value = [created_log(immutables(int(time.time())))]
        evm.w3.eth.call.return_value = encode(["address"], ["0x" + "01" * 20])

        result = await evm.validate_escrow(ESCROW, order_data())

        assert result.valid is False
        assert "does not match order immutables" in result.error

    @pytest.mark.asyncio
    async def test_event_with_other_hashlock_ignored(self):
        evm = plugin(FACTORY)
        evm.w3.eth.get_logs.return_value = [
            created_log(immutables(int(time.time()), hashlock="0x" + "00" * 32))
        ]
        evm.w3.eth.call.return_value = encode(["address"], [ESCROW])

        result = await evm.validate_escrow(ESCROW, order_data())

        assert result.valid is False
        assert "creation event not found" in result.error

    @pytest.mark.asyncio
    async def test_cancellation_started(self):
        evm = plugin(FACTORY)
        evm.w3.eth.get_logs.return_value = [created_log(immutables(int(time.time()) - 7200))]
        evm.w3.eth.call.return_value = encode(["address"], [ESCROW])

        result = await evm.validate_escrow(ESCROW, order_data())

        assert result.valid is False
        assert "cancellation" in result.error

    @pytest.mark.asyncio
    async def test_missing_creation_event(self):
        evm = plugin(FACTORY)

        result = await evm.validate_escrow(ESCROW, order_data())

        assert result.valid is False
        assert "creation event not found" in result.error

    @pytest.mark.asyncio
    async def test_rpc_failure(self):
        evm = plugin()
        evm.w3.eth.get_code.side_effect = ConnectionError("rpc down")

        result = await evm.validate_escrow(ESCROW, order_data())

        assert result.valid is False
        assert "Validation error" in result.error


def sample_extension() -> str:
    return EscrowExtension(
        factory=FACTORY,
        hashlock_info=HASHLOCK,
        dst_chain_id=608,
        dst_token=0,
        src_safety_deposit=10**15,
        dst_safety_deposit=10**15,
        timelocks=Timelocks.from_offsets({Stage.SRC_WITHDRAWAL: 10}),
    ).encode()


class TestEvmAdapter:
    """Resolver proxy transactions."""

    def adapter(self) -> EvmAdapter:
        return EvmAdapter(make_resolver_config(), w3=FakeWeb3())

    def test_build_deploy_src(self):
        evm = self.adapter()
        order = relayer_order(ORDER_HASH)["order"]

        data, value, sent = evm.build_deploy_src(order, sample_extension(), "0x" + "ee" * 65, 1000)

        selector = "0x" + function_signature_to_4byte_selector(DEPLOY_SRC_SIG).hex()
        assert data.startswith(selector)
        assert value == 10**15
        assert sent.hashlock == HASHLOCK
        assert sent.amount == 1000
        assert sent.taker == address_to_int(evm.config.resolver_proxy)

        args = decode(
            [IMMUTABLES_TYPE, ORDER_TYPE, "bytes32", "bytes32", "uint256", "uint256", "bytes"],
            bytes.fromhex(data[10:]),
        )
        assert args[4] == 1000
        assert "0x" + args[6].hex() == sample_extension()

    @pytest.mark.asyncio
    async def test_reverted_transaction(self):
        evm = self.adapter()
        evm.w3.eth.wait_for_transaction_receipt.return_value = {
            "status": 0,
            "transactionHash": b"\x01" * 32,
        }

        with pytest.raises(ChainAdapterError, match="reverted"):
            await evm.send_transaction(ESCROW, "0x")

    @pytest.mark.asyncio
    async def test_send_failure_wrapped(self):
        evm = self.adapter()
        evm.w3.eth.estimate_gas.side_effect = ValueError("execution reverted")

        with pytest.raises(ChainAdapterError, match="execution reverted"):
            await evm.send_transaction(ESCROW, "0x")

    @pytest.mark.asyncio
    async def test_send_transaction(self):
        evm = self.adapter()
        evm.w3.eth.wait_for_transaction_receipt.return_value = {
            "status": 1,
            "transactionHash": b"\x01" * 32,
            "blockHash": b"\x02" * 32,
            "blockNumber": 7,
            "gasUsed": 90_000,
        }

        result = await evm.send_transaction(ESCROW, "0x", value=5)

        assert result.transaction_hash == "0x" + "01" * 32
        assert result.block_timestamp == 1_700_000_000
        assert result.gas_used == 90_000
        tx = evm.w3.eth.estimate_gas.await_args.args[0]
        assert tx["value"] == 5
        assert tx["chainId"] == evm.config.source_network_id

    @pytest.mark.asyncio
    async def test_cancel_goes_through_proxy(self):
        evm = self.adapter()
        evm.send_transaction = AsyncMock()
        deposit = DepositResult(
            escrow_address=ESCROW,
            transaction_hash="0x01",
            block_hash="0x02",
            block_timestamp=0,
            immutables=immutables(0),
        )

        await evm.cancel_src(deposit)

        to, data = evm.send_transaction.await_args.args
        assert to == evm.config.resolver_proxy
        assert data.startswith("0x" + function_signature_to_4byte_selector(
            "arbitraryCalls(address[],bytes[])"
        ).hex())


class TestSourceEscrowFromDeposit:
    """The relayer validates the escrow the resolver's deploySrc creates."""

    def deployed(self, now: int) -> tuple[dict, Immutables]:
        extension = EscrowExtension(
            factory=FACTORY,
            hashlock_info=HASHLOCK,
            dst_chain_id=608,
            dst_token=0,
            src_safety_deposit=10**15,
            dst_safety_deposit=10**15,
            timelocks=Timelocks.from_offsets({Stage.SRC_WITHDRAWAL: 10, Stage.SRC_CANCELLATION: 3600}),
        ).encode()
        order = relayer_order(ORDER_HASH)
        adapter = EvmAdapter(make_resolver_config(), w3=FakeWeb3())
        _, _, sent = adapter.build_deploy_src(order["order"], extension, "0x" + "ee" * 65, 1000)
        # the factory stamps deployedAt when it creates the escrow
        emitted = dataclasses.replace(
            sent, timelocks=Timelocks(sent.timelocks).with_deployed_at(now).value
        )
        return order, emitted

    def stored_order(self, order: dict) -> Order:
        fields = order["order"]
        return Order(
            order_hash=order["orderHash"],
            maker=fields["maker"],
            maker_token=fields["makerAsset"],
            taker_token=fields["takerAsset"],
            maker_amount=fields["makingAmount"],
            taker_amount=fields["takingAmount"],
            hashlock=fields["makerTraits"],
            order_data=fields,
        )

    @pytest.mark.asyncio
    async def test_validates_escrow_created_under_protocol_hash(self):
        order, emitted = self.deployed(int(time.time()))
        assert emitted.order_hash != order["orderHash"]

        evm = plugin(FACTORY)
        evm.w3.eth.get_logs.return_value = [created_log(emitted)]
        evm.w3.eth.call.side_effect = [
            encode(["uint256"], [1000]),
            encode(["address"], [ESCROW]),
        ]

        result = await evm.validate_escrow(
            ESCROW, order_data_for(self.stored_order(order), ValidationType.SOURCE)
        )

        assert result.valid is True, result.error
        assert result.details["hashlockVerified"] is True
        assert result.details["protocolOrderHash"] == emitted.order_hash

    @pytest.mark.asyncio
    async def test_event_from_other_maker_ignored(self):
        order, emitted = self.deployed(int(time.time()))
        stranger = dataclasses.replace(emitted, maker=address_to_int("0x" + "bb" * 20))

        evm = plugin(FACTORY)
        evm.w3.eth.get_logs.return_value = [created_log(stranger)]
        evm.w3.eth.call.return_value = encode(["uint256"], [1000])

        result = await evm.validate_escrow(
            ESCROW, order_data_for(self.stored_order(order), ValidationType.SOURCE)
        )

        assert result.valid is False
        assert "creation event not found" in result.error

    @pytest.mark.asyncio
    async def test_token_mismatch(self):
        order, emitted = self.deployed(int(time.time()))
        order["order"]["makerAsset"] = TOKEN_A.replace("10", "20", 1)

        evm = plugin(FACTORY)
        evm.w3.eth.get_logs.return_value = [created_log(emitted)]
        evm.w3.eth.call.side_effect = [
            encode(["uint256"], [1000]),
            encode(["address"], [ESCROW]),
        ]

        result = await evm.validate_escrow(
            ESCROW, order_data_for(self.stored_order(order), ValidationType.SOURCE)
        )

        assert result.valid is False
        assert "token" in result.error
