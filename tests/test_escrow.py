"""Tests for escrow plugins, the plugin registry and escrow validation."""

import json
import time
from typing import Optional

import httpx
import pytest

from moleswap.config import Settings
from moleswap.errors import ChainNotSupportedError, ConfigurationError
from moleswap.escrow.base import (
    ChainConfig,
    EscrowOrderData,
    PluginConfig,
    PluginState,
)
from moleswap.escrow.dummy import DUMMY_BALANCE, DummyPlugin
from moleswap.escrow.factory import create_plugin, load_plugin_configs
from moleswap.escrow.registry import PluginRegistry
from moleswap.escrow.ton import TonPlugin
from moleswap.escrow.validation import (
    EscrowValidationRequest,
    EscrowValidationService,
    order_data_for,
)
from moleswap.orders.hashing import order_hash
from moleswap.orders.models import OrderStatus, ValidationType
from moleswap.ton import ToncenterClient

HASHLOCK = "0x" + "3c" * 32
EVM_ESCROW = "0x" + "ab" * 20
TON_ESCROW = "0:" + "cd" * 32


def dummy(chain_id: str, name: str = "Test") -> DummyPlugin:
    return DummyPlugin(ChainConfig(chain_id=chain_id, chain_name=name))


def ton_plugin(handler) -> TonPlugin:
    client = ToncenterClient(
        "https://toncenter.test/api/v2",
        client=httpx.AsyncClient(
            base_url="https://toncenter.test/api/v2", transport=httpx.MockTransport(handler)
        ),
    )
    return TonPlugin(ChainConfig(chain_id="608", chain_name="TON"), client=client)


def escrow_handler(
    state: str = "active",
    balance: int = 5 * 10**18,
    hashlock: str = HASHLOCK,
    expiration: Optional[int] = None,
    locked: int = 2 * 10**18,
):
    """toncenter responses for a TON escrow account."""
    expiration = expiration if expiration is not None else int(time.time()) + 3600

    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith("/getAddressInformation"):
            return httpx.Response(
                200, json={"ok": True, "result": {"state": state, "balance": str(balance)}}
            )
        if request.url.path.endswith("/runGetMethod"):
            assert json.loads(request.content)["method"] == "get_escrow_data"
            stack = [["num", "0x0"]] * 12
            stack[2] = ["num", hashlock]
            stack[4] = ["num", hex(expiration)]
            stack[11] = ["num", hex(locked)]
            return httpx.Response(200, json={"ok": True, "result": {"exit_code": 0, "stack": stack}})
        if request.url.path.endswith("/getMasterchainInfo"):
            return httpx.Response(200, json={"ok": True, "result": {"last": {"seqno": 1}}})
        return httpx.Response(404, json={"ok": False, "error": "not found"})

    return handler


class TestDummyPlugin:
    """Always-valid plugin."""

    @pytest.mark.asyncio
    async def test_always_valid(self):
        plugin = dummy("1")

        result = await plugin.validate_escrow(EVM_ESCROW, EscrowOrderData(hashlock=HASHLOCK))

        assert result.valid is True
        assert result.balance == DUMMY_BALANCE
        assert result.details["validationType"] == "dummy"
        assert result.to_dict()["balance"] == str(DUMMY_BALANCE)

    @pytest.mark.asyncio
    async def test_initialize_marks_healthy(self):
        plugin = dummy("1")
        assert plugin.get_status().status == PluginState.INITIALIZING

        await plugin.initialize()

        assert plugin.get_status().status == PluginState.HEALTHY


class TestTonPlugin:
    """TON escrow checks over toncenter."""

    @pytest.mark.asyncio
    async def test_valid_escrow(self):
        plugin = ton_plugin(escrow_handler())

        result = await plugin.validate_escrow(
            TON_ESCROW, EscrowOrderData(hashlock=HASHLOCK, expected_amount=str(2 * 10**18))
        )

        assert result.valid is True
        assert result.balance == 5 * 10**18
        assert result.details["hashlock"] == HASHLOCK
        await plugin.close()

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "handler_kwargs,error",
        [
            ({"state": "uninitialized"}, "uninitialized"),
            ({"locked": 10**18}, "below expected"),
            ({"balance": 10**17}, "below expected"),
            ({"hashlock": "0x" + "00" * 32}, "hashlock does not match"),
            ({"expiration": 1000}, "expired"),
        ],
    )
    async def test_invalid_escrow(self, handler_kwargs, error):
        plugin = ton_plugin(escrow_handler(**handler_kwargs))

        result = await plugin.validate_escrow(
            TON_ESCROW, EscrowOrderData(hashlock=HASHLOCK, expected_amount=str(2 * 10**18))
        )

        assert result.valid is False
        assert error in result.error
        await plugin.close()

    @pytest.mark.asyncio
    async def test_api_failure_is_invalid_result(self):
        plugin = ton_plugin(lambda request: httpx.Response(500, json={"ok": False, "error": "boom"}))

        result = await plugin.validate_escrow(TON_ESCROW, EscrowOrderData(hashlock=HASHLOCK))

        assert result.valid is False
        assert "Validation error" in result.error
        await plugin.close()

    @pytest.mark.asyncio
    async def test_health(self):
        plugin = ton_plugin(escrow_handler())
        status = await plugin.refresh_status()
        assert status.status == PluginState.HEALTHY
        await plugin.close()


class TestPluginRegistry:
    """Registry lookups and loading."""

    def test_register_and_lookup(self):
        registry = PluginRegistry()
        registry.register(dummy("1"))

        assert registry.is_chain_supported(1)
        assert registry.is_chain_supported("1")
        assert registry.get_plugin("1").chain_id == "1"
        assert registry.get_supported_chain_ids() == ["1"]

    def test_unknown_chain(self):
        registry = PluginRegistry()
        assert registry.get_plugin("999") is None
        with pytest.raises(ChainNotSupportedError):
            registry.get_plugin_or_raise("999")

    def test_register_replaces(self):
        registry = PluginRegistry()
        registry.register(dummy("1", "First"))
        registry.register(dummy("1", "Second"))

        assert registry.get_plugin("1").name == "Second"
        assert len(registry.get_all_plugins()) == 1

    @pytest.mark.asyncio
    async def test_unregister(self):
        registry = PluginRegistry()
        registry.register(dummy("1"))

        assert await registry.unregister("1") is True
        assert await registry.unregister("1") is False

    @pytest.mark.asyncio
    async def test_load_plugins_skips_disabled(self):
        registry = PluginRegistry()
        await registry.load_plugins(
            [
                PluginConfig(type="dummy", config=ChainConfig(chain_id="1", chain_name="A")),
                PluginConfig(
                    type="dummy", config=ChainConfig(chain_id="2", chain_name="B"), enabled=False
                ),
            ]
        )

        assert registry.get_supported_chain_ids() == ["1"]
        assert registry.get_healthy_plugins()[0].chain_id == "1"

    @pytest.mark.asyncio
    async def test_health_check_and_summary(self):
        registry = PluginRegistry()
        registry.register(dummy("1"))
        registry.register(dummy("137"))

        statuses = await registry.health_check()
        summary = registry.summary()

        assert set(statuses) == {"1", "137"}
        assert summary["total"] == 2
        assert summary["healthy"] == 2
        assert summary["unhealthy"] == 0

    def test_validate_required_plugins(self):
        registry = PluginRegistry()
        registry.register(dummy("1"))

        assert registry.validate_required_plugins(["1", 608]) == ["608"]


class TestPluginFactory:
    """Plugin creation from settings."""

    def test_create_dummy(self):
        plugin = create_plugin(
            PluginConfig(type="DUMMY", config=ChainConfig(chain_id="1", chain_name="A"))
        )
        assert isinstance(plugin, DummyPlugin)

    def test_unknown_type(self):
        with pytest.raises(ConfigurationError):
            create_plugin(PluginConfig(type="solana", config=ChainConfig("1", "A")))

    def test_configs_from_settings(self):
        settings = Settings(
            use_dummy_plugin=True,
            dummy_chains="1, 608",
            ethereum_rpc_url="https://rpc.test",
            ethereum_chain_id=1,
            ton_plugin_enabled=True,
            ton_chain_id=608,
        )

        configs = {c.config.chain_id: c for c in load_plugin_configs(settings)}

        assert configs["1"].type == "evm"
        assert configs["1"].config.rpc_url == "https://rpc.test"
        assert configs["608"].type == "ton"

    def test_dummy_disabled(self):
        settings = Settings(use_dummy_plugin=False, ethereum_rpc_url="", ton_plugin_enabled=False)
        assert load_plugin_configs(settings) == []


class TestEscrowValidationService:
    """Both-escrow validation with the audit trail."""

    async def _order(self, order_repo, make_order, sign):
        order = make_order(hashlock=HASHLOCK)
        return await order_repo.insert_order(
            order,
            order_hash(order),
            sign(order),
            status=OrderStatus.ACTIVE,
            src_chain_id=1,
            dst_chain_id=608,
        )

    def _registry(self, *chain_ids) -> PluginRegistry:
        registry = PluginRegistry()
        for chain_id in chain_ids:
            registry.register(dummy(chain_id))
        return registry

    def _request(self, record, src_chain="1", dst_chain="608") -> EscrowValidationRequest:
        return EscrowValidationRequest(
            order_hash=record.order_hash,
            src_escrow_address=EVM_ESCROW,
            dst_escrow_address=TON_ESCROW,
            src_chain_id=src_chain,
            dst_chain_id=dst_chain,
        )

    @pytest.mark.asyncio
    async def test_order_data_per_side(self, order_repo, make_order, sign):
        record = await self._order(order_repo, make_order, sign)

        src = order_data_for(record, ValidationType.SOURCE)
        dst = order_data_for(record, ValidationType.DESTINATION)

        assert src.expected_amount == record.maker_amount
        assert src.expected_asset == record.maker_token
        assert dst.expected_amount == record.taker_amount
        assert dst.hashlock == HASHLOCK

    @pytest.mark.asyncio
    async def test_both_valid_records_two_rows(self, db_session, order_repo, make_order, sign):
        record = await self._order(order_repo, make_order, sign)
        service = EscrowValidationService(self._registry("1", "608"), db_session)

        result = await service.validate_escrows(record, self._request(record))

        assert result["allValid"] is True
        assert result["srcEscrow"]["chainId"] == "1"
        assert result["dstEscrow"]["escrowAddress"] == TON_ESCROW
        history = await service.get_validation_history(record.order_hash)
        assert len(history) == 2
        assert {h["validationType"] for h in history} == {"source", "destination"}

    @pytest.mark.asyncio
    async def test_unsupported_chain_is_invalid(self, db_session, order_repo, make_order, sign):
        record = await self._order(order_repo, make_order, sign)
        service = EscrowValidationService(self._registry("1", "608"), db_session)

        result = await service.validate_escrows(record, self._request(record, src_chain="999"))

        assert result["allValid"] is False
        assert result["srcEscrow"]["valid"] is False
        assert result["srcEscrow"]["details"]["code"] == "CHAIN_NOT_SUPPORTED"
        assert result["dstEscrow"]["valid"] is True
        history = await service.get_validation_history(record.order_hash)
        assert [h["isValid"] for h in history if h["validationType"] == "source"] == [False]

    @pytest.mark.asyncio
    async def test_recent_valid_checks_are_reused(self, db_session, order_repo, make_order, sign):
        record = await self._order(order_repo, make_order, sign)
        service = EscrowValidationService(self._registry("1", "608"), db_session)
        await service.validate_escrows(record, self._request(record))

        again = await service.validate_escrows(record, self._request(record))

        assert again["allValid"] is True
        assert again["reused"] is True
        assert len(await service.get_validation_history(record.order_hash)) == 2

    @pytest.mark.asyncio
    async def test_reuse_disabled(self, db_session, order_repo, make_order, sign):
        record = await self._order(order_repo, make_order, sign)
        service = EscrowValidationService(self._registry("1", "608"), db_session, reuse_seconds=0)
        await service.validate_escrows(record, self._request(record))

        again = await service.validate_escrows(record, self._request(record))

        assert "reused" not in again
        assert len(await service.get_validation_history(record.order_hash)) == 4
