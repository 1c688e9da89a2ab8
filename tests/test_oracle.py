"""Tests for the price oracle and profitability gate."""

import time
from decimal import Decimal

import pytest

from moleswap.errors import PriceUnavailableError, ValidationError
from moleswap.resolver.oracle import (
    OraclePrice,
    OracleService,
    PriceCache,
    placeholder_price,
)

TOKEN_A = "0x10563E509B718A279DE002DFC3E94A8A8F642B03"  # 0.5
TOKEN_B = "0xa3578b35f092dd73eb4d5a9660d3cde8b6a4bf8c"  # 2.0
UNKNOWN = "0x" + "99" * 20
ONE = str(10**18)


class TestPriceCache:
    """TTL cache."""

    def test_fresh_entry_returned(self):
        cache = PriceCache(ttl=60)
        cache.set(OraclePrice(token=TOKEN_A, price=Decimal("1.5"), timestamp=time.time()))

        assert cache.get(TOKEN_A.lower()).price == Decimal("1.5")

    def test_stale_entry_evicted(self):
        cache = PriceCache(ttl=60)
        cache.set(OraclePrice(token=TOKEN_A, price=Decimal("1.5"), timestamp=time.time() - 120))

        assert cache.get(TOKEN_A) is None
        assert len(cache) == 0

    def test_evict_expired(self):
        cache = PriceCache(ttl=60)
        cache.set(OraclePrice(token=TOKEN_A, price=Decimal("1.0"), timestamp=time.time() - 120))
        cache.set(OraclePrice(token=TOKEN_B, price=Decimal("2.0"), timestamp=time.time()))

        assert cache.evict_expired() == 1
        assert [p.token for p in cache.values()] == [TOKEN_B]


class TestOracleService:
    """Price lookups."""

    @pytest.mark.asyncio
    async def test_reference_price_case_insensitive(self):
        oracle = OracleService()

        price = await oracle.get_price(TOKEN_A)

        assert price.price == Decimal("0.5")
        assert price.source == "reference"

    @pytest.mark.asyncio
    async def test_placeholder_is_deterministic(self):
        oracle = OracleService()

        first = await oracle.get_price(UNKNOWN)
        oracle.cache.clear()
        second = await oracle.get_price(UNKNOWN)

        assert first.source == "placeholder"
        assert first.price == second.price == placeholder_price(UNKNOWN)
        assert Decimal("0.1") <= first.price < Decimal("100.1")

    @pytest.mark.asyncio
    async def test_unknown_asset_without_placeholders(self):
        oracle = OracleService(allow_placeholders=False)

        with pytest.raises(PriceUnavailableError):
            await oracle.get_price(UNKNOWN)

    @pytest.mark.asyncio
    async def test_empty_asset(self):
        with pytest.raises(PriceUnavailableError):
            await OracleService().get_price("")

    @pytest.mark.asyncio
    async def test_update_price(self):
        oracle = OracleService()
        oracle.update_price(TOKEN_A, 0.75)

        assert (await oracle.get_price(TOKEN_A)).price == Decimal("0.75")

    @pytest.mark.asyncio
    async def test_get_all_prices(self):
        oracle = OracleService(reference_prices={TOKEN_A: 0.5, TOKEN_B: 2.0})
        await oracle.get_price(UNKNOWN)

        prices = {p.token.lower(): p.price for p in await oracle.get_all_prices()}

        assert prices[TOKEN_A.lower()] == Decimal("0.5")
        assert prices[TOKEN_B.lower()] == Decimal("2.0")
        assert UNKNOWN.lower() in prices


class TestProfitability:
    """Order price against oracle price."""

    @pytest.mark.asyncio
    async def test_profitable_order(self):
        oracle = OracleService()

        result = await oracle.check_profitability(TOKEN_A, TOKEN_B, ONE, str(2 * 10**18), 1.0)

        assert result.order_price == Decimal("8")
        assert result.oracle_price == Decimal("4")
        assert result.price_difference_percent == Decimal("100")
        assert result.is_profitable is True

    @pytest.mark.asyncio
    async def test_unprofitable_order(self):
        oracle = OracleService()

        # order price 2.0 against oracle 4.0
        result = await oracle.check_profitability(TOKEN_A, TOKEN_B, str(2 * 10**18), ONE, 1.0)

        assert result.price_difference_percent == Decimal("-50")
        assert result.is_profitable is False

    @pytest.mark.asyncio
    async def test_difference_percent_from_amounts(self):
        oracle = OracleService(reference_prices={TOKEN_A: 1.0, TOKEN_B: 1.0})

        result = await oracle.check_profitability(TOKEN_A, TOKEN_B, "100", "110", 10.0)

        assert result.price_difference_percent == Decimal("10")

    @pytest.mark.asyncio
    async def test_zero_making_amount(self):
        with pytest.raises(ValidationError):
            await OracleService().check_profitability(TOKEN_A, TOKEN_B, "0", ONE)

    @pytest.mark.asyncio
    async def test_to_dict(self):
        result = await OracleService().check_profitability(TOKEN_A, TOKEN_B, ONE, ONE)
        data = result.to_dict()

        assert set(data) == {
            "orderPrice",
            "oraclePrice",
            "priceDifference",
            "priceDifferencePercent",
            "isProfitable",
            "minProfitPercent",
        }

    @pytest.mark.asyncio
    async def test_amounts_beyond_float_precision(self):
        oracle = OracleService(reference_prices={TOKEN_A: "1", TOKEN_B: "1"})
        making = 2**53

        result = await oracle.check_profitability(TOKEN_A, TOKEN_B, str(making), str(making + 1), 0)

        assert result.price_difference > 0
        # float(2**53 + 1) == float(2**53)
        expected = Decimal(100) / Decimal(making)
        assert abs(result.price_difference_percent - expected) < Decimal("1e-24")

    @pytest.mark.asyncio
    async def test_to_dict_serializes_decimals(self):
        result = await OracleService().check_profitability(TOKEN_A, TOKEN_B, ONE, str(2 * 10**18))

        data = result.to_dict()

        assert Decimal(data["orderPrice"]) == Decimal("8")
        assert data["minProfitPercent"] == "1.0"
