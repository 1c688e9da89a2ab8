"""Reference prices and the profitability gate.

Prices come from a static reference table (demo data). Lookups go through a
TTL cache; assets missing from the table get a deterministic placeholder
price derived from the address, which is only suitable for a demo oracle.
All prices and amounts are ``Decimal``.
"""

import logging
import time
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional, Union

from eth_utils import keccak

from moleswap.errors import PriceUnavailableError, ValidationError

logger = logging.getLogger(__name__)

TOKEN_DECIMALS = 18

REFERENCE_PRICES = {
    "0xa0b86a33e6441b8c4c8c0c4c8c0c4c8c0c4c8c0c4": Decimal("1.0"),  # USDC
    "0xc02aaa39b223fe8d0a0e5c4f27ead9083c756cc2": Decimal("3500.0"),  # WETH
    "0x6b175474e89094c44da98b954eedeac495271d0f": Decimal("1.0"),  # DAI
    "0x10563e509b718a279de002dfc3e94a8a8f642b03": Decimal("0.5"),  # test token A
    "0xa3578b35f092dd73eb4d5a9660d3cde8b6a4bf8c": Decimal("2.0"),  # test token B
}


def to_decimal(value: Union[Decimal, float, int, str]) -> Decimal:
    """Decimal from a price given as float, int or string (floats via str)."""
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


@dataclass
class OraclePrice:
    """Price of one asset in USD."""

    token: str
    price: Decimal
    timestamp: float
    source: str = "reference"


@dataclass
class PriceComparison:
    """Order price versus oracle price."""

    order_price: Decimal
    oracle_price: Decimal
    price_difference: Decimal
    price_difference_percent: Decimal
    is_profitable: bool
    min_profit_percent: Decimal

    def to_dict(self) -> dict:
        return {
            "orderPrice": str(self.order_price),
            "oraclePrice": str(self.oracle_price),
            "priceDifference": str(self.price_difference),
            "priceDifferencePercent": str(self.price_difference_percent),
            "isProfitable": self.is_profitable,
            "minProfitPercent": str(self.min_profit_percent),
        }


def placeholder_price(token: str) -> Decimal:
    """Stable pseudo-price in [0.1, 100.1) for an unknown asset."""
    digest = int.from_bytes(keccak(text=token.lower())[:8], "big")
    return Decimal("0.1") + Decimal(digest % 1_000_000) / Decimal(10_000)


class PriceCache:
    """Asset price cache with time-based eviction."""

    def __init__(self, ttl: float = 60.0):
        self.ttl = ttl
        self._entries: dict[str, OraclePrice] = {}

    def get(self, token: str) -> Optional[OraclePrice]:
        key = token.lower()
        entry = self._entries.get(key)
        if entry is None:
            return None
        if time.time() - entry.timestamp > self.ttl:
            del self._entries[key]
            return None
        return entry

    def set(self, price: OraclePrice) -> None:
        self._entries[price.token.lower()] = price

    def evict_expired(self) -> int:
        """Drop stale entries. Returns how many were removed."""
        now = time.time()
        stale = [k for k, v in self._entries.items() if now - v.timestamp > self.ttl]
        for key in stale:
            del self._entries[key]
        return len(stale)

    def values(self) -> list[OraclePrice]:
        self.evict_expired()
        return list(self._entries.values())

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)


class OracleService:
    """Price lookups and profitability checks."""

    def __init__(
        self,
        cache_ttl: float = 60.0,
        reference_prices: Optional[dict[str, Union[Decimal, float, str]]] = None,
        allow_placeholders: bool = True,
    ):
        """Initialize the oracle.

        Args:
            cache_ttl: Seconds a looked-up price stays cached
            reference_prices: Asset address -> USD price table
            allow_placeholders: Price unknown assets instead of failing
        """
        table = REFERENCE_PRICES if reference_prices is None else reference_prices
        self._reference = {k.lower(): to_decimal(v) for k, v in table.items()}
        self.allow_placeholders = allow_placeholders
        self.cache = PriceCache(cache_ttl)

    async def get_price(self, token: str) -> OraclePrice:
        """Get the current price of an asset.

        Raises:
            PriceUnavailableError: unknown asset and placeholders disabled
        """
        if not token:
            raise PriceUnavailableError("No asset given", {"token": token})

        cached = self.cache.get(token)
        if cached is not None:
            return cached

        key = token.lower()
        if key in self._reference:
            price = OraclePrice(token=token, price=self._reference[key], timestamp=time.time())
        elif self.allow_placeholders:
            price = OraclePrice(
                token=token,
                price=placeholder_price(token),
                timestamp=time.time(),
                source="placeholder",
            )
            logger.debug(f"Placeholder price {price.price:.4f} for {token}")
        else:
            raise PriceUnavailableError(f"No price for {token}", {"token": token})

        self.cache.set(price)
        return price

    def update_price(self, token: str, price: Union[Decimal, float, str]) -> None:
        """Set the reference price of an asset."""
        value = to_decimal(price)
        self._reference[token.lower()] = value
        self.cache.set(OraclePrice(token=token, price=value, timestamp=time.time()))

    async def get_all_prices(self) -> list[OraclePrice]:
        """Prices of every reference asset plus cached placeholders."""
        prices = {p.token.lower(): p for p in self.cache.values()}
        for token in self._reference:
            if token not in prices:
                prices[token] = await self.get_price(token)
        return list(prices.values())

    async def check_profitability(
        self,
        maker_asset: str,
        taker_asset: str,
        making_amount: str,
        taking_amount: str,
        min_profit_percent: Union[Decimal, float, str] = Decimal("1.0"),
    ) -> PriceComparison:
        """Compare the order's implied price with the oracle price.

        orderPrice = (taking * takerPrice) / (making * makerPrice)
        oraclePrice = takerPrice / makerPrice
        Profitable iff (orderPrice - oraclePrice) / oraclePrice * 100
        >= min_profit_percent.

        Raises:
            PriceUnavailableError: either asset has no price
            ValidationError: zero amounts or prices
        """
        maker_price = await self.get_price(maker_asset)
        taker_price = await self.get_price(taker_asset)
        threshold = to_decimal(min_profit_percent)

        unit = Decimal(10) ** TOKEN_DECIMALS
        maker_amount = Decimal(int(making_amount)) / unit
        taker_amount = Decimal(int(taking_amount)) / unit
        if maker_amount <= 0 or maker_price.price <= 0 or taker_price.price <= 0:
            raise ValidationError("Amounts and prices must be positive")

        order_price = (taker_amount * taker_price.price) / (maker_amount * maker_price.price)
        oracle_price = taker_price.price / maker_price.price
        difference = order_price - oracle_price
        difference_percent = difference / oracle_price * 100
        is_profitable = difference_percent >= threshold

        logger.info(
            f"Profitability {maker_asset[:10]}... -> {taker_asset[:10]}...: "
            f"order={order_price:.6f} oracle={oracle_price:.6f} "
            f"diff={difference_percent:.2f}% profitable={is_profitable}"
        )
        return PriceComparison(
            order_price=order_price,
            oracle_price=oracle_price,
            price_difference=difference,
            price_difference_percent=difference_percent,
            is_profitable=is_profitable,
            min_profit_percent=threshold,
        )
