"""Resolver configuration passed explicitly to each service."""

from dataclasses import dataclass

from moleswap.config import Settings


@dataclass(frozen=True)
class ResolverConfig:
    """Settings the resolver needs, assembled once at startup."""

    relayer_url: str
    rpc_url: str
    taker_private_key: str
    source_network_id: int
    destination_network_id: int
    lop: str
    escrow_factory: str
    resolver_proxy: str
    erc20_mock: str
    ton_lop_address: str
    ton_taker_address: str
    ton_api_key: str
    ton_api_url: str
    ton_taker_mnemonic: str
    min_profit_percent: float = 1.0
    polling_interval_ms: int = 10000
    max_orders_per_poll: int = 5
    process_one_order_and_stop: bool = False
    gas_limit: int = 500000
    execution_finality_delay: float = 10.0
    oracle_cache_ttl: float = 60.0
    ton_confirmation_attempts: int = 60
    ton_confirmation_delay: float = 1.0
    ton_confirmation_max_delay: float = 8.0
    max_retry_attempts: int = 3
    retry_delay: float = 10.0

    @property
    def polling_interval(self) -> float:
        """Poll interval in seconds."""
        return self.polling_interval_ms / 1000

    @classmethod
    def from_settings(cls, settings: Settings) -> "ResolverConfig":
        return cls(
            relayer_url=settings.relayer_url,
            rpc_url=settings.rpc_url,
            taker_private_key=settings.taker_priv,
            source_network_id=settings.source_network_id,
            destination_network_id=settings.destination_network_id,
            lop=settings.lop,
            escrow_factory=settings.escrow_factory,
            resolver_proxy=settings.resolver_proxy,
            erc20_mock=settings.erc20_mock,
            ton_lop_address=settings.ton_lop_address,
            ton_taker_address=settings.ton_taker_address,
            ton_api_key=settings.ton_api_key,
            ton_api_url=settings.ton_api_url,
            ton_taker_mnemonic=settings.ton_taker_mnemonic,
            min_profit_percent=settings.min_profit_percent,
            polling_interval_ms=settings.polling_interval,
            max_orders_per_poll=settings.max_orders_per_poll,
            process_one_order_and_stop=settings.process_one_order_and_stop,
            gas_limit=settings.gas_limit,
            execution_finality_delay=settings.execution_finality_delay,
            oracle_cache_ttl=settings.oracle_cache_ttl,
            ton_confirmation_attempts=settings.ton_confirmation_attempts,
            ton_confirmation_delay=settings.ton_confirmation_delay,
            ton_confirmation_max_delay=settings.ton_confirmation_max_delay,
            max_retry_attempts=settings.max_retry_attempts,
            retry_delay=settings.retry_delay,
        )

    def __repr__(self) -> str:
        # Keys and mnemonics stay out of logs
        return (
            f"ResolverConfig(relayer_url={self.relayer_url!r}, "
            f"source={self.source_network_id}, destination={self.destination_network_id}, "
            f"min_profit_percent={self.min_profit_percent})"
        )
