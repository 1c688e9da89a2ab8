"""Application configuration using pydantic-settings.

One ``Settings`` instance is built per process. The relayer and the resolver
read different subsets of it; each validates its own subset at startup and
reports every problem at once.
"""

import re
from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from moleswap.errors import ConfigurationError

EVM_ADDRESS_RE = re.compile(r"^0x[a-fA-F0-9]{40}$")
PRIVATE_KEY_RE = re.compile(r"^(0x)?[a-fA-F0-9]{64}$")
SECRET_KEY_RE = re.compile(r"^[a-fA-F0-9]{64}$")

MIN_POLLING_INTERVAL_MS = 1000


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ======================
    # Database
    # ======================
    database_url: str = Field(
        default="sqlite+aiosqlite:///./data/moleswap.db",
        description="Database connection URL",
    )

    # ======================
    # Relayer API
    # ======================
    api_host: str = Field(default="0.0.0.0", description="API server host")
    api_port: int = Field(default=3000, description="API server port")

    # ======================
    # Environment
    # ======================
    environment: str = Field(default="development", description="Runtime environment")
    debug: bool = Field(default=False, description="Enable debug mode")
    log_level: str = Field(default="INFO", description="Root log level")

    # ======================
    # Secrets
    # ======================
    secret_key: Optional[str] = Field(
        default=None, description="64 hex chars (32 bytes) AES-256-GCM key for secrets at rest"
    )

    # ======================
    # Escrow validation plugins
    # ======================
    use_dummy_plugin: bool = Field(default=True, description="Register the always-valid plugin")
    dummy_chains: str = Field(default="1,137,56", description="Chain ids served by the dummy plugin")
    ethereum_chain_id: int = Field(default=11155111, description="EVM chain id for escrow checks")
    ethereum_rpc_url: str = Field(default="", description="EVM RPC URL for escrow checks")
    ethereum_escrow_factory: str = Field(default="", description="Escrow factory for event lookup")
    ethereum_log_lookback_blocks: int = Field(
        default=5000, description="How far back to search for escrow creation events"
    )
    ton_chain_id: int = Field(default=608, description="Chain id used for TON")
    ton_plugin_enabled: bool = Field(default=False, description="Register the TON escrow plugin")
    validation_reuse_seconds: int = Field(
        default=300, description="Reuse valid escrow checks younger than this"
    )

    # ======================
    # Resolver
    # ======================
    relayer_url: str = Field(default="http://localhost:3000", description="Relayer base URL")
    rpc_url: str = Field(default="", description="Source EVM chain RPC URL")
    taker_priv: str = Field(default="", description="Resolver EVM private key")
    source_network_id: int = Field(default=11155111, description="Source chain id")
    destination_network_id: int = Field(default=608, description="Destination chain id")
    lop: str = Field(default="", description="Limit order protocol address")
    escrow_factory: str = Field(default="", description="Escrow factory address")
    resolver_proxy: str = Field(default="", description="Resolver proxy contract address")
    erc20_mock: str = Field(default="", description="Test ERC20 token address")

    ton_lop_address: str = Field(default="", description="TON limit order protocol address")
    ton_taker_address: str = Field(default="", description="Resolver TON address")
    ton_api_key: str = Field(default="", description="toncenter API key")
    ton_api_url: str = Field(
        default="https://testnet.toncenter.com/api/v2", description="toncenter v2 base URL"
    )
    ton_taker_mnemonic: str = Field(default="", description="Resolver TON wallet mnemonic")
    ton_confirmation_attempts: int = Field(default=60, description="Seqno polls before timeout")
    ton_confirmation_delay: float = Field(default=1.0, description="First seqno poll delay (s)")
    ton_confirmation_max_delay: float = Field(default=8.0, description="Backoff ceiling (s)")

    min_profit_percent: float = Field(default=1.0, description="Minimum profit percent")
    polling_interval: int = Field(default=10000, description="Poll interval in milliseconds")
    max_orders_per_poll: int = Field(default=5, description="Orders fetched per poll")
    process_one_order_and_stop: bool = Field(default=False, description="Stop after one order")
    gas_limit: int = Field(default=500000, description="Gas limit for pre-flight balance check")
    execution_finality_delay: float = Field(
        default=10.0, description="Seconds to wait for finality before asking for the secret"
    )
    oracle_cache_ttl: float = Field(default=60.0, description="Oracle price cache TTL (s)")
    max_retry_attempts: int = Field(default=3, description="Attempts per failed order")
    retry_delay: float = Field(default=10.0, description="Seconds before a failed order is retried")

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment.lower() == "production"

    @property
    def dummy_chain_ids(self) -> list[str]:
        """Parse dummy chain ids into a list."""
        return [c.strip() for c in self.dummy_chains.split(",") if c.strip()]

    def validate_relayer(self) -> list[str]:
        """Collect every relayer configuration problem."""
        errors = []
        if not self.secret_key:
            errors.append("SECRET_KEY is required")
        elif not SECRET_KEY_RE.match(self.secret_key):
            errors.append("SECRET_KEY must be 64 hex characters (32 bytes)")
        if not self.database_url:
            errors.append("DATABASE_URL is required")
        if self.ethereum_rpc_url and self.ethereum_escrow_factory and not EVM_ADDRESS_RE.match(
            self.ethereum_escrow_factory
        ):
            errors.append("ETHEREUM_ESCROW_FACTORY must be a valid EVM address")
        return errors

    def validate_resolver(self) -> list[str]:
        """Collect every resolver configuration problem."""
        errors = []

        required = {
            "RELAYER_URL": self.relayer_url,
            "RPC_URL": self.rpc_url,
            "TAKER_PRIV": self.taker_priv,
            "LOP": self.lop,
            "ESCROW_FACTORY": self.escrow_factory,
            "RESOLVER_PROXY": self.resolver_proxy,
            "TON_LOP_ADDRESS": self.ton_lop_address,
            "TON_TAKER_ADDRESS": self.ton_taker_address,
            "TON_API_KEY": self.ton_api_key,
            "TON_TAKER_MNEMONIC": self.ton_taker_mnemonic,
        }
        for name, value in required.items():
            if not value:
                errors.append(f"{name} is required")

        for name, value in (
            ("LOP", self.lop),
            ("ESCROW_FACTORY", self.escrow_factory),
            ("RESOLVER_PROXY", self.resolver_proxy),
            ("ERC20_MOCK", self.erc20_mock),
        ):
            if value and not EVM_ADDRESS_RE.match(value):
                errors.append(f"{name} must be a valid EVM address")

        if self.taker_priv and not PRIVATE_KEY_RE.match(self.taker_priv):
            errors.append("TAKER_PRIV must be a 32-byte hex private key")

        if self.ton_taker_mnemonic and len(self.ton_taker_mnemonic.split()) != 24:
            errors.append("TON_TAKER_MNEMONIC must contain 24 words")

        if self.relayer_url and not self.relayer_url.startswith(("http://", "https://")):
            errors.append("RELAYER_URL must be an http(s) URL")

        if self.polling_interval < MIN_POLLING_INTERVAL_MS:
            errors.append(f"POLLING_INTERVAL must be at least {MIN_POLLING_INTERVAL_MS}ms")
        if self.max_orders_per_poll < 1:
            errors.append("MAX_ORDERS_PER_POLL must be at least 1")
        if self.min_profit_percent < 0:
            errors.append("MIN_PROFIT_PERCENT must not be negative")
        if self.source_network_id == self.destination_network_id:
            errors.append("SOURCE_NETWORK_ID and DESTINATION_NETWORK_ID must differ")

        return errors

    def ensure_valid(self, component: str) -> None:
        """Raise ConfigurationError listing all problems for a component.

        Args:
            component: "relayer" or "resolver"
        """
        if component == "relayer":
            errors = self.validate_relayer()
        elif component == "resolver":
            errors = self.validate_resolver()
        else:
            raise ValueError(f"Unknown component: {component}")
        if errors:
            raise ConfigurationError(errors)

    def get_safe_dict(self) -> dict:
        """Return settings dict with secrets redacted."""
        return {
            "environment": self.environment,
            "debug": self.debug,
            "api_host": self.api_host,
            "api_port": self.api_port,
            "database_url": self._redact_url(self.database_url),
            "secret_key": "***" if self.secret_key else "(not set)",
            "plugins": {
                "use_dummy_plugin": self.use_dummy_plugin,
                "dummy_chains": self.dummy_chain_ids,
                "ethereum": {
                    "chain_id": self.ethereum_chain_id,
                    "rpc": self._redact_url(self.ethereum_rpc_url) or "(not set)",
                },
                "ton": {"chain_id": self.ton_chain_id, "enabled": self.ton_plugin_enabled},
            },
            "validation_reuse_seconds": self.validation_reuse_seconds,
        }

    @staticmethod
    def _redact_url(url: str) -> str:
        """Redact sensitive parts of a URL."""
        if "://" in url and "@" in url:
            proto, rest = url.split("://", 1)
            if "@" in rest:
                creds, host = rest.rsplit("@", 1)
                if ":" in creds:
                    user, _ = creds.split(":", 1)
                    return f"{proto}://{user}:***@{host}"
        return url


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
