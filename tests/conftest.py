"""Pytest configuration and fixtures."""

import os
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from eth_account import Account
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

# Set test environment
os.environ["ENVIRONMENT"] = "test"
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["SECRET_KEY"] = "a1" * 32
os.environ["USE_DUMMY_PLUGIN"] = "true"
os.environ["DUMMY_CHAINS"] = "1,137,56,608,11155111"
os.environ["TON_CHAIN_ID"] = "608"
os.environ["ETHEREUM_RPC_URL"] = ""
os.environ["TON_PLUGIN_ENABLED"] = "false"
os.environ["VALIDATION_REUSE_SECONDS"] = "300"
os.environ["DEBUG"] = "false"

from moleswap.api.app import create_app
from moleswap.orders.database import close_db, get_engine
from moleswap.orders.hashing import random_salt, sign_order
from moleswap.orders.models import Base
from moleswap.orders.repository import EscrowValidationRepository, OrderRepository
from moleswap.orders.schemas import Order
from moleswap.resolver.config import ResolverConfig
from moleswap.utils.locks import clear_order_locks

MAKER_KEY = "0x" + "4c" * 32
OTHER_KEY = "0x" + "7e" * 32

TOKEN_A = "0x10563e509b718a279de002dfc3e94a8a8f642b03"
TOKEN_B = "0xa3578b35f092dd73eb4d5a9660d3cde8b6a4bf8c"

SRC_CHAIN_ID = 11155111
DST_CHAIN_ID = 608

EVM_ESCROW = "0x" + "ab" * 20
TON_ESCROW = "0:" + "cd" * 32


@pytest.fixture
def maker_account():
    return Account.from_key(MAKER_KEY)


@pytest.fixture
def other_account():
    return Account.from_key(OTHER_KEY)


@pytest.fixture
def order_fields(maker_account) -> dict:
    """Unsigned order fields as a maker submits them."""
    return {
        "maker": maker_account.address,
        "makerAsset": TOKEN_A,
        "takerAsset": TOKEN_B,
        "makingAmount": str(10**18),
        "takingAmount": str(2 * 10**18),
    }


@pytest.fixture
def make_order(order_fields):
    """Factory for signable orders with a given hashlock."""

    def _make(hashlock: str = "0x" + "11" * 32, **overrides) -> Order:
        data = {**order_fields, "makerTraits": hashlock, "salt": random_salt()}
        data.update(overrides)
        return Order.model_validate(data)

    return _make


@pytest.fixture
def sign():
    def _sign(order: Order, key: str = MAKER_KEY) -> str:
        return sign_order(order, key)

    return _sign


@pytest.fixture(autouse=True)
def reset_locks():
    clear_order_locks()
    yield
    clear_order_locks()


@pytest_asyncio.fixture
async def db_engine():
    """Create in-memory database engine for testing."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        echo=False,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(db_engine) -> AsyncGenerator[AsyncSession, None]:
    """Create database session for testing."""
    session_factory = async_sessionmaker(
        bind=db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )

    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def order_repo(db_session: AsyncSession) -> OrderRepository:
    """Create order repository for testing."""
    return OrderRepository(db_session)


@pytest_asyncio.fixture
async def validation_repo(db_session: AsyncSession) -> EscrowValidationRepository:
    return EscrowValidationRepository(db_session)


@pytest_asyncio.fixture
async def test_app():
    """Create test application with fresh database."""
    engine = get_engine()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    app = create_app()

    yield app

    await app.state.registry.close()
    await close_db()


@pytest_asyncio.fixture
async def client(test_app):
    """Create async test client."""
    transport = ASGITransport(app=test_app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


def make_resolver_config(**overrides) -> ResolverConfig:
    """Resolver config pointing at test endpoints, with no finality wait."""
    fields = dict(
        relayer_url="http://relayer.test",
        rpc_url="http://rpc.test",
        taker_private_key=OTHER_KEY,
        source_network_id=SRC_CHAIN_ID,
        destination_network_id=DST_CHAIN_ID,
        lop="0x" + "11" * 20,
        escrow_factory="0x" + "22" * 20,
        resolver_proxy="0x" + "33" * 20,
        erc20_mock="0x" + "44" * 20,
        ton_lop_address="0:" + "55" * 32,
        ton_taker_address="0:" + "66" * 32,
        ton_api_key="",
        ton_api_url="https://toncenter.test/api/v2",
        ton_taker_mnemonic="",
        execution_finality_delay=0,
    )
    fields.update(overrides)
    return ResolverConfig(**fields)


def relayer_order(order_hash: str = "0x" + "5a" * 32, **overrides) -> dict:
    """An order as the relayer's GET /api/orders returns it."""
    data = {
        "orderHash": order_hash,
        "status": "active",
        "order": {
            "maker": "0x" + "aa" * 20,
            "makerAsset": TOKEN_A,
            "takerAsset": TOKEN_B,
            "makerTraits": "0x" + "3c" * 32,
            "salt": "1",
            "makingAmount": "1000",
            "takingAmount": "2000",
            "receiver": "0x" + "00" * 20,
        },
        "extension": "0x1234",
        "signature": "0x" + "ee" * 65,
        "createdAt": "2026-01-01T00:00:00+00:00",
    }
    data.update(overrides)
    return data
