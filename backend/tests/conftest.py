"""
Shared test fixtures for the auto-trader backend tests.

Provides reusable fixtures for:
- Async database sessions (in-memory SQLite)
- Mock Binance clients
- Sample exchange responses and model factories
"""

import pytest
from unittest.mock import AsyncMock, MagicMock
from sqlalchemy.ext.asyncio import (
    create_async_engine,
    AsyncSession,
    async_sessionmaker,
)

from autotrader.exchange_clients.binance_client import BinanceClient
from autotrader.schemas.trading import ExchangeOrderResult
from autotrader.services.shutdown_manager import shutdown_manager


# ---------------------------------------------------------------------------
# Database fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
async def async_engine():
    """Create an in-memory async SQLite engine for testing."""
    from autotrader.models import Base

    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        echo=False,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
async def db_session(async_engine):
    """Provide an async database session for tests.

    Each test gets its own session that rolls back after the test.
    """
    session_factory = async_sessionmaker(
        async_engine, class_=AsyncSession, expire_on_commit=False, autoflush=False
    )
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture(autouse=True)
def reset_shutdown_manager():
    """Every test starts with the global shutdown manager accepting orders."""
    shutdown_manager.reset()
    yield
    shutdown_manager.reset()


# ---------------------------------------------------------------------------
# Sample exchange responses
# ---------------------------------------------------------------------------


def make_order_response(**overrides):
    """Binance POST /api/v3/order response (FULL) with sensible defaults."""
    data = {
        "symbol": "BTCUSDT",
        "orderId": 28,
        "clientOrderId": "6gCrw2kRUAF9CvJDGP16IP",
        "transactTime": 1507725176595,
        "price": "0.00000000",
        "origQty": "0.01000000",
        "executedQty": "0.01000000",
        "cummulativeQuoteQty": "200.00000000",
        "status": "FILLED",
        "timeInForce": "GTC",
        "type": "MARKET",
        "side": "BUY",
        "fills": [
            {
                "price": "20000.00000000",
                "qty": "0.01000000",
                "commission": "0.00001000",
                "commissionAsset": "BTC",
            }
        ],
    }
    data.update(overrides)
    return data


def make_exchange_order(**overrides) -> ExchangeOrderResult:
    return ExchangeOrderResult.from_response(make_order_response(**overrides))


@pytest.fixture
def order_response():
    return make_order_response


@pytest.fixture
def exchange_order():
    return make_exchange_order


# ---------------------------------------------------------------------------
# Mock exchange client
# ---------------------------------------------------------------------------


@pytest.fixture
def mock_binance_client():
    """Mock BinanceClient for testing without hitting the real API."""
    client = MagicMock(spec=BinanceClient)
    client.place_order = AsyncMock(return_value=make_exchange_order())
    client.cancel_order = AsyncMock(return_value={"status": "CANCELED"})
    client.get_account = AsyncMock(return_value={"balances": []})
    client.get_ticker_price = AsyncMock(return_value=20000.0)
    client.get_all_ticker_prices = AsyncMock(return_value={})
    client.close = AsyncMock()
    return client


# ---------------------------------------------------------------------------
# Model factories
# ---------------------------------------------------------------------------


@pytest.fixture
def make_limits(db_session):
    """Insert a UserTradingLimits row. Defaults allow trading with protection on."""
    from autotrader.models import UserTradingLimits

    async def _make(**overrides):
        fields = {
            "user_id": "user-1",
            "binance_api_key": "test-api-key",
            "binance_secret_key": "test-secret",
            "auto_trading_enabled": True,
            "auto_tp_sl_enabled": True,
            "default_stop_loss_percent": 5.0,
            "default_take_profit_percent": 10.0,
            "max_daily_trades": 50,
            "max_position_size": 1000.0,
        }
        fields.update(overrides)
        limits = UserTradingLimits(**fields)
        db_session.add(limits)
        await db_session.commit()
        await db_session.refresh(limits)
        return limits

    return _make


@pytest.fixture
def make_order(db_session):
    """Insert an Order row. Defaults describe an open, protected BUY position."""
    from autotrader.models import Order

    async def _make(**overrides):
        fields = {
            "user_id": "user-1",
            "symbol": "BTCUSDT",
            "side": "BUY",
            "type": "MARKET",
            "quantity": 0.01,
            "status": "filled",
            "filled_quantity": 0.01,
            "avg_fill_price": 20000.0,
            "order_id": "28",
            "stop_loss_price": 19000.0,
            "take_profit_price": 22000.0,
            "auto_tp_sl_enabled": True,
        }
        fields.update(overrides)
        order = Order(**fields)
        db_session.add(order)
        await db_session.commit()
        await db_session.refresh(order)
        return order

    return _make
