"""Pytest fixtures and utilities for the Paper Trader test suite."""
import random
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio

from paper_trader.core.models import (
    Position, TradeRecord, TradeRequest, TradeType, Wallet
)
from paper_trader.core.wallet import WalletService
from paper_trader.exchange.price_feed import PriceFeed
from paper_trader.storage.database import Database


class LowestSlippageRandom(random.Random):
    """Random source whose uniform() always returns the lower bound."""

    def uniform(self, a, b):
        return a


# =============================================================================
# Model Fixtures
# =============================================================================

@pytest.fixture
def btc_position():
    """1 BTC bought at an average of $40,000."""
    return Position(
        asset_id="bitcoin",
        symbol="BTC",
        name="Bitcoin",
        quantity=Decimal("1"),
        avg_buy_price_usd=Decimal("40000"),
    )


@pytest.fixture
def buy_request():
    """Spend $1,000 on BTC."""
    return TradeRequest(
        type=TradeType.BUY,
        asset_id="bitcoin",
        symbol="BTC",
        name="Bitcoin",
        amount=Decimal("1000"),
    )


@pytest.fixture
def sell_request():
    """Sell 0.5 BTC."""
    return TradeRequest(
        type=TradeType.SELL,
        asset_id="bitcoin",
        symbol="BTC",
        name="Bitcoin",
        amount=Decimal("0.5"),
    )


@pytest.fixture
def sample_trades():
    """A BUY followed by a SELL, newest first."""
    now = datetime.now(timezone.utc)
    sell = TradeRecord(
        type=TradeType.SELL,
        asset_id="bitcoin",
        symbol="BTC",
        name="Bitcoin",
        usd_amount=Decimal("24970.5"),
        quantity=Decimal("0.5"),
        price_usd=Decimal("50000"),
        fee_usd=Decimal("25"),
        realized_pnl_usd=Decimal("4975"),
        timestamp=now,
    )
    buy = TradeRecord(
        type=TradeType.BUY,
        asset_id="bitcoin",
        symbol="BTC",
        name="Bitcoin",
        usd_amount=Decimal("40000"),
        quantity=Decimal("1"),
        price_usd=Decimal("40000"),
        fee_usd=Decimal("40"),
        timestamp=now - timedelta(hours=1),
    )
    return [sell, buy]


@pytest.fixture
def sample_wallet(btc_position, sample_trades):
    """Wallet holding 1 BTC with two trades of history."""
    return Wallet(
        user_id="alice",
        balance_usd=Decimal("10000"),
        positions={"bitcoin": btc_position},
        trades=sample_trades,
    )


# =============================================================================
# Slippage Fixtures
# =============================================================================

@pytest.fixture
def seeded_rng():
    """Deterministic random source."""
    return random.Random(42)


@pytest.fixture
def lowest_slippage_rng():
    """Random source that always draws the minimum slippage (0.01%)."""
    return LowestSlippageRandom()


# =============================================================================
# Storage / Service Fixtures
# =============================================================================

@pytest_asyncio.fixture
async def test_database():
    """Create an in-memory test database."""
    db = Database("sqlite+aiosqlite:///:memory:")
    await db.initialize()
    yield db
    await db.close()


@pytest.fixture
def mock_exchange():
    """ccxt-like async exchange quoting BTC at $50,000 and ETH at $3,000."""
    quotes = {"BTC/USDT": 50000, "ETH/USDT": 3000}
    changes = {"BTC/USDT": 2.5, "ETH/USDT": -1.25}

    async def fetch_ticker(symbol):
        return {"symbol": symbol, "last": quotes.get(symbol)}

    async def fetch_tickers(symbols):
        return {
            s: {"symbol": s, "last": quotes[s], "percentage": changes[s]}
            for s in symbols if s in quotes
        }

    exchange = AsyncMock()
    exchange.fetch_ticker = AsyncMock(side_effect=fetch_ticker)
    exchange.fetch_tickers = AsyncMock(side_effect=fetch_tickers)
    # 2024-01-01 00:00 and 01:00 UTC hourly candles
    exchange.fetch_ohlcv = AsyncMock(return_value=[
        [1704067200000, 42000, 42500, 41800, 42300.5, 12.5],
        [1704070800000, 42300.5, 43000, 42200, 42900, 8.25],
    ])
    exchange.close = AsyncMock()
    return exchange


@pytest.fixture
def price_feed(mock_exchange):
    """PriceFeed backed by the mock exchange."""
    return PriceFeed(exchange=mock_exchange)


@pytest.fixture
def wallet_service(test_database, lowest_slippage_rng):
    """WalletService on the in-memory database with fixed 0.01% slippage."""
    return WalletService(test_database, rng=lowest_slippage_rng)
