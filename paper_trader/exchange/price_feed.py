"""Market data for supported coins via ccxt.

The feed is the engine's price oracle: whatever it returns is used as the
reference price for a trade. It also serves the 24h market overview and
price history. Public endpoints only, no credentials.
"""
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional, Tuple

import ccxt.async_support as ccxt
import structlog

from paper_trader.core.config import exchange_config
from paper_trader.core.models import MarketTicker, PriceBar
from paper_trader.exchange.coins import SUPPORTED_COINS, get_coin, to_ccxt_symbol

logger = structlog.get_logger(__name__)

# Chart range (days) -> (candle timeframe, number of candles)
HISTORY_RANGES: Dict[str, Tuple[str, int]] = {
    "1": ("15m", 96),
    "7": ("1h", 168),
    "30": ("4h", 180),
    "180": ("12h", 360),
    "365": ("1d", 365),
    "max": ("1w", 500),
}
DEFAULT_HISTORY_RANGE = "7"


def history_range(days: str) -> Tuple[str, int]:
    """Timeframe and candle count for a chart range; unknown ranges use 7 days."""
    return HISTORY_RANGES.get(days, HISTORY_RANGES[DEFAULT_HISTORY_RANGE])


def _optional_decimal(value: Any) -> Optional[Decimal]:
    if value is None:
        return None
    return Decimal(str(value))


class PriceFeed:
    """Fetches last-trade prices from a ccxt exchange (Binance by default)."""

    def __init__(self, exchange: Optional[Any] = None):
        """
        Args:
            exchange: Pre-built ccxt async exchange; one is created from
                configuration when omitted
        """
        if exchange is None:
            exchange_class = getattr(ccxt, exchange_config.exchange_id)
            exchange = exchange_class({
                'enableRateLimit': True,
                'timeout': exchange_config.timeout_ms,
            })
        self._exchange = exchange

    async def get_price(self, asset_id: str) -> Decimal:
        """Get the last traded price for an asset.

        Args:
            asset_id: Supported asset id (e.g., "bitcoin")

        Returns:
            Last price in USD(T)

        Raises:
            ValueError: If the asset is unsupported or no valid price is quoted
        """
        symbol = to_ccxt_symbol(asset_id)
        ticker = await self._exchange.fetch_ticker(symbol)

        last = ticker.get('last') if ticker else None
        if last is None:
            raise ValueError(f"No price available for {symbol}")

        price = Decimal(str(last))
        if not price.is_finite() or price <= 0:
            raise ValueError(f"Invalid price {last} for {symbol}")

        logger.debug("price_feed.price", asset_id=asset_id, symbol=symbol, price=str(price))
        return price

    async def get_prices(self, asset_ids: Iterable[str]) -> Dict[str, Decimal]:
        """Get prices for several assets; unsupported ids are skipped."""
        prices: Dict[str, Decimal] = {}
        for asset_id in asset_ids:
            if get_coin(asset_id) is None:
                logger.warning("price_feed.unsupported_asset", asset_id=asset_id)
                continue
            prices[asset_id] = await self.get_price(asset_id)
        return prices

    async def get_market_overview(self) -> List[MarketTicker]:
        """24h tickers for every supported coin, in catalogue order.

        Coins the exchange does not quote are listed without a price.
        """
        symbols = [coin.ccxt_symbol for coin in SUPPORTED_COINS]
        tickers = await self._exchange.fetch_tickers(symbols) or {}

        overview = []
        for rank, coin in enumerate(SUPPORTED_COINS, start=1):
            ticker = tickers.get(coin.ccxt_symbol) or {}
            price = _optional_decimal(ticker.get('last'))
            if price is None:
                logger.warning("price_feed.missing_ticker", asset_id=coin.id, symbol=coin.ccxt_symbol)

            overview.append(MarketTicker(
                rank=rank,
                asset_id=coin.id,
                symbol=coin.symbol,
                name=coin.name,
                price_usd=price,
                change_percent_24h=_optional_decimal(ticker.get('percentage')) or Decimal("0"),
            ))

        logger.debug("price_feed.market_overview", coins=len(overview))
        return overview

    async def get_price_history(
        self,
        asset_id: str,
        timeframe: str = "1h",
        limit: int = 168,
    ) -> List[PriceBar]:
        """Get recent OHLCV candles for an asset, oldest first.

        Args:
            asset_id: Supported asset id
            timeframe: ccxt timeframe (e.g., "15m", "1h", "1d")
            limit: Number of candles

        Returns:
            List of PriceBar objects

        Raises:
            ValueError: If the asset is unsupported or limit is not positive
        """
        if limit <= 0:
            raise ValueError(f"Limit must be positive. Received: {limit}")

        symbol = to_ccxt_symbol(asset_id)
        ohlcv = await self._exchange.fetch_ohlcv(symbol, timeframe=timeframe, limit=limit)

        bars = []
        for candle in ohlcv or []:
            # OHLCV format: [timestamp, open, high, low, close, volume]
            bars.append(PriceBar(
                asset_id=asset_id,
                timeframe=timeframe,
                timestamp=datetime.fromtimestamp(candle[0] / 1000, tz=timezone.utc),
                open=Decimal(str(candle[1])),
                high=Decimal(str(candle[2])),
                low=Decimal(str(candle[3])),
                close=Decimal(str(candle[4])),
                volume=_optional_decimal(candle[5]) or Decimal("0"),
            ))

        logger.debug("price_feed.price_history", asset_id=asset_id, timeframe=timeframe, bars=len(bars))
        return bars

    async def close(self):
        """Close the exchange session."""
        await self._exchange.close()
