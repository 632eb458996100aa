"""Market data integration: supported coins and price feed."""

from paper_trader.exchange.coins import (
    CoinMetadata,
    SUPPORTED_COINS,
    get_binance_symbol,
    get_coin,
    get_coin_id,
    to_ccxt_symbol,
)
from paper_trader.exchange.price_feed import (
    HISTORY_RANGES,
    PriceFeed,
    history_range,
)

__all__ = [
    "CoinMetadata",
    "SUPPORTED_COINS",
    "get_binance_symbol",
    "get_coin",
    "get_coin_id",
    "to_ccxt_symbol",
    "HISTORY_RANGES",
    "PriceFeed",
    "history_range",
]
