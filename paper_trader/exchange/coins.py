"""Supported coins and their Binance USDT trading pairs."""
from dataclasses import dataclass
from typing import Dict, List, Optional


@dataclass(frozen=True)
class CoinMetadata:
    """Display metadata and market symbol for one asset."""

    id: str
    symbol: str
    name: str
    binance_symbol: str

    @property
    def ccxt_symbol(self) -> str:
        """Unified ccxt market symbol, e.g. "BTC/USDT"."""
        base = self.binance_symbol[: -len("usdt")].upper()
        return f"{base}/USDT"


SUPPORTED_COINS: List[CoinMetadata] = [
    CoinMetadata("bitcoin", "BTC", "Bitcoin", "btcusdt"),
    CoinMetadata("ethereum", "ETH", "Ethereum", "ethusdt"),
    CoinMetadata("solana", "SOL", "Solana", "solusdt"),
    CoinMetadata("ripple", "XRP", "Ripple", "xrpusdt"),
    CoinMetadata("dogecoin", "DOGE", "Dogecoin", "dogeusdt"),
    CoinMetadata("cardano", "ADA", "Cardano", "adausdt"),
    CoinMetadata("polkadot", "DOT", "Polkadot", "dotusdt"),
    CoinMetadata("litecoin", "LTC", "Litecoin", "ltcusdt"),
    CoinMetadata("chainlink", "LINK", "Chainlink", "linkusdt"),
    CoinMetadata("shiba-inu", "SHIB", "Shiba Inu", "shibusdt"),
    CoinMetadata("avalanche", "AVAX", "Avalanche", "avaxusdt"),
    CoinMetadata("stellar", "XLM", "Stellar", "xlmusdt"),
    CoinMetadata("tron", "TRX", "TRON", "trxusdt"),
    CoinMetadata("monero", "XMR", "Monero", "xmrusdt"),
    CoinMetadata("cosmos", "ATOM", "Cosmos", "atomusdt"),
    CoinMetadata("uniswap", "UNI", "Uniswap", "uniusdt"),
    CoinMetadata("aptos", "APT", "Aptos", "aptusdt"),
    CoinMetadata("near", "NEAR", "NEAR Protocol", "nearusdt"),
    CoinMetadata("vechain", "VET", "VeChain", "vetusdt"),
    CoinMetadata("filecoin", "FIL", "Filecoin", "filusdt"),
    CoinMetadata("optimism", "OP", "Optimism", "opusdt"),
    CoinMetadata("arbitrum", "ARB", "Arbitrum", "arbusdt"),
    CoinMetadata("celestia", "TIA", "Celestia", "tiausdt"),
    CoinMetadata("sei", "SEI", "Sei", "seiusdt"),
    CoinMetadata("injective", "INJ", "Injective", "injusdt"),
    CoinMetadata("fantom", "FTM", "Fantom", "ftmusdt"),
    CoinMetadata("sui", "SUI", "Sui", "suiusdt"),
    CoinMetadata("polygon", "MATIC", "Polygon", "maticusdt"),
    CoinMetadata("pepe", "PEPE", "Pepe", "pepeusdt"),
    CoinMetadata("worldcoin", "WLD", "Worldcoin", "wldusdt"),
]

_COINS_BY_ID: Dict[str, CoinMetadata] = {coin.id: coin for coin in SUPPORTED_COINS}
_COIN_ID_BY_BINANCE: Dict[str, str] = {coin.binance_symbol: coin.id for coin in SUPPORTED_COINS}


def get_coin(asset_id: str) -> Optional[CoinMetadata]:
    """Look up a supported coin by asset id."""
    return _COINS_BY_ID.get(asset_id)


def get_binance_symbol(asset_id: str) -> Optional[str]:
    """Binance pair for an asset id, e.g. "bitcoin" -> "btcusdt"."""
    coin = _COINS_BY_ID.get(asset_id)
    return coin.binance_symbol if coin else None


def get_coin_id(binance_symbol: str) -> Optional[str]:
    """Asset id for a Binance pair (case-insensitive)."""
    return _COIN_ID_BY_BINANCE.get(binance_symbol.lower())


def to_ccxt_symbol(asset_id: str) -> str:
    """Unified ccxt symbol for an asset id.

    Raises:
        ValueError: If the asset is not supported
    """
    coin = _COINS_BY_ID.get(asset_id)
    if coin is None:
        raise ValueError(f"Unsupported asset: {asset_id}")
    return coin.ccxt_symbol
