"""
Paper Trader - Main Entry Point

Crypto paper-trading simulator: virtual USD wallet, simulated slippage and
fees, weighted-average cost basis and realized PnL.

Usage:
    # Check configuration
    python main.py --check

    # Initialize database
    python main.py --init-db

    # Buy $1,000 of BTC at the live Binance price
    python main.py --user alice --buy bitcoin --usd 1000

    # Sell 0.01 ETH at a fixed reference price
    python main.py --user alice --sell ethereum --qty 0.01 --price 3200

    # Show portfolio and trade history
    python main.py --user alice --portfolio
    python main.py --user alice --history --limit 20

    # Quote the current price of an asset
    python main.py --quote solana

    # 24h market overview and 30-day price history
    python main.py --market
    python main.py --prices bitcoin --days 30
"""

import argparse
import asyncio
from decimal import Decimal, InvalidOperation
from typing import Dict, List, Optional

import structlog

from paper_trader.core.config import engine_config
from paper_trader.core.models import (MarketTicker, PriceBar, TradeRecord,
                                      TradeResult)
from paper_trader.core.wallet import WalletService
from paper_trader.exchange.price_feed import (DEFAULT_HISTORY_RANGE,
                                              HISTORY_RANGES, PriceFeed,
                                              history_range)
from paper_trader.storage.database import Database
from paper_trader.utils.formatting import (format_currency, format_number,
                                           format_pct)
from paper_trader.utils.logging_config import setup_logging

logger = structlog.get_logger(__name__)


class PaperTraderApp:
    """
    Wires storage, price feed and wallet service for one CLI invocation.
    """

    def __init__(self, use_price_feed: bool = True):
        self.use_price_feed = use_price_feed

        # Components
        self.database: Optional[Database] = None
        self.price_feed: Optional[PriceFeed] = None
        self.wallets: Optional[WalletService] = None

        self._initialized = False

    async def initialize(self):
        """Initialize all components based on configuration."""
        logger.info(
            "app.initializing",
            environment=engine_config.system.environment,
            database_url=engine_config.database.database_url,
        )

        self.database = Database()
        await self.database.initialize()

        if self.use_price_feed:
            self.price_feed = PriceFeed()
            logger.info("app.price_feed_initialized", exchange=engine_config.exchange.exchange_id)

        self.wallets = WalletService(self.database, self.price_feed)

        self._initialized = True
        logger.info("app.initialized")

    async def shutdown(self):
        """Release connections."""
        if self.price_feed:
            await self.price_feed.close()

        if self.database:
            await self.database.close()

        logger.info("app.shutdown_complete")


def check_configuration() -> Dict:
    """
    Check if configuration is valid.

    Returns:
        Dictionary with validation results
    """
    validation = engine_config.validate_configuration()
    trading = engine_config.trading

    return {
        "valid": validation["valid"],
        "issues": validation["issues"],
        "fee_rate": trading.transaction_fee_rate,
        "slippage_range": (trading.min_slippage, trading.max_slippage),
        "default_balance": trading.default_balance_usd,
        "database_url": engine_config.database.database_url,
        "exchange": engine_config.exchange.exchange_id,
    }


def print_trade_result(action: str, asset_id: str, result: TradeResult):
    """Print the outcome of a buy or sell."""
    if not result.success:
        print(f"\n✗ {action} {asset_id} rejected: {result.error}")
        return

    position = result.new_position
    print(f"\n✓ {action} {format_number(result.quantity, 8)} {position.symbol} "
          f"@ {format_currency(result.executed_price, 6)}")
    print(f"   Fee: {format_currency(result.fee_usd)}")
    if action == "BUY":
        print(f"   Total cost: {format_currency(result.total_cost_usd)}")
    else:
        print(f"   Net proceeds: {format_currency(result.total_cost_usd)}")
        print(f"   Realized PnL: {format_currency(result.realized_pnl)}")
    print(f"   New balance: {format_currency(result.new_balance)}")
    if position.is_open:
        print(f"   Position: {format_number(position.quantity, 8)} {position.symbol} "
              f"(avg {format_currency(position.avg_buy_price_usd, 6)})")
    else:
        print(f"   Position in {position.symbol} closed")


def print_portfolio(summary: Dict):
    """Print formatted portfolio output."""
    print("\n" + "=" * 60)
    print(f"           PORTFOLIO - {summary['user_id']}")
    print("=" * 60)

    print(f"\n💰 Cash: {format_currency(summary['balance_usd'])}")
    print(f"📊 Total Equity: {format_currency(summary['total_equity_usd'])}")
    print(f"📈 Unrealized PnL: {format_currency(summary['unrealized_pnl_usd'])}")
    print(f"💵 Realized PnL: {format_currency(summary['realized_pnl_usd'])}")
    print(f"🧾 Fees Paid: {format_currency(summary['total_fees_usd'])}")

    positions = summary["positions"]
    print(f"\n📦 Positions (Total: {len(positions)}):")
    if not positions:
        print("   No open positions")
    for pos in positions:
        line = (f"   {pos['symbol']}: {format_number(pos['quantity'], 8)} "
                f"@ avg {format_currency(pos['avg_buy_price_usd'], 6)}")
        if pos["current_price_usd"] is not None:
            cost = pos["quantity"] * pos["avg_buy_price_usd"]
            pnl = pos["unrealized_pnl_usd"]
            pct = (pnl / cost) * 100 if cost > 0 else Decimal("0")
            line += (f" | value {format_currency(pos['market_value_usd'])}"
                     f" | PnL {format_currency(pnl)} ({format_pct(pct)})")
        print(line)

    print(f"\n📝 Trades: {summary['trade_count']}")
    print("\n" + "=" * 60)


def print_history(trades: List[TradeRecord]):
    """Print trade history, newest first."""
    if not trades:
        print("\nNo trades yet")
        return

    print(f"\n💹 Trade History ({len(trades)}):")
    for trade in trades:
        line = (f"   {trade.timestamp:%Y-%m-%d %H:%M:%S} {trade.type.value:<4} "
                f"{format_number(trade.quantity, 8)} {trade.symbol} "
                f"@ {format_currency(trade.price_usd, 6)} = {format_currency(trade.usd_amount)}")
        if trade.realized_pnl_usd is not None:
            line += f" | PnL {format_currency(trade.realized_pnl_usd)}"
        print(line)


def print_market(tickers: List[MarketTicker]):
    """Print the 24h market overview."""
    print(f"\n🌐 Market ({len(tickers)} coins):")
    for ticker in tickers:
        change = ticker.change_percent_24h
        sign = "+" if change > 0 else ""
        print(f"   {ticker.rank:>2}. {ticker.symbol:<6} {ticker.name:<14} "
              f"{format_currency(ticker.price_usd, 8):>18}  {sign}{format_pct(change)}")


def print_price_history(asset_id: str, days: str, bars: List[PriceBar]):
    """Print closing prices, oldest first, with the change over the range."""
    if not bars:
        print(f"\nNo price history for {asset_id}")
        return

    span = "max" if days == "max" else f"{days}d"
    first, last = bars[0].close, bars[-1].close
    change = (last - first) / first * 100 if first > 0 else Decimal("0")
    print(f"\n📉 {asset_id} price history ({span}, {bars[0].timeframe} candles): "
          f"{format_currency(first, 8)} -> {format_currency(last, 8)} ({format_pct(change)})")
    for bar in bars:
        print(f"   {bar.timestamp:%Y-%m-%d %H:%M}  {format_currency(bar.close, 8)}")


def parse_decimal(value: str) -> Decimal:
    """argparse type for Decimal amounts."""
    try:
        return Decimal(value)
    except InvalidOperation:
        raise argparse.ArgumentTypeError(f"Invalid number: {value}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Paper Trader - crypto paper-trading simulator"
    )

    parser.add_argument("--user", default="demo", help="Wallet owner id (default: demo)")

    # Trades
    trade = parser.add_mutually_exclusive_group()
    trade.add_argument("--buy", metavar="ASSET", help="Buy an asset (e.g. bitcoin)")
    trade.add_argument("--sell", metavar="ASSET", help="Sell an asset")
    trade.add_argument("--quote", metavar="ASSET", help="Print the current price and exit")
    trade.add_argument("--prices", metavar="ASSET", help="Print price history and exit")
    trade.add_argument("--market", action="store_true", help="Print the 24h market overview and exit")

    amount = parser.add_mutually_exclusive_group()
    amount.add_argument("--usd", type=parse_decimal, help="Trade size in USD")
    amount.add_argument("--qty", type=parse_decimal, help="Trade size in asset units")

    parser.add_argument(
        "--price", type=parse_decimal,
        help="Reference price (default: latest exchange price)",
    )

    # Actions
    parser.add_argument("--portfolio", action="store_true", help="Show portfolio and exit")
    parser.add_argument("--history", action="store_true", help="Show trade history and exit")
    parser.add_argument("--limit", type=int, default=20, help="History length (default: 20)")
    parser.add_argument(
        "--days", choices=list(HISTORY_RANGES), default=DEFAULT_HISTORY_RANGE,
        help=f"Price history range in days (default: {DEFAULT_HISTORY_RANGE})",
    )
    parser.add_argument("--reset", action="store_true", help="Reset the wallet to its starting balance")
    parser.add_argument("--check", action="store_true", help="Check configuration and exit")
    parser.add_argument("--init-db", action="store_true", help="Initialize database and exit")

    return parser


async def main(argv: Optional[List[str]] = None):
    """Main entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    # Setup logging
    setup_logging()

    # Handle --check
    if args.check:
        config_check = check_configuration()
        print("\n" + "=" * 60)
        print("           CONFIGURATION CHECK")
        print("=" * 60)

        if config_check["valid"]:
            print("\n✓ Configuration is valid")
        else:
            print("\n✗ Configuration issues:")
            for issue in config_check["issues"]:
                print(f"   - {issue}")

        low, high = config_check["slippage_range"]
        print(f"\nFee rate: {format_pct(config_check['fee_rate'] * 100)}")
        print(f"Slippage: {format_pct(low * 100)} - {format_pct(high * 100)}")
        print(f"Starting balance: {format_currency(config_check['default_balance'])}")
        print(f"Database: {config_check['database_url']}")
        print(f"Price source: {config_check['exchange']}")
        print("\n" + "=" * 60)
        return

    # Handle --init-db
    if args.init_db:
        print("\n📦 Initializing database...")
        db = Database()
        await db.initialize()
        print("✓ Database initialized successfully")
        await db.close()
        return

    if (args.buy or args.sell) and args.usd is None and args.qty is None:
        parser.error("--buy/--sell require --usd or --qty")

    # Skip the exchange connection when every price is supplied
    needs_feed = bool(
        args.quote or args.prices or args.market or args.portfolio
        or ((args.buy or args.sell) and args.price is None)
    )
    app = PaperTraderApp(use_price_feed=needs_feed)

    try:
        await app.initialize()

        if args.quote:
            price = await app.price_feed.get_price(args.quote)
            print(f"\n{args.quote}: {format_currency(price, 8)}")

        elif args.market:
            print_market(await app.price_feed.get_market_overview())

        elif args.prices:
            timeframe, limit = history_range(args.days)
            bars = await app.price_feed.get_price_history(args.prices, timeframe, limit)
            print_price_history(args.prices, args.days, bars)

        elif args.reset:
            wallet = await app.wallets.reset_wallet(args.user)
            print(f"\n✓ Wallet reset. Balance: {format_currency(wallet.balance_usd)}")

        elif args.buy:
            result = await app.wallets.buy(
                args.user, args.buy, args.price, usd_amount=args.usd, quantity=args.qty
            )
            print_trade_result("BUY", args.buy, result)

        elif args.sell:
            result = await app.wallets.sell(
                args.user, args.sell, args.price, quantity=args.qty, usd_amount=args.usd
            )
            print_trade_result("SELL", args.sell, result)

        elif args.history:
            trades = await app.database.get_trades(args.user, limit=args.limit)
            print_history(trades)

        else:
            summary = await app.wallets.portfolio_summary(args.user)
            print_portfolio(summary)

    except KeyboardInterrupt:
        print("\n\nInterrupted by user...")
    except Exception as e:
        logger.error("main.error", error=str(e), exc_info=True)
        print(f"\n✗ Fatal error: {e}")
        raise
    finally:
        await app.shutdown()


if __name__ == "__main__":
    asyncio.run(main())
