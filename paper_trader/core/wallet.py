"""Wallet service: applies engine results to persisted paper-trading wallets.

The trade engine only computes outcomes. This service is its caller: it
turns buy/sell intents into TradeRequests, runs the engine against a wallet
snapshot, and stores the new balance, position and trade record. Updates to
one wallet are serialised with a per-user asyncio.Lock so concurrent trades
apply one after the other.
"""

import asyncio
import random
from collections import defaultdict
from contextlib import asynccontextmanager
from decimal import Decimal
from typing import Any, AsyncIterator, Dict, List, Optional

import structlog

from paper_trader.core.config import trading_engine_config
from paper_trader.core.models import (Position, TradeRecord, TradeRequest,
                                      TradeResult, TradeType, Wallet,
                                      is_valid_price, utc_now)
from paper_trader.core.trade_engine import execute_trade
from paper_trader.exchange.coins import get_coin

logger = structlog.get_logger(__name__)


class WalletService:
    """Buy/sell against stored wallets.

    Storage must provide `get_or_create_wallet`, `save_wallet` and
    `delete_wallet` (see paper_trader.storage.database.Database).
    """

    def __init__(
        self,
        storage,
        price_feed=None,
        *,
        rng: Optional[random.Random] = None,
        default_balance: Optional[Decimal] = None,
        fee_rate: Optional[Decimal] = None,
    ):
        self.storage = storage
        self.price_feed = price_feed
        self.rng = rng
        self.default_balance = (
            default_balance if default_balance is not None
            else trading_engine_config.default_balance_usd
        )
        self.fee_rate = (
            fee_rate if fee_rate is not None
            else trading_engine_config.transaction_fee_rate
        )
        # Locks live only while a trade on the wallet is running or waiting
        self._locks: Dict[str, asyncio.Lock] = {}
        self._lock_users: Dict[str, int] = defaultdict(int)

    @asynccontextmanager
    async def _wallet_lock(self, user_id: str) -> AsyncIterator[None]:
        """Serialise updates to one wallet; the lock is dropped once idle."""
        lock = self._locks.setdefault(user_id, asyncio.Lock())
        self._lock_users[user_id] += 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[user_id] -= 1
            if not self._lock_users[user_id]:
                del self._lock_users[user_id]
                del self._locks[user_id]

    async def get_wallet(self, user_id: str) -> Wallet:
        """Load a wallet, creating it with the default balance on first use."""
        return await self.storage.get_or_create_wallet(user_id, self.default_balance)

    async def buy(
        self,
        user_id: str,
        asset_id: str,
        price_usd: Optional[Decimal] = None,
        *,
        usd_amount: Optional[Decimal] = None,
        quantity: Optional[Decimal] = None,
        symbol: Optional[str] = None,
        name: Optional[str] = None,
    ) -> TradeResult:
        """Buy an asset with USD.

        Args:
            user_id: Wallet owner
            asset_id: Asset to buy
            price_usd: Reference price (fetched from the price feed if None)
            usd_amount: USD to spend (fee charged on top)
            quantity: Quantity to buy, converted to USD at `price_usd`
            symbol: Ticker override (defaults from the coin catalogue)
            name: Display name override

        Returns:
            TradeResult from the engine

        Raises:
            ValueError: If not exactly one of usd_amount/quantity is given
        """
        _require_one(usd_amount=usd_amount, quantity=quantity)
        price = await self._resolve_price(asset_id, price_usd)

        if not is_valid_price(price):
            # Let the engine reject the bad price
            usd_to_spend = Decimal("0")
        elif usd_amount is not None:
            usd_to_spend = Decimal(str(usd_amount))
        else:
            usd_to_spend = Decimal(str(quantity)) * price

        return await self._trade(user_id, TradeType.BUY, asset_id, price, usd_to_spend, symbol, name)

    async def sell(
        self,
        user_id: str,
        asset_id: str,
        price_usd: Optional[Decimal] = None,
        *,
        quantity: Optional[Decimal] = None,
        usd_amount: Optional[Decimal] = None,
        symbol: Optional[str] = None,
        name: Optional[str] = None,
    ) -> TradeResult:
        """Sell a held asset.

        Args:
            user_id: Wallet owner
            asset_id: Asset to sell
            price_usd: Reference price (fetched from the price feed if None)
            quantity: Quantity to sell
            usd_amount: USD value to sell, converted to quantity at `price_usd`
            symbol: Ticker override
            name: Display name override

        Returns:
            TradeResult from the engine

        Raises:
            ValueError: If not exactly one of quantity/usd_amount is given
        """
        _require_one(quantity=quantity, usd_amount=usd_amount)
        price = await self._resolve_price(asset_id, price_usd)

        if not is_valid_price(price):
            # Let the engine reject the bad price
            quantity_to_sell = Decimal("0")
        elif quantity is not None:
            quantity_to_sell = Decimal(str(quantity))
        else:
            quantity_to_sell = Decimal(str(usd_amount)) / price

        return await self._trade(user_id, TradeType.SELL, asset_id, price, quantity_to_sell, symbol, name)

    async def sell_all(self, user_id: str, asset_id: str, price_usd: Optional[Decimal] = None) -> TradeResult:
        """Liquidate the whole position in an asset."""
        wallet = await self.get_wallet(user_id)
        position = wallet.get_position(asset_id)
        held = position.quantity if position else Decimal("0")
        return await self.sell(user_id, asset_id, price_usd, quantity=held)

    async def _trade(
        self,
        user_id: str,
        trade_type: TradeType,
        asset_id: str,
        price: Decimal,
        amount: Decimal,
        symbol: Optional[str],
        name: Optional[str],
    ) -> TradeResult:
        async with self._wallet_lock(user_id):
            wallet = await self.get_wallet(user_id)
            current_position = wallet.get_position(asset_id)

            request = TradeRequest(
                type=trade_type,
                asset_id=asset_id,
                amount=amount,
                **self._asset_labels(asset_id, current_position, symbol, name),
            )
            result = execute_trade(
                wallet.balance_usd,
                current_position,
                price,
                request,
                rng=self.rng,
                fee_rate=self.fee_rate,
                min_slippage=trading_engine_config.min_slippage,
                max_slippage=trading_engine_config.max_slippage,
            )

            if not result.success:
                logger.warning(
                    "wallet_service.trade_rejected",
                    user_id=user_id,
                    type=trade_type.value,
                    asset_id=asset_id,
                    error_kind=result.error_kind.value,
                    error=result.error,
                )
                return result

            record = TradeRecord.from_result(request, result)
            wallet = self._apply(wallet, result, record)
            await self.storage.save_wallet(wallet)

            logger.info(
                "wallet_service.trade_applied",
                user_id=user_id,
                trade_id=record.id,
                type=trade_type.value,
                asset_id=asset_id,
                quantity=str(result.quantity),
                executed_price=str(result.executed_price),
                fee_usd=str(result.fee_usd),
                realized_pnl=str(result.realized_pnl) if result.realized_pnl is not None else None,
                new_balance=str(result.new_balance),
            )
            return result

    @staticmethod
    def _apply(wallet: Wallet, result: TradeResult, record: TradeRecord) -> Wallet:
        """New wallet snapshot with the trade applied."""
        positions = dict(wallet.positions)
        new_position = result.new_position
        if new_position.is_open:
            positions[new_position.asset_id] = new_position
        else:
            positions.pop(new_position.asset_id, None)

        return wallet.model_copy(update={
            "balance_usd": result.new_balance,
            "positions": positions,
            "trades": [record, *wallet.trades],
            "updated_at": utc_now(),
        })

    @staticmethod
    def _asset_labels(
        asset_id: str,
        position: Optional[Position],
        symbol: Optional[str],
        name: Optional[str],
    ) -> Dict[str, str]:
        coin = get_coin(asset_id)
        if symbol is None:
            symbol = position.symbol if position else (coin.symbol if coin else asset_id.upper())
        if name is None:
            name = position.name if position else (coin.name if coin else asset_id)
        return {"symbol": symbol, "name": name}

    async def _resolve_price(self, asset_id: str, price_usd: Optional[Decimal]) -> Decimal:
        if price_usd is not None:
            return Decimal(str(price_usd))
        if self.price_feed is None:
            raise ValueError(f"No price given for {asset_id} and no price feed configured")
        return await self.price_feed.get_price(asset_id)

    # Reporting
    async def get_unrealized_pnl(self, user_id: str, asset_id: str, current_price: Decimal) -> Decimal:
        """Unrealized PnL on one asset at the given price."""
        wallet = await self.get_wallet(user_id)
        return wallet.get_unrealized_pnl(asset_id, Decimal(str(current_price)))

    async def portfolio_summary(
        self,
        user_id: str,
        current_prices: Optional[Dict[str, Decimal]] = None,
    ) -> Dict[str, Any]:
        """Balance, positions with market value, equity and PnL.

        Prices default to the price feed when one is configured.
        """
        wallet = await self.get_wallet(user_id)
        if current_prices is None:
            current_prices = (
                await self.price_feed.get_prices(wallet.positions.keys())
                if self.price_feed and wallet.positions else {}
            )

        positions: List[Dict[str, Any]] = []
        for asset_id, position in sorted(wallet.positions.items()):
            price = current_prices.get(asset_id)
            positions.append({
                "asset_id": asset_id,
                "symbol": position.symbol,
                "name": position.name,
                "quantity": position.quantity,
                "avg_buy_price_usd": position.avg_buy_price_usd,
                "current_price_usd": price,
                "market_value_usd": position.market_value(price) if price else None,
                "unrealized_pnl_usd": position.calculate_unrealized_pnl(price),
            })

        return {
            "user_id": user_id,
            "balance_usd": wallet.balance_usd,
            "positions": positions,
            "total_equity_usd": wallet.calculate_total_equity(current_prices),
            "unrealized_pnl_usd": wallet.total_unrealized_pnl(current_prices),
            "realized_pnl_usd": wallet.total_realized_pnl,
            "total_fees_usd": wallet.total_fees_usd,
            "trade_count": len(wallet.trades),
        }

    async def reset_wallet(self, user_id: str) -> Wallet:
        """Discard positions and history and restore the default balance."""
        async with self._wallet_lock(user_id):
            await self.storage.delete_wallet(user_id)
            wallet = await self.get_wallet(user_id)
        logger.info("wallet_service.wallet_reset", user_id=user_id, balance_usd=str(wallet.balance_usd))
        return wallet


def _require_one(**amounts: Optional[Decimal]) -> None:
    given = [key for key, value in amounts.items() if value is not None]
    if len(given) != 1:
        raise ValueError(f"Exactly one of {', '.join(amounts)} is required")
