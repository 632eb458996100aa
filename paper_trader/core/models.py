"""Data models for the Paper Trader simulator.

This module defines the value objects exchanged between the trade execution
engine and its callers:
- Position / TradeRequest / TradeResult: engine inputs and outputs
- TradeRecord: one entry of a wallet's trade history
- Wallet: a user's USD balance, open positions and trade history

All monetary values use Decimal for precision.
All timestamps are timezone-aware UTC datetime objects.
"""

from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field


def utc_now() -> datetime:
    """Current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def is_valid_price(price: Optional[Decimal]) -> bool:
    """True for a known, finite, positive price."""
    return price is not None and price.is_finite() and price > 0


# =============================================================================
# Enums
# =============================================================================

class TradeType(str, Enum):
    """Trade direction."""
    BUY = "BUY"
    SELL = "SELL"


class TradeErrorKind(str, Enum):
    """Reasons the engine rejects a trade."""
    INSUFFICIENT_BALANCE = "insufficient_balance"    # BUY cost incl. fee > balance
    INSUFFICIENT_QUANTITY = "insufficient_quantity"  # SELL qty > held qty
    INVALID_AMOUNT = "invalid_amount"                # amount <= 0 or not finite
    INVALID_PRICE = "invalid_price"                  # reference price <= 0 or not finite
    INVALID_BALANCE = "invalid_balance"              # wallet balance < 0 or not finite


# =============================================================================
# Position Models
# =============================================================================

class Position(BaseModel):
    """A holding of one asset by one wallet.

    The cost basis is a weighted average of all purchase prices; it is
    updated on BUY only and left untouched by partial SELLs.

    Attributes:
        asset_id: Stable asset identifier (e.g., "bitcoin")
        symbol: Display ticker (e.g., "BTC")
        name: Display name (e.g., "Bitcoin")
        quantity: Amount of the asset held
        avg_buy_price_usd: Weighted-average purchase price per unit
    """
    model_config = ConfigDict(json_encoders={Decimal: str})

    asset_id: str = Field(..., description="Asset identifier")
    symbol: str = Field(..., description="Asset ticker")
    name: str = Field(default="", description="Asset display name")
    quantity: Decimal = Field(default=Decimal("0"), ge=0, description="Quantity held")
    avg_buy_price_usd: Decimal = Field(
        default=Decimal("0"), ge=0, description="Average buy price (USD)"
    )

    @property
    def is_open(self) -> bool:
        """True if any quantity is held."""
        return self.quantity > 0

    @property
    def cost_basis_usd(self) -> Decimal:
        """Total USD paid for the held quantity."""
        return self.quantity * self.avg_buy_price_usd

    def market_value(self, current_price: Decimal) -> Decimal:
        """Value of the held quantity at the given price."""
        return self.quantity * current_price

    def calculate_unrealized_pnl(self, current_price: Optional[Decimal]) -> Decimal:
        """Calculate unrealized PnL at given price.

        Args:
            current_price: Current market price (None or <= 0 means unknown)

        Returns:
            Paper profit/loss on the held quantity
        """
        if not self.is_open or not is_valid_price(current_price):
            return Decimal("0")
        return (current_price - self.avg_buy_price_usd) * self.quantity

    @classmethod
    def empty(cls, asset_id: str, symbol: str, name: str = "") -> "Position":
        """Zero-quantity placeholder for an asset with no holding."""
        return cls(asset_id=asset_id, symbol=symbol, name=name)


# =============================================================================
# Trade Request / Result Models
# =============================================================================

class TradeRequest(BaseModel):
    """Instruction to the trade execution engine.

    `amount` is a USD amount to spend for BUY and an asset quantity to
    liquidate for SELL. Non-positive and non-finite amounts are accepted here
    and rejected by the engine, so the rejection surfaces as a TradeResult.
    """
    model_config = ConfigDict(json_encoders={Decimal: str})

    type: TradeType = Field(..., description="BUY or SELL")
    asset_id: str = Field(..., description="Asset identifier")
    symbol: str = Field(..., description="Asset ticker")
    name: str = Field(default="", description="Asset display name")
    amount: Decimal = Field(
        ..., allow_inf_nan=True, description="USD for BUY, quantity for SELL"
    )

    @property
    def is_buy(self) -> bool:
        return self.type == TradeType.BUY


class TradeResult(BaseModel):
    """Outcome of one trade execution.

    Attributes:
        success: Whether the trade was accepted
        error: Human-readable rejection reason (failed trades only)
        error_kind: Machine-readable rejection reason (failed trades only)
        executed_price: Slippage-adjusted unit price
        slippage: Slippage fraction applied to the reference price
        quantity: Asset quantity bought or sold
        fee_usd: Transaction fee charged
        total_cost_usd: BUY: gross spend incl. fee; SELL: net proceeds after fee
        new_balance: Wallet USD balance after the trade
        new_position: Position after the trade
        realized_pnl: Profit/loss realized (successful SELLs only)
    """
    model_config = ConfigDict(json_encoders={Decimal: str})

    success: bool = Field(..., description="Trade accepted")
    error: Optional[str] = Field(default=None, description="Rejection reason")
    error_kind: Optional[TradeErrorKind] = Field(default=None, description="Rejection kind")

    executed_price: Decimal = Field(default=Decimal("0"), description="Executed unit price")
    slippage: Decimal = Field(default=Decimal("0"), description="Applied slippage fraction")
    quantity: Decimal = Field(default=Decimal("0"), ge=0, description="Quantity transacted")
    fee_usd: Decimal = Field(default=Decimal("0"), description="Fee charged")
    total_cost_usd: Decimal = Field(default=Decimal("0"), description="Spend or net proceeds")

    new_balance: Decimal = Field(
        ..., allow_inf_nan=True, description="Balance after trade"
    )
    new_position: Position = Field(..., description="Position after trade")
    realized_pnl: Optional[Decimal] = Field(default=None, description="Realized PnL (SELL)")

    @property
    def is_rejected(self) -> bool:
        """True if the trade was rejected."""
        return not self.success

    @classmethod
    def rejected(
        cls,
        error_kind: TradeErrorKind,
        error: str,
        balance: Decimal,
        position: Position,
        **kwargs,
    ) -> "TradeResult":
        """Create a rejected result that leaves balance and position unchanged."""
        return cls(
            success=False,
            error=error,
            error_kind=error_kind,
            new_balance=balance,
            new_position=position,
            **kwargs,
        )


# =============================================================================
# Trade History Models
# =============================================================================

class TradeRecord(BaseModel):
    """Trade-history entry stored with a wallet.

    Attributes:
        id: Trade ID
        type: BUY or SELL
        asset_id: Asset identifier
        symbol: Asset ticker
        name: Asset display name
        usd_amount: BUY: USD spent excluding fee; SELL: net proceeds
        quantity: Quantity transacted
        price_usd: Executed unit price
        fee_usd: Fee charged
        realized_pnl_usd: Realized PnL (SELL only)
        timestamp: Execution time (UTC)
    """
    model_config = ConfigDict(json_encoders={Decimal: str})

    id: str = Field(default_factory=lambda: str(uuid4()), description="Trade ID")
    type: TradeType = Field(..., description="BUY or SELL")
    asset_id: str = Field(..., description="Asset identifier")
    symbol: str = Field(..., description="Asset ticker")
    name: str = Field(default="", description="Asset display name")
    usd_amount: Decimal = Field(..., description="USD amount")
    quantity: Decimal = Field(..., ge=0, description="Quantity")
    price_usd: Decimal = Field(..., ge=0, description="Executed price")
    fee_usd: Decimal = Field(default=Decimal("0"), ge=0, description="Fee")
    realized_pnl_usd: Optional[Decimal] = Field(default=None, description="Realized PnL")
    timestamp: datetime = Field(default_factory=utc_now, description="Execution time")

    @classmethod
    def from_result(
        cls,
        request: TradeRequest,
        result: TradeResult,
        timestamp: Optional[datetime] = None,
    ) -> "TradeRecord":
        """Build a history entry from a successful trade.

        Raises:
            ValueError: If the trade was rejected
        """
        if not result.success:
            raise ValueError("Cannot record a rejected trade")

        if request.is_buy:
            usd_amount = result.total_cost_usd - result.fee_usd
        else:
            usd_amount = result.total_cost_usd

        return cls(
            type=request.type,
            asset_id=request.asset_id,
            symbol=request.symbol,
            name=request.name,
            usd_amount=usd_amount,
            quantity=result.quantity,
            price_usd=result.executed_price,
            fee_usd=result.fee_usd,
            realized_pnl_usd=result.realized_pnl,
            timestamp=timestamp or utc_now(),
        )


# =============================================================================
# Wallet Models
# =============================================================================

class Wallet(BaseModel):
    """A user's paper-trading wallet.

    `positions` only ever holds open positions; an asset with no holding is
    absent from the map rather than stored with zero quantity.

    Attributes:
        user_id: Owner identifier
        balance_usd: Available USD
        positions: Open positions by asset id
        trades: Trade history, newest first
        updated_at: Last modification time
    """
    model_config = ConfigDict(json_encoders={Decimal: str})

    user_id: str = Field(..., description="Owner identifier")
    balance_usd: Decimal = Field(default=Decimal("10000"), ge=0, description="USD balance")
    positions: Dict[str, Position] = Field(default_factory=dict, description="Open positions")
    trades: List[TradeRecord] = Field(default_factory=list, description="Trade history")
    updated_at: datetime = Field(default_factory=utc_now, description="Last update")

    def get_position(self, asset_id: str) -> Optional[Position]:
        """Get the open position for an asset, if any."""
        return self.positions.get(asset_id)

    def get_unrealized_pnl(self, asset_id: str, current_price: Optional[Decimal]) -> Decimal:
        """Unrealized PnL for one asset (0 if not held)."""
        position = self.positions.get(asset_id)
        if position is None:
            return Decimal("0")
        return position.calculate_unrealized_pnl(current_price)

    def total_unrealized_pnl(self, current_prices: Dict[str, Decimal]) -> Decimal:
        """Sum of unrealized PnL across positions with a known price."""
        return sum(
            (
                pos.calculate_unrealized_pnl(current_prices.get(asset_id))
                for asset_id, pos in self.positions.items()
            ),
            Decimal("0"),
        )

    @property
    def total_realized_pnl(self) -> Decimal:
        """Sum of realized PnL over the trade history."""
        return sum(
            (t.realized_pnl_usd for t in self.trades if t.realized_pnl_usd is not None),
            Decimal("0"),
        )

    @property
    def total_fees_usd(self) -> Decimal:
        """Sum of fees paid over the trade history."""
        return sum((t.fee_usd for t in self.trades), Decimal("0"))

    def calculate_total_equity(self, current_prices: Dict[str, Decimal]) -> Decimal:
        """Calculate total equity: cash plus position values.

        Positions without a price in `current_prices` are valued at cost.

        Args:
            current_prices: Dictionary of asset id -> current price

        Returns:
            Total wallet equity in USD
        """
        equity = self.balance_usd
        for asset_id, position in self.positions.items():
            price = current_prices.get(asset_id)
            if is_valid_price(price):
                equity += position.market_value(price)
            else:
                equity += position.cost_basis_usd
        return equity

    def to_summary(self) -> Dict[str, Any]:
        """Plain-dict snapshot used for logging."""
        return {
            "user_id": self.user_id,
            "balance_usd": str(self.balance_usd),
            "positions": len(self.positions),
            "trades": len(self.trades),
        }


# =============================================================================
# Market Data Models
# =============================================================================

class MarketTicker(BaseModel):
    """24h ticker snapshot for one supported coin.

    Attributes:
        rank: Position in the coin catalogue (1-based)
        asset_id: Asset identifier
        symbol: Asset ticker
        name: Asset display name
        price_usd: Last traded price (None if the exchange has no quote)
        change_percent_24h: Price change over 24h in percent
    """
    model_config = ConfigDict(json_encoders={Decimal: str})

    rank: int = Field(..., ge=1, description="Catalogue rank")
    asset_id: str = Field(..., description="Asset identifier")
    symbol: str = Field(..., description="Asset ticker")
    name: str = Field(default="", description="Asset display name")
    price_usd: Optional[Decimal] = Field(default=None, description="Last price (USD)")
    change_percent_24h: Decimal = Field(default=Decimal("0"), description="24h change (%)")


class PriceBar(BaseModel):
    """One OHLCV candle of an asset's price history."""
    model_config = ConfigDict(json_encoders={Decimal: str})

    asset_id: str = Field(..., description="Asset identifier")
    timeframe: str = Field(..., description="Candle timeframe (e.g., \"1h\")")
    timestamp: datetime = Field(..., description="Candle open time (UTC)")
    open: Decimal = Field(..., description="Opening price")
    high: Decimal = Field(..., description="Highest price")
    low: Decimal = Field(..., description="Lowest price")
    close: Decimal = Field(..., description="Closing price")
    volume: Decimal = Field(default=Decimal("0"), description="Traded volume")
