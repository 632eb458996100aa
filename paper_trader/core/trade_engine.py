"""Trade execution engine for the Paper Trader simulator.

Executes one virtual trade against a simulated market:
- Adverse slippage drawn uniformly from [MIN_SLIPPAGE, MAX_SLIPPAGE]
- Flat percentage fee on the gross USD value
- Weighted-average cost basis on BUY, realized PnL on SELL

The engine is a pure computation over its arguments. It reads no state,
writes no state, and never raises for a trade that cannot be filled: every
rejection comes back as a TradeResult with success=False. Persisting the
returned balance/position is the caller's job.
"""

import random
from decimal import Decimal
from typing import Optional, Union

import structlog

from paper_trader.core.models import (Position, TradeErrorKind, TradeRequest,
                                      TradeResult, TradeType)

logger = structlog.get_logger(__name__)

TRANSACTION_FEE_RATE = Decimal("0.001")  # 0.1%
MIN_SLIPPAGE = Decimal("0.0001")  # 0.01%
MAX_SLIPPAGE = Decimal("0.0005")  # 0.05%

Number = Union[Decimal, int, float, str]


def _to_decimal(value: Number) -> Decimal:
    """Convert numeric input to Decimal without float artefacts."""
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        return Decimal(str(value))
    return Decimal(value)


def draw_slippage(
    rng: Optional[random.Random] = None,
    min_slippage: Decimal = MIN_SLIPPAGE,
    max_slippage: Decimal = MAX_SLIPPAGE,
) -> Decimal:
    """Draw a slippage fraction uniformly from [min_slippage, max_slippage].

    Args:
        rng: Random source (seed it for reproducible fills); defaults to the
            module-level generator
        min_slippage: Lower bound (inclusive)
        max_slippage: Upper bound (inclusive)

    Returns:
        Slippage fraction as Decimal
    """
    source = rng if rng is not None else random
    raw = Decimal(str(source.uniform(float(min_slippage), float(max_slippage))))
    # float rounding can land a hair outside the bounds
    return min(max(raw, min_slippage), max_slippage)


def apply_slippage(target_price: Decimal, slippage: Decimal, trade_type: TradeType) -> Decimal:
    """Move the reference price against the trader.

    BUY fills above the reference price, SELL fills below it.
    """
    if trade_type == TradeType.BUY:
        return target_price * (Decimal("1") + slippage)
    return target_price * (Decimal("1") - slippage)


def execute_trade(
    current_balance: Number,
    current_position: Optional[Position],
    target_price: Number,
    request: TradeRequest,
    *,
    slippage: Optional[Number] = None,
    rng: Optional[random.Random] = None,
    fee_rate: Decimal = TRANSACTION_FEE_RATE,
    min_slippage: Decimal = MIN_SLIPPAGE,
    max_slippage: Decimal = MAX_SLIPPAGE,
) -> TradeResult:
    """Execute a trade based on market conditions and wallet state.

    Args:
        current_balance: Wallet USD balance before the trade
        current_position: Position in the requested asset (None if not held)
        target_price: Reference market price per unit
        request: BUY (amount in USD) or SELL (amount in asset units)
        slippage: Fixed slippage fraction to apply instead of a random draw
        rng: Random source for the slippage draw
        fee_rate: Fee as a fraction of gross trade value
        min_slippage: Lower slippage bound
        max_slippage: Upper slippage bound

    Returns:
        TradeResult describing the fill, or the rejection reason

    Raises:
        ValueError: If an explicit slippage lies outside [min, max]
    """
    balance = _to_decimal(current_balance)
    price = _to_decimal(target_price)
    amount = _to_decimal(request.amount)
    unchanged_position = current_position or Position.empty(
        request.asset_id, request.symbol, request.name
    )

    if slippage is not None:
        slippage = _to_decimal(slippage)
        if not min_slippage <= slippage <= max_slippage:
            raise ValueError(
                f"Slippage {slippage} outside [{min_slippage}, {max_slippage}]"
            )

    if not price.is_finite() or price <= 0:
        result = TradeResult.rejected(
            TradeErrorKind.INVALID_PRICE,
            f"Invalid market price: {price}",
            balance,
            unchanged_position,
        )
    elif not amount.is_finite() or amount <= 0:
        result = TradeResult.rejected(
            TradeErrorKind.INVALID_AMOUNT,
            f"Trade amount must be positive. Received: {amount}",
            balance,
            unchanged_position,
        )
    elif not balance.is_finite() or balance < 0:
        result = TradeResult.rejected(
            TradeErrorKind.INVALID_BALANCE,
            f"Invalid wallet balance: {balance}",
            balance,
            unchanged_position,
        )
    else:
        if slippage is None:
            slippage = draw_slippage(rng, min_slippage, max_slippage)
        executed_price = apply_slippage(price, slippage, request.type)
        execute = _execute_buy if request.type == TradeType.BUY else _execute_sell
        result = execute(
            balance, current_position, executed_price, slippage, amount, fee_rate, request
        )

    if result.success:
        logger.debug(
            "trade_engine.executed",
            type=request.type.value,
            asset_id=request.asset_id,
            target_price=str(price),
            executed_price=str(result.executed_price),
            quantity=str(result.quantity),
            fee_usd=str(result.fee_usd),
            new_balance=str(result.new_balance),
        )
    else:
        logger.debug(
            "trade_engine.rejected",
            type=request.type.value,
            asset_id=request.asset_id,
            error_kind=result.error_kind.value,
        )
    return result


def _execute_buy(
    balance: Decimal,
    position: Optional[Position],
    executed_price: Decimal,
    slippage: Decimal,
    usd_to_spend: Decimal,
    fee_rate: Decimal,
    request: TradeRequest,
) -> TradeResult:
    fee_usd = usd_to_spend * fee_rate
    total_cost_usd = usd_to_spend + fee_usd

    if total_cost_usd > balance:
        return TradeResult.rejected(
            TradeErrorKind.INSUFFICIENT_BALANCE,
            f"Insufficient balance. Required: ${total_cost_usd:.2f} "
            f"(including ${fee_usd:.2f} fee)",
            balance,
            position or Position.empty(request.asset_id, request.symbol, request.name),
            executed_price=executed_price,
            slippage=slippage,
            fee_usd=fee_usd,
            total_cost_usd=total_cost_usd,
        )

    quantity_bought = usd_to_spend / executed_price
    old_quantity = position.quantity if position else Decimal("0")
    old_avg_price = position.avg_buy_price_usd if position else Decimal("0")

    # New avg = (old qty * old avg + new qty * executed) / (old qty + new qty)
    new_quantity = old_quantity + quantity_bought
    new_avg_price = (
        (old_quantity * old_avg_price) + (quantity_bought * executed_price)
    ) / new_quantity

    return TradeResult(
        success=True,
        executed_price=executed_price,
        slippage=slippage,
        quantity=quantity_bought,
        fee_usd=fee_usd,
        total_cost_usd=total_cost_usd,
        new_balance=balance - total_cost_usd,
        new_position=Position(
            asset_id=request.asset_id,
            symbol=request.symbol,
            name=request.name,
            quantity=new_quantity,
            avg_buy_price_usd=new_avg_price,
        ),
    )


def _execute_sell(
    balance: Decimal,
    position: Optional[Position],
    executed_price: Decimal,
    slippage: Decimal,
    quantity_to_sell: Decimal,
    fee_rate: Decimal,
    request: TradeRequest,
) -> TradeResult:
    current_quantity = position.quantity if position else Decimal("0")

    if quantity_to_sell > current_quantity:
        return TradeResult.rejected(
            TradeErrorKind.INSUFFICIENT_QUANTITY,
            f"Insufficient {request.symbol.upper()} quantity. "
            f"Available: {current_quantity:.8f}",
            balance,
            position or Position.empty(request.asset_id, request.symbol, request.name),
            executed_price=executed_price,
            slippage=slippage,
        )

    avg_buy_price = position.avg_buy_price_usd
    gross_proceeds = quantity_to_sell * executed_price
    fee_usd = gross_proceeds * fee_rate
    net_proceeds = gross_proceeds - fee_usd

    cost_of_quantity_sold = quantity_to_sell * avg_buy_price
    realized_pnl = gross_proceeds - cost_of_quantity_sold - fee_usd

    new_quantity = current_quantity - quantity_to_sell

    return TradeResult(
        success=True,
        executed_price=executed_price,
        slippage=slippage,
        quantity=quantity_to_sell,
        fee_usd=fee_usd,
        total_cost_usd=net_proceeds,
        new_balance=balance + net_proceeds,
        realized_pnl=realized_pnl,
        new_position=Position(
            asset_id=request.asset_id,
            symbol=request.symbol,
            name=request.name,
            quantity=new_quantity,
            # Cost basis carries over to the remaining quantity
            avg_buy_price_usd=avg_buy_price if new_quantity > 0 else Decimal("0"),
        ),
    )
