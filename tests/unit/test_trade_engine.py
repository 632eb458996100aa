"""Unit tests for the trade execution engine."""
import random
from decimal import Decimal

import pytest

from paper_trader.core.models import (
    Position, TradeErrorKind, TradeRequest, TradeType
)
from paper_trader.core.trade_engine import (
    MAX_SLIPPAGE,
    MIN_SLIPPAGE,
    TRANSACTION_FEE_RATE,
    apply_slippage,
    draw_slippage,
    execute_trade,
)


def make_request(trade_type, amount, symbol="BTC"):
    return TradeRequest(
        type=trade_type,
        asset_id="bitcoin",
        symbol=symbol,
        name="Bitcoin",
        amount=Decimal(str(amount)),
    )


# =============================================================================
# Constants and Slippage Helpers
# =============================================================================

class TestConstants:
    """Test engine constants."""

    def test_fee_and_slippage_constants(self):
        assert TRANSACTION_FEE_RATE == Decimal("0.001")
        assert MIN_SLIPPAGE == Decimal("0.0001")
        assert MAX_SLIPPAGE == Decimal("0.0005")


class TestSlippage:
    """Test slippage drawing and application."""

    def test_draw_slippage_within_bounds(self, seeded_rng):
        """Every draw lies in [MIN_SLIPPAGE, MAX_SLIPPAGE]."""
        for _ in range(500):
            slippage = draw_slippage(seeded_rng)
            assert MIN_SLIPPAGE <= slippage <= MAX_SLIPPAGE

    def test_draw_slippage_is_reproducible(self):
        """Same seed, same sequence of draws."""
        first = [draw_slippage(random.Random(7)) for _ in range(3)]
        second = [draw_slippage(random.Random(7)) for _ in range(3)]
        assert first == second

    def test_draw_slippage_custom_bounds(self, seeded_rng):
        slippage = draw_slippage(seeded_rng, Decimal("0.002"), Decimal("0.002"))
        assert slippage == Decimal("0.002")

    def test_apply_slippage_buy_fills_higher(self):
        price = apply_slippage(Decimal("50000"), Decimal("0.0003"), TradeType.BUY)
        assert price == Decimal("50015")

    def test_apply_slippage_sell_fills_lower(self):
        price = apply_slippage(Decimal("50000"), Decimal("0.0002"), TradeType.SELL)
        assert price == Decimal("49990")

    def test_explicit_slippage_out_of_bounds_raises(self, buy_request):
        with pytest.raises(ValueError, match="outside"):
            execute_trade(
                Decimal("10000"), None, Decimal("50000"), buy_request,
                slippage=Decimal("0.01"),
            )


# =============================================================================
# BUY Tests
# =============================================================================

class TestBuy:
    """Test BUY execution."""

    def test_buy_with_fixed_slippage(self, buy_request):
        """$1,000 of BTC at $50,000 with 0.03% slippage."""
        result = execute_trade(
            Decimal("10000"), None, Decimal("50000"), buy_request,
            slippage=Decimal("0.0003"),
        )

        assert result.success is True
        assert result.error is None
        assert result.error_kind is None
        assert result.slippage == Decimal("0.0003")
        assert result.executed_price == Decimal("50015")
        assert result.fee_usd == Decimal("1")
        assert result.total_cost_usd == Decimal("1001")
        assert result.new_balance == Decimal("8999")
        assert result.quantity == Decimal("1000") / Decimal("50015")
        assert result.realized_pnl is None

        position = result.new_position
        assert position.asset_id == "bitcoin"
        assert position.symbol == "BTC"
        assert position.name == "Bitcoin"
        assert position.quantity == result.quantity
        assert position.avg_buy_price_usd == pytest.approx(Decimal("50015"))

    def test_buy_balance_decreases_by_total_cost(self, buy_request, seeded_rng):
        result = execute_trade(Decimal("10000"), None, Decimal("50000"), buy_request, rng=seeded_rng)

        assert result.success is True
        assert result.new_balance == Decimal("10000") - result.total_cost_usd
        assert result.total_cost_usd == Decimal("1000") + result.fee_usd

    def test_buy_fee_is_point_one_percent_of_spend(self, seeded_rng):
        for amount in ("1", "250.50", "9000"):
            request = make_request(TradeType.BUY, amount)
            result = execute_trade(Decimal("10000"), None, Decimal("123.45"), request, rng=seeded_rng)
            assert result.fee_usd == Decimal(amount) * TRANSACTION_FEE_RATE

    def test_buy_executed_price_within_slippage_bounds(self, buy_request, seeded_rng):
        target = Decimal("50000")
        for _ in range(200):
            result = execute_trade(Decimal("10000"), None, target, buy_request, rng=seeded_rng)
            assert target * (1 + MIN_SLIPPAGE) <= result.executed_price <= target * (1 + MAX_SLIPPAGE)

    def test_buy_is_reproducible_with_seeded_rng(self, buy_request):
        first = execute_trade(Decimal("10000"), None, Decimal("50000"), buy_request, rng=random.Random(1))
        second = execute_trade(Decimal("10000"), None, Decimal("50000"), buy_request, rng=random.Random(1))
        assert first.executed_price == second.executed_price
        assert first.quantity == second.quantity

    def test_buy_updates_weighted_average(self, btc_position):
        """Adding to a position blends the cost basis."""
        request = make_request(TradeType.BUY, "10000")
        result = execute_trade(
            Decimal("20000"), btc_position, Decimal("50000"), request,
            slippage=Decimal("0.0001"),
        )

        position = result.new_position
        bought = Decimal("10000") / Decimal("50005")
        assert position.quantity == Decimal("1") + bought
        assert Decimal("40000") < position.avg_buy_price_usd < Decimal("50005")
        # Total cost basis is old basis plus USD spent (excl. fee)
        assert position.cost_basis_usd == pytest.approx(Decimal("50000"))

    def test_buy_does_not_mutate_inputs(self, btc_position):
        request = make_request(TradeType.BUY, "1000")
        execute_trade(Decimal("10000"), btc_position, Decimal("50000"), request, slippage=Decimal("0.0001"))

        assert btc_position.quantity == Decimal("1")
        assert btc_position.avg_buy_price_usd == Decimal("40000")

    def test_buy_exact_balance_succeeds(self):
        """Spend + fee equal to the balance leaves zero cash."""
        request = make_request(TradeType.BUY, "1000")
        result = execute_trade(Decimal("1001"), None, Decimal("100"), request, slippage=Decimal("0.0001"))

        assert result.success is True
        assert result.new_balance == Decimal("0")

    def test_buy_insufficient_balance(self):
        request = make_request(TradeType.BUY, "100")
        result = execute_trade(Decimal("100"), None, Decimal("50000"), request, slippage=Decimal("0.0001"))

        assert result.success is False
        assert result.is_rejected is True
        assert result.error_kind == TradeErrorKind.INSUFFICIENT_BALANCE
        assert result.error == "Insufficient balance. Required: $100.10 (including $0.10 fee)"
        assert result.new_balance == Decimal("100")
        assert result.new_position.quantity == Decimal("0")
        assert result.quantity == Decimal("0")

    def test_buy_insufficient_balance_keeps_position(self, btc_position):
        request = make_request(TradeType.BUY, "5000")
        result = execute_trade(Decimal("10"), btc_position, Decimal("50000"), request)

        assert result.success is False
        assert result.new_position == btc_position
        assert result.new_balance == Decimal("10")

    def test_zero_fee_rate(self, buy_request):
        result = execute_trade(
            Decimal("1000"), None, Decimal("50000"), buy_request,
            slippage=Decimal("0.0001"), fee_rate=Decimal("0"),
        )

        assert result.success is True
        assert result.fee_usd == Decimal("0")
        assert result.new_balance == Decimal("0")


# =============================================================================
# SELL Tests
# =============================================================================

class TestSell:
    """Test SELL execution."""

    def test_partial_sell_with_fixed_slippage(self, btc_position, sell_request):
        """Sell 0.5 BTC bought at $40,000 into a $50,000 market."""
        result = execute_trade(
            Decimal("10000"), btc_position, Decimal("50000"), sell_request,
            slippage=Decimal("0.0002"),
        )

        assert result.success is True
        assert result.executed_price == Decimal("49990")
        assert result.quantity == Decimal("0.5")
        assert result.fee_usd == Decimal("24.995")
        assert result.total_cost_usd == Decimal("24970.005")
        assert result.realized_pnl == Decimal("4970.005")
        assert result.new_balance == Decimal("34970.005")

        position = result.new_position
        assert position.quantity == Decimal("0.5")
        assert position.avg_buy_price_usd == Decimal("40000")

    def test_full_sell_closes_position(self, btc_position):
        request = make_request(TradeType.SELL, "1")
        result = execute_trade(Decimal("0"), btc_position, Decimal("40000"), request, slippage=Decimal("0.0001"))

        assert result.success is True
        assert result.new_position.quantity == Decimal("0")
        assert result.new_position.avg_buy_price_usd == Decimal("0")
        assert result.new_position.is_open is False

    def test_sell_at_cost_realizes_loss_of_fee_and_slippage(self, btc_position):
        request = make_request(TradeType.SELL, "1")
        result = execute_trade(Decimal("0"), btc_position, Decimal("40000"), request, slippage=Decimal("0.0001"))

        # executed 39996, fee 39.996
        assert result.realized_pnl == Decimal("-43.996")
        assert result.new_balance == Decimal("39956.004")

    def test_sell_realized_pnl_identity(self, btc_position, seeded_rng):
        """Realized PnL = gross proceeds - quantity * avg price - fee."""
        request = make_request(TradeType.SELL, "0.3")
        result = execute_trade(Decimal("0"), btc_position, Decimal("45000"), request, rng=seeded_rng)

        gross = result.quantity * result.executed_price
        assert result.fee_usd == gross * TRANSACTION_FEE_RATE
        assert result.total_cost_usd == gross - result.fee_usd
        assert result.realized_pnl == gross - Decimal("0.3") * Decimal("40000") - result.fee_usd
        assert result.new_balance == result.total_cost_usd

    def test_sell_executed_price_within_slippage_bounds(self, btc_position, seeded_rng):
        request = make_request(TradeType.SELL, "0.1")
        target = Decimal("50000")
        for _ in range(200):
            result = execute_trade(Decimal("0"), btc_position, target, request, rng=seeded_rng)
            assert target * (1 - MAX_SLIPPAGE) <= result.executed_price <= target * (1 - MIN_SLIPPAGE)

    def test_sell_more_than_held(self, btc_position):
        request = make_request(TradeType.SELL, "1.5")
        result = execute_trade(Decimal("500"), btc_position, Decimal("50000"), request)

        assert result.success is False
        assert result.error_kind == TradeErrorKind.INSUFFICIENT_QUANTITY
        assert result.error == "Insufficient BTC quantity. Available: 1.00000000"
        assert result.new_balance == Decimal("500")
        assert result.new_position == btc_position
        assert result.realized_pnl is None

    def test_sell_without_position(self):
        request = make_request(TradeType.SELL, "0.1", symbol="eth")
        result = execute_trade(Decimal("500"), None, Decimal("3000"), request)

        assert result.success is False
        assert result.error_kind == TradeErrorKind.INSUFFICIENT_QUANTITY
        assert result.error == "Insufficient ETH quantity. Available: 0.00000000"
        assert result.new_position.quantity == Decimal("0")


# =============================================================================
# Input Validation Tests
# =============================================================================

class TestInvalidInput:
    """Test rejection of invalid amounts and prices."""

    @pytest.mark.parametrize("amount", ["0", "-100"])
    def test_non_positive_amount(self, amount):
        request = make_request(TradeType.BUY, amount)
        result = execute_trade(Decimal("10000"), None, Decimal("50000"), request)

        assert result.success is False
        assert result.error_kind == TradeErrorKind.INVALID_AMOUNT
        assert result.error == f"Trade amount must be positive. Received: {amount}"
        assert result.new_balance == Decimal("10000")

    @pytest.mark.parametrize("amount", ["NaN", "Infinity"])
    def test_non_finite_amount(self, amount):
        request = make_request(TradeType.SELL, amount)
        result = execute_trade(Decimal("10000"), None, Decimal("50000"), request)

        assert result.success is False
        assert result.error_kind == TradeErrorKind.INVALID_AMOUNT

    def test_nan_balance(self, buy_request, btc_position):
        result = execute_trade(Decimal("NaN"), btc_position, Decimal("50000"), buy_request)

        assert result.success is False
        assert result.error_kind == TradeErrorKind.INVALID_BALANCE
        assert result.error == "Invalid wallet balance: NaN"
        assert result.new_balance.is_nan()
        assert result.new_position == btc_position

    @pytest.mark.parametrize("balance", ["-0.01", "Infinity"])
    def test_invalid_balance(self, sell_request, btc_position, balance):
        result = execute_trade(Decimal(balance), btc_position, Decimal("50000"), sell_request)

        assert result.success is False
        assert result.error_kind == TradeErrorKind.INVALID_BALANCE
        assert result.new_balance == Decimal(balance)
        assert result.new_position == btc_position

    def test_invalid_price_checked_before_balance(self, buy_request):
        result = execute_trade(Decimal("NaN"), None, Decimal("NaN"), buy_request)

        assert result.error_kind == TradeErrorKind.INVALID_PRICE

    @pytest.mark.parametrize("price", [Decimal("0"), Decimal("-1"), Decimal("NaN"), float("inf")])
    def test_invalid_price(self, buy_request, btc_position, price):
        result = execute_trade(Decimal("10000"), btc_position, price, buy_request)

        assert result.success is False
        assert result.error_kind == TradeErrorKind.INVALID_PRICE
        assert result.error.startswith("Invalid market price")
        assert result.new_balance == Decimal("10000")
        assert result.new_position == btc_position

    def test_accepts_float_and_string_inputs(self, buy_request):
        result = execute_trade(10000.0, None, "50000", buy_request, slippage="0.0003")

        assert result.success is True
        assert result.executed_price == Decimal("50015")
        assert result.new_balance == Decimal("8999")
