"""Tests for pure performance analytics functions.

All test values use Decimal (project convention). Covers returns, drawdown,
Sharpe, win rate, trade statistics, and benchmark alpha, including the
"no data" cases that must yield None rather than zero.
"""

from datetime import date, datetime, timezone
from decimal import Decimal

from riskbot.analytics.metrics import (
    alpha,
    benchmark_return,
    drawdown_percent,
    max_drawdown,
    period_return,
    sharpe_ratio,
    statistics_by_strategy,
    trade_statistics,
    win_rate,
)
from riskbot.analytics.models import INFINITE_PROFIT_FACTOR
from riskbot.models import TradeRecord


def _trade(pl: str, strategy_id: int | None = None, days: int = 2) -> TradeRecord:
    return TradeRecord(
        symbol="AAPL",
        quantity=Decimal("10"),
        entry_price=Decimal("100"),
        exit_price=Decimal("100") + Decimal(pl) / Decimal("10"),
        realized_pl=Decimal(pl),
        realized_pl_percent=Decimal(pl) / Decimal("10"),
        holding_period_days=days,
        exit_date=date(2024, 1, 10),
        strategy_id=strategy_id,
    )


class TestReturnsAndDrawdown:
    def test_period_return(self) -> None:
        assert period_return(Decimal("10000"), Decimal("10500")) == Decimal("5.00")
        assert period_return(Decimal("10000"), Decimal("9750")) == Decimal("-2.50")

    def test_period_return_from_zero_is_zero(self) -> None:
        assert period_return(Decimal("0"), Decimal("100")) == Decimal("0.00")

    def test_drawdown_below_peak(self) -> None:
        assert drawdown_percent(Decimal("9000"), Decimal("10000")) == Decimal("-10")

    def test_drawdown_never_positive(self) -> None:
        assert drawdown_percent(Decimal("11000"), Decimal("10000")) == Decimal("0")

    def test_drawdown_without_peak_is_zero(self) -> None:
        assert drawdown_percent(Decimal("5000"), Decimal("0")) == Decimal("0")

    def test_max_drawdown_keeps_worst_trough(self) -> None:
        values = [Decimal(v) for v in ("10000", "9500", "9000", "8500", "8000", "8500", "9000")]
        assert max_drawdown(values) == Decimal("-20.00")

    def test_max_drawdown_uses_later_peak(self) -> None:
        values = [Decimal(v) for v in ("100", "120", "90", "130", "117")]
        assert max_drawdown(values) == Decimal("-25.00")

    def test_max_drawdown_increasing_series_is_zero(self) -> None:
        values = [Decimal(v) for v in ("100", "101", "105", "110")]
        assert max_drawdown(values) == Decimal("0.00")

    def test_max_drawdown_empty_is_none(self) -> None:
        assert max_drawdown([]) is None


class TestSharpeRatio:
    def test_known_value_without_risk_free(self) -> None:
        """mean 2, sample std sqrt(2): 504 / sqrt(504) = sqrt(504)."""
        result = sharpe_ratio([Decimal("1"), Decimal("3")], risk_free_rate=Decimal("0"))
        assert result == Decimal("22.45")

    def test_known_value_with_risk_free(self) -> None:
        """(2 * 252 - 5) / sqrt(504)."""
        assert sharpe_ratio([Decimal("1"), Decimal("3")]) == Decimal("22.23")

    def test_zero_mean_is_negative_after_risk_free(self) -> None:
        assert sharpe_ratio([Decimal("1"), Decimal("-1")]) == Decimal("-0.22")

    def test_fewer_than_two_returns_is_none(self) -> None:
        assert sharpe_ratio([]) is None
        assert sharpe_ratio([Decimal("1.5")]) is None

    def test_zero_volatility_is_none(self) -> None:
        assert sharpe_ratio([Decimal("1")] * 5) is None


class TestWinRate:
    def test_three_of_five(self) -> None:
        trades = [_trade(p) for p in ("10", "20", "30", "-5", "-15")]
        assert win_rate(trades) == Decimal("60.00")

    def test_break_even_is_not_a_win(self) -> None:
        assert win_rate([_trade("0"), _trade("10")]) == Decimal("50.00")

    def test_no_trades_is_none(self) -> None:
        assert win_rate([]) is None


class TestTradeStatistics:
    def test_mixed_trades(self) -> None:
        stats = trade_statistics([_trade("100"), _trade("200"), _trade("-50"), _trade("0")])

        assert stats.total_trades == 4
        assert stats.winning_trades == 2
        assert stats.losing_trades == 1
        assert stats.win_rate == Decimal("50.00")
        assert stats.average_gain == Decimal("150.00")
        assert stats.average_loss == Decimal("50.00")
        assert stats.largest_gain == Decimal("200")
        assert stats.largest_loss == Decimal("50")
        assert stats.profit_factor == Decimal("3.00")
        assert stats.expected_value == Decimal("62.50")
        assert stats.average_holding_period_days == Decimal("2.00")

    def test_no_trades(self) -> None:
        stats = trade_statistics([])
        assert stats.total_trades == 0
        assert stats.win_rate is None
        assert stats.average_gain is None
        assert stats.average_loss is None
        assert stats.profit_factor is None

    def test_only_gains_has_infinite_profit_factor(self) -> None:
        stats = trade_statistics([_trade("10"), _trade("30")])
        assert stats.profit_factor == INFINITE_PROFIT_FACTOR
        assert stats.average_loss is None

    def test_only_losses_has_zero_profit_factor(self) -> None:
        stats = trade_statistics([_trade("-10")])
        assert stats.profit_factor == Decimal("0.00")
        assert stats.average_gain is None

    def test_only_break_even_has_zero_profit_factor(self) -> None:
        assert trade_statistics([_trade("0")]).profit_factor == Decimal("0.00")

    def test_grouped_by_strategy(self) -> None:
        trades = [_trade("10", strategy_id=1), _trade("-10", strategy_id=1), _trade("5")]
        grouped = statistics_by_strategy(trades)

        assert set(grouped) == {1, None}
        assert grouped[1].total_trades == 2
        assert grouped[1].win_rate == Decimal("50.00")
        assert grouped[None].win_rate == Decimal("100.00")


class TestBenchmark:
    def test_benchmark_return_over_window(self, make_bars) -> None:
        bars = make_bars(["390", "400", "410", "420", "430"])
        start = bars[1].timestamp
        end = bars[3].timestamp
        assert benchmark_return(bars, start, end) == Decimal("5.00")

    def test_unbounded_window_uses_all_bars(self, make_bars) -> None:
        bars = make_bars(["400", "440"])
        assert benchmark_return(bars) == Decimal("10.00")

    def test_empty_window_is_none(self, make_bars) -> None:
        bars = make_bars(["400", "440"])
        later = datetime(2030, 1, 1, tzinfo=timezone.utc)
        assert benchmark_return(bars, start=later) is None
        assert benchmark_return([]) is None

    def test_alpha(self) -> None:
        assert alpha(Decimal("12.00"), Decimal("5.00")) == Decimal("7.00")
        assert alpha(Decimal("-3.00"), Decimal("2.50")) == Decimal("-5.50")
