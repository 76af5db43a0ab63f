"""Tests for PerformanceCalculator period metrics and benchmark comparison."""

from datetime import date
from decimal import Decimal

import pytest

from riskbot.analytics.performance import (
    PerformanceCalculator,
    day_bounds,
    month_start,
    period_start,
    week_start,
)
from riskbot.exceptions import InvalidInputError
from riskbot.models import PerformanceMetric, PeriodType, PortfolioSnapshot, TradeRecord


def _daily(day: date, value: str, ret: str) -> PerformanceMetric:
    return PerformanceMetric(
        portfolio_id=1,
        period_type=PeriodType.DAILY,
        period_date=day,
        portfolio_value=Decimal(value),
        period_return_percent=Decimal(ret),
        total_return_percent=Decimal("0"),
        max_drawdown_percent=Decimal("0"),
    )


def _trade(pl: str) -> TradeRecord:
    return TradeRecord(
        symbol="MSFT",
        quantity=Decimal("1"),
        entry_price=Decimal("300"),
        exit_price=Decimal("300") + Decimal(pl),
        realized_pl=Decimal(pl),
        realized_pl_percent=Decimal(pl) / Decimal("3"),
        holding_period_days=1,
        exit_date=date(2024, 1, 10),
        portfolio_id=1,
    )


@pytest.fixture()
def calculator() -> PerformanceCalculator:
    return PerformanceCalculator()


@pytest.fixture()
def grown(snapshot: PortfolioSnapshot) -> PortfolioSnapshot:
    snapshot.current_equity = Decimal("10500")
    snapshot.peak_value = Decimal("11000")
    return snapshot


class TestPeriodDates:
    def test_week_start_is_monday(self) -> None:
        assert week_start(date(2024, 1, 10)) == date(2024, 1, 8)
        assert week_start(date(2024, 1, 8)) == date(2024, 1, 8)
        assert week_start(date(2024, 1, 14)) == date(2024, 1, 8)

    def test_month_start(self) -> None:
        assert month_start(date(2024, 2, 29)) == date(2024, 2, 1)

    def test_period_start_daily_is_identity(self) -> None:
        assert period_start(PeriodType.DAILY, date(2024, 1, 10)) == date(2024, 1, 10)

    def test_day_bounds_cover_whole_day(self) -> None:
        start, end = day_bounds(date(2024, 1, 10))
        assert start.date() == end.date() == date(2024, 1, 10)
        assert start < end


class TestDailyMetrics:
    def test_first_day_uses_initial_capital(
        self, calculator: PerformanceCalculator, grown: PortfolioSnapshot
    ) -> None:
        metric = calculator.compute_daily_metrics(1, None, grown, [_trade("15")], date(2024, 1, 10))

        assert metric.key == (1, PeriodType.DAILY, date(2024, 1, 10))
        assert metric.portfolio_value == Decimal("10500")
        assert metric.period_return_percent == Decimal("5.00")
        assert metric.total_return_percent == Decimal("5.00")
        assert metric.max_drawdown_percent == Decimal("-4.55")
        assert metric.win_rate == Decimal("100.00")
        assert metric.total_trades == 1
        assert metric.sharpe_ratio is None

    def test_return_vs_prior_day(
        self, calculator: PerformanceCalculator, grown: PortfolioSnapshot
    ) -> None:
        prior = _daily(date(2024, 1, 9), "10000", "0")
        metric = calculator.compute_daily_metrics(1, prior, grown, [], date(2024, 1, 10))

        assert metric.period_return_percent == Decimal("5.00")
        assert metric.win_rate is None
        assert metric.total_trades == 0

    def test_prior_from_same_day_raises(
        self, calculator: PerformanceCalculator, grown: PortfolioSnapshot
    ) -> None:
        prior = _daily(date(2024, 1, 10), "10000", "0")
        with pytest.raises(InvalidInputError):
            calculator.compute_daily_metrics(1, prior, grown, [], date(2024, 1, 10))

    def test_snapshot_for_other_portfolio_raises(
        self, calculator: PerformanceCalculator, grown: PortfolioSnapshot
    ) -> None:
        with pytest.raises(InvalidInputError):
            calculator.compute_daily_metrics(2, None, grown, [], date(2024, 1, 10))


class TestWeeklyAndMonthlyMetrics:
    def test_weekly_sharpe_over_week_dailies(
        self, calculator: PerformanceCalculator, grown: PortfolioSnapshot
    ) -> None:
        dailies = [
            _daily(date(2024, 1, 5), "9000", "50"),  # previous week, excluded
            _daily(date(2024, 1, 8), "10100", "1"),
            _daily(date(2024, 1, 9), "10403", "3"),
        ]
        metric = calculator.compute_weekly_metrics(
            1, None, grown, [_trade("10"), _trade("-5")], dailies, date(2024, 1, 10)
        )

        assert metric.period_type is PeriodType.WEEKLY
        assert metric.period_date == date(2024, 1, 8)
        assert metric.sharpe_ratio == Decimal("22.23")
        assert metric.win_rate == Decimal("50.00")

    def test_weekly_with_single_daily_has_no_sharpe(
        self, calculator: PerformanceCalculator, grown: PortfolioSnapshot
    ) -> None:
        dailies = [_daily(date(2024, 1, 8), "10100", "1")]
        metric = calculator.compute_weekly_metrics(1, None, grown, [], dailies, date(2024, 1, 10))
        assert metric.sharpe_ratio is None

    def test_monthly_drawdown_over_daily_values(
        self, calculator: PerformanceCalculator, grown: PortfolioSnapshot
    ) -> None:
        dailies = [
            _daily(date(2024, 1, 2), "10000", "0"),
            _daily(date(2024, 1, 3), "9000", "-10"),
            _daily(date(2024, 1, 4), "9500", "5.56"),
        ]
        prior = PerformanceMetric(
            portfolio_id=1,
            period_type=PeriodType.MONTHLY,
            period_date=date(2023, 12, 1),
            portfolio_value=Decimal("10000"),
            period_return_percent=Decimal("0"),
            total_return_percent=Decimal("0"),
            max_drawdown_percent=Decimal("0"),
        )
        metric = calculator.compute_monthly_metrics(
            1, prior, grown, [], dailies, date(2024, 1, 31)
        )

        assert metric.period_date == date(2024, 1, 1)
        assert metric.period_return_percent == Decimal("5.00")
        assert metric.max_drawdown_percent == Decimal("-10.00")
        assert metric.sharpe_ratio is not None

    def test_monthly_without_dailies_uses_current_drawdown(
        self, calculator: PerformanceCalculator, grown: PortfolioSnapshot
    ) -> None:
        metric = calculator.compute_monthly_metrics(1, None, grown, [], [], date(2024, 1, 31))
        assert metric.max_drawdown_percent == Decimal("-4.55")
        assert metric.sharpe_ratio is None


class TestBenchmarkComparison:
    def test_alpha_per_benchmark(
        self, calculator: PerformanceCalculator, snapshot: PortfolioSnapshot, make_bars
    ) -> None:
        snapshot.current_equity = Decimal("11000")
        result = calculator.compare_to_benchmarks(
            snapshot, {"SPY": make_bars(["400", "420"]), "QQQ": []}
        )

        assert result.portfolio_return == Decimal("10.00")
        assert result.benchmark_returns == {"SPY": Decimal("5.00"), "QQQ": None}
        assert result.alphas == {"SPY": Decimal("5.00"), "QQQ": None}
