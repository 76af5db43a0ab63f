"""Daily, weekly and monthly performance metric computation.

Each compute_* method is a pure function of its inputs and returns a
PerformanceMetric keyed by (portfolio_id, period_type, period_date).
Persisting the row as an upsert on that key is the store's job, which is
what makes recomputation for the same period overwrite instead of
duplicate.

Period dates: DAILY rows use the day itself, WEEKLY rows the Monday of the
week, MONTHLY rows the first day of the month.
"""

from collections.abc import Mapping, Sequence
from datetime import date, datetime, time, timedelta, timezone
from decimal import Decimal

from riskbot.analytics.metrics import (
    alpha,
    benchmark_return,
    drawdown_percent,
    max_drawdown,
    period_return,
    sharpe_ratio,
    trade_statistics,
)
from riskbot.analytics.models import BenchmarkComparison
from riskbot.config import PerformanceSettings
from riskbot.exceptions import InvalidInputError
from riskbot.logging import get_logger
from riskbot.models import (
    PerformanceMetric,
    PeriodType,
    PortfolioSnapshot,
    PricePoint,
    TradeRecord,
    quantize_percent,
)

logger = get_logger(__name__)


def week_start(day: date) -> date:
    """Monday of the week containing ``day``."""
    return day - timedelta(days=day.weekday())


def month_start(day: date) -> date:
    """First day of the month containing ``day``."""
    return day.replace(day=1)


def period_start(period_type: PeriodType, day: date) -> date:
    """Period date (row key) of the window containing ``day``."""
    if period_type is PeriodType.WEEKLY:
        return week_start(day)
    if period_type is PeriodType.MONTHLY:
        return month_start(day)
    return day


class PerformanceCalculator:
    """Computes period performance rows from snapshots, trades and daily history.

    Args:
        settings: Risk-free rate and annualization factor for Sharpe.
    """

    def __init__(self, settings: PerformanceSettings | None = None) -> None:
        self._settings = settings or PerformanceSettings()

    def compute_daily_metrics(
        self,
        portfolio_id: int,
        prior_metric: PerformanceMetric | None,
        snapshot: PortfolioSnapshot,
        todays_trades: Sequence[TradeRecord],
        as_of: date,
    ) -> PerformanceMetric:
        """Daily row: return vs the previous day's value, current drawdown, today's trades."""
        metric = self._build(
            portfolio_id, PeriodType.DAILY, as_of, prior_metric, snapshot, todays_trades
        )
        logger.info(
            "daily_metrics_calculated",
            portfolio_id=portfolio_id,
            period_date=as_of.isoformat(),
            value=str(metric.portfolio_value),
            daily_return=str(metric.period_return_percent),
            total_return=str(metric.total_return_percent),
        )
        return metric

    def compute_weekly_metrics(
        self,
        portfolio_id: int,
        prior_metric: PerformanceMetric | None,
        snapshot: PortfolioSnapshot,
        week_trades: Sequence[TradeRecord],
        daily_metrics: Sequence[PerformanceMetric],
        as_of: date,
    ) -> PerformanceMetric:
        """Weekly row, with Sharpe over the week's daily returns."""
        metric = self._build(
            portfolio_id, PeriodType.WEEKLY, as_of, prior_metric, snapshot, week_trades
        )
        window = self._daily_window(daily_metrics, metric.period_date, as_of)
        metric.sharpe_ratio = self._sharpe(window)

        logger.info(
            "weekly_metrics_calculated",
            portfolio_id=portfolio_id,
            period_date=metric.period_date.isoformat(),
            weekly_return=str(metric.period_return_percent),
            win_rate=str(metric.win_rate) if metric.win_rate is not None else None,
        )
        return metric

    def compute_monthly_metrics(
        self,
        portfolio_id: int,
        prior_metric: PerformanceMetric | None,
        snapshot: PortfolioSnapshot,
        month_trades: Sequence[TradeRecord],
        daily_metrics: Sequence[PerformanceMetric],
        as_of: date,
    ) -> PerformanceMetric:
        """Monthly row, with Sharpe and max drawdown over the month's daily values.

        Falls back to the snapshot's current drawdown when no daily rows
        exist for the month yet.
        """
        metric = self._build(
            portfolio_id, PeriodType.MONTHLY, as_of, prior_metric, snapshot, month_trades
        )
        window = self._daily_window(daily_metrics, metric.period_date, as_of)
        metric.sharpe_ratio = self._sharpe(window)

        month_drawdown = max_drawdown([m.portfolio_value for m in window])
        if month_drawdown is not None:
            metric.max_drawdown_percent = month_drawdown

        logger.info(
            "monthly_metrics_calculated",
            portfolio_id=portfolio_id,
            period_date=metric.period_date.isoformat(),
            monthly_return=str(metric.period_return_percent),
            sharpe=str(metric.sharpe_ratio) if metric.sharpe_ratio is not None else None,
            max_drawdown=str(metric.max_drawdown_percent),
        )
        return metric

    def compare_to_benchmarks(
        self,
        snapshot: PortfolioSnapshot,
        benchmark_histories: Mapping[str, Sequence[PricePoint]],
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> BenchmarkComparison:
        """Total portfolio return against each benchmark's return over [start, end]."""
        portfolio_return = period_return(snapshot.initial_capital, snapshot.current_equity)

        returns: dict[str, Decimal | None] = {}
        alphas: dict[str, Decimal | None] = {}
        for symbol, history in benchmark_histories.items():
            bench = benchmark_return(history, start, end)
            returns[symbol] = bench
            alphas[symbol] = alpha(portfolio_return, bench) if bench is not None else None
            if bench is None:
                logger.warning("benchmark_history_missing", symbol=symbol)

        logger.info(
            "benchmark_comparison",
            portfolio_id=snapshot.portfolio_id,
            portfolio_return=str(portfolio_return),
            benchmarks={k: str(v) for k, v in returns.items()},
        )
        return BenchmarkComparison(
            portfolio_return=portfolio_return,
            benchmark_returns=returns,
            alphas=alphas,
        )

    def _build(
        self,
        portfolio_id: int,
        period_type: PeriodType,
        as_of: date,
        prior_metric: PerformanceMetric | None,
        snapshot: PortfolioSnapshot,
        trades: Sequence[TradeRecord],
    ) -> PerformanceMetric:
        if snapshot.portfolio_id != portfolio_id:
            raise InvalidInputError(
                f"Snapshot belongs to portfolio {snapshot.portfolio_id}, not {portfolio_id}"
            )
        period_date = period_start(period_type, as_of)
        if prior_metric is not None and (
            prior_metric.period_type is not period_type or prior_metric.period_date >= period_date
        ):
            raise InvalidInputError(
                f"Prior metric {prior_metric.period_type.value} {prior_metric.period_date} "
                f"does not precede {period_type.value} {period_date}"
            )

        previous_value = (
            prior_metric.portfolio_value if prior_metric is not None else snapshot.initial_capital
        )
        current_value = snapshot.current_equity
        stats = trade_statistics(trades)

        return PerformanceMetric(
            portfolio_id=portfolio_id,
            period_type=period_type,
            period_date=period_date,
            portfolio_value=current_value,
            period_return_percent=period_return(previous_value, current_value),
            total_return_percent=period_return(snapshot.initial_capital, current_value),
            max_drawdown_percent=quantize_percent(
                drawdown_percent(current_value, snapshot.peak_value)
            ),
            win_rate=stats.win_rate,
            total_trades=stats.total_trades,
            winning_trades=stats.winning_trades,
            losing_trades=stats.losing_trades,
            average_win=stats.average_gain,
            average_loss=stats.average_loss,
        )

    @staticmethod
    def _daily_window(
        daily_metrics: Sequence[PerformanceMetric], start: date, end: date
    ) -> list[PerformanceMetric]:
        return sorted(
            (
                m
                for m in daily_metrics
                if m.period_type is PeriodType.DAILY and start <= m.period_date <= end
            ),
            key=lambda m: m.period_date,
        )

    def _sharpe(self, window: Sequence[PerformanceMetric]) -> Decimal | None:
        return sharpe_ratio(
            [m.period_return_percent for m in window],
            risk_free_rate=self._settings.risk_free_rate,
            periods_per_year=self._settings.trading_days_per_year,
        )


def day_bounds(day: date) -> tuple[datetime, datetime]:
    """UTC start and end instants of a calendar day."""
    start = datetime.combine(day, time.min, tzinfo=timezone.utc)
    end = datetime.combine(day, time.max, tzinfo=timezone.utc)
    return start, end
