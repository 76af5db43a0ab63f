"""Performance analytics calculations.

Pure Decimal analytics: period returns, drawdown, Sharpe ratio, win rate,
trade statistics and benchmark alpha. Percentages and ratios are rounded
to 2 decimal places; None is returned wherever there is no data to base a
figure on.
"""

from collections import defaultdict
from collections.abc import Sequence
from datetime import datetime
from decimal import Decimal

from riskbot.analytics.models import INFINITE_PROFIT_FACTOR, TradeStatistics
from riskbot.models import PricePoint, TradeRecord, quantize_percent

_ZERO = Decimal("0")
_HUNDRED = Decimal("100")


def period_return(previous: Decimal, current: Decimal) -> Decimal:
    """Percentage change from ``previous`` to ``current``.

    Used for daily, weekly, monthly and total return alike. A non-positive
    starting value gives 0.
    """
    if previous <= _ZERO:
        return quantize_percent(_ZERO)
    return quantize_percent((current - previous) / previous * _HUNDRED)


def drawdown_percent(current: Decimal, peak: Decimal) -> Decimal:
    """Unrounded decline of ``current`` from ``peak`` as a percentage.

    Always <= 0, and exactly 0 when peak is 0 (no peak recorded yet).
    """
    if peak <= _ZERO:
        return _ZERO
    return min((current - peak) / peak * _HUNDRED, _ZERO)


def max_drawdown(values: Sequence[Decimal]) -> Decimal | None:
    """Most negative peak-to-trough drawdown over a chronological value series.

    The running peak never resets on recovery.

    Returns:
        Drawdown as a non-positive percentage, or None for an empty series.
    """
    if not values:
        return None

    peak = values[0]
    worst = _ZERO
    for value in values:
        if value > peak:
            peak = value
        drawdown = drawdown_percent(value, peak)
        if drawdown < worst:
            worst = drawdown

    return quantize_percent(worst)


def sharpe_ratio(
    period_returns: Sequence[Decimal],
    risk_free_rate: Decimal = Decimal("0.05"),
    periods_per_year: int = 252,
) -> Decimal | None:
    """Annualized Sharpe ratio from per-period percentage returns.

    Sharpe = (mean * periods - risk_free * 100) / (sample_std_dev * sqrt(periods))

    Args:
        period_returns: Per-period returns in percent (e.g. daily returns).
        risk_free_rate: Annual risk-free rate as a fraction (0.05 = 5%).
        periods_per_year: Annualization factor, 252 trading days by default.

    Returns:
        Sharpe ratio rounded to 2 places, or None if fewer than 2 returns
        or zero standard deviation.
    """
    if len(period_returns) < 2:
        return None

    n = Decimal(len(period_returns))
    mean = sum(period_returns, _ZERO) / n

    # Sample standard deviation (N-1 denominator)
    variance = sum(((r - mean) ** 2 for r in period_returns), _ZERO) / (n - Decimal("1"))
    std_dev = variance.sqrt()

    if std_dev == _ZERO:
        return None

    periods = Decimal(periods_per_year)
    excess = mean * periods - risk_free_rate * _HUNDRED
    return quantize_percent(excess / (std_dev * periods.sqrt()))


def win_rate(trades: Sequence[TradeRecord]) -> Decimal | None:
    """Percentage of trades with positive realized P&L, or None if no trades."""
    if not trades:
        return None

    winners = sum(1 for t in trades if t.is_winner)
    return quantize_percent(Decimal(winners) / Decimal(len(trades)) * _HUNDRED)


def _average(values: Sequence[Decimal]) -> Decimal | None:
    if not values:
        return None
    return quantize_percent(sum(values, _ZERO) / Decimal(len(values)))


def trade_statistics(trades: Sequence[TradeRecord]) -> TradeStatistics:
    """Compute win/loss statistics for a set of closed trades.

    Losses are reported as positive magnitudes. Break-even trades count
    toward the total but neither the winners nor the losers.
    """
    gains = [t.realized_pl for t in trades if t.is_winner]
    losses = [-t.realized_pl for t in trades if t.is_loser]

    average_gain = _average(gains)
    average_loss = _average(losses)

    profit_factor: Decimal | None
    if not trades:
        profit_factor = None
    elif average_loss is None:
        profit_factor = (
            INFINITE_PROFIT_FACTOR if average_gain is not None else quantize_percent(_ZERO)
        )
    elif average_gain is None:
        profit_factor = quantize_percent(_ZERO)
    else:
        profit_factor = quantize_percent(average_gain / average_loss)

    return TradeStatistics(
        total_trades=len(trades),
        winning_trades=len(gains),
        losing_trades=len(losses),
        win_rate=win_rate(trades),
        average_gain=average_gain,
        average_loss=average_loss,
        largest_gain=max(gains) if gains else None,
        largest_loss=max(losses) if losses else None,
        profit_factor=profit_factor,
        average_holding_period_days=_average(
            [Decimal(t.holding_period_days) for t in trades]
        ),
        expected_value=_average([t.realized_pl for t in trades]),
    )


def statistics_by_strategy(
    trades: Sequence[TradeRecord],
) -> dict[int | None, TradeStatistics]:
    """Trade statistics grouped by strategy id (None for unattributed trades)."""
    grouped: dict[int | None, list[TradeRecord]] = defaultdict(list)
    for trade in trades:
        grouped[trade.strategy_id].append(trade)

    return {strategy: trade_statistics(group) for strategy, group in grouped.items()}


def benchmark_return(
    history: Sequence[PricePoint],
    start: datetime | None = None,
    end: datetime | None = None,
) -> Decimal | None:
    """Return of a benchmark over a window: (last close - first close) / first close.

    Args:
        history: The benchmark's bars, oldest first.
        start: Inclusive lower bound on bar timestamps (None = unbounded).
        end: Inclusive upper bound on bar timestamps (None = unbounded).

    Returns:
        Percentage return rounded to 2 places, or None if the window holds
        no bars or the first close is not positive.
    """
    window = [
        bar
        for bar in history
        if (start is None or bar.timestamp >= start) and (end is None or bar.timestamp <= end)
    ]
    if not window or window[0].close <= _ZERO:
        return None

    first, last = window[0].close, window[-1].close
    return quantize_percent((last - first) / first * _HUNDRED)


def alpha(portfolio_return: Decimal, benchmark: Decimal) -> Decimal:
    """Portfolio return minus benchmark return over the same window."""
    return quantize_percent(portfolio_return - benchmark)
