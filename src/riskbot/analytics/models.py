"""Performance analytics result models.

CRITICAL: All values use Decimal. None means "no basis to compute", which
callers must keep distinct from a genuine zero.
"""

from dataclasses import dataclass, field
from decimal import Decimal

#: Profit factor reported when there are winning trades but no losing ones.
INFINITE_PROFIT_FACTOR = Decimal("Infinity")


@dataclass(frozen=True)
class TradeStatistics:
    """Aggregate statistics over a set of closed trades.

    average_loss and largest_loss are positive magnitudes. profit_factor is
    0 when there are neither gains nor losses and INFINITE_PROFIT_FACTOR
    when there are gains but no losses.
    """

    total_trades: int
    winning_trades: int
    losing_trades: int
    win_rate: Decimal | None
    average_gain: Decimal | None
    average_loss: Decimal | None
    largest_gain: Decimal | None
    largest_loss: Decimal | None
    profit_factor: Decimal | None
    average_holding_period_days: Decimal | None
    expected_value: Decimal | None


@dataclass(frozen=True)
class BenchmarkComparison:
    """Portfolio total return against each benchmark over the same window.

    Benchmarks without enough price history map to None in both dicts.
    """

    portfolio_return: Decimal
    benchmark_returns: dict[str, Decimal | None] = field(default_factory=dict)
    alphas: dict[str, Decimal | None] = field(default_factory=dict)
