"""Shared data models for the portfolio risk engine.

CRITICAL: All monetary values, prices and percentages use Decimal. Never use
float for equity, prices or ratios.
"""

from dataclasses import dataclass
from datetime import date, datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum

PERCENT_QUANTUM = Decimal("0.01")
INDICATOR_QUANTUM = Decimal("0.0001")


def quantize_percent(value: Decimal) -> Decimal:
    """Round a percentage or ratio to 2 decimal places."""
    return value.quantize(PERCENT_QUANTUM, rounding=ROUND_HALF_UP)


def quantize_indicator(value: Decimal) -> Decimal:
    """Round a raw indicator value (SMA/EMA/MACD) to 4 decimal places."""
    return value.quantize(INDICATOR_QUANTUM, rounding=ROUND_HALF_UP)


def as_utc(value: datetime) -> datetime:
    """Return ``value`` as an aware UTC datetime; naive values are taken as UTC."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class PeriodType(str, Enum):
    """Aggregation window of a performance metric row."""

    DAILY = "DAILY"
    WEEKLY = "WEEKLY"
    MONTHLY = "MONTHLY"


@dataclass(frozen=True)
class PricePoint:
    """A single OHLCV bar. Immutable once recorded."""

    timestamp: datetime
    open: Decimal
    high: Decimal
    low: Decimal
    close: Decimal
    volume: Decimal


@dataclass
class AccountSnapshot:
    """Live account numbers fetched from the broker."""

    equity: Decimal
    cash: Decimal
    buying_power: Decimal
    as_of: datetime


@dataclass
class PortfolioSnapshot:
    """Persisted portfolio and risk record.

    peak_value never decreases except on an explicit reset, and
    current_drawdown_percent is always <= 0. Only the risk state machine
    (via the monitor) and a manual resume touch is_trading_paused.
    """

    portfolio_id: int
    initial_capital: Decimal
    current_equity: Decimal
    current_cash: Decimal
    buying_power: Decimal
    peak_value: Decimal
    current_drawdown_percent: Decimal = Decimal("0")
    is_trading_paused: bool = False
    paused_reason: str | None = None
    name: str = ""
    last_synced_at: datetime | None = None


@dataclass(frozen=True)
class TradeRecord:
    """A closed trade. Used only for statistics."""

    symbol: str
    quantity: Decimal
    entry_price: Decimal
    exit_price: Decimal
    realized_pl: Decimal
    realized_pl_percent: Decimal
    holding_period_days: int
    exit_date: date
    portfolio_id: int = 0
    strategy_id: int | None = None

    @property
    def is_winner(self) -> bool:
        return self.realized_pl > Decimal("0")

    @property
    def is_loser(self) -> bool:
        return self.realized_pl < Decimal("0")


@dataclass
class PerformanceMetric:
    """One row per (portfolio_id, period_type, period_date).

    sharpe_ratio and win_rate are None when there is no basis to compute
    them, so "0%" and "no data" stay distinguishable.
    """

    portfolio_id: int
    period_type: PeriodType
    period_date: date
    portfolio_value: Decimal
    period_return_percent: Decimal
    total_return_percent: Decimal
    max_drawdown_percent: Decimal
    sharpe_ratio: Decimal | None = None
    win_rate: Decimal | None = None
    total_trades: int = 0
    winning_trades: int = 0
    losing_trades: int = 0
    average_win: Decimal | None = None
    average_loss: Decimal | None = None

    @property
    def key(self) -> tuple[int, PeriodType, date]:
        return (self.portfolio_id, self.period_type, self.period_date)
