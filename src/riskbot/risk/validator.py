"""Pre-trade validation against the full rule set.

Every rule is evaluated independently and every failure is reported, in
evaluation order, so the operator sees all reasons a trade was rejected
rather than only the first:

  1. POSITION_SIZE        order value <= max % of portfolio value
  2. MAX_POSITIONS        open positions < max concurrent positions
  3. DAILY_LOSS           loss vs day start stays above -max daily loss %
  4. DAILY_TRADE_COUNT    trades today < max daily trades
  5. DRAWDOWN_HALT        drawdown above the halt threshold
  6. TRADING_PAUSED       portfolio not halted by the risk state machine
  7. BUYING_POWER         buying power covers the order value
  8. DUPLICATE_ORDER      no pending order for the same symbol
  9. PRICE_BOUNDS         min price <= order price <= max price (if given)
 10. CASH_RESERVE         cash >= min cash % of portfolio (if configured)
 11. PATTERN_DAY_TRADER   accounts under the PDT equity threshold with
                          >= 3 day trades in 5 days are blocked
"""

from collections.abc import Collection
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum

from riskbot.config import ValidationSettings
from riskbot.logging import get_logger
from riskbot.models import PortfolioSnapshot

logger = get_logger(__name__)

_ZERO = Decimal("0")
_HUNDRED = Decimal("100")


class RuleId(str, Enum):
    """Identifiers of the trade validation rules, in evaluation order."""

    POSITION_SIZE = "POSITION_SIZE"
    MAX_POSITIONS = "MAX_POSITIONS"
    DAILY_LOSS = "DAILY_LOSS"
    DAILY_TRADE_COUNT = "DAILY_TRADE_COUNT"
    DRAWDOWN_HALT = "DRAWDOWN_HALT"
    TRADING_PAUSED = "TRADING_PAUSED"
    BUYING_POWER = "BUYING_POWER"
    DUPLICATE_ORDER = "DUPLICATE_ORDER"
    PRICE_BOUNDS = "PRICE_BOUNDS"
    CASH_RESERVE = "CASH_RESERVE"
    PATTERN_DAY_TRADER = "PATTERN_DAY_TRADER"


@dataclass(frozen=True)
class RuleViolation:
    rule: RuleId
    reason: str


@dataclass(frozen=True)
class TradeValidationRequest:
    """Everything needed to judge one prospective order."""

    symbol: str
    order_value: Decimal
    portfolio_value: Decimal
    current_position_count: int
    day_start_value: Decimal
    current_value: Decimal
    trades_today: int
    drawdown_percent: Decimal
    buying_power: Decimal
    pending_order_symbols: Collection[str] = field(default_factory=frozenset)
    order_price: Decimal | None = None
    min_price: Decimal | None = None
    max_price: Decimal | None = None
    cash_balance: Decimal | None = None
    day_trades_last_5_days: int = 0
    account_equity: Decimal | None = None  # defaults to portfolio_value for PDT
    is_trading_paused: bool = False

    @classmethod
    def from_snapshot(
        cls,
        snapshot: PortfolioSnapshot,
        *,
        symbol: str,
        order_value: Decimal,
        current_position_count: int,
        day_start_value: Decimal,
        trades_today: int,
        pending_order_symbols: Collection[str] = frozenset(),
        order_price: Decimal | None = None,
        min_price: Decimal | None = None,
        max_price: Decimal | None = None,
        day_trades_last_5_days: int = 0,
    ) -> "TradeValidationRequest":
        """Build a request from the latest persisted portfolio record."""
        return cls(
            symbol=symbol,
            order_value=order_value,
            portfolio_value=snapshot.current_equity,
            current_position_count=current_position_count,
            day_start_value=day_start_value,
            current_value=snapshot.current_equity,
            trades_today=trades_today,
            drawdown_percent=snapshot.current_drawdown_percent,
            buying_power=snapshot.buying_power,
            pending_order_symbols=pending_order_symbols,
            order_price=order_price,
            min_price=min_price,
            max_price=max_price,
            cash_balance=snapshot.current_cash,
            day_trades_last_5_days=day_trades_last_5_days,
            account_equity=snapshot.current_equity,
            is_trading_paused=snapshot.is_trading_paused,
        )


@dataclass(frozen=True)
class TradeValidationResult:
    """Approve/reject decision with every violated rule and non-blocking warnings."""

    approved: bool
    violations: tuple[RuleViolation, ...] = ()
    warnings: tuple[str, ...] = ()

    @property
    def violated_rules(self) -> list[RuleId]:
        return [v.rule for v in self.violations]

    @property
    def reasons(self) -> list[str]:
        return [v.reason for v in self.violations]


def should_block_for_pdt(
    day_trades_last_5_days: int,
    account_equity: Decimal,
    equity_threshold: Decimal = Decimal("25000"),
    day_trade_limit: int = 3,
) -> bool:
    """True when one more day trade would trip the pattern-day-trader rule."""
    if account_equity >= equity_threshold:
        return False
    return day_trades_last_5_days >= day_trade_limit


def should_warn_pdt(
    day_trades_last_5_days: int,
    account_equity: Decimal,
    equity_threshold: Decimal = Decimal("25000"),
    day_trade_limit: int = 3,
) -> bool:
    """True when the account sits exactly at the PDT day-trade limit."""
    if account_equity >= equity_threshold:
        return False
    return day_trades_last_5_days == day_trade_limit


class TradeValidator:
    """Evaluates a TradeValidationRequest against all rules without short-circuiting.

    Args:
        settings: Default limits (position %, position count, daily loss,
            daily trades, halt threshold, cash reserve, PDT parameters).
    """

    def __init__(self, settings: ValidationSettings | None = None) -> None:
        self._settings = settings or ValidationSettings()

    def validate(self, request: TradeValidationRequest) -> TradeValidationResult:
        s = self._settings
        violations: list[RuleViolation] = []
        warnings: list[str] = []

        def fail(rule: RuleId, reason: str) -> None:
            violations.append(RuleViolation(rule=rule, reason=reason))

        # 1. Position size
        if request.portfolio_value <= _ZERO:
            fail(RuleId.POSITION_SIZE, "Portfolio value is not positive; cannot size position")
        else:
            position_pct = request.order_value / request.portfolio_value * _HUNDRED
            if position_pct > s.max_position_percent:
                fail(
                    RuleId.POSITION_SIZE,
                    f"Position size {position_pct:.2f}% exceeds maximum {s.max_position_percent}%",
                )

        # 2. Concurrent positions
        if request.current_position_count >= s.max_positions:
            fail(
                RuleId.MAX_POSITIONS,
                f"Maximum concurrent positions reached ({request.current_position_count}/{s.max_positions})",
            )

        # 3. Daily loss
        if request.day_start_value > _ZERO:
            daily_pct = (
                (request.current_value - request.day_start_value)
                / request.day_start_value
                * _HUNDRED
            )
            if daily_pct <= -s.max_daily_loss_percent:
                fail(
                    RuleId.DAILY_LOSS,
                    f"Daily loss {daily_pct:.2f}% reached limit of -{s.max_daily_loss_percent}%",
                )

        # 4. Daily trade count
        if request.trades_today >= s.max_daily_trades:
            fail(
                RuleId.DAILY_TRADE_COUNT,
                f"Maximum daily trades reached ({request.trades_today}/{s.max_daily_trades})",
            )

        # 5. Drawdown halt
        if request.drawdown_percent <= s.drawdown_halt_threshold:
            fail(
                RuleId.DRAWDOWN_HALT,
                f"Drawdown {request.drawdown_percent}% at or beyond halt threshold "
                f"{s.drawdown_halt_threshold}%",
            )

        # 6. Sticky halt flag
        if request.is_trading_paused:
            fail(RuleId.TRADING_PAUSED, "Trading is halted pending manual resume")

        # 7. Buying power
        if request.buying_power < request.order_value:
            fail(
                RuleId.BUYING_POWER,
                f"Insufficient buying power: {request.buying_power} < {request.order_value}",
            )

        # 8. Duplicate order
        if request.symbol in request.pending_order_symbols:
            fail(RuleId.DUPLICATE_ORDER, f"Pending order already exists for {request.symbol}")

        # 9. Price bounds
        if request.order_price is not None:
            if request.min_price is not None and request.order_price < request.min_price:
                fail(
                    RuleId.PRICE_BOUNDS,
                    f"Order price {request.order_price} below minimum {request.min_price}",
                )
            elif request.max_price is not None and request.order_price > request.max_price:
                fail(
                    RuleId.PRICE_BOUNDS,
                    f"Order price {request.order_price} above maximum {request.max_price}",
                )

        # 10. Cash reserve
        if s.min_cash_percent is not None and request.cash_balance is not None:
            if request.portfolio_value <= _ZERO:
                fail(RuleId.CASH_RESERVE, "Portfolio value is not positive; cash reserve unknown")
            else:
                cash_pct = request.cash_balance / request.portfolio_value * _HUNDRED
                if cash_pct < s.min_cash_percent:
                    fail(
                        RuleId.CASH_RESERVE,
                        f"Cash reserve {cash_pct:.2f}% below minimum {s.min_cash_percent}%",
                    )

        # 11. Pattern day trader
        equity = (
            request.account_equity
            if request.account_equity is not None
            else request.portfolio_value
        )
        pdt_args = (
            request.day_trades_last_5_days,
            equity,
            s.pdt_equity_threshold,
            s.pdt_day_trade_limit,
        )
        if should_warn_pdt(*pdt_args):
            warnings.append(
                f"Pattern day trader limit reached: {request.day_trades_last_5_days} day trades "
                f"in 5 days with equity below {s.pdt_equity_threshold}"
            )
        if should_block_for_pdt(*pdt_args):
            fail(
                RuleId.PATTERN_DAY_TRADER,
                f"Another day trade would trip the pattern day trader rule "
                f"({request.day_trades_last_5_days} in last 5 days)",
            )

        result = TradeValidationResult(
            approved=not violations,
            violations=tuple(violations),
            warnings=tuple(warnings),
        )

        if result.approved:
            logger.info("trade_approved", symbol=request.symbol, order_value=str(request.order_value))
        else:
            logger.warning(
                "trade_rejected",
                symbol=request.symbol,
                order_value=str(request.order_value),
                violated_rules=[r.value for r in result.violated_rules],
            )
        return result
