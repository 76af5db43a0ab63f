"""Typed SQLite read/write abstraction for portfolio risk data.

Provides PortfolioStore with typed methods for portfolios, performance
metrics, closed trades, price bars with their indicators, and the audit
log. All SQL is isolated behind this interface.

CRITICAL: All monetary/rate values stored as TEXT in SQLite, restored as Decimal on read.
"""

import json
from collections.abc import Sequence
from datetime import date, datetime, timezone
from decimal import Decimal

from riskbot.data.database import RiskDatabase
from riskbot.exceptions import PortfolioNotFoundError
from riskbot.indicators.models import IndicatorSet
from riskbot.logging import get_logger
from riskbot.models import (
    PerformanceMetric,
    PeriodType,
    PortfolioSnapshot,
    PricePoint,
    TradeRecord,
    as_utc,
)

logger = get_logger(__name__)

AUDIT_TRADING_HALT = "TRADING_HALT"
AUDIT_TRADING_RESUME = "TRADING_RESUME"
AUDIT_PEAK_RESET = "PEAK_RESET"

_PORTFOLIO_COLUMNS = (
    "portfolio_id, name, initial_capital, current_equity, current_cash, buying_power, "
    "peak_value, current_drawdown_percent, is_trading_paused, paused_reason, last_synced_at"
)
_PORTFOLIO_UPDATES = ", ".join(
    f"{column} = excluded.{column}" for column in _PORTFOLIO_COLUMNS.split(", ")[1:]
)

_METRIC_COLUMNS = (
    "portfolio_id, period_type, period_date, portfolio_value, period_return_percent, "
    "total_return_percent, max_drawdown_percent, sharpe_ratio, win_rate, total_trades, "
    "winning_trades, losing_trades, average_win, average_loss"
)

_TRADE_COLUMNS = (
    "portfolio_id, strategy_id, symbol, quantity, entry_price, exit_price, realized_pl, "
    "realized_pl_percent, holding_period_days, exit_date"
)


def _text(value: Decimal | None) -> str | None:
    return str(value) if value is not None else None


def _decimal(value: str | None) -> Decimal | None:
    return Decimal(value) if value is not None else None


def _timestamp(value: datetime) -> str:
    """Normalize to UTC ISO-8601 so TEXT ordering matches time ordering."""
    return as_utc(value).isoformat()


def _row_to_portfolio(row: Sequence) -> PortfolioSnapshot:
    return PortfolioSnapshot(
        portfolio_id=row[0],
        name=row[1],
        initial_capital=Decimal(row[2]),
        current_equity=Decimal(row[3]),
        current_cash=Decimal(row[4]),
        buying_power=Decimal(row[5]),
        peak_value=Decimal(row[6]),
        current_drawdown_percent=Decimal(row[7]),
        is_trading_paused=bool(row[8]),
        paused_reason=row[9],
        last_synced_at=datetime.fromisoformat(row[10]) if row[10] else None,
    )


def _row_to_metric(row: Sequence) -> PerformanceMetric:
    return PerformanceMetric(
        portfolio_id=row[0],
        period_type=PeriodType(row[1]),
        period_date=date.fromisoformat(row[2]),
        portfolio_value=Decimal(row[3]),
        period_return_percent=Decimal(row[4]),
        total_return_percent=Decimal(row[5]),
        max_drawdown_percent=Decimal(row[6]),
        sharpe_ratio=_decimal(row[7]),
        win_rate=_decimal(row[8]),
        total_trades=row[9],
        winning_trades=row[10],
        losing_trades=row[11],
        average_win=_decimal(row[12]),
        average_loss=_decimal(row[13]),
    )


def _row_to_trade(row: Sequence) -> TradeRecord:
    return TradeRecord(
        portfolio_id=row[0],
        strategy_id=row[1],
        symbol=row[2],
        quantity=Decimal(row[3]),
        entry_price=Decimal(row[4]),
        exit_price=Decimal(row[5]),
        realized_pl=Decimal(row[6]),
        realized_pl_percent=Decimal(row[7]),
        holding_period_days=row[8],
        exit_date=date.fromisoformat(row[9]),
    )


def _row_to_bar(row: Sequence) -> PricePoint:
    return PricePoint(
        timestamp=datetime.fromisoformat(row[0]),
        open=Decimal(row[1]),
        high=Decimal(row[2]),
        low=Decimal(row[3]),
        close=Decimal(row[4]),
        volume=Decimal(row[5]),
    )


def _indicators_to_json(indicators: IndicatorSet | None) -> str | None:
    if indicators is None:
        return None
    return json.dumps({k: _text(v) for k, v in indicators.as_dict().items()})


def _indicators_from_json(payload: str | None) -> IndicatorSet | None:
    if payload is None:
        return None
    return IndicatorSet(**{k: _decimal(v) for k, v in json.loads(payload).items()})


class PortfolioStore:
    """Async SQLite store for portfolio state, metrics, trades and price bars.

    Wraps RiskDatabase with typed read/write methods. All SQL access
    goes through self._database.db (the aiosqlite Connection).

    Usage:
        async with RiskDatabase("data/portfolio.db") as database:
            store = PortfolioStore(database)
            snapshot = await store.get_portfolio(1)
    """

    def __init__(self, database: RiskDatabase) -> None:
        self._database = database

    # ──────────────────────────────────────────────
    # Portfolios
    # ──────────────────────────────────────────────

    async def save_portfolio(self, snapshot: PortfolioSnapshot) -> None:
        """Insert or update a portfolio record. The is_active flag is left as stored."""
        await self._database.db.execute(
            f"INSERT INTO portfolios ({_PORTFOLIO_COLUMNS}) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?) "
            f"ON CONFLICT(portfolio_id) DO UPDATE SET {_PORTFOLIO_UPDATES}",
            (
                snapshot.portfolio_id,
                snapshot.name,
                str(snapshot.initial_capital),
                str(snapshot.current_equity),
                str(snapshot.current_cash),
                str(snapshot.buying_power),
                str(snapshot.peak_value),
                str(snapshot.current_drawdown_percent),
                1 if snapshot.is_trading_paused else 0,
                snapshot.paused_reason,
                snapshot.last_synced_at.isoformat() if snapshot.last_synced_at else None,
            ),
        )
        await self._database.db.commit()

    async def get_portfolio(self, portfolio_id: int) -> PortfolioSnapshot:
        """Load a portfolio record.

        Raises:
            PortfolioNotFoundError: If no record exists for the id.
        """
        cursor = await self._database.db.execute(
            f"SELECT {_PORTFOLIO_COLUMNS} FROM portfolios WHERE portfolio_id = ?",
            (portfolio_id,),
        )
        row = await cursor.fetchone()
        if row is None:
            raise PortfolioNotFoundError(f"Portfolio {portfolio_id} not found")
        return _row_to_portfolio(row)

    async def get_active_portfolio_ids(self) -> list[int]:
        cursor = await self._database.db.execute(
            "SELECT portfolio_id FROM portfolios WHERE is_active = 1 ORDER BY portfolio_id"
        )
        return [row[0] for row in await cursor.fetchall()]

    async def set_active(self, portfolio_id: int, active: bool) -> None:
        """Include or exclude a portfolio from the scheduled jobs."""
        await self._database.db.execute(
            "UPDATE portfolios SET is_active = ? WHERE portfolio_id = ?",
            (1 if active else 0, portfolio_id),
        )
        await self._database.db.commit()
        logger.info("portfolio_active_changed", portfolio_id=portfolio_id, active=active)

    async def halt_trading(self, snapshot: PortfolioSnapshot, reason: str) -> None:
        """Persist the sticky halt flag and record an audit entry."""
        await self._database.db.execute(
            "UPDATE portfolios SET is_trading_paused = 1, paused_reason = ? "
            "WHERE portfolio_id = ?",
            (reason, snapshot.portfolio_id),
        )
        await self._insert_audit(
            snapshot.portfolio_id,
            AUDIT_TRADING_HALT,
            {
                "reason": reason,
                "current_equity": str(snapshot.current_equity),
                "peak_value": str(snapshot.peak_value),
                "drawdown_percent": str(snapshot.current_drawdown_percent),
            },
        )
        await self._database.db.commit()
        logger.critical(
            "trading_halted_persisted", portfolio_id=snapshot.portfolio_id, reason=reason
        )

    async def resume_trading(self, portfolio_id: int, resumed_by: str = "manual") -> None:
        """Clear the halt flag. Only ever called by an operator action.

        Raises:
            PortfolioNotFoundError: If no record exists for the id.
        """
        snapshot = await self.get_portfolio(portfolio_id)
        await self._database.db.execute(
            "UPDATE portfolios SET is_trading_paused = 0, paused_reason = NULL "
            "WHERE portfolio_id = ?",
            (portfolio_id,),
        )
        await self._insert_audit(
            portfolio_id,
            AUDIT_TRADING_RESUME,
            {
                "resumed_by": resumed_by,
                "previous_reason": snapshot.paused_reason,
                "current_equity": str(snapshot.current_equity),
                "drawdown_percent": str(snapshot.current_drawdown_percent),
            },
        )
        await self._database.db.commit()
        logger.warning("trading_resumed", portfolio_id=portfolio_id, resumed_by=resumed_by)

    async def reset_peak(self, portfolio_id: int) -> PortfolioSnapshot:
        """Explicitly reset the peak to the current equity (drawdown back to 0).

        Raises:
            PortfolioNotFoundError: If no record exists for the id.
        """
        snapshot = await self.get_portfolio(portfolio_id)
        old_peak = snapshot.peak_value
        snapshot.peak_value = snapshot.current_equity
        snapshot.current_drawdown_percent = Decimal("0.00")
        await self._database.db.execute(
            "UPDATE portfolios SET peak_value = ?, current_drawdown_percent = ? "
            "WHERE portfolio_id = ?",
            (str(snapshot.peak_value), str(snapshot.current_drawdown_percent), portfolio_id),
        )
        await self._insert_audit(
            portfolio_id,
            AUDIT_PEAK_RESET,
            {"old_peak": str(old_peak), "new_peak": str(snapshot.peak_value)},
        )
        await self._database.db.commit()
        logger.warning(
            "peak_reset",
            portfolio_id=portfolio_id,
            old_peak=str(old_peak),
            new_peak=str(snapshot.peak_value),
        )
        return snapshot

    # ──────────────────────────────────────────────
    # Performance metrics
    # ──────────────────────────────────────────────

    async def upsert_metric(self, metric: PerformanceMetric) -> None:
        """Insert a metric row, overwriting any existing row for the same period."""
        await self._database.db.execute(
            f"INSERT INTO performance_metrics ({_METRIC_COLUMNS}) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?) "
            "ON CONFLICT (portfolio_id, period_type, period_date) DO UPDATE SET "
            "portfolio_value = excluded.portfolio_value, "
            "period_return_percent = excluded.period_return_percent, "
            "total_return_percent = excluded.total_return_percent, "
            "max_drawdown_percent = excluded.max_drawdown_percent, "
            "sharpe_ratio = excluded.sharpe_ratio, "
            "win_rate = excluded.win_rate, "
            "total_trades = excluded.total_trades, "
            "winning_trades = excluded.winning_trades, "
            "losing_trades = excluded.losing_trades, "
            "average_win = excluded.average_win, "
            "average_loss = excluded.average_loss",
            (
                metric.portfolio_id,
                metric.period_type.value,
                metric.period_date.isoformat(),
                str(metric.portfolio_value),
                str(metric.period_return_percent),
                str(metric.total_return_percent),
                str(metric.max_drawdown_percent),
                _text(metric.sharpe_ratio),
                _text(metric.win_rate),
                metric.total_trades,
                metric.winning_trades,
                metric.losing_trades,
                _text(metric.average_win),
                _text(metric.average_loss),
            ),
        )
        await self._database.db.commit()
        logger.debug(
            "metric_upserted",
            portfolio_id=metric.portfolio_id,
            period_type=metric.period_type.value,
            period_date=metric.period_date.isoformat(),
        )

    async def get_metric(
        self, portfolio_id: int, period_type: PeriodType, period_date: date
    ) -> PerformanceMetric | None:
        cursor = await self._database.db.execute(
            f"SELECT {_METRIC_COLUMNS} FROM performance_metrics "
            "WHERE portfolio_id = ? AND period_type = ? AND period_date = ?",
            (portfolio_id, period_type.value, period_date.isoformat()),
        )
        row = await cursor.fetchone()
        return _row_to_metric(row) if row is not None else None

    async def get_latest_metric_before(
        self, portfolio_id: int, period_type: PeriodType, before: date
    ) -> PerformanceMetric | None:
        """Most recent row of the given period type strictly before ``before``."""
        cursor = await self._database.db.execute(
            f"SELECT {_METRIC_COLUMNS} FROM performance_metrics "
            "WHERE portfolio_id = ? AND period_type = ? AND period_date < ? "
            "ORDER BY period_date DESC LIMIT 1",
            (portfolio_id, period_type.value, before.isoformat()),
        )
        row = await cursor.fetchone()
        return _row_to_metric(row) if row is not None else None

    async def get_metrics_between(
        self, portfolio_id: int, period_type: PeriodType, start: date, end: date
    ) -> list[PerformanceMetric]:
        """Rows with start <= period_date <= end, oldest first."""
        cursor = await self._database.db.execute(
            f"SELECT {_METRIC_COLUMNS} FROM performance_metrics "
            "WHERE portfolio_id = ? AND period_type = ? AND period_date >= ? AND period_date <= ? "
            "ORDER BY period_date ASC",
            (portfolio_id, period_type.value, start.isoformat(), end.isoformat()),
        )
        return [_row_to_metric(row) for row in await cursor.fetchall()]

    # ──────────────────────────────────────────────
    # Trades
    # ──────────────────────────────────────────────

    async def insert_trade(self, trade: TradeRecord) -> None:
        await self._database.db.execute(
            f"INSERT INTO trade_history ({_TRADE_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
            (
                trade.portfolio_id,
                trade.strategy_id,
                trade.symbol,
                str(trade.quantity),
                str(trade.entry_price),
                str(trade.exit_price),
                str(trade.realized_pl),
                str(trade.realized_pl_percent),
                trade.holding_period_days,
                trade.exit_date.isoformat(),
            ),
        )
        await self._database.db.commit()

    async def get_trades_closed_between(
        self, portfolio_id: int, start: date, end: date
    ) -> list[TradeRecord]:
        """Closed trades with start <= exit_date <= end, in exit order."""
        cursor = await self._database.db.execute(
            f"SELECT {_TRADE_COLUMNS} FROM trade_history "
            "WHERE portfolio_id = ? AND exit_date >= ? AND exit_date <= ? "
            "ORDER BY exit_date ASC, trade_id ASC",
            (portfolio_id, start.isoformat(), end.isoformat()),
        )
        return [_row_to_trade(row) for row in await cursor.fetchall()]

    # ──────────────────────────────────────────────
    # Price bars
    # ──────────────────────────────────────────────

    async def insert_price_bar(
        self, symbol: str, bar: PricePoint, indicators: IndicatorSet | None = None
    ) -> bool:
        """Insert a bar with its indicators, ignoring duplicates via INSERT OR IGNORE.

        Stored bars are immutable; returns False if the bar already existed.
        """
        cursor = await self._database.db.execute(
            "INSERT OR IGNORE INTO price_bars "
            "(symbol, timestamp, open, high, low, close, volume, indicators) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
            (
                symbol,
                _timestamp(bar.timestamp),
                str(bar.open),
                str(bar.high),
                str(bar.low),
                str(bar.close),
                str(bar.volume),
                _indicators_to_json(indicators),
            ),
        )
        await self._database.db.commit()
        inserted = cursor.rowcount > 0
        if not inserted:
            logger.debug("price_bar_exists", symbol=symbol, timestamp=_timestamp(bar.timestamp))
        return inserted

    async def get_price_history(
        self,
        symbol: str,
        since: datetime | None = None,
        until: datetime | None = None,
    ) -> list[PricePoint]:
        """Query bars for a symbol within an optional time range, oldest first."""
        rows = await self._select_bars(symbol, since, until)
        return [_row_to_bar(row) for row in rows]

    async def get_indicators(self, symbol: str, timestamp: datetime) -> IndicatorSet | None:
        cursor = await self._database.db.execute(
            "SELECT indicators FROM price_bars WHERE symbol = ? AND timestamp = ?",
            (symbol, _timestamp(timestamp)),
        )
        row = await cursor.fetchone()
        return _indicators_from_json(row[0]) if row is not None else None

    async def _select_bars(
        self, symbol: str, since: datetime | None, until: datetime | None
    ) -> list:
        conditions = ["symbol = ?"]
        params: list = [symbol]

        if since is not None:
            conditions.append("timestamp >= ?")
            params.append(_timestamp(since))
        if until is not None:
            conditions.append("timestamp <= ?")
            params.append(_timestamp(until))

        where = " AND ".join(conditions)
        cursor = await self._database.db.execute(
            f"SELECT timestamp, open, high, low, close, volume "
            f"FROM price_bars WHERE {where} ORDER BY timestamp ASC",
            params,
        )
        return list(await cursor.fetchall())

    # ──────────────────────────────────────────────
    # Audit log
    # ──────────────────────────────────────────────

    async def get_audit_log(self, portfolio_id: int) -> list[dict]:
        """Audit entries for a portfolio, oldest first.

        Returns list of dicts with action, details (decoded JSON) and created_at.
        """
        cursor = await self._database.db.execute(
            "SELECT action, details, created_at FROM audit_log "
            "WHERE portfolio_id = ? ORDER BY audit_id ASC",
            (portfolio_id,),
        )
        rows = await cursor.fetchall()
        return [
            {"action": row[0], "details": json.loads(row[1]), "created_at": row[2]}
            for row in rows
        ]

    async def _insert_audit(self, portfolio_id: int, action: str, details: dict) -> None:
        await self._database.db.execute(
            "INSERT INTO audit_log (portfolio_id, action, details, created_at) "
            "VALUES (?, ?, ?, ?)",
            (
                portfolio_id,
                action,
                json.dumps(details),
                datetime.now(timezone.utc).isoformat(),
            ),
        )
