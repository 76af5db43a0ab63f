"""Portfolio monitor -- wires the store, calculators and risk state machine.

Exposes the entry points an external scheduler calls:
  - sync_account:       apply a broker snapshot, then run the risk check
  - check_drawdown:     5-minute risk tick (halt persistence + alerts)
  - check_all_portfolios: the same tick over every active portfolio
  - calculate_*_metrics: daily/weekly/monthly performance rows (upserts)
  - compare_to_benchmarks: total return and alpha vs benchmark symbols
  - ingest_price_bars:  store new bars with incrementally computed indicators
  - resume_trading / reset_peak: manual operator actions

Every job touching a portfolio takes an explicit portfolio_id and runs
under that portfolio's asyncio.Lock, so a sync and a risk tick never
interleave their read-modify-write of the same record.

A halt is persisted before any alert is sent, and a failed alert never
undoes it.
"""

import asyncio
from collections import defaultdict
from collections.abc import Callable, Mapping, Sequence
from dataclasses import replace
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Protocol

from riskbot.analytics.models import BenchmarkComparison
from riskbot.analytics.metrics import drawdown_percent
from riskbot.analytics.performance import PerformanceCalculator, month_start, week_start
from riskbot.config import AppSettings
from riskbot.data.store import PortfolioStore
from riskbot.indicators.tracker import IndicatorTracker
from riskbot.logging import bound_context, get_logger
from riskbot.models import (
    AccountSnapshot,
    PerformanceMetric,
    PeriodType,
    PortfolioSnapshot,
    PricePoint,
    as_utc,
    quantize_percent,
)
from riskbot.risk.alert_cache import AlertCache
from riskbot.risk.models import AlertPriority, RiskAlert, RiskDecision
from riskbot.risk.state_machine import RiskStateMachine

logger = get_logger(__name__)


class Notifier(Protocol):
    """Delivers alerts to the operator (email, chat, pager...)."""

    async def send_alert(self, title: str, body: str, priority: AlertPriority) -> None: ...


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def apply_account(snapshot: PortfolioSnapshot, account: AccountSnapshot) -> PortfolioSnapshot:
    """Fold live account numbers into the portfolio record in place.

    The peak only ever rises here; lowering it takes an explicit reset.
    """
    snapshot.current_equity = account.equity
    snapshot.current_cash = account.cash
    snapshot.buying_power = account.buying_power
    if account.equity > snapshot.peak_value:
        snapshot.peak_value = account.equity
    snapshot.current_drawdown_percent = quantize_percent(
        drawdown_percent(snapshot.current_equity, snapshot.peak_value)
    )
    snapshot.last_synced_at = account.as_of
    return snapshot


class PortfolioMonitor:
    """Scheduled monitoring jobs for one or more portfolios.

    Args:
        store: Persistence for portfolios, metrics, trades and bars.
        notifier: Alert delivery collaborator.
        settings: Application settings (risk thresholds, Sharpe inputs,
            benchmark symbols).
        alert_cache: Dedupe cache; a fresh one is created if omitted.
        clock: Returns the current UTC datetime.
    """

    def __init__(
        self,
        store: PortfolioStore,
        notifier: Notifier,
        settings: AppSettings | None = None,
        alert_cache: AlertCache | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._settings = settings or AppSettings()
        self._store = store
        self._notifier = notifier
        self._clock = clock
        self._alert_cache = alert_cache or AlertCache()
        self._risk = RiskStateMachine(self._settings.risk, self._alert_cache, clock)
        self._performance = PerformanceCalculator(self._settings.performance)
        self._tracker = IndicatorTracker()
        self._locks: defaultdict[int, asyncio.Lock] = defaultdict(asyncio.Lock)

    # ──────────────────────────────────────────────
    # Account sync and risk checks
    # ──────────────────────────────────────────────

    async def sync_account(self, portfolio_id: int, account: AccountSnapshot) -> RiskDecision:
        """Apply the broker snapshot, persist it, then evaluate risk."""
        with bound_context(portfolio_id=portfolio_id, job="sync_account"):
            async with self._locks[portfolio_id]:
                snapshot = await self._store.get_portfolio(portfolio_id)
                previous_drawdown = snapshot.current_drawdown_percent
                apply_account(snapshot, account)
                await self._store.save_portfolio(snapshot)
                logger.info(
                    "account_synced",
                    equity=str(snapshot.current_equity),
                    cash=str(snapshot.current_cash),
                    peak=str(snapshot.peak_value),
                    drawdown=str(snapshot.current_drawdown_percent),
                )
                return await self._evaluate(snapshot, previous_drawdown)

    async def check_drawdown(
        self, portfolio_id: int, account: AccountSnapshot | None = None
    ) -> RiskDecision:
        """Risk tick: evaluate the latest equity against both severity tracks.

        With ``account`` the live numbers are applied and persisted first;
        without it the stored record is evaluated as is.
        """
        with bound_context(portfolio_id=portfolio_id, job="check_drawdown"):
            async with self._locks[portfolio_id]:
                snapshot = await self._store.get_portfolio(portfolio_id)
                previous_drawdown = snapshot.current_drawdown_percent
                if account is not None:
                    apply_account(snapshot, account)
                    await self._store.save_portfolio(snapshot)
                return await self._evaluate(snapshot, previous_drawdown)

    async def check_all_portfolios(self) -> dict[int, RiskDecision]:
        """Risk tick over the stored record of every active portfolio.

        A failure for one portfolio is logged and the rest still run.
        """
        decisions: dict[int, RiskDecision] = {}
        for portfolio_id in await self._store.get_active_portfolio_ids():
            try:
                decisions[portfolio_id] = await self.check_drawdown(portfolio_id)
            except Exception as e:
                logger.error(
                    "risk_check_failed", portfolio_id=portfolio_id, error=str(e), exc_info=True
                )
        return decisions

    async def resume_trading(self, portfolio_id: int, resumed_by: str = "manual") -> None:
        """Manual resume; the only path that clears a halt."""
        with bound_context(portfolio_id=portfolio_id, job="resume_trading"):
            async with self._locks[portfolio_id]:
                await self._store.resume_trading(portfolio_id, resumed_by)

    async def reset_peak(self, portfolio_id: int) -> PortfolioSnapshot:
        with bound_context(portfolio_id=portfolio_id, job="reset_peak"):
            async with self._locks[portfolio_id]:
                return await self._store.reset_peak(portfolio_id)

    async def _evaluate(
        self, snapshot: PortfolioSnapshot, previous_drawdown: Decimal
    ) -> RiskDecision:
        purged = self._alert_cache.purge_expired()
        if purged:
            logger.debug("alert_cache_purged", entries=purged)
        day_open = self._risk.daily_open_value(snapshot.portfolio_id, snapshot.current_equity)
        decision = self._risk.evaluate(snapshot, day_open, previous_drawdown)

        if decision.newly_halted:
            snapshot.is_trading_paused = True
            snapshot.paused_reason = decision.halt_reason
            await self._store.halt_trading(snapshot, decision.halt_reason or "")

        await self._deliver(decision.alerts)
        return decision

    async def _deliver(self, alerts: Sequence[RiskAlert]) -> None:
        for alert in alerts:
            try:
                await self._notifier.send_alert(alert.title, alert.message, alert.priority)
            except Exception as e:
                logger.error(
                    "alert_send_failed",
                    key=alert.key,
                    priority=alert.priority.value,
                    error=str(e),
                    exc_info=True,
                )
                continue
            self._risk.record_alert_sent(alert)
            logger.info("alert_sent", key=alert.key, priority=alert.priority.value)

    # ──────────────────────────────────────────────
    # Performance metrics
    # ──────────────────────────────────────────────

    async def calculate_daily_metrics(
        self, portfolio_id: int, as_of: date | None = None
    ) -> PerformanceMetric:
        day = as_of or self._clock().date()
        with bound_context(portfolio_id=portfolio_id, job="daily_metrics"):
            async with self._locks[portfolio_id]:
                snapshot = await self._store.get_portfolio(portfolio_id)
                prior = await self._store.get_latest_metric_before(
                    portfolio_id, PeriodType.DAILY, day
                )
                trades = await self._store.get_trades_closed_between(portfolio_id, day, day)
                metric = self._performance.compute_daily_metrics(
                    portfolio_id, prior, snapshot, trades, day
                )
                await self._store.upsert_metric(metric)
                return metric

    async def calculate_weekly_metrics(
        self, portfolio_id: int, as_of: date | None = None
    ) -> PerformanceMetric:
        day = as_of or self._clock().date()
        start = week_start(day)
        with bound_context(portfolio_id=portfolio_id, job="weekly_metrics"):
            async with self._locks[portfolio_id]:
                snapshot = await self._store.get_portfolio(portfolio_id)
                prior = await self._store.get_latest_metric_before(
                    portfolio_id, PeriodType.WEEKLY, start
                )
                trades = await self._store.get_trades_closed_between(portfolio_id, start, day)
                dailies = await self._store.get_metrics_between(
                    portfolio_id, PeriodType.DAILY, start, day
                )
                metric = self._performance.compute_weekly_metrics(
                    portfolio_id, prior, snapshot, trades, dailies, day
                )
                await self._store.upsert_metric(metric)
                return metric

    async def calculate_monthly_metrics(
        self, portfolio_id: int, as_of: date | None = None
    ) -> PerformanceMetric:
        day = as_of or self._clock().date()
        start = month_start(day)
        with bound_context(portfolio_id=portfolio_id, job="monthly_metrics"):
            async with self._locks[portfolio_id]:
                snapshot = await self._store.get_portfolio(portfolio_id)
                prior = await self._store.get_latest_metric_before(
                    portfolio_id, PeriodType.MONTHLY, start
                )
                trades = await self._store.get_trades_closed_between(portfolio_id, start, day)
                dailies = await self._store.get_metrics_between(
                    portfolio_id, PeriodType.DAILY, start, day
                )
                metric = self._performance.compute_monthly_metrics(
                    portfolio_id, prior, snapshot, trades, dailies, day
                )
                await self._store.upsert_metric(metric)
                return metric

    async def compare_to_benchmarks(
        self,
        portfolio_id: int,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> BenchmarkComparison:
        """Total return vs each configured benchmark's return over [start, end]."""
        with bound_context(portfolio_id=portfolio_id, job="benchmarks"):
            snapshot = await self._store.get_portfolio(portfolio_id)
            histories: dict[str, list[PricePoint]] = {}
            for symbol in self._settings.performance.benchmark_symbols:
                histories[symbol] = await self._store.get_price_history(symbol, start, end)
            return self._performance.compare_to_benchmarks(snapshot, histories, start, end)

    # ──────────────────────────────────────────────
    # Price bar ingestion
    # ──────────────────────────────────────────────

    async def ingest_price_bars(
        self, bars_by_symbol: Mapping[str, Sequence[PricePoint]]
    ) -> dict[str, int]:
        """Store new bars with their indicators, one symbol at a time.

        A failure for one symbol is logged, its cached indicator state is
        dropped (the next run replays stored history), and the remaining
        symbols still run.

        Returns:
            Number of newly stored bars per symbol (0 for failed symbols).
        """
        results: dict[str, int] = {}
        for symbol, bars in bars_by_symbol.items():
            with bound_context(symbol=symbol, job="ingest_price_bars"):
                try:
                    results[symbol] = await self._ingest_symbol(symbol, bars)
                except Exception as e:
                    logger.error("price_ingest_failed", error=str(e), exc_info=True)
                    self._tracker.reset(symbol)
                    results[symbol] = 0
        logger.info("price_ingest_complete", stored=results)
        return results

    async def _ingest_symbol(self, symbol: str, bars: Sequence[PricePoint]) -> int:
        if not self._tracker.has_state(symbol):
            self._tracker.seed(symbol, await self._store.get_price_history(symbol))

        stored = 0
        normalized = [replace(bar, timestamp=as_utc(bar.timestamp)) for bar in bars]
        for bar in sorted(normalized, key=lambda b: b.timestamp):
            last = self._tracker.last_timestamp(symbol)
            if last is not None and bar.timestamp <= last:
                logger.debug("price_bar_skipped", timestamp=bar.timestamp.isoformat())
                continue
            indicators = self._tracker.update(symbol, bar)
            if await self._store.insert_price_bar(symbol, bar, indicators):
                stored += 1
        return stored
