"""Drawdown and daily-loss risk state machine.

Two independent severity tracks are evaluated every monitoring tick:
  - Peak drawdown: WARNING at <= -15%, HALTED at <= -20%
  - Daily loss vs the day's opening value: WARNING at <= -4%, HALTED at <= -5%

HALTED is sticky. Once a portfolio is paused, later ticks never clear it,
however far equity recovers; only a manual resume does. WARNING is
advisory: recomputed each tick, alerted at most once per calendar day per
alert kind through the dedupe cache, and a recovery above the warning line
is only logged.

The state machine does no I/O. The caller persists the halt when
decision.newly_halted is set, delivers decision.alerts, and calls
record_alert_sent() for each alert that was actually delivered.
"""

from collections.abc import Callable
from datetime import datetime, time, timedelta, timezone
from decimal import Decimal

from riskbot.analytics.metrics import drawdown_percent
from riskbot.config import RiskSettings
from riskbot.logging import get_logger
from riskbot.models import PortfolioSnapshot, quantize_percent
from riskbot.risk.alert_cache import AlertCache
from riskbot.risk.models import AlertKind, AlertPriority, RiskAlert, RiskDecision, Severity

logger = get_logger(__name__)

_ZERO = Decimal("0")
_HUNDRED = Decimal("100")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def classify(value: Decimal, warning_threshold: Decimal, halt_threshold: Decimal) -> Severity:
    """Map a non-positive loss percentage onto a severity."""
    if value <= halt_threshold:
        return Severity.HALTED
    if value <= warning_threshold:
        return Severity.WARNING
    return Severity.OK


def daily_loss_percent(current_equity: Decimal, day_start_value: Decimal) -> Decimal:
    """Unrounded change vs the day's opening value (0 without an opening value)."""
    if day_start_value <= _ZERO:
        return _ZERO
    return (current_equity - day_start_value) / day_start_value * _HUNDRED


class RiskStateMachine:
    """Classifies drawdown/daily-loss severity and decides which alerts to emit.

    Args:
        settings: Warning/halt thresholds and cache TTLs.
        alert_cache: Dedupe cache shared across ticks.
        clock: Returns the current UTC datetime; the date part keys dedupe
            entries and the daily open value.
    """

    def __init__(
        self,
        settings: RiskSettings,
        alert_cache: AlertCache,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._settings = settings
        self._cache = alert_cache
        self._clock = clock

    def _date_key(self) -> str:
        return self._clock().strftime("%Y-%m-%d")

    def alert_key(self, kind: AlertKind, portfolio_id: int) -> str:
        return f"{kind.value}_{portfolio_id}_{self._date_key()}"

    def _seconds_until_midnight(self) -> float:
        now = self._clock().astimezone(timezone.utc)
        midnight = datetime.combine(now.date() + timedelta(days=1), time.min, timezone.utc)
        return max((midnight - now).total_seconds(), 1.0)

    def daily_open_value(self, portfolio_id: int, current_equity: Decimal) -> Decimal:
        """Return today's opening value, capturing ``current_equity`` on the first read."""
        key = f"DailyOpenValue_{portfolio_id}_{self._date_key()}"
        cached = self._cache.get_decimal(key)
        if cached is not None and cached > _ZERO:
            return cached

        self._cache.set(key, current_equity, self._seconds_until_midnight())
        logger.info(
            "daily_open_value_cached",
            portfolio_id=portfolio_id,
            value=str(current_equity),
        )
        return current_equity

    def evaluate(
        self,
        snapshot: PortfolioSnapshot,
        day_start_value: Decimal,
        previous_drawdown_percent: Decimal | None = None,
    ) -> RiskDecision:
        """Evaluate both severity tracks for the snapshot's current equity.

        Args:
            snapshot: Portfolio record with current equity and peak applied.
            day_start_value: Portfolio value at the start of the trading day.
            previous_drawdown_percent: Drawdown recorded on the previous tick,
                used only to log recovery above the warning threshold.

        Returns:
            RiskDecision with severity, halt reason and deduped alerts.
        """
        s = self._settings
        drawdown = drawdown_percent(snapshot.current_equity, snapshot.peak_value)
        daily_loss = daily_loss_percent(snapshot.current_equity, day_start_value)

        drawdown_severity = classify(
            drawdown, s.drawdown_warning_threshold, s.drawdown_halt_threshold
        )
        daily_severity = classify(
            daily_loss, s.daily_loss_warning_threshold, s.daily_loss_halt_threshold
        )

        logger.info(
            "risk_check",
            portfolio_id=snapshot.portfolio_id,
            equity=str(snapshot.current_equity),
            drawdown=f"{drawdown:.2f}",
            daily_loss=f"{daily_loss:.2f}",
            halted=snapshot.is_trading_paused,
        )

        base = dict(
            portfolio_id=snapshot.portfolio_id,
            drawdown_percent=quantize_percent(drawdown),
            daily_loss_percent=quantize_percent(daily_loss),
            drawdown_severity=drawdown_severity,
            daily_loss_severity=daily_severity,
        )

        if snapshot.is_trading_paused:
            return RiskDecision(
                severity=Severity.HALTED,
                halt_reason=snapshot.paused_reason,
                alerts=self._recovery_alerts(snapshot, drawdown),
                **base,  # type: ignore[arg-type]
            )

        if drawdown_severity is Severity.HALTED:
            reason = (
                f"peak drawdown of {drawdown:.2f}% exceeded "
                f"{s.drawdown_halt_threshold}% threshold"
            )
            alert = self._halt_alert(snapshot, AlertKind.DRAWDOWN_HALT, "peak drawdown", drawdown)
            return self._halted(reason, alert, base)

        if daily_severity is Severity.HALTED:
            reason = (
                f"daily loss of {daily_loss:.2f}% exceeded "
                f"{s.daily_loss_halt_threshold}% threshold"
            )
            alert = self._halt_alert(snapshot, AlertKind.DAILY_LOSS_HALT, "daily loss", daily_loss)
            return self._halted(reason, alert, base)

        alerts: list[RiskAlert] = []
        if drawdown_severity is Severity.WARNING:
            logger.warning(
                "drawdown_warning",
                portfolio_id=snapshot.portfolio_id,
                drawdown=f"{drawdown:.2f}",
                halt_threshold=str(s.drawdown_halt_threshold),
            )
            alert = self._warning_alert(
                snapshot,
                AlertKind.DRAWDOWN_WARNING,
                "Drawdown Warning",
                f"Portfolio drawdown is approaching the halt threshold.\n\n"
                f"Current Drawdown: {drawdown:.2f}%\n"
                f"Halt Threshold: {s.drawdown_halt_threshold}%\n"
                f"Current Equity: {snapshot.current_equity:,.2f}\n"
                f"Peak Value: {snapshot.peak_value:,.2f}\n\n"
                f"Trading will halt automatically at {s.drawdown_halt_threshold}%.",
            )
            if alert is not None:
                alerts.append(alert)

        if daily_severity is Severity.WARNING:
            logger.warning(
                "daily_loss_warning",
                portfolio_id=snapshot.portfolio_id,
                daily_loss=f"{daily_loss:.2f}",
                halt_threshold=str(s.daily_loss_halt_threshold),
            )
            alert = self._warning_alert(
                snapshot,
                AlertKind.DAILY_LOSS_WARNING,
                "Daily Loss Warning",
                f"Daily loss is approaching the halt threshold.\n\n"
                f"Today's Loss: {daily_loss:.2f}%\n"
                f"Halt Threshold: {s.daily_loss_halt_threshold}%\n"
                f"Current Equity: {snapshot.current_equity:,.2f}\n\n"
                f"Trading will halt automatically at {s.daily_loss_halt_threshold}% daily loss.",
            )
            if alert is not None:
                alerts.append(alert)

        if (
            previous_drawdown_percent is not None
            and previous_drawdown_percent <= s.drawdown_warning_threshold
            and drawdown > s.drawdown_warning_threshold
        ):
            logger.info(
                "drawdown_recovered",
                portfolio_id=snapshot.portfolio_id,
                drawdown=f"{drawdown:.2f}",
                warning_threshold=str(s.drawdown_warning_threshold),
            )

        severity = max(drawdown_severity, daily_severity, key=lambda sev: sev.rank)
        return RiskDecision(severity=severity, alerts=tuple(alerts), **base)  # type: ignore[arg-type]

    def record_alert_sent(self, alert: RiskAlert) -> None:
        """Mark an alert as delivered so the same kind is not re-sent today."""
        self._cache.mark_sent(alert.key, self._settings.alert_dedupe_ttl_seconds)

    def _halted(self, reason: str, alert: RiskAlert, base: dict) -> RiskDecision:
        logger.critical("trading_halt_triggered", portfolio_id=base["portfolio_id"], reason=reason)
        return RiskDecision(
            severity=Severity.HALTED,
            halt_reason=reason,
            newly_halted=True,
            alerts=(alert,),
            **base,
        )

    def _halt_alert(
        self,
        snapshot: PortfolioSnapshot,
        kind: AlertKind,
        loss_type: str,
        loss: Decimal,
    ) -> RiskAlert:
        # Halts are never deduped: every transition into HALTED is reported.
        return RiskAlert(
            kind=kind,
            key=self.alert_key(kind, snapshot.portfolio_id),
            priority=AlertPriority.CRITICAL,
            title=f"TRADING HALTED - {loss_type.upper()} EXCEEDED",
            message=(
                f"Trading has been halted due to {loss_type}.\n\n"
                f"Loss: {loss:.2f}%\n"
                f"Current Equity: {snapshot.current_equity:,.2f}\n"
                f"Peak Value: {snapshot.peak_value:,.2f}\n"
                f"Initial Capital: {snapshot.initial_capital:,.2f}\n\n"
                f"Manual review is required before resuming trading.\n\n"
                f"Time: {self._clock():%Y-%m-%d %H:%M:%S} UTC"
            ),
        )

    def _warning_alert(
        self,
        snapshot: PortfolioSnapshot,
        kind: AlertKind,
        title: str,
        message: str,
    ) -> RiskAlert | None:
        key = self.alert_key(kind, snapshot.portfolio_id)
        if self._cache.was_sent(key):
            logger.debug("alert_already_sent_today", key=key)
            return None
        return RiskAlert(
            kind=kind, key=key, priority=AlertPriority.HIGH, title=title, message=message
        )

    def _recovery_alerts(
        self, snapshot: PortfolioSnapshot, drawdown: Decimal
    ) -> tuple[RiskAlert, ...]:
        threshold = self._settings.drawdown_warning_threshold
        logger.info(
            "halted_recovery_check",
            portfolio_id=snapshot.portfolio_id,
            drawdown=f"{drawdown:.2f}",
            reason=snapshot.paused_reason,
        )
        if drawdown <= threshold:
            return ()

        key = self.alert_key(AlertKind.RECOVERY, snapshot.portfolio_id)
        if self._cache.was_sent(key):
            return ()
        return (
            RiskAlert(
                kind=AlertKind.RECOVERY,
                key=key,
                priority=AlertPriority.MEDIUM,
                title="Portfolio Recovery Detected",
                message=(
                    f"The portfolio has recovered above the warning threshold.\n\n"
                    f"Current Drawdown: {drawdown:.2f}%\n"
                    f"Warning Threshold: {threshold}%\n"
                    f"Current Equity: {snapshot.current_equity:,.2f}\n\n"
                    f"Trading is still HALTED. Manual review and resume required."
                ),
            ),
        )
