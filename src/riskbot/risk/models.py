"""Risk state and alert models."""

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum


class Severity(str, Enum):
    """Risk severity. HALTED is sticky until a manual resume."""

    OK = "OK"
    WARNING = "WARNING"
    HALTED = "HALTED"

    @property
    def rank(self) -> int:
        return _SEVERITY_RANK[self]


_SEVERITY_RANK = {Severity.OK: 0, Severity.WARNING: 1, Severity.HALTED: 2}


class AlertKind(str, Enum):
    """Alert categories; the dedupe key is built from kind and date."""

    DRAWDOWN_WARNING = "DrawdownWarning"
    DAILY_LOSS_WARNING = "DailyLossWarning"
    DRAWDOWN_HALT = "DrawdownHalt"
    DAILY_LOSS_HALT = "DailyLossHalt"
    RECOVERY = "RecoveryNotified"


class AlertPriority(str, Enum):
    """Priority handed to the notification sender."""

    CRITICAL = "CRITICAL"
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"


@dataclass(frozen=True)
class RiskAlert:
    """Structured alert content; formatting for delivery is the notifier's concern."""

    kind: AlertKind
    key: str
    priority: AlertPriority
    title: str
    message: str


@dataclass(frozen=True)
class RiskDecision:
    """Outcome of one risk evaluation tick.

    newly_halted is True only on the tick that trips a halt; the caller
    persists the halt flag and reason in that case. Alerts are already
    filtered through the dedupe cache.
    """

    portfolio_id: int
    severity: Severity
    drawdown_percent: Decimal
    daily_loss_percent: Decimal
    drawdown_severity: Severity
    daily_loss_severity: Severity
    halt_reason: str | None = None
    newly_halted: bool = False
    alerts: tuple[RiskAlert, ...] = field(default_factory=tuple)

    @property
    def should_alert(self) -> bool:
        return bool(self.alerts)

    @property
    def alert_key(self) -> str | None:
        return self.alerts[0].key if self.alerts else None
