"""Shared test fixtures for the portfolio risk engine."""

import logging
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest
import structlog

from riskbot.config import AppSettings, PerformanceSettings, RiskSettings, StorageSettings
from riskbot.models import PortfolioSnapshot, PricePoint


@pytest.fixture
def mock_settings(tmp_path) -> AppSettings:
    """Return AppSettings with test defaults (temp db path)."""
    return AppSettings(
        log_level="DEBUG",
        risk=RiskSettings(),
        performance=PerformanceSettings(benchmark_symbols=["SPY", "QQQ"]),
        storage=StorageSettings(db_path=str(tmp_path / "portfolio.db")),
    )


@pytest.fixture
def snapshot() -> PortfolioSnapshot:
    """A fresh, unhalted portfolio at its initial capital."""
    return PortfolioSnapshot(
        portfolio_id=1,
        name="test",
        initial_capital=Decimal("10000"),
        current_equity=Decimal("10000"),
        current_cash=Decimal("5000"),
        buying_power=Decimal("10000"),
        peak_value=Decimal("10000"),
    )


def _make_bars(
    closes: list[str | int | Decimal],
    start: datetime = datetime(2024, 1, 2, tzinfo=timezone.utc),
) -> list[PricePoint]:
    """Daily bars with the given closes (open/high/low derived from close)."""
    bars = []
    for i, close in enumerate(closes):
        c = Decimal(str(close))
        bars.append(
            PricePoint(
                timestamp=start + timedelta(days=i),
                open=c,
                high=c,
                low=c,
                close=c,
                volume=Decimal("1000"),
            )
        )
    return bars


@pytest.fixture
def make_bars():
    return _make_bars


@pytest.fixture
def restore_logging():
    """Undo setup_logging's changes to the root logger and structlog config."""
    root = logging.getLogger()
    level = root.level
    yield
    for handler in root.handlers[:]:
        if isinstance(handler.formatter, structlog.stdlib.ProcessorFormatter):
            root.removeHandler(handler)
    root.setLevel(level)
    structlog.reset_defaults()
