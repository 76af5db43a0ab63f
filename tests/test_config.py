"""Tests for settings defaults, env overrides and threshold validation."""

from decimal import Decimal

import pytest
from pydantic import ValidationError

from riskbot.config import AppSettings, RiskSettings, ValidationSettings


class TestSettings:
    def test_defaults(self) -> None:
        risk = RiskSettings()
        assert risk.drawdown_warning_threshold == Decimal("-15")
        assert risk.drawdown_halt_threshold == Decimal("-20")
        assert risk.daily_loss_warning_threshold == Decimal("-4")
        assert risk.daily_loss_halt_threshold == Decimal("-5")
        assert ValidationSettings().min_cash_percent is None

    def test_env_override(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("RISK_DRAWDOWN_HALT_THRESHOLD", "-25")
        assert RiskSettings().drawdown_halt_threshold == Decimal("-25")

    def test_halt_must_be_beyond_warning(self) -> None:
        with pytest.raises(ValidationError):
            RiskSettings(drawdown_warning_threshold=Decimal("-20"), drawdown_halt_threshold=Decimal("-15"))

    def test_thresholds_must_not_be_positive(self) -> None:
        with pytest.raises(ValidationError):
            RiskSettings(daily_loss_warning_threshold=Decimal("4"))

    def test_app_settings_compose(self, mock_settings: AppSettings) -> None:
        assert mock_settings.performance.benchmark_symbols == ["SPY", "QQQ"]
        assert mock_settings.storage.db_path.endswith("portfolio.db")
