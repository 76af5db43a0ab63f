"""Configuration system using pydantic-settings with environment variable loading."""

from decimal import Decimal
from typing import Self

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class RiskSettings(BaseSettings):
    """Drawdown and daily-loss thresholds for the risk state machine.

    All thresholds are percentages expressed as negative numbers (a -20
    threshold trips once the loss reaches 20%).
    """

    model_config = SettingsConfigDict(env_prefix="RISK_")

    drawdown_warning_threshold: Decimal = Decimal("-15")
    drawdown_halt_threshold: Decimal = Decimal("-20")
    daily_loss_warning_threshold: Decimal = Decimal("-4")
    daily_loss_halt_threshold: Decimal = Decimal("-5")
    alert_dedupe_ttl_seconds: int = 24 * 60 * 60

    @model_validator(mode="after")
    def _check_threshold_order(self) -> Self:
        for warning, halt in (
            (self.drawdown_warning_threshold, self.drawdown_halt_threshold),
            (self.daily_loss_warning_threshold, self.daily_loss_halt_threshold),
        ):
            if not halt < warning <= 0:
                raise ValueError(
                    f"Thresholds must satisfy halt < warning <= 0, got halt={halt} warning={warning}"
                )
        return self


class ValidationSettings(BaseSettings):
    """Default limits applied by the trade validator."""

    model_config = SettingsConfigDict(env_prefix="VALIDATION_")

    max_position_percent: Decimal = Decimal("10")
    max_positions: int = 10
    max_daily_loss_percent: Decimal = Decimal("5")
    max_daily_trades: int = 20
    drawdown_halt_threshold: Decimal = Decimal("-20")
    min_cash_percent: Decimal | None = None  # cash reserve rule disabled when None
    pdt_equity_threshold: Decimal = Decimal("25000")
    pdt_day_trade_limit: int = 3  # day trades in 5 days that block the next one


class PerformanceSettings(BaseSettings):
    """Performance statistics parameters."""

    model_config = SettingsConfigDict(env_prefix="PERFORMANCE_")

    risk_free_rate: Decimal = Decimal("0.05")  # annual, as a fraction
    trading_days_per_year: int = 252
    benchmark_symbols: list[str] = ["SPY", "QQQ"]


class StorageSettings(BaseSettings):
    """SQLite persistence configuration."""

    model_config = SettingsConfigDict(env_prefix="STORAGE_")

    db_path: str = "data/portfolio.db"


class AppSettings(BaseSettings):
    """Root application settings, composing all sub-settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
    )

    log_level: str = "INFO"
    risk: RiskSettings = RiskSettings()
    validation: ValidationSettings = ValidationSettings()
    performance: PerformanceSettings = PerformanceSettings()
    storage: StorageSettings = StorageSettings()
