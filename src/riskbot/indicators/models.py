"""Indicator data models.

CRITICAL: All indicator values use Decimal. None means "not yet available"
(insufficient history), never zero.
"""

from dataclasses import dataclass
from decimal import Decimal


@dataclass(frozen=True)
class MACDResult:
    """MACD line with optional signal and histogram.

    signal and histogram stay None until enough MACD values exist for the
    9-period signal EMA.
    """

    macd: Decimal
    signal: Decimal | None = None
    histogram: Decimal | None = None


@dataclass(frozen=True)
class IndicatorSet:
    """Indicators for a single bar, a pure function of history up to that bar."""

    rsi14: Decimal | None = None
    sma20: Decimal | None = None
    sma50: Decimal | None = None
    sma200: Decimal | None = None
    ema12: Decimal | None = None
    ema26: Decimal | None = None
    macd: Decimal | None = None
    macd_signal: Decimal | None = None
    macd_histogram: Decimal | None = None

    def as_dict(self) -> dict[str, Decimal | None]:
        return {
            "rsi14": self.rsi14,
            "sma20": self.sma20,
            "sma50": self.sma50,
            "sma200": self.sma200,
            "ema12": self.ema12,
            "ema26": self.ema26,
            "macd": self.macd,
            "macd_signal": self.macd_signal,
            "macd_histogram": self.macd_histogram,
        }
