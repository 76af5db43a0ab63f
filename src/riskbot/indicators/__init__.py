"""Technical indicator calculation.

Provides the pure from-scratch calculator (SMA, EMA, Wilder RSI, MACD), the
IndicatorSet model persisted alongside each price bar, and the incremental
IndicatorTracker used during bar ingestion.
"""

from riskbot.indicators.calculator import (
    compute_indicators,
    ema,
    ema_series,
    macd,
    rsi,
    sma,
)
from riskbot.indicators.models import IndicatorSet, MACDResult
from riskbot.indicators.tracker import IndicatorTracker

__all__ = [
    "IndicatorSet",
    "IndicatorTracker",
    "MACDResult",
    "compute_indicators",
    "ema",
    "ema_series",
    "macd",
    "rsi",
    "sma",
]
