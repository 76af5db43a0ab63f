"""Incremental per-symbol indicator state for bar-by-bar ingestion.

Keeps the trailing EMA, Wilder RSI and MACD state for each symbol so a new
bar costs O(1) instead of a rescan of the full history. Every value matches
compute_indicators() over the same history exactly: both paths share the
Decimal step helpers from the calculator module and apply them in the same
order.
"""

from collections import deque
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal

from riskbot.exceptions import InvalidInputError
from riskbot.indicators.calculator import (
    EMA_FAST_PERIOD,
    EMA_SLOW_PERIOD,
    MACD_SIGNAL_MIN_BARS,
    MACD_SIGNAL_PERIOD,
    RSI_PERIOD,
    SMA_PERIODS,
    _ema_multiplier,
    _ema_step,
    _mean,
    _rsi_from_averages,
    _wilder_step,
)
from riskbot.indicators.models import IndicatorSet
from riskbot.logging import get_logger
from riskbot.models import PricePoint, as_utc, quantize_indicator

logger = get_logger(__name__)

_ZERO = Decimal("0")


class _EmaState:
    """EMA seeded by the SMA of its first ``period`` inputs."""

    def __init__(self, period: int) -> None:
        self._period = period
        self._multiplier = _ema_multiplier(period)
        self._seed: list[Decimal] = []
        self.value: Decimal | None = None

    def update(self, price: Decimal) -> Decimal | None:
        if self.value is None:
            self._seed.append(price)
            if len(self._seed) == self._period:
                self.value = _mean(self._seed)
                self._seed = []
            return self.value
        self.value = _ema_step(price, self.value, self._multiplier)
        return self.value


class _RsiState:
    """Wilder-smoothed average gain/loss."""

    def __init__(self, period: int) -> None:
        self._period = period
        self._gains: list[Decimal] = []
        self._losses: list[Decimal] = []
        self._avg_gain: Decimal | None = None
        self._avg_loss: Decimal | None = None
        self._previous: Decimal | None = None

    def update(self, price: Decimal) -> Decimal | None:
        previous, self._previous = self._previous, price
        if previous is None:
            return None

        change = price - previous
        gain = max(change, _ZERO)
        loss = max(-change, _ZERO)

        if self._avg_gain is None or self._avg_loss is None:
            self._gains.append(gain)
            self._losses.append(loss)
            if len(self._gains) < self._period:
                return None
            self._avg_gain = _mean(self._gains)
            self._avg_loss = _mean(self._losses)
            self._gains, self._losses = [], []
        else:
            self._avg_gain = _wilder_step(self._avg_gain, gain, self._period)
            self._avg_loss = _wilder_step(self._avg_loss, loss, self._period)

        return _rsi_from_averages(self._avg_gain, self._avg_loss)


@dataclass
class _SymbolState:
    window: deque[Decimal] = field(default_factory=lambda: deque(maxlen=max(SMA_PERIODS)))
    rsi: _RsiState = field(default_factory=lambda: _RsiState(RSI_PERIOD))
    ema_fast: _EmaState = field(default_factory=lambda: _EmaState(EMA_FAST_PERIOD))
    ema_slow: _EmaState = field(default_factory=lambda: _EmaState(EMA_SLOW_PERIOD))
    signal: _EmaState = field(default_factory=lambda: _EmaState(MACD_SIGNAL_PERIOD))
    bar_count: int = 0
    last_timestamp: datetime | None = None


def _sma_from_window(window: deque[Decimal], period: int) -> Decimal | None:
    if len(window) < period:
        return None
    return quantize_indicator(_mean(list(window)[-period:]))


class IndicatorTracker:
    """Per-symbol incremental indicator computation.

    Usage:
        tracker = IndicatorTracker()
        tracker.seed("SPY", stored_history)
        indicators = tracker.update("SPY", new_bar)
    """

    def __init__(self) -> None:
        self._states: dict[str, _SymbolState] = {}

    def has_state(self, symbol: str) -> bool:
        return symbol in self._states

    def last_timestamp(self, symbol: str) -> datetime | None:
        state = self._states.get(symbol)
        return state.last_timestamp if state is not None else None

    def reset(self, symbol: str) -> None:
        """Drop cached state so the next seed() replays history from scratch."""
        self._states.pop(symbol, None)

    def seed(self, symbol: str, history: Sequence[PricePoint]) -> IndicatorSet | None:
        """Replace the symbol's state by replaying stored history.

        Returns the IndicatorSet of the last replayed bar, or None if the
        history is empty.
        """
        self._states[symbol] = _SymbolState()
        result: IndicatorSet | None = None
        for bar in history:
            result = self.update(symbol, bar)
        logger.debug("indicator_state_seeded", symbol=symbol, bars=len(history))
        return result

    def update(self, symbol: str, bar: PricePoint) -> IndicatorSet:
        """Fold one new bar into the symbol's state and return its indicators.

        Raises:
            InvalidInputError: If the bar is not newer than the last one seen.
        """
        state = self._states.setdefault(symbol, _SymbolState())
        timestamp = as_utc(bar.timestamp)
        if state.last_timestamp is not None and timestamp <= state.last_timestamp:
            raise InvalidInputError(
                f"{symbol}: bar at {timestamp} is not after {state.last_timestamp}"
            )

        price = bar.close
        state.bar_count += 1
        state.last_timestamp = timestamp
        state.window.append(price)

        rsi_value = state.rsi.update(price)
        fast = state.ema_fast.update(price)
        slow = state.ema_slow.update(price)

        macd_value: Decimal | None = None
        signal_value: Decimal | None = None
        if fast is not None and slow is not None:
            macd_value = fast - slow
            signal_value = state.signal.update(macd_value)

        short, medium, long_ = SMA_PERIODS
        show_signal = signal_value is not None and state.bar_count >= MACD_SIGNAL_MIN_BARS

        return IndicatorSet(
            rsi14=rsi_value,
            sma20=_sma_from_window(state.window, short),
            sma50=_sma_from_window(state.window, medium),
            sma200=_sma_from_window(state.window, long_),
            ema12=quantize_indicator(fast) if fast is not None else None,
            ema26=quantize_indicator(slow) if slow is not None else None,
            macd=quantize_indicator(macd_value) if macd_value is not None else None,
            macd_signal=quantize_indicator(signal_value) if show_signal else None,  # type: ignore[arg-type]
            macd_histogram=(
                quantize_indicator(macd_value - signal_value)  # type: ignore[operator]
                if show_signal
                else None
            ),
        )
