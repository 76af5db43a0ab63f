"""Technical indicator calculator: SMA, EMA, Wilder RSI and MACD.

Pure functions over an ordered list of closing prices (oldest first).
Insufficient history yields None rather than a misleading number.
Intermediate values keep full Decimal precision; only the returned value is
rounded (4 places for SMA/EMA/MACD, 2 places for RSI).

The small step helpers (_ema_multiplier, _ema_step, _mean, _wilder_step) are
shared with IndicatorTracker so the incremental path performs exactly the
same Decimal operations as the from-scratch path.

CRITICAL: All computations use Decimal. Never use float.
"""

from collections.abc import Sequence
from decimal import Decimal

from riskbot.exceptions import InvalidInputError
from riskbot.indicators.models import IndicatorSet, MACDResult
from riskbot.models import PricePoint, quantize_indicator, quantize_percent

RSI_PERIOD = 14
SMA_PERIODS = (20, 50, 200)
EMA_FAST_PERIOD = 12
EMA_SLOW_PERIOD = 26
MACD_SIGNAL_PERIOD = 9

#: Bars required before the MACD signal line is reported (26 + 9).
MACD_SIGNAL_MIN_BARS = EMA_SLOW_PERIOD + MACD_SIGNAL_PERIOD

_ZERO = Decimal("0")
_HUNDRED = Decimal("100")


def _check_period(period: int) -> None:
    if period <= 0:
        raise InvalidInputError(f"Indicator period must be positive, got {period}")


def _mean(values: Sequence[Decimal]) -> Decimal:
    return sum(values, _ZERO) / Decimal(len(values))


def _ema_multiplier(period: int) -> Decimal:
    return Decimal("2") / Decimal(period + 1)


def _ema_step(price: Decimal, previous: Decimal, multiplier: Decimal) -> Decimal:
    return (price - previous) * multiplier + previous


def _wilder_step(average: Decimal, value: Decimal, period: int) -> Decimal:
    return (average * Decimal(period - 1) + value) / Decimal(period)


def _rsi_from_averages(avg_gain: Decimal, avg_loss: Decimal) -> Decimal:
    if avg_loss == _ZERO:
        return quantize_percent(_HUNDRED)
    rs = avg_gain / avg_loss
    return quantize_percent(_HUNDRED - _HUNDRED / (Decimal("1") + rs))


def ema_series(values: Sequence[Decimal], period: int) -> list[Decimal | None]:
    """Compute an unrounded EMA series seeded with the SMA of the first ``period`` values.

    Returns a list the same length as ``values`` with None at positions
    before the seed (indices < period - 1).
    """
    _check_period(period)
    if len(values) < period:
        return [None] * len(values)

    multiplier = _ema_multiplier(period)
    series: list[Decimal | None] = [None] * (period - 1)
    current = _mean(values[:period])
    series.append(current)
    for price in values[period:]:
        current = _ema_step(price, current, multiplier)
        series.append(current)
    return series


def sma(prices: Sequence[Decimal], period: int) -> Decimal | None:
    """Simple moving average of the last ``period`` prices, or None if too short."""
    _check_period(period)
    if len(prices) < period:
        return None
    return quantize_indicator(_mean(prices[-period:]))


def ema(prices: Sequence[Decimal], period: int) -> Decimal | None:
    """Exponential moving average (k = 2/(n+1), SMA seed), or None if too short."""
    series = ema_series(prices, period)
    if not series or series[-1] is None:
        return None
    return quantize_indicator(series[-1])


def rsi(prices: Sequence[Decimal], period: int = RSI_PERIOD) -> Decimal | None:
    """Relative Strength Index using Wilder smoothing.

    The first average gain/loss is the simple mean of the first ``period``
    changes; each later change is folded in with avg = (avg*(n-1) + x)/n.
    A zero average loss yields 100. Requires ``period + 1`` prices.
    """
    _check_period(period)
    if len(prices) < period + 1:
        return None

    changes = [prices[i] - prices[i - 1] for i in range(1, len(prices))]
    gains = [max(change, _ZERO) for change in changes]
    losses = [max(-change, _ZERO) for change in changes]

    avg_gain = _mean(gains[:period])
    avg_loss = _mean(losses[:period])
    for gain, loss in zip(gains[period:], losses[period:]):
        avg_gain = _wilder_step(avg_gain, gain, period)
        avg_loss = _wilder_step(avg_loss, loss, period)

    return _rsi_from_averages(avg_gain, avg_loss)


def macd(
    prices: Sequence[Decimal],
    fast_period: int = EMA_FAST_PERIOD,
    slow_period: int = EMA_SLOW_PERIOD,
    signal_period: int = MACD_SIGNAL_PERIOD,
) -> MACDResult | None:
    """MACD line, signal (EMA of the per-bar MACD series) and histogram.

    Returns None with fewer than ``slow_period`` prices. The signal and
    histogram stay None until ``slow_period + signal_period`` prices exist.
    """
    _check_period(fast_period)
    _check_period(signal_period)
    _check_period(slow_period)
    if fast_period >= slow_period:
        raise InvalidInputError(
            f"MACD fast period ({fast_period}) must be shorter than slow period ({slow_period})"
        )
    if len(prices) < slow_period:
        return None

    fast = ema_series(prices, fast_period)
    slow = ema_series(prices, slow_period)
    macd_line: list[Decimal] = [
        f - s  # type: ignore[operator]
        for f, s in zip(fast[slow_period - 1 :], slow[slow_period - 1 :])
    ]
    current = macd_line[-1]

    if len(prices) < slow_period + signal_period:
        return MACDResult(macd=quantize_indicator(current))

    signal = ema_series(macd_line, signal_period)[-1]
    assert signal is not None
    return MACDResult(
        macd=quantize_indicator(current),
        signal=quantize_indicator(signal),
        histogram=quantize_indicator(current - signal),
    )


def closes_of(history: Sequence[PricePoint]) -> list[Decimal]:
    """Extract closing prices, checking that bars are in ascending time order."""
    for previous, bar in zip(history, history[1:]):
        if bar.timestamp <= previous.timestamp:
            raise InvalidInputError(
                f"Price history must be strictly ascending; {bar.timestamp} follows {previous.timestamp}"
            )
    return [bar.close for bar in history]


def compute_indicators(history: Sequence[PricePoint]) -> IndicatorSet:
    """Compute the IndicatorSet for the last bar of ``history``.

    Raises:
        InvalidInputError: If history is empty or not in ascending order.
    """
    if not history:
        raise InvalidInputError("compute_indicators requires at least one price point")

    closes = closes_of(history)
    short, medium, long_ = SMA_PERIODS
    macd_result = macd(closes)

    return IndicatorSet(
        rsi14=rsi(closes, RSI_PERIOD),
        sma20=sma(closes, short),
        sma50=sma(closes, medium),
        sma200=sma(closes, long_),
        ema12=ema(closes, EMA_FAST_PERIOD),
        ema26=ema(closes, EMA_SLOW_PERIOD),
        macd=macd_result.macd if macd_result else None,
        macd_signal=macd_result.signal if macd_result else None,
        macd_histogram=macd_result.histogram if macd_result else None,
    )
