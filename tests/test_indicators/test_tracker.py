"""Tests for IndicatorTracker -- incremental indicators match the full recompute."""

from datetime import datetime, timezone
from decimal import Decimal

import pytest

from riskbot.exceptions import InvalidInputError
from riskbot.indicators.calculator import compute_indicators
from riskbot.indicators.tracker import IndicatorTracker


def _wavy_closes(n: int) -> list[Decimal]:
    """Deterministic non-monotonic closes so gains, losses and EMAs all move."""
    closes = []
    price = Decimal("100")
    for i in range(n):
        step = Decimal((i * 7) % 11 - 5) / Decimal("4")
        price += step
        closes.append(price)
    return closes


class TestIncrementalMatchesFromScratch:
    def test_every_bar_matches_full_recompute(self, make_bars) -> None:
        bars = make_bars(_wavy_closes(230))
        tracker = IndicatorTracker()

        for i, bar in enumerate(bars):
            incremental = tracker.update("SPY", bar)
            assert incremental == compute_indicators(bars[: i + 1]), f"mismatch at bar {i}"

    def test_seed_then_update_matches(self, make_bars) -> None:
        bars = make_bars(_wavy_closes(60))
        tracker = IndicatorTracker()

        seeded = tracker.seed("QQQ", bars[:50])
        assert seeded == compute_indicators(bars[:50])

        for i in range(50, 60):
            assert tracker.update("QQQ", bars[i]) == compute_indicators(bars[: i + 1])

    def test_signal_appears_at_bar_35(self, make_bars) -> None:
        bars = make_bars(_wavy_closes(36))
        tracker = IndicatorTracker()
        results = [tracker.update("SPY", bar) for bar in bars]

        assert results[32].macd_signal is None
        assert results[33].macd_signal is None
        assert results[34].macd_signal is not None
        assert results[34].macd_histogram is not None


class TestTrackerState:
    def test_symbols_are_independent(self, make_bars) -> None:
        tracker = IndicatorTracker()
        up = make_bars(range(100, 120))
        down = make_bars(range(120, 100, -1))
        for a, b in zip(up, down):
            tracker.update("UP", a)
            last_down = tracker.update("DOWN", b)

        assert last_down.rsi14 == Decimal("0.00")
        assert tracker.last_timestamp("UP") == up[-1].timestamp

    def test_rejects_non_increasing_timestamp(self, make_bars) -> None:
        bars = make_bars([1, 2])
        tracker = IndicatorTracker()
        tracker.update("SPY", bars[1])
        with pytest.raises(InvalidInputError):
            tracker.update("SPY", bars[0])
        with pytest.raises(InvalidInputError):
            tracker.update("SPY", bars[1])

    def test_naive_and_aware_timestamps_compare_as_utc(self, make_bars) -> None:
        aware = make_bars([1, 2, 3])
        naive = make_bars([4], start=datetime(2024, 1, 5))
        tracker = IndicatorTracker()
        tracker.seed("SPY", aware)

        tracker.update("SPY", naive[0])
        assert tracker.last_timestamp("SPY") == datetime(2024, 1, 5, tzinfo=timezone.utc)
        with pytest.raises(InvalidInputError):
            tracker.update("SPY", make_bars([5], start=datetime(2024, 1, 4))[0])

    def test_reset_drops_state(self, make_bars) -> None:
        tracker = IndicatorTracker()
        tracker.update("SPY", make_bars([1])[0])
        assert tracker.has_state("SPY")

        tracker.reset("SPY")
        assert not tracker.has_state("SPY")
        assert tracker.last_timestamp("SPY") is None

    def test_seed_empty_history(self) -> None:
        tracker = IndicatorTracker()
        assert tracker.seed("SPY", []) is None
        assert tracker.has_state("SPY")
