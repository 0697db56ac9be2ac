import pandas as pd
import pytest

import technical_analysis as ta
from conftest import make_bars, flat_bars


class TestRoundHalfUp:

    @pytest.mark.parametrize("value,expected", [
        (2.5, 3), (0.5, 1), (1.49, 1), (-0.5, 0), (79.99999999, 80),
    ])
    def test_rounds_half_away_from_even(self, value, expected):
        assert ta.round_half_up(value) == expected


class TestFiniteOr:

    @pytest.mark.parametrize("value", [None, float('nan'), float('inf'), float('-inf'), 'abc'])
    def test_non_finite_gives_fallback(self, value):
        assert ta.finite_or(value) is None
        assert ta.finite_or(value, 0.0) == 0.0

    def test_numbers_pass_through(self):
        assert ta.finite_or(3) == 3.0
        assert ta.finite_or('2.5') == 2.5
        assert ta.finite_or(0, 7.0) == 0.0


class TestBarsToFrame:

    def test_empty_has_columns(self):
        df = ta.bars_to_frame([])
        assert df.empty
        assert list(df.columns) == ta.BAR_COLUMNS

    def test_keeps_order(self):
        df = ta.bars_to_frame(make_bars([1.0, 2.0, 3.0]))
        assert df['close'].tolist() == [1.0, 2.0, 3.0]
        assert df['high'].iloc[0] == 1.5


class TestIndicators:

    def test_ema_of_constant_is_constant(self):
        ema = ta.calculate_ema(pd.Series([50.0] * 30), 21)
        assert ema.iloc[-1] == pytest.approx(50.0)

    def test_latest_atr_needs_period_plus_one(self):
        df = ta.bars_to_frame(make_bars([100.0] * 14, spread=1.0))
        assert ta.latest_atr(df, 14) == 0.0

    def test_latest_atr_constant_range(self):
        df = ta.bars_to_frame(make_bars([100.0] * 20, spread=1.0))
        assert ta.latest_atr(df, 14) == pytest.approx(2.0)


class TestSwingPoints:

    def test_single_peak(self):
        df = ta.bars_to_frame(make_bars([1, 2, 3, 10, 3, 2, 1]))
        highs, lows = ta.find_swing_points(df, lookback=3)
        assert highs == [(3, 10.5)]
        assert lows == []

    def test_ties_are_not_swings(self):
        df = ta.bars_to_frame(flat_bars(count=15))
        assert ta.find_swing_points(df) == ([], [])

    def test_higher_lows_and_lower_highs(self):
        assert ta.count_higher_lows([(0, 1.0), (5, 2.0), (10, 3.0)]) == 2
        assert ta.count_lower_highs([(0, 3.0), (5, 2.0), (10, 1.0)]) == 2
        assert ta.count_higher_lows([(0, 1.0)]) == 0


class TestPositionInRange:

    def test_flat_range_returns_default(self):
        df = ta.bars_to_frame(flat_bars(count=25))
        assert ta.calculate_position_in_range(df, 20) == 0.5
        assert ta.calculate_position_in_range(df, 20, default=0.0) == 0.0

    def test_at_high(self):
        df = ta.bars_to_frame(make_bars(list(range(1, 21)), spread=0.0))
        assert ta.calculate_position_in_range(df, 20) == pytest.approx(1.0)
