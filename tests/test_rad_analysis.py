import pytest

import rad_analysis as rad
from conftest import flat_bars, make_bars
from models import RADConfig, RADPatternConfig, BULLISH, NEUTRAL, TREND_DOWN


class TestAnalyzeRad:

    def test_short_history_is_neutral(self):
        result = rad.analyze_rad(flat_bars(count=10))
        assert result.normalized_score == 50
        assert result.signal == NEUTRAL
        assert result.signals == ["Insufficient data for RAD analysis"]

    def test_lookback_comes_from_config(self, flat):
        result = rad.analyze_rad(flat, RADConfig(lookback_period=30))
        assert result.normalized_score == 50
        assert result.score == 0

    def test_flat_bars(self, flat):
        result = rad.analyze_rad(flat)
        assert result.signal == NEUTRAL
        assert result.dip_percent == pytest.approx(0.0)
        # zero-range dip and consolidation both count, price sits on the EMA
        assert result.score == pytest.approx(1.5)
        assert result.normalized_score == pytest.approx(65)
        assert result.is_above_trend is False

    def test_dip_then_consolidation_is_bullish(self, dip_bars):
        result = rad.analyze_rad(dip_bars)
        assert result.signal == BULLISH
        assert result.score == pytest.approx(3.5)
        assert result.normalized_score == pytest.approx(85)
        assert result.signals[0] == "RAD Setup: Bullish breakout potential"
        assert "Volume declining in consolidation" in result.signals
        assert result.is_above_trend
        assert result.lower_highs == 0

    def test_steady_decline_is_below_trend(self):
        result = rad.analyze_rad(make_bars([130.0 - i for i in range(30)]))
        assert result.trend == TREND_DOWN
        assert "Price below EMA trend" in result.signals
        assert result.signal == NEUTRAL


class TestNormalize:

    @pytest.mark.parametrize("raw,expected", [(0, 50), (2, 70), (-3, 20), (10, 100), (-12, 0), (40, 100)])
    def test_mapping(self, raw, expected):
        assert rad.normalize_rad_score(raw) == pytest.approx(expected)

    def test_monotonic(self):
        values = [rad.normalize_rad_score(x / 4) for x in range(-30, 31)]
        assert values == sorted(values)


class TestQuickScore:

    def test_mid_range_flat_day(self, snapshot):
        # mid-range +10, flat day +5
        assert rad.calculate_quick_rad_score(snapshot) == 65

    def test_attached_setup_wins(self, snapshot, dip_bars):
        snapshot.rad_setup = rad.analyze_rad(dip_bars)
        assert rad.calculate_quick_rad_score(snapshot) == snapshot.rad_setup.normalized_score

    def test_zero_range_day(self, snapshot):
        snapshot.high = snapshot.low = snapshot.price
        assert rad.calculate_quick_rad_score(snapshot) == 55


class TestHelpers:

    def test_strength_labels(self):
        assert rad.get_rad_strength(85) == "Strong Setup"
        assert rad.get_rad_strength(50) == "Developing"
        assert rad.get_rad_strength(10) == "No Setup"

    def test_signal_labels(self, dip_bars):
        labels = rad.generate_rad_signals(rad.analyze_rad(dip_bars))
        assert "RAD Setup Active" in labels
        assert "Above EMA" in labels


def peak_dip_recovery_bars(extra=()):
    """
    Flat at 100, run to a 120 peak (bar 10), drop to 90 (bar 15),
    recover to 119. Constant volume.
    """
    closes = [100.0] * 6 + [102, 104, 106, 108, 120, 110, 105, 100, 95, 90, 95, 100, 105, 110, 115, 118, 119]
    return make_bars(closes + list(extra))


class TestPatterns:

    def test_reversal_pattern(self):
        patterns = rad.detect_rad_patterns(peak_dip_recovery_bars())
        assert len(patterns) == 1
        p = patterns[0]
        assert p.start_index == 10
        assert p.end_index == 22
        assert p.pre_dip_high == 120.5
        assert p.dip_low == 89.5
        assert p.dip_depth == pytest.approx(31 / 120.5 * 100)
        assert p.recovery_percent == pytest.approx(30 / 89.5 * 100)
        assert p.type == 'reversal'
        assert p.volume_profile == 'neutral'
        assert p.signal == 'breakout_pending'
        # 50 + 15 recovery + 10 V-shape + 10 deep dip
        assert p.strength == 85
        assert p.resistance_levels == pytest.approx([107.1, 119.5, 120.5])
        assert p.support_levels == pytest.approx([89.5, 90.395, 102.9])

    def test_shallow_dip_is_ignored(self):
        cfg = RADPatternConfig(dip_threshold=30.0)
        assert rad.detect_rad_patterns(peak_dip_recovery_bars(), cfg) == []

    def test_no_pivots(self, flat):
        assert rad.detect_rad_patterns(flat) == []
        assert rad.determine_current_phase(flat, []) == rad.PHASE_NONE

    @pytest.mark.parametrize("extra,phase", [
        ((), rad.PHASE_CONSOLIDATION),
        ((125,), rad.PHASE_BREAKOUT),
        ((112,), rad.PHASE_DIP),
    ])
    def test_current_phase(self, extra, phase):
        bars = peak_dip_recovery_bars(extra)
        assert rad.determine_current_phase(bars, rad.detect_rad_patterns(bars)) == phase

    def test_analyze_rad_attaches_patterns(self):
        result = rad.analyze_rad(peak_dip_recovery_bars())
        assert result.phase == rad.PHASE_CONSOLIDATION
        assert [p.start_index for p in result.patterns] == [10]

    def test_short_history_has_no_phase(self):
        result = rad.analyze_rad(flat_bars(count=10))
        assert result.phase == rad.PHASE_NONE
        assert result.patterns == []
