import pytest

import liquidity_hunter as lh
import technical_analysis as ta
from models import PriceBar, FairValueGap


class TestBuySellEstimate:

    def test_close_at_high_advanced(self):
        buy, sell = lh.estimate_buy_sell_volume(PriceBar(100, 102, 98, 102, 1000), 'advanced')
        assert buy == pytest.approx(800)
        assert sell == pytest.approx(200)

    def test_simple_up_candle(self):
        buy, sell = lh.estimate_buy_sell_volume(PriceBar(100, 102, 98, 101, 1000), 'simple')
        assert buy == pytest.approx(600)

    def test_zero_range_splits_evenly(self):
        for method in ('simple', 'advanced', 'mixed'):
            buy, sell = lh.estimate_buy_sell_volume(PriceBar(100, 100, 100, 100, 1000), method)
            assert buy == pytest.approx(500)
            assert sell == pytest.approx(500)


class TestFairValueGaps:

    def test_detect_bullish_gap(self, gap_bars):
        df = ta.bars_to_frame(gap_bars)
        fvg = lh.detect_fvg(df, 2, threshold=0.5)
        assert fvg.type == 'bullish'
        assert fvg.bottom == 100.0
        assert fvg.top == 102.0
        assert fvg.gap_percent == pytest.approx(2.0)

    def test_gap_below_threshold(self, gap_bars):
        df = ta.bars_to_frame(gap_bars)
        assert lh.detect_fvg(df, 2, threshold=5.0) is None

    def test_needs_three_bars(self, gap_bars):
        assert lh.detect_fvg(ta.bars_to_frame(gap_bars), 1, threshold=0.5) is None

    def test_filled_when_low_reaches_bottom(self, gap_bars):
        bars = gap_bars + [PriceBar(101.0, 101.5, 99.8, 100.5, 1_000)]
        df = ta.bars_to_frame(bars)
        fvg = FairValueGap('bullish', 102.0, 100.0, 101.0, 2.0, 2.0, created_at=2)
        assert not lh.is_fvg_filled(fvg, df, 3)
        assert lh.is_fvg_filled(fvg, df, 4)

    def test_old_gaps_dropped(self, gap_bars):
        df = ta.bars_to_frame(gap_bars)
        fvg = FairValueGap('bullish', 102.0, 100.0, 101.0, 2.0, 2.0, created_at=0)
        assert lh.update_fvgs([fvg], df, 3, {'FVG_MAX_AGE': 2}) == []


class TestAnalyzeLiquidity:

    def test_short_history_is_neutral(self, gap_bars):
        result = lh.analyze_liquidity('TEST', gap_bars[:2])
        assert result.liquidity_score == 50
        assert result.liquidity_signals == []

    def test_retest_of_liquidity_zone(self, gap_bars):
        result = lh.analyze_liquidity('TEST', gap_bars)
        assert result.active_fvg_count == 1
        assert result.liquidity_zone_count == 1
        assert result.is_significant_buying
        # +10 zone, +15 significant buying
        assert result.liquidity_score == 75
        assert result.liquidity_signals == ["BULLISH LIQUIDITY at $100.00 - $102.00"]

    def test_fvg_disabled(self, gap_bars):
        cfg = dict(lh.config.LIQUIDITY_CONFIG, ENABLE_FVG=False)
        result = lh.analyze_liquidity('TEST', gap_bars, cfg)
        assert result.active_fvg_count == 0
        assert result.liquidity_signals == []
