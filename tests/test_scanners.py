import itertools
import math

import pytest

import config
import scanners as sc
from conftest import dip_then_consolidate_bars, liquidity_gap_bars
from models import (
    StockData, ScanModeWeights, OptionsStrike, FlowAlert,
    SCORE_FULL, SCORE_BARS, SCORE_QUICK, SCORE_DEFAULT,
)


class TestModeWeights:

    def test_config_table_is_valid(self):
        assert sc.validate_mode_weights(config.MODE_WEIGHTS)

    @pytest.mark.parametrize("mode", config.SCAN_MODES)
    def test_rows_sum_to_one(self, mode):
        assert sum(config.MODE_WEIGHTS[mode].as_dict().values()) == pytest.approx(1.0, abs=1e-9)

    def test_bad_table_lists_every_problem(self):
        table = {
            'a': ScanModeWeights(0.5, 0.5, 0.5, 0.0, 0.0),
            'b': ScanModeWeights(-0.1, 0.3, 0.3, 0.3, 0.2),
        }
        with pytest.raises(ValueError) as exc:
            sc.validate_mode_weights(table)
        assert "a: weights sum to" in str(exc.value)
        assert "b: negative weight for tank" in str(exc.value)

    def test_unknown_mode(self):
        with pytest.raises(sc.InvalidModeError):
            sc.get_mode_weights('scalp')
        with pytest.raises(ValueError):
            sc.calculate_combined_score(50, 50, 50, 50, 50, 'scalp')

    def test_weights_display(self):
        display = sc.get_mode_weights_display('liquidity')
        assert display[-1] == {'name': 'Liquidity', 'weight': pytest.approx(50.0)}


class TestCombinedScore:

    def test_uniform_scores(self):
        assert sc.calculate_combined_score(80, 80, 80, 80, 80, 'liquidity') == 80

    def test_intraday_weights(self):
        # 100*.35 + 0*.10 + 100*.30 + 0*.15 + 0*.10
        assert sc.calculate_combined_score(100, 0, 100, 0, 0, 'intraday') == 65

    @pytest.mark.parametrize("mode", config.SCAN_MODES)
    def test_non_decreasing_in_each_component(self, mode):
        base = [40, 55, 60, 45, 50]
        for i in range(5):
            combined = []
            for value in range(0, 101, 5):
                scores = list(base)
                scores[i] = value
                combined.append(sc.calculate_combined_score(*scores, mode))
            assert combined == sorted(combined)

    @pytest.mark.parametrize("mode", config.SCAN_MODES)
    def test_breakdown_total_matches(self, mode):
        for scores in itertools.product([0, 33, 67, 100], repeat=2):
            args = (scores[0], 71, scores[1], 29, 50)
            breakdown = sc.get_score_breakdown(*args, mode)
            assert breakdown['total'] == sc.calculate_combined_score(*args, mode)
            assert breakdown['rad']['score'] == 71

    def test_custom_weight_table(self):
        table = {'custom': ScanModeWeights(1.0, 0.0, 0.0, 0.0, 0.0)}
        assert sc.calculate_combined_score(42, 0, 0, 0, 0, 'custom', table) == 42

    def test_score_label(self):
        assert sc.get_score_label(90) == "Strong Buy"
        assert sc.get_score_label(50) == "Neutral"
        assert sc.get_score_label(10) == "Avoid"


class TestProcessStock:

    def test_snapshot_only_uses_quick_scores(self, snapshot):
        result = sc.process_stock(snapshot, 'swing')
        assert result.score_sources == {
            'tank': SCORE_QUICK,
            'rad': SCORE_QUICK,
            'mp_lp': SCORE_QUICK,
            'osv': SCORE_QUICK,
            'liquidity': SCORE_DEFAULT,
        }
        assert result.is_quick
        assert result.liquidity_score == config.DEFAULT_LIQUIDITY_SCORE
        assert result.signals == []

    def test_full_analysis_wins(self, snapshot):
        stock = sc.analyze_stock(
            snapshot,
            bars=dip_then_consolidate_bars(),
            options_chain=[OptionsStrike(strike=105, call_oi=100, put_oi=100)],
            options_summary={'call_volume': 1000, 'put_volume': 200},
        )
        result = sc.process_stock(stock, 'swing')
        assert result.score_sources['rad'] == SCORE_FULL
        assert result.score_sources['liquidity'] == SCORE_FULL
        assert result.score_sources['mp_lp'] == SCORE_FULL
        assert result.score_sources['osv'] == SCORE_FULL
        assert result.score_sources['tank'] == SCORE_BARS
        assert result.tank_score == stock.tank_chart.score
        assert result.is_quick is False
        assert result.rad_score == stock.rad_setup.normalized_score
        assert result.osv_score == stock.osv_metrics.score

    def test_signals_capped_per_component(self, snapshot):
        stock = sc.analyze_stock(snapshot, bars=dip_then_consolidate_bars())
        result = sc.process_stock(stock, 'swing')
        cap = config.MAX_SIGNALS_PER_COMPONENT
        assert result.signals == (
            stock.tank_chart.signals[:cap]
            + stock.rad_setup.signals[:cap]
            + stock.liquidity.liquidity_signals[:cap]
        )

    def test_analyze_stock_leaves_input_alone(self, snapshot):
        sc.analyze_stock(snapshot, bars=dip_then_consolidate_bars())
        assert snapshot.rad_setup is None
        assert snapshot.liquidity is None

    def test_tank_from_bar_injections(self):
        stock = sc.analyze_stock(StockData(symbol='GAP', price=103.0), bars=liquidity_gap_bars())
        assert stock.tank_flow is None
        assert stock.tank_chart.score == 85
        result = sc.process_stock(stock, 'intraday')
        assert result.score_sources['tank'] == SCORE_BARS
        assert result.tank_score == 85
        assert result.signals[:2] == ["Buyers in control (+100)", "Injection strength rising"]

    def test_flow_alerts_beat_bars(self, snapshot):
        alert = FlowAlert(
            ticker='TEST', strike=100.0, expiry='2025-01-17', type='call',
            total_premium=200_000, ask_side_premium=150_000, bid_side_premium=50_000, total_size=10,
        )
        stock = sc.analyze_stock(snapshot, bars=liquidity_gap_bars(), flow_alerts=[alert])
        assert stock.tank_chart is None
        result = sc.process_stock(stock, 'intraday')
        assert result.score_sources['tank'] == SCORE_FULL
        assert result.tank_score == stock.tank_flow.score


class TestMalformedSnapshot:

    def test_nan_field_does_not_break_ranking(self):
        stocks = [
            StockData(symbol='OK', price=10.0),
            StockData(symbol='BAD', price=10.0, flow_score=float('nan')),
        ]
        results = sc.process_stocks_for_mode(stocks, 'swing')
        assert [r.symbol for r in results] == ['OK', 'BAD']
        bad = results[1]
        assert bad.tank_score == 50
        assert bad.score_sources['tank'] == SCORE_QUICK
        assert bad.combined_score == results[0].combined_score

    def test_every_number_malformed(self):
        nan = float('nan')
        stock = StockData(
            symbol='X', price=nan, change_percent=float('inf'), volume=nan,
            high=nan, low=nan, prev_close=nan, market_cap=nan, gex=float('-inf'),
            put_call_ratio=nan, flow_score=nan, net_premium=nan, option_volume=nan,
            max_pain=nan, max_pain_distance=nan, unusual_activity=nan, iv_rank=nan,
        )
        result = sc.process_stock(stock, 'intraday')
        assert result.price == 0.0
        assert result.change_percent == 0.0
        assert result.volume == 0.0
        # A flat 0% change still earns the RAD quick-score bonus
        assert result.rad_score == 55
        for component in ('tank', 'mp_lp', 'osv', 'liquidity'):
            assert result.component_score(component) == 50
        assert result.combined_score == sc.calculate_combined_score(50, 55, 50, 50, 50, 'intraday')

    def test_clean_snapshot(self):
        stock = StockData(symbol='X', price=12.5, iv_rank=float('nan'), put_call_ratio=0.9)
        cleaned = sc.clean_snapshot(stock)
        assert cleaned.iv_rank is None
        assert cleaned.put_call_ratio == 0.9
        assert cleaned.price == 12.5
        assert math.isnan(stock.iv_rank)


class TestRanking:

    def _stocks(self):
        stocks = []
        for i, pcr in enumerate([1.6, 0.4, 1.0, 0.8, 0.6]):
            stocks.append(StockData(symbol=f"S{i}", price=100.0, put_call_ratio=pcr))
        return stocks

    def test_sorted_descending_and_limited(self):
        results = sc.process_stocks_for_mode(self._stocks(), 'longterm', limit=3)
        assert len(results) == 3
        scores = [r.combined_score for r in results]
        assert scores == sorted(scores, reverse=True)
        assert results[0].symbol == 'S1'

    @pytest.mark.parametrize("limit", [0, -1, -10])
    def test_non_positive_limit_returns_nothing(self, limit):
        assert sc.process_stocks_for_mode(self._stocks(), 'swing', limit=limit) == []

    def test_ties_keep_input_order(self):
        stocks = [StockData(symbol=s, price=10.0) for s in ('A', 'B', 'C')]
        results = sc.process_stocks_for_mode(stocks, 'swing')
        assert [r.symbol for r in results] == ['A', 'B', 'C']

    def test_filters(self):
        results = sc.process_stocks_for_mode(self._stocks(), 'longterm')
        top = results[0].combined_score
        assert all(r.combined_score >= top for r in sc.filter_by_score(results, top))
        assert sc.get_top_by_scanner(results, 'osv', limit=1)[0].symbol == 'S1'
        assert all(r.osv_score >= 65 for r in sc.filter_by_scanner(results, 'osv'))

    def test_unknown_scanner(self):
        with pytest.raises(ValueError):
            sc.filter_by_scanner([], 'gamma')


class TestScanUniverse:

    def _inputs(self):
        return [
            {'stock': StockData(symbol='DIP', price=104.0), 'bars': dip_then_consolidate_bars()},
            {'stock': StockData(symbol='GAP', price=103.0), 'bars': liquidity_gap_bars()},
            {'stock': StockData(symbol='BARE', price=50.0)},
        ]

    def test_scans_all_symbols(self):
        results = sc.scan_universe(self._inputs(), 'swing', max_workers=2)
        assert {r.symbol for r in results} == {'DIP', 'GAP', 'BARE'}
        assert results[0].symbol == 'DIP'

    def test_failing_symbol_is_skipped(self, monkeypatch):
        real = sc.analyze_stock

        def flaky(stock, **kwargs):
            if stock.symbol == 'GAP':
                raise RuntimeError("boom")
            return real(stock, **kwargs)

        monkeypatch.setattr(sc, 'analyze_stock', flaky)
        results = sc.scan_universe(self._inputs(), 'swing')
        assert {r.symbol for r in results} == {'DIP', 'BARE'}

    def test_invalid_mode_raises_before_work(self, monkeypatch):
        def fail(**kwargs):
            pytest.fail("analysis should not run")

        monkeypatch.setattr(sc, 'analyze_stock', fail)
        with pytest.raises(sc.InvalidModeError):
            sc.scan_universe(self._inputs(), 'scalp')

    def test_limit(self):
        assert len(sc.scan_universe(self._inputs(), 'liquidity', limit=1)) == 1

    def test_progress_bar(self, capsys):
        results = sc.scan_universe(self._inputs(), 'swing', progress=True)
        assert len(results) == 3
        assert "Analyzing symbols" in capsys.readouterr().err
