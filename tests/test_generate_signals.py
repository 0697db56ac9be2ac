import pandas as pd
import pytest

import config
import generate_signals as gs
from conftest import dip_then_consolidate_bars, liquidity_gap_bars
from models import StockData


@pytest.fixture
def fake_fetch(monkeypatch):
    calls = {}

    def fetch(symbols, max_workers=None, progress=False, fetch_options=None):
        calls.update(symbols=list(symbols), max_workers=max_workers, fetch_options=fetch_options)
        return [
            {'stock': StockData(symbol=s, name=f'{s} Corp', price=100.0), 'bars': bars}
            for s, bars in zip(symbols, (dip_then_consolidate_bars(), liquidity_gap_bars()))
        ]

    monkeypatch.setattr(gs.dm, 'fetch_scan_inputs', fetch)
    return calls


class TestParser:

    def test_defaults_from_config(self):
        args = gs.build_parser().parse_args([])
        assert args.mode == config.DEFAULT_SCAN_MODE
        assert args.limit == config.DEFAULT_SCAN_LIMIT
        assert args.workers == config.FETCH_MAX_WORKERS
        assert args.symbols is None
        assert args.no_options is False

    def test_invalid_mode_rejected(self):
        with pytest.raises(SystemExit) as exc:
            gs.build_parser().parse_args(['--mode', 'scalp'])
        assert exc.value.code == 2


class TestMain:

    def test_writes_csv(self, fake_fetch, tmp_path, capsys):
        out = tmp_path / 'nested' / 'scan.csv'
        code = gs.main(['--mode', 'swing', '--symbols', 'dip', 'gap', '--no-options',
                        '--quiet', '--workers', '2', '--output', str(out)])
        assert code == 0
        assert fake_fetch['symbols'] == ['DIP', 'GAP']
        assert fake_fetch['fetch_options'] is False

        df = pd.read_csv(out)
        assert df['symbol'].tolist()[0] == 'DIP'
        assert df['rank'].tolist() == [1, 2]
        assert df['combined_score'].is_monotonic_decreasing
        assert df['tank_source'].tolist() == ['bars', 'bars']
        assert df['quick_components'].tolist() == ['mp_lp,osv', 'mp_lp,osv']

        printed = capsys.readouterr().out
        assert "TOP CANDIDATES - SWING" in printed

    def test_watchlist_when_no_symbols(self, fake_fetch):
        gs.main(['--mode', 'intraday', '--quiet'])
        assert fake_fetch['symbols'] == list(config.WATCHLISTS['intraday'])

    def test_min_score_filter(self, fake_fetch):
        results = gs.run_scan('swing', ['DIP', 'GAP'], min_score=101, progress=False)
        assert results == []


class TestOutput:

    def test_frame_columns(self):
        results = gs.sc.process_stocks_for_mode([StockData(symbol='A', price=1.0)], 'swing')
        df = gs.results_to_frame(results)
        assert list(df.columns[:3]) == ['rank', 'symbol', 'company']
        assert df.loc[0, 'quick_components'] == 'tank,rad,mp_lp,osv,liquidity'

    def test_empty_results_print(self, capsys):
        gs.print_results([], 'longterm')
        assert "No candidates." in capsys.readouterr().out
