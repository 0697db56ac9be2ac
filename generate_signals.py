"""
Gamma Flow Scanner - Signal Generator

Fetches market data for a watchlist, scores every symbol for a scan mode and
prints the ranked candidates. Optionally writes them to CSV.

Usage:
    python generate_signals.py --mode swing
    python generate_signals.py --mode intraday --symbols AAPL MSFT NVDA --limit 10
    python generate_signals.py --mode longterm --no-options --output results/scan.csv
"""

import argparse
import logging
from pathlib import Path
from typing import List, Sequence

import pandas as pd

import config
import data_manager as dm
import scanners as sc
from models import ScannerResult, SCORE_QUICK, SCORE_DEFAULT

QUICK_SOURCES = (SCORE_QUICK, SCORE_DEFAULT)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description='Gamma Flow Scanner - ranked options/flow candidates',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python generate_signals.py --mode swing                          # Default swing watchlist
  python generate_signals.py --mode intraday --symbols SPY QQQ     # Custom symbols
  python generate_signals.py --min-score 65 --output results/scan.csv
        """
    )
    parser.add_argument('--mode', type=str, default=config.DEFAULT_SCAN_MODE,
                        choices=list(config.SCAN_MODES),
                        help=f'Scan mode (default: {config.DEFAULT_SCAN_MODE})')
    parser.add_argument('--symbols', nargs='+', default=None,
                        help='Symbols to scan (default: the mode watchlist)')
    parser.add_argument('--limit', type=int, default=config.DEFAULT_SCAN_LIMIT,
                        help=f'Max results (default: {config.DEFAULT_SCAN_LIMIT})')
    parser.add_argument('--min-score', type=float, default=0,
                        help='Minimum combined score (default: 0)')
    parser.add_argument('--workers', type=int, default=config.FETCH_MAX_WORKERS,
                        help=f'Thread pool size (default: {config.FETCH_MAX_WORKERS})')
    parser.add_argument('--no-options', action='store_true',
                        help='Skip option chains (bar-based RAD, TANK and liquidity; quick scores elsewhere)')
    parser.add_argument('--output', type=str, default=None,
                        help='Write results to this CSV file')
    parser.add_argument('--quiet', action='store_true',
                        help='No progress bars')
    return parser


# =============================================================================
# Output
# =============================================================================

def results_to_frame(results: Sequence[ScannerResult]) -> pd.DataFrame:
    """One row per result, rank first."""
    rows = []
    for rank, r in enumerate(results, 1):
        rows.append({
            'rank': rank,
            'symbol': r.symbol,
            'company': r.company,
            'price': r.price,
            'change_percent': r.change_percent,
            'volume': r.volume,
            'combined_score': r.combined_score,
            'label': sc.get_score_label(r.combined_score),
            'tank_score': r.tank_score,
            'rad_score': r.rad_score,
            'mp_lp_score': r.mp_lp_score,
            'osv_score': r.osv_score,
            'liquidity_score': r.liquidity_score,
            'tank_source': r.score_sources.get('tank', ''),
            'quick_components': ','.join(c for c in sc.COMPONENTS if r.score_sources.get(c) in QUICK_SOURCES),
            'signals': ' | '.join(r.signals),
        })
    return pd.DataFrame(rows)


def print_results(results: Sequence[ScannerResult], mode: str) -> None:
    print("\n" + "=" * 100)
    print(f"TOP CANDIDATES - {mode.upper()}  ({sc.get_mode_description(mode)})")
    print("=" * 100)

    weights = sc.get_mode_weights_display(mode)
    print("Weights: " + " | ".join(f"{w['name']} {w['weight']}%" for w in weights))

    if not results:
        print("   No candidates.")
        return

    print(f"\n{'Rank':<5} {'Symbol':<8} {'Score':<6} {'Label':<11} {'Price':>10} {'Chg%':>7} "
          f"{'TANK':>5} {'RAD':>5} {'MPLP':>5} {'OSV':>5} {'LIQ':>5}  Signals")
    print("-" * 100)

    for i, r in enumerate(results, 1):
        quick = "*" if r.is_quick else " "
        print(
            f"{i:<5} {r.symbol:<8} {r.combined_score:<5}{quick} {sc.get_score_label(r.combined_score):<11} "
            f"{r.price:>10.2f} {r.change_percent:>+7.2f} "
            f"{r.tank_score:>5.0f} {r.rad_score:>5.0f} {r.mp_lp_score:>5.0f} "
            f"{r.osv_score:>5.0f} {r.liquidity_score:>5.0f}  {'; '.join(r.signals[:3])}"
        )

    if any(r.is_quick for r in results):
        print("\n* Score includes quick (snapshot-heuristic) components.")


def write_csv(results: Sequence[ScannerResult], output: str) -> Path:
    path = Path(output)
    path.parent.mkdir(parents=True, exist_ok=True)
    results_to_frame(results).to_csv(path, index=False)
    return path


# =============================================================================
# Main
# =============================================================================

def run_scan(
    mode: str,
    symbols: Sequence[str] = None,
    limit: int = None,
    min_score: float = 0,
    workers: int = None,
    fetch_options: bool = True,
    progress: bool = True
) -> List[ScannerResult]:
    """Fetch, analyze and rank. Returns results at or above min_score."""
    if not symbols:
        symbols = list(config.WATCHLISTS[mode])

    inputs = dm.fetch_scan_inputs(
        symbols,
        max_workers=workers,
        progress=progress,
        fetch_options=fetch_options,
    )
    results = sc.scan_universe(
        inputs,
        mode,
        limit=limit,
        max_workers=workers,
        progress=progress,
    )
    return sc.filter_by_score(results, min_score)


def main(argv: Sequence[str] = None) -> int:
    args = build_parser().parse_args(argv)

    logging.getLogger().setLevel(config.LOG_LEVEL.upper())

    symbols = [s.upper() for s in args.symbols] if args.symbols else list(config.WATCHLISTS[args.mode])

    print("=" * 100)
    print("GAMMA FLOW SCANNER")
    print("=" * 100)
    print(f"Mode: {args.mode} | Symbols: {len(symbols)} | Limit: {args.limit} | Min Score: {args.min_score}")
    print(f"Options: {'OFF' if args.no_options else 'ON'} | Workers: {args.workers}")

    results = run_scan(
        args.mode,
        symbols,
        limit=args.limit,
        min_score=args.min_score,
        workers=args.workers,
        fetch_options=not args.no_options,
        progress=not args.quiet,
    )

    print_results(results, args.mode)

    if args.output:
        path = write_csv(results, args.output)
        print(f"\nSaved {len(results)} rows to {path}")

    return 0


if __name__ == "__main__":
    raise SystemExit(main())
