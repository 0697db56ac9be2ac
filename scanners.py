"""
Gamma Flow Scanner - Scanners

Combined scorer and scan orchestrator.
Each symbol gets five 0-100 sub-scores (TANK, RAD, MP/LP, OSV, Liquidity)
that are blended with the weights of the selected scan mode.

Sub-scores come from the full analyzers when their raw inputs were available,
otherwise from the quick snapshot heuristics. TANK has a middle path: with
bars but no flow alerts it is estimated from volume-spike injections.
ScannerResult.score_sources records which path produced each one.
"""

import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import replace
from typing import Dict, List, Mapping, Optional, Sequence

from tqdm import tqdm

import config
from technical_analysis import round_half_up, finite_or
from models import (
    StockData, ScannerResult, ScanModeWeights, PriceBar,
    FlowAlert, DarkPoolPrint, OptionsStrike,
    SCORE_FULL, SCORE_BARS, SCORE_QUICK, SCORE_DEFAULT,
)
from rad_analysis import analyze_rad, calculate_quick_rad_score
from osv_analysis import analyze_osv_metrics, calculate_quick_osv_score
from tank_flow import calculate_tank_flow, calculate_quick_tank_score, analyze_tank_chart
from mplp_zones import analyze_mplp_zones, calculate_quick_mplp_score
from liquidity_hunter import analyze_liquidity

logger = logging.getLogger(__name__)

COMPONENTS = ('tank', 'rad', 'mp_lp', 'osv', 'liquidity')

MODE_DESCRIPTIONS = {
    'intraday': (
        "Optimized for day trading: Emphasizes TANK flow (35%) and MP/LP zones (30%) "
        "for real-time institutional activity and gamma levels."
    ),
    'swing': (
        "Optimized for multi-day holds: Emphasizes RAD setups (35%) and OSV metrics (25%) "
        "for technical patterns and options sentiment."
    ),
    'longterm': (
        "Optimized for position trading: Emphasizes OSV metrics (40%) and TANK flow (20%) "
        "for sustained institutional positioning."
    ),
    'liquidity': (
        "Optimized for liquidity plays: Emphasizes Liquidity Hunter (50%) "
        "for FVG zones and order flow imbalances."
    ),
}

_DISPLAY_NAMES = {
    'tank': 'TANK',
    'rad': 'RAD',
    'mp_lp': 'MP/LP',
    'osv': 'OSV',
    'liquidity': 'Liquidity',
}


class InvalidModeError(ValueError):
    """Raised when a scan mode has no entry in the weight table."""


# =============================================================================
# Mode Weights
# =============================================================================

def get_mode_weights(mode: str, mode_weights: Mapping[str, ScanModeWeights] = None) -> ScanModeWeights:
    """
    Look up the weights for a scan mode.

    Raises:
        InvalidModeError: mode is not in the table
    """
    if mode_weights is None:
        mode_weights = config.MODE_WEIGHTS

    weights = mode_weights.get(mode)
    if weights is None:
        raise InvalidModeError(f"Unknown scan mode '{mode}' (expected one of {sorted(mode_weights)})")
    return weights


def validate_mode_weights(mode_weights: Mapping[str, ScanModeWeights], tolerance: float = 1e-9) -> bool:
    """
    Check that every row is non-negative and sums to 1.

    Raises:
        ValueError: listing every offending mode
    """
    problems = []
    for mode, weights in mode_weights.items():
        values = weights.as_dict()
        negative = [name for name, w in values.items() if w < 0]
        if negative:
            problems.append(f"{mode}: negative weight for {', '.join(negative)}")
        total = sum(values.values())
        if abs(total - 1.0) > tolerance:
            problems.append(f"{mode}: weights sum to {total:.6f}")

    if problems:
        raise ValueError("Invalid mode weights: " + "; ".join(problems))
    return True


def get_mode_description(mode: str) -> str:
    return MODE_DESCRIPTIONS.get(mode, "")


def get_mode_weights_display(mode: str, mode_weights: Mapping[str, ScanModeWeights] = None) -> List[Dict]:
    """Weights as percentages, in component order: [{'name': 'TANK', 'weight': 35.0}, ...]"""
    weights = get_mode_weights(mode, mode_weights).as_dict()
    return [{'name': _DISPLAY_NAMES[c], 'weight': weights[c] * 100} for c in COMPONENTS]


# =============================================================================
# Combined Score
# =============================================================================

def calculate_combined_score(
    tank: float,
    rad: float,
    mp_lp: float,
    osv: float,
    liquidity: float,
    mode: str,
    mode_weights: Mapping[str, ScanModeWeights] = None
) -> int:
    """
    Weighted blend of the five sub-scores, rounded half-up.

    Args:
        tank, rad, mp_lp, osv, liquidity: Sub-scores (0-100)
        mode: Scan mode ('intraday', 'swing', 'longterm', 'liquidity')
        mode_weights: Alternative weight table (uses config.MODE_WEIGHTS if None)

    Returns:
        Combined score (0-100)

    Raises:
        InvalidModeError: unknown mode
    """
    w = get_mode_weights(mode, mode_weights)
    combined = (
        tank * w.tank
        + rad * w.rad
        + mp_lp * w.mp_lp
        + osv * w.osv
        + liquidity * w.liquidity
    )
    return round_half_up(combined)


def get_score_breakdown(
    tank: float,
    rad: float,
    mp_lp: float,
    osv: float,
    liquidity: float,
    mode: str,
    mode_weights: Mapping[str, ScanModeWeights] = None
) -> Dict:
    """
    Per-component score, weight and rounded contribution, plus the total.

    Contributions are rounded independently, so they may not add up to
    'total' exactly; 'total' always equals calculate_combined_score().
    """
    weights = get_mode_weights(mode, mode_weights).as_dict()
    scores = {'tank': tank, 'rad': rad, 'mp_lp': mp_lp, 'osv': osv, 'liquidity': liquidity}

    breakdown = {
        name: {
            'score': scores[name],
            'weight': weights[name],
            'contribution': round_half_up(scores[name] * weights[name]),
        }
        for name in COMPONENTS
    }
    breakdown['total'] = calculate_combined_score(tank, rad, mp_lp, osv, liquidity, mode, mode_weights)
    return breakdown


def get_score_label(score: float) -> str:
    if score >= 85:
        return "Strong Buy"
    if score >= 75:
        return "Buy"
    if score >= 65:
        return "Watch"
    if score >= 50:
        return "Neutral"
    if score >= 40:
        return "Weak"
    return "Avoid"


# =============================================================================
# Per-Stock Processing
# =============================================================================

_SNAPSHOT_NUMBERS = ('price', 'change_percent', 'volume')
_OPTIONAL_SNAPSHOT_NUMBERS = (
    'market_cap', 'open', 'high', 'low', 'prev_close',
    'gex', 'net_gex', 'put_call_ratio', 'flow_score', 'net_premium',
    'option_volume', 'max_pain', 'max_pain_distance', 'unusual_activity', 'iv_rank',
)


def clean_snapshot(stock: StockData) -> StockData:
    """
    Copy of `stock` with NaN, infinite or unparseable numbers replaced:
    0.0 for price, change_percent and volume, None (missing) for the rest.
    """
    updates = {name: finite_or(getattr(stock, name), 0.0) for name in _SNAPSHOT_NUMBERS}
    updates.update({name: finite_or(getattr(stock, name)) for name in _OPTIONAL_SNAPSHOT_NUMBERS})
    return replace(stock, **updates)


def _tank_signals(holder) -> Optional[List[str]]:
    """TANK signals from a StockData or ScannerResult, flow alerts first."""
    if holder.tank_flow is not None:
        return holder.tank_flow.signals
    if holder.tank_chart is not None:
        return holder.tank_chart.signals
    return None


def process_stock(
    stock: StockData,
    mode: str,
    mode_weights: Mapping[str, ScanModeWeights] = None
) -> ScannerResult:
    """
    Score one stock for a scan mode.

    Attached sub-results win; otherwise the quick heuristics are used.
    Liquidity has no quick path and falls back to a neutral default.
    Malformed snapshot numbers are treated as missing (see clean_snapshot).
    """
    stock = clean_snapshot(stock)
    sources = {}

    if stock.tank_flow is not None:
        tank, sources['tank'] = stock.tank_flow.score, SCORE_FULL
    elif stock.tank_chart is not None:
        tank, sources['tank'] = stock.tank_chart.score, SCORE_BARS
    else:
        tank, sources['tank'] = calculate_quick_tank_score(stock), SCORE_QUICK

    if stock.rad_setup is not None:
        rad, sources['rad'] = stock.rad_setup.normalized_score, SCORE_FULL
    else:
        rad, sources['rad'] = calculate_quick_rad_score(stock), SCORE_QUICK

    if stock.mp_lp_zones is not None:
        mp_lp, sources['mp_lp'] = stock.mp_lp_zones.score, SCORE_FULL
    else:
        mp_lp, sources['mp_lp'] = calculate_quick_mplp_score(stock), SCORE_QUICK

    if stock.osv_metrics is not None:
        osv, sources['osv'] = stock.osv_metrics.score, SCORE_FULL
    else:
        osv, sources['osv'] = calculate_quick_osv_score(stock), SCORE_QUICK

    if stock.liquidity is not None:
        liquidity, sources['liquidity'] = stock.liquidity.liquidity_score, SCORE_FULL
    else:
        liquidity, sources['liquidity'] = config.DEFAULT_LIQUIDITY_SCORE, SCORE_DEFAULT

    combined = calculate_combined_score(tank, rad, mp_lp, osv, liquidity, mode, mode_weights)

    per_component = config.MAX_SIGNALS_PER_COMPONENT
    signals = []
    for sub_signals in (
        _tank_signals(stock),
        stock.rad_setup.signals if stock.rad_setup else None,
        stock.mp_lp_zones.signals if stock.mp_lp_zones else None,
        stock.osv_metrics.signals if stock.osv_metrics else None,
        stock.liquidity.liquidity_signals if stock.liquidity else None,
    ):
        if sub_signals:
            signals.extend(sub_signals[:per_component])

    return ScannerResult(
        symbol=stock.symbol,
        company=stock.name,
        price=stock.price,
        change_percent=stock.change_percent,
        volume=stock.volume,
        tank_score=tank,
        rad_score=rad,
        mp_lp_score=mp_lp,
        osv_score=osv,
        liquidity_score=liquidity,
        combined_score=combined,
        signals=signals,
        score_sources=sources,
        tank_flow=stock.tank_flow,
        tank_chart=stock.tank_chart,
        rad_setup=stock.rad_setup,
        mp_lp_zones=stock.mp_lp_zones,
        osv_metrics=stock.osv_metrics,
        liquidity=stock.liquidity,
    )


def process_stocks_for_mode(
    stocks: Sequence[StockData],
    mode: str,
    limit: int = 20,
    mode_weights: Mapping[str, ScanModeWeights] = None
) -> List[ScannerResult]:
    """
    Score every stock and return the top `limit` by combined score.

    Ties keep input order. A negative limit returns nothing.
    """
    results = [process_stock(stock, mode, mode_weights) for stock in stocks]
    results.sort(key=lambda r: r.combined_score, reverse=True)
    return results[:max(limit, 0)]


# =============================================================================
# Result Filters
# =============================================================================

def _check_component(component: str):
    if component not in COMPONENTS:
        raise ValueError(f"Unknown scanner '{component}' (expected one of {COMPONENTS})")


def filter_by_score(results: Sequence[ScannerResult], min_score: float = 60) -> List[ScannerResult]:
    return [r for r in results if r.combined_score >= min_score]


def filter_by_scanner(
    results: Sequence[ScannerResult],
    scanner: str,
    min_score: float = 65
) -> List[ScannerResult]:
    """Keep results whose `scanner` sub-score ('tank', 'rad', ...) is at least min_score."""
    _check_component(scanner)
    return [r for r in results if r.component_score(scanner) >= min_score]


def get_top_by_scanner(
    results: Sequence[ScannerResult],
    scanner: str,
    limit: int = 5
) -> List[ScannerResult]:
    _check_component(scanner)
    return sorted(results, key=lambda r: r.component_score(scanner), reverse=True)[:limit]


def aggregate_signals(result: ScannerResult, max_signals: int = 6) -> List[str]:
    """
    Up to `max_signals` signals, taking at most two from each component in
    order of that component's sub-score.
    """
    by_component = {
        'tank': _tank_signals(result),
        'rad': result.rad_setup.signals if result.rad_setup else None,
        'mp_lp': result.mp_lp_zones.signals if result.mp_lp_zones else None,
        'osv': result.osv_metrics.signals if result.osv_metrics else None,
        'liquidity': result.liquidity.liquidity_signals if result.liquidity else None,
    }
    ordered = sorted(COMPONENTS, key=result.component_score, reverse=True)

    signals = []
    for component in ordered:
        sub_signals = by_component[component]
        if sub_signals and len(signals) < max_signals:
            remaining = max_signals - len(signals)
            signals.extend(sub_signals[:min(2, remaining)])
    return signals


# =============================================================================
# Full Analysis
# =============================================================================

def analyze_stock(
    stock: StockData,
    bars: Optional[Sequence[PriceBar]] = None,
    flow_alerts: Optional[Sequence[FlowAlert]] = None,
    dark_pool_prints: Optional[Sequence[DarkPoolPrint]] = None,
    options_chain: Optional[Sequence[OptionsStrike]] = None,
    options_summary: Optional[dict] = None
) -> StockData:
    """
    Run every full analyzer whose raw input is present.

    TANK uses the flow alerts when there are any, otherwise the bar
    injections (analyze_tank_chart) when there are bars.

    Returns:
        A new StockData with the sub-results attached (the input is not modified)
    """
    updates = {}

    if bars:
        updates['rad_setup'] = analyze_rad(bars)
        updates['liquidity'] = analyze_liquidity(stock.symbol, bars)

    if flow_alerts:
        updates['tank_flow'] = calculate_tank_flow(flow_alerts, dark_pool_prints)
    elif bars:
        updates['tank_chart'] = analyze_tank_chart(bars)

    if options_chain:
        updates['mp_lp_zones'] = analyze_mplp_zones(stock.price, options_chain, stock.symbol)

    if options_summary and 'call_volume' in options_summary and 'put_volume' in options_summary:
        updates['osv_metrics'] = analyze_osv_metrics(stock.symbol, options_summary)

    return replace(stock, **updates)


def scan_universe(
    inputs: Sequence[dict],
    mode: str,
    limit: int = None,
    max_workers: int = None,
    progress: bool = False,
    mode_weights: Mapping[str, ScanModeWeights] = None
) -> List[ScannerResult]:
    """
    Analyze and rank many symbols.

    Args:
        inputs: One dict per symbol with 'stock' (StockData) and any of
            'bars', 'flow_alerts', 'dark_pool_prints', 'options_chain',
            'options_summary' (see data_manager.fetch_scan_inputs)
        mode: Scan mode
        limit: Max results (default config.DEFAULT_SCAN_LIMIT)
        max_workers: Thread pool size (default config.SCAN_MAX_WORKERS)
        progress: Show progress bar

    Returns:
        Ranked ScannerResult list
    """
    # Fail before fanning out
    get_mode_weights(mode, mode_weights)

    if limit is None:
        limit = config.DEFAULT_SCAN_LIMIT
    if max_workers is None:
        max_workers = config.SCAN_MAX_WORKERS

    analyzed: Dict[int, StockData] = {}

    def _analyze(item: dict) -> StockData:
        return analyze_stock(**item)

    with ThreadPoolExecutor(max_workers=max(max_workers, 1)) as pool:
        futures = {pool.submit(_analyze, item): i for i, item in enumerate(inputs)}
        iterator = as_completed(futures)
        if progress:
            iterator = tqdm(iterator, total=len(futures), desc="Analyzing symbols")

        for fut in iterator:
            i = futures[fut]
            try:
                analyzed[i] = fut.result()
            except Exception as e:
                symbol = inputs[i]['stock'].symbol
                logger.warning(f"Analysis failed for {symbol}: {e}")
                continue

    # Keep input order so ties rank deterministically
    stocks = [analyzed[i] for i in sorted(analyzed)]
    logger.info(f"Analyzed {len(stocks)}/{len(inputs)} symbols for {mode} scan")

    return process_stocks_for_mode(stocks, mode, limit, mode_weights)
