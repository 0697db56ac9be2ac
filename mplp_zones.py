"""
Gamma Flow Scanner - MP/LP Zones (Magnet Price / Liquidity Pull)

Reads an options chain for dealer positioning:
    - Call wall: strike with the most call OI above price (resistance)
    - Put wall: strike with the most put OI below price (support)
    - Magnet price: |gamma|-weighted mean strike
    - Liquidity pull: OI-weighted mean strike
    - Gamma environment: sign of total net gamma
"""

import logging
from typing import Dict, List, Sequence

import config
from models import MPLPZonesData, OptionsStrike, StockData

logger = logging.getLogger(__name__)

POSITIVE = 'POSITIVE'
NEGATIVE = 'NEGATIVE'


# =============================================================================
# Full Analysis
# =============================================================================

def analyze_mplp_zones(
    current_price: float,
    options_chain: Sequence[OptionsStrike],
    symbol: str = '',
    mplp_config: dict = None
) -> MPLPZonesData:
    """
    Full MP/LP analysis from an options chain.

    Args:
        current_price: Last traded price
        options_chain: Per-strike open interest and gamma
        symbol: Stock symbol (for logging)
        mplp_config: Configuration dict (uses config.MPLP_CONFIG if None)

    Returns:
        MPLPZonesData (neutral, score 50, when the chain is empty)
    """
    if mplp_config is None:
        mplp_config = config.MPLP_CONFIG

    if not options_chain:
        logger.info(f"{symbol}: no options chain, MP/LP neutral")
        wall_pct = mplp_config.get('EMPTY_CHAIN_WALL_PCT', 0.05)
        return MPLPZonesData(
            magnet_price=current_price,
            liquidity_pull=current_price,
            call_wall=current_price * (1 + wall_pct),
            put_wall=current_price * (1 - wall_pct),
            net_gex=0,
            put_call_oi_ratio=1,
            price_vs_magnet='AT',
            gamma_environment=POSITIVE,
            score=50,
            signals=["No options data available"],
        )

    total_call_oi = 0.0
    total_put_oi = 0.0
    total_net_gamma = 0.0
    max_call_oi = 0.0
    max_put_oi = 0.0
    call_wall = current_price
    put_wall = current_price

    gamma_weighted = 0.0
    total_abs_gamma = 0.0
    oi_weighted = 0.0

    for s in options_chain:
        total_call_oi += s.call_oi
        total_put_oi += s.put_oi
        total_net_gamma += s.net_gamma

        if s.strike > current_price and s.call_oi > max_call_oi:
            max_call_oi = s.call_oi
            call_wall = s.strike
        if s.strike < current_price and s.put_oi > max_put_oi:
            max_put_oi = s.put_oi
            put_wall = s.strike

        abs_gamma = abs(s.net_gamma)
        gamma_weighted += s.strike * abs_gamma
        total_abs_gamma += abs_gamma
        oi_weighted += s.strike * (s.call_oi + s.put_oi)

    total_oi = total_call_oi + total_put_oi
    magnet_price = gamma_weighted / total_abs_gamma if total_abs_gamma > 0 else current_price
    liquidity_pull = oi_weighted / total_oi if total_oi > 0 else current_price

    gamma_environment = POSITIVE if total_net_gamma >= 0 else NEGATIVE

    band = mplp_config.get('MAGNET_BAND_PCT', 0.5)
    magnet_distance = (current_price - magnet_price) / magnet_price * 100 if magnet_price > 0 else 0.0
    price_vs_magnet = 'AT'
    if magnet_distance > band:
        price_vs_magnet = 'ABOVE'
    elif magnet_distance < -band:
        price_vs_magnet = 'BELOW'

    put_call_oi_ratio = total_put_oi / total_call_oi if total_call_oi > 0 else 1

    # Signals
    signals = []
    if gamma_environment == POSITIVE:
        signals.append("Positive Gamma: Mean reversion likely")
    else:
        signals.append("Negative Gamma: Trending/volatile")

    if price_vs_magnet == 'BELOW':
        signals.append(f"Below magnet: Pull toward ${magnet_price:.2f}")
    elif price_vs_magnet == 'ABOVE':
        signals.append(f"Above magnet: Pull toward ${magnet_price:.2f}")

    call_dist, put_dist = _wall_distances(current_price, call_wall, put_wall)
    signals.append(f"Call Wall: ${call_wall:.2f} (+{call_dist:.1f}%)")
    signals.append(f"Put Wall: ${put_wall:.2f} (-{put_dist:.1f}%)")

    if put_call_oi_ratio < 0.8:
        signals.append("Bullish OI skew")
    elif put_call_oi_ratio > 1.2:
        signals.append("Bearish OI skew")

    zones = MPLPZonesData(
        magnet_price=magnet_price,
        liquidity_pull=liquidity_pull,
        call_wall=call_wall,
        put_wall=put_wall,
        net_gex=total_net_gamma,
        put_call_oi_ratio=put_call_oi_ratio,
        price_vs_magnet=price_vs_magnet,
        gamma_environment=gamma_environment,
        score=0,
        signals=signals,
    )
    zones.score = calculate_mplp_score(zones, current_price, mplp_config)
    return zones


def _wall_distances(current_price: float, call_wall: float, put_wall: float):
    """Percent distance up to the call wall and down to the put wall."""
    if current_price <= 0:
        return 0.0, 0.0
    return (
        (call_wall - current_price) / current_price * 100,
        (current_price - put_wall) / current_price * 100,
    )


def calculate_mplp_score(data: MPLPZonesData, current_price: float, mplp_config: dict = None) -> float:
    """
    Score MP/LP zones on 0-100 (50 = neutral).

    Positive gamma is treated as mean-reverting (price below the magnet is
    pulled up); negative gamma as trending (below the magnet can accelerate).
    """
    if mplp_config is None:
        mplp_config = config.MPLP_CONFIG

    score = 50

    if data.gamma_environment == POSITIVE:
        score += 10
        if data.price_vs_magnet == 'BELOW':
            score += 15
        elif data.price_vs_magnet == 'ABOVE':
            score -= 5
    else:
        score -= 5
        if data.price_vs_magnet == 'BELOW':
            score -= 10

    ratio = data.put_call_oi_ratio
    if ratio < 0.7:
        score += 10
    elif ratio < 0.9:
        score += 5
    elif ratio > 1.3:
        score -= 10
    elif ratio > 1.1:
        score -= 5

    call_dist, put_dist = _wall_distances(current_price, data.call_wall, data.put_wall)
    if call_dist < 2:
        score -= 10
    elif call_dist < 5:
        score -= 5

    if put_dist < 2:
        score += 5

    if abs(data.net_gex) > mplp_config.get('LARGE_GEX', 100_000_000):
        score += 5

    return max(0, min(100, score))


# =============================================================================
# Quick Score (snapshot only)
# =============================================================================

def calculate_quick_mplp_score(stock: StockData, mplp_config: dict = None) -> float:
    """Best-effort MP/LP score from snapshot GEX / levels. Low confidence."""
    if stock.mp_lp_zones is not None:
        return stock.mp_lp_zones.score

    if mplp_config is None:
        mplp_config = config.MPLP_CONFIG

    score = 50

    if stock.gex is not None or stock.net_gex is not None:
        gex = stock.net_gex if stock.net_gex is not None else stock.gex
        strong = mplp_config.get('QUICK_STRONG_GEX', 50_000_000)
        if gex > strong:
            score += 15
        elif gex > 0:
            score += 8
        elif gex < -strong:
            score -= 10
        elif gex < 0:
            score -= 5

    if stock.put_call_ratio is not None:
        pcr = stock.put_call_ratio
        if pcr < 0.7:
            score += 12
        elif pcr < 0.9:
            score += 6
        elif pcr > 1.3:
            score -= 12
        elif pcr > 1.1:
            score -= 6

    levels = stock.gamma_levels
    if levels is not None and stock.price > 0:
        if levels.flip:
            score += 8 if stock.price > levels.flip else -5

        nearest_res = next((r for r in sorted(levels.resistance) if r > stock.price), None)
        if nearest_res is not None:
            dist = (nearest_res - stock.price) / stock.price * 100
            if dist < 1:
                score -= 10
            elif dist < 3:
                score -= 5

        nearest_sup = next((s for s in sorted(levels.support, reverse=True) if s < stock.price), None)
        if nearest_sup is not None:
            dist = (stock.price - nearest_sup) / stock.price * 100
            if dist < 1:
                score += 8
            elif dist < 3:
                score += 4

    # Below max pain tends to get pulled up into expiry
    if stock.max_pain and stock.max_pain_distance is not None:
        if stock.max_pain_distance < -3:
            score += 8
        elif stock.max_pain_distance < 0:
            score += 4
        elif stock.max_pain_distance > 3:
            score -= 5

    return max(0, min(100, score))


# =============================================================================
# Chain Helpers
# =============================================================================

def _first(item: dict, *keys) -> float:
    for key in keys:
        value = item.get(key)
        if value:
            return value
    return 0


def transform_options_chain(raw_chain: List[dict]) -> List[OptionsStrike]:
    """
    Normalize provider chain rows (camelCase or snake_case keys) into
    OptionsStrike. Net gamma is call gamma minus put gamma.
    """
    chain = []
    for item in raw_chain:
        call_gamma = _first(item, 'callGamma', 'call_gamma')
        put_gamma = _first(item, 'putGamma', 'put_gamma')
        chain.append(OptionsStrike(
            strike=_first(item, 'strike', 'strikePrice'),
            call_oi=_first(item, 'callOI', 'call_open_interest', 'callOpenInterest'),
            put_oi=_first(item, 'putOI', 'put_open_interest', 'putOpenInterest'),
            call_gamma=call_gamma,
            put_gamma=put_gamma,
            net_gamma=call_gamma - put_gamma,
            call_volume=_first(item, 'callVolume', 'call_volume'),
            put_volume=_first(item, 'putVolume', 'put_volume'),
        ))
    return chain


def calculate_max_pain(options_chain: Sequence[OptionsStrike], current_price: float) -> float:
    """
    Strike at which option holders lose the most (total intrinsic value of
    open interest is minimal). Returns current_price for an empty chain.
    """
    if not options_chain:
        return current_price

    min_pain = float('inf')
    max_pain_price = current_price

    for target in options_chain:
        pain = 0.0
        for s in options_chain:
            if s.strike < target.strike:
                pain += s.call_oi * (target.strike - s.strike)
            elif s.strike > target.strike:
                pain += s.put_oi * (s.strike - target.strike)

        if pain < min_pain:
            min_pain = pain
            max_pain_price = target.strike

    return max_pain_price


# =============================================================================
# Display Helpers
# =============================================================================

def generate_mplp_signals(data: MPLPZonesData, current_price: float) -> List[str]:
    labels = ["Positive GEX" if data.gamma_environment == POSITIVE else "Negative GEX"]

    if current_price > 0:
        magnet_dist = (data.magnet_price - current_price) / current_price * 100
        if abs(magnet_dist) > 0.5:
            direction = "Up" if magnet_dist > 0 else "Down"
            labels.append(f"{direction} Magnet: ${data.magnet_price:.2f}")

    labels.append(f"Resist: ${data.call_wall:.2f}")
    labels.append(f"Support: ${data.put_wall:.2f}")
    return labels


def format_gex(gex: float) -> str:
    sign = '+' if gex >= 0 else '-'
    value = abs(gex)

    if value >= 1_000_000_000:
        return f"{sign}${value / 1_000_000_000:.2f}B"
    if value >= 1_000_000:
        return f"{sign}${value / 1_000_000:.1f}M"
    if value >= 1_000:
        return f"{sign}${value / 1_000:.0f}K"
    return f"{sign}${value:.0f}"


def get_gamma_environment_description(environment: str) -> str:
    if environment == POSITIVE:
        return "Mean reversion expected - dealers hedge by selling highs, buying lows"
    return "Trending/volatile - dealers amplify moves, breakouts more likely"


def calculate_expected_range(
    current_price: float,
    call_wall: float,
    put_wall: float,
    gamma_environment: str
) -> Dict[str, object]:
    """
    Expected trading range between the walls, narrowed in positive gamma
    (x0.7) and widened in negative gamma (x1.3).

    Returns:
        {'low': float, 'high': float, 'confidence': 'High' | 'Medium'}
    """
    multiplier = 0.7 if gamma_environment == POSITIVE else 1.3
    midpoint = (call_wall + put_wall) / 2
    half_range = (call_wall - put_wall) / 2 * multiplier

    return {
        'low': midpoint - half_range,
        'high': midpoint + half_range,
        'confidence': 'High' if gamma_environment == POSITIVE else 'Medium',
    }
