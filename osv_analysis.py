"""
Gamma Flow Scanner - OSV (Options Summary Volume)

Options-volume sentiment for one symbol: put/call ratio, volume vs average,
bullish vs bearish premium and ask-side buying pressure, scored 0-100.
"""

import logging
import math
from typing import Dict, List, Optional

import config
from technical_analysis import finite_or
from models import OSVMetricsData, StockData, BULLISH, BEARISH, NEUTRAL

logger = logging.getLogger(__name__)


# (upper bound, adjustment) checked in order; bullish side first
_PCR_BULLISH_BANDS = ((0.5, 20), (0.7, 15), (0.85, 8))
_PCR_BEARISH_BANDS = ((2.0, -20), (1.5, -15), (1.2, -8))


def _ratio_or(numerator: float, denominator: float, fallback: float) -> float:
    """numerator / denominator, or `fallback` when that is zero, NaN or infinite."""
    if not denominator:
        return fallback
    value = numerator / denominator
    return value if value and math.isfinite(value) else fallback


def _ask_share(ask: float, bid: float) -> float:
    total = ask + bid
    return ask / total if total > 0 else 0.0


def _pcr_adjustment(put_call_ratio: float) -> int:
    for bound, points in _PCR_BULLISH_BANDS:
        if put_call_ratio < bound:
            return points
    for bound, points in _PCR_BEARISH_BANDS:
        if put_call_ratio > bound:
            return points
    return 0


# =============================================================================
# Full Analysis
# =============================================================================

def analyze_osv_metrics(symbol: str, options_data: Dict, osv_config: dict = None) -> OSVMetricsData:
    """
    Full OSV analysis from an options volume summary.

    Args:
        symbol: Stock symbol (for logging)
        options_data: Dict with required 'call_volume', 'put_volume' and
            optional 'call_ask_volume', 'call_bid_volume', 'put_ask_volume',
            'put_bid_volume', 'call_premium', 'put_premium', 'max_pain',
            'max_pain_expiry', 'avg_volume_30d'
        osv_config: Configuration dict (uses config.OSV_CONFIG if None)

    Returns:
        OSVMetricsData. ask_bid_estimated is True when any ask/bid split
        was missing and filled from the default shares.

    Non-finite or unparseable numbers count as missing: volumes and
    premiums become 0, ask/bid splits use the default shares.
    """
    if osv_config is None:
        osv_config = config.OSV_CONFIG

    call_volume = finite_or(options_data['call_volume'], 0.0)
    put_volume = finite_or(options_data['put_volume'], 0.0)

    call_ask_share = osv_config.get('DEFAULT_CALL_ASK_SHARE', 0.60)
    put_ask_share = osv_config.get('DEFAULT_PUT_ASK_SHARE', 0.40)
    defaults = {
        'call_ask_volume': call_volume * call_ask_share,
        'call_bid_volume': call_volume * (1 - call_ask_share),
        'put_ask_volume': put_volume * put_ask_share,
        'put_bid_volume': put_volume * (1 - put_ask_share),
    }
    supplied = {key: finite_or(options_data.get(key)) for key in defaults}
    estimated = any(value is None for value in supplied.values())
    if estimated:
        logger.debug(f"{symbol}: ask/bid split missing, using default shares")

    split = {
        key: supplied[key] if supplied[key] is not None else fallback
        for key, fallback in defaults.items()
    }
    call_ask = split['call_ask_volume']
    call_bid = split['call_bid_volume']
    put_ask = split['put_ask_volume']
    put_bid = split['put_bid_volume']

    call_premium = finite_or(options_data.get('call_premium'), 0.0)
    put_premium = finite_or(options_data.get('put_premium'), 0.0)
    max_pain = finite_or(options_data.get('max_pain'), 0.0)
    max_pain_expiry = options_data.get('max_pain_expiry') or ''

    total_volume = call_volume + put_volume
    avg_volume = finite_or(options_data.get('avg_volume_30d'))
    if avg_volume is None:
        avg_volume = total_volume

    put_call_ratio = put_volume / call_volume if call_volume > 0 else 1
    volume_vs_avg = total_volume / avg_volume * 100 if avg_volume > 0 else 100

    # Bullish = calls bought on ask + puts sold on bid
    # Bearish = puts bought on ask + calls sold on bid
    call_ppc = _ratio_or(call_premium, call_volume, 1)
    put_ppc = _ratio_or(put_premium, put_volume, 1)
    bullish_premium = call_ask * call_ppc + put_bid * put_ppc
    bearish_premium = put_ask * put_ppc + call_bid * call_ppc

    net_call_premium = call_premium * _ratio_or(call_ask - call_bid, call_volume, 0)
    net_put_premium = put_premium * _ratio_or(put_ask - put_bid, put_volume, 0)

    # Sentiment
    signals = []
    confirm = osv_config.get('PREMIUM_CONFIRM_FACTOR', 1.2)
    sentiment = NEUTRAL

    if put_call_ratio < osv_config.get('PCR_STRONG_BULLISH', 0.70) and bullish_premium > bearish_premium * confirm:
        sentiment = BULLISH
        signals.append("Strong bullish options flow")
    elif put_call_ratio < osv_config.get('PCR_BULLISH', 0.85):
        sentiment = BULLISH
        signals.append("Bullish P/C ratio")
    elif put_call_ratio > osv_config.get('PCR_STRONG_BEARISH', 1.50) and bearish_premium > bullish_premium * confirm:
        sentiment = BEARISH
        signals.append("Strong bearish options flow")
    elif put_call_ratio > osv_config.get('PCR_BEARISH', 1.30):
        sentiment = BEARISH
        signals.append("Bearish P/C ratio")

    if volume_vs_avg > osv_config.get('VOLUME_EXTREME_PCT', 200):
        signals.append(f"Extreme volume: {volume_vs_avg:.0f}% of avg")
    elif volume_vs_avg > osv_config.get('VOLUME_HIGH_PCT', 150):
        signals.append(f"High volume: {volume_vs_avg:.0f}% of avg")

    net_flow = bullish_premium - bearish_premium
    if abs(net_flow) > osv_config.get('PREMIUM_FLOW_SIGNAL', 10_000_000):
        direction = "Bullish" if net_flow > 0 else "Bearish"
        signals.append(f"{direction} premium: {format_premium(abs(net_flow))}")

    if max_pain > 0:
        signals.append(f"Max Pain: ${max_pain:.2f}")

    heavy = osv_config.get('HEAVY_BUYING_SIGNAL', 0.65)
    if _ask_share(call_ask, call_bid) > heavy:
        signals.append("Heavy call buying")
    if _ask_share(put_ask, put_bid) > heavy:
        signals.append("Heavy put buying")

    metrics = OSVMetricsData(
        total_call_volume=call_volume,
        total_put_volume=put_volume,
        put_call_ratio=put_call_ratio,
        call_ask_volume=call_ask,
        call_bid_volume=call_bid,
        put_ask_volume=put_ask,
        put_bid_volume=put_bid,
        net_call_premium=net_call_premium,
        net_put_premium=net_put_premium,
        bullish_premium=bullish_premium,
        bearish_premium=bearish_premium,
        max_pain=max_pain,
        max_pain_expiry=max_pain_expiry,
        volume_vs_avg=volume_vs_avg,
        sentiment=sentiment,
        score=0,
        signals=signals,
        ask_bid_estimated=estimated,
    )
    metrics.score = calculate_osv_score(metrics, osv_config)
    return metrics


def calculate_osv_score(data: OSVMetricsData, osv_config: dict = None) -> float:
    """
    Score OSV metrics on 0-100 (50 = neutral).

    Signals:
        ±8..20: Put/call ratio bands
        ±5..10: Volume spike (positive only when sentiment is BULLISH)
        ±5..15: Net premium flow ($10M / $20M / $50M)
        ±4..8:  Ask-side share on calls (+) and puts (-)
    """
    if osv_config is None:
        osv_config = config.OSV_CONFIG

    score = 50
    score += _pcr_adjustment(data.put_call_ratio)

    # Volume spike amplifies the sentiment; anything not bullish counts against
    direction = 1 if data.sentiment == BULLISH else -1
    if data.volume_vs_avg > osv_config.get('VOLUME_EXTREME_PCT', 200):
        score += 10 * direction
    elif data.volume_vs_avg > osv_config.get('VOLUME_HIGH_PCT', 150):
        score += 5 * direction

    net_flow = data.bullish_premium - data.bearish_premium
    large = osv_config.get('PREMIUM_FLOW_LARGE', 50_000_000)
    mid = osv_config.get('PREMIUM_FLOW_MID', 20_000_000)
    small = osv_config.get('PREMIUM_FLOW_SIGNAL', 10_000_000)
    if net_flow > large:
        score += 15
    elif net_flow > mid:
        score += 10
    elif net_flow > small:
        score += 5
    elif net_flow < -large:
        score -= 15
    elif net_flow < -mid:
        score -= 10
    elif net_flow < -small:
        score -= 5

    heavy = osv_config.get('ASK_DOMINANCE_HEAVY', 0.70)
    moderate = osv_config.get('ASK_DOMINANCE_MODERATE', 0.60)

    call_share = _ask_share(data.call_ask_volume, data.call_bid_volume)
    if call_share > heavy:
        score += 8
    elif call_share > moderate:
        score += 4

    put_share = _ask_share(data.put_ask_volume, data.put_bid_volume)
    if put_share > heavy:
        score -= 8
    elif put_share > moderate:
        score -= 4

    return max(0, min(100, score))


# =============================================================================
# Quick Score (snapshot only)
# =============================================================================

def calculate_quick_osv_score(stock: StockData) -> float:
    """Best-effort OSV score from snapshot fields. Low confidence."""
    if stock.osv_metrics is not None:
        return stock.osv_metrics.score

    score = 50

    if stock.put_call_ratio is not None:
        score += _pcr_adjustment(stock.put_call_ratio)

    if stock.net_premium is not None:
        net = stock.net_premium
        if net > 50_000_000:
            score += 12
        elif net > 20_000_000:
            score += 8
        elif net > 5_000_000:
            score += 4
        elif net < -50_000_000:
            score -= 12
        elif net < -20_000_000:
            score -= 8
        elif net < -5_000_000:
            score -= 4

    if stock.flow_score is not None:
        score += (stock.flow_score - 50) * 0.3

    if stock.option_volume and stock.volume:
        if stock.option_volume / stock.volume > 0.5:
            score += 5

    if stock.unusual_activity is not None:
        if stock.unusual_activity > 80:
            score += 8
        elif stock.unusual_activity > 60:
            score += 4

    if stock.iv_rank is not None:
        if stock.iv_rank > 80:
            score += 3
        elif stock.iv_rank < 20:
            score -= 2

    # Price well below max pain tends to drift up into expiry
    if stock.max_pain_distance is not None:
        if stock.max_pain_distance < -5:
            score += 6
        elif stock.max_pain_distance < -2:
            score += 3
        elif stock.max_pain_distance > 5:
            score -= 4

    return max(0, min(100, score))


# =============================================================================
# Helpers
# =============================================================================

def determine_sentiment(put_call_ratio: float, net_premium_flow: float) -> str:
    if put_call_ratio < 0.7 and net_premium_flow > 0:
        return BULLISH
    if put_call_ratio > 1.3 and net_premium_flow < 0:
        return BEARISH
    if put_call_ratio < 0.85:
        return BULLISH
    if put_call_ratio > 1.15:
        return BEARISH
    return NEUTRAL


def format_premium(premium: float) -> str:
    """Format a premium as +$1.25B / -$3.4M / +$12K / +$500."""
    sign = '+' if premium >= 0 else '-'
    value = abs(premium)

    if value >= 1_000_000_000:
        return f"{sign}${value / 1_000_000_000:.2f}B"
    if value >= 1_000_000:
        return f"{sign}${value / 1_000_000:.1f}M"
    if value >= 1_000:
        return f"{sign}${value / 1_000:.0f}K"
    return f"{sign}${value:.0f}"


def generate_osv_signals(data: OSVMetricsData) -> List[str]:
    labels = []

    if data.sentiment == BULLISH:
        labels.append("Bullish Flow")
    elif data.sentiment == BEARISH:
        labels.append("Bearish Flow")

    labels.append(f"P/C: {data.put_call_ratio:.2f}")

    if data.volume_vs_avg > 150:
        labels.append(f"Vol: {data.volume_vs_avg:.0f}%")

    net = data.bullish_premium - data.bearish_premium
    if abs(net) > 5_000_000:
        labels.append(format_premium(net))

    return labels


def get_sentiment_strength(score: float) -> str:
    if score >= 80:
        return "Strongly Bullish"
    if score >= 65:
        return "Moderately Bullish"
    if score >= 55:
        return "Slightly Bullish"
    if score >= 45:
        return "Neutral"
    if score >= 35:
        return "Slightly Bearish"
    if score >= 20:
        return "Moderately Bearish"
    return "Strongly Bearish"


def calculate_volume_concentration(
    call_volume: float,
    put_volume: float,
    call_ask_volume: float,
    put_ask_volume: float
) -> Dict[str, object]:
    """
    Share of each side traded on the ask and the dominant flow.

    Returns:
        {'call_buy_percent': float, 'put_buy_percent': float, 'dominant_flow': str}
    """
    call_buy = call_ask_volume / call_volume * 100 if call_volume > 0 else 50
    put_buy = put_ask_volume / put_volume * 100 if put_volume > 0 else 50

    dominant: Optional[str] = None
    if call_buy > 60 and call_volume > put_volume:
        dominant = "Call Buying"
    elif put_buy > 60 and put_volume > call_volume:
        dominant = "Put Buying"
    elif call_buy < 40 and call_volume > put_volume:
        dominant = "Call Selling"
    elif put_buy < 40 and put_volume > call_volume:
        dominant = "Put Selling"

    return {
        'call_buy_percent': call_buy,
        'put_buy_percent': put_buy,
        'dominant_flow': dominant or "Mixed",
    }
