"""
Gamma Flow Scanner - TANK Flow

Aggressive options-order flow: ask-side (buy) vs bid-side (sell) premium from
flow alerts, optionally confirmed by dark-pool prints against the NBBO.

Without flow alerts, analyze_tank_chart() estimates the same picture from
price bars: volume-spike injections typed as buy, sell or dark pool.
"""

import logging
from typing import Dict, List, Optional, Sequence

import config
import technical_analysis as ta
from technical_analysis import round_half_up, finite_or
from models import (
    FlowAlert, DarkPoolPrint, TANKFlowData, StockData, PriceBar,
    TANKInjection, TANKChartData,
    BULLISH, BEARISH, NEUTRAL,
)

logger = logging.getLogger(__name__)


# =============================================================================
# Flow Alerts
# =============================================================================

def calculate_tank_flow(
    flow_alerts: Sequence[FlowAlert],
    dark_pool_prints: Optional[Sequence[DarkPoolPrint]] = None,
    tank_config: dict = None
) -> TANKFlowData:
    """
    Aggregate flow alerts into TANK metrics.

    Ask-side premium counts as buying, bid-side as selling. Each alert's size
    is split between buy and sell volume by its premium share.

    Args:
        flow_alerts: Options flow alerts for one symbol
        dark_pool_prints: Optional dark pool prints for the same symbol
        tank_config: Configuration dict (uses config.TANK_CONFIG if None)

    Returns:
        TANKFlowData
    """
    if tank_config is None:
        tank_config = config.TANK_CONFIG

    buy_premium = 0.0
    sell_premium = 0.0
    buy_volume = 0
    sell_volume = 0
    large_injections = 0
    signals = []

    large_threshold = tank_config.get('LARGE_INJECTION_THRESHOLD', 500_000)

    for alert in flow_alerts:
        ask = alert.ask_side_premium or 0
        bid = alert.bid_side_premium or 0
        size = alert.total_size or 0

        buy_premium += ask
        sell_premium += bid

        prem_sum = ask + bid
        if prem_sum > 0:
            buy_volume += round_half_up(size * ask / prem_sum)
            sell_volume += round_half_up(size * bid / prem_sum)

        if (alert.total_premium or 0) >= large_threshold:
            large_injections += 1

    ratio_cap = tank_config.get('RATIO_CAP', 999)
    if sell_premium > 0:
        tank_ratio = buy_premium / sell_premium
    elif buy_premium > 0:
        tank_ratio = float(ratio_cap)
    else:
        tank_ratio = 1.0
    net_flow = buy_premium - sell_premium

    extreme_bull = tank_config.get('EXTREME_BULLISH_RATIO', 2.0)
    bull = tank_config.get('BULLISH_RATIO', 1.3)
    bear = tank_config.get('BEARISH_RATIO', 0.77)
    extreme_bear = tank_config.get('EXTREME_BEARISH_RATIO', 0.5)

    flow_bias = NEUTRAL
    if tank_ratio >= bull:
        flow_bias = BULLISH
    elif tank_ratio <= bear:
        flow_bias = BEARISH

    if tank_ratio >= extreme_bull:
        signals.append("Extreme Bullish Flow")
    elif tank_ratio >= bull:
        signals.append("Bullish Flow")
    elif tank_ratio <= extreme_bear:
        signals.append("Extreme Bearish Flow")
    elif tank_ratio <= bear:
        signals.append("Bearish Flow")

    if abs(net_flow) >= tank_config.get('EXTREME_NET_FLOW', 20_000_000):
        signals.append(f"Extreme Net Flow: {format_money(net_flow)}")
    elif abs(net_flow) >= tank_config.get('SIGNIFICANT_NET_FLOW', 5_000_000):
        signals.append(f"Significant Net Flow: {format_money(net_flow)}")

    if large_injections >= 5:
        signals.append(f"{large_injections} Large Injections")
    elif large_injections >= 2:
        signals.append(f"{large_injections} Large Trades")

    dark_pool_sentiment = None
    if dark_pool_prints:
        dp = analyze_dark_pool(dark_pool_prints, tank_config)
        dark_pool_sentiment = dp['sentiment']
        signals.extend(dp['signals'])

    score = calculate_tank_score(tank_ratio, net_flow, large_injections, len(flow_alerts), tank_config)

    return TANKFlowData(
        tank_ratio=tank_ratio,
        net_flow=net_flow,
        buy_premium=buy_premium,
        sell_premium=sell_premium,
        buy_volume=buy_volume,
        sell_volume=sell_volume,
        flow_bias=flow_bias,
        large_injections=large_injections,
        score=score,
        signals=signals,
        dark_pool_sentiment=dark_pool_sentiment,
    )


def calculate_tank_score(
    tank_ratio: float,
    net_flow: float,
    large_injections: int,
    alert_count: int,
    tank_config: dict = None
) -> float:
    """
    Score TANK flow on 0-100 (50 = neutral).

    Signals:
        ±15..25: Buy/sell premium ratio
        ±5..20:  Net flow ($1M / $5M / $20M)
        +3 each: Large injections (max +15)
        +5..10:  Alert count (20 / 50)
    """
    if tank_config is None:
        tank_config = config.TANK_CONFIG

    score = 50

    if tank_ratio >= tank_config.get('EXTREME_BULLISH_RATIO', 2.0):
        score += 25
    elif tank_ratio >= tank_config.get('BULLISH_RATIO', 1.3):
        score += 15
    elif tank_ratio <= tank_config.get('EXTREME_BEARISH_RATIO', 0.5):
        score -= 25
    elif tank_ratio <= tank_config.get('BEARISH_RATIO', 0.77):
        score -= 15

    direction = 1 if net_flow > 0 else -1
    magnitude = abs(net_flow)
    if magnitude >= tank_config.get('EXTREME_NET_FLOW', 20_000_000):
        score += 20 * direction
    elif magnitude >= tank_config.get('SIGNIFICANT_NET_FLOW', 5_000_000):
        score += 12 * direction
    elif magnitude >= tank_config.get('MINOR_NET_FLOW', 1_000_000):
        score += 5 * direction

    score += min(large_injections * 3, 15)

    if alert_count >= 50:
        score += 10
    elif alert_count >= 20:
        score += 5

    return max(0, min(100, score))


# =============================================================================
# Dark Pool
# =============================================================================

def analyze_dark_pool(prints: Sequence[DarkPoolPrint], tank_config: dict = None) -> Dict:
    """
    Classify dark pool prints against the NBBO midpoint.

    A print above the mid counts as bullish, at or below as bearish.

    Returns:
        Dict with 'sentiment', 'bullish_prints', 'bearish_prints',
        'total_premium', 'signals'
    """
    if tank_config is None:
        tank_config = config.TANK_CONFIG

    large_print = tank_config.get('LARGE_DARK_POOL_PRINT', 1_000_000)
    bullish = 0
    bearish = 0
    total_premium = 0.0
    signals = []

    for p in prints:
        mid = (p.nbbo_ask + p.nbbo_bid) / 2
        premium = p.premium or p.price * p.size
        total_premium += premium

        above = p.price > mid
        if above:
            bullish += 1
        else:
            bearish += 1

        if premium >= large_print:
            side = "Bullish" if above else "Bearish"
            signals.append(f"{side} Large DP: {format_money(premium)}")

    sentiment = NEUTRAL
    total = bullish + bearish
    if total > 0:
        share = bullish / total
        if share >= tank_config.get('DARK_POOL_BULLISH_SHARE', 0.6):
            sentiment = BULLISH
        elif share <= tank_config.get('DARK_POOL_BEARISH_SHARE', 0.4):
            sentiment = BEARISH

    return {
        'sentiment': sentiment,
        'bullish_prints': bullish,
        'bearish_prints': bearish,
        'total_premium': total_premium,
        'signals': signals,
    }


# =============================================================================
# Bar Injections (no flow alerts)
# =============================================================================

def _injection_strength(volume_ratio: float) -> str:
    if volume_ratio >= 5:
        return 'extreme'
    if volume_ratio >= 3:
        return 'strong'
    if volume_ratio >= 2:
        return 'moderate'
    return 'weak'


def detect_injections(
    bars: Sequence[PriceBar],
    dark_pool_ratio: float = 0.0,
    tank_config: dict = None
) -> List[TANKInjection]:
    """
    Bars whose volume spikes above the series average.

    delta_impact is (buy pressure - sell pressure) / bar range on -100..+100,
    where buy pressure = close - low and sell pressure = high - close.
    A spike with a small body counts as a dark pool print, and so does every
    spike when `dark_pool_ratio` exceeds DARK_POOL_RATIO_OVERRIDE.

    Args:
        bars: Bars, oldest first
        dark_pool_ratio: Known dark-pool share of volume (0 if unknown)
        tank_config: Configuration dict (uses config.TANK_CONFIG if None)

    Returns:
        The latest INJECTION_HISTORY injections, oldest first
    """
    if tank_config is None:
        tank_config = config.TANK_CONFIG

    df = ta.bars_to_frame(bars)
    if df.empty:
        return []
    df['volume'] = df['volume'].fillna(0)

    avg_volume = float(df['volume'].mean())
    if avg_volume <= 0:
        return []

    spike = tank_config.get('INJECTION_VOLUME_RATIO', 1.5)
    dark_ratio = tank_config.get('DARK_POOL_VOLUME_RATIO', 2.5)
    dark_body = tank_config.get('DARK_POOL_BODY_SHARE', 0.3)
    all_dark = dark_pool_ratio > tank_config.get('DARK_POOL_RATIO_OVERRIDE', 0.4)

    injections = []
    for bar in df.iloc[1:].itertuples(index=False):
        volume_ratio = bar.volume / avg_volume
        if volume_ratio < spike:
            continue

        total_range = bar.high - bar.low
        if total_range > 0:
            delta_impact = ((bar.close - bar.low) - (bar.high - bar.close)) / total_range * 100
        else:
            delta_impact = 0.0

        body = abs(bar.close - bar.open)
        is_dark = volume_ratio > dark_ratio and body / (total_range or 1) < dark_body

        if is_dark or all_dark:
            kind = 'dark_pool'
        else:
            kind = 'buy' if delta_impact > 0 else 'sell'

        injections.append(TANKInjection(
            timestamp=int(bar.timestamp),
            type=kind,
            volume=float(bar.volume),
            price=float(bar.close),
            delta_impact=float(delta_impact),
            strength=_injection_strength(volume_ratio),
            source='dark' if is_dark else 'lit',
        ))

    return injections[-tank_config.get('INJECTION_HISTORY', 30):]


def analyze_tank_chart(
    bars: Sequence[PriceBar],
    dark_pool_ratio: float = 0.0,
    tank_config: dict = None
) -> TANKChartData:
    """
    Estimate TANK flow from price bars.

    Buy and sell injections count in full; half of each dark pool injection
    goes to the side its close leans to. Walls are buy injections within
    WALL_PROXIMITY of the WALL_BARS low and sell injections within it of the
    high.

    Returns:
        TANKChartData (score 50, no signals when nothing spikes)
    """
    if tank_config is None:
        tank_config = config.TANK_CONFIG

    injections = detect_injections(bars, dark_pool_ratio, tank_config)

    buy_volume = 0.0
    sell_volume = 0.0
    dark_volume = 0.0
    for inj in injections:
        if inj.type == 'buy':
            buy_volume += inj.volume
        elif inj.type == 'sell':
            sell_volume += inj.volume
        else:
            dark_volume += inj.volume
            if inj.delta_impact > 0:
                buy_volume += inj.volume * 0.5
            else:
                sell_volume += inj.volume * 0.5

    total_volume = buy_volume + sell_volume
    current_strength = round_half_up((buy_volume - sell_volume) / total_volume * 100) if total_volume > 0 else 0

    # Last five injections against the five before them
    recent_delta = sum(inj.delta_impact for inj in injections[-5:])
    older_delta = sum(inj.delta_impact for inj in injections[-10:-5])
    trend_delta = tank_config.get('STRENGTH_TREND_DELTA', 20)
    if recent_delta > older_delta + trend_delta:
        strength_trend = 'rising'
    elif recent_delta < older_delta - trend_delta:
        strength_trend = 'falling'
    else:
        strength_trend = 'flat'

    buy_wall = 0.0
    sell_wall = 0.0
    if injections:
        recent_bars = list(bars)[-tank_config.get('WALL_BARS', 20):]
        resistance = max(b.high for b in recent_bars)
        support = min(b.low for b in recent_bars)
        proximity = tank_config.get('WALL_PROXIMITY', 0.01)
        buy_wall = sum(
            inj.volume for inj in injections
            if inj.type == 'buy' and abs(inj.price - support) < support * proximity
        )
        sell_wall = sum(
            inj.volume for inj in injections
            if inj.type == 'sell' and abs(inj.price - resistance) < resistance * proximity
        )

    dominant = tank_config.get('DOMINANT_STRENGTH', 20)
    if current_strength > dominant:
        dominant_flow = 'buyers'
    elif current_strength < -dominant:
        dominant_flow = 'sellers'
    else:
        dominant_flow = 'neutral'

    dark_pool_percent = dark_volume / (total_volume + dark_volume) * 100 if total_volume > 0 else 0.0

    signals = []
    if dominant_flow == 'buyers':
        signals.append(f"Buyers in control ({current_strength:+d})")
    elif dominant_flow == 'sellers':
        signals.append(f"Sellers in control ({current_strength:+d})")

    if strength_trend == 'rising':
        signals.append("Injection strength rising")
    elif strength_trend == 'falling':
        signals.append("Injection strength falling")

    heavy = sum(1 for inj in injections if inj.strength in ('strong', 'extreme'))
    if heavy:
        signals.append(f"Strong injections: {heavy}")

    if buy_wall > 0:
        signals.append("Buy wall at support")
    if sell_wall > 0:
        signals.append("Sell wall at resistance")

    if dark_pool_percent >= tank_config.get('DARK_POOL_SIGNAL_PCT', 30):
        signals.append(f"Dark pool {dark_pool_percent:.0f}% of injection volume")

    score = calculate_tank_chart_score(current_strength, strength_trend, buy_wall, sell_wall, tank_config)

    return TANKChartData(
        current_strength=current_strength,
        strength_trend=strength_trend,
        net_injection_volume=buy_volume - sell_volume,
        dark_pool_percent=dark_pool_percent,
        buy_wall_strength=buy_wall,
        sell_wall_strength=sell_wall,
        dominant_flow=dominant_flow,
        score=score,
        injections=injections,
        signals=signals,
    )


def calculate_tank_chart_score(
    current_strength: float,
    strength_trend: str,
    buy_wall_strength: float,
    sell_wall_strength: float,
    tank_config: dict = None
) -> float:
    """
    Score bar-derived TANK on 0-100 (50 = neutral).

    Signals:
        ±30: Injection strength (-100..+100, x CHART_STRENGTH_WEIGHT)
        ±5:  Strength trend rising / falling
        ±5:  Buy wall vs sell wall volume
    """
    if tank_config is None:
        tank_config = config.TANK_CONFIG

    score = 50 + current_strength * tank_config.get('CHART_STRENGTH_WEIGHT', 0.3)

    if strength_trend == 'rising':
        score += 5
    elif strength_trend == 'falling':
        score -= 5

    if buy_wall_strength > sell_wall_strength:
        score += 5
    elif sell_wall_strength > buy_wall_strength:
        score -= 5

    return max(0, min(100, round_half_up(score)))


# =============================================================================
# Quick Score (snapshot only)
# =============================================================================

def calculate_quick_tank_score(stock: StockData) -> float:
    """Best-effort TANK score from snapshot flow fields. Low confidence."""
    score = 50.0

    flow_score = finite_or(stock.flow_score)
    net = finite_or(stock.net_premium)
    option_volume = finite_or(stock.option_volume)
    unusual = finite_or(stock.unusual_activity)

    if flow_score is not None:
        score = flow_score * 0.5 + 25

    if net is not None:
        if net > 10_000_000:
            score += 15
        elif net > 5_000_000:
            score += 10
        elif net > 1_000_000:
            score += 5
        elif net < -10_000_000:
            score -= 15
        elif net < -5_000_000:
            score -= 10
        elif net < -1_000_000:
            score -= 5

    if option_volume is not None:
        if option_volume > 100_000:
            score += 10
        elif option_volume > 50_000:
            score += 5

    if unusual is not None and unusual > 50:
        score += min((unusual - 50) / 5, 10)

    return max(0, min(100, round_half_up(score)))


def generate_tank_signals(stock: StockData) -> List[str]:
    signals = []

    if stock.flow_score is not None:
        if stock.flow_score >= 75:
            signals.append("Strong Bullish Flow")
        elif stock.flow_score >= 60:
            signals.append("Bullish Flow")
        elif stock.flow_score <= 25:
            signals.append("Strong Bearish Flow")
        elif stock.flow_score <= 40:
            signals.append("Bearish Flow")

    if stock.net_premium is not None and abs(stock.net_premium) >= 10_000_000:
        signals.append(f"Net Premium: {format_money(stock.net_premium)}")

    if stock.unusual_activity is not None and stock.unusual_activity >= 70:
        signals.append("Unusual Activity")

    return signals


# =============================================================================
# Raw Payload Parsing
# =============================================================================

def _to_float(value) -> float:
    """Parse a provider number; missing or unparseable -> 0.0."""
    if value is None:
        return 0.0
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


def _to_int(value) -> int:
    return int(_to_float(value))


def transform_flow_alert(raw: dict) -> FlowAlert:
    """Build a FlowAlert from a flow-provider JSON record."""
    option_type = str(raw.get('type') or '').lower()
    return FlowAlert(
        ticker=raw.get('ticker', ''),
        strike=_to_float(raw.get('strike')),
        expiry=raw.get('expiry') or '',
        type='call' if option_type == 'call' else 'put',
        total_premium=_to_float(raw.get('total_premium')),
        ask_side_premium=_to_float(raw.get('total_ask_side_prem')),
        bid_side_premium=_to_float(raw.get('total_bid_side_prem')),
        total_size=_to_int(raw.get('total_size')) or _to_int(raw.get('volume')),
        is_sweep=raw.get('has_sweep') is True,
        is_floor=raw.get('has_floor') is True,
        created_at=raw.get('created_at') or '',
    )


def transform_dark_pool_print(raw: dict) -> DarkPoolPrint:
    return DarkPoolPrint(
        ticker=raw.get('ticker', ''),
        price=_to_float(raw.get('price')),
        size=_to_int(raw.get('size')),
        premium=_to_float(raw.get('premium')),
        nbbo_ask=_to_float(raw.get('nbbo_ask')),
        nbbo_bid=_to_float(raw.get('nbbo_bid')),
        executed_at=raw.get('executed_at') or '',
    )


def format_money(num: float) -> str:
    """Signed short money format: +$1.2B / -$3.4M / +$12K / +$500."""
    sign = '-' if num < 0 else '+'
    value = abs(num)

    if value >= 1e9:
        return f"{sign}${value / 1e9:.1f}B"
    if value >= 1e6:
        return f"{sign}${value / 1e6:.1f}M"
    if value >= 1e3:
        return f"{sign}${value / 1e3:.0f}K"
    return f"{sign}${value:.0f}"
