"""
Gamma Flow Scanner - Liquidity Hunter

Fair value gaps (three-bar imbalances) combined with estimated order-flow
delta. A gap created on a bar with a strong delta is a liquidity zone.
"""

import logging
from typing import List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd

import config
import technical_analysis as ta
from models import FairValueGap, LiquidityData, PriceBar

logger = logging.getLogger(__name__)


# =============================================================================
# Order Flow
# =============================================================================

def estimate_buy_sell_frame(data: pd.DataFrame, method: str = 'advanced') -> Tuple[pd.Series, pd.Series]:
    """
    Estimate buy and sell volume per bar from where the close sits in the bar.

    Methods:
        simple:   60/40 by candle direction
        advanced: by buying vs selling pressure (close - low vs high - close)
        mixed:    average of the two

    Args:
        data: DataFrame with open, high, low, close, volume columns
        method: 'simple', 'advanced' or 'mixed'

    Returns:
        Tuple of (buy_volume, sell_volume) Series
    """
    volume = data['volume'].fillna(0)
    price_range = data['high'] - data['low']
    position = ((data['close'] - data['low']) / price_range.where(price_range > 0)).fillna(0.5)

    simple = pd.Series(np.where(data['close'] > data['open'], 0.6, 0.4), index=data.index)

    buy_pressure = data['close'] - data['low']
    sell_pressure = data['high'] - data['close']
    advanced = pd.Series(
        np.where(buy_pressure > sell_pressure, 0.4 + position * 0.4, 0.2 + position * 0.3),
        index=data.index,
    )

    if method == 'simple':
        ratio = simple
    elif method == 'advanced':
        ratio = advanced
    else:
        ratio = (simple + advanced) / 2

    # Doji-range bars split evenly
    ratio = ratio.where(price_range != 0, 0.5)

    buy = volume * ratio
    sell = volume - buy
    return buy, sell


def estimate_buy_sell_volume(bar: PriceBar, method: str = 'advanced') -> Tuple[float, float]:
    """Single-bar version of estimate_buy_sell_frame()."""
    buy, sell = estimate_buy_sell_frame(ta.bars_to_frame([bar]), method)
    return float(buy.iloc[0]), float(sell.iloc[0])


def calculate_order_flow(data: pd.DataFrame, liquidity_config: dict = None) -> dict:
    """
    Order-flow metrics for the latest bar against the lookback window.

    Returns:
        Dict with buy_volume, sell_volume, delta (latest bar), avg_abs_delta,
        buy_pressure, sell_pressure (window totals), is_significant_buying,
        is_significant_selling
    """
    if liquidity_config is None:
        liquidity_config = config.LIQUIDITY_CONFIG

    method = liquidity_config.get('VOLUME_METHOD', 'advanced')
    lookback = liquidity_config.get('OF_LOOKBACK', 20)
    threshold = liquidity_config.get('OF_DELTA_THRESHOLD', 1000)

    recent = data.iloc[-lookback:]
    buy, sell = estimate_buy_sell_frame(recent, method)
    deltas = buy - sell

    current_buy = float(buy.iloc[-1])
    current_sell = float(sell.iloc[-1])
    current_delta = current_buy - current_sell

    return {
        'buy_volume': current_buy,
        'sell_volume': current_sell,
        'delta': current_delta,
        'avg_abs_delta': float(deltas.abs().mean()) if len(deltas) else 0.0,
        'buy_pressure': float(buy.sum()),
        'sell_pressure': float(sell.sum()),
        'is_significant_buying': current_delta >= threshold,
        'is_significant_selling': current_delta <= -threshold,
    }


# =============================================================================
# Fair Value Gaps
# =============================================================================

def detect_fvg(data: pd.DataFrame, index: int, threshold: float) -> Optional[FairValueGap]:
    """
    Detect a fair value gap completed at bar `index`.

    Bullish: low[i] above high[i-2] and bar i-1 never traded back into it.
    Bearish: high[i] below low[i-2] and bar i-1 never traded back into it.

    Args:
        data: OHLC DataFrame
        index: Bar completing the pattern
        threshold: Minimum gap size in percent
    """
    if index < 2:
        return None

    bar0 = data.iloc[index]
    bar1 = data.iloc[index - 1]
    bar2 = data.iloc[index - 2]

    bullish_gap = bar0['low'] - bar2['high']
    if bullish_gap > 0 and bar2['high'] > 0:
        gap_pct = bullish_gap / bar2['high'] * 100
        if gap_pct >= threshold and bar1['low'] > bar2['high']:
            return FairValueGap(
                type='bullish',
                top=float(bar0['low']),
                bottom=float(bar2['high']),
                mid=float((bar0['low'] + bar2['high']) / 2),
                gap_size=float(bullish_gap),
                gap_percent=float(gap_pct),
                created_at=index,
            )

    bearish_gap = bar2['low'] - bar0['high']
    if bearish_gap > 0 and bar2['low'] > 0:
        gap_pct = bearish_gap / bar2['low'] * 100
        if gap_pct >= threshold and bar1['high'] < bar2['low']:
            return FairValueGap(
                type='bearish',
                top=float(bar2['low']),
                bottom=float(bar0['high']),
                mid=float((bar2['low'] + bar0['high']) / 2),
                gap_size=float(bearish_gap),
                gap_percent=float(gap_pct),
                created_at=index,
            )

    return None


def is_fvg_filled(fvg: FairValueGap, data: pd.DataFrame, current_index: int) -> bool:
    """A bullish gap fills when a later low reaches its bottom; bearish when a later high reaches its top."""
    after = data.iloc[fvg.created_at + 1:current_index + 1]
    if after.empty:
        return False
    if fvg.type == 'bullish':
        return bool((after['low'] <= fvg.bottom).any())
    return bool((after['high'] >= fvg.top).any())


def update_fvgs(
    fvgs: List[FairValueGap],
    data: pd.DataFrame,
    current_index: int,
    liquidity_config: dict = None
) -> List[FairValueGap]:
    """Mark filled gaps and drop those that are too old (or filled, if configured)."""
    if liquidity_config is None:
        liquidity_config = config.LIQUIDITY_CONFIG

    max_age = liquidity_config.get('FVG_MAX_AGE', 50)
    unfilled_only = liquidity_config.get('SHOW_UNFILLED_ONLY', True)

    active = []
    for fvg in fvgs:
        if not fvg.is_filled:
            fvg.is_filled = is_fvg_filled(fvg, data, current_index)
        if current_index - fvg.created_at > max_age:
            continue
        if unfilled_only and fvg.is_filled:
            continue
        active.append(fvg)
    return active


def is_price_in_fvg(fvg: FairValueGap, bar) -> bool:
    return bar['low'] <= fvg.top and bar['high'] >= fvg.bottom


# =============================================================================
# Scoring
# =============================================================================

def calculate_liquidity_score(fvgs: List[FairValueGap], order_flow: dict) -> float:
    """
    Score liquidity on 0-100 (50 = neutral).

    Signals:
        +10 each: Active liquidity zone
        +15:      Significant buying or selling on the latest bar
        +5..10:   Latest |delta| vs average |delta| (1.5x / 2x)
        +10:      2+ unfilled gaps in the direction of the delta
    """
    score = 50

    open_gaps = [f for f in fvgs if not f.is_filled]
    score += sum(10 for f in open_gaps if f.is_liquidity_zone)

    if order_flow['is_significant_buying'] or order_flow['is_significant_selling']:
        score += 15

    delta = order_flow['delta']
    delta_ratio = abs(delta) / (order_flow['avg_abs_delta'] or 1)
    if delta_ratio > 2:
        score += 10
    elif delta_ratio > 1.5:
        score += 5

    bullish = sum(1 for f in open_gaps if f.type == 'bullish')
    bearish = sum(1 for f in open_gaps if f.type == 'bearish')
    if bullish >= 2 and delta > 0:
        score += 10
    elif bearish >= 2 and delta < 0:
        score += 10

    return max(0, min(100, score))


def _neutral_result() -> LiquidityData:
    return LiquidityData(
        active_fvg_count=0,
        bullish_fvg_count=0,
        bearish_fvg_count=0,
        liquidity_zone_count=0,
        buy_volume=0.0,
        sell_volume=0.0,
        delta=0.0,
        avg_abs_delta=0.0,
        is_significant_buying=False,
        is_significant_selling=False,
        liquidity_score=50,
        liquidity_signals=[],
    )


# =============================================================================
# Main Analysis
# =============================================================================

def analyze_liquidity(
    symbol: str,
    bars: Sequence[PriceBar],
    liquidity_config: dict = None
) -> LiquidityData:
    """
    Full liquidity analysis: gaps, order flow and liquidity zones.

    Args:
        symbol: Stock symbol (for logging and nothing else)
        bars: Bars, oldest first
        liquidity_config: Configuration dict (uses config.LIQUIDITY_CONFIG if None)

    Returns:
        LiquidityData (neutral score 50 with fewer than 3 bars)
    """
    if liquidity_config is None:
        liquidity_config = config.LIQUIDITY_CONFIG

    if len(bars) < 3:
        logger.info(f"{symbol}: {len(bars)} bars, liquidity neutral")
        return _neutral_result()

    df = ta.bars_to_frame(bars)
    method = liquidity_config.get('VOLUME_METHOD', 'advanced')
    threshold = liquidity_config.get('OF_DELTA_THRESHOLD', 1000)
    zone_threshold = threshold * liquidity_config.get('LIQ_DELTA_MULTIPLIER', 1.5)

    fvgs = []
    if liquidity_config.get('ENABLE_FVG', True):
        buy, sell = estimate_buy_sell_frame(df, method)
        deltas = buy - sell
        for i in range(2, len(df)):
            fvg = detect_fvg(df, i, liquidity_config.get('FVG_THRESHOLD', 0.5))
            if fvg is None:
                continue
            fvg.delta_at_creation = float(deltas.iloc[i])
            fvg.is_liquidity_zone = (
                liquidity_config.get('ENABLE_LIQUIDITY', True)
                and abs(fvg.delta_at_creation) >= zone_threshold
            )
            fvgs.append(fvg)

    current_index = len(df) - 1
    active = update_fvgs(fvgs, df, current_index, liquidity_config)

    if liquidity_config.get('ENABLE_ORDER_FLOW', True):
        order_flow = calculate_order_flow(df, liquidity_config)
    else:
        order_flow = {
            'buy_volume': 0.0, 'sell_volume': 0.0, 'delta': 0.0, 'avg_abs_delta': 0.0,
            'buy_pressure': 0.0, 'sell_pressure': 0.0,
            'is_significant_buying': False, 'is_significant_selling': False,
        }

    open_gaps = [f for f in active if not f.is_filled]

    signals = []
    current_bar = df.iloc[current_index]
    for fvg in open_gaps:
        if not (fvg.is_liquidity_zone and is_price_in_fvg(fvg, current_bar)):
            continue
        if fvg.type == 'bullish':
            confirms = order_flow['delta'] >= threshold
        else:
            confirms = order_flow['delta'] <= -threshold
        if confirms:
            side = "BULLISH" if fvg.type == 'bullish' else "BEARISH"
            signals.append(f"{side} LIQUIDITY at ${fvg.bottom:.2f} - ${fvg.top:.2f}")

    return LiquidityData(
        active_fvg_count=len(open_gaps),
        bullish_fvg_count=sum(1 for f in open_gaps if f.type == 'bullish'),
        bearish_fvg_count=sum(1 for f in open_gaps if f.type == 'bearish'),
        liquidity_zone_count=sum(1 for f in open_gaps if f.is_liquidity_zone),
        buy_volume=order_flow['buy_volume'],
        sell_volume=order_flow['sell_volume'],
        delta=order_flow['delta'],
        avg_abs_delta=order_flow['avg_abs_delta'],
        is_significant_buying=order_flow['is_significant_buying'],
        is_significant_selling=order_flow['is_significant_selling'],
        liquidity_score=calculate_liquidity_score(active, order_flow),
        liquidity_signals=signals,
    )
