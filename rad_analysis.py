"""
Gamma Flow Scanner - RAD (Resistance After Dip)

Detects dip-then-consolidation setups from a daily bar series.

Raw score is a small signed number (roughly -5..+5):
    +1    Significant dip (range >= ATR% x multiplier)
    +1    Tight consolidation (last N bars inside range_threshold of the dip)
    +0.5  per higher low (when >= 2)
    -0.5  per lower high (when >= 2)
    ±0.5  Price above / below EMA trend
    +0.5  Healthy recovery (50-80% of the dip range)
    +0.5  Volume declining in consolidation

normalize_rad_score() maps it onto 0-100 with 50 as neutral.

detect_rad_patterns() and determine_current_phase() describe the pivot
high -> dip low -> recovery structure and where price sits in it now.
"""

import logging
from typing import List, Sequence

import pandas as pd

import config
import technical_analysis as ta
from models import (
    PriceBar, RADConfig, RADSetupData, RADPattern, RADPatternConfig, StockData,
    BULLISH, BEARISH, NEUTRAL, TREND_UP, TREND_DOWN,
)

logger = logging.getLogger(__name__)


def _neutral_result(message: str) -> RADSetupData:
    return RADSetupData(
        score=0,
        normalized_score=50,
        signal=NEUTRAL,
        trend=TREND_UP,
        dip_percent=0.0,
        consol_range=0.0,
        higher_lows=0,
        lower_highs=0,
        ema_value=0.0,
        is_above_trend=False,
        signals=[message],
    )


# =============================================================================
# Full Analysis
# =============================================================================

def analyze_rad(
    bars: Sequence[PriceBar],
    rad_config: RADConfig = None,
    pattern_config: RADPatternConfig = None
) -> RADSetupData:
    """
    Full RAD analysis from price bars.

    Never raises on data-quality problems: short history or degenerate
    ranges produce a neutral result.

    Args:
        bars: Daily bars, oldest first
        rad_config: RADConfig (uses config.RAD_CONFIG if None)
        pattern_config: RADPatternConfig for detect_rad_patterns()

    Returns:
        RADSetupData, with the dip patterns and current phase attached
    """
    if rad_config is None:
        rad_config = config.RAD_CONFIG

    if len(bars) < rad_config.lookback_period:
        logger.info(
            f"RAD: {len(bars)} bars < lookback {rad_config.lookback_period}, returning neutral"
        )
        return _neutral_result("Insufficient data for RAD analysis")

    df = ta.bars_to_frame(bars)
    signals = []
    score = 0.0

    # 1. Volatility and trend
    atr = ta.latest_atr(df, rad_config.atr_period)
    current_price = float(df['close'].iloc[-1])

    ema = ta.calculate_ema(df['close'], rad_config.ema_length)
    current_ema = float(ema.iloc[-1])
    is_above_trend = current_price > current_ema
    trend = TREND_UP if is_above_trend else TREND_DOWN

    # 2. Dip over the lookback window
    lookback = df.iloc[-rad_config.lookback_period:]
    recent_high = float(lookback['high'].max())
    recent_low = float(lookback['low'].min())
    dip_range = recent_high - recent_low

    dip_percent = (dip_range / recent_high * 100) if recent_high > 0 else 0.0
    atr_percent = (atr / current_price * 100) if current_price > 0 else 0.0
    significant_dip = dip_percent >= atr_percent * rad_config.atr_multiplier

    # 3. Consolidation
    consol = df.iloc[-rad_config.consolidation_days:]
    consol_high = float(consol['high'].max())
    consol_low = float(consol['low'].min())
    consol_range = ((consol_high - consol_low) / consol_low * 100) if consol_low > 0 else 0.0
    is_tight = (consol_high - consol_low) <= dip_range * rad_config.range_threshold

    # 4. Swing structure over the full series
    swing_highs, swing_lows = ta.find_swing_points(df, rad_config.swing_lookback)
    higher_lows = ta.count_higher_lows(swing_lows)
    lower_highs = ta.count_lower_highs(swing_highs)

    # Scoring
    if significant_dip:
        score += 1
        signals.append(f"Significant dip: {dip_percent:.1f}%")

    if is_tight:
        score += 1
        signals.append(f"Tight consolidation: {consol_range:.1f}% range")

    if higher_lows >= 2:
        score += higher_lows * 0.5
        signals.append(f"{higher_lows} higher lows forming")

    if lower_highs >= 2:
        score -= lower_highs * 0.5
        signals.append(f"{lower_highs} lower highs (resistance)")

    if is_above_trend:
        score += 0.5
        signals.append("Price above EMA trend")
    else:
        score -= 0.5
        signals.append("Price below EMA trend")

    # Empty range -> 0, which never counts as a recovery
    recovery = ta.calculate_position_in_range(df, rad_config.lookback_period, default=0.0) * 100
    if 50 <= recovery <= 80:
        score += 0.5
        signals.append(f"Healthy recovery: {recovery:.0f}%")

    prior_days = rad_config.lookback_period - rad_config.consolidation_days
    recent_volume = consol['volume'].mean()
    prior_volume = (
        lookback['volume'].iloc[:-rad_config.consolidation_days].sum() / prior_days
        if prior_days > 0 else 0.0
    )
    if recent_volume < prior_volume * 0.7:
        score += 0.5
        signals.append("Volume declining in consolidation")

    # Signal
    signal = NEUTRAL
    if score >= rad_config.bullish_threshold:
        signal = BULLISH
        signals.insert(0, "RAD Setup: Bullish breakout potential")
    elif score <= rad_config.bearish_threshold:
        signal = BEARISH
        signals.insert(0, "RAD Setup: Bearish breakdown risk")

    # Patterns describe the setup; they do not move the score
    patterns = detect_rad_patterns(bars, pattern_config)
    phase = determine_current_phase(bars, patterns)

    return RADSetupData(
        score=score,
        normalized_score=normalize_rad_score(score),
        signal=signal,
        trend=trend,
        dip_percent=dip_percent,
        consol_range=consol_range,
        higher_lows=higher_lows,
        lower_highs=lower_highs,
        ema_value=current_ema,
        is_above_trend=is_above_trend,
        signals=signals,
        phase=phase,
        patterns=patterns,
    )


def normalize_rad_score(raw_score: float) -> float:
    """Map raw RAD score onto 0-100 (0 -> 50, 10 points per raw unit)."""
    return max(0.0, min(100.0, 50 + raw_score * 10))


# =============================================================================
# Dip Patterns and Phase
# =============================================================================

PHASE_DIP = 'dip'
PHASE_RECOVERY = 'recovery'
PHASE_CONSOLIDATION = 'consolidation'
PHASE_BREAKOUT = 'breakout'
PHASE_NONE = 'none'


def _volume_trend(volume: pd.Series, start: int, end: int) -> str:
    """Second half vs first half of volume[start:end + 1]."""
    if end - start < 3:
        return 'neutral'

    midpoint = (start + end) // 2
    first = float(volume.iloc[start:midpoint].sum())
    second = float(volume.iloc[midpoint:end + 1].sum())

    ratio = second / (first or 1)
    if ratio > 1.2:
        return 'increasing'
    if ratio < 0.8:
        return 'decreasing'
    return 'neutral'


def detect_rad_patterns(bars: Sequence[PriceBar], pattern_config: RADPatternConfig = None) -> List[RADPattern]:
    """
    Dip-then-recovery patterns between pivot highs and the pivot lows after them.

    Each pivot high pairs with the first later pivot low (within lookback_period
    bars) that sits at least dip_threshold percent below it. Recovery is
    measured over the lookback_period bars from the low.

    Strength (0-100): 50, +15 rising volume, +15 recovered half the dip,
    +10 V-shaped dip, +10 dip of 5% or more.

    Returns:
        Up to max_patterns patterns, most recent start first
    """
    if pattern_config is None:
        pattern_config = config.RAD_PATTERN_CONFIG

    df = ta.bars_to_frame(bars)
    pivot_highs, pivot_lows = ta.find_swing_points(df, pattern_config.pivot_lookback)
    lookback = pattern_config.lookback_period

    patterns = []
    for high_index, pre_dip_high in pivot_highs:
        following = [
            (i, price) for i, price in pivot_lows
            if high_index < i < high_index + lookback
        ]

        for low_index, dip_low in following:
            dip_percent = (pre_dip_high - dip_low) / pre_dip_high * 100
            if dip_percent < pattern_config.dip_threshold:
                continue

            recovery = df.iloc[low_index:min(low_index + lookback, len(df))]
            max_recovery = float(recovery['high'].max())
            recovery_percent = (max_recovery - dip_low) / dip_low * 100
            end_index = low_index + len(recovery) - 1

            volume_profile = _volume_trend(df['volume'], high_index, end_index)

            if recovery_percent >= pattern_config.recovery_threshold:
                if max_recovery >= pre_dip_high * 0.95:
                    pattern_type = 'reversal'
                    signal = 'bullish_reversal' if volume_profile == 'increasing' else 'breakout_pending'
                else:
                    pattern_type = 'accumulation'
                    signal = 'bullish_reversal'
            else:
                pattern_type = 'consolidation'
                signal = 'breakout_pending' if recovery_percent > dip_percent * 0.3 else 'bearish_continuation'

            midpoint = (pre_dip_high + dip_low) / 2
            resistance = [pre_dip_high, midpoint * 1.02]
            if max_recovery < pre_dip_high:
                resistance.append(max_recovery)
            support = [dip_low, dip_low * 1.01, midpoint * 0.98]

            strength = 50
            if pattern_config.volume_confirmation and volume_profile == 'increasing':
                strength += 15
            if recovery_percent >= dip_percent * 0.5:
                strength += 15

            # Average close above the lower 40% of the drop -> V-shaped
            avg_dip_close = float(df['close'].iloc[high_index:low_index + 1].mean())
            if (avg_dip_close - dip_low) / (pre_dip_high - dip_low) > 0.4:
                strength += 10
            if dip_percent >= 5:
                strength += 10

            patterns.append(RADPattern(
                type=pattern_type,
                start_index=high_index,
                end_index=end_index,
                dip_depth=dip_percent,
                dip_low=dip_low,
                pre_dip_high=pre_dip_high,
                recovery_percent=recovery_percent,
                volume_profile=volume_profile,
                signal=signal,
                strength=min(100, strength),
                resistance_levels=sorted(set(resistance)),
                support_levels=sorted(set(support)),
            ))
            break

    patterns.sort(key=lambda p: p.start_index, reverse=True)
    return patterns[:pattern_config.max_patterns]


def determine_current_phase(bars: Sequence[PriceBar], patterns: Sequence[RADPattern]) -> str:
    """
    Where the latest bar sits relative to the most recent pattern.

    Checked in order: 3%+ below the 10-bar high is a dip, 2% above the
    pre-dip high a breakout, between the dip low and pre-dip high (2% bands)
    a recovery, anything else consolidation.
    """
    if not patterns or not bars:
        return PHASE_NONE

    latest = patterns[0]
    current_price = bars[-1].close
    recent_high = max(b.high for b in list(bars)[-10:])

    if recent_high > 0 and (recent_high - current_price) / recent_high * 100 >= 3:
        return PHASE_DIP
    if current_price > latest.pre_dip_high * 1.02:
        return PHASE_BREAKOUT
    if latest.dip_low * 1.02 < current_price < latest.pre_dip_high * 0.98:
        return PHASE_RECOVERY
    return PHASE_CONSOLIDATION


# =============================================================================
# Quick Score (snapshot only)
# =============================================================================

def calculate_quick_rad_score(stock: StockData) -> float:
    """
    Best-effort RAD score when no bar history is available.

    Low confidence: uses only the day's OHLC, change percent and a
    market-cap based volume estimate.
    """
    if stock.rad_setup is not None:
        return stock.rad_setup.normalized_score

    score = 50

    if stock.high and stock.low and stock.prev_close:
        day_range = stock.high - stock.low
        if day_range > 0:
            position = (stock.price - stock.low) / day_range
            if 0.3 < position < 0.7:
                score += 10

        # Dip with stabilization
        if stock.price < stock.prev_close * 0.97 and stock.change_percent > -3:
            score += 15

    if stock.volume and stock.market_cap and stock.price:
        avg_volume = stock.market_cap / stock.price / 250
        if avg_volume > 0:
            volume_ratio = stock.volume / avg_volume
            if volume_ratio < 0.8:
                score += 5
            elif volume_ratio > 1.5:
                score -= 5

    change = stock.change_percent
    if -5 < change < -1:
        score += 10
    elif -1 <= change <= 1:
        score += 5
    elif change < -5:
        score -= 10
    elif change > 3:
        score -= 5

    return max(0, min(100, score))


# =============================================================================
# Display Helpers
# =============================================================================

def generate_rad_signals(data: RADSetupData) -> List[str]:
    """Short labels for tables and dashboards."""
    labels = []

    if data.signal == BULLISH:
        labels.append("RAD Setup Active")
    if data.dip_percent >= 5:
        labels.append(f"Dip: {data.dip_percent:.1f}%")
    if data.consol_range <= 3:
        labels.append(f"Tight Range: {data.consol_range:.1f}%")
    if data.higher_lows >= 2:
        labels.append(f"{data.higher_lows} Higher Lows")
    if data.is_above_trend:
        labels.append("Above EMA")

    return labels


def has_valid_rad_setup(data: RADSetupData) -> bool:
    return (
        data.signal == BULLISH
        and data.dip_percent >= 3
        and data.higher_lows >= 1
        and data.consol_range <= 5
    )


def get_rad_strength(normalized_score: float) -> str:
    if normalized_score >= 80:
        return "Strong Setup"
    if normalized_score >= 65:
        return "Good Setup"
    if normalized_score >= 50:
        return "Developing"
    if normalized_score >= 35:
        return "Weak"
    return "No Setup"
