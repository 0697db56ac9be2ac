"""
Gamma Flow Scanner - Technical Analysis

Price-series calculations shared by the analyzers.
All functions are pure (no side effects, no network access).
"""

import math

import pandas as pd
import numpy as np
from typing import List, Sequence, Tuple

from models import PriceBar


BAR_COLUMNS = ['open', 'high', 'low', 'close', 'volume', 'timestamp']


def round_half_up(value: float) -> int:
    """Round to the nearest integer with .5 going up (round() rounds to even)."""
    return int(math.floor(value + 0.5))


def finite_or(value, fallback=None):
    """`value` as a float if it is a finite number, else `fallback` (None, NaN, inf, junk)."""
    try:
        number = float(value)
    except (TypeError, ValueError):
        return fallback
    return number if math.isfinite(number) else fallback


# =============================================================================
# Conversion
# =============================================================================

def bars_to_frame(bars: Sequence[PriceBar]) -> pd.DataFrame:
    """
    Convert a list of PriceBar into an OHLCV DataFrame (oldest first).

    Args:
        bars: Sequence of PriceBar

    Returns:
        DataFrame with open, high, low, close, volume, timestamp columns
    """
    if not bars:
        return pd.DataFrame(columns=BAR_COLUMNS, dtype=float)

    return pd.DataFrame({
        'open': [b.open for b in bars],
        'high': [b.high for b in bars],
        'low': [b.low for b in bars],
        'close': [b.close for b in bars],
        'volume': [b.volume for b in bars],
        'timestamp': [b.timestamp for b in bars],
    })


# =============================================================================
# Moving Averages
# =============================================================================

def calculate_ema(prices: pd.Series, span: int) -> pd.Series:
    """
    Calculate Exponential Moving Average, seeded with the first price.

    Args:
        prices: Price series
        span: EMA span (equivalent to period)

    Returns:
        Series of EMA values
    """
    return prices.ewm(span=span, adjust=False).mean()


# =============================================================================
# Volatility Indicators
# =============================================================================

def calculate_atr(data: pd.DataFrame, period: int = 14) -> pd.Series:
    """
    Calculate Average True Range.

    Args:
        data: DataFrame with 'high', 'low', 'close' columns
        period: ATR period (default 14)

    Returns:
        Series of ATR values
    """
    high = data['high']
    low = data['low']
    close = data['close']

    # True Range components
    tr1 = high - low
    tr2 = abs(high - close.shift(1))
    tr3 = abs(low - close.shift(1))

    # True Range is the max of the three
    tr = pd.concat([tr1, tr2, tr3], axis=1).max(axis=1)

    # ATR is the rolling mean of TR
    atr = tr.rolling(window=period, min_periods=1).mean()

    return atr


def latest_atr(data: pd.DataFrame, period: int = 14) -> float:
    """
    Latest ATR value, averaged over the last `period` true ranges.

    Returns 0.0 when there are fewer than period + 1 bars (the first bar
    has no previous close).
    """
    if len(data) < period + 1:
        return 0.0
    return float(calculate_atr(data, period).iloc[-1])


# =============================================================================
# Swing Structure
# =============================================================================

def find_swing_points(
    data: pd.DataFrame,
    lookback: int = 3
) -> Tuple[List[Tuple[int, float]], List[Tuple[int, float]]]:
    """
    Find swing highs and swing lows.

    A bar is a swing high when its high is strictly greater than the highs of
    the `lookback` bars on either side (swing low: strictly lower low).
    Ties break the swing.

    Args:
        data: DataFrame with 'high' and 'low' columns
        lookback: Bars checked on each side

    Returns:
        Tuple of (swing_highs, swing_lows), each a list of (index, price)
    """
    highs = data['high'].values
    lows = data['low'].values

    swing_highs = []
    swing_lows = []

    for i in range(lookback, len(data) - lookback):
        is_high = True
        is_low = True

        for j in range(1, lookback + 1):
            if highs[i] <= highs[i - j] or highs[i] <= highs[i + j]:
                is_high = False
            if lows[i] >= lows[i - j] or lows[i] >= lows[i + j]:
                is_low = False

        if is_high:
            swing_highs.append((i, float(highs[i])))
        if is_low:
            swing_lows.append((i, float(lows[i])))

    return swing_highs, swing_lows


def count_higher_lows(swing_lows: List[Tuple[int, float]], recent: int = 5) -> int:
    """Count consecutive-pair rises among the last `recent` swing lows."""
    if len(swing_lows) < 2:
        return 0

    points = swing_lows[-recent:]
    return sum(1 for i in range(1, len(points)) if points[i][1] > points[i - 1][1])


def count_lower_highs(swing_highs: List[Tuple[int, float]], recent: int = 5) -> int:
    """Count consecutive-pair drops among the last `recent` swing highs."""
    if len(swing_highs) < 2:
        return 0

    points = swing_highs[-recent:]
    return sum(1 for i in range(1, len(points)) if points[i][1] < points[i - 1][1])


# =============================================================================
# Range
# =============================================================================

def calculate_position_in_range(
    data: pd.DataFrame,
    lookback: int = 20,
    default: float = 0.5
) -> float:
    """
    Calculate where current price sits in recent range.

    Returns:
        0.0 = at low, 1.0 = at high, `default` when the range is empty
    """
    if len(data) < lookback:
        return default

    recent = data.iloc[-lookback:]
    high = recent['high'].max()
    low = recent['low'].min()
    current = data['close'].iloc[-1]

    if high == low:
        return default

    return float((current - low) / (high - low))


# =============================================================================
# Module Test
# =============================================================================

if __name__ == "__main__":
    print("Testing technical_analysis module...")

    np.random.seed(42)
    close = 100 + np.cumsum(np.random.randn(60) * 0.5)
    sample = [
        PriceBar(open=c, high=c * 1.01, low=c * 0.99, close=c, volume=1_000_000, timestamp=i)
        for i, c in enumerate(close)
    ]
    df = bars_to_frame(sample)

    print(f"✓ EMA(21): {calculate_ema(df['close'], 21).iloc[-1]:.2f}")
    print(f"✓ ATR(14): {latest_atr(df):.4f}")

    highs, lows = find_swing_points(df)
    print(f"✓ Swings: {len(highs)} highs, {len(lows)} lows")
    print(f"✓ Higher lows: {count_higher_lows(lows)}, Lower highs: {count_lower_highs(highs)}")
    print(f"✓ Position in range: {calculate_position_in_range(df):.2f}")

    print("\ntechnical_analysis module tests passed!")
