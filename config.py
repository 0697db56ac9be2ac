"""
Gamma Flow Scanner - Configuration

config.py is the single source of truth for parameters.
Analyzer functions accept an explicit config argument; when omitted they fall
back to the values below. You can still override in notebook sessions:

    import config
    config.DEFAULT_SCAN_LIMIT = 50
"""

import os
from pathlib import Path
from types import MappingProxyType
from dotenv import load_dotenv

from models import RADConfig, RADPatternConfig, ScanModeWeights

# Load environment variables from .env file
load_dotenv()

# =============================================================================
# Paths
# =============================================================================
BASE_DIR = Path(__file__).parent
RESULTS_DIR = Path(os.getenv("GFS_RESULTS_DIR", BASE_DIR / "results"))


# =============================================================================
# Data Source Settings
# =============================================================================
YFINANCE_HISTORY_PERIOD = "6mo"
YFINANCE_INTERVAL = "1d"
FETCH_OPTIONS = True            # pull nearest-expiry option chain for OSV / MP/LP
FETCH_MAX_WORKERS = 8           # per-symbol fetch fan-out

# Reserved for the flow / dark-pool providers (not used by the scoring core)
POLYGON_API_KEY = os.getenv("POLYGON_API_KEY")
UW_API_KEY = os.getenv("UW_API_KEY")


# =============================================================================
# Scan Modes
# =============================================================================
SCAN_MODES = ('intraday', 'swing', 'longterm', 'liquidity')

# Each row must sum to 1.0 (checked by scanners.validate_mode_weights).
MODE_WEIGHTS = MappingProxyType({
    'intraday': ScanModeWeights(tank=0.35, rad=0.10, mp_lp=0.30, osv=0.15, liquidity=0.10),
    'swing': ScanModeWeights(tank=0.15, rad=0.35, mp_lp=0.15, osv=0.25, liquidity=0.10),
    'longterm': ScanModeWeights(tank=0.20, rad=0.15, mp_lp=0.10, osv=0.40, liquidity=0.15),
    'liquidity': ScanModeWeights(tank=0.15, rad=0.10, mp_lp=0.15, osv=0.10, liquidity=0.50),
})

DEFAULT_SCAN_MODE = 'swing'
DEFAULT_SCAN_LIMIT = 20
DEFAULT_LIQUIDITY_SCORE = 50     # used when no liquidity data is available
MAX_SIGNALS_PER_COMPONENT = 2
SCAN_MAX_WORKERS = 8             # per-symbol analysis fan-out

WATCHLISTS = MappingProxyType({
    'intraday': ('SPY', 'QQQ', 'IWM', 'TSLA', 'NVDA', 'AMD', 'AAPL', 'MSFT', 'META', 'GOOGL'),
    'swing': (
        'AAPL', 'MSFT', 'GOOGL', 'AMZN', 'NVDA', 'META', 'TSLA', 'AMD', 'NFLX', 'CRM',
        'AVGO', 'ORCL', 'CSCO', 'ADBE', 'INTC', 'QCOM', 'TXN', 'AMAT', 'MU', 'LRCX',
        'JPM', 'BAC', 'WFC', 'GS', 'MS', 'C', 'USB', 'PNC', 'TFC', 'SCHW',
        'UNH', 'JNJ', 'PFE', 'ABBV', 'MRK', 'TMO', 'ABT', 'LLY', 'BMY', 'AMGN',
        'XOM', 'CVX', 'COP', 'SLB', 'EOG', 'MPC', 'VLO', 'PSX', 'OXY',
    ),
    'longterm': (
        'AAPL', 'MSFT', 'GOOGL', 'AMZN', 'META', 'NVDA', 'TSLA',
        'JPM', 'BAC', 'GS', 'MS', 'WFC', 'C', 'BLK', 'V', 'MA',
        'UNH', 'JNJ', 'PFE', 'ABBV', 'MRK', 'LLY', 'TMO', 'ABT',
        'LMT', 'RTX', 'BA', 'NOC', 'GD',
    ),
    'liquidity': ('SPY', 'QQQ', 'IWM', 'AAPL', 'NVDA', 'TSLA', 'AMD', 'META', 'AMZN', 'MSFT'),
})


# =============================================================================
# RAD (Resistance After Dip)
# =============================================================================
RAD_CONFIG = RADConfig(
    atr_multiplier=1.8,
    lookback_period=20,
    consolidation_days=5,
    range_threshold=0.70,
    bullish_threshold=3.0,
    bearish_threshold=-2.0,
    ema_length=21,
)

RAD_PATTERN_CONFIG = RADPatternConfig(
    dip_threshold=3.0,
    recovery_threshold=1.5,
    lookback_period=50,
)


# =============================================================================
# OSV (Options Summary Volume)
# =============================================================================
OSV_CONFIG = {
    # Ask/bid split assumed when the feed only gives total volume.
    # Unverified heuristic: results built from it carry ask_bid_estimated=True.
    'DEFAULT_CALL_ASK_SHARE': 0.60,
    'DEFAULT_PUT_ASK_SHARE': 0.40,

    # Sentiment by put/call ratio
    'PCR_STRONG_BULLISH': 0.70,
    'PCR_BULLISH': 0.85,
    'PCR_STRONG_BEARISH': 1.50,
    'PCR_BEARISH': 1.30,
    'PREMIUM_CONFIRM_FACTOR': 1.2,   # premium skew needed for "strong" sentiment

    # Volume vs 30d average (percent)
    'VOLUME_EXTREME_PCT': 200,
    'VOLUME_HIGH_PCT': 150,

    # Net premium flow bands (USD)
    'PREMIUM_FLOW_SIGNAL': 10_000_000,
    'PREMIUM_FLOW_MID': 20_000_000,
    'PREMIUM_FLOW_LARGE': 50_000_000,

    # Ask-side share per side
    'ASK_DOMINANCE_HEAVY': 0.70,
    'ASK_DOMINANCE_MODERATE': 0.60,
    'HEAVY_BUYING_SIGNAL': 0.65,
}


# =============================================================================
# TANK Flow
# =============================================================================
TANK_CONFIG = {
    'LARGE_INJECTION_THRESHOLD': 500_000,
    'EXTREME_INJECTION_THRESHOLD': 1_000_000,
    'EXTREME_BULLISH_RATIO': 2.0,
    'BULLISH_RATIO': 1.3,
    'BEARISH_RATIO': 0.77,
    'EXTREME_BEARISH_RATIO': 0.5,
    'SIGNIFICANT_NET_FLOW': 5_000_000,
    'EXTREME_NET_FLOW': 20_000_000,
    'MINOR_NET_FLOW': 1_000_000,
    'LARGE_DARK_POOL_PRINT': 1_000_000,
    'DARK_POOL_BULLISH_SHARE': 0.6,
    'DARK_POOL_BEARISH_SHARE': 0.4,
    'RATIO_CAP': 999,                # reported ratio when there is no sell premium

    # Bar-derived injections (used when no flow alerts are available)
    'INJECTION_VOLUME_RATIO': 1.5,   # bar volume / average volume
    'INJECTION_HISTORY': 30,
    'DARK_POOL_VOLUME_RATIO': 2.5,
    'DARK_POOL_BODY_SHARE': 0.3,     # body / range below this on a big bar -> dark pool
    'DARK_POOL_RATIO_OVERRIDE': 0.4,
    'STRENGTH_TREND_DELTA': 20,
    'WALL_BARS': 20,
    'WALL_PROXIMITY': 0.01,
    'DOMINANT_STRENGTH': 20,
    'CHART_STRENGTH_WEIGHT': 0.3,
    'DARK_POOL_SIGNAL_PCT': 30,
}


# =============================================================================
# MP/LP Zones
# =============================================================================
MPLP_CONFIG = {
    'MAGNET_BAND_PCT': 0.5,          # |price - magnet| within this % counts as AT
    'EMPTY_CHAIN_WALL_PCT': 0.05,
    'LARGE_GEX': 100_000_000,
    'QUICK_STRONG_GEX': 50_000_000,
}


# =============================================================================
# Liquidity Hunter
# =============================================================================
LIQUIDITY_CONFIG = {
    'ENABLE_FVG': True,
    'FVG_THRESHOLD': 0.5,            # minimum gap size, percent
    'FVG_MAX_AGE': 50,               # bars before a gap is dropped
    'SHOW_UNFILLED_ONLY': True,
    'ENABLE_ORDER_FLOW': True,
    'OF_LOOKBACK': 20,
    'OF_DELTA_THRESHOLD': 1000,
    'VOLUME_METHOD': 'advanced',     # 'simple' | 'advanced' | 'mixed'
    'ENABLE_LIQUIDITY': True,
    'LIQ_DELTA_MULTIPLIER': 1.5,
}


# =============================================================================
# Logging
# =============================================================================
LOG_LEVEL = os.getenv("GFS_LOG_LEVEL", "INFO")
LOG_FORMAT = '%(asctime)s - %(levelname)s - %(message)s'
LOG_DATEFMT = '%H:%M:%S'


# =============================================================================
# Helper Functions
# =============================================================================
def get_osv_config() -> dict:
    """Get a copy of OSV config for per-call overrides."""
    return OSV_CONFIG.copy()


def get_tank_config() -> dict:
    return TANK_CONFIG.copy()


def get_mplp_config() -> dict:
    return MPLP_CONFIG.copy()


def get_liquidity_config() -> dict:
    return LIQUIDITY_CONFIG.copy()


def print_config_summary():
    """Print a summary of current configuration."""
    print("=" * 60)
    print("Gamma Flow Scanner - Configuration Summary")
    print("=" * 60)
    print(f"Results dir: {RESULTS_DIR}")
    print(f"History: {YFINANCE_HISTORY_PERIOD} @ {YFINANCE_INTERVAL}")
    print(f"Fetch options: {FETCH_OPTIONS}")
    print("-" * 60)
    print("Mode Weights (tank / rad / mp_lp / osv / liquidity):")
    for mode, w in MODE_WEIGHTS.items():
        print(f"  {mode:<10} {w.tank:.2f} / {w.rad:.2f} / {w.mp_lp:.2f} / {w.osv:.2f} / {w.liquidity:.2f}")
    print("-" * 60)
    print("RAD:")
    print(f"  Lookback: {RAD_CONFIG.lookback_period}  Consolidation: {RAD_CONFIG.consolidation_days}")
    print(f"  ATR x{RAD_CONFIG.atr_multiplier}  EMA {RAD_CONFIG.ema_length}")
    print(f"  Bullish >= {RAD_CONFIG.bullish_threshold}  Bearish <= {RAD_CONFIG.bearish_threshold}")
    print("=" * 60)


if __name__ == "__main__":
    print_config_summary()
