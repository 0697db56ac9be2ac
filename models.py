"""
Gamma Flow Scanner - Data Models

Plain dataclasses shared by the analyzers and the scanner orchestrator.
No scoring logic lives here.
"""

from dataclasses import dataclass, field
from typing import Optional, List, Dict


# =============================================================================
# Signal / Direction Labels
# =============================================================================
BULLISH = 'BULLISH'
BEARISH = 'BEARISH'
NEUTRAL = 'NEUTRAL'

TREND_UP = 'UP'
TREND_DOWN = 'DOWN'

SCORE_FULL = 'full'        # computed from raw bars / flow / chain
SCORE_BARS = 'bars'        # estimated from price bars in place of flow data
SCORE_QUICK = 'quick'      # best-effort heuristic from snapshot fields
SCORE_DEFAULT = 'default'  # no data at all, neutral fallback


# =============================================================================
# Price Data
# =============================================================================

@dataclass(frozen=True)
class PriceBar:
    """
    One OHLCV bar. Sequences are ordered oldest -> newest.
    """
    open: float
    high: float
    low: float
    close: float
    volume: float
    timestamp: int = 0


# =============================================================================
# RAD
# =============================================================================

@dataclass(frozen=True)
class RADConfig:
    """Parameters for the Resistance After Dip analyzer."""
    atr_multiplier: float = 1.8
    lookback_period: int = 20
    consolidation_days: int = 5
    range_threshold: float = 0.70
    bullish_threshold: float = 3.0
    bearish_threshold: float = -2.0
    ema_length: int = 21
    atr_period: int = 14
    swing_lookback: int = 3


@dataclass(frozen=True)
class RADPatternConfig:
    """Parameters for dip/recovery pattern detection."""
    dip_threshold: float = 3.0        # percent
    recovery_threshold: float = 1.5   # percent
    lookback_period: int = 50
    volume_confirmation: bool = True
    pivot_lookback: int = 3
    max_patterns: int = 5


@dataclass
class RADPattern:
    type: str  # 'accumulation' | 'consolidation' | 'reversal'
    start_index: int
    end_index: int
    dip_depth: float
    dip_low: float
    pre_dip_high: float
    recovery_percent: float
    volume_profile: str  # 'increasing' | 'decreasing' | 'neutral'
    signal: str  # 'bullish_reversal' | 'bearish_continuation' | 'breakout_pending'
    strength: float
    resistance_levels: List[float] = field(default_factory=list)
    support_levels: List[float] = field(default_factory=list)


@dataclass
class RADSetupData:
    score: float
    normalized_score: float
    signal: str
    trend: str
    dip_percent: float
    consol_range: float
    higher_lows: int
    lower_highs: int
    ema_value: float
    is_above_trend: bool
    signals: List[str] = field(default_factory=list)
    phase: str = 'none'  # 'dip' | 'recovery' | 'consolidation' | 'breakout' | 'none'
    patterns: List[RADPattern] = field(default_factory=list)


# =============================================================================
# OSV
# =============================================================================

@dataclass
class OSVMetricsData:
    total_call_volume: float
    total_put_volume: float
    put_call_ratio: float
    call_ask_volume: float
    call_bid_volume: float
    put_ask_volume: float
    put_bid_volume: float
    net_call_premium: float
    net_put_premium: float
    bullish_premium: float
    bearish_premium: float
    max_pain: float
    max_pain_expiry: str
    volume_vs_avg: float
    sentiment: str
    score: float
    signals: List[str] = field(default_factory=list)
    ask_bid_estimated: bool = False  # True when any ask/bid split was defaulted


# =============================================================================
# TANK Flow
# =============================================================================

@dataclass(frozen=True)
class FlowAlert:
    """Single options flow alert (aggregated trade on one contract)."""
    ticker: str
    strike: float
    expiry: str
    type: str  # 'call' or 'put'
    total_premium: float
    ask_side_premium: float
    bid_side_premium: float
    total_size: int
    is_sweep: bool = False
    is_floor: bool = False
    created_at: str = ''


@dataclass(frozen=True)
class DarkPoolPrint:
    ticker: str
    price: float
    size: int
    premium: float
    nbbo_ask: float
    nbbo_bid: float
    executed_at: str = ''


@dataclass
class TANKFlowData:
    tank_ratio: float
    net_flow: float
    buy_premium: float
    sell_premium: float
    buy_volume: int
    sell_volume: int
    flow_bias: str
    large_injections: int
    score: float
    signals: List[str] = field(default_factory=list)
    dark_pool_sentiment: Optional[str] = None


@dataclass(frozen=True)
class TANKInjection:
    """Volume spike on one bar, typed by where the close sits in the bar."""
    timestamp: int
    type: str  # 'buy' | 'sell' | 'dark_pool'
    volume: float
    price: float
    delta_impact: float  # -100..+100
    strength: str  # 'weak' | 'moderate' | 'strong' | 'extreme'
    source: str  # 'lit' | 'dark'


@dataclass
class TANKChartData:
    """Bar-derived TANK estimate, used when no flow alerts are available."""
    current_strength: int  # -100 (selling) .. +100 (buying)
    strength_trend: str  # 'rising' | 'falling' | 'flat'
    net_injection_volume: float
    dark_pool_percent: float
    buy_wall_strength: float
    sell_wall_strength: float
    dominant_flow: str  # 'buyers' | 'sellers' | 'neutral'
    score: float
    injections: List[TANKInjection] = field(default_factory=list)
    signals: List[str] = field(default_factory=list)


# =============================================================================
# MP/LP Zones
# =============================================================================

@dataclass(frozen=True)
class OptionsStrike:
    strike: float
    call_oi: float = 0
    put_oi: float = 0
    call_gamma: float = 0
    put_gamma: float = 0
    net_gamma: float = 0
    call_volume: float = 0
    put_volume: float = 0


@dataclass
class MPLPZonesData:
    magnet_price: float
    liquidity_pull: float
    call_wall: float
    put_wall: float
    net_gex: float
    put_call_oi_ratio: float
    price_vs_magnet: str  # 'ABOVE' | 'BELOW' | 'AT'
    gamma_environment: str  # 'POSITIVE' | 'NEGATIVE'
    score: float
    signals: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class GammaLevels:
    flip: Optional[float] = None
    resistance: List[float] = field(default_factory=list)
    support: List[float] = field(default_factory=list)


# =============================================================================
# Liquidity Hunter
# =============================================================================

@dataclass
class FairValueGap:
    type: str  # 'bullish' | 'bearish'
    top: float
    bottom: float
    mid: float
    gap_size: float
    gap_percent: float
    created_at: int  # bar index
    is_filled: bool = False
    delta_at_creation: float = 0.0
    is_liquidity_zone: bool = False


@dataclass
class LiquidityData:
    active_fvg_count: int
    bullish_fvg_count: int
    bearish_fvg_count: int
    liquidity_zone_count: int
    buy_volume: float
    sell_volume: float
    delta: float
    avg_abs_delta: float
    is_significant_buying: bool
    is_significant_selling: bool
    liquidity_score: float
    liquidity_signals: List[str] = field(default_factory=list)


# =============================================================================
# Scanner
# =============================================================================

@dataclass
class StockData:
    """
    Snapshot of one symbol as handed to the orchestrator.

    Every options/flow field is optional. Sub-results (tank_flow, rad_setup, ...)
    are attached when full analysis was possible and take precedence over the
    quick-score heuristics.
    """
    symbol: str
    name: str = ''
    price: float = 0.0
    change_percent: float = 0.0
    volume: float = 0.0
    market_cap: Optional[float] = None
    open: Optional[float] = None
    high: Optional[float] = None
    low: Optional[float] = None
    prev_close: Optional[float] = None
    gex: Optional[float] = None
    net_gex: Optional[float] = None
    put_call_ratio: Optional[float] = None
    flow_score: Optional[float] = None
    net_premium: Optional[float] = None
    option_volume: Optional[float] = None
    max_pain: Optional[float] = None
    max_pain_distance: Optional[float] = None
    unusual_activity: Optional[float] = None
    iv_rank: Optional[float] = None
    gamma_levels: Optional[GammaLevels] = None
    tank_flow: Optional[TANKFlowData] = None
    tank_chart: Optional[TANKChartData] = None
    rad_setup: Optional[RADSetupData] = None
    mp_lp_zones: Optional[MPLPZonesData] = None
    osv_metrics: Optional[OSVMetricsData] = None
    liquidity: Optional[LiquidityData] = None


@dataclass(frozen=True)
class ScanModeWeights:
    tank: float
    rad: float
    mp_lp: float
    osv: float
    liquidity: float

    def as_dict(self) -> Dict[str, float]:
        return {
            'tank': self.tank,
            'rad': self.rad,
            'mp_lp': self.mp_lp,
            'osv': self.osv,
            'liquidity': self.liquidity,
        }


@dataclass(frozen=True)
class ScannerResult:
    """
    Ranked output row for one symbol. Never mutated after creation.

    score_sources maps each component ('tank', 'rad', 'mp_lp', 'osv',
    'liquidity') to SCORE_FULL, SCORE_BARS, SCORE_QUICK or SCORE_DEFAULT so
    callers can tell rigorous scores from approximations. SCORE_BARS only
    occurs for 'tank' (bar-derived injections in place of flow alerts).
    """
    symbol: str
    company: str
    price: float
    change_percent: float
    volume: float
    tank_score: float
    rad_score: float
    mp_lp_score: float
    osv_score: float
    liquidity_score: float
    combined_score: int
    signals: List[str] = field(default_factory=list)
    score_sources: Dict[str, str] = field(default_factory=dict)
    tank_flow: Optional[TANKFlowData] = None
    tank_chart: Optional[TANKChartData] = None
    rad_setup: Optional[RADSetupData] = None
    mp_lp_zones: Optional[MPLPZonesData] = None
    osv_metrics: Optional[OSVMetricsData] = None
    liquidity: Optional[LiquidityData] = None

    def component_score(self, component: str) -> float:
        return {
            'tank': self.tank_score,
            'rad': self.rad_score,
            'mp_lp': self.mp_lp_score,
            'osv': self.osv_score,
            'liquidity': self.liquidity_score,
        }[component]

    @property
    def is_quick(self) -> bool:
        """True when any component fell back to a quick/default score."""
        return any(src in (SCORE_QUICK, SCORE_DEFAULT) for src in self.score_sources.values())
