"""
Gamma Flow Scanner - Data Manager

yfinance-backed fetch layer: daily bars, quote snapshots and the nearest
option chain. The only module that touches the network.
"""

import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Dict, List, Optional, Sequence, Tuple

import pandas as pd
import yfinance as yf
from tqdm import tqdm

import config
from models import PriceBar, StockData, OptionsStrike
from mplp_zones import calculate_max_pain

logging.basicConfig(
    level=logging.WARNING,
    format=config.LOG_FORMAT,
    datefmt=config.LOG_DATEFMT
)
logger = logging.getLogger(__name__)

# yfinance logs "possibly delisted" for any empty response.
# We handle empties ourselves; keep it quiet.
_yf_logger = logging.getLogger("yfinance")
_yf_logger.setLevel(logging.CRITICAL)
_yf_logger.propagate = False

OPTION_CONTRACT_SIZE = 100


# =============================================================================
# Price History
# =============================================================================

def history_to_bars(hist: pd.DataFrame) -> List[PriceBar]:
    """
    Convert a yfinance history frame (Open/High/Low/Close/Volume, DatetimeIndex)
    into PriceBar list, oldest first. Rows with a missing close are dropped.
    """
    if hist is None or hist.empty:
        return []

    df = hist.reset_index()
    df.columns = [str(c).lower() for c in df.columns]
    df = df.dropna(subset=['close'])
    date_col = 'date' if 'date' in df.columns else df.columns[0]

    bars = []
    for _, row in df.iterrows():
        ts = row[date_col]
        bars.append(PriceBar(
            open=float(row['open']),
            high=float(row['high']),
            low=float(row['low']),
            close=float(row['close']),
            volume=float(row['volume']) if pd.notna(row['volume']) else 0.0,
            timestamp=int(pd.Timestamp(ts).timestamp()) if pd.notna(ts) else 0,
        ))
    return bars


def get_daily_bars(symbol: str, period: str = None) -> List[PriceBar]:
    """
    Daily bars for one symbol.

    Args:
        symbol: Ticker symbol
        period: yfinance period string (default config.YFINANCE_HISTORY_PERIOD)

    Returns:
        List of PriceBar (empty if Yahoo returned nothing)
    """
    if period is None:
        period = config.YFINANCE_HISTORY_PERIOD

    hist = yf.Ticker(symbol).history(period=period, interval=config.YFINANCE_INTERVAL)
    bars = history_to_bars(hist)
    if not bars:
        logger.info(f"No price history for {symbol}")
    return bars


# =============================================================================
# Snapshot
# =============================================================================

def get_stock_snapshot(symbol: str, bars: Sequence[PriceBar] = None) -> StockData:
    """
    Quote snapshot built from the last two daily bars plus ticker metadata.

    Args:
        symbol: Ticker symbol
        bars: Already-fetched daily bars (fetched here if None)
    """
    if bars is None:
        bars = get_daily_bars(symbol)

    ticker = yf.Ticker(symbol)
    stock = StockData(symbol=symbol, name=symbol)

    if bars:
        last = bars[-1]
        prev_close = bars[-2].close if len(bars) >= 2 else last.open
        stock.price = last.close
        stock.volume = last.volume
        stock.open = last.open
        stock.high = last.high
        stock.low = last.low
        stock.prev_close = prev_close
        stock.change_percent = (last.close - prev_close) / prev_close * 100 if prev_close else 0.0

    # fast_info first (lighter), info for the display name
    try:
        fi = getattr(ticker, "fast_info", None)
        if fi and "market_cap" in fi:
            mc = fi.get("market_cap")
            if mc and mc > 0:
                stock.market_cap = float(mc)
    except Exception as e:
        logger.debug(f"fast_info unavailable for {symbol}: {e}")

    try:
        info = ticker.info or {}
        stock.name = info.get("shortName") or info.get("longName") or symbol
        if stock.market_cap is None and info.get("marketCap"):
            stock.market_cap = float(info["marketCap"])
    except Exception as e:
        logger.debug(f"info unavailable for {symbol}: {e}")

    return stock


# =============================================================================
# Options
# =============================================================================

def chain_frames_to_strikes(calls: pd.DataFrame, puts: pd.DataFrame) -> List[OptionsStrike]:
    """
    Merge yfinance call/put frames into one OptionsStrike per strike.

    Yahoo publishes no greeks, so gamma fields are 0.
    """
    cols = ['strike', 'openInterest', 'volume']
    c = calls[cols].rename(columns={'openInterest': 'call_oi', 'volume': 'call_volume'})
    p = puts[cols].rename(columns={'openInterest': 'put_oi', 'volume': 'put_volume'})
    merged = c.merge(p, on='strike', how='outer').fillna(0).sort_values('strike')

    return [
        OptionsStrike(
            strike=float(row.strike),
            call_oi=float(row.call_oi),
            put_oi=float(row.put_oi),
            call_volume=float(row.call_volume),
            put_volume=float(row.put_volume),
        )
        for row in merged.itertuples(index=False)
    ]


def get_options_chain(
    symbol: str,
    expiry: str = None,
    current_price: float = None
) -> Tuple[List[OptionsStrike], Optional[Dict]]:
    """
    Option chain for one expiry (nearest if not given).

    Returns:
        Tuple of (strikes, options_summary). options_summary holds the
        call/put volumes and premiums for the OSV analyzer plus max pain;
        it is None when the symbol has no listed options.
    """
    ticker = yf.Ticker(symbol)
    expiries = ticker.options
    if not expiries:
        logger.info(f"No listed options for {symbol}")
        return [], None

    if expiry is None:
        expiry = expiries[0]

    chain = ticker.option_chain(expiry)
    calls = chain.calls.fillna({'volume': 0, 'openInterest': 0, 'lastPrice': 0})
    puts = chain.puts.fillna({'volume': 0, 'openInterest': 0, 'lastPrice': 0})

    strikes = chain_frames_to_strikes(calls, puts)
    if current_price is None:
        current_price = float(strikes[len(strikes) // 2].strike) if strikes else 0.0

    summary = {
        'call_volume': float(calls['volume'].sum()),
        'put_volume': float(puts['volume'].sum()),
        'call_premium': float((calls['volume'] * calls['lastPrice']).sum() * OPTION_CONTRACT_SIZE),
        'put_premium': float((puts['volume'] * puts['lastPrice']).sum() * OPTION_CONTRACT_SIZE),
        'max_pain': calculate_max_pain(strikes, current_price),
        'max_pain_expiry': expiry,
    }
    return strikes, summary


def apply_options_summary(stock: StockData, summary: Dict) -> StockData:
    """Copy option-derived snapshot fields (P/C ratio, volume, max pain) onto the stock."""
    call_volume = summary.get('call_volume', 0)
    put_volume = summary.get('put_volume', 0)

    if call_volume > 0:
        stock.put_call_ratio = put_volume / call_volume
    stock.option_volume = call_volume + put_volume

    max_pain = summary.get('max_pain')
    if max_pain:
        stock.max_pain = max_pain
        if stock.price:
            stock.max_pain_distance = (stock.price - max_pain) / max_pain * 100
    return stock


# =============================================================================
# Scan Inputs
# =============================================================================

def fetch_symbol_inputs(symbol: str, fetch_options: bool = True) -> Optional[Dict]:
    """
    Everything the scanner needs for one symbol.

    Returns:
        Dict with 'stock', 'bars', 'options_chain', 'options_summary',
        or None when Yahoo has no price history
    """
    bars = get_daily_bars(symbol)
    if not bars:
        return None

    stock = get_stock_snapshot(symbol, bars)
    strikes: List[OptionsStrike] = []
    summary = None

    if fetch_options:
        try:
            strikes, summary = get_options_chain(symbol, current_price=stock.price)
        except Exception as e:
            logger.warning(f"Options fetch failed for {symbol}: {e}")
            strikes, summary = [], None
        if summary:
            apply_options_summary(stock, summary)

    return {
        'stock': stock,
        'bars': bars,
        'options_chain': strikes,
        'options_summary': summary,
    }


def fetch_scan_inputs(
    symbols: Sequence[str],
    max_workers: int = None,
    progress: bool = False,
    fetch_options: bool = None
) -> List[Dict]:
    """
    Fetch scan inputs for many symbols concurrently.

    Failed or empty symbols are logged and skipped. Output keeps the order
    of `symbols`.
    """
    if max_workers is None:
        max_workers = config.FETCH_MAX_WORKERS
    if fetch_options is None:
        fetch_options = config.FETCH_OPTIONS

    fetched: Dict[int, Dict] = {}
    failed = 0

    with ThreadPoolExecutor(max_workers=max(max_workers, 1)) as pool:
        futures = {pool.submit(fetch_symbol_inputs, s, fetch_options): i for i, s in enumerate(symbols)}
        iterator = as_completed(futures)
        if progress:
            iterator = tqdm(iterator, total=len(futures), desc="Fetching market data")

        for fut in iterator:
            i = futures[fut]
            try:
                item = fut.result()
            except Exception as e:
                failed += 1
                logger.warning(f"Fetch failed for {symbols[i]}: {e}")
                continue
            if item is None:
                failed += 1
                logger.warning(f"No data for {symbols[i]}, skipping")
                continue
            fetched[i] = item

    if failed:
        logger.warning(f"Fetched {len(fetched)}/{len(symbols)} symbols ({failed} skipped)")
    else:
        logger.info(f"Fetched {len(fetched)}/{len(symbols)} symbols")

    return [fetched[i] for i in sorted(fetched)]
