"""
Shared fixtures: deterministic bar series and stock snapshots.
"""

import pytest

from models import PriceBar, StockData


def make_bar(close, spread=0.5, volume=1_000_000, open_=None, timestamp=0):
    """Bar centred on close with high/low `spread` away."""
    return PriceBar(
        open=close if open_ is None else open_,
        high=close + spread,
        low=close - spread,
        close=close,
        volume=volume,
        timestamp=timestamp,
    )


def make_bars(closes, spread=0.5, volume=1_000_000):
    return [make_bar(c, spread, volume, timestamp=i) for i, c in enumerate(closes)]


def flat_bars(price=100.0, count=25, volume=1_000_000):
    return [PriceBar(price, price, price, price, volume, i) for i in range(count)]


def dip_then_consolidate_bars():
    """
    30 bars: flat at 100, run to 110, dip to 90, recover into a tight
    103-104 range on half volume.
    """
    closes = (
        [100.0] * 10
        + [110.0] * 5
        + [106.0, 102.0, 98.0, 94.0, 90.0]
        + [93.0, 96.0, 99.0, 101.0, 102.0]
    )
    bars = make_bars(closes)
    bars += [
        make_bar(c, volume=500_000, timestamp=25 + i)
        for i, c in enumerate([103.0, 103.5, 103.0, 103.5, 104.0])
    ]
    return bars


def liquidity_gap_bars():
    """
    Bullish fair value gap (100 -> 102) created on a heavy up bar,
    then a strong up bar trading back into the gap without filling it.
    """
    return [
        PriceBar(open=99.0, high=100.0, low=98.0, close=99.5, volume=1_000),
        PriceBar(open=101.0, high=104.0, low=101.0, close=103.5, volume=1_000),
        PriceBar(open=103.0, high=106.0, low=102.0, close=106.0, volume=10_000),
        PriceBar(open=101.0, high=103.0, low=100.5, close=103.0, volume=5_000),
    ]


@pytest.fixture
def flat():
    return flat_bars()


@pytest.fixture
def dip_bars():
    return dip_then_consolidate_bars()


@pytest.fixture
def gap_bars():
    return liquidity_gap_bars()


@pytest.fixture
def snapshot():
    return StockData(
        symbol='TEST',
        name='Test Corp',
        price=100.0,
        change_percent=0.0,
        volume=2_000_000,
        high=102.0,
        low=98.0,
        open=99.0,
        prev_close=100.0,
    )
