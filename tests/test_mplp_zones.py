import pytest

import mplp_zones as mplp
from models import OptionsStrike, GammaLevels


class TestAnalyzeZones:

    def test_empty_chain_is_neutral(self):
        result = mplp.analyze_mplp_zones(100.0, [])
        assert result.score == 50
        assert result.call_wall == pytest.approx(105.0)
        assert result.put_wall == pytest.approx(95.0)
        assert result.signals == ["No options data available"]

    def test_chain_without_gamma(self):
        # yfinance chains carry no greeks: magnet sits on price
        chain = [
            OptionsStrike(strike=95, call_oi=100, put_oi=5000),
            OptionsStrike(strike=100, call_oi=1000, put_oi=1000),
            OptionsStrike(strike=105, call_oi=4000, put_oi=200),
        ]
        result = mplp.analyze_mplp_zones(100.0, chain)
        assert result.magnet_price == 100.0
        assert result.price_vs_magnet == 'AT'
        assert result.gamma_environment == mplp.POSITIVE
        assert result.call_wall == 105
        assert result.put_wall == 95
        assert result.put_call_oi_ratio == pytest.approx(6200 / 5100)
        # +10 positive gamma, -5 put-heavy OI
        assert result.score == 55
        assert "Call Wall: $105.00 (+5.0%)" in result.signals

    def test_price_below_magnet_in_positive_gamma(self):
        chain = mplp.transform_options_chain([
            {'strike': 110, 'callOI': 1000, 'putOI': 500, 'callGamma': 1500, 'putGamma': 500},
        ])
        result = mplp.analyze_mplp_zones(100.0, chain)
        assert result.magnet_price == pytest.approx(110.0)
        assert result.net_gex == pytest.approx(1000)
        assert result.price_vs_magnet == 'BELOW'
        # +10 +15 gamma/magnet, +10 OI skew, +5 price on the (empty) put wall
        assert result.score == 90
        assert "Below magnet: Pull toward $110.00" in result.signals

    def test_negative_gamma(self):
        chain = [OptionsStrike(strike=110, call_oi=100, put_oi=100, net_gamma=-50)]
        result = mplp.analyze_mplp_zones(100.0, chain)
        assert result.gamma_environment == mplp.NEGATIVE
        assert "Negative Gamma: Trending/volatile" in result.signals


class TestMaxPain:

    def test_minimum_pain_strike(self):
        chain = [
            OptionsStrike(strike=90, call_oi=100),
            OptionsStrike(strike=100, call_oi=100, put_oi=100),
            OptionsStrike(strike=110, put_oi=100),
        ]
        assert mplp.calculate_max_pain(chain, 105.0) == 100

    def test_empty_chain_returns_price(self):
        assert mplp.calculate_max_pain([], 42.0) == 42.0


class TestQuickScore:

    def test_gamma_levels_not_mutated(self, snapshot):
        levels = GammaLevels(flip=95.0, resistance=[120.0, 101.5], support=[90.0, 99.5])
        snapshot.gamma_levels = levels
        # +8 above flip, -5 resistance 1.5% away, +8 support 0.5% away
        assert mplp.calculate_quick_mplp_score(snapshot) == 61
        assert levels.resistance == [120.0, 101.5]
        assert levels.support == [90.0, 99.5]

    def test_net_gex_preferred(self, snapshot):
        snapshot.gex = -1
        snapshot.net_gex = 60_000_000
        assert mplp.calculate_quick_mplp_score(snapshot) == 65


class TestHelpers:

    def test_transform_snake_case(self):
        (strike,) = mplp.transform_options_chain([
            {'strikePrice': 50, 'call_open_interest': 10, 'put_gamma': 2.0},
        ])
        assert strike.strike == 50
        assert strike.call_oi == 10
        assert strike.net_gamma == pytest.approx(-2.0)

    def test_expected_range(self):
        rng = mplp.calculate_expected_range(100.0, 110.0, 90.0, mplp.POSITIVE)
        assert rng['low'] == pytest.approx(93.0)
        assert rng['high'] == pytest.approx(107.0)
        assert rng['confidence'] == 'High'

    def test_format_gex(self):
        assert mplp.format_gex(2_500_000_000) == "+$2.50B"
        assert mplp.format_gex(-150_000_000) == "-$150.0M"
