"""
Unit tests for the bonding curve and purchase discounts.

The reference vectors replay the reference sale: 10, 6,000,000, 2,000,000 and
7,000,000 units bought in sequence, each within 0.001% of the closed form.
"""

import math

import pytest

from tokensale.constants import ONE
from tokensale.exceptions import ConfigurationError, InvalidAmount, InvalidDiscount
from tokensale.pricing import BondingCurve, CurveParameters, Regime, compute_bonus, tokens_to_display

MAX_ERROR = 0.00001


def _relative_error(actual: int, expected: float) -> float:
    return abs(actual - expected) / expected


@pytest.fixture
def curve():
    return BondingCurve()


class TestReferenceVectors:
    def test_ten_units_at_start(self, curve):
        bought = curve.compute_tokens(0, 10)
        assert _relative_error(bought, 10 / 0.14 * 10**18) < MAX_ERROR

    def test_six_million_stays_linear(self, curve):
        bought = curve.compute_tokens(10, 6_000_000)
        assert _relative_error(bought, 6_000_000 / 0.14 * 10**18) < MAX_ERROR
        assert curve.regime(10, 6_000_000) is Regime.LINEAR

    def test_two_million_crosses_threshold(self, curve):
        bought = curve.compute_tokens(6_000_010, 2_000_000)
        expected = 999_990 / 0.14 * 10**18 + 70_000_000 * math.log(1.07142928571) * 10**18
        assert _relative_error(bought, expected) < MAX_ERROR
        assert curve.regime(6_000_010, 2_000_000) is Regime.MIXED

    def test_seven_million_fully_logarithmic(self, curve):
        bought = curve.compute_tokens(8_000_010, 7_000_000)
        expected = 70_000_000 * math.log(1.46666635556) * 10**18
        assert _relative_error(bought, expected) < MAX_ERROR
        assert curve.regime(8_000_010, 7_000_000) is Regime.LOGARITHMIC

    def test_eight_million_from_zero(self, curve):
        bought = curve.compute_tokens(0, 8_000_000)
        expected = 7_000_000 / 0.14 * 10**18 + 70_000_000 * math.log(15_000_000 / 14_000_000) * 10**18
        assert _relative_error(bought, expected) < MAX_ERROR


class TestLinearSegment:
    def test_exact_integer_result(self, curve):
        assert curve.compute_tokens(0, 10) == 10 * ONE * 100 // 14
        assert curve.compute_tokens(123, 7_000_000 - 123) == (7_000_000 - 123) * ONE * 100 // 14

    def test_threshold_inclusive(self, curve):
        assert curve.regime(0, 7_000_000) is Regime.LINEAR
        assert curve.regime(0, 7_000_001) is Regime.MIXED

    def test_marginal_rate_constant_below_threshold(self, curve):
        assert curve.marginal_rate(0) == curve.marginal_rate(6_999_999) == ONE * 100 // 14


class TestLogarithmicSegment:
    def test_small_contribution_uses_trapezoid(self, curve):
        # c' < 50,000: K * c * (1/A + 1/(A + c)) / 2
        base = 14_000_000
        expected = 70_000_000 * ONE * 1_000 * (2 * base + 1_000) // (2 * base * (base + 1_000))
        assert curve.log_tokens(0, 1_000) == expected

    def test_trapezoid_close_to_logarithm(self, curve):
        exact = 70_000_000 * math.log((14_000_000 + 49_999) / 14_000_000) * ONE
        assert _relative_error(curve.log_tokens(0, 49_999), exact) < MAX_ERROR

    def test_crossover_is_monotone(self, curve):
        for raised_above in (0, 1_000_000, 50_000_000):
            below = curve.log_tokens(raised_above, 49_999)
            at = curve.log_tokens(raised_above, 50_000)
            assert below < at

    def test_marginal_rate_drops_after_threshold(self, curve):
        linear = curve.marginal_rate(6_999_999)
        logarithmic = curve.marginal_rate(7_000_000)
        assert logarithmic < linear
        # K / T' = 5 tokens per unit at the start of the log segment
        assert abs(logarithmic - 5 * ONE) / (5 * ONE) < MAX_ERROR


class TestValidation:
    @pytest.mark.parametrize("contribution", [0, -1])
    def test_non_positive_contribution(self, curve, contribution):
        with pytest.raises(InvalidAmount):
            curve.compute_tokens(0, contribution)

    def test_negative_raised(self, curve):
        with pytest.raises(InvalidAmount):
            curve.compute_tokens(-1, 10)

    def test_invalid_parameters(self):
        with pytest.raises(ConfigurationError):
            CurveParameters(threshold=0)
        with pytest.raises(ConfigurationError):
            CurveParameters(small_contribution_limit=-1)

    def test_custom_parameters(self):
        curve = BondingCurve(CurveParameters(threshold=100, rate_numerator=1, rate_denominator=1))
        assert curve.compute_tokens(0, 100) == 100 * ONE
        assert curve.regime(50, 100) is Regime.MIXED


class TestBonus:
    def test_full_price_unchanged(self):
        assert compute_bonus(1_000, 100) == 1_000

    def test_discount_increases_tokens(self):
        assert compute_bonus(700, 70) == 1_000
        assert compute_bonus(1_000, 80) == 1_250

    @pytest.mark.parametrize("discount_base", [69, 101, 0])
    def test_out_of_range(self, discount_base):
        with pytest.raises(InvalidDiscount):
            compute_bonus(1_000, discount_base)

    def test_quote(self, curve):
        quote = curve.quote(0, 10, 80)
        assert quote.base_tokens == 10 * ONE * 100 // 14
        assert quote.tokens == quote.base_tokens * 100 // 80
        assert quote.to_dict()["regime"] == "linear"


def test_tokens_to_display():
    assert tokens_to_display(ONE + 5) == "1.000000000000000005"
    assert tokens_to_display(0) == "0.000000000000000000"
