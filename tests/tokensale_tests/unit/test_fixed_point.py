"""
Unit tests for checked fixed-point arithmetic and the series logarithm.
"""

import math

import pytest

from tokensale import fixed_point
from tokensale.constants import LN_1_5, ONE, UINT256_MAX
from tokensale.exceptions import ArithmeticOverflow, ArithmeticUnderflow, DivisionByZero


class TestCheckedPrimitives:
    def test_add_and_sub(self):
        assert fixed_point.add(2, 3) == 5
        assert fixed_point.sub(5, 3) == 2
        assert fixed_point.sub(5, 5) == 0

    def test_add_overflow(self):
        with pytest.raises(ArithmeticOverflow):
            fixed_point.add(UINT256_MAX, 1)

    def test_sub_underflow(self):
        with pytest.raises(ArithmeticUnderflow):
            fixed_point.sub(1, 2)

    def test_mul_overflow(self):
        assert fixed_point.mul(2**128, 2**127) == 2**255
        with pytest.raises(ArithmeticOverflow):
            fixed_point.mul(2**128, 2**128)

    def test_div_truncates(self):
        assert fixed_point.div(7, 2) == 3

    def test_div_by_zero_is_an_overflow(self):
        with pytest.raises(DivisionByZero):
            fixed_point.div(1, 0)
        with pytest.raises(ArithmeticOverflow):
            fixed_point.div(1, 0)

    def test_negative_operand_rejected(self):
        with pytest.raises(ArithmeticUnderflow):
            fixed_point.add(-1, 1)

    def test_fixed_helpers(self):
        assert fixed_point.to_fixed(3) == 3 * ONE
        assert fixed_point.from_fixed(3 * ONE + ONE // 2) == 3
        assert fixed_point.fmul(3 * ONE // 2, 2 * ONE) == 3 * ONE
        assert fixed_point.fdiv(3 * ONE, 2 * ONE) == 3 * ONE // 2


class TestLogarithm:
    def test_ln_of_one_is_zero(self):
        assert fixed_point.ln(ONE) == 0

    def test_below_one_rejected(self):
        with pytest.raises(ArithmeticUnderflow):
            fixed_point.ln(ONE - 1)

    def test_invalid_term_count(self):
        with pytest.raises(ValueError):
            fixed_point.ln(2 * ONE, terms=0)

    def test_ln_one_and_half_matches_constant(self):
        result = fixed_point.ln(3 * ONE // 2)
        # normalised to exactly 1.0, so only the constant remains
        assert result == LN_1_5

    @pytest.mark.parametrize(
        "value",
        [1.00001, 1.07142928571, 1.25, 1.46666635556, 1.4999, 2.0, 10.0, 1_000.0],
    )
    def test_relative_error_below_bound(self, value):
        x = int(value * ONE)
        expected = math.log(x / ONE)
        actual = fixed_point.ln(x) / ONE
        assert abs(actual - expected) / expected < 1e-5

    def test_even_term_count_underestimates(self):
        x = int(1.4 * ONE)
        assert fixed_point.ln(x, terms=10) < math.log(1.4) * ONE

    def test_more_terms_closer(self):
        x = int(1.45 * ONE)
        exact = math.log(1.45) * ONE
        assert abs(fixed_point.ln(x, terms=20) - exact) < abs(fixed_point.ln(x, terms=10) - exact)
