# Copyright (C) 2025 Gil Benezer
#
# This program is free software: you can redistribute it and/or modify
# it under the terms of the GNU Affero General Public License as published
# by the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.
#
# This program is distributed in the hope that it will be useful,
# but WITHOUT ANY WARRANTY; without even the implied warranty of
# MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE.  See the
# GNU Affero General Public License for more details.
#
# You should have received a copy of the GNU Affero General Public License
# along with this program.  If not, see <https://www.gnu.org/licenses/>.


"""
Unit Tests for Rational Reduction

Tests reduction of expression trees to numerator and denominator
coefficients, both numeric and with symbolic parameters.
"""

import pytest
import sympy as sp
from numpy.testing import assert_allclose

from loopshape.control.polynomial_roots import evaluate_polynomial
from loopshape.symbolic import parse_expression
from loopshape.symbolic.errors import DefinitionError, NotRationalError
from loopshape.symbolic.rationalization import (
    closed_loop_symbolic,
    is_rational,
    polynomial_to_sympy,
    rationalize,
    rationalize_symbolic,
    strip_trailing_zeros,
)

# ============================================================================
# Numeric Reduction
# ============================================================================


class TestRationalize:
    """Test numeric coefficient extraction."""

    def test_simple_ratio(self):
        assert rationalize(parse_expression("10/(s+1)")) == {
            "numerator": [10.0],
            "denominator": [1.0, 1.0],
        }

    def test_ascending_order(self):
        result = rationalize(parse_expression("(s+2)/(s^2+3*s)"))

        assert_allclose(result["numerator"], [2.0, 1.0])
        assert_allclose(result["denominator"], [0.0, 3.0, 1.0])

    def test_polynomial_gets_unit_denominator(self):
        result = rationalize(parse_expression("s^2 + 1"))

        assert_allclose(result["numerator"], [1.0, 0.0, 1.0])
        assert_allclose(result["denominator"], [1.0])

    def test_sum_over_common_denominator(self):
        """1/s + 1/(s+1) = (2s+1)/(s^2+s)."""
        result = rationalize(parse_expression("1/s + 1/(s+1)"))

        assert len(result["numerator"]) == 2
        assert len(result["denominator"]) == 3
        s = 0.7 + 0.2j
        value = evaluate_polynomial(result["numerator"], s) / evaluate_polynomial(
            result["denominator"], s
        )
        assert value == pytest.approx(1 / s + 1 / (s + 1))

    def test_nested_fraction(self):
        """PD with roll-off: 1 + 0.1s/(1 + 0.01s)."""
        result = rationalize(parse_expression("1 + (0.1*s)/(1 + 0.01*s)"))
        s = 2.0
        value = evaluate_polynomial(result["numerator"], s) / evaluate_polynomial(
            result["denominator"], s
        )

        assert len(result["denominator"]) == 2
        assert value == pytest.approx(1 + 0.2 / 1.02)

    def test_pade_factor_is_rational(self):
        result = rationalize(parse_expression("pade_delay(1, 1)/(s+1)"))

        assert len(result["numerator"]) == 2
        assert len(result["denominator"]) == 3

    def test_delay_is_not_rational(self):
        with pytest.raises(NotRationalError):
            rationalize(parse_expression("exp(-s)/(s+1)"))

    def test_fractional_power_is_not_rational(self):
        with pytest.raises(NotRationalError):
            rationalize(parse_expression("1/(s^0.5 + 1)"))

    def test_unbound_parameter_raises(self):
        with pytest.raises(DefinitionError, match="K"):
            rationalize(parse_expression("K/(s+1)"))

    def test_is_rational(self):
        assert is_rational(parse_expression("K/(s+1)"))
        assert not is_rational(parse_expression("exp(-s)"))


# ============================================================================
# Symbolic Reduction
# ============================================================================


class TestSymbolicForms:
    """Test reduction with parameters kept as symbols."""

    def test_parameters_stay_symbolic(self):
        form = rationalize_symbolic(parse_expression("K/(T*s + 1)"))
        K, T, s = sp.symbols("K T s")

        assert sp.simplify(form["numerator"] / form["denominator"] - K / (T * s + 1)) == 0

    def test_closed_loop(self):
        form = closed_loop_symbolic(rationalize_symbolic(parse_expression("K/(s+1)")))
        K, s = sp.symbols("K s")

        assert sp.simplify(form["numerator"] - K) == 0
        assert sp.simplify(form["denominator"] - (K + s + 1)) == 0

    def test_polynomial_to_sympy(self):
        s = sp.Symbol("s")
        assert sp.expand(polynomial_to_sympy([1.0, 2.0, 3.0]) - (1 + 2 * s + 3 * s**2)) == 0


# ============================================================================
# Coefficient Helpers
# ============================================================================


class TestStripTrailingZeros:
    """Test removal of vanishing highest-power coefficients."""

    def test_strip(self):
        assert strip_trailing_zeros([1.0, 2.0, 0.0, 1e-20]) == [1.0, 2.0]

    def test_keeps_one(self):
        assert strip_trailing_zeros([0.0]) == [0.0]

    def test_custom_tolerance(self):
        assert strip_trailing_zeros([1.0, 1e-6], tol=1e-3) == [1.0]
