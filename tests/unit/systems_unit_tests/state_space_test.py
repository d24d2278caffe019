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
Unit Tests for State-Space Realization

Tests tf2ss in observable canonical form, the unity-feedback closed-loop
coefficients and evaluation of realizations.
"""

import numpy as np
import pytest
from numpy.testing import assert_allclose

from loopshape.control.polynomial_roots import evaluate_polynomial
from loopshape.systems.state_space import (
    closed_loop_coefficients,
    evaluate_state_space,
    real_coefficients,
    tf2ss,
)

# ============================================================================
# Fixtures
# ============================================================================


@pytest.fixture
def test_points():
    return np.array([0.5j, 1j, 2.0 + 1j, 10j])


def transfer_function(num, den, s):
    return evaluate_polynomial(num, s) / evaluate_polynomial(den, s)


# ============================================================================
# tf2ss
# ============================================================================


class TestTf2ss:
    """Test the observable canonical realization."""

    def test_second_order_matrices(self):
        """(3s+2)/(s^2+3s+2)."""
        ss = tf2ss([2.0, 3.0], [2.0, 3.0, 1.0])

        assert ss["n"] == 2
        assert_allclose(ss["A"], [[-3.0, 1.0], [-2.0, 0.0]])
        assert_allclose(ss["B"], [3.0, 2.0])
        assert_allclose(ss["C"], [1.0, 0.0])
        assert ss["D"] == 0.0

    @pytest.mark.parametrize(
        "num, den",
        [
            ([1.0], [1.0, 1.0]),
            ([2.0, 3.0], [2.0, 3.0, 1.0]),
            ([1.0, -0.5], [1.0, 1.5, 0.5]),
            ([5.0], [0.0, 1.0, 1.0]),
            ([1.0, 2.0, 3.0], [4.0, 5.0, 6.0, 2.0]),
        ],
    )
    def test_realization_matches_transfer_function(self, num, den, test_points):
        ss = tf2ss(num, den)

        expected = [transfer_function(num, den, s) for s in test_points]
        assert_allclose(evaluate_state_space(ss, test_points), expected, rtol=1e-10)

    def test_biproper_feedthrough(self, test_points):
        """(2s+1)/(s+1) has D = 2."""
        ss = tf2ss([1.0, 2.0], [1.0, 1.0])

        assert ss["D"] == pytest.approx(2.0)
        expected = [transfer_function([1.0, 2.0], [1.0, 1.0], s) for s in test_points]
        assert_allclose(evaluate_state_space(ss, test_points), expected)

    def test_non_monic_denominator(self):
        ss = tf2ss([4.0], [2.0, 2.0])  # 4/(2s+2) = 2/(s+1)
        assert evaluate_state_space(ss, 0.0) == pytest.approx(2.0)

    def test_pure_gain(self):
        ss = tf2ss([4.0], [2.0])

        assert ss["n"] == 0
        assert ss["A"].shape == (0, 0)
        assert ss["D"] == 2.0
        assert evaluate_state_space(ss, 1j) == pytest.approx(2.0)

    def test_trailing_numerator_zeros_ignored(self):
        ss = tf2ss([1.0, 0.0, 0.0], [1.0, 1.0])
        assert ss["D"] == 0.0

    def test_improper_raises(self):
        with pytest.raises(ValueError, match="Improper"):
            tf2ss([0.0, 0.0, 1.0], [1.0, 1.0])

    def test_zero_leading_coefficient_raises(self):
        with pytest.raises(ValueError, match="Leading"):
            tf2ss([1.0], [1.0, 0.0])

    def test_empty_denominator_raises(self):
        with pytest.raises(ValueError):
            tf2ss([1.0], [])

    def test_complex_denominator_raises(self):
        """1/(s - 2j) has no real realization."""
        with pytest.raises(ValueError, match="Complex denominator"):
            tf2ss([1.0], [-2j, 1.0])

    def test_complex_numerator_raises(self):
        with pytest.raises(ValueError, match="Complex numerator"):
            tf2ss([1.0 + 0.5j], [1.0, 1.0])

    def test_rounding_imaginary_parts_accepted(self):
        ss = tf2ss([1.0 + 1e-15j], [1.0 + 1e-15j, 1.0])
        assert_allclose(ss["A"], [[-1.0]])

    def test_scalar_and_array_evaluation(self):
        ss = tf2ss([1.0], [0.0, 1.0])  # 1/s

        assert isinstance(evaluate_state_space(ss, 1j), complex)
        assert_allclose(evaluate_state_space(ss, np.array([1j, 2j])), [-1j, -0.5j])


# ============================================================================
# Closed Loop
# ============================================================================


class TestClosedLoopCoefficients:
    """Test T = N/(N + D)."""

    def test_first_order(self):
        assert closed_loop_coefficients([10.0], [1.0, 1.0]) == ([10.0], [11.0, 1.0])

    def test_type_one(self):
        num, den = closed_loop_coefficients([5.0], [0.0, 1.0, 1.0])
        assert den == [5.0, 1.0, 1.0]

    def test_leading_cancellation_lowers_order(self):
        """L = -s/(s+1): N + D = 1."""
        num, den = closed_loop_coefficients([0.0, -1.0], [1.0, 1.0])

        assert den == [1.0]
        with pytest.raises(ValueError, match="Improper"):
            tf2ss(num, den)

    def test_complex_loop_raises(self):
        with pytest.raises(ValueError, match="Complex"):
            closed_loop_coefficients([1.0], [-2j, 1.0])


class TestRealCoefficients:
    """Test the real-coefficient check used before simulation."""

    def test_real_values_returned_as_floats(self):
        assert real_coefficients([1, 2.5 + 0j]) == [1.0, 2.5]

    def test_tolerance_scales_with_magnitude(self):
        assert real_coefficients([1e6 + 1e-7j, 1.0]) == [1e6, 1.0]

    def test_empty(self):
        assert real_coefficients([]) == []
