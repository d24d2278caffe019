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
Unit Tests for Structure Classification

Tests detection of rational loops, loops with a dead time factor and
unclassifiable expressions.
"""

import pytest

from loopshape.symbolic import compile_expression, parse_expression
from loopshape.symbolic.structure_classifier import (
    classify_structure,
    delay_time_of,
    find_delay_factor,
    remove_factor,
)

# ============================================================================
# Delay Factors
# ============================================================================


class TestDelayTime:
    """Test recognition of exp(-T s)."""

    @pytest.mark.parametrize(
        "text, expected",
        [
            ("exp(-0.5*s)", 0.5),
            ("exp(-s)", 1.0),
            ("exp(-2*s)", 2.0),
            ("exp(-s*2)", 2.0),
            ("exp(-(2*s))", 2.0),
            ("exp(-s/4)", 0.25),
            ("exp(2*(-s))", 2.0),
        ],
    )
    def test_recognized_forms(self, text, expected):
        assert delay_time_of(parse_expression(text)) == pytest.approx(expected)

    @pytest.mark.parametrize("text", ["exp(s)", "exp(-s^2)", "exp(-K*s)", "exp(-1)", "sin(-s)"])
    def test_rejected_forms(self, text):
        assert delay_time_of(parse_expression(text)) is None

    def test_find_in_numerator(self):
        found = find_delay_factor(parse_expression("2*exp(-0.3*s)/(s+1)"))

        assert found is not None
        assert found[1] == pytest.approx(0.3)

    def test_not_found_in_denominator(self):
        assert find_delay_factor(parse_expression("1/(exp(-s)*(s+1))")) is None

    def test_not_found_in_sum(self):
        assert find_delay_factor(parse_expression("exp(-s) + 1")) is None

    def test_remove_factor(self):
        L = parse_expression("2*exp(-s)/(s+1)")
        delay_node, _ = find_delay_factor(L)
        remainder = compile_expression(remove_factor(L, delay_node))

        assert remainder(1.0) == pytest.approx(1.0)


# ============================================================================
# Classification
# ============================================================================


class TestClassifyStructure:
    """Test the three structure types."""

    def test_rational(self):
        info = classify_structure(parse_expression("1/(s+1)"))

        assert info["type"] == "rational"
        assert info["delay_time"] is None
        assert info["rational_part"] is not None

    def test_pade_is_rational(self):
        info = classify_structure(parse_expression("pade_delay(0.5, 2)/(s+1)"))
        assert info["type"] == "rational"

    def test_rational_delay(self):
        info = classify_structure(parse_expression("exp(-0.5*s)/(s+1)"))

        assert info["type"] == "rational_delay"
        assert info["delay_time"] == pytest.approx(0.5)
        R = compile_expression(info["rational_part"])
        assert R(0.0) == pytest.approx(1.0)

    def test_negative_gain_with_delay(self):
        info = classify_structure(parse_expression("-3*exp(-s)/(s+2)"))

        assert info["type"] == "rational_delay"
        assert compile_expression(info["rational_part"])(0.0) == pytest.approx(-1.5)

    def test_delay_in_sum_is_unknown(self):
        info = classify_structure(parse_expression("exp(-s) + 1/(s+1)"))

        assert info["type"] == "unknown"
        assert info["rational_part"] is None

    def test_two_delay_factors_is_unknown(self):
        info = classify_structure(parse_expression("exp(-s)*exp(-2*s)/(s+1)"))
        assert info["type"] == "unknown"

    def test_moving_average_is_unknown(self):
        info = classify_structure(parse_expression("(1 - exp(-0.1*s))/(0.1*s)"))
        assert info["type"] == "unknown"
