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
Unit Tests for Design Scripts

Tests line-by-line evaluation, error collection, parameter binding, the
symbolic cache and tunable parameter ranges.
"""

import pytest
import sympy as sp

from loopshape.symbolic import compile_expression
from loopshape.symbolic.design_parser import (
    DesignParameter,
    SymbolicCache,
    bind_design,
    design_hash,
    evaluate_design,
    format_value,
    split_assignment,
    symbolic_design,
    update_code_values,
)
from loopshape.symbolic.errors import DefinitionError
from loopshape.symbolic.expression_nodes import evaluate, free_symbols

# ============================================================================
# Fixtures
# ============================================================================


@pytest.fixture
def pid_script():
    return "\n".join(
        [
            "# PID controller with a first-order plant",
            "Ti = 2",
            "",
            "K = Kp*(1 + 1/(Ti*s) + Td*s)  # controller",
            "P = 1/(s+1)",
            "L = K*P",
        ]
    )


# ============================================================================
# Line Splitting
# ============================================================================


class TestSplitAssignment:
    """Test splitting of script lines."""

    def test_assignment_with_comment(self):
        assert split_assignment("K = 2*s  # gain") == ("K", "2*s")

    @pytest.mark.parametrize("line", ["", "   ", "# comment", "K", "= 2", "K =", "K = # only"])
    def test_ignored_lines(self, line):
        assert split_assignment(line) is None

    def test_whitespace_stripped(self):
        assert split_assignment("   P   =   1/(s+1)   ") == ("P", "1/(s+1)")


# ============================================================================
# Script Evaluation
# ============================================================================


class TestEvaluateDesign:
    """Test environment building and error collection."""

    def test_later_lines_reference_earlier(self, pid_script):
        env = evaluate_design(pid_script, {"Kp": 1.0, "Td": 0.0})
        L = env["L"]

        # Kp = 1, Ti = 2, Td = 0: L(1) = (1 + 1/2) * 1/2
        assert evaluate(L, {"s": 1.0}) == pytest.approx(0.75)

    def test_initial_bindings_kept(self):
        env = evaluate_design("L = Kp/s", {"Kp": 2.0})
        assert "Kp" in env

    def test_laplace_variable_never_bound(self):
        env = evaluate_design("L = 1/s", {"s": 3.0})
        assert free_symbols(env["L"]) == {"s"}

    def test_errors_collected_per_line(self):
        code = "A = 1/(s+\nB = 2\nC = 3 *"

        with pytest.raises(DefinitionError) as excinfo:
            evaluate_design(code, {})

        assert [line for line, _ in excinfo.value.line_errors] == [1, 3]
        assert "line 1" in str(excinfo.value)

    @pytest.mark.parametrize("code", ["s = 2", "2x = 3", "K-P = 1"])
    def test_invalid_names(self, code):
        with pytest.raises(DefinitionError, match="Invalid variable name"):
            evaluate_design(code, {})

    def test_symbolic_design_keeps_parameters(self, pid_script):
        env = symbolic_design(pid_script, ["Kp", "Td"])
        assert free_symbols(env["L"]) == {"Kp", "Td", "s"}


# ============================================================================
# Binding
# ============================================================================


class TestBindDesign:
    """Test numeric binding of parameters."""

    def test_bound_loop(self, pid_script):
        bound = bind_design(pid_script, {"Kp": 2.0, "Td": 0.5})
        L = compile_expression(bound.L)

        assert L(1.0) == pytest.approx(2.0 * (1 + 0.5 + 0.5) / 2)
        assert bound.parameters == {"Kp": 2.0, "Td": 0.5}

    def test_script_assignment_overrides_value(self):
        bound = bind_design("Kp = 2\nL = Kp/(s+1)", {"Kp": 1.0})

        assert bound.parameters == {"Kp": 2.0}
        assert evaluate(bound.L, {"s": 0.0}) == pytest.approx(2.0)

    def test_negative_script_value(self):
        bound = bind_design("Kp = -3\nL = Kp/(s+1)", {"Kp": 1.0})
        assert bound.parameters == {"Kp": -3.0}

    def test_missing_loop(self):
        bound = bind_design("K = 2", {})

        with pytest.raises(DefinitionError, match="'L' is not defined"):
            bound.L


# ============================================================================
# Symbolic Cache
# ============================================================================


class TestSymbolicCache:
    """Test the cached symbolic pass."""

    def test_closed_loop_form(self):
        cache = SymbolicCache.build("L = K/(s+1)", ["K"])
        K, s = sp.symbols("K s")

        assert sp.simplify(cache.closed_loop["denominator"] - (K + s + 1)) == 0
        assert cache.L is not None

    def test_matches(self):
        cache = SymbolicCache.build("L = K/(s+1)", ["K"])

        assert cache.matches("L = K/(s+1)", ["K"])
        assert not cache.matches("L = K/(s+2)", ["K"])
        assert not cache.matches("L = K/(s+1)", ["K", "T"])

    def test_delay_loop_has_no_rational_form(self):
        cache = SymbolicCache.build("L = K*exp(-s)/(s+1)", ["K"])

        assert cache.L is not None
        assert cache.rational is None
        assert cache.closed_loop is None

    def test_undefined_loop(self):
        cache = SymbolicCache.build("K = 2", [])
        assert cache.L is None

    def test_parse_error_propagates(self):
        with pytest.raises(DefinitionError):
            SymbolicCache.build("L = 1/(s+", [])

    def test_hash_ignores_parameter_order(self):
        assert design_hash("L = a*b", ["a", "b"]) == design_hash("L = a*b", ["b", "a"])
        assert design_hash("L = a*b", ["a"]) != design_hash("L = a*b", ["a", "b"])


# ============================================================================
# Parameters
# ============================================================================


class TestDesignParameter:
    """Test slider mapping and value formatting."""

    def test_log_scale_mapping(self):
        kp = DesignParameter("Kp", value=1.0, min=0.1, max=10.0)

        assert kp.value_at(0) == pytest.approx(0.1)
        assert kp.value_at(500) == pytest.approx(1.0)
        assert kp.value_at(1000) == pytest.approx(10.0)
        assert kp.position_of() == 500
        assert kp.position_of(10.0) == 1000

    def test_linear_mapping(self):
        zeta = DesignParameter("zeta", value=0.5, min=0.0, max=2.0, log_scale=False)

        assert zeta.value_at(250) == pytest.approx(0.5)
        assert zeta.position_of() == 250

    def test_custom_resolution(self):
        kp = DesignParameter("Kp", min=1.0, max=100.0)
        assert kp.value_at(5, resolution=10) == pytest.approx(10.0)

    @pytest.mark.parametrize(
        "value, expected",
        [
            (2.0, "2"),
            (0.123456, "0.1235"),
            (12.5, "12.5"),
            (0.0, "0"),
            (25000.0, "2.500e+04"),
            (0.005, "5.000e-03"),
            (-0.5, "-0.5"),
        ],
    )
    def test_format_value(self, value, expected):
        assert format_value(value) == expected


class TestUpdateCodeValues:
    """Test rewriting of numeric parameter assignments."""

    def test_rewrites_assignment(self):
        code = "Kp = 1.5  # proportional gain\nL = Kp/(s+1)"
        updated = update_code_values(code, [DesignParameter("Kp", value=3.25)])

        assert updated == "Kp = 3.25  # proportional gain\nL = Kp/(s+1)"

    def test_leaves_expressions_untouched(self):
        code = "Kp = 2*Ti\nL = Kp/(s+1)"
        assert update_code_values(code, [DesignParameter("Kp", value=5.0)]) == code

    def test_leaves_comments_untouched(self):
        code = "# Kp = 1\nL = Kp/(s+1)"
        assert update_code_values(code, [DesignParameter("Kp", value=5.0)]) == code

    def test_only_exact_name_matches(self):
        code = "Kp2 = 1\nKp = 1"
        updated = update_code_values(code, [DesignParameter("Kp", value=4.0)])

        assert updated == "Kp2 = 1\nKp = 4"
