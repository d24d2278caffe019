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
Unit Tests for the Nyquist Contour and Winding Number

Tests D-contour construction (indentations, conjugate symmetry,
de-duplication) and the encirclement count of -1.
"""

import numpy as np
import pytest

from loopshape.control.frequency_response import logspace
from loopshape.control.nyquist_analysis import (
    NYQUIST_DEFAULTS,
    ContourWarning,
    compute_nyquist_analysis,
    compute_winding_number_from_evaluations,
    count_rhp_poles,
    generate_nyquist_contour_points,
    imaginary_axis_poles,
    nyquist_curve,
    unique_pole_frequencies,
)
from loopshape.symbolic import compile_expression, parse_expression


def compiled(text):
    return compile_expression(parse_expression(text))


@pytest.fixture
def grid():
    return logspace(-2, 2, 100)


# ============================================================================
# Pole Classification
# ============================================================================


class TestPoleClassification:
    """Test on-axis and right-half-plane pole selection."""

    def test_imaginary_axis_poles(self):
        poles = [0j, -1.0, 2j, -2j, 1e-8 + 3j]
        assert imaginary_axis_poles(poles) == [0j, 2j, -2j, 1e-8 + 3j]

    def test_count_rhp_poles(self):
        assert count_rhp_poles([1.0, 0.5 + 1j, 0.5 - 1j, -1.0, 0j, 1e-8]) == 3

    def test_unique_pole_frequencies(self):
        assert unique_pole_frequencies([2j, -2j, 0j]) == [0.0, 2.0]


# ============================================================================
# Contour Construction
# ============================================================================


class TestContour:
    """Test the D-contour point sequence."""

    def test_plain_sweep(self, grid):
        contour = generate_nyquist_contour_points(grid, [])
        points = contour["points"]

        assert len(points) == 2 * len(grid)
        assert points[0]["s"] == pytest.approx(-100j)
        assert points[-1]["s"] == pytest.approx(100j)
        assert not contour["has_origin_pole"]
        assert all(p["indentation"] is None for p in points)

    def test_conjugate_symmetry(self, grid):
        points = generate_nyquist_contour_points(grid, [1j, -1j])["points"]
        s = np.array([p["s"] for p in points])

        np.testing.assert_allclose(s, np.conj(s[::-1]), atol=1e-15)

    def test_origin_indentation(self, grid):
        contour = generate_nyquist_contour_points(grid, [0j])
        arc = [p for p in contour["points"] if p["indentation"] is not None]
        eps = NYQUIST_DEFAULTS["epsilon"]

        assert contour["has_origin_pole"]
        assert len(arc) == NYQUIST_DEFAULTS["n_indent_points"] + 1
        assert all(abs(abs(p["s"]) - eps) < 1e-12 for p in arc)
        assert all(p["s"].real >= -1e-15 for p in arc)
        assert arc[0]["s"] == pytest.approx(-1j * eps)
        assert arc[-1]["s"] == pytest.approx(1j * eps)

    def test_no_point_on_pole(self, grid):
        """Indentation steps around the pole at s = j."""
        contour = generate_nyquist_contour_points(grid, [1j, -1j])
        s = np.array([p["s"] for p in contour["points"]])

        assert np.min(np.abs(s - 1j)) >= contour["epsilon"] - 1e-12
        assert np.min(np.abs(s + 1j)) >= contour["epsilon"] - 1e-12

    def test_indentation_on_right_half_plane(self, grid):
        contour = generate_nyquist_contour_points(grid, [1j, -1j])
        arcs = [p for p in contour["points"] if p["indentation"] is not None]

        assert len(arcs) == 2 * (NYQUIST_DEFAULTS["n_indent_points"] + 1)
        assert {p["indentation"]["pole_im"] for p in arcs} == {1.0, -1.0}
        assert all(p["s"].real >= -1e-15 for p in arcs)

    def test_pole_beyond_grid_not_indented(self, grid):
        contour = generate_nyquist_contour_points(grid, [1000j, -1000j])
        assert all(p["indentation"] is None for p in contour["points"])

    def test_close_poles_shrink_epsilon(self, grid):
        with pytest.warns(ContourWarning):
            contour = generate_nyquist_contour_points(grid, [1j, 1.0001j])

        assert contour["epsilon"] == pytest.approx(0.25 * 1e-4, rel=1e-3)


# ============================================================================
# Winding Number
# ============================================================================


class TestWindingNumber:
    """Test encirclement counting."""

    def test_clockwise_circle(self):
        t = np.linspace(0, 2 * np.pi, 50)
        circle = -1 + 0.5 * np.exp(-1j * t)
        assert compute_winding_number_from_evaluations(circle) == 1

    def test_counter_clockwise_circle(self):
        t = np.linspace(0, 2 * np.pi, 50)
        circle = -1 + 0.5 * np.exp(1j * t)
        assert compute_winding_number_from_evaluations(circle) == -1

    def test_circle_not_around_critical_point(self):
        t = np.linspace(0, 2 * np.pi, 50)
        circle = 3 + 0.5 * np.exp(-1j * t)
        assert compute_winding_number_from_evaluations(circle) == 0

    def test_non_finite_values_skipped(self):
        t = np.linspace(0, 2 * np.pi, 50)
        values = list(-1 + 0.5 * np.exp(-1j * t))
        values.insert(10, complex(np.inf, 0))
        assert compute_winding_number_from_evaluations(values) == 1

    def test_stable_first_order(self):
        """10/(s+1) never encircles -1."""
        analysis = compute_nyquist_analysis(compiled("10/(s+1)"), [])
        assert analysis["N"] == 0

    def test_unstable_open_loop_stabilized(self):
        """2/(s-1): P = 1, closed loop 2/(s+1) is stable, so N = -1."""
        analysis = compute_nyquist_analysis(compiled("2/(s-1)"), [])
        assert analysis["N"] == -1

    def test_unstable_closed_loop(self):
        """16/(s+1)^3 exceeds the critical gain 8: two clockwise turns."""
        analysis = compute_nyquist_analysis(compiled("16/(s+1)^3"), [])
        assert analysis["N"] == 2

    def test_origin_pole_loop(self):
        """1/(s(s+1)) is closed-loop stable for any positive gain."""
        analysis = compute_nyquist_analysis(compiled("1/(s*(s+1))"), [0j])

        assert analysis["has_origin_pole"]
        assert analysis["N"] == 0

    def test_points_are_finite(self):
        analysis = compute_nyquist_analysis(compiled("1/(s*(s+1))"), [0j])
        s, L = nyquist_curve(analysis)

        assert len(s) == len(L) == len(analysis["points"])
        assert np.all(np.isfinite(L))

    def test_custom_grid_options(self):
        analysis = compute_nyquist_analysis(compiled("1/(s+1)"), [], w_points=50, w_min_decade=-1)

        assert len(analysis["frequencies"]) == 50
        assert analysis["frequencies"][0] == pytest.approx(0.1)

    def test_delay_loop_winding(self):
        """exp(-s)/(s+1) with gain 0.5 stays inside the unit circle."""
        analysis = compute_nyquist_analysis(compiled("0.5*exp(-s)/(s+1)"), [])
        assert analysis["N"] == 0
