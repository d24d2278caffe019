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
Unit Tests for Frequency Response and Stability Margins

Tests phase unwrapping, crossover interpolation, gain/phase margins and the
automatic frequency range.
"""

import numpy as np
import pytest
from numpy.testing import assert_allclose

from loopshape.control.frequency_response import (
    align_phase_to_crossover,
    auto_frequency_range,
    compute_frequency_response,
    compute_margins_from_response,
    compute_stability_margins,
    find_gain_crossovers,
    find_phase_crossovers,
    gain_db,
    logspace,
    margins_indicate_stability,
    unwrap_phase_deg,
)
from loopshape.symbolic import compile_expression, parse_expression


def compiled(text):
    return compile_expression(parse_expression(text))


# ============================================================================
# Fixtures
# ============================================================================


@pytest.fixture
def integrator():
    """L = 1/s."""
    return compiled("1/s")


@pytest.fixture
def third_order():
    """Factory for K/(s+1)^3, whose critical gain is 8 at w = sqrt(3)."""

    def make(K):
        return compiled(f"{K}/(s+1)^3")

    return make


# ============================================================================
# Frequency Response
# ============================================================================


class TestFrequencyResponse:
    """Test sampling of L(jw)."""

    def test_logspace_endpoints(self):
        w = logspace(-2, 3, 300)

        assert len(w) == 300
        assert w[0] == pytest.approx(0.01)
        assert w[-1] == pytest.approx(1000.0)

    def test_first_order_values(self):
        fr = compute_frequency_response(compiled("1/(s+1)"), np.array([1.0]))

        assert_allclose(fr["response"], [0.5 - 0.5j])
        assert_allclose(fr["gain_db"], [20 * np.log10(np.sqrt(0.5))])
        assert_allclose(fr["phase_deg"], [-45.0])

    def test_integrator_phase_is_continuous(self, integrator):
        """The phase of 1/s stays at -90 deg with no jumps."""
        fr = compute_frequency_response(integrator, logspace(-2, 2, 200))

        assert_allclose(fr["phase_deg"], -90.0, atol=1e-9)
        assert np.max(np.abs(np.diff(fr["phase_deg"]))) < 1e-9

    def test_integrator_gain_slope(self, integrator):
        fr = compute_frequency_response(integrator, np.array([1.0, 10.0]))
        assert fr["gain_db"][0] - fr["gain_db"][1] == pytest.approx(20.0)

    def test_unwrap_across_branch_cut(self):
        values = np.exp(-1j * np.deg2rad([170.0, 190.0, 210.0]))
        assert_allclose(unwrap_phase_deg(values), [-170.0, -190.0, -210.0])

    def test_third_order_phase_reaches_minus_270(self, third_order):
        fr = compute_frequency_response(third_order(1), logspace(-2, 3, 300))

        assert fr["phase_deg"][0] == pytest.approx(0.0, abs=2.0)
        assert fr["phase_deg"][-1] == pytest.approx(-270.0, abs=1.0)
        assert np.all(np.diff(fr["phase_deg"]) < 0)

    def test_zero_magnitude_is_minus_inf_db(self):
        assert gain_db(np.array([0j]))[0] == -np.inf

    def test_delay_phase_keeps_falling(self):
        """exp(-s) alone has unit gain and unbounded phase lag."""
        fr = compute_frequency_response(compiled("exp(-s)"), np.linspace(0.1, 20.0, 400))

        assert_allclose(fr["gain_db"], 0.0, atol=1e-9)
        assert_allclose(fr["phase_deg"], -np.degrees(fr["frequencies"]), atol=1e-6)


# ============================================================================
# Crossovers
# ============================================================================


class TestCrossovers:
    """Test crossover interpolation between samples."""

    def test_gain_crossover_interpolated(self):
        w = np.array([1.0, 2.0, 3.0])
        gain = np.array([10.0, -10.0, -20.0])

        assert find_gain_crossovers(w, gain) == [pytest.approx(1.5)]

    def test_gain_touching_zero_counts_once(self):
        w = np.array([1.0, 2.0, 3.0])
        gain = np.array([5.0, 0.0, -5.0])

        assert len(find_gain_crossovers(w, gain)) == 1

    def test_phase_crossover_decreasing(self):
        w = np.array([1.0, 2.0])
        phase = np.array([-170.0, -190.0])

        assert find_phase_crossovers(w, phase) == [pytest.approx(1.5)]

    def test_phase_crossover_increasing_other_branch(self):
        w = np.array([1.0, 2.0])
        phase = np.array([170.0, 190.0])

        assert find_phase_crossovers(w, phase) == [pytest.approx(1.5)]

    def test_no_crossover(self):
        w = np.array([1.0, 2.0])
        assert find_phase_crossovers(w, np.array([-10.0, -20.0])) == []
        assert find_gain_crossovers(w, np.array([-10.0, -20.0])) == []


# ============================================================================
# Margins
# ============================================================================


class TestStabilityMargins:
    """Test gain and phase margins of standard loops."""

    def test_type_one_phase_margin(self):
        """2/(s(s+1)) crosses 0 dB at w ~ 1.2496 with PM ~ 38.67 deg."""
        margins = compute_stability_margins(compiled("2/(s*(s+1))"))

        assert len(margins["phase_margins"]) == 1
        pm = margins["phase_margins"][0]
        assert pm["frequency"] == pytest.approx(1.2496, rel=1e-2)
        assert pm["margin"] == pytest.approx(38.67, abs=0.5)
        assert pm["reference_phase"] == -180
        assert margins["gain_margins"] == []

    def test_gain_margin_below_critical_gain(self, third_order):
        margins = compute_stability_margins(third_order(4))

        assert len(margins["gain_margins"]) == 1
        gm = margins["gain_margins"][0]
        assert gm["frequency"] == pytest.approx(np.sqrt(3.0), rel=1e-2)
        assert gm["margin"] == pytest.approx(20 * np.log10(2.0), abs=0.1)
        assert gm["gain_at_crossover"] == pytest.approx(-gm["margin"])
        assert margins_indicate_stability(margins)

    def test_margins_flip_sign_above_critical_gain(self, third_order):
        margins = compute_stability_margins(third_order(16))

        assert margins["gain_margins"][0]["margin"] == pytest.approx(-20 * np.log10(2.0), abs=0.1)
        assert margins["phase_margins"][0]["margin"] < 0
        assert not margins_indicate_stability(margins)

    def test_phase_margin_positive_below_critical(self, third_order):
        margins = compute_stability_margins(third_order(4))
        assert margins["phase_margins"][0]["margin"] > 0

    def test_no_crossover_reports_stable(self):
        margins = compute_stability_margins(compiled("0.5/(s+1)"))

        assert margins["gain_margins"] == []
        assert margins["phase_margins"] == []
        assert margins_indicate_stability(margins)

    def test_exact_crossovers_at_zero_frequency(self):
        """-1/(s+1) sits on both crossovers at w = 0."""
        margins = compute_stability_margins(compiled("-1/(s+1)"))

        assert margins["gain_crossover_frequencies"][0] == 0.0
        assert margins["phase_crossover_frequencies"][0] == 0.0
        assert margins["gain_crossover_frequencies"].count(0.0) == 1

    def test_reference_phase_branch(self):
        """A phase near -540 deg is measured against -540."""
        w = np.array([1.0, 2.0])
        gain = np.array([1.0, -1.0])
        phase = np.array([-530.0, -530.0])

        pm = compute_margins_from_response(w, gain, phase)["phase_margins"][0]
        assert pm["reference_phase"] == -540
        assert pm["margin"] == pytest.approx(10.0)


# ============================================================================
# Display Alignment and Frequency Range
# ============================================================================


class TestAlignmentAndRange:
    """Test Bode alignment and the automatic decade range."""

    def test_alignment_moves_crossover_near_minus_180(self):
        gain = np.array([10.0, -10.0])
        phase = np.array([230.0, 210.0])

        aligned = align_phase_to_crossover(gain, phase)
        assert_allclose(aligned, [-130.0, -150.0])

    def test_alignment_without_crossover_is_identity(self):
        phase = np.array([10.0, 20.0])
        assert_allclose(align_phase_to_crossover(np.array([-1.0, -2.0]), phase), phase)

    def test_auto_range_two_roots(self):
        assert auto_frequency_range([-1.0, -10.0]) == pytest.approx((-1.0, 2.0))

    def test_auto_range_wide_spread_uses_half_decade(self):
        assert auto_frequency_range([-0.01, -1000.0]) == pytest.approx((-2.5, 3.5))

    def test_auto_range_ignores_origin(self):
        assert auto_frequency_range([0.0, -1.0]) == pytest.approx((-1.5, 1.5))

    def test_auto_range_default(self):
        assert auto_frequency_range([]) == (-2.0, 3.0)
        assert auto_frequency_range([0.0]) == (-2.0, 3.0)
