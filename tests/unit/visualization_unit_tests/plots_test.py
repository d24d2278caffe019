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
Unit Tests for Loop Plots

Tests the Nyquist compression helpers, frequency labels and every
LoopPlotter figure built from real loop analyses.
"""

import numpy as np
import plotly.graph_objects as go
import plotly.io as pio
import pytest

from loopshape.control import LoopAnalysis
from loopshape.symbolic import parse_expression
from loopshape.visualization import (
    LoopPlotter,
    clamp_compression_radius,
    compress_point,
    format_frequency,
)
from loopshape.visualization.themes import LoopColors

# ============================================================================
# Fixtures
# ============================================================================


@pytest.fixture
def plotter():
    return LoopPlotter()


@pytest.fixture
def first_order():
    """L = 10/(s+1), closed-loop pole at -11."""
    return LoopAnalysis(parse_expression("10/(s+1)"))


@pytest.fixture
def type_one():
    """L = 1/(s(s+1)), with an origin pole indented on the contour."""
    return LoopAnalysis(parse_expression("1/(s*(s+1))"))


def trace_names(fig):
    return [trace.name for trace in fig.data]


# ============================================================================
# Coordinate Helpers
# ============================================================================


class TestCompression:
    """Test radial compression of Nyquist values."""

    def test_critical_point(self):
        assert compress_point(-1.0, 3.0) == pytest.approx(-0.75 + 0j)

    def test_scalar_returns_complex(self):
        assert isinstance(compress_point(2.0), complex)

    def test_array_keeps_shape(self):
        values = np.array([1 + 1j, -2.0, 0.5j])
        assert compress_point(values).shape == (3,)

    def test_direction_preserved(self):
        z = 3 + 4j
        compressed = compress_point(z, 5.0)

        assert compressed == pytest.approx(z / 2.0)
        assert np.angle(compressed) == pytest.approx(np.angle(z))

    def test_large_values_stay_inside_radius(self):
        assert abs(compress_point(1e12, 3.0)) < 3.0

    def test_tiny_values_map_to_zero(self):
        assert compress_point(1e-12) == 0j

    def test_non_positive_radius_raises(self):
        with pytest.raises(ValueError, match="positive"):
            compress_point(1.0, 0.0)
        with pytest.raises(ValueError):
            compress_point(1.0, -2.0)

    def test_clamp_radius(self):
        assert clamp_compression_radius(0.1) == 0.5
        assert clamp_compression_radius(7.0) == 7.0
        assert clamp_compression_radius(500.0) == 100.0


class TestFormatFrequency:
    """Test magnitude-dependent frequency labels."""

    @pytest.mark.parametrize(
        "freq, expected",
        [
            (1234.5, "1.23e+03"),
            (123.45, "123.5"),
            (1.2345, "1.23"),
            (0.12345, "0.123"),
            (0.0456, "0.0456"),
            (0.001234, "0.0012"),
        ],
    )
    def test_labels(self, freq, expected):
        assert format_frequency(freq) == expected


# ============================================================================
# Plotter
# ============================================================================


class TestLoopPlotterInit:
    """Test plotter configuration."""

    def test_defaults(self, plotter):
        assert plotter.default_theme == "default"
        assert plotter.compression_radius == 3.0

    def test_radius_is_clamped(self):
        assert LoopPlotter(compression_radius=1000.0).compression_radius == 100.0

    def test_unknown_theme_raises(self):
        with pytest.raises(ValueError, match="Unknown theme"):
            LoopPlotter(default_theme="neon")

    def test_invalid_theme_type_raises(self):
        with pytest.raises(TypeError):
            LoopPlotter(default_theme=42)

    def test_list_available_themes(self):
        assert LoopPlotter.list_available_themes() == [
            "default",
            "publication",
            "dark",
            "presentation",
        ]


class TestBodePlot:
    """Test gain/phase figures."""

    def test_returns_figure(self, plotter, first_order):
        fig = plotter.plot_bode({"L": first_order.frequency_response})

        assert isinstance(fig, go.Figure)
        assert trace_names(fig).count("L(jω)") == 2

    def test_loop_colors(self, plotter, first_order):
        fig = plotter.plot_bode(
            {
                "L": first_order.frequency_response,
                "T": first_order.closed_loop_frequency_response,
            }
        )
        colors = {trace.name: trace.line.color for trace in fig.data}

        assert colors["L(jω)"] == LoopColors.L
        assert colors["T(jω)"] == LoopColors.T

    def test_margins_add_annotations(self, plotter):
        analysis = LoopAnalysis(parse_expression("2/(s*(s+1))"))
        plain = plotter.plot_bode({"L": analysis.frequency_response})
        annotated = plotter.plot_bode({"L": analysis.frequency_response}, margins=analysis.margins)

        assert len(annotated.data) > len(plain.data)
        texts = [a.text for a in annotated.layout.annotations if a.text]
        assert any(text.startswith("PM=") for text in texts)

    def test_log_frequency_axis(self, plotter, first_order):
        fig = plotter.plot_bode({"L": first_order.frequency_response})
        assert fig.layout.xaxis.type == "log"

    def test_none_response_skipped(self, plotter, first_order):
        fig = plotter.plot_bode({"L": first_order.frequency_response, "T": None})
        assert "T(jω)" not in trace_names(fig)


class TestNyquistPlot:
    """Test compressed Nyquist figures."""

    def test_title_shows_winding_number(self, plotter, first_order):
        fig = plotter.plot_nyquist(first_order.nyquist)

        assert isinstance(fig, go.Figure)
        assert "(N = 0)" in fig.layout.title.text

    def test_reference_circles_and_critical_point(self, plotter, first_order):
        names = trace_names(plotter.plot_nyquist(first_order.nyquist))

        assert "|L| = ∞" in names
        assert "|L| = 1" in names
        assert "L(jω)" in names
        assert "-1" in names

    def test_critical_point_can_be_hidden(self, plotter, first_order):
        fig = plotter.plot_nyquist(first_order.nyquist, show_critical_point=False)
        assert "-1" not in trace_names(fig)

    def test_critical_point_position(self, plotter, first_order):
        fig = plotter.plot_nyquist(first_order.nyquist)
        critical = next(trace for trace in fig.data if trace.name == "-1")

        assert critical.x[0] == pytest.approx(-0.75)
        assert critical.y[0] == pytest.approx(0.0)

    def test_curve_inside_outer_circle(self, plotter, type_one):
        fig = plotter.plot_nyquist(type_one.nyquist)
        for trace in fig.data:
            if trace.name in ("L(jω)", "Indentation arcs"):
                x = np.asarray(trace.x, dtype=float)
                y = np.asarray(trace.y, dtype=float)
                radius = np.hypot(x, y)
                assert np.all(radius[np.isfinite(radius)] <= 3.0 + 1e-9)

    def test_indentation_arcs_drawn(self, plotter, type_one):
        assert "Indentation arcs" in trace_names(plotter.plot_nyquist(type_one.nyquist))

    def test_radius_override(self, plotter, first_order):
        fig = plotter.plot_nyquist(first_order.nyquist, compression_radius=10.0)
        outer = next(trace for trace in fig.data if trace.name == "|L| = ∞")

        assert max(outer.x) == pytest.approx(10.0)

    def test_square_layout(self, plotter, first_order):
        fig = plotter.plot_nyquist(first_order.nyquist)

        assert fig.layout.width == 700
        assert fig.layout.height == 700


class TestPoleZeroPlot:
    """Test s-plane maps."""

    def test_open_and_closed_loop(self, plotter, first_order):
        fig = plotter.plot_pole_zero_map(first_order.open_loop, first_order.closed_loop)
        names = trace_names(fig)

        assert isinstance(fig, go.Figure)
        assert "L poles" in names
        assert "T poles" in names

    def test_empty_map(self, plotter):
        assert isinstance(plotter.plot_pole_zero_map(), go.Figure)

    def test_zeros_drawn(self, plotter):
        analysis = LoopAnalysis(parse_expression("(s+2)/(s*(s+1))"))
        fig = plotter.plot_pole_zero_map(analysis.open_loop)

        assert "L zeros" in trace_names(fig)


class TestStepPlot:
    """Test step-response figures."""

    def test_closed_loop_trace(self, plotter, first_order):
        fig = plotter.plot_step_response(first_order.step_response)
        closed = next(trace for trace in fig.data if trace.name == "Closed loop (T)")

        assert isinstance(fig, go.Figure)
        assert closed.y[-1] == pytest.approx(10.0 / 11.0, abs=1e-3)

    def test_open_loop_optional(self, plotter, first_order):
        hidden = plotter.plot_step_response(first_order.step_response)
        shown = plotter.plot_step_response(first_order.step_response, show_open_loop=True)

        assert "Open loop (L)" not in trace_names(hidden)
        assert "Open loop (L)" in trace_names(shown)

    def test_delay_loop_result_accepted(self, plotter):
        response = {
            "time": np.linspace(0.0, 1.0, 11),
            "y": np.linspace(0.0, 0.5, 11),
            "e": np.linspace(1.0, 0.5, 11),
        }
        fig = plotter.plot_step_response(response)
        assert "Closed loop (T)" in trace_names(fig)

    def test_metrics_markers(self, plotter):
        analysis = LoopAnalysis(parse_expression("1/(s*(s+1))"))
        plain = plotter.plot_step_response(analysis.step_response)
        marked = plotter.plot_step_response(analysis.step_response, metrics=analysis.step_metrics)

        assert any(name.startswith("Overshoot") for name in trace_names(marked) if name)
        assert len(marked.layout.shapes) > len(plain.layout.shapes)


# ============================================================================
# Aggregate
# ============================================================================


class TestPlotAnalysis:
    """Test the figure set of a complete analysis."""

    def test_rational_loop_has_every_view(self, plotter, first_order):
        figures = plotter.plot_analysis(first_order)

        assert set(figures) == {"bode", "nyquist", "pole_zero", "step"}
        assert all(isinstance(fig, go.Figure) for fig in figures.values())

    def test_unknown_loop_has_no_step_view(self, plotter):
        analysis = LoopAnalysis(parse_expression("exp(-s) + 1/(s+1)"))
        figures = plotter.plot_analysis(analysis)

        assert "step" not in figures
        assert "pole_zero" not in figures
        assert "bode" in figures
        assert "nyquist" in figures

    def test_theme_forwarded(self, plotter, first_order):
        figures = plotter.plot_analysis(first_order, theme="dark")
        dark = pio.templates["plotly_dark"].layout.paper_bgcolor

        assert all(fig.layout.template.layout.paper_bgcolor == dark for fig in figures.values())
