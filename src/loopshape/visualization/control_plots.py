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
Loop Plotter - Loop-Shaping Visualizations

Interactive Plotly figures for the results of a loop analysis.

Key Features
------------
- Bode plot of L and T with gain/phase margin annotations
- Nyquist plot in radially compressed coordinates z/(1+|z|/R), so that the
  whole curve (including the arcs at infinity of on-axis poles) fits in a
  disc of radius R
- Pole-zero map of the open and closed loop
- Step response with the usual time-domain metrics
- Consistent theming through the themes module

Main Class
----------
LoopPlotter : Loop-shaping visualization
    plot_bode() : Gain and phase of one or more transfer functions
    plot_nyquist() : Compressed Nyquist curve around -1
    plot_pole_zero_map() : Open/closed-loop poles and zeros
    plot_step_response() : Unit-step responses with metrics
    plot_analysis() : All of the above for one LoopAnalysis

Usage
-----
>>> from loopshape.control import LoopAnalysis
>>> from loopshape.symbolic import parse_expression
>>> from loopshape.visualization import LoopPlotter
>>>
>>> analysis = LoopAnalysis(parse_expression("5/(s*(s+1))"))
>>> plotter = LoopPlotter(default_theme="publication")
>>> fig = plotter.plot_bode(
...     {"L": analysis.frequency_response},
...     margins=analysis.margins,
... )
>>> fig.show()
"""

from typing import Dict, List, Mapping, Optional, Union

import numpy as np
import plotly.graph_objects as go
from plotly.subplots import make_subplots

from loopshape.types.control_classical import (
    FrequencyResponse,
    NyquistAnalysis,
    PolesZeros,
    StabilityMargins,
)
from loopshape.types.trajectories import ClosedLoopStepResult, StepMetrics, StepResponseResult

from .themes import ColorSchemes, LoopColors, PlotThemes, ThemeSpec

DEFAULT_COMPRESSION_RADIUS = 3.0
MIN_COMPRESSION_RADIUS = 0.5
MAX_COMPRESSION_RADIUS = 100.0

FUNCTION_COLORS = {"L": LoopColors.L, "T": LoopColors.T, "S": LoopColors.S}


# ============================================================================
# Coordinate Helpers
# ============================================================================


def compress_point(z, radius: float = DEFAULT_COMPRESSION_RADIUS):
    """
    Radially compress complex values: z -> z / (1 + |z|/R).

    Directions are preserved, |z| <= 1 is nearly unchanged for large R and
    infinity maps onto the circle of radius R. Values with |z| < 1e-10 map
    to 0.

    Parameters
    ----------
    z : complex or array-like
        Value(s) to compress
    radius : float
        Compression radius R > 0

    Returns
    -------
    complex or np.ndarray
        Same shape as z

    Examples
    --------
    >>> compress_point(-1.0, radius=3.0)
    (-0.75+0j)
    """
    if radius <= 0:
        raise ValueError(f"Compression radius must be positive, got {radius}")
    values = np.asarray(z, dtype=complex)
    magnitude = np.abs(values)
    compressed = np.where(magnitude < 1e-10, 0j, values / (1.0 + magnitude / radius))
    if compressed.ndim == 0:
        return complex(compressed)
    return compressed


def clamp_compression_radius(radius: float) -> float:
    """Keep a user-adjusted compression radius inside [0.5, 100]."""
    return float(min(MAX_COMPRESSION_RADIUS, max(MIN_COMPRESSION_RADIUS, radius)))


def format_frequency(freq: float) -> str:
    """
    Frequency label with precision matched to its magnitude.

    Examples
    --------
    >>> format_frequency(1234.5), format_frequency(0.0456)
    ('1.23e+03', '0.0456')
    """
    if freq >= 1000:
        return f"{freq:.3g}"
    if freq >= 100:
        return f"{freq:.1f}"
    if freq >= 1:
        return f"{freq:.2f}"
    if freq >= 0.1:
        return f"{freq:.3f}"
    if freq >= 0.01:
        return f"{freq:.4f}"
    return f"{freq:.2g}"


# ============================================================================
# Plotter
# ============================================================================


class LoopPlotter:
    """
    Loop-shaping visualization.

    Attributes
    ----------
    default_theme : ThemeSpec
        Theme applied when a plot method is not given one
    compression_radius : float
        Radius R of the Nyquist compression

    Examples
    --------
    >>> plotter = LoopPlotter(compression_radius=5.0)
    >>> fig = plotter.plot_nyquist(analysis.nyquist)
    """

    def __init__(
        self,
        default_theme: ThemeSpec = "default",
        compression_radius: float = DEFAULT_COMPRESSION_RADIUS,
    ):
        PlotThemes.get_theme(default_theme)
        self.default_theme = default_theme
        self.compression_radius = clamp_compression_radius(compression_radius)

    def _finish(self, fig: go.Figure, theme: Optional[ThemeSpec]) -> go.Figure:
        return PlotThemes.apply_theme(fig, theme=self.default_theme if theme is None else theme)

    @staticmethod
    def _color(label: str, index: int) -> str:
        if label in FUNCTION_COLORS:
            return FUNCTION_COLORS[label]
        return ColorSchemes.PLOTLY[index % len(ColorSchemes.PLOTLY)]

    # ========================================================================
    # Bode
    # ========================================================================

    def plot_bode(
        self,
        responses: Mapping[str, FrequencyResponse],
        margins: Optional[StabilityMargins] = None,
        title: str = "Bode Plot",
        theme: Optional[ThemeSpec] = None,
    ) -> go.Figure:
        """
        Plot gain (dB) and phase (deg) against log frequency.

        Parameters
        ----------
        responses : Mapping[str, FrequencyResponse]
            Label -> sampled response. 'L', 'T' and 'S' get their fixed
            loop colors, other labels use the Plotly palette
        margins : Optional[StabilityMargins]
            Margins of L. Each gain margin is drawn as a vertical segment
            from 0 dB to the gain at the phase crossover; each phase margin
            as a segment from the phase at the gain crossover to its
            reference line
        title : str
            Plot title
        theme : Optional[ThemeSpec]
            Theme to apply; None uses default_theme

        Returns
        -------
        go.Figure
            Two-row figure with shared frequency axis
        """
        fig = make_subplots(
            rows=2,
            cols=1,
            subplot_titles=("Gain", "Phase"),
            vertical_spacing=0.12,
            shared_xaxes=True,
        )

        for i, (label, response) in enumerate(responses.items()):
            if response is None:
                continue
            color = self._color(label, i)
            w = np.asarray(response["frequencies"])
            fig.add_trace(
                go.Scatter(
                    x=w,
                    y=np.asarray(response["gain_db"]),
                    mode="lines",
                    name=f"{label}(jω)",
                    legendgroup=label,
                    line=dict(color=color, width=2),
                    hovertemplate="ω: %{x:.3g} rad/s<br>Gain: %{y:.2f} dB<extra></extra>",
                ),
                row=1,
                col=1,
            )
            fig.add_trace(
                go.Scatter(
                    x=w,
                    y=np.asarray(response["phase_deg"]),
                    mode="lines",
                    name=f"{label}(jω)",
                    legendgroup=label,
                    showlegend=False,
                    line=dict(color=color, width=2),
                    hovertemplate="ω: %{x:.3g} rad/s<br>Phase: %{y:.1f}°<extra></extra>",
                ),
                row=2,
                col=1,
            )

        fig.add_hline(y=0, line_dash="dash", line_color="gray", opacity=0.5, row=1, col=1)

        if margins is not None:
            self._add_margin_annotations(fig, margins)

        fig.update_xaxes(type="log", showgrid=True, row=1, col=1)
        fig.update_xaxes(title_text="Frequency (rad/s)", type="log", showgrid=True, row=2, col=1)
        fig.update_yaxes(title_text="Gain (dB)", showgrid=True, row=1, col=1)
        fig.update_yaxes(title_text="Phase (deg)", showgrid=True, row=2, col=1)

        fig.update_layout(title=title, width=800, height=700, showlegend=True)

        return self._finish(fig, theme)

    def _add_margin_annotations(self, fig: go.Figure, margins: StabilityMargins):
        """Margin segments, labels and crossover markers."""
        color = LoopColors.MARGIN
        references = sorted({pm["reference_phase"] for pm in margins["phase_margins"]})
        for ref in references or [-180.0]:
            fig.add_hline(y=ref, line_dash="dash", line_color="gray", opacity=0.5, row=2, col=1)

        for gm in margins["gain_margins"]:
            w = gm["frequency"]
            fig.add_trace(
                go.Scatter(
                    x=[w, w],
                    y=[0.0, gm["gain_at_crossover"]],
                    mode="lines",
                    line=dict(color=color, width=1),
                    showlegend=False,
                    hoverinfo="skip",
                ),
                row=1,
                col=1,
            )
            fig.add_annotation(
                x=np.log10(w),
                y=gm["gain_at_crossover"] / 2.0,
                text=f"GM={round(gm['margin']):+d}dB",
                showarrow=False,
                xanchor="left",
                row=1,
                col=1,
            )
            fig.add_trace(
                go.Scatter(
                    x=[w],
                    y=[-180.0],
                    mode="markers",
                    marker=dict(color=color, size=8),
                    showlegend=False,
                    hovertemplate=f"ω={format_frequency(w)} rad/s<extra>phase crossover</extra>",
                ),
                row=2,
                col=1,
            )

        for pm in margins["phase_margins"]:
            w = pm["frequency"]
            fig.add_trace(
                go.Scatter(
                    x=[w, w],
                    y=[pm["phase_at_crossover"], pm["reference_phase"]],
                    mode="lines",
                    line=dict(color=color, width=1),
                    showlegend=False,
                    hoverinfo="skip",
                ),
                row=2,
                col=1,
            )
            fig.add_annotation(
                x=np.log10(w),
                y=(pm["phase_at_crossover"] + pm["reference_phase"]) / 2.0,
                text=f"PM={round(pm['margin'])}°",
                showarrow=False,
                xanchor="left",
                row=2,
                col=1,
            )
            fig.add_trace(
                go.Scatter(
                    x=[w],
                    y=[0.0],
                    mode="markers",
                    marker=dict(color=color, size=8),
                    showlegend=False,
                    hovertemplate=f"ω={format_frequency(w)} rad/s<extra>gain crossover</extra>",
                ),
                row=1,
                col=1,
            )

    # ========================================================================
    # Nyquist
    # ========================================================================

    def plot_nyquist(
        self,
        nyquist: NyquistAnalysis,
        compression_radius: Optional[float] = None,
        title: str = "Nyquist Plot",
        show_critical_point: bool = True,
        theme: Optional[ThemeSpec] = None,
    ) -> go.Figure:
        """
        Plot L(s) along the D-contour in compressed coordinates.

        Parameters
        ----------
        nyquist : NyquistAnalysis
            Evaluated contour; its winding number N is shown in the title
        compression_radius : Optional[float]
            Overrides the plotter's radius R for this figure
        title : str
            Plot title
        show_critical_point : bool
            If True, mark the compressed image of -1
        theme : Optional[ThemeSpec]
            Theme to apply

        Returns
        -------
        go.Figure
            Nyquist plot with equal axis scaling

        Notes
        -----
        The dashed outer circle is the image of |L| = infinity, the dotted
        one the image of the unit circle |L| = 1. Points on indentation arcs
        around on-axis poles are drawn in a second trace.
        """
        R = self.compression_radius if compression_radius is None else clamp_compression_radius(compression_radius)

        fig = go.Figure()

        theta = np.linspace(0, 2 * np.pi, 181)
        unit_radius = 1.0 / (1.0 + 1.0 / R)
        fig.add_trace(
            go.Scatter(
                x=R * np.cos(theta),
                y=R * np.sin(theta),
                mode="lines",
                line=dict(color=LoopColors.GRID, width=1, dash="dash"),
                name="|L| = ∞",
                hoverinfo="skip",
            )
        )
        fig.add_trace(
            go.Scatter(
                x=unit_radius * np.cos(theta),
                y=unit_radius * np.sin(theta),
                mode="lines",
                line=dict(color=LoopColors.AXIS, width=1, dash="dot"),
                name="|L| = 1",
                hoverinfo="skip",
            )
        )

        points = nyquist["points"]
        values = np.array([p["L"] for p in points], dtype=complex)
        on_arc = np.array([p["indentation"] is not None for p in points], dtype=bool)
        s_values = np.array([p["s"] for p in points], dtype=complex)
        compressed = compress_point(values, R) if values.size else values

        main_curve = np.where(on_arc, np.nan + 0j, compressed) if compressed.size else compressed
        fig.add_trace(
            go.Scatter(
                x=np.real(main_curve),
                y=np.imag(main_curve),
                mode="lines",
                name="L(jω)",
                line=dict(color=LoopColors.L, width=2),
                customdata=np.stack([np.imag(s_values), np.real(values), np.imag(values)], axis=-1)
                if values.size
                else None,
                hovertemplate=(
                    "ω: %{customdata[0]:.3g}<br>"
                    "L: %{customdata[1]:.3g} %{customdata[2]:+.3g}j<extra></extra>"
                ),
                connectgaps=False,
            )
        )
        if np.any(on_arc):
            arc_curve = np.where(on_arc, compressed, np.nan + 0j)
            fig.add_trace(
                go.Scatter(
                    x=np.real(arc_curve),
                    y=np.imag(arc_curve),
                    mode="lines",
                    name="Indentation arcs",
                    line=dict(color=LoopColors.L, width=2, dash="dot"),
                    connectgaps=False,
                    hoverinfo="skip",
                )
            )

        if show_critical_point:
            critical = compress_point(-1.0, R)
            fig.add_trace(
                go.Scatter(
                    x=[critical.real],
                    y=[critical.imag],
                    mode="markers",
                    name="-1",
                    marker=dict(color=LoopColors.CRITICAL, size=12, symbol="x"),
                )
            )

        fig.add_hline(y=0, line_dash="solid", line_color="black", line_width=1)
        fig.add_vline(x=0, line_dash="solid", line_color="black", line_width=1)

        extent = 1.1 * R
        fig.update_layout(
            title=f"{title} (N = {nyquist['N']})",
            xaxis_title="Re (compressed)",
            yaxis_title="Im (compressed)",
            width=700,
            height=700,
            showlegend=True,
        )
        fig.update_xaxes(range=[-extent, extent])
        fig.update_yaxes(range=[-extent, extent], scaleanchor="x", scaleratio=1)

        return self._finish(fig, theme)

    # ========================================================================
    # Pole-Zero Map
    # ========================================================================

    def plot_pole_zero_map(
        self,
        open_loop: Optional[PolesZeros] = None,
        closed_loop: Optional[PolesZeros] = None,
        title: str = "Pole-Zero Map",
        theme: Optional[ThemeSpec] = None,
    ) -> go.Figure:
        """
        Plot poles (x) and zeros (o) of L and T in the s-plane.

        The right half-plane is shaded; closed-loop poles there mean an
        unstable loop.

        Examples
        --------
        >>> fig = plotter.plot_pole_zero_map(analysis.open_loop, analysis.closed_loop)
        """
        fig = go.Figure()

        everything: List[complex] = []
        for label, pz in (("L", open_loop), ("T", closed_loop)):
            if pz is None:
                continue
            color = FUNCTION_COLORS[label]
            poles = np.asarray(pz["poles"], dtype=complex)
            zeros = np.asarray(pz["zeros"], dtype=complex)
            everything.extend(poles.tolist())
            everything.extend(zeros.tolist())
            if poles.size:
                fig.add_trace(
                    go.Scatter(
                        x=poles.real,
                        y=poles.imag,
                        mode="markers",
                        name=f"{label} poles",
                        marker=dict(color=color, size=11, symbol="x-thin", line=dict(color=color, width=2)),
                        hovertemplate="%{x:.4g} %{y:+.4g}j<extra></extra>",
                    )
                )
            if zeros.size:
                fig.add_trace(
                    go.Scatter(
                        x=zeros.real,
                        y=zeros.imag,
                        mode="markers",
                        name=f"{label} zeros",
                        marker=dict(color=color, size=11, symbol="circle-open", line=dict(width=2)),
                        hovertemplate="%{x:.4g} %{y:+.4g}j<extra></extra>",
                    )
                )

        finite = [abs(z) for z in everything if np.isfinite(z)]
        extent = 1.2 * max(finite + [1.0])
        fig.add_vrect(x0=0, x1=extent, fillcolor="red", opacity=0.05, line_width=0)
        fig.add_hline(y=0, line_dash="solid", line_color="black", line_width=1)
        fig.add_vline(x=0, line_dash="solid", line_color="black", line_width=1)

        fig.update_layout(
            title=title,
            xaxis_title="Real",
            yaxis_title="Imaginary",
            width=700,
            height=700,
            showlegend=True,
        )
        fig.update_xaxes(range=[-extent, extent])
        fig.update_yaxes(range=[-extent, extent], scaleanchor="x", scaleratio=1)

        return self._finish(fig, theme)

    # ========================================================================
    # Step Response
    # ========================================================================

    def plot_step_response(
        self,
        response: Union[StepResponseResult, ClosedLoopStepResult],
        metrics: Optional[StepMetrics] = None,
        show_open_loop: bool = False,
        title: str = "Step Response",
        theme: Optional[ThemeSpec] = None,
    ) -> go.Figure:
        """
        Plot unit-step responses with reference and metric markers.

        Parameters
        ----------
        response : StepResponseResult or ClosedLoopStepResult
            {time, y_L, y_T} from the simulators, or {time, y, e} from the
            in-loop delay simulator (y is then the closed-loop output)
        metrics : Optional[StepMetrics]
            Closed-loop metrics; adds the 5% band, peak, rise and settling
            markers
        show_open_loop : bool
            Also draw the open-loop response y_L
        """
        time = np.asarray(response["time"])
        closed = np.asarray(response["y_T"] if "y_T" in response else response["y"])

        fig = go.Figure()

        if show_open_loop and "y_L" in response:
            fig.add_trace(
                go.Scatter(
                    x=time,
                    y=np.asarray(response["y_L"]),
                    mode="lines",
                    name="Open loop (L)",
                    line=dict(color=LoopColors.L, width=2),
                )
            )

        fig.add_trace(
            go.Scatter(
                x=time,
                y=closed,
                mode="lines",
                name="Closed loop (T)",
                line=dict(color=LoopColors.T, width=2),
                hovertemplate="t: %{x:.3f}<br>y: %{y:.4f}<extra></extra>",
            )
        )

        fig.add_hline(y=1.0, line_dash="dash", line_color="gray", opacity=0.6)

        if metrics is not None:
            final = metrics["final_value"]
            fig.add_hrect(
                y0=0.95 * final,
                y1=1.05 * final,
                fillcolor="green",
                opacity=0.08,
                line_width=0,
            )
            if metrics["overshoot"] is not None and metrics["overshoot"] > 0:
                fig.add_trace(
                    go.Scatter(
                        x=[metrics["peak_time"]],
                        y=[metrics["peak_value"]],
                        mode="markers",
                        name=f"Overshoot {metrics['overshoot']:.1f}%",
                        marker=dict(color=LoopColors.CRITICAL, size=10, symbol="diamond"),
                    )
                )
            if metrics["rise_time"] is not None:
                fig.add_vline(
                    x=metrics["rise_time"],
                    line_dash="dot",
                    line_color=LoopColors.AXIS,
                    annotation_text=f"t_r={metrics['rise_time']:.3g}s",
                    annotation_position="bottom right",
                )
            if metrics["settling_time"] is not None:
                fig.add_vline(
                    x=metrics["settling_time"],
                    line_dash="dot",
                    line_color=LoopColors.S,
                    annotation_text=f"t_s={metrics['settling_time']:.3g}s",
                    annotation_position="top right",
                )

        fig.update_layout(
            title=title,
            xaxis_title="Time (s)",
            yaxis_title="Output",
            width=800,
            height=500,
            showlegend=True,
            hovermode="x unified",
        )
        fig.update_xaxes(showgrid=True)
        fig.update_yaxes(showgrid=True)

        return self._finish(fig, theme)

    # ========================================================================
    # Aggregate
    # ========================================================================

    def plot_analysis(self, analysis, theme: Optional[ThemeSpec] = None) -> Dict[str, go.Figure]:
        """
        Every available figure of a LoopAnalysis.

        Views whose data could not be computed (for example the step
        response of an L with no rational part) are left out.

        Returns
        -------
        Dict[str, go.Figure]
            Keys among 'bode', 'nyquist', 'pole_zero', 'step'
        """
        figures: Dict[str, go.Figure] = {}

        responses = {"L": analysis.frequency_response, "T": analysis.closed_loop_frequency_response}
        responses = {k: v for k, v in responses.items() if v is not None}
        if responses:
            figures["bode"] = self.plot_bode(responses, margins=analysis.margins, theme=theme)

        if analysis.nyquist is not None:
            figures["nyquist"] = self.plot_nyquist(analysis.nyquist, theme=theme)

        if analysis.open_loop is not None or analysis.closed_loop is not None:
            figures["pole_zero"] = self.plot_pole_zero_map(
                analysis.open_loop, analysis.closed_loop, theme=theme
            )

        if analysis.step_response is not None:
            figures["step"] = self.plot_step_response(
                analysis.step_response, metrics=analysis.step_metrics, theme=theme
            )

        return figures

    @staticmethod
    def list_available_themes() -> List[str]:
        """
        List available plot themes.

        Examples
        --------
        >>> LoopPlotter.list_available_themes()
        ['default', 'publication', 'dark', 'presentation']
        """
        return PlotThemes.available()


# ============================================================================
# Module Exports
# ============================================================================

__all__ = [
    "DEFAULT_COMPRESSION_RADIUS",
    "compress_point",
    "clamp_compression_radius",
    "format_frequency",
    "LoopPlotter",
]
