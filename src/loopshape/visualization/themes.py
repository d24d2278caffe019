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
Plot Themes and Color Schemes

Colors for the loop transfer functions and preset Plotly themes shared by
every loop-shaping figure.

Examples
--------
>>> from loopshape.visualization.themes import LoopColors, PlotThemes
>>> LoopColors.L
'#0088aa'
>>> fig = PlotThemes.apply_theme(fig, theme="publication")
"""

from typing import Dict, List, Optional, Union

import plotly.graph_objects as go

ThemeSpec = Union[str, Dict]


# ============================================================================
# Colors
# ============================================================================


class LoopColors:
    """
    Fixed colors of the transfer functions of one loop.

    The same color marks a function on every view (Bode, pole-zero map,
    step response) so that curves can be matched across figures.
    """

    L = "#0088aa"  # Open loop L(s)
    T = "#dd6600"  # Closed loop T(s) = L/(1+L)
    S = "#22aa44"  # Sensitivity S(s) = 1/(1+L)
    CRITICAL = "#d62728"
    GRID = "#c0c0c0"
    AXIS = "#999999"
    MARGIN = "#000000"


class ColorSchemes:
    """
    Categorical palettes for extra traces (labels other than L, T and S).

    Examples
    --------
    >>> ColorSchemes.get_colors("colorblind_safe", n_colors=3)
    ['#0173B2', '#DE8F05', '#029E73']
    """

    # Plotly's default qualitative sequence
    PLOTLY = [
        "#636EFA",
        "#EF553B",
        "#00CC96",
        "#AB63FA",
        "#FFA15A",
        "#19D3F3",
        "#FF6692",
        "#B6E880",
        "#FF97FF",
        "#FECB52",
    ]

    # Wong (2011), distinguishable under common color-vision deficiencies
    COLORBLIND_SAFE = [
        "#0173B2",
        "#DE8F05",
        "#029E73",
        "#CC78BC",
        "#CA9161",
        "#949494",
        "#ECE133",
        "#56B4E9",
    ]

    _NAMES = {
        "plotly": "PLOTLY",
        "colorblind_safe": "COLORBLIND_SAFE",
        "wong": "COLORBLIND_SAFE",
    }

    @classmethod
    def get_colors(cls, scheme: str = "plotly", n_colors: Optional[int] = None) -> List[str]:
        """
        Palette by name, cycled when more colors are requested than it holds.

        Parameters
        ----------
        scheme : str
            'plotly' or 'colorblind_safe' (alias 'wong'); case, dashes and
            spaces are ignored
        n_colors : Optional[int]
            Number of colors; None returns a copy of the whole palette

        Raises
        ------
        ValueError
            If the scheme name is not recognized
        """
        key = scheme.lower().replace("-", "_").replace(" ", "_")
        if key not in cls._NAMES:
            raise ValueError(
                f"Unknown color scheme '{scheme}'. Available: {', '.join(sorted(cls._NAMES))}"
            )
        palette: List[str] = getattr(cls, cls._NAMES[key])

        if n_colors is None:
            return list(palette)
        return [palette[i % len(palette)] for i in range(n_colors)]


# ============================================================================
# Themes
# ============================================================================


class PlotThemes:
    """
    Preset layout themes for loop figures.

    Each preset is a dict with any of the keys 'template', 'font_family',
    'font_size', 'line_width', 'grid_color' and 'showlegend'. A custom dict
    with the same keys may be passed wherever a theme name is accepted.
    """

    PRESETS: Dict[str, Dict] = {
        "default": {
            "template": "plotly_white",
            "font_family": "Arial, sans-serif",
            "font_size": 12,
            "line_width": 2,
            "grid_color": LoopColors.GRID,
        },
        "publication": {
            "template": "simple_white",
            "font_family": "Times New Roman, serif",
            "font_size": 14,
            "line_width": 2.5,
            "showlegend": True,
        },
        "dark": {
            "template": "plotly_dark",
            "font_family": "Arial, sans-serif",
            "font_size": 12,
            "line_width": 2,
        },
        "presentation": {
            "template": "plotly_white",
            "font_family": "Arial, sans-serif",
            "font_size": 18,
            "line_width": 3,
            "grid_color": LoopColors.GRID,
        },
    }

    @staticmethod
    def available() -> List[str]:
        return list(PlotThemes.PRESETS)

    @staticmethod
    def get_theme(theme: ThemeSpec) -> Dict:
        """
        Resolve a theme name (case-insensitive) or a custom dict.

        Raises
        ------
        ValueError
            If the theme name is unknown
        TypeError
            If theme is neither a string nor a dict
        """
        if isinstance(theme, dict):
            return theme
        if not isinstance(theme, str):
            raise TypeError(f"theme must be str or dict, got {type(theme).__name__}")
        try:
            return PlotThemes.PRESETS[theme.lower()]
        except KeyError:
            raise ValueError(
                f"Unknown theme '{theme}'. Available: {', '.join(PlotThemes.available())}"
            ) from None

    @staticmethod
    def apply_theme(fig: go.Figure, theme: ThemeSpec = "default") -> go.Figure:
        """
        Apply a theme to a figure in place.

        Line widths change only on traces drawn with lines, so pole, zero
        and crossover markers keep their sizes.

        Returns
        -------
        go.Figure
            The same figure, for chaining
        """
        config = PlotThemes.get_theme(theme)

        layout = {}
        if "template" in config:
            layout["template"] = config["template"]
        font = {}
        if "font_family" in config:
            font["family"] = config["font_family"]
        if "font_size" in config:
            font["size"] = config["font_size"]
        if font:
            layout["font"] = font
        if "showlegend" in config:
            layout["showlegend"] = config["showlegend"]
        if layout:
            fig.update_layout(**layout)

        if "grid_color" in config:
            fig.update_xaxes(gridcolor=config["grid_color"])
            fig.update_yaxes(gridcolor=config["grid_color"])

        if "line_width" in config:
            for trace in fig.data:
                mode = getattr(trace, "mode", None)
                if mode is not None and "lines" in mode:
                    trace.line.width = config["line_width"]

        return fig


# ============================================================================
# Module Exports
# ============================================================================

__all__ = [
    "ThemeSpec",
    "LoopColors",
    "ColorSchemes",
    "PlotThemes",
]
