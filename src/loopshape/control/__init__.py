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
Control Analysis

Classical loop analysis: polynomial roots, frequency response and stability
margins, Nyquist contour and winding number, closed-loop poles, and the
orchestration of all of them for one L(s).

Examples
--------
>>> from loopshape.control import LoopAnalysis
>>> from loopshape.symbolic import parse_expression
>>>
>>> analysis = LoopAnalysis(parse_expression("2/(s*(s+1))"))
>>> analysis.is_closed_loop_stable
True
"""

from .closed_loop_worker import (
    ClosedLoopPoleWorker,
    characteristic_polynomial,
    compute_closed_loop_poles,
    pole_request,
)
from .frequency_response import (
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
from .loop_analysis import LoopAnalysis, LoopDesignSession, validate_loop
from .nyquist_analysis import (
    NYQUIST_DEFAULTS,
    ContourWarning,
    compute_nyquist_analysis,
    compute_winding_number_from_evaluations,
    count_rhp_poles,
    generate_nyquist_contour_points,
    imaginary_axis_poles,
    nyquist_curve,
)
from .polynomial_roots import (
    RootConvergenceWarning,
    find_roots,
    polynomial_roots,
    sort_roots,
)

__all__ = [
    # Roots
    "RootConvergenceWarning",
    "find_roots",
    "sort_roots",
    "polynomial_roots",
    # Frequency response
    "logspace",
    "gain_db",
    "unwrap_phase_deg",
    "compute_frequency_response",
    "align_phase_to_crossover",
    "find_gain_crossovers",
    "find_phase_crossovers",
    "compute_margins_from_response",
    "compute_stability_margins",
    "margins_indicate_stability",
    "auto_frequency_range",
    # Nyquist
    "NYQUIST_DEFAULTS",
    "ContourWarning",
    "imaginary_axis_poles",
    "count_rhp_poles",
    "generate_nyquist_contour_points",
    "compute_winding_number_from_evaluations",
    "compute_nyquist_analysis",
    "nyquist_curve",
    # Closed-loop poles
    "characteristic_polynomial",
    "compute_closed_loop_poles",
    "pole_request",
    "ClosedLoopPoleWorker",
    # Orchestration
    "validate_loop",
    "LoopAnalysis",
    "LoopDesignSession",
]
