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
loopshape - Interactive Loop-Shaping Analysis

Analyze a unity-feedback loop L(s) written as a small design script:

- symbolic: expression trees, design scripts, Padé expansion, rational
  reduction and structure classification
- control: polynomial roots, frequency response and margins, Nyquist
  winding number, closed-loop poles, and the LoopAnalysis orchestrator
- systems: state-space realization, RK4 step responses (with delays),
  step metrics and a catalog of example plants, controllers and filters
- visualization: Plotly Bode, Nyquist, pole-zero and step-response figures

Quick Start
-----------
>>> from loopshape import LoopDesignSession, DesignParameter
>>>
>>> session = LoopDesignSession(
...     "P = 1/(s*(s+1))\\nK = Kp\\nL = K * P",
...     parameters=[DesignParameter("Kp", value=5.0, min=0.1, max=100.0)],
... )
>>> session.update()
True
>>> session.analysis.is_closed_loop_stable
True
>>> session.set_parameter("Kp", 20.0)
True
"""

from loopshape.control import (
    ClosedLoopPoleWorker,
    LoopAnalysis,
    LoopDesignSession,
    compute_frequency_response,
    compute_nyquist_analysis,
    compute_stability_margins,
    find_roots,
)
from loopshape.symbolic import (
    DefinitionError,
    DesignParameter,
    NotRationalError,
    SymbolicError,
    bind_design,
    classify_structure,
    compile_expression,
    parse_expression,
    rationalize,
)
from loopshape.systems import (
    calculate_step_metrics,
    simulate_closed_loop_step_response_loop_delay,
    simulate_step_response,
    tf2ss,
)
from loopshape.visualization import LoopPlotter

__version__ = "0.1.0"

__all__ = [
    "__version__",
    # Symbolic
    "parse_expression",
    "compile_expression",
    "rationalize",
    "classify_structure",
    "DesignParameter",
    "bind_design",
    "SymbolicError",
    "DefinitionError",
    "NotRationalError",
    # Control
    "find_roots",
    "compute_frequency_response",
    "compute_stability_margins",
    "compute_nyquist_analysis",
    "ClosedLoopPoleWorker",
    "LoopAnalysis",
    "LoopDesignSession",
    # Systems
    "tf2ss",
    "simulate_step_response",
    "simulate_closed_loop_step_response_loop_delay",
    "calculate_step_metrics",
    # Visualization
    "LoopPlotter",
]
