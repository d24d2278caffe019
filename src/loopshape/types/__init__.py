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
Centralized Type System

Type aliases, tolerance constants and TypedDict result structures shared
across the loop-shaping engine.

Modules
-------
core : Scalars, arrays, polynomials, evaluators, tolerances
symbolic : Rational functions and structure classification
control_classical : Roots, state-space, margins, Nyquist, pole/zero sets
trajectories : Step-response traces and metrics
"""

from .control_classical import (
    AnalysisResult,
    ClosedLoopPoleRequest,
    ClosedLoopPoleResponse,
    FrequencyResponse,
    GainMarginEntry,
    Indentation,
    NyquistAnalysis,
    NyquistContour,
    NyquistContourPoint,
    NyquistEvaluatedPoint,
    PhaseMarginEntry,
    PolesZeros,
    RootFindingResult,
    StabilityMargins,
    StateSpaceModel,
)
from .core import (
    COEFF_STRIP_TOL,
    DIVISION_FLOOR,
    FREQUENCY_FLOOR,
    IMAG_AXIS_TOL,
    ROOT_MAX_ITERATIONS,
    ROOT_SORT_TOL,
    ROOT_TOLERANCE,
    STABLE_POLE_TOL,
    ComplexArray,
    ComplexLike,
    FrequencyArray,
    Polynomial,
    RootList,
    TransferFunctionEvaluator,
)
from .symbolic import (
    RationalFunction,
    StructureClassification,
    StructureType,
    SymbolicRationalForm,
)
from .trajectories import (
    ClosedLoopStepResult,
    IntegrationResult,
    StepMetrics,
    StepResponseData,
    StepResponseResult,
)

__all__ = [
    # Core
    "ComplexLike",
    "ComplexArray",
    "FrequencyArray",
    "Polynomial",
    "RootList",
    "TransferFunctionEvaluator",
    "IMAG_AXIS_TOL",
    "COEFF_STRIP_TOL",
    "ROOT_SORT_TOL",
    "ROOT_TOLERANCE",
    "ROOT_MAX_ITERATIONS",
    "DIVISION_FLOOR",
    "STABLE_POLE_TOL",
    "FREQUENCY_FLOOR",
    # Symbolic
    "StructureType",
    "RationalFunction",
    "SymbolicRationalForm",
    "StructureClassification",
    # Control
    "RootFindingResult",
    "StateSpaceModel",
    "FrequencyResponse",
    "GainMarginEntry",
    "PhaseMarginEntry",
    "StabilityMargins",
    "Indentation",
    "NyquistContourPoint",
    "NyquistEvaluatedPoint",
    "NyquistContour",
    "NyquistAnalysis",
    "PolesZeros",
    "ClosedLoopPoleRequest",
    "ClosedLoopPoleResponse",
    "AnalysisResult",
    # Trajectories
    "StepResponseResult",
    "ClosedLoopStepResult",
    "StepResponseData",
    "StepMetrics",
    "IntegrationResult",
]
