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
Loop Analysis

Orchestrates every analysis of one open-loop transfer function L(s):

    structure ──> rational part ──> open-loop poles/zeros ──> on-axis poles, P
        │                 │                                        │
        │                 └──> closed-loop poles (rational L) ──> step time
        │                                                          │
        └──> compiled L ──> Nyquist (N) ──> Z = N + P            step response
                       └──> margins, Bode

Every quantity is computed lazily on first access and memoized. A
quantity that cannot be computed is None and its failure message is kept
in ``errors``; it never prevents unrelated quantities from being
computed.

LoopDesignSession threads the symbolic cache and the last valid analysis
through successive design updates:

- a changed script rebuilds the SymbolicCache wholesale
- changed parameter values reuse it
- an invalid update leaves the previous analysis untouched and reports the
  DefinitionError

Usage
-----
>>> session = LoopDesignSession(
...     "K = Kp\\nP = 1/(s*(s+1))\\nL = K*P",
...     [DesignParameter("Kp", value=1.0)],
... )
>>> session.update()
True
>>> session.analysis.is_closed_loop_stable
True
>>> session.set_parameter("Kp", 5.0)
True
>>> [round(pm['margin'], 1) for pm in session.analysis.margins['phase_margins']]
[25.2]
"""

import cmath
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Tuple

import numpy as np
import sympy as sp

from loopshape.symbolic.codegen_utils import compile_expression
from loopshape.symbolic.design_parser import (
    BoundDesign,
    DesignParameter,
    SymbolicCache,
    bind_design,
    update_code_values,
)
from loopshape.symbolic.errors import DefinitionError
from loopshape.symbolic.expression_nodes import ExpressionNode, evaluate, to_sympy
from loopshape.symbolic.rationalization import rationalize
from loopshape.symbolic.structure_classifier import classify_structure
from loopshape.systems.step_metrics import (
    AUTO_TIME_MULTIPLIER,
    auto_step_time,
    calculate_step_metrics,
)
from loopshape.systems.step_response import build_step_response_data, simulate_loop_step_response
from loopshape.types.control_classical import (
    AnalysisResult,
    FrequencyResponse,
    NyquistAnalysis,
    PolesZeros,
    StabilityMargins,
)
from loopshape.types.core import TransferFunctionEvaluator
from loopshape.types.symbolic import RationalFunction, StructureClassification
from loopshape.types.trajectories import StepMetrics, StepResponseData, StepResponseResult

from .frequency_response import (
    DEFAULT_FREQ_POINTS,
    auto_frequency_range,
    compute_frequency_response,
    compute_stability_margins,
    logspace,
)
from .nyquist_analysis import compute_nyquist_analysis, count_rhp_poles, imaginary_axis_poles
from .polynomial_roots import add_polynomials, polynomial_roots, strip_polynomial

# ============================================================================
# Constants
# ============================================================================

ANALYSIS_NYQUIST_POINTS = 1000
"""Frequency samples of the Nyquist sweep used by the orchestrator."""

TEST_POINTS = (1j, 0.5 + 2j, 2.0, -0.3 + 0.7j)
"""Points at which a new L(s) is test-evaluated before analysis."""


# ============================================================================
# Validation
# ============================================================================


def validate_loop(L: ExpressionNode) -> None:
    """
    Check that L(s) can be evaluated numerically.

    L is evaluated at a few test points. A division by zero at one of them
    only means that L has a pole there and is accepted; L must be finite
    at one test point at least.

    Raises
    ------
    DefinitionError
        If L contains undefined symbols, unsupported functions or malformed
        pade_delay calls, if it simplifies to an infinite or undefined
        constant (e.g. 1/0 or 1/(s - s)), or if it cannot be evaluated at
        any test point
    """
    expr = to_sympy(L)
    if expr.has(sp.zoo, sp.nan, sp.oo, -sp.oo):
        raise DefinitionError(f"L(s) is not finite anywhere: {expr}")

    for point in TEST_POINTS:
        try:
            value = complex(evaluate(L, {"s": point}))
        except ArithmeticError:
            continue
        if cmath.isfinite(value):
            return
    raise DefinitionError("L(s) could not be evaluated at any test point")


def _roots(coeffs: List[complex]) -> List[complex]:
    if len(coeffs) <= 1:
        return []
    return polynomial_roots(coeffs)


# ============================================================================
# Loop Analysis
# ============================================================================


class LoopAnalysis:
    """
    Lazily evaluated analysis of one open-loop transfer function.

    Parameters
    ----------
    L : ExpressionNode
        Open-loop transfer function with every parameter substituted
    freq_range : Optional[Tuple[float, float]]
        (min decade, max decade) for margins and Bode; automatic if None
    freq_points : int
        Samples of the margin and Bode sweep
    step_time : Optional[float]
        Step-response horizon in seconds; automatic if None
    auto_time_multiplier : float
        Dominant time constants covered by the automatic horizon
    **nyquist_options
        Options for compute_nyquist_analysis (w_points defaults to
        ANALYSIS_NYQUIST_POINTS)

    Examples
    --------
    >>> analysis = LoopAnalysis(parse_expression("10/(s+1)"))
    >>> analysis.structure['type']
    'rational'
    >>> analysis.rhp_pole_count, analysis.winding_number
    (0, 0)
    >>> analysis.is_closed_loop_stable
    True
    >>> analysis.closed_loop['poles']
    [(-11+0j)]
    """

    def __init__(
        self,
        L: ExpressionNode,
        freq_range: Optional[Tuple[float, float]] = None,
        freq_points: int = DEFAULT_FREQ_POINTS,
        step_time: Optional[float] = None,
        auto_time_multiplier: float = AUTO_TIME_MULTIPLIER,
        **nyquist_options,
    ):
        self.L = L
        self.freq_points = freq_points
        self.auto_time_multiplier = auto_time_multiplier
        self.nyquist_options = {"w_points": ANALYSIS_NYQUIST_POINTS, **nyquist_options}
        self._freq_range = freq_range
        self._step_time = step_time
        self._cache: Dict[str, Any] = {}
        self._errors: Dict[str, str] = {}

    def _cached(self, name: str, compute: Callable[[], Any]) -> Any:
        if name not in self._cache:
            try:
                self._cache[name] = compute()
            except (ValueError, ArithmeticError) as e:
                self._errors[name] = str(e)
                self._cache[name] = None
        return self._cache[name]

    @property
    def errors(self) -> Dict[str, str]:
        """Failure message of every quantity that could not be computed so far."""
        return dict(self._errors)

    # ========================================================================
    # Structure
    # ========================================================================

    @property
    def structure(self) -> StructureClassification:
        """Classification of L: rational, rational_delay or unknown."""
        return self._cached("structure", lambda: classify_structure(self.L))

    @property
    def compiled(self) -> Optional[TransferFunctionEvaluator]:
        """Vectorized evaluator of L(s); None if L cannot be compiled."""
        return self._cached("compiled", lambda: compile_expression(self.L))

    @property
    def rational(self) -> Optional[RationalFunction]:
        """Coefficients of the rational part of L (None for unknown structure)."""

        def compute():
            part = self.structure["rational_part"]
            return None if part is None else rationalize(part)

        return self._cached("rational", compute)

    # ========================================================================
    # Poles and Zeros
    # ========================================================================

    @property
    def open_loop(self) -> Optional[PolesZeros]:
        """Sorted poles and zeros of the rational part of L."""

        def compute():
            rational = self.rational
            if rational is None:
                return None
            return {
                "poles": _roots(rational["denominator"]),
                "zeros": _roots(rational["numerator"]),
            }

        return self._cached("open_loop", compute)

    @property
    def closed_loop(self) -> Optional[PolesZeros]:
        """
        Poles (roots of N + D) and zeros of T = L/(1+L).

        Only defined for a rational L; the closed loop of a delayed loop is
        not rational.
        """

        def compute():
            if self.structure["type"] != "rational" or self.rational is None:
                return None
            characteristic = strip_polynomial(
                add_polynomials(self.rational["numerator"], self.rational["denominator"])
            )
            return {
                "poles": _roots(characteristic),
                "zeros": _roots(self.rational["numerator"]),
            }

        return self._cached("closed_loop", compute)

    @property
    def imag_axis_poles(self) -> List[complex]:
        """Open-loop poles on the imaginary axis (empty if unknown)."""
        open_loop = self.open_loop
        return imaginary_axis_poles(open_loop["poles"]) if open_loop is not None else []

    @property
    def rhp_pole_count(self) -> Optional[int]:
        """P: open-loop poles with Re > IMAG_AXIS_TOL (None if undeterminable)."""
        open_loop = self.open_loop
        return count_rhp_poles(open_loop["poles"]) if open_loop is not None else None

    # ========================================================================
    # Nyquist Stability
    # ========================================================================

    @property
    def nyquist(self) -> Optional[NyquistAnalysis]:
        """Single-pass evaluation of L along the D-contour."""

        def compute():
            if self.compiled is None:
                return None
            return compute_nyquist_analysis(
                self.compiled, self.imag_axis_poles, **self.nyquist_options
            )

        return self._cached("nyquist", compute)

    @property
    def winding_number(self) -> Optional[int]:
        """N: clockwise encirclements of -1."""
        nyquist = self.nyquist
        return nyquist["N"] if nyquist is not None else None

    @property
    def is_closed_loop_stable(self) -> Optional[bool]:
        """Z = N + P == 0; None when P or N is unknown."""
        P = self.rhp_pole_count
        N = self.winding_number
        if P is None or N is None:
            return None
        return N + P == 0

    # ========================================================================
    # Frequency Domain
    # ========================================================================

    @property
    def frequency_range(self) -> Tuple[float, float]:
        """Sweep range in decades, explicit or derived from poles and zeros."""
        if self._freq_range is not None:
            return self._freq_range

        roots: List[complex] = []
        if self.open_loop is not None:
            roots += self.open_loop["poles"] + self.open_loop["zeros"]
        if self.closed_loop is not None:
            roots += self.closed_loop["poles"]
        return auto_frequency_range(roots)

    @property
    def margins(self) -> Optional[StabilityMargins]:
        def compute():
            if self.compiled is None:
                return None
            freq_min, freq_max = self.frequency_range
            return compute_stability_margins(self.compiled, freq_min, freq_max, self.freq_points)

        return self._cached("margins", compute)

    @property
    def frequency_response(self) -> Optional[FrequencyResponse]:
        """L(jw) over the sweep range, for Bode display."""

        def compute():
            if self.compiled is None:
                return None
            w = logspace(*self.frequency_range, self.freq_points)
            return compute_frequency_response(self.compiled, w)

        return self._cached("frequency_response", compute)

    @property
    def closed_loop_frequency_response(self) -> Optional[FrequencyResponse]:
        """T(jw) = L/(1+L) over the sweep range."""

        def compute():
            if self.compiled is None:
                return None
            L = self.compiled

            def T(s):
                with np.errstate(all="ignore"):
                    values = L(s)
                    return values / (1 + values)

            w = logspace(*self.frequency_range, self.freq_points)
            return compute_frequency_response(T, w)

        return self._cached("closed_loop_frequency_response", compute)

    # ========================================================================
    # Time Domain
    # ========================================================================

    @property
    def step_data(self) -> Optional[StepResponseData]:
        """Realization of the rational part (None for unknown or improper L)."""
        return self._cached("step_data", lambda: build_step_response_data(self.structure))

    @property
    def step_time(self) -> float:
        """Horizon: explicit, or derived from the dominant closed-loop pole."""
        if self._step_time is not None:
            return self._step_time
        poles = self.closed_loop["poles"] if self.closed_loop is not None else None
        return auto_step_time(poles, multiplier=self.auto_time_multiplier)

    @property
    def step_response(self) -> Optional[StepResponseResult]:
        """Open-loop (y_L) and closed-loop (y_T) unit-step responses."""

        def compute():
            if self.step_data is None:
                return None
            return simulate_loop_step_response(self.step_data, self.step_time)

        return self._cached("step_response", compute)

    @property
    def step_metrics(self) -> Optional[StepMetrics]:
        """Metrics of the closed-loop step response."""

        def compute():
            response = self.step_response
            if response is None:
                return None
            return calculate_step_metrics(response["time"], response["y_T"], 1.0)

        return self._cached("step_metrics", compute)

    # ========================================================================
    # Aggregate
    # ========================================================================

    def summary(self) -> AnalysisResult:
        """
        Compute every quantity and collect them in one AnalysisResult.

        Examples
        --------
        >>> result = LoopAnalysis(parse_expression("0.5/(s-1)")).summary()
        >>> result['rhp_pole_count'], result['is_closed_loop_stable']
        (1, False)
        """
        result: AnalysisResult = {
            "structure": self.structure,
            "open_loop": self.open_loop,
            "closed_loop": self.closed_loop,
            "rhp_pole_count": self.rhp_pole_count,
            "winding_number": self.winding_number,
            "is_closed_loop_stable": self.is_closed_loop_stable,
            "margins": self.margins,
            "nyquist": self.nyquist,
            "frequency_range": self.frequency_range,
            "step_time": self.step_time,
            "step_response": self.step_response,
        }
        result["errors"] = self.errors
        return result

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(structure={self.structure['type']!r})"


# ============================================================================
# Design Session
# ============================================================================


class LoopDesignSession:
    """
    Successive analyses of an edited design script, latest input wins.

    Parameters
    ----------
    code : str
        Design script defining L
    parameters : Iterable[DesignParameter]
        Tunable parameters
    **analysis_options
        Forwarded to every LoopAnalysis

    Attributes
    ----------
    symbolic : Optional[SymbolicCache]
        Symbolic artifacts of the current script
    bound : Optional[BoundDesign]
        Last successfully bound design
    analysis : Optional[LoopAnalysis]
        Last valid analysis (kept when an update fails)
    error : Optional[DefinitionError]
        Error of the most recent update (None if it succeeded)
    """

    def __init__(
        self,
        code: str = "",
        parameters: Iterable[DesignParameter] = (),
        **analysis_options,
    ):
        self.code = code
        self.parameters: Dict[str, DesignParameter] = {p.name: p for p in parameters if p.name}
        self.analysis_options = analysis_options
        self.symbolic: Optional[SymbolicCache] = None
        self.bound: Optional[BoundDesign] = None
        self.analysis: Optional[LoopAnalysis] = None
        self.error: Optional[DefinitionError] = None

    @property
    def parameter_values(self) -> Dict[str, float]:
        return {name: p.value for name, p in self.parameters.items()}

    def update(self, code: Optional[str] = None, values: Optional[Mapping[str, float]] = None) -> bool:
        """
        Re-run the analysis after a script edit and/or parameter change.

        Returns
        -------
        bool
            True if a new analysis replaced the previous one; False if the
            update failed (see ``error``) and the previous analysis was kept
        """
        unknown = [name for name in (values or {}) if name not in self.parameters]
        if unknown:
            self.error = DefinitionError(f"Unknown parameter(s): {', '.join(sorted(unknown))}")
            return False

        if code is not None:
            self.code = code
        for name, value in (values or {}).items():
            self.parameters[name].value = float(value)

        names = list(self.parameters)
        try:
            if self.symbolic is None or not self.symbolic.matches(self.code, names):
                self.symbolic = SymbolicCache.build(self.code, names)

            bound = bind_design(self.code, self.parameter_values)
            L = bound.L
            validate_loop(L)
        except DefinitionError as e:
            self.error = e
            return False

        for name, value in bound.parameters.items():
            self.parameters[name].value = value

        self.bound = bound
        self.analysis = LoopAnalysis(L, **self.analysis_options)
        self.error = None
        return True

    def set_parameter(self, name: str, value: float) -> bool:
        """Change one parameter value and re-analyze."""
        return self.update(values={name: value})

    def add_parameter(self, parameter: DesignParameter) -> bool:
        """Register a new tunable parameter and re-analyze."""
        self.parameters[parameter.name] = parameter
        return self.update()

    def code_with_values(self) -> str:
        """Script with numeric parameter assignments set to the current values."""
        return update_code_values(self.code, self.parameters.values())


# ============================================================================
# Module Exports
# ============================================================================

__all__ = [
    "ANALYSIS_NYQUIST_POINTS",
    "validate_loop",
    "LoopAnalysis",
    "LoopDesignSession",
]
