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
Classical Control Theory Types

Result types for classical (frequency-domain) loop analysis:
- Polynomial root finding
- State-space realizations
- Frequency response, crossovers and stability margins
- Nyquist contour and winding number
- Pole/zero sets and the aggregated analysis result

These types provide structured return values from the analysis functions,
so that a renderer can consume them as plain numeric data.

Mathematical Background
----------------------
Nyquist criterion for unity feedback around L(s):

    Z = N + P

    Z: closed-loop poles in the RHP
    N: clockwise encirclements of -1 by L(s) along the D-contour
    P: open-loop poles of L(s) in the RHP

Stability margins:
    Gain margin  GM = -|L(j w_pc)|_dB   at phase crossover  (phase = -180 + 360k)
    Phase margin PM = 180 + arg L(j w_gc) - 360 n   at gain crossover (|L| = 0 dB)

All results are produced once per input and are treated as read-only
afterwards; arrays inside them are flagged non-writeable where practical.

Usage
-----
>>> from loopshape.types.control_classical import StabilityMargins, NyquistAnalysis
>>>
>>> margins: StabilityMargins = compute_stability_margins(L, w)
>>> for pm in margins['phase_margins']:
...     print(f"PM = {pm['margin']:.1f} deg @ {pm['frequency']:.3f} rad/s")
"""

from typing import Dict, List, Optional, Tuple

import numpy as np
from typing_extensions import TypedDict

from .symbolic import StructureClassification


# ============================================================================
# Root Finding Types
# ============================================================================


class RootFindingResult(TypedDict):
    """
    Durand-Kerner root finding result.

    Fields
    ------
    roots : np.ndarray
        Complex roots (unordered), length = polynomial degree
    converged : bool
        True if the largest correction fell below the tolerance before the
        iteration cap was reached
    iterations : int
        Number of full sweeps performed
    max_correction : float
        Largest per-root correction magnitude in the final sweep
    max_residual : float
        max |p(z_i)| of the monic polynomial at the returned roots

    Examples
    --------
    >>> result = find_roots([6.0, 11.0, 6.0, 1.0])
    >>> sort_roots(result['roots'])  # [-1, -2, -3]
    >>> result['converged']          # True
    """

    roots: np.ndarray
    converged: bool
    iterations: int
    max_correction: float
    max_residual: float


# ============================================================================
# State-Space Types
# ============================================================================


class StateSpaceModel(TypedDict):
    """
    Single-input single-output state-space model in observable canonical form.

        dx/dt = A x + B u
        y     = C x + D u

    Fields
    ------
    A : np.ndarray
        Companion matrix (n, n), first column = negated denominator
        coefficients (highest order first), superdiagonal of ones
    B : np.ndarray
        Input vector (n,)
    C : np.ndarray
        Output vector (n,), C = [1, 0, ..., 0]
    D : float
        Direct feedthrough
    n : int
        Order (0 for a pure gain, in which case A, B, C are empty)
    """

    A: np.ndarray
    B: np.ndarray
    C: np.ndarray
    D: float
    n: int


# ============================================================================
# Frequency Response Types
# ============================================================================


class FrequencyResponse(TypedDict):
    """
    Sampled frequency response of a transfer function.

    Fields
    ------
    frequencies : np.ndarray
        Angular frequencies w (rad/s), monotonically increasing
    response : np.ndarray
        Complex values L(jw); points that failed to evaluate are 0
    gain_db : np.ndarray
        20*log10(|L(jw)|) (may contain -inf)
    phase_deg : np.ndarray
        Unwrapped phase in degrees
    """

    frequencies: np.ndarray
    response: np.ndarray
    gain_db: np.ndarray
    phase_deg: np.ndarray


class GainMarginEntry(TypedDict):
    """
    Gain margin at one phase-crossover frequency.

    Fields
    ------
    frequency : float
        Phase-crossover frequency (rad/s)
    margin : float
        Gain margin in dB (= -gain_at_crossover)
    gain_at_crossover : float
        Interpolated gain in dB at the crossover
    """

    frequency: float
    margin: float
    gain_at_crossover: float


class PhaseMarginEntry(TypedDict):
    """
    Phase margin at one gain-crossover frequency.

    Fields
    ------
    frequency : float
        Gain-crossover frequency (rad/s)
    margin : float
        Phase margin in degrees
    phase_at_crossover : float
        Interpolated unwrapped phase in degrees
    reference_phase : float
        The -180 + 360n line the margin is measured against
    """

    frequency: float
    margin: float
    phase_at_crossover: float
    reference_phase: float


class StabilityMargins(TypedDict):
    """
    Gain and phase margins from a sampled frequency sweep.

    Fields
    ------
    gain_margins : List[GainMarginEntry]
        One entry per phase-crossover frequency
    phase_margins : List[PhaseMarginEntry]
        One entry per gain-crossover frequency
    gain_crossover_frequencies : List[float]
        Frequencies where |L| crosses 0 dB
    phase_crossover_frequencies : List[float]
        Frequencies where the phase crosses -180 + 360k

    Examples
    --------
    >>> margins = compute_stability_margins(L, np.logspace(-2, 3, 300))
    >>> margins_indicate_stability(margins)
    True
    """

    gain_margins: List[GainMarginEntry]
    phase_margins: List[PhaseMarginEntry]
    gain_crossover_frequencies: List[float]
    phase_crossover_frequencies: List[float]


# ============================================================================
# Nyquist Types
# ============================================================================


class Indentation(TypedDict):
    """
    Position on a small semicircular detour around an imaginary-axis pole.

    Fields
    ------
    pole_im : float
        Imaginary part of the pole being avoided
    theta : float
        Angle parameter in [-pi/2, pi/2]
    """

    pole_im: float
    theta: float


class NyquistContourPoint(TypedDict):
    """
    Point on the Nyquist D-contour.

    Fields
    ------
    s : complex
        Point of the s-plane
    indentation : Optional[Indentation]
        Non-None only while tracing an indentation semicircle
    """

    s: complex
    indentation: Optional[Indentation]


class NyquistEvaluatedPoint(TypedDict):
    """Contour point together with the value of L(s) there."""

    s: complex
    indentation: Optional[Indentation]
    L: complex


class NyquistContour(TypedDict):
    """
    D-contour on the s-plane.

    Fields
    ------
    points : List[NyquistContourPoint]
        Contour in traversal order: -j*w_max -> -j*w_min -> (origin
        indentation) -> +j*w_min -> +j*w_max
    pole_freqs : List[float]
        Sorted unique |Im| of the on-axis poles
    has_origin_pole : bool
        True if a pole sits at the origin
    epsilon : float
        Indentation radius actually used
    """

    points: List[NyquistContourPoint]
    pole_freqs: List[float]
    has_origin_pole: bool
    epsilon: float


class NyquistAnalysis(TypedDict):
    """
    Result of a single evaluation pass of L(s) along the D-contour.

    Fields
    ------
    points : List[NyquistEvaluatedPoint]
        Contour points where L(s) evaluated to a finite value
    N : int
        Winding number around -1 (clockwise positive)
    pole_freqs : List[float]
        Sorted unique |Im| of the on-axis poles
    has_origin_pole : bool
        True if a pole sits at the origin
    epsilon : float
        Indentation radius
    frequencies : np.ndarray
        Frequency grid the contour was built from

    Examples
    --------
    >>> nyq = compute_nyquist_analysis(compile_expression(parse_expression("10/(s+1)")), [])
    >>> nyq['N']  # 0
    """

    points: List[NyquistEvaluatedPoint]
    N: int
    pole_freqs: List[float]
    has_origin_pole: bool
    epsilon: float
    frequencies: np.ndarray


# ============================================================================
# Pole/Zero Types
# ============================================================================


class PolesZeros(TypedDict):
    """
    Sorted pole and zero sets.

    Sorting: real part descending; ties broken by |imaginary part| descending.
    """

    poles: List[complex]
    zeros: List[complex]


class ClosedLoopPoleRequest(TypedDict):
    """
    Serialized description of a plant and controller for the pole worker.

    All coefficient lists are in ascending powers of s.
    """

    plant_num: List[float]
    plant_den: List[float]
    controller_num: List[float]
    controller_den: List[float]


class ClosedLoopPoleResponse(TypedDict, total=False):
    """
    Worker reply.

    Fields
    ------
    success : bool
        True if the roots were computed
    roots : List[complex]
        Sorted roots of P_den*K_den + P_num*K_num (success only)
    converged : bool
        Durand-Kerner convergence flag (success only)
    error : str
        Failure message (failure only)
    request_id : int
        Sequence number assigned by the worker
    """

    success: bool
    roots: List[complex]
    converged: bool
    error: str
    request_id: int


# ============================================================================
# Aggregated Analysis Result
# ============================================================================


class AnalysisResult(TypedDict, total=False):
    """
    Aggregate of every quantity derived from one L(s).

    Each quantity is computed independently; a quantity that could not be
    computed is None and its failure message is stored in ``errors``.

    Fields
    ------
    structure : StructureClassification
    open_loop : Optional[PolesZeros]
    closed_loop : Optional[PolesZeros]
    rhp_pole_count : Optional[int]
    winding_number : Optional[int]
    is_closed_loop_stable : Optional[bool]
    margins : Optional[StabilityMargins]
    nyquist : Optional[NyquistAnalysis]
    frequency_range : Tuple[float, float]
        (min decade, max decade) of the automatic frequency range
    step_time : float
        Simulation horizon used for the step response
    step_response : Optional[Dict]
        {'time', 'y_L', 'y_T'} trace
    errors : Dict[str, str]
    """

    structure: StructureClassification
    open_loop: Optional[PolesZeros]
    closed_loop: Optional[PolesZeros]
    rhp_pole_count: Optional[int]
    winding_number: Optional[int]
    is_closed_loop_stable: Optional[bool]
    margins: Optional[StabilityMargins]
    nyquist: Optional[NyquistAnalysis]
    frequency_range: Tuple[float, float]
    step_time: float
    step_response: Optional[Dict[str, np.ndarray]]
    errors: Dict[str, str]


# ============================================================================
# Module Exports
# ============================================================================

__all__ = [
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
]
