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
Nyquist Contour and Winding Number

Builds the Nyquist D-contour on the s-plane, evaluates L(s) once along it
and counts the encirclements of the critical point -1.

Contour
-------
Traversal order:

    -j*w_max -> -j*w_min -> (origin indentation) -> +j*w_min -> +j*w_max

- The positive sweep follows the frequency grid and steps around every
  non-origin imaginary-axis pole p on a right-half-plane semicircle of
  radius epsilon:

      s = epsilon*cos(theta) + j*(p + epsilon*sin(theta)),
      theta = -pi/2 + k*pi/n_indent,  k = 0..n_indent

- The negative sweep is the complex conjugate of the positive sweep in
  reverse order (not recomputed)
- A pole at the origin adds a semicircle from -j*epsilon to +j*epsilon and
  moves the start of the positive sweep to epsilon
- Adjacent segments are joined with de-duplication of coincident endpoints

The large semicircle at infinity is not traced; for proper L(s) it maps to
a single point and does not change the winding number.

Winding Number
--------------
The angle of L(s) + 1 is accumulated between consecutive evaluated points,
each step normalized into [-pi, pi]; the total divided by -2*pi and
rounded is N (clockwise encirclements count positive). With P open-loop
RHP poles, the closed loop has Z = N + P RHP poles.

Evaluating L(s) exactly once per contour point lets the winding number,
the plotted curve and any other consumer share the same samples.
"""

import math
import warnings
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np

from loopshape.symbolic.codegen_utils import evaluate_on_points
from loopshape.types.control_classical import (
    NyquistAnalysis,
    NyquistContour,
    NyquistContourPoint,
    NyquistEvaluatedPoint,
)
from loopshape.types.core import IMAG_AXIS_TOL, FrequencyArray, TransferFunctionEvaluator

from .frequency_response import logspace

# ============================================================================
# Defaults
# ============================================================================

NYQUIST_DEFAULTS: Dict[str, float] = {
    "epsilon": 1e-4,
    "n_indent_points": 50,
    "w_min_decade": -4,
    "w_max_decade": 6,
    "w_points": 2000,
    "dedup_tol": 1e-12,
}
"""
Default contour options.

- epsilon: indentation radius
- n_indent_points: samples per indentation semicircle (n_indent + 1 points)
- w_min_decade, w_max_decade, w_points: frequency grid of the sweep
- dedup_tol: endpoints closer than this (per component) are merged
"""

POLE_FREQUENCY_DECIMALS = 10
"""Pole frequencies are rounded to this many decimals before de-duplication."""

EPSILON_SHRINK_FACTOR = 0.25
"""Indentation radius relative to the smallest pole gap when shrinking."""


class ContourWarning(RuntimeWarning):
    """The contour had to be adjusted (indentation radius shrunk)."""
    pass


# ============================================================================
# Pole Classification
# ============================================================================


def imaginary_axis_poles(poles: Sequence[complex], tol: float = IMAG_AXIS_TOL) -> List[complex]:
    """Poles with |Re(p)| < tol."""
    return [complex(p) for p in poles if abs(complex(p).real) < tol]


def count_rhp_poles(poles: Sequence[complex], tol: float = IMAG_AXIS_TOL) -> int:
    """Number of poles with Re(p) > tol."""
    return sum(1 for p in poles if complex(p).real > tol)


def unique_pole_frequencies(poles: Sequence[complex]) -> List[float]:
    """
    Sorted unique |Im| of imaginary-axis poles.

    Examples
    --------
    >>> unique_pole_frequencies([2j, -2j, 0j])
    [0.0, 2.0]
    """
    frequencies = sorted(abs(complex(p).imag) for p in poles)
    unique: List[float] = []
    for f in frequencies:
        rounded = round(f, POLE_FREQUENCY_DECIMALS)
        if rounded not in unique:
            unique.append(rounded)
    return unique


def _effective_epsilon(pole_freqs: List[float], has_origin_pole: bool, epsilon: float) -> float:
    """Shrink epsilon if two distinct pole frequencies are closer than 2*epsilon."""
    distinct = [f for f in pole_freqs if f >= IMAG_AXIS_TOL]
    if has_origin_pole:
        distinct = [0.0] + distinct
    gaps = [b - a for a, b in zip(distinct, distinct[1:])]
    if not gaps or min(gaps) >= 2 * epsilon:
        return epsilon

    shrunk = EPSILON_SHRINK_FACTOR * min(gaps)
    warnings.warn(
        f"Imaginary-axis poles {min(gaps):.3e} rad/s apart; "
        f"indentation radius reduced from {epsilon:.3e} to {shrunk:.3e}",
        ContourWarning,
        stacklevel=3,
    )
    return shrunk


# ============================================================================
# Contour Construction
# ============================================================================


def _conjugate_point(point: NyquistContourPoint) -> NyquistContourPoint:
    indentation = point["indentation"]
    return {
        "s": point["s"].conjugate(),
        "indentation": (
            None
            if indentation is None
            else {"pole_im": -indentation["pole_im"], "theta": -indentation["theta"]}
        ),
    }


def _same_point(a: NyquistContourPoint, b: NyquistContourPoint, tol: float) -> bool:
    return abs(a["s"].real - b["s"].real) <= tol and abs(a["s"].imag - b["s"].imag) <= tol


def _concat_dedup(
    a: List[NyquistContourPoint], b: List[NyquistContourPoint], tol: float
) -> List[NyquistContourPoint]:
    if not a:
        return list(b)
    if not b:
        return list(a)
    if _same_point(a[-1], b[0], tol):
        return a + b[1:]
    return a + b


def _semicircle(center_im: float, epsilon: float, n_indent_points: int) -> List[NyquistContourPoint]:
    points: List[NyquistContourPoint] = []
    for k in range(n_indent_points + 1):
        theta = -math.pi / 2 + k * math.pi / n_indent_points
        points.append(
            {
                "s": complex(epsilon * math.cos(theta), center_im + epsilon * math.sin(theta)),
                "indentation": {"pole_im": center_im, "theta": theta},
            }
        )
    return points


def generate_nyquist_contour_points(
    w: FrequencyArray,
    imag_axis_poles: Sequence[complex],
    epsilon: float = NYQUIST_DEFAULTS["epsilon"],
    n_indent_points: int = NYQUIST_DEFAULTS["n_indent_points"],
    dedup_tol: float = NYQUIST_DEFAULTS["dedup_tol"],
) -> NyquistContour:
    """
    Build the D-contour for a given frequency grid and on-axis poles.

    Args:
        w: Increasing positive frequencies (rad/s)
        imag_axis_poles: Poles on the imaginary axis (|Re| < IMAG_AXIS_TOL)
        epsilon: Indentation radius; shrunk with a ContourWarning when two
            on-axis poles (origin included) are closer than 2*epsilon
        n_indent_points: Samples per semicircle
        dedup_tol: Tolerance for merging segment endpoints

    Returns:
        NyquistContour containing:
            - points: contour in traversal order
            - pole_freqs: sorted unique |Im| of on-axis poles
            - has_origin_pole: True if a pole sits at the origin
            - epsilon: indentation radius actually used

    Examples
    --------
    >>> contour = generate_nyquist_contour_points(logspace(-2, 2, 100), [0j])
    >>> contour['has_origin_pole']
    True
    >>> contour['points'][0]['s']   # -j*100
    -100j

    Notes
    -----
    A pole at or above w_max, or within epsilon of the current segment
    start (e.g. of w_min), gets no indentation and the sweep runs across
    its frequency.
    """
    w = np.asarray(w, dtype=float)
    pole_freqs = unique_pole_frequencies(imag_axis_poles)
    has_origin_pole = any(f < IMAG_AXIS_TOL for f in pole_freqs)
    epsilon = _effective_epsilon(pole_freqs, has_origin_pole, epsilon)

    current_start = epsilon if has_origin_pole else float(w[0])
    current_start = max(float(w[0]), current_start)
    w_end = float(w[-1])

    segments: List[Tuple[float, float, Optional[float]]] = []
    for pole_freq in pole_freqs:
        if pole_freq < IMAG_AXIS_TOL:
            continue
        if current_start + epsilon < pole_freq < w_end:
            segments.append((current_start, pole_freq - epsilon, pole_freq))
            current_start = pole_freq + epsilon
    segments.append((current_start, w_end, None))

    positive: List[NyquistContourPoint] = []
    for seg_start, seg_end, pole_freq in segments:
        for omega in w[(w >= seg_start) & (w <= seg_end)]:
            positive.append({"s": complex(0.0, float(omega)), "indentation": None})
        if pole_freq is not None:
            positive.extend(_semicircle(pole_freq, epsilon, n_indent_points))

    negative = [_conjugate_point(p) for p in reversed(positive)]
    origin = _semicircle(0.0, epsilon, n_indent_points) if has_origin_pole else []

    points = _concat_dedup(negative, origin, dedup_tol)
    points = _concat_dedup(points, positive, dedup_tol)

    return {
        "points": points,
        "pole_freqs": pole_freqs,
        "has_origin_pole": has_origin_pole,
        "epsilon": epsilon,
    }


# ============================================================================
# Winding Number
# ============================================================================


def compute_winding_number_from_evaluations(values: Sequence[complex]) -> int:
    """
    Clockwise encirclements of -1 by a closed sequence of L values.

    Non-finite values are skipped.

    Examples
    --------
    >>> circle = [-1 + 0.5 * np.exp(-1j * t) for t in np.linspace(0, 2 * np.pi, 50)]
    >>> compute_winding_number_from_evaluations(circle)   # once clockwise
    1
    """
    total = 0.0
    previous: Optional[float] = None
    for value in values:
        value = complex(value)
        shifted_re = value.real + 1
        shifted_im = value.imag
        if not (math.isfinite(shifted_re) and math.isfinite(shifted_im)):
            continue
        angle = math.atan2(shifted_im, shifted_re)
        if previous is not None:
            delta = angle - previous
            while delta > math.pi:
                delta -= 2 * math.pi
            while delta < -math.pi:
                delta += 2 * math.pi
            total += delta
        previous = angle
    return int(math.floor(-total / (2 * math.pi) + 0.5))


def compute_nyquist_analysis(
    evaluator: TransferFunctionEvaluator,
    imag_axis_poles: Sequence[complex],
    w: Optional[FrequencyArray] = None,
    **options,
) -> NyquistAnalysis:
    """
    Evaluate L(s) once along the D-contour and compute the winding number.

    Args:
        evaluator: Compiled L(s)
        imag_axis_poles: On-axis poles of L
        w: Frequency grid; defaults to logspace(w_min_decade, w_max_decade,
            w_points)
        **options: epsilon, n_indent_points, dedup_tol, w_min_decade,
            w_max_decade, w_points (defaults in NYQUIST_DEFAULTS)

    Returns:
        NyquistAnalysis; points where L could not be evaluated (or was not
        finite) are dropped

    Examples
    --------
    >>> L = compile_expression(parse_expression("10/(s+1)"))
    >>> compute_nyquist_analysis(L, [])['N']
    0
    """
    config = {**NYQUIST_DEFAULTS, **options}
    if w is None:
        w = logspace(config["w_min_decade"], config["w_max_decade"], int(config["w_points"]))
    w = np.array(w, dtype=float)
    w.setflags(write=False)

    contour = generate_nyquist_contour_points(
        w,
        imag_axis_poles,
        epsilon=config["epsilon"],
        n_indent_points=int(config["n_indent_points"]),
        dedup_tol=config["dedup_tol"],
    )

    s_points = np.array([p["s"] for p in contour["points"]], dtype=complex)
    values, valid = evaluate_on_points(evaluator, s_points)

    evaluated: List[NyquistEvaluatedPoint] = [
        {"s": point["s"], "indentation": point["indentation"], "L": complex(value)}
        for point, value, ok in zip(contour["points"], values, valid)
        if ok
    ]

    return {
        "points": evaluated,
        "N": compute_winding_number_from_evaluations([p["L"] for p in evaluated]),
        "pole_freqs": contour["pole_freqs"],
        "has_origin_pole": contour["has_origin_pole"],
        "epsilon": contour["epsilon"],
        "frequencies": w,
    }


def nyquist_curve(analysis: NyquistAnalysis) -> Tuple[np.ndarray, np.ndarray]:
    """Contour points and L values of an analysis as two complex arrays."""
    s = np.array([p["s"] for p in analysis["points"]], dtype=complex)
    L = np.array([p["L"] for p in analysis["points"]], dtype=complex)
    return s, L


# ============================================================================
# Module Exports
# ============================================================================

__all__ = [
    "NYQUIST_DEFAULTS",
    "ContourWarning",
    "imaginary_axis_poles",
    "count_rhp_poles",
    "unique_pole_frequencies",
    "generate_nyquist_contour_points",
    "compute_winding_number_from_evaluations",
    "compute_nyquist_analysis",
    "nyquist_curve",
]
