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
Frequency Response and Stability Margins

Pure stateless functions for frequency-domain loop analysis:

**Frequency Response:**
- Log-spaced frequency grids
- L(jw) evaluation, gain in dB, unwrapped phase in degrees
- Bode display alignment of the phase branch

**Margins:**
- Gain crossovers (|L| = 0 dB) and phase crossovers (phase = -180 + 360k)
  by linear interpolation between samples
- Gain margin at each phase crossover, phase margin at each gain crossover

**Frequency Range:**
- Automatic decade range from pole/zero magnitudes

Mathematical Background
-----------------------
Phase unwrapping keeps a running offset; whenever the offset-corrected raw
phase jumps by more than 180 deg from the previous sample, the nearest
multiple of 360 deg is added to the offset:

    offset += round(-(raw + offset - prev) / 360) * 360

Gain margin at a phase-crossover frequency w_pc:

    GM = -gain_dB(w_pc)

Phase margin at a gain-crossover frequency w_gc, measured against the
nearest -180 + 360n branch:

    n  = round((phase(w_gc) + 180) / 360)
    PM = 180 + phase(w_gc) - 360 n

All rounding is half-up (floor(x + 0.5)), so exact half-way values resolve
toward +inf.

Usage
-----
>>> from loopshape.control.frequency_response import compute_stability_margins
>>>
>>> L = compile_expression(parse_expression("2/(s*(s+1))"))
>>> margins = compute_stability_margins(L)
>>> margins['phase_margins'][0]['margin']   # ~38.7 deg
"""

import math
from typing import List, Optional, Sequence, Tuple

import numpy as np

from loopshape.symbolic.codegen_utils import evaluate_on_points
from loopshape.types.control_classical import (
    FrequencyResponse,
    GainMarginEntry,
    PhaseMarginEntry,
    StabilityMargins,
)
from loopshape.types.core import FREQUENCY_FLOOR, FrequencyArray, TransferFunctionEvaluator

# ============================================================================
# Defaults
# ============================================================================

DEFAULT_FREQ_MIN = -2.0
"""Lower end of the default sweep (decades, i.e. 10^-2 rad/s)."""

DEFAULT_FREQ_MAX = 3.0
"""Upper end of the default sweep (decades, i.e. 10^3 rad/s)."""

DEFAULT_FREQ_POINTS = 300
"""Number of samples of the default sweep."""

ZERO_FREQUENCY_MAX_GAIN = 1e10
"""w = 0 joins the margin sweep only if 0 < |L(0)| < this."""

ZERO_GAIN_TOL_DB = 0.01
"""Gain within this of 0 dB at w = 0 counts as a gain crossover."""

ZERO_PHASE_TOL_DEG = 1.0
"""Phase within this of -180 + 360k at w = 0 counts as a phase crossover."""

DUPLICATE_FREQUENCY_TOL = 1e-6
"""Crossovers closer than this to an existing one near w = 0 are dropped."""

MIN_RANGE_DECADES = 3.0
"""Minimum width of the automatic frequency range."""

MIN_RANGE_MARGIN = 0.5
"""Minimum margin (decades) on each side of the automatic frequency range."""


# ============================================================================
# Helpers
# ============================================================================


def _round_half_up(x: float) -> int:
    return int(math.floor(x + 0.5))


def logspace(min_decade: float, max_decade: float, n_points: int) -> FrequencyArray:
    """
    n_points frequencies log-spaced from 10^min_decade to 10^max_decade.

    Examples
    --------
    >>> logspace(-1, 1, 3)
    array([ 0.1,  1. , 10. ])
    """
    return np.logspace(min_decade, max_decade, n_points)


def _interpolate_at(w: np.ndarray, values: np.ndarray, w_c: float) -> Optional[float]:
    """Linear interpolation of values at w_c inside the first bracketing interval."""
    for i in range(len(w) - 1):
        if w[i] <= w_c <= w[i + 1]:
            span = w[i + 1] - w[i]
            ratio = (w_c - w[i]) / span if span != 0 else 0.0
            return float(values[i] + ratio * (values[i + 1] - values[i]))
    return None


# ============================================================================
# Frequency Response
# ============================================================================


def evaluate_frequency_response(evaluator: TransferFunctionEvaluator, w: FrequencyArray) -> np.ndarray:
    """
    L(jw) for every frequency.

    Points where evaluation fails (raises or yields nan) are replaced by 0,
    which appears as -inf dB. Infinite values are kept.
    """
    values, _ = evaluate_on_points(evaluator, 1j * np.asarray(w, dtype=float))
    failed = np.isnan(values.real) | np.isnan(values.imag)
    values[failed] = 0.0
    return values


def gain_db(values: np.ndarray) -> np.ndarray:
    """20*log10(|values|), -inf where the magnitude is zero."""
    with np.errstate(divide="ignore"):
        return 20.0 * np.log10(np.abs(values))


def unwrap_phase_deg(values: np.ndarray) -> np.ndarray:
    """
    Continuous phase in degrees.

    Examples
    --------
    >>> unwrap_phase_deg(np.exp(-1j * np.deg2rad([170.0, 190.0, 210.0])))
    array([-170., -190., -210.])
    """
    raw = np.degrees(np.angle(values))
    phase = np.empty_like(raw)
    offset = 0.0
    for i, raw_phase in enumerate(raw):
        if i > 0 and abs(raw_phase + offset - phase[i - 1]) > 180:
            offset += _round_half_up(-(raw_phase + offset - phase[i - 1]) / 360) * 360
        phase[i] = raw_phase + offset
    return phase


def compute_frequency_response(
    evaluator: TransferFunctionEvaluator, w: FrequencyArray
) -> FrequencyResponse:
    """
    Sampled frequency response of a compiled transfer function.

    Args:
        evaluator: Compiled L(s) (or T(s))
        w: Monotonically increasing frequencies (rad/s)

    Returns:
        FrequencyResponse containing:
            - frequencies: w
            - response: L(jw) (0 at failed points)
            - gain_db: 20*log10|L(jw)|
            - phase_deg: unwrapped phase

    Examples
    --------
    >>> L = compile_expression(parse_expression("1/s"))
    >>> fr = compute_frequency_response(L, logspace(-2, 2, 100))
    >>> np.allclose(fr['phase_deg'], -90.0)
    True
    """
    frequencies = np.asarray(w, dtype=float)
    response = evaluate_frequency_response(evaluator, frequencies)
    return {
        "frequencies": frequencies,
        "response": response,
        "gain_db": gain_db(response),
        "phase_deg": unwrap_phase_deg(response),
    }


def align_phase_to_crossover(gain: np.ndarray, phase: np.ndarray) -> np.ndarray:
    """
    Shift the phase by a multiple of 360 deg for display.

    The shift puts the phase at the lowest gain crossover on the branch
    nearest -180 deg so the phase margin reads directly off the plot.
    The phase is returned unchanged when there is no gain crossover.
    """
    phase = np.asarray(phase, dtype=float)
    for i in range(1, len(gain)):
        if _crosses_zero(gain[i - 1], gain[i]):
            ratio = -gain[i - 1] / (gain[i] - gain[i - 1])
            phase_at_crossover = phase[i - 1] + ratio * (phase[i] - phase[i - 1])
            if not math.isfinite(phase_at_crossover):
                break
            n = _round_half_up((phase_at_crossover + 180) / 360)
            return phase - n * 360
    return phase.copy()


# ============================================================================
# Crossover Detection
# ============================================================================


def _crosses_zero(g0: float, g1: float) -> bool:
    return (g0 > 0 and g1 <= 0) or (g0 <= 0 and g1 > 0)


def _is_duplicate(candidate: float, existing: Sequence[float]) -> bool:
    return candidate <= DUPLICATE_FREQUENCY_TOL and any(
        abs(w_c - candidate) < DUPLICATE_FREQUENCY_TOL for w_c in existing
    )


def find_gain_crossovers(w: FrequencyArray, gain: np.ndarray) -> List[float]:
    """
    Frequencies where the gain crosses 0 dB.

    A crossing is a sign change between adjacent samples (inclusive of 0 dB
    on one side); its frequency is interpolated linearly in w using the dB
    values.
    """
    crossovers: List[float] = []
    for i in range(1, len(w)):
        if _crosses_zero(gain[i - 1], gain[i]):
            ratio = -gain[i - 1] / (gain[i] - gain[i - 1])
            w_cross = float(w[i - 1] + ratio * (w[i] - w[i - 1]))
            if math.isfinite(w_cross):
                crossovers.append(w_cross)
    return crossovers


def find_phase_crossovers(w: FrequencyArray, phase: np.ndarray) -> List[float]:
    """
    Frequencies where the phase crosses any -180 + 360k line.

    The line crossed is identified from floor((phase + 180)/360) of the two
    samples; for a decreasing phase it is the upper sample's branch, for an
    increasing phase the lower sample's.
    """
    crossovers: List[float] = []
    for i in range(1, len(w)):
        p1, p2 = phase[i - 1], phase[i]
        if not (math.isfinite(p1) and math.isfinite(p2)):
            continue
        n1 = math.floor((p1 + 180) / 360)
        n2 = math.floor((p2 + 180) / 360)
        if n1 != n2:
            target = n1 * 360 - 180 if p1 > p2 else n2 * 360 - 180
            ratio = (target - p1) / (p2 - p1)
            crossovers.append(float(w[i - 1] + ratio * (w[i] - w[i - 1])))
    return crossovers


# ============================================================================
# Margins
# ============================================================================


def compute_margins_from_response(
    w: FrequencyArray, gain: np.ndarray, phase: np.ndarray
) -> StabilityMargins:
    """
    Gain and phase margins from sampled gain/phase.

    Args:
        w: Frequencies (rad/s), increasing; may start at exactly 0
        gain: Gain in dB
        phase: Unwrapped phase in degrees

    Returns:
        StabilityMargins with one gain margin per phase crossover and one
        phase margin per gain crossover

    Notes
    -----
    When w[0] == 0, the first sample is also tested for an exact crossover:
    gain within ZERO_GAIN_TOL_DB of 0 dB, or phase within ZERO_PHASE_TOL_DEG
    of -180 + 360k. Interpolated crossovers at (nearly) the same frequency
    are then not reported twice.
    """
    w = np.asarray(w, dtype=float)
    gain = np.asarray(gain, dtype=float)
    phase = np.asarray(phase, dtype=float)

    gain_crossovers: List[float] = []
    phase_crossovers: List[float] = []

    if len(w) > 0 and w[0] == 0:
        if abs(gain[0]) < ZERO_GAIN_TOL_DB:
            gain_crossovers.append(0.0)
        remainder = (phase[0] + 180) % 360
        if remainder < ZERO_PHASE_TOL_DEG or remainder > 360 - ZERO_PHASE_TOL_DEG:
            phase_crossovers.append(0.0)

    for w_cross in find_gain_crossovers(w, gain):
        if not _is_duplicate(w_cross, gain_crossovers):
            gain_crossovers.append(w_cross)
    for w_cross in find_phase_crossovers(w, phase):
        if not _is_duplicate(w_cross, phase_crossovers):
            phase_crossovers.append(w_cross)

    gain_margins: List[GainMarginEntry] = []
    for w_c in phase_crossovers:
        gain_at = _interpolate_at(w, gain, w_c)
        if gain_at is not None:
            gain_margins.append({"frequency": w_c, "margin": -gain_at, "gain_at_crossover": gain_at})

    phase_margins: List[PhaseMarginEntry] = []
    for w_c in gain_crossovers:
        phase_at = _interpolate_at(w, phase, w_c)
        if phase_at is not None:
            n = _round_half_up((phase_at + 180) / 360)
            phase_margins.append(
                {
                    "frequency": w_c,
                    "margin": 180 + phase_at - n * 360,
                    "phase_at_crossover": phase_at,
                    "reference_phase": n * 360 - 180,
                }
            )

    return {
        "gain_margins": gain_margins,
        "phase_margins": phase_margins,
        "gain_crossover_frequencies": gain_crossovers,
        "phase_crossover_frequencies": phase_crossovers,
    }


def compute_stability_margins(
    evaluator: TransferFunctionEvaluator,
    freq_min: float = DEFAULT_FREQ_MIN,
    freq_max: float = DEFAULT_FREQ_MAX,
    freq_points: int = DEFAULT_FREQ_POINTS,
) -> StabilityMargins:
    """
    Gain and phase margins of L over a log-spaced sweep.

    w = 0 is prepended to the sweep when L(0) is finite, non-zero and below
    ZERO_FREQUENCY_MAX_GAIN in magnitude, so that crossovers located exactly
    at w = 0 (e.g. L = -1/(s+1)) are found.

    Args:
        evaluator: Compiled L(s)
        freq_min: Lower end (decades)
        freq_max: Upper end (decades)
        freq_points: Number of log-spaced samples

    Returns:
        StabilityMargins

    Examples
    --------
    >>> L = compile_expression(parse_expression("-1/(s+1)"))
    >>> compute_stability_margins(L)['phase_crossover_frequencies'][0]
    0.0
    """
    w = logspace(freq_min, freq_max, freq_points)

    values, valid = evaluate_on_points(evaluator, np.array([0j]))
    if valid[0] and 0 < abs(values[0]) < ZERO_FREQUENCY_MAX_GAIN:
        w = np.concatenate(([0.0], w))

    response = evaluate_frequency_response(evaluator, w)
    return compute_margins_from_response(w, gain_db(response), unwrap_phase_deg(response))


def margins_indicate_stability(margins: StabilityMargins) -> bool:
    """
    True when every gain margin and every phase margin is positive.

    A loop without any crossover has no failing margin and reports True.
    """
    return all(gm["margin"] > 0 for gm in margins["gain_margins"]) and all(
        pm["margin"] > 0 for pm in margins["phase_margins"]
    )


# ============================================================================
# Automatic Frequency Range
# ============================================================================


def auto_frequency_range(
    roots: Sequence[complex],
    default: Tuple[float, float] = (DEFAULT_FREQ_MIN, DEFAULT_FREQ_MAX),
) -> Tuple[float, float]:
    """
    Decade range covering the characteristic frequencies of a loop.

    Args:
        roots: Open-loop poles, zeros and closed-loop poles combined
        default: Range returned when no root has magnitude above
            FREQUENCY_FLOOR

    Returns:
        (min decade, max decade), at least MIN_RANGE_DECADES wide with at
        least MIN_RANGE_MARGIN decades beyond the extreme frequencies

    Examples
    --------
    >>> auto_frequency_range([-1.0, -10.0])
    (-1.0, 2.0)
    >>> auto_frequency_range([])
    (-2.0, 3.0)
    """
    frequencies = [abs(complex(r)) for r in roots]
    frequencies = [f for f in frequencies if f > FREQUENCY_FLOOR and math.isfinite(f)]
    if not frequencies:
        return default

    log_min = math.log10(min(frequencies))
    log_max = math.log10(max(frequencies))
    margin = max(MIN_RANGE_MARGIN, (MIN_RANGE_DECADES - (log_max - log_min)) / 2)
    freq_min = log_min - margin
    freq_max = log_max + margin

    if freq_max - freq_min < MIN_RANGE_DECADES:
        center = (log_min + log_max) / 2
        freq_min = center - MIN_RANGE_DECADES / 2
        freq_max = center + MIN_RANGE_DECADES / 2

    return freq_min, freq_max


# ============================================================================
# Module Exports
# ============================================================================

__all__ = [
    "DEFAULT_FREQ_MIN",
    "DEFAULT_FREQ_MAX",
    "DEFAULT_FREQ_POINTS",
    "logspace",
    "evaluate_frequency_response",
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
]
