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
Step Response Metrics

Performance metrics of a closed-loop step response and the automatic
choice of the simulation horizon.

Metrics
-------
- Rise time: t90 - t10, both crossing times linearly interpolated
- Peak value and peak time
- Overshoot: percentage by which the peak exceeds the final value
- Settling time: time after which the response stays within +-5 % of the
  final value, interpolated on the last exit from the band

Non-finite samples are skipped everywhere.
"""

from typing import Optional, Sequence

import numpy as np

from loopshape.types.core import STABLE_POLE_TOL
from loopshape.types.trajectories import StepMetrics

# ============================================================================
# Constants
# ============================================================================

DEFAULT_STEP_TIME = 20.0
"""Horizon used when no stable dominant pole is available (seconds)."""

AUTO_TIME_MULTIPLIER = 10.0
"""Horizon = multiplier / |Re(dominant pole)|."""

MIN_STEP_TIME = 0.1
MAX_STEP_TIME = 1000.0

SETTLING_TOLERANCE = 0.05


# ============================================================================
# Simulation Horizon
# ============================================================================


def auto_step_time(
    closed_loop_poles: Optional[Sequence[complex]],
    multiplier: float = AUTO_TIME_MULTIPLIER,
    default: float = DEFAULT_STEP_TIME,
) -> float:
    """
    Simulation horizon from the dominant closed-loop pole.

    The dominant pole is the stable pole closest to the imaginary axis;
    the horizon is ``multiplier / |Re(p)|`` clamped to
    [MIN_STEP_TIME, MAX_STEP_TIME].

    Args:
        closed_loop_poles: Closed-loop poles (None or empty for unknown)
        multiplier: Number of dominant time constants to simulate
        default: Horizon when there are no poles, any pole has
            Re >= STABLE_POLE_TOL, or no pole is strictly stable

    Returns:
        Horizon in seconds

    Examples
    --------
    >>> auto_step_time([-2.0, -10.0])
    5.0
    >>> auto_step_time([0.5, -1.0])  # unstable
    20.0
    >>> auto_step_time([-1e-4])
    1000.0
    """
    if not closed_loop_poles:
        return default

    poles = [complex(p) for p in closed_loop_poles]
    if not all(p.real < STABLE_POLE_TOL for p in poles):
        return default

    decays = [abs(p.real) for p in poles if p.real < -STABLE_POLE_TOL]
    if not decays:
        return default

    dominant = min(decays)
    if dominant < STABLE_POLE_TOL:
        return default

    return max(MIN_STEP_TIME, min(MAX_STEP_TIME, multiplier / dominant))


# ============================================================================
# Metrics
# ============================================================================


def _crossing_time(t0: float, t1: float, y0: float, y1: float, level: float) -> float:
    return t0 + (level - y0) / (y1 - y0) * (t1 - t0)


def calculate_step_metrics(
    time: Sequence[float], y: Sequence[float], final_value: float = 1.0
) -> Optional[StepMetrics]:
    """
    Performance metrics of a step response.

    Parameters
    ----------
    time : Sequence[float]
        Time grid
    y : Sequence[float]
        Response samples on the grid
    final_value : float
        Reference final value (1 for a unit step with integral action)

    Returns
    -------
    Optional[StepMetrics]
        None if fewer than two samples are given. Quantities that do not
        exist for the response (a level never crossed, a response that
        never settles) are None.

    Examples
    --------
    >>> t = np.linspace(0, 10, 1001)
    >>> metrics = calculate_step_metrics(t, 1 - np.exp(-t))
    >>> round(metrics['rise_time'], 2)  # ln(9)
    2.2
    >>> metrics["overshoot"]
    0.0
    """
    if time is None or y is None or len(time) < 2:
        return None

    t = np.asarray(time, dtype=float)
    y = np.asarray(y, dtype=float)
    n = len(t)
    finite = np.isfinite(y)

    # Rise time (10 % to 90 %)
    y10 = 0.1 * final_value
    y90 = 0.9 * final_value
    t10 = None
    t90 = None
    for i in range(1, n):
        if not (finite[i] and finite[i - 1]):
            continue
        if t10 is None and y[i - 1] < y10 <= y[i]:
            t10 = _crossing_time(t[i - 1], t[i], y[i - 1], y[i], y10)
        if t90 is None and y[i - 1] < y90 <= y[i]:
            t90 = _crossing_time(t[i - 1], t[i], y[i - 1], y[i], y90)

    # Peak
    peak_value = y[0]
    peak_time = t[0]
    for i in range(n):
        if finite[i] and y[i] > peak_value:
            peak_value = y[i]
            peak_time = t[i]

    if peak_value > final_value and final_value > 0:
        overshoot = float((peak_value - final_value) / final_value * 100)
    elif peak_value <= final_value:
        overshoot = 0.0
    else:
        overshoot = None

    # Settling time: interpolate on the last exit from the band
    upper = final_value * (1 + SETTLING_TOLERANCE)
    lower = final_value * (1 - SETTLING_TOLERANCE)
    settling_time = None

    last_outside = -1
    for i in range(n - 1, -1, -1):
        if finite[i] and (y[i] > upper or y[i] < lower):
            last_outside = i
            break

    if last_outside == -1:
        for i in range(n):
            if finite[i] and lower <= y[i] <= upper:
                settling_time = float(t[i])
                break
    elif last_outside < n - 1:
        i, j = last_outside, last_outside + 1
        if finite[j]:
            bound = upper if y[i] > upper else lower
            settling_time = float(_crossing_time(t[i], t[j], y[i], y[j], bound))
        else:
            settling_time = float(t[j])

    return {
        "rise_time": float(t90 - t10) if (t10 is not None and t90 is not None) else None,
        "rise_time_t10": None if t10 is None else float(t10),
        "rise_time_t90": None if t90 is None else float(t90),
        "settling_time": settling_time,
        "overshoot": overshoot,
        "peak_time": float(peak_time),
        "peak_value": float(peak_value),
        "final_value": float(final_value),
    }


# ============================================================================
# Module Exports
# ============================================================================

__all__ = [
    "DEFAULT_STEP_TIME",
    "AUTO_TIME_MULTIPLIER",
    "MIN_STEP_TIME",
    "MAX_STEP_TIME",
    "SETTLING_TOLERANCE",
    "auto_step_time",
    "calculate_step_metrics",
]
