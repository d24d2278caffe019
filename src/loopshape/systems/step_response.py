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
Step Response Simulation

Time-domain unit-step responses of a loop L(s) and its unity-feedback
closed loop T(s) = L/(1+L), on a uniform grid

    t_i = i * dt,   dt = t_max / (n_points - 1)

using fixed-step RK4 (StateSpaceRK4Integrator).

Two simulators are provided:

1. simulate_step_response: two independent systems, each driven by a
   delayed unit step u(t) = 1 for t >= delay. Used for rational loops
   (L and T = N/(N+D) both realizable) and for the open-loop response of a
   delayed loop (pure input delay).

2. simulate_closed_loop_step_response_loop_delay: unity feedback around
   R(s) e^{-sT}, where the dead time sits inside the loop:

       y(t) = C x(t) + D u(t),   e(t) = 1 - y(t),   u(t) = e(t - T)

   The delayed error is read from the history of already computed error
   samples by linear interpolation (DelayedSignalHistory); RK4 stages that
   look ahead of the last computed sample hold that sample.

The loop orchestrator picks the right combination from the structure of L
(build_step_response_data / simulate_loop_step_response).
"""

import math
import warnings
from typing import Optional

import numpy as np

from loopshape.symbolic.rationalization import rationalize
from loopshape.types.control_classical import StateSpaceModel
from loopshape.types.symbolic import StructureClassification
from loopshape.types.trajectories import (
    ClosedLoopStepResult,
    StepResponseData,
    StepResponseResult,
)

from .numerical_integration import DelayedSignalHistory, StateSpaceRK4Integrator
from .state_space import closed_loop_coefficients, real_coefficients, tf2ss

# ============================================================================
# Constants
# ============================================================================

BASE_STEP_POINTS = 500
"""Simulation points for loops without dead time."""

DELAY_SAMPLES = 25
"""Minimum number of samples per dead time (dt <= delay / DELAY_SAMPLES)."""

MAX_STEP_POINTS = 20000
"""Upper bound on simulation points for delayed loops."""


# ============================================================================
# Helpers
# ============================================================================


def _time_grid(t_max: float, n_points: int) -> np.ndarray:
    if n_points < 2:
        raise ValueError(f"n_points must be at least 2, got {n_points}")
    if not t_max > 0:
        raise ValueError(f"t_max must be positive, got {t_max}")
    dt = t_max / (n_points - 1)
    return np.arange(n_points) * dt


def step_input(t: float, delay: float = 0.0) -> float:
    """Delayed unit step: 1 for t >= delay, else 0."""
    return 1.0 if t >= delay else 0.0


def step_resolution(t_max: float, delay: float = 0.0) -> int:
    """
    Number of simulation points for a horizon and a loop delay.

    BASE_STEP_POINTS without delay; with a delay, enough points that
    dt <= delay / DELAY_SAMPLES, capped at MAX_STEP_POINTS.

    Examples
    --------
    >>> step_resolution(10.0)
    500
    >>> step_resolution(20.0, delay=0.5)
    1001
    """
    n_points = BASE_STEP_POINTS
    if delay > 0:
        dt_target = delay / DELAY_SAMPLES
        n_points = max(n_points, int(math.ceil(t_max / dt_target)) + 1)
        n_points = min(n_points, MAX_STEP_POINTS)
    return n_points


def _simulate_delayed_step(
    ss: Optional[StateSpaceModel], time_grid: np.ndarray, delay: float
) -> np.ndarray:
    if ss is None:
        return np.zeros(len(time_grid))

    dt = time_grid[1] - time_grid[0]
    integrator = StateSpaceRK4Integrator(ss, dt)
    result = integrator.integrate(
        x0=None,
        u_func=lambda t, x: step_input(t, delay),
        t_span=(float(time_grid[0]), float(time_grid[-1])),
        t_eval=time_grid,
    )
    return np.array(
        [integrator.output(x, step_input(t, delay)) for t, x in zip(time_grid, result["x"])]
    )


# ============================================================================
# Simulators
# ============================================================================


def simulate_step_response(
    ss_L: Optional[StateSpaceModel],
    ss_T: Optional[StateSpaceModel],
    t_max: float,
    n_points: int,
    delay_L: float = 0.0,
    delay_T: float = 0.0,
) -> StepResponseResult:
    """
    Step responses of two independent state-space systems.

    Parameters
    ----------
    ss_L : Optional[StateSpaceModel]
        First system (typically L); None yields a zero trace
    ss_T : Optional[StateSpaceModel]
        Second system (typically T); None yields a zero trace
    t_max : float
        Simulation horizon in seconds (> 0)
    n_points : int
        Number of grid points (>= 2)
    delay_L : float
        Input delay of the first system
    delay_T : float
        Input delay of the second system

    Returns
    -------
    StepResponseResult
        TypedDict with time, y_L and y_T arrays of length n_points

    Raises
    ------
    ValueError
        If t_max <= 0 or n_points < 2

    Examples
    --------
    >>> ss = tf2ss([1.0], [1.0, 1.0])
    >>> result = simulate_step_response(ss, None, 5.0, 501)
    >>> result['y_L'][100]  # t = 1
    0.632...

    Notes
    -----
    The output at t_i is computed before the step to t_{i+1}, with the
    input held at u(t_i) over the step.
    """
    time_grid = _time_grid(t_max, n_points)
    return {
        "time": time_grid,
        "y_L": _simulate_delayed_step(ss_L, time_grid, delay_L),
        "y_T": _simulate_delayed_step(ss_T, time_grid, delay_T),
    }


def simulate_closed_loop_step_response_loop_delay(
    ss_R: Optional[StateSpaceModel],
    delay: float,
    t_max: float,
    n_points: int,
) -> ClosedLoopStepResult:
    """
    Unity-feedback step response with a dead time inside the loop.

    Simulates T(s) = R(s) e^{-s delay} / (1 + R(s) e^{-s delay}) under the
    reference r(t) = 1.

    Parameters
    ----------
    ss_R : Optional[StateSpaceModel]
        Rational part R(s) of the loop; None yields y = 0, e = 1
    delay : float
        Loop dead time (>= 0)
    t_max : float
        Simulation horizon (> 0)
    n_points : int
        Number of grid points (>= 2)

    Returns
    -------
    ClosedLoopStepResult
        TypedDict with time, y and e arrays

    Examples
    --------
    >>> ss = tf2ss([1.0], [1.0, 1.0])
    >>> result = simulate_closed_loop_step_response_loop_delay(ss, 0.5, 20.0, 2001)
    >>> result['y'][-1]  # settles at R(0)/(1 + R(0))
    0.5...
    """
    delay = delay or 0.0
    time_grid = _time_grid(t_max, n_points)
    dt = time_grid[1] - time_grid[0]

    y = np.zeros(n_points)
    e = np.zeros(n_points)
    history = DelayedSignalHistory(dt)

    integrator = StateSpaceRK4Integrator(ss_R, dt) if ss_R is not None else None
    x = integrator.initial_state() if integrator is not None else np.zeros(0)

    for i, t in enumerate(time_grid):
        t = float(t)
        u_now = history.value_at(t - delay, t)

        y_now = integrator.output(x, u_now) if integrator is not None else 0.0
        e_now = 1.0 - y_now
        y[i] = y_now
        e[i] = e_now
        history.append(e_now)

        if integrator is not None and integrator.order > 0 and i < n_points - 1:
            x = integrator.step_time_varying(
                x, lambda t_sub, t_known=t: history.value_at(t_sub - delay, t_known), t, dt
            )

    return {"time": time_grid, "y": y, "e": e}


# ============================================================================
# Loop Step Responses
# ============================================================================


def build_step_response_data(structure: StructureClassification) -> Optional[StepResponseData]:
    """
    Realization of the rational part of a classified loop.

    Returns None for an unknown structure; NotRationalError or ValueError
    (improper rational part, complex coefficients) propagate.

    Examples
    --------
    >>> data = build_step_response_data(classify_structure(parse_expression("exp(-0.5*s)/(s+1)")))
    >>> data['type'], data['delay_L']
    ('rational_delay', 0.5)
    """
    if structure["type"] == "unknown" or structure["rational_part"] is None:
        return None

    rational = rationalize(structure["rational_part"])
    num = real_coefficients(rational["numerator"], "numerator")
    den = real_coefficients(rational["denominator"], "denominator")

    return {
        "type": structure["type"],
        "delay_L": float(structure["delay_time"] or 0.0),
        "num": num,
        "den": den,
        "ss_L": tf2ss(num, den),
    }


def simulate_loop_step_response(data: StepResponseData, t_max: float) -> StepResponseResult:
    """
    Open-loop (y_L) and closed-loop (y_T) step responses of a loop.

    - rational: L and T = N/(N+D) simulated side by side
    - rational_delay: L with an input delay, T with the delay inside the
      loop

    Examples
    --------
    >>> data = build_step_response_data(classify_structure(parse_expression("10/(s+1)")))
    >>> result = simulate_loop_step_response(data, 5.0)
    >>> round(result['y_T'][-1], 3)
    0.909
    """
    delay = data["delay_L"]
    n_points = step_resolution(t_max, delay if data["type"] == "rational_delay" else 0.0)

    if data["type"] == "rational_delay":
        open_loop = simulate_step_response(data["ss_L"], None, t_max, n_points, delay, 0.0)
        closed_loop = simulate_closed_loop_step_response_loop_delay(
            data["ss_L"], delay, t_max, n_points
        )
        return {"time": open_loop["time"], "y_L": open_loop["y_L"], "y_T": closed_loop["y"]}

    num, den = closed_loop_coefficients(data["num"], data["den"])
    try:
        ss_T = tf2ss(num, den)
    except ValueError as e:
        warnings.warn(f"Closed-loop step response unavailable: {e}", RuntimeWarning, stacklevel=2)
        ss_T = None
    return simulate_step_response(data["ss_L"], ss_T, t_max, n_points)


# ============================================================================
# Module Exports
# ============================================================================

__all__ = [
    "BASE_STEP_POINTS",
    "DELAY_SAMPLES",
    "MAX_STEP_POINTS",
    "step_input",
    "step_resolution",
    "simulate_step_response",
    "simulate_closed_loop_step_response_loop_delay",
    "build_step_response_data",
    "simulate_loop_step_response",
]
