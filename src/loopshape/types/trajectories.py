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
Trajectory Types

Result types for time-domain step-response simulation:
- Open-loop / closed-loop step traces
- Closed-loop traces with the dead time inside the loop
- Step-response performance metrics

Usage
-----
>>> from loopshape.types.trajectories import StepResponseResult
>>>
>>> result: StepResponseResult = simulate_step_response(ss_L, ss_T, 10.0, 501)
>>> result['y_T'][-1]  # final closed-loop value
"""

from typing import Optional

import numpy as np
from typing_extensions import TypedDict

from .control_classical import StateSpaceModel
from .symbolic import StructureType


# ============================================================================
# Simulation Results
# ============================================================================


class StepResponseResult(TypedDict):
    """
    Step responses of two independently simulated systems.

    Fields
    ------
    time : np.ndarray
        Uniform time grid (n_points,), time[0] = 0, time[-1] = t_max
    y_L : np.ndarray
        Output of the first system (zeros if it was None)
    y_T : np.ndarray
        Output of the second system (zeros if it was None)
    """

    time: np.ndarray
    y_L: np.ndarray
    y_T: np.ndarray


class ClosedLoopStepResult(TypedDict):
    """
    Unity-feedback step response with the dead time inside the loop.

    Fields
    ------
    time : np.ndarray
        Uniform time grid (n_points,)
    y : np.ndarray
        Loop output y(t)
    e : np.ndarray
        Error signal e(t) = 1 - y(t)
    """

    time: np.ndarray
    y: np.ndarray
    e: np.ndarray


class StepResponseData(TypedDict):
    """
    Everything needed to simulate the step responses of one L(s).

    Fields
    ------
    type : StructureType
        'rational' or 'rational_delay'
    delay_L : float
        Loop delay (0 for rational L)
    num : list
        Numerator coefficients of the rational part (ascending)
    den : list
        Denominator coefficients of the rational part (ascending)
    ss_L : StateSpaceModel
        Realization of the rational part
    """

    type: StructureType
    delay_L: float
    num: list
    den: list
    ss_L: StateSpaceModel


class IntegrationResult(TypedDict):
    """
    Trajectory produced by a fixed-step integrator.

    Fields
    ------
    t : np.ndarray
        Time points (T,)
    x : np.ndarray
        State trajectory (T, n)
    success : bool
        Integration finished without non-finite states
    message : str
        Status description
    nfev : int
        Dynamics evaluations
    nsteps : int
        Steps taken
    integration_time : float
        Wall-clock time in seconds
    solver : str
        Integrator name
    """

    t: np.ndarray
    x: np.ndarray
    success: bool
    message: str
    nfev: int
    nsteps: int
    integration_time: float
    solver: str


# ============================================================================
# Performance Metrics
# ============================================================================


class StepMetrics(TypedDict):
    """
    Step-response performance metrics.

    Fields
    ------
    rise_time : Optional[float]
        t90 - t10 (None if either level is never crossed)
    rise_time_t10 : Optional[float]
        Interpolated time of the 10 % crossing
    rise_time_t90 : Optional[float]
        Interpolated time of the 90 % crossing
    settling_time : Optional[float]
        Time after which the response stays within +-5 % of the final value
    overshoot : Optional[float]
        Percentage overshoot (0 when the peak does not exceed the final value)
    peak_time : float
        Time of the peak
    peak_value : float
        Peak value
    final_value : float
        Reference final value
    """

    rise_time: Optional[float]
    rise_time_t10: Optional[float]
    rise_time_t90: Optional[float]
    settling_time: Optional[float]
    overshoot: Optional[float]
    peak_time: float
    peak_value: float
    final_value: float


# ============================================================================
# Module Exports
# ============================================================================

__all__ = [
    "StepResponseResult",
    "ClosedLoopStepResult",
    "StepResponseData",
    "StepMetrics",
    "IntegrationResult",
]
