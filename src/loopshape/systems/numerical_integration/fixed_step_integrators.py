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
Fixed-Step Integrators

Classic 4th-order Runge-Kutta integration of single-input single-output
state-space models:

    dx/dt = A x + B u(t)
    y     = C x + D u(t)

Two ways of supplying the input are supported:

- step(): input held constant over the step (zero-order hold), as used
  for step inputs
- step_time_varying(): input sampled at t, t + dt/2 and t + dt, as used
  when the input is a delayed, interpolated feedback signal

DelayedSignalHistory stores the samples of a signal on the integration
grid and answers delayed queries by linear interpolation, which is what
closes a feedback loop around a dead time.

A pure gain (order 0) has no state: steps return the empty state
unchanged and the output is D*u.
"""

import math
import time
from typing import Any, Callable, Dict, List, Optional

import numpy as np

from loopshape.types.control_classical import StateSpaceModel
from loopshape.types.trajectories import IntegrationResult


class StateSpaceRK4Integrator:
    """
    Classic 4th-order Runge-Kutta integrator for a state-space model.

    Algorithm:
        k1 = f(x_k,             u_1)
        k2 = f(x_k + dt/2 * k1, u_2)
        k3 = f(x_k + dt/2 * k2, u_2)
        k4 = f(x_k + dt * k3,   u_3)
        x_{k+1} = x_k + (dt/6) * (k1 + 2*k2 + 2*k3 + k4)

    with f(x, u) = A x + B u. For a held input u_1 = u_2 = u_3; for a
    time-varying input u_1 = u(t), u_2 = u(t + dt/2), u_3 = u(t + dt).

    Characteristics:
    - Order: 4 (error ∝ dt⁴)
    - Function evaluations: 4 per step
    - Exact structure of the model is not assumed; any (A, B, C, D) works

    Examples
    --------
    >>> ss = tf2ss([1.0], [1.0, 1.0])  # 1/(s+1)
    >>> integrator = StateSpaceRK4Integrator(ss, dt=0.01)
    >>> x_next = integrator.step(np.zeros(1), 1.0)
    >>>
    >>> result = integrator.integrate(
    ...     x0=np.zeros(1),
    ...     u_func=lambda t, x: 1.0,
    ...     t_span=(0.0, 5.0)
    ... )
    >>> print(f"RK4: {result['nfev']} evaluations for {result['nsteps']} steps")
    """

    def __init__(self, ss: StateSpaceModel, dt: float, **options):
        """
        Initialize RK4 integrator.

        Parameters
        ----------
        ss : StateSpaceModel
            Model to integrate
        dt : float
            Fixed time step (must be positive)
        """
        if dt <= 0:
            raise ValueError(f"Time step must be positive, got {dt}")

        self.ss = ss
        self.dt = float(dt)
        self.options = options
        self._stats = {
            "total_steps": 0,
            "total_fev": 0,
            "total_time": 0.0,
        }

    @property
    def order(self) -> int:
        """State dimension of the model."""
        return self.ss["n"]

    @property
    def name(self) -> str:
        return "RK4 (State-Space)"

    # ========================================================================
    # Model Evaluation
    # ========================================================================

    def initial_state(self) -> np.ndarray:
        """Zero initial state of the right dimension."""
        return np.zeros(self.order)

    def _evaluate_dynamics(self, x: np.ndarray, u: float) -> np.ndarray:
        self._stats["total_fev"] += 1
        return self.ss["A"] @ x + self.ss["B"] * u

    def output(self, x: np.ndarray, u: float) -> float:
        """y = C x + D u (D u alone for a pure gain)."""
        if self.order == 0:
            return float(self.ss["D"] * u)
        return float(self.ss["C"] @ x + self.ss["D"] * u)

    # ========================================================================
    # Stepping
    # ========================================================================

    def step(self, x: np.ndarray, u: float, dt: Optional[float] = None) -> np.ndarray:
        """
        Take one RK4 step with the input held constant.

        Parameters
        ----------
        x : np.ndarray
            Current state (n,)
        u : float
            Input, constant over the step
        dt : Optional[float]
            Time step (uses self.dt if None)

        Returns
        -------
        np.ndarray
            Next state
        """
        return self._rk4(x, u, u, u, dt)

    def step_time_varying(
        self,
        x: np.ndarray,
        u_func: Callable[[float], float],
        t: float,
        dt: Optional[float] = None,
    ) -> np.ndarray:
        """
        Take one RK4 step with the input sampled inside the step.

        Parameters
        ----------
        x : np.ndarray
            State at time t
        u_func : Callable[[float], float]
            Input signal u(t)
        t : float
            Time at the start of the step
        dt : Optional[float]
            Time step (uses self.dt if None)

        Returns
        -------
        np.ndarray
            State at t + dt

        Notes
        -----
        The two midpoint stages share one evaluation of u(t + dt/2).
        """
        dt = dt if dt is not None else self.dt
        u_start = u_func(t)
        u_mid = u_func(t + 0.5 * dt)
        u_end = u_func(t + dt)
        return self._rk4(x, u_start, u_mid, u_end, dt)

    def _rk4(
        self, x: np.ndarray, u_start: float, u_mid: float, u_end: float, dt: Optional[float]
    ) -> np.ndarray:
        if self.order == 0:
            return x

        dt = dt if dt is not None else self.dt

        k1 = self._evaluate_dynamics(x, u_start)
        k2 = self._evaluate_dynamics(x + 0.5 * dt * k1, u_mid)
        k3 = self._evaluate_dynamics(x + 0.5 * dt * k2, u_mid)
        k4 = self._evaluate_dynamics(x + dt * k3, u_end)

        x_next = x + (dt / 6.0) * (k1 + 2 * k2 + 2 * k3 + k4)

        self._stats["total_steps"] += 1

        return x_next

    # ========================================================================
    # Trajectory Integration
    # ========================================================================

    def integrate(
        self,
        x0: Optional[np.ndarray],
        u_func: Callable[[float, np.ndarray], float],
        t_span,
        t_eval: Optional[np.ndarray] = None,
    ) -> IntegrationResult:
        """
        Integrate using fixed RK4 steps with a zero-order-hold input.

        Parameters
        ----------
        x0 : Optional[np.ndarray]
            Initial state (zeros if None)
        u_func : Callable
            Input policy (t, x) -> u, evaluated at the start of each step
        t_span : Tuple[float, float]
            Integration interval (t_start, t_end)
        t_eval : Optional[np.ndarray]
            Time grid (if None, uniform grid with self.dt)

        Returns
        -------
        IntegrationResult
            TypedDict containing trajectory and diagnostics

        Examples
        --------
        >>> result = integrator.integrate(
        ...     x0=None,
        ...     u_func=lambda t, x: 1.0 if t >= 0.5 else 0.0,
        ...     t_span=(0.0, 10.0)
        ... )
        >>> result['x'].shape
        (1001, 1)
        """
        start_time = time.time()
        fev_before = self._stats["total_fev"]

        t0, tf = t_span
        if t_eval is None:
            num_steps = int(np.ceil((tf - t0) / self.dt))
            t_eval = np.linspace(t0, tf, num_steps + 1)
        t_points = np.asarray(t_eval, dtype=float)

        x = self.initial_state() if x0 is None else np.asarray(x0, dtype=float)
        trajectory = [x]

        for i in range(len(t_points) - 1):
            t = float(t_points[i])
            dt_step = float(t_points[i + 1] - t_points[i])
            x = self.step(x, u_func(t, x), dt=dt_step)
            trajectory.append(x)

        x_traj = np.stack(trajectory) if self.order > 0 else np.zeros((len(t_points), 0))

        elapsed = time.time() - start_time
        self._stats["total_time"] += elapsed

        success = bool(np.all(np.isfinite(x_traj)))
        result: IntegrationResult = {
            "t": t_points,
            "x": x_traj,
            "success": success,
            "message": "Integration complete" if success else "Non-finite state encountered",
            "nfev": self._stats["total_fev"] - fev_before,
            "nsteps": len(t_points) - 1,
            "integration_time": elapsed,
            "solver": self.name,
        }
        return result

    # ========================================================================
    # Statistics
    # ========================================================================

    def get_stats(self) -> Dict[str, Any]:
        """
        Integration statistics.

        Examples
        --------
        >>> stats = integrator.get_stats()
        >>> stats['avg_fev_per_step']
        4.0
        """
        avg_fev = self._stats["total_fev"] / max(1, self._stats["total_steps"])
        return {
            **self._stats,
            "avg_fev_per_step": avg_fev,
        }

    def reset_stats(self):
        """Reset integration statistics to zero."""
        self._stats["total_steps"] = 0
        self._stats["total_fev"] = 0
        self._stats["total_time"] = 0.0

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(n={self.order}, dt={self.dt})"


class DelayedSignalHistory:
    """
    Samples of a signal on a uniform grid with delayed lookup.

    Sample k holds the value at time k*dt. A query at time t is answered
    by linear interpolation between the neighbouring samples, with:

    - 0 for t < 0 (the signal is zero before the start)
    - 0 while no sample exists yet
    - the last sample for t beyond the known horizon (hold), because
      RK4 stages look up to one step ahead of the last computed sample

    Examples
    --------
    >>> history = DelayedSignalHistory(dt=0.1)
    >>> history.append(1.0)
    >>> history.append(0.0)
    >>> history.value_at(0.05, t_known_max=0.1)
    0.5
    >>> history.value_at(-0.2, t_known_max=0.1)
    0.0
    """

    def __init__(self, dt: float):
        if dt <= 0:
            raise ValueError(f"Sample spacing must be positive, got {dt}")
        self.dt = float(dt)
        self._samples: List[float] = []

    def append(self, value: float):
        self._samples.append(float(value))

    def __len__(self) -> int:
        return len(self._samples)

    def as_array(self) -> np.ndarray:
        return np.array(self._samples)

    def value_at(self, t_query: float, t_known_max: float) -> float:
        """
        Interpolated value at t_query.

        Parameters
        ----------
        t_query : float
            Query time (typically t - delay)
        t_known_max : float
            Latest time for which the signal is considered known; later
            queries return the last sample
        """
        if t_query < 0 or not self._samples:
            return 0.0
        if t_query > t_known_max:
            return self._samples[-1]

        index = t_query / self.dt
        i0 = int(math.floor(index))
        if i0 >= len(self._samples) - 1:
            return self._samples[-1]

        frac = index - i0
        return self._samples[i0] * (1.0 - frac) + self._samples[i0 + 1] * frac


# ============================================================================
# Module Exports
# ============================================================================

__all__ = [
    "StateSpaceRK4Integrator",
    "DelayedSignalHistory",
]
