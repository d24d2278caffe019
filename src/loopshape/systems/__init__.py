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
Systems Layer

State-space realizations, RK4 step-response simulation, step metrics and
the built-in example catalog.
"""

from .numerical_integration import DelayedSignalHistory, StateSpaceRK4Integrator
from .state_space import closed_loop_coefficients, evaluate_state_space, real_coefficients, tf2ss
from .step_metrics import auto_step_time, calculate_step_metrics
from .step_response import (
    build_step_response_data,
    simulate_closed_loop_step_response_loop_delay,
    simulate_loop_step_response,
    simulate_step_response,
    step_resolution,
)

__all__ = [
    # State space
    "tf2ss",
    "closed_loop_coefficients",
    "evaluate_state_space",
    "real_coefficients",
    # Integration
    "StateSpaceRK4Integrator",
    "DelayedSignalHistory",
    # Step responses
    "simulate_step_response",
    "simulate_closed_loop_step_response_loop_delay",
    "build_step_response_data",
    "simulate_loop_step_response",
    "step_resolution",
    "auto_step_time",
    "calculate_step_metrics",
]
