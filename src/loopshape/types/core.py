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
Core Types - Fundamental Building Blocks

Defines the most basic types used throughout the loop-shaping engine:
- Complex scalars and arrays
- Polynomial coefficient vectors (ascending powers of s)
- Transfer function evaluators
- Numerical tolerances shared by every analysis stage

Design Philosophy
----------------
- **Plain data**: Every analysis result is built from floats, complex
  numbers and NumPy arrays, never from UI state
- **Ascending powers**: Index i of a polynomial is the coefficient of s^i
- **Named tolerances**: No magic numbers inside the algorithms

Usage
-----
>>> from loopshape.types.core import Polynomial, IMAG_AXIS_TOL
>>>
>>> den: Polynomial = [6.0, 11.0, 6.0, 1.0]  # (s+1)(s+2)(s+3)
>>> on_axis = [p for p in poles if abs(p.real) < IMAG_AXIS_TOL]
"""

from typing import Callable, List, Sequence, Union

import numpy as np

# ============================================================================
# Scalar and Array Types
# ============================================================================

ComplexLike = Union[complex, float, int, np.number]
"""
Complex scalar value.

Python's built-in ``complex`` is the value type used for every point of
the s-plane and every evaluation of L(s). Real numbers are accepted
wherever a complex number is expected.

Examples
--------
>>> s: ComplexLike = 1j * 10.0
>>> L_val: ComplexLike = 1 / (s + 1)
"""

ComplexArray = np.ndarray
"""
One-dimensional NumPy array of dtype complex128.

Examples
--------
>>> s_axis: ComplexArray = 1j * np.logspace(-2, 3, 300)
"""

FrequencyArray = np.ndarray
"""
Monotonically increasing angular frequencies in rad/s.

Examples
--------
>>> w: FrequencyArray = np.logspace(-2, 3, 300)
"""


# ============================================================================
# Polynomial Types
# ============================================================================

Coefficient = Union[float, complex]
"""Single polynomial coefficient (real in the dominant use case)."""

Polynomial = Union[Sequence[Coefficient], np.ndarray]
"""
Polynomial coefficient vector in ASCENDING powers of s.

Index i holds the coefficient of s^i:

    p(s) = c[0] + c[1]*s + c[2]*s^2 + ... + c[n]*s^n

Invariants
----------
- Non-empty
- Leading (highest-index) coefficient non-zero after normalization;
  callers strip trailing coefficients below COEFF_STRIP_TOL first

Examples
--------
>>> p: Polynomial = [5.0, 2.0, 1.0]  # s^2 + 2s + 5
"""

RootList = List[complex]
"""Roots of a polynomial as Python complex numbers."""


# ============================================================================
# Function Types
# ============================================================================

TransferFunctionEvaluator = Callable[[Union[ComplexLike, ComplexArray]], Union[complex, ComplexArray]]
"""
Compiled L(s) evaluator.

Accepts a complex scalar or an array of complex points and returns the
transfer function value(s) at those points. May raise or return
non-finite values at (or very near) poles; consumers handle both.

Examples
--------
>>> L = compile_expression(parse_expression("10/(s+1)"))
>>> L(1j * np.array([0.1, 1.0, 10.0]))
"""


# ============================================================================
# Numerical Tolerances
# ============================================================================

IMAG_AXIS_TOL = 1e-6
"""
Poles with |Re(p)| < IMAG_AXIS_TOL are treated as lying on the imaginary
axis. Used uniformly by the structure analysis, the RHP pole counter and
the Nyquist indentation logic.
"""

COEFF_STRIP_TOL = 1e-15
"""Trailing (highest-power) coefficients below this magnitude are dropped."""

ROOT_SORT_TOL = 1e-10
"""Real parts closer than this are considered equal when sorting roots."""

ROOT_TOLERANCE = 1e-10
"""Durand-Kerner stops when the largest per-root correction is below this."""

ROOT_MAX_ITERATIONS = 100000
"""Durand-Kerner iteration cap."""

DIVISION_FLOOR = 1e-30
"""Floor for |prod(z_i - z_j)|^2 in the Durand-Kerner correction."""

STABLE_POLE_TOL = 1e-10
"""Closed-loop poles with Re(p) < -STABLE_POLE_TOL count as stable."""

FREQUENCY_FLOOR = 1e-6
"""Root magnitudes below this are ignored by the automatic frequency range."""


# ============================================================================
# Module Exports
# ============================================================================

__all__ = [
    "ComplexLike",
    "ComplexArray",
    "FrequencyArray",
    "Coefficient",
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
]
