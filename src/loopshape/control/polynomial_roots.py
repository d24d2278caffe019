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
Polynomial Roots

Pure stateless functions for polynomial arithmetic and root finding:

**Root Finding:**
- Durand-Kerner simultaneous iteration (real or complex coefficients)
- Canonical root ordering

**Polynomial Arithmetic:**
- Evaluation (Horner), addition, multiplication in ascending powers

Mathematical Background
-----------------------
For a monic polynomial p(z) of degree n with roots z_1..z_n, Durand-Kerner
updates every estimate in turn:

    z_i <- z_i - p(z_i) / prod_{j != i} (z_i - z_j)

Updated estimates are used immediately by the following i (Gauss-Seidel
ordering). Initial guesses lie on the unit circle at angles
2*pi*i/n + pi/(2n), offset so that no guess sits on the real axis.

Iteration stops when the largest correction in a sweep falls below the
tolerance, or at the iteration cap. Hitting the cap is reported in the
result (``converged=False``) and through a RootConvergenceWarning.

Usage
-----
>>> from loopshape.control.polynomial_roots import polynomial_roots
>>>
>>> polynomial_roots([6.0, 11.0, 6.0, 1.0])  # (s+1)(s+2)(s+3)
[(-1+0j), (-2+0j), (-3+0j)]
>>> polynomial_roots([5.0, 2.0, 1.0])        # s^2 + 2s + 5
[(-1+2j), (-1-2j)]
"""

import cmath
import functools
import math
import warnings
from typing import List, Sequence

import numpy as np

from loopshape.types.control_classical import RootFindingResult
from loopshape.types.core import (
    COEFF_STRIP_TOL,
    DIVISION_FLOOR,
    ROOT_MAX_ITERATIONS,
    ROOT_SORT_TOL,
    ROOT_TOLERANCE,
    ComplexLike,
    Polynomial,
    RootList,
)

# ============================================================================
# Warnings
# ============================================================================


class RootConvergenceWarning(RuntimeWarning):
    """Durand-Kerner reached the iteration cap before converging."""
    pass


# ============================================================================
# Polynomial Arithmetic
# ============================================================================


def strip_polynomial(coeffs: Polynomial, tol: float = COEFF_STRIP_TOL) -> List[complex]:
    """
    Drop trailing coefficients with magnitude below tol (at least one kept).

    Examples
    --------
    >>> strip_polynomial([1.0, 2.0, 1e-20])
    [(1+0j), (2+0j)]
    """
    result = [complex(c) for c in coeffs]
    while len(result) > 1 and abs(result[-1]) < tol:
        result.pop()
    return result


def evaluate_polynomial(coeffs: Polynomial, z: ComplexLike) -> complex:
    """Evaluate an ascending-power polynomial at z (Horner's scheme)."""
    result = 0j
    for c in reversed(list(coeffs)):
        result = result * z + c
    return complex(result)


def add_polynomials(p: Polynomial, q: Polynomial) -> np.ndarray:
    """Sum of two ascending-power polynomials."""
    p_arr = np.asarray(p)
    q_arr = np.asarray(q)
    size = max(len(p_arr), len(q_arr))
    dtype = np.result_type(p_arr, q_arr, float)
    result = np.zeros(size, dtype=dtype)
    result[: len(p_arr)] += p_arr
    result[: len(q_arr)] += q_arr
    return result


def multiply_polynomials(p: Polynomial, q: Polynomial) -> np.ndarray:
    """Product of two ascending-power polynomials."""
    return np.convolve(np.asarray(p), np.asarray(q))


# ============================================================================
# Root Finding
# ============================================================================


def find_roots(
    coeffs: Polynomial,
    max_iterations: int = ROOT_MAX_ITERATIONS,
    tolerance: float = ROOT_TOLERANCE,
    warn: bool = True,
) -> RootFindingResult:
    """
    All roots of a polynomial by Durand-Kerner iteration.

    Args:
        coeffs: Coefficients in ascending powers (real or complex); the last
            coefficient must be non-zero (strip first)
        max_iterations: Iteration cap
        tolerance: Convergence threshold on the largest correction
        warn: Emit RootConvergenceWarning when the cap is reached

    Returns:
        RootFindingResult containing:
            - roots: complex array of length degree (unordered)
            - converged: True if the tolerance was met
            - iterations: sweeps performed
            - max_correction: largest correction of the last sweep
            - max_residual: max |p(z_i)| of the normalized polynomial

    Examples
    --------
    >>> result = find_roots([6.0, 11.0, 6.0, 1.0])
    >>> result['converged']
    True
    >>> sort_roots(result['roots'])
    [(-1+0j), (-2+0j), (-3+0j)]
    >>>
    >>> # Degree 0: no roots
    >>> find_roots([4.0])['roots']
    array([], dtype=complex128)

    Notes
    -----
    - The correction divides by the product of differences; its squared
      magnitude is floored at DIVISION_FLOOR so coincident estimates
      cannot divide by zero
    - Accuracy degrades for ill-conditioned polynomials (clustered or high
      multiplicity roots); max_residual exposes this
    """
    coefficients = [complex(c) for c in coeffs]
    n = len(coefficients) - 1

    if n <= 0:
        return {
            "roots": np.array([], dtype=complex),
            "converged": True,
            "iterations": 0,
            "max_correction": 0.0,
            "max_residual": 0.0,
        }

    leading = coefficients[n]
    if leading == 0:
        raise ValueError("Leading coefficient must be non-zero; strip trailing zeros first")
    monic = [c / leading for c in coefficients]

    roots = [cmath.rect(1.0, 2 * math.pi * i / n + math.pi / (2 * n)) for i in range(n)]

    converged = False
    iterations = 0
    max_correction = 0.0
    for iterations in range(1, max_iterations + 1):
        max_correction = 0.0

        for i in range(n):
            z_i = roots[i]
            value = evaluate_polynomial(monic, z_i)

            product = 1 + 0j
            for j in range(n):
                if i != j:
                    product *= z_i - roots[j]

            magnitude_sq = product.real * product.real + product.imag * product.imag
            magnitude_sq = max(magnitude_sq, DIVISION_FLOOR)
            correction = value * product.conjugate() / magnitude_sq

            roots[i] = z_i - correction
            max_correction = max(max_correction, abs(correction))

        if max_correction < tolerance:
            converged = True
            break

    max_residual = max(abs(evaluate_polynomial(monic, z)) for z in roots)

    if not converged and warn:
        warnings.warn(
            f"Durand-Kerner did not converge after {iterations} iterations "
            f"(max correction {max_correction:.3e}, max residual {max_residual:.3e}); "
            f"roots may be inaccurate",
            RootConvergenceWarning,
            stacklevel=2,
        )

    return {
        "roots": np.array(roots, dtype=complex),
        "converged": converged,
        "iterations": iterations,
        "max_correction": float(max_correction),
        "max_residual": float(max_residual),
    }


def _compare_roots(a: complex, b: complex) -> int:
    # Real part descending, then |imag| descending, then +imag before -imag
    if abs(a.real - b.real) > ROOT_SORT_TOL:
        return -1 if a.real > b.real else 1
    if abs(abs(a.imag) - abs(b.imag)) > ROOT_SORT_TOL:
        return -1 if abs(a.imag) > abs(b.imag) else 1
    if a.imag != b.imag:
        return -1 if a.imag > b.imag else 1
    return 0


def sort_roots(roots: Sequence[ComplexLike]) -> RootList:
    """
    Canonical ordering: real part descending, ties (within ROOT_SORT_TOL)
    broken by |imaginary part| descending.

    Conjugate pairs end up adjacent with the positive imaginary part first.
    """
    return sorted((complex(r) for r in roots), key=functools.cmp_to_key(_compare_roots))


def polynomial_roots(
    coeffs: Polynomial,
    max_iterations: int = ROOT_MAX_ITERATIONS,
    tolerance: float = ROOT_TOLERANCE,
) -> RootList:
    """
    Sorted roots of a polynomial after stripping near-zero leading terms.

    Examples
    --------
    >>> polynomial_roots([0.0, 1.0, 1.0, 0.0])  # s(s+1)
    [0j, (-1+0j)]
    """
    result = find_roots(strip_polynomial(coeffs), max_iterations=max_iterations, tolerance=tolerance)
    return sort_roots(result["roots"])


# ============================================================================
# Module Exports
# ============================================================================

__all__ = [
    "RootConvergenceWarning",
    "strip_polynomial",
    "evaluate_polynomial",
    "add_polynomials",
    "multiply_polynomials",
    "find_roots",
    "sort_roots",
    "polynomial_roots",
]
