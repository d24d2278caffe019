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
State-Space Conversion

Transfer function to state-space conversion in observable canonical form,
plus the helpers needed to build the unity-feedback closed loop and to
check a realization against its transfer function.

Observable Canonical Form
-------------------------
For a proper transfer function normalized to a monic denominator

    G(s) = (b_n s^n + ... + b_1 s + b_0) / (s^n + a_{n-1} s^{n-1} + ... + a_0)

the realization is

        [ -a_{n-1}  1  0 ... 0 ]        [ b_{n-1} - a_{n-1} D ]
        [ -a_{n-2}  0  1 ... 0 ]        [ b_{n-2} - a_{n-2} D ]
    A = [   ...            ... ]    B = [         ...         ]
        [ -a_1      0  0 ... 1 ]        [ b_1 - a_1 D         ]
        [ -a_0      0  0 ... 0 ]        [ b_0 - a_0 D         ]

    C = [1, 0, ..., 0],   D = b_n

The simulators rely on this exact structure: the output is the first
state plus the feedthrough term.

Usage
-----
>>> from loopshape.systems.state_space import tf2ss, evaluate_state_space
>>>
>>> ss = tf2ss([1.0], [1.0, 1.0])  # 1/(s+1)
>>> ss['A'], ss['B'], ss['C'], ss['D']
(array([[-1.]]), array([1.]), array([1.]), 0.0)
>>> evaluate_state_space(ss, 1j)
(0.5-0.5j)
"""

from typing import List, Tuple, Union

import numpy as np
from scipy import linalg

from loopshape.types.control_classical import StateSpaceModel
from loopshape.types.core import COEFF_STRIP_TOL, ComplexLike, Polynomial

# ============================================================================
# Conversion
# ============================================================================


COEFF_IMAG_TOL = 1e-12
"""Largest imaginary part, relative to the largest coefficient, treated as rounding."""


def real_coefficients(coeffs: Polynomial, name: str = "coefficients") -> List[float]:
    """
    Real parts of a coefficient vector that must be real.

    Raises
    ------
    ValueError
        If an imaginary part exceeds COEFF_IMAG_TOL times the largest
        coefficient magnitude (e.g. the denominator of 1/(s - 2j))
    """
    values = np.asarray(list(coeffs), dtype=complex)
    if values.size:
        scale = max(1.0, float(np.max(np.abs(values))))
        worst = float(np.max(np.abs(values.imag)))
        if worst > COEFF_IMAG_TOL * scale:
            raise ValueError(
                f"Complex {name} cannot be simulated: imaginary part {worst:.3g} is not negligible"
            )
    return [float(v) for v in values.real]


def _strip(coeffs: Polynomial, tol: float = COEFF_STRIP_TOL) -> List[float]:
    result = [float(np.real(c)) for c in coeffs]
    while len(result) > 1 and abs(result[-1]) < tol:
        result.pop()
    return result


def tf2ss(num: Polynomial, den: Polynomial) -> StateSpaceModel:
    """
    Convert a transfer function to observable canonical state-space form.

    Parameters
    ----------
    num : Polynomial
        Numerator coefficients, ascending powers of s
    den : Polynomial
        Denominator coefficients, ascending powers of s; the last entry is
        the leading coefficient and must be non-zero

    Returns
    -------
    StateSpaceModel
        TypedDict with A (n, n), B (n,), C (n,), scalar D and order n.
        For n = 0 (pure gain) A, B, C are empty and D = num[0]/den[0].

    Raises
    ------
    ValueError
        If the denominator is empty or has a zero leading coefficient, if
        a coefficient is complex, or if the numerator degree exceeds the
        denominator degree (improper transfer functions have no
        state-space realization)

    Examples
    --------
    >>> ss = tf2ss([2.0, 3.0], [2.0, 3.0, 1.0])  # (3s+2)/(s^2+3s+2)
    >>> ss['A']
    array([[-3.,  1.],
           [-2.,  0.]])
    >>> ss['B']
    array([3., 2.])
    >>>
    >>> tf2ss([4.0], [2.0])['D']
    2.0
    """
    num = real_coefficients(num, "numerator") or [0.0]
    den = real_coefficients(den, "denominator")
    if not den:
        raise ValueError("Denominator must have at least one coefficient")

    n = len(den) - 1
    leading = den[n]
    if leading == 0:
        raise ValueError("Leading denominator coefficient must be non-zero")

    if len(_strip(num)) > n + 1:
        raise ValueError(
            f"Improper transfer function: numerator degree {len(_strip(num)) - 1} "
            f"exceeds denominator degree {n}"
        )

    if n <= 0:
        return {
            "A": np.zeros((0, 0)),
            "B": np.zeros(0),
            "C": np.zeros(0),
            "D": num[0] / den[0],
            "n": 0,
        }

    a = np.array(den) / leading
    b = np.zeros(n + 1)
    stripped = _strip(num)
    b[: len(stripped)] = np.array(stripped) / leading

    D = float(b[n])

    A = np.zeros((n, n))
    for i in range(n):
        A[i, 0] = -a[n - 1 - i]
        if i < n - 1:
            A[i, i + 1] = 1.0

    B = np.array([b[n - 1 - i] - a[n - 1 - i] * D for i in range(n)])
    C = np.zeros(n)
    C[0] = 1.0

    return {"A": A, "B": B, "C": C, "D": D, "n": n}


def closed_loop_coefficients(num: Polynomial, den: Polynomial) -> Tuple[List[float], List[float]]:
    """
    Unity-feedback closed loop T = N/(N + D) of L = N/D.

    The characteristic polynomial N + D has its trailing (highest-power)
    coefficients below COEFF_STRIP_TOL removed, so a cancellation of the
    leading terms lowers the order.

    Examples
    --------
    >>> closed_loop_coefficients([10.0], [1.0, 1.0])
    ([10.0], [11.0, 1.0])
    """
    num = real_coefficients(num, "numerator")
    den = real_coefficients(den, "denominator")
    size = max(len(num), len(den))
    num_padded = num + [0.0] * (size - len(num))
    den_padded = den + [0.0] * (size - len(den))
    characteristic = _strip([n_i + d_i for n_i, d_i in zip(num_padded, den_padded)])
    return num, characteristic


# ============================================================================
# Evaluation
# ============================================================================


def evaluate_state_space(
    ss: StateSpaceModel, s: Union[ComplexLike, np.ndarray]
) -> Union[complex, np.ndarray]:
    """
    Transfer function of a realization: G(s) = C (sI - A)^{-1} B + D.

    Parameters
    ----------
    ss : StateSpaceModel
        Realization to evaluate
    s : complex or array
        Evaluation point(s); s must not be an eigenvalue of A

    Returns
    -------
    complex or np.ndarray
        G(s), with the same shape as s

    Examples
    --------
    >>> ss = tf2ss([1.0], [0.0, 1.0])  # 1/s
    >>> evaluate_state_space(ss, np.array([1j, 2j]))
    array([0.-1.j , 0.-0.5j])
    """
    points = np.atleast_1d(np.asarray(s, dtype=complex))
    values = np.empty(points.shape, dtype=complex)

    n = ss["n"]
    for k, point in enumerate(points):
        if n == 0:
            values[k] = ss["D"]
            continue
        x = linalg.solve(point * np.eye(n) - ss["A"], ss["B"].astype(complex))
        values[k] = ss["C"] @ x + ss["D"]

    if np.ndim(s) == 0:
        return complex(values[0])
    return values


# ============================================================================
# Module Exports
# ============================================================================

__all__ = [
    "COEFF_IMAG_TOL",
    "real_coefficients",
    "tf2ss",
    "closed_loop_coefficients",
    "evaluate_state_space",
]
