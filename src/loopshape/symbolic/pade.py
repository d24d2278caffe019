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
Pade Delay Approximation

Rational [n/m] Pade approximants of the dead time exp(-Ld*s):

    exp(-x) ~ P_n(x) / Q_m(x),   x = Ld*s

    P_n(x) = sum_{k=0}^{n} (-1)^k a_k x^k,   a_k = c(n, m, k)
    Q_m(x) = sum_{k=0}^{m}        b_k x^k,   b_k = c(m, n, k)

    c(n, m, k) = (n+m-k)! n! / ((n+m)! k! (n-k)!)
               = prod_{i=0}^{k-1} (n-i) / ((n+m-i)(i+1))

The product form is used to avoid factorial overflow.

Users write ``pade_delay(Ld, n)`` (m defaults to n) or
``pade_delay(Ld, n, m)`` inside any expression; expand_pade_delay replaces
each call by the approximant tree before rationalization.

Examples
--------
>>> to_string(build_pade_node(Symbol("Ld"), 1, 1))
'(1 - 0.5*Ld*s)/(1 + 0.5*Ld*s)'
"""

from typing import List, Union

from .errors import DefinitionError
from .expression_nodes import (
    PADE_FUNCTION,
    BinaryOp,
    Call,
    Constant,
    LAPLACE_VARIABLE,
    ExpressionNode,
    Symbol,
    UnaryOp,
    transform,
)

# ============================================================================
# Coefficients
# ============================================================================


def pade_coefficient(n: int, m: int, k: int) -> float:
    """
    k-th coefficient of the [n/m] Pade approximant of exp(-x).

    Parameters
    ----------
    n : int
        Order of the polynomial the coefficient belongs to
    m : int
        Order of the other polynomial
    k : int
        Power of x (0 <= k <= n)

    Returns
    -------
    float
        c(n, m, k); c(n, m, 0) = 1

    Examples
    --------
    >>> pade_coefficient(1, 1, 1)
    0.5
    >>> pade_coefficient(2, 2, 2)  # 1/12
    0.08333333333333333
    """
    result = 1.0
    for i in range(k):
        result *= (n - i) / ((n + m - i) * (i + 1))
    return result


# ============================================================================
# Tree Construction
# ============================================================================


def _term(coefficient: float, k: int, delay: ExpressionNode) -> ExpressionNode:
    """coefficient * (delay*s)^k for a non-negative coefficient."""
    if k == 0:
        return Constant(coefficient)
    scaled = BinaryOp("*", delay, Symbol(LAPLACE_VARIABLE))
    power = scaled if k == 1 else BinaryOp("^", scaled, Constant(k))
    if coefficient == 1:
        return power
    return BinaryOp("*", Constant(coefficient), power)


def _polynomial(terms: List[ExpressionNode], signs: List[int]) -> ExpressionNode:
    node = terms[0]
    for term, sign in zip(terms[1:], signs[1:]):
        node = BinaryOp("+" if sign > 0 else "-", node, term)
    return node


def build_pade_node(delay: Union[ExpressionNode, float], n: int, m: int) -> ExpressionNode:
    """
    Build the [n/m] Pade approximant tree of exp(-delay*s).

    Parameters
    ----------
    delay : Union[ExpressionNode, float]
        Dead time Ld (a tree, so it may be a parameter symbol)
    n : int
        Numerator order
    m : int
        Denominator order

    Returns
    -------
    ExpressionNode
        Quotient P_n(Ld*s) / Q_m(Ld*s); Constant(1) when n = m = 0
    """
    if n == 0 and m == 0:
        return Constant(1)
    if not isinstance(delay, (Constant, Symbol, UnaryOp, BinaryOp, Call)):
        delay = Constant(delay)

    numerator_terms = [_term(pade_coefficient(n, m, k), k, delay) for k in range(n + 1)]
    numerator_signs = [1 if k % 2 == 0 else -1 for k in range(n + 1)]
    denominator_terms = [_term(pade_coefficient(m, n, k), k, delay) for k in range(m + 1)]

    return BinaryOp(
        "/",
        _polynomial(numerator_terms, numerator_signs),
        _polynomial(denominator_terms, [1] * (m + 1)),
    )


def _order_argument(node: ExpressionNode, label: str) -> int:
    value = node.value if isinstance(node, Constant) else None
    if isinstance(value, complex) or value is None or float(value) != int(value) or value < 0:
        raise DefinitionError(f"{PADE_FUNCTION}: {label} must be a non-negative integer constant")
    return int(value)


def expand_pade_delay(node: ExpressionNode) -> ExpressionNode:
    """
    Replace every ``pade_delay(Ld, n[, m])`` call by its approximant.

    Raises
    ------
    DefinitionError
        If a call has fewer than 2 or more than 3 arguments, or if n or m
        is not a non-negative integer constant

    Examples
    --------
    >>> expand_pade_delay(parse_expression("pade_delay(0.5, 0)"))
    Constant(value=1)
    """

    def _expand(n: ExpressionNode) -> ExpressionNode:
        if not (isinstance(n, Call) and n.name == PADE_FUNCTION):
            return n
        if not 2 <= len(n.args) <= 3:
            raise DefinitionError(
                f"{PADE_FUNCTION} requires 2 or 3 arguments: "
                f"{PADE_FUNCTION}(Ld, n) or {PADE_FUNCTION}(Ld, n, m)"
            )
        order_n = _order_argument(n.args[1], "n")
        order_m = _order_argument(n.args[2], "m") if len(n.args) == 3 else order_n
        return build_pade_node(n.args[0], order_n, order_m)

    return transform(node, _expand)


__all__ = [
    "pade_coefficient",
    "build_pade_node",
    "expand_pade_delay",
]
