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
Rational Reduction

Reduces an expression tree to a single quotient of polynomials in s:

    L(s) = N(s) / D(s)

Two flavors are provided:

- rationalize_symbolic: keeps design parameters as SymPy symbols, used for
  the cached symbolic form and the closed-loop expression
- rationalize: fully numeric, returns ascending coefficient vectors

Coefficient vectors are in ASCENDING powers of s with trailing
(highest-power) coefficients below COEFF_STRIP_TOL removed; an expression
with no denominator gets the denominator [1.0].

Examples
--------
>>> rationalize(parse_expression("(s+2)/(s^2+3*s)"))
{'numerator': [2.0, 1.0], 'denominator': [0.0, 3.0, 1.0]}
>>> rationalize(parse_expression("exp(-s)/(s+1)"))
Traceback (most recent call last):
    ...
NotRationalError: ...
"""

from typing import List, Sequence

import sympy as sp

from loopshape.types.core import COEFF_STRIP_TOL, Coefficient
from loopshape.types.symbolic import RationalFunction, SymbolicRationalForm

from .errors import DefinitionError, NotRationalError
from .expression_nodes import LAPLACE_VARIABLE, ExpressionNode, to_sympy, to_string

_S = sp.Symbol(LAPLACE_VARIABLE)


# ============================================================================
# Coefficient Helpers
# ============================================================================


def strip_trailing_zeros(coeffs: Sequence[Coefficient], tol: float = COEFF_STRIP_TOL) -> List[Coefficient]:
    """
    Remove trailing (highest-power) coefficients with magnitude below tol.

    At least one coefficient is always kept.

    Examples
    --------
    >>> strip_trailing_zeros([1.0, 2.0, 0.0, 1e-20])
    [1.0, 2.0]
    >>> strip_trailing_zeros([0.0])
    [0.0]
    """
    result = list(coeffs)
    while len(result) > 1 and abs(result[-1]) < tol:
        result.pop()
    return result


def _to_number(coefficient: sp.Expr) -> Coefficient:
    if coefficient.free_symbols:
        names = ", ".join(sorted(str(sym) for sym in coefficient.free_symbols))
        raise DefinitionError(f"Undefined symbol(s): {names}")
    value = complex(sp.N(coefficient))
    if value.imag == 0:
        return float(value.real)
    return value


def polynomial_coefficients(expr: sp.Expr) -> List[Coefficient]:
    """
    Ascending numeric coefficients of a polynomial in s.

    Raises
    ------
    NotRationalError
        If expr is not a polynomial in s
    DefinitionError
        If a coefficient still contains free symbols
    """
    if not expr.is_polynomial(_S):
        raise NotRationalError(f"'{expr}' is not a polynomial in {LAPLACE_VARIABLE}")
    coeffs = sp.Poly(expr, _S).all_coeffs()[::-1]
    return strip_trailing_zeros([_to_number(c) for c in coeffs])


def polynomial_to_sympy(coeffs: Sequence[Coefficient]) -> sp.Expr:
    """Rebuild a polynomial in s from ascending coefficients."""
    return sum((sp.sympify(c) * _S**k for k, c in enumerate(coeffs)), sp.Integer(0))


# ============================================================================
# Reduction
# ============================================================================


def rationalize_expr(expr: sp.Expr) -> SymbolicRationalForm:
    """
    Bring a SymPy expression over a common denominator.

    Raises
    ------
    NotRationalError
        If the numerator or denominator is not a polynomial in s, or the
        expression is infinite or undefined
    """
    if expr.has(sp.zoo, sp.nan, sp.oo, -sp.oo):
        raise NotRationalError(f"'{expr}' is not finite")

    combined = sp.together(expr)
    numerator, denominator = sp.fraction(combined)
    numerator = sp.expand(numerator)
    denominator = sp.expand(denominator)

    if not (numerator.is_polynomial(_S) and denominator.is_polynomial(_S)):
        raise NotRationalError(f"'{expr}' is not a rational function of {LAPLACE_VARIABLE}")
    if denominator == 0:
        raise NotRationalError(f"'{expr}' has a zero denominator")

    return {"numerator": numerator, "denominator": denominator}


def rationalize_symbolic(node: ExpressionNode) -> SymbolicRationalForm:
    """
    Reduce a tree to N(s)/D(s), keeping parameters symbolic.

    ``pade_delay`` calls are expanded first, so a Pade-approximated delay
    rationalizes like any other rational factor.

    Parameters
    ----------
    node : ExpressionNode
        Expression of L(s); may contain parameter symbols

    Returns
    -------
    SymbolicRationalForm
        Expanded numerator and denominator

    Raises
    ------
    NotRationalError
        If the expression is not rational in s (e.g. contains exp(-s))
    DefinitionError
        If the tree contains unsupported functions
    """
    return rationalize_expr(to_sympy(node))


def rationalize(node: ExpressionNode) -> RationalFunction:
    """
    Reduce a fully bound tree to numeric coefficient vectors.

    Parameters
    ----------
    node : ExpressionNode
        Expression of L(s) with every parameter substituted

    Returns
    -------
    RationalFunction
        Ascending numerator and denominator coefficients

    Raises
    ------
    NotRationalError
        If the expression is not rational in s
    DefinitionError
        If a coefficient still depends on an undefined symbol

    Examples
    --------
    >>> rationalize(parse_expression("10/(s+1)"))
    {'numerator': [10.0], 'denominator': [1.0, 1.0]}
    """
    form = rationalize_symbolic(node)
    numerator = polynomial_coefficients(form["numerator"])
    denominator = polynomial_coefficients(form["denominator"])

    if all(abs(c) < COEFF_STRIP_TOL for c in denominator):
        raise NotRationalError(f"'{to_string(node)}' has a zero denominator")

    return {"numerator": numerator, "denominator": denominator}


def is_rational(node: ExpressionNode) -> bool:
    """True if the tree reduces to a rational function of s."""
    try:
        rationalize_symbolic(node)
    except NotRationalError:
        return False
    return True


def closed_loop_symbolic(form: SymbolicRationalForm) -> SymbolicRationalForm:
    """
    Unity-feedback closed loop T = L/(1+L) = N/(N+D), simplified.

    Examples
    --------
    >>> closed_loop_symbolic(rationalize_symbolic(parse_expression("K/(s+1)")))
    {'numerator': K, 'denominator': K + s + 1}
    """
    numerator = sp.simplify(form["numerator"])
    denominator = sp.simplify(sp.expand(form["numerator"] + form["denominator"]))
    return {"numerator": numerator, "denominator": denominator}


# ============================================================================
# Module Exports
# ============================================================================

__all__ = [
    "strip_trailing_zeros",
    "polynomial_coefficients",
    "polynomial_to_sympy",
    "rationalize_expr",
    "rationalize_symbolic",
    "rationalize",
    "is_rational",
    "closed_loop_symbolic",
]
