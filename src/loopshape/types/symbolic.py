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
Symbolic Types

Result types for the symbolic side of the engine:
- Rational function reduction (numerator/denominator coefficient vectors)
- Structure classification of L(s) (rational, rational x delay, unknown)
- Symbolic design cache entries

Mathematical Background
----------------------
Every rational transfer function can be written as

    L(s) = N(s) / D(s) = (b0 + b1 s + ... + bm s^m) / (a0 + a1 s + ... + an s^n)

A loop with a pure dead time inside the loop is written

    L(s) = R(s) * exp(-T s)

with R(s) rational and T >= 0 the delay time.

Usage
-----
>>> from loopshape.types.symbolic import RationalFunction, StructureClassification
>>>
>>> rat: RationalFunction = rationalize(parse_expression("1/(s+1)"))
>>> rat['numerator']    # [1.0]
>>> rat['denominator']  # [1.0, 1.0]
"""

from typing import TYPE_CHECKING, List, Literal, Optional

from typing_extensions import TypedDict

from .core import Coefficient

if TYPE_CHECKING:
    import sympy as sp

    from loopshape.symbolic.expression_nodes import ExpressionNode


# ============================================================================
# Type Aliases
# ============================================================================

StructureType = Literal["rational", "rational_delay", "unknown"]
"""
Structure of an open-loop transfer function.

- 'rational': L(s) = N(s)/D(s)
- 'rational_delay': L(s) = R(s) * exp(-T s), R rational
- 'unknown': anything else (e.g. exp(-s) inside a sum)
"""


# ============================================================================
# Rational Function Types
# ============================================================================


class RationalFunction(TypedDict):
    """
    Numeric rational function N(s)/D(s).

    Fields
    ------
    numerator : List[Coefficient]
        Numerator coefficients, ascending powers of s (never empty)
    denominator : List[Coefficient]
        Denominator coefficients, ascending powers of s ([1.0] when the
        expression has no denominator)

    Examples
    --------
    >>> rat: RationalFunction = rationalize(parse_expression("(s+2)/(s^2+3*s)"))
    >>> rat['numerator']    # [2.0, 1.0]
    >>> rat['denominator']  # [0.0, 3.0, 1.0]
    """

    numerator: List[Coefficient]
    denominator: List[Coefficient]


class SymbolicRationalForm(TypedDict):
    """
    Rational form that may still contain tunable parameters.

    Fields
    ------
    numerator : sp.Expr
        Expanded numerator polynomial in s
    denominator : sp.Expr
        Expanded denominator polynomial in s
    """

    numerator: "sp.Expr"
    denominator: "sp.Expr"


class StructureClassification(TypedDict):
    """
    Structure classification of L(s).

    Fields
    ------
    type : StructureType
        'rational', 'rational_delay' or 'unknown'
    rational_part : Optional[ExpressionNode]
        Expression of the rational part (L itself for 'rational',
        L with the delay factor removed for 'rational_delay', None otherwise)
    delay_time : Optional[float]
        Delay time T of the exp(-T s) factor ('rational_delay' only)

    Examples
    --------
    >>> info = classify_structure(parse_expression("exp(-0.5*s)/(s+1)"))
    >>> info['type']        # 'rational_delay'
    >>> info['delay_time']  # 0.5
    """

    type: StructureType
    rational_part: Optional["ExpressionNode"]
    delay_time: Optional[float]


# ============================================================================
# Module Exports
# ============================================================================

__all__ = [
    "StructureType",
    "RationalFunction",
    "SymbolicRationalForm",
    "StructureClassification",
]
