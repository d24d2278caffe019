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
Structure Classification

Decides how an open-loop transfer function can be analyzed:

    'rational'        L(s) = N(s)/D(s)
    'rational_delay'  L(s) = R(s) * exp(-T s), R rational, T >= 0
    'unknown'         anything else

The delay factor is found by walking the product/quotient structure of the
tree: through '*' on both sides, through the numerator of '/', and through
unary signs. Sums are never entered, so exp(-s) + 1/(s+1) is 'unknown'.

The exponent of a delay factor must reduce to (negative constant) * s,
with any arrangement of constant factors, unary minus and division by
constants: exp(-2*s), exp(-s*2), exp(-(2*s)), exp(-s/4) and
exp(2*(-s)) are all recognized.
"""

from typing import List, Optional, Tuple

from loopshape.types.symbolic import StructureClassification

from .errors import SymbolicError
from .expression_nodes import (
    LAPLACE_VARIABLE,
    BinaryOp,
    Call,
    Constant,
    ExpressionNode,
    Symbol,
    UnaryOp,
)
from .rationalization import rationalize_symbolic

# ============================================================================
# Delay Factor Detection
# ============================================================================


def _signed_factors(node: ExpressionNode) -> Optional[Tuple[int, float, List[ExpressionNode]]]:
    """
    Flatten a product into (sign, constant gain, non-constant factors).

    Returns None if a division by a non-constant or a sum is encountered.
    """
    if isinstance(node, UnaryOp):
        inner = _signed_factors(node.operand)
        if inner is None:
            return None
        sign, gain, factors = inner
        return (-sign if node.op == "-" else sign), gain, factors
    if isinstance(node, Constant):
        if isinstance(node.value, complex):
            return None
        return (-1 if node.value < 0 else 1), abs(float(node.value)), []
    if isinstance(node, BinaryOp) and node.op == "*":
        left = _signed_factors(node.left)
        right = _signed_factors(node.right)
        if left is None or right is None:
            return None
        return left[0] * right[0], left[1] * right[1], left[2] + right[2]
    if isinstance(node, BinaryOp) and node.op == "/":
        left = _signed_factors(node.left)
        right = _signed_factors(node.right)
        if left is None or right is None or right[2] or right[1] == 0:
            return None
        return left[0] * right[0], left[1] / right[1], left[2]
    return 1, 1.0, [node]


def delay_time_of(node: ExpressionNode) -> Optional[float]:
    """
    Delay time T if node is exp(-T*s), else None.

    Examples
    --------
    >>> delay_time_of(parse_expression("exp(-0.5*s)"))
    0.5
    >>> delay_time_of(parse_expression("exp(-s)"))
    1.0
    >>> delay_time_of(parse_expression("exp(s)")) is None
    True
    """
    if not (isinstance(node, Call) and node.name == "exp" and len(node.args) == 1):
        return None

    flattened = _signed_factors(node.args[0])
    if flattened is None:
        return None
    sign, gain, factors = flattened

    if sign > 0 or len(factors) != 1 or factors[0] != Symbol(LAPLACE_VARIABLE):
        return None
    return gain


def find_delay_factor(node: ExpressionNode) -> Optional[Tuple[ExpressionNode, float]]:
    """
    First exp(-T*s) factor reachable through products, numerators and signs.

    Returns
    -------
    Optional[Tuple[ExpressionNode, float]]
        (the delay node itself, T), or None
    """
    if isinstance(node, Call):
        delay = delay_time_of(node)
        if delay is not None:
            return node, delay
        return None
    if isinstance(node, UnaryOp):
        return find_delay_factor(node.operand)
    if isinstance(node, BinaryOp) and node.op == "*":
        return find_delay_factor(node.left) or find_delay_factor(node.right)
    if isinstance(node, BinaryOp) and node.op == "/":
        return find_delay_factor(node.left)
    return None


def _is_one(node: ExpressionNode) -> bool:
    return isinstance(node, Constant) and node.value == 1


def remove_factor(node: ExpressionNode, factor: ExpressionNode) -> ExpressionNode:
    """
    Replace the given factor (matched by identity) by 1 and drop the unit.

    Examples
    --------
    >>> L = parse_expression("2*exp(-s)/(s+1)")
    >>> delay_node, _ = find_delay_factor(L)
    >>> to_string(remove_factor(L, delay_node))
    '2/(s + 1)'
    """
    if node is factor:
        return Constant(1)
    if isinstance(node, UnaryOp):
        return UnaryOp(node.op, remove_factor(node.operand, factor))
    if isinstance(node, BinaryOp) and node.op == "*":
        left = remove_factor(node.left, factor)
        right = remove_factor(node.right, factor)
        if _is_one(left):
            return right
        if _is_one(right):
            return left
        return BinaryOp("*", left, right)
    if isinstance(node, BinaryOp) and node.op == "/":
        return BinaryOp("/", remove_factor(node.left, factor), node.right)
    return node


# ============================================================================
# Classification
# ============================================================================


def _reduces_to_rational(node: ExpressionNode) -> bool:
    try:
        rationalize_symbolic(node)
    except SymbolicError:
        return False
    return True


def classify_structure(node: ExpressionNode) -> StructureClassification:
    """
    Classify the structure of L(s).

    Parameters
    ----------
    node : ExpressionNode
        Bound expression of L(s)

    Returns
    -------
    StructureClassification
        type, rational part and delay time

    Examples
    --------
    >>> classify_structure(parse_expression("1/(s+1)"))['type']
    'rational'
    >>> info = classify_structure(parse_expression("exp(-0.5*s)/(s+1)"))
    >>> info['type'], info['delay_time']
    ('rational_delay', 0.5)
    >>> classify_structure(parse_expression("exp(-s) + 1/(s+1)"))['type']
    'unknown'
    """
    if _reduces_to_rational(node):
        return {"type": "rational", "rational_part": node, "delay_time": None}

    found = find_delay_factor(node)
    if found is not None:
        delay_node, delay_time = found
        remainder = remove_factor(node, delay_node)
        if _reduces_to_rational(remainder):
            return {"type": "rational_delay", "rational_part": remainder, "delay_time": delay_time}

    return {"type": "unknown", "rational_part": None, "delay_time": None}


__all__ = [
    "delay_time_of",
    "find_delay_factor",
    "remove_factor",
    "classify_structure",
]
