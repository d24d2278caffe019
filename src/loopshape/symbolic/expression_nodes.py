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
Expression Nodes

Immutable expression tree used for every user-supplied transfer function.

Node kinds
----------
- Constant(value):            numeric literal (int, float or complex)
- Symbol(name):               the Laplace variable ``s`` or a parameter
- UnaryOp(op, operand):       '-' or '+'
- BinaryOp(op, left, right):  '+', '-', '*', '/', '^'
- Call(name, args):           exp, sin, cos, tan, sinh, cosh, tanh, sqrt,
                              log, abs, pade_delay

Every traversal below dispatches over exactly these five kinds and raises
TypeError on anything else, so adding a node kind fails loudly.

Parsing goes through SymPy's parser (with implicit multiplication and ``^``
as power) and the result is converted into the tree, so the tree can be
inspected structurally (e.g. to locate an ``exp(-T*s)`` factor) while SymPy
handles the algebra.

Examples
--------
>>> node = parse_expression("K/(s*(s+1))")
>>> free_symbols(node)
{'K', 's'}
>>> bound = substitute(node, {"K": 2.0})
>>> evaluate(bound, {"s": 1j})
(-1-1j)
"""

import cmath
import re
from dataclasses import dataclass
from tokenize import TokenError
from typing import Callable, Dict, Iterable, Optional, Set, Tuple, Union

import sympy as sp
from sympy.parsing.sympy_parser import (
    convert_xor,
    implicit_multiplication,
    parse_expr,
    standard_transformations,
)

from .errors import DefinitionError

# ============================================================================
# Node Types
# ============================================================================

UNARY_OPERATORS = ("-", "+")
BINARY_OPERATORS = ("+", "-", "*", "/", "^")


@dataclass(frozen=True)
class Constant:
    """Numeric literal."""

    value: Union[int, float, complex]


@dataclass(frozen=True)
class Symbol:
    """Named symbol: ``s`` or a design parameter."""

    name: str


@dataclass(frozen=True)
class UnaryOp:
    """Unary operator applied to one operand."""

    op: str
    operand: "ExpressionNode"

    def __post_init__(self):
        if self.op not in UNARY_OPERATORS:
            raise ValueError(f"Unknown unary operator '{self.op}'")


@dataclass(frozen=True)
class BinaryOp:
    """Binary operator applied to two operands."""

    op: str
    left: "ExpressionNode"
    right: "ExpressionNode"

    def __post_init__(self):
        if self.op not in BINARY_OPERATORS:
            raise ValueError(f"Unknown binary operator '{self.op}'")


@dataclass(frozen=True)
class Call:
    """Function call with positional arguments."""

    name: str
    args: Tuple["ExpressionNode", ...]


ExpressionNode = Union[Constant, Symbol, UnaryOp, BinaryOp, Call]
"""
Any node of the expression tree.

Nodes are frozen dataclasses: equality is structural, hashing is allowed,
and rewriting always builds new nodes.
"""

LAPLACE_VARIABLE = "s"
"""Name of the Laplace variable."""

PADE_FUNCTION = "pade_delay"
"""Name of the Pade approximant macro: pade_delay(Ld, n[, m])."""


# ============================================================================
# Function Tables
# ============================================================================

NUMERIC_FUNCTIONS: Dict[str, Callable[[complex], complex]] = {
    "exp": cmath.exp,
    "sin": cmath.sin,
    "cos": cmath.cos,
    "tan": cmath.tan,
    "sinh": cmath.sinh,
    "cosh": cmath.cosh,
    "tanh": cmath.tanh,
    "sqrt": cmath.sqrt,
    "log": cmath.log,
    "abs": lambda z: complex(abs(z)),
}

SYMPY_FUNCTIONS: Dict[str, Callable] = {
    "exp": sp.exp,
    "sin": sp.sin,
    "cos": sp.cos,
    "tan": sp.tan,
    "sinh": sp.sinh,
    "cosh": sp.cosh,
    "tanh": sp.tanh,
    "sqrt": sp.sqrt,
    "log": sp.log,
    "abs": sp.Abs,
}

SUPPORTED_FUNCTIONS = frozenset(SYMPY_FUNCTIONS) | {PADE_FUNCTION}

# SymPy class names that differ from the user-facing function name
_SYMPY_NAME_ALIASES = {"Abs": "abs"}

# Constants recognized by the parser unless shadowed by a design variable
_NAMED_CONSTANTS = {"pi": sp.pi, "e": sp.E, "i": sp.I}

_IDENTIFIER = re.compile(r"[A-Za-z_][A-Za-z0-9_]*")


# ============================================================================
# Traversal
# ============================================================================


def map_children(node: ExpressionNode, fn: Callable[[ExpressionNode], ExpressionNode]) -> ExpressionNode:
    """
    Rebuild ``node`` with ``fn`` applied to each direct child.

    Leaves are returned unchanged. The node itself is returned (not a copy)
    when no child changed, so identity comparisons keep working.
    """
    if isinstance(node, (Constant, Symbol)):
        return node
    if isinstance(node, UnaryOp):
        operand = fn(node.operand)
        return node if operand is node.operand else UnaryOp(node.op, operand)
    if isinstance(node, BinaryOp):
        left = fn(node.left)
        right = fn(node.right)
        if left is node.left and right is node.right:
            return node
        return BinaryOp(node.op, left, right)
    if isinstance(node, Call):
        args = tuple(fn(arg) for arg in node.args)
        if all(a is b for a, b in zip(args, node.args)):
            return node
        return Call(node.name, args)
    raise TypeError(f"Unknown expression node: {type(node).__name__}")


def transform(node: ExpressionNode, fn: Callable[[ExpressionNode], ExpressionNode]) -> ExpressionNode:
    """Bottom-up rewrite: children first, then ``fn`` on the rebuilt node."""
    return fn(map_children(node, lambda child: transform(child, fn)))


def iter_nodes(node: ExpressionNode) -> Iterable[ExpressionNode]:
    """Pre-order iteration over every node of the tree."""
    yield node
    if isinstance(node, (Constant, Symbol)):
        return
    if isinstance(node, UnaryOp):
        yield from iter_nodes(node.operand)
    elif isinstance(node, BinaryOp):
        yield from iter_nodes(node.left)
        yield from iter_nodes(node.right)
    elif isinstance(node, Call):
        for arg in node.args:
            yield from iter_nodes(arg)
    else:
        raise TypeError(f"Unknown expression node: {type(node).__name__}")


def free_symbols(node: ExpressionNode) -> Set[str]:
    """Names of all symbols appearing in the tree (including ``s``)."""
    return {n.name for n in iter_nodes(node) if isinstance(n, Symbol)}


def substitute(
    node: ExpressionNode, bindings: Dict[str, Union[ExpressionNode, int, float, complex]]
) -> ExpressionNode:
    """
    Replace symbols by values or sub-trees.

    Parameters
    ----------
    node : ExpressionNode
        Tree to rewrite
    bindings : Dict[str, Union[ExpressionNode, int, float, complex]]
        Symbol name -> replacement. Plain numbers become Constant nodes.

    Returns
    -------
    ExpressionNode
        New tree; symbols without a binding are left in place

    Examples
    --------
    >>> substitute(parse_expression("Kp*s"), {"Kp": 2.5})
    BinaryOp(op='*', left=Constant(value=2.5), right=Symbol(name='s'))
    """
    replacements = {
        name: value if isinstance(value, (Constant, Symbol, UnaryOp, BinaryOp, Call)) else Constant(value)
        for name, value in bindings.items()
    }

    def _replace(n: ExpressionNode) -> ExpressionNode:
        if isinstance(n, Symbol) and n.name in replacements:
            return replacements[n.name]
        return n

    return transform(node, _replace)


def is_number(node: ExpressionNode) -> bool:
    """True for a Constant, possibly under unary signs."""
    while isinstance(node, UnaryOp):
        node = node.operand
    return isinstance(node, Constant)


def numeric_value(node: ExpressionNode) -> complex:
    """Value of a (signed) Constant node."""
    sign = 1
    while isinstance(node, UnaryOp):
        if node.op == "-":
            sign = -sign
        node = node.operand
    if not isinstance(node, Constant):
        raise DefinitionError(f"Expected a numeric constant, got '{to_string(node)}'")
    return sign * node.value


# ============================================================================
# Numeric Evaluation
# ============================================================================


def evaluate(node: ExpressionNode, bindings: Optional[Dict[str, complex]] = None) -> complex:
    """
    Evaluate the tree with complex arithmetic.

    Parameters
    ----------
    node : ExpressionNode
        Tree to evaluate
    bindings : Optional[Dict[str, complex]]
        Values for the free symbols (typically {'s': ...})

    Returns
    -------
    complex
        Value of the expression

    Raises
    ------
    DefinitionError
        If a symbol has no binding or a function is unsupported
    ZeroDivisionError
        If a division by zero occurs
    """
    bindings = bindings or {}

    if isinstance(node, Constant):
        return complex(node.value)
    if isinstance(node, Symbol):
        if node.name not in bindings:
            raise DefinitionError(f"Undefined symbol '{node.name}'")
        return complex(bindings[node.name])
    if isinstance(node, UnaryOp):
        value = evaluate(node.operand, bindings)
        return -value if node.op == "-" else value
    if isinstance(node, BinaryOp):
        left = evaluate(node.left, bindings)
        right = evaluate(node.right, bindings)
        if node.op == "+":
            return left + right
        if node.op == "-":
            return left - right
        if node.op == "*":
            return left * right
        if node.op == "/":
            return left / right
        # Integer exponents keep exact repeated multiplication
        if right.imag == 0 and float(right.real).is_integer():
            return left ** int(right.real)
        return left**right
    if isinstance(node, Call):
        if node.name == PADE_FUNCTION:
            from .pade import expand_pade_delay

            return evaluate(expand_pade_delay(node), bindings)
        if node.name not in NUMERIC_FUNCTIONS:
            raise DefinitionError(f"Unsupported function '{node.name}'")
        if len(node.args) != 1:
            raise DefinitionError(f"Function '{node.name}' expects 1 argument, got {len(node.args)}")
        return complex(NUMERIC_FUNCTIONS[node.name](evaluate(node.args[0], bindings)))
    raise TypeError(f"Unknown expression node: {type(node).__name__}")


# ============================================================================
# SymPy Conversion
# ============================================================================


def _sympy_constant(value: Union[int, float, complex]) -> sp.Expr:
    if isinstance(value, complex):
        if value.imag == 0:
            return _sympy_constant(value.real)
        return _sympy_constant(value.real) + _sympy_constant(value.imag) * sp.I
    if isinstance(value, float):
        # Integral floats become exact integers so that s^2.0 stays a polynomial
        if value.is_integer() and abs(value) < 1e15:
            return sp.Integer(int(value))
        return sp.Float(value)
    return sp.Integer(int(value))


def to_sympy(node: ExpressionNode) -> sp.Expr:
    """
    Convert the tree to a SymPy expression.

    ``pade_delay`` calls are expanded into their rational form first.

    Raises
    ------
    DefinitionError
        For unsupported functions or bad argument counts
    """
    if isinstance(node, Constant):
        return _sympy_constant(node.value)
    if isinstance(node, Symbol):
        return sp.Symbol(node.name)
    if isinstance(node, UnaryOp):
        operand = to_sympy(node.operand)
        return -operand if node.op == "-" else operand
    if isinstance(node, BinaryOp):
        left = to_sympy(node.left)
        right = to_sympy(node.right)
        if node.op == "+":
            return left + right
        if node.op == "-":
            return left - right
        if node.op == "*":
            return left * right
        if node.op == "/":
            return left / right
        return left**right
    if isinstance(node, Call):
        if node.name == PADE_FUNCTION:
            from .pade import expand_pade_delay

            return to_sympy(expand_pade_delay(node))
        if node.name not in SYMPY_FUNCTIONS:
            raise DefinitionError(f"Unsupported function '{node.name}'")
        if len(node.args) != 1:
            raise DefinitionError(f"Function '{node.name}' expects 1 argument, got {len(node.args)}")
        return SYMPY_FUNCTIONS[node.name](to_sympy(node.args[0]))
    raise TypeError(f"Unknown expression node: {type(node).__name__}")


def _constant_node(value: Union[int, float, complex]) -> ExpressionNode:
    """Constant with the sign of a negative real value lifted into a UnaryOp."""
    if isinstance(value, complex) and value.imag == 0:
        value = value.real
    if not isinstance(value, complex) and value < 0:
        return UnaryOp("-", Constant(-value))
    return Constant(value)


def _product(factors) -> ExpressionNode:
    node = from_sympy(factors[0])
    for factor in factors[1:]:
        node = BinaryOp("*", node, from_sympy(factor))
    return node


def _from_mul(expr: sp.Mul) -> ExpressionNode:
    negative = False
    numerator = []
    denominator = []
    for arg in expr.args:
        if arg.is_Number:
            if arg.is_negative:
                negative = not negative
                arg = -arg
            if arg == 1:
                continue
            if arg.is_Rational and not arg.is_Integer:
                if arg.p != 1:
                    numerator.append(sp.Integer(arg.p))
                denominator.append(sp.Integer(arg.q))
                continue
        elif arg.is_Pow and arg.exp.is_Number and arg.exp.is_negative and arg.base != sp.E:
            exponent = -arg.exp
            denominator.append(arg.base if exponent == 1 else sp.Pow(arg.base, exponent, evaluate=False))
            continue
        numerator.append(arg)

    node = _product(numerator) if numerator else Constant(1)
    if denominator:
        node = BinaryOp("/", node, _product(denominator))
    return UnaryOp("-", node) if negative else node


def from_sympy(expr: sp.Basic) -> ExpressionNode:
    """
    Convert a SymPy expression into an expression tree.

    Products are split into a numerator and a denominator so that
    ``Mul(a, Pow(b, -1))`` becomes ``a / b``, and negative numeric
    coefficients become unary minus.

    Raises
    ------
    DefinitionError
        For SymPy constructs outside the supported node kinds
    """
    if expr.is_Symbol:
        return Symbol(expr.name)
    if expr.is_Integer:
        return _constant_node(int(expr))
    if expr.is_Rational:
        node = BinaryOp("/", Constant(abs(int(expr.p))), Constant(int(expr.q)))
        return UnaryOp("-", node) if expr.p < 0 else node
    if expr.is_Float:
        return _constant_node(float(expr))
    if expr is sp.I:
        return Constant(1j)
    if expr.is_NumberSymbol:
        return Constant(float(expr))
    if expr.is_Add:
        terms = list(expr.args)
        node = from_sympy(terms[0])
        for term in terms[1:]:
            converted = from_sympy(term)
            if isinstance(converted, UnaryOp) and converted.op == "-":
                node = BinaryOp("-", node, converted.operand)
            else:
                node = BinaryOp("+", node, converted)
        return node
    if expr.is_Mul:
        return _from_mul(expr)
    if expr.is_Pow:
        base, exponent = expr.args
        if base == sp.E:
            return Call("exp", (from_sympy(exponent),))
        if exponent == sp.Rational(1, 2):
            return Call("sqrt", (from_sympy(base),))
        if exponent.is_Number and exponent.is_negative:
            positive = -exponent
            inner = from_sympy(base) if positive == 1 else BinaryOp("^", from_sympy(base), from_sympy(positive))
            return BinaryOp("/", Constant(1), inner)
        return BinaryOp("^", from_sympy(base), from_sympy(exponent))
    if expr.is_Function:
        name = _SYMPY_NAME_ALIASES.get(expr.func.__name__, expr.func.__name__)
        if name not in SUPPORTED_FUNCTIONS:
            raise DefinitionError(f"Unsupported function '{name}'")
        return Call(name, tuple(from_sympy(arg) for arg in expr.args))
    if expr.is_number:
        return _constant_node(complex(expr))
    raise DefinitionError(f"Unsupported expression '{expr}'")


# ============================================================================
# Parsing
# ============================================================================

_TRANSFORMATIONS = standard_transformations + (implicit_multiplication, convert_xor)


def parse_expression(text: str, variables: Iterable[str] = ()) -> ExpressionNode:
    """
    Parse an infix expression into a tree.

    Supports + - * / ^ (and **), parentheses, implicit multiplication,
    the functions in SUPPORTED_FUNCTIONS and the constants pi, e and i.
    Any other identifier becomes a Symbol, including names that SymPy
    would otherwise treat specially (N, S, E, I, ...).

    Parameters
    ----------
    text : str
        Expression source, e.g. "Kp*(1 + 1/(Ti*s))"
    variables : Iterable[str]
        Names defined by the surrounding design; these shadow the named
        constants pi, e and i

    Returns
    -------
    ExpressionNode
        Parsed tree

    Raises
    ------
    DefinitionError
        On syntax errors or unsupported functions

    Examples
    --------
    >>> parse_expression("exp(-0.5 s)/(s+1)")
    >>> parse_expression("pade_delay(0.5, 2)*10/(s+1)")
    """
    if text is None or not text.strip():
        raise DefinitionError("Empty expression")

    shadowed = set(variables)
    local_dict: Dict[str, object] = {name: fn for name, fn in SYMPY_FUNCTIONS.items()}
    local_dict[PADE_FUNCTION] = sp.Function(PADE_FUNCTION)
    for name in set(_IDENTIFIER.findall(text)):
        if name in SUPPORTED_FUNCTIONS:
            continue
        if name in _NAMED_CONSTANTS and name not in shadowed:
            local_dict[name] = _NAMED_CONSTANTS[name]
        else:
            local_dict[name] = sp.Symbol(name)

    try:
        expr = parse_expr(
            text,
            local_dict=local_dict,
            transformations=_TRANSFORMATIONS,
            evaluate=False,
        )
    except (SyntaxError, TokenError, TypeError, ValueError, AttributeError) as e:
        raise DefinitionError(f"Cannot parse '{text.strip()}': {e}") from e

    if not isinstance(expr, sp.Basic):
        raise DefinitionError(f"Cannot parse '{text.strip()}': not an expression")
    return from_sympy(expr)


# ============================================================================
# Printing
# ============================================================================

_PRECEDENCE = {"+": 1, "-": 1, "*": 2, "/": 2, "unary": 3, "^": 4, "atom": 5}


def _precedence(node: ExpressionNode) -> int:
    if isinstance(node, BinaryOp):
        return _PRECEDENCE[node.op]
    if isinstance(node, UnaryOp):
        return _PRECEDENCE["unary"]
    if isinstance(node, Constant) and isinstance(node.value, complex):
        return _PRECEDENCE["atom"]
    if isinstance(node, Constant) and node.value < 0:
        return _PRECEDENCE["unary"]
    return _PRECEDENCE["atom"]


def _format_number(value: Union[int, float, complex]) -> str:
    if isinstance(value, complex):
        if value.real == 0:
            return f"{_format_number(value.imag)}*i"
        sign = "+" if value.imag >= 0 else "-"
        return f"({_format_number(value.real)} {sign} {_format_number(abs(value.imag))}*i)"
    if isinstance(value, float) and value.is_integer() and abs(value) < 1e15:
        return str(int(value))
    return repr(value)


def to_string(node: ExpressionNode) -> str:
    """
    Infix representation with the minimum number of parentheses.

    The output parses back (via parse_expression) to an equivalent tree.
    """

    def wrap(child: ExpressionNode, needs_parens: bool) -> str:
        text = to_string(child)
        return f"({text})" if needs_parens else text

    if isinstance(node, Constant):
        return _format_number(node.value)
    if isinstance(node, Symbol):
        return node.name
    if isinstance(node, UnaryOp):
        return node.op + wrap(node.operand, _precedence(node.operand) < _PRECEDENCE["unary"])
    if isinstance(node, BinaryOp):
        prec = _PRECEDENCE[node.op]
        if node.op == "^":
            left = wrap(node.left, _precedence(node.left) <= prec)
            right = wrap(node.right, _precedence(node.right) < prec)
            return f"{left}^{right}"
        left = wrap(node.left, _precedence(node.left) < prec)
        right_prec = _precedence(node.right)
        right = wrap(node.right, right_prec < prec or (right_prec == prec and node.op in "-/"))
        return f"{left} {node.op} {right}" if prec == 1 else f"{left}{node.op}{right}"
    if isinstance(node, Call):
        return f"{node.name}({', '.join(to_string(arg) for arg in node.args)})"
    raise TypeError(f"Unknown expression node: {type(node).__name__}")


# ============================================================================
# Module Exports
# ============================================================================

__all__ = [
    "Constant",
    "Symbol",
    "UnaryOp",
    "BinaryOp",
    "Call",
    "ExpressionNode",
    "LAPLACE_VARIABLE",
    "PADE_FUNCTION",
    "SUPPORTED_FUNCTIONS",
    "map_children",
    "transform",
    "iter_nodes",
    "free_symbols",
    "substitute",
    "is_number",
    "numeric_value",
    "evaluate",
    "to_sympy",
    "from_sympy",
    "parse_expression",
    "to_string",
]
