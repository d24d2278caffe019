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
Code generation utilities.

Compiles expression trees into vectorized NumPy evaluators of L(s) via
SymPy's lambdify, and evaluates them on batches of s-plane points.

Return Type Convention:
    - Scalar input: returns a Python complex
    - Array input: returns a complex128 array of the same shape

Evaluation near a pole may produce inf/nan instead of raising; floating
point warnings are silenced during evaluation and callers inspect the
``valid`` mask returned by evaluate_on_points.
"""

from typing import Tuple

import numpy as np
import sympy as sp

from loopshape.types.core import ComplexArray, TransferFunctionEvaluator

from .errors import DefinitionError
from .expression_nodes import LAPLACE_VARIABLE, ExpressionNode, free_symbols, to_sympy
from .pade import expand_pade_delay


def compile_expression(node: ExpressionNode, variable: str = LAPLACE_VARIABLE) -> TransferFunctionEvaluator:
    """
    Generate a NumPy evaluator from an expression tree.

    Args:
        node: Expression tree; every symbol other than ``variable`` must
            already be substituted
        variable: Name of the independent variable

    Returns:
        Callable accepting a complex scalar or array

    Raises:
        DefinitionError: If the tree still contains unbound symbols, is
            infinite or undefined everywhere, or cannot be printed as NumPy code

    Examples:
        >>> L = compile_expression(parse_expression("1/(s+1)"))
        >>> L(0.0)
        (1+0j)
        >>> L(1j * np.array([0.0, 1.0]))
        array([1. +0.j , 0.5-0.5j])
    """
    expanded = expand_pade_delay(node)
    unresolved = free_symbols(expanded) - {variable}
    if unresolved:
        raise DefinitionError(f"Undefined symbol(s): {', '.join(sorted(unresolved))}")

    expr = to_sympy(expanded)
    if expr.has(sp.zoo, sp.nan, sp.oo, -sp.oo):
        raise DefinitionError(f"Expression is not finite anywhere: {expr}")

    symbol = sp.Symbol(variable)
    try:
        func = sp.lambdify(symbol, expr, modules="numpy")
    except (KeyError, NameError, SyntaxError, TypeError) as e:
        raise DefinitionError(f"Cannot compile expression {expr}: {e}") from e

    def wrapped_func(s_values):
        s_arr = np.asarray(s_values, dtype=complex)
        with np.errstate(all="ignore"):
            result = np.asarray(func(s_arr), dtype=complex)

        # Constant expressions return a scalar regardless of the input shape
        if result.shape != s_arr.shape:
            result = np.broadcast_to(result, s_arr.shape).copy()

        if s_arr.ndim == 0:
            return complex(result)
        return result

    return wrapped_func


def evaluate_on_points(evaluator: TransferFunctionEvaluator, points) -> Tuple[ComplexArray, np.ndarray]:
    """
    Evaluate L(s) on a batch of points.

    Tries one vectorized call first and falls back to point-by-point
    evaluation if the evaluator raises, so that a single bad point does
    not discard the whole batch.

    Args:
        evaluator: Compiled L(s)
        points: Complex points (any array-like)

    Returns:
        (values, valid): complex values (nan where evaluation failed) and a
        boolean mask of finite results
    """
    s_arr = np.asarray(points, dtype=complex).ravel()

    try:
        with np.errstate(all="ignore"):
            values = np.asarray(evaluator(s_arr), dtype=complex).ravel()
        if values.shape != s_arr.shape:
            raise ValueError("Evaluator returned a result of the wrong shape")
    except (ArithmeticError, ValueError, TypeError):
        values = np.empty_like(s_arr)
        for i, s in enumerate(s_arr):
            try:
                with np.errstate(all="ignore"):
                    values[i] = complex(evaluator(complex(s)))
            except (ArithmeticError, ValueError, TypeError):
                values[i] = complex(np.nan, np.nan)

    return values, np.isfinite(values)


__all__ = [
    "compile_expression",
    "evaluate_on_points",
]
