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
Symbolic Layer

Expression trees, parsing, rational reduction, Pade expansion, structure
classification and design scripts.
"""

from .codegen_utils import compile_expression, evaluate_on_points
from .design_parser import (
    BoundDesign,
    DesignParameter,
    SymbolicCache,
    bind_design,
    evaluate_design,
    symbolic_design,
)
from .errors import DefinitionError, NotRationalError, SymbolicError
from .expression_nodes import (
    BinaryOp,
    Call,
    Constant,
    ExpressionNode,
    Symbol,
    UnaryOp,
    evaluate,
    free_symbols,
    parse_expression,
    substitute,
    to_string,
)
from .pade import build_pade_node, expand_pade_delay, pade_coefficient
from .rationalization import rationalize, rationalize_symbolic, strip_trailing_zeros
from .structure_classifier import classify_structure

__all__ = [
    # Errors
    "SymbolicError",
    "DefinitionError",
    "NotRationalError",
    # Expression trees
    "Constant",
    "Symbol",
    "UnaryOp",
    "BinaryOp",
    "Call",
    "ExpressionNode",
    "parse_expression",
    "evaluate",
    "substitute",
    "free_symbols",
    "to_string",
    "compile_expression",
    "evaluate_on_points",
    # Rational forms
    "rationalize",
    "rationalize_symbolic",
    "strip_trailing_zeros",
    "pade_coefficient",
    "build_pade_node",
    "expand_pade_delay",
    "classify_structure",
    # Design scripts
    "DesignParameter",
    "BoundDesign",
    "SymbolicCache",
    "evaluate_design",
    "symbolic_design",
    "bind_design",
]
