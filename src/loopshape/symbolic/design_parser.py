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
Design Scripts

A design is a short multi-line script of assignments plus a set of tunable
parameters:

    # PID controller with a first-order plant
    Kp = 2
    K = Kp*(1 + 1/(Ti*s) + Td*s)
    P = 1/(s+1)
    L = K*P

Rules
-----
- One ``name = expression`` per line; blank lines and ``#`` comments are
  ignored, trailing ``# ...`` comments are stripped
- Later lines may reference names defined on earlier lines; the reference
  is replaced by the earlier expression tree
- Tunable parameters are symbols during the symbolic pass and numeric
  constants during the bound pass
- Errors are collected per line (1-based) and raised together as a single
  DefinitionError
- ``L`` is the open-loop transfer function analyzed downstream

The symbolic pass is comparatively expensive (SymPy simplification of the
closed loop), so its results live in a SymbolicCache keyed by a content
hash of the script and the parameter names. Changing only parameter
values reuses the cache.
"""

import hashlib
import math
import re
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Mapping, Optional, Tuple, Union

from loopshape.types.symbolic import SymbolicRationalForm

from .errors import DefinitionError, SymbolicError
from .expression_nodes import (
    LAPLACE_VARIABLE,
    Constant,
    ExpressionNode,
    Symbol,
    is_number,
    numeric_value,
    parse_expression,
    substitute,
)
from .rationalization import closed_loop_symbolic, rationalize_symbolic

# ============================================================================
# Constants
# ============================================================================

LOOP_VARIABLE = "L"
"""Name of the open-loop transfer function in a design script."""

SLIDER_RESOLUTION = 1000
"""Number of discrete positions of a parameter slider."""

_NAME = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


# ============================================================================
# Tunable Parameters
# ============================================================================


@dataclass
class DesignParameter:
    """
    Tunable design parameter with a (possibly logarithmic) range.

    Attributes
    ----------
    name : str
        Symbol name used in the script
    value : float
        Current value
    min : float
        Lower end of the range
    max : float
        Upper end of the range
    log_scale : bool
        If True, positions map to values logarithmically

    Examples
    --------
    >>> kp = DesignParameter("Kp", value=1.0, min=0.1, max=10.0)
    >>> kp.value_at(500)
    1.0
    >>> kp.position_of(10.0)
    1000
    """

    name: str
    value: float = 1.0
    min: float = 0.1
    max: float = 100.0
    log_scale: bool = True

    def value_at(self, position: int, resolution: int = SLIDER_RESOLUTION) -> float:
        """Value at a slider position in [0, resolution]."""
        ratio = position / resolution
        if self.log_scale:
            log_min = math.log10(max(self.min, 1e-10))
            log_max = math.log10(max(self.max, 1e-10))
            return 10 ** (log_min + ratio * (log_max - log_min))
        return self.min + ratio * (self.max - self.min)

    def position_of(self, value: Optional[float] = None, resolution: int = SLIDER_RESOLUTION) -> int:
        """Slider position of a value (defaults to the current value)."""
        value = self.value if value is None else value
        if self.log_scale:
            log_min = math.log10(max(self.min, 1e-10))
            log_max = math.log10(max(self.max, 1e-10))
            log_value = math.log10(max(value, 1e-10))
            return round((log_value - log_min) / (log_max - log_min) * resolution)
        return round((value - self.min) / (self.max - self.min) * resolution)


def format_value(value: float) -> str:
    """
    Compact representation of a parameter value.

    Four significant digits; exponential notation for magnitudes >= 1000 or
    below 0.01.

    Examples
    --------
    >>> format_value(2.0)
    '2'
    >>> format_value(0.123456)
    '0.1235'
    >>> format_value(12345.0)
    '1.234e+04'
    """
    if abs(value) >= 1000 or (abs(value) < 0.01 and value != 0):
        return f"{value:.3e}"
    return f"{float(f'{value:.4g}'):g}"


def update_code_values(code: str, parameters: Iterable[DesignParameter]) -> str:
    """
    Rewrite numeric assignments to parameters with their current values.

    Lines of the form ``Kp = 1.5  # comment`` are rewritten; any other line
    is left untouched.
    """
    by_name = {p.name: p for p in parameters if p.name}
    lines = []
    for line in code.split("\n"):
        stripped = line.strip()
        if stripped and not stripped.startswith("#"):
            for name, parameter in by_name.items():
                match = re.match(rf"^(\s*{re.escape(name)}\s*=\s*)([\d.eE+-]+)(\s*(?:#.*)?)$", line)
                if match:
                    line = match.group(1) + format_value(parameter.value) + (match.group(3) or "")
                    break
        lines.append(line)
    return "\n".join(lines)


# ============================================================================
# Script Evaluation
# ============================================================================


def split_assignment(line: str) -> Optional[Tuple[str, str]]:
    """
    Split one script line into (name, expression text).

    Returns None for blank lines, comment lines and lines without an
    assignment.

    Examples
    --------
    >>> split_assignment("K = 2*s  # gain")
    ('K', '2*s')
    >>> split_assignment("# comment") is None
    True
    """
    stripped = line.strip()
    if not stripped or stripped.startswith("#"):
        return None
    eq_index = stripped.find("=")
    if eq_index <= 0:
        return None
    name = stripped[:eq_index].strip()
    expression = stripped[eq_index + 1 :].split("#", 1)[0].strip()
    if not name or not expression:
        return None
    return name, expression


def evaluate_design(
    code: str, bindings: Mapping[str, Union[ExpressionNode, float]]
) -> Dict[str, ExpressionNode]:
    """
    Evaluate a design script line by line.

    Parameters
    ----------
    code : str
        Script source
    bindings : Mapping[str, Union[ExpressionNode, float]]
        Initial environment (parameters as symbols or numbers)

    Returns
    -------
    Dict[str, ExpressionNode]
        Final environment: every initial binding plus every defined name

    Raises
    ------
    DefinitionError
        If any line fails to parse; ``line_errors`` lists all of them
    """
    env: Dict[str, ExpressionNode] = {
        name: value if not isinstance(value, (int, float, complex)) else Constant(value)
        for name, value in bindings.items()
    }
    env.pop(LAPLACE_VARIABLE, None)
    errors: List[Tuple[int, str]] = []

    for line_number, line in enumerate(code.split("\n"), start=1):
        assignment = split_assignment(line)
        if assignment is None:
            continue
        name, text = assignment
        try:
            if not _NAME.match(name) or name == LAPLACE_VARIABLE:
                raise DefinitionError(f"Invalid variable name '{name}'")
            node = parse_expression(text, variables=env.keys())
            env[name] = substitute(node, env)
        except DefinitionError as e:
            errors.append((line_number, str(e)))

    if errors:
        summary = "; ".join(f"line {n}: {msg}" for n, msg in errors)
        raise DefinitionError(summary, line_errors=errors)
    return env


def symbolic_design(code: str, parameter_names: Iterable[str]) -> Dict[str, ExpressionNode]:
    """Evaluate a script with every parameter kept as a symbol."""
    return evaluate_design(code, {name: Symbol(name) for name in parameter_names})


@dataclass
class BoundDesign:
    """
    Design script evaluated with numeric parameter values.

    Attributes
    ----------
    variables : Dict[str, ExpressionNode]
        Every defined name, parameters substituted
    parameters : Dict[str, float]
        Parameter values after script overrides (``Kp = 2`` in the script
        wins over the supplied value)
    """

    variables: Dict[str, ExpressionNode]
    parameters: Dict[str, float] = field(default_factory=dict)

    @property
    def L(self) -> ExpressionNode:
        """Open-loop transfer function; raises DefinitionError if undefined."""
        if LOOP_VARIABLE not in self.variables:
            raise DefinitionError(f"'{LOOP_VARIABLE}' is not defined")
        return self.variables[LOOP_VARIABLE]


def bind_design(code: str, parameters: Mapping[str, float]) -> BoundDesign:
    """
    Evaluate a script with numeric parameter values.

    Examples
    --------
    >>> bound = bind_design("Kp = 2\\nL = Kp/(s+1)", {"Kp": 1.0})
    >>> bound.parameters
    {'Kp': 2.0}
    >>> to_string(bound.L)
    '2/(s + 1)'
    """
    env = evaluate_design(code, {name: float(value) for name, value in parameters.items()})

    synced: Dict[str, float] = {}
    for name, value in parameters.items():
        node = env.get(name)
        if node is not None and is_number(node):
            number = numeric_value(node)
            synced[name] = float(number.real) if isinstance(number, complex) else float(number)
        else:
            synced[name] = float(value)
    return BoundDesign(variables=env, parameters=synced)


# ============================================================================
# Symbolic Cache
# ============================================================================


def design_hash(code: str, parameter_names: Iterable[str]) -> str:
    """SHA-256 content hash of a script and its parameter names."""
    digest = hashlib.sha256()
    digest.update(code.encode("utf-8"))
    digest.update(b"\0")
    digest.update(",".join(sorted(parameter_names)).encode("utf-8"))
    return digest.hexdigest()


@dataclass(frozen=True)
class SymbolicCache:
    """
    Symbolic artifacts of one design script.

    Attributes
    ----------
    key : str
        design_hash of the script and parameter names
    L : Optional[ExpressionNode]
        Symbolic L with parameters as symbols (None if undefined)
    rational : Optional[SymbolicRationalForm]
        Symbolic N(s)/D(s) of L (None if L is not rational)
    closed_loop : Optional[SymbolicRationalForm]
        Simplified T = N/(N+D) (None if L is not rational)

    Examples
    --------
    >>> cache = SymbolicCache.build("L = K/(s+1)", ["K"])
    >>> cache.closed_loop['denominator']
    K + s + 1
    >>> cache.matches("L = K/(s+1)", ["K"])
    True
    """

    key: str
    L: Optional[ExpressionNode]
    rational: Optional[SymbolicRationalForm]
    closed_loop: Optional[SymbolicRationalForm]

    @classmethod
    def build(cls, code: str, parameter_names: Iterable[str]) -> "SymbolicCache":
        """Run the symbolic pass; DefinitionError propagates on parse errors."""
        names = list(parameter_names)
        env = symbolic_design(code, names)
        L = env.get(LOOP_VARIABLE)

        rational = None
        closed_loop = None
        if L is not None:
            try:
                rational = rationalize_symbolic(L)
                closed_loop = closed_loop_symbolic(rational)
            except SymbolicError:
                rational = None
                closed_loop = None

        return cls(key=design_hash(code, names), L=L, rational=rational, closed_loop=closed_loop)

    def matches(self, code: str, parameter_names: Iterable[str]) -> bool:
        return self.key == design_hash(code, parameter_names)


# ============================================================================
# Module Exports
# ============================================================================

__all__ = [
    "LOOP_VARIABLE",
    "DesignParameter",
    "format_value",
    "update_code_values",
    "split_assignment",
    "evaluate_design",
    "symbolic_design",
    "BoundDesign",
    "bind_design",
    "design_hash",
    "SymbolicCache",
]
