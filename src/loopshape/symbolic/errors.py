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
Symbolic Exceptions

Exception hierarchy for the symbolic layer. All exceptions derive from
ValueError so that callers treating bad user input generically keep working.
"""

from typing import List, Optional, Tuple

# ============================================================================
# Exceptions
# ============================================================================


class SymbolicError(ValueError):
    """Base class for errors raised by the symbolic layer"""
    pass


class DefinitionError(SymbolicError):
    """
    Raised when a user definition is malformed.

    Covers syntax errors, undefined symbols, unsupported functions and
    invalid ``pade_delay`` arguments.

    Attributes
    ----------
    line_errors : List[Tuple[int, str]]
        (1-based line number, message) pairs for design scripts; empty for
        single expressions

    Examples
    --------
    >>> try:
    ...     evaluate_design("L = 1/(s+", {})
    ... except DefinitionError as e:
    ...     print(e.line_errors)  # [(1, '...')]
    """

    def __init__(self, message: str, line_errors: Optional[List[Tuple[int, str]]] = None):
        super().__init__(message)
        self.line_errors: List[Tuple[int, str]] = list(line_errors or [])


class NotRationalError(SymbolicError):
    """Raised when an expression cannot be reduced to N(s)/D(s)"""
    pass


__all__ = [
    "SymbolicError",
    "DefinitionError",
    "NotRationalError",
]
