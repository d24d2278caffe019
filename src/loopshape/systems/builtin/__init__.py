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

"""Built-in controllers, plants and filters as design-script snippets."""

from .examples import (
    EXAMPLE_CONTROLLERS,
    EXAMPLE_FILTERS,
    EXAMPLE_PLANTS,
    ExampleSnippet,
    all_examples,
    compose_loop,
    get_example,
)

__all__ = [
    "ExampleSnippet",
    "EXAMPLE_CONTROLLERS",
    "EXAMPLE_PLANTS",
    "EXAMPLE_FILTERS",
    "all_examples",
    "get_example",
    "compose_loop",
]
