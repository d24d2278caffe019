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
Built-in Examples

Catalog of typical controllers K(s), plants P(s) and filters F(s) as
design-script snippets. Each snippet defines its tunable constants first
and then the transfer function (K, P, D or F).

Usage
-----
>>> from loopshape.systems.builtin import get_example, compose_loop
>>>
>>> pi = get_example("PI Controller")
>>> print(pi.code)
Kp = 1
Ti = 0.5
K = Kp * (1 + 1/(Ti*s))
>>>
>>> script = compose_loop(pi, get_example("First-order System"))
>>> script.splitlines()[-1]
'L = K * P'
"""

from dataclasses import dataclass
from typing import List, Optional

from loopshape.types.symbolic import StructureType


@dataclass(frozen=True)
class ExampleSnippet:
    """
    One catalog entry.

    Attributes
    ----------
    name : str
        Display name (unique across the catalog)
    category : str
        'controller', 'plant' or 'filter'
    latex : str
        LaTeX formula of the transfer function
    code : str
        Design-script snippet
    structure : StructureType
        Structure of the defined transfer function once classified
    """

    name: str
    category: str
    latex: str
    code: str
    structure: StructureType = "rational"

    @property
    def output_name(self) -> str:
        """Name assigned on the last line of the snippet."""
        return self.code.strip().splitlines()[-1].split("=", 1)[0].strip()


# ============================================================================
# Controllers
# ============================================================================

EXAMPLE_CONTROLLERS: List[ExampleSnippet] = [
    ExampleSnippet(
        "P Controller",
        "controller",
        r"K(s) = K_p",
        "Kp = 1\nK = Kp",
    ),
    ExampleSnippet(
        "PI Controller",
        "controller",
        r"K(s) = K_p\left(1 + \frac{1}{T_i s}\right)",
        "Kp = 1\nTi = 0.5\nK = Kp * (1 + 1/(Ti*s))",
    ),
    ExampleSnippet(
        "PD Controller (Ideal)",
        "controller",
        r"K(s) = K_p (1 + T_d s)",
        "Kp = 1\nTd = 0.1\nK = Kp * (1 + Td*s)",
    ),
    ExampleSnippet(
        "PID Controller (Ideal)",
        "controller",
        r"K(s) = K_p \left(1 + \frac{1}{T_i s} + T_d s\right)",
        "Kp = 1\nTi = 2\nTd = 0.1\nK = Kp * (1 + 1/(Ti*s) + Td*s)",
    ),
    ExampleSnippet(
        "PD Controller (with roll-off)",
        "controller",
        r"K(s)=K_p\left(1+\frac{T_d s}{1+\frac{T_d}{N}s}\right)",
        "Kp = 1\nTd = 0.1\nN = 10\nK = Kp * (1 + (Td*s)/(1 + (Td/N)*s))",
    ),
    ExampleSnippet(
        "PID Controller (with roll-off)",
        "controller",
        r"K(s)=K_p\left(1+\frac{1}{T_i s}+\frac{T_d s}{1+\frac{T_d}{N}s}\right)",
        "Kp = 1\nTi = 2\nTd = 0.1\nN = 10\nK = Kp * (1 + 1/(Ti*s) + (Td*s)/(1 + (Td/N)*s))",
    ),
    ExampleSnippet(
        "Lead Compensator",
        "controller",
        r"K(s) = k \frac{Ts+1}{\alpha Ts+1} \quad (\alpha < 1)",
        "k = 2\nT = 0.1\nalpha = 0.1\nK = k * (T*s + 1) / (alpha*T*s + 1)",
    ),
    ExampleSnippet(
        "Lag Compensator",
        "controller",
        r"K(s) = k \frac{\alpha(Ts+1)}{\alpha Ts + 1} \quad (\alpha > 1)",
        "k = 1\nT = 1\nalpha = 10\nK = k * alpha*(T*s + 1) / (alpha*T*s + 1)",
    ),
]


# ============================================================================
# Plants
# ============================================================================

EXAMPLE_PLANTS: List[ExampleSnippet] = [
    ExampleSnippet(
        "First-order System",
        "plant",
        r"P(s) = \frac{1}{Ts + 1}",
        "T = 1\nP = 1 / (T*s + 1)",
    ),
    ExampleSnippet(
        "First-order + Delay (exact, exp)",
        "plant",
        r"P(s) = \frac{1}{Ts + 1} e^{-L_d s}",
        "T = 1\nLd = 0.5\nP = 1 / (T*s + 1) * exp(-Ld*s)",
        structure="rational_delay",
    ),
    ExampleSnippet(
        "Delay (Padé 1,1)",
        "plant",
        r"e^{-L_d s}\approx\frac{1-\frac{L_d}{2}s}{1+\frac{L_d}{2}s}",
        "Ld = 0.5\nD = (1 - (Ld/2)*s) / (1 + (Ld/2)*s)",
    ),
    ExampleSnippet(
        "First-order + Delay (Padé 1,1)",
        "plant",
        r"P(s)=\frac{1}{Ts+1}\,\frac{1-\frac{L_d}{2}s}{1+\frac{L_d}{2}s}",
        "T = 1\nLd = 0.5\nD = (1 - (Ld/2)*s) / (1 + (Ld/2)*s)\nP = 1 / (T*s + 1) * D",
    ),
    ExampleSnippet(
        "Delay (Padé 2,2)",
        "plant",
        r"e^{-L_d s}\approx\frac{1-\frac{L_d}{2}s+\frac{(L_d s)^2}{12}}"
        r"{1+\frac{L_d}{2}s+\frac{(L_d s)^2}{12}}",
        "Ld = 0.5\nD = (1 - (Ld/2)*s + (Ld^2/12)*s^2) / (1 + (Ld/2)*s + (Ld^2/12)*s^2)",
    ),
    ExampleSnippet(
        "Delay (Padé n,m)",
        "plant",
        r"e^{-L_d s}\approx\text{pade\_delay}(L_d,n,m)",
        "Ld = 0.5\nD = pade_delay(Ld, 3, 3)",
    ),
    ExampleSnippet(
        "Second-order System",
        "plant",
        r"P(s) = \frac{\omega_n^2}{s^2 + 2\zeta\omega_n s + \omega_n^2}",
        "wn = 1\nzeta = 0.5\nP = wn^2 / (s^2 + 2*zeta*wn*s + wn^2)",
    ),
    ExampleSnippet(
        "Integrator",
        "plant",
        r"P(s) = \frac{1}{s}",
        "P = 1 / s",
    ),
    ExampleSnippet(
        "Double Integrator",
        "plant",
        r"P(s) = \frac{1}{s^2}",
        "P = 1 / s^2",
    ),
    ExampleSnippet(
        "Integrator + First-order",
        "plant",
        r"P(s) = \frac{1}{s(Ts + 1)}",
        "T = 1\nP = 1 / (s * (T*s + 1))",
    ),
    ExampleSnippet(
        "Unstable First-order",
        "plant",
        r"P(s) = \frac{1}{Ts - 1}",
        "T = 1\nP = 1 / (T*s - 1)",
    ),
    ExampleSnippet(
        "Non-minimum Phase",
        "plant",
        r"P(s) = \frac{1 - T_z s}{(T_1 s + 1)(T_2 s + 1)}",
        "Tz = 0.5\nT1 = 1\nT2 = 0.2\nP = (1 - Tz*s) / ((T1*s + 1) * (T2*s + 1))",
    ),
]


# ============================================================================
# Filters
# ============================================================================

EXAMPLE_FILTERS: List[ExampleSnippet] = [
    ExampleSnippet(
        "Low-pass Filter (1st order)",
        "filter",
        r"F(s)=\frac{1}{Ts+1}",
        "T = 0.1\nF = 1 / (T*s + 1)",
    ),
    ExampleSnippet(
        "Low-pass Filter (2nd order)",
        "filter",
        r"F(s)=\frac{\omega_n^2}{s^2+2\zeta\omega_n s+\omega_n^2}",
        "wn = 10\nzeta = 0.707\nF = wn^2 / (s^2 + 2*zeta*wn*s + wn^2)",
    ),
    ExampleSnippet(
        "High-pass Filter (1st order)",
        "filter",
        r"F(s)=\frac{Ts}{Ts+1}",
        "T = 0.1\nF = (T*s) / (T*s + 1)",
    ),
    ExampleSnippet(
        "Band-pass Filter",
        "filter",
        r"F(s)=\frac{2\zeta\omega_n s}{s^2+2\zeta\omega_n s+\omega_n^2}",
        "wn = 10\nzeta = 0.5\nF = 2*zeta*wn*s / (s^2 + 2*zeta*wn*s + wn^2)",
    ),
    ExampleSnippet(
        "Notch Filter",
        "filter",
        r"F(s)=\frac{s^2+\omega_n^2}{s^2+2\zeta\omega_n s+\omega_n^2}",
        "wn = 10\nzeta = 0.1\nF = (s^2 + wn^2) / (s^2 + 2*zeta*wn*s + wn^2)",
    ),
    ExampleSnippet(
        "Derivative Roll-off (Washout / D-filter)",
        "filter",
        r"F(s)=\frac{T_d s}{1+\frac{T_d}{N}s}",
        "Td = 0.05\nN = 10\nF = (Td*s) / (1 + (Td/N)*s)",
    ),
    ExampleSnippet(
        "Moving-average (delay average)",
        "filter",
        r"F(s)=\frac{1-e^{-L_d s}}{L_d s}",
        "Ld = 0.1\nF = (1 - exp(-Ld*s)) / (Ld*s)",
        structure="unknown",
    ),
]


# ============================================================================
# Lookup
# ============================================================================


def all_examples() -> List[ExampleSnippet]:
    """Every catalog entry: controllers, then plants, then filters."""
    return EXAMPLE_CONTROLLERS + EXAMPLE_PLANTS + EXAMPLE_FILTERS


def get_example(name: str) -> ExampleSnippet:
    """
    Catalog entry by display name.

    Raises
    ------
    KeyError
        If no entry has this name
    """
    for example in all_examples():
        if example.name == name:
            return example
    raise KeyError(f"Unknown example '{name}'")


def compose_loop(
    controller: ExampleSnippet,
    plant: ExampleSnippet,
    loop_filter: Optional[ExampleSnippet] = None,
) -> str:
    """
    Design script L = K * P (* F) from catalog snippets.

    Snippets are concatenated in order; a constant redefined by a later
    snippet does not affect transfer functions defined before it.

    Examples
    --------
    >>> script = compose_loop(get_example("P Controller"), get_example("Integrator"))
    >>> print(script)
    Kp = 1
    K = Kp
    P = 1 / s
    L = K * P
    """
    parts = [controller, plant] + ([loop_filter] if loop_filter is not None else [])
    product = " * ".join(part.output_name for part in parts)
    return "\n".join([part.code for part in parts] + [f"L = {product}"])


# ============================================================================
# Module Exports
# ============================================================================

__all__ = [
    "ExampleSnippet",
    "EXAMPLE_CONTROLLERS",
    "EXAMPLE_PLANTS",
    "EXAMPLE_FILTERS",
    "all_examples",
    "get_example",
    "compose_loop",
]
