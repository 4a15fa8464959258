"""
xylab: Monte Carlo simulation of the classical 2D XY model.

Lattice state, observable bookkeeping and five interchangeable update
algorithms (Metropolis, overrelaxation, Metropolis reflection, Wolff and
Swendsen-Wang), plus run drivers and temperature scans.
"""

__version__ = "0.1.0"

from . import core
from . import analysis
from . import utils

from .core import XYModel, MonteCarlo, SquareLattice, ALGORITHMS
from .core.observables import energy_per_spin, magnetization_per_spin
from .analysis import TemperatureScan, temperature_grid, find_critical_temperature

__all__ = [
    "XYModel",
    "MonteCarlo",
    "SquareLattice",
    "ALGORITHMS",
    "energy_per_spin",
    "magnetization_per_spin",
    "TemperatureScan",
    "temperature_grid",
    "find_critical_temperature",
    "core",
    "analysis",
    "utils"
]
