"""Core XY model simulation functionality."""

from .lattice import SquareLattice
from .observables import energy_per_spin, magnetization_per_spin
from .xy_model import XYModel, ALGORITHMS
from .monte_carlo import MonteCarlo

__all__ = ["SquareLattice", "energy_per_spin", "magnetization_per_spin", "XYModel", "ALGORITHMS", "MonteCarlo"]
