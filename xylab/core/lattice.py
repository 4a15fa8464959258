"""
Periodic square lattice geometry for flat, row-major spin arrays.
"""

import numbers
import numpy as np
from typing import Tuple

from ..utils.constants import TWO_PI

# Column order of the neighbor table
UP, DOWN, LEFT, RIGHT = 0, 1, 2, 3


def build_neighbor_table(size: int) -> np.ndarray:
    """
    Build the periodic nearest-neighbor table of an N x N lattice.

    Args:
        size: Linear lattice dimension N

    Returns:
        (N*N, 4) int64 array of site indices ordered up, down, left, right
    """
    rows, cols = np.divmod(np.arange(size * size, dtype=np.int64), size)

    up = ((rows - 1) % size) * size + cols
    down = ((rows + 1) % size) * size + cols
    left = rows * size + (cols - 1) % size
    right = rows * size + (cols + 1) % size

    return np.ascontiguousarray(np.stack([up, down, left, right], axis=1))


def wrap_angles(angles: np.ndarray) -> np.ndarray:
    """Fold angles into [0, 2pi); values that round to 2pi become 0."""
    wrapped = np.mod(np.asarray(angles, dtype=np.float64), TWO_PI)
    wrapped[wrapped >= TWO_PI] = 0.0
    return wrapped


def random_angles(rng: np.random.Generator, n_sites: int) -> np.ndarray:
    """Draw independent angles uniformly in [0, 2pi)."""
    return wrap_angles(rng.uniform(0.0, TWO_PI, n_sites))


class SquareLattice:
    """
    N x N square lattice with periodic boundaries on both axes.

    Sites are addressed by the flat index i*N + j. The neighbor table is
    computed once and shared by every update kernel.
    """

    def __init__(self, size: int):
        """
        Initialize lattice geometry.

        Args:
            size: Linear dimension N (positive integer)
        """
        if isinstance(size, bool) or not isinstance(size, numbers.Integral):
            raise ValueError(f"Lattice size must be an integer, got {size!r}")
        if size < 1:
            raise ValueError(f"Lattice size must be positive, got {size}")

        self.size = int(size)
        self.n_sites = self.size * self.size
        self.neighbors = build_neighbor_table(self.size)

    def site_index(self, i: int, j: int) -> int:
        """Flat index of site (i, j), wrapping both coordinates."""
        return (i % self.size) * self.size + (j % self.size)

    def coordinates(self, index: int) -> Tuple[int, int]:
        """Row and column of a flat site index."""
        return divmod(index, self.size)

    def __repr__(self) -> str:
        return f"SquareLattice(size={self.size})"
