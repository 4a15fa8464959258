"""Utility functions and helpers."""

from .random import make_rng
from .constants import TWO_PI, DEFAULT_PARAMETERS, T_BKT

__all__ = [
    "make_rng",
    "TWO_PI",
    "DEFAULT_PARAMETERS",
    "T_BKT"
]
