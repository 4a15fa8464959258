"""Analysis and post-processing modules."""

from .thermodynamics import TemperatureScan, temperature_grid, bin_statistics, find_critical_temperature

__all__ = ["TemperatureScan", "temperature_grid", "bin_statistics", "find_critical_temperature"]
