"""
Temperature scans and thermodynamic analysis for the XY model.
"""

import numpy as np
from typing import Dict, List, Tuple, Any, Sequence
from scipy.interpolate import UnivariateSpline
from scipy.optimize import minimize_scalar
from tqdm import tqdm

from ..core.xy_model import XYModel, resolve_algorithm

SCAN_COLUMNS = [
    'temperature',
    'energy', 'energy_sem',
    'magnetization', 'magnetization_sem',
    'acceptance', 'acceptance_sem',
    'energy2', 'energy2_sem',
    'magnetization2', 'magnetization2_sem',
    'specific_heat', 'susceptibility',
]


def temperature_grid(t_init: float, t_final: float, t_step: float) -> np.ndarray:
    """
    Temperatures from t_init towards t_final in steps of t_step.

    Values are rounded to 6 decimals and t_final is appended when the
    stepping does not land on it.

    Args:
        t_init: First temperature
        t_final: Last temperature
        t_step: Signed increment; its sign must point from t_init to t_final

    Returns:
        Array of temperatures
    """
    if t_step == 0:
        raise ValueError("Temperature step must be non-zero")
    if (t_step > 0 and t_init > t_final) or (t_step < 0 and t_init < t_final):
        raise ValueError("Step direction does not match range")

    values = []
    t = t_init
    if t_step > 0:
        while t <= t_final:
            values.append(round(t, 6))
            t += t_step
        if values[-1] < t_final:
            values.append(round(t_final, 6))
    else:
        while t >= t_final:
            values.append(round(t, 6))
            t += t_step
        if values[-1] > t_final:
            values.append(round(t_final, 6))

    return np.array(values)


def bin_statistics(values: Sequence[float], n_bins: int = 10) -> Tuple[float, float]:
    """
    Mean and standard error from consecutive bin averages.

    Args:
        values: Time-ordered samples
        n_bins: Target number of bins (the last bin may be shorter)

    Returns:
        (mean, sem) of the bin means
    """
    data = np.asarray(values, dtype=np.float64)
    if data.size == 0:
        raise ValueError("Cannot compute statistics of an empty sample")
    if n_bins < 1:
        raise ValueError(f"n_bins must be positive, got {n_bins}")

    bin_size = max(1, data.size // n_bins)
    bins = np.array([data[i:i + bin_size].mean() for i in range(0, data.size, bin_size)])

    mean = bins.mean()
    variance = np.mean((bins - mean)**2)
    sem = np.sqrt(variance / len(bins))

    return float(mean), float(sem)


class TemperatureScan:
    """
    Temperature scan driving one XYModel through a list of temperatures.

    At each temperature the model is warmed up, decorrelated, and then
    measured after every algorithm call. The lattice is carried over from
    one temperature to the next.
    """

    def __init__(
        self,
        model: XYModel,
        algorithm: str = "metropolis",
        n_warmup: int = 1000,
        n_decorrelation: int = 100,
        n_measurements: int = 1000,
        n_bins: int = 10
    ):
        """
        Initialize temperature scan.

        Args:
            model: XYModel to drive
            algorithm: Update algorithm name
            n_warmup: Calls discarded after each temperature change
            n_decorrelation: Further calls discarded before measuring
            n_measurements: Measured calls per temperature
            n_bins: Number of bins for the error estimate
        """
        if n_warmup < 0 or n_decorrelation < 0:
            raise ValueError("Warmup and decorrelation counts must be non-negative")
        if n_measurements < 1:
            raise ValueError(f"n_measurements must be positive, got {n_measurements}")

        self.model = model
        self.algorithm = resolve_algorithm(algorithm)
        self.n_warmup = n_warmup
        self.n_decorrelation = n_decorrelation
        self.n_measurements = n_measurements
        self.n_bins = n_bins

        self.results: List[Dict[str, float]] = []

    def measure(self, temperature: float) -> Dict[str, float]:
        """
        Equilibrate and measure at a single temperature.

        Returns:
            Row with binned means, standard errors and response functions
        """
        model = self.model
        step_function = getattr(model, f"step_{self.algorithm}")
        model.set_temperature(temperature)

        for _ in range(self.n_warmup + self.n_decorrelation):
            step_function()

        samples = {key: np.empty(self.n_measurements) for key in
                   ('energy', 'magnetization', 'acceptance', 'energy2', 'magnetization2')}
        for k in range(self.n_measurements):
            step_function()
            observables = model.observables()
            energy = observables['energy']
            magnetization = observables['magnetization']
            samples['energy'][k] = energy
            samples['magnetization'][k] = magnetization
            samples['acceptance'][k] = observables['acceptance_rate']
            samples['energy2'][k] = energy * energy
            samples['magnetization2'][k] = magnetization * magnetization

        row = {'temperature': float(temperature)}
        for key, values in samples.items():
            row[key], row[f'{key}_sem'] = bin_statistics(values, self.n_bins)

        # Per-site response functions from per-spin fluctuations
        n_sites = model.n_sites
        if temperature > 0:
            row['specific_heat'] = n_sites * (row['energy2'] - row['energy']**2) / temperature**2
            row['susceptibility'] = n_sites * (row['magnetization2'] - row['magnetization']**2) / temperature
        else:
            row['specific_heat'] = np.nan
            row['susceptibility'] = np.nan

        return row

    def run(self, temperatures: Sequence[float], verbose: bool = True) -> Dict[str, np.ndarray]:
        """
        Scan all temperatures in order.

        Args:
            temperatures: Temperatures to visit
            verbose: Whether to show progress bar

        Returns:
            Dictionary of arrays keyed by SCAN_COLUMNS
        """
        temperatures = list(temperatures)
        if len(temperatures) == 0:
            raise ValueError("No temperatures to scan")

        self.results.clear()
        for temperature in tqdm(temperatures, desc=f"T scan ({self.algorithm})", disable=not verbose):
            self.results.append(self.measure(temperature))

        return self.as_arrays()

    def as_arrays(self) -> Dict[str, np.ndarray]:
        """Column arrays of the collected rows."""
        return {column: np.array([row[column] for row in self.results]) for column in SCAN_COLUMNS}

    def to_csv(self) -> str:
        """Collected rows as CSV text with a header line."""
        lines = [",".join(SCAN_COLUMNS)]
        for row in self.results:
            lines.append(",".join(repr(float(row[column])) for column in SCAN_COLUMNS))
        return "\n".join(lines) + "\n"


def find_critical_temperature(
    temperatures: Sequence[float],
    values: Sequence[float],
    smoothing: float = 0.1
) -> Dict[str, Any]:
    """
    Locate the peak of a response function (specific heat or susceptibility).

    On a finite XY lattice the specific heat peaks somewhat above T_BKT, so
    this is a crossover estimate rather than the transition temperature.

    Args:
        temperatures: Scan temperatures
        values: Response function at those temperatures
        smoothing: Spline smoothing factor (0 interpolates exactly)

    Returns:
        Dictionary with critical temperature estimate and peak value
    """
    temps = np.asarray(temperatures, dtype=np.float64)
    data = np.asarray(values, dtype=np.float64)

    if temps.shape != data.shape:
        raise ValueError("temperatures and values must have the same length")
    if temps.size < 4:
        raise ValueError(f"Need at least 4 temperatures for a spline fit, got {temps.size}")

    order = np.argsort(temps)
    temps = temps[order]
    data = data[order]

    spline = UnivariateSpline(temps, data, s=smoothing)
    result = minimize_scalar(
        lambda t: -spline(t),
        bounds=(temps.min(), temps.max()),
        method='bounded'
    )

    return {
        'critical_temperature': float(result.x),
        'max_value': float(-result.fun),
        'spline_fit': spline
    }
