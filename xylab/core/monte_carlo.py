"""
Monte Carlo run driver for the XY model.
"""

import numpy as np
from typing import Optional, Dict, List, Callable, Any
import time
from tqdm import tqdm

from .xy_model import XYModel, resolve_algorithm


class MonteCarlo:
    """
    Monte Carlo driver around an XYModel.

    Repeats one update algorithm, records energy, magnetization and
    acceptance histories after equilibration, and derives thermodynamic
    estimates from them.
    """

    def __init__(self, model: XYModel, algorithm: str = "metropolis"):
        """
        Initialize Monte Carlo driver.

        Args:
            model: XYModel to drive
            algorithm: Update algorithm name (see ``xylab.ALGORITHMS``)
        """
        self.model = model
        self.algorithm = resolve_algorithm(algorithm)

        # Simulation state
        self.step_count = 0

        # Data storage
        self.energy_history: List[float] = []
        self.magnetization_history: List[float] = []
        self.acceptance_history: List[float] = []

        # Performance tracking
        self.timing_info = {}

    def run(
        self,
        n_steps: int,
        equilibration_steps: int = 0,
        sampling_interval: int = 1,
        callback: Optional[Callable] = None,
        verbose: bool = True
    ) -> Dict[str, Any]:
        """
        Run Monte Carlo simulation.

        Args:
            n_steps: Total number of algorithm calls
            equilibration_steps: Calls before sampling starts
            sampling_interval: Interval between samples
            callback: Optional callback(driver, step) called after each call
            verbose: Whether to show progress bar

        Returns:
            Dictionary with simulation results
        """
        if n_steps < 1:
            raise ValueError(f"n_steps must be positive, got {n_steps}")
        if sampling_interval < 1:
            raise ValueError(f"sampling_interval must be positive, got {sampling_interval}")

        start_time = time.time()
        step_function = getattr(self.model, f"step_{self.algorithm}")
        sampling_count = 0

        pbar = tqdm(total=n_steps, desc=f"MC {self.algorithm}", disable=not verbose)

        for step in range(n_steps):
            step_function()
            self.step_count += 1

            # Record data after equilibration
            if step >= equilibration_steps and step % sampling_interval == 0:
                observables = self.model.observables()
                self.energy_history.append(observables['energy'])
                self.magnetization_history.append(observables['magnetization'])
                self.acceptance_history.append(observables['acceptance_rate'])
                sampling_count += 1

            if callback is not None:
                callback(self, step)

            pbar.update(1)

        pbar.close()

        total_time = time.time() - start_time
        self.timing_info = {
            'total_time': total_time,
            'time_per_step': total_time / n_steps,
            'steps_per_second': n_steps / total_time if total_time > 0 else float('inf')
        }

        return {
            'energies': np.array(self.energy_history),
            'magnetizations': np.array(self.magnetization_history),
            'acceptance_rates': np.array(self.acceptance_history),
            'final_energy': self.model.energy,
            'final_magnetization': self.model.magnetization,
            'acceptance_rate': self.model.acceptance_rate,
            'n_samples': sampling_count,
            'n_steps': n_steps,
            'algorithm': self.algorithm,
            'timing': self.timing_info
        }

    def calculate_thermodynamic_properties(self) -> Dict[str, float]:
        """
        Calculate thermodynamic properties from the recorded samples.

        Energies and magnetizations are per spin, so the fluctuation
        formulas carry a factor of N*N to give per-site response functions.

        Returns:
            Dictionary with thermodynamic properties
        """
        if len(self.energy_history) == 0:
            raise ValueError("No simulation data available")

        energies = np.array(self.energy_history)
        magnetizations = np.array(self.magnetization_history)
        n_sites = self.model.n_sites
        temperature = self.model.temperature

        mean_energy = np.mean(energies)
        energy_variance = np.var(energies)
        mean_magnetization = np.mean(magnetizations)
        magnetization_variance = np.var(magnetizations)

        if temperature > 0:
            heat_capacity = n_sites * energy_variance / temperature**2
            susceptibility = n_sites * magnetization_variance / temperature
        else:
            heat_capacity = np.nan
            susceptibility = np.nan

        # Binder cumulant for a two-component order parameter
        mean_mag_squared = np.mean(magnetizations**2)
        mean_mag_fourth = np.mean(magnetizations**4)
        if mean_mag_squared > 0:
            binder_cumulant = 1 - mean_mag_fourth / (2 * mean_mag_squared**2)
        else:
            binder_cumulant = 0.0

        return {
            'mean_energy': float(mean_energy),
            'heat_capacity': float(heat_capacity),
            'mean_magnetization': float(mean_magnetization),
            'magnetization_variance': float(magnetization_variance),
            'susceptibility': float(susceptibility),
            'binder_cumulant': float(binder_cumulant),
            'temperature': temperature
        }

    def estimate_correlation_time(self, observable: str = 'energy') -> float:
        """
        Estimate autocorrelation time for an observable.

        Args:
            observable: Which observable to analyze ('energy' or 'magnetization')

        Returns:
            Lag (in samples) where the autocorrelation first drops below 1/e,
            NaN for fewer than 100 samples or no decay
        """
        if observable == 'energy':
            data = np.array(self.energy_history)
        elif observable == 'magnetization':
            data = np.array(self.magnetization_history)
        else:
            raise ValueError("Observable must be 'energy' or 'magnetization'")

        if len(data) < 100:
            return np.nan

        n = len(data)
        data_centered = data - np.mean(data)

        # Use FFT for efficient autocorrelation
        f_data = np.fft.fft(data_centered, n=2*n)
        autocorr = np.fft.ifft(f_data * np.conj(f_data)).real
        if autocorr[0] == 0:
            return np.nan
        autocorr = autocorr[:n] / autocorr[0]

        below = np.where(autocorr < 1/np.e)[0]
        if len(below) == 0:
            return np.nan
        return float(below[0])

    def get_effective_sample_size(self, observable: str = 'energy') -> int:
        """
        Estimate effective sample size accounting for autocorrelation.

        Args:
            observable: Which observable to analyze

        Returns:
            Effective number of independent samples
        """
        tau = self.estimate_correlation_time(observable)
        if np.isnan(tau):
            return len(self.energy_history)

        return max(1, int(len(self.energy_history) / (2 * tau + 1)))

    def reset(self):
        """Clear histories and timing; the model is left untouched."""
        self.step_count = 0
        self.energy_history.clear()
        self.magnetization_history.clear()
        self.acceptance_history.clear()
        self.timing_info.clear()

    def __repr__(self) -> str:
        return (f"MonteCarlo(algorithm={self.algorithm!r}, "
                f"T={self.model.temperature}, "
                f"n_spins={self.model.n_sites}, "
                f"steps={self.step_count})")
