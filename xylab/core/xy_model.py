"""
XY model engine: lattice state, cached observables and update algorithms.
"""

import math
import threading
import warnings
import numpy as np
from typing import Optional, Dict, Tuple, Any

from .lattice import SquareLattice, random_angles, wrap_angles
from .observables import energy_per_spin, magnetization_per_spin
from .fast_ops import (
    metropolis_sweep, overrelaxation_sweep, reflection_sweep,
    wolff_cluster, swendsen_wang_partition, reflect_clusters
)
from ..utils.constants import TWO_PI, DEFAULT_PARAMETERS
from ..utils.random import make_rng

ALGORITHMS = {
    'metropolis': 'step_metropolis',
    'overrelaxation': 'step_overrelaxation',
    'reflection': 'step_reflection',
    'wolff': 'step_wolff',
    'swendsen_wang': 'step_swendsen_wang',
}

ALGORITHM_ALIASES = {
    'metropolis_reflection': 'reflection',
}


def resolve_algorithm(name: str) -> str:
    """Canonical algorithm name for `name` (hyphens and case are ignored)."""
    key = str(name).strip().lower().replace('-', '_')
    key = ALGORITHM_ALIASES.get(key, key)
    if key not in ALGORITHMS:
        raise ValueError(f"Unknown algorithm: {name!r}. "
                         f"Must be one of {list(ALGORITHMS)}")
    return key


def _check_finite(name: str, value: float) -> float:
    value = float(value)
    if not math.isfinite(value):
        raise ValueError(f"{name} must be finite, got {value}")
    return value


class XYModel:
    """
    Classical XY model on a periodic N x N square lattice.

    The instance exclusively owns the angle array, its random stream, the
    model parameters, the cached observables and the move counters. Five
    update algorithms act on that state:

    - ``step_metropolis``: N*N random single-spin Metropolis attempts
    - ``step_overrelaxation``: deterministic reflection about the local field
    - ``step_reflection``: common-axis reflections with Metropolis acceptance
    - ``step_wolff``: one Wolff cluster, always accepted
    - ``step_swendsen_wang``: full lattice partition, each cluster flipped with p = 1/2

    Counter conventions differ between move types: the local moves count
    N*N attempts per call, the cluster moves count one attempt (and one
    acceptance) per call regardless of cluster size, and overrelaxation
    does not touch the counters. Acceptance rates are therefore only
    comparable between calls of the same kind.
    """

    def __init__(
        self,
        size: int,
        temperature: float,
        coupling: float = DEFAULT_PARAMETERS['coupling'],
        field: float = DEFAULT_PARAMETERS['field'],
        random_seed: Optional[int] = None,
        overrelaxation_field: bool = True,
        reflection_field: bool = True,
        resync_interval: Optional[int] = DEFAULT_PARAMETERS['resync_interval']
    ):
        """
        Initialize the model with independent uniform random angles.

        Args:
            size: Linear lattice dimension N
            temperature: Temperature T (finite, > 0)
            coupling: Exchange coupling J
            field: External field H along +x
            random_seed: Seed for the random stream (None = OS entropy)
            overrelaxation_field: Whether the overrelaxation local field includes H
            reflection_field: Whether the reflection acceptance test includes H
            resync_interval: Full observable recomputation every this many
                Metropolis/reflection calls (None or 0 disables)
        """
        temperature = _check_finite("Temperature", temperature)
        if temperature <= 0.0:
            raise ValueError(f"Temperature must be positive, got {temperature}")
        if resync_interval is not None and resync_interval < 0:
            raise ValueError(f"resync_interval must be non-negative, got {resync_interval}")

        self.lattice = SquareLattice(size)
        self._temperature = temperature
        self._coupling = _check_finite("Coupling", coupling)
        self._field = _check_finite("Field", field)
        self.random_seed = random_seed
        self.overrelaxation_field = bool(overrelaxation_field)
        self.reflection_field = bool(reflection_field)
        self.resync_interval = resync_interval or 0

        self._rng = make_rng(random_seed)
        self._spins = random_angles(self._rng, self.lattice.n_sites)
        self._lock = threading.RLock()

        # Move statistics
        self._accepted = 0
        self._attempted = 0
        self._incremental_calls = 0
        self.last_cluster_size = 0
        self.last_cluster_count = 0

        # Cached observables
        self._energy = 0.0
        self._mx = 0.0
        self._my = 0.0
        self._magnetization = 0.0
        self.resync()

    # ------------------------------------------------------------------
    # Read accessors
    # ------------------------------------------------------------------

    @property
    def size(self) -> int:
        return self.lattice.size

    @property
    def n_sites(self) -> int:
        return self.lattice.n_sites

    @property
    def temperature(self) -> float:
        with self._lock:
            return self._temperature

    @property
    def coupling(self) -> float:
        with self._lock:
            return self._coupling

    @property
    def field(self) -> float:
        with self._lock:
            return self._field

    @property
    def accepted(self) -> int:
        with self._lock:
            return self._accepted

    @property
    def attempted(self) -> int:
        with self._lock:
            return self._attempted

    @property
    def energy(self) -> float:
        """Cached energy per spin."""
        with self._lock:
            return self._energy

    @property
    def magnetization(self) -> float:
        """Cached magnetization magnitude per spin."""
        with self._lock:
            return self._magnetization

    @property
    def magnetization_vector(self) -> Tuple[float, float]:
        with self._lock:
            return self._mx, self._my

    @property
    def acceptance_rate(self) -> float:
        """accepted / attempted, 0 before any counted attempt."""
        with self._lock:
            if self._attempted == 0:
                return 0.0
            return self._accepted / self._attempted

    def spins_snapshot(self) -> np.ndarray:
        """Read-only copy of the N*N angles in row-major order."""
        with self._lock:
            snapshot = self._spins.copy()
        snapshot.flags.writeable = False
        return snapshot

    def observables(self) -> Dict[str, Any]:
        """Consistent snapshot of observables and counters."""
        with self._lock:
            return {
                'energy': self._energy,
                'magnetization': self._magnetization,
                'mx': self._mx,
                'my': self._my,
                'accepted': self._accepted,
                'attempted': self._attempted,
                'acceptance_rate': self.acceptance_rate,
                'temperature': self._temperature,
            }

    # ------------------------------------------------------------------
    # Parameters and bookkeeping
    # ------------------------------------------------------------------

    def set_temperature(self, temperature: float):
        """Set T; only future acceptance tests are affected. T = 0 is allowed."""
        temperature = _check_finite("Temperature", temperature)
        if temperature < 0.0:
            raise ValueError(f"Temperature must be non-negative, got {temperature}")
        with self._lock:
            self._temperature = temperature

    def set_coupling(self, coupling: float):
        """Set J and recompute the energy."""
        coupling = _check_finite("Coupling", coupling)
        with self._lock:
            self._coupling = coupling
            self._energy = self._full_energy()

    def set_field(self, field: float):
        """Set H and recompute the energy."""
        field = _check_finite("Field", field)
        with self._lock:
            self._field = field
            self._energy = self._full_energy()

    def reset_statistics(self):
        """Zero the accepted counter and recompute observables; the lattice is untouched."""
        with self._lock:
            self._accepted = 0
            self.resync()

    def resync(self):
        """Recompute energy and magnetization from the current lattice."""
        with self._lock:
            self._energy = self._full_energy()
            self._resync_magnetization()
            self._incremental_calls = 0

    def _full_energy(self) -> float:
        return energy_per_spin(self._spins, self.size, self._coupling, self._field)

    def _resync_magnetization(self):
        self._mx, self._my, self._magnetization = magnetization_per_spin(self._spins, self.size)

    def _after_incremental_step(self):
        self._incremental_calls += 1
        if self.resync_interval and self._incremental_calls >= self.resync_interval:
            self.resync()

    def _warn_if_field(self, algorithm: str):
        if self._field != 0.0:
            warnings.warn(
                f"{algorithm} cluster moves ignore the external field "
                f"(H = {self._field}); sampling is biased for H != 0",
                RuntimeWarning,
                stacklevel=3
            )

    # ------------------------------------------------------------------
    # Update algorithms
    # ------------------------------------------------------------------

    def step(self, algorithm: str):
        """Run one call of the named algorithm."""
        getattr(self, ALGORITHMS[resolve_algorithm(algorithm)])()

    def step_metropolis(self):
        """N*N single-spin Metropolis attempts at random sites."""
        n_sites = self.n_sites
        with self._lock:
            sites = self._rng.integers(0, n_sites, size=n_sites)
            proposals = wrap_angles(self._rng.uniform(0.0, TWO_PI, n_sites))
            uniforms = self._rng.random(n_sites)

            n_accepted, d_energy, d_mx, d_my = metropolis_sweep(
                self._spins, self.lattice.neighbors, sites, proposals, uniforms,
                self._coupling, self._field, self._temperature
            )

            self._attempted += n_sites
            self._accepted += n_accepted
            self._energy += d_energy / n_sites
            self._mx += d_mx / n_sites
            self._my += d_my / n_sites
            self._magnetization = math.sqrt(self._mx * self._mx + self._my * self._my)
            self._after_incremental_step()

    def step_overrelaxation(self):
        """Deterministic raster sweep reflecting each spin about its local field."""
        with self._lock:
            field = self._field if self.overrelaxation_field else 0.0
            overrelaxation_sweep(self._spins, self.lattice.neighbors, self._coupling, field)
            self.resync()

    def step_reflection(self):
        """Raster sweep of reflections about one random axis, accepted per site."""
        n_sites = self.n_sites
        with self._lock:
            axis_angle = self._rng.uniform(0.0, TWO_PI)
            uniforms = self._rng.random(n_sites)

            n_accepted, d_energy = reflection_sweep(
                self._spins, self.lattice.neighbors, axis_angle, uniforms,
                self._coupling, self._field, self._temperature, self.reflection_field
            )

            self._attempted += n_sites
            self._accepted += n_accepted
            self._energy += d_energy / n_sites
            self._resync_magnetization()
            self._after_incremental_step()

    def step_wolff(self):
        """Grow one Wolff cluster from a random seed and reflect it."""
        self._warn_if_field("Wolff")
        n_sites = self.n_sites
        with self._lock:
            axis_angle = self._rng.uniform(0.0, TWO_PI)
            seed_site = int(self._rng.integers(0, n_sites))
            uniforms = self._rng.random(4 * n_sites)

            self.last_cluster_size = wolff_cluster(
                self._spins, self.lattice.neighbors, seed_site, axis_angle, uniforms,
                self._coupling, self._temperature
            )

            self._attempted += 1
            self._accepted += 1
            self.resync()

    def step_swendsen_wang(self):
        """Partition the lattice into clusters and reflect each with probability 1/2."""
        self._warn_if_field("Swendsen-Wang")
        n_sites = self.n_sites
        with self._lock:
            axis_angle = self._rng.uniform(0.0, TWO_PI)
            uniforms = self._rng.random(4 * n_sites)

            labels, n_clusters = swendsen_wang_partition(
                self._spins, self.lattice.neighbors, axis_angle, uniforms,
                self._coupling, self._temperature
            )
            flips = self._rng.random(n_clusters) < 0.5
            reflect_clusters(self._spins, labels, flips, axis_angle)

            self.last_cluster_count = int(n_clusters)
            self._attempted += 1
            self._accepted += 1
            self.resync()

    def __repr__(self) -> str:
        return (f"XYModel(N={self.size}, T={self._temperature}, "
                f"J={self._coupling}, H={self._field})")
