#!/usr/bin/env python3
"""
Tests for the XYModel engine.
"""

import threading
import warnings

import numpy as np
import pytest

from xylab import XYModel, ALGORITHMS
from xylab.core.xy_model import resolve_algorithm
from xylab.core.observables import energy_per_spin, magnetization_per_spin
from xylab.utils.constants import TWO_PI


def assert_cache_matches_lattice(model, tol=1e-9):
    spins = model.spins_snapshot()
    energy = energy_per_spin(spins, model.size, model.coupling, model.field)
    mx, my, m = magnetization_per_spin(spins, model.size)
    assert model.energy == pytest.approx(energy, abs=tol)
    assert model.magnetization_vector[0] == pytest.approx(mx, abs=tol)
    assert model.magnetization_vector[1] == pytest.approx(my, abs=tol)
    assert model.magnetization == pytest.approx(m, abs=tol)


# -----------------------------------------------------------------------------
# Construction
# -----------------------------------------------------------------------------

@pytest.mark.parametrize("kwargs", [
    dict(size=0, temperature=1.0),
    dict(size=-2, temperature=1.0),
    dict(size=4, temperature=0.0),
    dict(size=4, temperature=-1.0),
    dict(size=4, temperature=float('nan')),
    dict(size=4, temperature=1.0, coupling=float('inf')),
    dict(size=4, temperature=1.0, field=float('nan')),
    dict(size=4, temperature=1.0, resync_interval=-1),
])
def test_invalid_construction(kwargs):
    with pytest.raises(ValueError):
        XYModel(**kwargs)


def test_initial_state():
    model = XYModel(8, 1.0, random_seed=1)
    spins = model.spins_snapshot()
    assert spins.shape == (64,)
    assert np.all((spins >= 0.0) & (spins < TWO_PI))
    assert model.accepted == 0
    assert model.attempted == 0
    assert model.acceptance_rate == 0.0
    assert_cache_matches_lattice(model)


def test_single_site_lattice():
    model = XYModel(1, 1.0, field=0.5, random_seed=2)
    for name in ALGORITHMS:
        with warnings.catch_warnings():
            warnings.simplefilter("ignore", RuntimeWarning)
            model.step(name)
        assert_cache_matches_lattice(model)
    assert model.magnetization == pytest.approx(1.0)


# -----------------------------------------------------------------------------
# Invariants across algorithms
# -----------------------------------------------------------------------------

@pytest.mark.parametrize("algorithm", list(ALGORITHMS))
def test_angles_stay_in_range(algorithm):
    model = XYModel(6, 0.9, random_seed=3)
    for _ in range(20):
        model.step(algorithm)
        spins = model.spins_snapshot()
        assert np.all((spins >= 0.0) & (spins < TWO_PI))
        mx, my = model.magnetization_vector
        assert model.magnetization == pytest.approx(np.hypot(mx, my), abs=1e-12)
        assert model.magnetization <= 1.0 + 1e-12
        assert model.accepted <= model.attempted or model.attempted == 0


@pytest.mark.parametrize("algorithm", ["metropolis", "reflection"])
def test_incremental_tracking_without_resync(algorithm):
    model = XYModel(8, 1.2, coupling=0.8, field=0.3, random_seed=4, resync_interval=0)
    for _ in range(200):
        model.step(algorithm)
    assert_cache_matches_lattice(model)


def test_reflection_without_field_in_acceptance_tracks_true_energy():
    model = XYModel(6, 0.7, field=0.9, random_seed=5, reflection_field=False, resync_interval=0)
    for _ in range(100):
        model.step_reflection()
    assert_cache_matches_lattice(model)


def test_seeded_metropolis_scenario():
    model = XYModel(4, 1.0, random_seed=12345)
    for _ in range(100):
        model.step_metropolis()
    assert model.attempted == 1600
    assert 0 < model.accepted < 1600
    assert_cache_matches_lattice(model)


def test_reproducible_with_seed():
    a = XYModel(6, 1.0, random_seed=99)
    b = XYModel(6, 1.0, random_seed=99)
    for name in ALGORITHMS:
        a.step(name)
        b.step(name)
    assert np.array_equal(a.spins_snapshot(), b.spins_snapshot())
    assert a.energy == b.energy
    assert a.accepted == b.accepted


def test_high_temperature_accepts_almost_everything():
    model = XYModel(8, 1e6, random_seed=6)
    for _ in range(10):
        model.step_metropolis()
    assert model.acceptance_rate > 0.99


def test_zero_temperature_never_raises_energy():
    model = XYModel(8, 1.0, random_seed=7)
    model.set_temperature(0.0)
    previous = model.energy
    for _ in range(30):
        model.step_metropolis()
        assert model.energy <= previous + 1e-12
        previous = model.energy

    for _ in range(10):
        model.step_reflection()
        assert model.energy <= previous + 1e-12
        previous = model.energy


@pytest.mark.parametrize("algorithm", ["metropolis", "reflection"])
def test_small_positive_temperature_rejects_uphill_moves(algorithm):
    # Goes through the exponential, not the T = 0 branch
    model = XYModel(8, 1e-9, field=0.2, random_seed=24, resync_interval=0)
    previous = model.energy
    for _ in range(40):
        model.step(algorithm)
        assert model.energy <= previous + 1e-9
        previous = model.energy
    assert model.accepted < model.attempted
    assert_cache_matches_lattice(model)


def test_overrelaxation_conserves_energy_and_counters():
    model = XYModel(8, 1.0, field=0.4, random_seed=8)
    model.step_metropolis()
    energy = model.energy
    accepted, attempted = model.accepted, model.attempted
    before = model.spins_snapshot()

    model.step_overrelaxation()

    assert model.energy == pytest.approx(energy, abs=1e-10)
    assert model.accepted == accepted
    assert model.attempted == attempted
    assert not np.allclose(model.spins_snapshot(), before)


def test_repeated_overrelaxation_keeps_energy_constant():
    model = XYModel(10, 1.0, coupling=1.0, field=0.25, random_seed=20)
    energy = model.energy
    for _ in range(50):
        model.step_overrelaxation()
        assert model.energy == pytest.approx(energy, abs=1e-9)
    assert model.attempted == 0


def test_overrelaxation_without_field_changes_energy_in_field():
    model = XYModel(8, 1.0, field=0.8, random_seed=9, overrelaxation_field=False)
    energy = model.energy
    model.step_overrelaxation()
    assert model.energy != pytest.approx(energy, abs=1e-6)
    assert_cache_matches_lattice(model)


@pytest.mark.parametrize("algorithm", ["wolff", "swendsen_wang"])
def test_cluster_counters(algorithm):
    model = XYModel(6, 0.8, random_seed=10)
    with warnings.catch_warnings():
        warnings.simplefilter("error", RuntimeWarning)
        for _ in range(5):
            model.step(algorithm)
    assert model.attempted == 5
    assert model.accepted == 5
    assert model.acceptance_rate == 1.0
    assert_cache_matches_lattice(model)


def test_cluster_sizes_are_recorded():
    model = XYModel(6, 0.5, random_seed=11)
    model.step_wolff()
    assert 1 <= model.last_cluster_size <= 36
    model.step_swendsen_wang()
    assert 1 <= model.last_cluster_count <= 36


def test_cluster_moves_at_zero_temperature_keep_energy():
    # Bond probability is 1 for every aligned bond, so whole domains flip
    model = XYModel(4, 1.0, random_seed=12)
    model.set_temperature(0.0)
    for _ in range(5):
        energy = model.energy
        model.step_swendsen_wang()
        assert model.energy <= energy + 1e-9


@pytest.mark.parametrize("algorithm", ["wolff", "swendsen_wang"])
def test_cluster_moves_warn_in_field(algorithm):
    model = XYModel(4, 1.0, field=0.5, random_seed=13)
    with pytest.warns(RuntimeWarning, match="field"):
        model.step(algorithm)


# -----------------------------------------------------------------------------
# Accessors and setters
# -----------------------------------------------------------------------------

def test_snapshot_is_read_only_copy():
    model = XYModel(4, 1.0, random_seed=14)
    snapshot = model.spins_snapshot()
    with pytest.raises(ValueError):
        snapshot[0] = 1.0
    model.step_metropolis()
    assert not np.array_equal(snapshot, model.spins_snapshot())


def test_setters_recompute_energy():
    model = XYModel(6, 1.0, random_seed=15)
    model.set_coupling(2.5)
    assert model.coupling == 2.5
    assert_cache_matches_lattice(model)
    model.set_field(-0.7)
    assert model.field == -0.7
    assert_cache_matches_lattice(model)


def test_set_temperature():
    model = XYModel(4, 1.0, random_seed=16)
    model.set_temperature(0.0)
    assert model.temperature == 0.0
    for bad in (-0.1, float('nan'), float('inf')):
        with pytest.raises(ValueError):
            model.set_temperature(bad)
    assert model.temperature == 0.0
    with pytest.raises(ValueError):
        model.set_coupling(float('nan'))
    with pytest.raises(ValueError):
        model.set_field(float('inf'))


def test_reset_statistics():
    model = XYModel(6, 1.0, random_seed=17)
    for _ in range(3):
        model.step_metropolis()
    spins = model.spins_snapshot()
    attempted = model.attempted

    model.reset_statistics()

    assert model.accepted == 0
    assert model.attempted == attempted
    assert model.acceptance_rate == 0.0
    assert np.array_equal(model.spins_snapshot(), spins)
    assert_cache_matches_lattice(model, tol=1e-12)


def test_observables_snapshot():
    model = XYModel(4, 1.3, random_seed=18)
    model.step_metropolis()
    obs = model.observables()
    assert obs['energy'] == model.energy
    assert obs['magnetization'] == model.magnetization
    assert (obs['mx'], obs['my']) == model.magnetization_vector
    assert obs['attempted'] == 16
    assert obs['temperature'] == 1.3
    assert obs['acceptance_rate'] == model.acceptance_rate


@pytest.mark.parametrize("accessor", [
    "energy", "magnetization", "magnetization_vector", "accepted",
    "attempted", "acceptance_rate", "temperature",
])
def test_accessors_wait_for_running_step(accessor):
    model = XYModel(4, 1.0, random_seed=22)
    values = []
    reader = threading.Thread(target=lambda: values.append(getattr(model, accessor)))

    # Holding the lock stands in for a step in progress
    with model._lock:
        reader.start()
        reader.join(timeout=0.2)
        assert reader.is_alive()
        assert values == []

    reader.join(timeout=5.0)
    assert not reader.is_alive()
    assert len(values) == 1


def test_concurrent_readers_see_settled_state():
    model = XYModel(6, 1.0, random_seed=23, resync_interval=0)
    failures = []
    done = threading.Event()

    def read():
        while not done.is_set():
            mx, my = model.magnetization_vector
            obs = model.observables()
            if abs(np.hypot(obs['mx'], obs['my']) - obs['magnetization']) > 1e-12:
                failures.append(obs)
            if not (0.0 <= np.hypot(mx, my) <= 1.0 + 1e-12):
                failures.append((mx, my))

    readers = [threading.Thread(target=read) for _ in range(2)]
    for thread in readers:
        thread.start()
    try:
        for _ in range(200):
            model.step_metropolis()
    finally:
        done.set()
        for thread in readers:
            thread.join(timeout=5.0)

    assert failures == []
    assert model.attempted == 200 * 36
    assert_cache_matches_lattice(model)


# -----------------------------------------------------------------------------
# Algorithm names
# -----------------------------------------------------------------------------

def test_resolve_algorithm():
    assert resolve_algorithm("Metropolis") == "metropolis"
    assert resolve_algorithm("swendsen-wang") == "swendsen_wang"
    assert resolve_algorithm("metropolis_reflection") == "reflection"
    with pytest.raises(ValueError):
        resolve_algorithm("heat_bath")


def test_step_by_name_matches_direct_call():
    a = XYModel(5, 1.0, random_seed=19)
    b = XYModel(5, 1.0, random_seed=19)
    a.step("Metropolis-Reflection")
    b.step_reflection()
    assert np.array_equal(a.spins_snapshot(), b.spins_snapshot())
    with pytest.raises(ValueError):
        a.step("glauber")
