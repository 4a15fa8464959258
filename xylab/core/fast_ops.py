"""
Numba-accelerated update kernels for the 2D XY model.

All kernels work in place on a flat float64 angle array and a (n_sites, 4)
neighbor table. Random numbers are drawn by the caller from its own
generator and passed in as arrays, so no kernel touches global random state.
"""

import numpy as np
from numba import njit

from ..utils.constants import TWO_PI

PI = np.pi


@njit(fastmath=True)
def wrap_angle(theta):
    """Fold a single angle into [0, 2pi)."""
    wrapped = theta % TWO_PI
    if wrapped >= TWO_PI:
        wrapped = 0.0
    return wrapped


@njit(fastmath=True)
def metropolis_accept(delta_energy, temperature, uniform):
    """
    Metropolis criterion with k_B = 1.

    At zero temperature downhill and neutral moves are accepted and uphill
    moves rejected without evaluating the exponential.
    """
    if delta_energy <= 0.0:
        return True
    if temperature <= 0.0:
        return False
    return uniform < np.exp(-delta_energy / temperature)


@njit(fastmath=True)
def bond_probability(coupling, temperature, cos_i, cos_j):
    """
    Probability of activating a cluster bond.

    p = 1 - exp(min(0, -(2J/T) cos(phi - theta_i) cos(phi - theta_j)))
    """
    argument = 2.0 * coupling * cos_i * cos_j
    if argument <= 0.0:
        return 0.0
    if temperature <= 0.0:
        return 1.0
    return 1.0 - np.exp(-argument / temperature)


@njit(fastmath=True)
def reflect_angle(theta, two_phi):
    """Reflection s -> s - 2(s.u)u about the axis u = (cos phi, sin phi)."""
    return wrap_angle(PI - theta + two_phi)


# =============================================================================
# LOCAL MOVES
# =============================================================================

@njit(fastmath=True)
def metropolis_sweep(spins, neighbor_array, sites, proposals, uniforms,
                     coupling, field, temperature):
    """
    Single-spin Metropolis updates with fully independent proposals.

    Args:
        spins: (n_sites,) angles, modified in place
        neighbor_array: (n_sites, 4) periodic neighbor indices
        sites: (n_attempts,) site index of each attempt
        proposals: (n_attempts,) proposed angles in [0, 2pi)
        uniforms: (n_attempts,) uniforms in [0, 1) for the acceptance test
        coupling: Exchange coupling J
        field: External field H
        temperature: Temperature T

    Returns:
        (n_accepted, delta_energy, delta_mx, delta_my) with raw (not per-spin) sums
    """
    n_accepted = 0
    delta_energy = 0.0
    delta_mx = 0.0
    delta_my = 0.0

    for k in range(sites.shape[0]):
        site = sites[k]
        theta_old = spins[site]
        phi = proposals[k]

        d_e = 0.0
        for m in range(4):
            neighbor = neighbor_array[site, m]
            # 1x1 lattice: self bonds are constant
            if neighbor == site:
                continue
            theta_n = spins[neighbor]
            d_e -= coupling * (np.cos(phi - theta_n) - np.cos(theta_old - theta_n))
        d_e -= field * (np.cos(phi) - np.cos(theta_old))

        if metropolis_accept(d_e, temperature, uniforms[k]):
            spins[site] = phi
            n_accepted += 1
            delta_energy += d_e
            delta_mx += np.cos(phi) - np.cos(theta_old)
            delta_my += np.sin(phi) - np.sin(theta_old)

    return n_accepted, delta_energy, delta_mx, delta_my


@njit(fastmath=True)
def overrelaxation_sweep(spins, neighbor_array, coupling, field):
    """
    Raster overrelaxation sweep.

    Each spin is reflected about its local field J*sum(s_n) + H*x, which
    keeps its energy in that field unchanged. Sites are updated in place,
    so later sites see the already updated neighbors.

    Args:
        spins: (n_sites,) angles, modified in place
        neighbor_array: (n_sites, 4) periodic neighbor indices
        coupling: Exchange coupling J
        field: Field added to the x component of the local field
    """
    for site in range(spins.shape[0]):
        hx = field
        hy = 0.0
        for m in range(4):
            neighbor = neighbor_array[site, m]
            if neighbor == site:
                continue
            theta_n = spins[neighbor]
            hx += coupling * np.cos(theta_n)
            hy += coupling * np.sin(theta_n)
        theta_local = np.arctan2(hy, hx)
        spins[site] = wrap_angle(2.0 * theta_local - spins[site])


@njit(fastmath=True)
def reflection_sweep(spins, neighbor_array, axis_angle, uniforms,
                     coupling, field, temperature, include_field):
    """
    Raster sweep of per-site reflections about a common axis.

    Args:
        spins: (n_sites,) angles, modified in place
        neighbor_array: (n_sites, 4) periodic neighbor indices
        axis_angle: Reflection axis angle phi
        uniforms: (n_sites,) uniforms for the acceptance tests
        coupling: Exchange coupling J
        field: External field H
        temperature: Temperature T
        include_field: Whether the field term enters the acceptance test

    Returns:
        (n_accepted, delta_energy) where delta_energy is the true raw energy
        change including the field term
    """
    ux = np.cos(axis_angle)
    uy = np.sin(axis_angle)
    n_accepted = 0
    delta_energy = 0.0

    for site in range(spins.shape[0]):
        theta = spins[site]
        sx = np.cos(theta)
        sy = np.sin(theta)

        dot = sx * ux + sy * uy
        sx_ref = sx - 2.0 * dot * ux
        sy_ref = sy - 2.0 * dot * uy

        d_bond = 0.0
        for m in range(4):
            neighbor = neighbor_array[site, m]
            if neighbor == site:
                continue
            theta_n = spins[neighbor]
            nbx = np.cos(theta_n)
            nby = np.sin(theta_n)
            d_bond += coupling * ((sx * nbx + sy * nby) - (sx_ref * nbx + sy_ref * nby))
        d_field = -field * (sx_ref - sx)

        d_test = d_bond + d_field if include_field else d_bond
        if metropolis_accept(d_test, temperature, uniforms[site]):
            spins[site] = wrap_angle(np.arctan2(sy_ref, sx_ref))
            n_accepted += 1
            delta_energy += d_bond + d_field

    return n_accepted, delta_energy


# =============================================================================
# CLUSTER MOVES
# =============================================================================

@njit(fastmath=True)
def wolff_cluster(spins, neighbor_array, seed_site, axis_angle, uniforms,
                  coupling, temperature):
    """
    Grow and reflect one Wolff cluster.

    Bond probabilities always use the angles from before this call: a site
    is reflected only when it joins, and its pre-move angle is kept in a
    separate array. Unvisited sites still hold their pre-move angle.

    Args:
        spins: (n_sites,) angles, modified in place
        neighbor_array: (n_sites, 4) periodic neighbor indices
        seed_site: Index of the seed site
        axis_angle: Reflection axis angle phi
        uniforms: (4 * n_sites,) uniforms for the bond tests
        coupling: Exchange coupling J
        temperature: Temperature T

    Returns:
        Number of sites in the cluster
    """
    n_sites = spins.shape[0]
    two_phi = 2.0 * axis_angle

    visited = np.zeros(n_sites, dtype=np.bool_)
    original = np.zeros(n_sites)
    stack = np.empty(n_sites, dtype=np.int64)

    visited[seed_site] = True
    original[seed_site] = spins[seed_site]
    spins[seed_site] = reflect_angle(original[seed_site], two_phi)
    stack[0] = seed_site
    top = 1
    cluster_size = 1
    draw = 0

    while top > 0:
        top -= 1
        site = stack[top]
        cos_i = np.cos(axis_angle - original[site])

        for m in range(4):
            neighbor = neighbor_array[site, m]
            if visited[neighbor]:
                continue
            theta_j = spins[neighbor]
            p = bond_probability(coupling, temperature, cos_i, np.cos(axis_angle - theta_j))
            u = uniforms[draw]
            draw += 1
            if u < p:
                visited[neighbor] = True
                original[neighbor] = theta_j
                spins[neighbor] = reflect_angle(theta_j, two_phi)
                stack[top] = neighbor
                top += 1
                cluster_size += 1

    return cluster_size


@njit(fastmath=True)
def swendsen_wang_partition(spins, neighbor_array, axis_angle, uniforms,
                            coupling, temperature):
    """
    Partition the whole lattice into Swendsen-Wang clusters.

    The angle array is only read, so every bond test sees the same
    pre-sweep configuration.

    Args:
        spins: (n_sites,) angles (not modified)
        neighbor_array: (n_sites, 4) periodic neighbor indices
        axis_angle: Reflection axis angle phi
        uniforms: (4 * n_sites,) uniforms for the bond tests
        coupling: Exchange coupling J
        temperature: Temperature T

    Returns:
        (labels, n_clusters); labels are in 1..n_clusters, 0 is never left
    """
    n_sites = spins.shape[0]
    labels = np.zeros(n_sites, dtype=np.int64)
    stack = np.empty(n_sites, dtype=np.int64)
    next_label = 1
    draw = 0

    for start in range(n_sites):
        if labels[start] != 0:
            continue

        labels[start] = next_label
        stack[0] = start
        top = 1

        while top > 0:
            top -= 1
            site = stack[top]
            cos_i = np.cos(axis_angle - spins[site])

            for m in range(4):
                neighbor = neighbor_array[site, m]
                if labels[neighbor] != 0:
                    continue
                p = bond_probability(coupling, temperature, cos_i,
                                     np.cos(axis_angle - spins[neighbor]))
                u = uniforms[draw]
                draw += 1
                if u < p:
                    labels[neighbor] = next_label
                    stack[top] = neighbor
                    top += 1

        next_label += 1

    return labels, next_label - 1


@njit(fastmath=True)
def reflect_clusters(spins, labels, flips, axis_angle):
    """
    Reflect every site whose cluster was selected.

    Args:
        spins: (n_sites,) angles, modified in place
        labels: (n_sites,) cluster ids starting at 1
        flips: (n_clusters,) booleans, entry c-1 for cluster c
        axis_angle: Reflection axis angle phi
    """
    two_phi = 2.0 * axis_angle
    for site in range(spins.shape[0]):
        if flips[labels[site] - 1]:
            spins[site] = reflect_angle(spins[site], two_phi)
