"""Numerical constants and default model parameters (reduced units, k_B = 1)."""

import numpy as np

TWO_PI = 2.0 * np.pi

# Defaults shared by the engine constructor and the command line
DEFAULT_PARAMETERS = {
    'size': 64,
    'temperature': 1.0,
    'coupling': 1.0,
    'field': 0.0,
    'resync_interval': 100,
}

# Kosterlitz-Thouless temperature of the ferromagnetic square-lattice XY model (J = 1)
T_BKT = 0.8929
