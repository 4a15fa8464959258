"""Random number utilities."""

import numpy as np
from typing import Optional


def make_rng(seed: Optional[int] = None) -> np.random.Generator:
    """
    Create an independent random stream.
    
    Args:
        seed: Random seed value; None draws fresh entropy from the OS
        
    Returns:
        numpy Generator owned by the caller
    """
    return np.random.default_rng(seed)
