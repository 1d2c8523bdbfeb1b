"""
Configuration module for smooth-pulse quantum control.

This module contains the global defaults used when building and solving
pulse optimization problems: trajectory discretization, control bounds,
objective weights and solver settings.

All Hamiltonians are in units where ℏ = 1.
"""

import os
import numbers
from typing import Sequence, List, Union
import numpy as np

# ==============================================================================
# TRAJECTORY DISCRETIZATION
# ==============================================================================

# Number of knot points in a trajectory
DEFAULT_TIMESTEPS: int = int(os.getenv("PULSE_CONTROL_TIMESTEPS", "51"))

# Duration of a single timestep
DEFAULT_TIMESTEP: float = float(os.getenv("PULSE_CONTROL_DT", "0.2"))

# Free-time bounds, relative to the initial timestep
DEFAULT_DT_MIN_FACTOR = 0.5
DEFAULT_DT_MAX_FACTOR = 2.0

# ==============================================================================
# CONTROL BOUNDS
# ==============================================================================

DEFAULT_A_BOUND = 1.0                   # |a_j(t)| ≤ a_bound
DEFAULT_DDA_BOUND = 1.0                 # |d²a_j/dt²| ≤ dda_bound

# Scale of the random initial control guess, as a fraction of a_bound
DEFAULT_GUESS_SCALE = 0.1

# ==============================================================================
# OBJECTIVE WEIGHTS
# ==============================================================================

DEFAULT_INFIDELITY_WEIGHT = 100.0       # Q: weight on 1 - F
DEFAULT_REGULARIZATION = 1e-2           # R: quadratic weight on a, da, dda
DEFAULT_TIME_WEIGHT = 1.0               # D: weight on total duration

# ==============================================================================
# SOLVER PARAMETERS
# ==============================================================================

DEFAULT_SOLVER_METHOD = "SLSQP"
DEFAULT_MAX_ITERATIONS: int = int(os.getenv("PULSE_CONTROL_MAX_ITER", "150"))
DEFAULT_SOLVER_TOLERANCE = 1e-8

# Step used for objectives without an analytic gradient
FINITE_DIFFERENCE_STEP = 1e-6

# Numerical tolerances for operator checks
HERMITIAN_TOLERANCE = 1e-10
UNITARY_TOLERANCE = 1e-8

# ==============================================================================
# OUTPUT
# ==============================================================================

DEFAULT_RESULTS_DIR = os.getenv("PULSE_CONTROL_RESULTS_DIR", "results")

# ==============================================================================
# VALIDATION FUNCTIONS
# ==============================================================================

def validate_default_settings():
    """
    Validate that the default settings are usable.

    Raises:
    -------
    ValueError
        If any setting is outside its meaningful range
    """
    if DEFAULT_TIMESTEPS < 2:
        raise ValueError("Number of timesteps must be at least 2")

    if DEFAULT_TIMESTEP <= 0:
        raise ValueError("Timestep must be positive")

    if not (0 < DEFAULT_DT_MIN_FACTOR <= 1.0 <= DEFAULT_DT_MAX_FACTOR):
        raise ValueError("Free-time factors must satisfy 0 < min ≤ 1 ≤ max")

    if DEFAULT_A_BOUND <= 0 or DEFAULT_DDA_BOUND <= 0:
        raise ValueError("Control bounds must be positive")

    if DEFAULT_MAX_ITERATIONS < 1:
        raise ValueError("Maximum iterations must be at least 1")

def get_solver_info():
    """
    Return a formatted string with the default problem and solver settings.

    Returns:
    --------
    str
        Formatted settings information
    """
    info = f"""
    Pulse Control Configuration:
    ============================

    Trajectory:
    - Knot points: {DEFAULT_TIMESTEPS}
    - Timestep: {DEFAULT_TIMESTEP}
    - Duration: {DEFAULT_TIMESTEP * (DEFAULT_TIMESTEPS - 1):.3f}
    - Free-time range: [{DEFAULT_DT_MIN_FACTOR}, {DEFAULT_DT_MAX_FACTOR}] × Δt

    Controls:
    - |a| bound: {DEFAULT_A_BOUND}
    - |dda| bound: {DEFAULT_DDA_BOUND}

    Objective:
    - Infidelity weight Q: {DEFAULT_INFIDELITY_WEIGHT}
    - Regularization R: {DEFAULT_REGULARIZATION}

    Solver:
    - Method: {DEFAULT_SOLVER_METHOD}
    - Max iterations: {DEFAULT_MAX_ITERATIONS}
    - Tolerance: {DEFAULT_SOLVER_TOLERANCE}
    """
    return info

# Validate settings on import
validate_default_settings()

# -----------------------------------------------------------------------------
# Utility helpers
# -----------------------------------------------------------------------------

def _as_list(x: Union[float, int, Sequence[float]], n: int) -> List[float]:
    """Normalize a scalar or sequence to a length-n list of floats."""
    if isinstance(x, (list, tuple, np.ndarray)):
        lst = list(np.ravel(x))
        if len(lst) != n:
            raise ValueError(f'Length mismatch: expected {n}, got {len(lst)}')
        return [float(v) for v in lst]
    if isinstance(x, numbers.Real):
        return [float(x)] * n
    raise TypeError("x must be a real number or a sequence of real numbers")
