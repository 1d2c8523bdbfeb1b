# Smooth-pulse X gate on a driven qubit.
# Run from the repository root:
#   python run_smooth_pulse.py
# Results (JSON summary + NPZ trajectory) are written to the results directory.

from pprint import pprint

import numpy as np

from pulse_control import (
    DEFAULT_RESULTS_DIR, get_solver_info, qubit_system, save_problem_results,
    setup_logging, unitary_smooth_pulse_problem,
)

logger = setup_logging()

# --- 1. System ---
print("--- 1. System ---")
system = qubit_system(drift_frequency=0.0, drives=("X", "Y"))
print(system)
print(get_solver_info())

# --- 2. Problem ---
print("--- 2. Problem ---")
T = 51
dt = 0.2
problem = unitary_smooth_pulse_problem(
    system, "X", T=T, dt=dt,
    a_bound=1.0, dda_bound=1.0,
    Q=100.0, R=1e-2,
    seed=42,
)
print(problem)
print(f"Initial fidelity: {problem.fidelity():.6f}")

# --- 3. Solve ---
print("--- 3. Solve ---")
result = problem.solve(max_iter=300, print_every=20)
print(f"Solver message: {result.message}")

# --- 4. Inspect ---
print("--- 4. Inspect ---")
pprint(problem.summary())
a = problem.trajectory["a"]
print(f"Peak |a|: {np.max(np.abs(a)):.4f}")
print(f"Endpoint controls: {a[:, 0]} -> {a[:, -1]}")

paths = save_problem_results(problem, results_dir=DEFAULT_RESULTS_DIR)
logger.info("X gate run finished with fidelity %.6f", problem.fidelity())
print("Saved results:")
pprint(paths)
