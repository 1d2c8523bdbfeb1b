"""
Smooth-Pulse Quantum Control Package

A framework for synthesizing smooth, bounded control pulses that implement
target unitaries on closed quantum systems, and for making those pulses
robust to static Hamiltonian errors.

This package provides modular components for:
- Quantum system construction (qubits, transmons, composite systems)
- Piecewise-constant unitary dynamics with exact fidelity gradients
- Named trajectories holding controls, derivatives, timesteps and states
- Smooth-pulse, robustness and minimum-time problem templates
- Post-solve robustness and sequence benchmarking

License: MIT
"""

__version__ = "1.0.0"

from .config import *
from .logging_config import setup_logging
from .operators import (
    pauli, annihilate, create, number, lift,
    GATES, get_gate, embed_gate,
    commutator, anticommutator, is_hermitian, is_unitary,
)
from .utils import (
    as_array, ket_to_iso, iso_to_ket, iso_vec_dim,
    operator_to_iso_vec, iso_vec_to_operator, subspace_indices,
)
from .systems import (
    QuantumSystem, qubit_system, transmon_system, composite_system,
    exchange_coupling, two_qubit_system,
)
from .dynamics import (
    derivative, integrate, integrator_residuals,
    timestep_propagator, unitary_rollout, ket_rollout, unitary_fidelity,
    traceless, UnitaryRollout,
)
from .trajectory import NamedTrajectory
from .objectives import (
    Objective, CompositeObjective, UnitaryInfidelityObjective,
    QuadraticRegularizer, UnitaryRobustnessObjective, MinimumTimeObjective,
)
from .constraints import (
    VariableLayout, Constraint, DerivativeIntegrator,
    FinalFidelityConstraint, TimestepsAllEqualConstraint,
)
from .problems import (
    QuantumControlProblem, solve,
    unitary_smooth_pulse_problem, unitary_robustness_problem,
    unitary_minimum_time_problem, save_problem_results,
)
from .benchmarking import (
    robustness_scan, sequence_fidelity_scan, fit_exponential_decay,
    benchmarking_summary, run_robustness_benchmark,
)

__all__ = [
    # Configuration
    'DEFAULT_TIMESTEPS', 'DEFAULT_TIMESTEP', 'DEFAULT_A_BOUND', 'DEFAULT_DDA_BOUND',
    'DEFAULT_INFIDELITY_WEIGHT', 'DEFAULT_REGULARIZATION', 'DEFAULT_TIME_WEIGHT',
    'DEFAULT_SOLVER_METHOD', 'DEFAULT_MAX_ITERATIONS', 'DEFAULT_SOLVER_TOLERANCE',
    'DEFAULT_RESULTS_DIR', 'get_solver_info', 'setup_logging',

    # Operators and isomorphisms
    'pauli', 'annihilate', 'create', 'number', 'lift',
    'GATES', 'get_gate', 'embed_gate',
    'commutator', 'anticommutator', 'is_hermitian', 'is_unitary',
    'as_array', 'ket_to_iso', 'iso_to_ket', 'iso_vec_dim',
    'operator_to_iso_vec', 'iso_vec_to_operator', 'subspace_indices',

    # Systems and dynamics
    'QuantumSystem', 'qubit_system', 'transmon_system', 'composite_system',
    'exchange_coupling', 'two_qubit_system',
    'derivative', 'integrate', 'integrator_residuals',
    'timestep_propagator', 'unitary_rollout', 'ket_rollout', 'unitary_fidelity',
    'traceless',
    'UnitaryRollout',

    # Trajectories and problems
    'NamedTrajectory',
    'Objective', 'CompositeObjective', 'UnitaryInfidelityObjective',
    'QuadraticRegularizer', 'UnitaryRobustnessObjective', 'MinimumTimeObjective',
    'VariableLayout', 'Constraint', 'DerivativeIntegrator',
    'FinalFidelityConstraint', 'TimestepsAllEqualConstraint',
    'QuantumControlProblem', 'solve',
    'unitary_smooth_pulse_problem', 'unitary_robustness_problem',
    'unitary_minimum_time_problem', 'save_problem_results',

    # Benchmarking
    'robustness_scan', 'sequence_fidelity_scan', 'fit_exponential_decay',
    'benchmarking_summary', 'run_robustness_benchmark',
]
