"""
Pulse optimization problems.

A problem bundles a quantum system, a named trajectory whose control
components are the decision variables, an objective and a list of
constraints. Solving is one blocking call into ``scipy.optimize.minimize``;
the optimum is written back into the trajectory together with the rolled-out
unitary (component ``U``, stored as an iso-vector at every knot).

Problem templates build the common cases: smooth-pulse gate synthesis,
robustness improvement of a solved pulse and minimum-time compression.
"""

import os
import json
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

import numpy as np
from scipy.optimize import minimize

from .config import (
    _as_list,
    DEFAULT_A_BOUND, DEFAULT_DDA_BOUND, DEFAULT_DT_MAX_FACTOR, DEFAULT_DT_MIN_FACTOR,
    DEFAULT_GUESS_SCALE, DEFAULT_INFIDELITY_WEIGHT, DEFAULT_MAX_ITERATIONS,
    DEFAULT_REGULARIZATION, DEFAULT_RESULTS_DIR, DEFAULT_SOLVER_METHOD,
    DEFAULT_SOLVER_TOLERANCE, DEFAULT_TIME_WEIGHT, DEFAULT_TIMESTEP, DEFAULT_TIMESTEPS,
)
from .constraints import (
    Constraint, DerivativeIntegrator, FinalFidelityConstraint,
    TimestepsAllEqualConstraint, VariableLayout,
)
from .dynamics import UnitaryRollout, derivative
from .objectives import (
    CompositeObjective, MinimumTimeObjective, Objective, QuadraticRegularizer,
    UnitaryInfidelityObjective, UnitaryRobustnessObjective,
)
from .operators import get_gate, is_unitary
from .systems import QuantumSystem
from .trajectory import NamedTrajectory
from .utils import as_array, iso_vec_to_operator, operator_to_iso_vec

logger = logging.getLogger(__name__)

STATE_NAME = 'U'
CONTROL_NAME = 'a'


class QuantumControlProblem:
    """
    Nonlinear program over the control components of a trajectory.

    Parameters:
    -----------
    system : QuantumSystem
        Controlled system; its drives are weighted by component `control_name`
    trajectory : NamedTrajectory
        Initial guess; modified in place by `solve`
    objective : Objective
        Scalar objective to minimize
    constraints : sequence of Constraint, optional
        Equality and inequality constraints
    variables : sequence of str, optional
        Decision-variable components. Defaults to the trajectory controls plus
        the timestep component on free-time trajectories
    goal : Qobj or np.ndarray, optional
        Target unitary used for fidelity reporting
    subspace : sequence of int, optional
        Subspace the fidelity is measured on
    U_init : np.ndarray, optional
        Initial unitary of the rollout
    name : str, optional
        Label used in progress output and saved results
    """

    def __init__(self,
                 system: QuantumSystem,
                 trajectory: NamedTrajectory,
                 objective: Objective,
                 constraints: Sequence[Constraint] = (),
                 variables: Optional[Sequence[str]] = None,
                 goal=None,
                 subspace: Optional[Sequence[int]] = None,
                 U_init=None,
                 control_name: str = CONTROL_NAME,
                 name: str = "problem"):
        if system.n_drives == 0:
            raise ValueError("system has no drives to control")
        if control_name not in trajectory:
            raise ValueError(f"trajectory has no control component '{control_name}'")
        if trajectory.dims[control_name] != system.n_drives:
            raise ValueError(
                f"component '{control_name}' has {trajectory.dims[control_name]} rows, "
                f"system has {system.n_drives} drives"
            )
        if variables is None:
            variables = list(trajectory.controls)
            if trajectory.free_time:
                variables.append(trajectory.timestep)
        if len(variables) == 0:
            raise ValueError("problem has no decision variables")

        self.system = system
        self.trajectory = trajectory
        self.objective = objective
        self.constraints: List[Constraint] = list(constraints)
        self.variables: List[str] = list(variables)
        self.layout = VariableLayout(trajectory, self.variables)
        self.goal = None if goal is None else as_array(goal)
        self.subspace = None if subspace is None else np.asarray(subspace, dtype=int)
        self.U_init = None if U_init is None else as_array(U_init)
        self.control_name = control_name
        self.name = name
        self.history: List[Dict[str, float]] = []
        self.result = None

        self._cache_key: Optional[bytes] = None
        self._cache_rollout: Optional[UnitaryRollout] = None
        self.update_state()

    # ------------------------------------------------------------------
    # Evaluation
    # ------------------------------------------------------------------

    @property
    def n_variables(self) -> int:
        return self.layout.size

    def vector(self) -> np.ndarray:
        """Current decision vector."""
        return self.trajectory.vec(self.variables)

    def _evaluate(self, z: np.ndarray) -> UnitaryRollout:
        """Load `z` into the trajectory and return the (cached) rollout."""
        z = np.asarray(z, dtype=float)
        key = z.tobytes()
        if key != self._cache_key:
            self.trajectory.update(self.variables, z)
            self._cache_rollout = UnitaryRollout(
                self.system, self.trajectory[self.control_name],
                self.trajectory.timesteps, U_init=self.U_init,
            )
            self._cache_key = key
        return self._cache_rollout

    def rollout(self) -> UnitaryRollout:
        return self._evaluate(self.vector())

    def objective_value(self, z: np.ndarray) -> float:
        rollout = self._evaluate(z)
        return self.objective.value(self.trajectory, rollout)

    def objective_gradient(self, z: np.ndarray) -> np.ndarray:
        rollout = self._evaluate(z)
        return self.layout.scatter(self.objective.gradient(self.trajectory, rollout))

    def _constraint_functions(self) -> List[Dict[str, Any]]:
        funcs: List[Dict[str, Any]] = []
        for c in self.constraints:
            def fun(z, c=c):
                return c.residual(self.trajectory, self._evaluate(z))

            def jac(z, c=c):
                return c.jacobian(self.trajectory, self._evaluate(z), self.layout)

            funcs.append({'type': c.kind, 'fun': fun, 'jac': jac})
        return funcs

    def constraint_violation(self) -> float:
        """Largest violation over all constraints at the current trajectory."""
        rollout = self.rollout()
        worst = 0.0
        for c in self.constraints:
            r = c.residual(self.trajectory, rollout)
            if r.size == 0:
                continue
            if c.kind == 'eq':
                worst = max(worst, float(np.max(np.abs(r))))
            else:
                worst = max(worst, float(max(0.0, -np.min(r))))
        return worst

    def fidelity(self) -> float:
        """Fidelity of the current trajectory with respect to `goal`."""
        if self.goal is None:
            raise ValueError("problem has no goal operator")
        return self.rollout().fidelity(self.goal, self.subspace)

    def update_state(self) -> None:
        """Write the rolled-out unitaries into the trajectory component `U`."""
        rollout = self.rollout()
        iso = np.stack([operator_to_iso_vec(U) for U in rollout.unitaries], axis=1)
        self.trajectory.add_component(STATE_NAME, iso)

    # ------------------------------------------------------------------
    # Solve
    # ------------------------------------------------------------------

    def solve(self,
              max_iter: int = DEFAULT_MAX_ITERATIONS,
              tol: float = DEFAULT_SOLVER_TOLERANCE,
              method: str = DEFAULT_SOLVER_METHOD,
              verbose: bool = True,
              print_every: int = 10):
        """
        Run the optimizer from the current trajectory.

        The final iterate is written back into the trajectory even when the
        solver does not report success; inspect ``result.success`` and
        ``result.message`` for the solver status.

        Parameters:
        -----------
        max_iter : int
            Maximum solver iterations
        tol : float
            Solver tolerance
        method : str, default from config
            scipy.optimize.minimize method supporting bounds and constraints
        verbose : bool, default=True
            Whether to print optimization progress
        print_every : int, default=10
            Progress line interval in iterations

        Returns:
        --------
        OptimizeResult
            scipy result object
        """
        z0 = self.vector()
        bounds = self.layout.bounds(self.trajectory)
        # Start inside the box so bound-respecting methods accept the guess
        lo = np.array([-np.inf if b[0] is None else b[0] for b in bounds])
        hi = np.array([np.inf if b[1] is None else b[1] for b in bounds])
        z0 = np.clip(z0, lo, hi)

        if verbose:
            print(f"Starting optimization: {self.name}")
            print(f"Decision variables: {self.n_variables}")
            print(f"Constraints: {[repr(c) for c in self.constraints]}")
            print(f"Optimization method: {method}")
            print("-" * 60)

        iteration = [0]

        def callback(zk, *args):
            iteration[0] += 1
            value = self.objective_value(zk)
            record = {'iteration': iteration[0], 'objective': float(value)}
            if self.goal is not None:
                record['fidelity'] = self._evaluate(zk).fidelity(self.goal, self.subspace)
            self.history.append(record)
            if verbose and iteration[0] % max(1, print_every) == 0:
                line = f"Iteration {iteration[0]}: Objective = {value:.6e}"
                if 'fidelity' in record:
                    line += f", Fidelity = {record['fidelity']:.6f}"
                print(line)

        result = minimize(
            self.objective_value, z0,
            jac=self.objective_gradient,
            method=method,
            bounds=bounds,
            constraints=self._constraint_functions(),
            tol=tol,
            options={'maxiter': int(max_iter)},
            callback=callback,
        )

        self._evaluate(result.x)
        self.update_state()
        self.result = result

        if not result.success:
            logger.warning("Solver did not converge for %s: %s", self.name, result.message)

        if verbose:
            print("-" * 60)
            print(f"Optimization completed. Objective: {result.fun:.6e}")
            print(f"Optimization success: {result.success}")
            print(f"Function evaluations: {result.nfev}")
            if self.goal is not None:
                print(f"Fidelity: {self.fidelity():.6f}")
            print(f"Duration: {self.trajectory.duration:.4f}")
        return result

    def summary(self) -> Dict[str, Any]:
        """Current objective breakdown, fidelity, duration and constraint violation."""
        rollout = self.rollout()
        info: Dict[str, Any] = {
            'name': self.name,
            'objective': self.objective.value(self.trajectory, rollout),
            'duration': self.trajectory.duration,
            'constraint_violation': self.constraint_violation(),
            'n_variables': self.n_variables,
        }
        if isinstance(self.objective, CompositeObjective):
            info['objective_terms'] = self.objective.breakdown(self.trajectory, rollout)
        if self.goal is not None:
            info['fidelity'] = rollout.fidelity(self.goal, self.subspace)
        return info

    def __repr__(self) -> str:
        return (f"{self.__class__.__name__}(name={self.name!r}, system={self.system!r}, "
                f"variables={self.variables}, n_variables={self.n_variables})")


def solve(problem: QuantumControlProblem, **kwargs):
    """Solve `problem` in place; keyword arguments go to `QuantumControlProblem.solve`."""
    return problem.solve(**kwargs)


# ------------------------------------------------------------------
# Problem templates
# ------------------------------------------------------------------

def _resolve_goal(system: QuantumSystem, operator_goal,
                  subspace: Optional[Sequence[int]]) -> Tuple[np.ndarray, np.ndarray, Optional[np.ndarray]]:
    """
    Return (goal, full-space goal, subspace) for a gate target.

    Goals smaller than the system are placed on `subspace`, falling back to the
    system's computational subspace.
    """
    goal = as_array(get_gate(operator_goal) if isinstance(operator_goal, str) else operator_goal)
    if not is_unitary(goal):
        raise ValueError("operator_goal must be unitary")
    n = system.levels
    if goal.shape == (n, n):
        return goal, goal, None if subspace is None else np.asarray(subspace, dtype=int)
    idx = np.asarray(system.subspace if subspace is None else subspace, dtype=int)
    if goal.shape != (len(idx), len(idx)):
        raise ValueError(
            f"goal of shape {goal.shape} fits neither the system ({n}) nor the subspace ({len(idx)})"
        )
    full = np.eye(n, dtype=complex)
    full[np.ix_(idx, idx)] = goal
    return goal, full, idx


def _goal_from_trajectory(trajectory: NamedTrajectory) -> np.ndarray:
    if STATE_NAME not in trajectory.goal:
        raise ValueError("trajectory carries no goal; pass operator_goal explicitly")
    return iso_vec_to_operator(trajectory.goal[STATE_NAME])


def _smooth_guess(n_drives: int, T: int, timesteps: np.ndarray, a_bound: np.ndarray,
                  rng: np.random.Generator, modes: int = 3) -> np.ndarray:
    """Random low-frequency sine series vanishing at both ends."""
    times = np.concatenate([[0.0], np.cumsum(timesteps[:-1])])
    duration = times[-1]
    a = np.zeros((n_drives, T))
    for k in range(1, modes + 1):
        coeffs = rng.normal(scale=DEFAULT_GUESS_SCALE, size=n_drives) * a_bound / k
        a += np.outer(coeffs, np.sin(k * np.pi * times / duration))
    a[:, 0] = 0.0
    a[:, -1] = 0.0
    return a


def _regularizers(R: float, R_a, R_da, R_dda) -> List[Objective]:
    return [
        QuadraticRegularizer('a', R if R_a is None else R_a),
        QuadraticRegularizer('da', R if R_da is None else R_da),
        QuadraticRegularizer('dda', R if R_dda is None else R_dda),
    ]


def _smooth_constraints(trajectory: NamedTrajectory, timesteps_all_equal: bool) -> List[Constraint]:
    constraints: List[Constraint] = [
        DerivativeIntegrator('a', 'da'),
        DerivativeIntegrator('da', 'dda'),
    ]
    if trajectory.free_time and timesteps_all_equal:
        constraints.append(TimestepsAllEqualConstraint())
    return constraints


def unitary_smooth_pulse_problem(system: QuantumSystem,
                                 operator_goal,
                                 T: int = DEFAULT_TIMESTEPS,
                                 dt: float = DEFAULT_TIMESTEP,
                                 *,
                                 free_time: bool = True,
                                 init_trajectory: Optional[NamedTrajectory] = None,
                                 a_guess: Optional[np.ndarray] = None,
                                 a_bound: Union[float, Sequence[float]] = DEFAULT_A_BOUND,
                                 a_bounds: Optional[Tuple[Any, Any]] = None,
                                 dda_bound: Union[float, Sequence[float]] = DEFAULT_DDA_BOUND,
                                 dt_min: Optional[float] = None,
                                 dt_max: Optional[float] = None,
                                 Q: float = DEFAULT_INFIDELITY_WEIGHT,
                                 R: float = DEFAULT_REGULARIZATION,
                                 R_a=None, R_da=None, R_dda=None,
                                 subspace: Optional[Sequence[int]] = None,
                                 timesteps_all_equal: bool = True,
                                 U_init=None,
                                 seed: Optional[int] = None,
                                 name: str = "unitary_smooth_pulse") -> QuantumControlProblem:
    """
    Gate synthesis with smooth, bounded controls.

    The trajectory carries the controls ``a`` and their first and second
    time derivatives ``da`` and ``dda``, linked by derivative integrators, so
    bounding ``dda`` bounds the pulse curvature. The controls start and end at
    zero. The objective is Q (1 - F) plus quadratic regularization on
    ``a``, ``da`` and ``dda``.

    Parameters:
    -----------
    system : QuantumSystem
        System to control
    operator_goal : str, Qobj or np.ndarray
        Target gate; names are looked up in the gate library
    T : int
        Number of knot points
    dt : float
        Initial timestep
    free_time : bool, default=True
        Whether the timestep is a decision variable
    init_trajectory : NamedTrajectory, optional
        Trajectory whose a/da/dda (and dt) seed the guess
    a_guess : np.ndarray, optional
        Initial controls, shape (n_drives, T); derivatives are computed from it
    a_bound, dda_bound : float or sequence
        Symmetric bounds on the controls and their second derivatives
    a_bounds : tuple, optional
        Explicit (lower, upper) bounds on the controls
    dt_min, dt_max : float, optional
        Free-time bounds, default dt/2 and 2 dt
    Q, R : float
        Infidelity weight and default regularization weight
    R_a, R_da, R_dda : float or sequence, optional
        Per-component regularization weights
    subspace : sequence of int, optional
        Subspace the fidelity is measured on
    timesteps_all_equal : bool, default=True
        Keep a uniform grid under free time
    U_init : np.ndarray, optional
        Initial unitary
    seed : int, optional
        Seed of the random initial guess

    Returns:
    --------
    QuantumControlProblem
    """
    goal, goal_full, subspace = _resolve_goal(system, operator_goal, subspace)
    n_drives = system.n_drives
    a_bound_arr = np.abs(np.array(_as_list(a_bound, n_drives)))
    dda_bound_arr = np.abs(np.array(_as_list(dda_bound, n_drives)))

    if init_trajectory is not None:
        T = init_trajectory.T
        timesteps = init_trajectory.timesteps
        a = np.array(init_trajectory['a'])
        if a.shape[0] != n_drives:
            raise ValueError(f"init_trajectory has {a.shape[0]} controls, system has {n_drives} drives")
        da = np.array(init_trajectory['da']) if 'da' in init_trajectory else derivative(a, timesteps)
        dda = np.array(init_trajectory['dda']) if 'dda' in init_trajectory else derivative(da, timesteps)
    else:
        if T < 3:
            raise ValueError("T must be at least 3")
        if dt <= 0:
            raise ValueError("dt must be positive")
        timesteps = np.full(T, float(dt))
        if a_guess is None:
            rng = np.random.default_rng(seed)
            a = _smooth_guess(n_drives, T, timesteps, a_bound_arr, rng)
        else:
            a = np.array(a_guess, dtype=float).reshape(n_drives, -1)
            if a.shape[1] != T:
                raise ValueError(f"a_guess has {a.shape[1]} knots, expected {T}")
        da = derivative(a, timesteps)
        dda = derivative(da, timesteps)

    components: Dict[str, np.ndarray] = {'a': a, 'da': da, 'dda': dda}
    bounds: Dict[str, Any] = {
        'a': a_bounds if a_bounds is not None else a_bound_arr,
        'dda': dda_bound_arr,
    }
    if free_time:
        dt0 = float(np.mean(timesteps))
        components['dt'] = timesteps.reshape(1, -1)
        bounds['dt'] = (dt0 * DEFAULT_DT_MIN_FACTOR if dt_min is None else dt_min,
                        dt0 * DEFAULT_DT_MAX_FACTOR if dt_max is None else dt_max)
        timestep: Union[str, float] = 'dt'
    else:
        if not np.allclose(timesteps, timesteps[0]):
            raise ValueError("fixed-time problems need a uniform timestep")
        timestep = float(timesteps[0])

    trajectory = NamedTrajectory(
        components,
        timestep=timestep,
        controls=['a', 'da', 'dda'],
        bounds=bounds,
        initial={'a': np.zeros(n_drives)},
        final={'a': np.zeros(n_drives)},
    )
    trajectory.add_component(STATE_NAME, np.zeros((2 * system.levels ** 2, trajectory.T)))
    trajectory.goal[STATE_NAME] = operator_to_iso_vec(goal_full)

    objective = sum(
        [UnitaryInfidelityObjective(goal, Q=Q, subspace=subspace)] + _regularizers(R, R_a, R_da, R_dda)
    )
    constraints = _smooth_constraints(trajectory, timesteps_all_equal)

    logger.info("Built %s: T=%d, drives=%d, free_time=%s", name, trajectory.T, n_drives, free_time)
    return QuantumControlProblem(
        system, trajectory, objective, constraints,
        goal=goal, subspace=subspace, U_init=U_init, name=name,
    )


def unitary_robustness_problem(H_error,
                               trajectory: NamedTrajectory,
                               system: QuantumSystem,
                               *,
                               operator_goal=None,
                               final_fidelity: Optional[float] = None,
                               weight: float = 1.0,
                               R: float = DEFAULT_REGULARIZATION,
                               R_a=None, R_da=None, R_dda=None,
                               subspace: Optional[Sequence[int]] = None,
                               timesteps_all_equal: bool = True,
                               U_init=None,
                               name: str = "unitary_robustness") -> QuantumControlProblem:
    """
    Reduce the first-order sensitivity of a solved pulse to a static error.

    Minimizes the toggling-frame robustness metric for `H_error` plus
    quadratic regularization, subject to the smooth-pulse integrators and
    bounds of `trajectory` and to F ≥ `final_fidelity`.

    Parameters:
    -----------
    H_error : Qobj or np.ndarray
        Static error Hamiltonian (e.g. a detuning term)
    trajectory : NamedTrajectory
        Solved smooth-pulse trajectory; copied, not modified
    system : QuantumSystem
        System the trajectory was solved for
    operator_goal : optional
        Target gate; defaults to the goal stored in the trajectory
    final_fidelity : float, optional
        Fidelity floor; defaults to the fidelity of `trajectory`
    weight : float, default=1.0
        Weight on the robustness metric

    Returns:
    --------
    QuantumControlProblem
    """
    if operator_goal is None:
        operator_goal = _goal_from_trajectory(trajectory)
    goal, goal_full, subspace = _resolve_goal(system, operator_goal, subspace)
    traj = trajectory.copy()
    traj.goal[STATE_NAME] = operator_to_iso_vec(goal_full)

    if final_fidelity is None:
        rollout = UnitaryRollout(system, traj['a'], traj.timesteps, U_init=U_init)
        final_fidelity = min(rollout.fidelity(goal, subspace), 1.0)
        logger.info("Robustness problem fidelity floor set to current fidelity %.6f", final_fidelity)

    objective = sum(
        [UnitaryRobustnessObjective(H_error, weight=weight, subspace=subspace)]
        + _regularizers(R, R_a, R_da, R_dda)
    )
    constraints = _smooth_constraints(traj, timesteps_all_equal)
    constraints.append(FinalFidelityConstraint(goal, final_fidelity, subspace=subspace))
    return QuantumControlProblem(
        system, traj, objective, constraints,
        goal=goal, subspace=subspace, U_init=U_init, name=name,
    )


def unitary_minimum_time_problem(trajectory: NamedTrajectory,
                                 system: QuantumSystem,
                                 *,
                                 operator_goal=None,
                                 final_fidelity: Optional[float] = None,
                                 D: float = DEFAULT_TIME_WEIGHT,
                                 R: float = DEFAULT_REGULARIZATION,
                                 R_a=None, R_da=None, R_dda=None,
                                 subspace: Optional[Sequence[int]] = None,
                                 U_init=None,
                                 name: str = "unitary_minimum_time") -> QuantumControlProblem:
    """
    Shorten a solved free-time pulse while keeping F ≥ `final_fidelity`.

    The objective is D · duration plus quadratic regularization; timesteps
    stay uniform.
    """
    if not trajectory.free_time:
        raise ValueError("minimum-time problems require a free-time trajectory")
    if operator_goal is None:
        operator_goal = _goal_from_trajectory(trajectory)
    goal, goal_full, subspace = _resolve_goal(system, operator_goal, subspace)
    traj = trajectory.copy()
    traj.goal[STATE_NAME] = operator_to_iso_vec(goal_full)

    if final_fidelity is None:
        rollout = UnitaryRollout(system, traj['a'], traj.timesteps, U_init=U_init)
        final_fidelity = min(rollout.fidelity(goal, subspace), 1.0)

    objective = sum([MinimumTimeObjective(D)] + _regularizers(R, R_a, R_da, R_dda))
    constraints = _smooth_constraints(traj, timesteps_all_equal=True)
    constraints.append(FinalFidelityConstraint(goal, final_fidelity, subspace=subspace))
    return QuantumControlProblem(
        system, traj, objective, constraints,
        goal=goal, subspace=subspace, U_init=U_init, name=name,
    )


# ------------------------------------------------------------------
# Results persistence
# ------------------------------------------------------------------

def _prepare_results_directory(directory: str = DEFAULT_RESULTS_DIR) -> str:
    """Ensure results directory exists and return its path."""
    os.makedirs(directory, exist_ok=True)
    return directory

def _timestamp() -> str:
    """Return a UTC timestamp string formatted as YYYYMMDDTHHMMSS."""
    return datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%S")

def _serialize_optimize_result(opt_result: Any) -> Dict[str, Any]:
    """Extract serializable fields from scipy OptimizeResult."""
    return {
        'fun': float(opt_result.fun),
        'success': bool(opt_result.success),
        'status': int(getattr(opt_result, 'status', -1)),
        'message': str(opt_result.message),
        'nfev': int(getattr(opt_result, 'nfev', -1)),
        'nit': int(getattr(opt_result, 'nit', -1)),
    }

def save_problem_results(problem: QuantumControlProblem,
                         results_dir: str = DEFAULT_RESULTS_DIR,
                         base_name: Optional[str] = None) -> Dict[str, str]:
    """
    Save problem metadata (JSON) and the trajectory (NPZ) to disk.

    Returns mapping with paths used.
    """
    _prepare_results_directory(results_dir)
    summary = problem.summary()
    if base_name is None:
        fid = summary.get('fidelity')
        fid_part = f"_fid={fid:.6f}" if fid is not None else ""
        base_name = f"{problem.name}_T={problem.trajectory.T}{fid_part}_{_timestamp()}"
    json_path = os.path.join(results_dir, f"{base_name}.json")
    npz_path = os.path.join(results_dir, f"{base_name}.npz")

    meta = {
        'name': problem.name,
        'system': repr(problem.system),
        'variables': problem.variables,
        'objective': repr(problem.objective),
        'constraints': [repr(c) for c in problem.constraints],
        'summary': {k: v for k, v in summary.items() if k != 'objective_terms'},
        'objective_terms': summary.get('objective_terms'),
        'history': problem.history,
        'timestamp': _timestamp(),
        'optimization_result': (
            _serialize_optimize_result(problem.result) if problem.result is not None else None
        ),
    }
    with open(json_path, 'w') as f:
        json.dump(meta, f, indent=2, default=float)

    problem.trajectory.save(npz_path)
    logger.info("Saved %s results to %s", problem.name, json_path)
    return {'json': json_path, 'npz': npz_path}
