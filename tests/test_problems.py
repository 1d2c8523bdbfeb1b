import json
import os

import numpy as np
import pytest

from pulse_control.dynamics import UnitaryRollout, derivative, integrator_residuals
from pulse_control.operators import get_gate, pauli
from pulse_control.problems import (
    QuantumControlProblem, save_problem_results, solve,
    unitary_minimum_time_problem, unitary_robustness_problem, unitary_smooth_pulse_problem,
)
from pulse_control.systems import QuantumSystem, qubit_system, transmon_system
from pulse_control.trajectory import NamedTrajectory
from pulse_control.utils import iso_vec_to_operator, operator_to_iso_vec


@pytest.fixture(scope="module")
def solved_x():
    system = qubit_system()
    problem = unitary_smooth_pulse_problem(system, 'X', T=21, dt=0.5, seed=1234)
    problem.solve(max_iter=200, verbose=False)
    return system, problem


def test_smooth_pulse_template_structure():
    problem = unitary_smooth_pulse_problem(qubit_system(), 'X', T=11, dt=0.4, seed=0)
    traj = problem.trajectory
    assert problem.variables == ['a', 'da', 'dda', 'dt']
    assert set(traj.names) == {'a', 'da', 'dda', 'dt', 'U'}
    assert traj.dims['U'] == 8
    np.testing.assert_allclose(traj['a'][:, [0, -1]], 0.0)
    np.testing.assert_allclose(integrator_residuals(traj['a'], traj['da'], traj.timesteps), 0.0, atol=1e-12)
    np.testing.assert_allclose(iso_vec_to_operator(traj.goal['U']), get_gate('X').full())
    np.testing.assert_allclose(iso_vec_to_operator(traj['U'][:, 0]), np.eye(2))
    assert [c.name for c in problem.constraints] == [
        'integrator_da_to_a', 'integrator_dda_to_da', 'timesteps_all_equal',
    ]


def test_fixed_time_template_has_no_timestep_variable():
    problem = unitary_smooth_pulse_problem(qubit_system(), 'X', T=11, dt=0.4, free_time=False, seed=0)
    assert problem.variables == ['a', 'da', 'dda']
    assert not problem.trajectory.free_time
    assert len(problem.constraints) == 2


def test_template_argument_errors():
    system = qubit_system()
    with pytest.raises(ValueError):
        unitary_smooth_pulse_problem(system, 'X', T=2)
    with pytest.raises(ValueError):
        unitary_smooth_pulse_problem(system, np.array([[1, 1], [0, 1]]))
    with pytest.raises(ValueError):
        unitary_smooth_pulse_problem(system, 'CX')
    with pytest.raises(ValueError):
        unitary_smooth_pulse_problem(system, 'X', T=5, a_guess=np.zeros((2, 4)))
    with pytest.raises(ValueError):
        unitary_smooth_pulse_problem(system, 'X', a_bound=[1.0, 1.0, 1.0])


def test_problem_rejects_mismatched_controls():
    problem = unitary_smooth_pulse_problem(qubit_system(), 'X', T=5, seed=0)
    with pytest.raises(ValueError):
        QuantumControlProblem(transmon_system(3, drives=False), problem.trajectory, problem.objective)


def test_transmon_goal_is_embedded_in_subspace():
    problem = unitary_smooth_pulse_problem(transmon_system(3), 'X', T=5, seed=0)
    np.testing.assert_array_equal(problem.subspace, [0, 1])
    goal_full = iso_vec_to_operator(problem.trajectory.goal['U'])
    assert goal_full.shape == (3, 3)
    assert goal_full[2, 2] == pytest.approx(1.0)


def test_smooth_pulse_solves_x_gate(solved_x):
    system, problem = solved_x
    traj = problem.trajectory
    assert problem.fidelity() > 0.99
    np.testing.assert_allclose(traj['a'][:, 0], 0.0, atol=1e-10)
    np.testing.assert_allclose(traj['a'][:, -1], 0.0, atol=1e-10)
    assert np.all(np.abs(traj['a']) <= 1.0 + 1e-8)
    assert np.all(np.abs(traj['dda']) <= 1.0 + 1e-8)
    np.testing.assert_allclose(integrator_residuals(traj['a'], traj['da'], traj.timesteps), 0.0, atol=1e-6)
    np.testing.assert_allclose(integrator_residuals(traj['da'], traj['dda'], traj.timesteps), 0.0, atol=1e-6)
    np.testing.assert_allclose(traj.timesteps, traj.timesteps[0], atol=1e-6)
    # Stored state matches an independent rollout
    U_final = UnitaryRollout(system, traj['a'], traj.timesteps).final
    np.testing.assert_allclose(iso_vec_to_operator(traj['U'][:, -1]), U_final, atol=1e-10)
    assert len(problem.history) > 0
    assert problem.summary()['constraint_violation'] < 1e-6


def test_robustness_problem_reduces_sensitivity(solved_x):
    system, solved = solved_x
    H_error = pauli('Z') / 2
    before = UnitaryRollout(system, solved.trajectory['a'], solved.trajectory.timesteps).robustness(H_error)
    problem = unitary_robustness_problem(H_error, solved.trajectory, system, final_fidelity=0.99, R=1e-6)
    assert problem.trajectory is not solved.trajectory
    result = solve(problem, max_iter=30, verbose=False)
    after = problem.rollout().robustness(H_error)
    assert after <= before + 1e-8
    assert problem.fidelity() >= 0.985
    assert result is problem.result


def test_robustness_problem_defaults_to_current_fidelity(solved_x):
    system, solved = solved_x
    problem = unitary_robustness_problem(pauli('Z'), solved.trajectory, system)
    floor = problem.constraints[-1].fidelity
    assert floor == pytest.approx(solved.fidelity())


def test_minimum_time_problem_shortens_pulse(solved_x):
    system, solved = solved_x
    before = solved.trajectory.duration
    problem = unitary_minimum_time_problem(solved.trajectory, system, final_fidelity=0.99)
    problem.solve(max_iter=50, verbose=False)
    assert problem.trajectory.duration <= before + 1e-8
    assert problem.fidelity() >= 0.985


def test_minimum_time_requires_free_time():
    system = qubit_system()
    problem = unitary_smooth_pulse_problem(system, 'X', T=5, free_time=False, seed=0)
    with pytest.raises(ValueError):
        unitary_minimum_time_problem(problem.trajectory, system)


def test_save_problem_results(solved_x, tmp_path):
    _, problem = solved_x
    paths = save_problem_results(problem, results_dir=str(tmp_path), base_name="x_gate")
    assert os.path.exists(paths['json'])
    assert os.path.exists(paths['npz'])
    with open(paths['json']) as f:
        meta = json.load(f)
    assert meta['name'] == 'unitary_smooth_pulse'
    assert meta['summary']['fidelity'] > 0.99
    assert meta['optimization_result'] is not None
    assert 'infidelity' in meta['objective_terms']


def test_per_drive_dda_bound_is_symmetric():
    problem = unitary_smooth_pulse_problem(qubit_system(), 'X', T=7, dda_bound=(0.5, 2.0), seed=0)
    lo, hi = problem.trajectory.bounds['dda']
    np.testing.assert_array_equal(lo, [-0.5, -2.0])
    np.testing.assert_array_equal(hi, [0.5, 2.0])
    with pytest.raises(ValueError):
        unitary_smooth_pulse_problem(qubit_system(), 'X', T=7, dda_bound=[1.0, 1.0, 1.0])


def test_problem_rejects_drift_only_system():
    problem = unitary_smooth_pulse_problem(qubit_system(), 'X', T=5, seed=0)
    with pytest.raises(ValueError):
        QuantumControlProblem(QuantumSystem(pauli('Z'), []), problem.trajectory, problem.objective)


def test_a_guess_seeds_controls_and_derivatives():
    T, dt = 9, 0.5
    times = np.arange(T) * dt
    a = np.vstack([0.3 * np.sin(np.pi * times / times[-1]), np.zeros(T)])
    problem = unitary_smooth_pulse_problem(qubit_system(), 'X', T=T, dt=dt, a_guess=a)
    traj = problem.trajectory
    np.testing.assert_allclose(traj['a'], a)
    np.testing.assert_allclose(traj['da'], derivative(a, dt))
    np.testing.assert_allclose(traj['dda'], derivative(derivative(a, dt), dt))


def test_init_trajectory_carries_over(solved_x):
    system, solved = solved_x
    problem = unitary_smooth_pulse_problem(system, 'X', init_trajectory=solved.trajectory)
    traj = problem.trajectory
    assert traj.T == solved.trajectory.T
    for name in ('a', 'da', 'dda', 'dt'):
        np.testing.assert_allclose(traj[name], solved.trajectory[name])
    assert problem.fidelity() == pytest.approx(solved.fidelity())


def test_init_trajectory_fills_missing_derivatives():
    T = 6
    a = np.zeros((2, T))
    a[0, 1:-1] = [0.2, 0.4, 0.4, 0.2]
    dts = np.full(T, 0.5)
    seed = NamedTrajectory({'a': a, 'dt': dts}, timestep='dt', controls=['a'])
    problem = unitary_smooth_pulse_problem(qubit_system(), 'X', init_trajectory=seed)
    traj = problem.trajectory
    assert traj.T == T
    np.testing.assert_allclose(traj['da'], derivative(a, dts))
    np.testing.assert_allclose(traj['dda'], derivative(derivative(a, dts), dts))
    np.testing.assert_allclose(traj.timesteps, dts)


def test_solve_from_non_identity_initial_unitary():
    system = qubit_system()
    U0 = get_gate('H').full()
    problem = unitary_smooth_pulse_problem(system, 'X', T=11, dt=0.5, U_init=U0, seed=3)
    problem.solve(max_iter=5, verbose=False)
    traj = problem.trajectory
    np.testing.assert_allclose(traj['U'][:, 0], operator_to_iso_vec(U0), atol=1e-12)
    U_final = UnitaryRollout(system, traj['a'], traj.timesteps, U_init=U0).final
    np.testing.assert_allclose(iso_vec_to_operator(traj['U'][:, -1]), U_final, atol=1e-10)
    assert problem.fidelity() == pytest.approx(
        UnitaryRollout(system, traj['a'], traj.timesteps, U_init=U0).fidelity(get_gate('X'))
    )
