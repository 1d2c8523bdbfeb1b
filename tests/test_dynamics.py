import numpy as np
import pytest

from pulse_control.dynamics import (
    UnitaryRollout, derivative, integrate, integrator_residuals, ket_rollout, traceless,
    unitary_fidelity, unitary_rollout,
)
from pulse_control.operators import get_gate, is_unitary, number, pauli
from pulse_control.systems import qubit_system, transmon_system
from pulse_control.utils import as_array


def _x_pulse(T=11, dt=0.5):
    duration = (T - 1) * dt
    a = np.zeros((2, T))
    a[0, :] = np.pi / duration
    return a, dt


def test_derivative_and_integrate_are_inverse():
    rng = np.random.default_rng(0)
    x = rng.normal(size=(2, 8))
    dts = rng.uniform(0.1, 0.3, size=8)
    dx = derivative(x, dts)
    np.testing.assert_allclose(dx[:, -1], 0.0)
    np.testing.assert_allclose(integrate(x[:, 0], dx, dts), x)
    np.testing.assert_allclose(integrator_residuals(x, dx, dts), 0.0, atol=1e-12)


def test_integrator_residuals_reject_shape_mismatch():
    with pytest.raises(ValueError):
        integrator_residuals(np.zeros((2, 5)), np.zeros((1, 5)), 0.1)


def test_constant_x_drive_implements_x_gate():
    system = qubit_system()
    a, dt = _x_pulse()
    U = unitary_rollout(system, a, dt)
    assert U.shape == (11, 2, 2)
    np.testing.assert_allclose(U[0], np.eye(2))
    assert all(is_unitary(U_t) for U_t in U)
    assert unitary_fidelity(U[-1], get_gate('X')) == pytest.approx(1.0, abs=1e-10)


def test_fidelity_ignores_global_phase():
    X = as_array(get_gate('X'))
    assert unitary_fidelity(np.exp(0.7j) * X, X) == pytest.approx(1.0)
    assert unitary_fidelity(np.eye(2), X) == pytest.approx(0.0)


def test_fidelity_on_transmon_subspace():
    full = np.eye(3, dtype=complex)
    full[:2, :2] = as_array(get_gate('X'))
    assert unitary_fidelity(full, get_gate('X'), subspace=[0, 1]) == pytest.approx(1.0)
    with pytest.raises(ValueError):
        unitary_fidelity(full, get_gate('X'))


def test_ket_rollout_matches_unitary_rollout():
    system = qubit_system()
    a, dt = _x_pulse()
    states = ket_rollout(system, [1, 0], a, dt)
    U = unitary_rollout(system, a, dt)
    np.testing.assert_allclose(states, U[:, :, 0], atol=1e-12)
    assert abs(states[-1, 1]) == pytest.approx(1.0)


def test_fidelity_gradient_matches_finite_differences():
    rng = np.random.default_rng(3)
    system = transmon_system(levels=3)
    T = 6
    a = rng.normal(scale=0.4, size=(2, T))
    dts = rng.uniform(0.8, 1.2, size=T)
    goal = get_gate('X')
    rollout = UnitaryRollout(system, a, dts)
    F, grad_a, grad_dt = rollout.fidelity_gradient(goal, subspace=[0, 1])
    assert F == pytest.approx(rollout.fidelity(goal, subspace=[0, 1]))

    h = 1e-6
    for j in range(2):
        for t in range(T):
            plus, minus = a.copy(), a.copy()
            plus[j, t] += h
            minus[j, t] -= h
            fd = (UnitaryRollout(system, plus, dts).fidelity(goal, [0, 1])
                  - UnitaryRollout(system, minus, dts).fidelity(goal, [0, 1])) / (2 * h)
            assert grad_a[j, t] == pytest.approx(fd, abs=1e-6)
    for t in range(T):
        plus, minus = dts.copy(), dts.copy()
        plus[t] += h
        minus[t] -= h
        fd = (UnitaryRollout(system, a, plus).fidelity(goal, [0, 1])
              - UnitaryRollout(system, a, minus).fidelity(goal, [0, 1])) / (2 * h)
        assert grad_dt[t] == pytest.approx(fd, abs=1e-6)
    # The last knot does not act on the state
    np.testing.assert_allclose(grad_a[:, -1], 0.0)
    assert grad_dt[-1] == 0.0


def test_robustness_of_idle_pulse_is_maximal():
    system = qubit_system()
    rollout = UnitaryRollout(system, np.zeros((2, 5)), 0.5)
    assert rollout.duration == pytest.approx(2.0)
    np.testing.assert_allclose(rollout.toggled_error(pauli('Z')), 2.0 * as_array(pauli('Z')))
    assert rollout.robustness(pauli('Z')) == pytest.approx(1.0)


def test_robustness_is_bounded_for_driven_pulse():
    system = qubit_system()
    a, dt = _x_pulse(T=21, dt=0.25)
    value = UnitaryRollout(system, a, dt).robustness(pauli('Z'))
    assert 0.0 <= value < 1.0
    with pytest.raises(ValueError):
        UnitaryRollout(system, a, dt).robustness(np.zeros((2, 2)))


def test_robustness_ignores_identity_component():
    system = qubit_system()
    a, dt = _x_pulse(T=21, dt=0.25)
    rollout = UnitaryRollout(system, a, dt)
    H = as_array(pauli('Z')) / 2
    assert rollout.robustness(H + 0.5 * np.eye(2)) == pytest.approx(rollout.robustness(H))
    with pytest.raises(ValueError):
        rollout.robustness(0.3 * np.eye(2))


def test_transmon_robustness_on_subspace_is_phase_free():
    rng = np.random.default_rng(11)
    system = transmon_system(levels=3)
    rollout = UnitaryRollout(system, rng.normal(scale=0.5, size=(2, 8)), 0.5)
    n_op = as_array(number(3))
    shifted = rollout.robustness(n_op + 2.0 * np.eye(3), subspace=[0, 1])
    assert shifted == pytest.approx(rollout.robustness(n_op, subspace=[0, 1]))
    assert 0.0 <= shifted <= 1.0
    # Idle transmon: traceless part of diag(0, 1) over the full diag(-1, 0, 1)
    idle = UnitaryRollout(system, np.zeros((2, 5)), 0.5)
    assert idle.robustness(n_op, subspace=[0, 1]) == pytest.approx(0.25)


def test_traceless_removes_trace():
    A = np.diag([1.0, 2.0, 6.0])
    np.testing.assert_allclose(np.trace(traceless(A)), 0.0, atol=1e-12)
    np.testing.assert_allclose(traceless(A + 4 * np.eye(3)), traceless(A))


def test_rollout_validates_inputs():
    system = qubit_system()
    with pytest.raises(ValueError):
        UnitaryRollout(system, np.zeros((3, 5)), 0.1)
    with pytest.raises(ValueError):
        UnitaryRollout(system, np.zeros((2, 5)), -0.1)
    with pytest.raises(ValueError):
        UnitaryRollout(system, np.zeros((2, 5)), np.ones(4))
