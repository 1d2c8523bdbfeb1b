import numpy as np
import pytest
from qutip import Qobj

from pulse_control.operators import (
    annihilate, commutator, embed_gate, get_gate, is_hermitian, is_unitary,
    lift, number, pauli,
)
from pulse_control.utils import as_array


def test_pauli_commutator_gives_2iz():
    comm = commutator(pauli('X'), pauli('Y'))
    np.testing.assert_allclose(as_array(comm), 2j * as_array(pauli('Z')))


def test_unknown_pauli_raises():
    with pytest.raises(ValueError):
        pauli('W')


def test_gate_lookup_is_case_insensitive():
    np.testing.assert_allclose(as_array(get_gate('h')), as_array(get_gate('H')))
    np.testing.assert_allclose(as_array(get_gate('cnot')), as_array(get_gate('CX')))
    with pytest.raises(ValueError):
        get_gate('toffoli')


def test_library_gates_are_unitary():
    for name in ['X', 'Y', 'H', 'S', 'T', 'SQRT_X', 'CX', 'CZ', 'XI']:
        assert is_unitary(get_gate(name)), name


def test_sqrt_x_squares_to_x():
    sx = as_array(get_gate('SQRT_X'))
    np.testing.assert_allclose(sx @ sx, as_array(get_gate('X')), atol=1e-12)


def test_number_operator_diagonal():
    np.testing.assert_allclose(np.diag(as_array(number(4))).real, [0, 1, 2, 3])
    assert is_hermitian(number(4))
    assert not is_hermitian(annihilate(3))


def test_lift_places_operator_on_subsystem():
    X = as_array(pauli('X'))
    lifted = as_array(lift(pauli('X'), 1, [3, 2]))
    np.testing.assert_allclose(lifted, np.kron(np.eye(3), X))
    with pytest.raises(ValueError):
        lift(pauli('X'), 0, [3, 2])
    with pytest.raises(ValueError):
        lift(pauli('X'), 2, [2, 2])


def test_embed_gate_into_transmon_levels():
    full, idx = embed_gate('X', [3])
    np.testing.assert_array_equal(idx, [0, 1])
    np.testing.assert_allclose(full[:2, :2], as_array(pauli('X')))
    assert full[2, 2] == 1
    assert is_unitary(full)


def test_embed_two_qubit_gate_into_qutrits():
    full, idx = embed_gate('CX', [3, 3])
    np.testing.assert_array_equal(idx, [0, 1, 3, 4])
    assert full.shape == (9, 9)
    # |10> -> |11> in the computational subspace
    assert full[4, 3] == 1
    with pytest.raises(ValueError):
        embed_gate('CX', [3])


def test_commutator_accepts_arrays():
    A = np.array([[0, 1], [0, 0]], dtype=complex)
    B = A.conj().T
    np.testing.assert_allclose(commutator(A, B), np.diag([1, -1]))
    assert isinstance(commutator(Qobj(A), Qobj(B)), Qobj)
