import numpy as np
import pytest
from qutip import sigmay

from pulse_control.utils import (
    as_array, iso_to_ket, iso_vec_dim, iso_vec_to_operator, ket_to_iso,
    operator_to_iso_vec, subspace_indices,
)


def test_ket_iso_layout():
    psi = np.array([1 + 2j, 3 - 1j])
    np.testing.assert_allclose(ket_to_iso(psi), [1, 3, 2, -1])
    np.testing.assert_allclose(iso_to_ket(ket_to_iso(psi)), psi)


def test_operator_iso_vec_is_column_stacked():
    Y = as_array(sigmay())
    v = operator_to_iso_vec(sigmay())
    assert v.shape == (iso_vec_dim(2),)
    # First column of Y is (0, i): real parts then imaginary parts
    np.testing.assert_allclose(v[:4], [0, 0, 0, 1])
    np.testing.assert_allclose(iso_vec_to_operator(v), Y)


def test_iso_vec_rejects_bad_lengths():
    with pytest.raises(ValueError):
        iso_to_ket(np.zeros(3))
    with pytest.raises(ValueError):
        iso_vec_to_operator(np.zeros(6))
    with pytest.raises(ValueError):
        operator_to_iso_vec(np.zeros((2, 3)))


def test_subspace_indices():
    np.testing.assert_array_equal(subspace_indices([2]), [0, 1])
    np.testing.assert_array_equal(subspace_indices([3]), [0, 1])
    np.testing.assert_array_equal(subspace_indices([3, 3]), [0, 1, 3, 4])
    np.testing.assert_array_equal(subspace_indices([2, 4]), [0, 1, 4, 5])
    with pytest.raises(ValueError):
        subspace_indices([1, 3])
