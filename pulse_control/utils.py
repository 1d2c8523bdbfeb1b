"""
Utility helpers for real-vector (iso) representations of complex operators.

Trajectories store only real data, so kets and unitaries are carried as
"iso" vectors: a complex vector ψ maps to [Re ψ; Im ψ], and an operator maps
to the concatenation of its iso-mapped columns.
"""
from __future__ import annotations
import itertools
import numpy as np
from typing import List, Sequence
from qutip import Qobj


def as_array(op) -> np.ndarray:
    """Return a complex ndarray for a Qobj or array-like operator."""
    if isinstance(op, Qobj):
        return np.asarray(op.full(), dtype=complex)
    return np.asarray(op, dtype=complex)


def ket_to_iso(psi) -> np.ndarray:
    """Map a complex vector ψ to [Re ψ; Im ψ]."""
    v = as_array(psi).ravel()
    return np.concatenate([v.real, v.imag])


def iso_to_ket(v: np.ndarray) -> np.ndarray:
    """Inverse of `ket_to_iso`.

    If length is odd, raises ValueError.
    """
    v = np.asarray(v, dtype=float)
    if v.ndim != 1:
        raise ValueError("iso vector must be 1D")
    if len(v) % 2 != 0:
        raise ValueError("iso vector length must be even (2N)")
    half = len(v) // 2
    return v[:half] + 1j * v[half:]


def iso_vec_dim(levels: int) -> int:
    """Length of the iso vector of a levels × levels operator."""
    return 2 * int(levels) ** 2


def operator_to_iso_vec(U) -> np.ndarray:
    """Stack the iso-mapped columns of U into a single real vector of length 2n²."""
    mat = as_array(U)
    if mat.ndim != 2 or mat.shape[0] != mat.shape[1]:
        raise ValueError("operator must be a square matrix")
    return np.concatenate([ket_to_iso(mat[:, j]) for j in range(mat.shape[1])])


def iso_vec_to_operator(v: np.ndarray) -> np.ndarray:
    """Inverse of `operator_to_iso_vec`."""
    v = np.asarray(v, dtype=float)
    if v.ndim != 1:
        raise ValueError("iso vector must be 1D")
    n = int(round(np.sqrt(len(v) / 2)))
    if iso_vec_dim(n) != len(v):
        raise ValueError(f"iso vector length {len(v)} is not 2n² for any n")
    cols = [iso_to_ket(v[j * 2 * n:(j + 1) * 2 * n]) for j in range(n)]
    return np.stack(cols, axis=1)


def subspace_indices(subsystem_levels: Sequence[int], qubit_levels: int = 2) -> np.ndarray:
    """Indices of the computational subspace of a tensor product of subsystems.

    Each subsystem contributes its lowest `qubit_levels` levels. Indices are
    returned in ascending order, matching the ordering of qubit gates.
    """
    levels = [int(n) for n in subsystem_levels]
    if any(n < qubit_levels for n in levels):
        raise ValueError(f"every subsystem needs at least {qubit_levels} levels")
    out: List[int] = []
    for idx in itertools.product(range(qubit_levels), repeat=len(levels)):
        out.append(int(np.ravel_multi_index(idx, levels)))
    return np.array(out, dtype=int)
