"""
Quantum operators module.

This module provides functions to construct the operators used to build
control Hamiltonians and gate targets: Pauli matrices, ladder operators for
multilevel systems, subsystem embeddings and a small gate library.

All operators are returned as qutip ``Qobj`` instances unless stated otherwise.
"""

from qutip import destroy, qeye, sigmax, sigmay, sigmaz, tensor, Qobj
from typing import Dict, List, Sequence, Tuple, Union
import numpy as np
from .config import HERMITIAN_TOLERANCE, UNITARY_TOLERANCE
from .utils import as_array, subspace_indices

def pauli(name: str) -> Qobj:
    """Return the Pauli operator 'I', 'X', 'Y' or 'Z'."""
    key = str(name).upper()
    if key == 'I':
        return qeye(2)
    if key == 'X':
        return sigmax()
    if key == 'Y':
        return sigmay()
    if key == 'Z':
        return sigmaz()
    raise ValueError(f"Unknown Pauli operator '{name}'")

def annihilate(levels: int) -> Qobj:
    """Truncated annihilation operator â on `levels` levels."""
    if levels < 2:
        raise ValueError("levels must be at least 2")
    return destroy(int(levels))

def create(levels: int) -> Qobj:
    """Truncated creation operator â† on `levels` levels."""
    return annihilate(levels).dag()

def number(levels: int) -> Qobj:
    """Number operator â†â on `levels` levels."""
    a = annihilate(levels)
    return a.dag() * a

def lift(op: Union[Qobj, np.ndarray], index: int, subsystem_levels: Sequence[int]) -> Qobj:
    """
    Embed an operator acting on one subsystem into the full tensor-product space.

    Parameters:
    -----------
    op : Qobj or np.ndarray
        Operator on subsystem `index`
    index : int
        Position of the subsystem, ordered as [s0, s1, ...]
    subsystem_levels : sequence of int
        Dimension of each subsystem

    Returns:
    --------
    Qobj
        I ⊗ ... ⊗ op ⊗ ... ⊗ I
    """
    levels = [int(n) for n in subsystem_levels]
    if not (0 <= index < len(levels)):
        raise ValueError(f"index must be between 0 and {len(levels) - 1}")
    mat = as_array(op)
    if mat.shape != (levels[index], levels[index]):
        raise ValueError(
            f"operator shape {mat.shape} does not match subsystem dimension {levels[index]}"
        )
    factors: List[Qobj] = [qeye(n) for n in levels]
    factors[index] = Qobj(mat)
    if len(factors) == 1:
        return factors[0]
    return tensor(*factors)

def _two_qubit(matrix) -> Qobj:
    return Qobj(np.asarray(matrix, dtype=complex), dims=[[2, 2], [2, 2]])

def _build_gates() -> Dict[str, Qobj]:
    """Return the gate library, keyed by upper-case name."""
    H = (1 / np.sqrt(2)) * Qobj([[1, 1], [1, -1]])
    S = Qobj([[1, 0], [0, 1j]])
    T = Qobj([[1, 0], [0, np.exp(1j * np.pi / 4)]])
    sqrt_x = 0.5 * Qobj([[1 + 1j, 1 - 1j], [1 - 1j, 1 + 1j]])
    gates: Dict[str, Qobj] = {
        'I': qeye(2),
        'X': sigmax(),
        'Y': sigmay(),
        'Z': sigmaz(),
        'H': H,
        'S': S,
        'T': T,
        'SQRT_X': sqrt_x,
        'CX': _two_qubit([[1, 0, 0, 0],
                          [0, 1, 0, 0],
                          [0, 0, 0, 1],
                          [0, 0, 1, 0]]),
        'CZ': _two_qubit(np.diag([1, 1, 1, -1])),
        'XI': tensor(sigmax(), qeye(2)),
    }
    # Aliases
    gates['CNOT'] = gates['CX']
    gates['HADAMARD'] = gates['H']
    return gates

GATES: Dict[str, Qobj] = _build_gates()

def get_gate(name: str) -> Qobj:
    """Look up a gate by (case-insensitive) name."""
    key = str(name).upper()
    if key not in GATES:
        raise ValueError(f"Unknown gate '{name}'. Available: {sorted(GATES)}")
    return GATES[key]

def embed_gate(gate: Union[str, Qobj, np.ndarray],
               subsystem_levels: Sequence[int]) -> Tuple[np.ndarray, np.ndarray]:
    """
    Place a qubit gate into the computational subspace of multilevel subsystems.

    Levels outside the computational subspace are mapped by the identity so the
    embedded operator stays unitary.

    Parameters:
    -----------
    gate : str, Qobj or np.ndarray
        Gate name or a 2^k × 2^k unitary acting on k qubits
    subsystem_levels : sequence of int
        Levels of each of the k subsystems

    Returns:
    --------
    tuple
        (full operator as ndarray, subspace indices)
    """
    if isinstance(gate, str):
        gate = get_gate(gate)
    U = as_array(gate)
    levels = [int(n) for n in subsystem_levels]
    dim_sub = 2 ** len(levels)
    if U.shape != (dim_sub, dim_sub):
        raise ValueError(
            f"gate shape {U.shape} does not act on {len(levels)} qubit(s)"
        )
    indices = subspace_indices(levels)
    full = np.eye(int(np.prod(levels)), dtype=complex)
    full[np.ix_(indices, indices)] = U
    return full, indices

def commutator(op1, op2):
    """
    Calculate the commutator [Ô₁, Ô₂] = Ô₁Ô₂ - Ô₂Ô₁.

    Works for Qobj and ndarray operands alike.
    """
    if isinstance(op1, Qobj) and isinstance(op2, Qobj):
        return op1 * op2 - op2 * op1
    A, B = as_array(op1), as_array(op2)
    return A @ B - B @ A

def anticommutator(op1, op2):
    """Calculate the anticommutator {Ô₁, Ô₂} = Ô₁Ô₂ + Ô₂Ô₁."""
    if isinstance(op1, Qobj) and isinstance(op2, Qobj):
        return op1 * op2 + op2 * op1
    A, B = as_array(op1), as_array(op2)
    return A @ B + B @ A

def is_hermitian(op, tol: float = HERMITIAN_TOLERANCE) -> bool:
    """Return True if the operator equals its adjoint to within `tol`."""
    A = as_array(op)
    if A.ndim != 2 or A.shape[0] != A.shape[1]:
        return False
    return bool(np.allclose(A, A.conj().T, atol=tol))

def is_unitary(op, tol: float = UNITARY_TOLERANCE) -> bool:
    """Return True if U†U equals the identity to within `tol`."""
    U = as_array(op)
    if U.ndim != 2 or U.shape[0] != U.shape[1]:
        return False
    return bool(np.allclose(U.conj().T @ U, np.eye(U.shape[0]), atol=tol))
