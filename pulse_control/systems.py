"""
Quantum system definitions.

A quantum system is a drift Hamiltonian plus a list of drive Hamiltonians
weighted by real control amplitudes:

    H(a) = H_drift + Σ_j a_j H_drives[j]

Constructors are provided for a driven qubit, a multilevel transmon and
composite (tensor-product) systems.
"""

import logging
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

import numpy as np
from qutip import Qobj

from .operators import annihilate, is_hermitian, lift, pauli
from .utils import as_array, subspace_indices

logger = logging.getLogger(__name__)

OperatorLike = Union[Qobj, np.ndarray]


class QuantumSystem:
    """
    Drift and drive Hamiltonians of a controllable closed quantum system.

    Parameters:
    -----------
    H_drift : Qobj or np.ndarray
        Time-independent drift Hamiltonian
    H_drives : sequence of Qobj or np.ndarray
        Drive Hamiltonians, one per control amplitude
    params : dict, optional
        Free-form physical parameters kept for reference
    name : str, optional
        Label used in summaries
    subspace : sequence of int, optional
        Computational subspace indices (defaults to the full space)
    """

    def __init__(self,
                 H_drift: OperatorLike,
                 H_drives: Sequence[OperatorLike],
                 params: Optional[Dict[str, Any]] = None,
                 name: Optional[str] = None,
                 subspace: Optional[Sequence[int]] = None):
        drift = as_array(H_drift)
        if drift.ndim != 2 or drift.shape[0] != drift.shape[1]:
            raise ValueError("H_drift must be a square matrix")
        if not is_hermitian(drift):
            raise ValueError("H_drift must be Hermitian")
        drives: List[np.ndarray] = []
        for j, H in enumerate(H_drives):
            mat = as_array(H)
            if mat.shape != drift.shape:
                raise ValueError(
                    f"drive {j} has shape {mat.shape}, expected {drift.shape}"
                )
            if not is_hermitian(mat):
                raise ValueError(f"drive {j} must be Hermitian")
            drives.append(mat)

        self.drift = drift
        self.drives = drives
        self.params: Dict[str, Any] = dict(params or {})
        self.name = name or "QuantumSystem"
        if subspace is None:
            self.subspace = np.arange(drift.shape[0])
        else:
            self.subspace = np.asarray(subspace, dtype=int)
        # Stacked drives for vectorized Hamiltonian assembly; drift-only systems stack to (0, n, n)
        self._drive_stack = np.array(drives, dtype=complex).reshape(len(drives), *drift.shape)

    @property
    def levels(self) -> int:
        return self.drift.shape[0]

    @property
    def n_drives(self) -> int:
        return len(self.drives)

    def hamiltonian(self, a: Sequence[float]) -> np.ndarray:
        """H(a) = H_drift + Σ_j a_j H_j."""
        a = np.asarray(a, dtype=float).ravel()
        if a.size != self.n_drives:
            raise ValueError(f"expected {self.n_drives} control values, got {a.size}")
        return self.drift + np.tensordot(a, self._drive_stack, axes=1)

    def generator(self, a: Sequence[float]) -> np.ndarray:
        """Schrödinger generator G(a) = -i H(a)."""
        return -1j * self.hamiltonian(a)

    def with_drift(self, H_extra: OperatorLike, strength: float = 1.0) -> "QuantumSystem":
        """Return a copy whose drift includes `strength * H_extra`."""
        return QuantumSystem(
            self.drift + strength * as_array(H_extra),
            self.drives,
            params=self.params,
            name=self.name,
            subspace=self.subspace,
        )

    def __repr__(self) -> str:
        return (f"{self.__class__.__name__}(name={self.name!r}, levels={self.levels}, "
                f"n_drives={self.n_drives})")


def qubit_system(drift_frequency: float = 0.0,
                 drives: Sequence[str] = ("X", "Y")) -> QuantumSystem:
    """
    Single driven qubit in the rotating frame.

    H = (ω/2) σz + Σ_j a_j σ_j / 2

    Parameters:
    -----------
    drift_frequency : float, default=0.0
        Qubit detuning ω from the drive frame
    drives : sequence of str, default=("X", "Y")
        Pauli axes that are driven

    Returns:
    --------
    QuantumSystem
    """
    if len(drives) == 0:
        raise ValueError("at least one drive axis is required")
    H_drift = drift_frequency / 2.0 * pauli('Z')
    H_drives = [pauli(axis) / 2.0 for axis in drives]
    return QuantumSystem(
        H_drift, H_drives,
        params={'drift_frequency': float(drift_frequency), 'drives': list(drives)},
        name="qubit",
    )


def transmon_system(levels: int = 3,
                    frequency: float = 0.0,
                    anharmonicity: float = -0.2,
                    drives: bool = True) -> QuantumSystem:
    """
    Multilevel transmon (Duffing oscillator) in the rotating frame.

    H_drift = ω â†â + (α/2) â†â†ââ
    H_drives = [â + â†, i(â - â†)]

    Parameters:
    -----------
    levels : int, default=3
        Number of transmon levels kept
    frequency : float, default=0.0
        Detuning ω from the drive frame
    anharmonicity : float, default=-0.2
        Anharmonicity α
    drives : bool, default=True
        Whether to attach the two quadrature drives; drift-only transmons
        serve as undriven composite subsystems

    Returns:
    --------
    QuantumSystem
        With `subspace` set to the qubit levels [0, 1]
    """
    a = annihilate(levels)
    ad = a.dag()
    H_drift = frequency * ad * a + anharmonicity / 2.0 * ad * ad * a * a
    H_drives = [a + ad, 1j * (a - ad)] if drives else []
    return QuantumSystem(
        H_drift, H_drives,
        params={'levels': int(levels), 'frequency': float(frequency),
                'anharmonicity': float(anharmonicity)},
        name="transmon",
        subspace=[0, 1],
    )


def composite_system(systems: Sequence[QuantumSystem],
                     couplings: Sequence[OperatorLike] = ()) -> QuantumSystem:
    """
    Tensor-product system built from independent subsystems plus couplings.

    Each subsystem's drift and drives are lifted into the full space; the
    coupling operators (already in the full space) are added to the drift.

    Parameters:
    -----------
    systems : sequence of QuantumSystem
        Subsystems, ordered as [s0, s1, ...]
    couplings : sequence of Qobj or np.ndarray
        Full-space coupling Hamiltonians

    Returns:
    --------
    QuantumSystem
    """
    if len(systems) == 0:
        raise ValueError("at least one subsystem is required")
    levels = [s.levels for s in systems]
    dim = int(np.prod(levels))
    H_drift = np.zeros((dim, dim), dtype=complex)
    H_drives: List[np.ndarray] = []
    for i, s in enumerate(systems):
        H_drift += as_array(lift(s.drift, i, levels))
        for H in s.drives:
            H_drives.append(as_array(lift(H, i, levels)))
    for H_c in couplings:
        mat = as_array(H_c)
        if mat.shape != (dim, dim):
            raise ValueError(f"coupling shape {mat.shape} does not match composite dimension {dim}")
        H_drift += mat

    qubit_levels_ok = all(n >= 2 for n in levels)
    subspace = subspace_indices(levels) if qubit_levels_ok else None
    logger.debug("Built composite system with levels %s and %d drives", levels, len(H_drives))
    return QuantumSystem(
        H_drift, H_drives,
        params={'subsystem_levels': levels,
                'subsystems': [s.name for s in systems]},
        name="composite",
        subspace=subspace,
    )


def exchange_coupling(coupling: float, subsystem_levels: Sequence[int] = (2, 2)) -> np.ndarray:
    """Exchange interaction J (â₀†â₁ + â₀â₁†) between two subsystems."""
    levels = [int(n) for n in subsystem_levels]
    if len(levels) != 2:
        raise ValueError("exchange coupling needs exactly two subsystems")
    a0 = as_array(lift(annihilate(levels[0]), 0, levels))
    a1 = as_array(lift(annihilate(levels[1]), 1, levels))
    return coupling * (a0.conj().T @ a1 + a0 @ a1.conj().T)


def two_qubit_system(coupling: float = 0.1,
                     drift_frequencies: Tuple[float, float] = (0.0, 0.0)) -> QuantumSystem:
    """Two driven qubits with an XX+YY exchange coupling of strength `coupling`."""
    qubits = [qubit_system(drift_frequency=w) for w in drift_frequencies]
    system = composite_system(qubits, couplings=[exchange_coupling(coupling, (2, 2))])
    system.params['coupling'] = float(coupling)
    system.name = "two_qubit"
    return system
