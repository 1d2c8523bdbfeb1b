"""
Quantum dynamics module (piecewise-constant unitary evolution).

Controls are sampled on T knot points with timesteps Δt[0..T-1]. The knot
unitaries obey

    U[0] = U_init,    U[t+1] = exp(-i Δt[t] H(a[:, t])) U[t],   t < T-1

so the last control sample and the last timestep do not act on the state.
The same grid is used by the finite-difference integrators that relate a
control to its time derivative.
"""

import logging
from typing import List, Optional, Sequence, Tuple

import numpy as np
from numba import njit
from scipy.linalg import expm, expm_frechet

from .systems import QuantumSystem
from .utils import as_array

logger = logging.getLogger(__name__)

# ------------------------------------------------------------------
# Finite-difference kernels on the knot grid
# ------------------------------------------------------------------

@njit
def _derivative_kernel(x: np.ndarray, timesteps: np.ndarray) -> np.ndarray:
    """Forward difference (x[:, t+1] - x[:, t]) / Δt[t]; the last column is zero."""
    d, T = x.shape
    out = np.zeros((d, T))
    for t in range(T - 1):
        for i in range(d):
            out[i, t] = (x[i, t + 1] - x[i, t]) / timesteps[t]
    return out

@njit
def _integrate_kernel(x0: np.ndarray, dx: np.ndarray, timesteps: np.ndarray) -> np.ndarray:
    """Explicit Euler accumulation x[:, t+1] = x[:, t] + dx[:, t] Δt[t]."""
    d, T = dx.shape
    out = np.zeros((d, T))
    for i in range(d):
        out[i, 0] = x0[i]
    for t in range(T - 1):
        for i in range(d):
            out[i, t + 1] = out[i, t] + dx[i, t] * timesteps[t]
    return out

@njit
def _integrator_residuals_kernel(x: np.ndarray, dx: np.ndarray, timesteps: np.ndarray) -> np.ndarray:
    """Residuals x[:, t+1] - x[:, t] - dx[:, t] Δt[t], shape (d, T-1)."""
    d, T = x.shape
    out = np.zeros((d, T - 1))
    for t in range(T - 1):
        for i in range(d):
            out[i, t] = x[i, t + 1] - x[i, t] - dx[i, t] * timesteps[t]
    return out

def _as_grid(x: np.ndarray) -> np.ndarray:
    arr = np.asarray(x, dtype=np.float64)
    if arr.ndim == 1:
        arr = arr.reshape(1, -1)
    if arr.ndim != 2:
        raise ValueError("expected an array of shape (dim, T)")
    return np.ascontiguousarray(arr)

def _as_timesteps(timesteps, T: int) -> np.ndarray:
    dts = np.asarray(timesteps, dtype=np.float64)
    if dts.ndim == 0:
        dts = np.full(T, float(dts))
    dts = np.ascontiguousarray(dts.ravel())
    if dts.size != T:
        raise ValueError(f"expected {T} timesteps, got {dts.size}")
    if np.any(dts <= 0):
        raise ValueError("timesteps must be positive")
    return dts

def derivative(x: np.ndarray, timesteps) -> np.ndarray:
    """Forward-difference time derivative of `x` on the knot grid."""
    grid = _as_grid(x)
    return _derivative_kernel(grid, _as_timesteps(timesteps, grid.shape[1]))

def integrate(x0: Sequence[float], dx: np.ndarray, timesteps) -> np.ndarray:
    """Integrate `dx` from `x0`; inverse of `derivative` up to the last column."""
    grid = _as_grid(dx)
    start = np.ascontiguousarray(np.asarray(x0, dtype=np.float64).ravel())
    if start.size != grid.shape[0]:
        raise ValueError("x0 must have one entry per row of dx")
    return _integrate_kernel(start, grid, _as_timesteps(timesteps, grid.shape[1]))

def integrator_residuals(x: np.ndarray, dx: np.ndarray, timesteps) -> np.ndarray:
    """Residuals of the derivative integrator between `x` and `dx`."""
    xg, dxg = _as_grid(x), _as_grid(dx)
    if xg.shape != dxg.shape:
        raise ValueError(f"x and dx shapes differ: {xg.shape} vs {dxg.shape}")
    return _integrator_residuals_kernel(xg, dxg, _as_timesteps(timesteps, xg.shape[1]))

# ------------------------------------------------------------------
# Propagation
# ------------------------------------------------------------------

def timestep_propagator(system: QuantumSystem, a_t: Sequence[float], dt: float) -> np.ndarray:
    """exp(-i Δt H(a_t))."""
    return expm(-1j * float(dt) * system.hamiltonian(a_t))

def _restrict(U: np.ndarray, goal: np.ndarray,
              subspace: Optional[Sequence[int]]) -> Tuple[np.ndarray, np.ndarray]:
    """Restrict U (and a full-space goal) to `subspace`."""
    if subspace is None:
        if goal.shape != U.shape:
            raise ValueError(f"goal shape {goal.shape} does not match operator shape {U.shape}")
        return U, goal
    idx = np.asarray(subspace, dtype=int)
    U_sub = U[np.ix_(idx, idx)]
    if goal.shape == U.shape and goal.shape != U_sub.shape:
        goal = goal[np.ix_(idx, idx)]
    if goal.shape != U_sub.shape:
        raise ValueError(f"goal shape {goal.shape} does not match subspace dimension {len(idx)}")
    return U_sub, goal

def traceless(A: np.ndarray) -> np.ndarray:
    """A - Tr(A)/n · I."""
    n = A.shape[0]
    return A - np.trace(A) / n * np.eye(n)

def unitary_fidelity(U, U_goal, subspace: Optional[Sequence[int]] = None) -> float:
    """
    Global-phase insensitive gate fidelity.

    F = |Tr(U_goal† U)| / n, with both operators restricted to `subspace`
    when it is given.

    Parameters:
    -----------
    U : Qobj or np.ndarray
        Achieved unitary
    U_goal : Qobj or np.ndarray
        Target unitary, either full-space or subspace-sized
    subspace : sequence of int, optional
        Indices of the subspace the fidelity is measured on

    Returns:
    --------
    float
        Fidelity in [0, 1]
    """
    U_sub, goal = _restrict(as_array(U), as_array(U_goal), subspace)
    n = U_sub.shape[0]
    return float(np.abs(np.sum(goal.conj() * U_sub)) / n)

class UnitaryRollout:
    """
    Cached unitary evolution of a system under sampled controls.

    Holds the step propagators P[t] = exp(-i Δt[t] H(a[:, t])) and the knot
    unitaries U[t], and evaluates fidelity, its exact gradient and the
    toggling-frame error sensitivity from them.

    Parameters:
    -----------
    system : QuantumSystem
        System whose Hamiltonian is driven
    controls : np.ndarray
        Control amplitudes, shape (n_drives, T)
    timesteps : float or np.ndarray
        Timestep(s) Δt, scalar or shape (T,)
    U_init : np.ndarray, optional
        Initial unitary, identity by default
    """

    def __init__(self, system: QuantumSystem, controls: np.ndarray, timesteps,
                 U_init: Optional[np.ndarray] = None):
        a = _as_grid(controls)
        if a.shape[0] != system.n_drives:
            raise ValueError(f"controls have {a.shape[0]} rows, system has {system.n_drives} drives")
        T = a.shape[1]
        if T < 2:
            raise ValueError("at least 2 knot points are required")
        self.system = system
        self.controls = a
        self.timesteps = _as_timesteps(timesteps, T)
        n = system.levels
        U0 = np.eye(n, dtype=complex) if U_init is None else as_array(U_init)
        if U0.shape != (n, n):
            raise ValueError(f"U_init shape {U0.shape} does not match system dimension {n}")

        self.generators: List[np.ndarray] = []
        self.propagators: List[np.ndarray] = []
        unitaries = np.empty((T, n, n), dtype=complex)
        unitaries[0] = U0
        for t in range(T - 1):
            A = -1j * self.timesteps[t] * system.hamiltonian(a[:, t])
            P = expm(A)
            self.generators.append(A)
            self.propagators.append(P)
            unitaries[t + 1] = P @ unitaries[t]
        self.unitaries = unitaries

    @property
    def T(self) -> int:
        return self.controls.shape[1]

    @property
    def final(self) -> np.ndarray:
        return self.unitaries[-1]

    @property
    def duration(self) -> float:
        return float(np.sum(self.timesteps[:-1]))

    def fidelity(self, goal, subspace: Optional[Sequence[int]] = None) -> float:
        return unitary_fidelity(self.final, goal, subspace)

    def _embedded_goal(self, goal, subspace: Optional[Sequence[int]]) -> Tuple[np.ndarray, int]:
        """Full-space goal with zeros outside `subspace`, and the subspace dimension."""
        n = self.system.levels
        G = as_array(goal)
        if subspace is None:
            if G.shape != (n, n):
                raise ValueError(f"goal shape {G.shape} does not match system dimension {n}")
            return G, n
        idx = np.asarray(subspace, dtype=int)
        if G.shape == (n, n) and len(idx) != n:
            G = G[np.ix_(idx, idx)]
        if G.shape != (len(idx), len(idx)):
            raise ValueError(f"goal shape {G.shape} does not match subspace dimension {len(idx)}")
        full = np.zeros((n, n), dtype=complex)
        full[np.ix_(idx, idx)] = G
        return full, len(idx)

    def fidelity_gradient(self, goal,
                          subspace: Optional[Sequence[int]] = None
                          ) -> Tuple[float, np.ndarray, np.ndarray]:
        """
        Fidelity and its exact gradient with respect to controls and timesteps.

        Uses dU_final = B[t] dP[t] U[t] with B[t] = P[T-2] ... P[t+1] and the
        Fréchet derivative of the matrix exponential for dP[t].

        Returns:
        --------
        tuple
            (F, dF/da with shape (n_drives, T), dF/dΔt with shape (T,))
        """
        G_full, n_sub = self._embedded_goal(goal, subspace)
        T = self.T
        grad_a = np.zeros((self.system.n_drives, T))
        grad_dt = np.zeros(T)

        overlap = np.sum(G_full.conj() * self.final)
        magnitude = np.abs(overlap)
        F = float(magnitude / n_sub)
        if magnitude < 1e-14:
            # |Tr| is not differentiable at zero overlap
            return F, grad_a, grad_dt

        n = self.system.levels
        backward = [np.eye(n, dtype=complex) for _ in range(T - 1)]
        for t in range(T - 3, -1, -1):
            backward[t] = backward[t + 1] @ self.propagators[t + 1]

        G_dag = G_full.conj().T
        scale = np.conj(overlap) / (magnitude * n_sub)
        for t in range(T - 1):
            W_T = (self.unitaries[t] @ G_dag @ backward[t]).T
            A = self.generators[t]
            dt = self.timesteps[t]
            for j, H_j in enumerate(self.system.drives):
                dP = expm_frechet(A, -1j * dt * H_j, compute_expm=False)
                grad_a[j, t] = float(np.real(scale * np.sum(W_T * dP)))
            dP_dt = expm_frechet(A, A / dt, compute_expm=False)
            grad_dt[t] = float(np.real(scale * np.sum(W_T * dP_dt)))
        return F, grad_a, grad_dt

    def toggled_error(self, H_error) -> np.ndarray:
        """First-order error term Σ_t U[t]† H_error U[t] Δt[t] (toggling frame)."""
        H = as_array(H_error)
        n = self.system.levels
        if H.shape != (n, n):
            raise ValueError(f"H_error shape {H.shape} does not match system dimension {n}")
        S = np.zeros((n, n), dtype=complex)
        for t in range(self.T - 1):
            U = self.unitaries[t]
            S += U.conj().T @ H @ U * self.timesteps[t]
        return S

    def robustness(self, H_error, subspace: Optional[Sequence[int]] = None) -> float:
        """
        Normalized sensitivity of the gate to a static error Hamiltonian.

        R = ||traceless(S_sub)||²_F / (||traceless(H_error)||²_F · duration²),
        with S the toggled error term restricted to `subspace`. Identity
        components only add a global phase and are dropped on both sides, so
        H_error and H_error + c·I give the same R. R lies in [0, 1]; 0 means
        the error cancels to first order.
        """
        H = traceless(as_array(H_error))
        norm_H = np.linalg.norm(H)
        if norm_H < 1e-14:
            raise ValueError("H_error must have a nonzero traceless part")
        S = self.toggled_error(H)
        if subspace is not None:
            idx = np.asarray(subspace, dtype=int)
            S = S[np.ix_(idx, idx)]
        S = traceless(S)
        return float(np.linalg.norm(S) ** 2 / (norm_H ** 2 * self.duration ** 2))

def unitary_rollout(system: QuantumSystem, controls: np.ndarray, timesteps,
                    U_init: Optional[np.ndarray] = None) -> np.ndarray:
    """Knot unitaries with shape (T, n, n)."""
    return UnitaryRollout(system, controls, timesteps, U_init=U_init).unitaries

def ket_rollout(system: QuantumSystem, psi0, controls: np.ndarray, timesteps) -> np.ndarray:
    """Knot states with shape (T, n) starting from `psi0`."""
    psi = as_array(psi0).ravel()
    if psi.size != system.levels:
        raise ValueError(f"psi0 has {psi.size} entries, system has {system.levels} levels")
    a = _as_grid(controls)
    T = a.shape[1]
    dts = _as_timesteps(timesteps, T)
    states = np.empty((T, system.levels), dtype=complex)
    states[0] = psi
    for t in range(T - 1):
        states[t + 1] = timestep_propagator(system, a[:, t], dts[t]) @ states[t]
    return states
