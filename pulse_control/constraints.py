"""
Constraints for pulse optimization problems.

Constraints are evaluated on a trajectory and its rollout and return a
residual vector plus a dense Jacobian over the problem's decision vector.
Equality constraints require residual = 0, inequality constraints require
residual ≥ 0 (the scipy convention).
"""

import logging
from typing import Dict, Iterable, List, Mapping, Optional, Sequence

import numpy as np

from .dynamics import UnitaryRollout, integrator_residuals
from .trajectory import NamedTrajectory
from .utils import as_array

logger = logging.getLogger(__name__)


class VariableLayout:
    """
    Position of each decision-variable component inside the flat vector.

    The vector is ``traj.vec(names)``: components in `names` order, each
    flattened row-major, so sample (i, t) of a component sits at
    ``offset + i * T + t``.
    """

    def __init__(self, traj: NamedTrajectory, names: Iterable[str]):
        self.names: List[str] = list(names)
        self.T = traj.T
        self.dims: Dict[str, int] = {}
        self.offsets: Dict[str, int] = {}
        offset = 0
        for name in self.names:
            dim = traj.dims[name]
            self.dims[name] = dim
            self.offsets[name] = offset
            offset += dim * self.T
        self.size = offset

    def __contains__(self, name: object) -> bool:
        return name in self.offsets

    def index(self, name: str, i: int, t: int) -> int:
        return self.offsets[name] + i * self.T + t

    def block(self, name: str) -> slice:
        start = self.offsets[name]
        return slice(start, start + self.dims[name] * self.T)

    def scatter(self, parts: Mapping[str, np.ndarray]) -> np.ndarray:
        """Place per-component arrays into a flat vector; components outside the layout are dropped."""
        out = np.zeros(self.size)
        for name, arr in parts.items():
            if name in self.offsets:
                out[self.block(name)] += np.asarray(arr, dtype=float).ravel()
        return out

    def bounds(self, traj: NamedTrajectory) -> List[tuple]:
        """Per-variable (lower, upper) pairs from trajectory bounds and fixed initial/final values."""
        pairs: List[tuple] = []
        for name in self.names:
            dim = self.dims[name]
            lower = np.full((dim, self.T), -np.inf)
            upper = np.full((dim, self.T), np.inf)
            if name in traj.bounds:
                lo, hi = traj.bounds[name]
                lower[:] = lo.reshape(-1, 1)
                upper[:] = hi.reshape(-1, 1)
            if name in traj.initial:
                lower[:, 0] = upper[:, 0] = traj.initial[name]
            if name in traj.final:
                lower[:, -1] = upper[:, -1] = traj.final[name]
            for lo_v, hi_v in zip(lower.ravel(), upper.ravel()):
                pairs.append((None if np.isneginf(lo_v) else float(lo_v),
                              None if np.isposinf(hi_v) else float(hi_v)))
        return pairs


class Constraint:
    """Base class for residual-based constraints."""

    kind = "eq"
    name = "constraint"

    def residual(self, traj: NamedTrajectory, rollout: UnitaryRollout) -> np.ndarray:
        raise NotImplementedError

    def jacobian(self, traj: NamedTrajectory, rollout: UnitaryRollout,
                 layout: VariableLayout) -> np.ndarray:
        raise NotImplementedError

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}()"


class DerivativeIntegrator(Constraint):
    """
    Links a component to its time derivative on the knot grid:

        x[:, t+1] - x[:, t] - dx[:, t] Δt[t] = 0,   t < T-1
    """

    kind = "eq"

    def __init__(self, x: str, dx: str):
        self.x = x
        self.dx = dx
        self.name = f"integrator_{dx}_to_{x}"

    def residual(self, traj, rollout) -> np.ndarray:
        return integrator_residuals(traj[self.x], traj[self.dx], traj.timesteps).ravel()

    def jacobian(self, traj, rollout, layout) -> np.ndarray:
        dim = traj.dims[self.x]
        if traj.dims[self.dx] != dim:
            raise ValueError(f"'{self.x}' and '{self.dx}' must have the same dimension")
        T = traj.T
        dts = traj.timesteps
        dx = traj[self.dx]
        jac = np.zeros((dim * (T - 1), layout.size))
        timestep_free = traj.free_time and traj.timestep in layout
        for i in range(dim):
            for t in range(T - 1):
                row = i * (T - 1) + t
                if self.x in layout:
                    jac[row, layout.index(self.x, i, t + 1)] += 1.0
                    jac[row, layout.index(self.x, i, t)] -= 1.0
                if self.dx in layout:
                    jac[row, layout.index(self.dx, i, t)] -= dts[t]
                if timestep_free:
                    jac[row, layout.index(traj.timestep, 0, t)] -= dx[i, t]
        return jac

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.x!r}, {self.dx!r})"


class FinalFidelityConstraint(Constraint):
    """F(U[T-1]) - fidelity ≥ 0."""

    kind = "ineq"
    name = "final_fidelity"

    def __init__(self, goal, fidelity: float,
                 subspace: Optional[Sequence[int]] = None, control_name: str = 'a'):
        if not (0.0 < fidelity <= 1.0):
            raise ValueError("fidelity must lie in (0, 1]")
        self.goal = as_array(goal)
        self.fidelity = float(fidelity)
        self.subspace = None if subspace is None else np.asarray(subspace, dtype=int)
        self.control_name = control_name

    def residual(self, traj, rollout) -> np.ndarray:
        return np.array([rollout.fidelity(self.goal, self.subspace) - self.fidelity])

    def jacobian(self, traj, rollout, layout) -> np.ndarray:
        _, grad_a, grad_dt = rollout.fidelity_gradient(self.goal, self.subspace)
        parts = {self.control_name: grad_a}
        if traj.free_time:
            parts[traj.timestep] = grad_dt
        return layout.scatter(parts).reshape(1, -1)

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(fidelity={self.fidelity})"


class TimestepsAllEqualConstraint(Constraint):
    """Δt[t+1] - Δt[t] = 0 for all t, keeping a uniform grid under free time."""

    kind = "eq"
    name = "timesteps_all_equal"

    def residual(self, traj, rollout) -> np.ndarray:
        return np.diff(traj.timesteps)

    def jacobian(self, traj, rollout, layout) -> np.ndarray:
        T = traj.T
        jac = np.zeros((T - 1, layout.size))
        if traj.free_time and traj.timestep in layout:
            for t in range(T - 1):
                jac[t, layout.index(traj.timestep, 0, t + 1)] = 1.0
                jac[t, layout.index(traj.timestep, 0, t)] = -1.0
        return jac
