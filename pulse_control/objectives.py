"""
Objective functions for pulse optimization.

Each objective is evaluated on a trajectory together with the unitary rollout
of its controls, and returns its gradient as a dict mapping component names
to arrays shaped like the components. Objectives are combined with ``+``.
"""

import logging
from typing import Callable, Dict, List, Optional, Sequence, Union

import numpy as np

from .config import DEFAULT_INFIDELITY_WEIGHT, DEFAULT_TIME_WEIGHT, FINITE_DIFFERENCE_STEP
from .dynamics import UnitaryRollout, traceless
from .trajectory import NamedTrajectory
from .utils import as_array

logger = logging.getLogger(__name__)

Gradient = Dict[str, np.ndarray]


def _accumulate(total: Gradient, part: Gradient) -> Gradient:
    for name, g in part.items():
        if name in total:
            total[name] = total[name] + g
        else:
            total[name] = np.array(g, dtype=float)
    return total


def finite_difference_gradient(value_fn: Callable[[UnitaryRollout], float],
                               traj: NamedTrajectory,
                               rollout: UnitaryRollout,
                               control_name: str = 'a',
                               step: float = FINITE_DIFFERENCE_STEP) -> Gradient:
    """
    Central-difference gradient of a rollout-dependent value.

    Perturbs every control sample (and every timestep on free-time
    trajectories) and re-propagates.
    """
    system = rollout.system
    U_init = rollout.unitaries[0]
    controls = rollout.controls
    timesteps = rollout.timesteps
    grad_a = np.zeros_like(controls)
    for j in range(controls.shape[0]):
        for t in range(controls.shape[1] - 1):
            plus = controls.copy()
            minus = controls.copy()
            plus[j, t] += step
            minus[j, t] -= step
            f_plus = value_fn(UnitaryRollout(system, plus, timesteps, U_init))
            f_minus = value_fn(UnitaryRollout(system, minus, timesteps, U_init))
            grad_a[j, t] = (f_plus - f_minus) / (2 * step)
    grad: Gradient = {control_name: grad_a}
    if traj.free_time:
        grad_dt = np.zeros(len(timesteps))
        for t in range(len(timesteps) - 1):
            plus = timesteps.copy()
            minus = timesteps.copy()
            plus[t] += step
            minus[t] -= step
            f_plus = value_fn(UnitaryRollout(system, controls, plus, U_init))
            f_minus = value_fn(UnitaryRollout(system, controls, minus, U_init))
            grad_dt[t] = (f_plus - f_minus) / (2 * step)
        grad[traj.timestep] = grad_dt.reshape(1, -1)
    return grad


class Objective:
    """Base class: a scalar function of a trajectory and its rollout."""

    name = "objective"

    def value(self, traj: NamedTrajectory, rollout: UnitaryRollout) -> float:
        raise NotImplementedError

    def gradient(self, traj: NamedTrajectory, rollout: UnitaryRollout) -> Gradient:
        raise NotImplementedError

    def terms(self) -> List["Objective"]:
        return [self]

    def __add__(self, other: "Objective") -> "CompositeObjective":
        if not isinstance(other, Objective):
            return NotImplemented
        return CompositeObjective(self.terms() + other.terms())

    def __radd__(self, other):
        # Lets sum() start from 0
        if other == 0:
            return self
        return NotImplemented

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}()"


class CompositeObjective(Objective):
    """Sum of objectives."""

    name = "composite"

    def __init__(self, objectives: Sequence[Objective]):
        self.objectives: List[Objective] = []
        for obj in objectives:
            self.objectives.extend(obj.terms())

    def terms(self) -> List[Objective]:
        return list(self.objectives)

    def value(self, traj, rollout) -> float:
        return float(sum(obj.value(traj, rollout) for obj in self.objectives))

    def gradient(self, traj, rollout) -> Gradient:
        total: Gradient = {}
        for obj in self.objectives:
            _accumulate(total, obj.gradient(traj, rollout))
        return total

    def breakdown(self, traj, rollout) -> Dict[str, float]:
        """Value of each term, keyed by term name."""
        out: Dict[str, float] = {}
        for obj in self.objectives:
            key = obj.name
            k = 1
            while key in out:
                k += 1
                key = f"{obj.name}_{k}"
            out[key] = obj.value(traj, rollout)
        return out

    def __repr__(self) -> str:
        return " + ".join(repr(obj) for obj in self.objectives)


class UnitaryInfidelityObjective(Objective):
    """
    Q (1 - F) for the final unitary of the rollout.

    Parameters:
    -----------
    goal : Qobj or np.ndarray
        Target unitary, full-space or subspace-sized
    Q : float
        Weight on the infidelity
    subspace : sequence of int, optional
        Subspace the fidelity is measured on
    control_name : str, default='a'
        Component holding the control amplitudes
    """

    name = "infidelity"

    def __init__(self, goal, Q: float = DEFAULT_INFIDELITY_WEIGHT,
                 subspace: Optional[Sequence[int]] = None, control_name: str = 'a'):
        self.goal = as_array(goal)
        self.Q = float(Q)
        self.subspace = None if subspace is None else np.asarray(subspace, dtype=int)
        self.control_name = control_name

    def value(self, traj, rollout) -> float:
        return self.Q * (1.0 - rollout.fidelity(self.goal, self.subspace))

    def gradient(self, traj, rollout) -> Gradient:
        _, grad_a, grad_dt = rollout.fidelity_gradient(self.goal, self.subspace)
        grad: Gradient = {self.control_name: -self.Q * grad_a}
        if traj.free_time:
            grad[traj.timestep] = -self.Q * grad_dt.reshape(1, -1)
        return grad

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(Q={self.Q})"


class QuadraticRegularizer(Objective):
    """(1/2) Σ_t Σ_i R_i x_i(t)² on component `component`."""

    name = "regularizer"

    def __init__(self, component: str, R: Union[float, Sequence[float]]):
        self.component = component
        self.R = np.atleast_1d(np.asarray(R, dtype=float))
        self.name = f"regularizer_{component}"

    def _weights(self, traj) -> np.ndarray:
        dim = traj.dims[self.component]
        if self.R.size not in (1, dim):
            raise ValueError(f"R must be a scalar or have {dim} entries for '{self.component}'")
        return np.broadcast_to(self.R, (dim,)).reshape(-1, 1)

    def value(self, traj, rollout) -> float:
        x = traj[self.component]
        return float(0.5 * np.sum(self._weights(traj) * x ** 2))

    def gradient(self, traj, rollout) -> Gradient:
        return {self.component: self._weights(traj) * traj[self.component]}

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.component!r}, R={self.R.tolist()})"


class UnitaryRobustnessObjective(Objective):
    """
    Weighted first-order sensitivity of the gate to a static error Hamiltonian.

    See `UnitaryRollout.robustness` for the metric; the gradient is taken by
    central differences.
    """

    name = "robustness"

    def __init__(self, H_error, weight: float = 1.0,
                 subspace: Optional[Sequence[int]] = None, control_name: str = 'a'):
        self.H_error = as_array(H_error)
        if not np.any(np.abs(traceless(self.H_error)) > 1e-14):
            raise ValueError("H_error must have a nonzero traceless part")
        self.weight = float(weight)
        self.subspace = None if subspace is None else np.asarray(subspace, dtype=int)
        self.control_name = control_name

    def _metric(self, rollout: UnitaryRollout) -> float:
        return rollout.robustness(self.H_error, self.subspace)

    def value(self, traj, rollout) -> float:
        return self.weight * self._metric(rollout)

    def gradient(self, traj, rollout) -> Gradient:
        grad = finite_difference_gradient(self._metric, traj, rollout, self.control_name)
        return {name: self.weight * g for name, g in grad.items()}

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(weight={self.weight})"


class MinimumTimeObjective(Objective):
    """D Σ_{t<T-1} Δt[t], the total gate duration."""

    name = "duration"

    def __init__(self, D: float = DEFAULT_TIME_WEIGHT):
        self.D = float(D)

    def value(self, traj, rollout) -> float:
        if not traj.free_time:
            raise ValueError("minimum-time objective requires a free-time trajectory")
        return self.D * traj.duration

    def gradient(self, traj, rollout) -> Gradient:
        if not traj.free_time:
            raise ValueError("minimum-time objective requires a free-time trajectory")
        g = np.full((1, traj.T), self.D)
        g[0, -1] = 0.0
        return {traj.timestep: g}

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(D={self.D})"
