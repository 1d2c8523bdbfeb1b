"""
Named trajectory container.

A trajectory is a set of named real-valued components sampled on a common
grid of T knot points, for example control amplitudes ``a``, their
derivatives ``da`` and ``dda``, the timestep ``dt`` and the iso-vector of the
unitary ``U``. Components are stored as arrays of shape (dim, T).
"""
from __future__ import annotations

import json
import logging
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

import numpy as np

logger = logging.getLogger(__name__)

BoundLike = Union[float, Tuple[Any, Any]]


class NamedTrajectory:
    """
    Mapping from component names to samples over T knot points.

    Parameters:
    -----------
    components : mapping of str to array
        Component data, each of shape (dim, T); 1D arrays are treated as (1, T)
    timestep : str or float, default='dt'
        Name of the timestep component (free time) or a fixed timestep value
    controls : sequence of str, optional
        Names of the control components
    bounds : mapping of str to bound, optional
        Scalar b means [-b, b]; a (lower, upper) pair may hold scalars or arrays
    initial, final, goal : mapping of str to array, optional
        Fixed initial values, fixed final values and goal values per component
    """

    def __init__(self,
                 components: Mapping[str, Any],
                 timestep: Union[str, float] = 'dt',
                 controls: Sequence[str] = (),
                 bounds: Optional[Mapping[str, BoundLike]] = None,
                 initial: Optional[Mapping[str, Any]] = None,
                 final: Optional[Mapping[str, Any]] = None,
                 goal: Optional[Mapping[str, Any]] = None):
        if len(components) == 0:
            raise ValueError("a trajectory needs at least one component")
        self._components: Dict[str, np.ndarray] = {}
        T = None
        for name, data in components.items():
            arr = self._as_component(data)
            if T is None:
                T = arr.shape[1]
            elif arr.shape[1] != T:
                raise ValueError(f"component '{name}' has {arr.shape[1]} knots, expected {T}")
            self._components[str(name)] = arr
        self._T = int(T)

        if isinstance(timestep, str):
            if timestep not in self._components:
                raise ValueError(f"timestep component '{timestep}' is missing")
            if self._components[timestep].shape[0] != 1:
                raise ValueError("timestep component must be one-dimensional")
            if np.any(self._components[timestep] <= 0):
                raise ValueError("timesteps must be positive")
        else:
            timestep = float(timestep)
            if timestep <= 0:
                raise ValueError("timestep must be positive")
        self.timestep = timestep

        for name in controls:
            self._check_name(name)
        self.controls: List[str] = list(controls)

        self.bounds: Dict[str, Tuple[np.ndarray, np.ndarray]] = {}
        for name, b in (bounds or {}).items():
            self.set_bound(name, b)
        self.initial = self._normalize_values(initial, "initial")
        self.final = self._normalize_values(final, "final")
        self.goal = self._normalize_values(goal, "goal")

    # ------------------------------------------------------------------
    # Construction helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _as_component(data) -> np.ndarray:
        arr = np.array(data, dtype=float)
        if arr.ndim == 1:
            arr = arr.reshape(1, -1)
        if arr.ndim != 2:
            raise ValueError("component data must have shape (dim, T)")
        return arr

    def _check_name(self, name: str) -> None:
        if name not in self._components:
            raise KeyError(f"unknown component '{name}'; available: {self.names}")

    def _normalize_values(self, values: Optional[Mapping[str, Any]], label: str) -> Dict[str, np.ndarray]:
        out: Dict[str, np.ndarray] = {}
        for name, v in (values or {}).items():
            self._check_name(name)
            arr = np.array(v, dtype=float).ravel()
            if arr.size == 1:
                arr = np.full(self.dims[name], float(arr[0]))
            if arr.size != self.dims[name]:
                raise ValueError(f"{label} value for '{name}' must have {self.dims[name]} entries")
            out[name] = arr
        return out

    def set_bound(self, name: str, bound: BoundLike) -> None:
        """Set box bounds on a component."""
        self._check_name(name)
        dim = self.dims[name]
        if isinstance(bound, tuple):
            lower, upper = bound
        else:
            b = np.abs(np.asarray(bound, dtype=float))
            lower, upper = -b, b
        lower = np.broadcast_to(np.asarray(lower, dtype=float), (dim,)).copy()
        upper = np.broadcast_to(np.asarray(upper, dtype=float), (dim,)).copy()
        if np.any(lower > upper):
            raise ValueError(f"lower bound exceeds upper bound for '{name}'")
        self.bounds[name] = (lower, upper)

    def add_component(self, name: str, data, bound: Optional[BoundLike] = None) -> None:
        """Add (or replace) a component."""
        arr = self._as_component(data)
        if arr.shape[1] != self.T:
            raise ValueError(f"component '{name}' has {arr.shape[1]} knots, expected {self.T}")
        self._components[str(name)] = arr
        if bound is not None:
            self.set_bound(name, bound)

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    def __getitem__(self, name: str) -> np.ndarray:
        self._check_name(name)
        return self._components[name]

    def __setitem__(self, name: str, value) -> None:
        self._check_name(name)
        arr = self._as_component(value)
        if arr.shape != self._components[name].shape:
            raise ValueError(
                f"component '{name}' has shape {self._components[name].shape}, got {arr.shape}"
            )
        self._components[name] = arr

    def __getattr__(self, name: str) -> np.ndarray:
        components = self.__dict__.get('_components')
        if components is not None and name in components:
            return components[name]
        raise AttributeError(f"{self.__class__.__name__} has no attribute or component '{name}'")

    def __contains__(self, name: object) -> bool:
        return name in self._components

    @property
    def names(self) -> List[str]:
        return list(self._components)

    @property
    def dims(self) -> Dict[str, int]:
        return {name: arr.shape[0] for name, arr in self._components.items()}

    @property
    def T(self) -> int:
        return self._T

    @property
    def free_time(self) -> bool:
        return isinstance(self.timestep, str)

    @property
    def timesteps(self) -> np.ndarray:
        if self.free_time:
            return self._components[self.timestep][0].copy()
        return np.full(self.T, self.timestep)

    @property
    def times(self) -> np.ndarray:
        """Knot times, starting at 0."""
        return np.concatenate([[0.0], np.cumsum(self.timesteps[:-1])])

    @property
    def duration(self) -> float:
        return float(self.times[-1])

    @property
    def data(self) -> np.ndarray:
        """All components stacked row-wise, shape (Σ dims, T)."""
        return np.vstack([self._components[name] for name in self.names])

    # ------------------------------------------------------------------
    # Vectorization
    # ------------------------------------------------------------------

    def vec(self, names: Optional[Iterable[str]] = None) -> np.ndarray:
        """Flatten the selected components (component-major, row-major within each)."""
        names = self.names if names is None else list(names)
        for name in names:
            self._check_name(name)
        return np.concatenate([self._components[name].ravel() for name in names])

    def update(self, names: Iterable[str], z: np.ndarray) -> None:
        """Inverse of `vec`: write a flat vector back into the selected components."""
        names = list(names)
        z = np.asarray(z, dtype=float).ravel()
        expected = sum(self.dims[name] * self.T for name in names)
        if z.size != expected:
            raise ValueError(f"vector has {z.size} entries, expected {expected}")
        offset = 0
        for name in names:
            size = self.dims[name] * self.T
            self._components[name] = z[offset:offset + size].reshape(self.dims[name], self.T).copy()
            offset += size

    # ------------------------------------------------------------------
    # Copy and persistence
    # ------------------------------------------------------------------

    def copy(self) -> "NamedTrajectory":
        return NamedTrajectory.from_dict(self.to_dict())

    def to_dict(self) -> Dict[str, Any]:
        """Serializable representation (plain lists and floats)."""
        return {
            'components': {name: arr.tolist() for name, arr in self._components.items()},
            'timestep': self.timestep,
            'controls': list(self.controls),
            'bounds': {name: [lo.tolist(), hi.tolist()] for name, (lo, hi) in self.bounds.items()},
            'initial': {name: v.tolist() for name, v in self.initial.items()},
            'final': {name: v.tolist() for name, v in self.final.items()},
            'goal': {name: v.tolist() for name, v in self.goal.items()},
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "NamedTrajectory":
        return cls(
            payload['components'],
            timestep=payload.get('timestep', 'dt'),
            controls=payload.get('controls', ()),
            bounds={name: (np.asarray(lo), np.asarray(hi))
                    for name, (lo, hi) in payload.get('bounds', {}).items()},
            initial=payload.get('initial'),
            final=payload.get('final'),
            goal=payload.get('goal'),
        )

    def save(self, path: str) -> str:
        """Save to a compressed .npz file and return the path written."""
        meta = self.to_dict()
        components = meta.pop('components')
        arrays = {f"component__{name}": np.asarray(v) for name, v in components.items()}
        meta['component_order'] = list(components)
        np.savez_compressed(path, meta=np.array(json.dumps(meta)), **arrays)
        if not str(path).endswith('.npz'):
            path = f"{path}.npz"
        logger.debug("Saved trajectory with components %s to %s", self.names, path)
        return str(path)

    @classmethod
    def load(cls, path: str) -> "NamedTrajectory":
        with np.load(path) as f:
            meta = json.loads(str(f['meta']))
            meta['components'] = {name: f[f"component__{name}"] for name in meta.pop('component_order')}
        return cls.from_dict(meta)

    def __repr__(self) -> str:
        dims = ", ".join(f"{n}: {d}" for n, d in self.dims.items())
        return f"{self.__class__.__name__}(T={self.T}, components={{{dims}}}, timestep={self.timestep!r})"
