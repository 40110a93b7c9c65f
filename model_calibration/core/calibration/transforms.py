"""model_calibration.core.calibration.transforms

Mapping between model parameters and the unconstrained solver vector.

The solver works with a single vector of optimizable parameters. This module
builds a stable mapping from parameter names to vector indices, and for each
parameter a transform:

  1) log10, for parameters flagged ``log`` (bounds are transformed too)
  2) sine transform, when both (transformed) bounds are finite:

       t = asin(2 (p - lo) / (hi - lo) - 1)
       p = lo + (hi - lo) (sin t + 1) / 2

The sine transform keeps every solver iterate inside the bounds without a
constrained solver.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Dict, List, Sequence

import numpy as np

from ..errors import ParameterError
from ..models.parameter_set import ParameterSet


@dataclass(frozen=True)
class ParameterTransform:
    """Transform for one optimizable parameter."""

    name: str
    log: bool = False
    lower: float = -math.inf   # bound in (log-)transformed space
    upper: float = math.inf
    sine: bool = False

    def to_solver(self, value: float) -> float:
        """Model value -> solver coordinate."""
        v = math.log10(value) if self.log else float(value)
        if self.sine:
            if not (self.lower <= v <= self.upper):
                raise ParameterError(
                    f"Parameter '{self.name}': value {value:g} outside its bounds"
                )
            u = 2.0 * (v - self.lower) / (self.upper - self.lower) - 1.0
            return math.asin(min(1.0, max(-1.0, u)))
        return v

    def from_solver(self, t: float) -> float:
        """Solver coordinate -> model value."""
        v = float(t)
        if self.sine:
            v = self.lower + (self.upper - self.lower) * (math.sin(v) + 1.0) / 2.0
        return float(np.power(10.0, v)) if self.log else v

    def derivative(self, t: float) -> float:
        """d(model value)/d(solver coordinate) at t."""
        dv = 1.0
        v = float(t)
        if self.sine:
            dv = (self.upper - self.lower) * math.cos(v) / 2.0
            v = self.lower + (self.upper - self.lower) * (math.sin(v) + 1.0) / 2.0
        if self.log:
            dv *= float(np.power(10.0, v)) * math.log(10.0)
        return dv


@dataclass(frozen=True)
class ParameterMapping:
    """Mapping of optimizable parameters to solver vector indices."""

    names: List[str]
    transforms: List[ParameterTransform]
    fixed: Dict[str, float]

    @property
    def num_params(self) -> int:
        return len(self.names)

    def to_solver(self, values: Dict[str, float]) -> np.ndarray:
        """Parameter values -> solver vector."""
        return np.array([tr.to_solver(values[name]) for name, tr in zip(self.names, self.transforms)])

    def from_solver(self, t: Sequence[float]) -> Dict[str, float]:
        """Solver vector -> full parameter dictionary (fixed values included)."""
        params = dict(self.fixed)
        for name, tr, ti in zip(self.names, self.transforms, t):
            params[name] = tr.from_solver(ti)
        return params

    def derivatives(self, t: Sequence[float]) -> np.ndarray:
        """Vector of d(value)/d(solver coordinate)."""
        return np.array([tr.derivative(ti) for tr, ti in zip(self.transforms, t)])


def build_parameter_mapping(
    parameters: ParameterSet,
    log_transform: bool = True,
    sine_transform: bool = True,
) -> ParameterMapping:
    """Build a stable parameter mapping.

    Ordering follows the ParameterSet order of the optimizable parameters;
    fixed parameters keep their initial values.

    Raises:
        ParameterError: if there are no optimizable parameters
    """
    names = parameters.opt_keys()
    if not names:
        raise ParameterError(f"'{parameters.name}' has no optimizable parameters")

    transforms: List[ParameterTransform] = []
    for name in names:
        p = parameters.get(name)
        use_log = bool(log_transform and p.log)
        lower, upper = p.min, p.max
        if use_log:
            lower = math.log10(lower) if lower > 0 else -math.inf
            if upper <= 0:
                raise ParameterError(f"Parameter '{name}': log-transformed max must be positive")
            upper = math.log10(upper) if math.isfinite(upper) else math.inf
        use_sine = bool(sine_transform and math.isfinite(lower) and math.isfinite(upper) and upper > lower)
        transforms.append(ParameterTransform(name=name, log=use_log, lower=lower, upper=upper, sine=use_sine))

    fixed = {key: parameters.get(key).init for key in parameters.non_opt_keys()}
    return ParameterMapping(names=names, transforms=transforms, fixed=fixed)
