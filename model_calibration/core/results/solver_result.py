"""
Result records for the Levenberg-Marquardt solver.

A :class:`SolverResult` is immutable once returned: the parameter vector is a
read-only array and the traces are tuples. Failures are carried on the result
(status plus the stored error) instead of being raised, so a failed run still
reports its best point and its partial trace.
"""

import json
import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, List, Any, Optional, Tuple

import numpy as np

from ..errors import CalibrationError, NonConvergence, DivergenceError


def _iso_utc_now() -> str:
    """Return an ISO-8601 UTC timestamp ending with 'Z'."""
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def _json_safe_value(value: Any) -> Any:
    """Convert non-JSON-safe floats (nan/inf) to None."""
    if value is None:
        return None
    if isinstance(value, float):
        if math.isnan(value) or math.isinf(value):
            return None
    return value


def _frozen_array(values) -> np.ndarray:
    """Copy values into a read-only float array."""
    arr = np.array(values, dtype=float, copy=True)
    arr.setflags(write=False)
    return arr


class SolverStatus(Enum):
    """Termination status of a solver run."""
    CONVERGED = "converged"
    NON_CONVERGENCE = "non_convergence"
    DIVERGENCE = "divergence"
    OBJECTIVE_ERROR = "objective_error"
    LINEAR_ALGEBRA_ERROR = "linear_algebra_error"


@dataclass(frozen=True)
class IterationRecord:
    """
    One attempted step.

    Attributes:
        iteration: Iteration number (1-based; rejected retries share it)
        lambda_: Damping parameter used for this attempt
        cost: Cost at the current (accepted) point
        trial_cost: Cost at the trial point (inf if it could not be evaluated)
        step_norm: Euclidean norm of the step
        gradient_norm: max|J^T r| at the current point
        accepted: True if the trial point replaced the current point
    """

    iteration: int
    lambda_: float
    cost: float
    trial_cost: float
    step_norm: float
    gradient_norm: float
    accepted: bool

    def to_dict(self) -> Dict[str, Any]:
        return {
            "iteration": self.iteration,
            "lambda": _json_safe_value(self.lambda_),
            "cost": _json_safe_value(self.cost),
            "trial_cost": _json_safe_value(self.trial_cost),
            "step_norm": _json_safe_value(self.step_norm),
            "gradient_norm": _json_safe_value(self.gradient_norm),
            "accepted": self.accepted,
        }


@dataclass(frozen=True, eq=False)
class SolverResult:
    """
    Complete results from a Levenberg-Marquardt run.

    Attributes:
        x: Best parameter vector found (read-only)
        cost: Sum of squared residuals at ``x``
        status: Termination status
        convergence_reason: Which stopping test fired ("step", "gradient",
            "cost", "max_iterations", "max_evaluations", "max_time",
            "cancelled", "stalled", "lambda_max") or None after an error
        iterations: Number of iterations (Jacobian evaluations at accepted points)
        residual_evaluations: Number of residual function calls
        jacobian_evaluations: Number of Jacobian function calls
        lambda_final: Damping parameter at termination
        cost_trace: Costs of accepted points, starting with the initial cost
        trace: One IterationRecord per attempted step
        residuals: Residual vector at ``x`` (None if never evaluated)
        jacobian: Jacobian at the last accepted point where it was evaluated
        error: Stored error for failed runs
        messages: Warnings or informational messages
    """

    x: np.ndarray
    cost: float
    status: SolverStatus
    convergence_reason: Optional[str] = None
    iterations: int = 0
    residual_evaluations: int = 0
    jacobian_evaluations: int = 0
    lambda_final: float = 0.0
    cost_trace: Tuple[float, ...] = ()
    trace: Tuple[IterationRecord, ...] = ()
    residuals: Optional[np.ndarray] = None
    jacobian: Optional[np.ndarray] = None
    error: Optional[CalibrationError] = None
    messages: Tuple[str, ...] = ()
    timestamp: str = field(default_factory=_iso_utc_now)

    def __post_init__(self):
        """Freeze arrays and sequences."""
        object.__setattr__(self, "x", _frozen_array(self.x))
        if self.residuals is not None:
            object.__setattr__(self, "residuals", _frozen_array(self.residuals))
        if self.jacobian is not None:
            object.__setattr__(self, "jacobian", _frozen_array(self.jacobian))
        object.__setattr__(self, "cost_trace", tuple(float(c) for c in self.cost_trace))
        object.__setattr__(self, "trace", tuple(self.trace))
        object.__setattr__(self, "messages", tuple(self.messages))

    @property
    def converged(self) -> bool:
        """True if a convergence test fired."""
        return self.status == SolverStatus.CONVERGED

    @property
    def success(self) -> bool:
        """True unless the run was aborted by an error or divergence."""
        return self.status in (SolverStatus.CONVERGED, SolverStatus.NON_CONVERGENCE)

    @property
    def minimum(self) -> np.ndarray:
        """Alias for ``x``."""
        return self.x

    @property
    def x_converged(self) -> bool:
        return self.converged and self.convergence_reason == "step"

    @property
    def g_converged(self) -> bool:
        return self.converged and self.convergence_reason == "gradient"

    @property
    def accepted_steps(self) -> int:
        """Number of accepted steps."""
        return sum(1 for rec in self.trace if rec.accepted)

    @property
    def lambda_trace(self) -> List[float]:
        """Damping parameter of every attempt."""
        return [rec.lambda_ for rec in self.trace]

    def raise_for_status(self) -> 'SolverResult':
        """
        Raise the error matching a non-converged status.

        Returns:
            self, if the run converged

        Raises:
            ObjectiveEvaluationError / LinearAlgebraError: stored error
            DivergenceError: damping exceeded its ceiling
            NonConvergence: a budget was exhausted
        """
        if self.status == SolverStatus.CONVERGED:
            return self
        if self.error is not None:
            raise self.error
        if self.status == SolverStatus.DIVERGENCE:
            raise DivergenceError(f"Damping parameter exceeded its ceiling (lambda={self.lambda_final:g})")
        raise NonConvergence(
            f"Solver stopped on {self.convergence_reason} after {self.iterations} iterations "
            f"(cost={self.cost:g})"
        )

    def to_dict(self) -> Dict[str, Any]:
        """
        Serialize result to dictionary.

        Returns:
            Dictionary representation suitable for JSON serialization
        """
        return {
            "timestamp": self.timestamp,
            "status": self.status.value,
            "converged": self.converged,
            "convergence_reason": self.convergence_reason,
            "x": [_json_safe_value(float(v)) for v in self.x],
            "cost": _json_safe_value(float(self.cost)),
            "iterations": self.iterations,
            "residual_evaluations": self.residual_evaluations,
            "jacobian_evaluations": self.jacobian_evaluations,
            "lambda_final": _json_safe_value(float(self.lambda_final)),
            "cost_trace": [_json_safe_value(c) for c in self.cost_trace],
            "trace": [rec.to_dict() for rec in self.trace],
            "error": str(self.error) if self.error is not None else None,
            "error_type": type(self.error).__name__ if self.error is not None else None,
            "messages": list(self.messages),
        }

    def to_json(self, indent: int = 2) -> str:
        """Serialize result to JSON string."""
        return json.dumps(self.to_dict(), indent=indent)

    def __repr__(self) -> str:
        return (
            f"SolverResult({self.status.value}, reason={self.convergence_reason}, "
            f"iter={self.iterations}, cost={self.cost:.6g})"
        )
