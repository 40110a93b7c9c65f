"""
Calibration result classes.

This module defines the output of a model calibration: the estimated
parameters, per-observation residuals, the goodness-of-fit test and the
linearized parameter uncertainties, plus the container for multi-start runs.
"""

import json
import math
from dataclasses import dataclass, field
from typing import Dict, List, Any, Optional, Tuple

import numpy as np

from ..models.parameter_set import ParameterSet
from .solver_result import SolverResult, SolverStatus, _iso_utc_now, _json_safe_value


@dataclass
class ChiSquareTestResult:
    """
    Result of the chi-square goodness-of-fit test.

    Attributes:
        test_statistic: Final cost (weighted sum of squared residuals)
        critical_lower: Lower critical value at given confidence
        critical_upper: Upper critical value at given confidence
        confidence_level: Confidence level of the test
        passed: True if test_statistic is within critical bounds
    """

    test_statistic: float
    critical_lower: float
    critical_upper: float
    confidence_level: float
    passed: bool
    p_value: float | None = None
    degrees_of_freedom: int | None = None

    def to_dict(self) -> Dict[str, Any]:
        """Serialize chi-square test result to dictionary."""
        return {
            "test_name": "chi_square",
            "test_statistic": _json_safe_value(self.test_statistic),
            "critical_lower": _json_safe_value(self.critical_lower),
            "critical_upper": _json_safe_value(self.critical_upper),
            "confidence_level": self.confidence_level,
            "passed": self.passed,
            "p_value": _json_safe_value(self.p_value),
            "degrees_of_freedom": self.degrees_of_freedom
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ChiSquareTestResult':
        """Create ChiSquareTestResult from dictionary."""
        return cls(
            test_statistic=data["test_statistic"],
            critical_lower=data["critical_lower"],
            critical_upper=data["critical_upper"],
            confidence_level=data["confidence_level"],
            passed=data["passed"],
            p_value=data.get("p_value"),
            degrees_of_freedom=data.get("degrees_of_freedom")
        )


@dataclass
class ResidualInfo:
    """
    Residual of a single observation at the calibrated parameters.

    Attributes:
        name: Observation name
        target: Observed value
        predicted: Model prediction
        residual: predicted - target
        weighted_residual: weight * residual (the value the solver minimizes)
        weight: Observation weight
    """

    name: str
    target: float
    predicted: float
    residual: float
    weighted_residual: float
    weight: float = 1.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "target": _json_safe_value(self.target),
            "predicted": _json_safe_value(self.predicted),
            "residual": _json_safe_value(self.residual),
            "weighted_residual": _json_safe_value(self.weighted_residual),
            "weight": self.weight,
        }


@dataclass
class CalibrationResult:
    """
    Complete results from a model calibration.

    Attributes:
        success: True if the solver finished without an error or divergence
        converged: True if a convergence test fired
        status: Solver termination status
        solver_result: The underlying solver result (solver coordinates)

        parameters: Estimated values of all parameters (fixed ones included)
        optimized: Names of the adjusted parameters, in solver order
        cost: Final weighted sum of squared residuals
        residual_details: Per-observation residuals

        degrees_of_freedom: Number of enabled observations minus adjusted parameters
        variance_factor: A posteriori variance factor (cost / dof)
        chi_square_test: Goodness-of-fit test (None when dof <= 0)

        covariance_matrix: Covariance of the adjusted parameters
        correlation_matrix: Correlations of the adjusted parameters
        standard_errors: Standard error per adjusted parameter
        confidence_intervals: (lower, upper) per adjusted parameter

        messages: Warnings or informational messages
        error_message: Error description if success is False
    """

    success: bool = True
    converged: bool = False
    status: SolverStatus = SolverStatus.NON_CONVERGENCE
    solver_result: Optional[SolverResult] = None

    parameters: Dict[str, float] = field(default_factory=dict)
    optimized: List[str] = field(default_factory=list)
    cost: float = math.nan
    residual_details: List[ResidualInfo] = field(default_factory=list)

    degrees_of_freedom: int = 0
    variance_factor: float = 1.0
    chi_square_test: Optional[ChiSquareTestResult] = None

    covariance_matrix: Optional[np.ndarray] = None
    correlation_matrix: Optional[np.ndarray] = None
    standard_errors: Dict[str, float] = field(default_factory=dict)
    confidence_intervals: Dict[str, Tuple[float, float]] = field(default_factory=dict)
    confidence_level: float = 0.95

    messages: List[str] = field(default_factory=list)
    error_message: Optional[str] = None

    timestamp: Optional[str] = None
    parameter_set_name: str = ""

    def __post_init__(self):
        """Set timestamp if not provided."""
        if self.timestamp is None:
            self.timestamp = _iso_utc_now()

    @property
    def iterations(self) -> int:
        return self.solver_result.iterations if self.solver_result is not None else 0

    @property
    def a_posteriori_sigma0(self) -> float:
        """Square root of the variance factor."""
        return math.sqrt(self.variance_factor)

    @property
    def residuals(self) -> Dict[str, float]:
        """Mapping of observation name to residual."""
        return {info.name: info.residual for info in self.residual_details}

    def estimate(self, name: str) -> float:
        """
        Get the estimated value of a parameter.

        Raises:
            KeyError: If the parameter is not in the results
        """
        if name in self.parameters:
            return self.parameters[name]
        raise KeyError(f"Parameter '{name}' not in results")

    def apply_to(self, parameter_set: ParameterSet) -> ParameterSet:
        """
        Return a copy of ``parameter_set`` with ``init`` set to the estimates.

        Only the adjusted parameters are updated; the input is not modified.
        """
        updated = parameter_set.copy()
        updated.set_init({name: self.parameters[name] for name in self.optimized})
        return updated

    def raise_for_status(self) -> 'CalibrationResult':
        """Re-raise the solver's error for a non-converged run (see SolverResult)."""
        if self.solver_result is None:
            if self.converged:
                return self
            raise ValueError(self.error_message or "Calibration did not run")
        self.solver_result.raise_for_status()
        return self

    def to_dict(self) -> Dict[str, Any]:
        """
        Serialize calibration result to dictionary.

        Returns:
            Dictionary representation suitable for JSON serialization
        """
        cov_matrix = None
        if self.covariance_matrix is not None:
            cov_matrix = np.asarray(self.covariance_matrix).tolist()
        corr_matrix = None
        if self.correlation_matrix is not None:
            corr_matrix = np.asarray(self.correlation_matrix).tolist()

        return {
            "metadata": {
                "timestamp": self.timestamp,
                "parameter_set_name": self.parameter_set_name,
            },
            "calibration": {
                "success": self.success,
                "converged": self.converged,
                "status": self.status.value,
                "iterations": self.iterations,
                "cost": _json_safe_value(self.cost),
                "degrees_of_freedom": self.degrees_of_freedom,
                "variance_factor": _json_safe_value(self.variance_factor),
                "error_message": self.error_message,
                "messages": self.messages,
            },
            "global_test": self.chi_square_test.to_dict() if self.chi_square_test else None,
            "parameters": [
                {
                    "name": name,
                    "value": _json_safe_value(value),
                    "optimized": name in self.optimized,
                    "std_error": _json_safe_value(self.standard_errors.get(name)),
                    "confidence_interval": (
                        [_json_safe_value(v) for v in self.confidence_intervals[name]]
                        if name in self.confidence_intervals else None
                    ),
                }
                for name, value in self.parameters.items()
            ],
            "confidence_level": self.confidence_level,
            "residuals": [detail.to_dict() for detail in self.residual_details],
            "covariance_matrix": cov_matrix,
            "correlation_matrix": corr_matrix,
            "solver": self.solver_result.to_dict() if self.solver_result is not None else None,
        }

    def to_json(self, indent: int = 2) -> str:
        """Serialize calibration result to JSON string."""
        return json.dumps(self.to_dict(), indent=indent)

    @classmethod
    def failure(cls, error_message: str, solver_result: Optional[SolverResult] = None) -> 'CalibrationResult':
        """
        Create a failed calibration result.

        Args:
            error_message: Description of the failure
            solver_result: Partial solver result, if the solver ran

        Returns:
            CalibrationResult with success=False
        """
        status = solver_result.status if solver_result is not None else SolverStatus.OBJECTIVE_ERROR
        return cls(
            success=False,
            converged=False,
            status=status,
            solver_result=solver_result,
            cost=solver_result.cost if solver_result is not None else math.nan,
            error_message=error_message,
        )

    def __repr__(self) -> str:
        status = "success" if self.success else "failed"
        conv = "converged" if self.converged else "not converged"
        return (
            f"CalibrationResult({status}, {conv}, "
            f"iter={self.iterations}, cost={self.cost:.6g}, dof={self.degrees_of_freedom})"
        )


@dataclass
class MultiStartResult:
    """
    Results of independent calibrations from several initial guesses.

    Attributes:
        runs: Calibration results sorted by final cost (failed runs last)
        initial_values: Initial guess of each run, in the same order as ``runs``
    """

    runs: List[CalibrationResult] = field(default_factory=list)
    initial_values: List[Dict[str, float]] = field(default_factory=list)

    @property
    def best(self) -> Optional[CalibrationResult]:
        """Lowest-cost successful run (None if every run failed)."""
        for run in self.runs:
            if run.success:
                return run
        return None

    @property
    def success_count(self) -> int:
        return sum(1 for run in self.runs if run.success)

    @property
    def costs(self) -> List[float]:
        return [run.cost for run in self.runs]

    def to_dict(self) -> Dict[str, Any]:
        best = self.best
        return {
            "num_runs": len(self.runs),
            "success_count": self.success_count,
            "best_cost": _json_safe_value(best.cost) if best is not None else None,
            "best_parameters": dict(best.parameters) if best is not None else None,
            "runs": [
                {
                    "initial_values": init,
                    "status": run.status.value,
                    "cost": _json_safe_value(run.cost),
                    "parameters": dict(run.parameters),
                }
                for run, init in zip(self.runs, self.initial_values)
            ],
        }

    def __repr__(self) -> str:
        best = self.best
        best_cost = f"{best.cost:.6g}" if best is not None else "n/a"
        return f"MultiStartResult(runs={len(self.runs)}, success={self.success_count}, best_cost={best_cost})"
