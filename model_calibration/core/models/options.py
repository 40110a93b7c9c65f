"""
Solver and calibration options.

This module defines configuration records for the Levenberg-Marquardt
solver and for the calibration driver that wraps it: iteration control,
damping strategy, convergence tolerances, budgets and post-fit statistics.
"""

import math
from dataclasses import dataclass, field
from typing import Optional, Dict, Any
from enum import Enum


class FiniteDifference(Enum):
    """
    Finite-difference schemes for approximating the Jacobian.

    Supported schemes:
    - FORWARD: one extra residual evaluation per parameter
    - CENTRAL: two extra residual evaluations per parameter, second order
    """
    FORWARD = "forward"
    CENTRAL = "central"


def _parse_scheme(value: Any) -> Optional[FiniteDifference]:
    """Convert a string/enum/None to an optional FiniteDifference."""
    if value is None or isinstance(value, FiniteDifference):
        return value
    if isinstance(value, str):
        if value.lower() in ("", "none"):
            return None
        return FiniteDifference(value.lower())
    raise ValueError(f"Unknown finite-difference scheme: {value!r}")


@dataclass
class SolverOptions:
    """
    Configuration options for the Levenberg-Marquardt solver.

    Attributes:
        max_iterations: Maximum number of iterations (Jacobian evaluations) (default: 100)
        tol_x: Step-norm convergence threshold, Euclidean norm (default: 1e-6)
        tol_g: Gradient-norm convergence threshold on max|J^T r| (default: 1e-8)
        tol_cost: Stop once the cost drops to this value, None disables (default: None)

        lambda_init: Initial damping parameter (default: 1e-3)
        lambda_increase_factor: Multiplier applied after a rejected step (default: 10)
        lambda_decrease_factor: Multiplier applied after an accepted step (default: 0.1)
        lambda_max: Damping ceiling; exceeding it is reported as divergence (default: 1e16)
        lambda_min: Damping floor after decreases (default: 1e-16)
        np_lambda: Number of damping candidates evaluated per attempt (default: 1)

        min_diagonal: Lower clamp on diag(J^T J) used for damping (default: 1e-6)
        max_diagonal: Upper clamp on diag(J^T J) used for damping (default: 1e32)
        max_regularization_attempts: Ridge retries for a singular system (default: 8)

        max_evaluations: Residual evaluation budget, None for unlimited
        max_time: Wall-clock budget in seconds, None for unlimited

        finite_difference: Jacobian approximation used when no Jacobian
            function is supplied (None means a Jacobian is required)
        fd_step: Relative finite-difference step (default: sqrt(machine eps))

        show_trace: Log every attempt at INFO instead of DEBUG (default: False)
    """

    max_iterations: int = 100
    tol_x: float = 1e-6
    tol_g: float = 1e-8
    tol_cost: Optional[float] = None

    # Damping strategy
    lambda_init: float = 1e-3
    lambda_increase_factor: float = 10.0
    lambda_decrease_factor: float = 0.1
    lambda_max: float = 1e16
    lambda_min: float = 1e-16
    np_lambda: int = 1

    # Normal equations
    min_diagonal: float = 1e-6
    max_diagonal: float = 1e32
    max_regularization_attempts: int = 8

    # Budgets
    max_evaluations: Optional[int] = None
    max_time: Optional[float] = None

    # Jacobian approximation (opt-in)
    finite_difference: Optional[FiniteDifference] = None
    fd_step: float = math.sqrt(2.220446049250313e-16)

    show_trace: bool = False

    def __post_init__(self):
        """Validate options after initialization."""
        if self.max_iterations < 1:
            raise ValueError("max_iterations must be at least 1")

        if self.tol_x < 0 or self.tol_g < 0:
            raise ValueError("tol_x and tol_g cannot be negative")

        if self.tol_cost is not None and self.tol_cost < 0:
            raise ValueError("tol_cost cannot be negative")

        if self.lambda_init < 0:
            raise ValueError("lambda_init cannot be negative")

        if self.lambda_increase_factor <= 1.0:
            raise ValueError("lambda_increase_factor must be greater than 1")

        if not 0.0 < self.lambda_decrease_factor < 1.0:
            raise ValueError("lambda_decrease_factor must be between 0 and 1")

        if self.lambda_max <= self.lambda_init:
            raise ValueError("lambda_max must exceed lambda_init")

        if self.lambda_min < 0:
            raise ValueError("lambda_min cannot be negative")

        if self.np_lambda < 1:
            raise ValueError("np_lambda must be at least 1")

        if not 0 < self.min_diagonal <= self.max_diagonal:
            raise ValueError("diagonal clamp must satisfy 0 < min_diagonal <= max_diagonal")

        if self.max_regularization_attempts < 0:
            raise ValueError("max_regularization_attempts cannot be negative")

        if self.max_evaluations is not None and self.max_evaluations < 1:
            raise ValueError("max_evaluations must be at least 1")

        if self.max_time is not None and self.max_time <= 0:
            raise ValueError("max_time must be positive")

        if self.fd_step <= 0:
            raise ValueError("fd_step must be positive")

        self.finite_difference = _parse_scheme(self.finite_difference)

    def to_dict(self) -> Dict[str, Any]:
        """
        Serialize options to dictionary.

        Returns:
            Dictionary representation suitable for JSON serialization
        """
        return {
            "max_iterations": self.max_iterations,
            "tol_x": self.tol_x,
            "tol_g": self.tol_g,
            "tol_cost": self.tol_cost,
            "lambda_init": self.lambda_init,
            "lambda_increase_factor": self.lambda_increase_factor,
            "lambda_decrease_factor": self.lambda_decrease_factor,
            "lambda_max": self.lambda_max,
            "lambda_min": self.lambda_min,
            "np_lambda": self.np_lambda,
            "min_diagonal": self.min_diagonal,
            "max_diagonal": self.max_diagonal,
            "max_regularization_attempts": self.max_regularization_attempts,
            "max_evaluations": self.max_evaluations,
            "max_time": self.max_time,
            "finite_difference": self.finite_difference.value if self.finite_difference else None,
            "fd_step": self.fd_step,
            "show_trace": self.show_trace,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'SolverOptions':
        """
        Create SolverOptions from a dictionary.

        Missing keys take their default values.

        Args:
            data: Dictionary with option values

        Returns:
            New SolverOptions instance
        """
        known = cls().to_dict()
        values = {key: data.get(key, default) for key, default in known.items()}
        return cls(**values)

    @classmethod
    def default(cls) -> 'SolverOptions':
        """
        Create options with default values.

        Returns:
            SolverOptions with default settings
        """
        return cls()

    @classmethod
    def high_precision(cls) -> 'SolverOptions':
        """
        Create options for slowly converging, badly conditioned problems.

        Returns:
            SolverOptions with tight tolerances and a larger iteration budget
        """
        return cls(
            max_iterations=500,
            tol_x=1e-8,
            tol_g=1e-12,
        )

    def __repr__(self) -> str:
        return (
            f"SolverOptions("
            f"max_iter={self.max_iterations}, "
            f"tol_x={self.tol_x}, "
            f"tol_g={self.tol_g}, "
            f"lambda0={self.lambda_init})"
        )


@dataclass
class CalibrationOptions:
    """
    Configuration options for the calibration driver.

    Attributes:
        solver: Options passed to the Levenberg-Marquardt solver
        finite_difference: Jacobian scheme used when the model has no
            analytic Jacobian (default: forward)
        log_transform: Optimize log-flagged parameters in log10 space (default: True)
        sine_transform: Map bounded parameters through a sine transform (default: True)
        compute_covariances: Compute parameter covariance and statistics (default: True)
        confidence_level: Confidence level for intervals and the chi-square test (default: 0.95)
    """

    solver: SolverOptions = field(default_factory=SolverOptions)
    finite_difference: Optional[FiniteDifference] = FiniteDifference.FORWARD
    log_transform: bool = True
    sine_transform: bool = True
    compute_covariances: bool = True
    confidence_level: float = 0.95

    def __post_init__(self):
        """Validate options after initialization."""
        if isinstance(self.solver, dict):
            self.solver = SolverOptions.from_dict(self.solver)

        if not 0 < self.confidence_level < 1:
            raise ValueError("confidence_level must be between 0 and 1")

        self.finite_difference = _parse_scheme(self.finite_difference)

    @property
    def alpha(self) -> float:
        """Significance level (complement of confidence level)."""
        return 1.0 - self.confidence_level

    def to_dict(self) -> Dict[str, Any]:
        """Serialize options to dictionary."""
        return {
            "solver": self.solver.to_dict(),
            "finite_difference": self.finite_difference.value if self.finite_difference else None,
            "log_transform": self.log_transform,
            "sine_transform": self.sine_transform,
            "compute_covariances": self.compute_covariances,
            "confidence_level": self.confidence_level,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'CalibrationOptions':
        """Create CalibrationOptions from a dictionary."""
        return cls(
            solver=SolverOptions.from_dict(data.get("solver", {})),
            finite_difference=data.get("finite_difference", "forward"),
            log_transform=data.get("log_transform", True),
            sine_transform=data.get("sine_transform", True),
            compute_covariances=data.get("compute_covariances", True),
            confidence_level=data.get("confidence_level", 0.95),
        )

    @classmethod
    def default(cls) -> 'CalibrationOptions':
        """Create options with default values."""
        return cls()
