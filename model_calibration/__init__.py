"""
Model Calibration - Levenberg-Marquardt parameter estimation

Fits the parameters of a user-supplied model to observations by damped
nonlinear least squares, and reports estimates with their uncertainty.

Conventions:
- Cost: sum of squared residuals, r^T r
- Residuals: weight * (prediction - target)
- Weights: 1/sigma makes the cost a chi-square statistic
- Parameters: identified by name; only "opt" parameters are adjusted
- Log parameters: optimized in log10 space; bounded ones through a sine transform
"""

__version__ = "1.0.0"
__author__ = "Model Calibration"

from .core.errors import CalibrationError, ObjectiveEvaluationError, LinearAlgebraError
from .core.models import Parameter, ParameterSet, Observation
from .core.models import SolverOptions, CalibrationOptions, FiniteDifference
from .core.results import SolverResult, SolverStatus, CalibrationResult, MultiStartResult
from .core.solver import solve
from .core.calibration import calibrate, calibrate_multistart

__all__ = [
    # Version
    "__version__",

    # Errors
    "CalibrationError",
    "ObjectiveEvaluationError",
    "LinearAlgebraError",

    # Models
    "Parameter",
    "ParameterSet",
    "Observation",

    # Options
    "SolverOptions",
    "CalibrationOptions",
    "FiniteDifference",

    # Results
    "SolverResult",
    "SolverStatus",
    "CalibrationResult",
    "MultiStartResult",

    # Operations
    "solve",
    "calibrate",
    "calibrate_multistart",
]
