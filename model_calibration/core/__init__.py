"""
Core module for model calibration.

This module contains the NumPy-only implementation: data models, the
Levenberg-Marquardt solver, the calibration driver, post-fit statistics
and reports.
"""

from .errors import (
    CalibrationError,
    ObjectiveEvaluationError,
    LinearAlgebraError,
    NonConvergence,
    DivergenceError,
    ParameterError,
)

from .models import (
    Parameter,
    ParameterSet,
    Observation,
    Uniform,
    Normal,
    LogNormal,
    LogUniform,
    parse_distribution,
    SolverOptions,
    CalibrationOptions,
    FiniteDifference,
)

from .results import (
    SolverResult,
    SolverStatus,
    IterationRecord,
    CalibrationResult,
    MultiStartResult,
    ChiSquareTestResult,
    ResidualInfo,
)

from .solver import solve
from .calibration import calibrate, calibrate_multistart

__all__ = [
    # Errors
    "CalibrationError",
    "ObjectiveEvaluationError",
    "LinearAlgebraError",
    "NonConvergence",
    "DivergenceError",
    "ParameterError",

    # Models
    "Parameter",
    "ParameterSet",
    "Observation",
    "Uniform",
    "Normal",
    "LogNormal",
    "LogUniform",
    "parse_distribution",
    "SolverOptions",
    "CalibrationOptions",
    "FiniteDifference",

    # Results
    "SolverResult",
    "SolverStatus",
    "IterationRecord",
    "CalibrationResult",
    "MultiStartResult",
    "ChiSquareTestResult",
    "ResidualInfo",

    # Solver and calibration
    "solve",
    "calibrate",
    "calibrate_multistart",
]
