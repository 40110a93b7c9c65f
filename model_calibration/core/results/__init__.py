"""Result classes for solver runs and calibrations."""

from .solver_result import SolverResult, SolverStatus, IterationRecord
from .calibration_result import (
    ChiSquareTestResult,
    ResidualInfo,
    CalibrationResult,
    MultiStartResult,
)

__all__ = [
    "SolverResult",
    "SolverStatus",
    "IterationRecord",
    "ChiSquareTestResult",
    "ResidualInfo",
    "CalibrationResult",
    "MultiStartResult",
]
