"""
Exception hierarchy for model calibration.

All errors raised by the solver and the calibration driver derive from
:class:`CalibrationError`, so callers can catch every calibration failure
with a single except clause. Errors are local to one run: the solver stores
them on the failed result and never keeps them in module state.
"""

from typing import Optional


class CalibrationError(Exception):
    """Base exception for all calibration errors."""
    pass


class ObjectiveEvaluationError(CalibrationError):
    """
    The residual or Jacobian function failed.

    Raised when:
    - the caller's residual/Jacobian callable raises
    - it returns an array of the wrong shape
    - it returns non-finite values at an accepted point
    """

    def __init__(self, message: str, function: Optional[str] = None):
        super().__init__(message)
        self.function = function


class LinearAlgebraError(CalibrationError):
    """
    The damped normal-equations system could not be solved.

    Raised only after the regularization fallback has been exhausted.
    """
    pass


class NonConvergence(CalibrationError):
    """
    A run stopped on a budget before any convergence test fired.

    The solver reports this as a status, not by raising; it is raised
    only by ``SolverResult.raise_for_status()``.
    """
    pass


class DivergenceError(CalibrationError):
    """The damping parameter exceeded its ceiling."""
    pass


class ParameterError(CalibrationError, ValueError):
    """
    Invalid parameter definition or parameter lookup.

    Raised when:
    - bounds are inconsistent (min > max)
    - a log-transformed parameter has non-positive values
    - a parameter key or field name is unknown
    - an initial value lies outside its bounds
    """
    pass
