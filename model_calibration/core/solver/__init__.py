"""model_calibration.core.solver

Levenberg-Marquardt nonlinear least squares, finite-difference Jacobians and
benchmark problems (NumPy only).
"""

from .levenberg_marquardt import solve
from .jacobian import (
    forward_difference_jacobian,
    central_difference_jacobian,
    make_finite_difference_jacobian,
)
from .problems import (
    ROSENBROCK_START,
    ROSENBROCK_MINIMUM,
    rosenbrock_residuals,
    rosenbrock_jacobian,
    rosenbrock2_residuals,
    rosenbrock2_jacobian,
)

__all__ = [
    "solve",
    "forward_difference_jacobian",
    "central_difference_jacobian",
    "make_finite_difference_jacobian",
    "ROSENBROCK_START",
    "ROSENBROCK_MINIMUM",
    "rosenbrock_residuals",
    "rosenbrock_jacobian",
    "rosenbrock2_residuals",
    "rosenbrock2_jacobian",
]
