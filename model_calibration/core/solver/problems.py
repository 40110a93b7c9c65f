"""model_calibration.core.solver.problems

Benchmark residual/Jacobian pairs for exercising the solver.

- Rosenbrock: r(x) = [1 - x1, 10 (x2 - x1^2)], minimum at (1, 1)
- Rosenbrock2: r(x) = [(1 - x1)^2, 100 (x2 - x1^2)^2]; same minimum, but
  the Jacobian vanishes there, so convergence is only linear and needs
  tight tolerances

The usual starting point for both is (-1.2, 1.0).
"""

from __future__ import annotations

import numpy as np

ROSENBROCK_START = (-1.2, 1.0)
ROSENBROCK_MINIMUM = (1.0, 1.0)


def rosenbrock_residuals(x) -> np.ndarray:
    x1, x2 = float(x[0]), float(x[1])
    return np.array([1.0 - x1, 10.0 * (x2 - x1 ** 2)])


def rosenbrock_jacobian(x) -> np.ndarray:
    x1 = float(x[0])
    return np.array([
        [-1.0, 0.0],
        [-20.0 * x1, 10.0],
    ])


def rosenbrock2_residuals(x) -> np.ndarray:
    x1, x2 = float(x[0]), float(x[1])
    return np.array([(1.0 - x1) ** 2, 100.0 * (x2 - x1 ** 2) ** 2])


def rosenbrock2_jacobian(x) -> np.ndarray:
    x1, x2 = float(x[0]), float(x[1])
    s = x2 - x1 ** 2
    return np.array([
        [-2.0 * (1.0 - x1), 0.0],
        [-400.0 * s * x1, 200.0 * s],
    ])
