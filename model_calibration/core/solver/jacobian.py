"""model_calibration.core.solver.jacobian

Finite-difference Jacobian approximations.

These are opt-in: the solver only falls back to them when the caller selects
a scheme in ``SolverOptions.finite_difference``. Steps are relative,
``h_j = step * max(|x_j|, 1)``, so large and small parameters are perturbed
in proportion.
"""

from __future__ import annotations

from typing import Callable, Optional

import numpy as np

from ..models.options import FiniteDifference

ResidualFunction = Callable[[np.ndarray], np.ndarray]

_DEFAULT_STEP = float(np.sqrt(np.finfo(float).eps))


def _steps(x: np.ndarray, step: float) -> np.ndarray:
    return step * np.maximum(np.abs(x), 1.0)


def forward_difference_jacobian(
    residual_fn: ResidualFunction,
    x,
    r0: Optional[np.ndarray] = None,
    step: Optional[float] = None,
) -> np.ndarray:
    """Forward-difference Jacobian.

    J[:, j] = (r(x + h_j e_j) - r(x)) / h_j

    Args:
        residual_fn: Residual function
        x: Point of evaluation
        r0: Residuals at ``x`` if already known (saves one evaluation)
        step: Relative step (default sqrt(machine eps))

    Returns:
        m x n Jacobian estimate
    """
    x = np.asarray(x, dtype=float)
    h = _steps(x, _DEFAULT_STEP if step is None else step)
    f0 = np.asarray(residual_fn(x.copy()), dtype=float) if r0 is None else np.asarray(r0, dtype=float)

    J = np.empty((f0.size, x.size), dtype=float)
    for j in range(x.size):
        xp = x.copy()
        xp[j] += h[j]
        # Use the representable step to reduce rounding error
        hj = xp[j] - x[j]
        J[:, j] = (np.asarray(residual_fn(xp), dtype=float) - f0) / hj
    return J


def central_difference_jacobian(
    residual_fn: ResidualFunction,
    x,
    step: Optional[float] = None,
) -> np.ndarray:
    """Central-difference Jacobian.

    J[:, j] = (r(x + h_j e_j) - r(x - h_j e_j)) / (2 h_j)

    The default step is the cube root of machine eps, which balances
    truncation and rounding error for the second-order scheme.
    """
    x = np.asarray(x, dtype=float)
    if step is None:
        step = float(np.cbrt(np.finfo(float).eps))
    h = _steps(x, step)

    columns = []
    for j in range(x.size):
        xp = x.copy()
        xm = x.copy()
        xp[j] += h[j]
        xm[j] -= h[j]
        fp = np.asarray(residual_fn(xp), dtype=float)
        fm = np.asarray(residual_fn(xm), dtype=float)
        columns.append((fp - fm) / (xp[j] - xm[j]))
    return np.column_stack(columns) if columns else np.empty((0, 0))


def make_finite_difference_jacobian(
    residual_fn: ResidualFunction,
    scheme: FiniteDifference | str = FiniteDifference.FORWARD,
    step: Optional[float] = None,
) -> Callable[[np.ndarray], np.ndarray]:
    """Build a Jacobian function from a residual function.

    Args:
        residual_fn: Residual function
        scheme: "forward" or "central"
        step: Relative step, scheme default if None

    Returns:
        Callable usable as ``jacobian_fn``
    """
    scheme = FiniteDifference(scheme) if isinstance(scheme, str) else scheme

    if scheme == FiniteDifference.CENTRAL:
        def jacobian(x):
            return central_difference_jacobian(residual_fn, x, step=step)
    else:
        def jacobian(x):
            return forward_difference_jacobian(residual_fn, x, step=step)

    jacobian.scheme = scheme  # type: ignore[attr-defined]
    return jacobian
