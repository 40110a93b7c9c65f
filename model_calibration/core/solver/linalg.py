"""model_calibration.core.solver.linalg

Damped normal-equation solves for the Levenberg-Marquardt step.

The step solves

    (J^T J + lambda * D) dx = -J^T r,    D = diag(clamp(diag(J^T J)))

Scaling the damping by the diagonal of J^T J (not the identity) keeps the
step invariant to parameter scaling. The diagonal is clamped so that a
parameter with a zero Jacobian column still receives damping.

If the system is singular, a ridge term proportional to the largest diagonal
entry is added and grown until the solve succeeds or the attempts run out.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Tuple

import numpy as np

from ..errors import LinearAlgebraError

logger = logging.getLogger(__name__)

_RIDGE_START = 1e-12
_RIDGE_GROWTH = 100.0


@dataclass(frozen=True)
class NormalEquations:
    """Normal-equation terms at the current point."""

    JtJ: np.ndarray
    gradient: np.ndarray          # J^T r
    damping_diagonal: np.ndarray  # clamped diag(J^T J)


def build_normal_equations(
    jacobian: np.ndarray,
    residuals: np.ndarray,
    min_diagonal: float,
    max_diagonal: float,
) -> NormalEquations:
    """Form J^T J, J^T r and the clamped damping diagonal."""
    JtJ = jacobian.T @ jacobian
    gradient = jacobian.T @ residuals
    diag = np.clip(np.diag(JtJ), min_diagonal, max_diagonal)
    return NormalEquations(JtJ=JtJ, gradient=gradient, damping_diagonal=diag)


def damped_step(
    normal: NormalEquations,
    lambda_: float,
    max_regularization_attempts: int = 8,
) -> Tuple[np.ndarray, float]:
    """Solve the damped system for the step.

    Args:
        normal: Normal-equation terms at the current point
        lambda_: Damping parameter
        max_regularization_attempts: Ridge retries after a failed solve

    Returns:
        (step, ridge) where ridge is the regularization that was added
        (0.0 when the plain damped system was solvable)

    Raises:
        LinearAlgebraError: if no attempt produced a finite step
    """
    A = normal.JtJ + lambda_ * np.diag(normal.damping_diagonal)
    rhs = -normal.gradient

    ridge = 0.0
    scale = max(float(np.max(np.abs(np.diag(A)))), 1.0)
    for attempt in range(max_regularization_attempts + 1):
        if attempt > 0:
            ridge = scale * _RIDGE_START * _RIDGE_GROWTH ** (attempt - 1)
        try:
            step = np.linalg.solve(A + ridge * np.eye(A.shape[0]), rhs)
        except np.linalg.LinAlgError:
            continue
        if np.all(np.isfinite(step)):
            if ridge > 0.0:
                logger.warning(
                    "Damped system singular at lambda=%g; solved with ridge regularization %g",
                    lambda_, ridge,
                )
            return step, ridge

    raise LinearAlgebraError(
        f"Damped normal equations unsolvable at lambda={lambda_:g} "
        f"after {max_regularization_attempts} regularization attempts"
    )
