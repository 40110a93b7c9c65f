"""model_calibration.core.statistics.uncertainty

Linearized parameter uncertainty at the calibrated point.

With J the Jacobian of the weighted residuals with respect to the model
parameters, the cofactor matrix of the estimates is Q = (J^T J)^-1 and the
covariance is s^2 Q, where s^2 = cost / dof is the a posteriori variance
factor (taken as 1 when there is no redundancy).
"""

from __future__ import annotations

from typing import Tuple

import numpy as np

from ..errors import LinearAlgebraError
from .distributions import normal_ppf


def variance_factor(cost: float, dof: int) -> float:
    """A posteriori variance factor s^2 = cost / dof (1.0 if dof <= 0)."""
    return float(cost) / dof if dof > 0 else 1.0


def parameter_covariance(
    jacobian: np.ndarray,
    cost: float,
    dof: int,
) -> Tuple[np.ndarray, np.ndarray]:
    """Covariance and cofactor matrices of the estimates.

    Args:
        jacobian: m x n Jacobian at the optimum (model parameter space)
        cost: final cost
        dof: degrees of freedom

    Returns:
        (covariance, cofactor)

    Raises:
        LinearAlgebraError: if J^T J is singular (parameters not identifiable)
    """
    J = np.asarray(jacobian, dtype=float)
    N = J.T @ J
    try:
        # Solve rather than invert; also rejects exactly singular N
        Q = np.linalg.solve(N, np.eye(N.shape[0]))
    except np.linalg.LinAlgError as exc:
        raise LinearAlgebraError("J^T J is singular; parameters are not identifiable") from exc
    if not np.all(np.isfinite(Q)):
        raise LinearAlgebraError("Parameter cofactor matrix is not finite")
    Q = 0.5 * (Q + Q.T)
    return variance_factor(cost, dof) * Q, Q


def standard_errors(covariance: np.ndarray) -> np.ndarray:
    """Square roots of the covariance diagonal (negatives clipped to 0)."""
    return np.sqrt(np.maximum(np.diag(covariance), 0.0))


def correlation_matrix(covariance: np.ndarray) -> np.ndarray:
    """Correlation matrix; rows/columns of zero-variance parameters are 0."""
    se = standard_errors(covariance)
    outer = np.outer(se, se)
    with np.errstate(divide="ignore", invalid="ignore"):
        corr = np.where(outer > 0.0, covariance / outer, 0.0)
    np.fill_diagonal(corr, np.where(se > 0.0, 1.0, 0.0))
    return np.clip(corr, -1.0, 1.0)


def confidence_intervals(
    estimates: np.ndarray,
    errors: np.ndarray,
    confidence_level: float = 0.95,
) -> np.ndarray:
    """Symmetric normal-approximation intervals, shape (n, 2)."""
    k = normal_ppf(0.5 + confidence_level / 2.0)
    estimates = np.asarray(estimates, dtype=float)
    return np.column_stack([estimates - k * errors, estimates + k * errors])
