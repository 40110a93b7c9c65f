"""model_calibration.core.solver.levenberg_marquardt

Levenberg-Marquardt nonlinear least squares.

Minimizes the cost C(x) = r(x)^T r(x) for a caller-supplied residual function
r and Jacobian J. Each iteration solves the damped normal equations

    (J^T J + lambda * diag(J^T J)) dx = -J^T r

and tries x + dx. A trial that lowers the cost is accepted and lambda is
decreased; otherwise the trial is rejected, lambda is increased and the step
is recomputed from the same point. The cost of accepted points is therefore
non-increasing.

Stopping tests:
  - ||dx||_2 < tol_x                       -> converged ("step")
  - max|J^T r| < tol_g                     -> converged ("gradient")
  - cost <= tol_cost (if set)              -> converged ("cost")
  - max_iterations / max_evaluations / max_time / callback
                                           -> non-convergence (best point kept)
  - lambda > lambda_max                    -> divergence
  - rejected step below tol_x before any step was accepted
                                           -> non-convergence ("stalled")

Failures of the caller's functions and unsolvable damped systems abort the
run; the result then carries the error and the partial trace.

A run keeps all of its state locally, so independent runs can execute
concurrently.
"""

from __future__ import annotations

import logging
import math
import time
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Tuple

import numpy as np

from ..errors import CalibrationError, ObjectiveEvaluationError, LinearAlgebraError
from ..models.options import SolverOptions, FiniteDifference
from ..results.solver_result import SolverResult, SolverStatus, IterationRecord
from .jacobian import make_finite_difference_jacobian
from .linalg import build_normal_equations, damped_step

logger = logging.getLogger(__name__)

ResidualFunction = Callable[[np.ndarray], np.ndarray]
JacobianFunction = Callable[[np.ndarray], np.ndarray]
IterationCallback = Callable[[IterationRecord], Optional[bool]]

# Smallest lambda that can be grown multiplicatively after a rejection
_LAMBDA_FLOOR = 1e-16


@dataclass
class _State:
    x: np.ndarray
    residuals: Optional[np.ndarray] = None
    cost: float = math.inf
    lambda_: float = 0.0
    jacobian: Optional[np.ndarray] = None
    iterations: int = 0
    residual_evaluations: int = 0
    jacobian_evaluations: int = 0
    cost_trace: List[float] = field(default_factory=list)
    trace: List[IterationRecord] = field(default_factory=list)
    messages: List[str] = field(default_factory=list)


def solve(
    residual_fn: ResidualFunction,
    jacobian_fn: Optional[JacobianFunction],
    x0,
    options: SolverOptions | None = None,
    callback: IterationCallback | None = None,
) -> SolverResult:
    """Run a Levenberg-Marquardt minimization.

    Args:
        residual_fn: x -> residual vector (length m)
        jacobian_fn: x -> m x n Jacobian; None only if
            ``options.finite_difference`` selects an approximation
        x0: Initial parameter vector (length n); not modified
        options: Solver options (defaults if None)
        callback: Called with each IterationRecord; returning True cancels
            the run after the current attempt

    Returns:
        SolverResult with the best point found, its cost, the status and traces

    Raises:
        ValueError: for invalid inputs (empty/non-finite x0, missing Jacobian
            without a finite-difference scheme)
    """
    options = options or SolverOptions.default()

    x = np.array(x0, dtype=float, copy=True)
    if x.ndim != 1 or x.size == 0:
        raise ValueError("x0 must be a non-empty one-dimensional vector")
    if not np.all(np.isfinite(x)):
        raise ValueError("x0 must be finite")

    if jacobian_fn is None:
        if options.finite_difference is None:
            raise ValueError(
                "jacobian_fn is required unless options.finite_difference selects an approximation"
            )
        step = options.fd_step if options.finite_difference == FiniteDifference.FORWARD else None
        jacobian_fn = make_finite_difference_jacobian(residual_fn, options.finite_difference, step=step)
        logger.debug("Using %s-difference Jacobian", options.finite_difference.value)

    state = _State(x=x, lambda_=float(options.lambda_init))
    status = SolverStatus.NON_CONVERGENCE
    reason: Optional[str] = None
    error: Optional[CalibrationError] = None

    try:
        r = _evaluate_residuals(residual_fn, state.x, state)
        if not np.all(np.isfinite(r)):
            raise ObjectiveEvaluationError("Residual function returned non-finite values at x0", function="residual")
        state.residuals = r
        state.cost = float(r @ r)
        state.cost_trace.append(state.cost)
        status, reason = _iterate(residual_fn, jacobian_fn, state, options, callback)

    except ObjectiveEvaluationError as exc:
        status = SolverStatus.OBJECTIVE_ERROR
        error = exc
        logger.error("Objective evaluation failed after %d iterations: %s", state.iterations, exc)

    except LinearAlgebraError as exc:
        status = SolverStatus.LINEAR_ALGEBRA_ERROR
        error = exc
        logger.error("Linear algebra failure after %d iterations: %s", state.iterations, exc)

    if status == SolverStatus.DIVERGENCE:
        state.messages.append(f"Damping parameter exceeded lambda_max={options.lambda_max:g}")
    elif status == SolverStatus.NON_CONVERGENCE:
        state.messages.append(f"Stopped on {reason} before convergence")

    logger.info(
        "Levenberg-Marquardt finished: status=%s reason=%s iterations=%d cost=%.6g "
        "(residual evals=%d, jacobian evals=%d)",
        status.value, reason, state.iterations, state.cost,
        state.residual_evaluations, state.jacobian_evaluations,
    )

    return SolverResult(
        x=state.x,
        cost=state.cost,
        status=status,
        convergence_reason=reason,
        iterations=state.iterations,
        residual_evaluations=state.residual_evaluations,
        jacobian_evaluations=state.jacobian_evaluations,
        lambda_final=state.lambda_,
        cost_trace=state.cost_trace,
        trace=state.trace,
        residuals=state.residuals,
        jacobian=state.jacobian,
        error=error,
        messages=state.messages,
    )


def _iterate(
    residual_fn: ResidualFunction,
    jacobian_fn: JacobianFunction,
    state: _State,
    options: SolverOptions,
    callback: IterationCallback | None,
) -> Tuple[SolverStatus, str]:
    """Main loop. Returns (status, reason); errors propagate to ``solve``."""
    log = logger.info if options.show_trace else logger.debug
    start = time.monotonic()
    m = state.residuals.size
    n = state.x.size

    for iteration in range(1, options.max_iterations + 1):
        if options.tol_cost is not None and state.cost <= options.tol_cost:
            return SolverStatus.CONVERGED, "cost"

        J = _evaluate_jacobian(jacobian_fn, state.x, m, n, state)
        state.jacobian = J
        state.iterations = iteration

        normal = build_normal_equations(J, state.residuals, options.min_diagonal, options.max_diagonal)
        gradient_norm = float(np.max(np.abs(normal.gradient))) if m else 0.0
        if gradient_norm < options.tol_g:
            return SolverStatus.CONVERGED, "gradient"

        # Retry from the same point until a step is accepted
        while True:
            if options.max_time is not None and time.monotonic() - start > options.max_time:
                return SolverStatus.NON_CONVERGENCE, "max_time"

            lambdas = [state.lambda_ * options.lambda_decrease_factor ** k for k in range(options.np_lambda)]
            attempts = []
            for lam in lambdas:
                if options.max_evaluations is not None and state.residual_evaluations >= options.max_evaluations:
                    break
                step, _ = damped_step(normal, lam, options.max_regularization_attempts)
                x_trial = state.x + step
                r_trial = _evaluate_residuals(residual_fn, x_trial, state, m)
                cost_trial = float(r_trial @ r_trial)
                if not math.isfinite(cost_trial):
                    log("Iteration %d: non-finite cost at trial point (lambda=%g)", iteration, lam)
                    cost_trial = math.inf
                attempts.append((cost_trial, lam, step, x_trial, r_trial))

            if not attempts:
                return SolverStatus.NON_CONVERGENCE, "max_evaluations"

            best = min(range(len(attempts)), key=lambda k: attempts[k][0])
            best_cost, best_lam, best_step, best_x, best_r = attempts[best]
            accepted = best_cost < state.cost

            records = []
            for k, (cost_trial, lam, step, _, _) in enumerate(attempts):
                rec = IterationRecord(
                    iteration=iteration,
                    lambda_=lam,
                    cost=state.cost,
                    trial_cost=cost_trial,
                    step_norm=float(np.linalg.norm(step)),
                    gradient_norm=gradient_norm,
                    accepted=accepted and k == best,
                )
                records.append(rec)
                log(
                    "Iteration %d: lambda=%.3g cost=%.6g trial=%.6g |dx|=%.3g |g|=%.3g %s",
                    iteration, lam, state.cost, cost_trial, rec.step_norm, gradient_norm,
                    "accepted" if rec.accepted else "rejected",
                )
            state.trace.extend(records)

            if accepted:
                state.x = best_x
                state.residuals = best_r
                state.cost = best_cost
                state.cost_trace.append(best_cost)
                state.lambda_ = max(best_lam * options.lambda_decrease_factor, min(options.lambda_min, best_lam))
                small_step = float(np.linalg.norm(best_step)) < options.tol_x
            else:
                state.lambda_ = max(state.lambda_, _LAMBDA_FLOOR) * options.lambda_increase_factor
                # Candidate steps shrink as lambda grows; the first is the smallest
                small_step = records[0].step_norm < options.tol_x

            if callback is not None and any([callback(rec) for rec in records]):
                return SolverStatus.NON_CONVERGENCE, "cancelled"

            if accepted:
                if small_step:
                    return SolverStatus.CONVERGED, "step"
                break

            if state.lambda_ > options.lambda_max:
                return SolverStatus.DIVERGENCE, "lambda_max"

            if small_step:
                # No step was ever accepted: the starting point could not be improved
                if len(state.cost_trace) == 1:
                    return SolverStatus.NON_CONVERGENCE, "stalled"
                return SolverStatus.CONVERGED, "step"

    return SolverStatus.NON_CONVERGENCE, "max_iterations"


def _evaluate_residuals(
    residual_fn: ResidualFunction,
    x: np.ndarray,
    state: _State,
    m: Optional[int] = None,
) -> np.ndarray:
    """Call the residual function on a copy of x and check the result."""
    state.residual_evaluations += 1
    try:
        r = np.asarray(residual_fn(x.copy()), dtype=float)
    except Exception as exc:
        raise ObjectiveEvaluationError(
            f"Residual function raised {type(exc).__name__}: {exc}", function="residual"
        ) from exc

    if r.ndim != 1:
        raise ObjectiveEvaluationError(
            f"Residual function must return a vector, got shape {r.shape}", function="residual"
        )
    if m is not None and r.size != m:
        raise ObjectiveEvaluationError(
            f"Residual length changed from {m} to {r.size}", function="residual"
        )
    return r


def _evaluate_jacobian(
    jacobian_fn: JacobianFunction,
    x: np.ndarray,
    m: int,
    n: int,
    state: _State,
) -> np.ndarray:
    """Call the Jacobian function on a copy of x and check the result."""
    state.jacobian_evaluations += 1
    try:
        J = np.asarray(jacobian_fn(x.copy()), dtype=float)
    except Exception as exc:
        raise ObjectiveEvaluationError(
            f"Jacobian function raised {type(exc).__name__}: {exc}", function="jacobian"
        ) from exc

    if m == 1 and J.ndim == 1 and J.size == n:
        J = J.reshape(1, n)
    if J.shape != (m, n):
        raise ObjectiveEvaluationError(
            f"Jacobian must have shape {(m, n)}, got {J.shape}", function="jacobian"
        )
    if not np.all(np.isfinite(J)):
        raise ObjectiveEvaluationError("Jacobian contains non-finite values", function="jacobian")
    return J
