"""model_calibration.core.calibration.driver

Calibrate a model's parameters against observations.

The model is any callable taking a dictionary of parameter values and
returning predictions for the enabled observations, either as a mapping
keyed by observation name or as a sequence in observation order. The driver

  1) maps the optimizable parameters to an unconstrained solver vector
     (log10 and sine transforms),
  2) minimizes the weighted residuals weight * (prediction - target)
     with the Levenberg-Marquardt solver,
  3) computes post-fit statistics in model parameter space: degrees of
     freedom, variance factor, chi-square goodness-of-fit, covariance,
     standard errors, correlations and confidence intervals.

Fixed parameters are passed to the model at their ``init`` values. The
caller's ParameterSet is never modified.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import replace
from typing import Any, Callable, Dict, List, Optional, Sequence

import numpy as np

from ..errors import ObjectiveEvaluationError, ParameterError
from ..models.observation import Observation, enabled_observations
from ..models.options import CalibrationOptions, FiniteDifference
from ..models.parameter_set import ParameterSet
from ..results.calibration_result import CalibrationResult, ResidualInfo
from ..solver.jacobian import make_finite_difference_jacobian
from ..solver.levenberg_marquardt import solve, IterationCallback
from ..statistics.tests import chi_square_goodness_of_fit
from ..statistics.uncertainty import (
    variance_factor,
    parameter_covariance,
    standard_errors,
    correlation_matrix,
    confidence_intervals,
)
from .transforms import ParameterMapping, build_parameter_mapping

logger = logging.getLogger(__name__)

Model = Callable[[Dict[str, float]], Any]
ModelJacobian = Callable[[Dict[str, float]], Any]


class _Problem:
    """Weighted residuals of one calibration, in solver and parameter space."""

    def __init__(
        self,
        model: Model,
        observations: List[Observation],
        mapping: ParameterMapping,
        model_jacobian: Optional[ModelJacobian] = None,
    ):
        self.model = model
        self.model_jacobian = model_jacobian
        self.mapping = mapping
        self.names = [obs.name for obs in observations]
        self.targets = np.array([obs.target for obs in observations], dtype=float)
        self.weights = np.array([obs.weight for obs in observations], dtype=float)

    def predict(self, params: Dict[str, float]) -> np.ndarray:
        """Model predictions in observation order."""
        output = self.model(dict(params))
        if isinstance(output, Mapping):
            missing = [name for name in self.names if name not in output]
            if missing:
                raise ObjectiveEvaluationError(
                    f"Model output is missing observations: {', '.join(missing)}", function="model"
                )
            return np.array([output[name] for name in self.names], dtype=float)

        pred = np.asarray(output, dtype=float).ravel()
        if pred.size != len(self.names):
            raise ObjectiveEvaluationError(
                f"Model returned {pred.size} predictions for {len(self.names)} observations",
                function="model",
            )
        return pred

    def residuals(self, t: np.ndarray) -> np.ndarray:
        return self.weights * (self.predict(self.mapping.from_solver(t)) - self.targets)

    def jacobian(self, t: np.ndarray) -> np.ndarray:
        """Chain rule: d r / d t = W * (d pred / d p) * (d p / d t)."""
        Jp = self.parameter_jacobian(self.mapping.from_solver(t))
        return Jp * self.mapping.derivatives(t)[np.newaxis, :]

    def parameter_jacobian(self, params: Dict[str, float]) -> np.ndarray:
        """Weighted model Jacobian with respect to the optimizable parameters."""
        J = np.asarray(self.model_jacobian(dict(params)), dtype=float)
        m, n = len(self.names), self.mapping.num_params
        if m == 1 and J.ndim == 1:
            J = J.reshape(1, -1)
        elif n == 1 and J.ndim == 1:
            J = J.reshape(-1, 1)
        if J.shape != (m, n):
            raise ObjectiveEvaluationError(
                f"Model Jacobian must have shape {(m, n)}, got {J.shape}", function="model_jacobian"
            )
        return self.weights[:, np.newaxis] * J

    def residuals_in_parameters(self, p: np.ndarray) -> np.ndarray:
        params = dict(self.mapping.fixed)
        params.update(zip(self.mapping.names, (float(v) for v in p)))
        return self.weights * (self.predict(params) - self.targets)


def calibrate(
    parameters: ParameterSet,
    observations: Sequence[Observation],
    model: Model,
    options: CalibrationOptions | None = None,
    model_jacobian: Optional[ModelJacobian] = None,
    initial_values: Optional[Dict[str, float]] = None,
    callback: IterationCallback | None = None,
) -> CalibrationResult:
    """Calibrate ``model`` against ``observations``.

    Args:
        parameters: Parameter set; only ``opt`` parameters are adjusted
        observations: Calibration targets; disabled ones are ignored
        model: params dict -> predictions (mapping by name, or sequence)
        options: Calibration options (defaults if None)
        model_jacobian: params dict -> m x n Jacobian of the predictions with
            respect to the optimizable parameters (in ``opt_keys`` order).
            If None, a finite-difference approximation is used.
        initial_values: Starting values overriding ``init`` for some
            optimizable parameters
        callback: Passed to the solver; returning True cancels the run

    Returns:
        CalibrationResult with estimates, residuals and statistics.
        Solver failures are reported on the result, not raised.

    Raises:
        ParameterError: if the parameter set or the initial values are invalid
        ValueError: for invalid observations, or when no Jacobian is
            available (no model Jacobian and no finite-difference scheme)
    """
    options = options or CalibrationOptions.default()

    errors = parameters.validate()
    if errors:
        raise ParameterError("; ".join(errors))

    obs = enabled_observations(observations)
    if not obs:
        raise ValueError("No enabled observations")

    mapping = build_parameter_mapping(
        parameters,
        log_transform=options.log_transform,
        sine_transform=options.sine_transform,
    )

    start = parameters.param_dict(mapping.names)
    if initial_values:
        unknown = [key for key in initial_values if key not in start]
        if unknown:
            raise ParameterError(f"Initial values given for non-optimizable parameters: {', '.join(unknown)}")
        start.update({key: float(value) for key, value in initial_values.items()})

    problem = _Problem(model, obs, mapping, model_jacobian)

    solver_options = options.solver
    jacobian_fn = None
    if model_jacobian is not None:
        jacobian_fn = problem.jacobian
    else:
        scheme = options.finite_difference or options.solver.finite_difference
        if scheme is None:
            raise ValueError("model_jacobian is required when finite differences are disabled")
        solver_options = replace(options.solver, finite_difference=scheme)

    m, n = len(obs), mapping.num_params
    logger.info(
        "Calibrating '%s': %d observations, %d adjusted parameters (%d fixed)",
        parameters.name, m, n, len(mapping.fixed),
    )

    t0 = mapping.to_solver(start)
    solver_result = solve(problem.residuals, jacobian_fn, t0, solver_options, callback=callback)

    values = mapping.from_solver(solver_result.x)
    estimates = {key: values[key] for key in parameters.keys()}
    messages = list(solver_result.messages)

    if not solver_result.success:
        result = CalibrationResult.failure(
            str(solver_result.error) if solver_result.error is not None else f"Solver status: {solver_result.status.value}",
            solver_result,
        )
        result.parameters = estimates
        result.optimized = list(mapping.names)
        result.messages = messages
        result.parameter_set_name = parameters.name
        result.confidence_level = options.confidence_level
        return result

    residual_details = _residual_details(problem, estimates, messages)

    dof = m - n
    cost = solver_result.cost
    if dof <= 0:
        messages.append(f"No redundancy (dof={dof}): variance factor set to 1.0")

    result = CalibrationResult(
        success=True,
        converged=solver_result.converged,
        status=solver_result.status,
        solver_result=solver_result,
        parameters=estimates,
        optimized=list(mapping.names),
        cost=cost,
        residual_details=residual_details,
        degrees_of_freedom=dof,
        variance_factor=variance_factor(cost, dof),
        confidence_level=options.confidence_level,
        messages=messages,
        parameter_set_name=parameters.name,
    )

    if dof > 0:
        result.chi_square_test = chi_square_goodness_of_fit(cost, dof, options.alpha)

    if options.compute_covariances:
        _add_uncertainty(result, problem, estimates, solver_options, cost, dof)

    return result


def _residual_details(
    problem: _Problem,
    estimates: Dict[str, float],
    messages: List[str],
) -> List[ResidualInfo]:
    """Evaluate the model once more at the estimates for per-observation output."""
    try:
        predicted = problem.predict(estimates)
    except Exception as exc:
        logger.warning("Model evaluation at the estimates failed: %s", exc)
        messages.append(f"Residual details unavailable: {exc}")
        return []

    details = []
    for name, target, weight, pred in zip(problem.names, problem.targets, problem.weights, predicted):
        res = float(pred - target)
        details.append(ResidualInfo(
            name=name,
            target=float(target),
            predicted=float(pred),
            residual=res,
            weighted_residual=float(weight * res),
            weight=float(weight),
        ))
    return details


def _add_uncertainty(
    result: CalibrationResult,
    problem: _Problem,
    estimates: Dict[str, float],
    solver_options,
    cost: float,
    dof: int,
) -> None:
    """Fill covariance, standard errors, correlations and confidence intervals."""
    names = problem.mapping.names
    p = np.array([estimates[name] for name in names], dtype=float)

    try:
        if problem.model_jacobian is not None:
            J = problem.parameter_jacobian(estimates)
        else:
            scheme = solver_options.finite_difference
            step = solver_options.fd_step if scheme == FiniteDifference.FORWARD else None
            fd = make_finite_difference_jacobian(problem.residuals_in_parameters, scheme, step=step)
            J = fd(p)
        if not np.all(np.isfinite(J)):
            raise ObjectiveEvaluationError("Jacobian at the estimates is not finite", function="jacobian")
        covariance, _ = parameter_covariance(J, cost, dof)
    except Exception as exc:
        logger.warning("Parameter covariance not computed: %s: %s", type(exc).__name__, exc)
        result.messages.append(f"Parameter covariance not computed: {exc}")
        return

    se = standard_errors(covariance)
    intervals = confidence_intervals(p, se, result.confidence_level)

    result.covariance_matrix = covariance
    result.correlation_matrix = correlation_matrix(covariance)
    result.standard_errors = {name: float(s) for name, s in zip(names, se)}
    result.confidence_intervals = {
        name: (float(lo), float(hi)) for name, (lo, hi) in zip(names, intervals)
    }
