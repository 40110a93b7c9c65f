"""model_calibration.core.calibration.multistart

Independent calibrations from several initial guesses.

The first run starts from the ``init`` values; the others start from values
drawn from each optimizable parameter's initial distribution (explicit
``init_dist``, otherwise uniform over ``init_min``/``init_max`` or the
bounds). Draws are clipped to just inside finitely bounded ranges, so no start
sits where the sine transform has a zero derivative. Runs share no state and
are executed concurrently with ``concurrent.futures``.
"""

from __future__ import annotations

import logging
import math
from concurrent.futures import ThreadPoolExecutor, ProcessPoolExecutor, as_completed
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np

from ..errors import ParameterError
from ..models.observation import Observation
from ..models.options import CalibrationOptions
from ..models.parameter_set import ParameterSet
from ..results.calibration_result import CalibrationResult, MultiStartResult
from .driver import calibrate, Model, ModelJacobian

logger = logging.getLogger(__name__)

# Fraction of the (log-)range kept clear at each finite bound
BOUND_MARGIN = 1e-6


def draw_initial_values(
    parameters: ParameterSet,
    n_starts: int,
    seed: Optional[int] = None,
) -> List[Dict[str, float]]:
    """Initial guesses for ``n_starts`` runs (the first is the ``init`` values).

    Raises:
        ParameterError: if a parameter has neither an initial distribution
            nor finite bounds and more than one start is requested
    """
    keys = parameters.opt_keys()
    starts = [parameters.param_dict(keys)]
    if n_starts == 1:
        return starts

    rng = np.random.default_rng(seed)
    dists = parameters.distributions(init_dist=True)
    samples = {key: np.atleast_1d(dists[key].sample(rng, size=n_starts - 1)) for key in keys}

    limits = {key: _interior_bounds(parameters.get(key)) for key in keys}

    for i in range(n_starts - 1):
        start = {}
        for key in keys:
            p = parameters.get(key)
            value = float(np.clip(samples[key][i], *limits[key]))
            if p.log and value <= 0:
                logger.warning("Draw %g for log parameter '%s' is not positive; using init", value, key)
                value = p.init
            start[key] = value
        starts.append(start)
    return starts


def calibrate_multistart(
    parameters: ParameterSet,
    observations: Sequence[Observation],
    model: Model,
    n_starts: int,
    options: CalibrationOptions | None = None,
    seed: Optional[int] = None,
    max_workers: Optional[int] = None,
    use_processes: bool = False,
    model_jacobian: Optional[ModelJacobian] = None,
) -> MultiStartResult:
    """Run ``n_starts`` independent calibrations.

    Args:
        parameters: Parameter set (not modified)
        observations: Calibration targets
        model: params dict -> predictions
        n_starts: Number of runs (>= 1)
        options: Calibration options shared by all runs
        seed: Seed for the initial-value draws
        max_workers: Executor size (executor default if None)
        use_processes: Use a process pool; ``model`` and ``model_jacobian``
            must then be picklable
        model_jacobian: Optional analytic model Jacobian

    Returns:
        MultiStartResult with runs sorted by cost (failed runs last)
    """
    if n_starts < 1:
        raise ValueError("n_starts must be at least 1")

    errors = parameters.validate()
    if errors:
        raise ParameterError("; ".join(errors))

    options = options or CalibrationOptions.default()
    starts = draw_initial_values(parameters, n_starts, seed)
    results: List[Optional[CalibrationResult]] = [None] * n_starts

    executor_cls = ProcessPoolExecutor if use_processes else ThreadPoolExecutor
    logger.info(
        "Multi-start calibration of '%s': %d runs (%s)",
        parameters.name, n_starts, "processes" if use_processes else "threads",
    )

    with executor_cls(max_workers=max_workers) as executor:
        future_to_run = {
            executor.submit(calibrate, parameters, observations, model, options, model_jacobian, start): i
            for i, start in enumerate(starts)
        }
        for future in as_completed(future_to_run):
            i = future_to_run[future]
            try:
                results[i] = future.result()
            except ValueError as exc:
                logger.error("Run %d could not start: %s", i, exc)
                results[i] = CalibrationResult.failure(str(exc))
            logger.debug("Run %d finished: %r", i, results[i])

    order = sorted(range(n_starts), key=lambda i: _sort_key(results[i]))
    multi = MultiStartResult(
        runs=[results[i] for i in order],
        initial_values=[starts[i] for i in order],
    )
    logger.info("Multi-start finished: %d/%d successful runs", multi.success_count, n_starts)
    return multi


def _sort_key(result: CalibrationResult):
    cost = result.cost if math.isfinite(result.cost) else math.inf
    return (not result.success, cost)


def _interior_bounds(parameter) -> Tuple[float, float]:
    """Clip range for draws: the bounds moved inward by ``BOUND_MARGIN`` of the range."""
    lo, hi = parameter.min, parameter.max
    if not (math.isfinite(lo) and math.isfinite(hi)) or hi <= lo:
        return lo, hi
    if parameter.log and lo > 0:
        a, b = math.log10(lo), math.log10(hi)
        margin = BOUND_MARGIN * (b - a)
        return 10.0 ** (a + margin), 10.0 ** (b - margin)
    margin = BOUND_MARGIN * (hi - lo)
    return lo + margin, hi - margin
