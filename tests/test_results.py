"""
Tests for solver and calibration result records.
"""

import json
import math

import numpy as np
import pytest

from model_calibration.core.errors import (
    ObjectiveEvaluationError,
    NonConvergence,
    DivergenceError,
)
from model_calibration.core.models import Parameter, ParameterSet
from model_calibration.core.results import (
    SolverResult,
    SolverStatus,
    IterationRecord,
    ChiSquareTestResult,
    ResidualInfo,
    CalibrationResult,
    MultiStartResult,
)


def _record(accepted=True, lam=1e-3):
    return IterationRecord(
        iteration=1, lambda_=lam, cost=4.0, trial_cost=1.0,
        step_norm=0.5, gradient_norm=2.0, accepted=accepted,
    )


class TestSolverResult:

    def test_arrays_are_read_only(self):
        x = np.array([1.0, 2.0])
        res = SolverResult(x=x, cost=0.0, status=SolverStatus.CONVERGED)

        x[0] = 99.0
        assert res.x[0] == 1.0
        with pytest.raises(ValueError):
            res.x[0] = 5.0

    @pytest.mark.parametrize(
        "status, success, converged",
        [
            (SolverStatus.CONVERGED, True, True),
            (SolverStatus.NON_CONVERGENCE, True, False),
            (SolverStatus.DIVERGENCE, False, False),
            (SolverStatus.OBJECTIVE_ERROR, False, False),
            (SolverStatus.LINEAR_ALGEBRA_ERROR, False, False),
        ],
    )
    def test_status_flags(self, status, success, converged):
        res = SolverResult(x=[0.0], cost=1.0, status=status)
        assert res.success is success
        assert res.converged is converged

    def test_trace_helpers(self):
        res = SolverResult(
            x=[0.0], cost=1.0, status=SolverStatus.CONVERGED, convergence_reason="step",
            trace=[_record(False, 1e-3), _record(True, 1e-2)],
        )

        assert res.accepted_steps == 1
        assert res.lambda_trace == [1e-3, 1e-2]
        assert res.x_converged is True
        assert res.g_converged is False
        assert res.minimum is res.x

    def test_raise_for_status(self):
        ok = SolverResult(x=[0.0], cost=0.0, status=SolverStatus.CONVERGED)
        assert ok.raise_for_status() is ok

        err = ObjectiveEvaluationError("boom", function="residual")
        with pytest.raises(ObjectiveEvaluationError, match="boom"):
            SolverResult(x=[0.0], cost=math.inf, status=SolverStatus.OBJECTIVE_ERROR, error=err).raise_for_status()
        with pytest.raises(DivergenceError):
            SolverResult(x=[0.0], cost=1.0, status=SolverStatus.DIVERGENCE, lambda_final=1e17).raise_for_status()
        with pytest.raises(NonConvergence, match="max_iterations"):
            SolverResult(
                x=[0.0], cost=1.0, status=SolverStatus.NON_CONVERGENCE, convergence_reason="max_iterations",
            ).raise_for_status()

    def test_to_json_replaces_non_finite_values(self):
        res = SolverResult(
            x=[1.0, 2.0], cost=math.inf, status=SolverStatus.OBJECTIVE_ERROR,
            cost_trace=[math.inf], trace=[_record()],
            error=ObjectiveEvaluationError("bad"),
        )
        data = json.loads(res.to_json())

        assert data["status"] == "objective_error"
        assert data["cost"] is None
        assert data["cost_trace"] == [None]
        assert data["error_type"] == "ObjectiveEvaluationError"
        assert data["trace"][0]["lambda"] == pytest.approx(1e-3)


class TestChiSquareTestResult:

    def test_roundtrip(self):
        test = ChiSquareTestResult(
            test_statistic=9.0, critical_lower=3.2, critical_upper=20.5,
            confidence_level=0.95, passed=True, p_value=0.53, degrees_of_freedom=10,
        )
        data = test.to_dict()

        assert data["test_name"] == "chi_square"
        assert ChiSquareTestResult.from_dict(data) == test


class TestCalibrationResult:

    def _result(self):
        return CalibrationResult(
            parameters={"a": 1.5, "b": -2.0, "c": 3.0},
            optimized=["a", "b"],
            cost=2.0,
            degrees_of_freedom=4,
            variance_factor=0.5,
            residual_details=[ResidualInfo("y1", 1.0, 1.1, 0.1, 0.2, 2.0)],
            standard_errors={"a": 0.1, "b": 0.2},
            confidence_intervals={"a": (1.3, 1.7), "b": (-2.4, -1.6)},
            covariance_matrix=np.array([[0.01, 0.0], [0.0, 0.04]]),
            parameter_set_name="demo",
        )

    def test_accessors(self):
        res = self._result()

        assert res.estimate("a") == 1.5
        with pytest.raises(KeyError):
            res.estimate("z")
        assert res.residuals == {"y1": pytest.approx(0.1)}
        assert res.a_posteriori_sigma0 == pytest.approx(math.sqrt(0.5))
        assert res.iterations == 0
        assert res.timestamp.endswith("Z")

    def test_apply_to_updates_only_optimized(self):
        pset = ParameterSet(parameters={
            "a": Parameter("a", init=0.0),
            "b": Parameter("b", init=0.0),
            "c": Parameter("c", init=9.0, type=None),
        })

        updated = self._result().apply_to(pset)

        assert updated.param_dict() == {"a": 1.5, "b": -2.0, "c": 9.0}
        assert pset.param_dict() == {"a": 0.0, "b": 0.0, "c": 9.0}

    def test_to_dict(self):
        data = json.loads(self._result().to_json())

        assert data["metadata"]["parameter_set_name"] == "demo"
        assert data["calibration"]["cost"] == 2.0
        params = {p["name"]: p for p in data["parameters"]}
        assert params["a"]["confidence_interval"] == [1.3, 1.7]
        assert params["c"]["optimized"] is False
        assert params["c"]["confidence_interval"] is None
        assert data["residuals"][0]["weight"] == 2.0
        assert data["covariance_matrix"] == [[0.01, 0.0], [0.0, 0.04]]
        assert data["correlation_matrix"] is None
        assert data["solver"] is None

    def test_failure(self):
        solver = SolverResult(
            x=[0.0], cost=math.inf, status=SolverStatus.OBJECTIVE_ERROR,
            error=ObjectiveEvaluationError("model crashed"),
        )
        res = CalibrationResult.failure("model crashed", solver)

        assert res.success is False
        assert res.status == SolverStatus.OBJECTIVE_ERROR
        assert "failed" in repr(res)
        with pytest.raises(ObjectiveEvaluationError):
            res.raise_for_status()

    def test_failure_without_solver(self):
        res = CalibrationResult.failure("bad input")

        assert res.status == SolverStatus.OBJECTIVE_ERROR
        assert math.isnan(res.cost)
        with pytest.raises(ValueError, match="bad input"):
            res.raise_for_status()


class TestMultiStartResult:

    def test_best_and_counts(self):
        good = CalibrationResult(success=True, cost=1.0, parameters={"a": 1.0})
        worse = CalibrationResult(success=True, cost=3.0, parameters={"a": 2.0})
        failed = CalibrationResult.failure("nope")
        multi = MultiStartResult(
            runs=[good, worse, failed],
            initial_values=[{"a": 0.0}, {"a": 5.0}, {"a": 9.0}],
        )

        assert multi.best is good
        assert multi.success_count == 2
        data = multi.to_dict()
        assert data["best_cost"] == 1.0
        assert data["runs"][2]["cost"] is None
        assert data["runs"][1]["initial_values"] == {"a": 5.0}

    def test_all_failed(self):
        multi = MultiStartResult(runs=[CalibrationResult.failure("x")], initial_values=[{}])

        assert multi.best is None
        assert multi.to_dict()["best_parameters"] is None
        assert "n/a" in repr(multi)
