import json
import math

import numpy as np
import pytest

from model_calibration.core.errors import ObjectiveEvaluationError, ParameterError
from model_calibration.core.models import (
    Parameter,
    ParameterSet,
    Observation,
    CalibrationOptions,
    SolverOptions,
)
from model_calibration.core.results import SolverStatus
from model_calibration.core.calibration import calibrate


T_LINE = np.arange(8.0)
NOISE = np.array([0.05, -0.08, 0.02, 0.07, -0.04, -0.03, 0.06, -0.05])

T_DECAY = np.linspace(0.0, 10.0, 21)
A_TRUE, K_TRUE = 2.5, 0.3


def line_model(params):
    return params["a"] + params["b"] * T_LINE


def line_jacobian(params):
    return np.column_stack([np.ones_like(T_LINE), T_LINE])


def _line_problem():
    pset = ParameterSet.from_dict({
        "name": "line",
        "Parameters": {"a": {"init": 0.0}, "b": {"init": 0.0}},
    })
    y = 1.0 + 2.0 * T_LINE + NOISE
    observations = [Observation(f"y{i}", float(v)) for i, v in enumerate(y)]
    return pset, observations, y


def decay_model(params):
    return {
        f"y{i}": params["A"] * math.exp(-params["k"] * t) + params["c"]
        for i, t in enumerate(T_DECAY)
    }


def _decay_problem():
    pset = ParameterSet.from_dict({
        "name": "decay",
        "Parameters": {
            "A": {"init": 1.0, "min": 0.1, "max": 10.0},
            "k": {"init": 1.0, "min": 1e-3, "max": 10.0, "log": True},
            "c": {"init": 0.5, "type": None},
        },
    })
    observations = [
        Observation(f"y{i}", A_TRUE * math.exp(-K_TRUE * t) + 0.5)
        for i, t in enumerate(T_DECAY)
    ]
    return pset, observations


class TestLinearModel:

    def _lstsq(self, y):
        J = line_jacobian(None)
        coef, *_ = np.linalg.lstsq(J, y, rcond=None)
        return J, coef

    @pytest.mark.parametrize("use_jacobian", [True, False])
    def test_recovers_least_squares_solution(self, use_jacobian):
        pset, observations, y = _line_problem()
        result = calibrate(
            pset, observations, line_model,
            model_jacobian=line_jacobian if use_jacobian else None,
        )

        J, coef = self._lstsq(y)
        assert result.success
        assert result.converged
        assert result.optimized == ["a", "b"]
        assert result.parameters["a"] == pytest.approx(coef[0], abs=1e-6)
        assert result.parameters["b"] == pytest.approx(coef[1], abs=1e-6)

    def test_statistics(self):
        pset, observations, y = _line_problem()
        result = calibrate(pset, observations, line_model, model_jacobian=line_jacobian)

        J, coef = self._lstsq(y)
        residuals = J @ coef - y
        cost = float(residuals @ residuals)
        dof = len(y) - 2

        assert result.degrees_of_freedom == dof
        assert result.cost == pytest.approx(cost, rel=1e-6)
        assert result.variance_factor == pytest.approx(cost / dof, rel=1e-6)
        assert result.chi_square_test is not None
        assert result.chi_square_test.degrees_of_freedom == dof

        expected_cov = cost / dof * np.linalg.inv(J.T @ J)
        assert result.covariance_matrix == pytest.approx(expected_cov, rel=1e-5)
        assert result.standard_errors["b"] == pytest.approx(math.sqrt(expected_cov[1, 1]), rel=1e-5)
        assert result.correlation_matrix[0, 0] == pytest.approx(1.0)
        lo, hi = result.confidence_intervals["a"]
        assert lo < result.parameters["a"] < hi

    def test_residual_details(self):
        pset, observations, y = _line_problem()
        result = calibrate(pset, observations, line_model, model_jacobian=line_jacobian)

        assert [r.name for r in result.residual_details] == [o.name for o in observations]
        first = result.residual_details[0]
        assert first.target == pytest.approx(y[0])
        assert first.residual == pytest.approx(first.predicted - first.target)
        assert first.weighted_residual == pytest.approx(first.residual)
        assert result.residuals["y0"] == pytest.approx(first.residual)

    def test_weights_scale_residuals(self):
        pset, observations, y = _line_problem()
        weighted = [Observation.from_sigma(o.name, o.target, 0.1) for o in observations]

        plain = calibrate(pset, observations, line_model, model_jacobian=line_jacobian)
        result = calibrate(pset, weighted, line_model, model_jacobian=line_jacobian)

        # Uniform weights change the cost but not the estimates
        assert result.parameters["a"] == pytest.approx(plain.parameters["a"], abs=1e-6)
        assert result.cost == pytest.approx(100.0 * plain.cost, rel=1e-5)
        assert result.residual_details[0].weighted_residual == pytest.approx(
            10.0 * result.residual_details[0].residual
        )

    def test_disabled_observations_are_ignored(self):
        pset, observations, y = _line_problem()
        observations[3] = Observation("y3", 1e6, enabled=False)

        def model(params):
            return {f"y{i}": params["a"] + params["b"] * t for i, t in enumerate(T_LINE)}

        result = calibrate(pset, observations, model)

        assert result.success
        assert len(result.residual_details) == len(observations) - 1
        assert result.degrees_of_freedom == len(observations) - 3
        assert result.parameters["b"] == pytest.approx(2.0, abs=0.1)

    def test_no_redundancy(self):
        pset = ParameterSet(parameters={"a": Parameter("a", init=0.0)})
        result = calibrate(pset, [Observation("y", 3.0)], lambda p: [p["a"]])

        assert result.success
        assert result.degrees_of_freedom == 0
        assert result.chi_square_test is None
        assert result.variance_factor == 1.0
        assert any("No redundancy" in m for m in result.messages)
        assert result.parameters["a"] == pytest.approx(3.0, abs=1e-6)

    def test_covariances_can_be_skipped(self):
        pset, observations, _ = _line_problem()
        opts = CalibrationOptions(compute_covariances=False)
        result = calibrate(pset, observations, line_model, opts, model_jacobian=line_jacobian)

        assert result.covariance_matrix is None
        assert result.standard_errors == {}


class TestNonlinearModel:

    def test_bounded_log_parameters(self):
        pset, observations = _decay_problem()
        result = calibrate(pset, observations, decay_model)

        assert result.success
        assert result.parameters["A"] == pytest.approx(A_TRUE, abs=1e-4)
        assert result.parameters["k"] == pytest.approx(K_TRUE, abs=1e-4)
        assert result.cost == pytest.approx(0.0, abs=1e-8)

    def test_fixed_parameter_untouched(self):
        pset, observations = _decay_problem()
        result = calibrate(pset, observations, decay_model)

        assert result.parameters["c"] == 0.5
        assert "c" not in result.optimized
        assert "c" not in result.standard_errors

    def test_estimates_stay_inside_bounds(self):
        pset, observations = _decay_problem()
        seen = []

        def model(params):
            seen.append((params["A"], params["k"]))
            return decay_model(params)

        calibrate(pset, observations, model)

        assert all(0.1 <= a <= 10.0 and 1e-3 <= k <= 10.0 for a, k in seen)

    @pytest.mark.parametrize("log_transform, sine_transform", [(False, True), (True, False), (False, False)])
    def test_transforms_can_be_disabled(self, log_transform, sine_transform):
        pset, observations = _decay_problem()
        opts = CalibrationOptions(log_transform=log_transform, sine_transform=sine_transform)
        result = calibrate(pset, observations, decay_model, opts)

        assert result.success
        assert result.parameters["k"] == pytest.approx(K_TRUE, abs=1e-3)

    def test_analytic_model_jacobian_is_chained_through_transforms(self):
        pset, observations = _decay_problem()

        def jacobian(params):
            e = np.exp(-params["k"] * T_DECAY)
            return np.column_stack([e, -params["A"] * T_DECAY * e])

        result = calibrate(pset, observations, decay_model, model_jacobian=jacobian)

        assert result.converged
        assert result.parameters["A"] == pytest.approx(A_TRUE, abs=1e-5)
        assert result.parameters["k"] == pytest.approx(K_TRUE, abs=1e-5)

    def test_central_differences(self):
        pset, observations = _decay_problem()
        opts = CalibrationOptions(finite_difference="central")
        result = calibrate(pset, observations, decay_model, opts)

        assert result.parameters["k"] == pytest.approx(K_TRUE, abs=1e-4)

    def test_initial_values_override(self):
        pset, observations = _decay_problem()
        result = calibrate(pset, observations, decay_model, initial_values={"A": 5.0, "k": 0.05})

        assert result.parameters["k"] == pytest.approx(K_TRUE, abs=1e-3)


class TestCalibrationInputs:

    def test_parameter_set_not_mutated(self):
        pset, observations = _decay_problem()
        before = pset.to_dict()
        result = calibrate(pset, observations, decay_model)

        assert pset.to_dict() == before

        updated = result.apply_to(pset)
        assert updated.get("A").init == pytest.approx(result.parameters["A"])
        assert updated.get("c").init == 0.5
        assert pset.get("A").init == 1.0

    def test_jacobian_required_without_finite_differences(self):
        pset, observations = _decay_problem()
        opts = CalibrationOptions(finite_difference=None)
        with pytest.raises(ValueError, match="model_jacobian"):
            calibrate(pset, observations, decay_model, opts)

    def test_invalid_parameter_set(self):
        pset, observations = _decay_problem()
        pset.parameters["A"] = Parameter("A", init=50.0, min=0.1, max=10.0)
        with pytest.raises(ParameterError, match="outside"):
            calibrate(pset, observations, decay_model)

    def test_no_optimizable_parameters(self):
        pset, observations = _decay_problem()
        pset.set_all_off()
        with pytest.raises(ParameterError):
            calibrate(pset, observations, decay_model)

    def test_no_enabled_observations(self):
        pset, observations = _decay_problem()
        disabled = [Observation(o.name, o.target, enabled=False) for o in observations]
        with pytest.raises(ValueError, match="No enabled observations"):
            calibrate(pset, disabled, decay_model)

    def test_initial_values_for_fixed_parameter(self):
        pset, observations = _decay_problem()
        with pytest.raises(ParameterError):
            calibrate(pset, observations, decay_model, initial_values={"c": 1.0})


class TestCalibrationFailures:

    def test_model_missing_observation(self):
        pset, observations = _decay_problem()

        def model(params):
            out = decay_model(params)
            out.pop("y3")
            return out

        result = calibrate(pset, observations, model)

        assert result.success is False
        assert result.status == SolverStatus.OBJECTIVE_ERROR
        assert "y3" in result.error_message
        assert result.parameters["A"] == pytest.approx(1.0)
        with pytest.raises(ObjectiveEvaluationError):
            result.raise_for_status()

    def test_model_raising_during_iterations(self):
        pset, observations = _decay_problem()
        calls = {"n": 0}

        def model(params):
            calls["n"] += 1
            if calls["n"] > 5:
                raise RuntimeError("solver blew up")
            return decay_model(params)

        result = calibrate(pset, observations, model)

        assert result.success is False
        assert "solver blew up" in result.error_message
        assert result.solver_result.cost_trace

    def test_wrong_number_of_predictions(self):
        pset, observations = _decay_problem()
        result = calibrate(pset, observations, lambda p: [1.0, 2.0])

        assert result.status == SolverStatus.OBJECTIVE_ERROR

    def test_non_convergence_still_reports_estimates(self):
        pset, observations = _decay_problem()
        opts = CalibrationOptions(solver=SolverOptions(max_iterations=1))
        result = calibrate(pset, observations, decay_model, opts)

        assert result.success is True
        assert result.converged is False
        assert result.status == SolverStatus.NON_CONVERGENCE
        assert result.covariance_matrix is not None


def test_result_serializes_to_json():
    pset, observations = _decay_problem()
    result = calibrate(pset, observations, decay_model)

    data = json.loads(result.to_json())

    assert data["calibration"]["success"] is True
    assert data["metadata"]["parameter_set_name"] == "decay"
    names = [p["name"] for p in data["parameters"]]
    assert names == ["A", "k", "c"]
    fixed = data["parameters"][2]
    assert fixed["optimized"] is False
    assert fixed["std_error"] is None
    assert len(data["residuals"]) == len(observations)
    assert data["solver"]["status"] == result.status.value
