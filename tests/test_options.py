"""
Tests for solver/calibration options and observations.
"""

import math

import pytest

from model_calibration.core.models import (
    SolverOptions,
    CalibrationOptions,
    FiniteDifference,
    Observation,
    enabled_observations,
)


class TestSolverOptions:

    def test_defaults(self):
        opts = SolverOptions.default()

        assert opts.max_iterations == 100
        assert opts.tol_x == 1e-6
        assert opts.tol_g == 1e-8
        assert opts.tol_cost is None
        assert opts.lambda_init == 1e-3
        assert opts.lambda_increase_factor == 10.0
        assert opts.lambda_decrease_factor == 0.1
        assert opts.lambda_max == 1e16
        assert opts.lambda_min == 1e-16
        assert opts.min_diagonal == 1e-6
        assert opts.max_diagonal == 1e32
        assert opts.np_lambda == 1
        assert opts.finite_difference is None
        assert opts.show_trace is False

    def test_high_precision_preset(self):
        opts = SolverOptions.high_precision()
        assert opts.max_iterations == 500
        assert opts.tol_x == 1e-8
        assert opts.tol_g == 1e-12

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"max_iterations": 0},
            {"tol_x": -1.0},
            {"tol_cost": -1.0},
            {"lambda_init": -1e-3},
            {"lambda_increase_factor": 1.0},
            {"lambda_decrease_factor": 1.5},
            {"lambda_max": 1e-6},
            {"np_lambda": 0},
            {"min_diagonal": 0.0},
            {"min_diagonal": 10.0, "max_diagonal": 1.0},
            {"max_evaluations": 0},
            {"max_time": 0.0},
            {"fd_step": 0.0},
            {"finite_difference": "backward"},
        ],
    )
    def test_invalid_values_rejected(self, kwargs):
        with pytest.raises(ValueError):
            SolverOptions(**kwargs)

    def test_scheme_parsing(self):
        assert SolverOptions(finite_difference="CENTRAL").finite_difference == FiniteDifference.CENTRAL
        assert SolverOptions(finite_difference="none").finite_difference is None

    def test_dict_roundtrip(self):
        opts = SolverOptions(np_lambda=4, tol_x=1e-8, finite_difference="forward", max_time=2.5)
        data = opts.to_dict()

        assert data["finite_difference"] == "forward"
        assert SolverOptions.from_dict(data) == opts

    def test_from_dict_fills_defaults(self):
        opts = SolverOptions.from_dict({"max_iterations": 7, "unrelated": True})
        assert opts.max_iterations == 7
        assert opts.tol_g == SolverOptions().tol_g


class TestCalibrationOptions:

    def test_defaults(self):
        opts = CalibrationOptions.default()

        assert opts.finite_difference == FiniteDifference.FORWARD
        assert opts.log_transform is True
        assert opts.sine_transform is True
        assert opts.compute_covariances is True
        assert opts.alpha == pytest.approx(0.05)
        assert isinstance(opts.solver, SolverOptions)

    def test_solver_given_as_dict(self):
        opts = CalibrationOptions(solver={"max_iterations": 12})
        assert opts.solver.max_iterations == 12

    def test_invalid_confidence_level(self):
        with pytest.raises(ValueError):
            CalibrationOptions(confidence_level=1.0)

    def test_dict_roundtrip(self):
        opts = CalibrationOptions(finite_difference="central", sine_transform=False, confidence_level=0.9)
        assert CalibrationOptions.from_dict(opts.to_dict()) == opts


class TestObservation:

    def test_from_sigma(self):
        obs = Observation.from_sigma("y1", 2.0, 0.5)
        assert obs.weight == pytest.approx(2.0)
        assert obs.enabled is True

    def test_invalid_sigma(self):
        with pytest.raises(ValueError):
            Observation.from_sigma("y1", 2.0, 0.0)

    @pytest.mark.parametrize("kwargs", [{"target": math.nan}, {"weight": -1.0}, {"name": ""}])
    def test_validation(self, kwargs):
        data = {"name": "y", "target": 1.0}
        data.update(kwargs)
        with pytest.raises(ValueError):
            Observation(**data)

    def test_dict_roundtrip(self):
        obs = Observation("y", 1.5, weight=4.0, enabled=False)
        assert Observation.from_dict(obs.to_dict()) == obs

    def test_enabled_observations(self):
        obs = [Observation("a", 1.0), Observation("b", 2.0, enabled=False), Observation("c", 3.0)]
        assert [o.name for o in enabled_observations(obs)] == ["a", "c"]

    def test_duplicate_names_rejected(self):
        with pytest.raises(ValueError, match="Duplicate"):
            enabled_observations([Observation("a", 1.0), Observation("a", 2.0, enabled=False)])
