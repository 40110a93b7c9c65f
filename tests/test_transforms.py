import math

import numpy as np
import pytest

from model_calibration.core.errors import ParameterError
from model_calibration.core.models import Parameter, ParameterSet
from model_calibration.core.calibration import ParameterTransform, build_parameter_mapping


def _pset():
    return ParameterSet(
        name="mixed",
        parameters={
            "free": Parameter("free", init=-3.0),
            "box": Parameter("box", init=2.0, min=0.0, max=5.0),
            "rate": Parameter("rate", init=0.01, min=1e-4, max=1.0, log=True),
            "scale": Parameter("scale", init=50.0, min=1.0, log=True),
            "fixed": Parameter("fixed", init=7.0, type=None),
        },
    )


def test_mapping_layout():
    mapping = build_parameter_mapping(_pset())

    assert mapping.names == ["free", "box", "rate", "scale"]
    assert mapping.num_params == 4
    assert mapping.fixed == {"fixed": 7.0}

    by_name = dict(zip(mapping.names, mapping.transforms))
    assert by_name["free"] == ParameterTransform("free")
    assert by_name["box"].sine and not by_name["box"].log
    assert by_name["rate"].log and by_name["rate"].sine
    assert by_name["rate"].lower == pytest.approx(-4.0)
    assert by_name["rate"].upper == pytest.approx(0.0)
    # one-sided bound: log only
    assert by_name["scale"].log and not by_name["scale"].sine


def test_transforms_can_be_switched_off():
    mapping = build_parameter_mapping(_pset(), log_transform=False, sine_transform=False)
    assert not any(tr.log or tr.sine for tr in mapping.transforms)


def test_solver_roundtrip():
    pset = _pset()
    mapping = build_parameter_mapping(pset)
    values = pset.param_dict(mapping.names)

    t = mapping.to_solver(values)
    back = mapping.from_solver(t)

    assert t[0] == -3.0
    assert t[3] == pytest.approx(math.log10(50.0))
    for name, value in values.items():
        assert back[name] == pytest.approx(value)
    assert back["fixed"] == 7.0


def test_sine_transform_stays_in_bounds():
    tr = ParameterTransform("box", lower=0.0, upper=5.0, sine=True)
    for t in np.linspace(-20.0, 20.0, 101):
        assert 0.0 <= tr.from_solver(t) <= 5.0
    assert tr.to_solver(0.0) == pytest.approx(-math.pi / 2)
    assert tr.to_solver(5.0) == pytest.approx(math.pi / 2)


@pytest.mark.parametrize(
    "transform",
    [
        ParameterTransform("a"),
        ParameterTransform("b", lower=-1.0, upper=3.0, sine=True),
        ParameterTransform("c", log=True),
        ParameterTransform("d", log=True, lower=-2.0, upper=1.0, sine=True),
    ],
)
def test_derivative_matches_difference_quotient(transform):
    for t in (-0.7, 0.1, 0.9):
        h = 1e-6
        numeric = (transform.from_solver(t + h) - transform.from_solver(t - h)) / (2 * h)
        assert transform.derivative(t) == pytest.approx(numeric, rel=1e-6)


def test_value_outside_bounds_rejected():
    tr = ParameterTransform("box", lower=0.0, upper=5.0, sine=True)
    with pytest.raises(ParameterError, match="outside"):
        tr.to_solver(6.0)


def test_no_optimizable_parameters():
    pset = _pset()
    pset.set_all_off()
    with pytest.raises(ParameterError, match="no optimizable"):
        build_parameter_mapping(pset)
