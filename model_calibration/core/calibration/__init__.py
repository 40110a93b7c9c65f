"""Model calibration: parameter transforms, single and multi-start runs."""

from .transforms import ParameterTransform, ParameterMapping, build_parameter_mapping
from .driver import calibrate
from .multistart import calibrate_multistart, draw_initial_values

__all__ = [
    "ParameterTransform",
    "ParameterMapping",
    "build_parameter_mapping",
    "calibrate",
    "calibrate_multistart",
    "draw_initial_values",
]
