"""
Data models for model calibration.

This module provides the core data structures:
- Parameter: One model parameter with bounds, transform flag and distributions
- ParameterSet: Ordered container of parameters
- Observation: Calibration target with weight
- SolverOptions / CalibrationOptions: Configuration for the solver and driver
"""

from .parameter import Parameter
from .parameter_set import ParameterSet
from .observation import Observation, enabled_observations
from .distribution import (
    Distribution,
    Uniform,
    Normal,
    LogNormal,
    LogUniform,
    parse_distribution,
)
from .options import SolverOptions, CalibrationOptions, FiniteDifference

__all__ = [
    # Parameters
    "Parameter",
    "ParameterSet",

    # Observations
    "Observation",
    "enabled_observations",

    # Distributions
    "Distribution",
    "Uniform",
    "Normal",
    "LogNormal",
    "LogUniform",
    "parse_distribution",

    # Options
    "SolverOptions",
    "CalibrationOptions",
    "FiniteDifference",
]
