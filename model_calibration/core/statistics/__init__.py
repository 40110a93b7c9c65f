"""Statistics utilities for model calibration.

This package contains small, dependency-light statistical helpers used after
a calibration run:
- Distribution functions (normal, chi-square)
- Global chi-square goodness-of-fit test
- Linearized parameter covariance, standard errors and correlations

No SciPy dependency is required.
"""

from .distributions import normal_ppf, chi2_cdf, chi2_ppf
from .tests import chi_square_goodness_of_fit
from .uncertainty import (
    variance_factor,
    parameter_covariance,
    standard_errors,
    correlation_matrix,
    confidence_intervals,
)

__all__ = [
    "normal_ppf",
    "chi2_cdf",
    "chi2_ppf",
    "chi_square_goodness_of_fit",
    "variance_factor",
    "parameter_covariance",
    "standard_errors",
    "correlation_matrix",
    "confidence_intervals",
]
