"""model_calibration.core.statistics.tests

Goodness-of-fit test for a calibrated model.

When residuals are weighted by 1/sigma, the final cost of a correct model
follows a chi-square distribution with m - n degrees of freedom. The
two-sided test checks whether the cost is consistent with that.
"""

from __future__ import annotations

from ..results.calibration_result import ChiSquareTestResult
from .distributions import chi2_cdf, chi2_interval


def chi_square_goodness_of_fit(
    cost: float,
    dof: int,
    alpha: float = 0.05,
) -> ChiSquareTestResult:
    """Run the global chi-square test on the final cost.

    Decision (two-sided):
        chi2_{alpha/2, dof} <= cost <= chi2_{1-alpha/2, dof}

    Args:
        cost: weighted sum of squared residuals at the optimum
        dof: degrees of freedom (observations minus adjusted parameters)
        alpha: significance level

    Returns:
        ChiSquareTestResult with p-value and pass/fail
    """
    if dof <= 0:
        raise ValueError("dof must be positive")

    lower, upper = chi2_interval(dof, alpha)
    cdf = chi2_cdf(cost, dof)

    return ChiSquareTestResult(
        test_statistic=float(cost),
        critical_lower=lower,
        critical_upper=upper,
        confidence_level=1.0 - alpha,
        passed=bool(lower <= cost <= upper),
        p_value=float(2.0 * min(cdf, 1.0 - cdf)),
        degrees_of_freedom=int(dof),
    )
