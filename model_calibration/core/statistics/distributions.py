"""model_calibration.core.statistics.distributions

Distribution helpers (no SciPy).

Implemented:
- Standard normal quantile via stdlib ``statistics.NormalDist``
- Chi-square CDF through the regularized lower incomplete gamma function
  (series below a + 1, Lentz continued fraction above)
- Chi-square quantile by bracketed Newton iteration started from the
  Wilson-Hilferty approximation

If X ~ ChiSquare(k) then P(X <= x) = P(k/2, x/2), the regularized lower
incomplete gamma function.
"""

from __future__ import annotations

import math
from statistics import NormalDist
from typing import Tuple

_STANDARD_NORMAL = NormalDist()

_EPS = 1e-14
_MAX_TERMS = 2000
_TINY = 1e-300


def normal_ppf(p: float) -> float:
    """Standard normal quantile.

    Args:
        p: probability in (0, 1)

    Returns:
        z with P(Z <= z) = p
    """
    if not (0.0 < p < 1.0):
        raise ValueError("p must be in (0,1)")
    return float(_STANDARD_NORMAL.inv_cdf(p))


def _log_prefactor(a: float, x: float) -> float:
    """log(x^a e^-x / Gamma(a))."""
    return a * math.log(x) - x - math.lgamma(a)


def _lower_gamma_series(a: float, x: float) -> float:
    """P(a, x) by its power series; converges quickly for x < a + 1."""
    term = 1.0 / a
    total = term
    denom = a
    for _ in range(_MAX_TERMS):
        denom += 1.0
        term *= x / denom
        total += term
        if abs(term) < abs(total) * _EPS:
            break
    return total * math.exp(_log_prefactor(a, x))


def _upper_gamma_fraction(a: float, x: float) -> float:
    """Q(a, x) = 1 - P(a, x) by continued fraction (modified Lentz)."""
    b = x + 1.0 - a
    c = 1.0 / _TINY
    d = 1.0 / b if abs(b) > _TINY else 1.0 / _TINY
    h = d
    for i in range(1, _MAX_TERMS + 1):
        an = -i * (i - a)
        b += 2.0
        d = an * d + b
        d = _TINY if abs(d) < _TINY else d
        c = b + an / c
        c = _TINY if abs(c) < _TINY else c
        d = 1.0 / d
        delta = c * d
        h *= delta
        if abs(delta - 1.0) < _EPS:
            break
    return h * math.exp(_log_prefactor(a, x))


def regularized_lower_gamma(a: float, x: float) -> float:
    """Regularized lower incomplete gamma P(a, x), clipped to [0, 1]."""
    if a <= 0.0:
        raise ValueError("a must be positive")
    if x <= 0.0:
        return 0.0
    if x < a + 1.0:
        p = _lower_gamma_series(a, x)
    else:
        p = 1.0 - _upper_gamma_fraction(a, x)
    return min(1.0, max(0.0, p))


def chi2_cdf(x: float, df: int) -> float:
    """CDF of the chi-square distribution with ``df`` degrees of freedom."""
    if df <= 0:
        raise ValueError("df must be positive")
    if x <= 0.0:
        return 0.0
    return regularized_lower_gamma(0.5 * df, 0.5 * x)


def chi2_pdf(x: float, df: int) -> float:
    """Density of the chi-square distribution."""
    if x <= 0.0:
        return 0.0
    k = 0.5 * df
    return math.exp((k - 1.0) * math.log(x) - 0.5 * x - k * math.log(2.0) - math.lgamma(k))


def chi2_ppf(p: float, df: int) -> float:
    """Quantile of the chi-square distribution.

    Args:
        p: probability in (0, 1)
        df: degrees of freedom (> 0)

    Returns:
        x with chi2_cdf(x, df) = p
    """
    if df <= 0:
        raise ValueError("df must be positive")
    if not (0.0 < p < 1.0):
        raise ValueError("p must be in (0,1)")

    k = float(df)
    z = normal_ppf(p)
    wh = 1.0 - 2.0 / (9.0 * k) + z * math.sqrt(2.0 / (9.0 * k))
    x = max(k * wh ** 3, 1e-8) if wh > 0 else 1e-8

    lo, hi = 0.0, max(x, 1.0)
    while chi2_cdf(hi, df) < p:
        lo = hi
        hi *= 2.0
    x = min(max(x, lo), hi)

    for _ in range(200):
        f = chi2_cdf(x, df) - p
        if f < 0.0:
            lo = x
        else:
            hi = x
        dens = chi2_pdf(x, df)
        x_new = x - f / dens if dens > 0.0 else math.nan
        if not (lo < x_new < hi):
            x_new = 0.5 * (lo + hi)
        if abs(x_new - x) <= 1e-12 * max(1.0, x):
            return float(x_new)
        x = x_new
    return float(x)


def chi2_interval(df: int, alpha: float) -> Tuple[float, float]:
    """Two-sided interval holding probability 1 - alpha."""
    if not (0.0 < alpha < 1.0):
        raise ValueError("alpha must be in (0,1)")
    return chi2_ppf(alpha / 2.0, df), chi2_ppf(1.0 - alpha / 2.0, df)
