"""
Probability distributions attached to model parameters.

Parameters carry a prior distribution (``dist``) and optionally a separate
distribution used to draw initial guesses (``init_dist``). Distributions are
plain records with a textual form such as ``"Normal(1.0,0.5)"`` so they
survive ``to_dict``/``from_dict`` round trips.
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass
from typing import Union

import numpy as np


@dataclass(frozen=True)
class Uniform:
    """Uniform distribution on [low, high]."""

    low: float
    high: float

    def __post_init__(self):
        if not (math.isfinite(self.low) and math.isfinite(self.high)):
            raise ValueError("Uniform bounds must be finite")
        if self.low > self.high:
            raise ValueError("Uniform requires low <= high")

    def sample(self, rng: np.random.Generator, size=None):
        return rng.uniform(self.low, self.high, size=size)

    def to_string(self) -> str:
        return f"Uniform({self.low!r},{self.high!r})"


@dataclass(frozen=True)
class Normal:
    """Normal distribution with mean and standard deviation."""

    mean: float
    std: float

    def __post_init__(self):
        if self.std < 0:
            raise ValueError("Normal standard deviation cannot be negative")

    def sample(self, rng: np.random.Generator, size=None):
        return rng.normal(self.mean, self.std, size=size)

    def to_string(self) -> str:
        return f"Normal({self.mean!r},{self.std!r})"


@dataclass(frozen=True)
class LogNormal:
    """Log-normal distribution; ``mu`` and ``sigma`` refer to the underlying normal."""

    mu: float
    sigma: float

    def __post_init__(self):
        if self.sigma < 0:
            raise ValueError("LogNormal sigma cannot be negative")

    def sample(self, rng: np.random.Generator, size=None):
        return rng.lognormal(self.mu, self.sigma, size=size)

    def to_string(self) -> str:
        return f"LogNormal({self.mu!r},{self.sigma!r})"


@dataclass(frozen=True)
class LogUniform:
    """Distribution whose base-10 logarithm is uniform on [log10(low), log10(high)]."""

    low: float
    high: float

    def __post_init__(self):
        if not (math.isfinite(self.low) and math.isfinite(self.high)):
            raise ValueError("LogUniform bounds must be finite")
        if self.low <= 0 or self.high <= 0:
            raise ValueError("LogUniform bounds must be positive")
        if self.low > self.high:
            raise ValueError("LogUniform requires low <= high")

    def sample(self, rng: np.random.Generator, size=None):
        return 10.0 ** rng.uniform(math.log10(self.low), math.log10(self.high), size=size)

    def to_string(self) -> str:
        return f"LogUniform({self.low!r},{self.high!r})"


Distribution = Union[Uniform, Normal, LogNormal, LogUniform]

_DISTRIBUTIONS = {
    "uniform": Uniform,
    "normal": Normal,
    "lognormal": LogNormal,
    "loguniform": LogUniform,
}

_DIST_RE = re.compile(r"^\s*([A-Za-z]+)\s*\(\s*([^,()]+)\s*,\s*([^,()]+)\s*\)\s*$")


def parse_distribution(text: Union[str, Distribution]) -> Distribution:
    """Parse the textual form of a distribution.

    Accepts ``"Uniform(0,1)"``, ``"Normal(mean,std)"``, ``"LogNormal(mu,sigma)"``
    and ``"LogUniform(low,high)"`` (case-insensitive names). Distribution
    objects are returned unchanged.

    Raises:
        ValueError: if the text is not a supported two-argument distribution
    """
    if isinstance(text, (Uniform, Normal, LogNormal, LogUniform)):
        return text
    match = _DIST_RE.match(str(text))
    if match is None:
        raise ValueError(f"Cannot parse distribution: {text!r}")
    name, a, b = match.groups()
    cls = _DISTRIBUTIONS.get(name.lower())
    if cls is None:
        raise ValueError(f"Unsupported distribution: {name}")
    return cls(float(a), float(b))
