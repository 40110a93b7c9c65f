"""
Observation records for model calibration.

Conventions:
- ``target`` is the measured value the model is calibrated against
- Residuals are model minus observation, scaled by ``weight``
- A weight of 1/sigma turns the cost into a chi-square statistic
- Observation names are unique; a model returning a mapping is matched by name
"""

import math
from dataclasses import dataclass
from typing import Dict, Any, Iterable, List


@dataclass
class Observation:
    """
    A single calibration target.

    Attributes:
        name: Unique identifier for the observation
        target: Observed value
        weight: Residual weight (default 1.0); 0 keeps the observation
            in reports without letting it influence the fit
        enabled: If False, the observation is excluded from calibration
    """

    name: str
    target: float
    weight: float = 1.0
    enabled: bool = True

    def __post_init__(self):
        """Validate observation data after initialization."""
        if not self.name:
            raise ValueError("Observation name cannot be empty")
        self.target = float(self.target)
        self.weight = float(self.weight)
        if not math.isfinite(self.target):
            raise ValueError(f"Observation '{self.name}': target must be finite")
        if self.weight < 0 or not math.isfinite(self.weight):
            raise ValueError(f"Observation '{self.name}': weight must be finite and non-negative")

    @classmethod
    def from_sigma(cls, name: str, target: float, sigma: float) -> 'Observation':
        """
        Create an observation weighted by 1/sigma.

        Raises:
            ValueError: If sigma is not positive
        """
        if sigma <= 0:
            raise ValueError(f"Standard deviation must be positive, got {sigma}")
        return cls(name=name, target=target, weight=1.0 / sigma)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize observation to dictionary."""
        return {
            "name": self.name,
            "target": self.target,
            "weight": self.weight,
            "enabled": self.enabled,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Observation':
        """Create an Observation from a dictionary."""
        return cls(
            name=str(data["name"]),
            target=data["target"],
            weight=data.get("weight", 1.0),
            enabled=data.get("enabled", True),
        )


def enabled_observations(observations: Iterable[Observation]) -> List[Observation]:
    """
    Return the enabled observations, checking names are unique.

    Raises:
        ValueError: If two observations share a name
    """
    seen = set()
    result = []
    for obs in observations:
        if obs.name in seen:
            raise ValueError(f"Duplicate observation name '{obs.name}'")
        seen.add(obs.name)
        if obs.enabled:
            result.append(obs)
    return result
