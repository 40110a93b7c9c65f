"""
Parameter record for model calibration.

Conventions:
- Every parameter has a name unique within its ParameterSet
- Absent fields take documented defaults (unbounded, not log-transformed,
  optimizable) instead of being looked up with fallbacks at each use
- ``type`` is ``"opt"`` for adjustable parameters and ``None`` for fixed ones
"""

import math
from dataclasses import dataclass, field, fields
from typing import Optional, Dict, Any

from ..errors import ParameterError
from .distribution import Distribution, parse_distribution


DEFAULT_STEP = math.sqrt(float.fromhex("0x1p-23"))  # sqrt(float32 eps)

OPT = "opt"


@dataclass
class Parameter:
    """
    Represents a single model parameter.

    A parameter can be:
    - Optimizable (``type == "opt"``), adjusted by the calibration
    - Fixed (``type is None``), held at its initial value

    Attributes:
        name: Unique identifier for the parameter
        init: Initial value (approximate for optimizable parameters)
        min: Lower bound, -inf if unbounded
        max: Upper bound, +inf if unbounded
        init_min: Lower bound for drawing initial values
        init_max: Upper bound for drawing initial values
        type: "opt" for optimizable parameters, None for fixed ones
        log: If True, the parameter is optimized in log10 space
        step: Suggested perturbation step for sensitivity analysis
        longname: Human-readable description
        plotname: Short label for tables and plots
        dist: Prior distribution, None to derive Uniform(min, max)
        init_dist: Distribution for initial guesses, None to derive from bounds
    """

    name: str
    init: float = 0.0
    min: float = -math.inf
    max: float = math.inf
    init_min: float = -math.inf
    init_max: float = math.inf
    type: Optional[str] = OPT
    log: bool = False
    step: float = DEFAULT_STEP
    longname: str = ""
    plotname: str = ""
    dist: Optional[Distribution] = None
    init_dist: Optional[Distribution] = None

    def __post_init__(self):
        """Validate parameter data after initialization."""
        if not self.name:
            raise ParameterError("Parameter name cannot be empty")
        if not isinstance(self.name, str):
            raise ParameterError("Parameter name must be a string")

        self.init = float(self.init)
        self.min = float(self.min)
        self.max = float(self.max)
        self.init_min = float(self.init_min)
        self.init_max = float(self.init_max)
        self.step = float(self.step)

        if self.type not in (OPT, None):
            raise ParameterError(f"Parameter '{self.name}': type must be 'opt' or None, got {self.type!r}")
        if self.min > self.max:
            raise ParameterError(f"Parameter '{self.name}': min ({self.min}) exceeds max ({self.max})")
        if self.init_min > self.init_max:
            raise ParameterError(f"Parameter '{self.name}': init_min exceeds init_max")
        if self.log:
            if self.init <= 0:
                raise ParameterError(f"Parameter '{self.name}': log-transformed init must be positive")
            if self.min <= 0 and math.isfinite(self.min):
                raise ParameterError(f"Parameter '{self.name}': log-transformed min must be positive")
        if self.step <= 0:
            raise ParameterError(f"Parameter '{self.name}': step must be positive")

        if self.dist is not None:
            self.dist = parse_distribution(self.dist)
        if self.init_dist is not None:
            self.init_dist = parse_distribution(self.init_dist)

    @property
    def is_optimizable(self) -> bool:
        """Check if the parameter is adjusted during calibration."""
        return self.type == OPT

    @property
    def is_bounded(self) -> bool:
        """Check if both bounds are finite."""
        return math.isfinite(self.min) and math.isfinite(self.max)

    @property
    def label(self) -> str:
        """Short label: plotname, else name."""
        return self.plotname or self.name

    def to_dict(self) -> Dict[str, Any]:
        """
        Serialize parameter to dictionary.

        Only non-default fields are written, so the output mirrors the
        sparse layout of hand-written model definitions.
        """
        data: Dict[str, Any] = {}
        defaults = Parameter(name=self.name)
        for f in fields(self):
            if f.name == "name":
                continue
            value = getattr(self, f.name)
            if f.name == "type":
                data["type"] = value
                continue
            if value == getattr(defaults, f.name):
                continue
            if f.name in ("dist", "init_dist"):
                value = value.to_string()
            data[f.name] = value
        return data

    @classmethod
    def from_dict(cls, name: str, data: Dict[str, Any]) -> 'Parameter':
        """
        Create a Parameter from a dictionary of fields.

        Absent fields take their defaults. ``type`` values other than
        "opt" (for example ``"null"`` or ``False``) mean a fixed parameter.

        Raises:
            ParameterError: If data is invalid
        """
        unknown = set(data) - {f.name for f in fields(cls)}
        if unknown:
            raise ParameterError(f"Parameter '{name}': unknown fields {sorted(unknown)}")

        kwargs = dict(data)
        kwargs["type"] = OPT if data.get("type", OPT) == OPT else None
        if "log" in kwargs:
            kwargs["log"] = _parse_bool(kwargs["log"])
        return cls(name=name, **kwargs)

    def __repr__(self) -> str:
        status = "opt" if self.is_optimizable else "fixed"
        log = ", log" if self.log else ""
        return f"Parameter({self.name}, init={self.init:g}, [{self.min:g}, {self.max:g}], {status}{log})"


def _parse_bool(value: Any) -> bool:
    """Parse a value to boolean, handling string representations."""
    if isinstance(value, bool):
        return value
    if value is None:
        return False
    if isinstance(value, str):
        return value.lower() in ('true', '1', 'yes', 'y')
    return bool(value)
