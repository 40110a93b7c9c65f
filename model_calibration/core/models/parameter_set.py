"""
ParameterSet class for model calibration.

The ParameterSet is the container a calibration driver uses to assemble the
initial parameter vector and bounds. It holds:
- Model parameters (optimizable and fixed)
- Source parameters, flattened from the ``Sources`` section with a
  ``Source<i>_`` prefix

It provides methods for:
- Adding/retrieving parameters
- Reading any parameter field across a list of keys (one generic accessor)
- Selecting optimizable / log-transformed parameters
- Switching parameters on and off, setting initial values and distributions
- Serialization to/from the nested dictionary layout
"""

import logging
from dataclasses import dataclass, field, fields, replace
from typing import Dict, List, Any, Optional, Sequence, Mapping

from ..errors import ParameterError
from .parameter import Parameter, OPT
from .distribution import Distribution, LogUniform, Normal, Uniform

logger = logging.getLogger(__name__)

FIELD_NAMES = tuple(f.name for f in fields(Parameter) if f.name != "name")


@dataclass
class ParameterSet:
    """
    Ordered container of model parameters.

    Attributes:
        name: Human-readable name for the model
        parameters: Dictionary mapping parameter names to Parameter objects
            (insertion order is the vector order)
        source_names: Names of parameters that came from source definitions
    """

    name: str = "Unnamed Model"
    parameters: Dict[str, Parameter] = field(default_factory=dict)
    source_names: List[str] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.parameters)

    def __contains__(self, key: str) -> bool:
        return key in self.parameters

    def __iter__(self):
        return iter(self.parameters.values())

    def keys(self) -> List[str]:
        """Return all parameter names in vector order."""
        return list(self.parameters.keys())

    def get(self, key: str) -> Parameter:
        """
        Retrieve a parameter by name.

        Raises:
            ParameterError: If key is not found
        """
        if key not in self.parameters:
            raise ParameterError(f"Parameter '{key}' not found in '{self.name}'")
        return self.parameters[key]

    def add(self, parameter: Parameter, source: bool = False) -> None:
        """
        Add a parameter to the set.

        Args:
            parameter: Parameter to add
            source: Mark the parameter as a source parameter

        Raises:
            ParameterError: If a parameter with the same name already exists
        """
        if parameter.name in self.parameters:
            raise ParameterError(f"Parameter '{parameter.name}' already exists in '{self.name}'")
        self.parameters[parameter.name] = parameter
        if source:
            self.source_names.append(parameter.name)

    def param_dict(self, keys: Optional[Sequence[str]] = None) -> Dict[str, float]:
        """Return a name -> initial value dictionary."""
        keys = self.keys() if keys is None else list(keys)
        return {key: self.get(key).init for key in keys}

    def get_field(self, field_name: str, keys: Optional[Sequence[str]] = None) -> List[Any]:
        """
        Read one field of several parameters.

        Args:
            field_name: Any Parameter field ("init", "min", "max", "log", ...)
            keys: Parameter names, all parameters if None

        Returns:
            List of field values in the order of ``keys``

        Raises:
            ParameterError: If the field or a key is unknown
        """
        if field_name not in FIELD_NAMES:
            raise ParameterError(f"Unknown parameter field '{field_name}'")
        keys = self.keys() if keys is None else list(keys)
        return [getattr(self.get(key), field_name) for key in keys]

    def opt_keys(self) -> List[str]:
        """Names of optimizable parameters."""
        return [p.name for p in self.parameters.values() if p.is_optimizable]

    def non_opt_keys(self) -> List[str]:
        """Names of fixed parameters."""
        return [p.name for p in self.parameters.values() if not p.is_optimizable]

    def log_keys(self) -> List[str]:
        """Names of log-transformed parameters."""
        return [p.name for p in self.parameters.values() if p.log]

    def non_log_keys(self) -> List[str]:
        """Names of parameters that are not log-transformed."""
        return [p.name for p in self.parameters.values() if not p.log]

    def source_keys(self) -> List[str]:
        """Names of source parameters."""
        return list(self.source_names)

    def set_init(self, values: Mapping[str, float]) -> None:
        """
        Set initial values for the parameters named in ``values``.

        Raises:
            ParameterError: If a name is unknown or a value is invalid
        """
        for key, value in values.items():
            self.parameters[key] = replace(self.get(key), init=float(value))

    def set_on(self, key: str) -> None:
        """Make one parameter optimizable."""
        self.parameters[key] = replace(self.get(key), type=OPT)

    def set_off(self, key: str) -> None:
        """Fix one parameter at its initial value."""
        self.parameters[key] = replace(self.get(key), type=None)

    def set_all_on(self) -> None:
        """Make all parameters optimizable."""
        for key in self.keys():
            self.set_on(key)

    def set_all_off(self) -> None:
        """Fix all parameters."""
        for key in self.keys():
            self.set_off(key)

    def set_normal_distributions(self, mean: Sequence[float], std: Sequence[float]) -> None:
        """
        Assign Normal(mean[i], std[i]) priors to all parameters in order.

        Raises:
            ValueError: If mean/std lengths do not match the parameter count
        """
        keys = self.keys()
        if len(mean) != len(keys) or len(std) != len(keys):
            raise ValueError(
                f"Expected {len(keys)} means and standard deviations, got {len(mean)} and {len(std)}"
            )
        for key, mu, sd in zip(keys, mean, std):
            self.parameters[key] = replace(self.get(key), dist=Normal(float(mu), float(sd)))

    def distributions(self, init_dist: bool = False) -> Dict[str, Distribution]:
        """
        Distributions of the optimizable parameters.

        An explicit ``dist`` (or ``init_dist`` when ``init_dist`` is True) is
        used as is. Otherwise a Uniform distribution over the bounds is
        derived (LogUniform for log parameters with positive bounds);
        for initial distributions, ``init_min``/``init_max`` take
        precedence over ``min``/``max`` where they are finite.

        Raises:
            ParameterError: If a parameter needs a derived distribution but
                its bounds are infinite
        """
        result: Dict[str, Distribution] = {}
        for key in self.opt_keys():
            p = self.parameters[key]
            explicit = p.init_dist if init_dist else p.dist
            if explicit is not None:
                result[key] = explicit
                continue
            low, high = p.min, p.max
            if init_dist:
                if p.init_min != float("-inf"):
                    low = p.init_min
                if p.init_max != float("inf"):
                    high = p.init_max
            try:
                if p.log and low > 0:
                    result[key] = LogUniform(low, high)
                else:
                    result[key] = Uniform(low, high)
            except ValueError as exc:
                raise ParameterError(f"Parameter '{key}' has no distribution and unbounded range") from exc
        return result

    def format_parameters(self, all_parameters: bool = False) -> List[str]:
        """
        Describe parameters as text lines.

        Args:
            all_parameters: Include fixed parameters (marked as such)

        Returns:
            One formatted line per parameter
        """
        lines: List[str] = []
        keys = self.keys() if all_parameters else self.opt_keys()
        for key in keys:
            p = self.parameters[key]
            dist = p.dist.to_string() if p.dist is not None else "-"
            if all_parameters:
                line = f"{key:<10s} = {p.init:15g}"
                if p.is_optimizable:
                    line += f" <- optimizable log = {str(p.log):>5s}  Distribution = {dist}"
            else:
                line = f"{key:<10s} init = {p.init:15g} log = {str(p.log):>5s}  Distribution = {dist}"
            lines.append(line)
        return lines

    def copy(self) -> 'ParameterSet':
        """Return a copy that can be modified independently."""
        return ParameterSet(
            name=self.name,
            parameters=dict(self.parameters),
            source_names=list(self.source_names),
        )

    def validate(self) -> List[str]:
        """
        Validate the set for calibration.

        Returns:
            List of error messages (empty if valid)
        """
        errors: List[str] = []
        if not self.parameters:
            errors.append("Parameter set is empty")
            return errors
        if not self.opt_keys():
            errors.append("No optimizable parameters")
        for p in self.parameters.values():
            if p.is_optimizable and not (p.min <= p.init <= p.max):
                errors.append(f"Parameter '{p.name}': init {p.init:g} outside [{p.min:g}, {p.max:g}]")
        return errors

    def to_dict(self) -> Dict[str, Any]:
        """
        Serialize the set to the nested dictionary layout.

        Source parameters are written back into ``Sources`` boxes.
        """
        params: Dict[str, Any] = {}
        sources: Dict[int, Dict[str, Any]] = {}
        for key, p in self.parameters.items():
            if key in self.source_names:
                prefix, _, short = key.partition("_")
                index = int(prefix[len("Source"):])
                sources.setdefault(index, {})[short] = p.to_dict()
            else:
                params[key] = p.to_dict()
        data: Dict[str, Any] = {"name": self.name, "Parameters": params}
        if sources:
            data["Sources"] = [{"box": sources[i]} for i in sorted(sources)]
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ParameterSet':
        """
        Create a ParameterSet from the nested dictionary layout.

        Expected layout::

            {"Parameters": {"k": {"init": 1.0, "min": 0.0, "log": true}, ...},
             "Sources": [{"box": {"x": {"init": 10.0}, ...}}, ...]}

        A bare number instead of a field dictionary is taken as ``init``.
        """
        pset = cls(name=data.get("name", "Unnamed Model"))
        for key, spec in (data.get("Parameters") or {}).items():
            pset.add(Parameter.from_dict(key, _as_field_dict(spec)))

        for i, source in enumerate(data.get("Sources") or [], start=1):
            for _kind, entries in source.items():
                for key, spec in entries.items():
                    pset.add(Parameter.from_dict(f"Source{i}_{key}", _as_field_dict(spec)), source=True)

        logger.debug(
            "Loaded parameter set '%s': %d parameters (%d optimizable, %d source)",
            pset.name, len(pset), len(pset.opt_keys()), len(pset.source_names),
        )
        return pset

    def __repr__(self) -> str:
        return f"ParameterSet({self.name}, {len(self)} parameters, {len(self.opt_keys())} optimizable)"


def _as_field_dict(spec: Any) -> Dict[str, Any]:
    """Accept either a field dictionary or a bare initial value."""
    if isinstance(spec, Mapping):
        return dict(spec)
    return {"init": spec}
