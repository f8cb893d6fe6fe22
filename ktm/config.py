"""
Matcher settings shared by template libraries and the streaming predictor.

A library and every predictor scored against it must agree on the sampling
rate and the smoothing kernel, otherwise velocity profiles are not comparable.
"""

from dataclasses import dataclass, asdict, fields, replace as dc_replace
from enum import Enum
from typing import Any, Dict, Union

import yaml


class Mode(Enum):
    """Task geometry: signed distance along x, or distance plus chord angle."""
    ONE_D = "1D"
    TWO_D = "2D"

    @classmethod
    def parse(cls, value: Union[str, "Mode"]) -> "Mode":
        if isinstance(value, Mode):
            return value
        text = str(value).strip().upper()
        for mode in cls:
            if mode.value == text:
                return mode
        raise ValueError(f"Unknown mode {value!r}, expected one of: 1D, 2D")


@dataclass(frozen=True)
class MatcherConfig:
    hz: int = 20                      # resampling rate, samples per second
    stdev: int = 7                    # Gaussian kernel std-dev, in samples
    mode: Mode = Mode.TWO_D
    hit_radius: float = 16.0          # endpoint error still counted as a hit
    min_point_distance: float = 1.0   # de-duplication distance between kept samples
    trim_overshoot: bool = False      # match on the pre-overshoot prefix only
    candidate_fraction: float = 0.1   # share of a library used by leave-one-out evaluation

    def __post_init__(self):
        # frozen: normalise through object.__setattr__
        object.__setattr__(self, 'mode', Mode.parse(self.mode))
        if int(self.hz) != self.hz or self.hz <= 0:
            raise ValueError(f"hz must be a positive integer, got {self.hz!r}")
        if int(self.stdev) != self.stdev or self.stdev < 0:
            raise ValueError(f"stdev must be a non-negative integer, got {self.stdev!r}")
        object.__setattr__(self, 'hz', int(self.hz))
        object.__setattr__(self, 'stdev', int(self.stdev))
        if self.hit_radius < 0:
            raise ValueError(f"hit_radius must be >= 0, got {self.hit_radius!r}")
        if self.min_point_distance < 0:
            raise ValueError(f"min_point_distance must be >= 0, got {self.min_point_distance!r}")
        if not 0.0 < self.candidate_fraction <= 1.0:
            raise ValueError(f"candidate_fraction must be in (0, 1], got {self.candidate_fraction!r}")

    @property
    def interval(self) -> float:
        """Resampling step in the log's time unit (milliseconds)."""
        return 1000.0 / self.hz

    def replace(self, **changes: Any) -> "MatcherConfig":
        """Validated copy with some fields changed; ``None`` values are ignored."""
        changes = {k: v for k, v in changes.items() if v is not None}
        return dc_replace(self, **changes)

    def compatible_with(self, other: "MatcherConfig") -> bool:
        return self.hz == other.hz and self.stdev == other.stdev

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data['mode'] = self.mode.value
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "MatcherConfig":
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ValueError(f"Unknown config keys: {', '.join(unknown)}")
        return cls(**data)

    @classmethod
    def from_yaml(cls, path: str) -> "MatcherConfig":
        """Load settings from a YAML mapping; missing keys keep their defaults."""
        return cls.from_dict(load_settings(path))


def load_settings(path: str) -> Dict[str, Any]:
    """Raw settings mapping from a YAML file (empty file gives an empty mapping)."""
    with open(path, 'r') as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"{path}: expected a mapping of settings")
    return data
