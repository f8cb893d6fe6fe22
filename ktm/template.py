"""
Recorded movements used as comparison references.

A :class:`Template` is built once from a completed movement and never changes.
Partial observation is simulated with :meth:`Template.prefix`, which returns a
:class:`PrefixView` value; comparisons return :class:`Comparison` values, so a
template can be scored by several queries at once.
"""

from dataclasses import dataclass
from typing import Optional, Tuple

import numpy as np
import pandas as pd

from .config import MatcherConfig
from .errors import IncompatibleLibrary, InsufficientData
from .timeseries import (
    PointsLike, as_points, compare_profiles, crow_distance, gaussian_kernel,
    profile_duration, smooth, velocity_profile,
)

# Column order of movement logs, header as written by the experiment software.
LOG_COLUMNS = ['ID', 'X', 'Y', 'T', 'isError?', 'targX', 'targY']


def split_overshoot(points: PointsLike) -> Tuple[np.ndarray, np.ndarray]:
    """Split a movement where it first turns back toward its start.

    Returns ``(productive, filtered)``. The first two points are always
    productive; after that a point stays productive while it is at least as
    far from the start as the point before it. The first point that comes
    closer, and everything after it, is filtered.
    """
    pts = as_points(points)
    if len(pts) <= 2:
        return pts.copy(), np.zeros((0, 3), float)
    dist = np.hypot(pts[:, 0] - pts[0, 0], pts[:, 1] - pts[0, 1])
    receding = dist[2:] >= dist[1:-1]
    back = np.flatnonzero(~receding)
    cut = len(pts) if len(back) == 0 else int(back[0]) + 2
    return pts[:cut].copy(), pts[cut:].copy()


def _frozen(arr: np.ndarray) -> np.ndarray:
    arr.setflags(write=False)
    return arr


@dataclass(frozen=True)
class Comparison:
    """Result of scoring one query prefix against one template."""
    template_id: int
    score: float
    pct_time: float       # query duration over the query template's full duration
    pct_dist_crow: float  # query straight-line distance over the full distance
    time: float           # timestamp of the query's last velocity sample


class Template:
    """One completed movement with its resampled velocity profile."""

    def __init__(self, id: int, points: PointsLike, hz: int = 20, stdev: int = 7,
                 is_error: bool = False, target: Optional[Tuple[float, float]] = None,
                 trim_overshoot: bool = False):
        raw = as_points(points)
        if len(raw) < 2:
            raise InsufficientData(f"template {id} needs at least 2 points, got {len(raw)}")
        if np.any(np.diff(raw[:, 2]) <= 0):
            raise ValueError(f"template {id}: timestamps must strictly increase")
        self.id = int(id)
        self.hz = int(hz)
        self.stdev = int(stdev)
        self.is_error = bool(is_error)
        self.target = None if target is None else (float(target[0]), float(target[1]))
        self.kernel = _frozen(gaussian_kernel(self.stdev))

        self.raw_points = _frozen(raw.copy())
        productive, filtered = split_overshoot(raw)
        self.productive_points = _frozen(productive)
        self.filtered_points = _frozen(filtered)
        self.is_overshoot = len(filtered) > 0

        # the points every derived quantity is computed from
        self.basis_points = self.productive_points if trim_overshoot else self.raw_points
        self.resampled_vel = _frozen(velocity_profile(self.basis_points, self.hz))
        self.dist_crow = crow_distance(self.basis_points)

    @classmethod
    def from_config(cls, id: int, points: PointsLike, config: MatcherConfig,
                    is_error: bool = False, target: Optional[Tuple[float, float]] = None) -> "Template":
        return cls(id, points, hz=config.hz, stdev=config.stdev, is_error=is_error,
                   target=target, trim_overshoot=config.trim_overshoot)

    def __len__(self) -> int:
        return len(self.raw_points)

    def __repr__(self) -> str:
        return (f"Template(id={self.id}, points={len(self.raw_points)}, "
                f"dist_crow={self.dist_crow:.1f}, overshoot={self.is_overshoot})")

    @property
    def duration(self) -> float:
        return profile_duration(self.resampled_vel)

    @property
    def smoothed_vel(self) -> np.ndarray:
        return smooth(self.resampled_vel, self.kernel)

    def compatible_with(self, other: "Template") -> bool:
        return self.hz == other.hz and self.stdev == other.stdev

    def prefix(self, n: int) -> "PrefixView":
        """What a predictor would have known after the first ``n`` points of the profile basis."""
        if not 1 <= n <= len(self.basis_points):
            raise ValueError(f"prefix length must be in [1, {len(self.basis_points)}], got {n}")
        pts = self.basis_points[:n]
        resampled = velocity_profile(pts, self.hz)
        return PrefixView(self, n, pts, resampled, smooth(resampled, self.kernel))

    def compare_to(self, other: "Template", num_points: Optional[int] = None) -> Comparison:
        """Score ``other`` against this template's first ``num_points`` points (all by default)."""
        n = len(self.basis_points) if num_points is None else num_points
        return self.prefix(n).compare_to(other)

    def to_frame(self) -> pd.DataFrame:
        """Raw points in the movement-log layout."""
        tx, ty = self.target if self.target is not None else (0.0, 0.0)
        n = len(self.raw_points)
        t = self.raw_points[:, 2]
        if np.all(t == np.round(t)):
            t = t.astype(np.int64)
        return pd.DataFrame({
            'ID': [self.id] * n,
            'X': self.raw_points[:, 0],
            'Y': self.raw_points[:, 1],
            'T': t,
            'isError?': [str(self.is_error)] * n,
            'targX': [tx] * n,
            'targY': [ty] * n,
        }, columns=LOG_COLUMNS)


@dataclass(frozen=True, eq=False)
class PrefixView:
    """The first ``num_points`` basis points of a template and their profiles."""
    template: Template
    num_points: int
    raw_points: np.ndarray
    resampled_vel: np.ndarray
    smoothed_vel: np.ndarray

    @property
    def time(self) -> float:
        return profile_duration(self.resampled_vel)

    @property
    def pct_time(self) -> float:
        total = self.template.duration
        return self.time / total if total > 0 else 0.0

    @property
    def dist_crow(self) -> float:
        return crow_distance(self.raw_points)

    @property
    def pct_dist_crow(self) -> float:
        total = self.template.dist_crow
        return self.dist_crow / total if total > 0 else 0.0

    def compare_to(self, other: Template) -> Comparison:
        if not self.template.compatible_with(other):
            raise IncompatibleLibrary(
                f"template {self.template.id} ({self.template.hz} Hz, stdev {self.template.stdev}) "
                f"cannot be compared with template {other.id} ({other.hz} Hz, stdev {other.stdev})")
        score = compare_profiles(self.smoothed_vel, other.resampled_vel, self.template.kernel)
        return Comparison(other.id, score, self.pct_time, self.pct_dist_crow, self.time)
