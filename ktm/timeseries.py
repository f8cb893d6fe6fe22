"""
Time-series transforms for pointer movements.

Point sequences are ``(n, 3)`` float arrays with columns ``x, y, t``.
Velocity profiles are ``(n, 2)`` arrays with columns ``t, v`` where ``t``
starts at 0 and advances by a fixed step and ``v`` is speed (never negative).
"""

import math
from typing import NamedTuple, Optional, Sequence, Tuple, Union

import numpy as np

from .config import Mode
from .errors import InsufficientData


class TimedPoint(NamedTuple):
    x: float
    y: float
    t: float


PointsLike = Union[np.ndarray, Sequence[TimedPoint], Sequence[Sequence[float]]]


# -------------------- Points --------------------

def as_points(points: PointsLike) -> np.ndarray:
    """Coerce a sequence of (x, y, t) triples into an ``(n, 3)`` float array."""
    arr = np.asarray(points, dtype=float)
    if arr.size == 0:
        return np.zeros((0, 3), float)
    if arr.ndim != 2 or arr.shape[1] != 3:
        raise ValueError(f"expected (n, 3) points of x, y, t; got shape {arr.shape}")
    return arr


def accept_point(last: Optional[Sequence[float]], pt: Sequence[float], min_distance: float = 1.0) -> bool:
    """True if ``pt`` should follow ``last`` in a movement.

    A sample is kept when it is the first one, or when it moved at least
    ``min_distance`` from the last kept sample and its timestamp is later.
    """
    if last is None:
        return True
    moved = math.hypot(pt[0] - last[0], pt[1] - last[1])
    return moved >= min_distance and pt[2] > last[2]


def dedupe_points(points: PointsLike, min_distance: float = 1.0) -> np.ndarray:
    """Drop samples rejected by :func:`accept_point`, comparing against the last kept one."""
    pts = as_points(points)
    kept = []
    last = None
    for pt in pts:
        if accept_point(last, pt, min_distance):
            kept.append(pt)
            last = pt
    if not kept:
        return np.zeros((0, 3), float)
    return np.vstack(kept)


def crow_distance(points: PointsLike) -> float:
    """Straight-line distance between the first and the last point."""
    pts = as_points(points)
    if len(pts) < 2:
        return 0.0
    return float(math.hypot(pts[-1, 0] - pts[0, 0], pts[-1, 1] - pts[0, 1]))


def project_endpoint(start: Sequence[float], latest: Sequence[float], distance: float, mode: Mode) -> Tuple[float, float]:
    """Where a movement from ``start`` ends if it covers ``distance``.

    In 1D the distance is laid along x, negated when the movement so far heads
    toward smaller x. In 2D it follows the chord from ``start`` to ``latest``.
    """
    if mode is Mode.ONE_D:
        if latest[0] < start[0]:
            distance = -distance
        return float(start[0] + distance), float(start[1])
    angle = math.atan2(latest[1] - start[1], latest[0] - start[0])
    return float(start[0] + math.cos(angle) * distance), float(start[1] + math.sin(angle) * distance)


# -------------------- Resampling --------------------

def resample_in_time(points: PointsLike, hz: int) -> np.ndarray:
    """Resample an irregular movement at a fixed rate by linear interpolation.

    Output timestamps are relative to the first sample and step by
    ``1000 / hz``; there are ``floor(duration * hz / 1000) + 1`` of them, so
    the last one never passes the end of the movement. Fewer than two input
    points give an empty result.
    """
    pts = as_points(points)
    if len(pts) < 2:
        return np.zeros((0, 3), float)
    t_rel = pts[:, 2] - pts[0, 2]
    duration = float(t_rel[-1])
    n = int(math.floor(duration * hz / 1000.0 + 1e-9)) + 1
    t = np.arange(n, dtype=float) * (1000.0 / hz)
    x = np.interp(t, t_rel, pts[:, 0])
    y = np.interp(t, t_rel, pts[:, 1])
    return np.c_[x, y, t]


def derivative(resampled: np.ndarray) -> np.ndarray:
    """Speed between consecutive resampled points, one sample shorter than the input."""
    pts = np.asarray(resampled, dtype=float)
    if len(pts) < 2:
        return np.zeros((0, 2), float)
    dt = np.diff(pts[:, 2])
    speed = np.hypot(np.diff(pts[:, 0]), np.diff(pts[:, 1])) / dt
    return np.c_[pts[:-1, 2], speed]


def velocity_profile(points: PointsLike, hz: int) -> np.ndarray:
    """Resample then differentiate: the profile every comparison works on."""
    return derivative(resample_in_time(points, hz))


# -------------------- Smoothing --------------------

def gaussian_kernel(stdev: int) -> np.ndarray:
    """Normalised Gaussian weights over ``[-3*stdev, 3*stdev]`` (``6*stdev + 1`` taps)."""
    if stdev <= 0:
        return np.ones(1, float)
    x = np.arange(-3 * stdev, 3 * stdev + 1, dtype=float)
    k = np.exp(-(x ** 2) / (2.0 * stdev ** 2))
    return k / k.sum()


def smooth(series: np.ndarray, kernel: np.ndarray) -> np.ndarray:
    """Centred convolution with edge samples clamped; output length equals input length.

    Accepts either a 1-D array of values or a ``(n, 2)`` velocity profile, in
    which case only the ``v`` column is filtered.
    """
    arr = np.asarray(series, dtype=float)
    if arr.ndim == 2:
        out = arr.copy()
        out[:, 1] = smooth(arr[:, 1], kernel)
        return out
    if arr.size == 0:
        return arr.copy()
    half = len(kernel) // 2
    padded = np.pad(arr, half, mode='edge')
    return np.convolve(padded, kernel, mode='valid')


def compare_profiles(query_smoothed: np.ndarray, other_velocity: np.ndarray, kernel: np.ndarray) -> float:
    """Mean absolute speed difference between a query and a template.

    ``other_velocity`` is cut to the query's length (never extended) and then
    smoothed. Query samples past the end of the template count with their own
    speed. Lower is better; the measure is not symmetric.
    """
    query = np.asarray(query_smoothed, dtype=float)
    if query.ndim == 2:
        query = query[:, 1]
    if len(query) == 0:
        raise InsufficientData("query has no velocity samples to compare")
    other = np.asarray(other_velocity, dtype=float)
    if other.ndim == 2:
        other = other[:, 1]
    other = smooth(other[:len(query)], kernel)
    overlap = len(other)
    score = np.abs(query[:overlap] - other).sum() + query[overlap:].sum()
    return float(score / len(query))


def profile_duration(velocity: np.ndarray) -> float:
    """Timestamp of the last velocity sample (0 for an empty profile)."""
    v = np.asarray(velocity, dtype=float)
    return float(v[-1, 0]) if len(v) else 0.0

