"""
Streaming endpoint prediction for a movement still in progress.
"""

import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd

from .config import MatcherConfig, Mode
from .errors import IncompatibleLibrary, InsufficientData
from .library import TemplateLibrary
from .timeseries import accept_point, as_points, crow_distance, gaussian_kernel, project_endpoint, smooth, velocity_profile

logger = logging.getLogger(__name__)

TRACE_COLUMNS = [
    'num_points', 'win_id', 'raw_x', 'raw_y', 'time', 'pred_x', 'pred_y', 'pred_dist',
    'act_x', 'act_y', 'targ_x', 'targ_y',
]


@dataclass(frozen=True)
class Prediction:
    x: float
    y: float
    t: float            # resampled time of the latest velocity sample
    distance: float     # winning template's distance, signed along x in 1D
    win_index: int
    win_id: int
    score: float
    num_points: int


class RTTemplate:
    """Accumulates the live movement and predicts where it will stop.

    Every accepted point triggers a full resample and smoothing of the whole
    buffer. One instance serves a whole session; call :meth:`clear` before
    each new movement.
    """

    def __init__(self, config: Optional[MatcherConfig] = None):
        self.config = config or MatcherConfig()
        self.kernel = gaussian_kernel(self.config.stdev)
        self.session_id = 0
        self._points: List[Tuple[float, float, float]] = []
        self.trace: List[dict] = []
        self._reset_profiles()

    @classmethod
    def for_library(cls, library: TemplateLibrary) -> "RTTemplate":
        return cls(library.config)

    def _reset_profiles(self) -> None:
        self.resampled_vel = np.zeros((0, 2), float)
        self.smoothed_vel = np.zeros((0, 2), float)
        self.dist_crow = 0.0

    @property
    def raw_points(self) -> np.ndarray:
        return as_points(self._points)

    def __len__(self) -> int:
        return len(self._points)

    def add_point(self, point: Sequence[float]) -> bool:
        """Append a pointer sample; returns False if it was dropped as a duplicate."""
        pt = (float(point[0]), float(point[1]), float(point[2]))
        last = self._points[-1] if self._points else None
        if not accept_point(last, pt, self.config.min_point_distance):
            return False
        self._points.append(pt)
        pts = self.raw_points
        self.resampled_vel = velocity_profile(pts, self.config.hz)
        self.smoothed_vel = smooth(self.resampled_vel, self.kernel)
        self.dist_crow = crow_distance(pts)
        return True

    def clear(self) -> None:
        """Forget the current movement and its trace; starts a new session id."""
        self._points = []
        self.trace = []
        self._reset_profiles()
        self.session_id += 1

    def predict_1d(self, library: TemplateLibrary) -> Prediction:
        return self._predict(library, Mode.ONE_D)

    def predict_2d(self, library: TemplateLibrary) -> Prediction:
        return self._predict(library, Mode.TWO_D)

    def predict(self, library: TemplateLibrary) -> Prediction:
        """Predict using the mode this predictor was configured with."""
        return self._predict(library, self.config.mode)

    def _predict(self, library: TemplateLibrary, mode: Mode) -> Prediction:
        if len(self._points) < 2:
            raise InsufficientData(f"need at least 2 points to predict, have {len(self._points)}")
        if len(self.smoothed_vel) == 0:
            raise InsufficientData("movement too short for a single velocity sample")
        if not self.config.compatible_with(library.config):
            raise IncompatibleLibrary(
                f"predictor uses {self.config.hz} Hz / stdev {self.config.stdev}, "
                f"library uses {library.hz} Hz / stdev {library.stdev}")

        match = library.nearest_neighbor(self.smoothed_vel)
        start, latest = self._points[0], self._points[-1]
        x, y = project_endpoint(start, latest, match.template.dist_crow, mode)
        distance = match.template.dist_crow
        if mode is Mode.ONE_D and latest[0] < start[0]:
            distance = -distance
        t = float(self.resampled_vel[-1, 0])

        prediction = Prediction(x, y, t, distance, match.index, match.template.id, match.score, len(self._points))
        self.trace.append({
            'num_points': len(self._points),
            'win_id': match.template.id,
            'raw_x': latest[0],
            'raw_y': latest[1],
            'time': t,
            'pred_x': x,
            'pred_y': y,
            'pred_dist': distance,
        })
        logger.debug("Session %d, %d points: template %d wins (%.3f), predicted (%.1f, %.1f)",
                     self.session_id, len(self._points), match.template.id, match.score, x, y)
        return prediction

    def trace_frame(self, click: Optional[Sequence[float]] = None,
                    target: Optional[Sequence[float]] = None) -> pd.DataFrame:
        """Prediction trace of the current movement, tagged with the final click and target centre."""
        act_x, act_y = (click[0], click[1]) if click is not None else (np.nan, np.nan)
        targ_x, targ_y = (target[0], target[1]) if target is not None else (np.nan, np.nan)
        rows = [dict(row, act_x=act_x, act_y=act_y, targ_x=targ_x, targ_y=targ_y) for row in self.trace]
        return pd.DataFrame(rows, columns=TRACE_COLUMNS)
