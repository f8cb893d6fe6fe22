"""
Template libraries: loading movement logs, nearest-neighbour search and the
offline accuracy harness.
"""

import logging
import math
from dataclasses import dataclass
from typing import Iterator, List, Optional, Sequence, Union

import numpy as np
import pandas as pd

from .config import MatcherConfig, Mode
from .errors import EmptyLibrary, IncompatibleLibrary, MalformedLogData
from .template import LOG_COLUMNS, PrefixView, Template
from .timeseries import compare_profiles, dedupe_points, gaussian_kernel, project_endpoint

logger = logging.getLogger(__name__)

REPORT_COLUMNS = [
    'candidate_id', 'sigma', 'hz', 'num_points', 'pct_time', 'pct_dist_crow', 'time',
    'win_id', 'win_crow_1d_error_unsigned', 'win_crow_1d_error_signed', 'win_2d_error',
    'in_target',
]

# Leave-one-out evaluation starts at this many raw points.
MIN_EVAL_POINTS = 4

RandomLike = Union[None, int, np.random.Generator]


# -------------------- Loading --------------------

def read_log(path: str) -> pd.DataFrame:
    """Read a movement log into a frame with numeric, validated columns.

    Columns are taken by position (``ID, X, Y, T, isError?, targX, targY``)
    whatever the header says. Raises :class:`MalformedLogData` on anything
    that cannot be parsed.
    """
    try:
        raw = pd.read_csv(path, dtype=str, keep_default_na=False, skipinitialspace=True, index_col=False)
    except (pd.errors.ParserError, pd.errors.EmptyDataError, UnicodeDecodeError) as e:
        raise MalformedLogData(f"cannot parse log: {e}", path=path) from e

    if raw.shape[1] < len(LOG_COLUMNS):
        raise MalformedLogData(
            f"expected {len(LOG_COLUMNS)} columns ({', '.join(LOG_COLUMNS)}), found {raw.shape[1]}", path=path)
    if raw.empty:
        raise MalformedLogData("log contains no movement rows", path=path)

    raw = raw.iloc[:, :len(LOG_COLUMNS)].copy()
    raw.columns = LOG_COLUMNS
    raw = raw.fillna('')

    df = pd.DataFrame(index=raw.index)
    for col in ['ID', 'X', 'Y', 'T', 'targX', 'targY']:
        values = pd.to_numeric(raw[col].str.strip(), errors='coerce')
        bad = values.isna()
        if bad.any():
            row = int(bad.idxmax())
            # +2: one for the header line, one for 1-based line numbers
            raise MalformedLogData(
                f"line {row + 2}: column {col} is not numeric ({raw.at[row, col]!r})", path=path)
        df[col] = values.astype(float)

    if not np.all(df['ID'] == np.round(df['ID'])):
        raise MalformedLogData("path ids must be integers", path=path)
    df['ID'] = df['ID'].astype(np.int64)

    flags = raw['isError?'].str.strip()
    bad = ~flags.isin(['True', 'False'])
    if bad.any():
        row = int(bad.idxmax())
        raise MalformedLogData(f"line {row + 2}: isError must be True or False, got {flags[row]!r}", path=path)
    df['isError?'] = flags == 'True'
    return df


def load_log(path: str, config: Optional[MatcherConfig] = None) -> List[Template]:
    """Turn a movement log into templates, one per path id in first-appearance order."""
    config = config or MatcherConfig()
    df = read_log(path)
    templates = []
    for path_id, group in df.groupby('ID', sort=False):
        points = dedupe_points(group[['X', 'Y', 'T']].to_numpy(float), config.min_point_distance)
        if len(points) < 2:
            raise MalformedLogData(
                f"needs at least 2 distinct points, found {len(points)}", path=path, path_id=int(path_id))
        first = group.iloc[0]
        templates.append(Template.from_config(
            int(path_id), points, config,
            is_error=bool(first['isError?']),
            target=(float(first['targX']), float(first['targY'])),
        ))
    return templates


# -------------------- Library --------------------

@dataclass(frozen=True)
class Match:
    """Winner of a nearest-neighbour search."""
    index: int
    template: Template
    score: float


def _rng(random: RandomLike) -> np.random.Generator:
    if isinstance(random, np.random.Generator):
        return random
    return np.random.default_rng(random)


class TemplateLibrary:
    """An ordered collection of templates sharing one resampling configuration."""

    def __init__(self, templates: Sequence[Template] = (), config: Optional[MatcherConfig] = None):
        self.config = config or MatcherConfig()
        self.kernel = gaussian_kernel(self.config.stdev)
        self.templates: List[Template] = list(templates)
        for t in self.templates:
            if t.hz != self.config.hz or t.stdev != self.config.stdev:
                raise IncompatibleLibrary(
                    f"template {t.id} uses {t.hz} Hz / stdev {t.stdev}, library uses "
                    f"{self.config.hz} Hz / stdev {self.config.stdev}")

    @classmethod
    def load(cls, path: str, config: Optional[MatcherConfig] = None, size: Optional[int] = None,
             random: RandomLike = None) -> "TemplateLibrary":
        """Load a movement log; with ``size``, randomly drop templates until that many remain."""
        config = config or MatcherConfig()
        lib = cls(load_log(path, config), config)
        logger.info("Loaded %s: %d templates (%d overshoots, %s)",
                    path, len(lib), sum(t.is_overshoot for t in lib), config.mode.value)
        if size is not None:
            lib = lib.sample(size, random)
        return lib

    def __len__(self) -> int:
        return len(self.templates)

    def __iter__(self) -> Iterator[Template]:
        return iter(self.templates)

    def __getitem__(self, index: int) -> Template:
        return self.templates[index]

    @property
    def hz(self) -> int:
        return self.config.hz

    @property
    def stdev(self) -> int:
        return self.config.stdev

    def sample(self, size: int, random: RandomLike = None) -> "TemplateLibrary":
        """Copy of this library with random templates removed until ``size`` remain."""
        if size < 0:
            raise ValueError(f"size must be >= 0, got {size}")
        rng = _rng(random)
        kept = list(self.templates)
        while len(kept) > size:
            del kept[int(rng.integers(len(kept)))]
        if len(kept) < len(self.templates):
            logger.info("Library reduced from %d to %d templates", len(self.templates), len(kept))
        return TemplateLibrary(kept, self.config)

    def save(self, path: str) -> None:
        """Write the templates back out in the movement-log layout."""
        frames = [t.to_frame() for t in self.templates]
        out = pd.concat(frames, ignore_index=True) if frames else pd.DataFrame(columns=LOG_COLUMNS)
        out.to_csv(path, index=False)

    # -------------------- Nearest neighbour --------------------

    def scores(self, query: Union[PrefixView, np.ndarray],
               templates: Optional[Sequence[Template]] = None) -> np.ndarray:
        """Score of every template (lower is better) for a smoothed query profile."""
        if isinstance(query, PrefixView):
            if query.template.hz != self.hz or query.template.stdev != self.stdev:
                raise IncompatibleLibrary(
                    f"query template {query.template.id} uses {query.template.hz} Hz / stdev "
                    f"{query.template.stdev}, library uses {self.hz} Hz / stdev {self.stdev}")
            profile = query.smoothed_vel
        else:
            profile = query
        pool = self.templates if templates is None else templates
        return np.array([compare_profiles(profile, t.resampled_vel, self.kernel) for t in pool], float)

    def nearest_neighbor(self, query: Union[PrefixView, np.ndarray]) -> Match:
        """Best-matching template; ties go to the earliest one in library order."""
        if not self.templates:
            raise EmptyLibrary("cannot search an empty template library")
        scores = self.scores(query)
        # argmin returns the first of equal minima
        best = int(np.argmin(scores))
        return Match(best, self.templates[best], float(scores[best]))

    # -------------------- Evaluation --------------------

    def _report_row(self, view: PrefixView, winner: Template) -> dict:
        candidate = view.template
        signed = candidate.dist_crow - winner.dist_crow
        start = candidate.raw_points[0]
        actual = candidate.raw_points[-1]
        pred_x, pred_y = project_endpoint(start, view.raw_points[-1], winner.dist_crow, self.config.mode)
        error_2d = math.hypot(actual[0] - pred_x, actual[1] - pred_y)
        error = abs(signed) if self.config.mode is Mode.ONE_D else error_2d
        return {
            'candidate_id': candidate.id,
            'sigma': self.config.stdev,
            'hz': self.config.hz,
            'num_points': view.num_points,
            'pct_time': view.pct_time,
            'pct_dist_crow': view.pct_dist_crow,
            'time': view.time,
            'win_id': winner.id,
            'win_crow_1d_error_unsigned': abs(signed),
            'win_crow_1d_error_signed': signed,
            'win_2d_error': error_2d,
            'in_target': bool(error <= self.config.hit_radius),
        }

    def evaluate(self, random: RandomLike = None) -> pd.DataFrame:
        """Leave-one-out accuracy over a random share of this library.

        Candidates are drawn among templates without an overshoot and taken
        out of the library while they are scored. For every prefix of
        ``MIN_EVAL_POINTS`` points or more, the winner is the template with
        the lowest score summed over all prefixes seen so far.
        """
        if len(self.templates) < 2:
            raise EmptyLibrary("leave-one-out evaluation needs at least 2 templates")
        rng = _rng(random)
        eligible = [i for i, t in enumerate(self.templates) if not t.is_overshoot]
        count = min(len(eligible), max(1, int(len(self.templates) * self.config.candidate_fraction)))
        picks = rng.choice(eligible, size=count, replace=False) if count else []

        rows = []
        for n, index in enumerate(picks, 1):
            candidate = self.templates[int(index)]
            others = [t for i, t in enumerate(self.templates) if i != index]
            logger.debug("Candidate %d/%d: template %d (%d points)", n, count, candidate.id, len(candidate))
            cumulative = np.zeros(len(others), float)
            for k in range(MIN_EVAL_POINTS, len(candidate.basis_points) + 1):
                view = candidate.prefix(k)
                if len(view.smoothed_vel) == 0:
                    continue
                cumulative += self.scores(view, others)
                winner = others[int(np.argmin(cumulative))]
                rows.append(self._report_row(view, winner))
        logger.info("Evaluated %d candidates, %d prefixes", count, len(rows))
        return pd.DataFrame(rows, columns=REPORT_COLUMNS)

    def evaluate_against(self, other: "TemplateLibrary") -> pd.DataFrame:
        """Score every template of an independent library, prefix by prefix, against this one."""
        if not self.templates:
            raise EmptyLibrary("cannot evaluate against an empty template library")
        if not self.config.compatible_with(other.config):
            raise IncompatibleLibrary(
                f"libraries differ: {self.hz} Hz / stdev {self.stdev} vs {other.hz} Hz / stdev {other.stdev}")
        rows = []
        for n, candidate in enumerate(other, 1):
            logger.debug("Candidate %d/%d: template %d (%d points)", n, len(other), candidate.id, len(candidate))
            for k in range(2, len(candidate.basis_points) + 1):
                view = candidate.prefix(k)
                if len(view.smoothed_vel) == 0:
                    continue
                rows.append(self._report_row(view, self.nearest_neighbor(view).template))
        logger.info("Evaluated %d candidates, %d prefixes", len(other), len(rows))
        return pd.DataFrame(rows, columns=REPORT_COLUMNS)
