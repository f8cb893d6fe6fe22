import math

import numpy as np
import pandas as pd
import pytest

from ktm import LOG_COLUMNS


def _linear_movement(length, speed=0.1, angle=0.0, start=(100.0, 100.0), step=10.0, t0=0.0):
    """Constant-speed straight movement sampled every ``step`` ms."""
    n = int(round(length / (speed * step))) + 1
    d = np.linspace(0.0, length, n)
    t = t0 + np.arange(n) * step
    return np.c_[start[0] + math.cos(angle) * d, start[1] + math.sin(angle) * d, t]


def _min_jerk_movement(length, duration, angle=0.0, start=(400.0, 300.0), step=10.0):
    """Bell-shaped velocity profile, the usual shape of an aimed movement."""
    t = np.arange(0.0, duration + step / 2, step)
    tau = t / duration
    s = length * (10 * tau ** 3 - 15 * tau ** 4 + 6 * tau ** 5)
    return np.c_[start[0] + math.cos(angle) * s, start[1] + math.sin(angle) * s, t]


@pytest.fixture
def linear_movement():
    return _linear_movement


@pytest.fixture
def min_jerk_movement():
    return _min_jerk_movement


@pytest.fixture
def write_log(tmp_path):
    """Write ``{path_id: points}`` as a movement log and return its path."""
    def _write(movements, name='Log.csv', errors=(), targets=None):
        rows = []
        for path_id, pts in movements.items():
            tx, ty = (targets or {}).get(path_id, (pts[-1][0], pts[-1][1]))
            for x, y, t in pts:
                rows.append([path_id, x, y, int(round(t)), str(path_id in errors), tx, ty])
        path = tmp_path / name
        pd.DataFrame(rows, columns=LOG_COLUMNS).to_csv(path, index=False)
        return str(path)
    return _write


@pytest.fixture
def session_log(write_log):
    """Ten 2D movements of increasing distance in different directions."""
    movements = {}
    for i in range(10):
        length = 100.0 + 50.0 * i
        movements[i] = _min_jerk_movement(length, 300.0 + length, angle=i * math.pi / 5)
    return write_log(movements, name='Log_2D.csv', errors=(3,))
