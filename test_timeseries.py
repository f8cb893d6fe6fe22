"""
test_timeseries.py

Resampling, differentiation, smoothing and scoring of velocity profiles.
"""

import math

import numpy as np
import pytest
from numpy.testing import assert_allclose

from ktm import InsufficientData, Mode
from ktm.timeseries import (
    accept_point, compare_profiles, crow_distance, dedupe_points, derivative, gaussian_kernel,
    project_endpoint, resample_in_time, smooth, velocity_profile,
)


def test_resample_two_points_multiple_of_interval():
    out = resample_in_time([(0, 0, 0), (100, 50, 1000)], hz=20)
    assert len(out) == 1000 * 20 // 1000 + 1
    assert_allclose(np.diff(out[:, 2]), 50.0)
    assert_allclose(out[0], [0, 0, 0])
    assert_allclose(out[-1], [100, 50, 1000])


def test_resample_two_points_partial_interval():
    out = resample_in_time([(0, 0, 500), (103, 0, 1530)], hz=20)
    # floor(1030 * 20 / 1000) + 1
    assert len(out) == 21
    assert out[0, 2] == 0.0
    assert out[-1, 2] == pytest.approx(1000.0)
    assert out[-1, 0] == pytest.approx(103 * 1000.0 / 1030.0)


def test_resample_irregular_timestamps_interpolates():
    pts = [(0, 0, 0), (10, 0, 30), (10, 20, 70), (40, 20, 100)]
    out = resample_in_time(pts, hz=100)
    assert_allclose(out[:, 2], [0, 10, 20, 30, 40, 50, 60, 70, 80, 90, 100])
    assert_allclose(out[3], [10, 0, 30])
    assert_allclose(out[5], [10, 10, 50])


def test_resample_needs_two_points():
    assert len(resample_in_time([(1, 1, 0)], hz=20)) == 0
    assert len(resample_in_time([], hz=20)) == 0


def test_derivative_length_and_sign(min_jerk_movement):
    resampled = resample_in_time(min_jerk_movement(300, 600, angle=2.5), hz=40)
    vel = derivative(resampled)
    assert len(vel) == len(resampled) - 1
    assert np.all(vel[:, 1] >= 0)
    assert_allclose(vel[:, 0], resampled[:-1, 2])


def test_derivative_constant_speed(linear_movement):
    vel = velocity_profile(linear_movement(100, speed=0.25), hz=20)
    assert_allclose(vel[:, 1], 0.25)


@pytest.mark.parametrize('stdev', [1, 3, 7])
def test_gaussian_kernel_shape(stdev):
    k = gaussian_kernel(stdev)
    assert len(k) == 6 * stdev + 1
    assert len(k) % 2 == 1
    assert_allclose(k, k[::-1])
    assert k.sum() == pytest.approx(1.0)
    assert np.argmax(k) == 3 * stdev


def test_gaussian_kernel_zero_stdev_is_identity():
    assert_allclose(gaussian_kernel(0), [1.0])
    series = np.array([1.0, 5.0, 2.0])
    assert_allclose(smooth(series, gaussian_kernel(0)), series)


def test_smooth_keeps_length_and_constants():
    k = gaussian_kernel(7)
    for n in (1, 3, 10, 100):
        out = smooth(np.full(n, 2.5), k)
        assert len(out) == n
        # clamped edges: a constant series stays constant
        assert_allclose(out, 2.5)


def test_smooth_velocity_profile_keeps_timestamps():
    vel = np.c_[np.arange(5) * 50.0, [0.0, 1.0, 4.0, 1.0, 0.0]]
    out = smooth(vel, gaussian_kernel(1))
    assert_allclose(out[:, 0], vel[:, 0])
    assert out[2, 1] < 4.0
    assert out[:, 1].sum() == pytest.approx(vel[:, 1].sum(), rel=0.2)


def test_accept_point_rules():
    assert accept_point(None, (0, 0, 0))
    assert accept_point((0, 0, 0), (1, 0, 10))
    assert not accept_point((0, 0, 0), (0.5, 0.5, 10))
    assert not accept_point((0, 0, 10), (5, 0, 10))
    assert accept_point((0, 0, 10), (0.2, 0, 20), min_distance=0.0)


def test_dedupe_compares_with_last_kept_point():
    pts = [(0, 0, 0), (0.6, 0, 10), (1.2, 0, 20), (1.2, 0, 30), (5, 0, 20), (9, 0, 40)]
    out = dedupe_points(pts)
    assert_allclose(out, [(0, 0, 0), (1.2, 0, 20), (9, 0, 40)])


def test_crow_distance():
    assert crow_distance([(0, 0, 0), (50, 50, 10), (30, 40, 20)]) == pytest.approx(50.0)
    assert crow_distance([(3, 3, 0)]) == 0.0


def test_compare_identical_profiles_is_zero():
    k = gaussian_kernel(3)
    vel = np.c_[np.arange(20) * 50.0, np.sin(np.linspace(0, np.pi, 20))]
    assert compare_profiles(smooth(vel, k), vel, k) == pytest.approx(0.0, abs=1e-12)


def test_compare_counts_unmatched_query_samples():
    k = gaussian_kernel(0)
    query = np.array([1.0, 1.0, 1.0, 1.0])
    other = np.array([1.0])
    assert compare_profiles(query, other, k) == pytest.approx(3.0 / 4.0)


def test_compare_never_extends_the_template():
    k = gaussian_kernel(0)
    query = np.array([2.0, 2.0])
    other = np.array([1.0, 1.0, 50.0, 50.0])
    assert compare_profiles(query, other, k) == pytest.approx(1.0)


def test_compare_is_not_symmetric():
    k = gaussian_kernel(0)
    longer = np.full(8, 1.0)
    shorter = np.full(2, 1.0)
    assert compare_profiles(longer, shorter, k) == pytest.approx(6.0 / 8.0)
    assert compare_profiles(shorter, longer, k) == pytest.approx(0.0)


def test_compare_empty_query_fails():
    with pytest.raises(InsufficientData):
        compare_profiles(np.zeros(0), np.ones(5), gaussian_kernel(2))


def test_project_endpoint_1d_follows_direction():
    start = (500.0, 300.0, 0.0)
    assert project_endpoint(start, (520.0, 310.0, 50.0), 100.0, Mode.ONE_D) == pytest.approx((600.0, 300.0))
    assert project_endpoint(start, (480.0, 290.0, 50.0), 100.0, Mode.ONE_D) == pytest.approx((400.0, 300.0))


def test_project_endpoint_2d_follows_chord():
    start = (0.0, 0.0, 0.0)
    x, y = project_endpoint(start, (3.0, 4.0, 20.0), 100.0, Mode.TWO_D)
    assert (x, y) == pytest.approx((60.0, 80.0))
    x, y = project_endpoint(start, (-10.0, 10.0, 20.0), 10.0, Mode.TWO_D)
    assert (x, y) == pytest.approx((-10 / math.sqrt(2), 10 / math.sqrt(2)))
