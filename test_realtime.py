"""
test_realtime.py

Streaming prediction while a movement is still being produced.
"""

import math

import numpy as np
import pytest

from ktm import (
    TRACE_COLUMNS, EmptyLibrary, IncompatibleLibrary, InsufficientData, MatcherConfig, Mode,
    RTTemplate, Template, TemplateLibrary, TimedPoint,
)


def _single_template_library(linear_movement, mode=Mode.TWO_D):
    config = MatcherConfig(mode=mode)
    template = Template.from_config(0, linear_movement(100, speed=0.1), config)
    assert template.dist_crow == pytest.approx(100.0)
    return TemplateLibrary([template], config)


def _feed(predictor, points):
    for pt in points:
        predictor.add_point(TimedPoint(*pt))


def test_predict_1d_positive_direction(linear_movement):
    lib = _single_template_library(linear_movement, Mode.ONE_D)
    rt = RTTemplate.for_library(lib)
    _feed(rt, linear_movement(40, start=(300.0, 250.0))[:30])
    pred = rt.predict_1d(lib)
    assert (pred.x, pred.y) == pytest.approx((400.0, 250.0))
    assert pred.distance == pytest.approx(100.0)
    assert pred.win_id == 0
    assert pred.num_points == 30


def test_predict_1d_negative_direction(linear_movement):
    lib = _single_template_library(linear_movement, Mode.ONE_D)
    rt = RTTemplate.for_library(lib)
    _feed(rt, linear_movement(40, angle=math.pi, start=(300.0, 250.0))[:30])
    pred = rt.predict_1d(lib)
    assert (pred.x, pred.y) == pytest.approx((200.0, 250.0))
    assert pred.distance == pytest.approx(-100.0)


def test_predict_2d_follows_chord(linear_movement):
    lib = _single_template_library(linear_movement)
    rt = RTTemplate.for_library(lib)
    angle = math.radians(45)
    _feed(rt, linear_movement(40, speed=0.2, angle=angle, start=(0.0, 0.0))[:15])
    pred = rt.predict_2d(lib)
    expected = 100.0 / math.sqrt(2)
    assert (pred.x, pred.y) == pytest.approx((expected, expected))
    assert pred.distance == pytest.approx(100.0)


def test_predict_uses_configured_mode(linear_movement):
    lib = _single_template_library(linear_movement, Mode.ONE_D)
    rt = RTTemplate.for_library(lib)
    _feed(rt, linear_movement(40, speed=0.2, angle=math.radians(30), start=(0.0, 0.0))[:15])
    assert rt.predict(lib) == rt.predict_1d(lib)
    assert rt.predict(lib).y == pytest.approx(0.0)


def test_predict_with_one_point_fails(linear_movement):
    lib = _single_template_library(linear_movement)
    rt = RTTemplate.for_library(lib)
    with pytest.raises(InsufficientData):
        rt.predict_1d(lib)
    rt.add_point((10, 10, 0))
    with pytest.raises(InsufficientData):
        rt.predict_1d(lib)
    with pytest.raises(InsufficientData):
        rt.predict_2d(lib)
    assert rt.trace == []


def test_predict_before_first_velocity_sample_fails(linear_movement):
    lib = _single_template_library(linear_movement)
    rt = RTTemplate.for_library(lib)
    # 20 Hz: nothing to differentiate until 50 ms have passed
    rt.add_point((0, 0, 0))
    rt.add_point((5, 0, 30))
    with pytest.raises(InsufficientData):
        rt.predict_2d(lib)
    rt.add_point((10, 0, 60))
    rt.predict_2d(lib)


def test_add_point_recomputes_profile(linear_movement):
    rt = RTTemplate(MatcherConfig(hz=20, stdev=7))
    pts = linear_movement(50, speed=0.1)
    _feed(rt, pts)
    assert len(rt) == len(pts)
    assert len(rt.resampled_vel) == 10
    assert len(rt.smoothed_vel) == len(rt.resampled_vel)
    np.testing.assert_allclose(rt.smoothed_vel[:, 1], 0.1)
    assert rt.dist_crow == pytest.approx(50.0)


def test_add_point_drops_duplicates():
    rt = RTTemplate()
    assert rt.add_point((0, 0, 0))
    assert not rt.add_point((0.5, 0, 10))
    assert not rt.add_point((5, 0, 0))
    assert rt.add_point((5, 0, 10))
    assert len(rt) == 2


def test_clear_starts_new_session(linear_movement):
    lib = _single_template_library(linear_movement)
    rt = RTTemplate.for_library(lib)
    _feed(rt, linear_movement(40)[:20])
    rt.predict(lib)
    session = rt.session_id
    rt.clear()
    assert rt.session_id == session + 1
    assert len(rt) == 0
    assert len(rt.resampled_vel) == 0
    assert len(rt.smoothed_vel) == 0
    assert rt.dist_crow == 0.0
    assert rt.trace == []


def test_trace_frame(linear_movement):
    lib = _single_template_library(linear_movement)
    rt = RTTemplate.for_library(lib)
    pts = linear_movement(40)
    for pt in pts:
        rt.add_point(pt)
        if len(rt) >= 7:
            rt.predict(lib)
    frame = rt.trace_frame(click=(141.0, 100.0), target=(150.0, 100.0))
    assert list(frame.columns) == TRACE_COLUMNS
    assert len(frame) == len(pts) - 6
    assert frame['num_points'].tolist() == list(range(7, len(pts) + 1))
    assert (frame['act_x'] == 141.0).all()
    assert (frame['targ_x'] == 150.0).all()
    assert (frame['win_id'] == 0).all()
    assert frame['raw_x'].iloc[-1] == pytest.approx(pts[-1, 0])


def test_trace_frame_without_click(linear_movement):
    lib = _single_template_library(linear_movement)
    rt = RTTemplate.for_library(lib)
    _feed(rt, linear_movement(40)[:20])
    rt.predict(lib)
    frame = rt.trace_frame()
    assert frame['act_x'].isna().all()


def test_predict_rejects_incompatible_library(linear_movement):
    lib = _single_template_library(linear_movement)
    rt = RTTemplate(MatcherConfig(hz=40))
    _feed(rt, linear_movement(40)[:20])
    with pytest.raises(IncompatibleLibrary):
        rt.predict(lib)


def test_predict_against_empty_library(linear_movement):
    lib = TemplateLibrary([], MatcherConfig())
    rt = RTTemplate.for_library(lib)
    _feed(rt, linear_movement(40)[:20])
    with pytest.raises(EmptyLibrary):
        rt.predict(lib)


def test_prediction_picks_replayed_movement(session_log):
    lib = TemplateLibrary.load(session_log)
    target = lib[6]
    rt = RTTemplate.for_library(lib)
    for pt in target.raw_points:
        rt.add_point(pt)
    pred = rt.predict(lib)
    assert pred.win_id == target.id
    assert pred.score == pytest.approx(0.0, abs=1e-9)
    end = target.raw_points[-1]
    assert math.hypot(pred.x - end[0], pred.y - end[1]) == pytest.approx(0.0, abs=1e-6)
