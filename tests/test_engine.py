from __future__ import annotations

import pytest

from pullpush.common.errors import EngineFinalizedError
from pullpush.common.events import EventType
from pullpush.counter.engine import RepEngine
from pullpush.counter.exercises import ExerciseMode, RepPhase, get_rep_config


@pytest.fixture
def engine():
    return RepEngine(ExerciseMode.PUSH_UP, throttle_ms=33, feedback_ms=2000, min_visibility=0.0)


def test_concrete_push_up_scenario(engine, feed):
    feed(engine, [170, 165, 80, 85, 170])
    assert engine.current_count() == 1
    assert engine.phase == RepPhase.EXTENDED


def test_intermediate_frames_do_not_change_result(engine, feed):
    feed(engine, [170] + [150, 140, 130, 120, 110, 100, 95] + [80] + [85, 100, 140] + [170])
    assert engine.current_count() == 1


def test_listener_called_once_per_rep_in_order(engine, feed):
    seen = []
    engine.on_rep_completed(seen.append)
    feed(engine, [170, 80, 170, 80, 170, 120, 170, 80])
    assert seen == [1, 2, 3]
    assert engine.current_count() == 3


def test_rejected_rep_not_reported_to_rep_listeners(engine, feed):
    seen = []
    engine.on_rep_completed(seen.append)
    feed(engine, [170, 80], alignment=0.5)
    assert seen == []
    assert engine.bad_form_count == 1
    assert engine.phase == RepPhase.CONTRACTED


def test_event_listener_gets_everything(engine, feed):
    events = []
    engine.on_event(events.append)
    feed(engine, [None, 170, 80])
    assert [e.type for e in events] == [
        EventType.POSE_LOST, EventType.POSE_ACQUIRED, EventType.PHASE, EventType.PHASE, EventType.REP,
    ]


def test_throttle_drops_fast_frames(engine, make_frame):
    engine.on_frame(make_frame(170), 0)
    engine.on_frame(make_frame(80), 10)
    engine.on_frame(make_frame(80), 20)
    assert engine.current_count() == 0
    assert engine.frames_dropped == 2
    engine.on_frame(make_frame(80), 40)
    assert engine.current_count() == 1
    assert engine.frames_seen == 4


def test_feedback_messages(engine, feed):
    cfg = get_rep_config(ExerciseMode.PUSH_UP)
    assert engine.current_feedback(now_ms=0).text == cfg.cue_idle

    feed(engine, [None], start_ms=0)
    assert engine.current_feedback(now_ms=50).text == cfg.cue_acquire

    feed(engine, [170], start_ms=100)
    assert engine.current_feedback(now_ms=150).text == cfg.cue_extended

    feed(engine, [80], start_ms=200)
    fb = engine.current_feedback(now_ms=250)
    assert fb.text == cfg.cue_rep
    assert fb.expires_at_ms == 2200

    assert engine.current_feedback(now_ms=2200).text == cfg.cue_idle
    assert engine.current_feedback(now_ms=2200).expires_at_ms is None


def test_bad_form_feedback(engine, feed):
    feed(engine, [170])
    feed(engine, [80], start_ms=100, alignment=0.4)
    assert engine.current_feedback(now_ms=150).text == "Keep your body straight!"


def test_feedback_uses_injected_clock(feed):
    now = {"t": 0.0}
    eng = RepEngine("push-up", throttle_ms=0, feedback_ms=1000, clock=lambda: now["t"])
    feed(eng, [170, 80])
    now["t"] = 150
    assert eng.current_feedback().text == "Rep counted"
    now["t"] = 5000
    assert eng.current_feedback().text == "Keep doing push-ups"


def test_finalize(engine, feed, make_frame):
    feed(engine, [170, 80])
    assert engine.finalize() == 1
    assert engine.finalized
    assert engine.current_count() == 1
    assert engine.finalize() == 1
    with pytest.raises(EngineFinalizedError):
        engine.on_frame(make_frame(170), 10_000)


def test_mode_is_fixed_per_engine(engine, feed):
    feed(engine, [170, 80])
    with pytest.raises(AttributeError):
        engine.mode = ExerciseMode.PULL_UP
    assert not any(hasattr(engine, name) for name in ("set_mode", "change_mode", "reset"))

    # switching exercise means a new engine, starting at zero
    pull = RepEngine(ExerciseMode.PULL_UP)
    assert pull.mode == ExerciseMode.PULL_UP
    assert pull.current_count() == 0
    assert engine.current_count() == 1


def test_mode_and_config_must_agree():
    with pytest.raises(ValueError):
        RepEngine(ExerciseMode.PULL_UP, cfg=get_rep_config(ExerciseMode.PUSH_UP))


def test_unknown_mode_rejected():
    with pytest.raises(ValueError):
        RepEngine("squat")
