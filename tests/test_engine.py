"""
FocusForge — Focus Engine Tests
================================
End-to-end ticks through classifier → extractor → aggregator → throttle.
"""

from __future__ import annotations

import json
import random

from focusforge.core.config import FocusConfig
from focusforge.core.models import NO_FACE, FaceObservation, TimerContext, TimerMode
from focusforge.processing.engine import FocusEngine

IDLE_TIMER = TimerContext()
WORKING = TimerContext(is_active=True, mode=TimerMode.WORK)


# ─── Fixtures ─────────────────────────────────────────────────

def _eye(cx: float, cy: float, openness: float):
    v = 25.0 * openness
    return (
        (cx - 25, cy), (cx - 25 / 3, cy - v), (cx + 25 / 3, cy - v),
        (cx + 25, cy), (cx + 25 / 3, cy + v), (cx - 25 / 3, cy + v),
    )


def _face(openness: float = 0.3, nose=(320.0, 260.0), expressions=None) -> FaceObservation:
    return FaceObservation(
        bounding_box=(200.0, 100.0, 240.0, 280.0),
        left_eye=_eye(260.0, 200.0, openness),
        right_eye=_eye(380.0, 200.0, openness),
        nose_tip=nose,
        expressions=expressions if expressions is not None else {"neutral": 0.9, "happy": 0.1},
    )


# ─── Face ticks ───────────────────────────────────────────────

def test_attentive_neutral_face():
    engine = FocusEngine()
    outcome = engine.process(_face(), IDLE_TIMER, now=0.0)

    assert outcome.result.focus_score == 98
    assert outcome.result.distraction_level == 10
    assert outcome.result.dominant_emotion == "neutral"
    assert outcome.result.face_detected is True
    assert outcome.result.attention_shift_count == 0
    assert outcome.alert is None


def test_eyes_closed_is_one_attention_shift():
    engine = FocusEngine()
    outcome = engine.process(_face(openness=0.1), IDLE_TIMER, now=0.0)

    assert outcome.result.eyes_closed is True
    assert outcome.result.distraction_level == 60
    assert outcome.result.focus_score == 26
    assert outcome.result.attention_shift_count == 1


def test_first_face_tick_never_has_motion():
    engine = FocusEngine()
    outcome = engine.process(_face(nose=(320.0, 400.0)), IDLE_TIMER, now=0.0)
    assert outcome.result.motion_burst is False


def test_nose_position_carries_between_ticks():
    engine = FocusEngine()
    engine.process(_face(), IDLE_TIMER, now=0.0)
    outcome = engine.process(_face(nose=(320.0, 285.0)), IDLE_TIMER, now=1.0)

    assert outcome.result.motion_burst is True
    assert outcome.result.distraction_level == 25
    assert engine.state.previous_nose_position == (320.0, 285.0)


def test_unknown_expression_uses_unmapped_weight():
    engine = FocusEngine()
    outcome = engine.process(_face(expressions={"contempt": 0.8, "neutral": 0.2}), IDLE_TIMER, now=0.0)

    assert outcome.result.dominant_emotion == "contempt"
    assert outcome.result.distraction_level == 30


def test_volatility_bonus_fires_on_fifth_distinct_label():
    engine = FocusEngine()
    labels = ["neutral", "happy", "sad", "angry", "fearful"]
    levels = []
    for t, label in enumerate(labels):
        outcome = engine.process(_face(expressions={label: 1.0}), IDLE_TIMER, now=float(t))
        levels.append(outcome.result.distraction_level)

    # weight only on ticks 1-4, weight + 15 on tick 5
    assert levels == [10, 20, 40, 60, 85]


def test_emotion_history_is_bounded():
    engine = FocusEngine()
    for t in range(12):
        engine.process(_face(), IDLE_TIMER, now=float(t))
    assert len(engine.state.emotion_history) == 10


# ─── Missed ticks ─────────────────────────────────────────────

def test_missed_ticks_decay_after_threshold():
    engine = FocusEngine()
    engine.process(_face(), IDLE_TIMER, now=0.0)

    results = [engine.process(NO_FACE, IDLE_TIMER, now=float(t)).result for t in range(1, 11)]

    assert all(r.face_detected for r in results[:9])
    assert results[8].focus_score == 98
    assert results[9].face_detected is False
    assert results[9].focus_score == 88


def test_no_face_tick_never_alerts():
    engine = FocusEngine(rng=random.Random(0))
    engine.state.current_focus_score = 5
    outcome = engine.process(NO_FACE, WORKING, now=0.0)
    assert outcome.alert is None


# ─── Alerts ───────────────────────────────────────────────────

def test_low_focus_alert_then_cooldown():
    engine = FocusEngine(rng=random.Random(0))

    first = engine.process(_face(openness=0.1), WORKING, now=0.0)
    second = engine.process(_face(openness=0.1), WORKING, now=10.0)
    third = engine.process(_face(openness=0.1), WORKING, now=30.0)

    assert first.alert is not None
    assert second.alert is None
    assert third.alert is not None


def test_reset_drops_state_and_cooldown():
    engine = FocusEngine(rng=random.Random(0))
    engine.process(_face(openness=0.1), WORKING, now=0.0)
    assert engine.state.attention_shift_count == 1

    engine.reset()

    assert engine.state.attention_shift_count == 0
    assert len(engine.state.emotion_history) == 0
    assert engine.state.cooldown_until is None
    assert engine.process(_face(openness=0.1), WORKING, now=1.0).alert is not None


# ─── Serialisation & config ───────────────────────────────────

def test_face_tick_result_is_json_serialisable():
    engine = FocusEngine()
    for nose in ((320.0, 260.0), (365.0, 260.0)):
        result = engine.process(_face(nose=nose), IDLE_TIMER, now=0.0).result
        payload = json.loads(json.dumps(result.to_dict()))

        for flag in ("eyes_closed", "head_turned", "near_profile", "motion_burst", "face_detected"):
            assert type(getattr(result, flag)) is bool
        assert isinstance(payload["near_profile"], bool)


def test_history_capacity_comes_from_engine_config():
    engine = FocusEngine(FocusConfig(history_capacity=3))
    for t in range(5):
        engine.process(_face(), IDLE_TIMER, now=float(t))

    assert engine.state.emotion_history.maxlen == 3
    assert len(engine.state.emotion_history) == 3

    engine.reset()
    assert engine.state.emotion_history.maxlen == 3
