"""
FocusForge — Geometric Feature Tests
=====================================
Eye openness, head deviation, near-profile pose and motion, on synthetic
landmarks (no detector needed).
"""

from __future__ import annotations

import pytest

from focusforge.core.models import FaceObservation
from focusforge.processing.geometry import FeatureExtractor, centroid, eye_openness_ratio


# ─── Fixtures ─────────────────────────────────────────────────

def _eye(cx: float, cy: float, openness: float, half_width: float = 25.0):
    """6-point eye whose eye-openness ratio equals `openness`."""
    v = half_width * openness
    return (
        (cx - half_width, cy),
        (cx - half_width / 3, cy - v),
        (cx + half_width / 3, cy - v),
        (cx + half_width, cy),
        (cx + half_width / 3, cy + v),
        (cx - half_width / 3, cy + v),
    )


def _face(openness: float = 0.3, nose=(320.0, 260.0), left_eye=None, right_eye=None) -> FaceObservation:
    # Eye centers at x=260 / x=380, face width 170, nose centred at x=320
    return FaceObservation(
        bounding_box=(200.0, 100.0, 240.0, 280.0),
        left_eye=_eye(260.0, 200.0, openness) if left_eye is None else left_eye,
        right_eye=_eye(380.0, 200.0, openness) if right_eye is None else right_eye,
        nose_tip=nose,
    )


# ─── Eye openness ─────────────────────────────────────────────

def test_eye_openness_ratio_matches_construction():
    assert eye_openness_ratio(_eye(100, 100, 0.3)) == pytest.approx(0.3)
    assert eye_openness_ratio(_eye(100, 100, 0.1)) == pytest.approx(0.1)


def test_eye_with_no_width_has_zero_ratio():
    flat = ((10, 10), (10, 5), (10, 5), (10, 10), (10, 15), (10, 15))
    assert eye_openness_ratio(flat) == 0.0


def test_centroid():
    cx, cy = centroid(_eye(260, 200, 0.3))
    assert cx == pytest.approx(260)
    assert cy == pytest.approx(200)


# ─── Extractor ────────────────────────────────────────────────

def test_neutral_face_fires_nothing():
    features = FeatureExtractor().extract(_face(), previous_nose=None)

    assert features.eye_openness == pytest.approx(0.3)
    assert features.eyes_closed is False
    assert features.head_turned is False
    assert features.near_profile is False
    assert features.motion_burst is False
    assert features.face_width == pytest.approx(170.0)
    assert features.nose_displacement is None


def test_closed_eyes():
    features = FeatureExtractor().extract(_face(openness=0.1), previous_nose=None)
    assert features.eyes_closed is True


def test_head_turned_past_ten_percent_of_face_width():
    # 10% of 170 = 17; an 18 px offset turns the head, 16 px does not
    assert FeatureExtractor().extract(_face(nose=(338.0, 260.0)), None).head_turned is True
    assert FeatureExtractor().extract(_face(nose=(336.0, 260.0)), None).head_turned is False


def test_near_profile_fires_together_with_head_turn():
    # 15 px from the right eye center, 45 px off the midpoint
    features = FeatureExtractor().extract(_face(nose=(365.0, 260.0)), None)
    assert features.near_profile is True
    assert features.head_turned is True


def test_motion_burst_is_relative_to_frame_width():
    extractor = FeatureExtractor()
    # 3% of 640 = 19.2
    assert extractor.extract(_face(nose=(320.0, 285.0)), previous_nose=(320.0, 260.0)).motion_burst is True
    assert extractor.extract(_face(nose=(320.0, 275.0)), previous_nose=(320.0, 260.0)).motion_burst is False


def test_malformed_eyes_skip_eye_penalties_but_keep_motion():
    short_eye = _eye(260.0, 200.0, 0.05)[:5]
    face = _face(openness=0.05, nose=(262.0, 300.0), left_eye=short_eye)

    features = FeatureExtractor().extract(face, previous_nose=(320.0, 260.0))

    assert features.eye_openness is None
    assert features.eyes_closed is False
    assert features.head_turned is False
    assert features.near_profile is False
    assert features.motion_burst is True


def test_flags_are_plain_bools():
    for nose in ((320.0, 260.0), (365.0, 260.0)):
        features = FeatureExtractor().extract(_face(nose=nose), previous_nose=(320.0, 200.0))
        for flag in (features.eyes_closed, features.head_turned, features.near_profile, features.motion_burst):
            assert type(flag) is bool
        assert type(features.face_width) is float
