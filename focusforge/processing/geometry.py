"""
FocusForge — Geometric Feature Extractor

Derives per-tick attention signals from face landmarks:
  • eye-openness ratio (EAR) averaged over both eyes
  • horizontal head deviation of the nose from the eye midpoint
  • near-profile pose (nose almost on top of an eye center)
  • nose-tip displacement since the previous tick

Eye-dependent signals are None ("unknown") when either eye has fewer than
the required landmarks; they then contribute nothing for that tick.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Sequence

import numpy as np

from ..core.config import FocusConfig, focus_cfg
from ..core.models import FaceObservation, Point


@dataclass(frozen=True)
class GeometricFeatures:
    eye_openness: Optional[float] = None
    eyes_closed: bool = False
    head_deviation: Optional[float] = None
    face_width: Optional[float] = None
    head_turned: bool = False
    near_profile: bool = False
    nose_displacement: Optional[float] = None
    motion_burst: bool = False


def eye_openness_ratio(points: Sequence[Point]) -> float:
    """vertical(p1, p5) / horizontal(p0, p3); 0 when the eye has no width."""
    pts = np.asarray(points, dtype=np.float64)
    vertical = float(np.linalg.norm(pts[1] - pts[5]))
    horizontal = float(np.linalg.norm(pts[0] - pts[3]))
    return vertical / horizontal if horizontal != 0 else 0.0


def centroid(points: Sequence[Point]) -> np.ndarray:
    return np.asarray(points, dtype=np.float64).mean(axis=0)


class FeatureExtractor:
    """Computes GeometricFeatures for one face; thresholds come from FocusConfig."""

    def __init__(self, cfg: FocusConfig = focus_cfg) -> None:
        self._cfg = cfg

    def extract(self, face: FaceObservation, previous_nose: Optional[Point]) -> GeometricFeatures:
        cfg = self._cfg
        eyes_ok = (
            len(face.left_eye) >= cfg.min_eye_landmarks
            and len(face.right_eye) >= cfg.min_eye_landmarks
        )
        nose = np.asarray(face.nose_tip, dtype=np.float64)

        ear: Optional[float] = None
        deviation: Optional[float] = None
        face_width: Optional[float] = None
        near_profile = False

        if eyes_ok:
            ear = (eye_openness_ratio(face.left_eye) + eye_openness_ratio(face.right_eye)) / 2.0

            left_center = centroid(face.left_eye)
            right_center = centroid(face.right_eye)
            eyes_center = (left_center + right_center) / 2.0
            face_width = float(abs(face.right_eye[3][0] - face.left_eye[0][0]))
            deviation = float(abs(nose[0] - eyes_center[0]))

            nose_x = float(nose[0])
            near_profile = (
                abs(nose_x - float(left_center[0])) < cfg.near_profile_distance
                or abs(nose_x - float(right_center[0])) < cfg.near_profile_distance
            )

        displacement: Optional[float] = None
        if previous_nose is not None:
            displacement = float(np.linalg.norm(nose - np.asarray(previous_nose, dtype=np.float64)))

        return GeometricFeatures(
            eye_openness=round(ear, 4) if ear is not None else None,
            eyes_closed=ear is not None and ear < cfg.ear_threshold,
            head_deviation=deviation,
            face_width=face_width,
            head_turned=(
                deviation is not None
                and face_width is not None
                and deviation > cfg.head_deviation_ratio * face_width
            ),
            near_profile=near_profile,
            nose_displacement=displacement,
            motion_burst=(
                displacement is not None
                and displacement > cfg.motion_ratio * face.frame_width
            ),
        )
