"""
FocusForge — Distraction Aggregator

Per face tick:
  distraction = emotion weight + volatility bonus + geometric penalties
  clamp to [0, 100]
  focus = floor(100 / (1 + e^(-k * ((100 - distraction) - midpoint))))

Per missed tick the score is left alone until the miss threshold is reached,
then decays a fixed step per tick instead of collapsing to zero.
"""

from __future__ import annotations

import logging
import math

from ..core.config import FocusConfig, focus_cfg
from ..core.models import SessionState
from .geometry import GeometricFeatures

logger = logging.getLogger("focusforge.scoring")


def clamp(value: float, low: int = 0, high: int = 100) -> int:
    return int(max(low, min(high, value)))


def focus_from_distraction(distraction: int, cfg: FocusConfig = focus_cfg) -> int:
    raw = 100 - distraction
    score = math.floor(100 / (1 + math.exp(-cfg.sigmoid_steepness * (raw - cfg.sigmoid_midpoint))))
    return clamp(score)


class DistractionAggregator:

    def __init__(self, cfg: FocusConfig = focus_cfg) -> None:
        self._cfg = cfg

    def penalties(self, features: GeometricFeatures) -> int:
        cfg = self._cfg
        total = 0
        if features.eyes_closed:
            total += cfg.eyes_closed_penalty
        if features.head_turned:
            total += cfg.head_deviation_penalty
        # Independent of head_turned; both can fire on one frame
        if features.near_profile:
            total += cfg.near_profile_penalty
        if features.motion_burst:
            total += cfg.motion_penalty
        return total

    def attention_shifts(self, features: GeometricFeatures) -> int:
        return int(features.eyes_closed) + int(features.head_turned) + int(features.motion_burst)

    def score_face(
        self,
        state: SessionState,
        emotion_weight: int,
        volatility_bonus: int,
        features: GeometricFeatures,
    ) -> int:
        """Apply one face tick to the session state. Returns the new focus score."""
        distraction = clamp(emotion_weight + volatility_bonus + self.penalties(features))
        focus = focus_from_distraction(distraction, self._cfg)

        state.attention_shift_count += self.attention_shifts(features)
        state.consecutive_missed_frames = 0
        state.face_detected = True
        state.distraction_level = distraction
        state.current_focus_score = focus
        state.ticks_processed += 1
        state.focus_score_total += focus
        return focus

    def register_miss(self, state: SessionState) -> int:
        """Apply one NoFace tick. Returns the (possibly decayed) focus score."""
        state.consecutive_missed_frames += 1
        if state.consecutive_missed_frames >= self._cfg.missed_frame_threshold:
            if state.face_detected:
                logger.debug(
                    f"Face lost after {state.consecutive_missed_frames} missed ticks"
                )
            state.face_detected = False
            state.current_focus_score = max(0, state.current_focus_score - self._cfg.missed_frame_decay)
        return state.current_focus_score
