"""
FocusForge — Focus Engine

Frame observation → (emotion, geometry) → aggregator → throttle.

One engine owns one SessionState for the lifetime of a monitoring session.
Every stage receives that state explicitly; there is no module-level mutable
state, so independent sessions never interfere.
"""

from __future__ import annotations

import logging
import random
from collections import deque
from typing import Optional

from ..core.config import FocusConfig, focus_cfg
from ..core.models import (
    FaceObservation,
    FocusResult,
    FrameObservation,
    SessionState,
    TickOutcome,
    TimerContext,
)
from .alerts import AlertThrottle
from .emotion import EmotionClassifier, dominant_emotion, emotion_weight
from .geometry import FeatureExtractor, GeometricFeatures
from .scoring import DistractionAggregator

logger = logging.getLogger("focusforge.engine")


class FocusEngine:
    """
    Lifecycle:
        engine = FocusEngine()
        outcome = engine.process(observation, timer_context, now)
        outcome.result   # FocusResult for display
        outcome.alert    # FocusAlert or None
        engine.reset()   # tracking stopped
    """

    def __init__(
        self,
        cfg: FocusConfig = focus_cfg,
        rng: Optional[random.Random] = None,
    ) -> None:
        self._cfg = cfg
        self._classifier = EmotionClassifier(cfg)
        self._extractor = FeatureExtractor(cfg)
        self._aggregator = DistractionAggregator(cfg)
        self._throttle = AlertThrottle(cfg, rng=rng)
        self._state = self._fresh_state()

    def _fresh_state(self) -> SessionState:
        return SessionState(emotion_history=deque(maxlen=self._cfg.history_capacity))

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def throttle(self) -> AlertThrottle:
        return self._throttle

    def reset(self) -> None:
        """Drop all rolling counters, history and any pending cooldown."""
        self._state = self._fresh_state()
        logger.debug("Engine state reset")

    def process(
        self,
        observation: FrameObservation,
        context: TimerContext,
        now: float,
    ) -> TickOutcome:
        state = self._state
        if isinstance(observation, FaceObservation):
            features = self._process_face(state, observation, now)
            alert = self._throttle.evaluate(state, context, now)
        else:
            self._aggregator.register_miss(state)
            features = GeometricFeatures()
            alert = None
        return TickOutcome(result=self._result(state, features, now), alert=alert)

    # ── stages ─────────────────────────────────────────────────────────

    def _process_face(
        self,
        state: SessionState,
        face: FaceObservation,
        now: float,
    ) -> GeometricFeatures:
        label = dominant_emotion(face.expressions)
        bonus = self._classifier.volatility_bonus(state)
        self._classifier.record(state, label, now)
        state.dominant_emotion = label

        features = self._extractor.extract(face, state.previous_nose_position)
        state.previous_nose_position = face.nose_tip

        self._aggregator.score_face(state, emotion_weight(label), bonus, features)
        return features

    @staticmethod
    def _result(state: SessionState, features: GeometricFeatures, now: float) -> FocusResult:
        return FocusResult(
            focus_score=state.current_focus_score,
            distraction_level=state.distraction_level,
            dominant_emotion=state.dominant_emotion,
            face_detected=state.face_detected,
            attention_shift_count=state.attention_shift_count,
            eyes_closed=features.eyes_closed,
            head_turned=features.head_turned,
            near_profile=features.near_profile,
            motion_burst=features.motion_burst,
            eye_openness=features.eye_openness,
            timestamp=now,
        )
