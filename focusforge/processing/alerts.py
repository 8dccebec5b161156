"""
FocusForge — Alert Throttle

Rule-based low-focus notifications with a wall-clock cooldown.

Two states, derived from SessionState.cooldown_until:
  IDLE      — no cooldown, or the cooldown has expired
  COOLDOWN  — an alert went out less than `alert_cooldown` seconds ago

At most one alert per cooldown window, and none while the timer is idle,
outside work mode, or with no face in view.
"""

from __future__ import annotations

import logging
import random
from enum import Enum
from typing import Optional, Sequence

from ..core.config import FOCUS_SUGGESTIONS, FocusConfig, focus_cfg
from ..core.models import FocusAlert, SessionState, TimerContext, TimerMode

logger = logging.getLogger("focusforge.alerts")


class ThrottlePhase(str, Enum):
    IDLE = "idle"
    COOLDOWN = "cooldown"


class AlertThrottle:
    """Decides when a low focus score turns into an alert."""

    def __init__(
        self,
        cfg: FocusConfig = focus_cfg,
        suggestions: Sequence[str] = FOCUS_SUGGESTIONS,
        rng: Optional[random.Random] = None,
    ) -> None:
        self._cfg = cfg
        self._suggestions = tuple(suggestions)
        self._rng = rng or random.Random()

    def phase(self, state: SessionState, now: float) -> ThrottlePhase:
        if state.cooldown_until is not None and now < state.cooldown_until:
            return ThrottlePhase.COOLDOWN
        return ThrottlePhase.IDLE

    def evaluate(
        self,
        state: SessionState,
        context: TimerContext,
        now: float,
    ) -> Optional[FocusAlert]:
        if not (state.face_detected and context.is_active and context.mode == TimerMode.WORK):
            return None
        if state.current_focus_score >= self._cfg.alert_threshold:
            return None
        if self.phase(state, now) is ThrottlePhase.COOLDOWN:
            return None

        suggestion = self._rng.choice(self._suggestions)
        state.last_alert_at = now
        state.cooldown_until = now + self._cfg.alert_cooldown
        logger.info(f"Low focus alert (score={state.current_focus_score}): {suggestion}")
        return FocusAlert(
            message=f"Low focus detected: {suggestion}",
            emitted_at=now,
            focus_score=state.current_focus_score,
        )
