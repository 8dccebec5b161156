"""
FocusForge — Emotion Classifier

Reduces an expression-probability mapping to one dominant label and keeps
the bounded label history used for volatility detection.

Detector mappings have no guaranteed iteration order, so labels are ranked
in a fixed order (EmotionLabel order, then unknown labels sorted) before
the max is taken — first wins on ties.
"""

from __future__ import annotations

from typing import Iterable, List, Mapping

from ..core.config import EMOTION_WEIGHTS, UNMAPPED_EMOTION_WEIGHT, FocusConfig, focus_cfg
from ..core.models import EmotionHistoryEntry, EmotionLabel, SessionState

_LABEL_ORDER: List[str] = [label.value for label in EmotionLabel]


def _ordered_labels(labels: Iterable[str]) -> List[str]:
    present = set(labels)
    known = [label for label in _LABEL_ORDER if label in present]
    unknown = sorted(present.difference(_LABEL_ORDER))
    return known + unknown


def dominant_emotion(expressions: Mapping[str, float]) -> str:
    """Label with the highest probability; neutral when the mapping is empty."""
    if not expressions:
        return EmotionLabel.NEUTRAL.value

    best_label = EmotionLabel.NEUTRAL.value
    best_prob = float("-inf")
    for label in _ordered_labels(expressions.keys()):
        prob = expressions[label]
        if prob > best_prob:
            best_label, best_prob = label, prob
    return best_label


def emotion_weight(label: str) -> int:
    return EMOTION_WEIGHTS.get(label, UNMAPPED_EMOTION_WEIGHT)


class EmotionClassifier:
    """Classifies each face tick and records the label in the session history."""

    def __init__(self, cfg: FocusConfig = focus_cfg) -> None:
        self._cfg = cfg

    def volatility_bonus(self, state: SessionState) -> int:
        """
        Flat bonus when the recent history switches between many labels.
        Reads the history as it stands *before* the current tick is recorded.
        """
        recent = list(state.emotion_history)[-self._cfg.volatility_window:]
        distinct = {entry.emotion for entry in recent}
        if len(distinct) >= self._cfg.volatility_min_distinct:
            return self._cfg.volatility_bonus
        return 0

    def record(self, state: SessionState, label: str, now: float) -> None:
        # deque(maxlen) evicts the oldest entry once capacity is reached
        state.emotion_history.append(EmotionHistoryEntry(emotion=label, observed_at=now))
