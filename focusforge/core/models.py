"""
FocusForge — Data Models

Dataclasses for every piece of data flowing through the focus engine.
Single source of truth for shapes of data passed between stages.
"""

from __future__ import annotations

import math
import time
from collections import deque
from dataclasses import dataclass, field, asdict
from enum import Enum
from typing import Any, Deque, Dict, Mapping, Optional, Tuple, Union

from .config import focus_cfg

Point = Tuple[float, float]


class EmotionLabel(str, Enum):
    """Expression labels, in the order used to break probability ties."""
    NEUTRAL = "neutral"
    HAPPY = "happy"
    SAD = "sad"
    ANGRY = "angry"
    FEARFUL = "fearful"
    DISGUSTED = "disgusted"
    SURPRISED = "surprised"


class TimerMode(str, Enum):
    WORK = "work"
    SHORT_BREAK = "short_break"
    LONG_BREAK = "long_break"

    @classmethod
    def parse(cls, value: str) -> "TimerMode":
        # Accept the dashboard's camelCase names as well
        aliases = {"shortBreak": cls.SHORT_BREAK, "longBreak": cls.LONG_BREAK}
        if value in aliases:
            return aliases[value]
        return cls(value)


# ---------------------------------------------------------------------------
# Per-tick observations
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class NoFace:
    """The detector found nothing (or failed) on this tick."""

    def to_dict(self) -> Dict[str, Any]:
        return {"face": False}


NO_FACE = NoFace()


@dataclass(frozen=True)
class FaceObservation:
    """
    Primary face found by the detector on one frame.

    Coordinates are raw frame units (pixels). Eye landmark sequences follow
    the 6-point EAR convention: outer corner, two upper lid points, inner
    corner, two lower lid points.
    """
    bounding_box: Tuple[float, float, float, float]
    left_eye: Tuple[Point, ...]
    right_eye: Tuple[Point, ...]
    nose_tip: Point
    expressions: Mapping[str, float] = field(default_factory=dict)
    frame_width: float = 640.0
    frame_height: float = 480.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "face": True,
            "bounding_box": list(self.bounding_box),
            "left_eye": [list(p) for p in self.left_eye],
            "right_eye": [list(p) for p in self.right_eye],
            "nose_tip": list(self.nose_tip),
            "expressions": dict(self.expressions),
            "frame_width": self.frame_width,
            "frame_height": self.frame_height,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "FaceObservation":
        """Build from the observation JSON shape. Raises ValueError on bad input."""
        try:
            nose = _point(data["nose_tip"])
            box = tuple(float(v) for v in data.get("bounding_box", (0, 0, 0, 0)))
            if len(box) != 4:
                raise ValueError("bounding_box needs 4 values")
            expressions = {
                str(k): float(v)
                for k, v in (data.get("expressions") or {}).items()
                if v is not None and math.isfinite(float(v))
            }
            return cls(
                bounding_box=box,  # type: ignore[arg-type]
                left_eye=tuple(_point(p) for p in data.get("left_eye") or ()),
                right_eye=tuple(_point(p) for p in data.get("right_eye") or ()),
                nose_tip=nose,
                expressions=expressions,
                frame_width=float(data.get("frame_width", 640.0)),
                frame_height=float(data.get("frame_height", 480.0)),
            )
        except (KeyError, TypeError) as e:
            raise ValueError(f"Malformed face observation: {e}") from e


FrameObservation = Union[NoFace, FaceObservation]


def observation_from_dict(data: Mapping[str, Any]) -> FrameObservation:
    if not data.get("face", False):
        return NO_FACE
    return FaceObservation.from_dict(data)


def _point(value: Any) -> Point:
    if isinstance(value, Mapping):
        return float(value["x"]), float(value["y"])
    x, y = value
    return float(x), float(y)


# ---------------------------------------------------------------------------
# Session state, owned by exactly one engine
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class EmotionHistoryEntry:
    emotion: str
    observed_at: float


def _history_buffer() -> Deque[EmotionHistoryEntry]:
    return deque(maxlen=focus_cfg.history_capacity)


@dataclass
class SessionState:
    """Rolling counters that persist across ticks for one monitoring session."""
    previous_nose_position: Optional[Point] = None
    emotion_history: Deque[EmotionHistoryEntry] = field(default_factory=_history_buffer)
    attention_shift_count: int = 0
    consecutive_missed_frames: int = 0
    last_alert_at: Optional[float] = None
    cooldown_until: Optional[float] = None
    current_focus_score: int = 100
    distraction_level: int = 0
    dominant_emotion: str = EmotionLabel.NEUTRAL.value
    face_detected: bool = True
    ticks_processed: int = 0
    focus_score_total: int = 0

    @property
    def average_focus_score(self) -> Optional[float]:
        if self.ticks_processed == 0:
            return None
        return round(self.focus_score_total / self.ticks_processed, 1)


@dataclass
class TimerContext:
    """What the pomodoro timer tells the engine: running or not, and which mode."""
    is_active: bool = False
    mode: TimerMode = TimerMode.WORK


# ---------------------------------------------------------------------------
# Outputs
# ---------------------------------------------------------------------------

@dataclass
class FocusResult:
    focus_score: int = 100
    distraction_level: int = 0
    dominant_emotion: str = EmotionLabel.NEUTRAL.value
    face_detected: bool = True
    attention_shift_count: int = 0
    eyes_closed: bool = False
    head_turned: bool = False
    near_profile: bool = False
    motion_burst: bool = False
    eye_openness: Optional[float] = None
    timestamp: float = field(default_factory=time.time)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class FocusAlert:
    message: str = ""
    emitted_at: float = field(default_factory=time.time)
    focus_score: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class CameraDevice:
    device_id: str = ""
    label: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


# ---------------------------------------------------------------------------
# Per-session telemetry
# ---------------------------------------------------------------------------

@dataclass
class MonitorTelemetry:
    """Counters & latencies tracked per session — never crashes the session."""
    session_id: str = ""
    source: str = ""
    device_id: Optional[str] = None
    state: str = "stopped"
    has_permission: Optional[bool] = None
    frames_received: int = 0
    frames_processed: int = 0
    frames_dropped: int = 0
    detector_errors: int = 0
    stale_results_discarded: int = 0
    alerts_emitted: int = 0
    last_detect_latency_ms: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class TickOutcome:
    """Everything one processed tick produced."""
    result: FocusResult
    alert: Optional[FocusAlert] = None
