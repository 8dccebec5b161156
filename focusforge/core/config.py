"""
FocusForge — Configuration

Centralised settings from environment variables.
All tuneable constants live here — zero magic numbers in other files.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Dict

from dotenv import load_dotenv

load_dotenv()


# ---------------------------------------------------------------------------
# Server
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ServerConfig:
    host: str = os.getenv("HOST", "127.0.0.1")
    port: int = int(os.getenv("PORT", "5000"))
    cors_origins: tuple[str, ...] = (
        "http://localhost:5173",
        "http://127.0.0.1:5173",
        "http://localhost:3000",
    )


# ---------------------------------------------------------------------------
# Emotion weights
# ---------------------------------------------------------------------------

EMOTION_WEIGHTS: Dict[str, int] = {
    "neutral": 10,
    "happy": 20,       # some happiness is fine, a lot usually means off-task
    "sad": 40,
    "angry": 60,
    "fearful": 70,
    "disgusted": 50,
    "surprised": 80,   # surprise often means something pulled attention away
}
UNMAPPED_EMOTION_WEIGHT: int = 30

FOCUS_SUGGESTIONS: tuple[str, ...] = (
    "Take a deep breath and reset your attention",
    "Look away from screen for 20 seconds, then refocus",
    "Consider a short 2-minute stretching break",
    "Your attention is wandering. Gently bring it back to your task",
    "Try the Pomodoro technique - work for 25 minutes, then take a break",
    "Minimize distractions in your environment",
    "Write down any distracting thoughts to address later",
)


# ---------------------------------------------------------------------------
# Focus engine tunables
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class FocusConfig:
    # Emotion history ring buffer
    history_capacity: int = 10
    # Volatility: distinct labels among the last N entries
    volatility_window: int = 5
    volatility_min_distinct: int = 4
    volatility_bonus: int = 15

    # Eye-openness ratio below which both eyes count as closed
    ear_threshold: float = 0.25
    min_eye_landmarks: int = 6
    eyes_closed_penalty: int = 50

    # Head turned: nose offset from eye midpoint, as a fraction of face width
    head_deviation_ratio: float = 0.10
    head_deviation_penalty: int = 25
    # Nose this close (raw units) to an eye center = extreme profile pose
    near_profile_distance: float = 20.0
    near_profile_penalty: int = 60

    # Nose displacement between ticks, as a fraction of frame width
    motion_ratio: float = 0.03
    motion_penalty: int = 15

    # Logistic transform of (100 - distraction)
    sigmoid_steepness: float = 0.1
    sigmoid_midpoint: float = 50.0

    # Missed detections before the face is considered gone
    missed_frame_threshold: int = 10
    missed_frame_decay: int = 10

    # Alerting
    alert_threshold: int = 40
    alert_cooldown: float = float(os.getenv("FOCUS_ALERT_COOLDOWN", "30"))


# ---------------------------------------------------------------------------
# Monitor / pipeline tunables
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class MonitorConfig:
    # Cadence for self-driven sources (local camera, demo feed)
    tick_fps: float = float(os.getenv("FOCUS_TICK_FPS", "10"))
    # Bounded queue for client-pushed frames (drop-oldest)
    frame_queue_max: int = 3
    # Pause between stop and restart on a camera switch
    device_settle_delay: float = float(os.getenv("FOCUS_DEVICE_SETTLE_DELAY", "0.5"))
    # Status broadcast interval
    status_broadcast_interval: float = 5.0
    # MediaPipe FaceLandmarker model (Tasks API)
    face_model_path: str = os.getenv("FACE_LANDMARKER_MODEL", "models/face_landmarker.task")
    # How many OpenCV device indices /cameras probes
    camera_probe_count: int = int(os.getenv("FOCUS_CAMERA_PROBE_COUNT", "4"))


# ---------------------------------------------------------------------------
# Singletons
# ---------------------------------------------------------------------------

server_cfg = ServerConfig()
focus_cfg = FocusConfig()
monitor_cfg = MonitorConfig()
