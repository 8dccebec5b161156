"""
FocusForge — Demo Feed

Fallback for running without a camera. Streams simulated face observations
at a fixed cadence so the dashboard always has something to show: eyes blink
now and then, the head drifts, expressions wander between labels.
"""

from __future__ import annotations

import asyncio
import logging
import random
from typing import Any, List, Optional

import numpy as np

from ..core.config import monitor_cfg
from ..core.models import NO_FACE, CameraDevice, FaceObservation, FrameObservation

logger = logging.getLogger("focusforge.demo")

_DEMO_EXPRESSIONS = ("neutral", "neutral", "neutral", "happy", "surprised", "sad")


class SimulatedCamera:
    """Always-granted camera whose frames are just tick timestamps."""

    def __init__(self, fps: float = monitor_cfg.tick_fps) -> None:
        self._interval = 1.0 / fps if fps > 0 else 0.0
        self._tick = 0

    async def request_permission(self, device_id: Optional[str]) -> bool:
        return True

    async def list_devices(self) -> List[CameraDevice]:
        return [CameraDevice(device_id="demo", label="Simulated camera")]

    async def open(self, device_id: Optional[str]) -> None:
        self._tick = 0
        logger.info("Demo feed started")

    async def next_frame(self) -> Any:
        await asyncio.sleep(self._interval)
        self._tick += 1
        return self._tick * self._interval

    async def close(self) -> None:
        logger.info(f"Demo feed stopped after {self._tick} ticks")


class SimulatedFaceDetector:
    """Turns a simulated timestamp into a plausible face observation."""

    def __init__(
        self,
        width: float = 640.0,
        height: float = 480.0,
        rng: Optional[random.Random] = None,
    ) -> None:
        self._w = width
        self._h = height
        self._rng = rng or random.Random()

    @staticmethod
    def _eye(cx: float, cy: float, half_width: float, openness: float) -> tuple:
        v = half_width * openness
        return (
            (cx - half_width, cy),
            (cx - half_width / 3, cy - v),
            (cx + half_width / 3, cy - v),
            (cx + half_width, cy),
            (cx + half_width / 3, cy + v),
            (cx - half_width / 3, cy + v),
        )

    async def detect(self, frame: Any) -> FrameObservation:
        t = float(frame)
        # Brief absences now and then
        if self._rng.random() < 0.02:
            return NO_FACE

        drift = 30 * np.sin(t * 0.3) + self._rng.uniform(-3, 3)
        cx, cy = self._w / 2 + drift, self._h / 2
        blink = self._rng.random() < 0.05
        openness = 0.1 if blink else 0.32 + 0.05 * np.sin(t)

        left = self._eye(cx - 60, cy - 40, 25, openness)
        right = self._eye(cx + 60, cy - 40, 25, openness)
        nose = (cx + 10 * np.sin(t * 0.7), cy)

        label = _DEMO_EXPRESSIONS[int(t / 4) % len(_DEMO_EXPRESSIONS)]
        expressions = {name: 0.02 for name in ("neutral", "happy", "sad", "angry", "fearful", "disgusted", "surprised")}
        expressions[label] = 0.88

        return FaceObservation(
            bounding_box=(cx - 120, cy - 140, 240, 280),
            left_eye=tuple((float(x), float(y)) for x, y in left),
            right_eye=tuple((float(x), float(y)) for x, y in right),
            nose_tip=(float(nose[0]), float(nose[1])),
            expressions=expressions,
            frame_width=self._w,
            frame_height=self._h,
        )

    def close(self) -> None:
        pass
