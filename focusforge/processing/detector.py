"""
FocusForge — Face Detectors

Concrete FaceDetector implementations feeding the focus engine:

1. `ObservationDecoder`   — the client already ran detection (e.g. in the
   browser) and sends observation JSON; we only validate and parse it.
2. `MediaPipeFaceDetector` — server-side detection on raw frames using the
   MediaPipe FaceLandmarker (Tasks API). Landmarks give eyes and nose;
   face blendshapes are mapped onto the seven expression labels.
   CPU-heavy work runs in a single-worker ThreadPoolExecutor so the event
   loop is never blocked.

Both raise on bad input; the monitor treats any failure as NoFace.
"""

from __future__ import annotations

import asyncio
import base64
import logging
import pathlib
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Dict, Mapping, Optional, Sequence

import cv2
import numpy as np

from ..core.config import monitor_cfg
from ..core.models import (
    NO_FACE,
    FaceObservation,
    FrameObservation,
    NoFace,
    observation_from_dict,
)

logger = logging.getLogger("focusforge.detector")

# MediaPipe face mesh indices, in EAR order (outer, upper, upper, inner, lower, lower)
LEFT_EYE_IDX = (33, 160, 158, 133, 153, 144)
RIGHT_EYE_IDX = (362, 385, 387, 263, 373, 380)
NOSE_TIP_IDX = 1


# ═══════════════════════════════════════════════════════════════════════════
# Client-side detection
# ═══════════════════════════════════════════════════════════════════════════

class ObservationDecoder:
    """Frames are already observations (dicts or FrameObservation objects)."""

    async def detect(self, frame: Any) -> FrameObservation:
        if isinstance(frame, (FaceObservation, NoFace)):
            return frame
        if isinstance(frame, Mapping):
            return observation_from_dict(frame)
        raise ValueError(f"Unsupported observation payload: {type(frame).__name__}")

    def close(self) -> None:
        pass


# ═══════════════════════════════════════════════════════════════════════════
# Frame helpers
# ═══════════════════════════════════════════════════════════════════════════

def decode_jpeg_base64(payload: str) -> np.ndarray:
    """Base64 JPEG (optionally a data URL) → RGB ndarray. Raises ValueError."""
    if "," in payload and payload.startswith("data:"):
        payload = payload.split(",", 1)[1]
    try:
        img_bytes = base64.b64decode(payload, validate=True)
    except ValueError as e:
        raise ValueError(f"Invalid base64 frame: {e}") from e
    nparr = np.frombuffer(img_bytes, np.uint8)
    frame_bgr = cv2.imdecode(nparr, cv2.IMREAD_COLOR)
    if frame_bgr is None:
        raise ValueError("Frame could not be decoded as an image")
    return cv2.cvtColor(frame_bgr, cv2.COLOR_BGR2RGB)


def _avg(scores: Mapping[str, float], *names: str) -> float:
    return float(np.mean([scores.get(n, 0.0) for n in names]))


def expressions_from_blendshapes(scores: Mapping[str, float]) -> Dict[str, float]:
    """
    Map ARKit-style blendshape activations onto expression probabilities.
    Returns an empty dict if no blendshapes were produced.
    """
    if not scores:
        return {}
    raw = {
        "happy": _avg(scores, "mouthSmileLeft", "mouthSmileRight"),
        "sad": _avg(scores, "mouthFrownLeft", "mouthFrownRight", "browInnerUp"),
        "angry": _avg(scores, "browDownLeft", "browDownRight"),
        "fearful": _avg(scores, "eyeWideLeft", "eyeWideRight", "mouthStretchLeft", "mouthStretchRight"),
        "disgusted": _avg(scores, "noseSneerLeft", "noseSneerRight"),
        "surprised": _avg(scores, "jawOpen", "browInnerUp", "eyeWideLeft", "eyeWideRight"),
    }
    raw["neutral"] = max(0.0, 1.0 - max(raw.values()))
    total = sum(raw.values())
    if total <= 0:
        return {"neutral": 1.0}
    return {label: round(value / total, 4) for label, value in raw.items()}


def observation_from_landmarks(
    landmarks: Sequence[Any],
    width: int,
    height: int,
    blendshapes: Optional[Mapping[str, float]] = None,
) -> FaceObservation:
    """Normalised mesh landmarks (.x/.y in [0,1]) → FaceObservation in pixels."""
    def px(i: int) -> tuple[float, float]:
        lm = landmarks[i]
        return float(lm.x * width), float(lm.y * height)

    xs = [lm.x * width for lm in landmarks]
    ys = [lm.y * height for lm in landmarks]
    x0, y0 = min(xs), min(ys)
    return FaceObservation(
        bounding_box=(x0, y0, max(xs) - x0, max(ys) - y0),
        left_eye=tuple(px(i) for i in LEFT_EYE_IDX),
        right_eye=tuple(px(i) for i in RIGHT_EYE_IDX),
        nose_tip=px(NOSE_TIP_IDX),
        expressions=expressions_from_blendshapes(blendshapes or {}),
        frame_width=float(width),
        frame_height=float(height),
    )


# ═══════════════════════════════════════════════════════════════════════════
# Server-side detection: MediaPipe FaceLandmarker
# ═══════════════════════════════════════════════════════════════════════════

class MediaPipeFaceDetector:
    """
    Accepts RGB ndarrays or base64 JPEG strings.

    Lifecycle:
        detector = MediaPipeFaceDetector()
        observation = await detector.detect(frame)
        detector.close()
    """

    def __init__(self, model_path: str = monitor_cfg.face_model_path) -> None:
        self._model_path = pathlib.Path(model_path)
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="focus-cv")
        self._landmarker: Any = None
        self._mp: Any = None
        self._init_error: Optional[str] = None
        self.inference_count: int = 0

    async def detect(self, frame: Any) -> FrameObservation:
        if isinstance(frame, str):
            frame = decode_jpeg_base64(frame)
        if not isinstance(frame, np.ndarray) or frame.ndim != 3:
            raise ValueError("Expected an RGB frame")
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(self._executor, self._detect_sync, frame)

    def _init_mediapipe(self) -> None:
        """Lazy-init the FaceLandmarker in the worker thread."""
        if self._landmarker is not None:
            return
        if self._init_error is not None:
            raise RuntimeError(self._init_error)
        if not self._model_path.exists():
            self._init_error = f"Face model not found: {self._model_path}"
            logger.warning(self._init_error)
            raise RuntimeError(self._init_error)

        import mediapipe as mp

        options = mp.tasks.vision.FaceLandmarkerOptions(
            base_options=mp.tasks.BaseOptions(model_asset_path=str(self._model_path)),
            running_mode=mp.tasks.vision.RunningMode.IMAGE,
            num_faces=1,
            min_face_detection_confidence=0.3,
            min_face_presence_confidence=0.3,
            min_tracking_confidence=0.5,
            output_face_blendshapes=True,
            output_facial_transformation_matrixes=False,
        )
        self._mp = mp
        self._landmarker = mp.tasks.vision.FaceLandmarker.create_from_options(options)
        logger.info("FaceLandmarker loaded (Tasks API)")

    def _detect_sync(self, frame_rgb: np.ndarray) -> FrameObservation:
        self._init_mediapipe()
        h, w = frame_rgb.shape[:2]
        image = self._mp.Image(image_format=self._mp.ImageFormat.SRGB, data=np.ascontiguousarray(frame_rgb))
        result = self._landmarker.detect(image)
        self.inference_count += 1

        if not result.face_landmarks:
            return NO_FACE
        blendshapes: Dict[str, float] = {}
        if result.face_blendshapes:
            blendshapes = {c.category_name: float(c.score) for c in result.face_blendshapes[0]}
        return observation_from_landmarks(result.face_landmarks[0], w, h, blendshapes)

    def close(self) -> None:
        self._executor.shutdown(wait=False)
        if self._landmarker is not None:
            self._landmarker.close()
            self._landmarker = None
        logger.info(f"MediaPipe detector closed (inferences: {self.inference_count})")
