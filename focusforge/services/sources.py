"""
FocusForge — Frame Sources & Camera Access

Tick sources for the monitor:
  • FrameQueue     — client-pushed frames/observations, bounded, drop-oldest
  • OpenCVCamera   — local capture device read at a fixed cadence

Camera access:
  • ClientCameraAccess — permission and device list as reported by the client
  • OpenCVCamera       — permission = the device can actually be opened
"""

from __future__ import annotations

import asyncio
import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Iterable, List, Optional

import cv2

from ..core.config import monitor_cfg
from ..core.models import CameraDevice

logger = logging.getLogger("focusforge.sources")


# ---------------------------------------------------------------------------
# Client-pushed frames
# ---------------------------------------------------------------------------

class FrameQueue:
    """
    Bounded frame queue (backpressure: drop-oldest). The WebSocket handler
    pushes without ever blocking; the monitor's tick worker drains it.
    """

    def __init__(self, maxsize: int = monitor_cfg.frame_queue_max) -> None:
        self._queue: asyncio.Queue[Any] = asyncio.Queue(maxsize=maxsize)
        self.frames_received: int = 0
        self.frames_dropped: int = 0

    def push(self, frame: Any) -> None:
        self.frames_received += 1

        if self._queue.full():
            try:
                self._queue.get_nowait()
                self.frames_dropped += 1
            except asyncio.QueueEmpty:
                pass

        try:
            self._queue.put_nowait(frame)
        except asyncio.QueueFull:
            self.frames_dropped += 1

    def _drain(self) -> None:
        while not self._queue.empty():
            self._queue.get_nowait()

    async def open(self, device_id: Optional[str]) -> None:
        self._drain()

    async def next_frame(self) -> Any:
        return await self._queue.get()

    async def close(self) -> None:
        # Frames from a previous camera must never reach a new session
        self._drain()


class ClientCameraAccess:
    """The browser owns the camera; we trust what it reports."""

    def __init__(self, granted: bool = False, devices: Iterable[CameraDevice] = ()) -> None:
        self._granted = granted
        self._devices: List[CameraDevice] = list(devices)

    def report(self, granted: bool, devices: Optional[Iterable[CameraDevice]] = None) -> None:
        self._granted = granted
        if devices is not None:
            self._devices = list(devices)

    async def request_permission(self, device_id: Optional[str]) -> bool:
        return self._granted

    async def list_devices(self) -> List[CameraDevice]:
        return list(self._devices)


# ---------------------------------------------------------------------------
# Local capture device
# ---------------------------------------------------------------------------

class OpenCVCamera:
    """
    Local webcam via cv2.VideoCapture. Blocking OpenCV calls run in a
    dedicated single-thread executor so the event loop never stalls.

    Lifecycle:
        cam = OpenCVCamera()
        await cam.request_permission("0")
        await cam.open("0")
        frame = await cam.next_frame()   # RGB ndarray, None if the device died
        await cam.close()
    """

    def __init__(
        self,
        fps: float = monitor_cfg.tick_fps,
        probe_count: int = monitor_cfg.camera_probe_count,
    ) -> None:
        self._interval = 1.0 / fps if fps > 0 else 0.0
        self._probe_count = probe_count
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="focus-cam")
        self._capture: Any = None

    @staticmethod
    def _index(device_id: Optional[str]) -> int:
        return int(device_id) if device_id not in (None, "") else 0

    async def _run(self, fn: Any, *args: Any) -> Any:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(self._executor, fn, *args)

    # ── CameraAccess ───────────────────────────────────────────────────

    def _can_open(self, index: int) -> bool:
        cap = cv2.VideoCapture(index)
        try:
            return bool(cap.isOpened())
        finally:
            cap.release()

    async def request_permission(self, device_id: Optional[str]) -> bool:
        try:
            return await self._run(self._can_open, self._index(device_id))
        except (ValueError, cv2.error) as e:
            logger.warning(f"Camera {device_id!r} unavailable: {e}")
            return False

    async def list_devices(self) -> List[CameraDevice]:
        devices: List[CameraDevice] = []
        for index in range(self._probe_count):
            if await self._run(self._can_open, index):
                devices.append(CameraDevice(device_id=str(index), label=f"Camera {index + 1}"))
        return devices

    # ── FrameSource ────────────────────────────────────────────────────

    async def open(self, device_id: Optional[str]) -> None:
        index = self._index(device_id)
        capture = await self._run(cv2.VideoCapture, index)
        if not capture.isOpened():
            capture.release()
            raise RuntimeError(f"Could not open camera {index}")
        self._capture = capture
        logger.info(f"Camera {index} opened")

    def _read(self) -> Any:
        if self._capture is None:
            return None
        ok, frame_bgr = self._capture.read()
        if not ok:
            return None
        return cv2.cvtColor(frame_bgr, cv2.COLOR_BGR2RGB)

    async def next_frame(self) -> Any:
        await asyncio.sleep(self._interval)
        return await self._run(self._read)

    async def close(self) -> None:
        if self._capture is not None:
            capture, self._capture = self._capture, None
            await self._run(capture.release)
            logger.info("Camera released")
