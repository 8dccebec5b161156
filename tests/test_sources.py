"""
FocusForge — Frame Source Tests
================================
Drop-oldest frame queue, OpenCV camera with a mocked VideoCapture, and the
simulated demo feed. NO real camera needed.
"""

from __future__ import annotations

import asyncio
import random
from unittest.mock import MagicMock, patch

import numpy as np
import pytest

from focusforge.core.interfaces import CameraAccess, FaceDetector, FrameSource
from focusforge.core.models import FaceObservation, NoFace, TimerContext
from focusforge.processing.engine import FocusEngine
from focusforge.services.demo_service import SimulatedCamera, SimulatedFaceDetector
from focusforge.services.sources import ClientCameraAccess, FrameQueue, OpenCVCamera


# ─── Fixtures ─────────────────────────────────────────────────

def _make_mock_capture(opened: bool = True, frame: np.ndarray | None = None):
    cap = MagicMock()
    cap.isOpened.return_value = opened
    cap.read.return_value = (frame is not None, frame)
    return cap


# ─── FrameQueue ───────────────────────────────────────────────

def test_frame_queue_drops_oldest():
    async def scenario():
        queue = FrameQueue(maxsize=3)
        for i in range(5):
            queue.push(i)

        assert queue.frames_received == 5
        assert queue.frames_dropped == 2
        assert [await queue.next_frame() for _ in range(3)] == [2, 3, 4]

    asyncio.run(scenario())


def test_frame_queue_close_discards_pending_frames():
    async def scenario():
        queue = FrameQueue()
        queue.push("old")
        await queue.close()
        await queue.open("1")
        queue.push("new")
        assert await queue.next_frame() == "new"

    asyncio.run(scenario())


def test_implementations_satisfy_protocols():
    assert isinstance(FrameQueue(), FrameSource)
    assert isinstance(ClientCameraAccess(), CameraAccess)
    assert isinstance(SimulatedCamera(), CameraAccess)
    assert isinstance(SimulatedCamera(), FrameSource)
    assert isinstance(SimulatedFaceDetector(), FaceDetector)


# ─── ClientCameraAccess ───────────────────────────────────────

def test_client_camera_access_reports():
    async def scenario():
        access = ClientCameraAccess(granted=False)
        assert await access.request_permission("0") is False
        access.report(True)
        assert await access.request_permission("0") is True

    asyncio.run(scenario())


# ─── OpenCVCamera ─────────────────────────────────────────────

def test_opencv_permission_follows_device_open():
    async def scenario():
        cam = OpenCVCamera(fps=0)
        with patch("focusforge.services.sources.cv2.VideoCapture", return_value=_make_mock_capture(True)):
            assert await cam.request_permission("0") is True
        with patch("focusforge.services.sources.cv2.VideoCapture", return_value=_make_mock_capture(False)):
            assert await cam.request_permission("0") is False
        assert await cam.request_permission("not-a-number") is False

    asyncio.run(scenario())


def test_opencv_lists_openable_devices():
    async def scenario():
        cam = OpenCVCamera(fps=0, probe_count=3)
        captures = {0: _make_mock_capture(True), 1: _make_mock_capture(False), 2: _make_mock_capture(True)}
        with patch("focusforge.services.sources.cv2.VideoCapture", side_effect=lambda i: captures[i]):
            devices = await cam.list_devices()
        assert [d.device_id for d in devices] == ["0", "2"]

    asyncio.run(scenario())


def test_opencv_reads_rgb_frames():
    async def scenario():
        bgr = np.zeros((4, 4, 3), dtype=np.uint8)
        bgr[..., 0] = 255  # blue
        cap = _make_mock_capture(True, bgr)
        cam = OpenCVCamera(fps=0)
        with patch("focusforge.services.sources.cv2.VideoCapture", return_value=cap):
            await cam.open("0")
            frame = await cam.next_frame()
            await cam.close()

        assert frame[0, 0, 2] == 255 and frame[0, 0, 0] == 0
        cap.release.assert_called()

    asyncio.run(scenario())


def test_opencv_open_failure_raises():
    async def scenario():
        cam = OpenCVCamera(fps=0)
        with patch("focusforge.services.sources.cv2.VideoCapture", return_value=_make_mock_capture(False)):
            with pytest.raises(RuntimeError):
                await cam.open("0")

    asyncio.run(scenario())


def test_opencv_dead_device_yields_none():
    async def scenario():
        cam = OpenCVCamera(fps=0)
        with patch("focusforge.services.sources.cv2.VideoCapture", return_value=_make_mock_capture(True, None)):
            await cam.open("0")
            assert await cam.next_frame() is None
            await cam.close()

    asyncio.run(scenario())


# ─── Demo feed ────────────────────────────────────────────────

def test_demo_feed_drives_the_engine():
    async def scenario():
        camera = SimulatedCamera(fps=1000)
        detector = SimulatedFaceDetector(rng=random.Random(3))
        engine = FocusEngine()
        await camera.open("demo")

        observations = []
        for _ in range(60):
            frame = await camera.next_frame()
            observations.append(await detector.detect(frame))
        await camera.close()
        return engine, observations

    engine, observations = asyncio.run(scenario())
    faces = [o for o in observations if isinstance(o, FaceObservation)]

    assert all(isinstance(o, (FaceObservation, NoFace)) for o in observations)
    assert faces
    assert all(len(f.left_eye) == 6 and len(f.right_eye) == 6 for f in faces)
    for t, obs in enumerate(observations):
        result = engine.process(obs, TimerContext(), now=float(t)).result
        assert 0 <= result.focus_score <= 100


def test_demo_camera_always_grants():
    async def scenario():
        camera = SimulatedCamera()
        assert await camera.request_permission(None) is True
        devices = await camera.list_devices()
        assert devices[0].device_id == "demo"

    asyncio.run(scenario())
