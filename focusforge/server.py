"""
FocusForge — FastAPI Server

================================================================================
Architecture:
  • One FocusMonitor per WebSocket connection, kept in a MonitorRegistry
  • Tick source chosen by the client when tracking starts:
      - observations : client runs detection itself and pushes observation JSON
      - frames       : client pushes base64 JPEG frames, MediaPipe runs here
      - camera       : local OpenCV capture device, MediaPipe runs here
      - demo         : simulated face feed, no camera needed
  • Focus results, alerts and lifecycle changes streamed back as JSON
  • System status debug messages every 5 s
================================================================================

Endpoints:
  WS  /ws/focus             — real-time focus stream
  GET /health               — server health
  GET /sessions             — list sessions with telemetry
  GET /session/{session_id} — single session detail
  GET /cameras              — local capture devices (OpenCV probe)

Client → Server messages:
  { type: "start_tracking", source, device_id, permission }  → request permission + start
  { type: "stop_tracking" }                                  → stop, reset, summary
  { type: "pause_tracking" } / { type: "resume_tracking" }
  { type: "switch_device", device_id, permission }           → stop → settle → start
  { type: "revoke_permission" }                              → camera permission lost
  { type: "timer_state", is_active, mode }                   → pomodoro timer context
  { type: "observation", data: {...} }                       → one observation (source=observations)
  { type: "frame", image: "<base64 jpeg>" }                  → one frame (source=frames)
  { type: "ping" }                                           → keepalive

Server → Client messages:
  { type: "tracking_started", data: {...} }    → ack + status
  { type: "permission_denied", data: {...} }   → camera permission refused
  { type: "tracking_stopped", data: {...} }    → ack + summary
  { type: "state_changed", data: {...} }       → lifecycle transition
  { type: "focus_result", data: {...} }        → per-tick focus result
  { type: "alert", data: {...} }               → low-focus alert
  { type: "system_status", payload: {...} }    → debug telemetry
  { type: "pong" }                             → keepalive ack
  { type: "error", message: "..." }            → error
"""

from __future__ import annotations

import json
import logging
import uuid
from contextlib import asynccontextmanager
from typing import Any, Dict, Optional, Tuple

from fastapi import FastAPI, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from . import __version__
from .core.config import monitor_cfg, server_cfg
from .core.models import TimerContext, TimerMode
from .core.state_machine import MonitorState
from .processing.detector import MediaPipeFaceDetector, ObservationDecoder
from .services.demo_service import SimulatedCamera, SimulatedFaceDetector
from .services.monitor import FocusMonitor
from .services.registry import MonitorRegistry
from .services.sources import ClientCameraAccess, FrameQueue, OpenCVCamera

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logger = logging.getLogger("focusforge")
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
)

# ---------------------------------------------------------------------------
# Monitor Registry
# ---------------------------------------------------------------------------

registry = MonitorRegistry()

SOURCES = ("observations", "frames", "camera", "demo")

_camera_probe: Optional[OpenCVCamera] = None


def build_pipeline(source: str, permission_granted: bool) -> Tuple[Any, Any, Any]:
    """(camera access, frame source, detector) for a tick source name."""
    if source == "observations":
        return ClientCameraAccess(granted=permission_granted), FrameQueue(), ObservationDecoder()
    if source == "frames":
        return ClientCameraAccess(granted=permission_granted), FrameQueue(), MediaPipeFaceDetector()
    if source == "camera":
        camera = OpenCVCamera()
        return camera, camera, MediaPipeFaceDetector()
    if source == "demo":
        camera = SimulatedCamera()
        return camera, camera, SimulatedFaceDetector()
    raise ValueError(f"Unknown source {source!r} (expected one of {', '.join(SOURCES)})")


# ---------------------------------------------------------------------------
# FastAPI Lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("🚀 FocusForge starting...")
    logger.info(f"   Face model: {monitor_cfg.face_model_path}")
    yield
    logger.info("🛑 Shutting down — closing all monitors...")
    await registry.close_all()
    logger.info("🛑 FocusForge stopped")


# ---------------------------------------------------------------------------
# FastAPI App
# ---------------------------------------------------------------------------

app = FastAPI(
    title="FocusForge — Real-Time Focus Scoring",
    version=__version__,
    description=(
        "Turns per-frame face observations into a continuous focus score, "
        "attention-shift counts and throttled low-focus alerts."
    ),
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=list(server_cfg.cors_origins),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ---------------------------------------------------------------------------
# REST Endpoints
# ---------------------------------------------------------------------------

@app.get("/health")
async def health():
    return {
        "status": "ok",
        "version": __version__,
        "sessions": len(registry),
        "active_sessions": registry.active_count,
    }


@app.get("/sessions")
async def list_sessions():
    return {
        sid: {"active": monitor.is_active, "telemetry": monitor.telemetry.to_dict()}
        for sid, monitor in registry.all_monitors.items()
    }


@app.get("/session/{session_id}")
async def session_detail(session_id: str):
    monitor = registry.get(session_id)
    if monitor is None:
        return JSONResponse(status_code=404, content={"error": "session not found"})
    return {
        "session_id": session_id,
        "active": monitor.is_active,
        "status": monitor.status(),
        "state_history": monitor.state_history,
    }


@app.get("/cameras")
async def cameras():
    global _camera_probe
    if _camera_probe is None:
        _camera_probe = OpenCVCamera()
    devices = await _camera_probe.list_devices()
    return {"devices": [d.to_dict() for d in devices]}


# ---------------------------------------------------------------------------
# WebSocket: Per-Session Focus Stream
# ---------------------------------------------------------------------------

@app.websocket("/ws/focus")
async def websocket_focus(ws: WebSocket):
    """One FocusMonitor per connection; rebuilt whenever the tick source changes."""
    await ws.accept()

    session_id = uuid.uuid4().hex[:12]
    monitor: Optional[FocusMonitor] = None
    camera_access: Any = None
    source_kind: Optional[str] = None
    timer = TimerContext()

    # Helper to send JSON safely
    async def send(data: Dict[str, Any]) -> None:
        try:
            await ws.send_text(json.dumps(data))
        except Exception:
            pass

    async def on_result(result: Any) -> None:
        await send({"type": "focus_result", "data": result.to_dict()})

    async def on_alert(alert: Any) -> None:
        await send({"type": "alert", "data": alert.to_dict()})

    async def on_status(status: Dict[str, Any]) -> None:
        await send({"type": "system_status", "payload": status})

    async def on_state(change: Dict[str, Any]) -> None:
        await send({"type": "state_changed", "data": change})

    def report_permission(message: Dict[str, Any]) -> None:
        if isinstance(camera_access, ClientCameraAccess) and "permission" in message:
            camera_access.report(message.get("permission") == "granted")

    async def send_start_outcome(info: Dict[str, Any]) -> None:
        if monitor is None:
            return
        if monitor.state == MonitorState.TRACKING:
            await send({"type": "tracking_started", "data": info})
        elif monitor.has_permission is False:
            await send({"type": "permission_denied", "data": info})
        else:
            await send({"type": "error", "message": info.get("error", "Could not start tracking")})

    try:
        while True:
            raw = await ws.receive_text()

            try:
                message = json.loads(raw)
            except json.JSONDecodeError:
                continue
            if not isinstance(message, dict):
                continue

            msg_type = message.get("type", "")

            # ── Start tracking ──
            if msg_type == "start_tracking":
                if monitor is not None and monitor.is_active:
                    await send({"type": "error", "message": "Tracking already active"})
                    continue

                source = message.get("source", "observations")
                granted = message.get("permission", "granted") == "granted"
                try:
                    camera, frames, detector = build_pipeline(source, granted)
                except ValueError as e:
                    await send({"type": "error", "message": str(e)})
                    continue

                if monitor is not None:
                    await registry.remove(session_id)
                monitor = registry.add(FocusMonitor(
                    session_id=session_id,
                    camera=camera,
                    source=frames,
                    detector=detector,
                    source_kind=source,
                    on_result=on_result,
                    on_alert=on_alert,
                    on_status=on_status,
                    on_state=on_state,
                ))
                monitor.update_timer(timer.is_active, timer.mode)
                camera_access, source_kind = camera, source

                info = await monitor.start(device_id=message.get("device_id"))
                await send_start_outcome(info)

            # ── Stop tracking ──
            elif msg_type == "stop_tracking":
                if monitor is None:
                    continue
                summary = await monitor.stop()
                await send({"type": "tracking_stopped", "data": summary})

            elif msg_type == "pause_tracking":
                if monitor is not None:
                    await monitor.pause()

            elif msg_type == "resume_tracking":
                if monitor is not None:
                    await monitor.resume()

            # ── Device switch: stop → settle → start ──
            elif msg_type == "switch_device":
                if monitor is None:
                    await send({"type": "error", "message": "No active session"})
                    continue
                report_permission(message)
                was_active = monitor.is_active
                info = await monitor.switch_device(str(message.get("device_id", "")))
                if was_active:
                    await send_start_outcome(info)

            elif msg_type == "revoke_permission":
                if monitor is None:
                    continue
                if isinstance(camera_access, ClientCameraAccess):
                    camera_access.report(False)
                info = await monitor.revoke_permission()
                await send({"type": "permission_denied", "data": info})

            # ── Pomodoro timer context ──
            elif msg_type == "timer_state":
                try:
                    timer.is_active = bool(message.get("is_active", False))
                    timer.mode = TimerMode.parse(message.get("mode", "work"))
                except ValueError as e:
                    await send({"type": "error", "message": f"Invalid timer state: {e}"})
                    continue
                if monitor is not None:
                    monitor.update_timer(timer.is_active, timer.mode)

            # ── Per-tick input ──
            elif msg_type in ("observation", "frame"):
                expected = "observations" if msg_type == "observation" else "frames"
                if monitor is None or source_kind != expected:
                    await send({"type": "error", "message": f"Session is not tracking {expected}"})
                    continue
                payload = message.get("data") if msg_type == "observation" else message.get("image")
                if payload is None:
                    continue
                if monitor.state == MonitorState.TRACKING:
                    monitor.submit_frame(payload)

            # ── Keepalive ──
            elif msg_type == "ping":
                await send({"type": "pong"})

            else:
                await send({"type": "error", "message": f"Unknown message type: {msg_type!r}"})

    except WebSocketDisconnect:
        logger.info(f"[{session_id}] WebSocket disconnected")
    except Exception as e:
        logger.error(f"[{session_id}] WebSocket error: {e}", exc_info=True)
    finally:
        if monitor is not None:
            await registry.remove(session_id)


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "focusforge.server:app",
        host=server_cfg.host,
        port=server_cfg.port,
        reload=True,
        log_level="info",
    )
