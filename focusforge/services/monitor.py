"""
FocusForge — Focus Monitor

================================================================================
ONE MONITORING SESSION — ZERO GLOBAL MUTABLE STATE
================================================================================

A `FocusMonitor` owns:
  • One FocusEngine (and therefore one SessionState)
  • One lifecycle state machine (STOPPED → REQUESTING_PERMISSION → TRACKING ⇄ PAUSED)
  • One tick worker asyncio.Task (pulls frames from the FrameSource)
  • One status-broadcast asyncio.Task
  • Per-session telemetry + latency milestones

Tick flow:
  FrameSource.next_frame() → tick(frame) → FaceDetector.detect() → FocusEngine
                                                      ↓
                                     on_result(FocusResult), on_alert(FocusAlert)

Rules:
  • At most one detection in flight; a tick that arrives meanwhile is dropped.
  • Every tick remembers the session generation it started in. Stop/reset
    bumps the generation, so a detection that resolves late is discarded.
  • Detector failure = NoFace for that tick. Nothing in a tick may kill the worker.
  • Leaving TRACKING/PAUSED for STOPPED resets the engine state.
================================================================================
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Callable, Dict, List, Optional

from ..core.config import MonitorConfig, monitor_cfg
from ..core.interfaces import CameraAccess, FaceDetector, FrameSource
from ..core.latency import LatencyTracer
from ..core.models import (
    NO_FACE,
    FaceObservation,
    FrameObservation,
    MonitorTelemetry,
    TickOutcome,
    TimerContext,
    TimerMode,
)
from ..core.state_machine import MonitorState, MonitorStateMachine
from ..processing.engine import FocusEngine

logger = logging.getLogger("focusforge.monitor")


class FocusMonitor:
    """
    Lifecycle:
        monitor = FocusMonitor(session_id, camera, source, detector, on_result=..., on_alert=...)
        await monitor.start(device_id="0")     # permission → TRACKING, workers running
        monitor.update_timer(True, "work")
        await monitor.pause() / await monitor.resume()
        await monitor.switch_device("1")       # stop → settle → start
        summary = await monitor.stop()
        await monitor.close()
    """

    def __init__(
        self,
        session_id: str,
        camera: CameraAccess,
        source: FrameSource,
        detector: FaceDetector,
        source_kind: str = "observations",
        engine: Optional[FocusEngine] = None,
        clock: Callable[[], float] = time.time,
        cfg: MonitorConfig = monitor_cfg,
        on_result: Optional[Callable[[Any], Any]] = None,
        on_alert: Optional[Callable[[Any], Any]] = None,
        on_status: Optional[Callable[[Dict[str, Any]], Any]] = None,
        on_state: Optional[Callable[[Dict[str, Any]], Any]] = None,
    ) -> None:
        self.session_id = session_id
        self.telemetry = MonitorTelemetry(session_id=session_id, source=source_kind)

        self._camera = camera
        self._source = source
        self._detector = detector
        self._engine = engine or FocusEngine()
        self._clock = clock
        self._cfg = cfg

        self._on_result = on_result
        self._on_alert = on_alert
        self._on_status = on_status
        self._on_state = on_state

        self._state_machine = MonitorStateMachine(on_transition=self._on_state_transition)
        self._tracer = LatencyTracer(session_id)
        self._timer = TimerContext()
        self._device_id: Optional[str] = None
        self._generation = 0
        self._in_flight: Optional[int] = None
        self._started_at: Optional[float] = None

        self._tick_task: Optional[asyncio.Task] = None
        self._status_task: Optional[asyncio.Task] = None
        self._exhaust_task: Optional[asyncio.Task] = None

        logger.info(f"[{session_id}] Monitor created (source={source_kind})")

    # ── Read-only views ─────────────────────────────────────────────────

    @property
    def state(self) -> MonitorState:
        return self._state_machine.state

    @property
    def engine(self) -> FocusEngine:
        return self._engine

    @property
    def is_active(self) -> bool:
        return self._state_machine.is_live

    @property
    def has_permission(self) -> Optional[bool]:
        return self.telemetry.has_permission

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def state_history(self) -> List[Dict[str, Any]]:
        return self._state_machine.history

    @property
    def timer(self) -> TimerContext:
        return self._timer

    @property
    def latency(self) -> LatencyTracer:
        return self._tracer

    # ── Lifecycle ───────────────────────────────────────────────────────

    async def start(self, device_id: Optional[str] = None) -> Dict[str, Any]:
        """
        Ask for camera permission, then start tracking.
        Permission denied is terminal for this attempt: STOPPED, no retry.
        """
        if self._state_machine.is_live:
            return self.status()
        if device_id is not None:
            self._device_id = device_id
            self.telemetry.device_id = device_id

        await self._transition(MonitorState.REQUESTING_PERMISSION, "start")
        try:
            granted = await self._camera.request_permission(self._device_id)
        except Exception as e:
            logger.warning(f"[{self.session_id}] Permission request failed: {e}")
            granted = False

        if not granted:
            self.telemetry.has_permission = False
            await self._transition(MonitorState.STOPPED, "permission_denied")
            logger.info(f"[{self.session_id}] Camera permission denied")
            return self.status()

        self.telemetry.has_permission = True
        try:
            await self._source.open(self._device_id)
        except Exception as e:
            logger.error(f"[{self.session_id}] Could not open frame source: {e}")
            await self._transition(MonitorState.STOPPED, "source_unavailable")
            return {**self.status(), "error": str(e)[:200]}

        self._generation += 1
        self._engine.reset()
        self._started_at = self._clock()
        self._tracer.start()
        await self._transition(MonitorState.TRACKING, "permission_granted")

        generation = self._generation
        self._tick_task = asyncio.create_task(
            self._tick_worker(generation), name=f"ticks-{self.session_id}"
        )
        self._status_task = asyncio.create_task(
            self._status_worker(generation), name=f"status-{self.session_id}"
        )
        return self.status()

    async def pause(self) -> Dict[str, Any]:
        if self.state == MonitorState.TRACKING:
            await self._transition(MonitorState.PAUSED, "pause")
        return self.status()

    async def resume(self) -> Dict[str, Any]:
        if self.state == MonitorState.PAUSED:
            await self._transition(MonitorState.TRACKING, "resume")
        return self.status()

    async def stop(self, reason: str = "stop") -> Dict[str, Any]:
        """Stop tracking, reset all session counters, return the session summary."""
        summary = self.summary()
        self._generation += 1  # late detections from here on are stale
        await self._cancel_workers()

        if self.state != MonitorState.STOPPED:
            await self._transition(MonitorState.STOPPED, reason)
            try:
                await self._source.close()
            except Exception as e:
                logger.debug(f"[{self.session_id}] Source close error: {e}")

        self._engine.reset()
        self._started_at = None
        logger.info(f"[{self.session_id}] Tracking stopped ({reason}) — {summary}")
        return summary

    async def switch_device(self, device_id: str) -> Dict[str, Any]:
        """Modelled as stop → settle → start; never a live hot-swap."""
        self._device_id = device_id
        self.telemetry.device_id = device_id
        if not self._state_machine.is_live:
            return self.status()
        await self.stop(reason="device_switch")
        await asyncio.sleep(self._cfg.device_settle_delay)
        return await self.start(device_id)

    async def revoke_permission(self) -> Dict[str, Any]:
        self.telemetry.has_permission = False
        if self.state != MonitorState.STOPPED:
            await self.stop(reason="permission_revoked")
        return self.status()

    async def close(self) -> None:
        """Full teardown: stop + release detector."""
        if self.state != MonitorState.STOPPED:
            await self.stop(reason="close")
        else:
            await self._cancel_workers()
        self._detector.close()
        logger.info(f"[{self.session_id}] Monitor closed")

    # ── Inputs from the surrounding app ────────────────────────────────

    def update_timer(self, is_active: bool, mode: str | TimerMode) -> None:
        self._timer = TimerContext(
            is_active=bool(is_active),
            mode=mode if isinstance(mode, TimerMode) else TimerMode.parse(mode),
        )

    def submit_frame(self, frame: Any) -> bool:
        """Push a client frame into the source queue. Never blocks."""
        push = getattr(self._source, "push", None)
        if push is None:
            return False
        dropped_before = getattr(self._source, "frames_dropped", 0)
        push(frame)
        self.telemetry.frames_received += 1
        self.telemetry.frames_dropped += getattr(self._source, "frames_dropped", 0) - dropped_before
        return True

    # ── One tick ───────────────────────────────────────────────────────

    async def tick(self, frame: Any) -> Optional[TickOutcome]:
        """
        Detect on one frame and feed the engine. Returns None when the tick
        was skipped (not tracking, detection already in flight, or stale).
        """
        if self.state != MonitorState.TRACKING:
            return None
        if self._in_flight is not None:
            self.telemetry.frames_dropped += 1
            return None

        generation = self._generation
        self._in_flight = generation
        t0 = time.perf_counter()
        try:
            observation = await self._detect(frame)
        finally:
            if self._in_flight == generation:
                self._in_flight = None

        if generation != self._generation or self.state != MonitorState.TRACKING:
            self.telemetry.stale_results_discarded += 1
            return None

        self.telemetry.last_detect_latency_ms = round((time.perf_counter() - t0) * 1000, 1)
        self.telemetry.frames_processed += 1
        self._tracer.mark("first_observation")
        if isinstance(observation, FaceObservation):
            self._tracer.mark("first_face")

        outcome = self._engine.process(observation, self._timer, self._clock())

        await self._emit(self._on_result, outcome.result)
        if outcome.alert is not None:
            self.telemetry.alerts_emitted += 1
            self._tracer.mark("first_alert")
            await self._emit(self._on_alert, outcome.alert)
        return outcome

    async def _detect(self, frame: Any) -> FrameObservation:
        try:
            return await self._detector.detect(frame)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self.telemetry.detector_errors += 1
            logger.debug(f"[{self.session_id}] Detector failed, treating as no face: {e}")
            return NO_FACE

    # ── Workers ────────────────────────────────────────────────────────

    async def _tick_worker(self, generation: int) -> None:
        """Drains the frame source. This is the HOT PATH."""
        logger.info(f"[{self.session_id}] Tick worker started")

        while generation == self._generation:
            try:
                frame = await self._source.next_frame()
                if frame is None:
                    logger.warning(f"[{self.session_id}] Frame source exhausted")
                    self._exhaust_task = asyncio.create_task(
                        self.stop(reason="source_exhausted"), name=f"exhausted-{self.session_id}"
                    )
                    self._exhaust_task.add_done_callback(self._on_exhaust_done)
                    break
                await self.tick(frame)
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error(f"[{self.session_id}] Tick worker error: {e}", exc_info=True)
                await asyncio.sleep(0.1)

        logger.info(f"[{self.session_id}] Tick worker stopped")

    def _on_exhaust_done(self, task: asyncio.Task) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(f"[{self.session_id}] Stop after source exhaustion failed: {exc}")

    async def _status_worker(self, generation: int) -> None:
        """Periodically sends system_status to the client."""
        while generation == self._generation:
            try:
                await asyncio.sleep(self._cfg.status_broadcast_interval)
                if generation != self._generation:
                    break
                await self._emit(self._on_status, self.status())
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.debug(f"[{self.session_id}] Status worker error: {e}")

    async def _cancel_workers(self) -> None:
        current = asyncio.current_task()
        for task in (self._tick_task, self._status_task):
            if task and task is not current and not task.done():
                task.cancel()
                try:
                    await task
                except (asyncio.CancelledError, Exception):
                    pass
        self._tick_task = None
        self._status_task = None

    # ── State + emission helpers ───────────────────────────────────────

    def _on_state_transition(self, prev: MonitorState, new: MonitorState, reason: str) -> None:
        self.telemetry.state = new.value

    async def _transition(self, target: MonitorState, reason: str) -> None:
        prev = self.state
        self._state_machine.transition(target, reason)
        if prev != target:
            await self._emit(self._on_state, {
                "from": prev.value,
                "to": target.value,
                "reason": reason,
                "session_id": self.session_id,
            })

    async def _emit(self, callback: Optional[Callable[[Any], Any]], payload: Any) -> None:
        """Invoke a sync or async callback. Never crashes the caller."""
        if callback is None:
            return
        try:
            cb = callback(payload)
            if asyncio.iscoroutine(cb):
                await cb
        except Exception as e:
            logger.debug(f"[{self.session_id}] Callback error: {e}")

    def status(self) -> Dict[str, Any]:
        state = self._engine.state
        return {
            **self.telemetry.to_dict(),
            "focus_score": state.current_focus_score,
            "attention_shift_count": state.attention_shift_count,
            "face_detected": state.face_detected,
            "timer": {"is_active": self._timer.is_active, "mode": self._timer.mode.value},
        }

    def summary(self) -> Dict[str, Any]:
        """Final FocusResult fields, for a stats subsystem to record if it wants."""
        state = self._engine.state
        started = self._started_at
        return {
            "session_id": self.session_id,
            "duration_seconds": round(self._clock() - started, 1) if started else 0.0,
            "focus_score": state.current_focus_score,
            "average_focus_score": state.average_focus_score,
            "distraction_level": state.distraction_level,
            "distraction_count": state.attention_shift_count,
            "dominant_emotion": state.dominant_emotion,
            "telemetry": self.telemetry.to_dict(),
            "latency": self._tracer.summary(),
        }
