"""
FocusForge — Structured Latency Tracer

Records wall-clock timestamps for the milestones of one tracking run:
  tracking_started → first_observation → first_face → first_alert

Computes and logs latency deltas. Reset on every new tracking run.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Dict, Optional

logger = logging.getLogger("focusforge.latency")

_MILESTONES = ("tracking_started", "first_observation", "first_face", "first_alert")


@dataclass
class LatencyTrace:
    """Record of tracking milestones (wall-clock seconds, 0 = not reached)."""

    session_id: str = ""

    tracking_started: float = 0.0
    first_observation: float = 0.0
    first_face: float = 0.0
    first_alert: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {"session_id": self.session_id}
        for name in _MILESTONES:
            ts = getattr(self, name)
            if ts > 0:
                d[name] = ts
        d["deltas"] = self.deltas()
        return d

    def deltas(self) -> Dict[str, Optional[float]]:
        """Milliseconds between milestones, None where either end is missing."""
        def _delta(a: float, b: float) -> Optional[float]:
            if a > 0 and b > 0:
                return round((b - a) * 1000, 1)
            return None

        return {
            "start_to_first_observation_ms": _delta(self.tracking_started, self.first_observation),
            "start_to_first_face_ms": _delta(self.tracking_started, self.first_face),
            "start_to_first_alert_ms": _delta(self.tracking_started, self.first_alert),
        }


class LatencyTracer:
    """
    Mutable tracer that records milestones once per tracking run.

    Usage:
        tracer = LatencyTracer("session-abc")
        tracer.start()
        tracer.mark("first_observation")
    """

    def __init__(self, session_id: str) -> None:
        self._trace = LatencyTrace(session_id=session_id)

    @property
    def trace(self) -> LatencyTrace:
        return self._trace

    def start(self) -> None:
        self._trace = LatencyTrace(session_id=self._trace.session_id, tracking_started=time.time())
        logger.info(f"[{self._trace.session_id}] LATENCY tracking_started")

    def mark(self, milestone: str) -> None:
        if milestone not in _MILESTONES[1:]:
            raise ValueError(f"Unknown milestone: {milestone}")
        if getattr(self._trace, milestone) > 0:
            return  # Already marked
        setattr(self._trace, milestone, time.time())
        delta = self._trace.deltas()[f"start_to_{milestone}_ms"]
        logger.info(f"[{self._trace.session_id}] LATENCY {milestone} (start→{milestone}: {delta}ms)")

    def summary(self) -> Dict[str, Any]:
        return self._trace.to_dict()
