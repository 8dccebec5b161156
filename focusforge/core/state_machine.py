"""
FocusForge — Monitor State Machine

Enforces the lifecycle: STOPPED → REQUESTING_PERMISSION → TRACKING ⇄ PAUSED → STOPPED.
All state transitions go through this module so illegitimate states
are impossible and every transition is logged.

A session is "live" while it holds the camera (TRACKING or PAUSED). Each
recorded transition notes whether it opened or closed a live session, since
closing one is what resets the focus engine.
"""

from __future__ import annotations

import logging
import time
from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any, Callable, Dict, FrozenSet, List, Optional

logger = logging.getLogger("focusforge.state")


class MonitorState(str, Enum):
    """Strict monitoring lifecycle states."""
    STOPPED = "stopped"                          # No camera, no ticks
    REQUESTING_PERMISSION = "requesting_permission"
    TRACKING = "tracking"                        # Ticks are scored
    PAUSED = "paused"                            # Ticks ignored, state kept


_LIVE_STATES: FrozenSet[MonitorState] = frozenset({MonitorState.TRACKING, MonitorState.PAUSED})

# Legal state transitions
_TRANSITIONS: Dict[MonitorState, FrozenSet[MonitorState]] = {
    MonitorState.STOPPED:               frozenset({MonitorState.REQUESTING_PERMISSION}),
    MonitorState.REQUESTING_PERMISSION: frozenset({MonitorState.TRACKING, MonitorState.STOPPED}),
    MonitorState.TRACKING:              frozenset({MonitorState.PAUSED, MonitorState.STOPPED}),
    MonitorState.PAUSED:                frozenset({MonitorState.TRACKING, MonitorState.STOPPED}),
}


@dataclass(frozen=True)
class StateTransition:
    """One recorded lifecycle step."""
    prev: MonitorState
    target: MonitorState
    reason: str
    at: float
    time_in_prev_ms: float

    @property
    def opens_session(self) -> bool:
        return self.prev not in _LIVE_STATES and self.target in _LIVE_STATES

    @property
    def closes_session(self) -> bool:
        return self.prev in _LIVE_STATES and self.target not in _LIVE_STATES

    def to_dict(self) -> Dict[str, Any]:
        d = asdict(self)
        d["from"] = d.pop("prev").value
        d["to"] = d.pop("target").value
        d["opens_session"] = self.opens_session
        d["closes_session"] = self.closes_session
        return d


class MonitorStateMachine:
    """
    Usage:
        sm = MonitorStateMachine(on_transition=my_callback)
        sm.transition(MonitorState.REQUESTING_PERMISSION, "start")
        sm.transition(MonitorState.TRACKING, "granted")      # sm.is_live → True
        sm.transition(MonitorState.REQUESTING_PERMISSION)    # illegal → ValueError
    """

    def __init__(
        self,
        on_transition: Optional[Callable[[MonitorState, MonitorState, str], None]] = None,
    ) -> None:
        self._state = MonitorState.STOPPED
        self._on_transition = on_transition
        self._transitions: List[StateTransition] = []
        self._entered_at = time.time()

    @property
    def state(self) -> MonitorState:
        return self._state

    @property
    def history(self) -> List[Dict[str, Any]]:
        return [t.to_dict() for t in self._transitions]

    @property
    def last_transition(self) -> Optional[StateTransition]:
        return self._transitions[-1] if self._transitions else None

    @property
    def is_live(self) -> bool:
        """True while a camera session exists (tracking or paused)."""
        return self._state in _LIVE_STATES

    def can_transition(self, target: MonitorState) -> bool:
        return target == self._state or target in _TRANSITIONS[self._state]

    def transition(self, target: MonitorState, reason: str = "") -> None:
        """Move to `target`. Same-state requests are ignored; illegal ones raise ValueError."""
        if not self.can_transition(target):
            legal = ", ".join(sorted(s.value for s in _TRANSITIONS[self._state]))
            raise ValueError(
                f"Cannot go from {self._state.value} to {target.value} ({reason or 'no reason'}); "
                f"legal targets: {legal}"
            )
        if target == self._state:
            return

        now = time.time()
        step = StateTransition(
            prev=self._state,
            target=target,
            reason=reason,
            at=now,
            time_in_prev_ms=round((now - self._entered_at) * 1000, 1),
        )
        self._transitions.append(step)
        self._state, self._entered_at = target, now

        suffix = " [session opened]" if step.opens_session else " [session closed]" if step.closes_session else ""
        logger.info(f"STATE: {step.prev.value} → {target.value} ({reason or '-'}){suffix}")

        if self._on_transition is None:
            return
        try:
            self._on_transition(step.prev, target, reason)
        except Exception as e:
            logger.error(f"State listener failed on {step.prev.value} → {target.value}: {e}")
