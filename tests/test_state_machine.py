"""
FocusForge — Monitor State Machine Tests
=========================================
"""

from __future__ import annotations

import pytest

from focusforge.core.state_machine import MonitorState, MonitorStateMachine


def test_starts_stopped():
    sm = MonitorStateMachine()
    assert sm.state is MonitorState.STOPPED
    assert sm.is_live is False


def test_full_lifecycle():
    sm = MonitorStateMachine()
    sm.transition(MonitorState.REQUESTING_PERMISSION, "start")
    sm.transition(MonitorState.TRACKING, "granted")
    sm.transition(MonitorState.PAUSED, "pause")
    assert sm.is_live is True
    sm.transition(MonitorState.TRACKING, "resume")
    sm.transition(MonitorState.STOPPED, "stop")

    assert [h["to"] for h in sm.history] == [
        "requesting_permission", "tracking", "paused", "tracking", "stopped",
    ]
    assert sm.history[1]["reason"] == "granted"


def test_illegal_transition_raises():
    sm = MonitorStateMachine()
    with pytest.raises(ValueError):
        sm.transition(MonitorState.TRACKING)
    assert sm.state is MonitorState.STOPPED
    assert sm.can_transition(MonitorState.PAUSED) is False


def test_same_state_is_a_no_op():
    sm = MonitorStateMachine()
    sm.transition(MonitorState.STOPPED)
    assert sm.history == []


def test_callback_receives_transition_and_errors_are_contained():
    seen = []

    def on_transition(prev, new, reason):
        seen.append((prev, new, reason))
        raise RuntimeError("listener blew up")

    sm = MonitorStateMachine(on_transition=on_transition)
    sm.transition(MonitorState.REQUESTING_PERMISSION, "start")

    assert seen == [(MonitorState.STOPPED, MonitorState.REQUESTING_PERMISSION, "start")]
    assert sm.state is MonitorState.REQUESTING_PERMISSION


def test_transitions_mark_session_open_and_close():
    sm = MonitorStateMachine()
    sm.transition(MonitorState.REQUESTING_PERMISSION, "start")
    sm.transition(MonitorState.TRACKING, "granted")
    sm.transition(MonitorState.PAUSED, "pause")
    sm.transition(MonitorState.STOPPED, "stop")

    flags = [(h["opens_session"], h["closes_session"]) for h in sm.history]
    assert flags == [(False, False), (True, False), (False, False), (False, True)]
    assert sm.last_transition.reason == "stop"
    assert sm.history[0]["from"] == "stopped"
    assert sm.history[0]["time_in_prev_ms"] >= 0


def test_denied_permission_never_opens_a_session():
    sm = MonitorStateMachine()
    sm.transition(MonitorState.REQUESTING_PERMISSION, "start")
    sm.transition(MonitorState.STOPPED, "permission_denied")
    assert not any(h["opens_session"] or h["closes_session"] for h in sm.history)
