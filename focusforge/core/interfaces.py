"""
FocusForge — Collaborator Interfaces

Protocol definitions for the pieces the focus engine talks to but does not own:
  1. Camera access  — permission and device enumeration
  2. Frame source   — the periodic tick source (camera reads, client pushes, demo)
  3. Face detector  — frame → FrameObservation

The monitor depends only on these protocols — never on a concrete
camera or detector implementation.
"""

from __future__ import annotations

from typing import Any, List, Optional, Protocol, runtime_checkable

from .models import CameraDevice, FrameObservation


# ═══════════════════════════════════════════════════════════════════════════
# Camera access
# ═══════════════════════════════════════════════════════════════════════════

@runtime_checkable
class CameraAccess(Protocol):
    """Grants (or refuses) camera use and lists capture devices."""

    async def request_permission(self, device_id: Optional[str]) -> bool:
        """True if the device may be used for this session."""
        ...

    async def list_devices(self) -> List[CameraDevice]:
        """Available capture devices."""
        ...


# ═══════════════════════════════════════════════════════════════════════════
# Frame source: one frame per tick
# ═══════════════════════════════════════════════════════════════════════════

@runtime_checkable
class FrameSource(Protocol):
    """Yields frames at its own cadence; each frame is one tick."""

    async def open(self, device_id: Optional[str]) -> None:
        ...

    async def next_frame(self) -> Any:
        """Wait for the next frame. Returns None once the source is exhausted."""
        ...

    async def close(self) -> None:
        ...


# ═══════════════════════════════════════════════════════════════════════════
# Face detector
# ═══════════════════════════════════════════════════════════════════════════

@runtime_checkable
class FaceDetector(Protocol):
    """Turns one frame into zero-or-one primary face observation."""

    async def detect(self, frame: Any) -> FrameObservation:
        """May raise; the monitor treats any failure as NoFace."""
        ...

    def close(self) -> None:
        ...
