"""
FocusForge — Monitor Registry

Maps session_id → FocusMonitor. One monitor per WebSocket connection.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from .monitor import FocusMonitor

logger = logging.getLogger("focusforge.registry")


class MonitorRegistry:
    """Maps session_id → FocusMonitor. Single event loop, no locking needed."""

    def __init__(self) -> None:
        self._monitors: Dict[str, FocusMonitor] = {}

    def add(self, monitor: FocusMonitor) -> FocusMonitor:
        self._monitors[monitor.session_id] = monitor
        logger.info(f"MonitorRegistry: added {monitor.session_id} (total: {len(self._monitors)})")
        return monitor

    async def remove(self, session_id: str) -> Optional[Dict[str, Any]]:
        monitor = self._monitors.pop(session_id, None)
        if monitor is None:
            return None
        summary = monitor.summary()
        await monitor.close()
        logger.info(f"MonitorRegistry: removed {session_id} (total: {len(self._monitors)})")
        return summary

    async def close_all(self) -> None:
        for sid in list(self._monitors.keys()):
            await self.remove(sid)

    def get(self, session_id: str) -> Optional[FocusMonitor]:
        return self._monitors.get(session_id)

    @property
    def active_count(self) -> int:
        return sum(1 for m in self._monitors.values() if m.is_active)

    @property
    def all_monitors(self) -> Dict[str, FocusMonitor]:
        return dict(self._monitors)

    def __len__(self) -> int:
        return len(self._monitors)
