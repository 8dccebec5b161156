"""FocusForge — real-time focus scoring from face observations."""

__version__ = "1.0.0"
