"""Calmirror - mirror upcoming calendar events into task lists."""

__version__ = "0.1.0"
