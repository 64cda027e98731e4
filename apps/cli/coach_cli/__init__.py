"""AI Coach terminal client: local-first workout and goal log with server sync."""

__version__ = "1.0.0"
