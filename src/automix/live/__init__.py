"""
Live Module: Run the auto-mix against two playback channels.

- Pure phase state machine (scheduler)
- Timer-driven engine with owned, cancellable tick handles
- Playback / library collaborator interfaces and a simulated playback
"""

__all__ = ["scheduler", "engine", "timers", "playback"]
