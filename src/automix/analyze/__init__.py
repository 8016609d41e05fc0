"""
Signal Analysis Module: Extract tempo, energy curve and drop points from audio.

- One file at a time
- Max 30 sec of audio for tempo estimation
- "No result" instead of errors when the signal is inconclusive
"""

__all__ = ["audio", "bpm", "energy", "analyzer"]
