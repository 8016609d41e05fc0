"""
Next-Track Module: Pick the next track and the way to mix into it.

- Camelot-wheel harmonic compatibility
- Tempo / energy / harmonic scoring of candidates
- Transition style selection for a track pair
"""

__all__ = ["harmony", "scorer", "planner"]
