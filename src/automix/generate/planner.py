"""
Transition Planner: choose how to mix from one track into the next.

With style "auto", rules are checked in order (first match wins):
1. drop      - candidate drops within the first 60 s, enters hot (>60),
               and the current track leaves hot (>50)
2. beatmatch - tempos within 2%
3. cut       - tempos more than 8% apart, or an energy gap above 40
4. crossfade - everything else

Any other configured style is returned unchanged.
"""

import logging
from typing import Optional

from ..models import AutoMixSettings, Track, TransitionStyle
from .scorer import tempo_ratio

logger = logging.getLogger(__name__)

DROP_WINDOW_SECONDS = 60.0
DROP_INTRO_ENERGY = 60.0
DROP_OUTRO_ENERGY = 50.0
BEATMATCH_RATIO = 0.02
CUT_RATIO = 0.08
CUT_ENERGY_GAP = 40.0

PITCH_RANGE_PERCENT = 8.0


class TransitionPlanner:
    """Deterministic transition-style selection for a track pair."""

    def __init__(self, drop_window_seconds: float = DROP_WINDOW_SECONDS):
        self.drop_window_seconds = drop_window_seconds

    @classmethod
    def from_config(cls, config) -> "TransitionPlanner":
        return cls(drop_window_seconds=float(config.get("scoring", "drop_window_seconds", DROP_WINDOW_SECONDS)))

    def has_early_drop(self, track: Track) -> bool:
        return any(t < self.drop_window_seconds for t in track.drop_points)

    def plan(
        self,
        current: Track,
        nxt: Track,
        settings: AutoMixSettings,
        position: Optional[float] = None,
    ) -> TransitionStyle:
        """
        Select the transition style.

        Args:
            current: Outgoing track
            nxt: Incoming track
            settings: Auto-mix settings (transition_style may force a style)
            position: Playback position of the outgoing track; accepted for
                callers that plan mid-track, it does not change the result

        Returns:
            A concrete TransitionStyle (never AUTO)
        """
        if settings.transition_style is not TransitionStyle.AUTO:
            return settings.transition_style

        outro_energy = current.last_energy
        intro_energy = nxt.first_energy
        ratio = tempo_ratio(current.bpm, nxt.bpm)

        if (
            self.has_early_drop(nxt)
            and intro_energy > DROP_INTRO_ENERGY
            and outro_energy > DROP_OUTRO_ENERGY
        ):
            style = TransitionStyle.DROP
        elif ratio <= BEATMATCH_RATIO:
            style = TransitionStyle.BEATMATCH
        elif ratio > CUT_RATIO or abs(outro_energy - intro_energy) > CUT_ENERGY_GAP:
            style = TransitionStyle.CUT
        else:
            style = TransitionStyle.CROSSFADE

        logger.debug(
            f"Planned {style.value}: {current.track_id} -> {nxt.track_id} "
            f"(tempo ratio {ratio:.3f}, outro {outro_energy:.0f}, intro {intro_energy:.0f})"
        )
        return style


def sync_pitch(outgoing_bpm: float, incoming_bpm: float) -> float:
    """
    Pitch (percent) that brings the incoming track to the outgoing tempo.

    Clamped to the +/-8% range of the playback pitch knob.
    """
    if not outgoing_bpm or not incoming_bpm:
        return 0.0
    pitch = (outgoing_bpm / incoming_bpm - 1.0) * 100.0
    return max(-PITCH_RANGE_PERCENT, min(PITCH_RANGE_PERCENT, pitch))
