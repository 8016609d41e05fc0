"""
AutoMix Scheduler: the auto-mix phase state machine.

Phases advance idle -> scanning -> waiting -> transitioning -> idle.

Every entry point is a function of (state, snapshot) returning the next
state and a list of effects; the scheduler never talks to playback or
timers itself. The engine feeds it freshly read snapshots and carries out
the effects, which keeps stale data out of decisions and makes the machine
testable without real timers.

Entry points:
- tick()    : 500 ms decision tick
- ramp()    : 100 ms crossfade step, only while transitioning
- finish()  : grace timer after the ramp completed
- disable() : operator switched auto-mix off
"""

import logging
from dataclasses import dataclass, replace
from typing import List, Optional, Tuple

from ..analyze.analyzer import TrackAnalyzer
from ..generate.planner import TransitionPlanner, sync_pitch
from ..generate.scorer import CompatibilityScorer
from ..models import (
    DEFAULT_OUTRO_SECONDS,
    AutoMixState,
    ChannelId,
    MixSnapshot,
    Phase,
    Track,
    TransitionStyle,
)

logger = logging.getLogger(__name__)

RAMP_STEPS_PER_SECOND = 10


# --- Effects -----------------------------------------------------------------


@dataclass(frozen=True)
class LoadTrack:
    channel: ChannelId
    track: Track


@dataclass(frozen=True)
class Seek:
    channel: ChannelId
    position: float


@dataclass(frozen=True)
class Play:
    channel: ChannelId


@dataclass(frozen=True)
class Pause:
    channel: ChannelId


@dataclass(frozen=True)
class SetCrossfader:
    value: float


@dataclass(frozen=True)
class SetPitch:
    channel: ChannelId
    percent: float


@dataclass(frozen=True)
class ClearChannel:
    channel: ChannelId


@dataclass(frozen=True)
class StartRamp:
    """Start the fine tick (replacing any stale one)."""


@dataclass(frozen=True)
class StopRamp:
    """Cancel the fine tick."""


@dataclass(frozen=True)
class ScheduleClear:
    """Clear `channel` once the grace period has passed."""

    channel: ChannelId


Step = Tuple[AutoMixState, List[object]]


class AutoMixScheduler:
    """Decides what the auto-mix does next from a snapshot of the decks."""

    def __init__(
        self,
        scorer: Optional[CompatibilityScorer] = None,
        planner: Optional[TransitionPlanner] = None,
        analyzer: Optional[TrackAnalyzer] = None,
        default_outro_seconds: float = DEFAULT_OUTRO_SECONDS,
    ):
        self.scorer = scorer or CompatibilityScorer()
        self.planner = planner or TransitionPlanner()
        self.analyzer = analyzer or TrackAnalyzer(decode_audio=False)
        self.default_outro_seconds = default_outro_seconds

    # --- Decision tick -------------------------------------------------------

    def tick(self, state: AutoMixState, snapshot: MixSnapshot) -> Step:
        """Coarse decision tick."""
        if not snapshot.settings.enabled:
            if state.phase is not Phase.IDLE:
                return self.disable(state)
            return state, []

        if not snapshot.any_playing:
            return state, []

        if state.phase in (Phase.IDLE, Phase.SCANNING):
            return self._scan(state, snapshot)
        if state.phase is Phase.WAITING:
            return self._wait(state, snapshot)

        # Transitioning: the ramp owns the crossfader until it finishes
        return state, []

    def _scan(self, state: AutoMixState, snapshot: MixSnapshot) -> Step:
        primary = state.primary if state.phase is Phase.SCANNING else snapshot.primary_channel()
        incoming = primary.other
        current = snapshot.channel(primary).track
        incoming_channel = snapshot.channel(incoming)

        if current is None or not snapshot.channel(primary).is_playing:
            return AutoMixState.idle(), []

        if state.phase is Phase.SCANNING:
            candidate = self._pending_candidate(state, snapshot)
            if candidate is None or incoming_channel.track is not None:
                logger.info("Pending candidate vanished; back to idle")
                return AutoMixState.idle(), []
        else:
            if incoming_channel.track is not None:
                # Operator already loaded the other channel
                return state, []

            excluded = {current.track_id, incoming_channel.track_id}
            pool = [t for t in snapshot.pool if t.track_id not in excluded]
            best = self.scorer.choose_next(current, pool, snapshot.settings)
            if best is None:
                logger.warning("No candidate tracks in pool; staying idle")
                return replace(state, phase=Phase.IDLE, is_analyzing=False), []
            candidate = best.track
            self.analyzer.request(candidate)

        scanning = replace(
            state,
            phase=Phase.SCANNING,
            is_analyzing=True,
            pending_track_id=candidate.track_id,
            primary=primary,
        )

        analyzed = self.analyzer.ready(candidate)
        if analyzed is None:
            logger.debug(f"Waiting for analysis of {candidate.track_id}")
            return scanning, []

        # Metadata comes from the pool, analysis fields from the cache
        track = candidate.with_profile(analyzed.energy_map, analyzed.drop_points, bpm=analyzed.bpm)
        return self._queue(scanning, snapshot, track)

    def _pending_candidate(self, state: AutoMixState, snapshot: MixSnapshot) -> Optional[Track]:
        for track in snapshot.pool:
            if track.track_id == state.pending_track_id:
                return track
        return None

    def _queue(self, state: AutoMixState, snapshot: MixSnapshot, track: Track) -> Step:
        primary = state.primary
        incoming = primary.other
        outgoing = snapshot.channel(primary)
        current = self._profiled(outgoing.track)

        style = self.planner.plan(current, track, snapshot.settings, position=outgoing.position)
        mix_point = current.duration_seconds - current.outro_seconds(self.default_outro_seconds)

        logger.info(
            f"Queued {track.track_id} on channel {incoming.value} "
            f"({style.value}, mix point {mix_point:.1f}s)"
        )
        waiting = replace(
            state,
            phase=Phase.WAITING,
            is_analyzing=False,
            pending_track_id=None,
            queued_track_id=track.track_id,
            selected_style=style,
            next_track_ready=True,
            suggested_mix_point=mix_point,
        )
        return waiting, [LoadTrack(incoming, track), Seek(incoming, 0.0)]

    def _profiled(self, track: Track) -> Track:
        return self.analyzer.ready(track) or track

    @staticmethod
    def _queue_intact(state: AutoMixState, snapshot: MixSnapshot) -> bool:
        """Outgoing still playing, queued track still parked on the other channel."""
        outgoing = snapshot.channel(state.primary)
        incoming = snapshot.channel(state.primary.other)
        return (
            outgoing.track is not None
            and outgoing.is_playing
            and incoming.track_id == state.queued_track_id
            and not incoming.is_playing
        )

    def _wait(self, state: AutoMixState, snapshot: MixSnapshot) -> Step:
        if not self._queue_intact(state, snapshot):
            logger.info("Queued transition no longer valid; back to idle")
            return AutoMixState.idle(), []

        outgoing = snapshot.channel(state.primary)
        outro = outgoing.track.outro_seconds(self.default_outro_seconds)
        if outgoing.time_remaining <= outro:
            return self.start_transition(state, snapshot)
        return state, []

    def start_transition(self, state: AutoMixState, snapshot: MixSnapshot) -> Step:
        """Begin the crossfade toward the queued track."""
        if state.phase is not Phase.WAITING:
            return state, []
        if not self._queue_intact(state, snapshot):
            logger.info("Queued track no longer on its channel; transition dropped")
            return AutoMixState.idle(), []

        primary = state.primary
        incoming = primary.other
        steps = int(snapshot.settings.transition_time_seconds) * RAMP_STEPS_PER_SECOND

        effects: List[object] = [Seek(incoming, 0.0)]
        if snapshot.settings.smart_sync and state.selected_style is TransitionStyle.BEATMATCH:
            outgoing_track = snapshot.channel(primary).track
            incoming_track = snapshot.channel(incoming).track
            pitch = sync_pitch(outgoing_track.bpm, incoming_track.bpm)
            if pitch:
                effects.append(SetPitch(incoming, pitch))
        effects += [Play(incoming), StartRamp()]

        logger.info(
            f"Transition started: {primary.value} -> {incoming.value} "
            f"({state.selected_style.value if state.selected_style else 'crossfade'}, {steps} steps)"
        )
        transitioning = replace(
            state,
            phase=Phase.TRANSITIONING,
            transition_progress=0.0,
            ramp_step=0,
            ramp_steps=steps,
            ramp_from=float(snapshot.crossfader),
            ramp_to=incoming.crossfader_target,
            finishing=False,
        )
        return transitioning, effects

    # --- Fine tick -----------------------------------------------------------

    def ramp(self, state: AutoMixState) -> Step:
        """One crossfade step. Completing the ramp stops the outgoing channel."""
        if state.phase is not Phase.TRANSITIONING or state.finishing:
            return state, [StopRamp()]

        step = min(state.ramp_step + 1, state.ramp_steps)
        value = state.ramp_from + (state.ramp_to - state.ramp_from) * step / state.ramp_steps
        progress = step / state.ramp_steps * 100.0

        effects: List[object] = [SetCrossfader(value)]
        finishing = step >= state.ramp_steps
        if finishing:
            effects += [StopRamp(), Pause(state.primary), ScheduleClear(state.primary)]
            logger.debug(f"Ramp complete; channel {state.primary.value} stopped")

        return replace(
            state,
            ramp_step=step,
            transition_progress=progress,
            finishing=finishing,
        ), effects

    def finish(self, state: AutoMixState, channel: ChannelId) -> Step:
        """Grace period over: clear the finished channel and reset to idle."""
        if state.phase is not Phase.TRANSITIONING or not state.finishing or state.primary is not channel:
            return state, []
        logger.info(f"✅ Transition complete; channel {channel.value} cleared")
        return AutoMixState.idle(), [ClearChannel(channel)]

    # --- Operator ------------------------------------------------------------

    def disable(self, state: AutoMixState) -> Step:
        """
        Stop everything in flight; the crossfader stays where it is.

        A ramp that already completed still gets its channel cleared, since
        the grace timer that would have done it is gone.
        """
        if state.phase is not Phase.IDLE:
            logger.info(f"Auto-mix disabled during {state.phase.value}")
        effects: List[object] = [StopRamp()]
        if state.phase is Phase.TRANSITIONING and state.finishing and state.primary is not None:
            effects.append(ClearChannel(state.primary))
        return AutoMixState.idle(), effects
