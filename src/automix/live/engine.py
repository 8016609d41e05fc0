"""
AutoMix Engine: drives the scheduler from timers and carries out its effects.

- Decision tick every 500 ms while enabled
- Ramp tick every 100 ms, only while a transition is running
- Grace timer (500 ms) before the finished channel is cleared

Each tick reads a fresh snapshot from the playback collaborator and the
library; nothing captured at start-up is reused. Timer handles are owned
here and released on disable() / close().
"""

import logging
from collections import deque
from typing import Deque, Iterable, Optional, Set, Tuple

from ..analyze.analyzer import TrackAnalyzer
from ..analyze.bpm import OnsetBPMEstimator
from ..analyze.energy import EnergyProfiler
from ..config import Config
from ..generate.planner import TransitionPlanner
from ..generate.scorer import CompatibilityScorer
from ..models import AutoMixSettings, AutoMixState, ChannelId, MixSnapshot, Phase, Track
from .playback import Playback, TrackLibrary
from .scheduler import (
    AutoMixScheduler,
    ClearChannel,
    LoadTrack,
    Pause,
    Play,
    ScheduleClear,
    Seek,
    SetCrossfader,
    SetPitch,
    StartRamp,
    StopRamp,
)
from .timers import Clock, TimerHandle

logger = logging.getLogger(__name__)


class AutoMixEngine:
    """Owns the auto-mix state, its timers and the settings mutation API."""

    def __init__(
        self,
        playback: Playback,
        library: TrackLibrary,
        clock: Clock,
        config: Optional[Config] = None,
        settings: Optional[AutoMixSettings] = None,
        scheduler: Optional[AutoMixScheduler] = None,
    ):
        """
        Args:
            playback: Playback collaborator (two channels + crossfader)
            library: Track pool
            clock: Timer source (ManualClock in tests, RealtimeClock live)
            config: Loaded Config; defaults when None
            settings: Initial settings; taken from config when None
            scheduler: Pre-built scheduler; built from config when None
        """
        config = config or Config.default()
        self.playback = playback
        self.library = library
        self.clock = clock

        timing = config["scheduler"]
        self.decision_interval = timing["decision_interval_ms"] / 1000.0
        self.ramp_interval = timing["ramp_interval_ms"] / 1000.0
        self.clear_grace = timing["clear_grace_ms"] / 1000.0

        if scheduler is None:
            analyzer = TrackAnalyzer(
                estimator=OnsetBPMEstimator.from_config(config),
                profiler=EnergyProfiler.from_config(config),
            )
            scheduler = AutoMixScheduler(
                scorer=CompatibilityScorer.from_config(config),
                planner=TransitionPlanner.from_config(config),
                analyzer=analyzer,
                default_outro_seconds=timing["default_outro_seconds"],
            )
        self.scheduler = scheduler

        self._settings = settings or AutoMixSettings.from_config(config)
        self._state = AutoMixState.idle()
        self._history: Deque[str] = deque(maxlen=int(config.get("scoring", "repeat_window", 5)))

        self._decision_timer: Optional[TimerHandle] = None
        self._ramp_timer: Optional[TimerHandle] = None
        self._clear_timer: Optional[TimerHandle] = None

        if self._settings.enabled:
            self._start_decisions()

    # --- Read-only views -----------------------------------------------------

    @property
    def state(self) -> AutoMixState:
        return self._state

    @property
    def settings(self) -> AutoMixSettings:
        return self._settings

    @property
    def ramp_active(self) -> bool:
        return self._ramp_timer is not None and self._ramp_timer.active

    def snapshot(self) -> MixSnapshot:
        """Read both channels, the crossfader and the pool right now."""
        channel_a = self.playback.channel_state(ChannelId.A)
        channel_b = self.playback.channel_state(ChannelId.B)
        return MixSnapshot(
            channel_a=channel_a,
            channel_b=channel_b,
            crossfader=self.playback.crossfader,
            pool=self._pool({channel_a.track_id, channel_b.track_id}),
            settings=self._settings,
        )

    def _pool(self, loaded: Set[Optional[str]]) -> Tuple[Track, ...]:
        """Library tracks minus recently finished ones, unless that leaves nothing to queue."""
        tracks = self.library.tracks()
        fresh = tuple(t for t in tracks if t.track_id not in self._history)
        if any(t.track_id not in loaded for t in fresh):
            return fresh
        return tracks

    # --- Settings mutation API -----------------------------------------------

    def update_settings(self, **changes) -> AutoMixSettings:
        """
        Change settings fields (enabled, transition_time_seconds,
        transition_style, smart_sync, energy_match, harmonic).
        """
        was_enabled = self._settings.enabled
        self._settings = self._settings.updated(**changes)
        logger.debug(f"Settings updated: {changes}")

        if self._settings.enabled and not was_enabled:
            self._start_decisions()
        elif was_enabled and not self._settings.enabled:
            self._shutdown_mix()
        return self._settings

    def enable(self) -> None:
        self.update_settings(enabled=True)

    def disable(self) -> None:
        self.update_settings(enabled=False)

    def transition_now(self) -> bool:
        """Start the queued transition immediately. False when nothing is queued."""
        if self._state.phase is not Phase.WAITING:
            return False
        self._commit(*self.scheduler.start_transition(self._state, self.snapshot()))
        return self._state.phase is Phase.TRANSITIONING

    def close(self) -> None:
        """Release every timer; the engine can be re-enabled afterwards."""
        self._cancel(self._decision_timer)
        self._decision_timer = None
        self._cancel(self._ramp_timer)
        self._ramp_timer = None
        self._cancel(self._clear_timer)
        self._clear_timer = None

    # --- Ticks ---------------------------------------------------------------

    def decision_tick(self) -> None:
        try:
            snapshot = self.snapshot()
            self._prune_analyses(snapshot)
            self._commit(*self.scheduler.tick(self._state, snapshot))
        except Exception as e:
            logger.error(f"Decision tick failed: {e}", exc_info=True)

    def ramp_tick(self) -> None:
        try:
            self._commit(*self.scheduler.ramp(self._state))
        except Exception as e:
            logger.error(f"Ramp tick failed: {e}", exc_info=True)

    def _finish(self, channel: ChannelId) -> None:
        self._clear_timer = None
        try:
            finished = self._state.primary is channel and self._state.finishing
            track_id = self.playback.channel_state(channel).track_id
            self._commit(*self.scheduler.finish(self._state, channel))
            if finished and track_id:
                self._history.append(track_id)
        except Exception as e:
            logger.error(f"Finishing transition failed: {e}", exc_info=True)

    # --- Internals -----------------------------------------------------------

    def _start_decisions(self) -> None:
        self._cancel(self._decision_timer)
        self._decision_timer = self.clock.call_every(self.decision_interval, self.decision_tick)
        logger.info("Auto-mix enabled")

    def _shutdown_mix(self) -> None:
        self.close()
        finished = None
        if self._state.finishing and self._state.primary is not None:
            finished = self.playback.channel_state(self._state.primary).track_id
        self._commit(*self.scheduler.disable(self._state))
        if finished:
            self._history.append(finished)
        logger.info("Auto-mix disabled")

    def _prune_analyses(self, snapshot: MixSnapshot) -> None:
        """Drop cached analyses of tracks gone from both the library and the decks."""
        live = {t.track_id for t in self.library.tracks()}
        live.update(c.track_id for c in (snapshot.channel_a, snapshot.channel_b) if c.track_id)
        self.scheduler.analyzer.retain(live)

    def _commit(self, state: AutoMixState, effects: Iterable[object]) -> None:
        if state.phase is not self._state.phase:
            logger.info(f"Phase: {self._state.phase.value} -> {state.phase.value}")
        self._state = state
        for effect in effects:
            self._apply(effect)

    def _apply(self, effect: object) -> None:
        if isinstance(effect, LoadTrack):
            if not self.playback.load_track(effect.channel, effect.track):
                logger.warning(
                    f"Track {effect.track.track_id} loaded without audio on channel "
                    f"{effect.channel.value}; continuing on metadata"
                )
        elif isinstance(effect, Seek):
            self.playback.seek(effect.channel, effect.position)
        elif isinstance(effect, Play):
            self.playback.play(effect.channel)
        elif isinstance(effect, Pause):
            self.playback.pause(effect.channel)
        elif isinstance(effect, SetCrossfader):
            self.playback.set_crossfader(effect.value)
        elif isinstance(effect, SetPitch):
            self.playback.set_pitch(effect.channel, effect.percent)
        elif isinstance(effect, ClearChannel):
            self.playback.unload(effect.channel)
        elif isinstance(effect, StartRamp):
            self._cancel(self._ramp_timer)
            self._ramp_timer = self.clock.call_every(self.ramp_interval, self.ramp_tick)
        elif isinstance(effect, StopRamp):
            self._cancel(self._ramp_timer)
            self._ramp_timer = None
        elif isinstance(effect, ScheduleClear):
            self._cancel(self._clear_timer)
            channel = effect.channel
            self._clear_timer = self.clock.call_later(self.clear_grace, lambda: self._finish(channel))
        else:
            raise TypeError(f"Unknown effect: {effect!r}")

    @staticmethod
    def _cancel(handle: Optional[TimerHandle]) -> None:
        if handle is not None:
            handle.cancel()
